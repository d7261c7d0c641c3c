from __future__ import annotations

from dataclasses import astuple, dataclass
import struct
from typing import TypeAlias


INT16_MIN = -32768
INT16_MAX = 32767
UINT16_MAX = 65535


@dataclass(frozen=True)
class BeginFrame:
    pass


@dataclass(frozen=True)
class EndFrame:
    pass


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class Move:
    x: int
    y: int


@dataclass(frozen=True)
class Vector:
    x: int
    y: int


@dataclass(frozen=True)
class Point:
    x: int
    y: int


@dataclass(frozen=True)
class LineType:
    index: int


@dataclass(frozen=True)
class Width:
    width: int


@dataclass(frozen=True)
class Color:
    r: int
    g: int
    b: int


@dataclass(frozen=True)
class Spectrum:
    count: int
    type_code: int
    r0: int = 0
    g0: int = 0
    b0: int = 0
    r1: int = 0
    g1: int = 0
    b1: int = 0


@dataclass(frozen=True)
class FillBox:
    shade: int
    xl: int
    xh: int
    yl: int
    yh: int


@dataclass(frozen=True)
class Units:
    ax: float
    bx: float
    ay: float
    by: float


Command: TypeAlias = (
    BeginFrame | EndFrame | Reset | Move | Vector | Point | LineType | Width | Color | Spectrum | FillBox | Units
)

_LAYOUT: dict[type, tuple[bytes, struct.Struct]] = {
    BeginFrame: (b"G", struct.Struct("<")),
    EndFrame: (b"E", struct.Struct("<")),
    Reset: (b"R", struct.Struct("<")),
    Move: (b"M", struct.Struct("<hh")),
    Vector: (b"V", struct.Struct("<hh")),
    Point: (b"P", struct.Struct("<hh")),
    LineType: (b"L", struct.Struct("<h")),
    Width: (b"W", struct.Struct("<h")),
    Color: (b"C", struct.Struct("<HHH")),
    Spectrum: (b"S", struct.Struct("<8H")),
    FillBox: (b"B", struct.Struct("<5h")),
    Units: (b"U", struct.Struct("<4d")),
}
_BY_OPCODE: dict[bytes, tuple[type, struct.Struct]] = {op: (cls, layout) for cls, (op, layout) in _LAYOUT.items()}


def encode_command(command: Command) -> bytes:
    try:
        opcode, layout = _LAYOUT[type(command)]
    except KeyError as exc:
        raise TypeError(f"not a protocol command: {command!r}") from exc
    try:
        return opcode + layout.pack(*astuple(command))
    except struct.error as exc:
        raise ValueError(f"{opcode.decode()} payload out of range: {command!r}") from exc


def encode_commands(commands: list[Command]) -> bytes:
    return b"".join(encode_command(c) for c in commands)


def decode_stream(data: bytes) -> list[Command]:
    commands: list[Command] = []
    offset = 0
    view = memoryview(data)
    while offset < len(data):
        opcode = bytes(view[offset : offset + 1])
        entry = _BY_OPCODE.get(opcode)
        if entry is None:
            raise ValueError(f"unknown opcode {opcode!r} at byte {offset}")
        cls, layout = entry
        offset += 1
        if offset + layout.size > len(data):
            raise ValueError(f"truncated {opcode.decode()} payload at byte {offset}")
        values = layout.unpack_from(view, offset)
        offset += layout.size
        commands.append(cls(*values))
    return commands


def validate_stream(commands: list[Command]) -> list[str]:
    """Return bracket violations; an empty list means the stream is well formed."""
    problems: list[str] = []
    state = "idle"
    for index, command in enumerate(commands):
        if isinstance(command, BeginFrame):
            if state in ("frame", "units"):
                problems.append(f"#{index}: G before the previous frame ended")
            state = "frame"
        elif isinstance(command, Reset):
            state = "aborted"
        elif isinstance(command, Units):
            if state == "frame":
                state = "units"
            elif state == "units":
                problems.append(f"#{index}: second U in one frame")
            else:
                problems.append(f"#{index}: U outside a frame")
        elif isinstance(command, EndFrame):
            if state == "frame":
                problems.append(f"#{index}: E without a preceding U")
            elif state == "idle":
                problems.append(f"#{index}: E outside a frame")
            state = "idle"
        else:
            if state == "units":
                problems.append(f"#{index}: {type(command).__name__} between U and E")
            elif state != "frame":
                problems.append(f"#{index}: {type(command).__name__} outside a frame")
    if state in ("frame", "units"):
        problems.append("stream ended inside a frame")
    return problems


def clamp_int16(value: float) -> tuple[int, bool]:
    iv = int(round(value))
    if iv < INT16_MIN:
        return INT16_MIN, True
    if iv > INT16_MAX:
        return INT16_MAX, True
    return iv, False


def clamp_uint16(value: float) -> int:
    return max(0, min(UINT16_MAX, int(round(value))))
