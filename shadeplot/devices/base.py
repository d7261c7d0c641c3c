from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging
import math
import threading
from typing import Any

from shadeplot.color import ColorMap
from shadeplot.devices.protocol import (
    BeginFrame,
    Color,
    Command,
    EndFrame,
    FillBox,
    LineType,
    Move,
    Point,
    Reset,
    Spectrum,
    Units,
    Vector,
    Width,
    clamp_int16,
    clamp_uint16,
)
from shadeplot.errors import DeviceWriteFailure, MalformedInput
from shadeplot.layout import DEVICE_HEIGHT, DEVICE_WIDTH, Mapping


LOGGER = logging.getLogger(__name__)

MAX_THICKNESS = 9


@dataclass(frozen=True)
class PanelRecord:
    page_index: int
    panel_index: int
    title: str = ""
    topline: str = ""
    x_title: str = ""
    x_units: str = ""
    x_type: str = "linear"
    x_range: tuple[float, float] | None = None
    y_title: str = ""
    y_units: str = ""
    y_type: str = "linear"
    y_range: tuple[float, float] | None = None


@dataclass(frozen=True)
class TraceRecord:
    name: str
    x: list[float]
    y: list[float]
    mode: str = "lines"
    line_width: int = 1
    line_color: tuple[int, int, int] = (0, 0, 0)
    dash: str = "solid"
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FrameMark:
    """Position inside the open frame that a failed panel can be rolled back to."""

    commands: int
    units: Units | None
    clamped: int
    records: int = 0


class Device(ABC):
    """Buffers one frame of drawing commands and hands it to the back end atomically."""

    name = "device"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: list[Command] | None = None
        self._units: Units | None = None
        self._clamped = 0
        self._frames_committed = 0
        self._closed = False

    @property
    def in_frame(self) -> bool:
        return self._frame is not None

    @property
    def frames_committed(self) -> int:
        return self._frames_committed

    def begin_frame(self) -> None:
        if self._closed:
            raise DeviceWriteFailure(f"{self.name} device is closed")
        if self._frame is not None:
            raise RuntimeError("begin_frame called while a frame is open")
        self._frame = [BeginFrame()]
        self._units = None
        self._clamped = 0

    def end_frame(self) -> None:
        frame = self._require_frame()
        frame.append(self._units or Units(1.0, 0.0, 1.0, 0.0))
        frame.append(EndFrame())
        if self._clamped:
            LOGGER.warning("%s frame clamped coordinates to the device plane; clamped_points=%d", self.name, self._clamped)
        self._frame = None
        with self._lock:
            self._commit(frame)
            self._frames_committed += 1

    def abort_frame(self) -> None:
        if self._frame is None:
            return
        self._frame = None
        with self._lock:
            self._abort()

    def mark(self) -> FrameMark:
        frame = self._require_frame()
        return FrameMark(len(frame), self._units, self._clamped, self._record_count())

    def rollback(self, mark: FrameMark) -> None:
        """Drop everything buffered after ``mark``; the frame stays open."""
        frame = self._require_frame()
        del frame[mark.commands :]
        self._units = mark.units
        self._clamped = mark.clamped
        self._drop_records(mark.records)

    def set_mapping(self, mapping: Mapping) -> None:
        self._require_frame()
        self._units = Units(*mapping.device_to_world())

    def move(self, x: float, y: float) -> None:
        self._append(Move(*self._xy(x, y)))

    def vector(self, x: float, y: float) -> None:
        self._append(Vector(*self._xy(x, y)))

    def point(self, x: float, y: float) -> None:
        self._append(Point(*self._xy(x, y)))

    def linetype(self, index: int) -> None:
        self._append(LineType(clamp_int16(index)[0]))

    def width(self, thickness: int) -> None:
        self._append(Width(max(0, min(MAX_THICKNESS, int(thickness)))))

    def color(self, r16: int, g16: int, b16: int) -> None:
        self._append(Color(clamp_uint16(r16), clamp_uint16(g16), clamp_uint16(b16)))

    def spectrum(self, cmap: ColorMap) -> None:
        start, end = cmap.endpoints16
        self._append(Spectrum(cmap.slots, cmap.type_code, *start, *end))

    def fill_box(self, shade: int, xl: float, xh: float, yl: float, yh: float) -> None:
        x0, y0 = self._xy(xl, yl)
        x1, y1 = self._xy(xh, yh)
        self._append(FillBox(int(shade), min(x0, x1), max(x0, x1), min(y0, y1), max(y0, y1)))

    def polyline(self, xs: list[float], ys: list[float]) -> None:
        if len(xs) < 2:
            return
        self.move(xs[0], ys[0])
        for x, y in zip(xs[1:], ys[1:], strict=True):
            self.vector(x, y)

    def annotate_panel(self, record: PanelRecord) -> None:
        _ = record

    def record_trace(self, record: TraceRecord) -> None:
        _ = record

    def close(self) -> None:
        if self._closed:
            return
        if self._frame is not None:
            self.abort_frame()
        self._closed = True
        self._close()

    def __enter__(self) -> Device:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is not None and self._frame is not None:
            try:
                self.abort_frame()
            except DeviceWriteFailure:
                LOGGER.debug("abort after failure could not be delivered")
        self.close()

    @abstractmethod
    def _commit(self, commands: list[Command]) -> None:
        """Deliver a complete G..U E frame."""

    def _abort(self) -> None:
        self._commit_raw([Reset(), EndFrame()])

    def _commit_raw(self, commands: list[Command]) -> None:
        _ = commands

    def _close(self) -> None:
        return None

    def _record_count(self) -> int:
        return 0

    def _drop_records(self, keep: int) -> None:
        _ = keep

    def _append(self, command: Command) -> None:
        self._require_frame().append(command)

    def _require_frame(self) -> list[Command]:
        if self._frame is None:
            raise RuntimeError(f"{self.name} device has no open frame")
        return self._frame

    def _xy(self, x: float, y: float) -> tuple[int, int]:
        if not (math.isfinite(x) and math.isfinite(y)):
            raise MalformedInput(f"non-finite device coordinate ({x}, {y})")
        xi = int(round(float(x)))
        yi = int(round(float(y)))
        cx = max(0, min(DEVICE_WIDTH - 1, xi))
        cy = max(0, min(DEVICE_HEIGHT - 1, yi))
        if cx != xi or cy != yi:
            self._clamped += 1
        return cx, cy
