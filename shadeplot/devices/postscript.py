from __future__ import annotations

import logging
from pathlib import Path

from shadeplot.color import RGB, USER_LINETYPE_BASE, line_color, rgb16_to_rgb8, spectrum_colors
from shadeplot.devices.base import Device
from shadeplot.devices.protocol import (
    Color,
    Command,
    FillBox,
    LineType,
    Move,
    Point,
    Spectrum,
    Units,
    Vector,
    Width,
)
from shadeplot.errors import DeviceWriteFailure
from shadeplot.layout import DEVICE_HEIGHT, DEVICE_WIDTH


LOGGER = logging.getLogger(__name__)

PAGE_WIDTH_PT = 792.0
PAGE_HEIGHT_PT = 612.0
DASH_PATTERNS: tuple[str, ...] = ("[]", "[12 6]", "[3 6]", "[12 6 3 6]", "[24 8]", "[3 3]")


class PostscriptDevice(Device):
    """Landscape PostScript, one page per frame."""

    name = "postscript"

    def __init__(self, output: str | Path) -> None:
        super().__init__()
        self.path = Path(output)
        try:
            self._handle = self.path.open("w", encoding="ascii")
        except OSError as exc:
            raise DeviceWriteFailure(f"cannot open {self.path}: {exc}") from exc
        self._scale = min(PAGE_WIDTH_PT / DEVICE_WIDTH, PAGE_HEIGHT_PT / DEVICE_HEIGHT)
        self._write(
            "%!PS-Adobe-3.0\n"
            "%%Creator: shadeplot\n"
            f"%%BoundingBox: 0 0 {int(PAGE_WIDTH_PT)} {int(PAGE_HEIGHT_PT)}\n"
            "%%Pages: (atend)\n"
            "%%EndComments\n"
            "/m { moveto } bind def\n/l { lineto } bind def\n"
        )

    def _commit(self, commands: list[Command]) -> None:
        page = self.frames_committed + 1
        lines = [f"%%Page: {page} {page}", "gsave", f"{self._scale:.6f} dup scale", "1 setlinejoin 1 setlinecap"]
        palette: list[RGB] = []
        current: RGB = (0, 0, 0)
        open_path = False
        for command in commands:
            if isinstance(command, Move):
                if open_path:
                    lines.append("stroke")
                lines.append(f"newpath {command.x} {command.y} m")
                open_path = True
                continue
            if isinstance(command, Vector):
                lines.append(f"{command.x} {command.y} l" if open_path else f"newpath {command.x} {command.y} m")
                open_path = True
                continue
            if open_path:
                lines.append("stroke")
                open_path = False
            if isinstance(command, Point):
                lines.append(f"newpath {command.x} {command.y} 4 0 360 arc fill")
            elif isinstance(command, LineType):
                if command.index >= USER_LINETYPE_BASE:
                    current = line_color(command.index)
                    lines.append("[] 0 setdash")
                else:
                    current = (0, 0, 0)
                    lines.append(f"{DASH_PATTERNS[command.index % len(DASH_PATTERNS)]} 0 setdash")
                lines.append(_setrgb(current))
            elif isinstance(command, Width):
                lines.append(f"{max(1, command.width) * 2} setlinewidth")
            elif isinstance(command, Color):
                current = rgb16_to_rgb8((command.r, command.g, command.b))
                lines.append(_setrgb(current))
            elif isinstance(command, Spectrum):
                palette = spectrum_colors(
                    command.count,
                    command.type_code,
                    (command.r0, command.g0, command.b0),
                    (command.r1, command.g1, command.b1),
                )
            elif isinstance(command, FillBox):
                if 0 <= command.shade < len(palette):
                    w = command.xh - command.xl + 1
                    h = command.yh - command.yl + 1
                    lines.append(f"{_setrgb(palette[command.shade])} {command.xl} {command.yl} {w} {h} rectfill")
                    lines.append(_setrgb(current))
            elif isinstance(command, Units):
                lines.append(f"% units {command.ax!r} {command.bx!r} {command.ay!r} {command.by!r}")
        if open_path:
            lines.append("stroke")
        lines += ["grestore", "showpage", ""]
        self._write("\n".join(lines))

    def _abort(self) -> None:
        LOGGER.debug("postscript page discarded")

    def _close(self) -> None:
        try:
            self._write(f"%%Trailer\n%%Pages: {self.frames_committed}\n%%EOF\n")
        finally:
            self._handle.close()

    def _write(self, text: str) -> None:
        try:
            self._handle.write(text)
            self._handle.flush()
        except (OSError, ValueError) as exc:
            raise DeviceWriteFailure(f"postscript write failed: {exc}") from exc


def _setrgb(color: RGB) -> str:
    r, g, b = (c / 255.0 for c in color)
    return f"{r:.4f} {g:.4f} {b:.4f} setrgbcolor"
