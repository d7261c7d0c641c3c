from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

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
    Vector,
    Width,
)
from shadeplot.errors import DeviceWriteFailure
from shadeplot.layout import DEVICE_HEIGHT, DEVICE_RATIO, DEVICE_WIDTH
from shadeplot.raster.canvas import RGBA, fill_rect, new_canvas, to_image
from shadeplot.raster.draw_lines import draw_polyline


LOGGER = logging.getLogger(__name__)

DEFAULT_PIXEL_WIDTH = 1024
FOREGROUND: RGB = (0, 0, 0)
BACKGROUND: RGBA = (255, 255, 255, 255)


def frame_path(template: str | Path, frame_number: int) -> Path:
    """Output path for a frame; `%d` in the template receives the 1-based frame number."""
    text = str(template)
    if "%d" in text:
        return Path(text % frame_number)
    path = Path(text)
    if frame_number == 1:
        return path
    return path.with_name(f"{path.stem}-{frame_number}{path.suffix}")


class RasterReplay:
    """Replays one frame of protocol commands onto a numpy canvas."""

    def __init__(self, width_px: int, height_px: int) -> None:
        self.canvas = new_canvas(width_px, height_px, BACKGROUND)
        self._sx = (width_px - 1) / (DEVICE_WIDTH - 1)
        self._sy = (height_px - 1) / (DEVICE_HEIGHT - 1)
        self._palette: list[RGB] = []
        self._color: RGB = FOREGROUND
        self._width = 1
        self._pen: tuple[int, int] | None = None
        self.bad_shades = 0

    def run(self, commands: list[Command]) -> np.ndarray:
        for command in commands:
            self.apply(command)
        return self.canvas

    def apply(self, command: Command) -> None:
        if isinstance(command, Move):
            self._pen = self._to_px(command.x, command.y)
        elif isinstance(command, Vector):
            end = self._to_px(command.x, command.y)
            start = self._pen if self._pen is not None else end
            draw_polyline(
                self.canvas,
                np.asarray([start[0], end[0]]),
                np.asarray([start[1], end[1]]),
                color=self._rgba(self._color),
                width=self._width,
            )
            self._pen = end
        elif isinstance(command, Point):
            px, py = self._to_px(command.x, command.y)
            radius = max(1, self._width)
            fill_rect(self.canvas, px - radius, px + radius, py - radius, py + radius, self._rgba(self._color))
        elif isinstance(command, LineType):
            self._color = line_color(command.index) if command.index >= USER_LINETYPE_BASE else FOREGROUND
        elif isinstance(command, Width):
            self._width = max(1, command.width)
        elif isinstance(command, Color):
            self._color = rgb16_to_rgb8((command.r, command.g, command.b))
        elif isinstance(command, Spectrum):
            self._palette = spectrum_colors(
                command.count,
                command.type_code,
                (command.r0, command.g0, command.b0),
                (command.r1, command.g1, command.b1),
            )
        elif isinstance(command, FillBox):
            self._fill(command)

    def _fill(self, box: FillBox) -> None:
        if not 0 <= box.shade < len(self._palette):
            self.bad_shades += 1
            return
        x0, y1 = self._to_px(box.xl, box.yl)
        x1, y0 = self._to_px(box.xh, box.yh)
        fill_rect(self.canvas, x0, x1, y0, y1, self._rgba(self._palette[box.shade]))

    def _to_px(self, x: int, y: int) -> tuple[int, int]:
        h = self.canvas.shape[0]
        return int(round(x * self._sx)), int(round((h - 1) - y * self._sy))

    @staticmethod
    def _rgba(color: RGB) -> RGBA:
        return (color[0], color[1], color[2], 255)


class PngDevice(Device):
    name = "png"

    def __init__(self, output: str | Path, *, width_px: int = DEFAULT_PIXEL_WIDTH) -> None:
        super().__init__()
        if width_px < 16:
            raise ValueError("png width must be >= 16")
        self.template = str(output)
        self.width_px = int(width_px)
        self.height_px = max(1, int(round(self.width_px * DEVICE_RATIO)))
        self.paths: list[Path] = []

    def _commit(self, commands: list[Command]) -> None:
        replay = RasterReplay(self.width_px, self.height_px)
        canvas = replay.run(commands)
        if replay.bad_shades:
            LOGGER.warning("png frame skipped fill boxes with unknown shades; bad_shades=%d", replay.bad_shades)
        path = frame_path(self.template, self.frames_committed + 1)
        try:
            to_image(canvas).save(path, format="PNG")
        except OSError as exc:
            raise DeviceWriteFailure(f"cannot write {path}: {exc}") from exc
        self.paths.append(path)
        LOGGER.debug("wrote %s", path)

    def _abort(self) -> None:
        LOGGER.debug("png frame discarded")
