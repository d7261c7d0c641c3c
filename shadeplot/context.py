from __future__ import annotations

from dataclasses import dataclass

from shadeplot.color import ColorMap
from shadeplot.devices.base import Device
from shadeplot.raster.text import DEFAULT_FONT_FAMILY


@dataclass
class RenderingContext:
    """Per-run drawing state owned by the orchestrator and passed to every drawing step."""

    device: Device
    font_family: str = DEFAULT_FONT_FAMILY
    thickness: int = 1
    char_scale: float = 1.0
    palette: ColorMap | None = None
    palette_sent: bool = False
    fixed_range: tuple[float, float] | None = None
    panels_drawn: int = 0

    def upload_palette(self, cmap: ColorMap) -> None:
        if self.palette_sent and self.palette == cmap:
            return
        self.device.spectrum(cmap)
        self.palette = cmap
        self.palette_sent = True

    def frame_started(self) -> None:
        # Each frame re-sends the spectrum so it can be replayed on its own.
        self.palette_sent = False
