from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import numpy as np

from shadeplot.errors import PaletteOverflow, UsageError


PaletteName = Literal[
    "rainbow",
    "spectral-RGB",
    "spectral-BGR",
    "spectral-RGB-noMagenta",
    "spectral-BGR-noMagenta",
    "custom",
    "grayscale",
]
RGB = tuple[int, int, int]
RGB16 = tuple[int, int, int]

MAX_PALETTE_SLOTS = 101
GAP_SHADE = -1
USER_LINETYPE_BASE = 1000

PALETTE_TYPE_CODES: dict[str, int] = {
    "custom": 0,
    "grayscale": 0,
    "spectral-RGB": 1,
    "spectral-BGR": 2,
    "spectral-RGB-noMagenta": 3,
    "spectral-BGR-noMagenta": 4,
    "rainbow": 5,
}

LINE_COLOR_TABLE: tuple[RGB, ...] = (
    (0, 0, 0),
    (255, 255, 255),
    (255, 255, 255),
    (255, 0, 0),
    (0, 0, 255),
    (0, 255, 0),
    (255, 255, 0),
    (255, 0, 255),
    (0, 255, 255),
    (50, 205, 50),
    (255, 215, 0),
    (255, 165, 0),
    (255, 105, 180),
    (0, 191, 255),
    (0, 250, 154),
    (255, 99, 71),
    (210, 180, 140),
    (128, 128, 128),
)


@dataclass(frozen=True)
class ColorMap:
    """Maps normalized field values onto N+1 indexed palette slots."""

    levels: int = 100
    palette: PaletteName = "spectral-BGR-noMagenta"
    hue0: float = 0.0
    hue1: float = 1.0
    reverse: bool = False
    start16: RGB16 = (0, 0, 0)
    end16: RGB16 = (65535, 65535, 65535)

    def __post_init__(self) -> None:
        if self.levels < 1:
            raise UsageError("number of shade levels must be >= 1")
        if self.levels + 1 > MAX_PALETTE_SLOTS:
            raise PaletteOverflow(f"{self.levels} levels need {self.levels + 1} palette slots; limit is {MAX_PALETTE_SLOTS}")
        for hue in (self.hue0, self.hue1):
            if not 0.0 <= hue <= 1.0:
                raise UsageError(f"hue endpoints must be within [0, 1], got {hue}")
        if self.palette not in PALETTE_TYPE_CODES:
            raise UsageError(f"unknown palette: {self.palette}")

    @property
    def slots(self) -> int:
        return self.levels + 1

    @property
    def type_code(self) -> int:
        return PALETTE_TYPE_CODES[self.palette]

    @property
    def endpoints16(self) -> tuple[RGB16, RGB16]:
        if self.palette == "grayscale":
            return (0, 0, 0), (65535, 65535, 65535)
        if self.palette == "custom":
            return self.start16, self.end16
        return (0, 0, 0), (0, 0, 0)

    def hue(self, z: np.ndarray | float, zmin: float, zmax: float) -> np.ndarray:
        t = _normalized(np.asarray(z, dtype=np.float64), zmin, zmax)
        t = np.clip(t, 0.0, 1.0)
        if self.reverse:
            t = 1.0 - t
        return self.hue0 + (self.hue1 - self.hue0) * t

    def shade_indices(self, z: np.ndarray, zmin: float, zmax: float, *, clamp: bool = False) -> np.ndarray:
        """Palette slot per value; NaN or out-of-band values map to GAP_SHADE."""
        z = np.asarray(z, dtype=np.float64)
        finite = np.isfinite(z)
        if clamp:
            z = np.clip(z, zmin, zmax)
            in_band = finite
        else:
            in_band = finite & (z >= zmin) & (z <= zmax)
        hue = self.hue(np.where(finite, z, zmin), zmin, zmax)
        shade = np.floor(hue * self.levels + 1e-9).astype(np.int64)
        np.clip(shade, 0, self.levels, out=shade)
        return np.where(in_band, shade, GAP_SHADE)

    def bar_shades(self) -> list[int]:
        """Slots used by the intensity bar, bottom to top."""
        h0, h1 = (self.hue1, self.hue0) if self.reverse else (self.hue0, self.hue1)
        return [int((h1 - h0) * i + self.levels * h0 + 1e-9) for i in range(self.levels + 1)]

    def rgb_table(self) -> list[RGB]:
        start, end = self.endpoints16
        return spectrum_colors(self.slots, self.type_code, start, end)

    def rgb(self, shade: int) -> RGB:
        table = self.rgb_table()
        return table[max(0, min(len(table) - 1, int(shade)))]


def spectrum_colors(count: int, type_code: int, start16: RGB16 = (0, 0, 0), end16: RGB16 = (0, 0, 0)) -> list[RGB]:
    if count < 1:
        return []
    if count > MAX_PALETTE_SLOTS:
        raise PaletteOverflow(f"palette of {count} slots exceeds {MAX_PALETTE_SLOTS}")
    denom = max(count - 1, 1)
    colors: list[RGB] = []
    for n in range(count):
        frac = n / denom
        if type_code in (1, 3):
            colors.append(_spectral_forward(frac * (6.0 if type_code == 1 else 5.0)))
        elif type_code in (2, 4):
            colors.append(_spectral_backward(frac * 6.0 if type_code == 2 else 1.0 + 5.0 * frac))
        elif type_code == 0:
            colors.append(
                tuple(int((a + frac * (b - a)) / 256.0) for a, b in zip(start16, end16, strict=True))  # type: ignore[misc]
            )
        else:
            colors.append(_rainbow(frac * 1279.0))
    return colors


def line_color(linetype: int) -> RGB:
    if linetype >= USER_LINETYPE_BASE:
        return LINE_COLOR_TABLE[(linetype - USER_LINETYPE_BASE) % len(LINE_COLOR_TABLE)]
    return LINE_COLOR_TABLE[0]


def rgb8_to_rgb16(color: RGB) -> RGB16:
    return tuple(int(c) * 257 for c in color)  # type: ignore[return-value]


def rgb16_to_rgb8(color: RGB16) -> RGB:
    return tuple(min(255, int(int(c) * 255 / 65536 + 0.5)) for c in color)  # type: ignore[return-value]


def _normalized(z: np.ndarray, zmin: float, zmax: float) -> np.ndarray:
    span = zmax - zmin
    if span == 0:
        return np.zeros_like(z)
    return (z - zmin) / span


def _channel(value: float) -> int:
    return int(255.999 * min(1.0, max(0.0, value)))


def _spectral_forward(hue: float) -> RGB:
    if hue < 1:
        return 255, _channel(0.65 * hue), 0
    if hue < 2:
        return 255, _channel(0.65 + 0.35 * (hue - 1)), 0
    if hue < 2.3:
        return _channel(1 - 0.2 * (hue - 2) / 0.3), 255, 0
    if hue < 3:
        return _channel(0.8 * (1 - (hue - 2.3) / 0.7)), 255, 0
    if hue < 3.4:
        return 0, 255, _channel(0.85 * (hue - 3) / 0.4)
    if hue < 4:
        return 0, 255, _channel(0.85 + 0.15 * (hue - 3.4) / 0.6)
    if hue < 5:
        return 0, _channel(1 - (hue - 4)), 255
    return _channel(hue - 5), 0, 255


def _spectral_backward(hue: float) -> RGB:
    if hue < 1:
        return _channel(1 - hue), 0, 255
    if hue < 2:
        return 0, _channel(hue - 1), 255
    if hue < 2.4:
        return 0, 255, _channel(1.0 - 0.15 * (hue - 2) / 0.4)
    if hue < 3:
        return 0, 255, _channel(0.85 * (1 - (hue - 2.4) / 0.6))
    if hue < 3.7:
        return _channel(0.8 * (hue - 3) / 0.7), 255, 0
    if hue < 4:
        return _channel(0.8 + 0.2 * (hue - 3.7) / 0.3), 255, 0
    if hue < 5:
        return 255, _channel(1.0 - 0.35 * (hue - 4)), 0
    return 255, _channel(0.65 * (1 - (hue - 5))), 0


def _rainbow(k: float) -> RGB:
    k = int(k)
    if k < 256:
        return 0, k, 255
    if k < 512:
        return 0, 255, 511 - k
    if k < 768:
        return k - 512, 255, 0
    if k < 1024:
        return 255, 1023 - k, 0
    return 255, 0, min(255, k - 1024)
