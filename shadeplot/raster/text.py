from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path
from typing import Literal

import numpy as np
from PIL import Image, ImageDraw, ImageFont


DEFAULT_FONT_FAMILY = "DejaVu Sans"
NOMINAL_SIZE_PX = 32
INK_THRESHOLD = 96
ELLIPSIS = "..."
FONT_FALLBACK_PATTERNS = (
    "dejavusans",
    "dejavu sans",
    "liberationsans",
    "helvetica",
    "arial",
    "dejavusansmono",
    "courier",
)

HAlign = Literal["left", "center", "right"]
VAlign = Literal["bottom", "center", "top"]


@dataclass(frozen=True)
class TextStroke:
    """One horizontal ink run in device units, drawn as a move/vector pair."""

    x0: float
    x1: float
    y: float


def font_family_from_env(default: str = DEFAULT_FONT_FAMILY) -> str:
    return os.environ.get("MPL_FONT", "").strip() or default


def text_extent(
    text: str,
    height: float,
    *,
    rotate_deg: int = 0,
    font_family: str = DEFAULT_FONT_FAMILY,
) -> tuple[float, float]:
    """Width and height in device units of text whose glyph cell is `height` units tall."""
    if not text:
        return (0.0, 0.0)
    mask = _ink(text, font_family)
    scale = height / NOMINAL_SIZE_PX
    h, w = mask.shape
    if _normalize_quarter_turns(rotate_deg) % 2 == 1:
        return (h * scale, w * scale)
    return (w * scale, h * scale)


def text_strokes(
    text: str,
    x: float,
    y: float,
    height: float,
    *,
    rotate_deg: int = 0,
    halign: HAlign = "left",
    valign: VAlign = "bottom",
    font_family: str = DEFAULT_FONT_FAMILY,
) -> list[TextStroke]:
    if not text or height <= 0:
        return []
    mask = _rotate_mask(_ink(text, font_family), rotate_deg=rotate_deg)
    scale = height / NOMINAL_SIZE_PX
    rows, cols = mask.shape
    width_dev = cols * scale
    height_dev = rows * scale
    left = x - {"left": 0.0, "center": width_dev / 2.0, "right": width_dev}[halign]
    bottom = y - {"bottom": 0.0, "center": height_dev / 2.0, "top": height_dev}[valign]
    strokes: list[TextStroke] = []
    for r in range(rows):
        line = mask[r]
        if not line.any():
            continue
        row_y = bottom + (rows - 1 - r + 0.5) * scale
        padded = np.concatenate(([False], line, [False]))
        edges = np.flatnonzero(padded[1:] != padded[:-1])
        for start, stop in zip(edges[0::2], edges[1::2], strict=True):
            strokes.append(TextStroke(x0=left + start * scale, x1=left + stop * scale, y=row_y))
    return strokes


def fit_label(
    text: str,
    max_width: float,
    height: float,
    *,
    min_height: float | None = None,
    font_family: str = DEFAULT_FONT_FAMILY,
) -> tuple[str, float]:
    """Shrink the character size until the label fits, then truncate with an ellipsis."""
    if not text or max_width <= 0:
        return text, height
    floor = height * 0.5 if min_height is None else min(min_height, height)
    size = height
    while size > floor:
        if text_extent(text, size, font_family=font_family)[0] <= max_width:
            return text, size
        size *= 0.9
    size = max(size, floor)
    if text_extent(text, size, font_family=font_family)[0] <= max_width:
        return text, size
    for keep in range(len(text) - 1, -1, -1):
        candidate = text[:keep].rstrip() + ELLIPSIS
        if text_extent(candidate, size, font_family=font_family)[0] <= max_width:
            return candidate, size
    return ELLIPSIS, size


@lru_cache(maxsize=256)
def _ink(text: str, font_family: str) -> np.ndarray:
    font = _load_font(font_family, NOMINAL_SIZE_PX)
    return _render_mask(text, font) >= INK_THRESHOLD


def _render_mask(text: str, font: ImageFont.FreeTypeFont | ImageFont.ImageFont) -> np.ndarray:
    left, top, right, bottom = font.getbbox(text)
    ascent, descent = _metrics(font)
    width = max(1, int(right - left))
    height = max(1, ascent + descent)
    image = Image.new("L", (width, height), 0)
    draw = ImageDraw.Draw(image)
    draw.text((-left, 0), text, fill=255, font=font)
    return np.asarray(image, dtype=np.uint8)


def _metrics(font: ImageFont.FreeTypeFont | ImageFont.ImageFont) -> tuple[int, int]:
    if isinstance(font, ImageFont.FreeTypeFont):
        ascent, descent = font.getmetrics()
        return int(ascent), int(descent)
    _, top, _, bottom = font.getbbox("Ag")
    return int(bottom), max(0, -int(top))


@lru_cache(maxsize=16)
def _load_font(font_family: str, size_px: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    font_path = _resolve_font_path(font_family)
    if font_path is not None:
        try:
            return ImageFont.truetype(str(font_path), size=size_px)
        except OSError:
            pass
    try:
        return ImageFont.load_default(size=size_px)
    except TypeError:
        return ImageFont.load_default()


@lru_cache(maxsize=16)
def _resolve_font_path(font_family: str) -> Path | None:
    wanted = font_family.strip().lower() or DEFAULT_FONT_FAMILY.lower()
    candidate = Path(font_family).expanduser()
    if candidate.suffix.lower() in (".ttf", ".otf", ".ttc") and candidate.is_file():
        return candidate
    patterns = (wanted,) + FONT_FALLBACK_PATTERNS

    font_dirs = [
        Path.home() / ".fonts",
        Path.home() / "Library" / "Fonts",
        Path("/Library/Fonts"),
        Path("/System/Library/Fonts"),
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
    ]

    candidates: list[Path] = []
    for base in font_dirs:
        if not base.exists():
            continue
        for ext in ("*.ttf", "*.otf", "*.ttc"):
            candidates.extend(sorted(base.rglob(ext)))

    for pattern in patterns:
        p = pattern.replace(" ", "")
        for path in candidates:
            stem = path.stem.lower().replace(" ", "").replace("-", "")
            if stem == p:
                return path
        for path in candidates:
            stem = path.stem.lower().replace(" ", "")
            if p in stem:
                return path
    return None


def _normalize_quarter_turns(rotate_deg: int) -> int:
    if rotate_deg % 90 != 0:
        raise ValueError("rotate_deg must be a multiple of 90")
    return (rotate_deg // 90) % 4


def _rotate_mask(mask: np.ndarray, *, rotate_deg: int) -> np.ndarray:
    turns = _normalize_quarter_turns(rotate_deg)
    if turns == 0:
        return mask
    return np.rot90(mask, k=turns)
