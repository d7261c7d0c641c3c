from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path

import numpy as np

from shadeplot.errors import MalformedInput, UsageError
from shadeplot.layout import DEVICE_HEIGHT, DEVICE_WIDTH, Mapping, Rect
from shadeplot.pages import Page, read_pages


LOGGER = logging.getLogger(__name__)

MAX_THICKNESS = 9


@dataclass(frozen=True)
class ShapeSpec:
    file: str
    x_column: str = "x"
    y_column: str = "y"


@dataclass(frozen=True)
class Shape:
    x: np.ndarray
    y: np.ndarray


@dataclass(frozen=True)
class Coordinate:
    """One drawline coordinate given as a world value, a pspace fraction or a page parameter."""

    value: float | None = None
    fraction: float | None = None
    parameter: str | None = None

    def __post_init__(self) -> None:
        given = sum(v is not None for v in (self.value, self.fraction, self.parameter))
        if given != 1:
            raise UsageError("each drawline coordinate needs exactly one of value, fraction or parameter")


@dataclass(frozen=True)
class DrawLineSpec:
    x0: Coordinate
    x1: Coordinate
    y0: Coordinate
    y1: Coordinate
    linetype: int = 0
    thickness: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "thickness", max(0, min(MAX_THICKNESS, int(self.thickness))))
        object.__setattr__(self, "linetype", max(0, int(self.linetype)))

    def endpoints(self, mapping: Mapping, page: Page | None = None) -> tuple[float, float, float, float]:
        """Device coordinates (x0, y0, x1, y1)."""
        return (
            _resolve(self.x0, mapping, page, axis="x"),
            _resolve(self.y0, mapping, page, axis="y"),
            _resolve(self.x1, mapping, page, axis="x"),
            _resolve(self.y1, mapping, page, axis="y"),
        )


def load_shapes(spec: ShapeSpec) -> list[Shape]:
    shapes: list[Shape] = []
    for page in read_pages(Path(spec.file)):
        x = page.numeric_column(spec.x_column)
        y = page.numeric_column(spec.y_column)
        if x.size >= 2:
            shapes.append(Shape(x=x.copy(), y=y.copy()))
    LOGGER.debug("loaded %d shapes from %s", len(shapes), spec.file)
    return shapes


def shape_segments(shape: Shape, mapping: Mapping) -> list[tuple[np.ndarray, np.ndarray]]:
    """Device-space polylines of a world-space shape, clipped to pspace."""
    dx, dy = mapping.to_device(shape.x, shape.y)
    return clip_polyline(dx, dy, pspace_device_rect(mapping.pspace))


def pspace_device_rect(pspace: Rect) -> Rect:
    return Rect(pspace.x0 * DEVICE_WIDTH, pspace.x1 * DEVICE_WIDTH, pspace.y0 * DEVICE_HEIGHT, pspace.y1 * DEVICE_HEIGHT)


def clip_polyline(xs: np.ndarray, ys: np.ndarray, box: Rect) -> list[tuple[np.ndarray, np.ndarray]]:
    pieces: list[tuple[np.ndarray, np.ndarray]] = []
    px: list[float] = []
    py: list[float] = []
    for i in range(len(xs) - 1):
        seg = clip_segment(float(xs[i]), float(ys[i]), float(xs[i + 1]), float(ys[i + 1]), box)
        if seg is None:
            if len(px) >= 2:
                pieces.append((np.asarray(px), np.asarray(py)))
            px, py = [], []
            continue
        x0, y0, x1, y1 = seg
        if px and (px[-1] != x0 or py[-1] != y0):
            if len(px) >= 2:
                pieces.append((np.asarray(px), np.asarray(py)))
            px, py = [], []
        if not px:
            px, py = [x0], [y0]
        px.append(x1)
        py.append(y1)
    if len(px) >= 2:
        pieces.append((np.asarray(px), np.asarray(py)))
    return pieces


def clip_segment(x0: float, y0: float, x1: float, y1: float, box: Rect) -> tuple[float, float, float, float] | None:
    """Liang-Barsky clipping; None when the segment misses the box."""
    if not all(np.isfinite((x0, y0, x1, y1))):
        return None
    dx = x1 - x0
    dy = y1 - y0
    t0, t1 = 0.0, 1.0
    for p, q in ((-dx, x0 - box.x0), (dx, box.x1 - x0), (-dy, y0 - box.y0), (dy, box.y1 - y0)):
        if p == 0:
            if q < 0:
                return None
            continue
        t = q / p
        if p < 0:
            if t > t1:
                return None
            t0 = max(t0, t)
        else:
            if t < t0:
                return None
            t1 = min(t1, t)
    return x0 + t0 * dx, y0 + t0 * dy, x0 + t1 * dx, y0 + t1 * dy


def _resolve(coord: Coordinate, mapping: Mapping, page: Page | None, *, axis: str) -> float:
    pspace = mapping.pspace
    if coord.fraction is not None:
        if axis == "x":
            return (pspace.x0 + coord.fraction * pspace.width) * DEVICE_WIDTH
        return (pspace.y0 + coord.fraction * pspace.height) * DEVICE_HEIGHT
    if coord.parameter is not None:
        if page is None:
            raise UsageError(f"drawline parameter {coord.parameter} needs a data page")
        value = page.numeric_parameter(coord.parameter)
    else:
        value = float(coord.value)  # type: ignore[arg-type]
    if not np.isfinite(value):
        raise MalformedInput(f"drawline coordinate is not finite: {value}")
    if axis == "x":
        return float(mapping.to_device(value, mapping.limits.y0)[0])
    return float(mapping.to_device(mapping.limits.x0, value)[1])
