from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import numpy as np

from shadeplot.errors import UsageError


DEVICE_WIDTH = 4096
DEVICE_HEIGHT = 3165
DEVICE_RATIO = DEVICE_HEIGHT / DEVICE_WIDTH

LEFT_INSET = 0.15
RIGHT_INSET = 0.10
BOTTOM_INSET = 0.17
TOP_INSET = 0.08
TITLE_AT_TOP_SHIFT = 0.04
AUTO_RANGE_EXPANSION = 1.05

AspectMode = Literal[0, 1, -1]


@dataclass(frozen=True)
class Rect:
    x0: float
    x1: float
    y0: float
    y1: float

    def __post_init__(self) -> None:
        if not (self.x0 < self.x1 and self.y0 < self.y1):
            raise ValueError(f"degenerate rectangle: {self}")

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    def contains(self, other: Rect, tol: float = 1e-12) -> bool:
        return (
            other.x0 >= self.x0 - tol
            and other.x1 <= self.x1 + tol
            and other.y0 >= self.y0 - tol
            and other.y1 <= self.y1 + tol
        )


@dataclass(frozen=True)
class PlotSpace:
    wspace: Rect
    pspace: Rect


@dataclass(frozen=True)
class Mapping:
    """World to device-unit affine map: dev = s * world + t on each axis."""

    sx: float
    tx: float
    sy: float
    ty: float
    limits: Rect
    pspace: Rect
    x_log: bool = False
    y_log: bool = False

    def to_device(self, x: np.ndarray | float, y: np.ndarray | float) -> tuple[np.ndarray, np.ndarray]:
        xw = np.asarray(x, dtype=np.float64)
        yw = np.asarray(y, dtype=np.float64)
        if self.x_log:
            with np.errstate(divide="ignore", invalid="ignore"):
                xw = np.log10(xw)
        if self.y_log:
            with np.errstate(divide="ignore", invalid="ignore"):
                yw = np.log10(yw)
        return xw * self.sx + self.tx, yw * self.sy + self.ty

    def to_pq(self, x: np.ndarray | float, y: np.ndarray | float) -> tuple[np.ndarray, np.ndarray]:
        dx, dy = self.to_device(x, y)
        return dx / DEVICE_WIDTH, dy / DEVICE_HEIGHT

    def pq_to_world(self, p: float, q: float) -> tuple[float, float]:
        """Normalized pspace fraction (0..1 across the axes box) to world units."""
        lim = self.limits
        return lim.x0 + (lim.x1 - lim.x0) * p, lim.y0 + (lim.y1 - lim.y0) * q

    def device_to_world(self) -> tuple[float, float, float, float]:
        """Coefficients (ax, bx, ay, by) with world = a * device + b."""
        return 1.0 / self.sx, -self.tx / self.sx, 1.0 / self.sy, -self.ty / self.sy


def panel_space(
    layout: tuple[int, int] = (1, 1),
    panel: tuple[int, int] = (0, 0),
    *,
    title_at_top: bool = False,
    fill_screen: bool = False,
) -> PlotSpace:
    cols, rows = layout
    ix, iy = panel
    if cols < 1 or rows < 1:
        raise UsageError("layout dimensions must be >= 1")
    if not (0 <= ix < cols and 0 <= iy < rows):
        raise UsageError(f"panel {panel} outside layout {layout}")
    wspace = Rect(ix / cols, (ix + 1) / cols, (rows - 1 - iy) / rows, (rows - iy) / rows)
    if fill_screen:
        return PlotSpace(wspace=wspace, pspace=wspace)
    pw = wspace.width
    qh = wspace.height
    q0 = wspace.y0 + BOTTOM_INSET * qh
    q1 = wspace.y1 - TOP_INSET * qh
    if title_at_top:
        q0 -= TITLE_AT_TOP_SHIFT * qh
        q1 -= TITLE_AT_TOP_SHIFT * qh
    pspace = Rect(wspace.x0 + LEFT_INSET * pw, wspace.x1 - RIGHT_INSET * pw, q0, q1)
    return PlotSpace(wspace=wspace, pspace=pspace)


def auto_limits(xmin: float, xmax: float, ymin: float, ymax: float, *, fill_screen: bool = False) -> Rect:
    if fill_screen:
        return Rect(*_nonzero(xmin, xmax), *_nonzero(ymin, ymax))
    return Rect(*_expanded(xmin, xmax), *_expanded(ymin, ymax))


def build_mapping(
    limits: Rect,
    space: PlotSpace,
    *,
    aspect: AspectMode = 0,
    x_log: bool = False,
    y_log: bool = False,
) -> Mapping:
    pspace = space.pspace
    sx = pspace.width * DEVICE_WIDTH / limits.width
    sy = pspace.height * DEVICE_HEIGHT / limits.height
    if aspect != 0:
        scale = min(sx, sy)
        cx = (pspace.x0 + pspace.x1) / 2.0
        cy = (pspace.y0 + pspace.y1) / 2.0
        half_p = limits.width * scale / DEVICE_WIDTH / 2.0
        half_q = limits.height * scale / DEVICE_HEIGHT / 2.0
        pspace = Rect(cx - half_p, cx + half_p, cy - half_q, cy + half_q)
        sx = scale
        sy = scale if aspect > 0 else -scale
    tx = pspace.x0 * DEVICE_WIDTH - limits.x0 * sx
    if sy > 0:
        ty = pspace.y0 * DEVICE_HEIGHT - limits.y0 * sy
    else:
        ty = pspace.y0 * DEVICE_HEIGHT - limits.y1 * sy
    return Mapping(sx=sx, tx=tx, sy=sy, ty=ty, limits=limits, pspace=pspace, x_log=x_log, y_log=y_log)


class PanelCursor:
    """Walks panels of a layout, x index first; reports when a new canvas starts."""

    def __init__(self, layout: tuple[int, int] = (1, 1)) -> None:
        if layout[0] < 1 or layout[1] < 1:
            raise UsageError("layout dimensions must be >= 1")
        self.layout = layout
        self._ix = 0
        self._iy = 0
        self._used = 0

    @property
    def panel(self) -> tuple[int, int]:
        return self._ix, self._iy

    @property
    def at_frame_start(self) -> bool:
        return self._ix == 0 and self._iy == 0

    @property
    def panels_used(self) -> int:
        return self._used

    def advance(self) -> bool:
        """Move to the next panel; True when the layout is exhausted and the frame must end."""
        self._used += 1
        self._ix += 1
        if self._ix < self.layout[0]:
            return False
        self._ix = 0
        self._iy += 1
        if self._iy < self.layout[1]:
            return False
        self._iy = 0
        return True


def _expanded(lo: float, hi: float) -> tuple[float, float]:
    lo, hi = _nonzero(lo, hi)
    center = (lo + hi) / 2.0
    half = (hi - lo) / 2.0 * AUTO_RANGE_EXPANSION
    return center - half, center + half


def _nonzero(lo: float, hi: float) -> tuple[float, float]:
    if hi < lo:
        lo, hi = hi, lo
    if lo == hi:
        delta = max(1.0, abs(lo) * 0.05)
        return lo - delta, hi + delta
    return lo, hi
