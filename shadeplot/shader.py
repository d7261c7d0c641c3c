from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Literal

import numpy as np

from shadeplot.color import GAP_SHADE, ColorMap
from shadeplot.grid import Grid


LOGGER = logging.getLogger(__name__)

BandDirection = Literal["column", "row"]


@dataclass(frozen=True)
class ShadeBox:
    shade: int
    xl: float
    xh: float
    yl: float
    yh: float


@dataclass(frozen=True)
class CellEdges:
    lo: np.ndarray
    hi: np.ndarray

    def contiguous(self, i: int) -> bool:
        gap = self.lo[i + 1] - self.hi[i]
        return bool(gap <= 1e-12 * max(1.0, abs(float(self.hi[i]))))


def cell_edges(ticks: np.ndarray, *, show_gaps: bool = False) -> CellEdges:
    """Cell boundaries at midpoints between ticks; outer edges sit on the ticks."""
    ticks = np.asarray(ticks, dtype=np.float64)
    if show_gaps and ticks.size > 1:
        half = float(np.min(np.diff(ticks))) / 2.0
        return CellEdges(lo=ticks - half, hi=ticks + half)
    mid = (ticks[:-1] + ticks[1:]) / 2.0
    lo = np.concatenate([ticks[:1], mid])
    hi = np.concatenate([mid, ticks[-1:]])
    return CellEdges(lo=lo, hi=hi)


def choose_direction(shades: np.ndarray) -> BandDirection:
    core = shades[:-1, :-1]
    valid = core != GAP_SHADE
    xeq = int(np.sum(valid & (core == shades[1:, :-1])))
    yeq = int(np.sum(valid & (core == shades[:-1, 1:])))
    return "column" if xeq < yeq else "row"


def band_runs(
    shades: np.ndarray,
    x_edges: CellEdges,
    y_edges: CellEdges,
    *,
    window: tuple[float, float, float, float] | None = None,
    direction: BandDirection | None = None,
) -> list[ShadeBox]:
    shades = np.asarray(shades, dtype=np.int64)
    nx, ny = shades.shape
    direction = direction or choose_direction(shades)
    boxes: list[ShadeBox] = []
    if direction == "column":
        for ix in range(nx):
            for shade, start, stop in _runs(shades[ix, :], y_edges):
                _append_clipped(boxes, shade, x_edges.lo[ix], x_edges.hi[ix], y_edges.lo[start], y_edges.hi[stop], window)
    else:
        for iy in range(ny):
            for shade, start, stop in _runs(shades[:, iy], x_edges):
                _append_clipped(boxes, shade, x_edges.lo[start], x_edges.hi[stop], y_edges.lo[iy], y_edges.hi[iy], window)
    return boxes


def shade_grid(
    grid: Grid,
    cmap: ColorMap,
    zmin: float,
    zmax: float,
    *,
    show_gaps: bool = False,
    clamp: bool = False,
    window: tuple[float, float, float, float] | None = None,
) -> list[ShadeBox]:
    shades = cmap.shade_indices(grid.z, zmin, zmax, clamp=clamp)
    x_edges = cell_edges(grid.x_ticks(), show_gaps=show_gaps)
    y_edges = cell_edges(grid.y_ticks(), show_gaps=show_gaps)
    if window is None:
        window = (grid.xmin, grid.xmax, grid.ymin, grid.ymax)
    boxes = band_runs(shades, x_edges, y_edges, window=window)
    LOGGER.debug("shaded %dx%d grid with %d boxes", grid.nx, grid.ny, len(boxes))
    return boxes


def _runs(line: np.ndarray, edges: CellEdges) -> list[tuple[int, int, int]]:
    runs: list[tuple[int, int, int]] = []
    start = -1
    current = GAP_SHADE
    for i, value in enumerate(line.tolist()):
        if start >= 0 and value == current and edges.contiguous(i - 1):
            continue
        if start >= 0:
            runs.append((current, start, i - 1))
        if value == GAP_SHADE:
            start = -1
            current = GAP_SHADE
        else:
            start = i
            current = value
    if start >= 0:
        runs.append((current, start, line.size - 1))
    return runs


def _append_clipped(
    boxes: list[ShadeBox],
    shade: int,
    xl: float,
    xh: float,
    yl: float,
    yh: float,
    window: tuple[float, float, float, float] | None,
) -> None:
    if window is not None:
        wx0, wx1, wy0, wy1 = window
        xl, xh = max(xl, wx0), min(xh, wx1)
        yl, yh = max(yl, wy0), min(yh, wy1)
        if xl >= xh or yl >= yh:
            return
    boxes.append(ShadeBox(shade=int(shade), xl=float(xl), xh=float(xh), yl=float(yl), yh=float(yh)))
