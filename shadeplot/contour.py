from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import logging

import numpy as np

from shadeplot.errors import UsageError
from shadeplot.grid import Grid
from shadeplot.scales import format_tick


LOGGER = logging.getLogger(__name__)

EdgeKey = tuple[str, int, int]


@dataclass(frozen=True)
class ContourLine:
    level: float
    x: np.ndarray
    y: np.ndarray
    label: str | None = None

    @property
    def closed(self) -> bool:
        return self.x.size > 2 and self.x[0] == self.x[-1] and self.y[0] == self.y[-1]


def fill_levels(vmin: float, vmax: float, count: int) -> np.ndarray:
    if count < 1:
        raise UsageError("number of contour levels must be >= 1")
    if count == 1:
        return np.asarray([vmin], dtype=np.float64)
    return vmin + np.arange(count, dtype=np.float64) * (vmax - vmin) / (count - 1)


def contour_levels(
    vmin: float,
    vmax: float,
    *,
    count: int | None = None,
    level_list: Sequence[float] | None = None,
    limit: tuple[float | None, float | None] = (None, None),
) -> np.ndarray:
    """Levels from an explicit list, or count levels strictly inside [vmin, vmax]."""
    if level_list:
        levels = np.sort(np.asarray(level_list, dtype=np.float64))
    else:
        n = 10 if count is None else count
        if n < 1:
            raise UsageError("number of contour levels must be >= 1")
        levels = fill_levels(vmin, vmax, n + 2)[1:-1]
    lo, hi = limit
    if lo is not None:
        levels = levels[levels >= lo]
    if hi is not None:
        levels = levels[levels <= hi]
    return levels


def trace_level(z: np.ndarray, xs: np.ndarray, ys: np.ndarray, level: float) -> list[tuple[np.ndarray, np.ndarray]]:
    """Marching squares for one level, joined into polylines."""
    z = np.asarray(z, dtype=np.float64)
    finite = np.isfinite(z)
    above = np.where(finite, z >= level, False)
    cell_ok = finite[:-1, :-1] & finite[1:, :-1] & finite[:-1, 1:] & finite[1:, 1:]
    case = (
        above[:-1, :-1].astype(np.int8)
        | (above[1:, :-1].astype(np.int8) << 1)
        | (above[1:, 1:].astype(np.int8) << 2)
        | (above[:-1, 1:].astype(np.int8) << 3)
    )
    active = cell_ok & (case != 0) & (case != 15)
    points: dict[EdgeKey, tuple[float, float]] = {}
    links: dict[EdgeKey, list[EdgeKey]] = {}

    def crossing(key: EdgeKey) -> EdgeKey:
        if key not in points:
            kind, i, j = key
            if kind == "h":
                za, zb = z[i, j], z[i + 1, j]
                t = (level - za) / (zb - za) if zb != za else 0.5
                points[key] = (xs[i] + t * (xs[i + 1] - xs[i]), ys[j])
            else:
                za, zb = z[i, j], z[i, j + 1]
                t = (level - za) / (zb - za) if zb != za else 0.5
                points[key] = (xs[i], ys[j] + t * (ys[j + 1] - ys[j]))
        return key

    def link(a: EdgeKey, b: EdgeKey) -> None:
        links.setdefault(crossing(a), []).append(crossing(b))
        links.setdefault(b, []).append(a)

    for i, j in zip(*np.nonzero(active), strict=True):
        i = int(i)
        j = int(j)
        bottom = ("h", i, j)
        right = ("v", i + 1, j)
        top = ("h", i, j + 1)
        left = ("v", i, j)
        c = int(case[i, j])
        if c in (5, 10):
            center_above = float(np.mean(z[i : i + 2, j : j + 2])) >= level
            if (c == 5) == center_above:
                link(left, top)
                link(bottom, right)
            else:
                link(left, bottom)
                link(top, right)
            continue
        edges = [
            key
            for key, (a, b) in (
                (bottom, (above[i, j], above[i + 1, j])),
                (right, (above[i + 1, j], above[i + 1, j + 1])),
                (top, (above[i, j + 1], above[i + 1, j + 1])),
                (left, (above[i, j], above[i, j + 1])),
            )
            if a != b
        ]
        if len(edges) == 2:
            link(edges[0], edges[1])
    polylines = [_to_arrays(chain, points) for chain in _join_chains(links)]
    return [(x, y) for x, y in polylines if x.size >= 2]


def trace_contours(
    grid: Grid,
    levels: Sequence[float],
    *,
    label_interval: int = 0,
    label_offset: int = 0,
) -> list[ContourLine]:
    xs = grid.x_ticks()
    ys = grid.y_ticks()
    levels = np.asarray(levels, dtype=np.float64)
    step = float(np.min(np.diff(levels))) if levels.size > 1 else None
    lines: list[ContourLine] = []
    for index, level in enumerate(levels.tolist()):
        label = None
        if label_interval > 0 and index >= label_offset and (index - label_offset) % label_interval == 0:
            label = format_tick(level, step=step)
        for x, y in trace_level(grid.z, xs, ys, level):
            lines.append(ContourLine(level=level, x=x, y=y, label=label))
    LOGGER.debug("traced %d contour polylines over %d levels", len(lines), levels.size)
    return lines


def label_anchor(line: ContourLine) -> tuple[float, float]:
    mid = line.x.size // 2
    return float(line.x[mid]), float(line.y[mid])


def _join_chains(links: dict[EdgeKey, list[EdgeKey]]) -> list[list[EdgeKey]]:
    visited: set[tuple[EdgeKey, EdgeKey]] = set()
    chains: list[list[EdgeKey]] = []

    def walk(start: EdgeKey) -> list[EdgeKey]:
        chain = [start]
        current = start
        while True:
            nxt = None
            for candidate in links.get(current, []):
                if (current, candidate) not in visited:
                    nxt = candidate
                    break
            if nxt is None:
                return chain
            visited.add((current, nxt))
            visited.add((nxt, current))
            chain.append(nxt)
            current = nxt

    ends = [key for key, peers in links.items() if len(peers) == 1]
    for key in ends:
        if any((key, peer) not in visited for peer in links[key]):
            chains.append(walk(key))
    for key in links:
        if any((key, peer) not in visited for peer in links[key]):
            chains.append(walk(key))
    return chains


def _to_arrays(chain: list[EdgeKey], points: dict[EdgeKey, tuple[float, float]]) -> tuple[np.ndarray, np.ndarray]:
    xs: list[float] = []
    ys: list[float] = []
    for key in chain:
        px, py = points[key]
        if xs and xs[-1] == px and ys[-1] == py:
            continue
        xs.append(float(px))
        ys.append(float(py))
    return np.asarray(xs, dtype=np.float64), np.asarray(ys, dtype=np.float64)
