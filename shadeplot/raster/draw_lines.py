from __future__ import annotations

import numpy as np

from shadeplot.raster.canvas import RGBA, draw_pixel, fill_rect


def draw_polyline(dst: np.ndarray, xs: np.ndarray, ys: np.ndarray, color: RGBA, width: int = 1) -> None:
    """Stroke a pixel-space polyline; a single vertex is drawn as one brush stamp."""
    xs = np.asarray(xs, dtype=np.int64)
    ys = np.asarray(ys, dtype=np.int64)
    if xs.size == 0:
        return
    if xs.size == 1:
        _stamp(dst, int(xs[0]), int(ys[0]), color, width)
        return
    for i in range(xs.size - 1):
        _stroke_segment(dst, int(xs[i]), int(ys[i]), int(xs[i + 1]), int(ys[i + 1]), color, width)


def _stroke_segment(dst: np.ndarray, x0: int, y0: int, x1: int, y1: int, color: RGBA, width: int) -> None:
    radius = max(0, width // 2)
    if x0 == x1 or y0 == y1:
        # axis-aligned segments are one rectangle
        fill_rect(dst, min(x0, x1) - radius, max(x0, x1) + radius, min(y0, y1) - radius, max(y0, y1) + radius, color)
        return
    steps = max(abs(x1 - x0), abs(y1 - y0)) + 1
    px = np.rint(np.linspace(x0, x1, steps)).astype(np.int64)
    py = np.rint(np.linspace(y0, y1, steps)).astype(np.int64)
    for x, y in zip(px.tolist(), py.tolist()):
        _stamp(dst, x, y, color, width)


def _stamp(dst: np.ndarray, x: int, y: int, color: RGBA, width: int) -> None:
    radius = max(0, width // 2)
    if radius == 0:
        draw_pixel(dst, x, y, color)
    else:
        fill_rect(dst, x - radius, x + radius, y - radius, y + radius, color)
