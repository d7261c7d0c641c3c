from __future__ import annotations

from datetime import datetime, timezone
import logging

import numpy as np

from shadeplot.color import ColorMap
from shadeplot.context import RenderingContext
from shadeplot.contour import ContourLine, label_anchor
from shadeplot.grid import AxisScale
from shadeplot.layout import DEVICE_HEIGHT, DEVICE_WIDTH, Mapping, PlotSpace
from shadeplot.raster.text import HAlign, VAlign, fit_label, text_strokes
from shadeplot.scales import TickSet, axis_ticks, format_tick


LOGGER = logging.getLogger(__name__)

BASE_CHAR_HEIGHT = 0.03 * DEVICE_HEIGHT
TICK_FRACTION = 0.02
MINOR_TICK_FRACTION = 0.01
BAR_X0 = 1.055
BAR_X1 = 1.095
BAR_SPAN = 0.8
LEFT_LABEL_BUDGET = 0.09


def char_height(ctx: RenderingContext, space: PlotSpace, factor: float = 1.0) -> float:
    share = min(space.wspace.width, space.wspace.height)
    return BASE_CHAR_HEIGHT * share * ctx.char_scale * factor


def draw_text(
    ctx: RenderingContext,
    text: str,
    x: float,
    y: float,
    height: float,
    *,
    rotate_deg: int = 0,
    halign: HAlign = "left",
    valign: VAlign = "bottom",
) -> None:
    strokes = text_strokes(
        text, x, y, height, rotate_deg=rotate_deg, halign=halign, valign=valign, font_family=ctx.font_family
    )
    for stroke in strokes:
        ctx.device.move(stroke.x0, stroke.y)
        ctx.device.vector(stroke.x1, stroke.y)


def device_box(mapping: Mapping) -> tuple[float, float, float, float]:
    p = mapping.pspace
    return p.x0 * DEVICE_WIDTH, p.x1 * DEVICE_WIDTH, p.y0 * DEVICE_HEIGHT, p.y1 * DEVICE_HEIGHT


def draw_border(ctx: RenderingContext, mapping: Mapping) -> None:
    x0, x1, y0, y1 = device_box(mapping)
    ctx.device.linetype(0)
    ctx.device.width(ctx.thickness)
    ctx.device.polyline([x0, x1, x1, x0, x0], [y0, y0, y1, y1, y0])


def draw_scales(
    ctx: RenderingContext,
    mapping: Mapping,
    space: PlotSpace,
    *,
    x_scale: AxisScale = "linear",
    y_scale: AxisScale = "linear",
    y_tick_labels: list[str] | None = None,
) -> tuple[TickSet, TickSet]:
    """Ticks on all four sides and numeric labels on the bottom and left."""
    lim = mapping.limits
    x0, x1, y0, y1 = device_box(mapping)
    height = char_height(ctx, space, 0.8)
    ctx.device.linetype(0)
    ctx.device.width(ctx.thickness)

    xt = axis_ticks(lim.x0, lim.x1, x_scale)
    major_len = TICK_FRACTION * (y1 - y0)
    minor_len = MINOR_TICK_FRACTION * (y1 - y0)
    x_labels: list[tuple[float, str]] = []
    for value, label in zip(xt.major.tolist(), xt.labels, strict=True):
        xd = _x_device(mapping, value)
        if xd is None:
            continue
        ctx.device.polyline([xd, xd], [y0, y0 + major_len])
        ctx.device.polyline([xd, xd], [y1, y1 - major_len])
        x_labels.append((xd, label))
    for value in xt.minor.tolist():
        xd = _x_device(mapping, value)
        if xd is not None:
            ctx.device.polyline([xd, xd], [y0, y0 + minor_len])
    if x_labels:
        spacing = (x1 - x0) / max(len(x_labels), 1)
        for xd, label in x_labels:
            text, size = fit_label(label, spacing * 0.9, height, font_family=ctx.font_family)
            draw_text(ctx, text, xd, y0 - 0.6 * height, size, halign="center", valign="top")

    if y_tick_labels is not None:
        values = np.arange(len(y_tick_labels), dtype=np.float64)
        yt = TickSet(major=values, labels=list(y_tick_labels), minor=np.asarray([], dtype=np.float64))
    else:
        yt = axis_ticks(lim.y0, lim.y1, y_scale)
    major_len = TICK_FRACTION * (x1 - x0)
    minor_len = MINOR_TICK_FRACTION * (x1 - x0)
    budget = LEFT_LABEL_BUDGET * space.wspace.width * DEVICE_WIDTH
    for value, label in zip(yt.major.tolist(), yt.labels, strict=True):
        yd = _y_device(mapping, value)
        if yd is None:
            continue
        ctx.device.polyline([x0, x0 + major_len], [yd, yd])
        ctx.device.polyline([x1, x1 - major_len], [yd, yd])
        text, size = fit_label(label, budget, height, font_family=ctx.font_family)
        draw_text(ctx, text, x0 - 0.5 * height, yd, size, halign="right", valign="center")
    for value in yt.minor.tolist():
        yd = _y_device(mapping, value)
        if yd is not None:
            ctx.device.polyline([x0, x0 + minor_len], [yd, yd])
    return xt, yt


def draw_labels(
    ctx: RenderingContext,
    mapping: Mapping,
    space: PlotSpace,
    *,
    xlabel: str = "",
    ylabel: str = "",
    title: str = "",
    topline: str = "",
    title_at_top: bool = False,
) -> None:
    x0, x1, y0, y1 = device_box(mapping)
    w = space.wspace
    height = char_height(ctx, space)
    width_budget = w.width * DEVICE_WIDTH * 0.9
    xc = (x0 + x1) / 2.0
    wy0 = w.y0 * DEVICE_HEIGHT
    wy1 = w.y1 * DEVICE_HEIGHT
    if xlabel:
        text, size = fit_label(xlabel, width_budget, height, font_family=ctx.font_family)
        draw_text(ctx, text, xc, y0 - 2.2 * height, size, halign="center", valign="top")
    if ylabel:
        text, size = fit_label(ylabel, (y1 - y0) * 0.95, height, font_family=ctx.font_family)
        x_left = w.x0 * DEVICE_WIDTH + 0.3 * height
        draw_text(ctx, text, x_left, (y0 + y1) / 2.0, size, rotate_deg=90, halign="left", valign="center")
    if title:
        text, size = fit_label(title, width_budget, height, font_family=ctx.font_family)
        if title_at_top:
            draw_text(ctx, text, xc, y1 + 0.5 * height, size, halign="center", valign="bottom")
        else:
            draw_text(ctx, text, xc, wy0 + 0.4 * height, size, halign="center", valign="bottom")
    if topline:
        text, size = fit_label(topline, width_budget, height * 0.9, font_family=ctx.font_family)
        draw_text(ctx, text, xc, wy1 - 0.3 * height, size, halign="center", valign="top")


def draw_color_bar(
    ctx: RenderingContext,
    mapping: Mapping,
    space: PlotSpace,
    cmap: ColorMap,
    zmin: float,
    zmax: float,
    *,
    caption: str = "",
    symbol: str = "",
) -> None:
    """Intensity bar to the right of the plot: N+1 boxes with min/max labels."""
    lim = mapping.limits
    xrange_ = lim.x1 - lim.x0
    yrange_ = lim.y1 - lim.y0
    wx0 = lim.x0 + BAR_X0 * xrange_
    wx1 = lim.x0 + BAR_X1 * xrange_
    wy0 = lim.y0 + (1.0 - BAR_SPAN) / 2.0 * yrange_
    wy1 = wy0 + BAR_SPAN * yrange_
    xs, ys = mapping.to_device([wx0, wx1], [wy0, wy1])
    bx0, bx1 = float(np.min(xs)), float(np.max(xs))
    by0, by1 = float(np.min(ys)), float(np.max(ys))
    shades = cmap.bar_shades()
    step = (by1 - by0) / len(shades)
    ctx.upload_palette(cmap)
    for i, shade in enumerate(shades):
        ctx.device.fill_box(shade, bx0, bx1, by0 + i * step, by0 + (i + 1) * step)
    ctx.device.linetype(0)
    ctx.device.width(ctx.thickness)
    ctx.device.polyline([bx0, bx1, bx1, bx0, bx0], [by0, by0, by1, by1, by0])
    height = char_height(ctx, space, 0.7)
    budget = space.wspace.x1 * DEVICE_WIDTH - bx0
    xc = (bx0 + bx1) / 2.0
    text, size = fit_label(format_tick(zmin), budget, height, font_family=ctx.font_family)
    draw_text(ctx, text, xc, by0 - 0.3 * height, size, halign="center", valign="top")
    text, size = fit_label(format_tick(zmax), budget, height, font_family=ctx.font_family)
    draw_text(ctx, text, xc, by1 + 0.3 * height, size, halign="center", valign="bottom")
    if caption:
        text, size = fit_label(caption, by1 - by0, height, font_family=ctx.font_family)
        draw_text(ctx, text, bx1 + 0.3 * height, (by0 + by1) / 2.0, size, rotate_deg=90, halign="left", valign="center")
    if symbol:
        text, size = fit_label(symbol, budget, height, font_family=ctx.font_family)
        draw_text(ctx, text, (bx0 + bx1) / 2.0, by1 + 1.6 * height, size, halign="center", valign="bottom")


def draw_contour_labels(ctx: RenderingContext, mapping: Mapping, space: PlotSpace, lines: list[ContourLine]) -> int:
    height = char_height(ctx, space, 0.6)
    drawn = 0
    for line in lines:
        if line.label is None or line.x.size < 2:
            continue
        wx, wy = label_anchor(line)
        xd, yd = mapping.to_device(wx, wy)
        draw_text(ctx, line.label, float(xd), float(yd), height, halign="center", valign="center")
        drawn += 1
    return drawn


def draw_date_stamp(ctx: RenderingContext, now: datetime | None = None) -> None:
    stamp = (now or datetime.now(timezone.utc)).strftime("%a %b %d %H:%M:%S %Y")
    height = 0.018 * DEVICE_HEIGHT
    draw_text(ctx, stamp, DEVICE_WIDTH - 0.5 * height, 0.5 * height, height, halign="right", valign="bottom")


def _x_device(mapping: Mapping, value: float) -> float | None:
    lim = mapping.limits
    if not min(lim.x0, lim.x1) - 1e-9 * abs(lim.width) <= value <= max(lim.x0, lim.x1) + 1e-9 * abs(lim.width):
        return None
    return float(value * mapping.sx + mapping.tx)


def _y_device(mapping: Mapping, value: float) -> float | None:
    lim = mapping.limits
    if not min(lim.y0, lim.y1) - 1e-9 * abs(lim.height) <= value <= max(lim.y0, lim.y1) + 1e-9 * abs(lim.height):
        return None
    return float(value * mapping.sy + mapping.ty)
