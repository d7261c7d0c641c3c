from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
import logging
from pathlib import Path
import signal
import threading

from shadeplot.color import ColorMap
from shadeplot.config import PlotConfig
from shadeplot.context import RenderingContext
from shadeplot.contour import ContourLine, contour_levels, trace_contours
from shadeplot.decorate import (
    draw_border,
    draw_color_bar,
    draw_contour_labels,
    draw_date_stamp,
    draw_labels,
    draw_scales,
)
from shadeplot.devices import open_device
from shadeplot.devices.base import Device, PanelRecord, TraceRecord
from shadeplot.errors import PlotDataError
from shadeplot.filters import interpolate_grid, smooth_grid
from shadeplot.grid import Grid
from shadeplot.ingest import WaterfallIngest, build_grid, build_waterfall, color_caption
from shadeplot.layout import Mapping, PanelCursor, PlotSpace, auto_limits, build_mapping, panel_space
from shadeplot.overlays import Shape, load_shapes, shape_segments
from shadeplot.pages import Page, read_pages
from shadeplot.raster.text import font_family_from_env
from shadeplot.scales import time_axis_title
from shadeplot.shader import shade_grid


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PanelResult:
    page_index: int
    panel: tuple[int, int]
    grid: Grid
    zmin: float
    zmax: float
    boxes: int
    contour_lines: list[ContourLine]


class PlotSession:
    """Runs the page pipeline for one configuration against one device."""

    def __init__(self, config: PlotConfig, device: Device | None = None) -> None:
        self.config = config
        self._device = device
        self._interrupted = threading.Event()
        self.results: list[PanelResult] = []
        self.pages_skipped = 0

    def interrupt(self) -> None:
        self._interrupted.set()

    @property
    def interrupted(self) -> bool:
        return self._interrupted.is_set()

    def run(self, pages: Iterable[Page] | None = None) -> None:
        source = read_pages(self.config.input) if pages is None else pages
        device = self._device if self._device is not None else open_device(self.config.device)
        ctx = RenderingContext(
            device=device,
            font_family=self.config.device.font or font_family_from_env(),
            thickness=self.config.layout.thickness,
        )
        shapes = [shape for spec in self.config.shapes for shape in load_shapes(spec)]
        cursor = PanelCursor(self.config.layout.layout)
        with device, self._sigint_guard():
            for page, grid in self._grids(source):
                if self.interrupted:
                    LOGGER.warning("interrupted; abandoning the current frame")
                    device.abort_frame()
                    return
                try:
                    self._render_panel(ctx, cursor, page, grid, shapes)
                except PlotDataError as exc:
                    self._skip(page, exc)
            if self.interrupted:
                device.abort_frame()
                return
            if device.in_frame:
                self._finish_frame(ctx)

    def _grids(self, pages: Iterable[Page]) -> Iterator[tuple[Page, Grid]]:
        ingest = self.config.ingest
        if isinstance(ingest, WaterfallIngest):
            collected = list(pages)
            if not collected:
                return
            try:
                grid = self.prepare(build_waterfall(collected, ingest))
            except PlotDataError as exc:
                self._skip(collected[0], exc)
                return
            yield collected[0], grid
            return
        for page in pages:
            if self.interrupted:
                return
            try:
                grid = self.prepare(build_grid(page, ingest))
            except PlotDataError as exc:
                self._skip(page, exc)
                continue
            yield page, grid

    def _skip(self, page: Page, exc: PlotDataError) -> None:
        if not exc.recoverable:
            raise exc
        self.pages_skipped += 1
        LOGGER.warning("page %d skipped: %s: %s", page.index, exc.kind, exc)

    def prepare(self, grid: Grid) -> Grid:
        """Transforms in fixed order: log, deltas, window, swap, flip; then interpolate and smooth."""
        cfg = self.config
        if cfg.x_log:
            grid.log_x_ticks()
        if cfg.log_scale:
            grid.log_transform(cfg.log_floor)
        if cfg.deltas is not None:
            grid.apply_deltas(cfg.deltas)
        if cfg.window.active:
            w = cfg.window
            grid.window(w.x_lo, w.x_hi, w.y_lo, w.y_hi)
        if cfg.swap_xy:
            grid.swap_axes()
        if cfg.y_flip:
            grid.flip_y()
        interp = cfg.interpolation
        if interp.active:
            interpolate_grid(
                grid,
                interp.x_factor,
                interp.y_factor,
                x_cutoff=interp.x_cutoff,
                y_cutoff=interp.y_cutoff,
                flags=interp.flags,
            )
        if cfg.smooth_passes > 0:
            one_page_per_line = isinstance(cfg.ingest, WaterfallIngest) and cfg.ingest.scroll == "vertical"
            smooth_grid(grid, cfg.smooth_passes, one_page_per_line=one_page_per_line)
        return grid

    def value_range(self, ctx: RenderingContext, grid: Grid) -> tuple[float, float]:
        cfg = self.config
        if cfg.fixed_range and ctx.fixed_range is not None:
            return ctx.fixed_range
        zmin, zmax = grid.value_range()
        if cfg.shade is not None and cfg.shade.zmin is not None and cfg.shade.zmax is not None:
            zmin, zmax = cfg.shade.zmin, cfg.shade.zmax
        elif cfg.shade is None and cfg.contour is not None and cfg.contour.zmin is not None:
            zmin, zmax = cfg.contour.zmin, cfg.contour.zmax  # type: ignore[assignment]
        lo, hi = cfg.limit_levels
        if lo is not None:
            zmin = max(zmin, lo)
        if hi is not None:
            zmax = min(zmax, hi)
        if cfg.fixed_range:
            ctx.fixed_range = (zmin, zmax)
        return zmin, zmax

    def _render_panel(
        self,
        ctx: RenderingContext,
        cursor: PanelCursor,
        page: Page,
        grid: Grid,
        shapes: list[Shape],
    ) -> None:
        """Draw one panel; a data error leaves the frame exactly as it was before the panel."""
        device = ctx.device
        saved = (ctx.palette, ctx.palette_sent, ctx.fixed_range)
        opened = cursor.at_frame_start
        if opened:
            device.begin_frame()
            ctx.frame_started()
        mark = device.mark()
        try:
            self._draw_panel(ctx, cursor, page, grid, shapes)
        except PlotDataError:
            ctx.palette, ctx.palette_sent, ctx.fixed_range = saved
            if opened:
                device.abort_frame()
            else:
                device.rollback(mark)
            raise
        ctx.panels_drawn += 1
        if cursor.advance():
            self._finish_frame(ctx)

    def _draw_panel(
        self,
        ctx: RenderingContext,
        cursor: PanelCursor,
        page: Page,
        grid: Grid,
        shapes: list[Shape],
    ) -> None:
        cfg = self.config
        lay = cfg.layout
        device = ctx.device
        zmin, zmax = self.value_range(ctx, grid)
        space = panel_space(lay.layout, cursor.panel, title_at_top=lay.title_at_top, fill_screen=lay.fill_screen)
        limits = auto_limits(grid.xmin, grid.xmax, grid.ymin, grid.ymax, fill_screen=lay.fill_screen)
        mapping = build_mapping(limits, space, aspect=lay.equal_aspect)
        device.set_mapping(mapping)
        labels = self._labels(page, grid, limits.x0, limits.y0)
        device.annotate_panel(
            PanelRecord(
                page_index=page.index,
                panel_index=cursor.panels_used,
                title=labels["title"],
                topline=labels["topline"],
                x_title=grid.x_axis.name,
                x_units=grid.x_axis.units,
                x_type=_axis_type(grid.x_axis.scale, lay.x_time),
                x_range=(limits.x0, limits.x1),
                y_title=grid.y_axis.name,
                y_units=grid.y_axis.units,
                y_type=_axis_type(grid.y_axis.scale, lay.y_time),
                y_range=(limits.y0, limits.y1),
            )
        )

        boxes = 0
        cmap: ColorMap | None = None
        if cfg.shade is not None:
            s = cfg.shade
            cmap = ColorMap(
                levels=s.levels,
                palette=s.palette,
                hue0=s.hue0,
                hue1=s.hue1,
                reverse=s.reverse,
                start16=s.start16,
                end16=s.end16,
            )
            boxes = self._shade(ctx, mapping, grid, cmap, zmin, zmax)

        lines: list[ContourLine] = []
        if cfg.do_contour:
            lines = self._contour(ctx, mapping, space, page, grid, zmin, zmax)

        if not lay.no_border:
            draw_border(ctx, mapping)
        if not lay.no_scales and not lay.fill_screen:
            draw_scales(
                ctx,
                mapping,
                space,
                x_scale="time" if lay.x_time else grid.x_axis.scale,
                y_scale="time" if lay.y_time else grid.y_axis.scale,
                y_tick_labels=grid.y_tick_labels,
            )
        if not lay.no_labels and not lay.fill_screen:
            draw_labels(ctx, mapping, space, title_at_top=lay.title_at_top, **labels)
        if cmap is not None and not lay.no_color_bar and not lay.fill_screen:
            caption = f"({grid.z_axis.units})" if grid.z_axis.units else ""
            symbol = grid.z_axis.symbol or grid.z_axis.name
            draw_color_bar(ctx, mapping, space, cmap, zmin, zmax, caption=caption, symbol=symbol)
        self._overlays(ctx, mapping, page, shapes)

        self.results.append(
            PanelResult(
                page_index=page.index,
                panel=cursor.panel,
                grid=grid,
                zmin=zmin,
                zmax=zmax,
                boxes=boxes,
                contour_lines=lines,
            )
        )

    def _shade(
        self,
        ctx: RenderingContext,
        mapping: Mapping,
        grid: Grid,
        cmap: ColorMap,
        zmin: float,
        zmax: float,
    ) -> int:
        lo, hi = self.config.limit_levels
        clamp = lo is not None or hi is not None
        ctx.upload_palette(cmap)
        boxes = shade_grid(grid, cmap, zmin, zmax, show_gaps=self.config.show_gaps, clamp=clamp)
        for box in boxes:
            xs, ys = mapping.to_device([box.xl, box.xh], [box.yl, box.yh])
            ctx.device.fill_box(box.shade, float(xs[0]), float(xs[1]), float(ys[0]), float(ys[1]))
        return len(boxes)

    def _contour(
        self,
        ctx: RenderingContext,
        mapping: Mapping,
        space: PlotSpace,
        page: Page,
        grid: Grid,
        zmin: float,
        zmax: float,
    ) -> list[ContourLine]:
        spec = self.config.contour
        levels = contour_levels(
            zmin,
            zmax,
            count=spec.count if spec is not None else None,
            level_list=spec.level_list if spec is not None else None,
            limit=self.config.limit_levels,
        )
        lines = trace_contours(
            grid,
            levels,
            label_interval=spec.label_interval if spec is not None else 0,
            label_offset=spec.label_offset if spec is not None else 0,
        )
        ctx.device.linetype(0)
        ctx.device.width(ctx.thickness)
        for line in lines:
            xs, ys = mapping.to_device(line.x, line.y)
            ctx.device.polyline(xs.tolist(), ys.tolist())
            ctx.device.record_trace(
                TraceRecord(
                    name=f"{grid.z_axis.name or 'z'} = {line.level:g}",
                    x=line.x.tolist(),
                    y=line.y.tolist(),
                    line_width=ctx.thickness,
                    meta={
                        "requestIndex": 0,
                        "datasetIndex": 0,
                        "fileIndex": 0,
                        "page": page.index,
                        "xColumn": grid.x_axis.name,
                        "yColumn": grid.y_axis.name,
                        "xUnits": grid.x_axis.units,
                        "yUnits": grid.y_axis.units,
                    },
                )
            )
        draw_contour_labels(ctx, mapping, space, lines)
        return lines

    def _overlays(self, ctx: RenderingContext, mapping: Mapping, page: Page, shapes: list[Shape]) -> None:
        device = ctx.device
        if shapes:
            device.linetype(0)
            device.width(ctx.thickness)
            for shape in shapes:
                for xs, ys in shape_segments(shape, mapping):
                    device.polyline(xs.tolist(), ys.tolist())
        for spec in self.config.drawlines:
            x0, y0, x1, y1 = spec.endpoints(mapping, page)
            device.linetype(spec.linetype)
            device.width(spec.thickness)
            device.polyline([x0, x1], [y0, y1])

    def _finish_frame(self, ctx: RenderingContext) -> None:
        if self.config.layout.date_stamp:
            draw_date_stamp(ctx)
        ctx.device.end_frame()

    def _labels(self, page: Page, grid: Grid, x0: float, y0: float) -> dict[str, str]:
        cfg = self.config
        lab = cfg.labels
        xlabel = lab.xlabel
        if xlabel is None:
            xlabel = time_axis_title(x0) if cfg.layout.x_time else grid.x_axis.label
        ylabel = lab.ylabel
        if ylabel is None:
            ylabel = time_axis_title(y0) if cfg.layout.y_time else grid.y_axis.label
        title = lab.title if lab.title is not None else grid.title
        topline = lab.topline
        if topline is None:
            topline = page.description or f"Data from {Path(cfg.input).name}, page {page.index}"
        if isinstance(cfg.ingest, WaterfallIngest) and lab.title is None:
            title = color_caption(grid.z_axis)
        return {"xlabel": xlabel, "ylabel": ylabel, "title": title, "topline": topline}

    @contextmanager
    def _sigint_guard(self) -> Iterator[None]:
        if threading.current_thread() is not threading.main_thread():
            yield
            return
        previous = signal.getsignal(signal.SIGINT)

        def _handler(signum: int, frame: object) -> None:
            _ = (signum, frame)
            self.interrupt()

        signal.signal(signal.SIGINT, _handler)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous)


def _axis_type(scale: str, is_time: bool) -> str:
    if is_time:
        return "time"
    return "log" if scale == "log10" else "linear"
