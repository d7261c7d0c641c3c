from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from fnmatch import fnmatchcase
import logging
from typing import Literal, TypeAlias

import numpy as np

from shadeplot.equation import evaluate
from shadeplot.errors import MalformedInput, UsageError
from shadeplot.grid import (
    AxisInfo,
    Grid,
    grid_from_array,
    grid_from_columns,
    grid_from_parameters,
    read_dimension_parameters,
    uniform_spacing,
)
from shadeplot.pages import Page


LOGGER = logging.getLogger(__name__)

ScrollMode = Literal["horizontal", "vertical"]


@dataclass(frozen=True)
class QuantityIngest:
    column: str


@dataclass(frozen=True)
class EquationIngest:
    expression: str
    algebraic: bool = False


@dataclass(frozen=True)
class ColumnMatchIngest:
    independent: str
    patterns: tuple[str, ...]


@dataclass(frozen=True)
class WaterfallIngest:
    parameter: str
    independent: str
    color: str
    scroll: ScrollMode = "vertical"


@dataclass(frozen=True)
class ArrayIngest:
    z: str
    x: str | None = None
    y: str | None = None


@dataclass(frozen=True)
class XYZIngest:
    x: str
    y: str
    z: str


IngestSpec: TypeAlias = QuantityIngest | EquationIngest | ColumnMatchIngest | WaterfallIngest | ArrayIngest | XYZIngest


def build_grid(page: Page, ingest: IngestSpec) -> Grid:
    """Grid for one page; waterfall ingestion needs the whole stream, see build_waterfall."""
    if isinstance(ingest, QuantityIngest):
        return grid_from_parameters(page, ingest.column)
    if isinstance(ingest, EquationIngest):
        return grid_from_equation(page, ingest)
    if isinstance(ingest, ColumnMatchIngest):
        return grid_from_column_match(page, ingest)
    if isinstance(ingest, ArrayIngest):
        return grid_from_page_array(page, ingest)
    if isinstance(ingest, XYZIngest):
        return grid_from_xyz(page, ingest)
    if isinstance(ingest, WaterfallIngest):
        return build_waterfall([page], ingest)
    raise UsageError(f"unsupported ingestion mode: {type(ingest).__name__}")


def grid_from_equation(page: Page, ingest: EquationIngest) -> Grid:
    xdim = read_dimension_parameters(page, "Variable1Name")
    ydim = read_dimension_parameters(page, "Variable2Name")
    if xdim.dimension < 2 or ydim.dimension < 2:
        raise MalformedInput("equation grid dimensions must be >= 2")
    xs = xdim.minimum + xdim.interval * np.arange(xdim.dimension, dtype=np.float64)
    ys = ydim.minimum + ydim.interval * np.arange(ydim.dimension, dtype=np.float64)
    xx, yy = np.meshgrid(xs, ys, indexing="ij")
    variables: dict[str, np.ndarray | float] = {
        name: float(param.value) for name, param in page.parameters.items() if param.is_numeric
    }
    variables[xdim.name] = xx
    variables[ydim.name] = yy
    values = np.broadcast_to(
        np.asarray(evaluate(ingest.expression, variables, algebraic=ingest.algebraic), dtype=np.float64),
        xx.shape,
    ).copy()
    return Grid(
        z=values,
        xmin=xdim.minimum,
        dx=xdim.interval,
        ymin=ydim.minimum,
        dy=ydim.interval,
        x_axis=AxisInfo(name=xdim.name, units=xdim.units),
        y_axis=AxisInfo(name=ydim.name, units=ydim.units),
        z_axis=AxisInfo(name=ingest.expression),
        title=ingest.expression,
    )


def grid_from_column_match(page: Page, ingest: ColumnMatchIngest) -> Grid:
    indep = page.column(ingest.independent)
    xs = page.numeric_column(ingest.independent)
    names = [
        name
        for name in page.columns
        if name != ingest.independent and any(fnmatchcase(name, pattern) for pattern in ingest.patterns)
    ]
    if len(names) < 2:
        raise MalformedInput(f"columnmatch found {len(names)} columns matching {', '.join(ingest.patterns)}")
    values = np.column_stack([page.numeric_column(name) for name in names])
    x_axis = AxisInfo(name=ingest.independent, units=indep.units, symbol=indep.symbol)
    order = np.argsort(xs, kind="stable")
    ticks = xs[order]
    if np.all(np.diff(ticks) > 0):
        values = values[order]
    else:
        LOGGER.warning("%s values are not unique; using row index for x", ingest.independent)
        ticks = np.arange(xs.size, dtype=np.float64)
        x_axis = AxisInfo(name="row")
    step = uniform_spacing(ticks)
    units = {page.column(name).units for name in names}
    return Grid(
        z=values,
        xmin=float(ticks[0]),
        dx=step if step is not None else 1.0,
        xpos=None if step is not None else ticks,
        ymin=0.0,
        dy=1.0,
        x_axis=x_axis,
        y_axis=AxisInfo(name="column"),
        z_axis=AxisInfo(name="", units=units.pop() if len(units) == 1 else ""),
        title=f"columns matching {', '.join(ingest.patterns)}",
        y_tick_labels=names,
    )


def grid_from_page_array(page: Page, ingest: ArrayIngest) -> Grid:
    data = page.array(ingest.z)
    xs = ys = None
    x_axis = AxisInfo(name="x")
    y_axis = AxisInfo(name="y")
    if (ingest.x is None) != (ingest.y is None):
        raise UsageError("array ingestion needs both x and y axis arrays or neither")
    if ingest.x is not None and ingest.y is not None:
        xa = page.array(ingest.x)
        ya = page.array(ingest.y)
        xs, ys = xa.values, ya.values
        x_axis = AxisInfo(name=ingest.x, units=xa.units)
        y_axis = AxisInfo(name=ingest.y, units=ya.units)
    return grid_from_array(
        data.values,
        xs,
        ys,
        x_axis=x_axis,
        y_axis=y_axis,
        z_axis=AxisInfo(name=ingest.z, units=data.units),
    )


def grid_from_xyz(page: Page, ingest: XYZIngest) -> Grid:
    axes = []
    for name in (ingest.x, ingest.y, ingest.z):
        col = page.column(name)
        axes.append(AxisInfo(name=name, units=col.units, symbol=col.symbol))
    return grid_from_columns(
        page.numeric_column(ingest.x),
        page.numeric_column(ingest.y),
        page.numeric_column(ingest.z),
        x_axis=axes[0],
        y_axis=axes[1],
        z_axis=axes[2],
    )


def build_waterfall(pages: Iterable[Page], ingest: WaterfallIngest) -> Grid:
    """Stack one color column per page along the page parameter."""
    entries: list[tuple[float, np.ndarray, np.ndarray]] = []
    param_units = ""
    indep_axis: AxisInfo | None = None
    color_axis: AxisInfo | None = None
    for page in pages:
        param = page.parameter(ingest.parameter)
        value = page.numeric_parameter(ingest.parameter)
        indep = page.column(ingest.independent)
        color = page.column(ingest.color)
        x = page.numeric_column(ingest.independent)
        z = page.numeric_column(ingest.color)
        order = np.argsort(x, kind="stable")
        entries.append((value, x[order], z[order]))
        if indep_axis is None:
            param_units = param.units
            indep_axis = AxisInfo(name=ingest.independent, units=indep.units, symbol=indep.symbol)
            color_axis = AxisInfo(name=ingest.color, units=color.units, symbol=color.symbol)
    if len(entries) < 2 or indep_axis is None or color_axis is None:
        raise MalformedInput(f"waterfall needs at least 2 pages, got {len(entries)}")
    rows = entries[0][1].size
    ticks = entries[0][1]
    short = [i for i, (_, x, _) in enumerate(entries) if x.size < rows]
    if short:
        raise MalformedInput(f"waterfall page {short[0] + 1} has fewer than {rows} rows")
    mismatched = [
        i for i, (_, x, _) in enumerate(entries) if not np.allclose(x[:rows], ticks, equal_nan=True)
    ]
    if mismatched:
        LOGGER.warning(
            "%d waterfall pages have %s values that differ from page 1; page 1 values are used",
            len(mismatched),
            ingest.independent,
        )
    entries.sort(key=lambda entry: entry[0])
    params = np.asarray([entry[0] for entry in entries], dtype=np.float64)
    values = np.vstack([z[:rows] for _, _, z in entries])
    param_axis = AxisInfo(name=ingest.parameter, units=param_units)
    p_step = uniform_spacing(params)
    t_step = uniform_spacing(ticks)
    if ingest.scroll == "vertical":
        return Grid(
            z=values,
            xmin=float(params[0]),
            dx=p_step if p_step is not None else 1.0,
            xpos=None if p_step is not None else params,
            ymin=float(ticks[0]),
            dy=t_step if t_step is not None else 1.0,
            ypos=None if t_step is not None else ticks,
            x_axis=param_axis,
            y_axis=indep_axis,
            z_axis=color_axis,
            title=color_axis.label,
        )
    return Grid(
        z=values.T.copy(),
        xmin=float(ticks[0]),
        dx=t_step if t_step is not None else 1.0,
        xpos=None if t_step is not None else ticks,
        ymin=float(params[0]),
        dy=p_step if p_step is not None else 1.0,
        ypos=None if p_step is not None else params,
        x_axis=indep_axis,
        y_axis=param_axis,
        z_axis=color_axis,
        title=color_axis.label,
    )


def color_caption(axis: AxisInfo) -> str:
    symbol = axis.symbol or axis.name
    if axis.units:
        return f"{symbol} ({axis.units})"
    return symbol
