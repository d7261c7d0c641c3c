from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from typing import Literal

import numpy as np

from shadeplot.errors import DimensionMismatch, EmptyWindow, MalformedGrid, MalformedInput
from shadeplot.pages import Page


LOGGER = logging.getLogger(__name__)

AxisScale = Literal["linear", "log10", "time"]
DeltasMode = Literal["plain", "fractional", "normalized"]
MajorOrder = Literal["row", "column"]

LOG_SENTINEL = -300.0
_UNIFORM_RTOL = 1e-9


@dataclass(frozen=True)
class AxisInfo:
    name: str = ""
    units: str = ""
    symbol: str = ""
    scale: AxisScale = "linear"

    @property
    def label(self) -> str:
        if self.units:
            return f"{self.name} ({self.units})"
        return self.name


@dataclass
class Grid:
    """Scalar field z[ix, iy] sampled on a rectangular grid."""

    z: np.ndarray
    xmin: float = 0.0
    dx: float = 1.0
    ymin: float = 0.0
    dy: float = 1.0
    xpos: np.ndarray | None = None
    ypos: np.ndarray | None = None
    x_axis: AxisInfo = field(default_factory=AxisInfo)
    y_axis: AxisInfo = field(default_factory=AxisInfo)
    z_axis: AxisInfo = field(default_factory=AxisInfo)
    title: str = ""
    x_offset: int = 0
    y_offset: int = 0
    major_order: MajorOrder = "row"
    y_tick_labels: list[str] | None = None

    def __post_init__(self) -> None:
        self.z = np.asarray(self.z, dtype=np.float64)
        if self.z.ndim != 2:
            raise DimensionMismatch("grid values must be 2-D")
        if self.nx < 2 or self.ny < 2:
            raise MalformedInput(f"grid must be at least 2x2, got {self.nx}x{self.ny}")
        if self.xpos is not None:
            self.xpos = _checked_ticks(self.xpos, self.nx, "x")
            self.xmin = float(self.xpos[0])
        elif not self.dx > 0:
            raise MalformedInput("dx must be > 0")
        if self.ypos is not None:
            self.ypos = _checked_ticks(self.ypos, self.ny, "y")
            self.ymin = float(self.ypos[0])
        elif not self.dy > 0:
            raise MalformedInput("dy must be > 0")

    @property
    def nx(self) -> int:
        return int(self.z.shape[0])

    @property
    def ny(self) -> int:
        return int(self.z.shape[1])

    @property
    def xmax(self) -> float:
        if self.xpos is not None:
            return float(self.xpos[-1])
        return self.xmin + (self.nx - 1) * self.dx

    @property
    def ymax(self) -> float:
        if self.ypos is not None:
            return float(self.ypos[-1])
        return self.ymin + (self.ny - 1) * self.dy

    def x_ticks(self) -> np.ndarray:
        if self.xpos is not None:
            return self.xpos.copy()
        return self.xmin + self.dx * np.arange(self.nx, dtype=np.float64)

    def y_ticks(self) -> np.ndarray:
        if self.ypos is not None:
            return self.ypos.copy()
        return self.ymin + self.dy * np.arange(self.ny, dtype=np.float64)

    def copy(self) -> Grid:
        return replace(
            self,
            z=self.z.copy(),
            xpos=None if self.xpos is None else self.xpos.copy(),
            ypos=None if self.ypos is None else self.ypos.copy(),
            y_tick_labels=None if self.y_tick_labels is None else list(self.y_tick_labels),
        )

    def value_range(self) -> tuple[float, float]:
        finite = self.z[np.isfinite(self.z)]
        if finite.size == 0:
            raise MalformedInput("grid contains no finite values")
        return float(np.min(finite)), float(np.max(finite))

    def swap_axes(self) -> Grid:
        self.z = np.ascontiguousarray(self.z.T)
        self.xmin, self.ymin = self.ymin, self.xmin
        self.dx, self.dy = self.dy, self.dx
        self.xpos, self.ypos = self.ypos, self.xpos
        self.x_axis, self.y_axis = self.y_axis, self.x_axis
        self.x_offset, self.y_offset = self.y_offset, self.x_offset
        self.major_order = "column" if self.major_order == "row" else "row"
        self.y_tick_labels = None
        return self

    def flip_y(self) -> Grid:
        self.z = np.ascontiguousarray(self.z[:, ::-1])
        if self.y_tick_labels is not None:
            self.y_tick_labels = list(reversed(self.y_tick_labels))
        return self

    def log_transform(self, floor: float | None = None) -> Grid:
        z = self.z
        bad = np.isfinite(z) & (z <= 0)
        if floor is not None and floor > 0:
            fill = float(np.log10(floor))
        else:
            fill = LOG_SENTINEL
        with np.errstate(divide="ignore", invalid="ignore"):
            out = np.log10(np.where(bad, 1.0, z))
        out[bad] = fill
        if np.any(bad):
            LOGGER.debug("log transform replaced non-positive values; count=%d fill=%g", int(np.sum(bad)), fill)
        self.z = out
        return self

    def apply_deltas(self, mode: DeltasMode) -> Grid:
        z = self.z
        with np.errstate(invalid="ignore", divide="ignore"):
            finite = np.isfinite(z)
            counts = np.sum(finite, axis=0)
            sums = np.sum(np.where(finite, z, 0.0), axis=0)
            mean = np.where(counts > 0, sums / np.maximum(counts, 1), np.nan)
            delta = z - mean[None, :]
            if mode == "plain":
                out = delta
            elif mode == "fractional":
                out = np.where(mean[None, :] != 0, delta / mean[None, :], np.nan)
            elif mode == "normalized":
                hi = np.max(np.where(finite, z, -np.inf), axis=0)
                lo = np.min(np.where(finite, z, np.inf), axis=0)
                spread = hi - lo
                factor = np.where(np.isfinite(spread) & (spread > 0), 1.0 / np.where(spread > 0, spread, 1.0), 0.0)
                out = delta * factor[None, :]
            else:
                raise ValueError(f"unknown deltas mode: {mode}")
        self.z = out
        return self

    def window(
        self,
        x_lo: float | None = None,
        x_hi: float | None = None,
        y_lo: float | None = None,
        y_hi: float | None = None,
    ) -> Grid:
        ix = _window_indices(self.x_ticks(), x_lo, x_hi, self.dx if self.xpos is None else None)
        iy = _window_indices(self.y_ticks(), y_lo, y_hi, self.dy if self.ypos is None else None)
        if ix is None or iy is None:
            raise EmptyWindow(
                f"window [{x_lo}, {x_hi}] x [{y_lo}, {y_hi}] excludes the grid "
                f"[{self.xmin:g}, {self.xmax:g}] x [{self.ymin:g}, {self.ymax:g}]"
            )
        (x0, x1), (y0, y1) = ix, iy
        self.z = self.z[x0:x1, y0:y1].copy()
        if self.xpos is not None:
            self.xpos = self.xpos[x0:x1].copy()
            self.xmin = float(self.xpos[0])
        else:
            self.xmin = self.xmin + x0 * self.dx
        if self.ypos is not None:
            self.ypos = self.ypos[y0:y1].copy()
            self.ymin = float(self.ypos[0])
        else:
            self.ymin = self.ymin + y0 * self.dy
        if self.y_tick_labels is not None:
            self.y_tick_labels = self.y_tick_labels[y0:y1]
        self.x_offset += x0
        self.y_offset += y0
        return self

    def log_x_ticks(self) -> Grid:
        ticks = self.x_ticks()
        if np.any(ticks <= 0):
            LOGGER.warning("x ticks are not all positive; log scaling of x skipped")
            return self
        self.xpos = _checked_ticks(np.log10(ticks), self.nx, "x")
        self.xmin = float(self.xpos[0])
        self.x_axis = replace(self.x_axis, scale="log10")
        return self


def grid_from_columns(
    x: np.ndarray,
    y: np.ndarray,
    z: np.ndarray,
    *,
    x_axis: AxisInfo | None = None,
    y_axis: AxisInfo | None = None,
    z_axis: AxisInfo | None = None,
) -> Grid:
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    z = np.asarray(z, dtype=np.float64)
    if not (x.shape == y.shape == z.shape) or x.ndim != 1:
        raise MalformedInput("x, y and z columns must be 1-D with equal lengths")
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        raise MalformedInput("x and y columns must be finite")
    xs, x_index = np.unique(x, return_inverse=True)
    ys, y_index = np.unique(y, return_inverse=True)
    if xs.size * ys.size != x.size:
        raise MalformedGrid(
            f"{xs.size} unique x values and {ys.size} unique y values do not tabulate {x.size} rows"
        )
    values = np.full((xs.size, ys.size), np.nan, dtype=np.float64)
    flat = x_index * ys.size + y_index
    if np.unique(flat).size != flat.size:
        raise MalformedGrid("duplicate (x, y) pairs in grid columns")
    values[x_index, y_index] = z
    z_info = z_axis or AxisInfo(name="z")
    return _grid_from_ticks(
        values,
        xs,
        ys,
        x_axis=x_axis or AxisInfo(name="x"),
        y_axis=y_axis or AxisInfo(name="y"),
        z_axis=z_info,
        title=z_info.label,
    )


def grid_from_array(
    values: np.ndarray,
    x: np.ndarray | None = None,
    y: np.ndarray | None = None,
    *,
    x_axis: AxisInfo | None = None,
    y_axis: AxisInfo | None = None,
    z_axis: AxisInfo | None = None,
) -> Grid:
    """Build a grid from a row-major (ny rows by nx columns) array."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 2:
        raise DimensionMismatch(f"array must be 2-D, got {arr.ndim} dimensions")
    ny, nx = arr.shape
    xs = np.arange(nx, dtype=np.float64) if x is None else np.asarray(x, dtype=np.float64).reshape(-1)
    ys = np.arange(ny, dtype=np.float64) if y is None else np.asarray(y, dtype=np.float64).reshape(-1)
    if xs.size != nx:
        raise DimensionMismatch(f"x axis has {xs.size} values, array has {nx} columns")
    if ys.size != ny:
        raise DimensionMismatch(f"y axis has {ys.size} values, array has {ny} rows")
    z_info = z_axis or AxisInfo(name="z")
    return _grid_from_ticks(
        arr.T,
        xs,
        ys,
        x_axis=x_axis or AxisInfo(name="x"),
        y_axis=y_axis or AxisInfo(name="y"),
        z_axis=z_info,
        title=z_info.label,
    )


@dataclass(frozen=True)
class DimensionParameters:
    name: str
    units: str
    minimum: float
    interval: float
    dimension: int


def read_dimension_parameters(page: Page, name_parameter: str) -> DimensionParameters:
    if not page.has_parameter(name_parameter):
        raise MalformedInput(f"parameter {name_parameter} is missing")
    name = page.string_parameter(name_parameter)
    for suffix in ("Interval", "Minimum"):
        param = page.parameter(f"{name}{suffix}")
        if param.type not in ("float", "double"):
            raise MalformedInput(f"parameter {name}{suffix} must be floating point")
    interval = page.numeric_parameter(f"{name}Interval")
    minimum = page.numeric_parameter(f"{name}Minimum")
    dimension = page.integer_parameter(f"{name}Dimension")
    units = page.parameter(f"{name}Minimum").units
    if not units and page.has_parameter(f"{name}Units"):
        units = page.string_parameter(f"{name}Units")
    return DimensionParameters(name=name, units=units, minimum=minimum, interval=interval, dimension=dimension)


def grid_from_parameters(page: Page, quantity: str) -> Grid:
    column = page.column(quantity)
    values = page.numeric_column(quantity)
    z_axis = AxisInfo(name=quantity, units=column.units, symbol=column.symbol)
    if page.has_parameter("NumberOfRows") and page.has_parameter("NumberOfColumns"):
        try:
            nx = page.integer_parameter("NumberOfRows")
            ny = page.integer_parameter("NumberOfColumns")
        except MalformedInput:
            LOGGER.warning("NumberOfRows/NumberOfColumns are not integers; trying Variable1Name/Variable2Name")
        else:
            grid = Grid(
                z=_reshape(values, nx, ny, quantity),
                x_axis=AxisInfo(name="row"),
                y_axis=AxisInfo(name="column"),
                z_axis=z_axis,
                title=f"contours of constant {quantity}",
            )
            return grid
    xdim = read_dimension_parameters(page, "Variable1Name")
    ydim = read_dimension_parameters(page, "Variable2Name")
    return Grid(
        z=_reshape(values, xdim.dimension, ydim.dimension, quantity),
        xmin=xdim.minimum,
        dx=xdim.interval,
        ymin=ydim.minimum,
        dy=ydim.interval,
        x_axis=AxisInfo(name=xdim.name, units=xdim.units),
        y_axis=AxisInfo(name=ydim.name, units=ydim.units),
        z_axis=z_axis,
        title=f"contours of constant {quantity}",
    )


def _reshape(values: np.ndarray, nx: int, ny: int, name: str) -> np.ndarray:
    if nx < 2 or ny < 2:
        raise MalformedInput(f"{name}: grid dimensions must be >= 2, got {nx}x{ny}")
    if values.size != nx * ny:
        raise DimensionMismatch(f"{name}: {values.size} rows do not fill a {nx}x{ny} grid")
    return values.reshape(nx, ny)


def _grid_from_ticks(
    values: np.ndarray,
    xs: np.ndarray,
    ys: np.ndarray,
    *,
    x_axis: AxisInfo,
    y_axis: AxisInfo,
    z_axis: AxisInfo,
    title: str,
) -> Grid:
    values = np.asarray(values, dtype=np.float64)
    x_order = np.argsort(xs, kind="stable")
    y_order = np.argsort(ys, kind="stable")
    xs = xs[x_order]
    ys = ys[y_order]
    values = values[np.ix_(x_order, y_order)]
    x_uniform = uniform_spacing(xs)
    y_uniform = uniform_spacing(ys)
    return Grid(
        z=values,
        xmin=float(xs[0]) if xs.size else 0.0,
        dx=x_uniform if x_uniform is not None else 1.0,
        ymin=float(ys[0]) if ys.size else 0.0,
        dy=y_uniform if y_uniform is not None else 1.0,
        xpos=None if x_uniform is not None else xs,
        ypos=None if y_uniform is not None else ys,
        x_axis=x_axis,
        y_axis=y_axis,
        z_axis=z_axis,
        title=title,
    )


def uniform_spacing(ticks: np.ndarray) -> float | None:
    if ticks.size < 2:
        return None
    diffs = np.diff(ticks)
    step = float(diffs[0])
    if step <= 0:
        return None
    if np.allclose(diffs, step, rtol=_UNIFORM_RTOL, atol=abs(step) * _UNIFORM_RTOL):
        return float((ticks[-1] - ticks[0]) / (ticks.size - 1))
    return None


def _checked_ticks(ticks: np.ndarray, expected: int, label: str) -> np.ndarray:
    arr = np.asarray(ticks, dtype=np.float64).reshape(-1)
    if arr.size != expected:
        raise DimensionMismatch(f"{label} ticks have {arr.size} values, grid has {expected}")
    if not np.all(np.isfinite(arr)):
        raise MalformedInput(f"{label} ticks must be finite")
    if np.any(np.diff(arr) <= 0):
        raise MalformedInput(f"{label} ticks must be strictly increasing")
    return arr


def _window_indices(
    ticks: np.ndarray,
    lo: float | None,
    hi: float | None,
    step: float | None,
) -> tuple[int, int] | None:
    if lo is None and hi is None:
        return 0, ticks.size
    lo_v = -np.inf if lo is None else float(lo)
    hi_v = np.inf if hi is None else float(hi)
    if lo_v > hi_v:
        lo_v, hi_v = hi_v, lo_v
    tol = abs(step) * 1e-9 if step else 1e-12 * max(1.0, float(np.max(np.abs(ticks))))
    inside = np.nonzero((ticks >= lo_v - tol) & (ticks <= hi_v + tol))[0]
    if inside.size < 2:
        return None
    return int(inside[0]), int(inside[-1]) + 1
