from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
import logging
import threading
from typing import Literal

import numpy as np

from shadeplot.errors import MalformedInput, NothingBinned, UsageError, ZeroSpread
from shadeplot.filters import smooth
from shadeplot.grid import AxisInfo, Grid
from shadeplot.pages import Column, Page, Parameter


LOGGER = logging.getLogger(__name__)

NormalizeMode = Literal["peak", "sum"]

DEFAULT_BINS = 21
AUTO_RANGE_PAD = 1.0001
_SPREAD_CHUNK = 4096


@dataclass(frozen=True)
class AxisBinning:
    bins: int = DEFAULT_BINS
    lo: float | None = None
    hi: float | None = None
    bin_size: float | None = None

    def __post_init__(self) -> None:
        if self.bins < 1:
            raise UsageError("number of bins must be >= 1")
        if self.bin_size is not None and not self.bin_size > 0:
            raise UsageError("bin size must be > 0")
        if self.lo is not None and self.hi is not None and self.hi <= self.lo:
            raise UsageError(f"invalid bin range [{self.lo}, {self.hi}]")


@dataclass(frozen=True)
class SpreadSpec:
    sigma_x: float
    sigma_y: float
    nsigma: float = 3.0
    fold: bool = False
    unnormalized: bool = False

    def __post_init__(self) -> None:
        if not (self.sigma_x > 0 and self.sigma_y > 0):
            raise UsageError("spread sigmas must be > 0")
        if not self.nsigma > 0:
            raise UsageError("spread extent in sigmas must be > 0")


@dataclass(frozen=True)
class HistogramConfig:
    x: AxisBinning = field(default_factory=AxisBinning)
    y: AxisBinning = field(default_factory=AxisBinning)
    z: AxisBinning | None = None
    spread: SpreadSpec | None = None
    average: bool = False
    smooth_passes: int = 0
    normalize: NormalizeMode | None = None
    combine: bool = False
    threads: int = 1
    minimum_scale: float = 0.0
    include_xy: bool = False

    def __post_init__(self) -> None:
        if self.threads < 1:
            raise UsageError("threads must be >= 1")
        if self.smooth_passes < 0:
            raise UsageError("smoothing passes must be >= 0")


@dataclass(frozen=True)
class BinAxis:
    lo: float
    hi: float
    bins: int

    @property
    def step(self) -> float:
        if self.bins == 1:
            return self.hi - self.lo
        return (self.hi - self.lo) / (self.bins - 1)

    def centers(self) -> np.ndarray:
        return self.lo + self.step * np.arange(self.bins, dtype=np.float64)

    def index(self, values: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        inside = np.isfinite(values) & (values >= self.lo) & (values < self.hi)
        if self.bins == 1:
            return np.zeros(values.shape, dtype=np.int64), inside
        with np.errstate(invalid="ignore"):
            idx = np.floor((values - self.lo) / self.step + 0.5)
        idx = np.where(inside, idx, 0).astype(np.int64)
        inside &= (idx >= 0) & (idx < self.bins)
        return idx, inside


@dataclass
class Histogram:
    """Accumulated bins H[iz, ix, iy] with per-bin count and weight sums."""

    values: np.ndarray
    count: np.ndarray
    wsum: np.ndarray
    x: BinAxis
    y: BinAxis
    z: BinAxis | None = None
    n_binned: int = 0

    @property
    def nz(self) -> int:
        return int(self.values.shape[0])

    def z_centers(self) -> np.ndarray | None:
        if self.z is None:
            return None
        return self.z.centers()

    def to_grids(
        self,
        *,
        x_axis: AxisInfo | None = None,
        y_axis: AxisInfo | None = None,
        z_axis: AxisInfo | None = None,
    ) -> list[Grid]:
        z_info = z_axis or AxisInfo(name="frequency")
        grids = []
        for iz in range(self.nz):
            grids.append(
                Grid(
                    z=self.values[iz].copy(),
                    xmin=self.x.lo,
                    dx=self.x.step,
                    ymin=self.y.lo,
                    dy=self.y.step,
                    x_axis=x_axis or AxisInfo(name="x"),
                    y_axis=y_axis or AxisInfo(name="y"),
                    z_axis=z_info,
                    title=z_info.label,
                )
            )
        return grids


class Histogrammer:
    def __init__(self, config: HistogramConfig) -> None:
        self.config = config
        self._lock = threading.Lock()

    def build(
        self,
        x: np.ndarray,
        y: np.ndarray,
        *,
        weight: np.ndarray | None = None,
        z: np.ndarray | None = None,
    ) -> Histogram:
        cfg = self.config
        x = np.asarray(x, dtype=np.float64).reshape(-1)
        y = np.asarray(y, dtype=np.float64).reshape(-1)
        if x.shape != y.shape:
            raise MalformedInput(f"x and y length mismatch: {x.size} != {y.size}")
        w = np.ones_like(x) if weight is None else np.asarray(weight, dtype=np.float64).reshape(-1)
        if w.shape != x.shape:
            raise MalformedInput(f"weight length mismatch: {w.size} != {x.size}")
        if cfg.z is not None:
            if z is None:
                raise UsageError("z slicing requires a z column")
            z = np.asarray(z, dtype=np.float64).reshape(-1)
            if z.shape != x.shape:
                raise MalformedInput(f"z length mismatch: {z.size} != {x.size}")

        x_axis = resolve_axis(x, cfg.x, cfg.minimum_scale, "x")
        y_axis = resolve_axis(y, cfg.y, cfg.minimum_scale, "y")
        z_axis = resolve_axis(z, cfg.z, cfg.minimum_scale, "z") if cfg.z is not None and z is not None else None
        nz = z_axis.bins if z_axis is not None else 1
        shape = (nz, x_axis.bins, y_axis.bins)
        hist = Histogram(
            values=np.zeros(shape, dtype=np.float64),
            count=np.zeros(shape, dtype=np.float64),
            wsum=np.zeros(shape, dtype=np.float64),
            x=x_axis,
            y=y_axis,
            z=z_axis,
        )

        ix, x_in = x_axis.index(x)
        iy, y_in = y_axis.index(y)
        keep = x_in & y_in & np.isfinite(w)
        if z_axis is not None and z is not None:
            iz, z_in = z_axis.index(z)
            keep &= z_in
        else:
            iz = np.zeros_like(ix)
        points = _PointSet(x=x[keep], y=y[keep], w=w[keep], ix=ix[keep], iy=iy[keep], iz=iz[keep])
        self._bin_parallel(hist, points)
        self._finish(hist)
        return hist

    def build_pages(
        self,
        pages: Iterable[Page],
        *,
        x_column: str,
        y_column: str,
        weight_column: str | None = None,
        z_column: str | None = None,
    ) -> Iterator[tuple[Page, Histogram]]:
        """Histogram each page, or every page together in combine mode."""
        if not self.config.combine:
            for page in pages:
                x, y, weight, z = _page_columns(page, x_column, y_column, weight_column, z_column)
                yield page, self.build(x, y, weight=weight, z=z)
            return
        first: Page | None = None
        parts: list[tuple[np.ndarray, ...]] = []
        for page in pages:
            if first is None:
                first = page
            parts.append(_page_columns(page, x_column, y_column, weight_column, z_column))
        if first is None:
            return
        x = np.concatenate([p[0] for p in parts])
        y = np.concatenate([p[1] for p in parts])
        weight = None if weight_column is None else np.concatenate([p[2] for p in parts])
        z = None if z_column is None else np.concatenate([p[3] for p in parts])
        yield first, self.build(x, y, weight=weight, z=z)

    def _bin_parallel(self, hist: Histogram, points: _PointSet) -> None:
        threads = min(self.config.threads, max(1, len(points)))
        if threads <= 1:
            self._bin_range(hist, points, 0, len(points))
            return
        bounds = np.linspace(0, len(points), threads + 1).astype(np.int64)
        errors: list[BaseException] = []

        def _run(start: int, stop: int) -> None:
            try:
                self._bin_range(hist, points, start, stop)
            except BaseException as exc:  # re-raised on the calling thread
                with self._lock:
                    errors.append(exc)

        workers = [
            threading.Thread(target=_run, args=(int(bounds[i]), int(bounds[i + 1])), name=f"shadeplot-hist-{i}", daemon=True)
            for i in range(threads)
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()
        if errors:
            raise errors[0]

    def _bin_range(self, hist: Histogram, points: _PointSet, start: int, stop: int) -> None:
        if stop <= start:
            return
        local_values = np.zeros_like(hist.values)
        local_count = np.zeros_like(hist.count)
        local_wsum = np.zeros_like(hist.wsum)
        index = (points.iz[start:stop], points.ix[start:stop], points.iy[start:stop])
        w = points.w[start:stop]
        # count and weight sum belong to the landing bin even when the value is spread
        np.add.at(local_wsum, index, w)
        np.add.at(local_count, index, 1.0)
        spread = self.config.spread
        if spread is None:
            np.add.at(local_values, index, w)
        else:
            for chunk in range(start, stop, _SPREAD_CHUNK):
                end = min(stop, chunk + _SPREAD_CHUNK)
                _spread_chunk(hist, points, spread, chunk, end, local_values)
        with self._lock:
            hist.values += local_values
            hist.count += local_count
            hist.wsum += local_wsum
            hist.n_binned += stop - start

    def _finish(self, hist: Histogram) -> None:
        cfg = self.config
        if cfg.spread is not None:
            hist.values /= hist.x.step * hist.y.step
        if cfg.average:
            occupied = hist.count > 0
            hist.values = np.where(occupied, hist.values / np.where(occupied, hist.count, 1.0), hist.values)
        if cfg.smooth_passes > 0:
            for iz in range(hist.nz):
                hist.values[iz] = smooth(hist.values[iz], cfg.smooth_passes)
        if cfg.normalize is not None:
            for iz in range(hist.nz):
                slice_ = hist.values[iz]
                norm = float(np.max(slice_)) if cfg.normalize == "peak" else float(np.sum(slice_))
                if hist.n_binned == 0 or norm == 0:
                    raise NothingBinned("no points histogrammed")
                hist.values[iz] = slice_ / norm
        LOGGER.debug("histogram binned %d points into %s bins", hist.n_binned, hist.values.shape)


@dataclass(frozen=True)
class _PointSet:
    x: np.ndarray
    y: np.ndarray
    w: np.ndarray
    ix: np.ndarray
    iy: np.ndarray
    iz: np.ndarray

    def __len__(self) -> int:
        return int(self.x.size)


def resolve_axis(values: np.ndarray | None, binning: AxisBinning, minimum_scale: float, label: str) -> BinAxis:
    lo, hi = binning.lo, binning.hi
    if lo is None or hi is None:
        if values is None:
            raise UsageError(f"{label} range is required")
        finite = values[np.isfinite(values)]
        if finite.size == 0:
            raise MalformedInput(f"no finite {label} values to auto-range")
        vmin = float(np.min(finite))
        vmax = float(np.max(finite))
        mid = (vmin + vmax) / 2.0
        if vmin == vmax:
            if minimum_scale <= 0:
                raise ZeroSpread(f"{label} data has zero spread; give a range or a minimum scale")
            half = minimum_scale / 2.0
        else:
            half = AUTO_RANGE_PAD * (vmax - vmin) / 2.0
        lo = mid - half if lo is None else lo
        hi = mid + half if hi is None else hi
    if hi <= lo:
        raise ZeroSpread(f"{label} range [{lo}, {hi}] is empty")
    bins = binning.bins
    if binning.bin_size is not None:
        bins = max(2, int((hi - lo) / binning.bin_size + 0.5) + 1)
        hi = lo + (bins - 1) * binning.bin_size
    return BinAxis(lo=float(lo), hi=float(hi), bins=bins)


def histogram_to_pages(
    hist: Histogram,
    *,
    output_name: str,
    x_name: str,
    y_name: str,
    z_name: str | None = None,
    x_units: str = "",
    y_units: str = "",
    include_xy: bool = False,
    source: Page | None = None,
) -> list[Page]:
    pages = []
    centers = hist.z_centers()
    for iz in range(hist.nz):
        page = Page(index=iz + 1, description=source.description if source is not None else "")
        params = [
            Parameter("Variable1Name", "string", x_name),
            Parameter("Variable2Name", "string", y_name),
            Parameter(f"{x_name}Minimum", "double", hist.x.lo, units=x_units),
            Parameter(f"{x_name}Interval", "double", hist.x.step, units=x_units),
            Parameter(f"{x_name}Dimension", "long", hist.x.bins),
            Parameter(f"{y_name}Minimum", "double", hist.y.lo, units=y_units),
            Parameter(f"{y_name}Interval", "double", hist.y.step, units=y_units),
            Parameter(f"{y_name}Dimension", "long", hist.y.bins),
            Parameter("PointsBinned", "long64", hist.n_binned),
        ]
        if centers is not None and z_name is not None:
            params.append(Parameter(f"{z_name}Center", "double", float(centers[iz])))
        for param in params:
            page.parameters[param.name] = param
        if include_xy:
            gx, gy = np.meshgrid(hist.x.centers(), hist.y.centers(), indexing="ij")
            page.columns[x_name] = Column(x_name, "double", gx.reshape(-1), units=x_units)
            page.columns[y_name] = Column(y_name, "double", gy.reshape(-1), units=y_units)
        page.columns[output_name] = Column(output_name, "double", hist.values[iz].reshape(-1))
        pages.append(page)
    return pages


def default_output_name(config: HistogramConfig, weight_column: str | None) -> str:
    if config.spread is not None:
        return "Density"
    if config.average and weight_column:
        return weight_column
    return "frequency"


def _spread_chunk(
    hist: Histogram,
    points: _PointSet,
    spread: SpreadSpec,
    start: int,
    stop: int,
    out_values: np.ndarray,
) -> None:
    kx, jx = _axis_kernel(points.x[start:stop], points.ix[start:stop], hist.x, spread.sigma_x, spread)
    ky, jy = _axis_kernel(points.y[start:stop], points.iy[start:stop], hist.y, spread.sigma_y, spread)
    w = points.w[start:stop]
    norm = np.ones_like(w)
    if not spread.unnormalized:
        norm = np.sum(kx, axis=1) * np.sum(ky, axis=1)
        norm = np.where(norm > 0, norm, 1.0)
    kernel = kx[:, :, None] * ky[:, None, :] / norm[:, None, None]
    iz = np.broadcast_to(points.iz[start:stop][:, None, None], kernel.shape)
    ix = np.broadcast_to(jx[:, :, None], kernel.shape)
    iy = np.broadcast_to(jy[:, None, :], kernel.shape)
    index = (iz.reshape(-1), ix.reshape(-1), iy.reshape(-1))
    np.add.at(out_values, index, (kernel * w[:, None, None]).reshape(-1))


def _axis_kernel(
    values: np.ndarray,
    centers: np.ndarray,
    axis: BinAxis,
    sigma: float,
    spread: SpreadSpec,
) -> tuple[np.ndarray, np.ndarray]:
    step = axis.step
    half = int(spread.nsigma * sigma / step + 1)
    offsets = np.arange(-half, half + 1, dtype=np.int64)
    raw = centers[:, None] + offsets[None, :]
    dist = (axis.lo + raw * step - values[:, None]) / sigma
    kernel = np.exp(-0.5 * dist * dist)
    n = axis.bins
    if spread.fold:
        folded = np.where(raw < 0, -raw, raw)
        folded = np.where(folded >= n, 2 * (n - 1) - folded, folded)
        valid = (folded >= 0) & (folded < n)
        index = np.where(valid, folded, 0)
    else:
        valid = (raw >= 0) & (raw < n)
        index = np.where(valid, raw, 0)
    return np.where(valid, kernel, 0.0), index


def _page_columns(
    page: Page,
    x_column: str,
    y_column: str,
    weight_column: str | None,
    z_column: str | None,
) -> tuple[np.ndarray, np.ndarray, np.ndarray | None, np.ndarray | None]:
    x = page.numeric_column(x_column)
    y = page.numeric_column(y_column)
    weight = page.numeric_column(weight_column) if weight_column else None
    z = page.numeric_column(z_column) if z_column else None
    return x, y, weight, z
