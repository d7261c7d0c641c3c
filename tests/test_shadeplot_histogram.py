from __future__ import annotations

import unittest

import numpy as np

from shadeplot.errors import MalformedInput, NothingBinned, UsageError, ZeroSpread
from shadeplot.grid import grid_from_parameters
from shadeplot.histogram import (
    AxisBinning,
    BinAxis,
    HistogramConfig,
    Histogrammer,
    SpreadSpec,
    default_output_name,
    histogram_to_pages,
    resolve_axis,
)
from shadeplot.pages import Column, Page


def _unit_square(n: int = 100, seed: int = 3) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    return rng.uniform(0.0, 1.0, n), rng.uniform(0.0, 1.0, n)


def _fixed(bins: int = 10) -> HistogramConfig:
    return HistogramConfig(x=AxisBinning(bins, 0.0, 1.0), y=AxisBinning(bins, 0.0, 1.0))


def _points_page(index: int, x: np.ndarray, y: np.ndarray, w: np.ndarray | None = None) -> Page:
    page = Page(index=index)
    page.columns["x"] = Column("x", "double", x, units="m")
    page.columns["y"] = Column("y", "double", y)
    if w is not None:
        page.columns["w"] = Column("w", "double", w)
    return page


class BinAxisTests(unittest.TestCase):
    def test_bins_are_centered_on_ticks(self) -> None:
        axis = BinAxis(lo=0.0, hi=1.0, bins=11)
        self.assertAlmostEqual(axis.step, 0.1)
        idx, inside = axis.index(np.asarray([0.0, 0.04, 0.06, 0.99, 1.0, -0.01, np.nan]))
        self.assertEqual(idx[:4].tolist(), [0, 0, 1, 10])
        self.assertEqual(inside.tolist(), [True, True, True, True, False, False, False])

    def test_bin_size_overrides_count(self) -> None:
        axis = resolve_axis(None, AxisBinning(bins=3, lo=0.0, hi=1.0, bin_size=0.25), 0.0, "x")
        self.assertEqual(axis.bins, 5)
        self.assertAlmostEqual(axis.step, 0.25)

    def test_auto_range_pads_data_extent(self) -> None:
        axis = resolve_axis(np.asarray([1.0, 3.0]), AxisBinning(bins=5), 0.0, "x")
        self.assertAlmostEqual((axis.lo + axis.hi) / 2.0, 2.0)
        self.assertGreater(axis.hi, 3.0)
        self.assertLess(axis.lo, 1.0)

    def test_constant_data_needs_minimum_scale(self) -> None:
        with self.assertRaises(ZeroSpread):
            resolve_axis(np.full(4, 2.0), AxisBinning(bins=5), 0.0, "x")
        axis = resolve_axis(np.full(4, 2.0), AxisBinning(bins=5), 0.5, "x")
        self.assertAlmostEqual(axis.lo, 1.75)
        self.assertAlmostEqual(axis.hi, 2.25)

    def test_invalid_binning_is_a_usage_error(self) -> None:
        with self.assertRaises(UsageError):
            AxisBinning(bins=0)
        with self.assertRaises(UsageError):
            AxisBinning(bins=4, lo=1.0, hi=1.0)
        with self.assertRaises(UsageError):
            SpreadSpec(0.0, 1.0)


class HistogrammerTests(unittest.TestCase):
    def test_uniform_points_are_conserved(self) -> None:
        x, y = _unit_square()
        hist = Histogrammer(_fixed()).build(x, y)
        self.assertEqual(hist.values.shape, (1, 10, 10))
        self.assertEqual(hist.n_binned, 100)
        self.assertAlmostEqual(float(np.sum(hist.values)), 100.0)
        occupied = hist.count > 0
        np.testing.assert_array_equal(hist.values[occupied], hist.count[occupied])

    def test_weighted_sum_counts_only_points_in_range(self) -> None:
        x = np.asarray([0.1, 0.5, 0.9, 1.5, -0.2])
        y = np.asarray([0.1, 0.5, 0.9, 0.5, 0.5])
        w = np.asarray([1.0, 2.0, 3.0, 100.0, 100.0])
        hist = Histogrammer(_fixed(5)).build(x, y, weight=w)
        self.assertEqual(hist.n_binned, 3)
        self.assertAlmostEqual(float(np.sum(hist.values)), 6.0)

    def test_spread_preserves_total_weight(self) -> None:
        x, y = _unit_square(60)
        x = 0.2 + 0.6 * x
        y = 0.2 + 0.6 * y
        w = np.linspace(0.5, 2.0, x.size)
        cfg = HistogramConfig(
            x=AxisBinning(21, 0.0, 1.0),
            y=AxisBinning(21, 0.0, 1.0),
            spread=SpreadSpec(0.08, 0.05),
        )
        hist = Histogrammer(cfg).build(x, y, weight=w)
        total = float(np.sum(hist.values)) * hist.x.step * hist.y.step
        self.assertLess(abs(total - float(np.sum(w))) / float(np.sum(w)), 1e-6)

    def test_spread_near_edge_loses_weight_unless_folded(self) -> None:
        x = np.asarray([0.01])
        y = np.asarray([0.5])
        base = dict(x=AxisBinning(11, 0.0, 1.0), y=AxisBinning(11, 0.0, 1.0))
        cut = Histogrammer(HistogramConfig(**base, spread=SpreadSpec(0.1, 0.1, unnormalized=True))).build(x, y)
        folded = Histogrammer(HistogramConfig(**base, spread=SpreadSpec(0.1, 0.1, fold=True, unnormalized=True))).build(x, y)
        self.assertGreater(float(np.sum(folded.values)), float(np.sum(cut.values)))

    def test_threads_give_the_same_histogram(self) -> None:
        rng = np.random.default_rng(11)
        x = rng.normal(0.5, 0.2, 5000)
        y = rng.normal(0.5, 0.2, 5000)
        serial = Histogrammer(_fixed(16)).build(x, y)
        threaded_cfg = HistogramConfig(x=AxisBinning(16, 0.0, 1.0), y=AxisBinning(16, 0.0, 1.0), threads=4)
        threaded = Histogrammer(threaded_cfg).build(x, y)
        np.testing.assert_allclose(threaded.values, serial.values)
        self.assertEqual(threaded.n_binned, serial.n_binned)

    def test_average_divides_weight_by_count(self) -> None:
        x = np.asarray([0.1, 0.1, 0.9])
        y = np.asarray([0.1, 0.1, 0.9])
        w = np.asarray([2.0, 4.0, 5.0])
        cfg = HistogramConfig(x=AxisBinning(2, 0.0, 1.0), y=AxisBinning(2, 0.0, 1.0), average=True)
        hist = Histogrammer(cfg).build(x, y, weight=w)
        self.assertAlmostEqual(hist.values[0, 0, 0], 3.0)
        self.assertAlmostEqual(hist.values[0, 1, 1], 5.0)
        self.assertEqual(hist.values[0, 0, 1], 0.0)

    def test_spread_counts_only_the_landing_bin(self) -> None:
        x = np.asarray([0.5])
        y = np.asarray([0.5])
        w = np.asarray([4.0])
        base = dict(x=AxisBinning(5, 0.0, 1.0), y=AxisBinning(5, 0.0, 1.0), spread=SpreadSpec(0.3, 0.3))
        plain = Histogrammer(HistogramConfig(**base)).build(x, y, weight=w)
        averaged = Histogrammer(HistogramConfig(**base, average=True)).build(x, y, weight=w)
        self.assertEqual(float(np.sum(averaged.count)), 1.0)
        self.assertEqual(int(np.count_nonzero(averaged.count)), 1)
        self.assertEqual(averaged.count[0, 2, 2], 1.0)
        self.assertAlmostEqual(averaged.wsum[0, 2, 2], 4.0)
        # one point per landing bin: averaging leaves the spread density as it is
        np.testing.assert_allclose(averaged.values, plain.values)
        self.assertGreater(averaged.values[0, 2, 2], averaged.values[0, 0, 0])
        self.assertGreater(averaged.values[0, 0, 0], 0.0)

    def test_normalize_peak_and_sum(self) -> None:
        x, y = _unit_square(50)
        cfg = HistogramConfig(x=AxisBinning(5, 0.0, 1.0), y=AxisBinning(5, 0.0, 1.0), normalize="peak")
        self.assertAlmostEqual(float(np.max(Histogrammer(cfg).build(x, y).values)), 1.0)
        cfg = HistogramConfig(x=AxisBinning(5, 0.0, 1.0), y=AxisBinning(5, 0.0, 1.0), normalize="sum")
        self.assertAlmostEqual(float(np.sum(Histogrammer(cfg).build(x, y).values)), 1.0)

    def test_normalize_with_nothing_binned(self) -> None:
        cfg = HistogramConfig(x=AxisBinning(5, 0.0, 1.0), y=AxisBinning(5, 0.0, 1.0), normalize="peak")
        with self.assertRaises(NothingBinned):
            Histogrammer(cfg).build(np.asarray([5.0]), np.asarray([5.0]))

    def test_z_slices(self) -> None:
        x, y = _unit_square(40)
        z = np.where(np.arange(40) < 10, 0.1, 0.9)
        cfg = HistogramConfig(
            x=AxisBinning(4, 0.0, 1.0),
            y=AxisBinning(4, 0.0, 1.0),
            z=AxisBinning(2, 0.0, 1.0),
        )
        hist = Histogrammer(cfg).build(x, y, z=z)
        self.assertEqual(hist.nz, 2)
        self.assertAlmostEqual(float(np.sum(hist.values[0])), 10.0)
        self.assertAlmostEqual(float(np.sum(hist.values[1])), 30.0)
        with self.assertRaises(UsageError):
            Histogrammer(cfg).build(x, y)

    def test_length_mismatch(self) -> None:
        with self.assertRaises(MalformedInput):
            Histogrammer(_fixed()).build(np.zeros(3), np.zeros(4))

    def test_pages_are_combined_on_request(self) -> None:
        x, y = _unit_square(30)
        pages = [_points_page(1, x[:10], y[:10]), _points_page(2, x[10:], y[10:])]
        separate = list(Histogrammer(_fixed(5)).build_pages(pages, x_column="x", y_column="y"))
        self.assertEqual([h.n_binned for _, h in separate], [10, 20])
        combined_cfg = HistogramConfig(x=AxisBinning(5, 0.0, 1.0), y=AxisBinning(5, 0.0, 1.0), combine=True)
        combined = list(Histogrammer(combined_cfg).build_pages(pages, x_column="x", y_column="y"))
        self.assertEqual(len(combined), 1)
        self.assertIs(combined[0][0], pages[0])
        self.assertEqual(combined[0][1].n_binned, 30)


class HistogramPagesTests(unittest.TestCase):
    def test_pages_describe_a_parameterized_grid(self) -> None:
        x, y = _unit_square(25)
        hist = Histogrammer(_fixed(6)).build(x, y)
        (page,) = histogram_to_pages(hist, output_name="frequency", x_name="x", y_name="y", x_units="m")
        self.assertEqual(page.integer_parameter("PointsBinned"), 25)
        grid = grid_from_parameters(page, "frequency")
        self.assertEqual((grid.nx, grid.ny), (6, 6))
        self.assertAlmostEqual(grid.dx, 0.2)
        self.assertEqual(grid.x_axis.units, "m")
        np.testing.assert_array_equal(grid.z, hist.values[0])

    def test_include_xy_adds_center_columns(self) -> None:
        hist = Histogrammer(_fixed(3)).build(np.asarray([0.2]), np.asarray([0.7]))
        (page,) = histogram_to_pages(hist, output_name="frequency", x_name="x", y_name="y", include_xy=True)
        self.assertEqual(page.numeric_column("x").tolist(), [0.0, 0.0, 0.0, 0.5, 0.5, 0.5, 1.0, 1.0, 1.0])
        self.assertEqual(page.numeric_column("y").tolist(), [0.0, 0.5, 1.0] * 3)

    def test_default_output_names(self) -> None:
        self.assertEqual(default_output_name(HistogramConfig(), None), "frequency")
        self.assertEqual(default_output_name(HistogramConfig(average=True), "charge"), "charge")
        self.assertEqual(default_output_name(HistogramConfig(spread=SpreadSpec(1.0, 1.0)), "charge"), "Density")

    def test_grids_carry_axis_steps(self) -> None:
        hist = Histogrammer(_fixed(5)).build(*_unit_square(10))
        (grid,) = hist.to_grids()
        self.assertEqual(grid.z_axis.name, "frequency")
        self.assertAlmostEqual(grid.dy, 0.25)


if __name__ == "__main__":
    unittest.main()
