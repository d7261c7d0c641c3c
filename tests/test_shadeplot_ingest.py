from __future__ import annotations

import unittest

import numpy as np

from shadeplot.errors import DimensionMismatch, MalformedInput, UsageError
from shadeplot.grid import AxisInfo
from shadeplot.ingest import (
    ArrayIngest,
    ColumnMatchIngest,
    EquationIngest,
    QuantityIngest,
    WaterfallIngest,
    XYZIngest,
    build_grid,
    build_waterfall,
    color_caption,
)
from shadeplot.pages import ArrayData, Column, Page, Parameter


def _set(page: Page, *params: Parameter) -> Page:
    for param in params:
        page.parameters[param.name] = param
    return page


def _dimension_page() -> Page:
    return _set(
        Page(index=1),
        Parameter("Variable1Name", "string", "x"),
        Parameter("Variable2Name", "string", "y"),
        Parameter("xMinimum", "double", 0.0),
        Parameter("xInterval", "double", 1.0),
        Parameter("xDimension", "long", 4),
        Parameter("yMinimum", "double", 0.0),
        Parameter("yInterval", "double", 0.5),
        Parameter("yDimension", "long", 3),
        Parameter("scale", "double", 2.0),
    )


def _waterfall_pages(count: int = 200, rows: int = 100) -> list[Page]:
    pages = []
    s = np.arange(rows, dtype=np.float64)
    for k in range(count):
        page = _set(Page(index=k + 1), Parameter("Time", "double", float(k), units="s"))
        page.columns["s"] = Column("s", "double", s, units="m")
        page.columns["amp"] = Column("amp", "double", np.sin(s / 10.0 + k), units="V")
        pages.append(page)
    return pages


class SinglePageIngestTests(unittest.TestCase):
    def test_quantity(self) -> None:
        page = _dimension_page()
        page.columns["Ez"] = Column("Ez", "double", np.arange(12, dtype=np.float64))
        grid = build_grid(page, QuantityIngest("Ez"))
        self.assertEqual((grid.nx, grid.ny), (4, 3))

    def test_rpn_equation_uses_parameters(self) -> None:
        grid = build_grid(_dimension_page(), EquationIngest("x y + scale *"))
        self.assertEqual((grid.nx, grid.ny), (4, 3))
        self.assertAlmostEqual(grid.z[3, 2], (3.0 + 1.0) * 2.0)
        self.assertEqual(grid.title, "x y + scale *")

    def test_algebraic_equation_constant_broadcasts(self) -> None:
        grid = build_grid(_dimension_page(), EquationIngest("2 * scale", algebraic=True))
        np.testing.assert_array_equal(grid.z, np.full((4, 3), 4.0))

    def test_column_match(self) -> None:
        page = Page(index=1)
        page.columns["t"] = Column("t", "double", np.asarray([2.0, 0.0, 1.0]), units="s")
        page.columns["ch1"] = Column("ch1", "double", np.asarray([12.0, 10.0, 11.0]), units="V")
        page.columns["ch2"] = Column("ch2", "double", np.asarray([22.0, 20.0, 21.0]), units="V")
        page.columns["other"] = Column("other", "double", np.zeros(3))
        grid = build_grid(page, ColumnMatchIngest("t", ("ch*",)))
        self.assertEqual((grid.nx, grid.ny), (3, 2))
        np.testing.assert_array_equal(grid.z[:, 0], [10.0, 11.0, 12.0])
        self.assertEqual(grid.y_tick_labels, ["ch1", "ch2"])
        self.assertEqual(grid.z_axis.units, "V")
        self.assertEqual(grid.x_axis.label, "t (s)")

    def test_column_match_needs_two_columns(self) -> None:
        page = Page(index=1)
        page.columns["t"] = Column("t", "double", np.arange(3.0))
        page.columns["ch1"] = Column("ch1", "double", np.arange(3.0))
        with self.assertRaises(MalformedInput):
            build_grid(page, ColumnMatchIngest("t", ("ch*",)))

    def test_column_match_repeated_x_uses_row_index(self) -> None:
        page = Page(index=1)
        page.columns["t"] = Column("t", "double", np.zeros(3))
        page.columns["a"] = Column("a", "double", np.arange(3.0))
        page.columns["b"] = Column("b", "double", np.arange(3.0))
        with self.assertLogs("shadeplot.ingest", level="WARNING"):
            grid = build_grid(page, ColumnMatchIngest("t", ("a", "b")))
        self.assertEqual(grid.x_axis.name, "row")

    def test_array_with_axes(self) -> None:
        page = Page(index=1)
        page.arrays["I"] = ArrayData("I", "double", np.arange(6, dtype=np.float64).reshape(2, 3), units="W")
        page.arrays["u"] = ArrayData("u", "double", np.asarray([0.0, 1.0, 2.0]), units="mm")
        page.arrays["v"] = ArrayData("v", "double", np.asarray([5.0, 7.0]))
        grid = build_grid(page, ArrayIngest("I", "u", "v"))
        self.assertEqual((grid.nx, grid.ny), (3, 2))
        self.assertEqual(grid.z[2, 1], 5.0)
        self.assertEqual(grid.ymin, 5.0)
        self.assertEqual(grid.x_axis.units, "mm")
        with self.assertRaises(UsageError):
            build_grid(page, ArrayIngest("I", "u"))
        page.arrays["v"] = ArrayData("v", "double", np.asarray([5.0, 7.0, 9.0]))
        with self.assertRaises(DimensionMismatch):
            build_grid(page, ArrayIngest("I", "u", "v"))

    def test_xyz_columns(self) -> None:
        page = Page(index=1)
        page.columns["a"] = Column("a", "double", np.asarray([0.0, 0.0, 1.0, 1.0]), units="m")
        page.columns["b"] = Column("b", "double", np.asarray([0.0, 1.0, 0.0, 1.0]))
        page.columns["c"] = Column("c", "double", np.asarray([1.0, 2.0, 3.0, 4.0]), symbol="ρ")
        grid = build_grid(page, XYZIngest("a", "b", "c"))
        self.assertEqual(grid.z[1, 0], 3.0)
        self.assertEqual(grid.x_axis.units, "m")
        self.assertEqual(grid.z_axis.symbol, "ρ")


class WaterfallTests(unittest.TestCase):
    def test_vertical_scroll_stacks_pages_along_x(self) -> None:
        grid = build_waterfall(_waterfall_pages(), WaterfallIngest("Time", "s", "amp"))
        self.assertEqual((grid.nx, grid.ny), (200, 100))
        self.assertEqual(grid.x_axis.name, "Time")
        self.assertEqual(grid.x_axis.units, "s")
        self.assertEqual(grid.y_axis.name, "s")
        self.assertAlmostEqual(grid.z[7, 3], np.sin(0.3 + 7))

    def test_horizontal_scroll_transposes(self) -> None:
        grid = build_waterfall(_waterfall_pages(5, 8), WaterfallIngest("Time", "s", "amp", scroll="horizontal"))
        self.assertEqual((grid.nx, grid.ny), (8, 5))
        self.assertEqual(grid.y_axis.name, "Time")

    def test_pages_sorted_by_parameter(self) -> None:
        pages = list(reversed(_waterfall_pages(4, 6)))
        grid = build_waterfall(pages, WaterfallIngest("Time", "s", "amp"))
        self.assertEqual(grid.xmin, 0.0)
        self.assertAlmostEqual(grid.z[0, 0], np.sin(0.0))

    def test_irregular_parameter_keeps_positions(self) -> None:
        pages = _waterfall_pages(3, 4)
        pages[2].parameters["Time"] = Parameter("Time", "double", 10.0)
        grid = build_waterfall(pages, WaterfallIngest("Time", "s", "amp"))
        np.testing.assert_array_equal(grid.x_ticks(), [0.0, 1.0, 10.0])

    def test_short_page_and_single_page(self) -> None:
        pages = _waterfall_pages(3, 5)
        pages[1].columns["s"] = Column("s", "double", np.arange(3.0))
        pages[1].columns["amp"] = Column("amp", "double", np.zeros(3))
        with self.assertRaises(MalformedInput):
            build_waterfall(pages, WaterfallIngest("Time", "s", "amp"))
        with self.assertRaises(MalformedInput):
            build_waterfall(_waterfall_pages(1, 5), WaterfallIngest("Time", "s", "amp"))

    def test_longer_page_with_lower_parameter_is_cut_to_first_page_rows(self) -> None:
        first = _set(Page(index=1), Parameter("Time", "double", 2.0, units="s"))
        first.columns["s"] = Column("s", "double", np.asarray([0.0, 1.0, 3.0]))
        first.columns["amp"] = Column("amp", "double", np.asarray([1.0, 2.0, 3.0]))
        second = _set(Page(index=2), Parameter("Time", "double", 1.0, units="s"))
        second.columns["s"] = Column("s", "double", np.asarray([0.0, 1.0, 3.0, 7.0]))
        second.columns["amp"] = Column("amp", "double", np.asarray([4.0, 5.0, 6.0, 7.0]))
        grid = build_waterfall([first, second], WaterfallIngest("Time", "s", "amp"))
        self.assertEqual((grid.nx, grid.ny), (2, 3))
        np.testing.assert_array_equal(grid.y_ticks(), [0.0, 1.0, 3.0])
        np.testing.assert_array_equal(grid.x_ticks(), [1.0, 2.0])
        np.testing.assert_array_equal(grid.z, [[4.0, 5.0, 6.0], [1.0, 2.0, 3.0]])

    def test_differing_independent_values_are_reported(self) -> None:
        pages = _waterfall_pages(3, 4)
        pages[2].columns["s"] = Column("s", "double", np.asarray([0.0, 1.5, 2.0, 3.0]))
        with self.assertLogs("shadeplot.ingest", level="WARNING") as logs:
            grid = build_waterfall(pages, WaterfallIngest("Time", "s", "amp"))
        self.assertTrue(any("1 waterfall pages" in line for line in logs.output))
        np.testing.assert_array_equal(grid.y_ticks(), [0.0, 1.0, 2.0, 3.0])

    def test_color_caption(self) -> None:
        self.assertEqual(color_caption(AxisInfo(name="amp", units="V")), "amp (V)")
        self.assertEqual(color_caption(AxisInfo(name="amp", symbol="A")), "A")


if __name__ == "__main__":
    unittest.main()
