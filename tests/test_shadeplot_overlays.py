from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

import numpy as np

from shadeplot.errors import MalformedInput, UsageError
from shadeplot.layout import DEVICE_HEIGHT, DEVICE_WIDTH, Rect, build_mapping, panel_space
from shadeplot.overlays import (
    Coordinate,
    DrawLineSpec,
    Shape,
    ShapeSpec,
    clip_polyline,
    clip_segment,
    load_shapes,
    shape_segments,
)
from shadeplot.pages import Column, JsonlPageWriter, Page, Parameter


def _full_plane_mapping():
    return build_mapping(Rect(0.0, 10.0, 0.0, 10.0), panel_space(fill_screen=True))


class ClipTests(unittest.TestCase):
    box = Rect(0.0, 10.0, 0.0, 10.0)

    def test_inside_segment_is_unchanged(self) -> None:
        self.assertEqual(clip_segment(1.0, 2.0, 3.0, 4.0, self.box), (1.0, 2.0, 3.0, 4.0))

    def test_crossing_segment_is_cut_at_both_edges(self) -> None:
        self.assertEqual(clip_segment(-5.0, 5.0, 15.0, 5.0, self.box), (0.0, 5.0, 10.0, 5.0))

    def test_missing_and_non_finite_segments(self) -> None:
        self.assertIsNone(clip_segment(11.0, 0.0, 12.0, 5.0, self.box))
        self.assertIsNone(clip_segment(float("nan"), 0.0, 1.0, 1.0, self.box))

    def test_polyline_splits_when_it_reenters(self) -> None:
        pieces = clip_polyline(np.asarray([5.0, 15.0, 5.0]), np.asarray([5.0, 5.0, 6.0]), self.box)
        self.assertEqual(len(pieces), 2)
        np.testing.assert_allclose(pieces[0][0], [5.0, 10.0])
        np.testing.assert_allclose(pieces[1][0], [10.0, 5.0])
        np.testing.assert_allclose(pieces[1][1], [5.5, 6.0])

    def test_polyline_inside_stays_whole(self) -> None:
        pieces = clip_polyline(np.asarray([1.0, 2.0, 3.0, 4.0]), np.asarray([1.0, 3.0, 1.0, 3.0]), self.box)
        self.assertEqual(len(pieces), 1)
        self.assertEqual(len(pieces[0][0]), 4)


class DrawLineTests(unittest.TestCase):
    def test_coordinate_needs_one_source(self) -> None:
        with self.assertRaises(UsageError):
            Coordinate()
        with self.assertRaises(UsageError):
            Coordinate(value=1.0, fraction=0.5)

    def test_endpoints_mix_sources(self) -> None:
        spec = DrawLineSpec(
            x0=Coordinate(value=5.0),
            x1=Coordinate(fraction=1.0),
            y0=Coordinate(fraction=0.5),
            y1=Coordinate(parameter="level"),
            thickness=30,
        )
        self.assertEqual(spec.thickness, 9)
        page = Page(index=1)
        page.parameters["level"] = Parameter("level", "double", 4.0)
        x0, y0, x1, y1 = spec.endpoints(_full_plane_mapping(), page)
        self.assertAlmostEqual(x0, DEVICE_WIDTH / 2.0)
        self.assertAlmostEqual(y0, DEVICE_HEIGHT / 2.0)
        self.assertAlmostEqual(x1, float(DEVICE_WIDTH))
        self.assertAlmostEqual(y1, DEVICE_HEIGHT * 0.4)

    def test_non_finite_parameter_is_malformed_input(self) -> None:
        spec = DrawLineSpec(
            x0=Coordinate(parameter="t"),
            x1=Coordinate(value=1.0),
            y0=Coordinate(value=0.0),
            y1=Coordinate(value=1.0),
        )
        page = Page(index=1)
        page.parameters["t"] = Parameter("t", "double", float("nan"))
        with self.assertRaises(MalformedInput):
            spec.endpoints(_full_plane_mapping(), page)
        with self.assertRaises(MalformedInput):
            spec.endpoints(_full_plane_mapping(), Page(index=2))

    def test_parameter_without_page(self) -> None:
        spec = DrawLineSpec(
            x0=Coordinate(parameter="t"),
            x1=Coordinate(value=1.0),
            y0=Coordinate(value=0.0),
            y1=Coordinate(value=1.0),
        )
        with self.assertRaises(UsageError):
            spec.endpoints(_full_plane_mapping())


class ShapeTests(unittest.TestCase):
    def test_load_shapes_skips_single_points(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "outline.jsonl"
            writer = JsonlPageWriter(path)
            for k, rows in enumerate((4, 1, 3)):
                page = Page(index=k + 1)
                page.columns["u"] = Column("u", "double", np.arange(rows, dtype=np.float64))
                page.columns["v"] = Column("v", "double", np.ones(rows))
                writer.write(page)
            shapes = load_shapes(ShapeSpec(file=str(path), x_column="u", y_column="v"))
        self.assertEqual([s.x.size for s in shapes], [4, 3])

    def test_shape_is_clipped_to_plot_space(self) -> None:
        shape = Shape(x=np.asarray([-5.0, 5.0]), y=np.asarray([5.0, 5.0]))
        pieces = shape_segments(shape, _full_plane_mapping())
        self.assertEqual(len(pieces), 1)
        np.testing.assert_allclose(pieces[0][0], [0.0, DEVICE_WIDTH / 2.0])
        np.testing.assert_allclose(pieces[0][1], [DEVICE_HEIGHT / 2.0] * 2)


if __name__ == "__main__":
    unittest.main()
