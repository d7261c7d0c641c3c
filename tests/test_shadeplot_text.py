from __future__ import annotations

import os
import unittest
from unittest import mock

from shadeplot.raster.text import ELLIPSIS, fit_label, font_family_from_env, text_extent, text_strokes


class TextExtentTests(unittest.TestCase):
    def test_empty_text(self) -> None:
        self.assertEqual(text_extent("", 40.0), (0.0, 0.0))
        self.assertEqual(text_strokes("", 0.0, 0.0, 40.0), [])
        self.assertEqual(text_strokes("A", 0.0, 0.0, 0.0), [])

    def test_extent_scales_with_height(self) -> None:
        w1, h1 = text_extent("Ab", 32.0)
        w2, h2 = text_extent("Ab", 64.0)
        self.assertGreater(w1, 0.0)
        self.assertAlmostEqual(w2, 2.0 * w1)
        self.assertAlmostEqual(h2, 2.0 * h1)
        self.assertGreater(text_extent("MMMM", 32.0)[0], text_extent("M", 32.0)[0])

    def test_quarter_turn_swaps_extent(self) -> None:
        w, h = text_extent("Label", 30.0)
        self.assertEqual(text_extent("Label", 30.0, rotate_deg=90), (h, w))
        with self.assertRaises(ValueError):
            text_extent("Label", 30.0, rotate_deg=45)

    def test_font_family_from_environment(self) -> None:
        with mock.patch.dict(os.environ, {"MPL_FONT": "  Courier "}):
            self.assertEqual(font_family_from_env(), "Courier")
        with mock.patch.dict(os.environ, {"MPL_FONT": ""}):
            self.assertEqual(font_family_from_env("Helvetica"), "Helvetica")


class TextStrokeTests(unittest.TestCase):
    def test_strokes_lie_inside_the_text_box(self) -> None:
        w, h = text_extent("Hx", 50.0)
        strokes = text_strokes("Hx", 100.0, 200.0, 50.0)
        self.assertTrue(strokes)
        for stroke in strokes:
            self.assertLess(stroke.x0, stroke.x1)
            self.assertGreaterEqual(stroke.x0, 100.0 - 1e-9)
            self.assertLessEqual(stroke.x1, 100.0 + w + 1e-9)
            self.assertGreater(stroke.y, 200.0)
            self.assertLess(stroke.y, 200.0 + h)

    def test_alignment_shifts_strokes(self) -> None:
        w, h = text_extent("T", 40.0)
        left = text_strokes("T", 0.0, 0.0, 40.0)
        centered = text_strokes("T", 0.0, 0.0, 40.0, halign="center", valign="top")
        self.assertEqual(len(left), len(centered))
        for a, b in zip(left, centered):
            self.assertAlmostEqual(b.x0, a.x0 - w / 2.0)
            self.assertAlmostEqual(b.y, a.y - h)


class FitLabelTests(unittest.TestCase):
    def test_fitting_label_is_unchanged(self) -> None:
        self.assertEqual(fit_label("ok", 1e6, 40.0), ("ok", 40.0))

    def test_label_shrinks_before_truncating(self) -> None:
        text = "wide label"
        width = text_extent(text, 40.0)[0]
        label, size = fit_label(text, width * 0.8, 40.0)
        self.assertEqual(label, text)
        self.assertLess(size, 40.0)
        self.assertLessEqual(text_extent(label, size)[0], width * 0.8)

    def test_long_label_is_truncated(self) -> None:
        text = "a rather long caption for a narrow panel"
        width = text_extent(text, 40.0)[0]
        label, size = fit_label(text, width * 0.3, 40.0)
        self.assertTrue(label.endswith(ELLIPSIS))
        self.assertAlmostEqual(size, 20.0, delta=4.0)
        self.assertLessEqual(text_extent(label, size)[0], width * 0.3)


if __name__ == "__main__":
    unittest.main()
