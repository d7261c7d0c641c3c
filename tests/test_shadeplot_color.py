from __future__ import annotations

import unittest

import numpy as np

from shadeplot.color import (
    GAP_SHADE,
    LINE_COLOR_TABLE,
    ColorMap,
    line_color,
    rgb8_to_rgb16,
    rgb16_to_rgb8,
    spectrum_colors,
)
from shadeplot.errors import PaletteOverflow, UsageError


class ColorMapTests(unittest.TestCase):
    def test_slots_are_levels_plus_one(self) -> None:
        cmap = ColorMap(levels=5)
        self.assertEqual(cmap.slots, 6)
        self.assertEqual(len(cmap.rgb_table()), 6)
        self.assertEqual(cmap.type_code, 4)

    def test_palette_limit(self) -> None:
        self.assertEqual(ColorMap(levels=100).slots, 101)
        with self.assertRaises(PaletteOverflow):
            ColorMap(levels=101)
        with self.assertRaises(PaletteOverflow):
            spectrum_colors(102, 1)

    def test_rejects_bad_settings(self) -> None:
        with self.assertRaises(UsageError):
            ColorMap(levels=0)
        with self.assertRaises(UsageError):
            ColorMap(hue0=-0.1)
        with self.assertRaises(UsageError):
            ColorMap(palette="plasma")  # type: ignore[arg-type]

    def test_hue_is_monotone_and_reverse_is_complement(self) -> None:
        z = np.linspace(-2.0, 7.0, 200)
        forward = ColorMap(levels=10).hue(z, -2.0, 7.0)
        backward = ColorMap(levels=10, reverse=True).hue(z, -2.0, 7.0)
        self.assertTrue(np.all(np.diff(forward) >= 0))
        np.testing.assert_allclose(backward, 1.0 - forward)

    def test_hue_window_restricts_range(self) -> None:
        hue = ColorMap(levels=10, hue0=0.25, hue1=0.75).hue(np.asarray([0.0, 1.0]), 0.0, 1.0)
        np.testing.assert_allclose(hue, [0.25, 0.75])

    def test_shade_indices(self) -> None:
        cmap = ColorMap(levels=5)
        z = np.asarray([0.0, 8.9, 9.0, 44.0, np.nan, 50.0, -1.0])
        shades = cmap.shade_indices(z, 0.0, 44.0)
        self.assertEqual(shades.tolist(), [0, 1, 1, 5, GAP_SHADE, GAP_SHADE, GAP_SHADE])

    def test_clamp_keeps_out_of_band_values(self) -> None:
        cmap = ColorMap(levels=5)
        shades = cmap.shade_indices(np.asarray([50.0, -1.0, np.nan]), 0.0, 44.0, clamp=True)
        self.assertEqual(shades.tolist(), [5, 0, GAP_SHADE])

    def test_flat_range_maps_to_first_slot(self) -> None:
        shades = ColorMap(levels=4).shade_indices(np.full(3, 2.0), 2.0, 2.0)
        self.assertEqual(shades.tolist(), [0, 0, 0])

    def test_bar_shades(self) -> None:
        self.assertEqual(ColorMap(levels=5).bar_shades(), [0, 1, 2, 3, 4, 5])
        self.assertEqual(ColorMap(levels=5, reverse=True).bar_shades(), [5, 4, 3, 2, 1, 0])


class PaletteTests(unittest.TestCase):
    def test_grayscale_ramps_from_black_to_white(self) -> None:
        table = ColorMap(levels=4, palette="grayscale").rgb_table()
        self.assertEqual(table[0], (0, 0, 0))
        self.assertEqual(table[-1], (255, 255, 255))

    def test_custom_palette_uses_endpoints(self) -> None:
        cmap = ColorMap(levels=2, palette="custom", start16=(65535, 0, 0), end16=(0, 0, 65535))
        table = cmap.rgb_table()
        self.assertEqual(table[0], (255, 0, 0))
        self.assertEqual(table[-1], (0, 0, 255))

    def test_spectral_palettes_run_in_opposite_directions(self) -> None:
        rgb = spectrum_colors(11, 1)
        bgr = spectrum_colors(11, 2)
        self.assertEqual(rgb[0], (255, 0, 0))
        self.assertEqual(bgr[0], (255, 0, 255))
        self.assertEqual(bgr[-1][0], 255)

    def test_rainbow_ends(self) -> None:
        table = spectrum_colors(5, 5)
        self.assertEqual(table[0], (0, 0, 255))
        self.assertEqual(table[-1], (255, 0, 255))

    def test_line_colors(self) -> None:
        self.assertEqual(line_color(0), (0, 0, 0))
        self.assertEqual(line_color(1003), LINE_COLOR_TABLE[3])
        self.assertEqual(line_color(1000 + len(LINE_COLOR_TABLE)), LINE_COLOR_TABLE[0])

    def test_channel_depth_conversion(self) -> None:
        self.assertEqual(rgb8_to_rgb16((255, 0, 128)), (65535, 0, 32896))
        self.assertEqual(rgb16_to_rgb8((65535, 0, 32896)), (255, 0, 128))


if __name__ == "__main__":
    unittest.main()
