from shadeplot.raster.canvas import RGBA, fill_rect, new_canvas, to_image
from shadeplot.raster.draw_lines import draw_polyline
from shadeplot.raster.text import TextStroke, fit_label, text_extent, text_strokes

__all__ = [
    "RGBA",
    "TextStroke",
    "draw_polyline",
    "fill_rect",
    "fit_label",
    "new_canvas",
    "text_extent",
    "text_strokes",
    "to_image",
]
