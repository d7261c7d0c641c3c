__version__ = "0.1.0"

from shadeplot.color import ColorMap
from shadeplot.config import PlotConfig, parse_plot_args
from shadeplot.errors import PlotDataError, PlotError
from shadeplot.grid import AxisInfo, Grid
from shadeplot.histogram import HistogramConfig, Histogrammer
from shadeplot.orchestrator import PlotSession
from shadeplot.pages import Page

__all__ = [
    "AxisInfo",
    "ColorMap",
    "Grid",
    "HistogramConfig",
    "Histogrammer",
    "Page",
    "PlotConfig",
    "PlotDataError",
    "PlotError",
    "PlotSession",
    "__version__",
    "parse_plot_args",
]
