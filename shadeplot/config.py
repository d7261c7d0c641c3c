from __future__ import annotations

import argparse
from collections.abc import Sequence
from dataclasses import dataclass, field
import os
import shlex

from shadeplot.color import PALETTE_TYPE_CODES, PaletteName
from shadeplot.errors import UsageError
from shadeplot.filters import InterpolationFlags
from shadeplot.grid import DeltasMode
from shadeplot.histogram import DEFAULT_BINS, AxisBinning, HistogramConfig, SpreadSpec
from shadeplot.ingest import (
    ArrayIngest,
    ColumnMatchIngest,
    EquationIngest,
    IngestSpec,
    QuantityIngest,
    WaterfallIngest,
    XYZIngest,
)
from shadeplot.layout import AspectMode
from shadeplot.overlays import Coordinate, DrawLineSpec, ShapeSpec


DEVICE_KINDS = ("qt", "motif", "png", "postscript", "json", "mpl")
DEFAULT_DEVICE = "qt"
DEFAULT_PALETTE: PaletteName = "spectral-BGR-noMagenta"

__all__ = [
    "ArrayIngest",
    "ColumnMatchIngest",
    "ContourSpec",
    "DeviceSpec",
    "EquationIngest",
    "Hist2dConfig",
    "IngestSpec",
    "InterpolationSpec",
    "LabelSpec",
    "LayoutSpec",
    "PlotConfig",
    "QuantityIngest",
    "ShadeSpec",
    "UsageArgumentParser",
    "WaterfallIngest",
    "WindowSpec",
    "XYZIngest",
    "match_keyword",
    "parse_plot_args",
    "parse_hist2d_args",
]


@dataclass(frozen=True)
class ShadeSpec:
    levels: int = 100
    zmin: float | None = None
    zmax: float | None = None
    palette: PaletteName = DEFAULT_PALETTE
    hue0: float = 0.0
    hue1: float = 1.0
    reverse: bool = False
    start16: tuple[int, int, int] = (0, 0, 0)
    end16: tuple[int, int, int] = (65535, 65535, 65535)

    def __post_init__(self) -> None:
        if self.levels < 1:
            raise UsageError("number of shade levels must be >= 1")
        for name, hue in (("hue0", self.hue0), ("hue1", self.hue1)):
            if not 0.0 <= hue <= 1.0:
                raise UsageError(f"{name} must be in [0, 1]")


@dataclass(frozen=True)
class ContourSpec:
    count: int = 10
    zmin: float | None = None
    zmax: float | None = None
    level_list: tuple[float, ...] = ()
    label_interval: int = 0
    label_offset: int = 0

    def __post_init__(self) -> None:
        if self.count < 1:
            raise UsageError("number of contours must be >= 1")
        if self.label_interval < 0 or self.label_offset < 0:
            raise UsageError("contour label interval and offset must be >= 0")


@dataclass(frozen=True)
class InterpolationSpec:
    x_factor: int = 1
    y_factor: int = 1
    x_cutoff: int = 0
    y_cutoff: int = 0
    flags: InterpolationFlags = field(default_factory=InterpolationFlags)

    @property
    def active(self) -> bool:
        return self.x_factor != 1 or self.y_factor != 1 or self.x_cutoff > 0 or self.y_cutoff > 0


@dataclass(frozen=True)
class WindowSpec:
    x_lo: float | None = None
    x_hi: float | None = None
    y_lo: float | None = None
    y_hi: float | None = None

    @property
    def active(self) -> bool:
        return any(v is not None for v in (self.x_lo, self.x_hi, self.y_lo, self.y_hi))


@dataclass(frozen=True)
class LayoutSpec:
    layout: tuple[int, int] = (1, 1)
    fill_screen: bool = False
    title_at_top: bool = False
    equal_aspect: AspectMode = 0
    no_color_bar: bool = False
    no_border: bool = False
    no_scales: bool = False
    no_labels: bool = False
    date_stamp: bool = False
    thickness: int = 1
    x_time: bool = False
    y_time: bool = False


@dataclass(frozen=True)
class DeviceSpec:
    kind: str = DEFAULT_DEVICE
    output: str | None = None
    args: tuple[str, ...] = ()
    geometry: str | None = None
    command: str = ""
    font: str = ""

    def __post_init__(self) -> None:
        if self.kind not in DEVICE_KINDS:
            raise UsageError(f"unknown device {self.kind!r}")
        if self.kind in ("png", "postscript", "json", "mpl") and not self.output:
            raise UsageError(f"device {self.kind} requires an output path")


@dataclass(frozen=True)
class LabelSpec:
    xlabel: str | None = None
    ylabel: str | None = None
    title: str | None = None
    topline: str | None = None


@dataclass(frozen=True)
class PlotConfig:
    input: str
    ingest: IngestSpec
    shade: ShadeSpec | None = None
    contour: ContourSpec | None = None
    limit_levels: tuple[float | None, float | None] = (None, None)
    interpolation: InterpolationSpec = field(default_factory=InterpolationSpec)
    smooth_passes: int = 0
    window: WindowSpec = field(default_factory=WindowSpec)
    swap_xy: bool = False
    y_flip: bool = False
    x_log: bool = False
    log_scale: bool = False
    log_floor: float | None = None
    deltas: DeltasMode | None = None
    fixed_range: bool = False
    show_gaps: bool = False
    layout: LayoutSpec = field(default_factory=LayoutSpec)
    device: DeviceSpec = field(default_factory=DeviceSpec)
    labels: LabelSpec = field(default_factory=LabelSpec)
    shapes: tuple[ShapeSpec, ...] = ()
    drawlines: tuple[DrawLineSpec, ...] = ()

    @property
    def do_shade(self) -> bool:
        return self.shade is not None

    @property
    def do_contour(self) -> bool:
        if self.shade is None:
            return True
        return self.contour is not None


@dataclass(frozen=True)
class Hist2dConfig:
    input: str
    output: str
    x_column: str
    y_column: str
    weight_column: str | None = None
    z_column: str | None = None
    output_name: str | None = None
    histogram: HistogramConfig = field(default_factory=HistogramConfig)


def match_keyword(token: str, choices: Sequence[str]) -> str:
    """Resolve an exact or unique-prefix, case-insensitive match against choices."""
    wanted = token.strip().lower()
    if not wanted:
        raise UsageError(f"empty keyword; expected one of {', '.join(choices)}")
    for choice in choices:
        if choice.lower() == wanted:
            return choice
    hits = [choice for choice in choices if choice.lower().startswith(wanted)]
    if len(hits) == 1:
        return hits[0]
    if not hits:
        raise UsageError(f"unknown keyword {token!r}; expected one of {', '.join(choices)}")
    raise UsageError(f"ambiguous keyword {token!r} matches {', '.join(hits)}")


class UsageArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def build_plot_parser(prog: str = "shadeplot contour") -> argparse.ArgumentParser:
    parser = UsageArgumentParser(prog=prog, description="Shade or contour 2-D fields from page files.")
    parser.add_argument("input", help="JSON-lines page file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--quantity", metavar="COLUMN")
    mode.add_argument("--equation", metavar="EXPR[,algebraic]")
    mode.add_argument("--columnmatch", metavar="INDEP,PATTERN...")
    mode.add_argument("--waterfall", metavar="parameter=..,independentColumn=..,colorColumn=..[,scroll=..]")
    mode.add_argument("--array", metavar="Z[,X,Y]")
    mode.add_argument("--xyz", metavar="X,Y,Z")
    parser.add_argument("--shade", nargs="?", const="", metavar="N[,MIN,MAX,gray]")
    parser.add_argument("--contours", nargs="?", const="", metavar="N[,MIN,MAX]")
    parser.add_argument("--levelList", metavar="V1,V2,...")
    parser.add_argument("--limitLevels", metavar="min=..,max=..")
    parser.add_argument("--labelContours", metavar="INTERVAL[,OFFSET]")
    parser.add_argument("--mapShade", metavar="H0,H1")
    parser.add_argument("--palette", metavar="NAME[,R0,G0,B0,R1,G1,B1]")
    parser.add_argument("--reversePalette", action="store_true")
    parser.add_argument("--interpolate", metavar="NX,NY[,floor|ceiling|antiripple]")
    parser.add_argument("--filter", metavar="XCUT,YCUT")
    parser.add_argument("--smooth", type=int, default=0, metavar="PASSES")
    parser.add_argument("--scales", metavar="XL,XH,YL,YH")
    parser.add_argument("--xrange", metavar="min=..,max=..")
    parser.add_argument("--yrange", metavar="min=..,max=..")
    parser.add_argument("--swapxy", action="store_true")
    parser.add_argument("--yflip", action="store_true")
    parser.add_argument("--equalAspect", nargs="?", const="1", metavar="1|-1")
    parser.add_argument("--fillScreen", action="store_true")
    parser.add_argument("--xlog", action="store_true")
    parser.add_argument("--logscale", nargs="?", const="", metavar="FLOOR")
    parser.add_argument("--deltas", nargs="?", const="plain", metavar="plain|fractional|normalized")
    parser.add_argument("--fixedRange", action="store_true")
    parser.add_argument("--showGaps", action="store_true")
    parser.add_argument("--layout", metavar="NX,NY")
    parser.add_argument("--thickness", type=int, default=1)
    parser.add_argument("--ticksettings", metavar="xtime|ytime")
    parser.add_argument("--noColorBar", action="store_true")
    parser.add_argument("--noBorder", action="store_true")
    parser.add_argument("--noScales", action="store_true")
    parser.add_argument("--noLabels", action="store_true")
    parser.add_argument("--dateStamp", action="store_true")
    parser.add_argument("--topTitle", action="store_true")
    parser.add_argument("--device", metavar="qt|motif|png|postscript|json|mpl[,ARGS]")
    parser.add_argument("--output", metavar="PATH")
    parser.add_argument("--xlabel")
    parser.add_argument("--ylabel")
    parser.add_argument("--title")
    parser.add_argument("--topline")
    parser.add_argument("--shapes", action="append", default=[], metavar="FILE[,XCOL,YCOL]")
    parser.add_argument("--drawline", action="append", default=[], metavar="x0=..,x1=..,y0=..,y1=..")
    return parser


def parse_plot_args(argv: Sequence[str], *, environ: dict[str, str] | None = None) -> PlotConfig:
    env = os.environ if environ is None else environ
    args = build_plot_parser().parse_args([_legacy_option(token) for token in argv])
    shade = _parse_shade(args)
    contour = _parse_contour(args)
    if args.deltas is not None and args.logscale is not None:
        raise UsageError("deltas and logscale are mutually exclusive")
    return PlotConfig(
        input=args.input,
        ingest=_parse_ingest(args),
        shade=shade,
        contour=contour,
        limit_levels=_parse_min_max(args.limitLevels, "limitLevels"),
        interpolation=_parse_interpolation(args.interpolate, args.filter),
        smooth_passes=_non_negative(args.smooth, "smooth"),
        window=_parse_window(args.scales, args.xrange, args.yrange),
        swap_xy=args.swapxy,
        y_flip=args.yflip,
        x_log=args.xlog,
        log_scale=args.logscale is not None,
        log_floor=_float(args.logscale, "logscale") if args.logscale else None,
        deltas=match_keyword(args.deltas, ("plain", "fractional", "normalized")) if args.deltas is not None else None,  # type: ignore[arg-type]
        fixed_range=args.fixedRange,
        show_gaps=args.showGaps,
        layout=_parse_layout(args),
        device=_parse_device(args.device, args.output, env, list(argv)),
        labels=LabelSpec(xlabel=args.xlabel, ylabel=args.ylabel, title=args.title, topline=args.topline),
        shapes=tuple(_parse_shape(text) for text in args.shapes),
        drawlines=tuple(parse_drawline(text) for text in args.drawline),
    )


def parse_drawline(text: str) -> DrawLineSpec:
    keys = (
        "x0", "x1", "y0", "y1",
        "p0", "p1", "q0", "q1",
        "x0Parameter", "x1Parameter", "y0Parameter", "y1Parameter",
        "linetype", "thickness",
    )  # fmt: skip
    values = _key_values(text, keys, "drawline")
    coords: dict[str, Coordinate] = {}
    for name, fraction_key in (("x0", "p0"), ("x1", "p1"), ("y0", "q0"), ("y1", "q1")):
        sources = [k for k in (name, fraction_key, f"{name}Parameter") if k in values]
        if len(sources) != 1:
            raise UsageError(f"drawline needs exactly one of {name}, {fraction_key} or {name}Parameter")
        source = sources[0]
        if source == name:
            coords[name] = Coordinate(value=_float(values[source], f"drawline {name}"))
        elif source == fraction_key:
            coords[name] = Coordinate(fraction=_float(values[source], f"drawline {fraction_key}"))
        else:
            coords[name] = Coordinate(parameter=values[source])
    return DrawLineSpec(
        **coords,
        linetype=_int(values.get("linetype", "0"), "drawline linetype"),
        thickness=_int(values.get("thickness", "1"), "drawline thickness"),
    )


def build_hist2d_parser(prog: str = "shadeplot hist2d") -> argparse.ArgumentParser:
    parser = UsageArgumentParser(prog=prog, description="Bin two columns of a page file into 2-D histogram pages.")
    parser.add_argument("input", help="JSON-lines page file")
    parser.add_argument("output", help="JSON-lines file for the histogram pages")
    parser.add_argument("--columns", required=True, metavar="X,Y")
    parser.add_argument("--xparameters", metavar="BINS[,LO,HI]")
    parser.add_argument("--yparameters", metavar="BINS[,LO,HI]")
    parser.add_argument("--zparameters", metavar="BINS[,LO,HI]")
    parser.add_argument("--xBinSize", metavar="SIZE")
    parser.add_argument("--yBinSize", metavar="SIZE")
    parser.add_argument("--spread", metavar="SX,SY[,NSIGMA][,fold][,unnormalized]")
    parser.add_argument("--weight", metavar="COLUMN")
    parser.add_argument("--zColumn", metavar="COLUMN")
    parser.add_argument("--average", action="store_true")
    parser.add_argument("--smooth", type=int, default=0, metavar="PASSES")
    parser.add_argument("--normalize", nargs="?", const="peak", metavar="peak|sum")
    parser.add_argument("--combine", action="store_true")
    parser.add_argument("--threads", type=int, default=1)
    parser.add_argument("--minimumScale", type=float, default=0.0)
    parser.add_argument("--includeXY", action="store_true")
    parser.add_argument("--outputName", metavar="NAME")
    return parser


def parse_hist2d_args(argv: Sequence[str]) -> Hist2dConfig:
    args = build_hist2d_parser().parse_args([_legacy_option(token) for token in argv])
    columns = _items(args.columns)
    if len(columns) != 2:
        raise UsageError("columns takes X,Y")
    if args.zparameters and not args.zColumn:
        raise UsageError("zparameters requires zColumn")
    if args.average and not args.weight:
        raise UsageError("average requires a weight column")
    histogram = HistogramConfig(
        x=_parse_binning(args.xparameters, args.xBinSize, "xparameters"),
        y=_parse_binning(args.yparameters, args.yBinSize, "yparameters"),
        z=_parse_binning(args.zparameters or "", None, "zparameters") if args.zColumn else None,
        spread=_parse_spread(args.spread) if args.spread else None,
        average=args.average,
        smooth_passes=_non_negative(args.smooth, "smooth"),
        normalize=match_keyword(args.normalize, ("peak", "sum")) if args.normalize is not None else None,  # type: ignore[arg-type]
        combine=args.combine,
        threads=args.threads,
        minimum_scale=args.minimumScale,
        include_xy=args.includeXY,
    )
    return Hist2dConfig(
        input=args.input,
        output=args.output,
        x_column=columns[0],
        y_column=columns[1],
        weight_column=args.weight,
        z_column=args.zColumn,
        output_name=args.outputName,
        histogram=histogram,
    )


def _legacy_option(token: str) -> str:
    if token.startswith("-") and not token.startswith("--") and len(token) > 2 and token[1].isalpha():
        return "-" + token
    return token


def _items(text: str) -> list[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


def _key_values(text: str, keys: Sequence[str], option: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for item in _items(text):
        key, sep, value = item.partition("=")
        if not sep:
            raise UsageError(f"{option}: expected key=value, got {item!r}")
        canonical = match_keyword(key, keys)
        if canonical in out:
            raise UsageError(f"{option}: {canonical} given twice")
        out[canonical] = value.strip()
    return out


def _float(text: str, option: str) -> float:
    try:
        return float(text)
    except ValueError:
        raise UsageError(f"{option}: {text!r} is not a number") from None


def _int(text: str, option: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise UsageError(f"{option}: {text!r} is not an integer") from None


def _non_negative(value: int, option: str) -> int:
    if value < 0:
        raise UsageError(f"{option} must be >= 0")
    return value


def _parse_ingest(args: argparse.Namespace) -> IngestSpec:
    if args.quantity:
        return QuantityIngest(column=args.quantity)
    if args.equation:
        expression, _, tail = args.equation.rpartition(",")
        if expression and len(tail.strip()) >= 3 and "algebraic".startswith(tail.strip().lower()):
            return EquationIngest(expression=expression.strip(), algebraic=True)
        return EquationIngest(expression=args.equation.strip())
    if args.columnmatch:
        items = _items(args.columnmatch)
        if len(items) < 2:
            raise UsageError("columnmatch needs an independent column and at least one pattern")
        return ColumnMatchIngest(independent=items[0], patterns=tuple(items[1:]))
    if args.waterfall:
        values = _key_values(args.waterfall, ("parameter", "independentColumn", "colorColumn", "scroll"), "waterfall")
        missing = [k for k in ("parameter", "independentColumn", "colorColumn") if k not in values]
        if missing:
            raise UsageError(f"waterfall missing {', '.join(missing)}")
        scroll = match_keyword(values.get("scroll", "vertical"), ("horizontal", "vertical"))
        return WaterfallIngest(
            parameter=values["parameter"],
            independent=values["independentColumn"],
            color=values["colorColumn"],
            scroll=scroll,  # type: ignore[arg-type]
        )
    if args.array:
        items = _items(args.array)
        if len(items) not in (1, 3):
            raise UsageError("array takes a value array and optionally x and y arrays")
        return ArrayIngest(z=items[0], x=items[1] if len(items) == 3 else None, y=items[2] if len(items) == 3 else None)
    if args.xyz:
        items = _items(args.xyz)
        if len(items) != 3:
            raise UsageError("xyz takes exactly three column names")
        return XYZIngest(x=items[0], y=items[1], z=items[2])
    raise UsageError("one of --quantity, --equation, --columnmatch, --waterfall, --array or --xyz is required")


def _parse_shade(args: argparse.Namespace) -> ShadeSpec | None:
    if args.shade is None:
        return None
    numbers: list[float] = []
    gray = False
    for item in _items(args.shade):
        try:
            numbers.append(float(item))
        except ValueError:
            match_keyword(item, ("gray",))
            gray = True
    if len(numbers) not in (0, 1, 3):
        raise UsageError("shade takes N or N,MIN,MAX")
    levels = int(numbers[0]) if numbers else 100
    zmin, zmax = (numbers[1], numbers[2]) if len(numbers) == 3 else (None, None)
    if zmin is not None and zmin == zmax:
        zmin = zmax = None
    hue0, hue1 = 0.0, 1.0
    if args.mapShade:
        hues = [_float(item, "mapShade") for item in _items(args.mapShade)]
        if len(hues) != 2:
            raise UsageError("mapShade takes two hue values")
        hue0, hue1 = hues
    palette: str = DEFAULT_PALETTE
    start16: tuple[int, int, int] = (0, 0, 0)
    end16: tuple[int, int, int] = (65535, 65535, 65535)
    if args.palette:
        items = _items(args.palette)
        palette = match_keyword(items[0], tuple(PALETTE_TYPE_CODES))
        if palette == "custom":
            if len(items) != 7:
                raise UsageError("custom palette takes six 16-bit channel values")
            channels = [_int(v, "palette") for v in items[1:]]
            if any(not 0 <= c <= 65535 for c in channels):
                raise UsageError("palette channels must be in [0, 65535]")
            start16 = (channels[0], channels[1], channels[2])
            end16 = (channels[3], channels[4], channels[5])
        elif len(items) != 1:
            raise UsageError(f"palette {palette} takes no endpoints")
    if gray:
        palette = "grayscale"
    return ShadeSpec(
        levels=levels,
        zmin=zmin,
        zmax=zmax,
        palette=palette,  # type: ignore[arg-type]
        hue0=hue0,
        hue1=hue1,
        reverse=args.reversePalette,
        start16=start16,
        end16=end16,
    )


def _parse_contour(args: argparse.Namespace) -> ContourSpec | None:
    if args.contours is None and args.levelList is None and args.labelContours is None:
        return None
    count = 10
    zmin = zmax = None
    if args.contours:
        numbers = [_float(item, "contours") for item in _items(args.contours)]
        if len(numbers) not in (1, 3):
            raise UsageError("contours takes N or N,MIN,MAX")
        count = int(numbers[0])
        if len(numbers) == 3 and numbers[1] != numbers[2]:
            zmin, zmax = numbers[1], numbers[2]
    level_list: tuple[float, ...] = ()
    if args.levelList:
        level_list = tuple(_float(item, "levelList") for item in _items(args.levelList))
    interval = offset = 0
    if args.labelContours:
        numbers_i = [_int(item, "labelContours") for item in _items(args.labelContours)]
        if len(numbers_i) not in (1, 2):
            raise UsageError("labelContours takes INTERVAL[,OFFSET]")
        interval = numbers_i[0]
        offset = numbers_i[1] if len(numbers_i) == 2 else 0
    return ContourSpec(
        count=count, zmin=zmin, zmax=zmax, level_list=level_list, label_interval=interval, label_offset=offset
    )


def _parse_min_max(text: str | None, option: str) -> tuple[float | None, float | None]:
    if not text:
        return (None, None)
    values = _key_values(text, ("minimum", "maximum"), option)
    lo = _float(values["minimum"], option) if "minimum" in values else None
    hi = _float(values["maximum"], option) if "maximum" in values else None
    if lo is not None and hi is not None and lo > hi:
        raise UsageError(f"{option}: minimum exceeds maximum")
    return (lo, hi)


def _parse_interpolation(interpolate: str | None, cutoff: str | None) -> InterpolationSpec:
    x_factor = y_factor = 1
    flags = InterpolationFlags()
    if interpolate:
        factors: list[int] = []
        flag_names: set[str] = set()
        for item in _items(interpolate):
            if item.lstrip("-").isdigit():
                factors.append(int(item))
            else:
                flag_names.add(match_keyword(item, ("floor", "ceiling", "antiripple")))
        if len(factors) != 2 or any(f < 1 for f in factors):
            raise UsageError("interpolate takes two factors >= 1")
        x_factor, y_factor = factors
        flags = InterpolationFlags(
            floor="floor" in flag_names, ceiling="ceiling" in flag_names, antiripple="antiripple" in flag_names
        )
    x_cut = y_cut = 0
    if cutoff:
        cuts = [_int(item, "filter") for item in _items(cutoff)]
        if len(cuts) != 2 or any(c < 0 for c in cuts):
            raise UsageError("filter takes two non-negative bin counts")
        x_cut, y_cut = cuts
    return InterpolationSpec(x_factor=x_factor, y_factor=y_factor, x_cutoff=x_cut, y_cutoff=y_cut, flags=flags)


def _parse_window(scales: str | None, xrange: str | None, yrange: str | None) -> WindowSpec:
    x_lo = x_hi = y_lo = y_hi = None
    if scales:
        numbers = [_float(item, "scales") for item in _items(scales)]
        if len(numbers) != 4:
            raise UsageError("scales takes XL,XH,YL,YH")
        if numbers[0] != numbers[1]:
            x_lo, x_hi = numbers[0], numbers[1]
        if numbers[2] != numbers[3]:
            y_lo, y_hi = numbers[2], numbers[3]
    if xrange:
        x_lo, x_hi = _parse_min_max(xrange, "xrange")
    if yrange:
        y_lo, y_hi = _parse_min_max(yrange, "yrange")
    return WindowSpec(x_lo=x_lo, x_hi=x_hi, y_lo=y_lo, y_hi=y_hi)


def _parse_layout(args: argparse.Namespace) -> LayoutSpec:
    layout = (1, 1)
    if args.layout:
        numbers = [_int(item, "layout") for item in _items(args.layout)]
        if len(numbers) != 2 or any(n < 1 for n in numbers):
            raise UsageError("layout takes NX,NY >= 1")
        layout = (numbers[0], numbers[1])
    aspect = 0
    if args.equalAspect is not None:
        aspect = _int(args.equalAspect, "equalAspect")
        if aspect not in (1, -1):
            raise UsageError("equalAspect must be 1 or -1")
    ticks = {match_keyword(item, ("xtime", "ytime")) for item in _items(args.ticksettings or "")}
    return LayoutSpec(
        layout=layout,
        fill_screen=args.fillScreen,
        title_at_top=args.topTitle,
        equal_aspect=aspect,  # type: ignore[arg-type]
        no_color_bar=args.noColorBar,
        no_border=args.noBorder,
        no_scales=args.noScales,
        no_labels=args.noLabels,
        date_stamp=args.dateStamp,
        thickness=max(0, min(9, args.thickness)),
        x_time="xtime" in ticks,
        y_time="ytime" in ticks,
    )


def _parse_device(text: str | None, output: str | None, env: dict[str, str], argv: list[str]) -> DeviceSpec:
    text = text or env.get("MPL_DEVICE", "").strip() or DEFAULT_DEVICE
    items = _items(text)
    kind = match_keyword(items[0], DEVICE_KINDS)
    return DeviceSpec(
        kind=kind,
        output=output,
        args=tuple(items[1:]),
        geometry=env.get("MPL_GEOMETRY") or None,
        command=" ".join(shlex.quote(token) for token in argv),
        font=env.get("MPL_FONT", ""),
    )


def _parse_shape(text: str) -> ShapeSpec:
    items = _items(text)
    if len(items) == 1:
        return ShapeSpec(file=items[0])
    if len(items) == 3:
        return ShapeSpec(file=items[0], x_column=items[1], y_column=items[2])
    raise UsageError("shapes takes FILE or FILE,XCOL,YCOL")


def _parse_binning(text: str | None, bin_size: str | None, option: str) -> AxisBinning:
    items = _items(text or "")
    if len(items) not in (0, 1, 3):
        raise UsageError(f"{option} takes BINS or BINS,LO,HI")
    bins = _int(items[0], option) if items else DEFAULT_BINS
    lo = hi = None
    if len(items) == 3:
        lo, hi = _float(items[1], option), _float(items[2], option)
    size = _float(bin_size, option) if bin_size else None
    return AxisBinning(bins=bins, lo=lo, hi=hi, bin_size=size)


def _parse_spread(text: str) -> SpreadSpec:
    numbers: list[float] = []
    flags: set[str] = set()
    for item in _items(text):
        try:
            numbers.append(float(item))
        except ValueError:
            flags.add(match_keyword(item, ("fold", "unnormalized")))
    if len(numbers) not in (2, 3):
        raise UsageError("spread takes SX,SY[,NSIGMA]")
    return SpreadSpec(
        sigma_x=numbers[0],
        sigma_y=numbers[1],
        nsigma=numbers[2] if len(numbers) == 3 else 3.0,
        fold="fold" in flags,
        unnormalized="unnormalized" in flags,
    )
