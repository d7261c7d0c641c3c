from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
import math

import numpy as np

from shadeplot.grid import AxisScale


MIN_LABELED_TICKS = 5
MAX_LABELED_TICKS = 15
MIN_TIME_INTERVALS = 3

_SECOND_STEPS = (
    (1, "second"),
    (2, "second"),
    (5, "second"),
    (10, "second"),
    (15, "second"),
    (30, "second"),
    (60, "minute"),
    (120, "minute"),
    (300, "minute"),
    (600, "minute"),
    (900, "minute"),
    (1800, "minute"),
    (3600, "hour"),
    (7200, "hour"),
    (10800, "hour"),
    (21600, "hour"),
    (43200, "hour"),
    (86400, "day"),
    (172800, "day"),
    (604800, "day"),
)
_MONTH_STEPS = (1, 3, 6)
_YEAR_STEPS = (1, 2, 5, 10, 20, 50, 100)
_TIME_FORMATS = {
    "second": "%H:%M:%S",
    "minute": "%H:%M",
    "hour": "%H:%M",
    "day": "%m/%d",
    "month": "%Y/%m",
    "year": "%Y",
}


@dataclass(frozen=True)
class TickSet:
    major: np.ndarray
    labels: list[str]
    minor: np.ndarray
    step: float | None = None
    unit: str | None = None


def linear_step(vmin: float, vmax: float) -> float:
    """Smallest 1/2/5 x 10^k step giving at most MAX_LABELED_TICKS ticks."""
    span = abs(vmax - vmin)
    if span == 0 or not np.isfinite(span):
        return 1.0
    exp = int(np.floor(np.log10(span))) - 2
    while True:
        for mantissa in (1.0, 2.0, 5.0):
            step = mantissa * 10.0**exp
            if _tick_count(vmin, vmax, step) <= MAX_LABELED_TICKS:
                return step
        exp += 1


def linear_ticks(vmin: float, vmax: float) -> TickSet:
    lo, hi = min(vmin, vmax), max(vmin, vmax)
    if lo == hi:
        return TickSet(major=np.asarray([lo]), labels=[format_tick(lo)], minor=np.asarray([], dtype=np.float64))
    step = linear_step(lo, hi)
    major = _ticks_within(lo, hi, step)
    mantissa = round(step / 10.0 ** np.floor(np.log10(step)))
    sub_step = step / (4 if mantissa == 2 else 5)
    minor = _ticks_within(lo, hi, sub_step)
    minor = minor[~np.isin(np.rint(minor / sub_step), np.rint(major / sub_step))]
    return TickSet(major=major, labels=format_ticks_for_axis(major), minor=minor, step=step)


def log_ticks(vmin: float, vmax: float, *, minor: bool = True) -> TickSet:
    """Ticks for an axis already in log10 units: majors on decades."""
    lo, hi = min(vmin, vmax), max(vmin, vmax)
    first = math.ceil(lo - 1e-9)
    last = math.floor(hi + 1e-9)
    decades = np.arange(first, last + 1, dtype=np.float64)
    step = 1.0
    if decades.size > MAX_LABELED_TICKS:
        step = float(math.ceil(decades.size / MAX_LABELED_TICKS))
        decades = decades[(decades - first) % step == 0]
    labels = [f"10^{int(d)}" for d in decades]
    minors = np.asarray([], dtype=np.float64)
    if minor:
        candidates = []
        for d in range(math.floor(lo), math.ceil(hi) + 1):
            for factor in (2.0, 5.0):
                candidates.append(d + math.log10(factor))
        arr = np.asarray(candidates, dtype=np.float64)
        minors = arr[(arr >= lo) & (arr <= hi)]
    return TickSet(major=decades, labels=labels, minor=minors, step=step)


def time_ticks(vmin: float, vmax: float) -> TickSet:
    """Calendar-aligned ticks for epoch-second values (UTC)."""
    lo, hi = min(vmin, vmax), max(vmin, vmax)
    span = hi - lo
    best: tuple[float, str] | None = None
    for seconds, unit in _SECOND_STEPS:
        if span / seconds >= MIN_TIME_INTERVALS:
            best = (float(seconds), unit)
    month_step = None
    year_step = None
    for months in _MONTH_STEPS:
        if span / (months * 30.44 * 86400) >= MIN_TIME_INTERVALS:
            month_step = months
    for years in _YEAR_STEPS:
        if span / (years * 365.25 * 86400) >= MIN_TIME_INTERVALS:
            year_step = years
    if year_step is not None:
        major = _calendar_ticks(lo, hi, months=12 * year_step)
        unit = "year"
        step = year_step * 365.25 * 86400
    elif month_step is not None:
        major = _calendar_ticks(lo, hi, months=month_step)
        unit = "month"
        step = month_step * 30.44 * 86400
    elif best is not None:
        step, unit = best
        major = _ticks_within(lo, hi, step)
    else:
        step, unit = max(span / MIN_TIME_INTERVALS, 1e-3), "second"
        major = _ticks_within(lo, hi, step)
    fmt = _TIME_FORMATS[unit]
    labels = [datetime.fromtimestamp(float(v), tz=timezone.utc).strftime(fmt) for v in major]
    return TickSet(major=major, labels=labels, minor=np.asarray([], dtype=np.float64), step=step, unit=unit)


def axis_ticks(vmin: float, vmax: float, scale: AxisScale) -> TickSet:
    if scale == "log10":
        return log_ticks(vmin, vmax)
    if scale == "time":
        return time_ticks(vmin, vmax)
    return linear_ticks(vmin, vmax)


def time_axis_title(vmin: float) -> str:
    stamp = datetime.fromtimestamp(float(vmin), tz=timezone.utc)
    return f"Time starting {stamp.strftime('%a %b %d %H:%M:%S %Y')}"


def format_tick(value: float, *, step: float | None = None) -> str:
    if not np.isfinite(value):
        return str(value)
    if step is not None and np.isfinite(step) and step > 0 and abs(value) <= step * 1e-9:
        value = 0.0
    magnitude = abs(value)
    decimals = _decimals_from_step(step) if step is not None else 6
    if magnitude != 0 and (magnitude >= 1e6 or magnitude < 1e-6 or (step is not None and abs(step) < 1e-4)):
        return f"{value:.3g}" if step is None else f"{value:.{_significant_digits(value, step)}e}"
    try:
        q = Decimal(str(value)).quantize(Decimal("1").scaleb(-decimals))
    except InvalidOperation:
        q = Decimal(str(value))
    out = format(q, "f")
    if "." in out:
        out = out.rstrip("0").rstrip(".")
    return "0" if out == "-0" else out


def format_ticks_for_axis(ticks: np.ndarray) -> list[str]:
    if ticks.size == 0:
        return []
    if ticks.size == 1:
        return [format_tick(float(ticks[0]))]
    step = float(abs(ticks[1] - ticks[0]))
    return [format_tick(float(v), step=step) for v in ticks]


def _tick_count(vmin: float, vmax: float, step: float) -> int:
    return int(math.floor(vmax / step + 1e-9) - math.ceil(vmin / step - 1e-9)) + 1


def _ticks_within(lo: float, hi: float, step: float) -> np.ndarray:
    first = math.ceil(lo / step - 1e-9)
    last = math.floor(hi / step + 1e-9)
    ticks = np.arange(first, last + 1, dtype=np.float64) * step
    # Snap float drift so values like -4.44e-16 become 0.
    ticks[np.isclose(ticks, 0.0, rtol=0.0, atol=step * 1e-9)] = 0.0
    return ticks


def _calendar_ticks(lo: float, hi: float, *, months: int) -> np.ndarray:
    start = datetime.fromtimestamp(lo, tz=timezone.utc)
    year, month = start.year, start.month
    # Align to the first month boundary that is a multiple of the step.
    index = (year * 12 + month - 1 + months - 1) // months * months
    ticks: list[float] = []
    while True:
        y, m = divmod(index, 12)
        stamp = calendar.timegm((y, m + 1, 1, 0, 0, 0))
        if stamp > hi:
            break
        if stamp >= lo:
            ticks.append(float(stamp))
        index += months
    return np.asarray(ticks, dtype=np.float64)


def _significant_digits(value: float, step: float) -> int:
    if value == 0 or step <= 0:
        return 2
    digits = int(math.floor(math.log10(abs(value))) - math.floor(math.log10(step)))
    return max(1, min(8, digits))


def _decimals_from_step(step: float) -> int:
    if step <= 0 or not np.isfinite(step):
        return 6
    exp = Decimal(str(step)).normalize().as_tuple().exponent
    return min(12, max(0, -int(exp)))
