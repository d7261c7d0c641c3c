from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np

from shadeplot.errors import FftSizeUnsupported
from shadeplot.grid import Grid


LOGGER = logging.getLogger(__name__)

SLOW_PRIME_FACTOR = 100
MIN_FFT_SAMPLES = 5


@dataclass(frozen=True)
class InterpolationFlags:
    floor: bool = False
    ceiling: bool = False
    antiripple: bool = False


def is_power_of_two(value: int) -> bool:
    return value >= 1 and (value & (value - 1)) == 0


def largest_prime_factor(n: int) -> int:
    if n < 2:
        return n
    largest = 1
    factor = 2
    while factor * factor <= n:
        while n % factor == 0:
            largest = factor
            n //= factor
        factor += 1
    if n > 1:
        largest = max(largest, n)
    return largest


def fft_interpolate_axis(
    values: np.ndarray,
    axis: int,
    factor: int,
    *,
    cutoff: int = 0,
    flags: InterpolationFlags | None = None,
) -> np.ndarray:
    """Band-limited resampling of every line along ``axis`` to factor*(N-1)+1 samples."""
    if not is_power_of_two(factor):
        raise FftSizeUnsupported(f"interpolation factor must be 1 or a power of two, got {factor}")
    if cutoff < 0:
        raise ValueError("low-pass cutoff must be >= 0")
    flags = flags or InterpolationFlags()
    data = np.moveaxis(np.asarray(values, dtype=np.float64), axis, -1)
    n = data.shape[-1]
    if factor == 1 and cutoff == 0:
        return np.moveaxis(data.copy(), -1, axis)
    if n < MIN_FFT_SAMPLES:
        raise FftSizeUnsupported(f"interpolation needs more than 4 samples along an axis, got {n}")
    if largest_prime_factor(n) > SLOW_PRIME_FACTOR:
        LOGGER.warning(
            "interpolation length %d has prime factor %d; transform may be slow",
            n,
            largest_prime_factor(n),
        )

    nan_mask = ~np.isfinite(data)
    if np.any(nan_mask):
        line_mean = _finite_mean(data)
        data = np.where(nan_mask, line_mean[..., None], data)

    spectrum = np.fft.rfft(data, axis=-1)
    if cutoff > 0:
        keep = max(1, spectrum.shape[-1] - cutoff)
        spectrum[..., keep:] = 0.0

    out_len = factor * n
    padded = np.zeros(data.shape[:-1] + (out_len // 2 + 1,), dtype=np.complex128)
    padded[..., : spectrum.shape[-1]] = spectrum
    if factor > 1 and n % 2 == 0:
        # Split the source Nyquist bin so original samples are reproduced.
        padded[..., n // 2] *= 0.5
    result = np.fft.irfft(padded, n=out_len, axis=-1) * factor
    result = result[..., : factor * (n - 1) + 1]

    if flags.floor:
        result = np.maximum(result, np.min(data, axis=-1, keepdims=True))
    if flags.ceiling:
        result = np.minimum(result, np.max(data, axis=-1, keepdims=True))
    if np.any(nan_mask):
        nearest = np.minimum((np.arange(result.shape[-1]) + factor // 2) // factor, n - 1)
        result = np.where(nan_mask[..., nearest], np.nan, result)
    return np.moveaxis(result, -1, axis)


def antiripple_clamp(original: np.ndarray, result: np.ndarray, x_factor: int, y_factor: int) -> np.ndarray:
    """Clamp each sample to the range of the four corners of its enclosing source cell."""
    nx, ny = original.shape
    ix = np.minimum(np.arange(result.shape[0]) // x_factor, nx - 2)
    iy = np.minimum(np.arange(result.shape[1]) // y_factor, ny - 2)
    corners = np.stack(
        [original[:-1, :-1], original[1:, :-1], original[:-1, 1:], original[1:, 1:]],
        axis=0,
    )
    with np.errstate(invalid="ignore"):
        lo = np.min(corners, axis=0)[np.ix_(ix, iy)]
        hi = np.max(corners, axis=0)[np.ix_(ix, iy)]
    finite = np.isfinite(lo) & np.isfinite(hi)
    clamped = np.clip(result, np.where(finite, lo, -np.inf), np.where(finite, hi, np.inf))
    return np.where(np.isfinite(result), clamped, result)


def interpolate_grid(
    grid: Grid,
    x_factor: int = 1,
    y_factor: int = 1,
    *,
    x_cutoff: int = 0,
    y_cutoff: int = 0,
    flags: InterpolationFlags | None = None,
) -> Grid:
    flags = flags or InterpolationFlags()
    for name, factor in (("x", x_factor), ("y", y_factor)):
        if not is_power_of_two(factor):
            raise FftSizeUnsupported(f"{name} interpolation factor must be 1 or a power of two, got {factor}")
    original = grid.z.copy()
    z = grid.z
    if x_factor != 1 or x_cutoff > 0:
        z = fft_interpolate_axis(z, 0, x_factor, cutoff=x_cutoff, flags=flags)
        grid.xpos = _resample_ticks(grid.xpos, x_factor)
        grid.dx /= x_factor
    if y_factor != 1 or y_cutoff > 0:
        z = fft_interpolate_axis(z, 1, y_factor, cutoff=y_cutoff, flags=flags)
        grid.ypos = _resample_ticks(grid.ypos, y_factor)
        grid.dy /= y_factor
    if flags.antiripple and (x_factor > 1 or y_factor > 1):
        z = antiripple_clamp(original, z, x_factor, y_factor)
    grid.z = z
    return grid


def smooth(values: np.ndarray, passes: int, *, one_page_per_line: bool = False) -> np.ndarray:
    """Repeated unweighted mean over each cell's in-bounds neighborhood."""
    z = np.asarray(values, dtype=np.float64).copy()
    if passes <= 0:
        return z
    dix = 0 if one_page_per_line else 1
    nx, ny = z.shape
    for _ in range(passes):
        finite = np.isfinite(z)
        padded = np.pad(np.where(finite, z, 0.0), ((dix, dix), (1, 1)))
        weight = np.pad(finite.astype(np.float64), ((dix, dix), (1, 1)))
        total = np.zeros_like(z)
        count = np.zeros_like(z)
        for ox in range(-dix, dix + 1):
            for oy in (-1, 0, 1):
                total += padded[dix + ox : dix + ox + nx, 1 + oy : 1 + oy + ny]
                count += weight[dix + ox : dix + ox + nx, 1 + oy : 1 + oy + ny]
        z = np.where(finite, total / np.maximum(count, 1.0), np.nan)
    return z


def smooth_grid(grid: Grid, passes: int, *, one_page_per_line: bool = False) -> Grid:
    grid.z = smooth(grid.z, passes, one_page_per_line=one_page_per_line)
    return grid


def _resample_ticks(ticks: np.ndarray | None, factor: int) -> np.ndarray | None:
    if ticks is None or factor == 1:
        return ticks
    n = ticks.size
    fine = np.arange(factor * (n - 1) + 1, dtype=np.float64) / factor
    return np.interp(fine, np.arange(n, dtype=np.float64), ticks)


def _finite_mean(data: np.ndarray) -> np.ndarray:
    finite = np.isfinite(data)
    total = np.sum(np.where(finite, data, 0.0), axis=-1)
    count = np.sum(finite, axis=-1)
    return np.where(count > 0, total / np.maximum(count, 1), 0.0)
