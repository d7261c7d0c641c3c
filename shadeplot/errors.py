from __future__ import annotations


EXIT_OK = 0
EXIT_USAGE = 1
EXIT_INPUT_IO = 2
EXIT_DEVICE = 3
EXIT_INTERRUPTED = 130


class PlotDataError(ValueError):
    """Base for every failure the plotting pipeline reports to the caller."""

    kind = "PlotData"
    recoverable = False
    exit_code = EXIT_USAGE


class MalformedInput(PlotDataError):
    kind = "MalformedInput"
    recoverable = True


MalformedGrid = MalformedInput


class DimensionMismatch(PlotDataError):
    kind = "DimensionMismatch"


class EmptyWindow(PlotDataError):
    kind = "EmptyWindow"
    recoverable = True


class ZeroSpread(PlotDataError):
    kind = "ZeroSpread"
    recoverable = True


class NothingBinned(PlotDataError):
    kind = "NothingBinned"
    recoverable = True


class FftSizeUnsupported(PlotDataError):
    kind = "FftSizeUnsupported"


class PaletteOverflow(PlotDataError):
    kind = "PaletteOverflow"


class UsageError(PlotDataError):
    kind = "Usage"


class InputReadFailure(PlotDataError):
    kind = "InputIO"
    exit_code = EXIT_INPUT_IO


class DeviceWriteFailure(PlotDataError):
    kind = "DeviceWriteFailure"
    exit_code = EXIT_DEVICE


PlotError = PlotDataError
