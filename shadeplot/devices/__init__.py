from __future__ import annotations

from shadeplot.config import DeviceSpec
from shadeplot.devices.base import Device, PanelRecord, TraceRecord
from shadeplot.devices.json_device import JsonDevice
from shadeplot.devices.png import DEFAULT_PIXEL_WIDTH, PngDevice
from shadeplot.devices.postscript import PostscriptDevice
from shadeplot.devices.stream import MotifDevice, MplStreamDevice, QtDevice, StreamDevice
from shadeplot.errors import UsageError


def open_device(spec: DeviceSpec) -> Device:
    if spec.kind == "qt":
        return QtDevice(geometry=spec.geometry, extra_args=list(spec.args))
    if spec.kind == "motif":
        return MotifDevice(geometry=spec.geometry, extra_args=list(spec.args))
    if spec.kind == "png":
        return PngDevice(spec.output, width_px=_png_width(spec.args))  # type: ignore[arg-type]
    if spec.kind == "postscript":
        return PostscriptDevice(spec.output)  # type: ignore[arg-type]
    if spec.kind == "json":
        return JsonDevice(spec.output, command=spec.command, font=spec.font)  # type: ignore[arg-type]
    if spec.kind == "mpl":
        return MplStreamDevice(spec.output)  # type: ignore[arg-type]
    raise UsageError(f"unknown device {spec.kind!r}")


def _png_width(args: tuple[str, ...]) -> int:
    width = DEFAULT_PIXEL_WIDTH
    for item in args:
        key, _, value = item.partition("=")
        if key.strip().lower() != "width":
            raise UsageError(f"unknown png device argument {item!r}")
        try:
            width = int(value)
        except ValueError:
            raise UsageError(f"png width must be an integer, got {value!r}") from None
    return width


__all__ = [
    "Device",
    "JsonDevice",
    "MotifDevice",
    "MplStreamDevice",
    "PanelRecord",
    "PngDevice",
    "PostscriptDevice",
    "QtDevice",
    "StreamDevice",
    "TraceRecord",
    "open_device",
]
