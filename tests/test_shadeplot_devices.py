from __future__ import annotations

import io
import json
import os
from pathlib import Path
import tempfile
import unittest
from unittest import mock

from PIL import Image

from shadeplot.color import ColorMap
from shadeplot.config import DeviceSpec
from shadeplot.devices import (
    JsonDevice,
    MplStreamDevice,
    PanelRecord,
    PngDevice,
    PostscriptDevice,
    QtDevice,
    StreamDevice,
    TraceRecord,
    open_device,
)
from shadeplot.devices.png import frame_path
from shadeplot.devices.protocol import (
    BeginFrame,
    EndFrame,
    FillBox,
    Move,
    Reset,
    Spectrum,
    Units,
    Width,
    decode_stream,
    validate_stream,
)
from shadeplot.errors import DeviceWriteFailure, MalformedInput, UsageError
from shadeplot.layout import DEVICE_HEIGHT, DEVICE_WIDTH, Rect, build_mapping, panel_space


class StreamDeviceTests(unittest.TestCase):
    def test_frame_is_written_on_end_with_identity_units(self) -> None:
        sink = io.BytesIO()
        device = StreamDevice(sink)
        device.begin_frame()
        device.move(10.4, 20.6)
        self.assertEqual(sink.getvalue(), b"")
        device.end_frame()
        commands = decode_stream(sink.getvalue())
        self.assertEqual(commands, [BeginFrame(), Move(10, 21), Units(1.0, 0.0, 1.0, 0.0), EndFrame()])
        self.assertEqual(device.frames_committed, 1)
        self.assertEqual(device.bytes_written, len(sink.getvalue()))

    def test_mapping_sets_units(self) -> None:
        sink = io.BytesIO()
        device = StreamDevice(sink)
        mapping = build_mapping(Rect(0.0, 10.0, 0.0, 5.0), panel_space())
        device.begin_frame()
        device.set_mapping(mapping)
        device.end_frame()
        units = decode_stream(sink.getvalue())[1]
        self.assertEqual(units, Units(*mapping.device_to_world()))

    def test_out_of_plane_points_are_clamped_and_counted(self) -> None:
        sink = io.BytesIO()
        device = StreamDevice(sink)
        device.begin_frame()
        device.move(-5, 5000)
        device.vector(100, 100)
        with self.assertLogs("shadeplot.devices.base", level="WARNING") as logs:
            device.end_frame()
        self.assertIn("clamped_points=1", logs.output[0])
        self.assertEqual(decode_stream(sink.getvalue())[1], Move(0, DEVICE_HEIGHT - 1))

    def test_abort_emits_reset(self) -> None:
        sink = io.BytesIO()
        device = StreamDevice(sink)
        device.begin_frame()
        device.move(1, 1)
        device.abort_frame()
        self.assertEqual(sink.getvalue(), b"RE")
        self.assertFalse(device.in_frame)

    def test_exception_inside_context_aborts_open_frame(self) -> None:
        sink = io.BytesIO()
        with self.assertRaises(RuntimeError):
            with StreamDevice(sink) as device:
                device.begin_frame()
                device.move(1, 1)
                raise RuntimeError("boom")
        self.assertEqual(decode_stream(sink.getvalue()), [Reset(), EndFrame()])
        self.assertFalse(sink.closed)

    def test_rollback_drops_commands_after_mark(self) -> None:
        sink = io.BytesIO()
        device = StreamDevice(sink)
        device.begin_frame()
        device.move(1, 1)
        mark = device.mark()
        device.set_mapping(build_mapping(Rect(0.0, 10.0, 0.0, 5.0), panel_space()))
        device.move(-5, 5000)
        device.fill_box(0, 10, 20, 10, 20)
        device.rollback(mark)
        self.assertTrue(device.in_frame)
        with self.assertNoLogs("shadeplot.devices.base", level="WARNING"):
            device.end_frame()
        self.assertEqual(decode_stream(sink.getvalue()), [BeginFrame(), Move(1, 1), Units(1.0, 0.0, 1.0, 0.0), EndFrame()])

    def test_non_finite_coordinates_are_malformed_input(self) -> None:
        device = StreamDevice(io.BytesIO())
        device.begin_frame()
        with self.assertRaises(MalformedInput):
            device.move(float("nan"), 1.0)
        with self.assertRaises(MalformedInput):
            device.fill_box(0, 0.0, float("inf"), 0.0, 1.0)

    def test_frame_order_rules(self) -> None:
        device = StreamDevice(io.BytesIO())
        with self.assertRaises(RuntimeError):
            device.move(0, 0)
        device.begin_frame()
        with self.assertRaises(RuntimeError):
            device.begin_frame()
        device.end_frame()
        device.close()
        with self.assertRaises(DeviceWriteFailure):
            device.begin_frame()

    def test_closed_sink_is_a_device_failure(self) -> None:
        sink = io.BytesIO()
        device = StreamDevice(sink)
        sink.close()
        device.begin_frame()
        with self.assertRaises(DeviceWriteFailure):
            device.end_frame()

    def test_payload_helpers(self) -> None:
        sink = io.BytesIO()
        device = StreamDevice(sink)
        device.begin_frame()
        device.width(42)
        device.spectrum(ColorMap(levels=5))
        device.fill_box(3, 200, 100, 50, 10)
        device.polyline([0, 10, 20], [0, 10, 0])
        device.end_frame()
        commands = decode_stream(sink.getvalue())
        self.assertIn(Width(9), commands)
        self.assertIn(Spectrum(6, 4, 0, 0, 0, 0, 0, 0), commands)
        self.assertIn(FillBox(3, 100, 200, 10, 50), commands)
        self.assertEqual(validate_stream(commands), [])

    def test_mpl_file_device_owns_its_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "plot.mpl"
            with MplStreamDevice(path) as device:
                device.begin_frame()
                device.end_frame()
            self.assertEqual(decode_stream(path.read_bytes())[0], BeginFrame())


class QtDeviceTests(unittest.TestCase):
    def _proc(self, poll: int | None = None) -> mock.MagicMock:
        proc = mock.MagicMock()
        proc.stdin = io.BytesIO()
        proc.poll.return_value = poll
        proc.pid = 4242
        return proc

    def test_viewer_receives_frames(self) -> None:
        proc = self._proc()
        with mock.patch("shadeplot.devices.stream.shutil.which", return_value=None), mock.patch(
            "shadeplot.devices.stream.subprocess.Popen", return_value=proc
        ) as popen, mock.patch.dict(os.environ, {"MPL_GEOMETRY": "800x600+0+0"}):
            device = QtDevice(program="viewer", extra_args=["-keep"])
            device.begin_frame()
            device.point(5, 5)
            device.end_frame()
            written = proc.stdin.getvalue()
            device.close()
        self.assertEqual(popen.call_args.args[0], ["viewer", "-geometry", "800x600+0+0", "-keep"])
        self.assertEqual(decode_stream(written)[0], BeginFrame())
        proc.wait.assert_called_once_with(timeout=2.0)

    def test_program_from_environment(self) -> None:
        proc = self._proc()
        with mock.patch("shadeplot.devices.stream.shutil.which", return_value="/opt/bin/qtview"), mock.patch(
            "shadeplot.devices.stream.subprocess.Popen", return_value=proc
        ) as popen, mock.patch.dict(os.environ, {"MPL_QT_PROGRAM": "qtview", "MPL_GEOMETRY": ""}):
            QtDevice()
        self.assertEqual(popen.call_args.args[0], ["/opt/bin/qtview"])

    def test_exited_viewer_fails_writes(self) -> None:
        proc = self._proc(poll=1)
        with mock.patch("shadeplot.devices.stream.subprocess.Popen", return_value=proc):
            device = QtDevice(program="viewer")
            device.begin_frame()
            with self.assertRaises(DeviceWriteFailure):
                device.end_frame()

    def test_missing_viewer(self) -> None:
        with mock.patch("shadeplot.devices.stream.subprocess.Popen", side_effect=FileNotFoundError("nope")):
            with self.assertRaises(DeviceWriteFailure):
                QtDevice(program="viewer")


class FileDeviceTests(unittest.TestCase):
    def test_frame_path_template(self) -> None:
        self.assertEqual(frame_path("out.png", 1), Path("out.png"))
        self.assertEqual(frame_path("out.png", 3), Path("out-3.png"))
        self.assertEqual(frame_path("frame%d.png", 2), Path("frame2.png"))

    def test_png_frames(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            device = PngDevice(Path(tmp) / "plot.png", width_px=64)
            for _ in range(2):
                device.begin_frame()
                device.spectrum(ColorMap(levels=1, palette="grayscale"))
                device.fill_box(0, 0, DEVICE_WIDTH - 1, 0, DEVICE_HEIGHT - 1)
                device.end_frame()
            device.begin_frame()
            device.abort_frame()
            device.close()
            self.assertEqual([p.name for p in device.paths], ["plot.png", "plot-2.png"])
            with Image.open(device.paths[0]) as image:
                self.assertEqual(image.size, (64, 49))
                self.assertEqual(image.convert("RGB").getpixel((32, 24)), (0, 0, 0))

    def test_png_unknown_shade_warns(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            device = PngDevice(Path(tmp) / "plot.png", width_px=32)
            device.begin_frame()
            device.fill_box(7, 0, 10, 0, 10)
            with self.assertLogs("shadeplot.devices.png", level="WARNING") as logs:
                device.end_frame()
            self.assertIn("bad_shades=1", logs.output[0])

    def test_postscript_pages(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "plot.ps"
            with PostscriptDevice(path) as device:
                for _ in range(2):
                    device.begin_frame()
                    device.spectrum(ColorMap(levels=3))
                    device.fill_box(1, 10, 20, 10, 20)
                    device.polyline([0, 100], [0, 100])
                    device.end_frame()
            text = path.read_text(encoding="ascii")
        self.assertTrue(text.startswith("%!PS-Adobe-3.0"))
        self.assertIn("%%Page: 1 1", text)
        self.assertIn("%%Page: 2 2", text)
        self.assertIn("%%Pages: 2", text)
        self.assertEqual(text.count("rectfill"), 2)

    def test_json_records_panels_and_traces(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "plot.json"
            with JsonDevice(path, command="shadeplot contour in.jsonl") as device:
                device.begin_frame()
                device.annotate_panel(PanelRecord(page_index=1, panel_index=0, x_title="Time", y_title="s", x_range=(0.0, 1.0)))
                device.record_trace(TraceRecord(name="level 5", x=[0.0, float("nan")], y=[1.0, 2.0], line_color=(255, 0, 0)))
                device.end_frame()
                device.begin_frame()
                device.annotate_panel(PanelRecord(page_index=2, panel_index=0))
                device.abort_frame()
            doc = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(doc["meta"]["command"], "shadeplot contour in.jsonl")
        self.assertEqual(len(doc["plots"]), 1)
        plot = doc["plots"][0]
        self.assertEqual(plot["layout"]["xaxis"]["title"], "Time")
        self.assertEqual(plot["layout"]["xaxis"]["range"], [0.0, 1.0])
        self.assertEqual(plot["traces"][0]["x"], [0.0, None])
        self.assertEqual(plot["traces"][0]["style"]["line"]["color"], "#ff0000")

    def test_json_rollback_drops_staged_panels(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "plot.json"
            with JsonDevice(path) as device:
                device.begin_frame()
                device.annotate_panel(PanelRecord(page_index=1, panel_index=0))
                mark = device.mark()
                device.annotate_panel(PanelRecord(page_index=2, panel_index=1))
                device.record_trace(TraceRecord(name="level 1", x=[0.0, 1.0], y=[0.0, 1.0]))
                device.rollback(mark)
                device.end_frame()
            doc = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual([plot["pageIndex"] for plot in doc["plots"]], [1])
        self.assertEqual(doc["plots"][0]["traces"], [])

    def test_json_trace_needs_panel(self) -> None:
        device = JsonDevice("unused.json")
        device.begin_frame()
        with self.assertRaises(RuntimeError):
            device.record_trace(TraceRecord(name="x", x=[0.0], y=[0.0]))


class OpenDeviceTests(unittest.TestCase):
    def test_file_devices(self) -> None:
        png = open_device(DeviceSpec(kind="png", output="a.png", args=("width=200",)))
        self.assertIsInstance(png, PngDevice)
        self.assertEqual(png.width_px, 200)
        self.assertIsInstance(open_device(DeviceSpec(kind="json", output="a.json")), JsonDevice)

    def test_bad_device_arguments(self) -> None:
        with self.assertRaises(UsageError):
            open_device(DeviceSpec(kind="png", output="a.png", args=("depth=8",)))
        with self.assertRaises(UsageError):
            DeviceSpec(kind="png")
        with self.assertRaises(UsageError):
            DeviceSpec(kind="plotter")


if __name__ == "__main__":
    unittest.main()
