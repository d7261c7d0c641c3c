from __future__ import annotations

import logging
import os
from pathlib import Path
import shutil
import subprocess
from typing import BinaryIO

from shadeplot.devices.base import Device
from shadeplot.devices.protocol import Command, encode_commands
from shadeplot.errors import DeviceWriteFailure


LOGGER = logging.getLogger(__name__)

DEFAULT_QT_PROGRAM = "mpl_qt"
DEFAULT_MOTIF_PROGRAM = "mpl_motif"


class StreamDevice(Device):
    """Writes each committed frame to a binary sink with one write call."""

    name = "stream"

    def __init__(self, sink: BinaryIO, *, owns_sink: bool = False) -> None:
        super().__init__()
        self._sink = sink
        self._owns_sink = owns_sink
        self.bytes_written = 0

    def _commit(self, commands: list[Command]) -> None:
        self._write(encode_commands(commands))

    def _commit_raw(self, commands: list[Command]) -> None:
        self._write(encode_commands(commands))

    def _write(self, payload: bytes) -> None:
        try:
            self._sink.write(payload)
            self._sink.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            raise DeviceWriteFailure(f"{self.name} device write failed: {exc}") from exc
        self.bytes_written += len(payload)

    def _close(self) -> None:
        if not self._owns_sink:
            return
        try:
            self._sink.close()
        except OSError as exc:
            raise DeviceWriteFailure(f"{self.name} device close failed: {exc}") from exc


class MplStreamDevice(StreamDevice):
    name = "mpl"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        try:
            sink = self.path.open("wb")
        except OSError as exc:
            raise DeviceWriteFailure(f"cannot open {self.path}: {exc}") from exc
        super().__init__(sink, owns_sink=True)


class QtDevice(StreamDevice):
    """Pipes the command stream into an interactive viewer process."""

    name = "qt"
    default_program = DEFAULT_QT_PROGRAM
    program_env = "MPL_QT_PROGRAM"

    def __init__(
        self,
        *,
        program: str | None = None,
        geometry: str | None = None,
        extra_args: list[str] | None = None,
        stop_timeout: float = 2.0,
    ) -> None:
        self.command = self._build_command(program, geometry, extra_args or [])
        self._stop_timeout = stop_timeout
        try:
            self._proc: subprocess.Popen[bytes] | None = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=None,
            )
        except OSError as exc:
            raise DeviceWriteFailure(f"cannot start viewer {self.command[0]!r}: {exc}") from exc
        if self._proc.stdin is None:
            raise DeviceWriteFailure("viewer stdin unavailable")
        LOGGER.debug("started viewer pid=%s command=%s", self._proc.pid, self.command)
        super().__init__(self._proc.stdin, owns_sink=False)

    def _build_command(self, program: str | None, geometry: str | None, extra_args: list[str]) -> list[str]:
        exe = program or os.environ.get(self.program_env, "").strip() or self.default_program
        resolved = shutil.which(exe) or exe
        command = [resolved]
        geometry = geometry or os.environ.get("MPL_GEOMETRY", "").strip() or None
        if geometry:
            command += ["-geometry", geometry]
        return command + list(extra_args)

    def _write(self, payload: bytes) -> None:
        proc = self._require_proc()
        if proc.poll() is not None:
            raise DeviceWriteFailure(f"viewer exited with status {proc.returncode}")
        super()._write(payload)

    def _close(self) -> None:
        if self._proc is None:
            return
        proc = self._proc
        self._proc = None
        try:
            if proc.stdin is not None:
                try:
                    proc.stdin.close()
                except OSError:
                    LOGGER.debug("viewer stdin already closed")
        finally:
            if proc.poll() is None:
                try:
                    proc.wait(timeout=self._stop_timeout)
                except subprocess.TimeoutExpired:
                    # Interactive viewers stay open until the user closes them.
                    LOGGER.debug("viewer pid=%s left running", proc.pid)

    def terminate(self) -> None:
        proc = self._proc
        if proc is None or proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=self._stop_timeout)
        except subprocess.TimeoutExpired:
            proc.kill()

    def _require_proc(self) -> subprocess.Popen[bytes]:
        if self._proc is None:
            raise DeviceWriteFailure("viewer process is not running")
        return self._proc


class MotifDevice(QtDevice):
    name = "motif"
    default_program = DEFAULT_MOTIF_PROGRAM
    program_env = "MPL_MOTIF_PROGRAM"
