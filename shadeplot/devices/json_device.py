from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import math
from pathlib import Path
from typing import Any

from shadeplot.devices.base import Device, PanelRecord, TraceRecord
from shadeplot.devices.protocol import Command
from shadeplot.errors import DeviceWriteFailure


LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class JsonDevice(Device):
    """Collects panel and trace records; drawing primitives are ignored."""

    name = "json"

    def __init__(self, output: str | Path, *, command: str = "", font: str = "") -> None:
        super().__init__()
        self.path = Path(output)
        self.command = command
        self.font = font
        self.plots: list[dict[str, Any]] = []
        self._staged: list[dict[str, Any]] = []

    def annotate_panel(self, record: PanelRecord) -> None:
        self._require_frame()
        self._staged.append(
            {
                "pageIndex": record.page_index,
                "panelIndex": record.panel_index,
                "panelId": f"page{record.page_index}-panel{record.panel_index}",
                "layout": {
                    "title": record.title,
                    "topline": record.topline,
                    "xaxis": _axis(record.x_title, record.x_units, record.x_type, record.x_range),
                    "yaxis": _axis(record.y_title, record.y_units, record.y_type, record.y_range),
                    "legend": {"show": False},
                },
                "traces": [],
            }
        )

    def record_trace(self, record: TraceRecord) -> None:
        self._require_frame()
        if not self._staged:
            raise RuntimeError("record_trace called before annotate_panel")
        color = "#{:02x}{:02x}{:02x}".format(*record.line_color)
        self._staged[-1]["traces"].append(
            {
                "name": record.name,
                "type": "scatter",
                "mode": record.mode,
                "x": [_number(v) for v in record.x],
                "y": [_number(v) for v in record.y],
                "meta": dict(record.meta),
                "style": {
                    "line": {"width": record.line_width, "dash": record.dash, "color": color},
                    "marker": {"size": 0, "symbol": "none", "color": color},
                },
            }
        )

    def document(self) -> dict[str, Any]:
        from shadeplot import __version__

        return {
            "schemaVersion": SCHEMA_VERSION,
            "generator": {
                "name": "shadeplot",
                "version": __version__,
                "date": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            },
            "meta": {"command": self.command, "device": self.name, "font": self.font},
            "plots": list(self.plots),
        }

    def _commit(self, commands: list[Command]) -> None:
        _ = commands
        self.plots.extend(self._staged)
        self._staged = []

    def _abort(self) -> None:
        self._staged = []

    def _record_count(self) -> int:
        return len(self._staged)

    def _drop_records(self, keep: int) -> None:
        del self._staged[keep:]

    def _close(self) -> None:
        try:
            with self.path.open("w", encoding="utf-8") as f:
                json.dump(self.document(), f, indent=2)
                f.write("\n")
        except OSError as exc:
            raise DeviceWriteFailure(f"cannot write {self.path}: {exc}") from exc
        LOGGER.debug("wrote %d plots to %s", len(self.plots), self.path)


def _axis(title: str, units: str, kind: str, span: tuple[float, float] | None) -> dict[str, Any]:
    axis: dict[str, Any] = {"title": title, "units": units, "type": kind}
    if span is not None:
        axis["range"] = [_number(span[0]), _number(span[1])]
    return axis


def _number(value: float) -> float | None:
    v = float(value)
    return v if math.isfinite(v) else None
