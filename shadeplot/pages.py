from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
import threading
from typing import Any

import numpy as np

from shadeplot.errors import InputReadFailure, MalformedInput


try:
    import pandas as pd
except Exception:  # pragma: no cover - optional dependency
    pd = None  # type: ignore[assignment]


LOGGER = logging.getLogger(__name__)

NUMERIC_TYPES: dict[str, np.dtype] = {
    "short": np.dtype(np.int16),
    "ushort": np.dtype(np.uint16),
    "long": np.dtype(np.int32),
    "ulong": np.dtype(np.uint32),
    "long64": np.dtype(np.int64),
    "ulong64": np.dtype(np.uint64),
    "float": np.dtype(np.float32),
    "double": np.dtype(np.float64),
}
INTEGER_TYPES = frozenset({"short", "ushort", "long", "ulong", "long64", "ulong64"})
FLOATING_TYPES = frozenset({"float", "double"})
TEXT_TYPES = frozenset({"character", "string"})
ALL_TYPES = frozenset(NUMERIC_TYPES) | TEXT_TYPES


@dataclass(frozen=True)
class Parameter:
    name: str
    type: str
    value: Any
    units: str = ""
    symbol: str = ""

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES


@dataclass(frozen=True)
class Column:
    name: str
    type: str
    values: np.ndarray
    units: str = ""
    symbol: str = ""

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES


@dataclass(frozen=True)
class ArrayData:
    name: str
    type: str
    values: np.ndarray
    units: str = ""

    @property
    def dimensions(self) -> tuple[int, ...]:
        return tuple(int(v) for v in self.values.shape)


@dataclass
class Page:
    index: int = 1
    description: str = ""
    parameters: dict[str, Parameter] = field(default_factory=dict)
    columns: dict[str, Column] = field(default_factory=dict)
    arrays: dict[str, ArrayData] = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        for column in self.columns.values():
            return int(column.values.shape[0])
        return 0

    def has_parameter(self, name: str) -> bool:
        return name in self.parameters

    def parameter(self, name: str) -> Parameter:
        try:
            return self.parameters[name]
        except KeyError as exc:
            raise MalformedInput(f"parameter not found: {name}") from exc

    def numeric_parameter(self, name: str) -> float:
        param = self.parameter(name)
        if not param.is_numeric:
            raise MalformedInput(f"parameter {name} is not numeric (type {param.type})")
        return float(param.value)

    def integer_parameter(self, name: str) -> int:
        param = self.parameter(name)
        if param.type not in INTEGER_TYPES:
            raise MalformedInput(f"parameter {name} must have an integer type, not {param.type}")
        return int(param.value)

    def string_parameter(self, name: str) -> str:
        param = self.parameter(name)
        if param.type not in TEXT_TYPES:
            raise MalformedInput(f"parameter {name} must be a string, not {param.type}")
        return str(param.value)

    def column(self, name: str) -> Column:
        try:
            return self.columns[name]
        except KeyError as exc:
            raise MalformedInput(f"column not found: {name}") from exc

    def numeric_column(self, name: str) -> np.ndarray:
        col = self.column(name)
        if not col.is_numeric:
            raise MalformedInput(f"column {name} is not numeric (type {col.type})")
        return col.values.astype(np.float64, copy=False)

    def array(self, name: str) -> ArrayData:
        try:
            arr = self.arrays[name]
        except KeyError as exc:
            raise MalformedInput(f"array not found: {name}") from exc
        if arr.type not in NUMERIC_TYPES:
            raise MalformedInput(f"array {name} is not numeric (type {arr.type})")
        return arr


def page_from_dict(payload: dict[str, Any], *, index: int = 1) -> Page:
    if not isinstance(payload, dict):
        raise InputReadFailure("page record must be an object")
    page = Page(index=index, description=str(payload.get("description", "")))
    for name, raw in dict(payload.get("parameters", {})).items():
        page.parameters[name] = _parameter_from_raw(name, raw)
    rows: int | None = None
    for name, raw in dict(payload.get("columns", {})).items():
        column = _column_from_raw(name, raw)
        if rows is None:
            rows = column.values.shape[0]
        elif column.values.shape[0] != rows:
            raise MalformedInput(f"column {name} has {column.values.shape[0]} rows, expected {rows}")
        page.columns[name] = column
    for name, raw in dict(payload.get("arrays", {})).items():
        page.arrays[name] = _array_from_raw(name, raw)
    return page


def page_to_dict(page: Page) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if page.description:
        out["description"] = page.description
    if page.parameters:
        out["parameters"] = {
            p.name: _strip_empty({"type": p.type, "value": _jsonable(p.value), "units": p.units, "symbol": p.symbol})
            for p in page.parameters.values()
        }
    if page.columns:
        out["columns"] = {
            c.name: _strip_empty({"type": c.type, "values": _jsonable(c.values), "units": c.units, "symbol": c.symbol})
            for c in page.columns.values()
        }
    if page.arrays:
        out["arrays"] = {
            a.name: _strip_empty(
                {
                    "type": a.type,
                    "dimensions": list(a.dimensions),
                    "values": _jsonable(a.values.reshape(-1)),
                    "units": a.units,
                }
            )
            for a in page.arrays.values()
        }
    return out


class JsonlPageReader:
    """Reads one page per JSON line; blank lines are ignored."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def __iter__(self) -> Iterator[Page]:
        try:
            handle = self.path.open("r", encoding="utf-8")
        except OSError as exc:
            raise InputReadFailure(f"unable to open {self.path}: {exc}") from exc
        with handle:
            index = 0
            for lineno, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError as exc:
                    raise InputReadFailure(f"{self.path}:{lineno}: invalid page record") from exc
                index += 1
                yield page_from_dict(payload, index=index)


class JsonlPageWriter:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._pages_written = 0
        with self.path.open("w", encoding="utf-8"):
            pass

    @property
    def pages_written(self) -> int:
        return self._pages_written

    def write(self, page: Page) -> None:
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(page_to_dict(page), separators=(",", ":"), sort_keys=True))
                f.write("\n")
            self._pages_written += 1


def pages_from_dataframe(data: Any, *, description: str = "") -> list[Page]:
    if pd is None:
        raise MalformedInput("pandas is required to read DataFrame pages")
    if not isinstance(data, pd.DataFrame):
        raise MalformedInput("data must be a pandas DataFrame")
    page = Page(index=1, description=description)
    for name in data.columns:
        series = data[name]
        values = series.to_numpy()
        if pd.api.types.is_numeric_dtype(series):
            type_name = _type_for_dtype(values.dtype)
            page.columns[str(name)] = Column(name=str(name), type=type_name, values=values.astype(NUMERIC_TYPES[type_name]))
        else:
            page.columns[str(name)] = Column(name=str(name), type="string", values=values.astype(str))
    return [page]


def read_pages(source: str | Path | Iterable[Page]) -> Iterator[Page]:
    if isinstance(source, (str, Path)):
        yield from JsonlPageReader(source)
        return
    yield from source


def _parameter_from_raw(name: str, raw: Any) -> Parameter:
    if isinstance(raw, dict):
        value = raw.get("value")
        type_name = str(raw.get("type") or _infer_type(value))
        units = str(raw.get("units", ""))
        symbol = str(raw.get("symbol", ""))
    else:
        value = raw
        type_name = _infer_type(raw)
        units = symbol = ""
    _check_type(name, type_name)
    if type_name in INTEGER_TYPES:
        value = int(value)
    elif type_name in FLOATING_TYPES:
        value = float("nan") if value is None else float(value)
    else:
        value = "" if value is None else str(value)
    return Parameter(name=name, type=type_name, value=value, units=units, symbol=symbol)


def _column_from_raw(name: str, raw: Any) -> Column:
    if isinstance(raw, dict):
        values = raw.get("values", [])
        type_name = str(raw.get("type") or _infer_type(values[0] if values else 0.0))
        units = str(raw.get("units", ""))
        symbol = str(raw.get("symbol", ""))
    else:
        values = raw
        type_name = _infer_type(values[0] if values else 0.0)
        units = symbol = ""
    _check_type(name, type_name)
    return Column(name=name, type=type_name, values=_to_array(name, values, type_name), units=units, symbol=symbol)


def _array_from_raw(name: str, raw: Any) -> ArrayData:
    if not isinstance(raw, dict):
        raise InputReadFailure(f"array {name} must be an object")
    type_name = str(raw.get("type", "double"))
    _check_type(name, type_name)
    values = _to_array(name, raw.get("values", []), type_name)
    dims = raw.get("dimensions")
    if dims is not None:
        dims = tuple(int(d) for d in dims)
        if int(np.prod(dims)) != values.size:
            raise MalformedInput(f"array {name} has {values.size} values for dimensions {dims}")
        values = values.reshape(dims)
    return ArrayData(name=name, type=type_name, values=values, units=str(raw.get("units", "")))


def _to_array(name: str, values: Any, type_name: str) -> np.ndarray:
    if type_name in TEXT_TYPES:
        return np.asarray(["" if v is None else str(v) for v in values], dtype=object)
    try:
        if type_name in FLOATING_TYPES:
            return np.asarray([np.nan if v is None else v for v in values], dtype=NUMERIC_TYPES[type_name])
        return np.asarray(values, dtype=NUMERIC_TYPES[type_name])
    except (TypeError, ValueError) as exc:
        raise MalformedInput(f"{name}: values do not match type {type_name}") from exc


def _check_type(name: str, type_name: str) -> None:
    if type_name not in ALL_TYPES:
        raise InputReadFailure(f"{name}: unsupported type {type_name!r}")


def _infer_type(value: Any) -> str:
    if isinstance(value, bool):
        return "short"
    if isinstance(value, int):
        return "long64"
    if isinstance(value, float) or value is None:
        return "double"
    return "string"


def _type_for_dtype(dtype: np.dtype) -> str:
    if dtype.kind == "b":
        return "short"
    for name, candidate in NUMERIC_TYPES.items():
        if candidate == dtype:
            return name
    return "double"


def _jsonable(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        if value.dtype.kind == "f":
            return [None if not np.isfinite(v) else float(v) for v in value.tolist()]
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, float) and not np.isfinite(value):
        return None
    return value


def _strip_empty(entry: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in entry.items() if v != ""}
