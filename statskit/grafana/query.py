"""The /query endpoint of a Grafana simple JSON data source."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Protocol

from statskit.grafana.http import (
    ServeMux,
    StreamEncoder,
    WSGIApp,
    _join_path,
    _object,
    _parse_duration,
    _parse_time,
    _timestamp_ms,
    _typed,
    json_endpoint,
)


class TargetType(str, enum.Enum):
    """The kinds of query target Grafana sends."""

    TIMESERIE = "timeserie"
    TABLE = "table"


class ColumnType(str, enum.Enum):
    """The column types Grafana understands."""

    UNTYPED = ""
    STRING = "string"
    TIME = "time"
    NUMBER = "number"


@dataclass
class Target:
    """The target of a query: an opaque query text and its kind."""

    query: str
    ref_id: str = ""
    type: TargetType | str = ""


@dataclass
class Column:
    """A table column."""

    text: str
    type: ColumnType | str = ColumnType.UNTYPED
    sort: bool = False
    desc: bool = False


def col(text: str, col_type: ColumnType | str) -> Column:
    """Return an unsorted column."""
    return Column(text=text, type=col_type)


def asc_col(text: str, col_type: ColumnType | str) -> Column:
    """Return a column sorted in ascending order."""
    return Column(text=text, type=col_type, sort=True)


def desc_col(text: str, col_type: ColumnType | str) -> Column:
    """Return a column sorted in descending order."""
    return Column(text=text, type=col_type, sort=True, desc=True)


@dataclass
class QueryRequest:
    """A request received on /query."""

    from_: datetime | None = None
    to: datetime | None = None
    interval: timedelta = timedelta(0)
    targets: list[Target] = field(default_factory=list)
    max_data_points: int = 0


class TimeserieWriter(Protocol):
    def write_datapoint(self, value: float, time: datetime) -> None:
        """Add a datapoint to the series."""


class TableWriter(Protocol):
    def write_row(self, *args: Any) -> None:
        """Add a row to the table."""


class QueryResponse(Protocol):
    """Receives the series and tables answering a query."""

    def timeserie(self, target: str) -> TimeserieWriter:
        """Start a new time series for target."""

    def table(self, *args: Column) -> TableWriter:
        """Start a new table with the given columns."""


class QueryHandler(Protocol):
    """Serves /query requests."""

    def serve_query(self, res: QueryResponse, req: QueryRequest) -> None:
        """Write the data for the targets and time range of req to res."""


class QueryHandlerFunc:
    """Adapts a function (res, req) into a query handler."""

    def __init__(self, func: Callable[[QueryResponse, QueryRequest], None]) -> None:
        self.func = func

    def serve_query(self, res: QueryResponse, req: QueryRequest) -> None:
        """Call the wrapped function."""
        self.func(res, req)


def _enum_text(value: Any) -> str:
    return value.value if isinstance(value, enum.Enum) else str(value)


def _column_json(column: Column) -> dict[str, Any]:
    out: dict[str, Any] = {"text": column.text}
    type_text = _enum_text(column.type)
    if type_text:
        out["type"] = type_text
    if column.sort:
        out["sort"] = True
    if column.desc:
        out["desc"] = True
    return out


class _Timeserie:
    def __init__(self, target: str) -> None:
        self.target = target
        self.datapoints: list[list[Any]] = []
        self.closed = False

    def write_datapoint(self, value: float, time: datetime) -> None:
        if self.closed:
            raise RuntimeError("writing to a timeserie after it was already flushed")
        self.datapoints.append([float(value), _timestamp_ms(time)])

    def to_json(self) -> dict[str, Any]:
        return {"target": self.target, "datapoints": self.datapoints}


class _Table:
    def __init__(self, columns: tuple[Column, ...]) -> None:
        self.columns = list(columns)
        self.rows: list[list[Any]] = []
        self.closed = False

    def write_row(self, *args: Any) -> None:
        if self.closed:
            raise RuntimeError("writing to a table after it was already flushed")
        if len(args) != len(self.columns):
            raise ValueError(
                "row value count doesn't match the number of columns, "
                f"expected {len(self.columns)} values but got {len(args)}"
            )
        self.rows.append([_timestamp_ms(v) if isinstance(v, datetime) else v for v in args])

    def to_json(self) -> dict[str, Any]:
        return {
            "columns": [_column_json(c) for c in self.columns],
            "rows": self.rows,
            "type": "table",
        }


class _QueryResponse:
    def __init__(self, encoder: StreamEncoder) -> None:
        self._encoder = encoder
        self._current: _Timeserie | _Table | None = None

    def timeserie(self, target: str) -> _Timeserie:
        self._flush()
        series = _Timeserie(target)
        self._current = series
        return series

    def table(self, *args: Column) -> _Table:
        self._flush()
        table = _Table(args)
        self._current = table
        return table

    def close(self) -> None:
        self._flush()
        self._encoder.close()

    def _flush(self) -> None:
        current, self._current = self._current, None
        if current is not None:
            current.closed = True
            self._encoder.encode(current.to_json())


def _target_type(raw: str) -> TargetType | str:
    try:
        return TargetType(raw)
    except ValueError:
        return raw


def _decode_request(payload: Any) -> QueryRequest:
    body = _object(payload)
    rng = _object(body.get("range"))
    raw_targets = body.get("targets") or []
    if not isinstance(raw_targets, list):
        raise ValueError("field 'targets' must be a list")
    targets = []
    for raw in raw_targets:
        obj = _object(raw)
        targets.append(
            Target(
                query=_typed(obj, "target", str, ""),
                ref_id=_typed(obj, "refId", str, ""),
                type=_target_type(_typed(obj, "type", str, "")),
            )
        )
    return QueryRequest(
        from_=_parse_time(rng.get("from")),
        to=_parse_time(rng.get("to")),
        interval=_parse_duration(body.get("interval")),
        targets=targets,
        max_data_points=_typed(body, "maxDataPoints", int, 0),
    )


def new_query_handler(handler: QueryHandler) -> WSGIApp:
    """Return a WSGI app delegating /query calls to handler."""

    def serve(encoder: StreamEncoder, payload: Any) -> None:
        req = _decode_request(payload)
        res = _QueryResponse(encoder)
        handler.serve_query(res, req)
        res.close()

    return json_endpoint(serve)


def handle_query(mux: ServeMux, prefix: str, handler: QueryHandler) -> None:
    """Install a query handler on <prefix>/query."""
    mux.handle(_join_path(prefix, "query"), new_query_handler(handler))