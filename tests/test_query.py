import io
import json
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from wsgiref.util import setup_testing_defaults

import pytest

from statskit.grafana.http import ServeMux
from statskit.grafana.query import (
    Column,
    ColumnType,
    QueryHandlerFunc,
    QueryRequest,
    Target,
    TargetType,
    asc_col,
    col,
    desc_col,
    handle_query,
    new_query_handler,
)

T0 = datetime(2017, 8, 16, 12, 34, tzinfo=timezone.utc)
T1 = T0 + timedelta(minutes=1)

QUERY_RESULT = """[
  {
    "target": "upper_50",
    "datapoints": [
      [
        622,
        1502886840000
      ],
      [
        265,
        1502886900000
      ]
    ]
  },
  {
    "target": "upper_75",
    "datapoints": [
      [
        622,
        1502886840000
      ],
      [
        265,
        1502886900000
      ]
    ]
  },
  {
    "columns": [
      {
        "text": "Time",
        "type": "time"
      },
      {
        "text": "Country",
        "type": "string"
      },
      {
        "text": "Number",
        "type": "number"
      }
    ],
    "rows": [
      [
        1502886840000,
        "SE",
        123
      ],
      [
        1502886840000,
        "DE",
        231
      ],
      [
        1502886900000,
        "US",
        321
      ]
    ],
    "type": "table"
  }
]"""

REQUEST = {
    "range": {"from": "2017-08-16T12:34:00Z", "to": "2017-08-16T12:35:00Z"},
    "interval": "1s",
    "targets": [
        {"target": "upper_50", "refId": "A", "type": "timeserie"},
        {"target": "upper_75", "refId": "B", "type": "timeserie"},
        {"target": "entries", "refId": "C", "type": "table"},
    ],
    "maxDataPoints": 150,
}


def _call(app, method="POST", path="/", query="", body=b""):
    environ = {}
    setup_testing_defaults(environ)
    environ.update(
        {
            "REQUEST_METHOD": method,
            "PATH_INFO": path,
            "QUERY_STRING": query,
            "CONTENT_LENGTH": str(len(body)),
            "wsgi.input": io.BytesIO(body),
        }
    )
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status

    chunks = app(environ, start_response)
    return captured["status"], b"".join(chunks)


def _status(code):
    return f"{code.value} {code.phrase}"


def _serve(res, req):
    for target in req.targets:
        if target.type == TargetType.TIMESERIE:
            series = res.timeserie(target.query)
            series.write_datapoint(622, T0)
            series.write_datapoint(265, T1)
        elif target.type == TargetType.TABLE:
            table = res.table(
                col("Time", ColumnType.TIME),
                col("Country", ColumnType.STRING),
                col("Number", ColumnType.NUMBER),
            )
            table.write_row(T0, "SE", 123)
            table.write_row(T0, "DE", 231)
            table.write_row(T1, "US", 321)


def test_query_handler():
    requests = []

    def serve(res, req):
        requests.append(req)
        _serve(res, req)

    app = new_query_handler(QueryHandlerFunc(serve))
    status, body = _call(app, path="/query", query="pretty", body=json.dumps(REQUEST).encode())
    assert status == _status(HTTPStatus.OK)
    assert body.decode() == QUERY_RESULT
    assert requests == [
        QueryRequest(
            from_=T0,
            to=T1,
            interval=timedelta(seconds=1),
            targets=[
                Target(query="upper_50", ref_id="A", type=TargetType.TIMESERIE),
                Target(query="upper_75", ref_id="B", type=TargetType.TIMESERIE),
                Target(query="entries", ref_id="C", type=TargetType.TABLE),
            ],
            max_data_points=150,
        )
    ]


def test_interval_given_in_nanoseconds():
    requests = []
    app = new_query_handler(QueryHandlerFunc(lambda res, req: requests.append(req)))
    status, body = _call(app, body=json.dumps({"interval": 1_000_000_000}).encode())
    assert status == _status(HTTPStatus.OK)
    assert body == b"[]"
    assert requests[0].interval == timedelta(seconds=1)


def test_column_constructors():
    assert col("Time", ColumnType.TIME) == Column("Time", ColumnType.TIME, False, False)
    assert asc_col("Time", ColumnType.TIME) == Column("Time", ColumnType.TIME, True, False)
    assert desc_col("Time", ColumnType.TIME) == Column("Time", ColumnType.TIME, True, True)


def test_column_optional_keys_are_omitted():
    def serve(res, req):
        res.table(Column("plain"), desc_col("n", ColumnType.NUMBER))

    _, body = _call(new_query_handler(QueryHandlerFunc(serve)), body=b"{}")
    (table,) = json.loads(body)
    assert table["columns"] == [
        {"text": "plain"},
        {"text": "n", "type": "number", "sort": True, "desc": True},
    ]
    assert table["rows"] == []


def test_table_row_count_mismatch_raises():
    errors = []

    def serve(res, req):
        table = res.table(col("a", ColumnType.STRING), col("b", ColumnType.STRING))
        with pytest.raises(ValueError) as info:
            table.write_row("only one")
        errors.append(str(info.value))

    status, body = _call(new_query_handler(QueryHandlerFunc(serve)), body=b"{}")
    assert errors == [
        "row value count doesn't match the number of columns, expected 2 values but got 1"
    ]
    assert status == _status(HTTPStatus.OK)
    (table,) = json.loads(body)
    assert table["rows"] == []
    assert [c["text"] for c in table["columns"]] == ["a", "b"]


def test_writing_after_flush_raises():
    outcomes = []

    def serve(res, req):
        series = res.timeserie("a")
        table = res.table(col("x", ColumnType.STRING))
        res.timeserie("b")
        for write in (lambda: series.write_datapoint(1, T0), lambda: table.write_row("x")):
            try:
                write()
            except RuntimeError as exc:
                outcomes.append(str(exc))

    status, body = _call(new_query_handler(QueryHandlerFunc(serve)), body=b"{}")
    assert outcomes == [
        "writing to a timeserie after it was already flushed",
        "writing to a table after it was already flushed",
    ]
    assert status == _status(HTTPStatus.OK)
    assert json.loads(body) == [
        {"target": "a", "datapoints": []},
        {"columns": [{"text": "x", "type": "string"}], "rows": [], "type": "table"},
        {"target": "b", "datapoints": []},
    ]


def test_handle_query_mounts_under_prefix():
    mux = ServeMux()
    handle_query(mux, "/ds/", QueryHandlerFunc(_serve))
    status, body = _call(mux, path="/ds/query", body=json.dumps(REQUEST).encode())
    assert status == _status(HTTPStatus.OK)
    assert [r.get("target", r.get("type")) for r in json.loads(body)] == [
        "upper_50",
        "upper_75",
        "table",
    ]


def test_bad_interval_is_server_error():
    app = new_query_handler(QueryHandlerFunc(_serve))
    status, _ = _call(app, body=json.dumps({"interval": "soon"}).encode())
    assert status == _status(HTTPStatus.INTERNAL_SERVER_ERROR)