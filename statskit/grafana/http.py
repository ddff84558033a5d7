"""HTTP plumbing shared by the endpoints of a Grafana simple JSON data source.

Endpoints are plain WSGI applications; a ServeMux routes requests to them.
"""

from __future__ import annotations

import io
import json
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, BinaryIO, Callable, Iterable
from urllib.parse import parse_qs

_log = logging.getLogger("statskit.grafana")

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]

RESPONSE_HEADERS: tuple[tuple[str, str], ...] = (
    ("Access-Control-Allow-Headers", "Accept, Content-Type"),
    ("Access-Control-Allow-Methods", "POST"),
    ("Access-Control-Allow-Origin", "*"),
    ("Content-Type", "application/json; charset=utf-8"),
    ("Server", "stats/grafana (simple-json-datasource)"),
)

_STATUS = {
    200: "200 OK",
    404: "404 Not Found",
    405: "405 Method Not Allowed",
    500: "500 Internal Server Error",
    504: "504 Gateway Timeout",
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_FRACTION = re.compile(r"(\.\d{6})\d+")

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

# Microseconds in each duration unit.
_DURATION_UNITS = {
    "ns": 1e-3,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1e3,
    "s": 1e6,
    "m": 6e7,
    "h": 3.6e9,
}


def _timestamp_ms(t: datetime) -> int:
    """Milliseconds since the Unix epoch, truncated toward zero.

    Naive datetimes are taken to be in local time.
    """
    if t.tzinfo is None:
        t = t.astimezone()
    delta = t - _EPOCH
    us = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
    return us // 1000 if us >= 0 else -(-us // 1000)


def _parse_time(value: Any) -> datetime | None:
    """Parse an RFC 3339 time; a missing value gives None."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"invalid time {value!r}")
    text = _FRACTION.sub(r"\1", value.strip())
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _parse_duration(value: Any) -> timedelta:
    """Parse a duration given as nanoseconds or as text such as "1m30s"."""
    if value is None:
        return timedelta(0)
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(microseconds=value / 1000)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration {value!r}")
    text = value.strip()
    sign = 1
    if text and text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")
    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return timedelta(microseconds=sign * total)


def _object(value: Any) -> dict:
    """Return value as a JSON object; null counts as an empty one."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return value


def _typed(obj: dict, key: str, kind: type, default: Any) -> Any:
    """Fetch obj[key], checking it has the expected JSON type."""
    value = obj.get(key)
    if value is None:
        return default
    if kind is int and isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, kind) or (kind is not bool and isinstance(value, bool)):
        raise ValueError(f"field {key!r} must be of type {kind.__name__}")
    return value


def _join_path(*parts: str) -> str:
    """Join parts into a clean absolute URL path."""
    segments: list[str] = []
    for part in parts:
        for seg in part.split("/"):
            if seg in ("", "."):
                continue
            if seg == "..":
                if segments:
                    segments.pop()
                continue
            segments.append(seg)
    return "/" + "/".join(segments)


def _to_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return _timestamp_ms(value)
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    if isinstance(value, dict):
        return {str(k): _to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(v) for v in value]
    return value


class StreamEncoder:
    """Writes a JSON array to out one element at a time.

    Datetimes are written as millisecond timestamps and integral floats
    without a fractional part.
    """

    def __init__(self, out: BinaryIO, pretty: bool = False) -> None:
        self._out = out
        self.pretty = pretty
        self._count = 0
        self._closed = False

    def encode(self, value: Any) -> None:
        """Append value to the array."""
        if self._closed:
            raise ValueError("encoding to a closed stream")
        if self.pretty:
            text = json.dumps(_to_json(value), indent=2, ensure_ascii=False)
            text = "\n".join("  " + line for line in text.split("\n"))
            sep = "[\n" if self._count == 0 else ",\n"
        else:
            text = json.dumps(_to_json(value), separators=(",", ":"), ensure_ascii=False)
            sep = "[" if self._count == 0 else ","
        self._out.write((sep + text).encode())
        self._count += 1

    def close(self) -> None:
        """Terminate the array; further calls do nothing."""
        if self._closed:
            return
        self._closed = True
        if self._count == 0:
            end = "[]"
        elif self.pretty:
            end = "\n]"
        else:
            end = "]"
        self._out.write(end.encode())


class ServeMux:
    """Routes WSGI requests by path.

    A pattern matches its path exactly, or, if it ends in a slash, every
    path below it; the longest matching pattern wins.
    """

    def __init__(self) -> None:
        self._routes: dict[str, WSGIApp] = {}

    def handle(self, pattern: str, app: WSGIApp) -> None:
        """Register app for pattern."""
        if not pattern.startswith("/"):
            raise ValueError(f"invalid pattern {pattern!r}")
        if pattern in self._routes:
            raise ValueError(f"multiple registrations for {pattern}")
        self._routes[pattern] = app

    def match(self, path: str) -> tuple[WSGIApp | None, str]:
        """Return the app serving path and its pattern, or (None, "")."""
        app = self._routes.get(path)
        if app is not None:
            return app, path
        best = ""
        for pattern in self._routes:
            if pattern.endswith("/") and path.startswith(pattern) and len(pattern) > len(best):
                best = pattern
        if best:
            return self._routes[best], best
        return None, ""

    def __call__(self, environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        app, _ = self.match(environ.get("PATH_INFO") or "/")
        if app is None:
            start_response(_STATUS[404], [("Content-Type", "text/plain; charset=utf-8")])
            return [b"404 page not found\n"]
        return app(environ, start_response)


def _read_body(environ: dict) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    stream = environ.get("wsgi.input")
    if stream is None or length <= 0:
        return b""
    return stream.read(length)


def json_endpoint(func: Callable[[StreamEncoder, Any], None]) -> WSGIApp:
    """Wrap func(encoder, payload) as a WSGI app answering JSON POST requests.

    OPTIONS gets an empty 200, other methods 405. The request body is
    decoded as JSON; a TimeoutError gives 504 and any other error 500.
    A "pretty" query parameter indents the response.
    """

    def app(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        method = str(environ.get("REQUEST_METHOD", "GET")).upper()
        headers = list(RESPONSE_HEADERS)
        if method == "OPTIONS":
            start_response(_STATUS[200], headers)
            return []
        if method != "POST":
            start_response(_STATUS[405], headers)
            return []

        query = parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True)
        out = io.BytesIO()
        encoder = StreamEncoder(out, pretty="pretty" in query)
        try:
            payload = json.loads(_read_body(environ))
            func(encoder, payload)
            encoder.close()
        except TimeoutError:
            start_response(_STATUS[504], headers)
            return []
        except Exception as exc:  # any failure of the endpoint becomes a 500
            _log.error("grafana: %s %s: %s", method, environ.get("PATH_INFO", ""), exc)
            start_response(_STATUS[500], headers)
            return []

        body = out.getvalue()
        start_response(_STATUS[200], headers + [("Content-Length", str(len(body)))])
        return [body]

    return app