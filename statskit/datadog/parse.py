"""Parsing of dogstatsd metric and event lines."""

from __future__ import annotations

import enum
import re
from typing import TypeVar

from statskit.datadog.metric import Event, EventAlertType, EventPriority, Metric, MetricType
from statskit.field import Tag

_INT = re.compile(r"[+-]?[0-9]+")

_E = TypeVar("_E", bound=enum.Enum)


class ParseError(ValueError):
    """Raised when a dogstatsd line is malformed."""


def _next_token(s: str, sep: str) -> tuple[str, str]:
    token, found, rest = s.partition(sep)
    return (token, rest) if found else (s, "")


def _split(s: str, sep: str) -> tuple[str, str]:
    head, found, tail = s.rpartition(sep)
    return (head, tail) if found else (s, "")


def _coerce(enum_cls: type[_E], raw: str) -> _E | str:
    try:
        return enum_cls(raw)
    except ValueError:
        return raw


def _parse_tags(raw: str) -> list[Tag]:
    tags = []
    for tag in raw.split(","):
        if tag:
            name, value = _split(tag, ":")
            tags.append(Tag(name, value))
    return tags


def _parse_float(text: str) -> float:
    if "_" in text or text != text.strip():
        raise ValueError(text)
    return float(text)


def _parse_int(text: str) -> int:
    if not _INT.fullmatch(text):
        raise ValueError(text)
    return int(text)


def parse_metric(s: str) -> Metric:
    """Parse one dogstatsd metric line."""
    rest = s.strip()
    val, rest = _next_token(rest, "|")
    typ, rest = _next_token(rest, "|")
    rate, tags = _next_token(rest, "|")
    name, val = _split(val, ":")

    if not name:
        raise ParseError(f"datadog: {s!r} is missing a metric name")
    if not val:
        raise ParseError(f"datadog: {s!r} is missing a metric value")
    if not typ:
        raise ParseError(f"datadog: {s!r} is missing a metric type")

    if rate:
        if rate[0] == "#":
            rate, tags = "", rate
        elif rate[0] == "@":
            rate = rate[1:]
        else:
            raise ParseError(f"datadog: {s!r} has a malformed sample rate")

    if tags:
        if tags[0] != "#":
            raise ParseError(f"datadog: {s!r} has malformed tags")
        tags = tags[1:]

    try:
        value = _parse_float(val)
    except ValueError:
        raise ParseError(f"datadog: {s!r} has a malformed value") from None

    sample_rate = 0.0
    if rate:
        try:
            sample_rate = _parse_float(rate)
        except ValueError:
            raise ParseError(f"datadog: {s!r} has a malformed sample rate") from None
    if sample_rate == 0:
        sample_rate = 1.0

    return Metric(
        type=_coerce(MetricType, typ),
        name=name,
        value=value,
        rate=sample_rate,
        tags=_parse_tags(tags),
    )


def parse_event(s: str) -> Event:
    """Parse one dogstatsd event line."""
    rest = s.strip()
    header, rest = _next_token(rest, ":")
    if len(header) < 7:
        raise ParseError(f"datadog: {s!r} has a malformed event header")
    header = header[3:-1]
    raw_title_len, raw_text_len = _split(header, ",")

    try:
        title_len = _parse_int(raw_title_len)
    except ValueError:
        raise ParseError(f"datadog: {s!r} has a malformed title length") from None
    try:
        text_len = _parse_int(raw_text_len)
    except ValueError:
        raise ParseError(f"datadog: {s!r} has a malformed text length") from None

    body = rest.encode()
    text_end = title_len + 1 + text_len
    if title_len < 0 or text_len < 0 or text_end > len(body):
        raise ParseError(f"datadog: {s!r} has lengths that exceed the event")

    raw_title = body[:title_len].decode(errors="replace")
    raw_text = body[title_len + 1 : text_end].decode(errors="replace")
    rest = body[text_end:].decode(errors="replace")

    if not raw_title:
        raise ParseError(f"datadog: {s!r} has a malformed title")
    if not raw_text:
        raise ParseError(f"datadog: {s!r} has malformed text")

    event = Event(title=raw_title, text=raw_text.replace("\\n", "\n"))
    tags = ""

    if len(rest) > 1:
        for item in rest[1:].split("|"):
            kind = item[:1]
            if kind == "d":
                try:
                    event.ts = _parse_int(item[2:])
                except ValueError:
                    raise ParseError(f"datadog: {s!r} has a malformed timestamp") from None
            elif kind == "p":
                event.priority = _coerce(EventPriority, item[2:])
            elif kind == "h":
                event.host = item[2:]
            elif kind == "t":
                event.alert_type = _coerce(EventAlertType, item[2:])
            elif kind == "k":
                event.aggregation_key = item[2:]
            elif kind == "s":
                event.source_type_name = item[2:]
            elif kind == "#":
                tags = item[1:]
            else:
                raise ParseError(f"datadog: {s!r} has unexpected metadata field")

    event.tags = _parse_tags(tags)
    return event