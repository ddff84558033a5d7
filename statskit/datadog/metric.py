"""Metric and event types of the dogstatsd protocol and their text form."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from statskit.field import Tag


class MetricType(str, enum.Enum):
    """The metric types understood by dogstatsd."""

    COUNTER = "c"
    GAUGE = "g"
    HISTOGRAM = "h"
    DISTRIBUTION = "d"
    UNKNOWN = "?"


class EventPriority(str, enum.Enum):
    """Priority levels of a dogstatsd event."""

    NORMAL = "normal"
    LOW = "low"


class EventAlertType(str, enum.Enum):
    """Alert types of a dogstatsd event."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


def _text(value: object) -> str:
    """Return the wire text of an enum member or of a raw string."""
    return value.value if isinstance(value, enum.Enum) else str(value)


def _format_float(f: float) -> str:
    """Format f in the shortest form that round-trips, switching to an
    exponent when it is below -4 or at least 6."""
    if math.isnan(f):
        return "NaN"
    if math.isinf(f):
        return "+Inf" if f > 0 else "-Inf"
    sign, digits, exponent = Decimal(repr(float(f))).as_tuple()
    prefix = "-" if sign else ""
    ds = "".join(map(str, digits)).rstrip("0")
    if not ds:
        return prefix + "0"
    exp = len(digits) + exponent - 1
    if exp < -4 or exp >= 6:
        mantissa = ds[0] + ("." + ds[1:] if len(ds) > 1 else "")
        return f"{prefix}{mantissa}e{'+' if exp >= 0 else '-'}{abs(exp):02d}"
    dp = exp + 1
    if dp <= 0:
        body = "0." + "0" * (-dp) + ds
    elif dp >= len(ds):
        body = ds + "0" * (dp - len(ds))
    else:
        body = ds[:dp] + "." + ds[dp:]
    return prefix + body


def format_tags(tags: Iterable[Tag]) -> str:
    """Return tags as the comma-separated name:value list of the protocol."""
    return ",".join(f"{t.name}:{t.value}" for t in tags)


@dataclass
class Metric:
    """A single dogstatsd metric."""

    type: MetricType | str
    name: str
    value: float = 0.0
    rate: float = 1.0
    tags: list[Tag] = field(default_factory=list)
    namespace: str = ""

    def __post_init__(self) -> None:
        self.value = float(self.value)
        self.rate = float(self.rate)
        self.tags = list(self.tags)

    def __str__(self) -> str:
        return format_metric(self)


@dataclass
class Event:
    """A single dogstatsd event."""

    title: str
    text: str
    ts: int = 0
    priority: EventPriority | str = EventPriority.NORMAL
    host: str = ""
    tags: list[Tag] = field(default_factory=list)
    alert_type: EventAlertType | str = EventAlertType.INFO
    aggregation_key: str = ""
    source_type_name: str = ""
    event_type: str = ""

    def __post_init__(self) -> None:
        self.tags = list(self.tags)

    def __str__(self) -> str:
        return format_event(self)


def format_metric(metric: Metric) -> str:
    """Return the dogstatsd line for metric, newline included."""
    parts = []
    if metric.namespace:
        parts.append(metric.namespace + ".")
    parts.append(f"{metric.name}:{_format_float(metric.value)}|{_text(metric.type)}")
    if metric.rate not in (0, 1):
        parts.append("|@" + _format_float(metric.rate))
    if metric.tags:
        parts.append("|#" + format_tags(metric.tags))
    parts.append("\n")
    return "".join(parts)


def format_event(event: Event) -> str:
    """Return the dogstatsd line for event, newline included."""
    title_len = len(event.title.encode())
    text_len = len(event.text.encode())
    parts = [f"_e{{{title_len},{text_len}}}:{event.title}|", event.text.replace("\n", "\\n")]
    if _text(event.priority) != EventPriority.NORMAL.value:
        parts.append("|p:" + _text(event.priority))
    if _text(event.alert_type) != EventAlertType.INFO.value:
        parts.append("|t:" + _text(event.alert_type))
    if event.ts != 0:
        parts.append(f"|d:{event.ts}")
    if event.host:
        parts.append("|h:" + event.host)
    if event.aggregation_key:
        parts.append("|k:" + event.aggregation_key)
    if event.source_type_name:
        parts.append("|s:" + event.source_type_name)
    if event.tags:
        parts.append("|#" + format_tags(event.tags))
    parts.append("\n")
    return "".join(parts)