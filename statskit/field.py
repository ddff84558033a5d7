"""Core metric data types: tags, fields, measures and histogram buckets.

The package produces application performance metrics and sends them to
various metric collection backends.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

_VALUE_TYPES = (bool, int, float, timedelta)


def _check_value(value: Any) -> Any:
    """Return value unchanged if it can be carried by a metric, else raise."""
    if value is None or isinstance(value, _VALUE_TYPES):
        return value
    raise TypeError(f"unsupported metric value of type {type(value).__name__}")


class FieldType(enum.IntEnum):
    """The kinds of metric a field may carry."""

    COUNTER = 0
    GAUGE = 1
    HISTOGRAM = 2

    def __str__(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Tag:
    """A name/value pair attached to a measure."""

    name: str
    value: str = ""


@dataclass
class Field:
    """A single metric inside a measure."""

    name: str
    value: Any
    type: FieldType = FieldType.COUNTER

    def __post_init__(self) -> None:
        self.value = _check_value(self.value)
        self.type = FieldType(self.type)

    def __str__(self) -> str:
        return f"{self.type}:{self.name}={self.value}"


@dataclass
class Measure:
    """A named group of fields sharing one set of tags."""

    name: str
    fields: list[Field] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)


def make_field(name: str, value: Any, ftype: FieldType) -> Field:
    """Build a field of the given type, rejecting values metrics cannot carry."""
    return Field(name, value, FieldType(ftype))


@dataclass(frozen=True)
class Key:
    """Identifies a metric by measure name and field name."""

    measure: str
    field: str


def split_measure_field(s: str) -> tuple[str, str]:
    """Split "measure.field" at its last dot; without a dot all of s is the field."""
    measure, dot, name = s.rpartition(".")
    if not dot:
        return "", s
    return measure, name


def make_key(s: str) -> Key:
    """Build the key for a dotted metric name."""
    measure, name = split_measure_field(s)
    return Key(measure=measure, field=name)


class HistogramBuckets(dict):
    """Maps metric keys to their sorted list of histogram bucket limits."""

    def set(self, key: str, *args: Any) -> None:
        """Register the bucket limits for the histogram named by key."""
        self[make_key(key)] = [_check_value(b) for b in args]


# Registry where programs declare the buckets of the histograms they produce.
BUCKETS = HistogramBuckets()