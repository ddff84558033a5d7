"""Serialization of measures into dogstatsd datagrams."""

from __future__ import annotations

import logging
import math
import sys
from datetime import datetime, timedelta
from typing import Any, Iterable

from statskit.datadog.metric import _format_float
from statskit.field import FieldType, Measure

_log = logging.getLogger("statskit.datadog")


def normalize_float(f: float) -> float:
    """Map NaN to zero and infinities to the largest finite floats."""
    if math.isnan(f):
        return 0.0
    if math.isinf(f):
        return sys.float_info.max if f > 0 else -sys.float_info.max
    return f


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(normalize_float(value))
    if isinstance(value, timedelta):
        return _format_float(value.total_seconds())
    return "0"


class Serializer:
    """Formats measures as dogstatsd lines and writes them to a connection,
    splitting batches larger than the buffer size on line boundaries."""

    def __init__(
        self,
        conn: Any = None,
        buffer_size: int = 0,
        filters: Iterable[str] = (),
        distribution_prefixes: Iterable[str] = (),
        use_distributions: bool = False,
    ) -> None:
        self.conn = conn
        self.buffer_size = buffer_size
        self.filters = frozenset(filters)
        self.distribution_prefixes = tuple(distribution_prefixes)
        self.use_distributions = use_distributions

    def format_measures(self, time: datetime, *args: Measure) -> bytes:
        """Return the dogstatsd lines of all the measures."""
        return b"".join(self.format_measure(m) for m in args)

    def format_measure(self, measure: Measure) -> bytes:
        """Return one dogstatsd line per field of measure, skipping filtered tags."""
        lines = []
        for fld in measure.fields:
            parts = [measure.name]
            if fld.name:
                parts.append("." + fld.name)
            parts.append(":" + _format_value(fld.value))

            if fld.type == FieldType.COUNTER:
                parts.append("|c")
            elif fld.type == FieldType.GAUGE:
                parts.append("|g")
            elif self.send_distribution(fld.name):
                parts.append("|d")
            else:
                parts.append("|h")

            if measure.tags:
                parts.append("|#")
                for i, tag in enumerate(measure.tags):
                    if tag.name in self.filters:
                        continue
                    if i != 0:
                        parts.append(",")
                    parts.append(f"{tag.name}:{tag.value}")

            parts.append("\n")
            lines.append("".join(parts))
        return "".join(lines).encode()

    def send_distribution(self, name: str) -> bool:
        """Whether a histogram named name is sent as a distribution."""
        if self.use_distributions:
            return True
        return any(name.startswith(p) for p in self.distribution_prefixes)

    def write(self, data: bytes) -> int:
        """Write serialized lines, split into datagrams no larger than the buffer.

        Lines that cannot fit in a datagram on their own are dropped.
        """
        if self.conn is None:
            raise BrokenPipeError("write on closed connection")

        data = bytes(data)
        if len(data) <= self.buffer_size:
            return self.conn.write(data)

        written = 0
        while data:
            split = 0
            while split != len(data):
                end = data.find(b"\n", split)
                if end < 0:
                    raise ValueError("metrics are not formatted for the dogstatsd protocol")
                if end >= self.buffer_size:
                    if split == 0:
                        _log.warning(
                            "metric of length %d B doesn't fit in the socket buffer of size %d B: %s",
                            end + 1,
                            self.buffer_size,
                            data.decode(errors="replace"),
                        )
                        data = data[end + 1 :]
                        continue
                    break
                split = end + 1

            if split == 0:
                break
            written += self.conn.write(data[:split])
            data = data[split:]

        return written

    def close(self) -> None:
        """Close the underlying connection."""
        if self.conn is not None:
            self.conn.close()