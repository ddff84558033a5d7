"""Grafana response implementations that record what is written to them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from statskit.grafana.annotations import Annotation
from statskit.grafana.query import Column


@dataclass
class AnnotationsResponse:
    """Records the annotations written to it."""

    annotations: list[Annotation] = field(default_factory=list)

    def write_annotation(self, annotation: Annotation) -> None:
        """Record annotation."""
        self.annotations.append(annotation)


@dataclass
class Timeserie:
    """Records the datapoints of one time series."""

    target: str
    values: list[float] = field(default_factory=list)
    times: list[datetime] = field(default_factory=list)

    def write_datapoint(self, value: float, time: datetime) -> None:
        """Record a datapoint."""
        self.values.append(value)
        self.times.append(time)


@dataclass
class Table:
    """Records the rows of one table."""

    columns: list[Column] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)

    def write_row(self, *args: Any) -> None:
        """Record a row."""
        self.rows.append(list(args))


@dataclass
class QueryResponse:
    """Records the series and tables written to it, in order."""

    results: list[Timeserie | Table] = field(default_factory=list)

    def timeserie(self, target: str) -> Timeserie:
        """Start and record a new time series."""
        series = Timeserie(target)
        self.results.append(series)
        return series

    def table(self, *args: Column) -> Table:
        """Start and record a new table."""
        table = Table(columns=list(args))
        self.results.append(table)
        return table


@dataclass
class SearchResponse:
    """Records the targets and values written to it."""

    targets: list[str] = field(default_factory=list)
    values: list[Any] = field(default_factory=list)

    def write_target(self, target: str) -> None:
        """Record target with no value."""
        self.write_target_value(target, None)

    def write_target_value(self, target: str, value: Any) -> None:
        """Record target and its value."""
        self.targets.append(target)
        self.values.append(value)