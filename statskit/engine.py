"""The engine that builds measures and forwards them to handlers, and clocks
for timing sequential steps."""

from __future__ import annotations

import os
import platform
import sys
import threading
from datetime import datetime, timedelta
from typing import Any, Iterable, Protocol

from statskit.field import FieldType, Measure, Tag, make_field, split_measure_field

STATS_VERSION = "5.0.0"

_TRUTHY = {"true", "TRUE", "yes", "1", "on"}

# Whether each engine reports the runtime and library versions on first use.
version_reporting_enabled = (
    os.environ.get("STATS_DISABLE_VERSION_REPORTING", "") not in _TRUTHY
)


class Handler(Protocol):
    """Receives the measures produced by an engine."""

    def handle_measures(self, time: datetime, *args: Measure) -> None:
        """Process measures taken at the given time."""


class _Discard:
    def handle_measures(self, time: datetime, *args: Measure) -> None:
        pass

    def __repr__(self) -> str:
        return "Discard"


_DISCARD = _Discard()


class _MultiHandler:
    def __init__(self, handlers: Iterable[Any]) -> None:
        flat: list[Any] = []
        for h in handlers:
            if h is None or h is _DISCARD:
                continue
            if isinstance(h, _MultiHandler):
                flat.extend(h.handlers)
            else:
                flat.append(h)
        self.handlers = tuple(flat)

    def handle_measures(self, time: datetime, *args: Measure) -> None:
        for h in self.handlers:
            h.handle_measures(time, *args)

    def flush(self) -> None:
        for h in self.handlers:
            _flush_handler(h)


def _flush_handler(handler: Any) -> None:
    flush_method = getattr(handler, "flush", None)
    if callable(flush_method):
        flush_method()


def _sort_tags(tags: Iterable[Tag]) -> list[Tag]:
    """Sort tags by name, keeping only the last tag of each name."""
    by_name = {t.name: t for t in tags}
    return sorted(by_name.values(), key=lambda t: t.name)


def _tags_are_sorted(tags: list[Tag]) -> bool:
    return all(a.name <= b.name for a, b in zip(tags, tags[1:]))


def _merge_tags(base: Iterable[Tag], extra: Iterable[Tag]) -> list[Tag]:
    return _sort_tags([*base, *extra])


def _concat(prefix: str, name: str) -> str:
    if not prefix:
        return name
    if not name:
        return prefix
    return f"{prefix}.{name}"


class Engine:
    """Carries the handler, name prefix and tags used to produce metrics.

    Sub-engines created with with_prefix or with_tags share the handler of
    the engine they came from.
    """

    def __init__(
        self,
        prefix: str = "",
        handler: Any = None,
        tags: Iterable[Tag] = (),
        allow_duplicate_tags: bool = False,
    ) -> None:
        self.prefix = prefix
        self.handler = _DISCARD if handler is None else handler
        self.tags = _sort_tags(tags)
        self.allow_duplicate_tags = allow_duplicate_tags
        self._version_lock = threading.Lock()
        self._version_reported = False

    def register(self, handler: Any) -> None:
        """Add handler to the handlers the engine forwards measures to."""
        if self.handler is _DISCARD:
            self.handler = handler
        else:
            self.handler = _MultiHandler([self.handler, handler])

    def flush(self) -> None:
        """Flush the engine's handler if it supports flushing."""
        _flush_handler(self.handler)

    def with_prefix(self, prefix: str, *args: Tag) -> Engine:
        """Return an engine with prefix appended to this one's and tags merged in."""
        child = Engine(_concat(self.prefix, prefix), self.handler)
        child.tags = _merge_tags(self.tags, args)
        return child

    def with_tags(self, *args: Tag) -> Engine:
        """Return an engine with the same prefix and the given tags merged in."""
        return self.with_prefix("", *args)

    def incr(self, name: str, *args: Tag, time: datetime | None = None) -> None:
        """Increment by one the counter identified by name and tags."""
        self.add(name, 1, *args, time=time)

    def add(self, name: str, value: Any, *args: Tag, time: datetime | None = None) -> None:
        """Increment by value the counter identified by name and tags."""
        self._measure(time, name, value, FieldType.COUNTER, args)

    def set(self, name: str, value: Any, *args: Tag, time: datetime | None = None) -> None:
        """Set to value the gauge identified by name and tags."""
        self._measure(time, name, value, FieldType.GAUGE, args)

    def observe(self, name: str, value: Any, *args: Tag, time: datetime | None = None) -> None:
        """Report value for the histogram identified by name and tags."""
        self._measure(time, name, value, FieldType.HISTOGRAM, args)

    def clock(self, name: str, *args: Tag, start: datetime | None = None) -> Clock:
        """Return a clock identified by name and tags, started at start (or now)."""
        return Clock(self, name, args, datetime.now() if start is None else start)

    def _measure(
        self,
        time: datetime | None,
        name: str,
        value: Any,
        ftype: FieldType,
        tags: tuple[Tag, ...],
    ) -> None:
        when = datetime.now() if time is None else time
        if version_reporting_enabled:
            self._report_versions(when)

        measure_name, field_name = split_measure_field(name)
        all_tags = [*self.tags, *tags]
        if tags and not self.allow_duplicate_tags and not _tags_are_sorted(all_tags):
            all_tags = _sort_tags(all_tags)

        measure = Measure(
            name=_concat(self.prefix, measure_name),
            fields=[make_field(field_name, value, ftype)],
            tags=all_tags,
        )
        self.handler.handle_measures(when, measure)

    def _report_versions(self, when: datetime) -> None:
        with self._version_lock:
            if self._version_reported:
                return
            self._version_reported = True
        python_version = platform.python_version()
        self.handler.handle_measures(
            when,
            Measure(
                name="python_version",
                fields=[make_field("python_version", 1, FieldType.COUNTER)],
                tags=[Tag("python_version", python_version)],
            ),
            Measure(
                name="stats_version",
                fields=[make_field("stats_version", 1, FieldType.COUNTER)],
                tags=[Tag("stats_version", STATS_VERSION)],
            ),
        )


class Clock:
    """Reports the durations of sequential steps as histogram observations.

    Not safe for concurrent use.
    """

    def __init__(self, engine: Engine, name: str, tags: Iterable[Tag], start: datetime) -> None:
        self._engine = engine
        self._name = name
        self._tags = tuple(tags)
        self._first = start
        self._last = start

    def stamp(self, name: str, now: datetime | None = None) -> None:
        """Report the time since the last stamp (or the start), tagged stamp=name."""
        now = datetime.now() if now is None else now
        self._observe(name, now - self._last)
        self._last = now

    def stop(self, now: datetime | None = None) -> None:
        """Report the time since the clock started, tagged stamp=total."""
        now = datetime.now() if now is None else now
        self._observe("total", now - self._first)

    def _observe(self, stamp: str, duration: timedelta) -> None:
        self._engine.observe(self._name, duration, *self._tags, Tag("stamp", stamp))


def _progname() -> str:
    return os.path.basename(sys.argv[0]) if sys.argv else ""


# The engine used by the module-level helper functions.
DEFAULT_ENGINE = Engine(_progname())


def register(handler: Any) -> None:
    """Add handler to the default engine."""
    DEFAULT_ENGINE.register(handler)


def flush() -> None:
    """Flush the default engine."""
    DEFAULT_ENGINE.flush()


def with_prefix(prefix: str, *args: Tag) -> Engine:
    """Return a sub-engine of the default engine with prefix and tags added."""
    return DEFAULT_ENGINE.with_prefix(prefix, *args)


def with_tags(*args: Tag) -> Engine:
    """Return a sub-engine of the default engine with tags added."""
    return DEFAULT_ENGINE.with_tags(*args)


def incr(name: str, *args: Tag, time: datetime | None = None) -> None:
    """Increment by one a counter on the default engine."""
    DEFAULT_ENGINE.incr(name, *args, time=time)


def add(name: str, value: Any, *args: Tag, time: datetime | None = None) -> None:
    """Increment by value a counter on the default engine."""
    DEFAULT_ENGINE.add(name, value, *args, time=time)


def set(name: str, value: Any, *args: Tag, time: datetime | None = None) -> None:  # noqa: A001
    """Set a gauge on the default engine."""
    DEFAULT_ENGINE.set(name, value, *args, time=time)


def observe(name: str, value: Any, *args: Tag, time: datetime | None = None) -> None:
    """Observe a histogram value on the default engine."""
    DEFAULT_ENGINE.observe(name, value, *args, time=time)