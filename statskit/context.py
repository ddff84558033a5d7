"""Immutable request contexts that can carry a shared, growable tag list."""

from __future__ import annotations

import threading
from typing import Any

from statskit.field import Tag


class Context:
    """An immutable chain of key/value pairs; Context() is the empty root."""

    def __init__(self) -> None:
        self._parent: Context | None = None
        self._entry: tuple[Any, Any] | None = None

    def with_value(self, key: Any, value: Any) -> Context:
        """Return a child context in which key maps to value."""
        child = Context()
        child._parent = self
        child._entry = (key, value)
        return child

    def value(self, key: Any) -> Any:
        """Return the value bound to key by this context or an ancestor, or None."""
        ctx: Context | None = self
        while ctx is not None:
            if ctx._entry is not None and ctx._entry[0] == key:
                return ctx._entry[1]
            ctx = ctx._parent
        return None


class _TagsKey:
    def __repr__(self) -> str:
        return "stats_tags_context_key"


_TAGS_KEY = _TagsKey()


class _TagList:
    def __init__(self, tags: tuple[Tag, ...]) -> None:
        self.tags = list(tags)
        self.lock = threading.Lock()


def _tag_list(ctx: Context) -> _TagList | None:
    found = ctx.value(_TAGS_KEY)
    return found if isinstance(found, _TagList) else None


def context_with_tags(ctx: Context, *args: Tag) -> Context:
    """Return a child of ctx holding a fresh tag list; ancestor tags are not carried over."""
    return ctx.with_value(_TAGS_KEY, _TagList(args))


def context_add_tags(ctx: Context, *args: Tag) -> bool:
    """Append tags to the list set on ctx or an ancestor; False if there is none."""
    tag_list = _tag_list(ctx)
    if tag_list is None:
        return False
    with tag_list.lock:
        tag_list.tags.extend(args)
    return True


def context_tags(ctx: Context) -> list[Tag] | None:
    """Return a copy of the tags on ctx, or None if no tag list was set."""
    tag_list = _tag_list(ctx)
    if tag_list is None:
        return None
    with tag_list.lock:
        return list(tag_list.tags)