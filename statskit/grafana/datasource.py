"""Assembly of the complete Grafana simple JSON data source API."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Protocol

from statskit.grafana.annotations import AnnotationsHandler, handle_annotations
from statskit.grafana.http import RESPONSE_HEADERS, ServeMux, _join_path
from statskit.grafana.query import QueryHandler, handle_query
from statskit.grafana.search import SearchHandler, handle_search


class Handler(AnnotationsHandler, QueryHandler, SearchHandler, Protocol):
    """Serves every endpoint of the simple JSON data source API."""


def _root_app(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
    start_response("200 OK", list(RESPONSE_HEADERS))
    return []


def handle(mux: ServeMux, prefix: str, handler: Handler) -> None:
    """Install /annotations, /query and /search under prefix on mux, and a
    root handler at prefix unless one already serves that path."""
    handle_annotations(mux, prefix, handler)
    handle_query(mux, prefix, handler)
    handle_search(mux, prefix, handler)

    root = _join_path(prefix)
    _, pattern = mux.match(root)
    if not pattern:
        mux.handle(root, _root_app)


def new_handler(prefix: str, handler: Handler) -> ServeMux:
    """Return a WSGI app implementing the simple JSON data source API."""
    mux = ServeMux()
    handle(mux, prefix, handler)
    return mux