"""The /search endpoint of a Grafana simple JSON data source."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol

from statskit.grafana.http import (
    ServeMux,
    StreamEncoder,
    WSGIApp,
    _join_path,
    _object,
    _typed,
    json_endpoint,
)


@dataclass
class SearchRequest:
    """A request received on /search."""

    target: str = ""


class SearchResponse(Protocol):
    """Receives the targets answering a search."""

    def write_target(self, target: str) -> None:
        """Add a target to the response; may be called many times."""

    def write_target_value(self, target: str, value: Any) -> None:
        """Add a target and value pair to the response; may be called many times."""


class SearchHandler(Protocol):
    """Serves /search requests."""

    def serve_search(self, res: SearchResponse, req: SearchRequest) -> None:
        """Write the targets matching req to res."""


class SearchHandlerFunc:
    """Adapts a function (res, req) into a search handler."""

    def __init__(self, func: Callable[[SearchResponse, SearchRequest], None]) -> None:
        self.func = func

    def serve_search(self, res: SearchResponse, req: SearchRequest) -> None:
        """Call the wrapped function."""
        self.func(res, req)


class _SearchResponse:
    def __init__(self, encoder: StreamEncoder) -> None:
        self._encoder = encoder

    def write_target(self, target: str) -> None:
        self._encoder.encode(target)

    def write_target_value(self, target: str, value: Any) -> None:
        self._encoder.encode({"target": target, "value": value})


def new_search_handler(handler: SearchHandler) -> WSGIApp:
    """Return a WSGI app delegating /search calls to handler."""

    def serve(encoder: StreamEncoder, payload: Any) -> None:
        body = _object(payload)
        req = SearchRequest(target=_typed(body, "target", str, ""))
        handler.serve_search(_SearchResponse(encoder), req)
        encoder.close()

    return json_endpoint(serve)


def handle_search(mux: ServeMux, prefix: str, handler: SearchHandler) -> None:
    """Install a search handler on <prefix>/search."""
    mux.handle(_join_path(prefix, "search"), new_search_handler(handler))