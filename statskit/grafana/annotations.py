"""The /annotations endpoint of a Grafana simple JSON data source."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol

from statskit.grafana.http import (
    ServeMux,
    StreamEncoder,
    WSGIApp,
    _join_path,
    _object,
    _parse_time,
    _timestamp_ms,
    _typed,
    json_endpoint,
)


@dataclass
class AnnotationsRequest:
    """A request received on /annotations, read as a query for the
    annotations of a time range."""

    from_: datetime | None = None
    to: datetime | None = None
    name: str = ""
    datasource: str = ""
    icon_color: str = ""
    query: str = ""
    enable: bool = False


@dataclass
class Annotation:
    """A single Grafana annotation."""

    time: datetime
    title: str = ""
    text: str = ""
    enabled: bool = False
    show_line: bool = False
    tags: list[str] = field(default_factory=list)


class AnnotationsResponse(Protocol):
    """Receives the annotations answering a request."""

    def write_annotation(self, annotation: Annotation) -> None:
        """Add an annotation to the response; may be called many times."""


class AnnotationsHandler(Protocol):
    """Serves /annotations requests."""

    def serve_annotations(self, res: AnnotationsResponse, req: AnnotationsRequest) -> None:
        """Write the annotations matching req to res."""


class AnnotationsHandlerFunc:
    """Adapts a function (res, req) into an annotations handler."""

    def __init__(self, func: Callable[[AnnotationsResponse, AnnotationsRequest], None]) -> None:
        self.func = func

    def serve_annotations(self, res: AnnotationsResponse, req: AnnotationsRequest) -> None:
        """Call the wrapped function."""
        self.func(res, req)


class _AnnotationsResponse:
    def __init__(self, encoder: StreamEncoder, name: str, datasource: str) -> None:
        self._encoder = encoder
        self._name = name
        self._datasource = datasource

    def write_annotation(self, annotation: Annotation) -> None:
        info: dict[str, Any] = {
            "annotation": {
                "name": self._name,
                "datasource": self._datasource,
                "enabled": annotation.enabled,
                "showLine": annotation.show_line,
            },
            "time": _timestamp_ms(annotation.time),
            "title": annotation.title,
        }
        if annotation.text:
            info["text"] = annotation.text
        tags = ", ".join(annotation.tags)
        if tags:
            info["tags"] = tags
        self._encoder.encode(info)


def _decode_request(payload: Any) -> AnnotationsRequest:
    body = _object(payload)
    rng = _object(body.get("range"))
    ann = _object(body.get("annotation"))
    return AnnotationsRequest(
        from_=_parse_time(rng.get("from")),
        to=_parse_time(rng.get("to")),
        name=_typed(ann, "name", str, ""),
        datasource=_typed(ann, "datasource", str, ""),
        icon_color=_typed(ann, "iconColor", str, ""),
        query=_typed(ann, "query", str, ""),
        enable=_typed(ann, "enable", bool, False),
    )


def new_annotations_handler(handler: AnnotationsHandler) -> WSGIApp:
    """Return a WSGI app delegating /annotations calls to handler."""

    def serve(encoder: StreamEncoder, payload: Any) -> None:
        req = _decode_request(payload)
        res = _AnnotationsResponse(encoder, req.name, req.datasource)
        handler.serve_annotations(res, req)
        encoder.close()

    return json_endpoint(serve)


def handle_annotations(mux: ServeMux, prefix: str, handler: AnnotationsHandler) -> None:
    """Install an annotations handler on <prefix>/annotations."""
    mux.handle(_join_path(prefix, "annotations"), new_annotations_handler(handler))