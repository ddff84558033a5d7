import io
import json
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from wsgiref.util import setup_testing_defaults

from statskit.grafana.annotations import (
    Annotation,
    AnnotationsHandlerFunc,
    AnnotationsRequest,
    handle_annotations,
    new_annotations_handler,
)
from statskit.grafana.http import ServeMux

T0 = datetime(2017, 8, 16, 12, 34, tzinfo=timezone.utc)
T1 = T0 + timedelta(minutes=1)

ANNOTATIONS_RESULT = """[
  {
    "annotation": {
      "name": "name",
      "datasource": "test",
      "enabled": true,
      "showLine": true
    },
    "time": 1502886840000,
    "title": "yay!",
    "text": "we did it!",
    "tags": "A, B, C"
  }
]"""

REQUEST = {
    "range": {"from": "2017-08-16T12:34:00Z", "to": "2017-08-16T12:35:00Z"},
    "annotation": {
        "name": "name",
        "datasource": "test",
        "iconColor": "rgba(255, 96, 96, 1)",
        "query": "events",
        "enable": True,
    },
}


def _call(app, method="POST", path="/", query="", body=b""):
    environ = {}
    setup_testing_defaults(environ)
    environ.update(
        {
            "REQUEST_METHOD": method,
            "PATH_INFO": path,
            "QUERY_STRING": query,
            "CONTENT_LENGTH": str(len(body)),
            "wsgi.input": io.BytesIO(body),
        }
    )
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status

    chunks = app(environ, start_response)
    return captured["status"], b"".join(chunks)


def _status(code):
    return f"{code.value} {code.phrase}"


def _serve(res, req):
    res.write_annotation(
        Annotation(
            time=T0,
            title="yay!",
            text="we did it!",
            enabled=True,
            show_line=True,
            tags=["A", "B", "C"],
        )
    )


def test_annotations_handler():
    requests = []

    def serve(res, req):
        requests.append(req)
        _serve(res, req)

    app = new_annotations_handler(AnnotationsHandlerFunc(serve))
    status, body = _call(app, path="/annotations", query="pretty", body=json.dumps(REQUEST).encode())
    assert status == _status(HTTPStatus.OK)
    assert body.decode() == ANNOTATIONS_RESULT
    assert requests == [
        AnnotationsRequest(
            from_=T0,
            to=T1,
            name="name",
            datasource="test",
            icon_color="rgba(255, 96, 96, 1)",
            query="events",
            enable=True,
        )
    ]


def test_empty_text_and_tags_are_omitted():
    def serve(res, req):
        res.write_annotation(Annotation(time=T1, title="t"))

    app = new_annotations_handler(AnnotationsHandlerFunc(serve))
    _, body = _call(app, body=json.dumps(REQUEST).encode())
    (info,) = json.loads(body)
    assert info == {
        "annotation": {"name": "name", "datasource": "test", "enabled": False, "showLine": False},
        "time": 1502886900000,
        "title": "t",
    }


def test_handle_annotations_mounts_under_prefix():
    mux = ServeMux()
    handle_annotations(mux, "grafana", AnnotationsHandlerFunc(_serve))
    status, body = _call(mux, path="/grafana/annotations", body=json.dumps(REQUEST).encode())
    assert status == _status(HTTPStatus.OK)
    assert json.loads(body)[0]["title"] == "yay!"
    assert _call(mux, path="/annotations", body=b"{}")[0] == _status(HTTPStatus.NOT_FOUND)


def test_bad_request_body_is_server_error():
    app = new_annotations_handler(AnnotationsHandlerFunc(_serve))
    assert _call(app, body=b"")[0] == _status(HTTPStatus.INTERNAL_SERVER_ERROR)
    assert _call(app, body=b"[1, 2]")[0] == _status(HTTPStatus.INTERNAL_SERVER_ERROR)


def test_missing_fields_take_zero_values():
    requests = []
    app = new_annotations_handler(AnnotationsHandlerFunc(lambda res, req: requests.append(req)))
    status, body = _call(app, body=b"{}")
    assert status == _status(HTTPStatus.OK)
    assert body == b"[]"
    assert requests == [AnnotationsRequest()]