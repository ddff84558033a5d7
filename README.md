# statskit

statskit produces application performance metrics and turns them into the
dogstatsd text format. It provides:

- an `Engine` that produces counters, gauges and histograms, with name
  prefixes and sorted tags, and a `Clock` that times the sequential steps of
  an operation (`statskit.engine`);
- the core data types `Tag`, `Field`, `Measure`, `FieldType` and a
  `HistogramBuckets` registry (`statskit.field`);
- a `Buffer` that batches serialized measures in memory and writes them once
  a target size is reached (`statskit.buffer`);
- formatting and parsing of dogstatsd metrics and events, and a dogstatsd
  `Serializer` for measures (`statskit.datadog`);
- WSGI handlers for a Grafana simple JSON data source (`/annotations`,
  `/query` and `/search`) and recording responses for tests
  (`statskit.grafana`).

Only the standard library is needed at run time.

## Installation

```
pip install statskit
```

## Producing metrics

An engine forwards every measure to a handler: any object with a
`handle_measures(time, *measures)` method. If the handler also has a
`flush()` method, `Engine.flush` calls it.

```python
from statskit.engine import Engine
from statskit.field import Tag
from statskit.datadog.serializer import Serializer

serializer = Serializer()

class Printer:
    def handle_measures(self, time, *measures):
        print(serializer.format_measures(time, *measures).decode(), end="")

engine = Engine("myapp", Printer(), [Tag("service", "api")])

engine.incr("requests.count")                     # myapp.requests.count:1|c|#service:api
engine.add("bytes.sent", 512, Tag("route", "upload"))
engine.set("queue.depth", 17)
engine.observe("request.size", 2048)

clock = engine.clock("upload", Tag("file", "img.jpg"))
clock.stamp("compress")
clock.stamp("grayscale")
clock.stop()
```

A name such as `requests.count` is split at its last dot into a measure
(`requests`) and a field (`count`); the engine prefix is joined to the measure
name with a dot. Engine tags are kept sorted by name, and a later tag replaces
an earlier one of the same name unless `allow_duplicate_tags` is set.
Engines made with `with_prefix` and `with_tags` share the handler of the
engine they came from, and `register` adds a further handler.

Clock stamps are reported as histogram observations of a `timedelta`, tagged
`stamp=<name>`; `stop` reports the total time tagged `stamp=total`.

The first measure an engine produces is preceded by two measures,
`python_version` and `stats_version`. Set the environment variable
`STATS_DISABLE_VERSION_REPORTING` to `true`, `yes`, `1` or `on` (or set
`statskit.engine.version_reporting_enabled` to `False`) to turn this off.

The module-level helpers `register`, `flush`, `incr`, `add`, `set`,
`observe`, `with_prefix` and `with_tags` in `statskit.engine` work on
`DEFAULT_ENGINE`, named after the running program, whose handler discards
everything until one is registered.

Tags carried through a call chain can be kept on a `Context` with
`context_with_tags`, `context_add_tags` and `context_tags` from
`statskit.context`.

## Batching

`statskit.buffer.Buffer(serializer, buffer_size, buffer_pool_size)` is a
handler that serializes measures with `serializer.format_measures` and hands
full batches to `serializer.write`. The buffer size defaults to 1024 bytes.
The dogstatsd `Serializer` writes to any connection object with
`write(bytes)` and `close()`, splitting batches larger than its
`buffer_size` on line boundaries and dropping single lines that cannot fit.

```python
from statskit.buffer import Buffer
from statskit.datadog.serializer import Serializer

class Collect:
    def __init__(self):
        self.packets = []
    def write(self, data):
        self.packets.append(data)
        return len(data)
    def close(self):
        pass

conn = Collect()
buffer = Buffer(Serializer(conn, buffer_size=1024, filters=["http_req_path"]), 1024)
engine = Engine("myapp", buffer)
engine.incr("requests.count")
engine.flush()
```

A `Serializer` sends histograms as distributions (`|d`) when
`use_distributions` is set or when the field name starts with one of
`distribution_prefixes`; tags named in `filters` are left out.

## The dogstatsd format

`statskit.datadog.metric` formats `Metric` and `Event` values as dogstatsd
lines (`format_metric`, `format_event`, or `str()`), and
`statskit.datadog.parse` reads them back, raising `ParseError` on malformed
input:

```python
from statskit.datadog.parse import parse_metric, parse_event

metric = parse_metric("users.online:1|c|@0.5|#country:china\n")
print(metric.name, metric.value, metric.rate)   # users.online 1.0 0.5

event = parse_event("_e{10,9}:test title|test text|p:low\n")
print(event.title, event.priority)
```

## Grafana data source

`statskit.grafana.datasource.new_handler(prefix, handler)` returns a
`ServeMux`, a WSGI application answering the `/annotations`, `/query` and
`/search` endpoints under `prefix`, backed by an object with
`serve_annotations(res, req)`, `serve_query(res, req)` and
`serve_search(res, req)` methods. The endpoints can also be installed one by
one with `handle_annotations`, `handle_query` and `handle_search`, or built
with `new_annotations_handler`, `new_query_handler` and `new_search_handler`.
Plain functions can be wrapped with `AnnotationsHandlerFunc`,
`QueryHandlerFunc` and `SearchHandlerFunc`.

Endpoints accept POST with a JSON body, answer OPTIONS with an empty 200 and
other methods with 405. A `pretty` query parameter indents the JSON. A
handler that raises `TimeoutError` gives a 504, any other exception a 500.
Datetimes are written as millisecond timestamps.

```python
from wsgiref.simple_server import make_server
from statskit.grafana.datasource import new_handler

app = new_handler("/grafana", my_source)
make_server("", 3000, app).serve_forever()
```

`statskit.grafana.grafanatest` holds `AnnotationsResponse`,
`QueryResponse` (with `Timeserie` and `Table`) and `SearchResponse`, which
record what a handler writes to them.

## What the package does not do

statskit has no network transport for metrics: there is no dogstatsd client
that opens UDP or Unix datagram sockets, no dogstatsd server that listens for
and parses incoming datagrams, and no command line tool. To deliver metrics,
give the `Serializer` a connection object of your own that sends the bytes
passed to its `write` method.

## Tests

```
pip install statskit[test]
pytest
```