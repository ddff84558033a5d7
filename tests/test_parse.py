import pytest

from statskit.datadog.metric import Event, EventAlertType, EventPriority, Metric, MetricType, format_event
from statskit.datadog.parse import ParseError, parse_event, parse_metric
from statskit.field import Tag

TEST_METRICS = [
    ("test.metric.small:0|c\n", Metric(MetricType.COUNTER, "test.metric.small", 0, 1)),
    (
        "test.metric.common:1|c|#hello:world,answer:42\n",
        Metric(MetricType.COUNTER, "test.metric.common", 1, 1, [Tag("hello", "world"), Tag("answer", "42")]),
    ),
    (
        "test.metric.large:1.234|c|@0.1|#" + ",".join(["hello:world"] * 10) + "\n",
        Metric(MetricType.COUNTER, "test.metric.large", 1.234, 0.1, [Tag("hello", "world")] * 10),
    ),
    ("page.views:1|c\n", Metric(MetricType.COUNTER, "page.views", 1, 1)),
    ("fuel.level:0.5|g\n", Metric(MetricType.GAUGE, "fuel.level", 0.5, 1)),
    ("song.length:240|h|@0.5\n", Metric(MetricType.HISTOGRAM, "song.length", 240, 0.5)),
    ("users.uniques:1234|h\n", Metric(MetricType.HISTOGRAM, "users.uniques", 1234, 1)),
    ("song.length:240|d|@0.5\n", Metric(MetricType.DISTRIBUTION, "song.length", 240, 0.5)),
    ("users.uniques:1234|d\n", Metric(MetricType.DISTRIBUTION, "users.uniques", 1234, 1)),
    (
        "users.online:1|c|#country:china\n",
        Metric(MetricType.COUNTER, "users.online", 1, 1, [Tag("country", "china")]),
    ),
    (
        "users.online:1|c|@0.5|#country:china\n",
        Metric(MetricType.COUNTER, "users.online", 1, 0.5, [Tag("country", "china")]),
    ),
]

TEST_EVENTS = [
    ("_e{10,9}:test title|test text\n", Event("test title", "test text")),
    (
        "_e{10,24}:test title|test\\line1\\nline2\\nline3\n",
        Event("test title", "test\\line1\nline2\nline3"),
    ),
    (
        "_e{10,24}:test|title|test\\line1\\nline2\\nline3\n",
        Event("test|title", "test\\line1\nline2\nline3"),
    ),
    ("_e{10,9}:test title|test text|d:21\n", Event("test title", "test text", ts=21)),
    (
        "_e{10,9}:test title|test text|p:low\n",
        Event("test title", "test text", priority=EventPriority.LOW),
    ),
    (
        "_e{10,9}:test title|test text|h:localhost\n",
        Event("test title", "test text", host="localhost"),
    ),
    (
        "_e{10,9}:test title|test text|t:warning\n",
        Event("test title", "test text", alert_type=EventAlertType.WARNING),
    ),
    (
        "_e{10,9}:test title|test text|k:some aggregation key\n",
        Event("test title", "test text", aggregation_key="some aggregation key"),
    ),
    (
        "_e{10,9}:test title|test text|s:this is the source\n",
        Event("test title", "test text", source_type_name="this is the source"),
    ),
    (
        "_e{10,9}:test title|test text|#tag1,tag2:test\n",
        Event("test title", "test text", tags=[Tag("tag1", ""), Tag("tag2", "test")]),
    ),
]


@pytest.mark.parametrize("line,expected", TEST_METRICS)
def test_parse_metric_success(line, expected):
    assert parse_metric(line) == expected


@pytest.mark.parametrize(
    "line",
    [
        "",
        ":10|c",
        "name:|c",
        "name:abc|c",
        "name:1",
        "name:1|",
        "name:1|c|???",
        "name:1|c|@abc",
        "name:1|c|@0.5|???",
    ],
)
def test_parse_metric_failure(line):
    with pytest.raises(ParseError):
        parse_metric(line)


def test_parse_metric_tags_without_rate():
    m = parse_metric("a:2|g|#x:1")
    assert m.rate == 1.0
    assert m.tags == [Tag("x", "1")]


def test_parse_metric_unknown_type_is_kept():
    assert parse_metric("a:2|s").type == "s"


@pytest.mark.parametrize("line,expected", TEST_EVENTS)
def test_parse_event_success(line, expected):
    assert parse_event(line) == expected


@pytest.mark.parametrize(
    "line",
    [
        "_e{}:x",
        "_e{a,9}:x|y",
        "_e{1,b}:x|y",
        "_e{0,9}:|test text",
        "_e{10,0}:test title|",
        "_e{10,9}:short",
        "_e{10,9}:test title|test text|x:1",
        "_e{10,9}:test title|test text|d:abc",
    ],
)
def test_parse_event_failure(line):
    with pytest.raises(ParseError):
        parse_event(line)


@pytest.mark.parametrize("line,metric", TEST_METRICS)
def test_metric_round_trip(line, metric):
    assert parse_metric(str(parse_metric(line))) == metric