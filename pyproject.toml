[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "statskit"
version = "5.0.0"
description = "Application metrics: an engine for counters, gauges and histograms, dogstatsd formatting and parsing, and a Grafana JSON data source."
requires-python = ">=3.11"
dependencies = []
keywords = ["metrics", "statsd", "dogstatsd", "datadog", "grafana", "monitoring", "instrumentation"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["statskit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
