"""WSGI handlers for a Grafana simple JSON data source, and recording responses for tests."""