"""Dogstatsd protocol: metric and event formatting, parsing, and a measure serializer."""