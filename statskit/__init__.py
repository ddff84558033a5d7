"""Tools for producing application performance metrics and formatting them for collection backends."""

__version__ = "5.0.0"