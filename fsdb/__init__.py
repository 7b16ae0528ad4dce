"""Asynchronous document database client: paths, reads, listings, aggregations and batch writes over a pluggable transport."""

__version__ = "0.1.0"