"""Observability helpers."""

from sessionboard.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_cache_lookup,
    record_ingestion,
    record_parser_failure,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_cache_lookup",
    "record_ingestion",
    "record_parser_failure",
]
