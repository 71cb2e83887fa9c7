"""Metric sources - pluggable producers of snapshot text."""

from .base import MetricSource, SourceKind, format_bytes, percent_of
from .registry import (
    SourceRegistry,
    build_sources,
    close_sources,
    list_sources,
    register_source,
)

__all__ = [
    "MetricSource",
    "SourceKind",
    "SourceRegistry",
    "build_sources",
    "close_sources",
    "format_bytes",
    "list_sources",
    "percent_of",
    "register_source",
]
