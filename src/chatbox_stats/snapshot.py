"""Combine per-source text into one snapshot."""

import logging
from typing import Iterable

from .sources.base import MetricSource

logger = logging.getLogger(__name__)


def build_snapshot(sources: Iterable[MetricSource]) -> str:
    """
    Query every source in order and join the non-empty results.

    Sources that return "" are skipped and trailing newlines are stripped
    from each part, so no blank line is left behind. A source that raises
    is logged and treated as empty for this snapshot.

    Returns:
        Newline-joined text, or "" if no source produced anything
    """
    parts = []
    for source in sources:
        try:
            text = source.produce()
        except Exception as e:
            logger.error(f"Error producing from source {source.name}: {e}")
            continue

        text = text.rstrip("\n")
        if text:
            parts.append(text)

    return "\n".join(parts)
