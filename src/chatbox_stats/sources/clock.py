"""Clock source - local wall-clock time with its UTC offset."""

from datetime import datetime, timedelta
from typing import Callable, Optional

from .base import MetricSource, SourceKind
from .registry import register_source


def format_offset(offset: Optional[timedelta]) -> str:
    """Format a UTC offset as ``+HH:MM:SS`` / ``-HH:MM:SS``."""
    seconds = int(offset.total_seconds()) if offset else 0
    sign = "-" if seconds < 0 else "+"
    hours, rest = divmod(abs(seconds), 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"


def _local_now() -> datetime:
    return datetime.now().astimezone()


@register_source(SourceKind.TIME)
class TimeSource(MetricSource):
    """Current local time, e.g. ``10/19/2026 14:03:07 UTC+02:00:00``."""

    def __init__(self, clock: Callable[[], datetime] = _local_now):
        self._clock = clock

    def produce(self) -> str:
        now = self._clock()
        return f"{now:%m/%d/%Y %H:%M:%S} UTC{format_offset(now.utcoffset())}"
