"""Base interface for all metric sources."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import AgentConfig
    from .system import SystemSampler


class SourceKind(str, Enum):
    """Kinds of metric sources. Declaration order is snapshot order."""
    TIME = "time"
    CPU = "cpu"
    RAM = "ram"
    GPU = "gpu"


_BYTE_UNITS = "KMGTPE"


def format_bytes(num_bytes: int) -> str:
    """Format a byte count with binary units, e.g. ``8.0 GiB``."""
    if num_bytes < 1024:
        return f"{num_bytes} B"

    value = float(num_bytes)
    exp = 0
    while value >= 1024 and exp < len(_BYTE_UNITS):
        value /= 1024
        exp += 1
    return f"{value:.1f} {_BYTE_UNITS[exp - 1]}iB"


def percent_of(used: float, total: float) -> float:
    """Return ``used`` as a percentage of ``total`` (0 when total is 0)."""
    if total <= 0:
        return 0.0
    return used / total * 100.0


class MetricSource(ABC):
    """
    Abstract base class for all metric sources.

    A source produces one block of text describing the current state of
    something on the host. ``produce`` must not raise for sampling failures:
    degrade the affected field or return an empty string instead.

    Example:
        @register_source(SourceKind.TIME)
        class TimeSource(MetricSource):
            def produce(self) -> str:
                return datetime.now().isoformat()
    """

    # Set by @register_source
    kind: SourceKind

    @classmethod
    def from_config(cls, config: "AgentConfig", sampler: "SystemSampler") -> "MetricSource":
        """
        Create a source for the given configuration.

        Override when the source needs shared resources or settings.
        Raise SourceInitError if the source cannot be used at all.
        """
        return cls()

    @property
    def name(self) -> str:
        return self.kind.value

    @abstractmethod
    def produce(self) -> str:
        """
        Produce the current text for this source.

        Returns:
            One or more lines of text, or "" if nothing could be sampled
        """
        pass

    def close(self):
        """Clean up resources. Override if needed."""
        pass
