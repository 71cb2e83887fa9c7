"""Source registry - maps source kinds to classes and builds the active list."""

from typing import TYPE_CHECKING, Optional, Type
import logging

from ..exceptions import SourceInitError
from .base import MetricSource, SourceKind

if TYPE_CHECKING:
    from ..config import AgentConfig

logger = logging.getLogger(__name__)


class SourceRegistry:
    """
    Registry for metric source classes.

    Sources register themselves here and are instantiated by kind.
    """

    _sources: dict[SourceKind, Type[MetricSource]] = {}

    @classmethod
    def register(cls, kind: SourceKind, source_class: Type[MetricSource]):
        """Register a metric source class."""
        cls._sources[kind] = source_class
        logger.debug(f"Registered metric source: {kind.value}")

    @classmethod
    def get(cls, kind: SourceKind) -> Optional[Type[MetricSource]]:
        """Get a source class by kind."""
        return cls._sources.get(kind)

    @classmethod
    def list_kinds(cls) -> list[SourceKind]:
        """List registered kinds in snapshot order."""
        return [kind for kind in SourceKind if kind in cls._sources]

    @classmethod
    def is_registered(cls, kind: SourceKind) -> bool:
        """Check if a source kind is registered."""
        return kind in cls._sources


def register_source(kind: SourceKind):
    """
    Decorator to register a metric source class.

    Usage:
        @register_source(SourceKind.CPU)
        class CpuSource(MetricSource):
            ...
    """
    def decorator(cls: Type[MetricSource]):
        cls.kind = kind
        SourceRegistry.register(kind, cls)
        return cls
    return decorator


def list_sources() -> list[str]:
    """List all registered source kinds."""
    return [kind.value for kind in SourceRegistry.list_kinds()]


def build_sources(config: "AgentConfig") -> list[MetricSource]:
    """
    Build the ordered list of active sources for a configuration.

    Sources always come out in SourceKind order, whatever order the
    configuration lists them in. CPU and RAM share one SystemSampler.

    Raises:
        SourceInitError: a requested source is unavailable. Sources built
            before the failure are closed first.
    """
    from .system import SystemSampler

    enabled = config.enabled_sources
    sampler = None
    if SourceKind.CPU in enabled or SourceKind.RAM in enabled:
        sampler = SystemSampler()

    sources: list[MetricSource] = []
    try:
        for kind in SourceKind:
            if kind not in enabled:
                continue

            source_class = SourceRegistry.get(kind)
            if source_class is None:
                raise SourceInitError(f"Source '{kind.value}' is not available")

            sources.append(source_class.from_config(config, sampler))
            logger.info(f"Initialized source: {kind.value}")
    except SourceInitError:
        close_sources(sources)
        raise

    return sources


def close_sources(sources: list[MetricSource]):
    """Close every source, logging (not raising) close errors."""
    for source in sources:
        try:
            source.close()
        except Exception as e:
            logger.warning(f"Error closing source {source.name}: {e}")


# Auto-register built-in sources when this module is imported
def _register_builtin_sources():
    """Import and register all built-in source classes."""
    from . import clock, system

    try:
        from . import gpu
    except ImportError as e:
        logger.debug(f"GPU source not available: {e}")


_register_builtin_sources()
