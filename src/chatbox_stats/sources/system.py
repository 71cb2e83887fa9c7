"""System metric sources - CPU and RAM via a shared psutil sampler."""

import logging
from typing import Optional, TYPE_CHECKING

import psutil

from ..exceptions import SourceInitError
from .base import MetricSource, SourceKind, format_bytes, percent_of
from .registry import register_source

if TYPE_CHECKING:
    from ..config import AgentConfig

logger = logging.getLogger(__name__)


class SystemSampler:
    """
    Refreshable cache of host CPU, process and memory statistics.

    One instance is shared by CpuSource and RamSource. It is only touched
    from the poll loop thread, so it carries no lock.
    """

    def __init__(self):
        self.cpu_usage = 0.0
        self.process_count = 0
        self.used_memory = 0
        self.total_memory = 0
        # First cpu_percent(None) call only sets the baseline
        psutil.cpu_percent(interval=None)

    def refresh_cpu(self):
        """Refresh global CPU utilization since the previous refresh."""
        self.cpu_usage = psutil.cpu_percent(interval=None)

    def refresh_processes(self):
        """Refresh the process table size."""
        self.process_count = len(psutil.pids())

    def refresh_memory(self):
        """Refresh used and total physical memory."""
        mem = psutil.virtual_memory()
        self.used_memory = mem.used
        self.total_memory = mem.total

    @property
    def memory_percent(self) -> float:
        return percent_of(self.used_memory, self.total_memory)


class _SamplerSource(MetricSource):
    """Source backed by the shared SystemSampler."""

    def __init__(self, sampler: SystemSampler):
        self.sampler = sampler

    @classmethod
    def from_config(cls, config: "AgentConfig", sampler: Optional[SystemSampler]) -> MetricSource:
        if sampler is None:
            raise SourceInitError(f"Source '{cls.kind.value}' needs a system sampler")
        return cls(sampler)


@register_source(SourceKind.CPU)
class CpuSource(_SamplerSource):
    """CPU utilization and process count, e.g. ``CPU: 12.34%, Processes: 312``."""

    def produce(self) -> str:
        try:
            self.sampler.refresh_cpu()
            self.sampler.refresh_processes()
        except (psutil.Error, OSError) as e:
            logger.warning(f"Could not sample CPU stats: {e}")
            return ""

        return f"CPU: {self.sampler.cpu_usage:.2f}%, Processes: {self.sampler.process_count}"


@register_source(SourceKind.RAM)
class RamSource(_SamplerSource):
    """Used memory and share of total, e.g. ``RAM: 8.8 GiB (55.00%)``."""

    def produce(self) -> str:
        try:
            self.sampler.refresh_memory()
        except (psutil.Error, OSError) as e:
            logger.warning(f"Could not sample memory stats: {e}")
            return ""

        return f"RAM: {format_bytes(self.sampler.used_memory)} ({self.sampler.memory_percent:.2f}%)"
