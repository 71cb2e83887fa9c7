"""GPU metric source - NVIDIA device stats via NVML (pynvml)."""

import logging
from typing import Any, Optional, TYPE_CHECKING

import pynvml

from ..exceptions import SourceInitError
from .base import MetricSource, SourceKind, format_bytes, percent_of
from .registry import register_source

if TYPE_CHECKING:
    from ..config import AgentConfig
    from .system import SystemSampler

logger = logging.getLogger(__name__)


@register_source(SourceKind.GPU)
class GpuSource(MetricSource):
    """
    Utilization, power, temperature and memory of one NVIDIA GPU.

    Output is two lines:

        GPU: 37% (112.450W, 61°C)
        3.2 GiB (39.84%)

    The temperature part is left out when the sensor can't be read. Any
    other NVML failure skips the whole source for that tick.
    """

    def __init__(self, handle: Any, index: int = 0):
        self._handle = handle
        self.index = index

    @classmethod
    def from_config(cls, config: "AgentConfig", sampler: Optional["SystemSampler"]) -> MetricSource:
        """Initialize NVML and open the configured device."""
        try:
            pynvml.nvmlInit()
        except pynvml.NVMLError as e:
            raise SourceInitError(f"Could not initialize NVML: {e}") from e

        try:
            handle = pynvml.nvmlDeviceGetHandleByIndex(config.gpu_index)
        except pynvml.NVMLError as e:
            pynvml.nvmlShutdown()
            raise SourceInitError(f"GPU {config.gpu_index} not available: {e}") from e

        return cls(handle, config.gpu_index)

    def produce(self) -> str:
        try:
            utilization = pynvml.nvmlDeviceGetUtilizationRates(self._handle).gpu
            power_mw = pynvml.nvmlDeviceGetPowerUsage(self._handle)
            memory = pynvml.nvmlDeviceGetMemoryInfo(self._handle)
        except pynvml.NVMLError as e:
            logger.warning(f"Could not sample GPU {self.index}: {e}")
            return ""

        return (
            f"GPU: {utilization}% ({power_mw / 1000:.3f}W{self._temperature_suffix()})\n"
            f"{format_bytes(memory.used)} ({percent_of(memory.used, memory.total):.2f}%)"
        )

    def _temperature_suffix(self) -> str:
        try:
            temperature = pynvml.nvmlDeviceGetTemperature(self._handle, pynvml.NVML_TEMPERATURE_GPU)
        except pynvml.NVMLError as e:
            logger.debug(f"GPU {self.index} temperature unavailable: {e}")
            return ""
        return f", {temperature}°C"

    def close(self):
        """Release NVML."""
        self._handle = None
        try:
            pynvml.nvmlShutdown()
        except pynvml.NVMLError as e:
            logger.warning(f"Error shutting down NVML: {e}")
