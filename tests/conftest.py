"""Shared fixtures for chatbox-stats tests."""

import re
import socket
from collections import namedtuple

import pynvml
import pytest

from chatbox_stats.sources.base import MetricSource, SourceKind

TIMESTAMP_PATTERN = re.compile(r"^\d{2}/\d{2}/\d{4} \d{2}:\d{2}:\d{2} UTC[+-]\d{2}:\d{2}:\d{2}$")


class StaticSource(MetricSource):
    """Source returning fixed text, counting calls."""

    def __init__(self, text: str, kind: SourceKind = SourceKind.TIME):
        self.text = text
        self.kind = kind
        self.calls = 0
        self.closed = False

    def produce(self) -> str:
        self.calls += 1
        return self.text

    def close(self):
        self.closed = True


class BrokenSource(MetricSource):
    """Source whose produce() raises."""

    kind = SourceKind.CPU

    def produce(self) -> str:
        raise RuntimeError("sensor exploded")


class FakeNVMLError(pynvml.NVMLError):
    """NVMLError that can be printed without the NVML library loaded."""

    def __str__(self):
        return "Not Supported"


FakeMemory = namedtuple("FakeMemory", "used total")
FakeUtilization = namedtuple("FakeUtilization", "gpu memory")
FakeVirtualMemory = namedtuple("FakeVirtualMemory", "total used percent")


@pytest.fixture
def fake_psutil(monkeypatch):
    """Replace the psutil calls used by SystemSampler with fixed values."""
    import psutil

    state = {"cpu": 12.34, "pids": [1, 2, 3], "used": 55, "total": 100}
    monkeypatch.setattr(psutil, "cpu_percent", lambda interval=None: state["cpu"])
    monkeypatch.setattr(psutil, "pids", lambda: list(state["pids"]))
    monkeypatch.setattr(
        psutil,
        "virtual_memory",
        lambda: FakeVirtualMemory(state["total"], state["used"], 0.0),
    )
    return state


@pytest.fixture
def fake_nvml(monkeypatch):
    """Replace pynvml calls with a single fake device."""
    state = {
        "init_error": False,
        "device_error": False,
        "temp_error": False,
        "util_error": False,
        "shutdowns": 0,
    }

    def init():
        if state["init_error"]:
            raise FakeNVMLError(pynvml.NVML_ERROR_LIBRARY_NOT_FOUND)

    def get_handle(index):
        if state["device_error"]:
            raise FakeNVMLError(pynvml.NVML_ERROR_INVALID_ARGUMENT)
        return f"device-{index}"

    def get_utilization(handle):
        if state["util_error"]:
            raise FakeNVMLError(pynvml.NVML_ERROR_NOT_SUPPORTED)
        return FakeUtilization(gpu=37, memory=10)

    def get_temperature(handle, sensor):
        if state["temp_error"]:
            raise FakeNVMLError(pynvml.NVML_ERROR_NOT_SUPPORTED)
        return 61

    def shutdown():
        state["shutdowns"] += 1

    monkeypatch.setattr(pynvml, "nvmlInit", init)
    monkeypatch.setattr(pynvml, "nvmlShutdown", shutdown)
    monkeypatch.setattr(pynvml, "nvmlDeviceGetHandleByIndex", get_handle)
    monkeypatch.setattr(pynvml, "nvmlDeviceGetUtilizationRates", get_utilization)
    monkeypatch.setattr(pynvml, "nvmlDeviceGetPowerUsage", lambda handle: 112450)
    monkeypatch.setattr(pynvml, "nvmlDeviceGetTemperature", get_temperature)
    monkeypatch.setattr(
        pynvml,
        "nvmlDeviceGetMemoryInfo",
        lambda handle: FakeMemory(used=3 * 1024**3, total=12 * 1024**3),
    )
    return state


@pytest.fixture
def receiver():
    """UDP socket on an ephemeral loopback port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()
