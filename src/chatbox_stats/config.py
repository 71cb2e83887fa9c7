"""Configuration management for chatbox-stats."""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from .exceptions import ConfigError
from .sources.base import SourceKind


@dataclass(frozen=True)
class OscEndpoint:
    """Where snapshots are sent and which local address they are sent from."""

    address: str = "/chatbox/input"
    host: str = "127.0.0.1"
    port: int = 9000
    bind_host: str = "127.0.0.1"
    bind_port: int = 9001


def _as_port(value: Any, name: str) -> int:
    """Convert a port from YAML or the environment, which may be a string."""
    if isinstance(value, bool):
        raise ConfigError(f"osc.{name} must be a port number 0-65535, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"osc.{name} must be a port number 0-65535, got {value!r}") from None


@dataclass(frozen=True)
class AgentConfig:
    """Main configuration. Build a new one with dataclasses.replace to override."""

    enabled_sources: frozenset[SourceKind] = field(default_factory=lambda: frozenset(SourceKind))
    interval: int = 3  # seconds
    gpu_index: int = 0
    endpoint: OscEndpoint = field(default_factory=OscEndpoint)
    log_level: str = "INFO"

    def __post_init__(self):
        if isinstance(self.interval, bool) or not isinstance(self.interval, int) or self.interval < 1:
            raise ConfigError(f"interval must be a whole number of seconds >= 1, got {self.interval!r}")
        if isinstance(self.gpu_index, bool) or not isinstance(self.gpu_index, int) or self.gpu_index < 0:
            raise ConfigError(f"gpu_index must be a whole number >= 0, got {self.gpu_index!r}")
        for name in ("port", "bind_port"):
            port = getattr(self.endpoint, name)
            if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
                raise ConfigError(f"osc.{name} must be a port number 0-65535, got {port!r}")
        if not isinstance(self.endpoint.address, str) or not self.endpoint.address.startswith("/"):
            raise ConfigError(f"OSC address must start with '/', got {self.endpoint.address!r}")

    def without(self, *kinds: SourceKind) -> "AgentConfig":
        """Return a copy with the given sources disabled."""
        return replace(self, enabled_sources=self.enabled_sources - set(kinds))

    @classmethod
    def from_file(cls, path: str | Path) -> "AgentConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentConfig":
        """Create config from dictionary."""
        if not isinstance(data, dict):
            raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")
        defaults = cls()

        # Sources: mapping of kind -> enabled, missing kinds stay enabled
        enabled = set(defaults.enabled_sources)
        sources = data.get("sources") or {}
        if not isinstance(sources, dict):
            raise ConfigError(f"sources must be a mapping of source name to true/false, got {sources!r}")
        for name, on in sources.items():
            try:
                kind = SourceKind(name)
            except ValueError:
                raise ConfigError(f"Unknown source: {name}") from None
            if on:
                enabled.add(kind)
            else:
                enabled.discard(kind)

        endpoint = defaults.endpoint
        if "osc" in data:
            osc = data["osc"] or {}
            if not isinstance(osc, dict):
                raise ConfigError(f"osc must be a mapping, got {osc!r}")
            endpoint = OscEndpoint(
                address=osc.get("address", endpoint.address),
                host=osc.get("host", endpoint.host),
                port=_as_port(osc.get("port", endpoint.port), "port"),
                bind_host=osc.get("bind_host", endpoint.bind_host),
                bind_port=_as_port(osc.get("bind_port", endpoint.bind_port), "bind_port"),
            )

        return cls(
            enabled_sources=frozenset(enabled),
            interval=data.get("interval", defaults.interval),
            gpu_index=data.get("gpu_index", defaults.gpu_index),
            endpoint=endpoint,
            log_level=data.get("log_level", defaults.log_level),
        )

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Create config from environment variables."""
        defaults = cls()
        data: dict[str, Any] = {}

        if os.environ.get("CHATBOX_STATS_INTERVAL"):
            try:
                data["interval"] = int(os.environ["CHATBOX_STATS_INTERVAL"])
            except ValueError:
                raise ConfigError(
                    f"CHATBOX_STATS_INTERVAL must be an integer, got {os.environ['CHATBOX_STATS_INTERVAL']!r}"
                ) from None

        if os.environ.get("CHATBOX_STATS_HOST") or os.environ.get("CHATBOX_STATS_PORT"):
            data["osc"] = {
                "host": os.environ.get("CHATBOX_STATS_HOST", defaults.endpoint.host),
                "port": os.environ.get("CHATBOX_STATS_PORT", defaults.endpoint.port),
            }

        data["log_level"] = os.environ.get("CHATBOX_STATS_LOG_LEVEL", defaults.log_level)
        return cls.from_dict(data)


def load_config(config_path: Optional[str] = None) -> AgentConfig:
    """Load configuration from file or environment."""
    # Explicit path must exist
    if config_path:
        if not Path(config_path).exists():
            raise ConfigError(f"Config file not found: {config_path}")
        return AgentConfig.from_file(config_path)

    # Try default locations
    default_paths = [
        Path("chatbox-stats.yaml"),
        Path("chatbox-stats.yml"),
        Path.home() / ".chatbox-stats" / "config.yaml",
    ]

    for path in default_paths:
        if path.exists():
            return AgentConfig.from_file(path)

    # Fall back to environment
    return AgentConfig.from_env()
