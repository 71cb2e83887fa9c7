"""Error types raised by chatbox-stats."""


class ChatboxStatsError(Exception):
    """Base class for all chatbox-stats errors."""


class ConfigError(ChatboxStatsError):
    """Configuration value is missing or out of range."""


class StartupError(ChatboxStatsError):
    """Fatal error before the poll loop starts (e.g. socket bind failure)."""


class SourceInitError(StartupError):
    """A requested metric source could not be initialized."""


class DeliveryError(ChatboxStatsError):
    """A snapshot could not be sent. Reported per tick, never fatal."""
