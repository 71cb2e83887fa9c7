"""Poll loop - samples sources on a fixed interval and sends the snapshot."""

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Optional

from .config import AgentConfig
from .delivery import DeliveryChannel
from .exceptions import DeliveryError
from .snapshot import build_snapshot
from .sources import MetricSource, build_sources, close_sources

logger = logging.getLogger(__name__)


class CancellationSignal:
    """
    Process-wide stop flag.

    Set once by an interrupt handler, read by the poll loop between ticks.
    Setting it also wakes the loop out of its inter-tick wait.
    """

    def __init__(self):
        self._event = asyncio.Event()

    def set(self):
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds. Returns True if the signal was set."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        return self._event.is_set()


@dataclass
class LoopStats:
    """Counters for one agent run."""

    ticks: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


class Agent:
    """
    Main chatbox-stats agent.

    Each tick waits ``config.interval`` seconds, builds a snapshot from every
    source in order and sends it if it isn't empty. Delivery failures are
    logged and the next tick proceeds as usual; nothing is retried or queued.
    """

    def __init__(
        self,
        config: AgentConfig,
        channel: Optional[DeliveryChannel] = None,
        sources: Optional[list[MetricSource]] = None,
        cancel: Optional[CancellationSignal] = None,
    ):
        self.config = config
        self.channel = channel or DeliveryChannel(config.endpoint)
        self.sources: list[MetricSource] = sources if sources is not None else []
        self.cancel = cancel or CancellationSignal()
        self.stats = LoopStats()
        self._signal_cleanup: list = []

    def setup(self):
        """
        Initialize sources and open the socket.

        Raises:
            StartupError: socket bind failed or a requested source is
                unavailable. Anything already opened is released first.
        """
        if not self.sources:
            self.sources = build_sources(self.config)

        try:
            self.channel.open()
        except Exception:
            self.close()
            raise

        logger.info(
            f"Agent initialized with {len(self.sources)} sources: "
            f"{', '.join(s.name for s in self.sources) or 'none'}"
        )

    async def run(self, install_signal_handlers: bool = True):
        """Run ticks until the cancellation signal is set, then release everything."""
        if install_signal_handlers:
            self._install_signal_handlers()

        logger.info(
            f"Sending to {self.config.endpoint.host}:{self.config.endpoint.port} "
            f"every {self.config.interval}s"
        )

        try:
            while not self.cancel.is_set():
                if await self.cancel.wait(self.config.interval):
                    break
                self.tick()
        finally:
            self._remove_signal_handlers()
            self.close()

        logger.info(
            f"Agent stopped after {self.stats.ticks} ticks "
            f"({self.stats.sent} sent, {self.stats.skipped} empty, {self.stats.failed} failed)"
        )

    def tick(self) -> bool:
        """Build and send one snapshot. Returns True if it was delivered."""
        self.stats.ticks += 1
        snapshot = build_snapshot(self.sources)

        if not snapshot:
            self.stats.skipped += 1
            logger.debug("Empty snapshot, nothing to send")
            return False

        try:
            self.channel.send(snapshot)
        except DeliveryError as e:
            self.stats.failed += 1
            logger.error(f"Delivery failed: {e}")
            return False

        self.stats.sent += 1
        logger.info(f"Sent: {snapshot!r}")
        return True

    def collect_once(self) -> str:
        """Build one snapshot without sending it."""
        return build_snapshot(self.sources)

    def stop(self):
        """Ask the loop to stop after the current tick."""
        if not self.cancel.is_set():
            logger.info("Stopping chatbox-stats agent...")
        self.cancel.set()

    def close(self):
        """Close sources and socket. Safe to call more than once."""
        close_sources(self.sources)
        self.sources = []
        self.channel.close()

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
                self._signal_cleanup.append(lambda sig=sig: loop.remove_signal_handler(sig))
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                previous = signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.stop))
                self._signal_cleanup.append(lambda sig=sig, previous=previous: signal.signal(sig, previous))

    def _remove_signal_handlers(self):
        while self._signal_cleanup:
            self._signal_cleanup.pop()()
