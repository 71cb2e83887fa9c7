"""Tests for the poll loop."""

import asyncio
import os
import signal

import pytest
from pythonosc.osc_message import OscMessage

from chatbox_stats.agent import Agent, CancellationSignal
from chatbox_stats.config import AgentConfig, OscEndpoint
from chatbox_stats.delivery import DeliveryChannel
from chatbox_stats.exceptions import DeliveryError, StartupError
from chatbox_stats.sources import SourceKind

from conftest import TIMESTAMP_PATTERN, StaticSource


class RecordingChannel:
    """Delivery channel that records instead of sending."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[str] = []
        self.opened = False
        self.closed = 0

    def open(self):
        self.opened = True

    def close(self):
        self.closed += 1

    def send(self, text: str) -> int:
        if self.fail:
            raise DeliveryError("boom")
        self.sent.append(text)
        return len(text)


class InstantSignal(CancellationSignal):
    """Cancellation signal whose inter-tick wait returns immediately."""

    async def wait(self, timeout: float) -> bool:
        await asyncio.sleep(0)
        return self.is_set()


class StopAfter(StaticSource):
    """Source that stops the agent on its n-th call."""

    def __init__(self, agent_ref: list, n: int, text: str = "tick"):
        super().__init__(text)
        self.agent_ref = agent_ref
        self.n = n

    def produce(self) -> str:
        text = super().produce()
        if self.calls == self.n:
            self.agent_ref[0].stop()
        return text


def _agent(sources, channel=None, **config) -> Agent:
    return Agent(
        AgentConfig(interval=1, **config),
        channel=channel or RecordingChannel(),
        sources=sources,
        cancel=InstantSignal(),
    )


class TestTick:
    """Tests for a single tick."""

    def test_sends_snapshot(self):
        agent = _agent([StaticSource("a"), StaticSource("b")])
        assert agent.tick() is True
        assert agent.channel.sent == ["a\nb"]
        assert agent.stats.sent == 1

    def test_empty_snapshot_not_sent(self):
        agent = _agent([StaticSource("")])
        assert agent.tick() is False
        assert agent.channel.sent == []
        assert agent.stats.skipped == 1

    def test_no_sources_not_sent(self):
        agent = _agent([])
        assert agent.tick() is False
        assert agent.channel.sent == []

    def test_delivery_failure_is_not_fatal(self):
        agent = _agent([StaticSource("a")], channel=RecordingChannel(fail=True))
        assert agent.tick() is False
        assert agent.tick() is False
        assert agent.stats.failed == 2
        assert agent.stats.ticks == 2

    def test_bad_destination_port_is_not_fatal(self):
        channel = DeliveryChannel(OscEndpoint(port=70000, bind_port=0))
        agent = _agent([StaticSource("a")], channel=channel)
        channel.open()
        try:
            assert agent.tick() is False
            assert agent.tick() is False
        finally:
            channel.close()
        assert agent.stats.failed == 2

    def test_collect_once_does_not_send(self):
        agent = _agent([StaticSource("a")])
        assert agent.collect_once() == "a"
        assert agent.channel.sent == []


class TestRun:
    """Tests for the loop and cancellation."""

    def test_no_send_after_cancel(self):
        ref = []
        agent = _agent([StopAfter(ref, n=3)])
        ref.append(agent)

        asyncio.run(agent.run(install_signal_handlers=False))

        # The in-flight tick completes; nothing after it
        assert agent.channel.sent == ["tick", "tick", "tick"]
        assert agent.stats.ticks == 3

    def test_cancelled_before_start(self):
        source = StaticSource("a")
        agent = _agent([source])
        agent.stop()

        asyncio.run(agent.run(install_signal_handlers=False))

        assert source.calls == 0
        assert agent.channel.sent == []

    def test_releases_resources_on_exit(self):
        ref = []
        source = StopAfter(ref, n=1)
        agent = _agent([source])
        ref.append(agent)

        asyncio.run(agent.run(install_signal_handlers=False))

        assert source.closed
        assert agent.channel.closed == 1
        assert agent.sources == []

    def test_failures_keep_loop_running(self):
        ref = []
        agent = _agent([StopAfter(ref, n=4)], channel=RecordingChannel(fail=True))
        ref.append(agent)

        asyncio.run(agent.run(install_signal_handlers=False))

        assert agent.stats.failed == 4

    def test_signal_handlers_installed_and_removed(self):
        ref = []
        agent = _agent([StopAfter(ref, n=1)])
        ref.append(agent)

        asyncio.run(agent.run())

        assert agent._signal_cleanup == []

    @pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM])
    def test_interrupt_stops_run(self, signum):
        channel = RecordingChannel()
        source = StaticSource("a")
        agent = Agent(AgentConfig(interval=1), channel=channel, sources=[source])

        async def scenario():
            asyncio.get_running_loop().call_later(0.05, os.kill, os.getpid(), signum)
            await asyncio.wait_for(agent.run(), timeout=5)

        asyncio.run(scenario())

        assert agent.cancel.is_set()
        assert channel.sent == []
        assert channel.closed == 1
        assert source.closed
        assert agent._signal_cleanup == []

    def test_end_to_end_over_udp(self, receiver):
        host, port = receiver.getsockname()
        config = AgentConfig(
            enabled_sources=frozenset([SourceKind.TIME]),
            interval=1,
            endpoint=OscEndpoint(host=host, port=port, bind_port=0),
        )
        agent = Agent(config, cancel=InstantSignal())
        agent.setup()
        ref = [agent]
        agent.sources.append(StopAfter(ref, n=1, text=""))

        asyncio.run(agent.run(install_signal_handlers=False))

        data, _ = receiver.recvfrom(65535)
        text, notify = OscMessage(data).params
        assert TIMESTAMP_PATTERN.match(text)
        assert notify is True
        assert not agent.channel.is_open


class TestSetup:
    """Tests for startup."""

    def test_bind_failure_closes_sources(self, receiver):
        _, taken = receiver.getsockname()
        source = StaticSource("a")
        config = AgentConfig(endpoint=OscEndpoint(bind_port=taken))
        agent = Agent(config, sources=[source])

        with pytest.raises(StartupError):
            agent.setup()

        assert source.closed

    def test_builds_sources_from_config(self):
        config = AgentConfig(enabled_sources=frozenset([SourceKind.TIME]))
        agent = Agent(config, channel=RecordingChannel())
        agent.setup()
        assert [s.kind for s in agent.sources] == [SourceKind.TIME]
        assert agent.channel.opened


class TestCancellationSignal:
    """Tests for CancellationSignal."""

    def test_wait_times_out(self):
        cancel = CancellationSignal()
        assert asyncio.run(cancel.wait(0.01)) is False

    def test_set_wakes_wait(self):
        async def scenario():
            cancel = CancellationSignal()
            asyncio.get_running_loop().call_later(0.01, cancel.set)
            return await cancel.wait(5)

        assert asyncio.run(scenario()) is True
