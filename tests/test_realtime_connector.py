"""Tests for the client-side realtime connector."""

from __future__ import annotations

import asyncio

import pytest

from co2tracker.client import (
    CONNECT_TIMEOUT_SECONDS,
    ConnectorState,
    RealtimeConnector,
)
from co2tracker.domain.exceptions import TransportError
from conftest import FakeScheduler, FakeTransportFactory, settle

pytestmark = pytest.mark.anyio


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def connector(scheduler, factory) -> RealtimeConnector:
    return RealtimeConnector(
        "https://co2.example.com",
        transport_factory=factory,
        scheduler=scheduler,
        clock=lambda: 1_700_000_000.0,
    )


def _reconnect_delays(scheduler: FakeScheduler) -> list[float]:
    return [delay for delay in scheduler.pending_delays() if delay != CONNECT_TIMEOUT_SECONDS]


async def test_connect_opens_secure_url_with_token(connector, factory) -> None:
    await connector.connect("tok en/1")

    assert factory.urls == ["wss://co2.example.com/realtime?token=tok+en%2F1"]
    assert connector.state is ConnectorState.OPEN
    assert connector.is_connected


async def test_connect_uses_plain_scheme_for_plain_origin(scheduler, factory) -> None:
    connector = RealtimeConnector(
        "http://localhost:3000", transport_factory=factory, scheduler=scheduler
    )

    await connector.connect("abc")

    assert factory.urls == ["ws://localhost:3000/realtime?token=abc"]


async def test_concurrent_connects_share_one_attempt(connector, factory) -> None:
    factory.gate = asyncio.Event()

    first = asyncio.ensure_future(connector.connect("tok"))
    second = asyncio.ensure_future(connector.connect("tok"))
    await settle()

    assert len(factory.urls) == 1
    assert connector.state is ConnectorState.CONNECTING

    factory.gate.set()
    await asyncio.gather(first, second)

    assert len(factory.urls) == 1
    assert connector.is_connected


async def test_connect_when_already_open_is_noop(connector, factory) -> None:
    await connector.connect("tok")
    await connector.connect("tok")

    assert len(factory.urls) == 1


async def test_successful_open_clears_timeout_and_starts_heartbeat(connector, factory, scheduler) -> None:
    await connector.connect("tok")

    assert scheduler.pending_delays() == []
    assert scheduler.pending_delays(repeat=True) == [30.0]

    scheduler.advance(30)
    await settle()
    scheduler.advance(30)
    await settle()

    pings = factory.latest.sent_of_type("ping")
    assert len(pings) == 2
    assert pings[0]["timestamp"] == 1_700_000_000_000


async def test_handshake_timeout_counts_as_failure(connector, factory, scheduler) -> None:
    factory.queue("hang")

    attempt = asyncio.ensure_future(connector.connect("tok"))
    await settle()
    assert scheduler.pending_delays() == [CONNECT_TIMEOUT_SECONDS]

    scheduler.advance(CONNECT_TIMEOUT_SECONDS)
    await settle()

    with pytest.raises(TransportError, match="Connection timeout"):
        await attempt
    assert connector.state is ConnectorState.RECONNECTING
    assert _reconnect_delays(scheduler) == [3.0]


async def test_abnormal_closures_back_off_exponentially(connector, factory, scheduler) -> None:
    lost: list[dict] = []
    connector.on("connection-lost", lost.append)
    await connector.connect("tok")

    factory.queue(*[TransportError(1006, "server down") for _ in range(5)])
    factory.latest.drop(1006)
    await settle()

    observed = []
    for _ in range(5):
        (delay,) = _reconnect_delays(scheduler)
        observed.append(delay)
        scheduler.advance(delay)
        await settle()

    assert observed == [3.0, 6.0, 12.0, 24.0, 48.0]
    assert len(factory.urls) == 6
    assert _reconnect_delays(scheduler) == []
    assert connector.state is ConnectorState.IDLE
    assert len(lost) == 1
    assert lost[0]["message"] == "Max reconnection attempts reached. Please refresh the page."


async def test_successful_reconnect_resets_attempts(connector, factory, scheduler) -> None:
    await connector.connect("tok")

    factory.latest.drop(1011)
    await settle()
    assert connector.reconnect_attempts == 1

    scheduler.advance(3)
    await settle()

    assert connector.is_connected
    assert connector.reconnect_attempts == 0
    assert len(factory.transports) == 2


async def test_manual_disconnect_never_reconnects(connector, factory, scheduler) -> None:
    lost: list[dict] = []
    connector.on("connection-lost", lost.append)
    await connector.connect("tok")
    transport = factory.latest

    await connector.disconnect()
    await settle()
    scheduler.advance(600)
    await settle()

    assert transport.close_calls == [(1000, "Manual disconnect")]
    assert connector.state is ConnectorState.DISCONNECTED
    assert len(factory.urls) == 1
    assert scheduler.pending == []
    assert transport.sent_of_type("ping") == []
    assert lost == []


async def test_disconnect_cancels_pending_handshake(connector, factory, scheduler) -> None:
    factory.queue("hang")
    attempt = asyncio.ensure_future(connector.connect("tok"))
    await settle()

    await connector.disconnect()

    with pytest.raises(TransportError):
        await attempt
    assert scheduler.pending == []
    scheduler.advance(CONNECT_TIMEOUT_SECONDS)
    await settle()
    assert len(factory.urls) == 1


async def test_disconnect_cancels_scheduled_reconnect(connector, factory, scheduler) -> None:
    await connector.connect("tok")
    factory.latest.drop(1006)
    await settle()
    assert _reconnect_delays(scheduler) == [3.0]

    await connector.disconnect()
    scheduler.advance(60)
    await settle()

    assert len(factory.urls) == 1


async def test_server_normal_closure_reports_connection_lost(connector, factory, scheduler) -> None:
    lost: list[dict] = []
    connector.on("connection-lost", lost.append)
    await connector.connect("tok")

    factory.latest.drop(1000, "server restart")
    await settle()

    assert _reconnect_delays(scheduler) == []
    assert lost == [{"message": "Connection closed", "code": 1000, "reason": "server restart"}]
    assert connector.state is ConnectorState.IDLE


async def test_rejected_credentials_are_not_retried(connector, factory, scheduler) -> None:
    lost: list[dict] = []
    connector.on("connection-lost", lost.append)
    factory.queue(TransportError(1008, "handshake rejected with HTTP 403"))

    with pytest.raises(TransportError):
        await connector.connect("expired")

    assert scheduler.pending == []
    assert lost[0]["code"] == 1008


async def test_events_reach_typed_and_wildcard_listeners(connector, factory) -> None:
    typed: list = []
    everything: list = []
    connector.on("co2-data-added", typed.append)
    connector.on("message", everything.append)
    await connector.connect("tok")

    factory.latest.push({"type": "co2-data-added", "payload": {"totalCO2": 2}})
    factory.latest.push({"type": "pong"})
    await settle()

    assert typed == [{"totalCO2": 2}]
    assert everything == [
        {"type": "co2-data-added", "payload": {"totalCO2": 2}},
        {"type": "pong"},
    ]


async def test_failing_listener_does_not_stop_others(connector, factory) -> None:
    received: list = []

    def explode(payload):
        raise RuntimeError("boom")

    connector.on("leaderboard-updated", explode)
    connector.on("leaderboard-updated", received.append)
    connector.on("message", explode)
    connector.on("message", received.append)
    await connector.connect("tok")

    factory.latest.push({"type": "leaderboard-updated", "payload": {"leaderboard": []}})
    await settle()

    assert received == [
        {"leaderboard": []},
        {"type": "leaderboard-updated", "payload": {"leaderboard": []}},
    ]


async def test_unparseable_frame_becomes_local_error_event(connector, factory) -> None:
    errors: list = []
    connector.on("error", errors.append)
    await connector.connect("tok")

    factory.latest.push("<html>not json</html>")
    await settle()

    assert errors[0]["message"] == "Invalid message format"
    assert connector.is_connected


async def test_off_removes_listener(connector, factory) -> None:
    received: list = []
    connector.on("pong", received.append)
    assert connector.off("pong", received.append) is True
    assert connector.off("pong", received.append) is False
    await connector.connect("tok")

    factory.latest.push({"type": "pong", "payload": {"timestamp": 1}})
    await settle()

    assert received == []


async def test_send_requires_open_connection(connector, factory) -> None:
    assert await connector.send({"type": "ping", "payload": {}}) is False

    await connector.connect("tok")
    assert await connector.subscribe_to_co2_data("transport") is True
    assert await connector.subscribe_to_goal_progress("goal-9") is True

    assert factory.latest.sent == [
        {"type": "subscribe-co2-data", "payload": {"dataType": "transport"}},
        {"type": "subscribe-goal-progress", "payload": {"goalId": "goal-9"}},
    ]

    factory.latest.drop(1006)
    await settle()
    assert await connector.send({"type": "ping", "payload": {}}) is False


async def test_origin_is_resolved_on_every_attempt(scheduler, factory) -> None:
    origins = iter(["https://a.example.com", "https://b.example.com"])
    connector = RealtimeConnector(
        lambda: next(origins), transport_factory=factory, scheduler=scheduler
    )
    await connector.connect("tok")

    factory.latest.drop(1006)
    await settle()
    scheduler.advance(3)
    await settle()

    assert factory.urls == [
        "wss://a.example.com/realtime?token=tok",
        "wss://b.example.com/realtime?token=tok",
    ]
