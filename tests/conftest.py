"""Shared fixtures and test doubles for the realtime layer."""

from __future__ import annotations

import asyncio
import json
import os
import sys
from collections import deque
from pathlib import Path
from typing import Any, Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("ACCESS_TOKEN_EXPIRE_MINUTES", "15")

from co2tracker.config import Settings, get_settings  # noqa: E402
from co2tracker.domain.entities import Identity  # noqa: E402
from co2tracker.domain.exceptions import TransportError  # noqa: E402
from co2tracker.infrastructure.security import (  # noqa: E402
    CredentialVerifier,
    create_identity_token,
)

get_settings.cache_clear()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(secret_key="test-secret", access_token_expire_minutes=15)


@pytest.fixture
def verifier(settings: Settings) -> CredentialVerifier:
    return CredentialVerifier(settings)


@pytest.fixture
def alice() -> Identity:
    return Identity(user_id="64f1c0ffee", email="alice@example.com")


@pytest.fixture
def bob() -> Identity:
    return Identity(user_id="64f1deadbe", email="bob@example.com")


@pytest.fixture
def token_for(settings: Settings) -> Callable[[Identity], str]:
    def _token_for(identity: Identity) -> str:
        return create_identity_token(identity, settings=settings)

    return _token_for


async def settle(rounds: int = 25) -> None:
    """Let pending callbacks and tasks on the event loop run."""

    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeWebSocket:
    """In-memory stand-in for :class:`fastapi.WebSocket`."""

    def __init__(self, token: str | None = None) -> None:
        self.query_params: dict[str, str] = {} if token is None else {"token": token}
        self.accepted = False
        self.closed_code: int | None = None
        self.sent: list[dict[str, Any]] = []
        self.fail_sends = False
        self._inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def close(self, code: int = 1000) -> None:
        self.closed_code = code
        self._inbox.put_nowait({"type": "websocket.disconnect", "code": code})

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.fail_sends:
            raise RuntimeError("socket is gone")
        self.sent.append(data)

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise RuntimeError("socket is gone")
        self.sent.append(json.loads(data))

    async def receive(self) -> dict[str, Any]:
        return await self._inbox.get()

    def push(self, message: Any) -> None:
        text = message if isinstance(message, str) else json.dumps(message)
        self._inbox.put_nowait({"type": "websocket.receive", "text": text})

    def push_disconnect(self, code: int = 1001) -> None:
        self._inbox.put_nowait({"type": "websocket.disconnect", "code": code})

    def sent_of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message["type"] == event_type]


class FakeTimer:
    def __init__(self, when: float, delay: float, callback: Callable[[], None], repeat: bool) -> None:
        self.when = when
        self.delay = delay
        self.callback = callback
        self.repeat = repeat
        self.active = True

    def cancel(self) -> None:
        self.active = False


class FakeScheduler:
    """Manually advanced clock implementing the connector's ``Scheduler``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay, delay, callback, repeat=False)
        self.timers.append(timer)
        return timer

    def call_every(self, interval: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + interval, interval, callback, repeat=True)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [timer for timer in self.timers if timer.active and timer.when <= target]
            if not due:
                break
            timer = min(due, key=lambda item: item.when)
            self.now = timer.when
            if timer.repeat:
                timer.when += timer.delay
            else:
                timer.active = False
            timer.callback()
        self.now = target

    @property
    def pending(self) -> list[FakeTimer]:
        return [timer for timer in self.timers if timer.active]

    def pending_delays(self, *, repeat: bool = False) -> list[float]:
        return [timer.delay for timer in self.pending if timer.repeat is repeat]


class FakeTransport:
    """In-memory client transport driven by the test."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.close_calls: list[tuple[int, str]] = []
        self._open = True
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return self._open

    async def send(self, data: str) -> None:
        if not self._open:
            raise TransportError(1006, "closed")
        self.sent.append(json.loads(data))

    async def recv(self) -> str:
        item = await self._inbox.get()
        if isinstance(item, TransportError):
            self._open = False
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        if self._open:
            self._open = False
            self._inbox.put_nowait(TransportError(code, reason))

    def push(self, message: Any) -> None:
        self._inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def drop(self, code: int = 1006, reason: str = "") -> None:
        self._open = False
        self._inbox.put_nowait(TransportError(code, reason))

    def sent_of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message["type"] == event_type]


class FakeTransportFactory:
    """Transport factory whose outcomes are queued by the test.

    Outcomes: ``"open"`` (default), ``"hang"`` (never completes) or an
    exception instance to raise. Setting ``gate`` holds every attempt until
    the event is set.
    """

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.transports: list[FakeTransport] = []
        self.outcomes: deque[Any] = deque()
        self.gate: asyncio.Event | None = None

    def queue(self, *outcomes: Any) -> None:
        self.outcomes.extend(outcomes)

    async def __call__(self, url: str) -> FakeTransport:
        self.urls.append(url)
        outcome = self.outcomes.popleft() if self.outcomes else "open"
        if self.gate is not None:
            await self.gate.wait()
        if outcome == "hang":
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]
