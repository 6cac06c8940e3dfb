"""Client-side connector keeping one realtime session alive per client."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any, Callable, Coroutine, Mapping

from websockets.frames import CloseCode

from co2tracker.domain.entities import EVENT_CONNECTION_LOST, EVENT_ERROR, RealtimeEvent
from co2tracker.domain.exceptions import TransportError

from .listeners import Listener, ListenerRegistry
from .timers import LoopScheduler, Scheduler, TimerHandle
from .transport import ClientTransport, TransportFactory, build_realtime_url, open_websocket

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10.0
HEARTBEAT_INTERVAL_SECONDS = 30.0
RECONNECT_BASE_DELAY_SECONDS = 3.0
MAX_RECONNECT_ATTEMPTS = 5
DEFAULT_PATH = "/realtime"


class ConnectorState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


class RealtimeConnector:
    """Maintain a single logical realtime connection and fan events out locally.

    ``origin`` is the page origin (``https://host``) or a callable returning
    it; it is resolved again on every attempt. Abnormal closures trigger
    reconnection with exponential backoff until ``max_reconnect_attempts`` is
    spent, after which a ``connection-lost`` event is emitted locally.
    """

    def __init__(
        self,
        origin: str | Callable[[], str],
        *,
        path: str = DEFAULT_PATH,
        transport_factory: TransportFactory = open_websocket,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
        reconnect_base_delay: float = RECONNECT_BASE_DELAY_SECONDS,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
    ) -> None:
        self._origin = origin
        self._path = path
        self._transport_factory = transport_factory
        self._scheduler = scheduler or LoopScheduler()
        self._clock = clock
        self._connect_timeout = connect_timeout
        self._heartbeat_interval = heartbeat_interval
        self._reconnect_base_delay = reconnect_base_delay
        self._max_reconnect_attempts = max_reconnect_attempts

        self._listeners = ListenerRegistry()
        self._state = ConnectorState.IDLE
        self._transport: ClientTransport | None = None
        self._attempts = 0
        self._connecting: asyncio.Task[None] | None = None
        self._connect_timer: TimerHandle | None = None
        self._heartbeat: TimerHandle | None = None
        self._reconnect_timer: TimerHandle | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> ConnectorState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def is_connected(self) -> bool:
        return (
            self._state is ConnectorState.OPEN
            and self._transport is not None
            and self._transport.is_open
        )

    def on(self, event_type: str, listener: Listener) -> None:
        self._listeners.on(event_type, listener)

    def off(self, event_type: str, listener: Listener) -> bool:
        return self._listeners.off(event_type, listener)

    async def connect(self, token: str) -> None:
        """Open the connection, sharing any attempt already in flight.

        Raises :class:`TransportError` when the attempt fails or times out.
        """

        if self.is_connected:
            return
        if self._connecting is None or self._connecting.done():
            self._connecting = asyncio.ensure_future(self._establish(token))
        attempt = self._connecting
        try:
            await asyncio.shield(attempt)
        except asyncio.CancelledError:
            if attempt.cancelled():
                raise TransportError(CloseCode.NORMAL_CLOSURE, "Manual disconnect") from None
            raise

    async def disconnect(self) -> None:
        """Close the connection for good; no reconnection follows."""

        logger.info("Disconnecting realtime connector")
        self._attempts = self._max_reconnect_attempts
        self._state = ConnectorState.DISCONNECTED
        self._cancel_heartbeat()
        self._cancel_connect_timer()
        self._cancel_reconnect_timer()
        if self._connecting is not None and not self._connecting.done():
            self._connecting.cancel()

        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                await transport.close(CloseCode.NORMAL_CLOSURE, "Manual disconnect")
            except TransportError:
                logger.debug("Transport already closed during disconnect")

    async def send(self, event: RealtimeEvent | Mapping[str, Any]) -> bool:
        """Send ``event`` if the connection is open; never raises."""

        message = event.to_message() if isinstance(event, RealtimeEvent) else dict(event)
        transport = self._transport
        if transport is None or not self.is_connected:
            logger.warning("Realtime connection not open, cannot send %s", message.get("type"))
            return False
        try:
            await transport.send(json.dumps(message))
        except Exception:
            logger.warning("Failed to send %s", message.get("type"), exc_info=True)
            return False
        return True

    async def subscribe_to_co2_data(self, data_type: str) -> bool:
        return await self.send({"type": "subscribe-co2-data", "payload": {"dataType": data_type}})

    async def subscribe_to_goal_progress(self, goal_id: str) -> bool:
        return await self.send({"type": "subscribe-goal-progress", "payload": {"goalId": goal_id}})

    async def _establish(self, token: str) -> None:
        self._cancel_reconnect_timer()
        self._cancel_heartbeat()
        self._state = ConnectorState.CONNECTING
        origin = self._origin() if callable(self._origin) else self._origin
        url = build_realtime_url(origin, token, self._path)
        logger.info("Connecting to realtime endpoint %s", url.split("?", 1)[0])

        attempt = asyncio.ensure_future(self._transport_factory(url))
        timed_out = False

        def _on_timeout() -> None:
            nonlocal timed_out
            timed_out = True
            attempt.cancel()

        self._connect_timer = self._scheduler.call_later(self._connect_timeout, _on_timeout)
        try:
            transport = await attempt
        except asyncio.CancelledError:
            self._cancel_connect_timer()
            if not timed_out:
                attempt.cancel()
                raise
            logger.error("Realtime connection timed out after %.0fs", self._connect_timeout)
            error = TransportError(CloseCode.ABNORMAL_CLOSURE, "Connection timeout")
            self._on_closed(token, error.code, error.reason)
            raise error from None
        except Exception as exc:
            self._cancel_connect_timer()
            error = (
                exc
                if isinstance(exc, TransportError)
                else TransportError(CloseCode.ABNORMAL_CLOSURE, str(exc))
            )
            logger.warning("Realtime connection failed: %s", error)
            self._on_closed(token, error.code, error.reason)
            raise error from exc

        self._cancel_connect_timer()
        self._transport = transport
        self._state = ConnectorState.OPEN
        self._attempts = 0
        self._heartbeat = self._scheduler.call_every(self._heartbeat_interval, self._send_ping)
        self._spawn(self._receive(transport, token))
        logger.info("Realtime connection established")

    async def _receive(self, transport: ClientTransport, token: str) -> None:
        while True:
            try:
                raw = await transport.recv()
            except TransportError as exc:
                code, reason = exc.code, exc.reason
                break
            except Exception as exc:
                logger.exception("Realtime transport failed while receiving")
                code, reason = CloseCode.ABNORMAL_CLOSURE, str(exc)
                break
            self._dispatch(raw)

        if transport is self._transport:
            self._on_closed(token, code, reason)

    def _dispatch(self, raw: str) -> None:
        try:
            message = json.loads(raw)
            if not isinstance(message, dict) or not isinstance(message.get("type"), str):
                raise ValueError("message is not a typed JSON object")
        except (TypeError, ValueError) as exc:
            logger.error("Could not parse realtime message: %s", exc)
            message = {
                "type": EVENT_ERROR,
                "payload": {"message": "Invalid message format", "error": str(exc)},
            }
        self._listeners.emit(message)

    def _on_closed(self, token: str, code: int, reason: str) -> None:
        logger.info("Realtime connection closed (code=%s, reason=%s)", code, reason)
        self._cancel_connect_timer()
        self._cancel_heartbeat()
        self._transport = None

        if self._state is ConnectorState.DISCONNECTED:
            return

        if code == CloseCode.NORMAL_CLOSURE:
            self._lose_connection("Connection closed", code, reason)
        elif code == CloseCode.POLICY_VIOLATION:
            self._lose_connection("Realtime authentication was rejected", code, reason)
        elif self._attempts < self._max_reconnect_attempts:
            self._schedule_reconnect(token)
        else:
            logger.error("Max reconnection attempts reached")
            self._lose_connection(
                "Max reconnection attempts reached. Please refresh the page.", code, reason
            )

    def _schedule_reconnect(self, token: str) -> None:
        delay = self._reconnect_base_delay * 2 ** self._attempts
        self._attempts += 1
        self._state = ConnectorState.RECONNECTING
        logger.info(
            "Reconnecting in %.1fs (%d/%d)",
            delay,
            self._attempts,
            self._max_reconnect_attempts,
        )
        self._reconnect_timer = self._scheduler.call_later(
            delay, lambda: self._spawn(self._reconnect(token))
        )

    async def _reconnect(self, token: str) -> None:
        self._reconnect_timer = None
        if self._state is not ConnectorState.RECONNECTING:
            return
        try:
            await self.connect(token)
        except TransportError as exc:
            logger.warning("Reconnection attempt failed: %s", exc)

    def _lose_connection(self, message: str, code: int, reason: str) -> None:
        self._state = ConnectorState.IDLE
        self._listeners.emit(
            {
                "type": EVENT_CONNECTION_LOST,
                "payload": {"message": message, "code": int(code), "reason": reason},
            }
        )

    def _send_ping(self) -> None:
        if self.is_connected:
            self._spawn(
                self.send(
                    {"type": "ping", "payload": {}, "timestamp": int(self._clock() * 1000)}
                )
            )

    def _spawn(self, coroutine: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_connect_timer(self) -> None:
        if self._connect_timer is not None:
            self._connect_timer.cancel()
            self._connect_timer = None

    def _cancel_heartbeat(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None


__all__ = [
    "CONNECT_TIMEOUT_SECONDS",
    "HEARTBEAT_INTERVAL_SECONDS",
    "MAX_RECONNECT_ATTEMPTS",
    "RECONNECT_BASE_DELAY_SECONDS",
    "ConnectorState",
    "RealtimeConnector",
]
