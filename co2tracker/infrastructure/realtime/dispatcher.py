"""Server-side handling of realtime websocket sessions."""

from __future__ import annotations

import inspect
import json
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Protocol

from fastapi import WebSocket, WebSocketDisconnect, status

from co2tracker.domain.entities import (
    EVENT_CONNECTED,
    EVENT_ERROR,
    EVENT_PONG,
    EVENT_SUBSCRIBED,
    ConnectionState,
    Identity,
    RealtimeEvent,
)
from co2tracker.domain.exceptions import AuthError, MalformedMessageError

from .messages import (
    ClientMessage,
    PingMessage,
    SubscribeCO2DataMessage,
    SubscribeGoalProgressMessage,
    UnknownMessage,
    parse_client_message,
)
from .registry import ConnectionRegistry, RealtimeConnection
from .subscriptions import SubscriptionTable, co2_data_topic, goal_progress_topic

logger = logging.getLogger(__name__)


class TokenVerifier(Protocol):
    def verify(self, token: str) -> Identity | Awaitable[Identity]:
        ...


def error_event(message: str) -> RealtimeEvent:
    return RealtimeEvent(EVENT_ERROR, {"message": message})


class RealtimeDispatcher:
    """Admit, serve and fan out events to authenticated websocket clients.

    The dispatcher owns its :class:`ConnectionRegistry`; other components only
    reach it through :meth:`handle`, :meth:`broadcast_to_user` and
    :meth:`broadcast_to_all`.
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        registry: ConnectionRegistry | None = None,
        subscriptions: SubscriptionTable | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._verifier = verifier
        self._registry = registry if registry is not None else ConnectionRegistry()
        self._subscriptions = subscriptions if subscriptions is not None else SubscriptionTable()
        self._clock = clock
        self._handlers: dict[type, Callable[[RealtimeConnection, Any], Awaitable[None]]] = {
            SubscribeCO2DataMessage: self._on_subscribe_co2_data,
            SubscribeGoalProgressMessage: self._on_subscribe_goal_progress,
            PingMessage: self._on_ping,
            UnknownMessage: self._on_unknown,
        }

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def subscriptions(self) -> SubscriptionTable:
        return self._subscriptions

    async def handle(self, websocket: WebSocket) -> None:
        """Run the whole lifecycle of ``websocket`` until it closes."""

        connection = await self._admit(websocket)
        if connection is None:
            return

        try:
            await connection.send(
                RealtimeEvent(EVENT_CONNECTED, {"userId": connection.identity.user_id})
            )
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                await self._handle_frame(connection, raw)
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("Realtime session %s failed", connection.id)
            await self._abort(connection)
        finally:
            self._release(connection)

    async def broadcast_to_user(self, identity: Identity, event: RealtimeEvent) -> int:
        """Send ``event`` to every open connection of ``identity``.

        Returns the number of connections the event was written to. Identities
        without connections are skipped silently.
        """

        connections = self._registry.connections_for(identity)
        if not connections:
            logger.debug(
                "Dropping %s event for user %s: no open connections",
                event.type,
                identity.user_id,
            )
            return 0
        return await self._deliver(connections, event)

    async def broadcast_to_all(self, event: RealtimeEvent) -> int:
        """Send ``event`` to every registered connection."""

        return await self._deliver(list(self._registry), event)

    async def close_all(self, code: int = status.WS_1001_GOING_AWAY) -> None:
        """Close every registered connection, used on application shutdown."""

        for connection in list(self._registry):
            connection.state = ConnectionState.CLOSING
            try:
                await connection.websocket.close(code=code)
            except Exception:  # pragma: no cover - socket already gone
                logger.debug("Connection %s was already closed", connection.id)
            finally:
                self._release(connection)

    async def _admit(self, websocket: WebSocket) -> RealtimeConnection | None:
        token = websocket.query_params.get("token")
        if not token:
            logger.warning("Rejected realtime connection without token")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return None

        try:
            identity = self._verifier.verify(token)
            if inspect.isawaitable(identity):
                identity = await identity
        except AuthError as exc:
            logger.warning("Rejected realtime connection: %s", exc.detail)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return None
        except Exception:
            logger.exception("Unexpected failure while verifying realtime credentials")
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return None

        connection = RealtimeConnection(websocket=websocket, identity=identity)
        await websocket.accept()
        connection.state = ConnectionState.OPEN
        self._registry.register(connection)
        return connection

    def _release(self, connection: RealtimeConnection) -> None:
        connection.state = ConnectionState.CLOSED
        self._subscriptions.discard(connection)
        self._registry.deregister(connection)

    async def _deliver(
        self, connections: Iterable[RealtimeConnection], event: RealtimeEvent
    ) -> int:
        try:
            frame = json.dumps(event.to_message())
        except (TypeError, ValueError):
            logger.error("Could not encode %s event, nothing was sent", event.type, exc_info=True)
            return 0

        delivered = 0
        for connection in connections:
            try:
                if await connection.send(frame):
                    delivered += 1
            except Exception:
                logger.warning(
                    "Failed to deliver %s event to connection %s",
                    event.type,
                    connection.id,
                    exc_info=True,
                )
                await self._abort(connection)
        return delivered

    async def _abort(self, connection: RealtimeConnection) -> None:
        """Close a broken session so its client notices and reconnects."""

        connection.state = ConnectionState.CLOSING
        try:
            await connection.websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        except Exception:
            logger.debug("Connection %s was already closed", connection.id)
        finally:
            self._release(connection)

    async def _handle_frame(self, connection: RealtimeConnection, raw: str | bytes | None) -> None:
        try:
            message: ClientMessage = parse_client_message(raw)
        except MalformedMessageError as exc:
            logger.debug("Malformed frame on connection %s: %s", connection.id, exc)
            await connection.send(error_event(str(exc)))
            return

        handler = self._handlers[type(message)]
        await handler(connection, message)

    async def _on_subscribe_co2_data(
        self, connection: RealtimeConnection, message: SubscribeCO2DataMessage
    ) -> None:
        data_type = message.payload.data_type
        self._subscriptions.subscribe(connection, co2_data_topic(data_type))
        await connection.send(
            RealtimeEvent(
                EVENT_SUBSCRIBED,
                {"message": f"Subscribed to CO2 data updates for {data_type}"},
            )
        )

    async def _on_subscribe_goal_progress(
        self, connection: RealtimeConnection, message: SubscribeGoalProgressMessage
    ) -> None:
        goal_id = message.payload.goal_id
        self._subscriptions.subscribe(connection, goal_progress_topic(goal_id))
        await connection.send(
            RealtimeEvent(
                EVENT_SUBSCRIBED,
                {"message": f"Subscribed to progress updates for goal {goal_id}"},
            )
        )

    async def _on_ping(self, connection: RealtimeConnection, message: PingMessage) -> None:
        await connection.send(
            RealtimeEvent(EVENT_PONG, {"timestamp": int(self._clock() * 1000)})
        )

    async def _on_unknown(self, connection: RealtimeConnection, message: UnknownMessage) -> None:
        logger.debug("Unknown message type %r on connection %s", message.type, connection.id)
        await connection.send(error_event(f"Unknown message type: {message.type}"))


__all__ = ["RealtimeDispatcher", "TokenVerifier", "error_event"]
