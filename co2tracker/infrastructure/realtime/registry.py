"""Connection management helpers for realtime websockets."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterator

from fastapi import WebSocket

from co2tracker.domain.entities import ConnectionState, Identity, RealtimeEvent

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class RealtimeConnection:
    """One live websocket session owned by the :class:`ConnectionRegistry`."""

    websocket: WebSocket
    identity: Identity
    subscriptions: set[str] = field(default_factory=set)
    state: ConnectionState = ConnectionState.CONNECTING
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    connected_at: float = field(default_factory=time.time)

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    async def send(self, event: RealtimeEvent | dict[str, Any] | str) -> bool:
        """Write ``event`` to the socket; a no-op unless the connection is open.

        A ``str`` is taken as an already encoded JSON frame.
        """

        if not self.is_open:
            return False
        if isinstance(event, str):
            await self.websocket.send_text(event)
            return True
        message = event.to_message() if isinstance(event, RealtimeEvent) else event
        await self.websocket.send_json(message)
        return True


class ConnectionRegistry:
    """Manage active websocket connections grouped by identity."""

    def __init__(self) -> None:
        self._connections: dict[Identity, set[RealtimeConnection]] = {}
        self._owners: dict[str, Identity] = {}

    def register(self, connection: RealtimeConnection) -> None:
        """Add ``connection`` to the pool of its identity."""

        owner = self._owners.get(connection.id)
        if owner is not None and owner != connection.identity:
            raise ValueError(
                f"Connection {connection.id} is already registered for another identity"
            )
        self._connections.setdefault(connection.identity, set()).add(connection)
        self._owners[connection.id] = connection.identity
        logger.info(
            "Realtime connection %s registered for user %s (%d open)",
            connection.id,
            connection.identity.user_id,
            len(self._connections[connection.identity]),
        )

    def deregister(self, connection: RealtimeConnection) -> bool:
        """Remove ``connection`` and drop its identity entry once empty."""

        identity = self._owners.pop(connection.id, None)
        if identity is None:
            return False
        connections = self._connections.get(identity)
        if connections is not None:
            connections.discard(connection)
            if not connections:
                self._connections.pop(identity, None)
        logger.info(
            "Realtime connection %s deregistered for user %s",
            connection.id,
            identity.user_id,
        )
        return True

    def connections_for(self, identity: Identity) -> list[RealtimeConnection]:
        """Return a snapshot of the connections registered for ``identity``."""

        return list(self._connections.get(identity, ()))

    def identities(self) -> list[Identity]:
        return list(self._connections)

    def __iter__(self) -> Iterator[RealtimeConnection]:
        for connections in list(self._connections.values()):
            yield from list(connections)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, RealtimeConnection):
            return item.id in self._owners
        if isinstance(item, Identity):
            return item in self._connections
        return False

    @property
    def size(self) -> int:
        """Number of identities with at least one registered connection."""

        return len(self._connections)

    @property
    def connection_count(self) -> int:
        return len(self._owners)


__all__ = ["ConnectionRegistry", "RealtimeConnection"]
