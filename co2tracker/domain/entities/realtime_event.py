"""Domain event exchanged over realtime connections."""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

# Outbound types produced by the dispatcher itself.
EVENT_CONNECTED = "connected"
EVENT_SUBSCRIBED = "subscribed"
EVENT_PONG = "pong"
EVENT_ERROR = "error"

# Outbound types emitted by application code after a state change.
EVENT_CO2_DATA_ADDED = "co2-data-added"
EVENT_CO2_DATA_UPDATED = "co2-data-updated"
EVENT_DATA_DELETED = "data-deleted"
EVENT_PASSWORD_UPDATED = "password-updated"
EVENT_ACCOUNT_DELETED = "account-deleted"
EVENT_LEADERBOARD_UPDATED = "leaderboard-updated"

# Local-only types synthesized by the client connector.
EVENT_CONNECTION_LOST = "connection-lost"


class ConnectionState(str, Enum):
    """Lifecycle of a server-side realtime connection."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(frozen=True)
class RealtimeEvent:
    """Unit of communication pushed to realtime listeners."""

    type: str
    payload: Any = field(default_factory=dict)

    def to_message(self) -> dict[str, Any]:
        """Return the JSON-serializable wire representation of the event."""

        payload = self.payload
        if is_dataclass(payload) and not isinstance(payload, type):
            payload = asdict(payload)
        else:
            payload = copy.deepcopy(payload)
        return {"type": self.type, "payload": _normalize_datetime_values(payload)}


def _normalize_datetime_values(data: Any) -> Any:
    """Convert ``datetime`` instances nested inside ``data`` into ISO strings."""

    if isinstance(data, datetime):
        return data.isoformat()
    if isinstance(data, dict):
        return {key: _normalize_datetime_values(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [_normalize_datetime_values(item) for item in data]
    return data


__all__ = [
    "ConnectionState",
    "RealtimeEvent",
    "EVENT_CONNECTED",
    "EVENT_SUBSCRIBED",
    "EVENT_PONG",
    "EVENT_ERROR",
    "EVENT_CO2_DATA_ADDED",
    "EVENT_CO2_DATA_UPDATED",
    "EVENT_DATA_DELETED",
    "EVENT_PASSWORD_UPDATED",
    "EVENT_ACCOUNT_DELETED",
    "EVENT_LEADERBOARD_UPDATED",
    "EVENT_CONNECTION_LOST",
]
