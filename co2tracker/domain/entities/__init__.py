"""Domain entities exposed by the application."""

from .identity import Identity
from .realtime_event import (
    EVENT_ACCOUNT_DELETED,
    EVENT_CO2_DATA_ADDED,
    EVENT_CO2_DATA_UPDATED,
    EVENT_CONNECTED,
    EVENT_CONNECTION_LOST,
    EVENT_DATA_DELETED,
    EVENT_ERROR,
    EVENT_LEADERBOARD_UPDATED,
    EVENT_PASSWORD_UPDATED,
    EVENT_PONG,
    EVENT_SUBSCRIBED,
    ConnectionState,
    RealtimeEvent,
)

__all__ = [
    "Identity",
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
