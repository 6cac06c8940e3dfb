"""Per-connection subscription bookkeeping."""

from __future__ import annotations

from typing import Iterable

from .registry import RealtimeConnection

CO2_DATA_TOPIC_PREFIX = "co2-data"
GOAL_PROGRESS_TOPIC_PREFIX = "goal-progress"


def co2_data_topic(data_type: str) -> str:
    return f"{CO2_DATA_TOPIC_PREFIX}:{data_type}"


def goal_progress_topic(goal_id: str) -> str:
    return f"{GOAL_PROGRESS_TOPIC_PREFIX}:{goal_id}"


class SubscriptionTable:
    """Record which topics each connection asked to receive.

    Topics are informational: broadcasts reach every connection of an identity
    regardless of what it subscribed to. Any string is accepted as a topic.
    """

    def subscribe(self, connection: RealtimeConnection, topic: str) -> bool:
        """Add ``topic`` to ``connection``; return ``False`` if already present."""

        if topic in connection.subscriptions:
            return False
        connection.subscriptions.add(topic)
        return True

    def topics_for(self, connection: RealtimeConnection) -> frozenset[str]:
        return frozenset(connection.subscriptions)

    def subscribers(
        self, topic: str, connections: Iterable[RealtimeConnection]
    ) -> list[RealtimeConnection]:
        """Return the members of ``connections`` subscribed to ``topic``."""

        return [connection for connection in connections if topic in connection.subscriptions]

    def discard(self, connection: RealtimeConnection) -> None:
        connection.subscriptions.clear()


__all__ = [
    "SubscriptionTable",
    "co2_data_topic",
    "goal_progress_topic",
]
