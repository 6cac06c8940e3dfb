"""Realtime notification fan-out for the infrastructure layer."""

from .dispatcher import RealtimeDispatcher, TokenVerifier, error_event
from .messages import (
    ClientMessage,
    PingMessage,
    SubscribeCO2DataMessage,
    SubscribeGoalProgressMessage,
    UnknownMessage,
    parse_client_message,
)
from .publisher import RealtimeEventPublisher
from .registry import ConnectionRegistry, RealtimeConnection
from .subscriptions import SubscriptionTable, co2_data_topic, goal_progress_topic

__all__ = [
    "ConnectionRegistry",
    "RealtimeConnection",
    "SubscriptionTable",
    "co2_data_topic",
    "goal_progress_topic",
    "ClientMessage",
    "PingMessage",
    "SubscribeCO2DataMessage",
    "SubscribeGoalProgressMessage",
    "UnknownMessage",
    "parse_client_message",
    "RealtimeDispatcher",
    "TokenVerifier",
    "error_event",
    "RealtimeEventPublisher",
]
