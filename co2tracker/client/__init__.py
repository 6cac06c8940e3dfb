"""Client-side connector for the realtime notification endpoint."""

from .connector import (
    CONNECT_TIMEOUT_SECONDS,
    HEARTBEAT_INTERVAL_SECONDS,
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_BASE_DELAY_SECONDS,
    ConnectorState,
    RealtimeConnector,
)
from .listeners import WILDCARD, ListenerRegistry
from .timers import LoopScheduler, Scheduler, TimerHandle
from .transport import (
    ClientTransport,
    TransportFactory,
    WebsocketsTransport,
    build_realtime_url,
    open_websocket,
)

__all__ = [
    "CONNECT_TIMEOUT_SECONDS",
    "HEARTBEAT_INTERVAL_SECONDS",
    "MAX_RECONNECT_ATTEMPTS",
    "RECONNECT_BASE_DELAY_SECONDS",
    "ConnectorState",
    "RealtimeConnector",
    "ListenerRegistry",
    "WILDCARD",
    "LoopScheduler",
    "Scheduler",
    "TimerHandle",
    "ClientTransport",
    "TransportFactory",
    "WebsocketsTransport",
    "build_realtime_url",
    "open_websocket",
]
