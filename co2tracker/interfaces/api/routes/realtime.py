"""Websocket endpoint and status route for realtime notifications."""

from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket

from co2tracker.domain.entities import Identity
from co2tracker.infrastructure.realtime import RealtimeDispatcher
from co2tracker.interfaces.api.dependencies import (
    get_current_identity,
    get_realtime_dispatcher,
)
from co2tracker.interfaces.api.schemas import RealtimeStatusRead

router = APIRouter(tags=["realtime"])


@router.websocket("")
async def realtime_websocket(
    websocket: WebSocket,
    dispatcher: RealtimeDispatcher = Depends(get_realtime_dispatcher),
) -> None:
    """Authenticate with ``?token=`` and stream events to the user."""

    await dispatcher.handle(websocket)


@router.get("/status", response_model=RealtimeStatusRead)
async def realtime_status(
    identity: Identity = Depends(get_current_identity),
    dispatcher: RealtimeDispatcher = Depends(get_realtime_dispatcher),
) -> RealtimeStatusRead:
    """Return how many realtime sessions the caller has open."""

    connections = dispatcher.registry.connections_for(identity)
    topics: set[str] = set()
    for connection in connections:
        topics |= dispatcher.subscriptions.topics_for(connection)
    return RealtimeStatusRead(
        user_id=identity.user_id,
        connections=len(connections),
        topics=sorted(topics),
    )
