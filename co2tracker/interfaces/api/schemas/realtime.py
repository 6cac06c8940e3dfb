"""Pydantic models describing realtime endpoint responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RealtimeStatusRead(BaseModel):
    """Realtime presence of the authenticated user."""

    user_id: str
    connections: int = Field(..., ge=0, description="Open websocket sessions")
    topics: list[str] = Field(default_factory=list, description="Topics across all sessions")


__all__ = ["RealtimeStatusRead"]
