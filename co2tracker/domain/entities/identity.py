"""Domain entity describing an authenticated realtime client."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """User reference extracted from a verified access token."""

    user_id: str
    email: str


__all__ = ["Identity"]
