"""Realtime events emitted after CO2 data and account changes."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from co2tracker.domain.entities import (
    EVENT_ACCOUNT_DELETED,
    EVENT_CO2_DATA_ADDED,
    EVENT_CO2_DATA_UPDATED,
    EVENT_DATA_DELETED,
    EVENT_LEADERBOARD_UPDATED,
    EVENT_PASSWORD_UPDATED,
    Identity,
)
from co2tracker.infrastructure.realtime import RealtimeEventPublisher


def notify_co2_data_added(
    publisher: RealtimeEventPublisher, identity: Identity, entry: Mapping[str, Any]
) -> None:
    """Tell the owner's sessions that a daily CO2 entry was logged."""

    publisher.broadcast_to_user(
        identity, EVENT_CO2_DATA_ADDED, {"email": identity.email, "data": dict(entry)}
    )


def notify_co2_data_updated(
    publisher: RealtimeEventPublisher, identity: Identity, entry: Mapping[str, Any]
) -> None:
    publisher.broadcast_to_user(
        identity, EVENT_CO2_DATA_UPDATED, {"email": identity.email, "data": dict(entry)}
    )


def notify_data_deleted(
    publisher: RealtimeEventPublisher, identity: Identity, deleted_count: int
) -> None:
    publisher.broadcast_to_user(
        identity,
        EVENT_DATA_DELETED,
        {"email": identity.email, "deletedCount": deleted_count},
    )


def notify_password_updated(publisher: RealtimeEventPublisher, identity: Identity) -> None:
    publisher.broadcast_to_user(
        identity,
        EVENT_PASSWORD_UPDATED,
        {"message": "Your password was changed"},
    )


def notify_account_deleted(publisher: RealtimeEventPublisher, identity: Identity) -> None:
    """Warn the user's remaining sessions that the account no longer exists."""

    publisher.broadcast_to_user(
        identity,
        EVENT_ACCOUNT_DELETED,
        {"message": "Your account was deleted", "userId": identity.user_id},
    )


def notify_leaderboard_updated(
    publisher: RealtimeEventPublisher, rankings: Iterable[Mapping[str, Any]]
) -> None:
    """Push the refreshed leaderboard to every connected user."""

    entries = [dict(ranking) for ranking in rankings]
    publisher.broadcast_to_all(EVENT_LEADERBOARD_UPDATED, {"leaderboard": entries})


__all__ = [
    "notify_co2_data_added",
    "notify_co2_data_updated",
    "notify_data_deleted",
    "notify_password_updated",
    "notify_account_deleted",
    "notify_leaderboard_updated",
]
