"""Tests for the application broadcast helpers."""

from __future__ import annotations

from co2tracker.application.use_cases.realtime_notifications import (
    notify_account_deleted,
    notify_co2_data_added,
    notify_co2_data_updated,
    notify_data_deleted,
    notify_leaderboard_updated,
    notify_password_updated,
)


class RecordingPublisher:
    def __init__(self) -> None:
        self.user_events: list[tuple] = []
        self.global_events: list[tuple] = []

    def broadcast_to_user(self, identity, event_type, payload=None) -> None:
        self.user_events.append((identity, event_type, payload))

    def broadcast_to_all(self, event_type, payload=None) -> None:
        self.global_events.append((event_type, payload))


def test_co2_data_events_target_the_owner(alice) -> None:
    publisher = RecordingPublisher()
    entry = {"utcDate": "2024-03-04", "totalCO2": 9.5}

    notify_co2_data_added(publisher, alice, entry)
    notify_co2_data_updated(publisher, alice, entry)
    notify_data_deleted(publisher, alice, 3)

    assert publisher.user_events == [
        (alice, "co2-data-added", {"email": alice.email, "data": entry}),
        (alice, "co2-data-updated", {"email": alice.email, "data": entry}),
        (alice, "data-deleted", {"email": alice.email, "deletedCount": 3}),
    ]
    assert publisher.global_events == []


def test_account_events_target_the_owner(alice) -> None:
    publisher = RecordingPublisher()

    notify_password_updated(publisher, alice)
    notify_account_deleted(publisher, alice)

    assert [event_type for _, event_type, _ in publisher.user_events] == [
        "password-updated",
        "account-deleted",
    ]
    assert publisher.user_events[1][2]["userId"] == alice.user_id


def test_leaderboard_update_goes_to_everyone() -> None:
    publisher = RecordingPublisher()
    rankings = ({"username": "alice", "highestStreak": 6}, {"username": "bob", "highestStreak": 2})

    notify_leaderboard_updated(publisher, rankings)

    assert publisher.global_events == [
        ("leaderboard-updated", {"leaderboard": [dict(item) for item in rankings]})
    ]
    assert publisher.user_events == []
