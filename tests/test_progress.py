"""Workout completion logging and progress summaries."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from core.errors import NotFound, PermissionDenied
from core.services import progress
from core.timeutil import utcnow
from core.validators import ProgressLogInput
from tests.factories import FakeActor, make_category, make_user, make_workout

TODAY = date(2026, 3, 10)


class TestStreak:
    def test_empty(self):
        assert progress.compute_streak([], TODAY) == 0

    def test_consecutive_days_ending_today(self):
        days = [TODAY, TODAY - timedelta(days=1), TODAY - timedelta(days=2), TODAY - timedelta(days=4)]
        assert progress.compute_streak(days, TODAY) == 3

    def test_yesterday_keeps_streak_alive(self):
        assert progress.compute_streak([TODAY - timedelta(days=1), TODAY - timedelta(days=2)], TODAY) == 2

    def test_gap_before_today_breaks_streak(self):
        assert progress.compute_streak([TODAY - timedelta(days=2)], TODAY) == 0

    def test_duplicate_days_count_once(self):
        assert progress.compute_streak([TODAY, TODAY, TODAY - timedelta(days=1)], TODAY) == 2


@pytest.fixture
def setup(db):
    coach = make_user(db, "coach@example.com", role="COACH")
    athlete = make_user(db, "a@example.com")
    category = make_category(db, "Cardio")
    return {
        "db": db,
        "athlete": FakeActor(id=athlete.id),
        "free": make_workout(db, coach, category, "Easy Run", estimated_duration=35),
        "premium": make_workout(db, coach, category, "Tempo", public=False),
        "draft": make_workout(db, coach, category, "Draft", published=False),
    }


def test_log_defaults_duration_to_estimate(setup):
    log = progress.log_workout(setup["db"], setup["athlete"], ProgressLogInput(workout_id=setup["free"].id, difficulty=6))
    assert log.duration == 35
    assert log.user_id == setup["athlete"].id


def test_cannot_log_premium_without_subscription(setup):
    db = setup["db"]
    with pytest.raises(PermissionDenied):
        progress.log_workout(db, setup["athlete"], ProgressLogInput(workout_id=setup["premium"].id))
    subscriber = FakeActor(id=setup["athlete"].id, has_subscription=True)
    assert progress.log_workout(db, subscriber, ProgressLogInput(workout_id=setup["premium"].id)).id


def test_cannot_log_unpublished(setup):
    with pytest.raises(NotFound):
        progress.log_workout(setup["db"], setup["athlete"], ProgressLogInput(workout_id=setup["draft"].id))


def test_summary_and_listing(setup):
    db, athlete = setup["db"], setup["athlete"]
    now = utcnow()
    for days_ago, difficulty in ((0, 4), (1, 6), (10, None)):
        progress.log_workout(
            db,
            athlete,
            ProgressLogInput(
                workout_id=setup["free"].id,
                completed_at=now - timedelta(days=days_ago),
                duration=30,
                difficulty=difficulty,
            ),
        )
    summary = progress.progress_summary(db, athlete.id, today=now.date())
    assert summary.total_sessions == 3
    assert summary.total_minutes == 90
    assert summary.average_difficulty == 5.0
    assert summary.current_streak == 2
    assert summary.sessions_last_7_days == 2
    assert summary.favourite_category == "Cardio"

    logs = progress.list_logs(db, athlete.id, limit=2)
    assert len(logs) == 2
    assert logs[0].completed_at >= logs[1].completed_at
    assert progress.log_to_dict(logs[0])["workout_title"] == "Easy Run"


def test_delete_only_own_log(setup):
    db = setup["db"]
    log = progress.log_workout(db, setup["athlete"], ProgressLogInput(workout_id=setup["free"].id))
    with pytest.raises(NotFound):
        progress.delete_log(db, FakeActor(id=9999), log.id)
    progress.delete_log(db, setup["athlete"], log.id)
    assert progress.list_logs(db, setup["athlete"].id) == []


def test_summarize_progress_without_logs():
    summary = progress.summarize_progress([], today=TODAY)
    assert summary.to_dict() == {
        "total_sessions": 0,
        "total_minutes": 0,
        "average_difficulty": None,
        "current_streak": 0,
        "sessions_last_7_days": 0,
        "favourite_category": None,
    }


def test_completed_at_timezone_is_normalised():
    aware = datetime(2026, 1, 1, 12, 0).astimezone()
    body = ProgressLogInput(workout_id=1, completed_at=aware)
    assert body.completed_at.tzinfo is None
