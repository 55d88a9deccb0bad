from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from core.errors import NotFound, PermissionDenied
from core.models import ProgressLog, Workout
from core.services.catalog import Actor, can_view_full
from core.timeutil import utcnow
from core.validators import ProgressLogInput

logger = logging.getLogger(__name__)


@dataclass
class ProgressSummary:
    total_sessions: int
    total_minutes: int
    average_difficulty: float | None
    current_streak: int
    sessions_last_7_days: int
    favourite_category: str | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_streak(log_dates: list[date], today: date | None = None) -> int:
    """Consecutive training days ending today (or yesterday, so an unfinished day does not break it)."""
    if not log_dates:
        return 0
    today = today or utcnow().date()
    unique_dates = sorted(set(log_dates), reverse=True)
    if (today - unique_dates[0]).days > 1:
        return 0
    streak = 1
    for i in range(1, len(unique_dates)):
        if (unique_dates[i - 1] - unique_dates[i]).days == 1:
            streak += 1
        else:
            break
    return streak


def summarize_progress(logs: list[ProgressLog], today: date | None = None) -> ProgressSummary:
    today = today or utcnow().date()
    week_start = today - timedelta(days=6)
    difficulties = [log.difficulty for log in logs if log.difficulty is not None]
    categories = Counter(
        log.workout.category.name for log in logs if log.workout is not None and log.workout.category is not None
    )
    return ProgressSummary(
        total_sessions=len(logs),
        total_minutes=sum(log.duration or 0 for log in logs),
        average_difficulty=round(sum(difficulties) / len(difficulties), 1) if difficulties else None,
        current_streak=compute_streak([log.completed_at.date() for log in logs], today=today),
        sessions_last_7_days=sum(1 for log in logs if week_start <= log.completed_at.date() <= today),
        favourite_category=categories.most_common(1)[0][0] if categories else None,
    )


def log_to_dict(log: ProgressLog) -> dict[str, Any]:
    return {
        "id": log.id,
        "workout_id": log.workout_id,
        "workout_title": log.workout.title if log.workout else None,
        "completed_at": log.completed_at,
        "duration": log.duration,
        "notes": log.notes,
        "difficulty": log.difficulty,
    }


def log_workout(s: Session, actor: Actor, body: ProgressLogInput) -> ProgressLog:
    workout = s.get(Workout, body.workout_id)
    if workout is None or not workout.is_published:
        raise NotFound("Workout not found")
    if not can_view_full(workout, actor):
        raise PermissionDenied("An active subscription is required for this workout", code="SUBSCRIPTION_REQUIRED")
    log = ProgressLog(
        user_id=actor.id,
        workout_id=workout.id,
        completed_at=body.completed_at,
        duration=body.duration or workout.estimated_duration,
        notes=body.notes,
        difficulty=body.difficulty,
    )
    s.add(log)
    s.flush()
    logger.info("workout_completed", extra={"user_id": actor.id, "workout_id": workout.id})
    return log


def list_logs(s: Session, user_id: int, limit: int | None = None) -> list[ProgressLog]:
    q = (
        select(ProgressLog)
        .where(ProgressLog.user_id == user_id)
        .options(selectinload(ProgressLog.workout))
        .order_by(ProgressLog.completed_at.desc(), ProgressLog.id.desc())
    )
    if limit:
        q = q.limit(limit)
    return list(s.execute(q).scalars().all())


def progress_summary(s: Session, user_id: int, today: date | None = None) -> ProgressSummary:
    logs = list(
        s.execute(
            select(ProgressLog)
            .where(ProgressLog.user_id == user_id)
            .options(selectinload(ProgressLog.workout).selectinload(Workout.category))
        )
        .scalars()
        .all()
    )
    return summarize_progress(logs, today=today)


def delete_log(s: Session, actor: Actor, log_id: int) -> None:
    log = s.get(ProgressLog, log_id)
    if log is None or log.user_id != actor.id:
        raise NotFound("Progress log not found")
    s.delete(log)
    s.flush()
