"""Read models behind the admin, coach and athlete dashboards."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from core.models import Comment, ProgressLog, Rating, Subscription, User, Workout
from core.services.accounts import user_to_dict
from core.services.billing import PLANS, subscription_to_dict
from core.services.catalog import rating_stats, workout_summary
from core.services.progress import list_logs, log_to_dict, progress_summary
from core.timeutil import utcnow


def admin_overview(s: Session, recent: int = 5) -> dict[str, Any]:
    role_counts = dict(s.execute(select(User.role, func.count(User.id)).group_by(User.role)).all())
    active_users = s.execute(select(func.count(User.id)).where(User.is_active.is_(True))).scalar_one()
    suspended_users = s.execute(select(func.count(User.id)).where(User.is_active.is_(False))).scalar_one()

    now = utcnow()
    live = (
        Subscription.status.in_(("ACTIVE", "TRIALING")),
        (Subscription.current_period_end.is_(None)) | (Subscription.current_period_end > now),
    )
    by_plan = dict(
        s.execute(select(Subscription.plan, func.count(Subscription.id)).where(*live).group_by(Subscription.plan)).all()
    )
    revenue = sum(PLANS[plan].price * count for plan, count in by_plan.items() if plan in PLANS)

    published = s.execute(select(func.count(Workout.id)).where(Workout.is_published.is_(True))).scalar_one()
    drafts = s.execute(select(func.count(Workout.id)).where(Workout.is_published.is_(False))).scalar_one()
    recent_users = (
        s.execute(select(User).order_by(User.created_at.desc(), User.id.desc()).limit(recent)).scalars().all()
    )
    return {
        "users": {
            "total": sum(role_counts.values()),
            "by_role": {role: int(role_counts.get(role, 0)) for role in ("ADMIN", "COACH", "ATHLETE")},
            "active": active_users,
            "suspended": suspended_users,
        },
        "subscriptions": {
            "active": sum(by_plan.values()),
            "by_plan": {plan: int(by_plan.get(plan, 0)) for plan in PLANS},
            "estimated_monthly_revenue": round(revenue, 2),
        },
        "content": {"published_workouts": published, "draft_workouts": drafts},
        "recent_users": [user_to_dict(u) for u in recent_users],
    }


def coach_overview(s: Session, coach_id: int) -> dict[str, Any]:
    workouts = (
        s.execute(
            select(Workout)
            .where(Workout.coach_id == coach_id)
            .options(selectinload(Workout.tags), selectinload(Workout.category))
            .order_by(Workout.created_at.desc(), Workout.id.desc())
        )
        .scalars()
        .all()
    )
    ids = [w.id for w in workouts]
    stats = rating_stats(s, ids)
    comment_counts: dict[int, int] = {}
    followers = 0
    if ids:
        comment_counts = dict(
            s.execute(
                select(Comment.workout_id, func.count(Comment.id))
                .where(Comment.workout_id.in_(ids), Comment.is_deleted.is_(False))
                .group_by(Comment.workout_id)
            ).all()
        )
        followers = s.execute(
            select(func.count(func.distinct(ProgressLog.user_id))).where(ProgressLog.workout_id.in_(ids))
        ).scalar_one()

    items = []
    for w in workouts:
        item = workout_summary(w, stats[w.id])
        item["comment_count"] = int(comment_counts.get(w.id, 0))
        items.append(item)

    rated = [st for st in stats.values() if st[1]]
    total_ratings = sum(count for _, count in rated)
    average = round(sum(avg * count for avg, count in rated) / total_ratings, 2) if total_ratings else None
    return {
        "workouts": items,
        "totals": {
            "workouts": len(workouts),
            "published": sum(1 for w in workouts if w.is_published),
            "views": sum(w.view_count or 0 for w in workouts),
            "rating_average": average,
            "rating_count": total_ratings,
            "comments": sum(comment_counts.values()),
            "followers": followers,
        },
    }


def recommended_workouts(s: Session, user_id: int, limit: int = 5) -> list[dict[str, Any]]:
    """Published workouts the athlete has not completed yet, best rated first."""
    done = select(ProgressLog.workout_id).where(ProgressLog.user_id == user_id)
    avg_rating = (
        select(Rating.workout_id, func.avg(Rating.rating).label("avg"))
        .group_by(Rating.workout_id)
        .subquery()
    )
    rows = (
        s.execute(
            select(Workout)
            .outerjoin(avg_rating, avg_rating.c.workout_id == Workout.id)
            .where(Workout.is_published.is_(True), Workout.id.not_in(done))
            .options(selectinload(Workout.tags), selectinload(Workout.category), selectinload(Workout.coach))
            .order_by(func.coalesce(avg_rating.c.avg, 0).desc(), Workout.view_count.desc(), Workout.id.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )
    stats = rating_stats(s, [w.id for w in rows])
    return [workout_summary(w, stats[w.id]) for w in rows]


def athlete_overview(s: Session, user_id: int) -> dict[str, Any]:
    sub = s.execute(select(Subscription).where(Subscription.user_id == user_id)).scalar_one_or_none()
    return {
        "subscription": subscription_to_dict(sub),
        "progress": progress_summary(s, user_id).to_dict(),
        "recent_logs": [log_to_dict(log) for log in list_logs(s, user_id, limit=5)],
        "recommended": recommended_workouts(s, user_id),
    }
