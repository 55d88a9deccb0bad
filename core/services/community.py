"""Community service layer.

Threaded workout comments with soft-delete moderation, and one-per-user
workout ratings with summary statistics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from core.errors import NotFound, PermissionDenied, ValidationFailed
from core.models import Comment, Rating, Workout
from core.services.catalog import Actor, can_view_full
from core.validators import CommentCreateInput, CommentUpdateInput, RatingInput

logger = logging.getLogger(__name__)

DELETED_PLACEHOLDER = "[deleted]"


def _visible_workout(s: Session, workout_id: int, actor: Actor | None) -> Workout:
    workout = s.get(Workout, workout_id)
    if workout is None:
        raise NotFound("Workout not found")
    privileged = actor is not None and (workout.coach_id == actor.id or actor.role == "ADMIN")
    if not workout.is_published and not privileged:
        raise NotFound("Workout not found")
    if not can_view_full(workout, actor):
        raise PermissionDenied("An active subscription is required for this workout", code="SUBSCRIPTION_REQUIRED")
    return workout


# ── Comments ─────────────────────────────────────────────────────────────

@dataclass
class CommentNode:
    id: int
    workout_id: int
    parent_id: int | None
    author_id: int
    author_name: str | None
    content: str
    is_deleted: bool
    created_at: datetime
    updated_at: datetime
    replies: list["CommentNode"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workout_id": self.workout_id,
            "parent_id": self.parent_id,
            "author": {"id": self.author_id, "name": self.author_name},
            "content": self.content,
            "is_deleted": self.is_deleted,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "replies": [r.to_dict() for r in self.replies],
        }


def build_comment_tree(comments: list[Comment]) -> list[CommentNode]:
    """Nest comments under their parents, oldest first at every level.

    Replies whose parent is missing from ``comments`` are promoted to the root.
    """
    nodes = {
        c.id: CommentNode(
            id=c.id,
            workout_id=c.workout_id,
            parent_id=c.parent_id,
            author_id=c.user_id,
            author_name=c.author.name if c.author else None,
            content=DELETED_PLACEHOLDER if c.is_deleted else c.content,
            is_deleted=c.is_deleted,
            created_at=c.created_at,
            updated_at=c.updated_at,
        )
        for c in sorted(comments, key=lambda c: (c.created_at, c.id))
    }
    roots: list[CommentNode] = []
    for node in nodes.values():
        parent = nodes.get(node.parent_id) if node.parent_id is not None else None
        if parent is None:
            roots.append(node)
        else:
            parent.replies.append(node)
    return roots


def add_comment(s: Session, actor: Actor, body: CommentCreateInput) -> Comment:
    workout = _visible_workout(s, body.workout_id, actor)
    if body.parent_id is not None:
        parent = s.get(Comment, body.parent_id)
        if parent is None or parent.workout_id != workout.id:
            raise ValidationFailed("Parent comment does not belong to this workout")
    comment = Comment(
        workout_id=workout.id,
        user_id=actor.id,
        parent_id=body.parent_id,
        content=body.content.strip(),
        is_deleted=False,
    )
    s.add(comment)
    s.flush()
    return comment


def edit_comment(s: Session, actor: Actor, comment_id: int, body: CommentUpdateInput) -> Comment:
    comment = s.get(Comment, comment_id)
    if comment is None or comment.is_deleted:
        raise NotFound("Comment not found")
    if comment.user_id != actor.id:
        raise PermissionDenied("You can only edit your own comments")
    comment.content = body.content.strip()
    s.flush()
    return comment


def delete_comment(s: Session, actor: Actor, comment_id: int) -> Comment:
    comment = s.get(Comment, comment_id)
    if comment is None or comment.is_deleted:
        raise NotFound("Comment not found")
    if comment.user_id != actor.id and actor.role != "ADMIN":
        raise PermissionDenied("You can only delete your own comments")
    comment.is_deleted = True
    comment.content = DELETED_PLACEHOLDER
    s.flush()
    logger.info("comment_deleted", extra={"comment_id": comment.id, "actor_id": actor.id})
    return comment


def list_comments(s: Session, workout_id: int, viewer: Actor | None = None) -> list[CommentNode]:
    _visible_workout(s, workout_id, viewer)
    rows = (
        s.execute(
            select(Comment)
            .where(Comment.workout_id == workout_id)
            .options(selectinload(Comment.author))
            .order_by(Comment.created_at, Comment.id)
        )
        .scalars()
        .all()
    )
    return build_comment_tree(list(rows))


# ── Ratings ──────────────────────────────────────────────────────────────

@dataclass
class RatingSummary:
    workout_id: int
    average: float | None
    count: int
    histogram: dict[int, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "workout_id": self.workout_id,
            "average": self.average,
            "count": self.count,
            "histogram": {str(k): v for k, v in self.histogram.items()},
        }


def summarize_ratings(workout_id: int, values: list[int]) -> RatingSummary:
    histogram = {star: 0 for star in range(1, 6)}
    for v in values:
        histogram[v] = histogram.get(v, 0) + 1
    average = round(sum(values) / len(values), 2) if values else None
    return RatingSummary(workout_id=workout_id, average=average, count=len(values), histogram=histogram)


def rate_workout(s: Session, actor: Actor, body: RatingInput) -> Rating:
    workout = _visible_workout(s, body.workout_id, actor)
    if workout.coach_id == actor.id:
        raise PermissionDenied("You cannot rate your own workout")
    rating = s.execute(
        select(Rating).where(Rating.user_id == actor.id, Rating.workout_id == workout.id)
    ).scalar_one_or_none()
    if rating is None:
        rating = Rating(user_id=actor.id, workout_id=workout.id, rating=body.rating)
        s.add(rating)
    else:
        rating.rating = body.rating
    s.flush()
    return rating


def rating_summary(s: Session, workout_id: int, viewer: Actor | None = None) -> RatingSummary:
    _visible_workout(s, workout_id, viewer)
    values = s.execute(select(Rating.rating).where(Rating.workout_id == workout_id)).scalars().all()
    return summarize_ratings(workout_id, list(values))


def user_rating(s: Session, user_id: int, workout_id: int) -> int | None:
    return s.execute(
        select(Rating.rating).where(Rating.user_id == user_id, Rating.workout_id == workout_id)
    ).scalar_one_or_none()
