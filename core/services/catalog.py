"""Workout catalog: facets (categories, equipment, tags), exercises and workouts.

Visibility rules for workouts:
- unpublished workouts are only visible to their coach and admins
- non-public (premium) workouts show full content to subscribers, their
  coach and admins; everyone else gets a locked preview
"""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Any, Protocol

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from core.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from core.models import Category, Equipment, Exercise, Rating, Tag, User, Workout, WorkoutExercise, workout_tags
from core.validators import (
    CategoryCreateInput,
    EquipmentCreateInput,
    ExerciseCreateInput,
    PaginationInput,
    TagCreateInput,
    WorkoutCreateInput,
    WorkoutExerciseInput,
    WorkoutFilterInput,
    WorkoutUpdateInput,
)

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


class Actor(Protocol):
    id: int
    role: str
    has_subscription: bool


def slugify(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = _SLUG_STRIP.sub("-", normalized.lower()).strip("-")
    return slug or "item"


def _workout_slug(title: str) -> str:
    # Digit-only keys address workouts by id.
    base = slugify(title)
    return f"workout-{base}" if base.isdigit() else base


def _unique_slug(s: Session, model, base: str, exclude_id: int | None = None) -> str:
    slug = base
    suffix = 1
    while True:
        q = select(model.id).where(model.slug == slug)
        if exclude_id is not None:
            q = q.where(model.id != exclude_id)
        if s.execute(q).scalar_one_or_none() is None:
            return slug
        suffix += 1
        slug = f"{base}-{suffix}"


def _is_admin(actor: Actor | None) -> bool:
    return actor is not None and actor.role == "ADMIN"


# ── Categories ───────────────────────────────────────────────────────────

def category_to_dict(c: Category) -> dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "description": c.description,
        "image_url": c.image_url,
        "is_active": c.is_active,
    }


def list_categories(s: Session, include_inactive: bool = False) -> list[Category]:
    q = select(Category).order_by(Category.name)
    if not include_inactive:
        q = q.where(Category.is_active.is_(True))
    return list(s.execute(q).scalars().all())


def create_category(s: Session, body: CategoryCreateInput) -> Category:
    name = body.name.strip()
    if s.execute(select(Category.id).where(func.lower(Category.name) == name.lower())).scalar_one_or_none():
        raise Conflict("Category with this name already exists")
    category = Category(
        name=name,
        slug=_unique_slug(s, Category, slugify(name)),
        description=body.description,
        image_url=body.image_url,
        is_active=True,
    )
    s.add(category)
    s.flush()
    return category


def update_category(s: Session, category_id: int, body: CategoryCreateInput) -> Category:
    category = s.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    name = body.name.strip()
    clash = s.execute(
        select(Category.id).where(func.lower(Category.name) == name.lower(), Category.id != category_id)
    ).scalar_one_or_none()
    if clash:
        raise Conflict("Category with this name already exists")
    if name != category.name:
        category.name = name
        category.slug = _unique_slug(s, Category, slugify(name), exclude_id=category.id)
    category.description = body.description
    category.image_url = body.image_url
    s.flush()
    return category


def set_category_active(s: Session, category_id: int, active: bool) -> Category:
    category = s.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    category.is_active = active
    s.flush()
    return category


# ── Equipment ────────────────────────────────────────────────────────────

def equipment_to_dict(e: Equipment) -> dict[str, Any]:
    return {"id": e.id, "name": e.name, "description": e.description, "image_url": e.image_url}


def list_equipment(s: Session) -> list[Equipment]:
    return list(s.execute(select(Equipment).order_by(Equipment.name)).scalars().all())


def create_equipment(s: Session, body: EquipmentCreateInput) -> Equipment:
    name = body.name.strip()
    if s.execute(select(Equipment.id).where(func.lower(Equipment.name) == name.lower())).scalar_one_or_none():
        raise Conflict("Equipment with this name already exists")
    item = Equipment(name=name, description=body.description, image_url=body.image_url)
    s.add(item)
    s.flush()
    return item


def update_equipment(s: Session, equipment_id: int, body: EquipmentCreateInput) -> Equipment:
    item = s.get(Equipment, equipment_id)
    if item is None:
        raise NotFound("Equipment not found")
    name = body.name.strip()
    clash = s.execute(
        select(Equipment.id).where(func.lower(Equipment.name) == name.lower(), Equipment.id != equipment_id)
    ).scalar_one_or_none()
    if clash:
        raise Conflict("Equipment with this name already exists")
    item.name = name
    item.description = body.description
    item.image_url = body.image_url
    s.flush()
    return item


def delete_equipment(s: Session, equipment_id: int) -> None:
    item = s.get(Equipment, equipment_id)
    if item is None:
        raise NotFound("Equipment not found")
    s.delete(item)
    s.flush()


# ── Tags ─────────────────────────────────────────────────────────────────

def tag_to_dict(t: Tag) -> dict[str, Any]:
    return {"id": t.id, "name": t.name, "type": t.type, "description": t.description}


def list_tags(s: Session, tag_type: str | None = None) -> list[Tag]:
    q = select(Tag).order_by(Tag.name)
    if tag_type:
        q = q.where(Tag.type == tag_type)
    return list(s.execute(q).scalars().all())


def create_tag(s: Session, body: TagCreateInput) -> Tag:
    name = body.name.strip()
    if s.execute(select(Tag.id).where(func.lower(Tag.name) == name.lower())).scalar_one_or_none():
        raise Conflict("Tag with this name already exists")
    tag = Tag(name=name, type=body.type, description=body.description)
    s.add(tag)
    s.flush()
    return tag


def delete_tag(s: Session, tag_id: int) -> None:
    tag = s.get(Tag, tag_id)
    if tag is None:
        raise NotFound("Tag not found")
    s.delete(tag)
    s.flush()


# ── Exercises ────────────────────────────────────────────────────────────

def exercise_to_dict(e: Exercise) -> dict[str, Any]:
    return {
        "id": e.id,
        "name": e.name,
        "description": e.description,
        "instructions": e.instructions,
        "video_url": e.video_url,
        "image_url": e.image_url,
        "muscle_groups": list(e.muscle_groups or []),
        "equipment": equipment_to_dict(e.equipment) if e.equipment else None,
        "difficulty": e.difficulty,
        "is_public": e.is_public,
        "created_by": e.created_by,
    }


def create_exercise(s: Session, actor: Actor, body: ExerciseCreateInput) -> Exercise:
    if actor.role not in {"COACH", "ADMIN"}:
        raise PermissionDenied("Only coaches can create exercises", code="FORBIDDEN_ROLE")
    if body.equipment_id is not None and s.get(Equipment, body.equipment_id) is None:
        raise ValidationFailed("Equipment not found")
    exercise = Exercise(
        name=body.name.strip(),
        description=body.description,
        instructions=body.instructions,
        video_url=body.video_url,
        image_url=body.image_url,
        muscle_groups=[m.strip() for m in body.muscle_groups if m.strip()],
        equipment_id=body.equipment_id,
        difficulty=body.difficulty,
        created_by=actor.id,
        is_public=body.is_public,
    )
    s.add(exercise)
    s.flush()
    return exercise


def list_exercises(s: Session, actor: Actor | None = None, search: str | None = None) -> list[Exercise]:
    q = select(Exercise).options(selectinload(Exercise.equipment)).order_by(Exercise.name)
    if actor is None:
        q = q.where(Exercise.is_public.is_(True))
    elif not _is_admin(actor):
        q = q.where(or_(Exercise.is_public.is_(True), Exercise.created_by == actor.id))
    if search:
        q = q.where(Exercise.name.ilike(f"%{search}%"))
    return list(s.execute(q).scalars().all())


# ── Workouts: authoring ──────────────────────────────────────────────────

def _resolve_tags(s: Session, tag_ids: list[int]) -> list[Tag]:
    if not tag_ids:
        return []
    ids = sorted(set(tag_ids))
    tags = list(s.execute(select(Tag).where(Tag.id.in_(ids))).scalars().all())
    if len(tags) != len(ids):
        raise ValidationFailed("One or more tags do not exist")
    return tags


def _require_active_category(s: Session, category_id: int) -> Category:
    category = s.get(Category, category_id)
    if category is None or not category.is_active:
        raise ValidationFailed("Category not found")
    return category


def create_workout(s: Session, actor: Actor, body: WorkoutCreateInput) -> Workout:
    if actor.role not in {"COACH", "ADMIN"}:
        raise PermissionDenied("Only coaches can create workouts", code="FORBIDDEN_ROLE")
    _require_active_category(s, body.category_id)
    title = body.title.strip()
    workout = Workout(
        title=title,
        slug=_unique_slug(s, Workout, _workout_slug(title)),
        description=body.description,
        instructions=body.instructions,
        image_url=body.image_url,
        video_url=body.video_url,
        estimated_duration=body.estimated_duration,
        difficulty=body.difficulty,
        coach_id=actor.id,
        category_id=body.category_id,
        is_published=body.is_published,
        is_public=body.is_public,
        view_count=0,
    )
    workout.tags = _resolve_tags(s, body.tag_ids)
    s.add(workout)
    s.flush()
    logger.info("workout_created", extra={"workout_id": workout.id, "coach_id": actor.id})
    return workout


def get_owned_workout(s: Session, actor: Actor, workout_id: int) -> Workout:
    workout = s.get(Workout, workout_id)
    if workout is None:
        raise NotFound("Workout not found")
    if workout.coach_id != actor.id and not _is_admin(actor):
        raise PermissionDenied("You can only manage your own workouts")
    return workout


def update_workout(s: Session, actor: Actor, workout_id: int, body: WorkoutUpdateInput) -> Workout:
    workout = get_owned_workout(s, actor, workout_id)
    changes = body.model_dump(exclude_unset=True)
    if "category_id" in changes and changes["category_id"] is not None:
        _require_active_category(s, changes["category_id"])
    if "tag_ids" in changes:
        workout.tags = _resolve_tags(s, changes.pop("tag_ids") or [])
    title = changes.pop("title", None)
    if title and title.strip() != workout.title:
        workout.title = title.strip()
        workout.slug = _unique_slug(s, Workout, _workout_slug(workout.title), exclude_id=workout.id)
    for key, value in changes.items():
        if key in {"difficulty", "category_id", "is_published", "is_public"} and value is None:
            continue
        setattr(workout, key, value)
    s.flush()
    return workout


def set_workout_published(s: Session, actor: Actor, workout_id: int, published: bool) -> Workout:
    workout = get_owned_workout(s, actor, workout_id)
    workout.is_published = published
    s.flush()
    logger.info("workout_publish_changed", extra={"workout_id": workout.id, "published": published})
    return workout


def delete_workout(s: Session, actor: Actor, workout_id: int) -> None:
    workout = get_owned_workout(s, actor, workout_id)
    s.delete(workout)
    s.flush()
    logger.info("workout_deleted", extra={"workout_id": workout_id, "actor_id": actor.id})


def add_workout_exercise(s: Session, actor: Actor, workout_id: int, body: WorkoutExerciseInput) -> WorkoutExercise:
    workout = get_owned_workout(s, actor, workout_id)
    exercise = s.get(Exercise, body.exercise_id)
    if exercise is None or (not exercise.is_public and exercise.created_by != actor.id and not _is_admin(actor)):
        raise ValidationFailed("Exercise not found")
    if any(item.order == body.order for item in workout.exercises):
        raise Conflict(f"Position {body.order} is already used in this workout")
    item = WorkoutExercise(
        workout_id=workout.id,
        exercise_id=exercise.id,
        order=body.order,
        sets=body.sets,
        reps=body.reps,
        weight=body.weight,
        rest_time=body.rest_time,
        notes=body.notes,
    )
    workout.exercises.append(item)
    s.flush()
    return item


def remove_workout_exercise(s: Session, actor: Actor, workout_id: int, item_id: int) -> None:
    workout = get_owned_workout(s, actor, workout_id)
    item = next((we for we in workout.exercises if we.id == item_id), None)
    if item is None:
        raise NotFound("Workout exercise not found")
    workout.exercises.remove(item)
    s.flush()


def reorder_workout_exercises(s: Session, actor: Actor, workout_id: int, item_ids: list[int]) -> list[WorkoutExercise]:
    """Renumber exercises 1..n following ``item_ids``, which must name every exercise once."""
    workout = get_owned_workout(s, actor, workout_id)
    by_id = {we.id: we for we in workout.exercises}
    if sorted(item_ids) != sorted(by_id):
        raise ValidationFailed("Reorder must list every exercise of the workout exactly once")
    # Park on negative positions first so the unique (workout, order) index never collides.
    for idx, item_id in enumerate(item_ids, start=1):
        by_id[item_id].order = -idx
    s.flush()
    for idx, item_id in enumerate(item_ids, start=1):
        by_id[item_id].order = idx
    s.flush()
    s.refresh(workout)
    return list(workout.exercises)


# ── Workouts: browsing ───────────────────────────────────────────────────

def rating_stats(s: Session, workout_ids: list[int]) -> dict[int, tuple[float | None, int]]:
    if not workout_ids:
        return {}
    rows = s.execute(
        select(Rating.workout_id, func.avg(Rating.rating), func.count(Rating.id))
        .where(Rating.workout_id.in_(workout_ids))
        .group_by(Rating.workout_id)
    ).all()
    stats = {wid: (round(float(avg), 2) if avg is not None else None, int(cnt)) for wid, avg, cnt in rows}
    return {wid: stats.get(wid, (None, 0)) for wid in workout_ids}


def workout_summary(w: Workout, stats: tuple[float | None, int] = (None, 0)) -> dict[str, Any]:
    return {
        "id": w.id,
        "title": w.title,
        "slug": w.slug,
        "description": w.description,
        "image_url": w.image_url,
        "estimated_duration": w.estimated_duration,
        "difficulty": w.difficulty,
        "is_published": w.is_published,
        "is_public": w.is_public,
        "view_count": w.view_count,
        "category": {"id": w.category.id, "name": w.category.name, "slug": w.category.slug} if w.category else None,
        "coach": {"id": w.coach.id, "name": w.coach.name} if w.coach else None,
        "tags": [tag_to_dict(t) for t in w.tags],
        "rating_average": stats[0],
        "rating_count": stats[1],
        "created_at": w.created_at,
    }


def browse_workouts(
    s: Session,
    filters: WorkoutFilterInput,
    page: PaginationInput,
) -> tuple[list[dict[str, Any]], int]:
    conditions = [Workout.is_published.is_(True)]
    if filters.category:
        if filters.category.isdigit():
            conditions.append(Workout.category_id == int(filters.category))
        else:
            conditions.append(
                Workout.category_id.in_(select(Category.id).where(Category.slug == filters.category.lower()))
            )
    if filters.difficulty:
        conditions.append(Workout.difficulty == filters.difficulty)
    if filters.min_duration is not None:
        conditions.append(Workout.estimated_duration >= filters.min_duration)
    if filters.max_duration is not None:
        conditions.append(Workout.estimated_duration <= filters.max_duration)
    if filters.equipment:
        conditions.append(
            Workout.id.in_(
                select(WorkoutExercise.workout_id)
                .join(Exercise, Exercise.id == WorkoutExercise.exercise_id)
                .where(Exercise.equipment_id.in_(filters.equipment))
            )
        )
    if filters.tags:
        conditions.append(
            Workout.id.in_(select(workout_tags.c.workout_id).where(workout_tags.c.tag_id.in_(filters.tags)))
        )
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        conditions.append(or_(Workout.title.ilike(pattern), Workout.description.ilike(pattern)))
    if filters.coach_id:
        conditions.append(Workout.coach_id == filters.coach_id)

    total = s.execute(select(func.count()).select_from(Workout).where(*conditions)).scalar_one()
    rows = (
        s.execute(
            select(Workout)
            .where(*conditions)
            .options(selectinload(Workout.tags), selectinload(Workout.category), selectinload(Workout.coach))
            .order_by(Workout.created_at.desc(), Workout.id.desc())
            .offset(page.offset)
            .limit(page.limit)
        )
        .scalars()
        .all()
    )
    stats = rating_stats(s, [w.id for w in rows])
    return [workout_summary(w, stats[w.id]) for w in rows], total


def find_workout(s: Session, id_or_slug: str | int) -> Workout | None:
    key = str(id_or_slug)
    if key.isdigit():
        workout = s.get(Workout, int(key))
        if workout is not None:
            return workout
    return s.execute(select(Workout).where(Workout.slug == key)).scalar_one_or_none()


def can_view_full(workout: Workout, viewer: Actor | None) -> bool:
    if workout.is_public:
        return True
    if viewer is None:
        return False
    return _is_admin(viewer) or viewer.id == workout.coach_id or viewer.has_subscription


def get_workout_detail(s: Session, id_or_slug: str | int, viewer: Actor | None = None) -> dict[str, Any]:
    workout = find_workout(s, id_or_slug)
    if workout is None:
        raise NotFound("Workout not found")
    is_owner = viewer is not None and viewer.id == workout.coach_id
    if not workout.is_published and not (is_owner or _is_admin(viewer)):
        raise NotFound("Workout not found")

    workout.view_count = (workout.view_count or 0) + 1
    s.flush()

    detail = workout_summary(workout, rating_stats(s, [workout.id])[workout.id])
    if can_view_full(workout, viewer):
        detail.update(
            locked=False,
            instructions=workout.instructions,
            video_url=workout.video_url,
            exercises=[
                {
                    "id": we.id,
                    "order": we.order,
                    "sets": we.sets,
                    "reps": we.reps,
                    "weight": we.weight,
                    "rest_time": we.rest_time,
                    "notes": we.notes,
                    "exercise": exercise_to_dict(we.exercise),
                }
                for we in workout.exercises
            ],
        )
    else:
        detail.update(locked=True, instructions=None, video_url=None, exercises=[], exercise_count=len(workout.exercises))
    return detail


def coach_public_profile(s: Session, coach_id: int) -> dict[str, Any]:
    coach = s.get(User, coach_id)
    if coach is None or coach.role != "COACH" or not coach.is_active:
        raise NotFound("Coach not found")
    workouts = (
        s.execute(
            select(Workout)
            .where(Workout.coach_id == coach.id, Workout.is_published.is_(True))
            .order_by(Workout.created_at.desc(), Workout.id.desc())
        )
        .scalars()
        .all()
    )
    stats = rating_stats(s, [w.id for w in workouts])
    return {
        "id": coach.id,
        "name": coach.name,
        "bio": coach.bio,
        "image": coach.profile_image_url or coach.image,
        "workouts": [workout_summary(w, stats[w.id]) for w in workouts],
    }
