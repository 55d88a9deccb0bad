from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi_cache import FastAPICache
from fastapi_cache.decorator import cache

from api.auth import get_current_user, get_optional_user, require_admin, require_coach, require_verified_email
from api.deps import get_pagination, page_count
from api.schemas import (
    CategoryResponse,
    CommentResponse,
    EquipmentResponse,
    ExerciseResponse,
    FacetsResponse,
    MessageResponse,
    PaginatedResponse,
    ProgressLogResponse,
    ProgressSummaryResponse,
    RatingResponse,
    RatingSummaryResponse,
    ReorderRequest,
    TagResponse,
    WorkoutDetailResponse,
    WorkoutExerciseResponse,
    WorkoutSummaryResponse,
)
from core.db import session_scope
from core.services import catalog, community, progress
from core.services.sessions import SessionUser
from core.validators import (
    CategoryCreateInput,
    CommentCreateInput,
    CommentUpdateInput,
    EquipmentCreateInput,
    ExerciseCreateInput,
    PaginationInput,
    ProgressLogInput,
    RatingInput,
    TagCreateInput,
    WorkoutCreateInput,
    WorkoutExerciseInput,
    WorkoutFilterInput,
    WorkoutUpdateInput,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

FACETS_NAMESPACE = "facets"

CurrentUser = Annotated[SessionUser, Depends(get_current_user)]
OptionalUser = Annotated[Optional[SessionUser], Depends(get_optional_user)]
Admin = Annotated[SessionUser, Depends(require_admin)]
Coach = Annotated[SessionUser, Depends(require_coach)]
VerifiedUser = Annotated[SessionUser, Depends(require_verified_email)]


async def _invalidate_facets() -> None:
    await FastAPICache.clear(namespace=FACETS_NAMESPACE)


def workout_filters(
    category: Optional[str] = Query(None, max_length=120),
    difficulty: Optional[str] = Query(None, pattern="^(BEGINNER|INTERMEDIATE|ADVANCED)$"),
    min_duration: Optional[int] = Query(None, ge=0),
    max_duration: Optional[int] = Query(None, le=480),
    equipment: list[int] = Query([]),
    tags: list[int] = Query([]),
    search: Optional[str] = Query(None, max_length=100),
    coach_id: Optional[int] = Query(None, gt=0),
) -> WorkoutFilterInput:
    return WorkoutFilterInput(
        category=category,
        difficulty=difficulty,
        min_duration=min_duration,
        max_duration=max_duration,
        equipment=equipment,
        tags=tags,
        search=search,
        coach_id=coach_id,
    )


# ── Facets ───────────────────────────────────────────────────────────────

@router.get("/catalog/facets", response_model=FacetsResponse, tags=["catalog"])
@cache(expire=300, namespace=FACETS_NAMESPACE)
def catalog_facets():
    with session_scope() as s:
        return {
            "categories": [catalog.category_to_dict(c) for c in catalog.list_categories(s)],
            "equipment": [catalog.equipment_to_dict(e) for e in catalog.list_equipment(s)],
            "tags": [catalog.tag_to_dict(t) for t in catalog.list_tags(s)],
        }


@router.get("/categories", response_model=list[CategoryResponse], tags=["catalog"])
def categories(user: OptionalUser, include_inactive: bool = False):
    show_all = include_inactive and user is not None and user.role == "ADMIN"
    with session_scope() as s:
        return [catalog.category_to_dict(c) for c in catalog.list_categories(s, include_inactive=show_all)]


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED, tags=["catalog"])
async def create_category(body: CategoryCreateInput, admin: Admin):
    with session_scope() as s:
        result = catalog.category_to_dict(catalog.create_category(s, body))
    await _invalidate_facets()
    return result


@router.put("/categories/{category_id}", response_model=CategoryResponse, tags=["catalog"])
async def update_category(category_id: int, body: CategoryCreateInput, admin: Admin):
    with session_scope() as s:
        result = catalog.category_to_dict(catalog.update_category(s, category_id, body))
    await _invalidate_facets()
    return result


@router.post("/categories/{category_id}/deactivate", response_model=CategoryResponse, tags=["catalog"])
async def deactivate_category(category_id: int, admin: Admin):
    with session_scope() as s:
        result = catalog.category_to_dict(catalog.set_category_active(s, category_id, False))
    await _invalidate_facets()
    return result


@router.post("/categories/{category_id}/activate", response_model=CategoryResponse, tags=["catalog"])
async def activate_category(category_id: int, admin: Admin):
    with session_scope() as s:
        result = catalog.category_to_dict(catalog.set_category_active(s, category_id, True))
    await _invalidate_facets()
    return result


@router.get("/equipment", response_model=list[EquipmentResponse], tags=["catalog"])
def equipment():
    with session_scope() as s:
        return [catalog.equipment_to_dict(e) for e in catalog.list_equipment(s)]


@router.post("/equipment", response_model=EquipmentResponse, status_code=status.HTTP_201_CREATED, tags=["catalog"])
async def create_equipment(body: EquipmentCreateInput, admin: Admin):
    with session_scope() as s:
        result = catalog.equipment_to_dict(catalog.create_equipment(s, body))
    await _invalidate_facets()
    return result


@router.put("/equipment/{equipment_id}", response_model=EquipmentResponse, tags=["catalog"])
async def update_equipment(equipment_id: int, body: EquipmentCreateInput, admin: Admin):
    with session_scope() as s:
        result = catalog.equipment_to_dict(catalog.update_equipment(s, equipment_id, body))
    await _invalidate_facets()
    return result


@router.delete("/equipment/{equipment_id}", response_model=MessageResponse, tags=["catalog"])
async def delete_equipment(equipment_id: int, admin: Admin):
    with session_scope() as s:
        catalog.delete_equipment(s, equipment_id)
    await _invalidate_facets()
    return MessageResponse(message="Equipment deleted")


@router.get("/tags", response_model=list[TagResponse], tags=["catalog"])
def tags(tag_type: Optional[str] = Query(None, alias="type")):
    with session_scope() as s:
        return [catalog.tag_to_dict(t) for t in catalog.list_tags(s, tag_type)]


@router.post("/tags", response_model=TagResponse, status_code=status.HTTP_201_CREATED, tags=["catalog"])
async def create_tag(body: TagCreateInput, admin: Admin):
    with session_scope() as s:
        result = catalog.tag_to_dict(catalog.create_tag(s, body))
    await _invalidate_facets()
    return result


@router.delete("/tags/{tag_id}", response_model=MessageResponse, tags=["catalog"])
async def delete_tag(tag_id: int, admin: Admin):
    with session_scope() as s:
        catalog.delete_tag(s, tag_id)
    await _invalidate_facets()
    return MessageResponse(message="Tag deleted")


# ── Exercises ────────────────────────────────────────────────────────────

@router.get("/exercises", response_model=list[ExerciseResponse], tags=["catalog"])
def exercises(user: OptionalUser, search: Optional[str] = Query(None, max_length=100)):
    with session_scope() as s:
        return [catalog.exercise_to_dict(e) for e in catalog.list_exercises(s, user, search)]


@router.post("/exercises", response_model=ExerciseResponse, status_code=status.HTTP_201_CREATED, tags=["catalog"])
def create_exercise(body: ExerciseCreateInput, coach: Coach):
    with session_scope() as s:
        exercise = catalog.create_exercise(s, coach, body)
        return catalog.exercise_to_dict(exercise)


# ── Workouts ─────────────────────────────────────────────────────────────

@router.get("/workouts", response_model=PaginatedResponse[WorkoutSummaryResponse], tags=["workouts"])
def browse(
    filters: Annotated[WorkoutFilterInput, Depends(workout_filters)],
    page: Annotated[PaginationInput, Depends(get_pagination)],
):
    with session_scope() as s:
        items, total = catalog.browse_workouts(s, filters, page)
    return {"items": items, "total": total, "page": page.page, "limit": page.limit, "pages": page_count(total, page.limit)}


@router.get("/workouts/{id_or_slug}", response_model=WorkoutDetailResponse, tags=["workouts"])
def workout_detail(id_or_slug: str, user: OptionalUser):
    with session_scope() as s:
        return catalog.get_workout_detail(s, id_or_slug, user)


@router.post("/workouts", response_model=WorkoutSummaryResponse, status_code=status.HTTP_201_CREATED, tags=["workouts"])
def create_workout(body: WorkoutCreateInput, coach: Coach):
    with session_scope() as s:
        workout = catalog.create_workout(s, coach, body)
        return catalog.workout_summary(workout)


@router.patch("/workouts/{workout_id}", response_model=WorkoutSummaryResponse, tags=["workouts"])
def update_workout(workout_id: int, body: WorkoutUpdateInput, coach: Coach):
    with session_scope() as s:
        workout = catalog.update_workout(s, coach, workout_id, body)
        return catalog.workout_summary(workout, catalog.rating_stats(s, [workout.id])[workout.id])


@router.post("/workouts/{workout_id}/publish", response_model=WorkoutSummaryResponse, tags=["workouts"])
def publish_workout(workout_id: int, coach: Coach):
    with session_scope() as s:
        return catalog.workout_summary(catalog.set_workout_published(s, coach, workout_id, True))


@router.post("/workouts/{workout_id}/unpublish", response_model=WorkoutSummaryResponse, tags=["workouts"])
def unpublish_workout(workout_id: int, coach: Coach):
    with session_scope() as s:
        return catalog.workout_summary(catalog.set_workout_published(s, coach, workout_id, False))


@router.delete("/workouts/{workout_id}", response_model=MessageResponse, tags=["workouts"])
def delete_workout(workout_id: int, coach: Coach):
    with session_scope() as s:
        catalog.delete_workout(s, coach, workout_id)
    return MessageResponse(message="Workout deleted")


@router.post(
    "/workouts/{workout_id}/exercises",
    response_model=WorkoutExerciseResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["workouts"],
)
def add_exercise(workout_id: int, body: WorkoutExerciseInput, coach: Coach):
    with session_scope() as s:
        item = catalog.add_workout_exercise(s, coach, workout_id, body)
        return {
            "id": item.id,
            "order": item.order,
            "sets": item.sets,
            "reps": item.reps,
            "weight": item.weight,
            "rest_time": item.rest_time,
            "notes": item.notes,
            "exercise": catalog.exercise_to_dict(item.exercise),
        }


@router.delete("/workouts/{workout_id}/exercises/{item_id}", response_model=MessageResponse, tags=["workouts"])
def remove_exercise(workout_id: int, item_id: int, coach: Coach):
    with session_scope() as s:
        catalog.remove_workout_exercise(s, coach, workout_id, item_id)
    return MessageResponse(message="Exercise removed")


@router.put("/workouts/{workout_id}/exercises/order", response_model=list[int], tags=["workouts"])
def reorder_exercises(workout_id: int, body: ReorderRequest, coach: Coach):
    with session_scope() as s:
        items = catalog.reorder_workout_exercises(s, coach, workout_id, body.item_ids)
        return [item.id for item in items]


# ── Comments & ratings ───────────────────────────────────────────────────

@router.get("/workouts/{workout_id}/comments", response_model=list[CommentResponse], tags=["community"])
def workout_comments(workout_id: int, user: OptionalUser):
    with session_scope() as s:
        return [node.to_dict() for node in community.list_comments(s, workout_id, user)]


@router.post("/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED, tags=["community"])
def post_comment(body: CommentCreateInput, user: VerifiedUser):
    with session_scope() as s:
        comment = community.add_comment(s, user, body)
        return community.build_comment_tree([comment])[0].to_dict()


@router.patch("/comments/{comment_id}", response_model=CommentResponse, tags=["community"])
def edit_comment(comment_id: int, body: CommentUpdateInput, user: VerifiedUser):
    with session_scope() as s:
        comment = community.edit_comment(s, user, comment_id, body)
        return community.build_comment_tree([comment])[0].to_dict()


@router.delete("/comments/{comment_id}", response_model=MessageResponse, tags=["community"])
def remove_comment(comment_id: int, user: CurrentUser):
    with session_scope() as s:
        community.delete_comment(s, user, comment_id)
    return MessageResponse(message="Comment deleted")


@router.post("/ratings", response_model=RatingResponse, tags=["community"])
def rate(body: RatingInput, user: VerifiedUser):
    with session_scope() as s:
        rating = community.rate_workout(s, user, body)
        return RatingResponse(workout_id=rating.workout_id, rating=rating.rating)


@router.get("/workouts/{workout_id}/ratings", response_model=RatingSummaryResponse, tags=["community"])
def ratings_summary(workout_id: int, user: OptionalUser):
    with session_scope() as s:
        return community.rating_summary(s, workout_id, user).to_dict()


# ── Progress ─────────────────────────────────────────────────────────────

@router.post("/progress", response_model=ProgressLogResponse, status_code=status.HTTP_201_CREATED, tags=["progress"])
def log_progress(body: ProgressLogInput, user: VerifiedUser):
    with session_scope() as s:
        return progress.log_to_dict(progress.log_workout(s, user, body))


@router.get("/progress", response_model=list[ProgressLogResponse], tags=["progress"])
def my_progress(user: CurrentUser, limit: Optional[int] = Query(None, ge=1, le=200)):
    with session_scope() as s:
        return [progress.log_to_dict(log) for log in progress.list_logs(s, user.id, limit=limit)]


@router.get("/progress/summary", response_model=ProgressSummaryResponse, tags=["progress"])
def my_progress_summary(user: CurrentUser):
    with session_scope() as s:
        return progress.progress_summary(s, user.id).to_dict()


@router.delete("/progress/{log_id}", response_model=MessageResponse, tags=["progress"])
def delete_progress(log_id: int, user: CurrentUser):
    with session_scope() as s:
        progress.delete_log(s, user, log_id)
    return MessageResponse(message="Progress log deleted")
