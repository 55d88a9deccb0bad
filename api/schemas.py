from __future__ import annotations

from datetime import datetime as dt_datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    pages: int


# -- Auth & accounts --

class SessionUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    role: str
    email_verified: Optional[dt_datetime] = None
    has_subscription: bool
    expires_at: dt_datetime


class SignInResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: dt_datetime
    user: SessionUserResponse


class SignUpResponse(BaseModel):
    success: bool = True
    message: str
    user_id: int
    email_verification_required: bool


class UserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None
    image: Optional[str] = None
    role: str
    is_active: bool
    email_verified: bool
    has_subscription: bool
    last_login_at: Optional[dt_datetime] = None
    created_at: dt_datetime


class TokenCheckResponse(BaseModel):
    valid: bool
    message: str
    email: Optional[str] = None
    already_verified: Optional[bool] = None
    expires_at: Optional[dt_datetime] = None


class VerificationStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    is_verified: bool
    verified_at: Optional[dt_datetime] = None
    has_pending_token: bool


class CleanupResponse(BaseModel):
    success: bool = True
    message: str
    count: int


# -- Catalog --

class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool


class EquipmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None


class TagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: str
    description: Optional[str] = None


class FacetsResponse(BaseModel):
    categories: list[CategoryResponse]
    equipment: list[EquipmentResponse]
    tags: list[TagResponse]


class ExerciseResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    instructions: Optional[str] = None
    video_url: Optional[str] = None
    image_url: Optional[str] = None
    muscle_groups: list[str]
    equipment: Optional[EquipmentResponse] = None
    difficulty: str
    is_public: bool
    created_by: int


class WorkoutSummaryResponse(BaseModel):
    id: int
    title: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    estimated_duration: Optional[int] = None
    difficulty: str
    is_published: bool
    is_public: bool
    view_count: int
    category: Optional[dict[str, Any]] = None
    coach: Optional[dict[str, Any]] = None
    tags: list[TagResponse] = Field(default_factory=list)
    rating_average: Optional[float] = None
    rating_count: int = 0
    created_at: dt_datetime


class WorkoutExerciseResponse(BaseModel):
    id: int
    order: int
    sets: Optional[int] = None
    reps: Optional[str] = None
    weight: Optional[str] = None
    rest_time: Optional[int] = None
    notes: Optional[str] = None
    exercise: ExerciseResponse


class WorkoutDetailResponse(WorkoutSummaryResponse):
    locked: bool
    instructions: Optional[str] = None
    video_url: Optional[str] = None
    exercises: list[WorkoutExerciseResponse] = Field(default_factory=list)
    exercise_count: Optional[int] = None


class ReorderRequest(BaseModel):
    item_ids: list[int] = Field(min_length=1)


# -- Community & progress --

class CommentResponse(BaseModel):
    id: int
    workout_id: int
    parent_id: Optional[int] = None
    author: dict[str, Any]
    content: str
    is_deleted: bool
    created_at: dt_datetime
    updated_at: dt_datetime
    replies: list["CommentResponse"] = Field(default_factory=list)


class RatingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    workout_id: int
    rating: int


class RatingSummaryResponse(BaseModel):
    workout_id: int
    average: Optional[float] = None
    count: int
    histogram: dict[str, int]


class ProgressLogResponse(BaseModel):
    id: int
    workout_id: int
    workout_title: Optional[str] = None
    completed_at: dt_datetime
    duration: Optional[int] = None
    notes: Optional[str] = None
    difficulty: Optional[int] = None


class ProgressSummaryResponse(BaseModel):
    total_sessions: int
    total_minutes: int
    average_difficulty: Optional[float] = None
    current_streak: int
    sessions_last_7_days: int
    favourite_category: Optional[str] = None


# -- Billing --

class SubscriptionResponse(BaseModel):
    plan: str
    plan_name: str
    status: str
    is_active: bool
    current_period_start: Optional[dt_datetime] = None
    current_period_end: Optional[dt_datetime] = None
    cancel_at_period_end: bool


class CheckoutResponse(BaseModel):
    mode: str
    url: Optional[str] = None
    subscription: Optional[SubscriptionResponse] = None


class WebhookAck(BaseModel):
    received: bool = True
    handled: bool
