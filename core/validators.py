"""Pydantic validation models for all user-facing data entry points."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Literal, Optional

from pydantic import AnyHttpUrl, BaseModel, EmailStr, Field, field_validator, model_validator

from core.security import PasswordPolicyError, enforce_password_policy
from core.timeutil import utcnow

Difficulty = Literal["BEGINNER", "INTERMEDIATE", "ADVANCED"]
TagType = Literal["BODY_PART", "EQUIPMENT", "WORKOUT_TYPE", "GENERAL"]
Role = Literal["ADMIN", "COACH", "ATHLETE"]
Plan = Literal["BASIC", "PREMIUM"]


def _check_password(value: str) -> str:
    try:
        enforce_password_policy(value)
    except PasswordPolicyError as exc:
        raise ValueError(str(exc)) from exc
    return value


def _url_str(value):
    return str(value) if value is not None else None


class _EmailNormalized(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return str(v).strip().lower()


# -- Auth --

class SignUpInput(_EmailNormalized):
    password: str
    name: str = Field(min_length=1, max_length=100)
    role: Literal["ATHLETE", "COACH"] = "ATHLETE"

    @field_validator("password")
    @classmethod
    def password_policy(cls, v):
        return _check_password(v)


class SignInInput(_EmailNormalized):
    password: str = Field(min_length=1)


class EmailInput(_EmailNormalized):
    pass


class TokenInput(BaseModel):
    token: str = Field(min_length=1)


class ResetPasswordInput(BaseModel):
    token: str = Field(min_length=1)
    password: str
    confirm_password: str = Field(min_length=1)

    @field_validator("password")
    @classmethod
    def password_policy(cls, v):
        return _check_password(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class ChangePasswordInput(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str
    confirm_password: str = Field(min_length=1)

    @field_validator("new_password")
    @classmethod
    def password_policy(cls, v):
        return _check_password(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class ProfileUpdateInput(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    bio: Optional[str] = Field(default=None, max_length=500)
    profile_image_url: Optional[AnyHttpUrl] = None

    @field_validator("profile_image_url", mode="after")
    @classmethod
    def as_str(cls, v):
        return _url_str(v)


class UserAdminUpdateInput(BaseModel):
    role: Optional[Role] = None
    is_active: Optional[bool] = None


# -- Catalog --

class WorkoutCreateInput(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    instructions: Optional[str] = Field(default=None, max_length=5000)
    image_url: Optional[AnyHttpUrl] = None
    video_url: Optional[AnyHttpUrl] = None
    estimated_duration: Optional[int] = Field(default=None, ge=1, le=480)
    difficulty: Difficulty = "BEGINNER"
    category_id: int = Field(gt=0)
    is_published: bool = False
    is_public: bool = True
    tag_ids: list[int] = Field(default_factory=list)

    @field_validator("image_url", "video_url", mode="after")
    @classmethod
    def as_str(cls, v):
        return _url_str(v)


class WorkoutUpdateInput(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    instructions: Optional[str] = Field(default=None, max_length=5000)
    image_url: Optional[AnyHttpUrl] = None
    video_url: Optional[AnyHttpUrl] = None
    estimated_duration: Optional[int] = Field(default=None, ge=1, le=480)
    difficulty: Optional[Difficulty] = None
    category_id: Optional[int] = Field(default=None, gt=0)
    is_published: Optional[bool] = None
    is_public: Optional[bool] = None
    tag_ids: Optional[list[int]] = None

    @field_validator("image_url", "video_url", mode="after")
    @classmethod
    def as_str(cls, v):
        return _url_str(v)


class ExerciseCreateInput(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    instructions: Optional[str] = Field(default=None, max_length=2000)
    video_url: Optional[AnyHttpUrl] = None
    image_url: Optional[AnyHttpUrl] = None
    muscle_groups: list[str] = Field(min_length=1)
    equipment_id: Optional[int] = Field(default=None, gt=0)
    difficulty: Difficulty = "BEGINNER"
    is_public: bool = True

    @field_validator("image_url", "video_url", mode="after")
    @classmethod
    def as_str(cls, v):
        return _url_str(v)


class WorkoutExerciseInput(BaseModel):
    exercise_id: int = Field(gt=0)
    order: int = Field(ge=1)
    sets: Optional[int] = Field(default=None, ge=1, le=50)
    reps: Optional[str] = Field(default=None, max_length=50)
    weight: Optional[str] = Field(default=None, max_length=50)
    rest_time: Optional[int] = Field(default=None, ge=0, le=3600)
    notes: Optional[str] = Field(default=None, max_length=500)


class CategoryCreateInput(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    image_url: Optional[AnyHttpUrl] = None

    @field_validator("image_url", mode="after")
    @classmethod
    def as_str(cls, v):
        return _url_str(v)


class EquipmentCreateInput(CategoryCreateInput):
    pass


class TagCreateInput(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    type: TagType = "GENERAL"
    description: Optional[str] = Field(default=None, max_length=200)


# -- Community & progress --

class CommentCreateInput(BaseModel):
    content: str = Field(min_length=1, max_length=1000)
    workout_id: int = Field(gt=0)
    parent_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("content")
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError("Comment cannot be empty")
        return v


class CommentUpdateInput(BaseModel):
    content: str = Field(min_length=1, max_length=1000)

    @field_validator("content")
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError("Comment cannot be empty")
        return v


class RatingInput(BaseModel):
    rating: int = Field(ge=1, le=5)
    workout_id: int = Field(gt=0)


class ProgressLogInput(BaseModel):
    workout_id: int = Field(gt=0)
    completed_at: datetime = Field(default_factory=utcnow)
    duration: Optional[int] = Field(default=None, ge=1, le=600)
    notes: Optional[str] = Field(default=None, max_length=1000)
    difficulty: Optional[int] = Field(default=None, ge=1, le=10)

    @field_validator("completed_at")
    @classmethod
    def naive_utc(cls, v):
        if v.tzinfo is not None:
            v = v.astimezone(UTC).replace(tzinfo=None)
        if v > utcnow() + timedelta(minutes=5):
            raise ValueError("completed_at must not be in the future")
        return v


# -- Browse --

class WorkoutFilterInput(BaseModel):
    category: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    min_duration: Optional[int] = Field(default=None, ge=0)
    max_duration: Optional[int] = Field(default=None, le=480)
    equipment: list[int] = Field(default_factory=list)
    tags: list[int] = Field(default_factory=list)
    search: Optional[str] = Field(default=None, max_length=100)
    coach_id: Optional[int] = Field(default=None, gt=0)


class PaginationInput(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# -- Billing --

class CheckoutInput(BaseModel):
    plan: Plan = "BASIC"
