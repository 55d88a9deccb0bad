"""Tests for Pydantic input validation models."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from core.timeutil import utcnow
from core.validators import (
    ChangePasswordInput,
    CommentCreateInput,
    PaginationInput,
    ProfileUpdateInput,
    ProgressLogInput,
    RatingInput,
    ResetPasswordInput,
    SignUpInput,
    WorkoutCreateInput,
    WorkoutExerciseInput,
)


# --- Auth ---

def test_sign_up_normalizes_email_and_defaults_role():
    body = SignUpInput(email="  Jane@Example.COM ", password="Secret!234", name="Jane")
    assert body.email == "jane@example.com"
    assert body.role == "ATHLETE"


def test_sign_up_rejects_admin_role():
    with pytest.raises(ValidationError):
        SignUpInput(email="a@example.com", password="Secret!234", name="A", role="ADMIN")


def test_sign_up_rejects_weak_password():
    with pytest.raises(ValidationError, match="special character"):
        SignUpInput(email="a@example.com", password="password123", name="A")


def test_reset_password_requires_matching_confirmation():
    with pytest.raises(ValidationError, match="Passwords don't match"):
        ResetPasswordInput(token="t", password="Secret!234", confirm_password="Secret!235")


def test_change_password_valid():
    body = ChangePasswordInput(current_password="old", new_password="Secret!234", confirm_password="Secret!234")
    assert body.new_password == "Secret!234"


def test_profile_image_must_be_url():
    with pytest.raises(ValidationError):
        ProfileUpdateInput(name="A", profile_image_url="not a url")
    body = ProfileUpdateInput(name="A", profile_image_url="https://cdn.example.com/me.png")
    assert body.profile_image_url == "https://cdn.example.com/me.png"


# --- Catalog ---

def test_workout_duration_bounds():
    with pytest.raises(ValidationError):
        WorkoutCreateInput(title="W", category_id=1, estimated_duration=0)
    with pytest.raises(ValidationError):
        WorkoutCreateInput(title="W", category_id=1, estimated_duration=481)
    assert WorkoutCreateInput(title="W", category_id=1, estimated_duration=480).estimated_duration == 480


def test_workout_rejects_unknown_difficulty():
    with pytest.raises(ValidationError):
        WorkoutCreateInput(title="W", category_id=1, difficulty="EXPERT")


def test_workout_exercise_order_starts_at_one():
    with pytest.raises(ValidationError):
        WorkoutExerciseInput(exercise_id=1, order=0)


# --- Community & progress ---

def test_comment_rejects_blank_content():
    with pytest.raises(ValidationError, match="Comment cannot be empty"):
        CommentCreateInput(workout_id=1, content="   ")


def test_comment_length_limit():
    with pytest.raises(ValidationError):
        CommentCreateInput(workout_id=1, content="x" * 1001)


@pytest.mark.parametrize("value", [0, 6])
def test_rating_range(value):
    with pytest.raises(ValidationError):
        RatingInput(workout_id=1, rating=value)


def test_progress_log_rejects_future_completion():
    with pytest.raises(ValidationError, match="future"):
        ProgressLogInput(workout_id=1, completed_at=utcnow() + timedelta(days=1))


def test_progress_log_difficulty_range():
    with pytest.raises(ValidationError):
        ProgressLogInput(workout_id=1, difficulty=11)


def test_pagination_offset():
    assert PaginationInput(page=3, limit=20).offset == 40
    with pytest.raises(ValidationError):
        PaginationInput(page=0)
