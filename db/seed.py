"""Demo data for local development.

Every seeder is idempotent: rows are looked up by their natural key (email,
name, slug) and only created when missing, so the app can run it on every
start when SEED_DATABASE is set.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from alembic import command
from alembic.config import Config
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.db import create_schema, session_scope
from core.models import Category, Equipment, Exercise, Subscription, Tag, User, Workout, WorkoutExercise
from core.security import hash_password
from core.services.catalog import slugify
from core.timeutil import utcnow

logger = logging.getLogger(__name__)

DEMO_USERS: list[dict[str, Any]] = [
    {"email": "admin@demo.coach", "name": "Ada Admin", "role": "ADMIN", "password": "AdminPass!234"},
    {
        "email": "coach@demo.coach",
        "name": "Casey Coach",
        "role": "COACH",
        "password": "CoachPass!234",
        "bio": "Strength and conditioning coach. Ten years of barbell work.",
    },
    {"email": "athlete1@demo.coach", "name": "Alex Athlete", "role": "ATHLETE", "password": "AthletePass!234"},
    {"email": "athlete2@demo.coach", "name": "Sam Subscriber", "role": "ATHLETE", "password": "AthletePass!234"},
]

CATEGORIES = [
    ("Strength", "Compound lifts and progressive overload"),
    ("Cardio", "Conditioning and endurance sessions"),
    ("Mobility", "Flexibility, range of motion and recovery"),
    ("HIIT", "Short, high intensity intervals"),
]

EQUIPMENT = [
    ("Barbell", "Olympic barbell with plates"),
    ("Dumbbells", "Pair of adjustable dumbbells"),
    ("Kettlebell", None),
    ("Resistance Band", None),
    ("Bodyweight", "No equipment needed"),
]

TAGS = [
    ("Legs", "BODY_PART"),
    ("Upper Body", "BODY_PART"),
    ("Core", "BODY_PART"),
    ("Full Body", "WORKOUT_TYPE"),
    ("Quick", "GENERAL"),
    ("Home Friendly", "GENERAL"),
]

EXERCISES: list[dict[str, Any]] = [
    {"name": "Back Squat", "equipment": "Barbell", "muscle_groups": ["quads", "glutes"], "difficulty": "INTERMEDIATE"},
    {"name": "Romanian Deadlift", "equipment": "Barbell", "muscle_groups": ["hamstrings", "glutes"], "difficulty": "INTERMEDIATE"},
    {"name": "Dumbbell Bench Press", "equipment": "Dumbbells", "muscle_groups": ["chest", "triceps"], "difficulty": "BEGINNER"},
    {"name": "Kettlebell Swing", "equipment": "Kettlebell", "muscle_groups": ["glutes", "hamstrings"], "difficulty": "BEGINNER"},
    {"name": "Push-up", "equipment": "Bodyweight", "muscle_groups": ["chest", "shoulders"], "difficulty": "BEGINNER"},
    {"name": "Burpee", "equipment": "Bodyweight", "muscle_groups": ["full body"], "difficulty": "INTERMEDIATE"},
    {"name": "Banded Pull-apart", "equipment": "Resistance Band", "muscle_groups": ["rear delts"], "difficulty": "BEGINNER"},
]

WORKOUTS: list[dict[str, Any]] = [
    {
        "title": "Lower Body Strength Foundations",
        "category": "Strength",
        "difficulty": "INTERMEDIATE",
        "estimated_duration": 50,
        "tags": ["Legs"],
        "published": True,
        "items": [
            ("Back Squat", {"sets": 5, "reps": "5", "rest_time": 180}),
            ("Romanian Deadlift", {"sets": 3, "reps": "8", "rest_time": 120}),
        ],
    },
    {
        "title": "Twenty Minute Home HIIT",
        "category": "HIIT",
        "difficulty": "BEGINNER",
        "estimated_duration": 20,
        "tags": ["Full Body", "Quick", "Home Friendly"],
        "published": True,
        "items": [
            ("Burpee", {"sets": 4, "reps": "40s on / 20s off", "rest_time": 20}),
            ("Push-up", {"sets": 4, "reps": "AMRAP 40s", "rest_time": 20}),
            ("Kettlebell Swing", {"sets": 4, "reps": "15", "rest_time": 30}),
        ],
    },
    {
        "title": "Upper Body Push Day",
        "category": "Strength",
        "difficulty": "BEGINNER",
        "estimated_duration": 40,
        "tags": ["Upper Body"],
        "published": True,
        "items": [
            ("Dumbbell Bench Press", {"sets": 4, "reps": "10", "rest_time": 90}),
            ("Push-up", {"sets": 3, "reps": "12", "rest_time": 60}),
            ("Banded Pull-apart", {"sets": 3, "reps": "20", "rest_time": 45}),
        ],
    },
    {
        "title": "Posterior Chain Builder",
        "category": "Strength",
        "difficulty": "ADVANCED",
        "estimated_duration": 60,
        "tags": ["Legs", "Core"],
        "published": False,
        "items": [("Romanian Deadlift", {"sets": 4, "reps": "6", "rest_time": 150})],
    },
]


def run_migrations() -> None:
    cfg = Config("alembic.ini")
    command.upgrade(cfg, "head")


def _by(s: Session, model, **criteria):
    return s.execute(select(model).filter_by(**criteria)).scalar_one_or_none()


def seed_users() -> dict[str, int]:
    now = utcnow()
    ids: dict[str, int] = {}
    with session_scope() as s:
        for row in DEMO_USERS:
            user = _by(s, User, email=row["email"])
            if user is None:
                user = User(
                    email=row["email"],
                    name=row["name"],
                    role=row["role"],
                    bio=row.get("bio"),
                    password_hash=hash_password(row["password"]),
                    email_verified_at=now,
                )
                s.add(user)
                s.flush()
            ids[row["email"]] = user.id

        subscriber_id = ids["athlete2@demo.coach"]
        if _by(s, Subscription, user_id=subscriber_id) is None:
            s.add(
                Subscription(
                    user_id=subscriber_id,
                    stripe_customer_id=f"cus_mock_{subscriber_id}",
                    stripe_subscription_id=f"sub_mock_seed_{subscriber_id}",
                    status="ACTIVE",
                    plan="PREMIUM",
                    current_period_start=now,
                    current_period_end=now + timedelta(days=30),
                )
            )
    return ids


def seed_taxonomy() -> None:
    with session_scope() as s:
        for name, description in CATEGORIES:
            if _by(s, Category, name=name) is None:
                s.add(Category(name=name, slug=slugify(name), description=description))
        for name, description in EQUIPMENT:
            if _by(s, Equipment, name=name) is None:
                s.add(Equipment(name=name, description=description))
        for name, tag_type in TAGS:
            if _by(s, Tag, name=name) is None:
                s.add(Tag(name=name, type=tag_type))


def seed_exercises(coach_id: int) -> None:
    with session_scope() as s:
        for row in EXERCISES:
            if _by(s, Exercise, name=row["name"]) is not None:
                continue
            equipment = _by(s, Equipment, name=row["equipment"])
            s.add(
                Exercise(
                    name=row["name"],
                    equipment_id=equipment.id if equipment else None,
                    muscle_groups=row["muscle_groups"],
                    difficulty=row["difficulty"],
                    created_by=coach_id,
                )
            )


def seed_workouts(coach_id: int) -> None:
    with session_scope() as s:
        for row in WORKOUTS:
            slug = slugify(row["title"])
            if _by(s, Workout, slug=slug) is not None:
                continue
            category = _by(s, Category, name=row["category"])
            workout = Workout(
                title=row["title"],
                slug=slug,
                description=f"{row['title']} programmed by the demo coach.",
                difficulty=row["difficulty"],
                estimated_duration=row["estimated_duration"],
                coach_id=coach_id,
                category_id=category.id,
                is_published=row["published"],
                tags=[_by(s, Tag, name=name) for name in row["tags"]],
            )
            for order, (exercise_name, prescription) in enumerate(row["items"], start=1):
                exercise = _by(s, Exercise, name=exercise_name)
                workout.exercises.append(WorkoutExercise(exercise_id=exercise.id, order=order, **prescription))
            s.add(workout)


def seed_database() -> None:
    """Create the schema when missing and load the demo dataset."""
    create_schema()
    ids = seed_users()
    coach_id = ids["coach@demo.coach"]
    seed_taxonomy()
    seed_exercises(coach_id)
    seed_workouts(coach_id)
    logger.info("demo_data_seeded", extra={"users": len(ids)})


def main() -> None:
    run_migrations()
    seed_database()
    print("Seeding complete")


if __name__ == "__main__":
    main()
