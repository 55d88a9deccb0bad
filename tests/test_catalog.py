"""Workout catalog: facets, authoring, browsing and visibility."""

from __future__ import annotations

import pytest

from core.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from core.models import Equipment, Exercise, Rating, Tag, WorkoutExercise
from core.services import catalog
from core.validators import (
    CategoryCreateInput,
    ExerciseCreateInput,
    PaginationInput,
    TagCreateInput,
    WorkoutCreateInput,
    WorkoutExerciseInput,
    WorkoutFilterInput,
    WorkoutUpdateInput,
)
from tests.factories import FakeActor, make_category, make_user, make_workout

PAGE = PaginationInput(page=1, limit=20)


def _coach(db, email="coach@example.com"):
    user = make_user(db, email, role="COACH")
    return user, FakeActor(id=user.id, role="COACH")


def test_slugify():
    assert catalog.slugify("  Full-Body Blast! ") == "full-body-blast"
    assert catalog.slugify("Crème Brûlée") == "creme-brulee"
    assert catalog.slugify("!!!") == "item"


def test_category_crud_and_deactivation(db):
    category = catalog.create_category(db, CategoryCreateInput(name="Upper Body"))
    assert category.slug == "upper-body"
    with pytest.raises(Conflict):
        catalog.create_category(db, CategoryCreateInput(name="upper body"))

    catalog.update_category(db, category.id, CategoryCreateInput(name="Upper Body Strength"))
    assert category.slug == "upper-body-strength"

    catalog.set_category_active(db, category.id, False)
    assert catalog.list_categories(db) == []
    assert catalog.list_categories(db, include_inactive=True) == [category]


def test_tags_filter_by_type_and_reject_duplicates(db):
    catalog.create_tag(db, TagCreateInput(name="Legs", type="BODY_PART"))
    catalog.create_tag(db, TagCreateInput(name="Quick"))
    with pytest.raises(Conflict):
        catalog.create_tag(db, TagCreateInput(name="LEGS"))
    assert [t.name for t in catalog.list_tags(db, "BODY_PART")] == ["Legs"]
    assert len(catalog.list_tags(db)) == 2


def test_athlete_cannot_author(db):
    athlete = make_user(db, "a@example.com")
    category = make_category(db)
    actor = FakeActor(id=athlete.id)
    with pytest.raises(PermissionDenied):
        catalog.create_workout(db, actor, WorkoutCreateInput(title="Mine", category_id=category.id))
    with pytest.raises(PermissionDenied):
        catalog.create_exercise(db, actor, ExerciseCreateInput(name="Squat", muscle_groups=["legs"]))


def test_create_workout_requires_active_category_and_known_tags(db):
    _, coach = _coach(db)
    inactive = make_category(db, "Old", active=False)
    with pytest.raises(ValidationFailed, match="Category not found"):
        catalog.create_workout(db, coach, WorkoutCreateInput(title="W", category_id=inactive.id))

    category = make_category(db)
    with pytest.raises(ValidationFailed, match="tags"):
        catalog.create_workout(db, coach, WorkoutCreateInput(title="W", category_id=category.id, tag_ids=[99]))


def test_workout_slugs_are_unique(db):
    _, coach = _coach(db)
    category = make_category(db)
    first = catalog.create_workout(db, coach, WorkoutCreateInput(title="Leg Day", category_id=category.id))
    second = catalog.create_workout(db, coach, WorkoutCreateInput(title="Leg Day", category_id=category.id))
    third = catalog.create_workout(db, coach, WorkoutCreateInput(title="Leg  Day!", category_id=category.id))
    assert [first.slug, second.slug, third.slug] == ["leg-day", "leg-day-2", "leg-day-3"]


def test_numeric_titles_stay_reachable_by_slug(db):
    coach_user, coach = _coach(db)
    category = make_category(db)
    created = catalog.create_workout(db, coach, WorkoutCreateInput(title="1000", category_id=category.id))
    assert created.slug == "workout-1000"
    assert catalog.find_workout(db, "workout-1000").id == created.id

    older = make_workout(db, coach_user, category, title="2024")
    assert older.slug == "2024"
    assert catalog.find_workout(db, "2024").id == older.id
    assert catalog.find_workout(db, str(created.id)).id == created.id
    assert catalog.find_workout(db, "9999") is None


def test_only_owner_or_admin_can_manage(db):
    owner, coach = _coach(db)
    _, rival = _coach(db, "rival@example.com")
    admin = make_user(db, "admin@example.com", role="ADMIN")
    workout = make_workout(db, owner, make_category(db))

    with pytest.raises(PermissionDenied, match="your own workouts"):
        catalog.update_workout(db, rival, workout.id, WorkoutUpdateInput(title="Stolen"))

    catalog.update_workout(db, coach, workout.id, WorkoutUpdateInput(title="Leg Day Two", estimated_duration=45))
    assert workout.slug == "leg-day-two"
    assert workout.estimated_duration == 45

    catalog.set_workout_published(db, FakeActor(id=admin.id, role="ADMIN"), workout.id, False)
    assert workout.is_published is False

    catalog.delete_workout(db, coach, workout.id)
    with pytest.raises(NotFound):
        catalog.get_owned_workout(db, coach, workout.id)


def test_workout_exercises_add_remove_and_reorder(db):
    owner, coach = _coach(db)
    workout = make_workout(db, owner, make_category(db))
    squat = catalog.create_exercise(db, coach, ExerciseCreateInput(name="Squat", muscle_groups=["legs"]))
    lunge = catalog.create_exercise(db, coach, ExerciseCreateInput(name="Lunge", muscle_groups=["legs"]))
    plank = catalog.create_exercise(db, coach, ExerciseCreateInput(name="Plank", muscle_groups=["core"]))

    a = catalog.add_workout_exercise(db, coach, workout.id, WorkoutExerciseInput(exercise_id=squat.id, order=1, sets=3))
    b = catalog.add_workout_exercise(db, coach, workout.id, WorkoutExerciseInput(exercise_id=lunge.id, order=2))
    c = catalog.add_workout_exercise(db, coach, workout.id, WorkoutExerciseInput(exercise_id=plank.id, order=3))
    with pytest.raises(Conflict):
        catalog.add_workout_exercise(db, coach, workout.id, WorkoutExerciseInput(exercise_id=plank.id, order=2))

    items = catalog.reorder_workout_exercises(db, coach, workout.id, [c.id, a.id, b.id])
    assert [(i.id, i.order) for i in items] == [(c.id, 1), (a.id, 2), (b.id, 3)]
    with pytest.raises(ValidationFailed):
        catalog.reorder_workout_exercises(db, coach, workout.id, [c.id, a.id])

    catalog.remove_workout_exercise(db, coach, workout.id, a.id)
    assert db.query(WorkoutExercise).count() == 2


def test_private_exercise_hidden_from_other_coaches(db):
    _, coach = _coach(db)
    other_user, other = _coach(db, "other@example.com")
    catalog.create_exercise(db, coach, ExerciseCreateInput(name="Secret Move", muscle_groups=["core"], is_public=False))
    assert [e.name for e in catalog.list_exercises(db, coach)] == ["Secret Move"]
    assert catalog.list_exercises(db, other) == []
    assert catalog.list_exercises(db, None) == []


def test_browse_filters_published_workouts(db):
    owner, _ = _coach(db)
    strength = make_category(db, "Strength")
    cardio = make_category(db, "Cardio")
    legs = Tag(name="Legs", type="BODY_PART")
    barbell = Equipment(name="Barbell")
    db.add_all([legs, barbell])
    db.flush()
    squat = Exercise(name="Squat", muscle_groups=["legs"], equipment_id=barbell.id, created_by=owner.id)
    db.add(squat)
    db.flush()

    heavy = make_workout(db, owner, strength, "Heavy Legs", difficulty="ADVANCED", estimated_duration=60)
    heavy.tags = [legs]
    heavy.exercises.append(WorkoutExercise(exercise_id=squat.id, order=1))
    make_workout(db, owner, cardio, "Easy Spin", estimated_duration=20, description="Gentle ride")
    make_workout(db, owner, strength, "Draft Plan", published=False)
    db.flush()

    def titles(**filters):
        items, total = catalog.browse_workouts(db, WorkoutFilterInput(**filters), PAGE)
        assert total == len(items)
        return sorted(i["title"] for i in items)

    assert titles() == ["Easy Spin", "Heavy Legs"]
    assert titles(category="strength") == ["Heavy Legs"]
    assert titles(category=str(cardio.id)) == ["Easy Spin"]
    assert titles(difficulty="ADVANCED") == ["Heavy Legs"]
    assert titles(max_duration=30) == ["Easy Spin"]
    assert titles(min_duration=30) == ["Heavy Legs"]
    assert titles(equipment=[barbell.id]) == ["Heavy Legs"]
    assert titles(tags=[legs.id]) == ["Heavy Legs"]
    assert titles(search="gentle") == ["Easy Spin"]
    assert titles(coach_id=owner.id) == ["Easy Spin", "Heavy Legs"]


def test_browse_paginates_and_reports_ratings(db):
    owner, _ = _coach(db)
    fan = make_user(db, "fan@example.com")
    fan2 = make_user(db, "fan2@example.com")
    category = make_category(db)
    workouts = [make_workout(db, owner, category, f"W{i}") for i in range(5)]
    db.add_all([Rating(workout_id=workouts[0].id, user_id=fan.id, rating=4), Rating(workout_id=workouts[0].id, user_id=fan2.id, rating=5)])
    db.flush()

    items, total = catalog.browse_workouts(db, WorkoutFilterInput(), PaginationInput(page=2, limit=2))
    assert total == 5
    assert len(items) == 2

    items, _ = catalog.browse_workouts(db, WorkoutFilterInput(search="W0"), PAGE)
    assert items[0]["rating_average"] == 4.5
    assert items[0]["rating_count"] == 2


def test_premium_detail_is_locked_for_non_subscribers(db):
    owner, coach = _coach(db)
    workout = make_workout(db, owner, make_category(db), "Premium Burn", public=False, instructions="Go hard")
    squat = catalog.create_exercise(db, coach, ExerciseCreateInput(name="Squat", muscle_groups=["legs"]))
    catalog.add_workout_exercise(db, coach, workout.id, WorkoutExerciseInput(exercise_id=squat.id, order=1))

    anonymous = catalog.get_workout_detail(db, "premium-burn", None)
    assert anonymous["locked"] is True
    assert anonymous["exercises"] == []
    assert anonymous["instructions"] is None
    assert anonymous["exercise_count"] == 1

    subscriber = catalog.get_workout_detail(db, workout.id, FakeActor(id=999, has_subscription=True))
    assert subscriber["locked"] is False
    assert subscriber["exercises"][0]["exercise"]["name"] == "Squat"

    assert catalog.get_workout_detail(db, workout.id, coach)["locked"] is False
    assert workout.view_count == 3


def test_unpublished_detail_only_for_owner_and_admin(db):
    owner, coach = _coach(db)
    workout = make_workout(db, owner, make_category(db), published=False)
    with pytest.raises(NotFound):
        catalog.get_workout_detail(db, workout.id, FakeActor(id=999, has_subscription=True))
    assert catalog.get_workout_detail(db, workout.id, coach)["id"] == workout.id
    assert catalog.get_workout_detail(db, workout.id, FakeActor(id=1000, role="ADMIN"))["id"] == workout.id


def test_coach_public_profile(db):
    owner, _ = _coach(db)
    category = make_category(db)
    make_workout(db, owner, category, "Live")
    make_workout(db, owner, category, "Hidden", published=False)
    profile = catalog.coach_public_profile(db, owner.id)
    assert [w["title"] for w in profile["workouts"]] == ["Live"]

    athlete = make_user(db, "a@example.com")
    with pytest.raises(NotFound):
        catalog.coach_public_profile(db, athlete.id)
