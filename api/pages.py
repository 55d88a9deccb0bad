"""Page routes.

Each page returns the JSON view model it would render. Access control runs
first in :mod:`api.middleware`; the helpers here add the per-page checks
(verified email, active subscription) that redirect instead of failing.
"""

from __future__ import annotations

from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from api.auth import get_current_user, get_optional_user
from api.catalog import workout_filters
from api.deps import get_db, get_pagination, page_count
from core.errors import AppError
from core.services import accounts, billing, catalog, dashboards, email_verification, password_reset
from core.services.sessions import SessionUser
from core.validators import PaginationInput, WorkoutFilterInput

router = APIRouter(tags=["pages"])

DB = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[SessionUser, Depends(get_current_user)]
OptionalUser = Annotated[Optional[SessionUser], Depends(get_optional_user)]


def _viewer(user: Optional[SessionUser]) -> Optional[dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "role": user.role,
        "email_verified": user.is_verified,
        "has_subscription": user.has_subscription,
    }


def page(name: str, user: Optional[SessionUser] = None, **data: Any) -> dict[str, Any]:
    return {"page": name, "user": _viewer(user), **data}


def require_email_verified(user: SessionUser) -> Optional[RedirectResponse]:
    if not user.is_verified:
        return RedirectResponse("/verify-email", status_code=307)
    return None


def require_subscription(user: SessionUser) -> Optional[RedirectResponse]:
    if user.role == "ATHLETE" and not user.has_subscription:
        return RedirectResponse("/athlete/subscription", status_code=307)
    return None


# ── Public ───────────────────────────────────────────────────────────────

@router.get("/")
def home(db: DB, user: OptionalUser):
    latest = catalog.browse_workouts(db, WorkoutFilterInput(), PaginationInput(page=1, limit=6))[0]
    return page("home", user, featured_workouts=latest, plans=billing.plans_payload())


@router.get("/sign-in")
def sign_in_page(user: OptionalUser, callback_url: Optional[str] = Query(None, alias="callbackUrl")):
    return page("sign-in", user, callback_url=callback_url or "/", fields=["email", "password"])


@router.get("/sign-up")
def sign_up_page(user: OptionalUser):
    return page("sign-up", user, fields=["name", "email", "password", "role"], roles=["ATHLETE", "COACH"])


@router.get("/forgot-password")
def forgot_password_page(user: OptionalUser):
    return page("forgot-password", user, fields=["email"])


@router.get("/reset-password")
def reset_password_page(db: DB, token: Optional[str] = None):
    if not token:
        return page("reset-password", token_valid=False, message=password_reset.INVALID_TOKEN)
    try:
        result = password_reset.validate_reset_token(db, token)
    except AppError as exc:
        return page("reset-password", token_valid=False, message=exc.message)
    return page(
        "reset-password",
        token_valid=True,
        token=token,
        email=result["email"],
        expires_at=result["expires_at"],
        fields=["password", "confirm_password"],
    )


@router.get("/verify-email")
def verify_email_page(db: DB, user: OptionalUser, token: Optional[str] = None):
    if not token:
        return page(
            "verify-email",
            user,
            verified=bool(user and user.is_verified),
            message="Check your inbox for a verification link.",
        )
    try:
        email_verification.verify_email_with_token(db, token)
    except AppError as exc:
        return page("verify-email", user, verified=False, message=exc.message)
    return page("verify-email", user, verified=True, message=email_verification.VERIFIED)


@router.get("/browse")
def browse_page(
    db: DB,
    user: OptionalUser,
    filters: Annotated[WorkoutFilterInput, Depends(workout_filters)],
    pagination: Annotated[PaginationInput, Depends(get_pagination)],
):
    items, total = catalog.browse_workouts(db, filters, pagination)
    return page(
        "browse",
        user,
        filters=filters.model_dump(),
        workouts=items,
        total=total,
        page_number=pagination.page,
        pages=page_count(total, pagination.limit),
        categories=[catalog.category_to_dict(c) for c in catalog.list_categories(db)],
    )


@router.get("/workout/{id_or_slug}")
def workout_page(id_or_slug: str, db: DB, user: OptionalUser):
    detail = catalog.get_workout_detail(db, id_or_slug, user)
    return page("workout", user, workout=detail, subscribe_url="/athlete/subscription" if detail["locked"] else None)


@router.get("/coach/{coach_id:int}")
def coach_profile_page(coach_id: int, db: DB, user: OptionalUser):
    return page("coach-profile", user, coach=catalog.coach_public_profile(db, coach_id))


@router.get("/unauthorized")
def unauthorized_page(user: OptionalUser):
    return page("unauthorized", user, message="You do not have permission to access this page.")


# ── Authenticated ────────────────────────────────────────────────────────

@router.get("/admin")
def admin_page(db: DB, user: CurrentUser):
    return page("admin", user, overview=dashboards.admin_overview(db))


@router.get("/coach")
def coach_page(db: DB, user: CurrentUser):
    redirect = require_email_verified(user)
    if redirect is not None:
        return redirect
    return page("coach", user, overview=dashboards.coach_overview(db, user.id))


@router.get("/athlete")
def athlete_page(db: DB, user: CurrentUser):
    redirect = require_email_verified(user) or require_subscription(user)
    if redirect is not None:
        return redirect
    return page("athlete", user, overview=dashboards.athlete_overview(db, user.id))


@router.get("/athlete/subscription")
def athlete_subscription_page(db: DB, user: CurrentUser):
    redirect = require_email_verified(user)
    if redirect is not None:
        return redirect
    current = billing.subscription_to_dict(billing.get_subscription(db, user.id))
    return page("athlete-subscription", user, plans=billing.plans_payload(), subscription=current)


@router.get("/profile")
def profile_page(db: DB, user: CurrentUser):
    return page(
        "profile",
        user,
        profile=accounts.get_profile(db, user.id),
        fields=["name", "bio", "profile_image_url"],
    )


@router.get("/settings")
def settings_page(db: DB, user: CurrentUser):
    return page(
        "settings",
        user,
        profile=accounts.get_profile(db, user.id),
        subscription=billing.subscription_to_dict(billing.get_subscription(db, user.id)),
        password_fields=["current_password", "new_password", "confirm_password"],
    )
