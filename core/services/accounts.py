from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.config import get_settings
from core.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from core.models import User
from core.security import generate_token, hash_password, verify_password
from core.services.email import send_verification_email
from core.services.sessions import revoke_user_sessions
from core.timeutil import utcnow
from core.validators import ChangePasswordInput, ProfileUpdateInput, SignUpInput, UserAdminUpdateInput

logger = logging.getLogger(__name__)


def user_to_dict(user: User) -> dict[str, Any]:
    subscription = user.subscription
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "bio": user.bio,
        "profile_image_url": user.profile_image_url,
        "image": user.profile_image_url or user.image,
        "role": user.role,
        "is_active": user.is_active,
        "email_verified": user.email_verified_at is not None,
        "has_subscription": bool(subscription is not None and subscription.is_active),
        "last_login_at": user.last_login_at,
        "created_at": user.created_at,
    }


def register_user(s: Session, body: SignUpInput) -> tuple[User, bool]:
    """Create the account and send the verification email.

    The user is committed before the email goes out. Returns the user and
    whether a verification email went out.
    """
    settings = get_settings()
    existing = s.execute(select(User.id).where(User.email == body.email)).scalar_one_or_none()
    if existing is not None:
        raise Conflict("User with this email already exists", code="EMAIL_TAKEN")

    user = User(
        email=body.email,
        password_hash=hash_password(body.password),
        name=body.name.strip(),
        role=body.role,
        is_active=True,
        failed_attempts=0,
    )
    if settings.skip_email_verification:
        user.email_verified_at = utcnow()
    else:
        user.email_verification_token = generate_token()
        user.email_verification_expires_at = utcnow() + timedelta(hours=settings.verification_token_hours)
    s.add(user)
    s.flush()
    logger.info("user_registered", extra={"user_id": user.id, "role": user.role})
    s.commit()

    email_sent = False
    if user.email_verification_token:
        email_sent = send_verification_email(user.email, user.email_verification_token, user.name)
    return user, email_sent


def get_user(s: Session, user_id: int) -> User:
    user = s.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def get_profile(s: Session, user_id: int) -> dict[str, Any]:
    return user_to_dict(get_user(s, user_id))


def update_profile(s: Session, user_id: int, body: ProfileUpdateInput) -> dict[str, Any]:
    user = get_user(s, user_id)
    user.name = body.name.strip()
    user.bio = body.bio
    user.profile_image_url = body.profile_image_url
    s.flush()
    return user_to_dict(user)


def change_password(s: Session, user_id: int, body: ChangePasswordInput, current_session_id: str | None = None) -> int:
    """Replace the password and sign out every other session; returns how many were revoked."""
    user = get_user(s, user_id)
    if not verify_password(body.current_password, user.password_hash):
        raise ValidationFailed("Current password is incorrect", code="INVALID_PASSWORD")
    user.password_hash = hash_password(body.new_password)
    s.flush()
    return revoke_user_sessions(s, user.id, except_session_id=current_session_id)


# ── Admin moderation ─────────────────────────────────────────────────────

def list_users(
    s: Session,
    role: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[User], int]:
    q = select(User)
    c = select(func.count()).select_from(User)
    filters = []
    if role:
        filters.append(User.role == role)
    if is_active is not None:
        filters.append(User.is_active == is_active)
    if search:
        pattern = f"%{search.lower()}%"
        filters.append(func.lower(User.email).like(pattern) | func.lower(func.coalesce(User.name, "")).like(pattern))
    if filters:
        q = q.where(*filters)
        c = c.where(*filters)
    rows = s.execute(q.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit)).scalars().all()
    total = s.execute(c).scalar_one()
    return list(rows), total


def update_user(s: Session, admin_id: int, user_id: int, body: UserAdminUpdateInput) -> User:
    user = get_user(s, user_id)
    if user.id == admin_id:
        if body.is_active is False:
            raise PermissionDenied("You cannot deactivate your own account", code="SELF_MODERATION")
        if body.role is not None and body.role != "ADMIN":
            raise PermissionDenied("You cannot change your own role", code="SELF_MODERATION")

    if body.role is not None:
        user.role = body.role
    if body.is_active is not None:
        user.is_active = body.is_active
        if not body.is_active:
            revoke_user_sessions(s, user.id)
    s.flush()
    logger.info(
        "user_moderated",
        extra={"admin_id": admin_id, "user_id": user.id, "role": user.role, "is_active": user.is_active},
    )
    return user
