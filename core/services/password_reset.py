"""Password reset flow: request, token validation, redemption and cleanup."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from core.config import get_settings
from core.errors import AppError, ValidationFailed
from core.models import User
from core.security import generate_token, hash_password, reset_failed_attempts
from core.services.email import send_password_reset_email, send_password_reset_success_email
from core.services.sessions import revoke_user_sessions
from core.timeutil import utcnow
from core.validators import ResetPasswordInput

logger = logging.getLogger(__name__)

REQUEST_MESSAGE = "If an account with that email exists, we've sent a password reset link."
INVALID_TOKEN = "Invalid or expired reset token"
RESET_DONE = "Password has been reset successfully. You can now sign in with your new password."
RESET_FAILED = "Failed to reset password"


def request_password_reset(s: Session, email: str) -> str:
    settings = get_settings()
    user = s.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()
    if user is None or not user.is_active:
        return REQUEST_MESSAGE

    user.password_reset_token = generate_token()
    user.password_reset_expires_at = utcnow() + timedelta(minutes=settings.reset_token_minutes)
    s.commit()
    send_password_reset_email(user.email, user.password_reset_token, user.name)
    logger.info("password_reset_requested", extra={"user_id": user.id})
    return REQUEST_MESSAGE


def _user_for_token(s: Session, token: str) -> User:
    user = s.execute(
        select(User).where(
            User.password_reset_token == token,
            User.password_reset_expires_at > utcnow(),
            User.is_active.is_(True),
        )
    ).scalar_one_or_none()
    if user is None:
        raise ValidationFailed(INVALID_TOKEN, code="INVALID_TOKEN")
    return user


def validate_reset_token(s: Session, token: str) -> dict[str, Any]:
    user = _user_for_token(s, token)
    return {"valid": True, "email": user.email, "expires_at": user.password_reset_expires_at}


def reset_password_with_token(s: Session, body: ResetPasswordInput) -> str:
    user = _user_for_token(s, body.token)
    try:
        user.password_hash = hash_password(body.password)
        user.password_reset_token = None
        user.password_reset_expires_at = None
        reset_failed_attempts(user)
        s.flush()
        revoked = revoke_user_sessions(s, user.id)
        s.commit()
    except AppError:
        raise
    except Exception as exc:
        logger.exception("password_reset_failed", extra={"user_id": user.id})
        raise AppError(RESET_FAILED, code="RESET_FAILED") from exc

    logger.info("password_reset_completed", extra={"user_id": user.id, "sessions_revoked": revoked})
    send_password_reset_success_email(user.email, user.name)
    return RESET_DONE


def cleanup_expired_reset_tokens(s: Session) -> int:
    """Clear expired reset tokens and stale verification tokens of verified users."""
    now = utcnow()
    reset_result = s.execute(
        update(User)
        .where(User.password_reset_expires_at.is_not(None), User.password_reset_expires_at < now)
        .values(password_reset_token=None, password_reset_expires_at=None)
    )
    s.execute(
        update(User)
        .where(
            User.email_verified_at.is_not(None),
            User.email_verification_expires_at.is_not(None),
            User.email_verification_expires_at < now,
        )
        .values(email_verification_token=None, email_verification_expires_at=None)
    )
    count = reset_result.rowcount or 0
    logger.info("reset_tokens_cleaned", extra={"count": count})
    return count
