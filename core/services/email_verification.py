"""Email verification: token issue, validation, redemption and status checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.config import get_settings
from core.errors import NotFound, ValidationFailed
from core.models import User
from core.security import generate_token
from core.services.email import send_verification_email, send_verification_success_email
from core.timeutil import utcnow

logger = logging.getLogger(__name__)

RESEND_MESSAGE = "If an unverified account with that email exists, we've sent a verification link."
INVALID_TOKEN = "Invalid or expired verification token"
ALREADY_VERIFIED = "Email is already verified"
TOKEN_VALID = "Token is valid"
VERIFIED = "Email verified successfully! Welcome to Coaching Platform."
USER_NOT_FOUND = "User not found"


@dataclass(frozen=True)
class VerificationStatus:
    email: str
    is_verified: bool
    verified_at: datetime | None
    has_pending_token: bool


def _user_for_token(s: Session, token: str) -> User:
    user = s.execute(
        select(User).where(
            User.email_verification_token == token,
            User.email_verification_expires_at > utcnow(),
            User.is_active.is_(True),
        )
    ).scalar_one_or_none()
    if user is None:
        raise ValidationFailed(INVALID_TOKEN, code="INVALID_TOKEN")
    return user


def resend_verification(s: Session, email: str) -> str:
    """Issue a fresh token; the reply never reveals whether the account exists."""
    settings = get_settings()
    user = s.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()
    if user is None or not user.is_active or user.email_verified_at is not None:
        return RESEND_MESSAGE

    user.email_verification_token = generate_token()
    user.email_verification_expires_at = utcnow() + timedelta(hours=settings.verification_token_hours)
    s.commit()
    send_verification_email(user.email, user.email_verification_token, user.name)
    logger.info("verification_resent", extra={"user_id": user.id})
    return RESEND_MESSAGE


def validate_verification_token(s: Session, token: str) -> dict:
    user = _user_for_token(s, token)
    if user.email_verified_at is not None:
        return {"valid": True, "already_verified": True, "email": user.email, "message": ALREADY_VERIFIED}
    return {"valid": True, "already_verified": False, "email": user.email, "message": TOKEN_VALID}


def verify_email_with_token(s: Session, token: str) -> User:
    user = _user_for_token(s, token)
    if user.email_verified_at is None:
        user.email_verified_at = utcnow()
    user.email_verification_token = None
    user.email_verification_expires_at = None
    s.commit()
    logger.info("email_verified", extra={"user_id": user.id})
    send_verification_success_email(user.email, user.name)
    return user


def check_verification_status(s: Session, email: str) -> VerificationStatus:
    user = s.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()
    if user is None or not user.is_active:
        raise NotFound(USER_NOT_FOUND)
    pending = bool(
        user.email_verification_token
        and user.email_verification_expires_at
        and user.email_verification_expires_at > utcnow()
    )
    return VerificationStatus(
        email=user.email,
        is_verified=user.email_verified_at is not None,
        verified_at=user.email_verified_at,
        has_pending_token=pending,
    )
