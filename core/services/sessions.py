"""Credential sign-in and database-backed sessions.

A session row is the source of truth; the token handed to clients only
references it. Claims (role, subscription, verification) are rebuilt from
the user row every time a session is resolved so they never go stale.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from core.config import get_settings
from core.db import retry_db_operation
from core.errors import AuthenticationFailed
from core.models import AuthSession, User
from core.security import account_locked, register_failed_attempt, reset_failed_attempts, verify_password
from core.timeutil import utcnow

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
ACCOUNT_LOCKED = "Account temporarily locked"
ACCOUNT_DEACTIVATED = "Account has been deactivated. Please contact support."
EMAIL_NOT_VERIFIED = "Please verify your email address before signing in."


@dataclass(frozen=True)
class SessionUser:
    id: int
    email: str
    name: str | None
    image: str | None
    role: str
    email_verified: datetime | None
    has_subscription: bool
    session_id: str
    expires_at: datetime

    @property
    def is_verified(self) -> bool:
        return self.email_verified is not None


def find_user_by_email(s: Session, email: str) -> User | None:
    normalized = email.strip().lower()
    return retry_db_operation(
        lambda: s.execute(select(User).where(User.email == normalized)).scalar_one_or_none(),
        session=s,
    )


def authenticate(s: Session, email: str, password: str) -> User:
    """Check credentials and account state, raising AuthenticationFailed on any refusal.

    Failed-attempt bookkeeping is committed before raising so the caller's
    rollback does not undo it.
    """
    settings = get_settings()
    user = find_user_by_email(s, email)
    if user is None:
        raise AuthenticationFailed(INVALID_CREDENTIALS, code="INVALID_CREDENTIALS")

    locked = account_locked(user.locked_until)
    if not verify_password(password, user.password_hash):
        if not locked:
            register_failed_attempt(user)
            s.commit()
        logger.info("sign_in_failed", extra={"user_id": user.id, "failed_attempts": user.failed_attempts})
        raise AuthenticationFailed(INVALID_CREDENTIALS, code="INVALID_CREDENTIALS")

    if locked:
        raise AuthenticationFailed(ACCOUNT_LOCKED, code="ACCOUNT_LOCKED")

    if not user.is_active:
        raise AuthenticationFailed(ACCOUNT_DEACTIVATED, code="ACCOUNT_DEACTIVATED")

    if user.email_verified_at is None and not settings.skip_email_verification:
        raise AuthenticationFailed(EMAIL_NOT_VERIFIED, code="EMAIL_NOT_VERIFIED")

    reset_failed_attempts(user)
    user.last_login_at = utcnow()
    s.flush()
    return user


def create_session(s: Session, user: User) -> AuthSession:
    settings = get_settings()
    now = utcnow()
    auth_session = AuthSession(
        session_id=secrets.token_urlsafe(32),
        user_id=user.id,
        expires_at=now + timedelta(seconds=settings.session_max_age_seconds),
        created_at=now,
        refreshed_at=now,
    )
    s.add(auth_session)
    s.flush()
    logger.info("session_created", extra={"user_id": user.id})
    return auth_session


def sign_in(s: Session, email: str, password: str) -> SessionUser:
    user = authenticate(s, email, password)
    auth_session = create_session(s, user)
    return build_session_user(user, auth_session)


def build_session_user(user: User, auth_session: AuthSession) -> SessionUser:
    subscription = user.subscription
    return SessionUser(
        id=user.id,
        email=user.email,
        name=user.name,
        image=user.profile_image_url or user.image,
        role=user.role,
        email_verified=user.email_verified_at,
        has_subscription=bool(subscription is not None and subscription.is_active),
        session_id=auth_session.session_id,
        expires_at=auth_session.expires_at,
    )


def _load_session(s: Session, session_id: str) -> AuthSession | None:
    return retry_db_operation(
        lambda: s.execute(select(AuthSession).where(AuthSession.session_id == session_id)).scalar_one_or_none(),
        session=s,
    )


def resolve_session(s: Session, session_id: str) -> SessionUser | None:
    """Return fresh claims for a live session, or None when it is unknown, expired or its user is inactive."""
    if not session_id:
        return None
    auth_session = _load_session(s, session_id)
    if auth_session is None:
        return None
    if auth_session.expires_at <= utcnow():
        s.delete(auth_session)
        s.flush()
        return None
    user = s.get(User, auth_session.user_id)
    if user is None or not user.is_active:
        return None
    refresh_session(s, auth_session)
    return build_session_user(user, auth_session)


def refresh_session(s: Session, auth_session: AuthSession) -> bool:
    settings = get_settings()
    now = utcnow()
    if now - auth_session.refreshed_at < timedelta(seconds=settings.session_update_age_seconds):
        return False
    auth_session.refreshed_at = now
    auth_session.expires_at = now + timedelta(seconds=settings.session_max_age_seconds)
    s.flush()
    return True


def revoke_session(s: Session, session_id: str) -> bool:
    result = s.execute(delete(AuthSession).where(AuthSession.session_id == session_id))
    return bool(result.rowcount)


def revoke_user_sessions(s: Session, user_id: int, except_session_id: str | None = None) -> int:
    stmt = delete(AuthSession).where(AuthSession.user_id == user_id)
    if except_session_id:
        stmt = stmt.where(AuthSession.session_id != except_session_id)
    result = s.execute(stmt)
    if result.rowcount:
        logger.info("sessions_revoked", extra={"user_id": user_id, "count": result.rowcount})
    return result.rowcount or 0


def purge_expired_sessions(s: Session) -> int:
    result = s.execute(delete(AuthSession).where(AuthSession.expires_at <= utcnow()))
    return result.rowcount or 0
