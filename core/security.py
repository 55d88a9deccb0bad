from __future__ import annotations

import re
import secrets
from datetime import datetime, timedelta
from functools import lru_cache

from passlib.context import CryptContext

from core.config import get_settings
from core.timeutil import utcnow

SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'
_SPECIAL_RE = re.compile(r'[!@#$%^&*(),.?":{}|<>]')

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
LOCKOUT_THRESHOLD = 5
LOCKOUT_MINUTES = 15


class PasswordPolicyError(ValueError):
    pass


@lru_cache(maxsize=4)
def _pwd_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def pwd_context() -> CryptContext:
    return _pwd_context(get_settings().bcrypt_rounds)


def enforce_password_policy(password: str) -> None:
    if len(password) < PASSWORD_MIN_LENGTH:
        raise PasswordPolicyError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        raise PasswordPolicyError(f"Password must be at most {PASSWORD_MAX_LENGTH} characters")
    if not _SPECIAL_RE.search(password):
        raise PasswordPolicyError("Password must contain at least one special character")


def validate_password_policy(password: str) -> tuple[bool, str]:
    try:
        enforce_password_policy(password)
    except PasswordPolicyError as exc:
        return False, str(exc)
    return True, "ok"


def hash_password(password: str) -> str:
    enforce_password_policy(password)
    return pwd_context().hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context().verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def generate_token() -> str:
    """64 hex characters from 32 random bytes."""
    return secrets.token_hex(32)


def account_locked(locked_until: datetime | None) -> bool:
    if not locked_until:
        return False
    return locked_until > utcnow()


def register_failed_attempt(user, threshold: int = LOCKOUT_THRESHOLD, lock_minutes: int = LOCKOUT_MINUTES) -> None:
    user.failed_attempts = (user.failed_attempts or 0) + 1
    if user.failed_attempts >= threshold:
        user.locked_until = utcnow() + timedelta(minutes=lock_minutes)


def reset_failed_attempts(user) -> None:
    user.failed_attempts = 0
    user.locked_until = None
