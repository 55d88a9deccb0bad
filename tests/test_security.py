import datetime as dt

import pytest

from core.security import (
    PasswordPolicyError,
    account_locked,
    enforce_password_policy,
    generate_token,
    hash_password,
    register_failed_attempt,
    reset_failed_attempts,
    validate_password_policy,
    verify_password,
)
from core.timeutil import utcnow


class U:
    def __init__(self):
        self.failed_attempts = 0
        self.locked_until = None


def test_password_policy_rejects_weak():
    with pytest.raises(PasswordPolicyError):
        enforce_password_policy("weak")


def test_password_policy_requires_special_character():
    ok, message = validate_password_policy("longenoughpassword")
    assert ok is False
    assert "special character" in message


def test_password_policy_rejects_overlong():
    with pytest.raises(PasswordPolicyError, match="at most 128"):
        enforce_password_policy("a!" * 65)


def test_password_policy_accepts_strong():
    assert validate_password_policy("Str0ng!pass") == (True, "ok")


def test_hash_and_verify_roundtrip():
    hashed = hash_password("Secret!234")
    assert hashed != "Secret!234"
    assert verify_password("Secret!234", hashed)
    assert not verify_password("Wrong!234", hashed)


def test_verify_password_tolerates_garbage_hash():
    assert verify_password("Secret!234", "") is False
    assert verify_password("Secret!234", "not-a-bcrypt-hash") is False


def test_hash_password_enforces_policy():
    with pytest.raises(PasswordPolicyError):
        hash_password("short")


def test_generate_token_is_64_hex_chars():
    token = generate_token()
    assert len(token) == 64
    int(token, 16)
    assert token != generate_token()


def test_lockout_after_retries():
    u = U()
    for _ in range(4):
        register_failed_attempt(u)
    assert u.locked_until is None
    register_failed_attempt(u)
    assert u.locked_until is not None
    assert account_locked(u.locked_until)
    u.locked_until = utcnow() - dt.timedelta(minutes=1)
    assert not account_locked(u.locked_until)


def test_reset_failed_attempts_clears_lock():
    u = U()
    for _ in range(5):
        register_failed_attempt(u)
    reset_failed_attempts(u)
    assert u.failed_attempts == 0
    assert u.locked_until is None
