from __future__ import annotations

from datetime import timedelta

import pytest

from core.errors import NotFound, ValidationFailed
from core.services import email_verification as ev
from core.timeutil import utcnow
from tests.factories import make_user


def _pending(db, email="new@example.com", hours=24):
    return make_user(
        db,
        email,
        verified=False,
        email_verification_token="t" * 64,
        email_verification_expires_at=utcnow() + timedelta(hours=hours),
    )


def test_verify_email_marks_user_and_clears_token(db, outbox):
    user = _pending(db)
    ev.verify_email_with_token(db, "t" * 64)
    assert user.email_verified_at is not None
    assert user.email_verification_token is None
    assert outbox[-1]["subject"].startswith("Email Verified Successfully")


def test_token_is_single_use(db):
    _pending(db)
    ev.verify_email_with_token(db, "t" * 64)
    with pytest.raises(ValidationFailed, match="Invalid or expired verification token"):
        ev.verify_email_with_token(db, "t" * 64)


def test_expired_token_is_rejected(db):
    _pending(db, hours=-1)
    with pytest.raises(ValidationFailed):
        ev.validate_verification_token(db, "t" * 64)


def test_validate_reports_email(db):
    _pending(db)
    result = ev.validate_verification_token(db, "t" * 64)
    assert result == {"valid": True, "already_verified": False, "email": "new@example.com", "message": ev.TOKEN_VALID}


def test_resend_is_silent_for_unknown_and_verified(db, outbox):
    make_user(db, "done@example.com")
    assert ev.resend_verification(db, "ghost@example.com") == ev.RESEND_MESSAGE
    assert ev.resend_verification(db, "done@example.com") == ev.RESEND_MESSAGE
    assert not outbox


def test_resend_rotates_token(db, outbox):
    user = _pending(db)
    assert ev.resend_verification(db, "NEW@example.com") == ev.RESEND_MESSAGE
    assert user.email_verification_token != "t" * 64
    assert user.email_verification_token in outbox[-1]["text"]


def test_status(db):
    _pending(db)
    status = ev.check_verification_status(db, "new@example.com")
    assert status.is_verified is False
    assert status.has_pending_token is True
    with pytest.raises(NotFound):
        ev.check_verification_status(db, "ghost@example.com")


def test_verify_and_resend_survive_email_outage(db, failing_email):
    user = _pending(db)
    ev.verify_email_with_token(db, "t" * 64)
    assert user.email_verified_at is not None

    other = _pending(db, "other@example.com")
    assert ev.resend_verification(db, "other@example.com") == ev.RESEND_MESSAGE
    assert other.email_verification_token != "t" * 64
    assert ev.check_verification_status(db, "other@example.com").has_pending_token is True
