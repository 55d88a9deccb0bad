"""Registration, profile and admin moderation."""

from __future__ import annotations

import pytest

from core.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from core.models import AuthSession
from core.services import accounts, sessions
from core.validators import ChangePasswordInput, ProfileUpdateInput, SignUpInput, UserAdminUpdateInput
from tests.factories import make_user


def _sign_up(email: str = "new@example.com", role: str = "ATHLETE") -> SignUpInput:
    return SignUpInput(email=email, password="Secret!234", name=" New Person ", role=role)


def test_register_issues_verification_token_and_email(db, outbox):
    user, sent = accounts.register_user(db, _sign_up())
    assert sent is True
    assert user.name == "New Person"
    assert user.email_verified_at is None
    assert len(user.email_verification_token) == 64
    assert user.email_verification_expires_at is not None
    assert outbox[-1]["to"] == ["new@example.com"]
    assert f"/verify-email?token={user.email_verification_token}" in outbox[-1]["text"]


def test_register_rejects_duplicate_email(db):
    accounts.register_user(db, _sign_up())
    with pytest.raises(Conflict) as excinfo:
        accounts.register_user(db, _sign_up(email="NEW@example.com"))
    assert excinfo.value.message == "User with this email already exists"


def test_register_skips_verification_when_flag_set(db, monkeypatch):
    from core.config import get_settings

    monkeypatch.setenv("SKIP_EMAIL_VERIFICATION", "1")
    get_settings.cache_clear()
    user, sent = accounts.register_user(db, _sign_up(role="COACH"))
    assert sent is False
    assert user.email_verified_at is not None
    assert user.email_verification_token is None
    assert user.role == "COACH"


def test_update_profile(db):
    user = make_user(db, "a@example.com")
    body = ProfileUpdateInput(name="Alex", bio="Runner", profile_image_url="https://cdn.example.com/a.png")
    profile = accounts.update_profile(db, user.id, body)
    assert profile["name"] == "Alex"
    assert profile["image"] == "https://cdn.example.com/a.png"


def test_get_user_missing(db):
    with pytest.raises(NotFound):
        accounts.get_user(db, 999)


def test_change_password_checks_current_and_revokes_other_sessions(db):
    user = make_user(db, "a@example.com")
    current = sessions.sign_in(db, "a@example.com", "Password!234")
    sessions.sign_in(db, "a@example.com", "Password!234")

    with pytest.raises(ValidationFailed, match="Current password is incorrect"):
        accounts.change_password(
            db,
            user.id,
            ChangePasswordInput(current_password="Wrong!234", new_password="Fresh!2345", confirm_password="Fresh!2345"),
        )

    revoked = accounts.change_password(
        db,
        user.id,
        ChangePasswordInput(current_password="Password!234", new_password="Fresh!2345", confirm_password="Fresh!2345"),
        current_session_id=current.session_id,
    )
    assert revoked == 1
    assert db.query(AuthSession).one().session_id == current.session_id
    assert sessions.sign_in(db, "a@example.com", "Fresh!2345").id == user.id


def test_list_users_filters_and_counts(db):
    make_user(db, "coach@example.com", role="COACH", name="Casey")
    make_user(db, "athlete@example.com", name="Alex")
    make_user(db, "idle@example.com", name="Idle", is_active=False)

    rows, total = accounts.list_users(db, role="COACH")
    assert total == 1 and rows[0].email == "coach@example.com"

    rows, total = accounts.list_users(db, is_active=False)
    assert [u.email for u in rows] == ["idle@example.com"]

    rows, total = accounts.list_users(db, search="ALEX")
    assert total == 1 and rows[0].name == "Alex"

    rows, total = accounts.list_users(db, limit=2)
    assert total == 3 and len(rows) == 2


def test_admin_can_change_role_and_deactivate(db):
    admin = make_user(db, "admin@example.com", role="ADMIN")
    user = make_user(db, "a@example.com")
    sessions.sign_in(db, "a@example.com", "Password!234")

    accounts.update_user(db, admin.id, user.id, UserAdminUpdateInput(role="COACH"))
    assert user.role == "COACH"

    accounts.update_user(db, admin.id, user.id, UserAdminUpdateInput(is_active=False))
    assert user.is_active is False
    assert db.query(AuthSession).filter_by(user_id=user.id).count() == 0


def test_admin_cannot_moderate_self(db):
    admin = make_user(db, "admin@example.com", role="ADMIN")
    with pytest.raises(PermissionDenied):
        accounts.update_user(db, admin.id, admin.id, UserAdminUpdateInput(is_active=False))
    with pytest.raises(PermissionDenied):
        accounts.update_user(db, admin.id, admin.id, UserAdminUpdateInput(role="COACH"))


def _saved_verification_token(email: str):
    from sqlalchemy import select

    from core.db import get_session_factory
    from core.models import User

    with get_session_factory()() as other:
        return other.execute(select(User.email_verification_token).where(User.email == email)).scalar_one_or_none()


def test_register_survives_email_outage(db, failing_email):
    user, sent = accounts.register_user(db, _sign_up())
    assert sent is False
    assert _saved_verification_token("new@example.com") == user.email_verification_token


def test_register_saves_token_before_sending(db, monkeypatch):
    from core.services.email import EmailClient

    seen = []

    def send(self, to, message):
        seen.append(_saved_verification_token(to))
        return {"id": "test"}

    monkeypatch.setattr(EmailClient, "send", send)
    user, sent = accounts.register_user(db, _sign_up())
    assert sent is True
    assert seen == [user.email_verification_token]
