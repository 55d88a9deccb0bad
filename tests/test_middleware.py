"""Route guard decisions (pure path/role logic)."""

from __future__ import annotations

import pytest

from api.middleware import decide, is_public_route, matches_route, required_role, should_skip


@pytest.mark.parametrize(
    "path",
    ["/_next/static/chunk.js", "/api/v1/health", "/static/logo.png", "/favicon.ico", "/docs", "/openapi.json"],
)
def test_assets_and_api_are_skipped(path):
    assert should_skip(path)
    assert decide(path, None).allow


@pytest.mark.parametrize(
    "path", ["/", "/sign-in", "/sign-up", "/forgot-password", "/reset-password", "/verify-email", "/browse"]
)
def test_public_pages_allow_anonymous(path):
    assert is_public_route(path)
    assert decide(path, None).allow


def test_dynamic_segments_match_one_segment():
    assert matches_route("/workout/abc", "/workout/[id]")
    assert matches_route("/coach/12", "/coach/[id]")
    assert not matches_route("/coach", "/coach/[id]")
    assert not matches_route("/workout/abc/edit", "/workout/[id]")


def test_public_prefix_matches_subpaths():
    assert is_public_route("/browse/strength")
    assert not is_public_route("/browser")


def test_anonymous_is_sent_to_sign_in_with_callback():
    decision = decide("/athlete/progress", None)
    assert not decision.allow
    assert decision.redirect_to == "/sign-in?callbackUrl=%2Fathlete%2Fprogress"


def test_coach_dashboard_is_not_public():
    assert required_role("/coach") == "COACH"
    assert decide("/coach", None).redirect_to == "/sign-in?callbackUrl=%2Fcoach"


def test_public_coach_profile_is_open_to_anyone():
    assert decide("/coach/5", None).allow
    assert decide("/coach/5", "ATHLETE").allow


@pytest.mark.parametrize(
    "path,role",
    [("/admin", "COACH"), ("/admin/users", "ATHLETE"), ("/coach", "ATHLETE"), ("/athlete", "COACH"), ("/athlete", "ADMIN")],
)
def test_wrong_role_is_unauthorized(path, role):
    decision = decide(path, role)
    assert not decision.allow
    assert decision.redirect_to == "/unauthorized"


@pytest.mark.parametrize("path,role", [("/admin", "ADMIN"), ("/coach", "COACH"), ("/athlete", "ATHLETE")])
def test_matching_role_is_allowed(path, role):
    assert decide(path, role).allow


@pytest.mark.parametrize("role", ["ADMIN", "COACH", "ATHLETE"])
def test_profile_and_settings_need_any_session(role):
    assert decide("/profile", role).allow
    assert decide("/settings", role).allow
    assert not decide("/settings", None).allow
