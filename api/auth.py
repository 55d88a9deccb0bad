from __future__ import annotations

import calendar
from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from api.observability import bind_user_id
from core.config import get_settings
from core.db import session_scope
from core.errors import AuthenticationFailed, PermissionDenied, SubscriptionRequired
from core.services.sessions import SessionUser, resolve_session

SESSION_COOKIE = "session_token"

bearer_scheme = HTTPBearer(auto_error=False)


def _epoch(value: datetime) -> int:
    return calendar.timegm(value.utctimetuple())


def issue_session_token(user: SessionUser) -> str:
    settings = get_settings()
    claims = {
        "sub": str(user.id),
        "sid": user.session_id,
        "email": user.email,
        "role": user.role,
        "email_verified": user.is_verified,
        "has_subscription": user.has_subscription,
        "exp": _epoch(user.expires_at),
    }
    return jwt.encode(claims, settings.auth_secret, algorithm=settings.jwt_algorithm)


def decode_session_token(token: str) -> dict:
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.auth_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthenticationFailed("Invalid or expired session", code="INVALID_TOKEN") from exc
    if not claims.get("sub") or not claims.get("sid"):
        raise AuthenticationFailed("Invalid or expired session", code="INVALID_TOKEN")
    return claims


def token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = None) -> Optional[str]:
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE) or None


def user_from_token(token: Optional[str]) -> Optional[SessionUser]:
    """Resolve a token to fresh session claims; None when missing, invalid or revoked."""
    if not token:
        return None
    try:
        claims = decode_session_token(token)
    except AuthenticationFailed:
        return None
    with session_scope() as s:
        user = resolve_session(s, claims["sid"])
    if user is None or str(user.id) != str(claims["sub"]):
        return None
    return user


def set_session_cookie(response: Response, token: str, expires_at: datetime) -> None:
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_max_age_seconds,
        expires=_epoch(expires_at),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[SessionUser]:
    user = user_from_token(token_from_request(request, credentials))
    if user is not None:
        bind_user_id(user.id)
    return user


def get_current_user(user: Optional[SessionUser] = Depends(get_optional_user)) -> SessionUser:
    if user is None:
        raise AuthenticationFailed("Authentication required", code="AUTH_REQUIRED")
    return user


def require_roles(*allowed_roles: str) -> Callable[[SessionUser], SessionUser]:
    allowed = {r.upper() for r in allowed_roles}

    def _dependency(user: SessionUser = Depends(get_current_user)) -> SessionUser:
        # Admins pass every role-scoped endpoint for moderation.
        if user.role != "ADMIN" and user.role not in allowed:
            raise PermissionDenied(
                "You do not have access to this resource",
                code="FORBIDDEN_ROLE",
                required_roles=sorted(allowed),
                role=user.role,
            )
        return user

    return _dependency


def require_verified_email(user: SessionUser = Depends(get_current_user)) -> SessionUser:
    if not user.is_verified:
        raise PermissionDenied("Please verify your email address", code="EMAIL_NOT_VERIFIED")
    return user


def require_subscription(user: SessionUser = Depends(require_verified_email)) -> SessionUser:
    if user.role == "ATHLETE" and not user.has_subscription:
        raise SubscriptionRequired("An active subscription is required")
    return user


require_admin = require_roles("ADMIN")
require_coach = require_roles("COACH")
require_athlete = require_roles("ATHLETE")
