"""Page route guard.

Runs before every page request and decides, from the path and the caller's
session, whether to let it through or redirect to sign-in / unauthorized.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlencode

from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from api.auth import token_from_request, user_from_token

logger = logging.getLogger(__name__)

PUBLIC_ROUTES = (
    "/",
    "/sign-in",
    "/sign-up",
    "/forgot-password",
    "/reset-password",
    "/verify-email",
    "/browse",
    "/coach/[id]",
    "/workout/[id]",
)

ROLE_ROUTES = {
    "ADMIN": ("/admin",),
    "COACH": ("/coach",),
    "ATHLETE": ("/athlete",),
}

# Any authenticated role.
PROTECTED_ROUTES = ("/profile", "/settings")

SKIPPED_PREFIXES = ("/_next", "/api", "/static", "/docs", "/redoc", "/openapi")

_PARAM_RE = re.compile(r"\[[^\]]+\]")


def _compile(route: str):
    if "[" in route:
        pattern = re.compile("^" + _PARAM_RE.sub("[^/]+", route) + "$")
        return lambda path: bool(pattern.match(path))
    return lambda path: path == route or path.startswith(route + "/")


_PUBLIC_MATCHERS = [_compile(r) for r in PUBLIC_ROUTES]


def matches_route(path: str, route: str) -> bool:
    return _compile(route)(path)


def should_skip(path: str) -> bool:
    return path.startswith(SKIPPED_PREFIXES) or "." in path


def is_public_route(path: str) -> bool:
    return any(match(path) for match in _PUBLIC_MATCHERS)


def required_role(path: str) -> Optional[str]:
    for role, routes in ROLE_ROUTES.items():
        if any(path == r or path.startswith(r + "/") for r in routes):
            return role
    return None


def is_protected_route(path: str) -> bool:
    return any(path == r or path.startswith(r + "/") for r in PROTECTED_ROUTES)


@dataclass(frozen=True)
class RouteDecision:
    allow: bool
    redirect_to: Optional[str] = None


def decide(path: str, role: Optional[str]) -> RouteDecision:
    """Pure routing decision for ``path`` given the caller's role (None when signed out)."""
    if should_skip(path) or is_public_route(path):
        return RouteDecision(allow=True)
    if role is None:
        return RouteDecision(allow=False, redirect_to="/sign-in?" + urlencode({"callbackUrl": path}))
    needed = required_role(path)
    if needed is not None and role.upper() != needed:
        return RouteDecision(allow=False, redirect_to="/unauthorized")
    return RouteDecision(allow=True)


async def route_guard(request: Request, call_next: Callable) -> Response:
    path = request.url.path
    if should_skip(path) or is_public_route(path):
        return await call_next(request)

    user = await run_in_threadpool(user_from_token, token_from_request(request))
    decision = decide(path, user.role if user else None)
    if not decision.allow:
        logger.info("route_redirect", extra={"path": path, "redirect_to": decision.redirect_to})
        return RedirectResponse(decision.redirect_to, status_code=307)
    request.state.session_user = user
    return await call_next(request)
