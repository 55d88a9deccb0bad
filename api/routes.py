from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy import text

from api.auth import (
    clear_session_cookie,
    get_current_user,
    get_optional_user,
    issue_session_token,
    require_admin,
    require_athlete,
    require_verified_email,
    set_session_cookie,
)
from api.deps import get_pagination, page_count
from api.ratelimit import auth_limit, limiter
from api.schemas import (
    CheckoutResponse,
    CleanupResponse,
    MessageResponse,
    PaginatedResponse,
    SessionUserResponse,
    SignInResponse,
    SignUpResponse,
    SubscriptionResponse,
    TokenCheckResponse,
    UserResponse,
    VerificationStatusResponse,
    WebhookAck,
)
from core.config import get_settings
from core.db import session_scope
from core.services import accounts, billing, email_verification, password_reset
from core.services.sessions import SessionUser, revoke_session, sign_in
from core.validators import (
    ChangePasswordInput,
    CheckoutInput,
    EmailInput,
    PaginationInput,
    ProfileUpdateInput,
    ResetPasswordInput,
    SignInInput,
    SignUpInput,
    TokenInput,
    UserAdminUpdateInput,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

CurrentUser = Annotated[SessionUser, Depends(get_current_user)]


def _signed_in(response: Response, user: SessionUser) -> SignInResponse:
    token = issue_session_token(user)
    set_session_cookie(response, token, user.expires_at)
    return SignInResponse(access_token=token, expires_at=user.expires_at, user=SessionUserResponse.model_validate(user))


# ── Auth ─────────────────────────────────────────────────────────────────

@router.post("/auth/sign-up", response_model=SignUpResponse, status_code=status.HTTP_201_CREATED, tags=["auth"])
@limiter.limit(auth_limit)
def sign_up(request: Request, response: Response, body: SignUpInput):
    with session_scope() as s:
        user, _ = accounts.register_user(s, body)
        needs_verification = user.email_verified_at is None
        user_id = user.id
    message = (
        "Account created successfully. Please check your email to verify your account."
        if needs_verification
        else "Account created successfully"
    )
    return SignUpResponse(message=message, user_id=user_id, email_verification_required=needs_verification)


@router.post("/auth/sign-in", response_model=SignInResponse, tags=["auth"])
@limiter.limit(auth_limit)
def sign_in_route(request: Request, response: Response, body: SignInInput):
    with session_scope() as s:
        user = sign_in(s, body.email, body.password)
    return _signed_in(response, user)


@router.get("/auth/session", response_model=SignInResponse, tags=["auth"])
def current_session(response: Response, user: CurrentUser):
    """Fresh claims for the caller; the token is re-issued so a refreshed expiry reaches the client."""
    return _signed_in(response, user)


@router.post("/auth/sign-out", response_model=MessageResponse, tags=["auth"])
def sign_out(response: Response, user: Annotated[Optional[SessionUser], Depends(get_optional_user)]):
    if user is not None:
        with session_scope() as s:
            revoke_session(s, user.session_id)
        logger.info("signed_out", extra={"user_id": user.id})
    clear_session_cookie(response)
    return MessageResponse(message="Successfully signed out")


@router.post("/auth/verify-email/resend", response_model=MessageResponse, tags=["auth"])
@limiter.limit(auth_limit)
def resend_verification(request: Request, response: Response, body: EmailInput):
    with session_scope() as s:
        message = email_verification.resend_verification(s, body.email)
    return MessageResponse(message=message)


@router.post("/auth/verify-email/validate", response_model=TokenCheckResponse, tags=["auth"])
def validate_verification_token(body: TokenInput):
    with session_scope() as s:
        result = email_verification.validate_verification_token(s, body.token)
    return TokenCheckResponse(**result)


@router.post("/auth/verify-email", response_model=MessageResponse, tags=["auth"])
def verify_email(body: TokenInput):
    with session_scope() as s:
        email_verification.verify_email_with_token(s, body.token)
    return MessageResponse(message=email_verification.VERIFIED)


@router.post("/auth/verify-email/status", response_model=VerificationStatusResponse, tags=["auth"])
def verification_status(body: EmailInput):
    with session_scope() as s:
        result = email_verification.check_verification_status(s, body.email)
    return VerificationStatusResponse.model_validate(result)


@router.post("/auth/forgot-password", response_model=MessageResponse, tags=["auth"])
@limiter.limit(auth_limit)
def forgot_password(request: Request, response: Response, body: EmailInput):
    with session_scope() as s:
        message = password_reset.request_password_reset(s, body.email)
    return MessageResponse(message=message)


@router.post("/auth/reset-password/validate", response_model=TokenCheckResponse, tags=["auth"])
def validate_reset_token(body: TokenInput):
    with session_scope() as s:
        result = password_reset.validate_reset_token(s, body.token)
    return TokenCheckResponse(message="Token is valid", **result)


@router.post("/auth/reset-password", response_model=MessageResponse, tags=["auth"])
def reset_password(body: ResetPasswordInput):
    with session_scope() as s:
        message = password_reset.reset_password_with_token(s, body)
    return MessageResponse(message=message)


# ── Account ──────────────────────────────────────────────────────────────

@router.get("/me", response_model=UserResponse, tags=["account"])
def get_me(user: CurrentUser):
    with session_scope() as s:
        return UserResponse(**accounts.get_profile(s, user.id))


@router.put("/me", response_model=UserResponse, tags=["account"])
def update_me(body: ProfileUpdateInput, user: CurrentUser):
    with session_scope() as s:
        return UserResponse(**accounts.update_profile(s, user.id, body))


@router.post("/me/password", response_model=MessageResponse, tags=["account"])
def change_my_password(body: ChangePasswordInput, user: CurrentUser):
    with session_scope() as s:
        accounts.change_password(s, user.id, body, current_session_id=user.session_id)
    return MessageResponse(message="Password updated successfully")


# ── Admin ────────────────────────────────────────────────────────────────

@router.get("/admin/users", response_model=PaginatedResponse[UserResponse], tags=["admin"])
def admin_list_users(
    admin: Annotated[SessionUser, Depends(require_admin)],
    page: Annotated[PaginationInput, Depends(get_pagination)],
    role: Optional[str] = Query(None, pattern="^(ADMIN|COACH|ATHLETE)$"),
    is_active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=100),
):
    with session_scope() as s:
        rows, total = accounts.list_users(
            s, role=role, is_active=is_active, search=search, offset=page.offset, limit=page.limit
        )
        items = [UserResponse(**accounts.user_to_dict(u)) for u in rows]
    return PaginatedResponse[UserResponse](
        items=items, total=total, page=page.page, limit=page.limit, pages=page_count(total, page.limit)
    )


@router.patch("/admin/users/{user_id}", response_model=UserResponse, tags=["admin"])
def admin_update_user(user_id: int, body: UserAdminUpdateInput, admin: Annotated[SessionUser, Depends(require_admin)]):
    with session_scope() as s:
        user = accounts.update_user(s, admin.id, user_id, body)
        return UserResponse(**accounts.user_to_dict(user))


@router.post("/admin/maintenance/cleanup-tokens", response_model=CleanupResponse, tags=["admin"])
def admin_cleanup_tokens(admin: Annotated[SessionUser, Depends(require_admin)]):
    with session_scope() as s:
        count = password_reset.cleanup_expired_reset_tokens(s)
    return CleanupResponse(message=f"Cleaned up {count} expired reset tokens", count=count)


# ── Billing ──────────────────────────────────────────────────────────────

@router.get("/billing/plans", tags=["billing"])
def list_plans():
    return {"plans": billing.plans_payload(), "mock_payments": get_settings().mock_payments}


@router.get("/billing/subscription", response_model=Optional[SubscriptionResponse], tags=["billing"])
def my_subscription(user: CurrentUser):
    with session_scope() as s:
        return billing.subscription_to_dict(billing.get_subscription(s, user.id))


@router.post("/billing/checkout", response_model=CheckoutResponse, tags=["billing"])
def checkout(
    body: CheckoutInput,
    athlete: Annotated[SessionUser, Depends(require_athlete)],
    verified: Annotated[SessionUser, Depends(require_verified_email)],
):
    with session_scope() as s:
        user = accounts.get_user(s, athlete.id)
        return billing.start_checkout(s, user, body.plan)


@router.post("/billing/cancel", response_model=SubscriptionResponse, tags=["billing"])
def cancel(user: CurrentUser):
    with session_scope() as s:
        row = accounts.get_user(s, user.id)
        sub = billing.cancel_subscription(s, row)
        return billing.subscription_to_dict(sub)


@router.post("/billing/webhook", response_model=WebhookAck, tags=["billing"])
async def stripe_webhook(request: Request):
    payload = await request.body()
    event = billing.construct_event(
        payload, request.headers.get("stripe-signature"), get_settings().stripe_webhook_secret
    )
    try:
        with session_scope() as s:
            handled = billing.handle_webhook_event(s, event)
    except Exception:
        logger.exception("stripe_webhook_failed", extra={"event_type": event.get("type"), "event_id": event.get("id")})
        handled = False
    return WebhookAck(handled=handled)


@router.get("/health", tags=["ops"])
def health():
    with session_scope() as s:
        s.execute(text("SELECT 1"))
    return {"status": "ok", "env": get_settings().app_env}
