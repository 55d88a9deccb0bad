"""Subscriptions and Stripe billing.

Stripe is reached through the official SDK with the secret key passed per
request. With ``MOCK_PAYMENTS`` enabled checkout activates the subscription
locally and no request leaves the process.
"""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import stripe
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.config import Settings, get_settings
from core.errors import AppError, NotFound, PaymentError, PermissionDenied, ValidationFailed
from core.models import Subscription, User
from core.timeutil import utcnow

logger = logging.getLogger(__name__)

MOCK_PERIOD_DAYS = 30
SIGNATURE_TOLERANCE_SECONDS = 300


@dataclass(frozen=True)
class PlanInfo:
    code: str
    name: str
    price: float
    interval: str
    features: tuple[str, ...]


PLANS: dict[str, PlanInfo] = {
    "BASIC": PlanInfo(
        code="BASIC",
        name="Basic",
        price=9.99,
        interval="month",
        features=("Access to premium workouts", "Progress tracking", "Community comments and ratings"),
    ),
    "PREMIUM": PlanInfo(
        code="PREMIUM",
        name="Premium",
        price=19.99,
        interval="month",
        features=(
            "Everything in Basic",
            "Full workout video library",
            "Priority access to new coach content",
        ),
    ),
}

# Stripe status -> local status
_STATUS_MAP = {
    "active": "ACTIVE",
    "trialing": "TRIALING",
    "past_due": "PAST_DUE",
    "canceled": "CANCELED",
    "unpaid": "UNPAID",
    "incomplete": "INCOMPLETE",
    "incomplete_expired": "CANCELED",
    "paused": "PAST_DUE",
}


class WebhookSignatureError(AppError):
    status_code = 400
    code = "INVALID_SIGNATURE"


def price_id_for(plan: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    price = {"BASIC": settings.stripe_price_basic, "PREMIUM": settings.stripe_price_premium}.get(plan)
    if price is None:
        raise ValidationFailed(f"Unknown plan: {plan}")
    return price


def plan_for_price(price_id: str | None, settings: Settings | None = None) -> str | None:
    settings = settings or get_settings()
    if not price_id:
        return None
    if price_id == settings.stripe_price_premium:
        return "PREMIUM"
    if price_id == settings.stripe_price_basic:
        return "BASIC"
    return None


def subscription_to_dict(sub: Subscription | None) -> dict[str, Any] | None:
    if sub is None:
        return None
    plan = PLANS.get(sub.plan)
    return {
        "plan": sub.plan,
        "plan_name": plan.name if plan else sub.plan,
        "status": sub.status,
        "is_active": sub.is_active,
        "current_period_start": sub.current_period_start,
        "current_period_end": sub.current_period_end,
        "cancel_at_period_end": sub.cancel_at_period_end,
    }


def plans_payload() -> list[dict[str, Any]]:
    return [
        {"code": p.code, "name": p.name, "price": p.price, "interval": p.interval, "features": list(p.features)}
        for p in PLANS.values()
    ]


# ── Stripe SDK calls ─────────────────────────────────────────────────────

def _api_key(settings: Settings) -> str:
    if not settings.stripe_secret_key:
        raise PaymentError("Payments are not configured", code="PAYMENTS_NOT_CONFIGURED")
    return settings.stripe_secret_key


def _stripe_call(action: str, fn, *args, **params) -> Any:
    try:
        return fn(*args, **params)
    except stripe.StripeError as exc:
        logger.warning(
            "stripe_request_failed",
            extra={"action": action, "status": getattr(exc, "http_status", None), "error": str(exc)},
        )
        raise PaymentError(getattr(exc, "user_message", None) or "Payment provider rejected the request") from exc


def create_checkout_session(
    settings: Settings,
    *,
    price_id: str,
    user_id: int,
    email: str,
    plan: str,
    customer_id: str | None = None,
) -> Any:
    params: dict[str, Any] = {
        "api_key": _api_key(settings),
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": f"{settings.app_url}/athlete/subscription?checkout=success",
        "cancel_url": f"{settings.app_url}/athlete/subscription?checkout=cancelled",
        "client_reference_id": str(user_id),
        "metadata": {"user_id": str(user_id), "plan": plan},
        "subscription_data": {"metadata": {"user_id": str(user_id), "plan": plan}},
    }
    if customer_id:
        params["customer"] = customer_id
    else:
        params["customer_email"] = email
    return _stripe_call("checkout.session.create", stripe.checkout.Session.create, **params)


def schedule_cancellation(settings: Settings, subscription_id: str) -> Any:
    return _stripe_call(
        "subscription.modify",
        stripe.Subscription.modify,
        subscription_id,
        cancel_at_period_end=True,
        api_key=_api_key(settings),
    )


# ── Checkout & cancellation ──────────────────────────────────────────────

def get_subscription(s: Session, user_id: int) -> Subscription | None:
    return s.execute(select(Subscription).where(Subscription.user_id == user_id)).scalar_one_or_none()


def start_checkout(s: Session, user: User, plan: str) -> dict[str, Any]:
    """Begin a subscription purchase; returns ``{"mode", "url", "subscription"}``."""
    settings = get_settings()
    if user.role != "ATHLETE":
        raise PermissionDenied("Only athletes can subscribe", code="FORBIDDEN_ROLE")
    if plan not in PLANS:
        raise ValidationFailed(f"Unknown plan: {plan}")
    sub = get_subscription(s, user.id)
    if sub is not None and sub.is_active and not sub.cancel_at_period_end:
        raise ValidationFailed("You already have an active subscription", code="ALREADY_SUBSCRIBED")

    if settings.mock_payments:
        now = utcnow()
        if sub is None:
            sub = Subscription(user_id=user.id)
            s.add(sub)
        sub.stripe_customer_id = sub.stripe_customer_id or f"cus_mock_{user.id}"
        sub.stripe_subscription_id = f"sub_mock_{secrets.token_hex(8)}"
        sub.status = "ACTIVE"
        sub.plan = plan
        sub.price_id = price_id_for(plan, settings) or f"price_mock_{plan.lower()}"
        sub.current_period_start = now
        sub.current_period_end = now + timedelta(days=MOCK_PERIOD_DAYS)
        sub.cancel_at_period_end = False
        s.flush()
        logger.info("subscription_mock_activated", extra={"user_id": user.id, "plan": plan})
        return {
            "mode": "mock",
            "url": f"{settings.app_url}/athlete/subscription?checkout=success",
            "subscription": subscription_to_dict(sub),
        }

    price_id = price_id_for(plan, settings)
    if not price_id:
        raise PaymentError(f"No Stripe price configured for plan {plan}", code="PAYMENTS_NOT_CONFIGURED")
    checkout = create_checkout_session(
        settings,
        price_id=price_id,
        user_id=user.id,
        email=user.email,
        plan=plan,
        customer_id=sub.stripe_customer_id if sub else None,
    )
    logger.info("checkout_session_created", extra={"user_id": user.id, "plan": plan})
    return {"mode": "stripe", "url": checkout.url, "subscription": subscription_to_dict(sub)}


def cancel_subscription(s: Session, user: User) -> Subscription:
    settings = get_settings()
    sub = get_subscription(s, user.id)
    if sub is None or not sub.is_active:
        raise NotFound("No active subscription")
    if sub.cancel_at_period_end:
        return sub
    if not settings.mock_payments and sub.stripe_subscription_id:
        schedule_cancellation(settings, sub.stripe_subscription_id)
    sub.cancel_at_period_end = True
    s.flush()
    logger.info("subscription_cancel_scheduled", extra={"user_id": user.id})
    return sub


# ── Webhooks ─────────────────────────────────────────────────────────────

def construct_event(
    payload: bytes,
    header: str | None,
    secret: str,
    tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
) -> dict[str, Any]:
    """Verify the ``Stripe-Signature`` header and return the event as a plain dict."""
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    if not header:
        raise WebhookSignatureError("Missing signature header")
    try:
        stripe.Webhook.construct_event(payload, header, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as exc:
        raise WebhookSignatureError("Invalid signature") from exc
    except ValueError as exc:
        raise WebhookSignatureError("Invalid payload") from exc
    event = json.loads(payload)
    if not isinstance(event, dict) or "type" not in event:
        raise WebhookSignatureError("Invalid payload")
    return event


def _ts(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _find_subscription(s: Session, stripe_subscription_id: str | None, customer_id: str | None) -> Subscription | None:
    if stripe_subscription_id:
        sub = s.execute(
            select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
        ).scalar_one_or_none()
        if sub is not None:
            return sub
    if customer_id:
        return s.execute(
            select(Subscription).where(Subscription.stripe_customer_id == customer_id)
        ).scalar_one_or_none()
    return None


def _subscription_for_user(s: Session, user_id: Any) -> Subscription | None:
    try:
        uid = int(user_id)
    except (TypeError, ValueError):
        return None
    if s.get(User, uid) is None:
        return None
    sub = get_subscription(s, uid)
    if sub is None:
        sub = Subscription(user_id=uid, status="INCOMPLETE", plan="BASIC")
        s.add(sub)
    return sub


def _on_checkout_completed(s: Session, obj: dict[str, Any]) -> Subscription | None:
    metadata = obj.get("metadata") or {}
    sub = _subscription_for_user(s, obj.get("client_reference_id") or metadata.get("user_id"))
    if sub is None:
        return None
    sub.stripe_customer_id = obj.get("customer") or sub.stripe_customer_id
    sub.stripe_subscription_id = obj.get("subscription") or sub.stripe_subscription_id
    if metadata.get("plan") in PLANS:
        sub.plan = metadata["plan"]
    sub.status = "ACTIVE"
    sub.cancel_at_period_end = False
    return sub


def _on_subscription_changed(s: Session, obj: dict[str, Any], deleted: bool = False) -> Subscription | None:
    sub = _find_subscription(s, obj.get("id"), obj.get("customer"))
    if sub is None:
        sub = _subscription_for_user(s, (obj.get("metadata") or {}).get("user_id"))
    if sub is None:
        return None
    sub.stripe_subscription_id = obj.get("id") or sub.stripe_subscription_id
    sub.stripe_customer_id = obj.get("customer") or sub.stripe_customer_id
    sub.status = "CANCELED" if deleted else _STATUS_MAP.get(str(obj.get("status", "")).lower(), "INCOMPLETE")
    items = (obj.get("items") or {}).get("data") or []
    price_id = ((items[0] if items else {}).get("price") or {}).get("id")
    if price_id:
        sub.price_id = price_id
        sub.plan = plan_for_price(price_id) or sub.plan
    sub.current_period_start = _ts(obj.get("current_period_start")) or sub.current_period_start
    sub.current_period_end = _ts(obj.get("current_period_end")) or sub.current_period_end
    sub.cancel_at_period_end = bool(obj.get("cancel_at_period_end", False)) and not deleted
    return sub


def _on_invoice(s: Session, obj: dict[str, Any], paid: bool) -> Subscription | None:
    sub = _find_subscription(s, obj.get("subscription"), obj.get("customer"))
    if sub is None:
        return None
    if paid:
        sub.status = "ACTIVE"
        lines = (obj.get("lines") or {}).get("data") or []
        period = (lines[0] if lines else {}).get("period") or {}
        sub.current_period_start = _ts(period.get("start")) or sub.current_period_start
        sub.current_period_end = _ts(period.get("end")) or sub.current_period_end
    else:
        sub.status = "PAST_DUE"
    return sub


def handle_webhook_event(s: Session, event: dict[str, Any]) -> bool:
    """Apply a Stripe event to local subscriptions; returns False when it was ignored."""
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}
    if event_type == "checkout.session.completed":
        sub = _on_checkout_completed(s, obj)
    elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
        sub = _on_subscription_changed(s, obj)
    elif event_type == "customer.subscription.deleted":
        sub = _on_subscription_changed(s, obj, deleted=True)
    elif event_type == "invoice.payment_failed":
        sub = _on_invoice(s, obj, paid=False)
    elif event_type == "invoice.paid":
        sub = _on_invoice(s, obj, paid=True)
    else:
        logger.debug("stripe_event_ignored", extra={"event_type": event_type})
        return False

    if sub is None:
        logger.warning("stripe_event_unmatched", extra={"event_type": event_type, "event_id": event.get("id")})
        return False
    s.flush()
    logger.info(
        "stripe_event_applied",
        extra={"event_type": event_type, "user_id": sub.user_id, "status": sub.status},
    )
    return True
