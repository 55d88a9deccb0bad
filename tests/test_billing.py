"""Subscriptions: plans, checkout, cancellation and Stripe webhooks."""

from __future__ import annotations

import json
import time
from types import SimpleNamespace

import pytest
import stripe

from core.config import Settings, get_settings
from core.errors import NotFound, PaymentError, PermissionDenied, ValidationFailed
from core.models import Subscription
from core.services import billing
from tests.factories import make_subscription, make_user, stripe_signature_header

SECRET = "whsec_test"


def _enable(monkeypatch, **env):
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()


# ── Signatures ───────────────────────────────────────────────────────────

def test_construct_event_parses_signed_payload():
    payload = json.dumps({"id": "evt_1", "type": "invoice.paid"}).encode()
    event = billing.construct_event(payload, stripe_signature_header(payload, SECRET), SECRET)
    assert event == {"id": "evt_1", "type": "invoice.paid"}


@pytest.mark.parametrize(
    "header",
    [None, "", "garbage", "t=abc,v1=deadbeef", "t=1700000000"],
)
def test_malformed_headers_rejected(header):
    with pytest.raises(billing.WebhookSignatureError):
        billing.construct_event(b'{"type":"invoice.paid"}', header, SECRET)


def test_tampered_payload_rejected():
    header = stripe_signature_header(b'{"type":"invoice.paid","a":1}', SECRET)
    with pytest.raises(billing.WebhookSignatureError, match="Invalid signature"):
        billing.construct_event(b'{"type":"invoice.paid","a":2}', header, SECRET)


def test_wrong_secret_rejected():
    payload = b'{"type":"invoice.paid"}'
    with pytest.raises(billing.WebhookSignatureError):
        billing.construct_event(payload, stripe_signature_header(payload, "whsec_other"), SECRET)


def test_old_timestamp_rejected():
    payload = b'{"type":"invoice.paid"}'
    header = stripe_signature_header(payload, SECRET, timestamp=int(time.time()) - 301)
    with pytest.raises(billing.WebhookSignatureError):
        billing.construct_event(payload, header, SECRET)


def test_missing_secret_rejected():
    payload = b'{"type":"invoice.paid"}'
    with pytest.raises(billing.WebhookSignatureError, match="not configured"):
        billing.construct_event(payload, stripe_signature_header(payload, SECRET), "")


def test_signed_payload_without_type_rejected():
    payload = b'{"id":"evt_1"}'
    with pytest.raises(billing.WebhookSignatureError, match="Invalid payload"):
        billing.construct_event(payload, stripe_signature_header(payload, SECRET), SECRET)


# ── Plans ────────────────────────────────────────────────────────────────

def test_plans_payload():
    codes = {p["code"]: p["price"] for p in billing.plans_payload()}
    assert codes == {"BASIC": 9.99, "PREMIUM": 19.99}


def test_plan_for_price():
    settings = Settings(database_url="x", stripe_price_basic="price_b", stripe_price_premium="price_p")
    assert billing.plan_for_price("price_p", settings) == "PREMIUM"
    assert billing.plan_for_price("price_b", settings) == "BASIC"
    assert billing.plan_for_price("price_other", settings) is None
    assert billing.plan_for_price(None, settings) is None


# ── Checkout ─────────────────────────────────────────────────────────────

def test_mock_checkout_activates_subscription(db, monkeypatch):
    _enable(monkeypatch, MOCK_PAYMENTS="true")
    athlete = make_user(db, "a@example.com")
    result = billing.start_checkout(db, athlete, "PREMIUM")
    assert result["mode"] == "mock"
    sub = billing.get_subscription(db, athlete.id)
    assert sub.status == "ACTIVE"
    assert sub.plan == "PREMIUM"
    assert sub.is_active
    assert sub.stripe_customer_id == f"cus_mock_{athlete.id}"
    assert sub.stripe_subscription_id.startswith("sub_mock_")
    assert (sub.current_period_end - sub.current_period_start).days == 30

    with pytest.raises(ValidationFailed) as excinfo:
        billing.start_checkout(db, athlete, "BASIC")
    assert excinfo.value.code == "ALREADY_SUBSCRIBED"


def test_only_athletes_can_subscribe(db, monkeypatch):
    _enable(monkeypatch, MOCK_PAYMENTS="true")
    coach = make_user(db, "c@example.com", role="COACH")
    with pytest.raises(PermissionDenied):
        billing.start_checkout(db, coach, "BASIC")


def _fake_session_create(calls: list):
    def create(**params):
        calls.append(params)
        return SimpleNamespace(id="cs_1", url="https://checkout.stripe.test/cs_1")

    return create


def test_stripe_checkout_creates_session(db, monkeypatch):
    _enable(monkeypatch, STRIPE_SECRET_KEY="sk_test_1", STRIPE_PRICE_BASIC="price_basic")
    athlete = make_user(db, "a@example.com")
    calls: list = []
    monkeypatch.setattr(stripe.checkout.Session, "create", _fake_session_create(calls))

    result = billing.start_checkout(db, athlete, "BASIC")
    assert result == {"mode": "stripe", "url": "https://checkout.stripe.test/cs_1", "subscription": None}
    params = calls[0]
    assert params["api_key"] == "sk_test_1"
    assert params["mode"] == "subscription"
    assert params["line_items"] == [{"price": "price_basic", "quantity": 1}]
    assert params["client_reference_id"] == str(athlete.id)
    assert params["customer_email"] == "a@example.com"
    assert params["metadata"] == {"user_id": str(athlete.id), "plan": "BASIC"}
    assert "customer" not in params


def test_stripe_checkout_reuses_known_customer(db, monkeypatch):
    _enable(monkeypatch, STRIPE_SECRET_KEY="sk_test_1", STRIPE_PRICE_PREMIUM="price_premium")
    athlete = make_user(db, "a@example.com")
    make_subscription(db, athlete, status="CANCELED")
    calls: list = []
    monkeypatch.setattr(stripe.checkout.Session, "create", _fake_session_create(calls))

    billing.start_checkout(db, athlete, "PREMIUM")
    assert calls[0]["customer"] == f"cus_{athlete.id}"
    assert "customer_email" not in calls[0]


def test_stripe_error_becomes_payment_error(db, monkeypatch):
    _enable(monkeypatch, STRIPE_SECRET_KEY="sk_test_1", STRIPE_PRICE_BASIC="price_basic")
    athlete = make_user(db, "a@example.com")

    def create(**params):
        raise stripe.InvalidRequestError(
            "No such price", "line_items", json_body={"error": {"message": "No such price"}}, http_status=400
        )

    monkeypatch.setattr(stripe.checkout.Session, "create", create)
    with pytest.raises(PaymentError, match="No such price"):
        billing.start_checkout(db, athlete, "BASIC")


def test_cancel_schedules_stripe_cancellation(db, monkeypatch):
    _enable(monkeypatch, STRIPE_SECRET_KEY="sk_test_1")
    athlete = make_user(db, "a@example.com")
    make_subscription(db, athlete)
    calls = []

    def modify(subscription_id, **params):
        calls.append((subscription_id, params))
        return SimpleNamespace(id=subscription_id, cancel_at_period_end=True)

    monkeypatch.setattr(stripe.Subscription, "modify", modify)
    sub = billing.cancel_subscription(db, athlete)
    assert sub.cancel_at_period_end is True
    assert calls == [(f"sub_{athlete.id}", {"cancel_at_period_end": True, "api_key": "sk_test_1"})]


def test_checkout_without_price_configured(db):
    athlete = make_user(db, "a@example.com")
    with pytest.raises(PaymentError):
        billing.start_checkout(db, athlete, "BASIC")


def test_cancel_sets_cancel_at_period_end(db, monkeypatch):
    _enable(monkeypatch, MOCK_PAYMENTS="true")
    athlete = make_user(db, "a@example.com")
    with pytest.raises(NotFound):
        billing.cancel_subscription(db, athlete)
    make_subscription(db, athlete)
    sub = billing.cancel_subscription(db, athlete)
    assert sub.cancel_at_period_end is True
    assert sub.is_active


# ── Webhook events ───────────────────────────────────────────────────────

def _event(event_type: str, obj: dict) -> dict:
    return {"id": "evt_test", "type": event_type, "data": {"object": obj}}


def test_checkout_completed_creates_active_subscription(db):
    athlete = make_user(db, "a@example.com")
    handled = billing.handle_webhook_event(
        db,
        _event(
            "checkout.session.completed",
            {"client_reference_id": str(athlete.id), "customer": "cus_1", "subscription": "sub_1", "metadata": {"plan": "PREMIUM"}},
        ),
    )
    assert handled is True
    sub = db.query(Subscription).one()
    assert (sub.status, sub.plan, sub.stripe_subscription_id) == ("ACTIVE", "PREMIUM", "sub_1")


def test_subscription_updated_maps_status_and_period(db, monkeypatch):
    _enable(monkeypatch, STRIPE_PRICE_PREMIUM="price_p")
    athlete = make_user(db, "a@example.com")
    make_subscription(db, athlete)
    end = int(time.time()) + 86400 * 30
    billing.handle_webhook_event(
        db,
        _event(
            "customer.subscription.updated",
            {
                "id": f"sub_{athlete.id}",
                "customer": f"cus_{athlete.id}",
                "status": "past_due",
                "current_period_end": end,
                "cancel_at_period_end": True,
                "items": {"data": [{"price": {"id": "price_p"}}]},
            },
        ),
    )
    sub = billing.get_subscription(db, athlete.id)
    assert sub.status == "PAST_DUE"
    assert sub.plan == "PREMIUM"
    assert sub.cancel_at_period_end is True
    assert not sub.is_active


def test_subscription_deleted_cancels(db):
    athlete = make_user(db, "a@example.com")
    make_subscription(db, athlete)
    billing.handle_webhook_event(db, _event("customer.subscription.deleted", {"id": f"sub_{athlete.id}"}))
    assert billing.get_subscription(db, athlete.id).status == "CANCELED"


def test_invoice_events_toggle_status(db):
    athlete = make_user(db, "a@example.com")
    make_subscription(db, athlete)
    billing.handle_webhook_event(db, _event("invoice.payment_failed", {"subscription": f"sub_{athlete.id}"}))
    assert billing.get_subscription(db, athlete.id).status == "PAST_DUE"
    billing.handle_webhook_event(db, _event("invoice.paid", {"customer": f"cus_{athlete.id}"}))
    assert billing.get_subscription(db, athlete.id).status == "ACTIVE"


def test_unknown_and_unmatched_events_are_ignored(db):
    assert billing.handle_webhook_event(db, _event("charge.refunded", {})) is False
    assert billing.handle_webhook_event(db, _event("invoice.paid", {"subscription": "sub_nobody"})) is False
