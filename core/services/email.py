"""Transactional email templates and the Resend delivery client.

Templates return an :class:`EmailMessage` with HTML and plain-text bodies.
Delivery goes through Resend's HTTP API; without an API key (local dev,
tests) messages are logged and kept in an in-memory outbox instead.
"""

from __future__ import annotations

import html
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any

import httpx

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)

BRAND = "Coaching Platform"
OUTBOX_LIMIT = 100

_STYLE = """
      body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', 'Roboto', sans-serif;
             line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
      .header { background: %(header_bg)s; color: white; padding: 30px; text-align: center;
                border-radius: 8px 8px 0 0; }
      .content { background: #f8fafc; padding: 30px; border-radius: 0 0 8px 8px; }
      .button { display: inline-block; background: %(accent)s; color: white; padding: 12px 30px;
                text-decoration: none; border-radius: 6px; font-weight: 600; margin: 20px 0; }
      .notice { background: %(notice_bg)s; border: 1px solid %(notice_border)s; padding: 15px;
                border-radius: 6px; margin: 20px 0; }
      .footer { text-align: center; color: #64748b; font-size: 14px; margin-top: 30px; }
"""

_PURPLE = {
    "header_bg": "linear-gradient(135deg, #667eea 0%, #764ba2 100%)",
    "accent": "#667eea",
    "notice_bg": "#dcfce7",
    "notice_border": "#16a34a",
}
_GREEN = {
    "header_bg": "linear-gradient(135deg, #16a34a 0%, #059669 100%)",
    "accent": "#16a34a",
    "notice_bg": "#dcfce7",
    "notice_border": "#16a34a",
}
_AMBER_NOTICE = dict(_PURPLE, notice_bg="#fef3cd", notice_border="#fbbf24")

FOOTER_TEXT = "This is an automated message. Please do not reply to this email."


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    html: str
    text: str


def _page(title: str, heading: str, body_html: str, palette: dict[str, str]) -> str:
    return (
        "<!DOCTYPE html>\n<html>\n  <head>\n    <meta charset=\"utf-8\">\n"
        f"    <title>{title}</title>\n    <style>{_STYLE % palette}    </style>\n  </head>\n  <body>\n"
        f"    <div class=\"header\"><h1>{heading}</h1></div>\n"
        f"    <div class=\"content\">\n{body_html}\n    </div>\n"
        f"    <div class=\"footer\"><p>{FOOTER_TEXT}</p></div>\n  </body>\n</html>\n"
    )


def _button(url: str, label: str) -> str:
    safe = html.escape(url, quote=True)
    return (
        f"<div style=\"text-align: center;\"><a href=\"{safe}\" class=\"button\">{label}</a></div>\n"
        "<p>Or copy and paste this link into your browser:</p>\n"
        f"<p style=\"word-break: break-all;\">{html.escape(url)}</p>"
    )


def _list(items: list[str]) -> str:
    return "<ul>" + "".join(f"<li>{item}</li>" for item in items) + "</ul>"


def verification_email(verification_url: str, user_name: str | None = None) -> EmailMessage:
    name = user_name or "User"
    perks = [
        "Browse and access premium workouts",
        "Track your fitness progress",
        "Connect with professional coaches",
        "Join our fitness community",
    ]
    notes = [
        "This verification link will expire in 24 hours",
        "Once verified, you'll have full access to all features",
        "If you didn't create this account, please ignore this email",
    ]
    body = (
        f"<h2>Hello {html.escape(name)},</h2>\n"
        f"<p>Thank you for joining {BRAND}! We're excited to have you on board.</p>\n"
        "<p>To get started, please verify your email address by clicking the button below:</p>\n"
        f"{_button(verification_url, 'Verify Email Address')}\n"
        f"<div class=\"notice\"><strong>Important:</strong>{_list(notes)}</div>\n"
        f"<p>After verification, you'll be able to:</p>{_list(perks)}\n"
        f"<p>Welcome aboard!<br>The {BRAND} Team</p>"
    )
    text = "\n".join(
        [
            f"Welcome to {BRAND}!",
            "",
            f"Hello {name},",
            "",
            "Please verify your email address by opening the link below:",
            verification_url,
            "",
            *[f"- {n}" for n in notes],
            "",
            FOOTER_TEXT,
        ]
    )
    return EmailMessage(
        subject=f"Verify Your Email - {BRAND}",
        html=_page("Verify Your Email", f"Welcome to {BRAND}!", body, _PURPLE),
        text=text,
    )


def password_reset_email(reset_url: str, user_name: str | None = None) -> EmailMessage:
    name = user_name or "User"
    notes = [
        "This link will expire in 1 hour for security reasons",
        "If you didn't request this reset, please ignore this email",
        "Never share this link with anyone",
    ]
    body = (
        f"<h2>Hello {html.escape(name)},</h2>\n"
        f"<p>We received a request to reset your password for your {BRAND} account.</p>\n"
        "<p>Click the button below to reset your password:</p>\n"
        f"{_button(reset_url, 'Reset Password')}\n"
        f"<div class=\"notice\"><strong>Security Notice:</strong>{_list(notes)}</div>\n"
        "<p>If you have any questions, please contact our support team.</p>\n"
        f"<p>Best regards,<br>The {BRAND} Team</p>"
    )
    text = "\n".join(
        [
            "Password Reset Request",
            "",
            f"Hello {name},",
            "",
            f"We received a request to reset your password for your {BRAND} account.",
            "",
            "Click the link below to reset your password:",
            reset_url,
            "",
            "Security Notice:",
            *[f"- {n}" for n in notes],
            "",
            "If you have any questions, please contact our support team.",
            "",
            "Best regards,",
            f"The {BRAND} Team",
            "",
            FOOTER_TEXT,
        ]
    )
    return EmailMessage(
        subject=f"Reset Your Password - {BRAND}",
        html=_page("Reset Your Password", "Password Reset Request", body, _AMBER_NOTICE),
        text=text,
    )


def password_reset_success_email(user_name: str | None = None) -> EmailMessage:
    name = user_name or "User"
    paragraphs = [
        f"Your password has been successfully reset for your {BRAND} account.",
        "You can now sign in with your new password. If you didn't make this change, "
        "please contact our support team immediately.",
        "For security reasons, all active sessions have been logged out and you'll need to sign in again.",
    ]
    body = f"<h2>Hello {html.escape(name)},</h2>\n" + "\n".join(f"<p>{p}</p>" for p in paragraphs)
    body += f"\n<p>Best regards,<br>The {BRAND} Team</p>"
    text = "\n".join(
        ["Password Reset Successful", "", f"Hello {name},", "", *paragraphs, "", "Best regards,", f"The {BRAND} Team", "", FOOTER_TEXT]
    )
    return EmailMessage(
        subject=f"Password Reset Successful - {BRAND}",
        html=_page("Password Reset Successful", "Password Reset Successful", body, _GREEN),
        text=text,
    )


def email_verified_email(sign_in_url: str, user_name: str | None = None) -> EmailMessage:
    name = user_name or "User"
    perks = [
        "Browse premium workout content",
        "Track your fitness progress",
        "Connect with professional coaches",
        "Join our fitness community",
    ]
    safe_url = html.escape(sign_in_url, quote=True)
    body = (
        f"<h2>Welcome {html.escape(name)}!</h2>\n"
        "<p>Congratulations! Your email address has been successfully verified.</p>\n"
        f"<p>You now have full access to all {BRAND} features:</p>{_list(perks)}\n"
        f"<div style=\"text-align: center;\"><a href=\"{safe_url}\" class=\"button\">Start Your Fitness Journey</a></div>\n"
        f"<p>Thank you for joining {BRAND}. We're excited to be part of your fitness journey!</p>\n"
        f"<p>Best regards,<br>The {BRAND} Team</p>"
    )
    text = "\n".join(
        [
            "Email Verified!",
            "",
            f"Welcome {name}!",
            "",
            "Your email address has been successfully verified.",
            f"Sign in: {sign_in_url}",
            "",
            FOOTER_TEXT,
        ]
    )
    return EmailMessage(
        subject=f"Email Verified Successfully - {BRAND}",
        html=_page("Email Verified Successfully", "Email Verified!", body, _GREEN),
        text=text,
    )


class EmailDeliveryError(RuntimeError):
    pass


@dataclass
class EmailClient:
    settings: Settings
    # Most recent captured messages only.
    outbox: deque[dict[str, Any]] = field(default_factory=lambda: deque(maxlen=OUTBOX_LIMIT))
    captured: int = 0

    @property
    def enabled(self) -> bool:
        return bool(self.settings.resend_api_key)

    def send(self, to: str, message: EmailMessage) -> dict[str, Any]:
        payload = {
            "from": self.settings.resend_from_email,
            "to": [to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        if not self.enabled:
            self.outbox.append(payload)
            self.captured += 1
            logger.info("email_captured", extra={"to": to, "subject": message.subject})
            return {"id": f"local-{self.captured}"}

        try:
            resp = httpx.post(
                f"{self.settings.resend_api_base}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
                timeout=10.0,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"Resend delivery failed: {exc}") from exc
        logger.info("email_sent", extra={"to": to, "subject": message.subject})
        return resp.json()


_client: EmailClient | None = None


def get_email_client() -> EmailClient:
    global _client
    settings = get_settings()
    if _client is None or _client.settings is not settings:
        _client = EmailClient(settings=settings)
    return _client


def reset_email_client() -> None:
    global _client
    _client = None


def _deliver(to: str, message: EmailMessage) -> bool:
    """Send and report success; failures are logged, never raised."""
    try:
        get_email_client().send(to, message)
        return True
    except Exception:
        logger.exception("email_delivery_failed", extra={"to": to, "subject": message.subject})
        return False


def send_verification_email(email: str, token: str, user_name: str | None = None) -> bool:
    url = f"{get_settings().app_url}/verify-email?token={token}"
    return _deliver(email, verification_email(url, user_name))


def send_verification_success_email(email: str, user_name: str | None = None) -> bool:
    return _deliver(email, email_verified_email(f"{get_settings().app_url}/sign-in", user_name))


def send_password_reset_email(email: str, token: str, user_name: str | None = None) -> bool:
    url = f"{get_settings().app_url}/reset-password?token={token}"
    return _deliver(email, password_reset_email(url, user_name))


def send_password_reset_success_email(email: str, user_name: str | None = None) -> bool:
    return _deliver(email, password_reset_success_email(user_name))
