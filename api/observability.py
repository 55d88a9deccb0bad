"""Structured logging for the API.

Every record is one JSON line on stdout. The request id and, once the caller
is authenticated, the user id ride along in context variables so service
code can log with plain ``logger.info("event", extra={...})``.
"""

from __future__ import annotations

import contextvars
import json
import logging
import re
import sys
import time
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4


SERVICE_NAME = "coaching-platform"
REDACTED = "[redacted]"

_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
_user_id_var: contextvars.ContextVar[Optional[int]] = contextvars.ContextVar("user_id", default=None)
_logging_configured = False
_RESERVED = set(logging.makeLogRecord({}).__dict__.keys()) | {"message", "asctime"}
_SENSITIVE_KEYS = {
    "password",
    "new_password",
    "current_password",
    "token",
    "access_token",
    "authorization",
    "stripe_signature",
    "api_key",
}
_NOISY_LOGGERS = ("httpx", "httpcore", "stripe", "sqlalchemy.engine", "passlib")
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


# ── Request context ──────────────────────────────────────────────────────

def get_request_id() -> Optional[str]:
    return _request_id_var.get()


def set_request_id(value: Optional[str]):
    return _request_id_var.set(value)


def reset_request_id(token) -> None:
    _request_id_var.reset(token)


def new_request_id() -> str:
    return uuid4().hex


def resolve_request_id(incoming: Optional[str]) -> str:
    """Reuse a well-formed id from the client, otherwise mint one."""
    candidate = (incoming or "").strip()
    if candidate and _REQUEST_ID_RE.match(candidate):
        return candidate
    return new_request_id()


def get_log_user_id() -> Optional[int]:
    return _user_id_var.get()


def bind_user_id(user_id: Optional[int]) -> None:
    _user_id_var.set(user_id)


# ── Formatting ───────────────────────────────────────────────────────────

def redact(key: str, value: Any) -> Any:
    if key.lower().replace("-", "_") in _SENSITIVE_KEYS and value:
        return REDACTED
    return value


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "service": SERVICE_NAME,
            "message": record.getMessage(),
        }
        request_id = get_request_id()
        if request_id:
            payload["request_id"] = request_id
        user_id = get_log_user_id()
        if user_id is not None:
            payload["user_id"] = user_id
        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_") or key in payload:
                continue
            payload[key] = redact(key, value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


def configure_logging(level: str = "INFO", force: bool = False) -> None:
    global _logging_configured
    if _logging_configured and not force:
        return

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    # uvicorn installs its own handlers; route everything through the root one.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    if root.level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _logging_configured = True


# ── Request logging ──────────────────────────────────────────────────────

def request_log_fields(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_ip: Optional[str],
    redirect_to: Optional[str] = None,
) -> dict[str, object]:
    fields: dict[str, object] = {
        "method": method,
        "path": path,
        "status_code": int(status_code),
        "duration_ms": round(float(duration_ms), 2),
        "client_ip": client_ip or "",
    }
    if redirect_to:
        fields["redirect_to"] = redirect_to
    return fields


def monotonic_ms() -> float:
    return time.perf_counter() * 1000.0
