"""Tests for observability module."""

from __future__ import annotations

import json
import logging

from api.observability import (
    REDACTED,
    JsonFormatter,
    bind_user_id,
    get_request_id,
    new_request_id,
    request_log_fields,
    reset_request_id,
    resolve_request_id,
    set_request_id,
)


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("coaching.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_request_id_context_roundtrip():
    token = set_request_id("req-1")
    try:
        assert get_request_id() == "req-1"
    finally:
        reset_request_id(token)
    assert get_request_id() is None


def test_new_request_id_is_hex():
    rid = new_request_id()
    assert len(rid) == 32
    int(rid, 16)


def test_json_formatter_includes_context_and_extra_fields():
    token = set_request_id("req-42")
    bind_user_id(7)
    try:
        payload = json.loads(JsonFormatter().format(_record("sign_in_failed", failed_attempts=2)))
    finally:
        reset_request_id(token)
        bind_user_id(None)
    assert payload["message"] == "sign_in_failed"
    assert payload["service"] == "coaching-platform"
    assert payload["request_id"] == "req-42"
    assert payload["user_id"] == 7
    assert payload["failed_attempts"] == 2


def test_json_formatter_omits_unset_context():
    payload = json.loads(JsonFormatter().format(_record("startup")))
    assert "request_id" not in payload
    assert "user_id" not in payload


def test_request_log_fields_rounds_and_records_redirect():
    fields = request_log_fields(
        method="GET", path="/admin", status_code=307, duration_ms=1.23456, client_ip=None, redirect_to="/sign-in"
    )
    assert fields == {
        "method": "GET",
        "path": "/admin",
        "status_code": 307,
        "duration_ms": 1.23,
        "client_ip": "",
        "redirect_to": "/sign-in",
    }
    assert "redirect_to" not in request_log_fields(
        method="GET", path="/", status_code=200, duration_ms=1, client_ip="1.2.3.4"
    )


def test_resolve_request_id_keeps_clean_ids_and_replaces_others():
    assert resolve_request_id(" req-abc.1 ") == "req-abc.1"
    replaced = resolve_request_id("bad id\nwith newline")
    assert replaced != "bad id\nwith newline"
    assert len(replaced) == 32
    assert len(resolve_request_id(None)) == 32
    assert len(resolve_request_id("x" * 65)) == 32


def test_json_formatter_redacts_secrets_in_extra_fields():
    payload = json.loads(JsonFormatter().format(_record("checkout", password="hunter2!", access_token="abc", plan="BASIC")))
    assert payload["password"] == REDACTED
    assert payload["access_token"] == REDACTED
    assert payload["plan"] == "BASIC"
