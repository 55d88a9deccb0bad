"""Transient database error retries."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from core import db as db_module


class _Session:
    def __init__(self):
        self.rollbacks = 0

    def rollback(self):
        self.rollbacks += 1


def _flaky(failures: int):
    calls = {"n": 0}

    def operation():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))
        return "ok"

    return operation, calls


@pytest.fixture
def sleeps(monkeypatch):
    delays: list[float] = []
    monkeypatch.setattr(db_module.time, "sleep", delays.append)
    return delays


def test_retry_recovers_after_transient_errors(sleeps):
    operation, calls = _flaky(failures=2)
    session = _Session()
    assert db_module.retry_db_operation(operation, base_delay=0.5, session=session) == "ok"
    assert calls["n"] == 3
    assert session.rollbacks == 2
    assert sleeps == [0.5, 1.0]


def test_retry_gives_up_after_max_retries(sleeps):
    operation, calls = _flaky(failures=5)
    with pytest.raises(OperationalError):
        db_module.retry_db_operation(operation, max_retries=3, base_delay=1.0)
    assert calls["n"] == 3
    assert sleeps == [1.0, 2.0]


def test_other_errors_are_not_retried(sleeps):
    def operation():
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        db_module.retry_db_operation(operation)
    assert sleeps == []
