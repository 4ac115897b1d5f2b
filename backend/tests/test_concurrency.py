# Overview: Pytest coverage for the retry helper used around ledger transactions.

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from coinop.services import concurrency
from coinop.services.concurrency import TRANSACTION_DEPTH_KEY, is_retryable, run_with_retry
from coinop.services.counter_service import PersistenceError


class FakeSession:
    def __init__(self):
        self.info = {}
        self.rollbacks = 0

    def rollback(self):
        self.rollbacks += 1


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)


def _flaky(failures):
    calls = {"n": 0}

    def func():
        calls["n"] += 1
        if calls["n"] <= len(failures):
            raise failures[calls["n"] - 1]
        return "done"

    return func, calls


def test_retries_stale_data_then_succeeds():
    session = FakeSession()
    func, calls = _flaky([StaleDataError("version mismatch")])

    assert run_with_retry(func, session=session) == "done"
    assert calls["n"] == 2
    assert session.rollbacks == 1


def test_wrapped_lock_error_is_retryable():
    locked = OperationalError("UPDATE machines", {}, Exception("database is locked"))
    wrapped = PersistenceError("write failed")
    wrapped.__cause__ = locked

    assert is_retryable(locked)
    assert is_retryable(wrapped)
    assert not is_retryable(IntegrityError("INSERT", {}, Exception("unique")))


def test_gives_up_after_attempts():
    session = FakeSession()
    error = OperationalError("UPDATE", {}, Exception("database is locked"))
    func, calls = _flaky([error, error, error])

    with pytest.raises(OperationalError):
        run_with_retry(func, session=session, attempts=3)
    assert calls["n"] == 3


def test_non_retryable_error_propagates_immediately():
    session = FakeSession()
    func, calls = _flaky([ValueError("bad input")])

    with pytest.raises(ValueError):
        run_with_retry(func, session=session)
    assert calls["n"] == 1
    assert session.rollbacks == 0


def test_no_retry_inside_open_scope():
    session = FakeSession()
    session.info[TRANSACTION_DEPTH_KEY] = 1
    func, calls = _flaky([StaleDataError("version mismatch")])

    with pytest.raises(StaleDataError):
        run_with_retry(func, session=session)
    assert calls["n"] == 1
