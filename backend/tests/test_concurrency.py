"""
Retry and rollback behavior of the transition unit of work.
"""

from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from tiretrack.errors import Inconsistent, NotAvailable, StorageUnavailable
from tiretrack.services import concurrency
from tiretrack.services.concurrency import ConcurrentInsert, run_with_retry


class TestRunWithRetry:

    def test_returns_first_success(self, app):
        assert run_with_retry(lambda: "ok") == "ok"

    def test_retries_version_conflict_then_succeeds(self, app):
        calls = []

        def op():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_with_retry(op, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_concurrent_insert_is_retried(self, app):
        calls = []

        def op():
            calls.append(1)
            if len(calls) == 1:
                raise ConcurrentInsert("T1")
            return "moved"

        assert run_with_retry(op, attempts=2, backoff_base=0) == "moved"

    def test_exhausted_conflicts_become_storage_unavailable(self, app):
        def op():
            raise StaleDataError("version mismatch")

        with pytest.raises(StorageUnavailable):
            run_with_retry(op, attempts=2, backoff_base=0)

    def test_operational_error_becomes_storage_unavailable(self, app):
        calls = []

        def op():
            calls.append(1)
            raise OperationalError("UPDATE tires", {}, Exception("database is locked"))

        with pytest.raises(StorageUnavailable) as excinfo:
            run_with_retry(op, attempts=3, backoff_base=0)
        assert len(calls) == 3
        assert "database is locked" in str(excinfo.value)

    def test_business_errors_are_not_retried(self, app):
        calls = []

        def op():
            calls.append(1)
            raise NotAvailable("tire is disposed")

        with pytest.raises(NotAvailable):
            run_with_retry(op, attempts=3, backoff_base=0)
        assert len(calls) == 1

    def test_failed_rollback_is_inconsistent(self, app, monkeypatch):
        def broken_rollback():
            raise SQLAlchemyError("connection lost during rollback")

        monkeypatch.setattr(concurrency, "db", SimpleNamespace(session=SimpleNamespace(rollback=broken_rollback)))

        def op():
            raise RuntimeError("write failed")

        with pytest.raises(Inconsistent):
            run_with_retry(op, attempts=1, backoff_base=0)

    def test_defaults_come_from_config(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "TRANSITION_ATTEMPTS", 4)
        calls = []

        def op():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(StorageUnavailable):
            concurrency.run_with_retry(op)
        assert len(calls) == 4
