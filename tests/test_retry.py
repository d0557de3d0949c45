"""Tests for retrying transient store failures."""
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from dispositions.core.exceptions import MESSAGES, DatabaseError, ValidationError
from dispositions.core.retry import handle_database_operation, is_transient


def locked():
    return OperationalError("UPDATE dispositions", {}, Exception("database is locked"))


class FlakyOperation:
    """Fails with ``error`` for the first ``failures`` calls, then returns 'ok'."""

    def __init__(self, failures, error=locked):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error()
        return "ok"


class TestTransientFailures:

    def test_transient_failure_is_retried_until_success(self, db_session):
        """
        INVARIANT: transient store failures are retried, up to 3 attempts in total.
        """
        operation = FlakyOperation(failures=2)

        assert handle_database_operation(db_session, operation, "test") == "ok"
        assert operation.calls == 3

    def test_gives_up_after_three_attempts(self, db_session):
        operation = FlakyOperation(failures=10)

        with pytest.raises(DatabaseError) as exc_info:
            handle_database_operation(db_session, operation, "test")

        assert operation.calls == 3
        assert exc_info.value.user_message == MESSAGES["DATABASE_UNAVAILABLE"]
        assert isinstance(exc_info.value.original, OperationalError)

    def test_backoff_doubles(self, db_session, monkeypatch):
        import dispositions.core.retry as retry_module

        delays = []
        monkeypatch.setattr(retry_module.time, "sleep", delays.append)

        with pytest.raises(DatabaseError):
            handle_database_operation(db_session, FlakyOperation(failures=10), "test", base_delay=0.5)

        assert delays == [0.5, 1.0]


class TestPermanentFailures:

    def test_integrity_error_is_not_retried(self, db_session):
        operation = FlakyOperation(
            failures=10,
            error=lambda: IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")),
        )

        with pytest.raises(DatabaseError) as exc_info:
            handle_database_operation(db_session, operation, "test")

        assert operation.calls == 1
        assert exc_info.value.message == MESSAGES["DATABASE_CONFLICT"]

    def test_domain_errors_are_attempted_once(self, db_session):
        """
        INVARIANT: validation, authorization and reference errors are never retried.
        """
        operation = FlakyOperation(failures=10, error=lambda: ValidationError("bad input"))

        with pytest.raises(ValidationError):
            handle_database_operation(db_session, operation, "test")
        assert operation.calls == 1

    def test_transient_classification(self):
        assert is_transient(locked())
        assert not is_transient(IntegrityError("INSERT", {}, Exception("dup")))
