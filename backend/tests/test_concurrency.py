"""
Tests for the retry helper used by every unit of work.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from doctrail.services.concurrency import run_with_retry


def _locked():
    return OperationalError("UPDATE documents", {}, Exception("database is locked"))


class TestRunWithRetry:
    def test_retries_then_succeeds(self, app):
        calls = []

        def op():
            calls.append(1)
            if len(calls) < 3:
                raise _locked()
            return "done"

        assert run_with_retry(op, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_gives_up_after_attempts(self, app):
        calls = []

        def op():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(op, attempts=2, backoff_base=0)
        assert len(calls) == 2

    def test_domain_errors_are_not_retried(self, app):
        calls = []

        def op():
            calls.append(1)
            raise ValueError("nope")

        with pytest.raises(ValueError):
            run_with_retry(op, attempts=5, backoff_base=0)
        assert len(calls) == 1
