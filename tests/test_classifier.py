"""
Tests for failure classification.
"""

import sqlite3

import pytest

from calsync.sync.classifier import (
    CATEGORY_CALENDAR_SYNC,
    DEFAULT_RETRY_DELAY,
    FailureClassifier,
    FailureKind,
)
from calsync.sync.engine import PassPhase, SyncOutcome
from calsync.sync.errors import (
    JournalAPIError,
    ServiceUnavailableError,
    StorageError,
    UnauthorizedError,
)


def apply(error, classifier=None, phase=PassPhase.REFRESH_REMOTE):
    outcome = SyncOutcome(account_id="personal")
    report = (classifier or FailureClassifier()).apply(
        outcome, error, "personal", "calendar", phase
    )
    return outcome, report


class TestClassify:
    """Tests for FailureClassifier.classify."""

    @pytest.mark.parametrize(
        "error,kind",
        [
            (ServiceUnavailableError(), FailureKind.SERVICE_UNAVAILABLE),
            (StorageError("disk full"), FailureKind.STORAGE),
            (sqlite3.OperationalError("locked"), FailureKind.STORAGE),
            (UnauthorizedError("401"), FailureKind.UNAUTHORIZED),
            (JournalAPIError("404"), FailureKind.OTHER),
            (ValueError("bug"), FailureKind.OTHER),
        ],
    )
    def test_kinds(self, error, kind):
        """Test the kind each failure maps to."""
        assert FailureClassifier.classify(error) is kind


class TestApply:
    """Tests for recording failures on the outcome."""

    def test_service_unavailable_with_hint(self):
        """Test that the hint becomes the delay."""
        outcome, report = apply(ServiceUnavailableError(retry_after=3600))

        assert outcome.io_errors == 1
        assert outcome.delay_until == 3600
        assert not outcome.database_error
        assert report.extra["retry_after"] == 3600

    def test_service_unavailable_default_delay(self):
        """Test the default delay when no hint was given."""
        outcome, _ = apply(ServiceUnavailableError())
        assert outcome.delay_until == DEFAULT_RETRY_DELAY

    def test_custom_default_delay(self):
        """Test a configured default delay."""
        outcome, _ = apply(ServiceUnavailableError(), FailureClassifier(default_retry_delay=60))
        assert outcome.delay_until == 60

    def test_storage(self):
        """Test that storage failures set the database flag."""
        outcome, report = apply(StorageError("disk full"), phase=PassPhase.RECONCILE)

        assert outcome.database_error
        assert outcome.database_errors == 1
        assert outcome.io_errors == 0
        assert outcome.delay_until is None
        assert report.phase == "reconcile"

    def test_unauthorized_has_no_diagnostics(self):
        """Test that auth failures carry neither authority nor phase."""
        outcome, report = apply(UnauthorizedError("401"))

        assert report.authority is None
        assert report.phase is None
        assert "authority" not in report.details()
        assert "phase" not in report.details()
        assert "log in" in report.message
        assert outcome.last_error is not None

    def test_other_has_full_diagnostics(self):
        """Test that unexpected failures keep account, authority and phase."""
        error = RuntimeError("unexpected")
        outcome, report = apply(error, phase=PassPhase.SYNC_COLLECTIONS)

        details = report.details()
        assert details["account"] == "personal"
        assert details["authority"] == "calendar"
        assert details["phase"] == "sync_collections"
        assert details["error_type"] == "RuntimeError"
        assert outcome.last_error is error
        assert not outcome.database_error
        assert outcome.io_errors == 0

    def test_report_fields(self):
        """Test the common report fields."""
        _, report = apply(JournalAPIError("boom"))

        assert report.account_id == "personal"
        assert report.category == CATEGORY_CALENDAR_SYNC
        assert report.title == "Calendar sync of personal failed"
        assert report.error_message == "boom"
