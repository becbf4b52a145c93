"""
Failure classification for sync passes.

Maps a failure raised during a pass onto the SyncOutcome fields the host
scheduler consumes (I/O error count, delay, database error flag) and builds
the single failure report that is presented for the pass.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from calsync.sync.errors import ServiceUnavailableError, StorageError, UnauthorizedError

if TYPE_CHECKING:
    from calsync.sync.engine import PassPhase, SyncOutcome

logger = logging.getLogger(__name__)

# Delay in seconds when the server did not send a Retry-After hint
DEFAULT_RETRY_DELAY = 3600

# Notification category used for calendar sync failures
CATEGORY_CALENDAR_SYNC = "calendar_sync"


class FailureKind(str, Enum):
    """Failure categories of a sync pass."""

    SERVICE_UNAVAILABLE = "service_unavailable"  # retry after a delay
    STORAGE = "storage"  # local persistence failure
    UNAUTHORIZED = "unauthorized"  # re-authentication required
    OTHER = "other"  # unexpected, full diagnostics


@dataclass
class FailureReport:
    """
    Summary of the failure that ended (or marred) a sync pass.

    Attributes:
        account_id: Account the pass ran for
        kind: Classified failure kind
        title: Short notification title
        message: Notification body
        error_type: Class name of the failure
        error_message: Text of the failure
        authority: Content authority of the pass (omitted for auth failures)
        phase: Pass phase the failure happened in (omitted for auth failures)
        category: Notification category
    """

    account_id: str
    kind: FailureKind
    title: str
    message: str
    error_type: str
    error_message: str
    authority: Optional[str] = None
    phase: Optional[str] = None
    category: str = CATEGORY_CALENDAR_SYNC
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_diagnostics(self) -> bool:
        """Whether authority/phase details are attached."""
        return self.authority is not None or self.phase is not None

    def details(self) -> dict[str, Any]:
        """Diagnostic details for persistence and debug output."""
        details: dict[str, Any] = {
            "account": self.account_id,
            "kind": self.kind.value,
            "error_type": self.error_type,
            "error": self.error_message,
        }
        if self.authority is not None:
            details["authority"] = self.authority
        if self.phase is not None:
            details["phase"] = self.phase
        details.update(self.extra)
        return details


class FailureClassifier:
    """
    Classifies pass failures and records them on the outcome.

    Attributes:
        default_retry_delay: Delay used when ServiceUnavailable carries no hint
    """

    def __init__(self, default_retry_delay: int = DEFAULT_RETRY_DELAY):
        self.default_retry_delay = default_retry_delay

    @staticmethod
    def classify(error: BaseException) -> FailureKind:
        """
        Determine the kind of a failure.

        Args:
            error: The failure raised during the pass

        Returns:
            FailureKind of the failure
        """
        if isinstance(error, ServiceUnavailableError):
            return FailureKind.SERVICE_UNAVAILABLE
        if isinstance(error, (StorageError, sqlite3.Error)):
            return FailureKind.STORAGE
        if isinstance(error, UnauthorizedError):
            return FailureKind.UNAUTHORIZED
        return FailureKind.OTHER

    def apply(
        self,
        outcome: SyncOutcome,
        error: BaseException,
        account_id: str,
        authority: str,
        phase: PassPhase,
    ) -> FailureReport:
        """
        Record a failure on the outcome and build its report.

        Args:
            outcome: Outcome of the pass, updated in place
            error: The failure
            account_id: Account the pass ran for
            authority: Content authority of the pass
            phase: Phase the pass was in when the failure happened

        Returns:
            FailureReport to present for the pass
        """
        kind = self.classify(error)
        outcome.last_error = error

        if kind is FailureKind.SERVICE_UNAVAILABLE:
            assert isinstance(error, ServiceUnavailableError)
            outcome.io_errors += 1
            outcome.delay_until = error.retry_after or self.default_retry_delay
            logger.warning(
                f"Server unavailable for {account_id}, retrying in "
                f"{outcome.delay_until}s"
            )
        elif kind is FailureKind.STORAGE:
            outcome.database_error = True
            outcome.database_errors += 1
            logger.error(f"Couldn't prepare local calendars of {account_id}: {error}")
        elif kind is FailureKind.UNAUTHORIZED:
            logger.error(f"Authentication failed for {account_id}: {error}")
        else:
            logger.error(
                f"Calendar sync of {account_id} failed in phase {phase.value}: {error}",
                exc_info=error,
            )

        report = FailureReport(
            account_id=account_id,
            kind=kind,
            title=f"Calendar sync of {account_id} failed",
            message=self._message(kind, error),
            error_type=type(error).__name__,
            error_message=str(error),
        )
        if kind is not FailureKind.UNAUTHORIZED:
            report.authority = authority
            report.phase = phase.value
        if kind is FailureKind.SERVICE_UNAVAILABLE:
            report.extra["retry_after"] = outcome.delay_until
        return report

    @staticmethod
    def _message(kind: FailureKind, error: BaseException) -> str:
        if kind is FailureKind.SERVICE_UNAVAILABLE:
            return "The server is temporarily unavailable. Sync will be retried later."
        if kind is FailureKind.STORAGE:
            return f"Local calendar storage error: {error}"
        if kind is FailureKind.UNAUTHORIZED:
            return "The server rejected the credentials. Please log in again."
        return f"Synchronizing journals failed: {error}"
