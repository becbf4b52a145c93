"""
Sync orchestrator for calendar collection mirrors.

One pass for one account runs through these phases:

    IDLE -> PRECONDITION_CHECK -> REFRESH_REMOTE -> RECONCILE
         -> SYNC_COLLECTIONS -> COMPLETE

1. Preconditions (scheduled passes only): an unmet precondition ends the
   pass as skipped, without error or notification.
2. The remote collection directory is refreshed from the server.
3. Local mirrors are reconciled against the cached remote collection set.
4. Every surviving mirror with sync enabled is handed to a per-collection
   sync manager, strictly one after another.
5. The outcome is aggregated: a failure is classified and reported exactly
   once, a clean pass withdraws the standing notification.

Any phase can fail; the failure is recorded on the SyncOutcome and never
raised to the caller.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from calsync.sync.classifier import (
    CATEGORY_CALENDAR_SYNC,
    FailureClassifier,
    FailureReport,
)
from calsync.sync.collection import SERVICE_CALDAV, CollectionType
from calsync.sync.interfaces import (
    CollectionRefresherProtocol,
    CollectionSource,
    ConditionsProtocol,
    MirrorStoreProvider,
    NotificationSink,
    SettingsProvider,
    SyncManagerFactory,
)
from calsync.sync.manager import CollectionSyncContext, metadata_only_factory
from calsync.sync.reconciler import CollectionReconciler, ReconcileResult

logger = logging.getLogger(__name__)

# Content authority of calendar passes
AUTHORITY_CALENDAR = "calendar"


class PassPhase(str, Enum):
    """Phases of a sync pass, in order."""

    IDLE = "idle"
    PRECONDITION_CHECK = "precondition_check"
    REFRESH_REMOTE = "refresh_remote"
    RECONCILE = "reconcile"
    SYNC_COLLECTIONS = "sync_collections"
    COMPLETE = "complete"


@dataclass
class SyncExtras:
    """
    Options of one pass.

    Attributes:
        manual: Requested by the user; preconditions are not checked
        cancel_event: Set by the host to stop the pass before the next
                      collection
    """

    manual: bool = False
    cancel_event: Optional[threading.Event] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


@dataclass
class SyncOutcome:
    """
    Result of one pass for one account.

    The host scheduler reads ``io_errors``, ``database_error`` and
    ``delay_until`` to decide when to run the next pass.

    Attributes:
        account_id: Account the pass ran for
        io_errors: Retryable service failures
        database_error: Whether local storage failed
        database_errors: Number of local storage failures
        delay_until: Seconds to wait before the next pass, if the service
                     asked for a delay
        last_error: Failure of the pass, for diagnostics
        failure: Classified report of the failure
        skipped: Preconditions were not met
        cancelled: The host stopped the pass before all collections ran
        collections_synced: Collections handed to a sync manager successfully
        reconcile: Result of the reconciliation step
        phase: Last phase the pass entered
    """

    account_id: str
    io_errors: int = 0
    database_error: bool = False
    database_errors: int = 0
    delay_until: Optional[int] = None
    last_error: Optional[BaseException] = None
    failure: Optional[FailureReport] = None
    skipped: bool = False
    cancelled: bool = False
    collections_synced: int = 0
    reconcile: Optional[ReconcileResult] = None
    phase: PassPhase = PassPhase.IDLE
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def has_errors(self) -> bool:
        """Whether the pass recorded any failure."""
        return self.last_error is not None or self.io_errors > 0 or self.database_error

    @property
    def succeeded(self) -> bool:
        """Whether the pass ran to completion without failures."""
        return not self.skipped and not self.cancelled and not self.has_errors

    def summary(self) -> str:
        """One-line description for logs and CLI output."""
        if self.skipped:
            return "skipped (preconditions not met)"
        parts = []
        if self.reconcile is not None:
            parts.append(self.reconcile.summary())
        parts.append(f"{self.collections_synced} calendars synced")
        if self.cancelled:
            parts.append("cancelled")
        if self.failure is not None:
            parts.append(f"failed in {self.failure.phase or self.phase.value}")
        if self.delay_until:
            parts.append(f"retry in {self.delay_until}s")
        return ", ".join(parts)


class SyncOrchestrator:
    """
    Runs sync passes for accounts.

    All collaborators are injected, so the orchestrator neither knows the
    storage technology nor the transport. Passes of the same account are
    serialized; passes of different accounts may run concurrently on
    different threads.

    Usage:
        orchestrator = SyncOrchestrator(
            settings=settings,
            refresher=CollectionRefresher(database, settings),
            collections=database,
            mirror_store=LocalMirrorStore(database),
            notifier=DatabaseNotificationSink(database),
            conditions=SyncConditions(),
        )

        outcome = orchestrator.perform_sync("personal", SyncExtras(manual=True))
        if outcome.delay_until:
            ...
    """

    def __init__(
        self,
        settings: SettingsProvider,
        refresher: CollectionRefresherProtocol,
        collections: CollectionSource,
        mirror_store: MirrorStoreProvider,
        notifier: NotificationSink,
        conditions: Optional[ConditionsProtocol] = None,
        sync_manager_factory: Optional[SyncManagerFactory] = None,
        reconciler: Optional[CollectionReconciler] = None,
        classifier: Optional[FailureClassifier] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Account settings provider
            refresher: Refreshes the remote collection directory
            collections: Reads the cached remote collections
            mirror_store: Opens the per-pass mirror storage handle
            notifier: Presents failure reports
            conditions: Preconditions of scheduled passes (none if omitted)
            sync_manager_factory: Builds per-collection sync managers
            reconciler: Collection reconciler
            classifier: Failure classifier
        """
        self.settings = settings
        self.refresher = refresher
        self.collections = collections
        self.mirror_store = mirror_store
        self.notifier = notifier
        self.conditions = conditions
        self.sync_manager_factory = sync_manager_factory or metadata_only_factory
        self.reconciler = reconciler or CollectionReconciler()
        self.classifier = classifier or FailureClassifier()

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _account_lock(self, account_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(account_id, threading.Lock())

    def perform_sync(
        self,
        account_id: str,
        extras: Optional[SyncExtras] = None,
        authority: str = AUTHORITY_CALENDAR,
    ) -> SyncOutcome:
        """
        Run one sync pass for an account.

        Args:
            account_id: Account to synchronize
            extras: Options of the pass
            authority: Content authority being synced

        Returns:
            SyncOutcome of the pass; failures are recorded, never raised
        """
        extras = extras or SyncExtras()
        outcome = SyncOutcome(account_id=account_id)

        with self._account_lock(account_id):
            logger.info(f"Synchronizing calendars of {account_id}")
            self._run_pass(account_id, extras, authority, outcome)
            self._aggregate(account_id, authority, outcome)
            outcome.finished_at = datetime.now(timezone.utc)

        logger.info(f"Calendar sync of {account_id} finished: {outcome.summary()}")
        return outcome

    # =========================================================================
    # Pass Phases
    # =========================================================================

    def _run_pass(
        self,
        account_id: str,
        extras: SyncExtras,
        authority: str,
        outcome: SyncOutcome,
    ) -> None:
        try:
            outcome.phase = PassPhase.PRECONDITION_CHECK
            settings = self.settings.get(account_id)
            if not extras.manual and self.conditions is not None:
                if not self.conditions.are_met(settings):
                    outcome.skipped = True
                    return

            outcome.phase = PassPhase.REFRESH_REMOTE
            self.refresher.refresh(account_id, CollectionType.CALENDAR)

            endpoint_uri = self.settings.get_endpoint_uri(account_id)
            update_colors = self.settings.get_manage_colors_flag(account_id)

            outcome.phase = PassPhase.RECONCILE
            with self.mirror_store.session() as store:
                service_id = self.collections.get_service(account_id, SERVICE_CALDAV)
                remote = self.collections.list_collections(
                    service_id, supports_vevent=True, sync_only=True
                )
                logger.debug(f"Remote calendars of {account_id}: {list(remote)}")

                # All mirrors, so ones with sync disabled are reconciled too
                local_mirrors = store.find(account_id)
                outcome.reconcile = self.reconciler.reconcile(
                    store, account_id, remote, local_mirrors, update_colors
                )

                outcome.phase = PassPhase.SYNC_COLLECTIONS
                for mirror in store.find(account_id, sync_enabled_only=True):
                    if extras.cancelled:
                        logger.info(f"Calendar sync of {account_id} cancelled")
                        outcome.cancelled = True
                        break

                    logger.info(f"Synchronizing calendar {mirror.display_name or mirror.url}")
                    context = CollectionSyncContext(
                        endpoint_uri=endpoint_uri,
                        account_id=account_id,
                        settings=settings,
                        extras=extras,
                        authority=authority,
                        outcome=outcome,
                        mirror=mirror,
                        store=store,
                    )
                    self.sync_manager_factory(context).perform_sync()
                    outcome.collections_synced += 1

            if not outcome.cancelled:
                outcome.phase = PassPhase.COMPLETE

        except Exception as e:
            outcome.failure = self.classifier.apply(
                outcome, e, account_id, authority, outcome.phase
            )

    def _aggregate(self, account_id: str, authority: str, outcome: SyncOutcome) -> None:
        entry_errors = outcome.reconcile.errors if outcome.reconcile else []
        if entry_errors:
            if outcome.failure is None:
                outcome.failure = self.classifier.apply(
                    outcome,
                    entry_errors[0].error,
                    account_id,
                    authority,
                    PassPhase.RECONCILE,
                )
                outcome.database_errors += len(entry_errors) - 1
            else:
                outcome.database_error = True
                outcome.database_errors += len(entry_errors)
            outcome.failure.extra["failed_entries"] = [
                f"{entry.operation} {entry.url}" for entry in entry_errors
            ]

        if outcome.failure is not None:
            self._notify(outcome.failure)
        elif outcome.succeeded:
            self._cancel_notification(account_id)

    # =========================================================================
    # Notifications
    # =========================================================================

    def _notify(self, report: FailureReport) -> None:
        try:
            self.notifier.notify(report)
        except Exception as e:
            logger.error(f"Couldn't present sync failure of {report.account_id}: {e}")

    def _cancel_notification(self, account_id: str) -> None:
        try:
            self.notifier.cancel(account_id, CATEGORY_CALENDAR_SYNC)
        except Exception as e:
            logger.error(f"Couldn't clear sync failure notification of {account_id}: {e}")
