"""
Wiring of the sync orchestrator for the CLI and the daemon.

Builds a SyncOrchestrator from the loaded configuration with the SQLite and
HTTP collaborators, and records the outcome of every pass so ``calsync
status`` can show it.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import timedelta
from typing import Any, Optional

from calsync.config.accounts import AccountSettingsProvider
from calsync.storage.db import SyncDatabase
from calsync.storage.mirror import LocalMirrorStore
from calsync.sync.classifier import DEFAULT_RETRY_DELAY, FailureClassifier
from calsync.sync.conditions import SyncConditions
from calsync.sync.engine import SyncExtras, SyncOrchestrator, SyncOutcome
from calsync.sync.interfaces import SyncManagerFactory
from calsync.sync.notifications import (
    CompositeNotificationSink,
    DatabaseNotificationSink,
    LoggingNotificationSink,
)
from calsync.sync.refresh import CollectionRefresher, journal_api_factory

logger = logging.getLogger(__name__)

# Config keys forwarded to the journal API client
API_OPTION_KEYS = {
    "api_timeout": "timeout",
    "api_max_retries": "max_retries",
    "api_initial_retry_delay": "initial_retry_delay",
    "api_max_retry_delay": "max_retry_delay",
}


def build_orchestrator(
    config: dict[str, Any],
    database: SyncDatabase,
    settings: AccountSettingsProvider,
    sync_manager_factory: Optional[SyncManagerFactory] = None,
) -> SyncOrchestrator:
    """
    Create an orchestrator wired to the database and the journal server.

    Args:
        config: Loaded configuration dictionary
        database: Initialized sync database
        settings: Account settings
        sync_manager_factory: Per-collection sync managers (metadata only
                              by default)

    Returns:
        SyncOrchestrator instance
    """
    api_options = {
        option: config[key] for key, option in API_OPTION_KEYS.items() if key in config
    }
    return SyncOrchestrator(
        settings=settings,
        refresher=CollectionRefresher(
            database, settings, api_factory=journal_api_factory(**api_options)
        ),
        collections=database,
        mirror_store=LocalMirrorStore(database),
        notifier=CompositeNotificationSink(
            [DatabaseNotificationSink(database), LoggingNotificationSink()]
        ),
        conditions=SyncConditions(),
        sync_manager_factory=sync_manager_factory,
        classifier=FailureClassifier(
            default_retry_delay=config.get("default_retry_delay", DEFAULT_RETRY_DELAY)
        ),
    )


class SyncRunner:
    """
    Runs passes and records their outcome.

    Usage:
        runner = SyncRunner(build_orchestrator(config, database, settings), database)
        outcome = runner.run("personal", manual=True)
    """

    def __init__(self, orchestrator: SyncOrchestrator, database: SyncDatabase):
        self.orchestrator = orchestrator
        self.database = database

    def run(
        self,
        account_id: str,
        manual: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncOutcome:
        """
        Run one pass for an account and record its outcome.

        Args:
            account_id: Account to synchronize
            manual: Skip the preconditions of scheduled passes
            cancel_event: Stops the pass before the next collection when set

        Returns:
            SyncOutcome of the pass
        """
        outcome = self.orchestrator.perform_sync(
            account_id, SyncExtras(manual=manual, cancel_event=cancel_event)
        )
        self.record(outcome)
        return outcome

    def record(self, outcome: SyncOutcome) -> None:
        """Store the outcome as the account's latest sync state."""
        finished_at = outcome.finished_at or outcome.started_at
        delay_until = None
        if outcome.delay_until:
            delay_until = finished_at + timedelta(seconds=outcome.delay_until)

        try:
            self.database.record_sync_outcome(
                outcome.account_id,
                io_errors=outcome.io_errors,
                database_error=outcome.database_error,
                delay_until=delay_until,
                last_error=str(outcome.last_error) if outcome.last_error else None,
                skipped=outcome.skipped,
                collections_synced=outcome.collections_synced,
                synced_at=finished_at,
            )
        except sqlite3.Error as e:
            logger.error(f"Couldn't record sync outcome of {outcome.account_id}: {e}")
