"""
Notification sinks for sync failure reports.

A pass presents at most one failure report. Sinks keep at most one standing
notification per account and category; a successful pass withdraws it.
"""

import logging
from collections.abc import Iterable

from calsync.storage.db import SyncDatabase
from calsync.sync.classifier import FailureKind, FailureReport

logger = logging.getLogger(__name__)


class DatabaseNotificationSink:
    """
    Keeps standing notifications in the sync database.

    The CLI ``status`` command reads them back, so failures of daemon passes
    stay visible until the account syncs successfully again.
    """

    def __init__(self, database: SyncDatabase):
        self.database = database

    def notify(self, report: FailureReport) -> None:
        self.database.upsert_notification(
            account_id=report.account_id,
            category=report.category,
            title=report.title,
            message=report.message,
            details=report.details(),
        )

    def cancel(self, account_id: str, category: str) -> None:
        if self.database.delete_notification(account_id, category):
            logger.info(f"Cleared sync failure notification of {account_id}")


class LoggingNotificationSink:
    """Writes failure reports to the log."""

    def notify(self, report: FailureReport) -> None:
        if report.kind is FailureKind.SERVICE_UNAVAILABLE:
            logger.warning(f"{report.title}: {report.message}")
        else:
            logger.error(f"{report.title}: {report.message}")
        logger.debug(f"Failure details: {report.details()}")

    def cancel(self, account_id: str, category: str) -> None:
        logger.debug(f"No standing {category} notification for {account_id}")


class CompositeNotificationSink:
    """
    Fans a report out to several sinks.

    A failing sink is logged and does not keep the others from being notified.
    """

    def __init__(self, sinks: Iterable):
        self.sinks = list(sinks)

    def notify(self, report: FailureReport) -> None:
        for sink in self.sinks:
            try:
                sink.notify(report)
            except Exception as e:
                logger.error(f"Notification sink {type(sink).__name__} failed: {e}")

    def cancel(self, account_id: str, category: str) -> None:
        for sink in self.sinks:
            try:
                sink.cancel(account_id, category)
            except Exception as e:
                logger.error(f"Notification sink {type(sink).__name__} failed: {e}")
