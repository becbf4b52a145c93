"""
Background scheduler for calendar collection sync.

The scheduler runs sync cycles until it is told to stop. A cycle hands one
pass per due account to a thread pool and waits for all of them:

- accounts whose server asked for a retry delay sit out until it expired
- SIGTERM/SIGINT set a shared cancel event, so running passes stop before
  their next collection and the daemon exits after the cycle
- a PID file guards against a second daemon and lets ``calsync daemon stop``
  find this one
"""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from calsync.sync.engine import SyncOutcome
from calsync.utils.paths import DEFAULT_CONFIG_DIR

logger = logging.getLogger(__name__)


DEFAULT_PID_DIR = DEFAULT_CONFIG_DIR
DEFAULT_PID_FILE = DEFAULT_PID_DIR / "daemon.pid"

# Accounts synchronized in parallel
DEFAULT_MAX_WORKERS = 4

# Runs one pass for an account; the event is set on shutdown
AccountSyncCallback = Callable[[str, threading.Event], SyncOutcome]

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class DaemonError(Exception):
    """Base exception of the sync daemon."""

    pass


class PIDFileError(DaemonError):
    """Raised when the PID file cannot be read or written."""

    pass


class DaemonAlreadyRunningError(DaemonError):
    """Raised when another daemon holds the PID file."""

    pass


@dataclass
class DaemonStats:
    """
    Counters of a daemon run.

    ``cycle_count`` counts sync cycles; the pass counters count account
    passes across all cycles.
    """

    started_at: datetime = field(default_factory=datetime.now)
    cycle_count: int = 0
    pass_count: int = 0
    pass_success_count: int = 0
    pass_error_count: int = 0
    pass_skipped_count: int = 0
    last_cycle_at: datetime | None = None
    last_cycle_success: bool = False
    last_error: str | None = None

    def record(self, account_id: str, outcome: SyncOutcome) -> bool:
        """Count a finished pass; returns False if it failed."""
        self.pass_count += 1
        if outcome.skipped:
            self.pass_skipped_count += 1
            return True
        if outcome.has_errors:
            self.pass_error_count += 1
            self.last_error = f"{account_id}: {outcome.last_error}"
            return False
        self.pass_success_count += 1
        return True

    def record_crash(self, account_id: str, error: BaseException) -> None:
        """Count a pass that raised instead of returning an outcome."""
        self.pass_count += 1
        self.pass_error_count += 1
        self.last_error = f"{account_id}: {error}"


class PIDFileManager:
    """
    The daemon's PID file.

    Usage:
        pid_file = PIDFileManager(Path("~/.calsync/daemon.pid").expanduser())
        pid_file.create()
        try:
            ...
        finally:
            pid_file.remove()
    """

    def __init__(self, pid_file: Path | None = None):
        self.pid_file = pid_file or DEFAULT_PID_FILE

    def create(self) -> None:
        """
        Write this process's PID, replacing a file left by a dead daemon.

        Raises:
            DaemonAlreadyRunningError: If the recorded process is alive.
            PIDFileError: If the file cannot be written.
        """
        recorded = self.read()
        if recorded is not None:
            if self.is_process_running(recorded):
                raise DaemonAlreadyRunningError(
                    f"Another daemon is running (PID {recorded}, {self.pid_file})"
                )
            logger.warning(f"Replacing PID file of dead process {recorded}")

        pid = os.getpid()
        try:
            self.pid_file.parent.mkdir(parents=True, exist_ok=True)
            self.pid_file.write_text(f"{pid}\n")
        except OSError as e:
            raise PIDFileError(f"Cannot write {self.pid_file}: {e}") from e
        logger.debug(f"Wrote PID {pid} to {self.pid_file}")

    def read(self) -> int | None:
        """
        PID recorded in the file.

        Returns:
            The PID, or None if there is no PID file.

        Raises:
            PIDFileError: If the file is unreadable or holds no PID.
        """
        try:
            content = self.pid_file.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PIDFileError(f"Cannot read {self.pid_file}: {e}") from e

        if not content.isdigit():
            raise PIDFileError(f"{self.pid_file} holds no PID: {content!r}")
        return int(content)

    def remove(self) -> None:
        """Delete the PID file if it exists."""
        try:
            self.pid_file.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise PIDFileError(f"Cannot remove {self.pid_file}: {e}") from e
        logger.debug(f"Removed {self.pid_file}")

    @staticmethod
    def is_process_running(pid: int) -> bool:
        """Whether a process with this PID exists."""
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists, but belongs to another user
            return True
        return True


class DaemonScheduler:
    """
    Runs sync cycles for a set of accounts until stopped.

    Usage:
        scheduler = DaemonScheduler(interval=3600, max_workers=4)
        scheduler.set_accounts(["personal", "work"])
        scheduler.set_sync_callback(
            lambda account_id, cancel: runner.run(account_id, cancel_event=cancel)
        )

        # Blocks until SIGTERM/SIGINT or stop()
        scheduler.run()

    Attributes:
        interval: Seconds between the starts of two cycles
        max_workers: Accounts synchronized in parallel
        stats: Counters of the current run
    """

    def __init__(
        self,
        interval: int = 3600,
        pid_file: Path | None = None,
        run_immediately: bool = True,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        """
        Args:
            interval: Seconds between cycles (default: one hour)
            pid_file: PID file location (default: ~/.calsync/daemon.pid)
            run_immediately: Start with a cycle instead of a wait
            max_workers: Accounts synchronized in parallel
        """
        self.interval = interval
        self.run_immediately = run_immediately
        self.max_workers = max(1, max_workers)
        self.stats = DaemonStats()

        self._pid_manager = PIDFileManager(pid_file)
        self._sync_callback: AccountSyncCallback | None = None
        self._accounts: list[str] = []
        self._not_before: dict[str, float] = {}
        self._cancel_event = threading.Event()
        self._shutdown_requested = False
        self._running = False
        self._previous_handlers: dict[int, Any] = {}

    @property
    def pid_file(self) -> Path:
        return self._pid_manager.pid_file

    def set_sync_callback(self, callback: AccountSyncCallback) -> None:
        """Set the function running one pass for an account."""
        self._sync_callback = callback

    def set_accounts(self, account_ids: list[str]) -> None:
        """Set the accounts synchronized every cycle."""
        self._accounts = list(account_ids)

    def backoff_remaining(self, account_id: str) -> float:
        """Seconds until the account may be synchronized again."""
        return max(0.0, self._not_before.get(account_id, 0.0) - time.time())

    # =========================================================================
    # Signals
    # =========================================================================

    def _install_signal_handlers(self) -> None:
        for signum in SHUTDOWN_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._on_signal)

    def _restore_signal_handlers(self) -> None:
        while self._previous_handlers:
            signum, handler = self._previous_handlers.popitem()
            signal.signal(signum, handler)

    def _on_signal(self, signum: int, frame: object) -> None:
        logger.info(f"{signal.Signals(signum).name} received, shutting down")
        self.stop()

    # =========================================================================
    # Cycles
    # =========================================================================

    def _due_accounts(self) -> list[str]:
        due = []
        for account_id in self._accounts:
            remaining = self.backoff_remaining(account_id)
            if remaining > 0:
                logger.info(f"Skipping {account_id}, server asked to wait {remaining:.0f}s more")
            else:
                due.append(account_id)
        return due

    def _run_cycle(self, executor: ThreadPoolExecutor) -> bool:
        """
        Run one pass for every due account and wait for all of them.

        Args:
            executor: Pool the passes run on

        Returns:
            True if no pass failed
        """
        if self._sync_callback is None:
            logger.warning("No sync callback set, nothing to run")
            return False

        self.stats.cycle_count += 1
        self.stats.last_cycle_at = datetime.now()
        due = self._due_accounts()
        logger.info(f"Sync cycle {self.stats.cycle_count}: {len(due)} account(s) due")

        futures: dict[Future[SyncOutcome], str] = {
            executor.submit(self._sync_callback, account_id, self._cancel_event): account_id
            for account_id in due
        }

        success = True
        for future in as_completed(futures):
            account_id = futures[future]
            try:
                outcome = future.result()
            except Exception as e:
                logger.error(f"Pass of {account_id} crashed: {e}")
                self.stats.record_crash(account_id, e)
                success = False
                continue

            if outcome.delay_until:
                self._not_before[account_id] = time.time() + outcome.delay_until
            else:
                self._not_before.pop(account_id, None)
            success = self.stats.record(account_id, outcome) and success

        self.stats.last_cycle_success = success
        if success:
            logger.info(f"Sync cycle {self.stats.cycle_count} finished")
        else:
            logger.warning(f"Sync cycle {self.stats.cycle_count} finished with errors")
        return success

    def _wait_for_next_cycle(self) -> bool:
        """
        Wait one interval.

        Returns:
            False if the wait was cut short by a shutdown request
        """
        logger.debug(f"Next sync cycle in {self.interval}s")
        return not self._cancel_event.wait(self.interval)

    def run(self) -> None:
        """
        Run cycles until a shutdown signal or stop().

        Running passes are cancelled before their next collection and waited
        for before the PID file is removed.

        Raises:
            DaemonAlreadyRunningError: If another daemon is running.
            PIDFileError: If the PID file cannot be written.
        """
        self._pid_manager.create()
        self._install_signal_handlers()
        self._shutdown_requested = False
        self._cancel_event.clear()
        self._running = True
        self.stats = DaemonStats()
        logger.info(
            f"Daemon started (PID {os.getpid()}, every {self.interval}s, "
            f"accounts: {', '.join(self._accounts) or 'none'})"
        )

        executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="calsync-sync"
        )
        try:
            if self.run_immediately:
                self._run_cycle(executor)
            while not self._shutdown_requested and self._wait_for_next_cycle():
                self._run_cycle(executor)
        finally:
            self._cancel_event.set()
            executor.shutdown(wait=True)
            self._running = False
            self._restore_signal_handlers()
            self._pid_manager.remove()
            logger.info(
                f"Daemon stopped after {self.stats.cycle_count} cycle(s), "
                f"{self.stats.pass_error_count} failed pass(es)"
            )

    def stop(self) -> None:
        """
        Ask the daemon to shut down.

        Safe to call from signal handlers, sync callbacks and other threads.
        """
        logger.info("Shutdown requested")
        self._shutdown_requested = True
        self._cancel_event.set()

    def is_running(self) -> bool:
        return self._running

    @classmethod
    def get_running_pid(cls, pid_file: Path | None = None) -> int | None:
        """
        PID of the running daemon.

        Returns:
            The PID, or None if no live daemon holds the PID file.
        """
        manager = PIDFileManager(pid_file)
        pid = manager.read()
        if pid is None or not manager.is_process_running(pid):
            return None
        return pid

    @classmethod
    def stop_running_daemon(cls, pid_file: Path | None = None) -> bool:
        """
        Send SIGTERM to the running daemon.

        Returns:
            True if the signal was delivered.
        """
        pid = cls.get_running_pid(pid_file)
        if pid is None:
            logger.info("No running daemon to stop")
            return False

        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.warning(f"Daemon {pid} exited before it could be signalled")
            return False
        except PermissionError:
            logger.error(f"Not allowed to signal daemon {pid}")
            return False
        logger.info(f"Sent SIGTERM to daemon {pid}")
        return True


__all__ = [
    "AccountSyncCallback",
    "DaemonScheduler",
    "DaemonStats",
    "DaemonError",
    "PIDFileError",
    "DaemonAlreadyRunningError",
    "PIDFileManager",
    "DEFAULT_PID_DIR",
    "DEFAULT_PID_FILE",
    "DEFAULT_MAX_WORKERS",
]
