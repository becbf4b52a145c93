"""
Tests for the daemon module.

Tests interval parsing, PID file management and the multi-account
scheduler.
"""

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from calsync.daemon import (
    DaemonAlreadyRunningError,
    DaemonScheduler,
    DaemonStats,
    PIDFileError,
    PIDFileManager,
    parse_interval,
)
from calsync.sync.engine import SyncOutcome


class TestParseInterval:
    """Tests for parse_interval."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("30s", 30),
            ("5m", 300),
            ("1h", 3600),
            ("1d", 86400),
            ("2H", 7200),
            (" 10 m ", 600),
            ("3600", 3600),
            (120, 120),
        ],
    )
    def test_valid(self, value, expected):
        """Test supported interval formats."""
        assert parse_interval(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "5x", "1.5h", "-5m"])
    def test_invalid_format(self, value):
        """Test malformed intervals."""
        with pytest.raises(ValueError, match="Invalid interval format"):
            parse_interval(value)

    @pytest.mark.parametrize("value", [0, "0", "0s", -10])
    def test_not_positive(self, value):
        """Test that zero and negative intervals are rejected."""
        with pytest.raises(ValueError, match="positive"):
            parse_interval(value)

    @pytest.mark.parametrize("value", [None, 1.5, True, ["1h"]])
    def test_invalid_type(self, value):
        """Test unsupported value types."""
        with pytest.raises(ValueError, match="Invalid interval type"):
            parse_interval(value)


class TestPIDFileManager:
    """Tests for PIDFileManager."""

    def test_create_and_read(self, tmp_path):
        """Test writing the current PID."""
        manager = PIDFileManager(tmp_path / "run" / "daemon.pid")

        manager.create()

        assert manager.read() == os.getpid()

    def test_read_missing(self, tmp_path):
        """Test reading a PID file that does not exist."""
        assert PIDFileManager(tmp_path / "daemon.pid").read() is None

    def test_read_invalid(self, tmp_path):
        """Test that garbage in the PID file raises."""
        pid_file = tmp_path / "daemon.pid"
        pid_file.write_text("not-a-pid")

        with pytest.raises(PIDFileError):
            PIDFileManager(pid_file).read()

    def test_create_while_running(self, tmp_path):
        """Test that a live PID blocks a second daemon."""
        pid_file = tmp_path / "daemon.pid"
        pid_file.write_text(str(os.getpid()))

        with pytest.raises(DaemonAlreadyRunningError):
            PIDFileManager(pid_file).create()

    def test_stale_pid_file_replaced(self, tmp_path):
        """Test that a PID file of a dead process is replaced."""
        pid_file = tmp_path / "daemon.pid"
        pid_file.write_text("999999")
        manager = PIDFileManager(pid_file)

        with patch.object(PIDFileManager, "is_process_running", return_value=False):
            manager.create()

        assert manager.read() == os.getpid()

    def test_remove(self, tmp_path):
        """Test removing the PID file, twice."""
        manager = PIDFileManager(tmp_path / "daemon.pid")
        manager.create()

        manager.remove()
        manager.remove()

        assert not manager.pid_file.exists()

    def test_is_process_running(self):
        """Test the liveness check for this process."""
        assert PIDFileManager.is_process_running(os.getpid()) is True


def outcome(account_id, **kwargs):
    return SyncOutcome(account_id=account_id, **kwargs)


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)


class TestRunCycle:
    """Tests for one scheduler cycle."""

    def test_no_callback(self, tmp_path, executor):
        """Test that a cycle without callback does nothing."""
        scheduler = DaemonScheduler(pid_file=tmp_path / "daemon.pid")
        assert scheduler._run_cycle(executor) is False
        assert scheduler.stats.cycle_count == 0

    def test_runs_every_account(self, tmp_path, executor):
        """Test that each account gets one pass with the shutdown event."""
        calls = []
        lock = threading.Lock()

        def callback(account_id, cancel_event):
            with lock:
                calls.append((account_id, cancel_event))
            return outcome(account_id)

        scheduler = DaemonScheduler(pid_file=tmp_path / "daemon.pid")
        scheduler.set_accounts(["a", "b", "c"])
        scheduler.set_sync_callback(callback)

        assert scheduler._run_cycle(executor) is True

        assert sorted(account for account, _ in calls) == ["a", "b", "c"]
        assert all(event is scheduler._cancel_event for _, event in calls)
        assert scheduler.stats.pass_count == 3
        assert scheduler.stats.pass_success_count == 3
        assert scheduler.stats.last_cycle_success is True

    def test_accounts_run_concurrently(self, tmp_path, executor):
        """Test that passes of different accounts overlap."""
        barrier = threading.Barrier(2, timeout=5)

        def callback(account_id, cancel_event):
            barrier.wait()
            return outcome(account_id)

        scheduler = DaemonScheduler(pid_file=tmp_path / "daemon.pid")
        scheduler.set_accounts(["a", "b"])
        scheduler.set_sync_callback(callback)

        assert scheduler._run_cycle(executor) is True

    def test_delay_until_backs_off_account(self, tmp_path, executor):
        """Test that an account asking for a delay sits out the next cycle."""
        calls = []

        def callback(account_id, cancel_event):
            calls.append(account_id)
            if account_id == "slow":
                return outcome(account_id, io_errors=1, delay_until=3600)
            return outcome(account_id)

        scheduler = DaemonScheduler(pid_file=tmp_path / "daemon.pid")
        scheduler.set_accounts(["slow", "fast"])
        scheduler.set_sync_callback(callback)

        assert scheduler._run_cycle(executor) is False
        assert scheduler.backoff_remaining("slow") > 3500
        assert scheduler.backoff_remaining("fast") == 0

        calls.clear()
        scheduler._run_cycle(executor)

        assert calls == ["fast"]

    def test_backoff_expires(self, tmp_path, executor):
        """Test that an expired delay lets the account run again."""
        calls = []

        def callback(account_id, cancel_event):
            calls.append(account_id)
            return outcome(account_id)

        scheduler = DaemonScheduler(pid_file=tmp_path / "daemon.pid")
        scheduler.set_accounts(["slow"])
        scheduler.set_sync_callback(callback)
        scheduler._not_before["slow"] = time.time() - 1

        scheduler._run_cycle(executor)

        assert calls == ["slow"]
        assert "slow" not in scheduler._not_before

    def test_skipped_pass(self, tmp_path, executor):
        """Test that skipped passes are counted but are not errors."""
        scheduler = DaemonScheduler(pid_file=tmp_path / "daemon.pid")
        scheduler.set_accounts(["a"])
        scheduler.set_sync_callback(lambda account_id, event: outcome(account_id, skipped=True))

        assert scheduler._run_cycle(executor) is True
        assert scheduler.stats.pass_skipped_count == 1

    def test_callback_exception(self, tmp_path, executor):
        """Test that a crashing pass does not stop the cycle."""

        def callback(account_id, cancel_event):
            if account_id == "bad":
                raise RuntimeError("crash")
            return outcome(account_id)

        scheduler = DaemonScheduler(pid_file=tmp_path / "daemon.pid")
        scheduler.set_accounts(["bad", "good"])
        scheduler.set_sync_callback(callback)

        assert scheduler._run_cycle(executor) is False
        assert scheduler.stats.pass_error_count == 1
        assert scheduler.stats.pass_success_count == 1
        assert "crash" in scheduler.stats.last_error

    def test_failed_pass(self, tmp_path, executor):
        """Test that a pass with errors marks the cycle as failed."""
        scheduler = DaemonScheduler(pid_file=tmp_path / "daemon.pid")
        scheduler.set_accounts(["a"])
        scheduler.set_sync_callback(
            lambda account_id, event: outcome(account_id, last_error=RuntimeError("boom"))
        )

        assert scheduler._run_cycle(executor) is False
        assert scheduler.stats.last_error == "a: boom"


class TestDaemonScheduler:
    """Tests for the scheduler lifecycle."""

    def test_defaults(self, tmp_path):
        """Test default settings."""
        scheduler = DaemonScheduler(pid_file=tmp_path / "daemon.pid")

        assert scheduler.interval == 3600
        assert scheduler.max_workers == 4
        assert not scheduler.is_running()
        assert isinstance(scheduler.stats, DaemonStats)

    def test_stop_sets_cancel_event(self, tmp_path):
        """Test that stop cancels in-flight passes."""
        scheduler = DaemonScheduler(pid_file=tmp_path / "daemon.pid")

        scheduler.stop()

        assert scheduler._shutdown_requested
        assert scheduler._cancel_event.is_set()

    def test_run_until_stopped(self, tmp_path):
        """Test a daemon run that is stopped from a pass."""
        pid_file = tmp_path / "daemon.pid"
        scheduler = DaemonScheduler(interval=60, pid_file=pid_file)
        seen = {}

        def callback(account_id, cancel_event):
            seen["pid_file_exists"] = pid_file.exists()
            seen["running"] = scheduler.is_running()
            scheduler.stop()
            return outcome(account_id)

        scheduler.set_accounts(["personal"])
        scheduler.set_sync_callback(callback)

        scheduler.run()

        assert seen == {"pid_file_exists": True, "running": True}
        assert not pid_file.exists()
        assert not scheduler.is_running()
        assert scheduler.stats.cycle_count == 1

    def test_wait_interrupted(self, tmp_path):
        """Test that a shutdown request ends the wait between cycles."""
        scheduler = DaemonScheduler(interval=60, pid_file=tmp_path / "daemon.pid")
        scheduler.stop()

        started = time.monotonic()
        assert scheduler._wait_for_next_cycle() is False
        assert time.monotonic() - started < 5

    def test_wait_completes(self, tmp_path):
        """Test that an undisturbed wait reports a due cycle."""
        scheduler = DaemonScheduler(interval=0, pid_file=tmp_path / "daemon.pid")
        assert scheduler._wait_for_next_cycle() is True

    def test_stats_record(self):
        """Test how pass outcomes are counted."""
        stats = DaemonStats()

        assert stats.record("a", outcome("a")) is True
        assert stats.record("a", outcome("a", skipped=True)) is True
        assert stats.record("a", outcome("a", last_error=RuntimeError("x"))) is False

        assert (stats.pass_count, stats.pass_success_count) == (3, 1)
        assert (stats.pass_skipped_count, stats.pass_error_count) == (1, 1)

    def test_get_running_pid(self, tmp_path):
        """Test finding the running daemon."""
        pid_file = tmp_path / "daemon.pid"
        assert DaemonScheduler.get_running_pid(pid_file) is None

        pid_file.write_text(str(os.getpid()))
        assert DaemonScheduler.get_running_pid(pid_file) == os.getpid()

    def test_stop_running_daemon_without_daemon(self, tmp_path):
        """Test stopping when nothing runs."""
        assert DaemonScheduler.stop_running_daemon(tmp_path / "daemon.pid") is False

    @patch("calsync.daemon.scheduler.os.kill")
    def test_stop_running_daemon_sends_sigterm(self, mock_kill, tmp_path):
        """Test that stop sends SIGTERM to the recorded PID."""
        pid_file = tmp_path / "daemon.pid"
        pid_file.write_text("4242")

        assert DaemonScheduler.stop_running_daemon(pid_file) is True
        assert mock_kill.call_args_list[-1].args[0] == 4242
