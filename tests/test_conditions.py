"""
Tests for scheduled-pass preconditions.
"""

from unittest.mock import MagicMock, patch

from calsync.config.accounts import AccountSettings
from calsync.sync.conditions import SyncConditions


def account(**kwargs):
    return AccountSettings("personal", "https://journals.example.com:8443", **kwargs)


class TestSyncConditions:
    """Tests for SyncConditions.are_met."""

    def test_disabled_account(self):
        """Test that disabled accounts never run scheduled passes."""
        conditions = SyncConditions()
        with patch.object(conditions, "is_reachable") as probe:
            assert conditions.are_met(account(enabled=False)) is False
        probe.assert_not_called()

    def test_unreachable_server(self):
        """Test that an unreachable server skips the pass."""
        conditions = SyncConditions()
        with patch.object(conditions, "is_reachable", return_value=False) as probe:
            assert conditions.are_met(account()) is False
        probe.assert_called_once_with("journals.example.com", 8443)

    def test_reachable_server(self):
        """Test that a reachable server lets the pass run."""
        conditions = SyncConditions()
        with patch.object(conditions, "is_reachable", return_value=True):
            assert conditions.are_met(account()) is True

    def test_network_check_disabled(self):
        """Test that check_network=False skips the probe."""
        conditions = SyncConditions()
        with patch.object(conditions, "is_reachable") as probe:
            assert conditions.are_met(account(check_network=False)) is True
        probe.assert_not_called()


class TestIsReachable:
    """Tests for the TCP reachability probe."""

    @patch("calsync.sync.conditions.socket.create_connection")
    def test_connection_succeeds(self, mock_connect):
        """Test a successful probe."""
        mock_connect.return_value = MagicMock()

        assert SyncConditions(probe_timeout=2.0).is_reachable("example.com", 443) is True
        mock_connect.assert_called_once_with(("example.com", 443), timeout=2.0)

    @patch("calsync.sync.conditions.socket.create_connection")
    def test_connection_fails(self, mock_connect):
        """Test a failing probe."""
        mock_connect.side_effect = OSError("Network is unreachable")

        assert SyncConditions().is_reachable("example.com", 443) is False

    def test_empty_host(self):
        """Test that an empty host is never reachable."""
        assert SyncConditions().is_reachable("", 443) is False
