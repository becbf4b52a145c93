"""
Preconditions of scheduled sync passes.

A scheduled pass only runs when the account is enabled and, unless disabled
per account, the journal server accepts TCP connections. Manual passes skip
these checks.
"""

import logging
import socket

from calsync.config.accounts import AccountSettings

# Seconds to wait for the reachability probe
DEFAULT_PROBE_TIMEOUT = 5.0

logger = logging.getLogger(__name__)


class SyncConditions:
    """
    Evaluates whether a scheduled pass may run.

    Usage:
        conditions = SyncConditions()
        if conditions.are_met(settings):
            ...
    """

    def __init__(self, probe_timeout: float = DEFAULT_PROBE_TIMEOUT):
        self.probe_timeout = probe_timeout

    def are_met(self, settings: AccountSettings) -> bool:
        """
        Check the preconditions for an account.

        Args:
            settings: Settings of the account

        Returns:
            True if a pass may run now
        """
        if not settings.enabled:
            logger.info(f"Account {settings.account_id} is disabled, skipping sync")
            return False

        if settings.check_network and not self.is_reachable(settings.host, settings.port):
            logger.info(
                f"Server {settings.host} of {settings.account_id} is not reachable, "
                "skipping sync"
            )
            return False

        return True

    def is_reachable(self, host: str, port: int) -> bool:
        """Whether a TCP connection to host:port can be opened."""
        if not host:
            return False
        try:
            with socket.create_connection((host, port), timeout=self.probe_timeout):
                return True
        except OSError as e:
            logger.debug(f"Reachability probe of {host}:{port} failed: {e}")
            return False
