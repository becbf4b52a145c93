"""
Exception taxonomy for collection synchronization.

Every failure a sync pass can run into is mapped onto one of these classes
so the failure classifier can decide between retry-with-delay, fatal for
the pass, and re-authentication.
"""

from __future__ import annotations


class CalsyncError(Exception):
    """Base exception for calsync errors."""

    pass


class ServiceUnavailableError(CalsyncError):
    """
    Raised when the journal server is temporarily unavailable.

    Attributes:
        retry_after: Seconds the server asked us to wait before retrying,
                     or 0 if no hint was given.
    """

    def __init__(self, message: str = "Service unavailable", retry_after: int = 0):
        super().__init__(message)
        self.retry_after = max(0, int(retry_after or 0))


class StorageError(CalsyncError):
    """Raised when the local mirror store or collection cache cannot be used."""

    pass


class UnauthorizedError(CalsyncError):
    """Raised when the server rejects the account credentials."""

    pass


class JournalAPIError(CalsyncError):
    """Raised when a journal server request fails for any other reason."""

    pass
