"""
Journal server API client.

Lists the journals (remote collections) of an account:

    GET {base}/api/v1/journals/
    Authorization: Token <token>

Failures are mapped onto the sync error taxonomy:
- 401/403 -> UnauthorizedError
- 503 -> ServiceUnavailableError carrying the Retry-After hint
- other 5xx, timeouts and connection errors are retried with exponential
  backoff, then raised as JournalAPIError
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import requests
from requests.exceptions import RequestException

from calsync import __version__
from calsync.sync.collection import CollectionType
from calsync.sync.errors import (
    JournalAPIError,
    ServiceUnavailableError,
    UnauthorizedError,
)

# Journal listing endpoint, relative to the account url
JOURNALS_PATH = "/api/v1/journals/"

# Retry configuration defaults
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_RETRY_DELAY = 1.0  # seconds
DEFAULT_MAX_RETRY_DELAY = 30.0  # seconds

logger = logging.getLogger(__name__)


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> int:
    """
    Parse a Retry-After header.

    Args:
        value: Header value, either delta seconds or an HTTP date
        now: Reference time for HTTP dates (defaults to the current time)

    Returns:
        Seconds to wait, or 0 if the header is missing or unusable
    """
    if not value:
        return 0
    value = value.strip()
    if value.isdigit():
        return int(value)

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring malformed Retry-After header: {value!r}")
        return 0
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0, int((retry_at - now).total_seconds()))


class JournalAPI:
    """
    HTTP client for one journal server account.

    Attributes:
        base_url: Base url of the account's journal server
        timeout: Request timeout in seconds

    Usage:
        api = JournalAPI("https://journal.example.com", token="...")

        for journal in api.list_journals(CollectionType.CALENDAR):
            print(journal["uid"], journal.get("displayName"))
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_retry_delay: float = DEFAULT_INITIAL_RETRY_DELAY,
        max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Base url of the journal server
            token: API token, sent as ``Authorization: Token <token>``
            timeout: Request timeout in seconds
            max_retries: Attempts for retryable failures (at least 1)
            initial_retry_delay: Initial backoff delay in seconds
            max_retry_delay: Maximum backoff delay in seconds
            session: requests session to use (a new one by default)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json",
                "User-Agent": f"calsync/{__version__}",
            }
        )
        if token:
            self.session.headers["Authorization"] = f"Token {token}"

    def _retry_with_backoff(
        self, operation: Callable[[], requests.Response], operation_name: str
    ) -> requests.Response:
        """
        Execute a request with exponential backoff retry.

        Args:
            operation: Callable performing the request
            operation_name: Name for logging purposes

        Returns:
            The successful response

        Raises:
            UnauthorizedError: If the server rejects the credentials
            ServiceUnavailableError: If the server answers 503
            JournalAPIError: For other failures, once retries are exhausted
        """
        delay = self.initial_retry_delay

        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                response = operation()
            except (requests.ConnectionError, requests.Timeout) as e:
                if not last_attempt:
                    logger.warning(
                        f"{operation_name} failed ({e}), retrying in "
                        f"{delay:.1f}s (attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(delay)
                    delay = min(delay * 2, self.max_retry_delay)
                    continue
                raise JournalAPIError(
                    f"{operation_name} failed after {self.max_retries} attempts: {e}"
                ) from e
            except RequestException as e:
                raise JournalAPIError(f"{operation_name} failed: {e}") from e

            status_code = response.status_code

            if status_code in (401, 403):
                raise UnauthorizedError(
                    f"{operation_name} rejected with status {status_code}"
                )

            if status_code == 503:
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
                raise ServiceUnavailableError(
                    f"{operation_name}: service unavailable", retry_after=retry_after
                )

            if status_code >= 500 and not last_attempt:
                logger.warning(
                    f"{operation_name} server error ({status_code}), "
                    f"retrying in {delay:.1f}s"
                )
                time.sleep(delay)
                delay = min(delay * 2, self.max_retry_delay)
                continue

            if status_code >= 400:
                logger.error(f"{operation_name} failed with status {status_code}")
                raise JournalAPIError(
                    f"{operation_name} failed with status {status_code}"
                )

            return response

        # max_retries >= 1, every attempt returns, raises or continues
        raise JournalAPIError(f"{operation_name} failed after all retries")

    def list_journals(
        self, collection_type: Optional[CollectionType] = None
    ) -> list[dict[str, Any]]:
        """
        List the journals of the account.

        Args:
            collection_type: If set, only journals of this type

        Returns:
            List of journal dictionaries as sent by the server

        Raises:
            UnauthorizedError: If the server rejects the credentials
            ServiceUnavailableError: If the server is temporarily unavailable
            JournalAPIError: If the request fails or the response is malformed
        """
        url = f"{self.base_url}{JOURNALS_PATH}"

        def execute_list() -> requests.Response:
            return self.session.get(url, timeout=self.timeout)

        response = self._retry_with_backoff(execute_list, "list_journals")

        try:
            journals = response.json()
        except ValueError as e:
            raise JournalAPIError(f"Malformed journal listing: {e}") from e
        if not isinstance(journals, list):
            raise JournalAPIError(
                f"Journal listing must be a list, got {type(journals).__name__}"
            )

        valid = []
        for journal in journals:
            if not isinstance(journal, dict) or not journal.get("uid"):
                logger.warning(f"Skipping malformed journal entry: {journal!r}")
                continue
            if collection_type is not None and journal.get("type") != collection_type.value:
                continue
            valid.append(journal)

        logger.debug(f"Listed {len(valid)} journals from {self.base_url}")
        return valid

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
