"""
Remote collection directory refresh.

Fetches the journals of one collection type from the server and writes them
into the collection cache, which the orchestrator then reads as the remote
collection set of the pass.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Optional

from calsync.api.journal_api import JournalAPI
from calsync.config.accounts import AccountSettings
from calsync.storage.db import SyncDatabase
from calsync.sync.collection import CollectionInfo, CollectionType
from calsync.sync.interfaces import SettingsProvider

logger = logging.getLogger(__name__)

ApiFactory = Callable[[AccountSettings], JournalAPI]


def journal_api_factory(**options: Any) -> ApiFactory:
    """
    Build an ApiFactory creating JournalAPI clients with the given options.

    Args:
        **options: Keyword arguments passed to JournalAPI (timeout, retries)

    Returns:
        Callable creating a client for an account
    """

    def create(settings: AccountSettings) -> JournalAPI:
        return JournalAPI(settings.url, token=settings.resolve_token(), **options)

    return create


class CollectionRefresher:
    """
    Refreshes the cached collection directory of an account.

    The cache is brought in line with the server listing: new journals are
    inserted, known ones updated (keeping the user's sync selection) and
    journals gone from the server are removed.

    Usage:
        refresher = CollectionRefresher(database, settings)
        refresher.refresh("personal", CollectionType.CALENDAR)
    """

    def __init__(
        self,
        database: SyncDatabase,
        settings: SettingsProvider,
        api_factory: Optional[ApiFactory] = None,
    ):
        """
        Initialize the refresher.

        Args:
            database: Database holding the collection cache
            settings: Provider of account settings
            api_factory: Creates the API client of an account
        """
        self.database = database
        self.settings = settings
        self.api_factory = api_factory or journal_api_factory()

    def refresh(self, account_id: str, collection_type: CollectionType) -> None:
        """
        Refresh the cached collections of one type.

        Args:
            account_id: Account to refresh
            collection_type: Collection type to refresh

        Raises:
            UnauthorizedError: If the server rejects the credentials
            ServiceUnavailableError: If the server is temporarily unavailable
            JournalAPIError: If the listing fails
            sqlite3.Error: If the cache cannot be written
        """
        api = self.api_factory(self.settings.get(account_id))
        try:
            journals = api.list_journals(collection_type)
        finally:
            api.close()

        service_id = self.database.ensure_service(account_id, collection_type.service)
        cached = self.database.list_collections(service_id)

        remote_urls = set()
        for journal in journals:
            info = CollectionInfo.from_journal(journal, service_id=service_id)
            remote_urls.add(info.url)
            self.database.upsert_collection(service_id, info)

        removed = 0
        for url in cached:
            if url not in remote_urls:
                self.database.delete_collection(service_id, url)
                removed += 1

        logger.info(
            f"Refreshed {collection_type.value.lower()} collections of {account_id}: "
            f"{len(remote_urls)} on server, {removed} removed from cache"
        )
