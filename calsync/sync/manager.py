"""
Per-collection sync managers.

The orchestrator builds one manager per mirrored calendar through a
SyncManagerFactory and runs them one after another. Item-level protocols plug
in through their own factory; the default manager only records that the
collection's metadata is current.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from calsync.sync.collection import LocalMirror

if TYPE_CHECKING:
    from calsync.config.accounts import AccountSettings
    from calsync.sync.engine import SyncExtras, SyncOutcome

logger = logging.getLogger(__name__)


@dataclass
class CollectionSyncContext:
    """
    Everything a per-collection sync manager gets to work with.

    Attributes:
        endpoint_uri: Base url of the account's journal server
        account_id: Account the pass runs for
        settings: Settings of the account
        extras: Options of the pass (manual run, cancellation)
        authority: Content authority being synced
        outcome: Outcome of the pass, shared by all managers of the pass
        mirror: The local calendar to synchronize
        store: Storage handle of the pass
    """

    endpoint_uri: str
    account_id: str
    settings: AccountSettings
    extras: SyncExtras
    authority: str
    outcome: SyncOutcome
    mirror: LocalMirror
    store: Any

    @property
    def cancel_event(self) -> Optional[threading.Event]:
        return self.extras.cancel_event


class MetadataOnlySyncManager:
    """
    Default per-collection sync manager.

    Marks the mirror as synchronized. Item-level synchronization is out of
    scope for calsync itself.
    """

    def __init__(self, context: CollectionSyncContext):
        self.context = context

    def perform_sync(self) -> None:
        mirror = self.context.mirror
        logger.debug(
            f"Synchronizing {mirror.display_name or mirror.url} of "
            f"{self.context.account_id} against {self.context.endpoint_uri}"
        )
        self.context.store.mark_synced(mirror)


def metadata_only_factory(context: CollectionSyncContext) -> MetadataOnlySyncManager:
    """SyncManagerFactory building MetadataOnlySyncManager instances."""
    return MetadataOnlySyncManager(context)
