"""
Collaborator interfaces of the sync orchestrator.

The orchestrator depends only on these protocols, never on a concrete
storage technology or transport. The SQLite and HTTP implementations in
calsync.storage and calsync.api satisfy them structurally.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Optional, Protocol

from calsync.sync.collection import CollectionInfo, CollectionType, LocalMirror

if TYPE_CHECKING:
    from calsync.config.accounts import AccountSettings
    from calsync.sync.classifier import FailureReport
    from calsync.sync.manager import CollectionSyncContext


class CollectionRefresherProtocol(Protocol):
    """Refreshes the cached remote collection directory of an account."""

    def refresh(self, account_id: str, collection_type: CollectionType) -> None: ...


class CollectionSource(Protocol):
    """Reads cached remote collection metadata."""

    def get_service(self, account_id: str, service: str) -> Optional[int]: ...

    def list_collections(
        self,
        service_id: Optional[int],
        supports_vevent: Optional[bool] = None,
        sync_only: bool = False,
    ) -> dict[str, CollectionInfo]: ...


class MirrorStore(Protocol):
    """Create/update/delete/list operations on local mirrors."""

    def find(self, account_id: str, sync_enabled_only: bool = False) -> list[LocalMirror]: ...

    def create(self, account_id: str, info: CollectionInfo) -> LocalMirror: ...

    def update(self, mirror: LocalMirror, info: CollectionInfo, apply_color: bool) -> None: ...

    def delete(self, mirror: LocalMirror) -> None: ...


class CollectionSyncManager(Protocol):
    """Item-level synchronization of one collection."""

    def perform_sync(self) -> None: ...


SyncManagerFactory = Callable[["CollectionSyncContext"], CollectionSyncManager]


class SettingsProvider(Protocol):
    """Account-scoped settings."""

    def get(self, account_id: str) -> AccountSettings: ...

    def get_endpoint_uri(self, account_id: str) -> str: ...

    def get_manage_colors_flag(self, account_id: str) -> bool: ...


class NotificationSink(Protocol):
    """Presents (and withdraws) the failure notification of an account."""

    def notify(self, report: FailureReport) -> None: ...

    def cancel(self, account_id: str, category: str) -> None: ...


class MirrorStoreProvider(Protocol):
    """Opens the per-pass storage handle of the local mirrors."""

    def session(self) -> AbstractContextManager[MirrorStore]: ...


class ConditionsProtocol(Protocol):
    """Decides whether a scheduled pass may run."""

    def are_met(self, settings: AccountSettings) -> bool: ...
