"""
Collection reconciler.

Brings the local mirrors of an account into exact correspondence with the
remote collection set:

- url only remote  -> create a mirror
- url in both      -> update the mirror (name always, color on request)
- url only local   -> delete the mirror

A failing create/update/delete is logged and recorded; the remaining entries
are still processed.
"""

import logging
import sqlite3
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from calsync.sync.collection import CollectionInfo, LocalMirror
from calsync.sync.errors import StorageError
from calsync.sync.interfaces import MirrorStore

logger = logging.getLogger(__name__)


@dataclass
class EntryError:
    """A create/update/delete that failed during reconciliation."""

    operation: str  # "create", "update" or "delete"
    url: str
    error: Exception


@dataclass
class ReconcileResult:
    """
    Result of one reconciliation.

    Attributes:
        created: Urls a mirror was created for
        updated: Urls whose mirror received the remote metadata
        deleted: Urls whose obsolete mirror was deleted
        errors: Entries whose storage operation failed
    """

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    errors: list[EntryError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Whether any entry failed."""
        return bool(self.errors)

    @property
    def first_error(self) -> Exception | None:
        """The first failure, used to report the pass."""
        return self.errors[0].error if self.errors else None

    def summary(self) -> str:
        """One-line summary for logs and CLI output."""
        text = (
            f"created {len(self.created)}, updated {len(self.updated)}, "
            f"deleted {len(self.deleted)}"
        )
        if self.errors:
            text += f", {len(self.errors)} failed"
        return text


class CollectionReconciler:
    """
    Applies the three-way diff between remote collections and local mirrors.

    The reconciler holds no state between calls, so one instance can serve
    passes of several accounts concurrently.

    Usage:
        reconciler = CollectionReconciler()

        with mirror_store.session() as store:
            local = store.find(account_id)
            result = reconciler.reconcile(
                store, account_id, remote, local, update_colors_from_remote=True
            )
    """

    def reconcile(
        self,
        store: MirrorStore,
        account_id: str,
        remote: Mapping[str, CollectionInfo],
        local_mirrors: Iterable[LocalMirror],
        update_colors_from_remote: bool,
    ) -> ReconcileResult:
        """
        Reconcile the mirrors of one account.

        Args:
            store: Mirror store to apply the changes to
            account_id: Account the mirrors belong to
            remote: Remote collection set, keyed by url
            local_mirrors: Current mirrors of the account
            update_colors_from_remote: Whether updates take over remote colors

        Returns:
            ReconcileResult listing what was created, updated and deleted
        """
        result = ReconcileResult()

        # Working copy: urls are consumed as they are matched to a mirror
        pending: dict[str, CollectionInfo] = dict(remote)

        for mirror in local_mirrors:
            info = pending.pop(mirror.url, None)
            if info is None:
                logger.debug(f"Deleting obsolete local calendar {mirror.url}")
                self._apply(result, "delete", mirror.url, store.delete, mirror)
            else:
                logger.debug(f"Updating local calendar {mirror.url} with {info}")
                self._apply(
                    result,
                    "update",
                    mirror.url,
                    store.update,
                    mirror,
                    info,
                    update_colors_from_remote,
                )

        # Everything left has no mirror yet
        for url, info in pending.items():
            logger.info(f"Adding local calendar {info.title} ({url})")
            self._apply(result, "create", url, store.create, account_id, info)

        logger.info(f"Reconciled local calendars of {account_id}: {result.summary()}")
        return result

    def _apply(self, result: ReconcileResult, operation: str, url: str, func, *args) -> None:
        try:
            func(*args)
        except (StorageError, sqlite3.Error) as e:
            logger.error(f"Couldn't {operation} local calendar {url}: {e}")
            result.errors.append(EntryError(operation=operation, url=url, error=e))
            return

        if operation == "create":
            result.created.append(url)
        elif operation == "update":
            result.updated.append(url)
        else:
            result.deleted.append(url)
