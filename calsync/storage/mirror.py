"""
Local mirror store for calendar collections.

Persists one ``local_calendars`` row per mirrored collection and account.
A sync pass opens one MirrorSession, which owns a single connection for the
whole pass and releases it on exit. Every create/update/delete commits on its
own so a failing entry never rolls back the entries applied before it.
"""

import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from typing import Optional

from calsync.storage.db import SyncDatabase, format_timestamp, utc_now
from calsync.sync.collection import CollectionInfo, LocalMirror
from calsync.sync.errors import StorageError

logger = logging.getLogger(__name__)


class MirrorSession:
    """
    Storage handle for one sync pass.

    Implements the mirror store operations used by the reconciler and the
    per-collection sync managers. sqlite3 errors are raised as StorageError.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            return cursor
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageError(f"Local calendar storage failed: {e}") from e

    def find(self, account_id: str, sync_enabled_only: bool = False) -> list[LocalMirror]:
        """
        Enumerate the mirrors of an account.

        Args:
            account_id: The account identifier
            sync_enabled_only: If True, only mirrors whose events are synced

        Returns:
            List of LocalMirror objects ordered by local id
        """
        sql = "SELECT * FROM local_calendars WHERE account_id = ?"
        if sync_enabled_only:
            sql += " AND sync_events != 0"
        sql += " ORDER BY id"
        cursor = self._execute(sql, (account_id,))
        return [LocalMirror.from_row(row) for row in cursor.fetchall()]

    def get(self, account_id: str, url: str) -> Optional[LocalMirror]:
        """Get the mirror of one collection, or None."""
        cursor = self._execute(
            "SELECT * FROM local_calendars WHERE account_id = ? AND url = ?",
            (account_id, url),
        )
        row = cursor.fetchone()
        return LocalMirror.from_row(row) if row else None

    def create(self, account_id: str, info: CollectionInfo) -> LocalMirror:
        """
        Create a mirror for a remote collection.

        Args:
            account_id: The account identifier
            info: Remote collection to mirror

        Returns:
            The created LocalMirror

        Raises:
            StorageError: If the row cannot be written (including a mirror
                          for the url already existing)
        """
        now = format_timestamp(utc_now())
        cursor = self._execute(
            """
            INSERT INTO local_calendars (
                account_id, url, display_name, color, sync_events,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, 1, ?, ?)
            """,
            (account_id, info.url, info.display_name, info.color, now, now),
        )
        return LocalMirror(
            id=cursor.lastrowid or 0,
            account_id=account_id,
            url=info.url,
            display_name=info.display_name,
            color=info.color,
            sync_events=True,
        )

    def update(self, mirror: LocalMirror, info: CollectionInfo, apply_color: bool) -> None:
        """
        Apply remote metadata to an existing mirror.

        The name is always taken over; the color only if ``apply_color``.
        Rows are only written when something changed.

        Args:
            mirror: Mirror to update (updated in place as well)
            info: Remote metadata for the mirror's url
            apply_color: Whether to take over the remote color
        """
        display_name = info.display_name
        color = info.color if apply_color else mirror.color
        if display_name == mirror.display_name and color == mirror.color:
            return

        self._execute(
            "UPDATE local_calendars SET display_name = ?, color = ?, updated_at = ? "
            "WHERE id = ?",
            (display_name, color, format_timestamp(utc_now()), mirror.id),
        )
        mirror.display_name = display_name
        mirror.color = color

    def delete(self, mirror: LocalMirror) -> None:
        """Delete a mirror."""
        self._execute("DELETE FROM local_calendars WHERE id = ?", (mirror.id,))

    def set_sync_events(self, mirror: LocalMirror, enabled: bool) -> None:
        """Enable or disable event synchronization for a mirror."""
        self._execute(
            "UPDATE local_calendars SET sync_events = ? WHERE id = ?",
            (int(enabled), mirror.id),
        )
        mirror.sync_events = enabled

    def mark_synced(self, mirror: LocalMirror) -> None:
        """Record that the per-collection sync of a mirror completed."""
        now = utc_now()
        self._execute(
            "UPDATE local_calendars SET last_synced_at = ? WHERE id = ?",
            (format_timestamp(now), mirror.id),
        )
        mirror.last_synced_at = now


class LocalMirrorStore:
    """
    Factory for per-pass mirror sessions.

    Usage:
        store = LocalMirrorStore(database)

        with store.session() as mirrors:
            for mirror in mirrors.find("personal"):
                ...
    """

    def __init__(self, database: SyncDatabase):
        """
        Initialize the mirror store.

        Args:
            database: Database holding the ``local_calendars`` table
        """
        self.database = database

    @contextmanager
    def session(self) -> Generator[MirrorSession, None, None]:
        """
        Open a storage handle for one pass.

        The handle is released on every exit path.

        Raises:
            StorageError: If the database cannot be opened
        """
        try:
            conn = self.database.open_connection()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open local calendar storage: {e}") from e

        logger.debug("Opened local calendar storage session")
        try:
            yield MirrorSession(conn)
        finally:
            self.database.close_connection(conn)
            logger.debug("Closed local calendar storage session")
