"""
SQLite database module for the collection cache and sync state.

Provides persistent storage for services, the remote collection metadata
cache, the last outcome of every account's sync pass and standing failure
notifications. Local calendar mirrors live in the same file and are managed
by calsync.storage.mirror.
"""

import json
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from calsync.sync.collection import CollectionInfo

# SQL Schema for services, collections, mirrors and sync state
SCHEMA = """
CREATE TABLE IF NOT EXISTS services (
    id INTEGER PRIMARY KEY,
    account_id TEXT NOT NULL,
    service TEXT NOT NULL,
    UNIQUE(account_id, service)
);

CREATE TABLE IF NOT EXISTS collections (
    id INTEGER PRIMARY KEY,
    service_id INTEGER NOT NULL REFERENCES services(id) ON DELETE CASCADE,
    url TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'CALENDAR',
    display_name TEXT,
    description TEXT,
    color INTEGER,
    supports_vevent BOOLEAN NOT NULL DEFAULT 1,
    supports_vtodo BOOLEAN NOT NULL DEFAULT 0,
    read_only BOOLEAN NOT NULL DEFAULT 0,
    sync BOOLEAN NOT NULL DEFAULT 1,
    UNIQUE(service_id, url)
);

CREATE INDEX IF NOT EXISTS idx_collections_service ON collections(service_id);

CREATE TABLE IF NOT EXISTS local_calendars (
    id INTEGER PRIMARY KEY,
    account_id TEXT NOT NULL,
    url TEXT NOT NULL,
    display_name TEXT,
    color INTEGER,
    sync_events BOOLEAN NOT NULL DEFAULT 1,
    created_at TEXT,
    updated_at TEXT,
    last_synced_at TEXT,
    UNIQUE(account_id, url)
);

CREATE INDEX IF NOT EXISTS idx_local_calendars_account ON local_calendars(account_id);

CREATE TABLE IF NOT EXISTS sync_state (
    id INTEGER PRIMARY KEY,
    account_id TEXT NOT NULL,
    last_sync_at TEXT,
    last_success_at TEXT,
    io_errors INTEGER NOT NULL DEFAULT 0,
    database_error BOOLEAN NOT NULL DEFAULT 0,
    delay_until TEXT,
    last_error TEXT,
    skipped BOOLEAN NOT NULL DEFAULT 0,
    collections_synced INTEGER NOT NULL DEFAULT 0,
    UNIQUE(account_id)
);

CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY,
    account_id TEXT NOT NULL,
    category TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT,
    details TEXT,
    created_at TEXT,
    UNIQUE(account_id, category)
);
"""


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for a TEXT timestamp column."""
    if value is None:
        return None
    return value.isoformat(timespec="seconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a TEXT timestamp column."""
    if not value:
        return None
    return datetime.fromisoformat(value)


class SyncDatabase:
    """
    The calsync SQLite file.

    Holds the services of each account, the cached metadata of remote
    collections, each account's last pass outcome and the standing failure
    notifications. Methods open a connection per call and commit on success.

    Usage:
        db = SyncDatabase(str(Path("~/.calsync/calsync.db").expanduser()))
        db.initialize()

        # Tests keep everything on one connection
        db = SyncDatabase(":memory:")
        db.initialize()
    """

    def __init__(self, db_path: str):
        """
        Args:
            db_path: SQLite file, or ":memory:"
        """
        self.db_path = db_path
        self._shared_connection: Optional[sqlite3.Connection] = None

    @property
    def is_shared(self) -> bool:
        """True when all callers share a single (in-memory) connection."""
        return self.db_path == ":memory:"

    def open_connection(self) -> sqlite3.Connection:
        """
        Connection with Row results and foreign keys enabled.

        An in-memory database lives only as long as its connection, so
        ":memory:" always hands out the same one. File databases get a
        fresh connection that the caller closes via close_connection().
        """
        if self.is_shared:
            if self._shared_connection is None:
                shared = sqlite3.connect(":memory:", check_same_thread=False)
                shared.row_factory = sqlite3.Row
                shared.execute("PRAGMA foreign_keys = ON")
                self._shared_connection = shared
            return self._shared_connection

        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def close_connection(self, conn: sqlite3.Connection) -> None:
        """Close a connection obtained from open_connection (no-op if shared)."""
        if not self.is_shared:
            conn.close()

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        One transaction: committed when the block exits, rolled back on error.

        Usage:
            with db.connection() as conn:
                conn.execute("DELETE FROM notifications")
        """
        conn = self.open_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.close_connection(conn)

    def initialize(self) -> None:
        """Create missing tables and indexes."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)

    # =========================================================================
    # Service Operations
    # =========================================================================

    def get_service(self, account_id: str, service: str) -> Optional[int]:
        """
        Get the id of an account's service.

        Args:
            account_id: The account identifier
            service: Service name (e.g., 'caldav')

        Returns:
            Service id, or None if the service was never registered
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT id FROM services WHERE account_id = ? AND service = ?",
                (account_id, service),
            )
            row = cursor.fetchone()
            return row["id"] if row else None

    def ensure_service(self, account_id: str, service: str) -> int:
        """
        Get or create the service row for an account.

        Args:
            account_id: The account identifier
            service: Service name (e.g., 'caldav')

        Returns:
            Service id
        """
        with self.connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO services (account_id, service) VALUES (?, ?)",
                (account_id, service),
            )
            cursor = conn.execute(
                "SELECT id FROM services WHERE account_id = ? AND service = ?",
                (account_id, service),
            )
            result: int = cursor.fetchone()["id"]
            return result

    def list_services(self) -> list[dict[str, Any]]:
        """
        Get all registered services.

        Returns:
            List of service dictionaries (id, account_id, service)
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT id, account_id, service FROM services ORDER BY account_id, service"
            )
            return [dict(row) for row in cursor.fetchall()]

    # =========================================================================
    # Collection Cache Operations
    # =========================================================================

    def list_collections(
        self,
        service_id: Optional[int],
        supports_vevent: Optional[bool] = None,
        sync_only: bool = False,
    ) -> dict[str, CollectionInfo]:
        """
        Read cached collections of a service, keyed by url.

        Entries come back in cache insertion order.

        Args:
            service_id: Service to list; None yields an empty mapping
            supports_vevent: If set, only collections with this capability
            sync_only: If True, only collections selected for sync

        Returns:
            Mapping of url to CollectionInfo
        """
        collections: dict[str, CollectionInfo] = {}
        if service_id is None:
            return collections

        clauses = ["service_id = ?"]
        params: list[Any] = [service_id]
        if supports_vevent is not None:
            clauses.append("supports_vevent = ?")
            params.append(int(supports_vevent))
        if sync_only:
            clauses.append("sync != 0")

        with self.connection() as conn:
            cursor = conn.execute(
                f"SELECT * FROM collections WHERE {' AND '.join(clauses)} "  # nosec B608
                "ORDER BY id",
                params,
            )
            for row in cursor.fetchall():
                info = CollectionInfo.from_row(row)
                collections[info.url] = info
        return collections

    def upsert_collection(self, service_id: int, info: CollectionInfo) -> None:
        """
        Insert or update a cached collection.

        The ``sync`` selection of an already cached collection is kept, so a
        refresh never overrides what the user selected.

        Args:
            service_id: Service the collection belongs to
            info: Collection metadata from the server
        """
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO collections (
                    service_id, url, type, display_name, description, color,
                    supports_vevent, supports_vtodo, read_only, sync
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(service_id, url) DO UPDATE SET
                    type = excluded.type,
                    display_name = excluded.display_name,
                    description = excluded.description,
                    color = excluded.color,
                    supports_vevent = excluded.supports_vevent,
                    supports_vtodo = excluded.supports_vtodo,
                    read_only = excluded.read_only
                """,
                (
                    service_id,
                    info.url,
                    info.type.value,
                    info.display_name,
                    info.description,
                    info.color,
                    int(info.supports_vevent),
                    int(info.supports_vtodo),
                    int(info.read_only),
                    int(info.sync),
                ),
            )

    def delete_collection(self, service_id: int, url: str) -> bool:
        """
        Remove a collection from the cache.

        Returns:
            True if a collection was deleted, False if not found
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM collections WHERE service_id = ? AND url = ?",
                (service_id, url),
            )
            return cursor.rowcount > 0

    def set_collection_sync(self, service_id: int, url: str, enabled: bool) -> bool:
        """
        Select or deselect a cached collection for sync.

        Returns:
            True if the collection exists, False otherwise
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "UPDATE collections SET sync = ? WHERE service_id = ? AND url = ?",
                (int(enabled), service_id, url),
            )
            return cursor.rowcount > 0

    # =========================================================================
    # Sync State Operations
    # =========================================================================

    def record_sync_outcome(
        self,
        account_id: str,
        io_errors: int = 0,
        database_error: bool = False,
        delay_until: Optional[datetime] = None,
        last_error: Optional[str] = None,
        skipped: bool = False,
        collections_synced: int = 0,
        synced_at: Optional[datetime] = None,
    ) -> None:
        """
        Store the outcome of an account's latest sync pass.

        ``last_success_at`` only advances for passes without errors.
        """
        synced_at = synced_at or utc_now()
        succeeded = not skipped and not io_errors and not database_error and not last_error

        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO sync_state (
                    account_id, last_sync_at, last_success_at, io_errors,
                    database_error, delay_until, last_error, skipped,
                    collections_synced
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id) DO UPDATE SET
                    last_sync_at = excluded.last_sync_at,
                    last_success_at = COALESCE(excluded.last_success_at,
                                               sync_state.last_success_at),
                    io_errors = excluded.io_errors,
                    database_error = excluded.database_error,
                    delay_until = excluded.delay_until,
                    last_error = excluded.last_error,
                    skipped = excluded.skipped,
                    collections_synced = excluded.collections_synced
                """,
                (
                    account_id,
                    format_timestamp(synced_at),
                    format_timestamp(synced_at) if succeeded else None,
                    io_errors,
                    int(database_error),
                    format_timestamp(delay_until),
                    last_error,
                    int(skipped),
                    collections_synced,
                ),
            )

    def get_sync_state(self, account_id: str) -> Optional[dict[str, Any]]:
        """
        Get the recorded outcome of an account's latest sync pass.

        Returns:
            Dictionary with the sync state, or None if never synced
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM sync_state WHERE account_id = ?", (account_id,)
            )
            row = cursor.fetchone()
            if not row:
                return None
            state = dict(row)
            for key in ("last_sync_at", "last_success_at", "delay_until"):
                state[key] = parse_timestamp(state[key])
            state["database_error"] = bool(state["database_error"])
            state["skipped"] = bool(state["skipped"])
            return state

    # =========================================================================
    # Notification Operations
    # =========================================================================

    def upsert_notification(
        self,
        account_id: str,
        category: str,
        title: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Store the standing notification of an account, replacing any older one."""
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO notifications (
                    account_id, category, title, message, details, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id, category) DO UPDATE SET
                    title = excluded.title,
                    message = excluded.message,
                    details = excluded.details,
                    created_at = excluded.created_at
                """,
                (
                    account_id,
                    category,
                    title,
                    message,
                    json.dumps(details or {}, sort_keys=True),
                    format_timestamp(utc_now()),
                ),
            )

    def delete_notification(self, account_id: str, category: str) -> bool:
        """
        Remove the standing notification of an account.

        Returns:
            True if a notification was removed
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM notifications WHERE account_id = ? AND category = ?",
                (account_id, category),
            )
            return cursor.rowcount > 0

    def get_notifications(self, account_id: Optional[str] = None) -> list[dict[str, Any]]:
        """
        Get standing notifications, optionally for one account.

        Returns:
            List of notification dictionaries with decoded details
        """
        query = "SELECT * FROM notifications"
        params: tuple[str, ...] = ()
        if account_id is not None:
            query += " WHERE account_id = ?"
            params = (account_id,)
        query += " ORDER BY account_id, category"

        with self.connection() as conn:
            cursor = conn.execute(query, params)
            notifications = []
            for row in cursor.fetchall():
                notification = dict(row)
                notification["details"] = json.loads(notification["details"] or "{}")
                notification["created_at"] = parse_timestamp(notification["created_at"])
                notifications.append(notification)
            return notifications

    # =========================================================================
    # Utility Operations
    # =========================================================================

    def clear_all_state(self) -> None:
        """
        Clear the collection cache, mirrors, sync state and notifications (full reset).
        """
        with self.connection() as conn:
            conn.execute("DELETE FROM collections")
            conn.execute("DELETE FROM services")
            conn.execute("DELETE FROM local_calendars")
            conn.execute("DELETE FROM sync_state")
            conn.execute("DELETE FROM notifications")

    def vacuum(self) -> None:
        """Compact the file after large deletions."""
        with self.connection() as conn:
            conn.execute("VACUUM")
