"""
Collection data models for calendar mirror synchronization.

Provides the two records the reconciler joins on ``url``:
- CollectionInfo: remote collection metadata as cached from the server
- LocalMirror: the locally persisted replica of one collection
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

# Service identifiers, one service per account and protocol
SERVICE_CALDAV = "caldav"
SERVICE_CARDDAV = "carddav"


class CollectionType(str, Enum):
    """Kinds of collections a journal server can host."""

    CALENDAR = "CALENDAR"
    ADDRESS_BOOK = "ADDRESS_BOOK"

    @property
    def service(self) -> str:
        """Service name the collection type is listed under."""
        if self is CollectionType.CALENDAR:
            return SERVICE_CALDAV
        return SERVICE_CARDDAV


def parse_color(value: Any) -> int | None:
    """
    Normalize a collection color to an ARGB integer.

    Accepts integers, "#RRGGBB" and "#RRGGBBAA" strings. Colors without an
    alpha channel are made fully opaque.

    Args:
        value: Color from the server or the cache

    Returns:
        ARGB color as an int, or None if no usable color was given
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value & 0xFFFFFFFF
    if isinstance(value, str):
        text = value.strip().lstrip("#")
        try:
            if len(text) == 6:
                return 0xFF000000 | int(text, 16)
            if len(text) == 8:
                # RRGGBBAA -> AARRGGBB
                rgba = int(text, 16)
                return ((rgba & 0xFF) << 24) | (rgba >> 8)
        except ValueError:
            return None
    return None


def format_color(color: int | None) -> str:
    """Render an ARGB color as "#RRGGBB" for display."""
    if color is None:
        return "-"
    return f"#{color & 0xFFFFFF:06X}"


@dataclass(frozen=True)
class CollectionInfo:
    """
    Remote collection descriptor.

    Immutable snapshot of one collection's metadata for a reconciliation pass.
    Two infos describe the same collection when their ``url`` is equal.

    Attributes:
        url: Stable identity of the collection (the journal uid)
        type: Collection type (calendar or address book)
        display_name: Human readable name
        description: Optional description
        color: ARGB color, or None if the server has none
        supports_vevent: Whether the collection holds events
        supports_vtodo: Whether the collection holds tasks
        read_only: Whether the account may only read the collection
        sync: Whether the user selected the collection for sync
        service_id: Cache id of the service the collection is listed under
    """

    url: str
    type: CollectionType = CollectionType.CALENDAR
    display_name: str = ""
    description: str | None = None
    color: int | None = None
    supports_vevent: bool = True
    supports_vtodo: bool = False
    read_only: bool = False
    sync: bool = True
    service_id: int | None = None

    @property
    def title(self) -> str:
        """Display name, falling back to the url."""
        return self.display_name or self.url

    @classmethod
    def from_row(cls, row: sqlite3.Row | dict[str, Any]) -> CollectionInfo:
        """
        Create a CollectionInfo from a collection cache row.

        Args:
            row: Row from the ``collections`` table

        Returns:
            CollectionInfo populated from the row
        """
        data = dict(row)
        return cls(
            url=data["url"],
            type=CollectionType(data.get("type") or CollectionType.CALENDAR.value),
            display_name=data.get("display_name") or "",
            description=data.get("description"),
            color=data.get("color"),
            supports_vevent=bool(data.get("supports_vevent", True)),
            supports_vtodo=bool(data.get("supports_vtodo", False)),
            read_only=bool(data.get("read_only", False)),
            sync=bool(data.get("sync", True)),
            service_id=data.get("service_id"),
        )

    @classmethod
    def from_journal(
        cls, journal: dict[str, Any], service_id: int | None = None
    ) -> CollectionInfo:
        """
        Create a CollectionInfo from a journal server listing entry.

        Args:
            journal: One entry of the journal listing
            service_id: Cache id of the service to attach the info to

        Returns:
            CollectionInfo populated from the journal

        Example journal entry::

            {
                "uid": "b6e4c1...",
                "type": "CALENDAR",
                "displayName": "Work",
                "description": "Shared team calendar",
                "color": "#3F51B5",
                "readOnly": false,
                "supportsVTODO": false
            }
        """
        collection_type = CollectionType(journal.get("type", "CALENDAR"))
        is_calendar = collection_type is CollectionType.CALENDAR
        return cls(
            url=journal["uid"],
            type=collection_type,
            display_name=journal.get("displayName") or "",
            description=journal.get("description") or None,
            color=parse_color(journal.get("color")),
            supports_vevent=is_calendar,
            supports_vtodo=is_calendar and bool(journal.get("supportsVTODO", False)),
            read_only=bool(journal.get("readOnly", False)),
            service_id=service_id,
        )


@dataclass
class LocalMirror:
    """
    Local replica of one remote collection.

    Attributes:
        id: Opaque local storage id
        account_id: Account the mirror belongs to
        url: Same url as the remote collection (join key)
        display_name: Presentation name
        color: Presentation color (ARGB)
        sync_events: Whether events of this mirror are synchronized
        last_synced_at: When the per-collection sync last completed
    """

    id: int
    account_id: str
    url: str
    display_name: str = ""
    color: int | None = None
    sync_events: bool = True
    last_synced_at: datetime | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row | dict[str, Any]) -> LocalMirror:
        """Create a LocalMirror from a ``local_calendars`` row."""
        data = dict(row)
        last_synced_at = data.get("last_synced_at")
        if isinstance(last_synced_at, str):
            last_synced_at = datetime.fromisoformat(last_synced_at)
        return cls(
            id=data["id"],
            account_id=data["account_id"],
            url=data["url"],
            display_name=data.get("display_name") or "",
            color=data.get("color"),
            sync_events=bool(data.get("sync_events", True)),
            last_synced_at=last_synced_at,
        )
