"""
Tests for the collection data models.
"""

import pytest

from calsync.sync.collection import (
    SERVICE_CALDAV,
    SERVICE_CARDDAV,
    CollectionInfo,
    CollectionType,
    LocalMirror,
    format_color,
    parse_color,
)


class TestParseColor:
    """Tests for parse_color."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("#FF0000", 0xFFFF0000),
            ("00ff00", 0xFF00FF00),
            ("#11223344", 0x44112233),
            (0x80123456, 0x80123456),
            (None, None),
            ("", None),
            ("#12", None),
            ("#GGGGGG", None),
            (True, None),
        ],
    )
    def test_values(self, value, expected):
        """Test supported and unsupported color values."""
        assert parse_color(value) == expected

    def test_format_color(self):
        """Test rendering colors for display."""
        assert format_color(0xFFFF0000) == "#FF0000"
        assert format_color(None) == "-"


class TestCollectionType:
    """Tests for CollectionType."""

    def test_services(self):
        """Test the service each type is listed under."""
        assert CollectionType.CALENDAR.service == SERVICE_CALDAV
        assert CollectionType.ADDRESS_BOOK.service == SERVICE_CARDDAV


class TestCollectionInfo:
    """Tests for CollectionInfo."""

    def test_from_journal(self):
        """Test building an info from a server listing entry."""
        info = CollectionInfo.from_journal(
            {
                "uid": "abc",
                "type": "CALENDAR",
                "displayName": "Work",
                "description": "",
                "color": "#3F51B5",
                "readOnly": True,
                "supportsVTODO": True,
            },
            service_id=7,
        )

        assert info.url == "abc"
        assert info.display_name == "Work"
        assert info.description is None
        assert info.color == 0xFF3F51B5
        assert info.supports_vevent
        assert info.supports_vtodo
        assert info.read_only
        assert info.sync
        assert info.service_id == 7

    def test_from_journal_address_book(self):
        """Test that address books do not hold events."""
        info = CollectionInfo.from_journal({"uid": "x", "type": "ADDRESS_BOOK"})

        assert info.type is CollectionType.ADDRESS_BOOK
        assert not info.supports_vevent
        assert not info.supports_vtodo

    def test_title_falls_back_to_url(self):
        """Test the display title."""
        assert CollectionInfo(url="abc").title == "abc"
        assert CollectionInfo(url="abc", display_name="Work").title == "Work"

    def test_is_immutable(self):
        """Test that infos cannot be changed during a pass."""
        info = CollectionInfo(url="abc")
        with pytest.raises(AttributeError):
            info.url = "other"  # type: ignore[misc]

    def test_from_row(self):
        """Test reading a cache row."""
        info = CollectionInfo.from_row(
            {
                "url": "abc",
                "type": "CALENDAR",
                "display_name": None,
                "color": 5,
                "supports_vevent": 1,
                "supports_vtodo": 0,
                "read_only": 0,
                "sync": 0,
                "service_id": 1,
            }
        )

        assert info.display_name == ""
        assert info.sync is False
        assert info.color == 5


class TestLocalMirror:
    """Tests for LocalMirror."""

    def test_from_row_parses_timestamp(self):
        """Test that last_synced_at is parsed from the TEXT column."""
        mirror = LocalMirror.from_row(
            {
                "id": 1,
                "account_id": "personal",
                "url": "abc",
                "display_name": "Work",
                "color": None,
                "sync_events": 1,
                "last_synced_at": "2024-05-01T12:00:00+00:00",
            }
        )

        assert mirror.last_synced_at.year == 2024
        assert mirror.sync_events is True
