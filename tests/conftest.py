"""
Shared fixtures for calsync tests.

Provides an in-memory mirror store that records every operation, so tests
can assert on exact create/update/delete counts and inject storage failures.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace

import pytest

from calsync.sync.collection import CollectionInfo, LocalMirror
from calsync.sync.errors import StorageError


class FakeMirrorStore:
    """
    In-memory MirrorStore with call recording and failure injection.

    ``fail_on`` holds (operation, url) pairs whose operation raises
    StorageError. ``writes`` counts operations that changed stored state.
    """

    def __init__(self, fail_on=None):
        self.mirrors: dict[int, LocalMirror] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[tuple[str, str]] = set(fail_on or ())
        self.writes = 0
        self.synced: list[str] = []
        self.sessions_opened = 0
        self.sessions_closed = 0
        self._next_id = 1

    # Test helpers

    def add(self, account_id, url, display_name="", color=None, sync_events=True):
        mirror = LocalMirror(
            id=self._next_id,
            account_id=account_id,
            url=url,
            display_name=display_name,
            color=color,
            sync_events=sync_events,
        )
        self._next_id += 1
        self.mirrors[mirror.id] = mirror
        return replace(mirror)

    def urls(self, account_id):
        return {m.url for m in self.mirrors.values() if m.account_id == account_id}

    def by_url(self, account_id, url):
        for mirror in self.mirrors.values():
            if mirror.account_id == account_id and mirror.url == url:
                return mirror
        return None

    def count(self, operation):
        return sum(1 for op, _ in self.calls if op == operation)

    def _check(self, operation, url):
        self.calls.append((operation, url))
        if (operation, url) in self.fail_on:
            raise StorageError(f"injected {operation} failure for {url}")

    # MirrorStore

    def find(self, account_id, sync_enabled_only=False):
        return [
            replace(m)
            for m in sorted(self.mirrors.values(), key=lambda m: m.id)
            if m.account_id == account_id and (m.sync_events or not sync_enabled_only)
        ]

    def create(self, account_id, info: CollectionInfo):
        self._check("create", info.url)
        if self.by_url(account_id, info.url) is not None:
            raise StorageError(f"UNIQUE constraint failed for {info.url}")
        self.writes += 1
        return self.add(account_id, info.url, info.display_name, info.color)

    def update(self, mirror, info, apply_color):
        self._check("update", mirror.url)
        stored = self.mirrors[mirror.id]
        color = info.color if apply_color else stored.color
        if stored.display_name == info.display_name and stored.color == color:
            return
        self.writes += 1
        stored.display_name = info.display_name
        stored.color = color
        mirror.display_name = info.display_name
        mirror.color = color

    def delete(self, mirror):
        self._check("delete", mirror.url)
        self.writes += 1
        del self.mirrors[mirror.id]

    def mark_synced(self, mirror):
        self._check("sync", mirror.url)
        self.synced.append(mirror.url)

    # MirrorStoreProvider

    @contextmanager
    def session(self) -> Iterator["FakeMirrorStore"]:
        self.sessions_opened += 1
        try:
            yield self
        finally:
            self.sessions_closed += 1


@pytest.fixture
def fake_store():
    """Empty in-memory mirror store."""
    return FakeMirrorStore()


@pytest.fixture
def make_info():
    """Factory for remote calendar descriptors."""

    def _make(url, display_name=None, color=None, **kwargs):
        return CollectionInfo(
            url=url, display_name=display_name or url.title(), color=color, **kwargs
        )

    return _make


@pytest.fixture(autouse=True)
def reset_calsync_logger():
    """Undo setup_logging() so caplog sees calsync records in every test."""
    yield
    logger = logging.getLogger("calsync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
