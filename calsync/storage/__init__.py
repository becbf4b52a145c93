"""
calsync.storage - Persistence module

SQLite collection cache, sync state and local calendar mirrors.
"""

from calsync.storage.db import SyncDatabase
from calsync.storage.mirror import LocalMirrorStore, MirrorSession

__all__ = ["SyncDatabase", "LocalMirrorStore", "MirrorSession"]
