"""
calsync.sync - Collection synchronization module

Contains the collection models, the reconciler, the failure classifier and
the sync orchestrator. Storage-backed collaborators (collection refresher,
notification sinks) live in their own modules and are imported from there.
"""

from calsync.sync.classifier import FailureClassifier, FailureKind, FailureReport
from calsync.sync.collection import CollectionInfo, CollectionType, LocalMirror
from calsync.sync.engine import (
    AUTHORITY_CALENDAR,
    PassPhase,
    SyncExtras,
    SyncOrchestrator,
    SyncOutcome,
)
from calsync.sync.errors import (
    CalsyncError,
    JournalAPIError,
    ServiceUnavailableError,
    StorageError,
    UnauthorizedError,
)
from calsync.sync.reconciler import CollectionReconciler, ReconcileResult

__all__ = [
    "AUTHORITY_CALENDAR",
    "CalsyncError",
    "CollectionInfo",
    "CollectionReconciler",
    "CollectionType",
    "FailureClassifier",
    "FailureKind",
    "FailureReport",
    "JournalAPIError",
    "LocalMirror",
    "PassPhase",
    "ReconcileResult",
    "ServiceUnavailableError",
    "StorageError",
    "SyncExtras",
    "SyncOrchestrator",
    "SyncOutcome",
    "UnauthorizedError",
]
