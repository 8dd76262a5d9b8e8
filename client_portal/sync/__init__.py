"""
Sync Engine - mirrors, reconciliation and the load/subscribe lifecycle.
"""

from client_portal.sync.mirror import CollectionMirror
from client_portal.sync.reconciler import ChangeReconciler
from client_portal.sync.notices import Notice, NoticeBoard, NoticeKind
from client_portal.sync.retry import RetryPolicy
from client_portal.sync.collections import (
    ASSETS,
    DEFAULT_COLLECTIONS,
    FEEDBACK,
    PROJECTS,
    CollectionSpec,
)
from client_portal.sync.engine import SyncEngine

__all__ = [
    "CollectionMirror",
    "ChangeReconciler",
    "Notice",
    "NoticeBoard",
    "NoticeKind",
    "RetryPolicy",
    "ASSETS",
    "DEFAULT_COLLECTIONS",
    "FEEDBACK",
    "PROJECTS",
    "CollectionSpec",
    "SyncEngine",
]
