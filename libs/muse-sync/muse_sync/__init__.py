"""MarkMuse Sync - baseline-driven sync engine and GitHub Contents client."""

from muse_sync.engine import SyncDecision, SyncEngine, SyncPlan, decide_sync
from muse_sync.errors import (
    AuthenticationError,
    ExistsNeedsShaError,
    IntegrityError,
    PermissionDeniedError,
    RemoteConflictError,
    RemoteError,
    RemoteNotFoundError,
    SyncError,
    SyncInProgressError,
)
from muse_sync.github import GitHubContentsClient, RemoteFile, RepositoryInfo

__all__ = [
    "SyncEngine",
    "SyncDecision",
    "SyncPlan",
    "decide_sync",
    "GitHubContentsClient",
    "RemoteFile",
    "RepositoryInfo",
    # errors
    "SyncError",
    "SyncInProgressError",
    "RemoteError",
    "AuthenticationError",
    "PermissionDeniedError",
    "RemoteNotFoundError",
    "ExistsNeedsShaError",
    "RemoteConflictError",
    "IntegrityError",
]

__version__ = "0.1.0"
