"""MarkMuse Core - digests, path mapping, baseline and local store."""

from muse_core.baseline import BaselineStore, JsonBaselineStore, MemoryBaselineStore
from muse_core.config import (
    load_workspace_config,
    parse_repo,
    resolve_token,
    save_workspace_config,
    to_sync_config,
)
from muse_core.digest import git_blob_sha1
from muse_core.localstore import DirectoryLocalStore, LocalStore
from muse_core.models import (
    FileRecord,
    RemoteFileRecord,
    SyncConfig,
    SyncItem,
    SyncResult,
    WorkspaceConfig,
)
from muse_core.paths import (
    is_syncable,
    remote_root,
    remote_to_logical,
    to_logical,
    to_physical,
    to_remote,
)

__all__ = [
    "git_blob_sha1",
    # paths
    "to_physical",
    "to_logical",
    "to_remote",
    "remote_to_logical",
    "remote_root",
    "is_syncable",
    # baseline
    "BaselineStore",
    "JsonBaselineStore",
    "MemoryBaselineStore",
    # local store
    "LocalStore",
    "DirectoryLocalStore",
    # config
    "load_workspace_config",
    "save_workspace_config",
    "parse_repo",
    "resolve_token",
    "to_sync_config",
    "FileRecord",
    "RemoteFileRecord",
    "SyncConfig",
    "SyncItem",
    "SyncResult",
    "WorkspaceConfig",
]

__version__ = "0.1.0"
