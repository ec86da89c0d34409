"""Exclusive lock file so that only one process syncs a workspace at a time."""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from muse_core.config import state_dir

LOCK_NAME = "sync.lock"


@contextmanager
def sync_lock(root: Path) -> Iterator[Path]:
    """
    Hold .markmuse/sync.lock for the duration of the block.

    Raises RuntimeError if another process holds it. A stale lock (left by a
    crashed run) has to be removed by hand; its content names the owner pid.
    """
    lock_dir = state_dir(root)
    lock_dir.mkdir(parents=True, exist_ok=True)
    path = lock_dir / LOCK_NAME
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError as e:
        holder = path.read_text(encoding="utf-8").strip() if path.exists() else "?"
        raise RuntimeError(
            f"Another sync is running ({holder}). Remove {path} if that run crashed."
        ) from e
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"pid={os.getpid()} since={datetime.now().strftime('%Y-%m-%d %H:%M')}\n")
        yield path
    finally:
        path.unlink(missing_ok=True)
