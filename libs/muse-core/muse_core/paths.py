"""Logical, physical and repository path mapping.

Physical paths (local store):
  - files/notes/a.md
  - .themes/default.css

Logical paths (what the user sees):
  - notes/a.md
  - .themes/default.css (themes keep their prefix)

Repository paths (remote):
  - {base}/.markmuse/files/notes/a.md
  - {base}/.markmuse/.themes/default.css
"""

from __future__ import annotations

import posixpath

from muse_core.models import SyncConfig

FILES_DIR = "files"
THEMES_DIR = ".themes"
MARKMUSE_DIR = ".markmuse"

MANAGED_ROOTS = (FILES_DIR, THEMES_DIR)


def normalize_logical(path: str) -> str:
    """Normalize to POSIX separators without leading slash or empty segments."""
    parts = [p for p in path.replace("\\", "/").split("/") if p not in ("", ".")]
    if ".." in parts:
        raise ValueError(f"Path escapes the workspace: {path!r}")
    return "/".join(parts)


def normalize_base_path(base_path: str) -> str:
    return normalize_logical(base_path or "")


def is_theme_path(path: str) -> bool:
    return path.startswith(f"{THEMES_DIR}/")


def theme_path(theme_id: str) -> str:
    """Logical (and physical) path of a theme stylesheet."""
    return f"{THEMES_DIR}/{theme_id}.css"


def is_syncable(logical: str) -> bool:
    """Documents outside hidden folders and flat theme stylesheets take part in sync."""
    if is_theme_path(logical):
        name = logical[len(THEMES_DIR) + 1 :]
        return name.endswith(".css") and "/" not in name
    return bool(logical) and not any(part.startswith(".") for part in logical.split("/"))


def to_physical(logical: str) -> str:
    if is_theme_path(logical):
        return logical
    return f"{FILES_DIR}/{logical}"


def to_logical(physical: str) -> str:
    if physical.startswith(f"{FILES_DIR}/"):
        logical = physical[len(FILES_DIR) + 1 :]
        if is_theme_path(logical):
            # files/.themes/x would share the key of the theme .themes/x
            raise ValueError(f"Document path collides with the themes folder: {physical!r}")
        return logical
    if is_theme_path(physical):
        return physical
    raise ValueError(f"Not a managed path: {physical!r}")


def is_managed_physical(physical: str) -> bool:
    """True for anything stored under one of the sync-owned roots."""
    return any(physical.startswith(f"{root}/") for root in MANAGED_ROOTS)


def remote_root(cfg: SyncConfig) -> str:
    base = normalize_base_path(cfg.base_path)
    return posixpath.join(base, MARKMUSE_DIR) if base else MARKMUSE_DIR


def to_remote(logical: str, cfg: SyncConfig) -> str:
    return f"{remote_root(cfg)}/{to_physical(logical)}"


def remote_to_logical(repo_path: str, cfg: SyncConfig) -> str | None:
    """Inverse of to_remote; None for repository paths outside the managed layout."""
    prefix = f"{remote_root(cfg)}/"
    if not repo_path.startswith(prefix):
        return None
    physical = repo_path[len(prefix) :]
    if not is_managed_physical(physical):
        return None
    try:
        return to_logical(physical)
    except ValueError:
        return None
