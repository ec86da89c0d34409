"""Workspace configuration (.markmuse/config.yaml) and token resolution."""

from __future__ import annotations

import os
from pathlib import Path

import dotenv
from ruamel.yaml import YAML

from muse_core.models import SyncConfig, WorkspaceConfig
from muse_core.paths import MARKMUSE_DIR, normalize_base_path

yaml = YAML()
yaml.preserve_quotes = True
yaml.default_flow_style = False

FALLBACK_TOKEN_ENV = "GITHUB_TOKEN"


def state_dir(root: Path) -> Path:
    return root / MARKMUSE_DIR


def config_path(root: Path) -> Path:
    return state_dir(root) / "config.yaml"


def baseline_path(root: Path) -> Path:
    return state_dir(root) / "baseline.json"


def event_log_path(root: Path) -> Path:
    return state_dir(root) / "sync.log"


def parse_repo(repo: str) -> tuple[str, str]:
    """Split "owner/repo", tolerating surrounding whitespace and slashes."""
    parts = [p for p in (repo or "").strip().strip("/").split("/") if p]
    if len(parts) != 2:
        raise ValueError(f"Repository must look like owner/repo, got {repo!r}")
    return parts[0], parts[1]


def load_workspace_config(root: Path) -> WorkspaceConfig:
    path = config_path(root)
    if not path.exists():
        raise FileNotFoundError(f"Workspace not initialized: {path} not found")
    with open(path, encoding="utf-8") as f:
        data = yaml.load(f) or {}
    return WorkspaceConfig(**data)


def save_workspace_config(root: Path, cfg: WorkspaceConfig) -> Path:
    path = config_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = cfg.model_dump(by_alias=True)
    data["base-path"] = normalize_base_path(data.get("base-path", ""))
    tmp = path.with_name(f".{path.name}.museswap")
    with open(tmp, "w", encoding="utf-8") as f:
        yaml.dump(data, f)
    tmp.replace(path)
    return path


def resolve_token(cfg: WorkspaceConfig, root: Path | None = None) -> str:
    """
    Read the token from the environment.

    A .env file in the workspace root (or the current directory) is loaded
    first without overriding variables that are already set.
    """
    if root is not None and (root / ".env").exists():
        dotenv.load_dotenv(root / ".env", override=False)
    else:
        dotenv.load_dotenv(override=False)
    token = os.environ.get(cfg.token_env) or os.environ.get(FALLBACK_TOKEN_ENV)
    if not token:
        raise RuntimeError(
            f"No GitHub token found. Set {cfg.token_env} (or {FALLBACK_TOKEN_ENV}) "
            "to a token with Contents read/write access."
        )
    return token


def to_sync_config(cfg: WorkspaceConfig, token: str) -> SyncConfig:
    owner, repo = parse_repo(cfg.repo)
    return SyncConfig(
        token=token,
        owner=owner,
        repo=repo,
        branch=cfg.branch,
        base_path=normalize_base_path(cfg.base_path),
    )
