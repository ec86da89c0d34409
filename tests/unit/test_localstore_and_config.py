import os

import pytest

from muse_core import (
    DirectoryLocalStore,
    WorkspaceConfig,
    load_workspace_config,
    parse_repo,
    resolve_token,
    save_workspace_config,
    to_sync_config,
)
from muse_core.config import config_path
from muse_core.filelock import sync_lock


def test_directory_store_lists_reads_writes(tmp_path):
    store = DirectoryLocalStore(tmp_path)
    store.write("files/a/b.md", b"hi")
    store.write(".themes/t.css", b"body{}")
    (tmp_path / ".markmuse").mkdir()
    (tmp_path / ".markmuse" / "baseline.json").write_text("{}")

    listing = {(r.path, r.is_directory) for r in store.list_all()}
    assert ("files/a/b.md", False) in listing
    assert ("files/a", True) in listing
    assert (".themes/t.css", False) in listing
    assert not any(p.startswith(".markmuse") for p, _ in listing)

    assert store.read("files/a/b.md") == b"hi"
    assert store.read("files/missing.md") is None
    assert store.read("files/a") is None

    store.delete("files/a/b.md")
    store.delete("files/a/b.md")  # already gone
    assert store.read("files/a/b.md") is None
    store.delete_recursive("files")
    assert not (tmp_path / "files").exists()


def test_directory_store_rejects_reserved_and_escaping_paths(tmp_path):
    store = DirectoryLocalStore(tmp_path)
    with pytest.raises(ValueError):
        store.write(".markmuse/config.yaml", b"x")
    with pytest.raises(ValueError):
        store.write("files/../../evil", b"x")
    with pytest.raises(ValueError):
        store.read("")


@pytest.mark.parametrize(
    "raw, expected",
    [("alice/notes", ("alice", "notes")), (" /alice/notes/ ", ("alice", "notes"))],
)
def test_parse_repo(raw, expected):
    assert parse_repo(raw) == expected


@pytest.mark.parametrize("raw", ["", "alice", "a/b/c"])
def test_parse_repo_rejects_bad_values(raw):
    with pytest.raises(ValueError):
        parse_repo(raw)


def test_workspace_config_round_trip_uses_dashed_keys(tmp_path):
    ws = WorkspaceConfig(
        repo="alice/notes", branch="work", base_path="/docs/", token_env="MY_TOKEN"
    )
    save_workspace_config(tmp_path, ws)

    text = config_path(tmp_path).read_text(encoding="utf-8")
    assert "base-path: docs" in text
    assert "token-env: MY_TOKEN" in text
    assert "ghp_" not in text

    loaded = load_workspace_config(tmp_path)
    assert loaded.repo == "alice/notes"
    assert loaded.branch == "work"
    assert loaded.base_path == "docs"


def test_load_workspace_config_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_workspace_config(tmp_path)


def test_resolve_token_prefers_configured_variable(tmp_path, monkeypatch):
    monkeypatch.setenv("MY_TOKEN", "tok-mine")
    monkeypatch.setenv("GITHUB_TOKEN", "tok-fallback")
    ws = WorkspaceConfig(repo="alice/notes", token_env="MY_TOKEN")
    assert resolve_token(ws, tmp_path) == "tok-mine"

    monkeypatch.delenv("MY_TOKEN")
    assert resolve_token(ws, tmp_path) == "tok-fallback"

    cfg = to_sync_config(ws, "tok-fallback")
    assert (cfg.owner, cfg.repo, cfg.branch) == ("alice", "notes", "main")
    assert "tok-fallback" not in repr(cfg)


def test_resolve_token_reads_dotenv(tmp_path, monkeypatch):
    monkeypatch.delenv("DOTENV_ONLY_TOKEN", raising=False)
    (tmp_path / ".env").write_text("DOTENV_ONLY_TOKEN=tok-from-file\n", encoding="utf-8")
    ws = WorkspaceConfig(repo="alice/notes", token_env="DOTENV_ONLY_TOKEN")
    try:
        assert resolve_token(ws, tmp_path) == "tok-from-file"
    finally:
        os.environ.pop("DOTENV_ONLY_TOKEN", None)


def test_resolve_token_missing(tmp_path, monkeypatch):
    monkeypatch.delenv("NOPE_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.chdir(tmp_path)
    with pytest.raises(RuntimeError, match="NOPE_TOKEN"):
        resolve_token(WorkspaceConfig(repo="alice/notes", token_env="NOPE_TOKEN"), tmp_path)


def test_sync_lock_is_exclusive(tmp_path):
    with sync_lock(tmp_path) as lock:
        assert lock.exists()
        with pytest.raises(RuntimeError, match="Another sync is running"):
            with sync_lock(tmp_path):
                pass
    assert not lock.exists()
