from __future__ import annotations

import pytest

from muse_core import DirectoryLocalStore, git_blob_sha1
from tests.framework import FakeGitHub, Workspace


@pytest.fixture()
def ws(tmp_path) -> Workspace:
    return Workspace(tmp_path / "ws", FakeGitHub())


def _local_logical(ws: Workspace) -> set[str]:
    out = set()
    for rec in ws.store.list_all():
        if rec.is_directory:
            continue
        if rec.path.startswith("files/"):
            out.add(rec.path[len("files/") :])
        elif rec.path.startswith(".themes/"):
            out.add(rec.path)
    return out


def test_force_pull_replaces_local_workspace(ws):
    ws.write("notes/a.md", "unpushed local edit")
    ws.write("local-only.md", "will be lost")
    ws.write(".themes/mine.css", "x")
    (ws.root / "README.md").write_text("outside the managed folders", encoding="utf-8")
    with ws.baseline:
        ws.baseline.set("stale.md", "a" * 40)

    sha_a = ws.gh.seed(ws.remote_path("notes/a.md"), "remote A")
    sha_c = ws.gh.seed(ws.remote_path("deep/c.md"), "remote C")

    with ws.engine() as engine:
        result = engine.force_pull_all()

    assert result.errors == []
    assert result.deleted == 3
    assert result.pulled == 2
    assert _local_logical(ws) == {"notes/a.md", "deep/c.md"}
    assert ws.read("notes/a.md") == "remote A"
    assert not (ws.root / ".themes").exists()
    assert (ws.root / "README.md").exists()
    assert ws.baseline_snapshot() == {"notes/a.md": sha_a, "deep/c.md": sha_c}
    assert ws.gh.count("PUT") == 0 and ws.gh.count("DELETE") == 0


def test_force_pull_from_empty_remote_clears_workspace(ws):
    ws.write("a.md", "a")
    ws.write("sub/b.md", "b")

    with ws.engine() as engine:
        result = engine.force_pull_all()

    assert (result.deleted, result.pulled) == (2, 0)
    assert _local_logical(ws) == set()
    assert not (ws.root / "files").exists()
    assert ws.baseline_snapshot() == {}


def test_force_push_replaces_remote(ws):
    ws.gh.seed(ws.remote_path("a.md"), "old remote")
    ws.gh.seed(ws.remote_path("remote-only.md"), "r")
    ws.gh.seed(".markmuse/.themes/old.css", "t")
    ws.gh.seed("README.md", "outside the managed folder")
    sha_a = ws.write("a.md", "new local")
    sha_l = ws.write("sub/local.md", "l")

    with ws.engine() as engine:
        result = engine.force_push_all()

    assert result.errors == []
    assert (result.deleted, result.pushed) == (3, 2)
    assert set(ws.gh.files) == {
        ".markmuse/files/a.md",
        ".markmuse/files/sub/local.md",
        "README.md",
    }
    assert ws.gh.sha(ws.remote_path("a.md")) == sha_a
    assert ws.baseline_snapshot() == {"a.md": sha_a, "sub/local.md": sha_l}


def test_force_push_recovers_when_deletes_are_not_yet_visible(ws):
    ws.gh.stale_deletes = True
    ws.gh.seed(ws.remote_path("a.md"), "old remote")
    sha_a = ws.write("a.md", "new local")

    with ws.engine() as engine:
        result = engine.force_push_all()

    assert (result.deleted, result.pushed, result.errors) == (1, 1, [])
    assert ws.gh.text(ws.remote_path("a.md")) == "new local"
    # create rejected for the lingering file, then retried as an update
    assert ws.gh.count("PUT") == 2
    assert ws.baseline_snapshot() == {"a.md": sha_a}


def test_force_push_collects_per_file_errors(ws):
    ws.write("ok.md", "ok")
    ws.write("broken.md", "broken")
    ws.gh.put_status[ws.remote_path("broken.md")] = 502

    with ws.engine() as engine:
        result = engine.force_push_all()

    assert result.pushed == 1
    assert [e.split(":", 1)[0] for e in result.errors] == ["broken.md"]
    assert ws.baseline_snapshot() == {"ok.md": git_blob_sha1("ok")}


def test_prune_deletes_only_remote_orphans(ws):
    ws.write("keep.md", "k")
    ws.write("drop.md", "d")
    with ws.engine() as engine:
        engine.incremental_sync()
    ws.store.delete("files/drop.md")

    with ws.engine() as engine:
        orphans = engine.find_remote_orphans()
        assert [o.logical_path for o in orphans] == ["drop.md"]
        result = engine.delete_remote(orphans)

    assert (result.deleted, result.errors) == (1, [])
    assert set(ws.gh.files) == {ws.remote_path("keep.md")}
    assert set(ws.baseline_snapshot()) == {"keep.md"}


def test_never_synced_remote_file_is_not_an_orphan(ws):
    ws.write("mine.md", "m")
    ws.gh.seed(ws.remote_path("new.md"), "pushed from another device")

    with ws.engine() as engine:
        assert engine.find_remote_orphans() == []

    with ws.engine() as engine:
        result = engine.incremental_sync()
    assert result.pulled == 1
    assert ws.read("new.md") == "pushed from another device"


def test_prune_with_stale_sha_keeps_baseline(ws):
    ws.write("x.md", "x")
    with ws.engine() as engine:
        engine.incremental_sync()
    ws.store.delete("files/x.md")

    with ws.engine() as engine:
        orphans = engine.find_remote_orphans()
    ws.gh.seed(ws.remote_path("x.md"), "edited remotely meanwhile")
    with ws.engine() as engine:
        result = engine.delete_remote(orphans)

    assert result.deleted == 0
    assert "changed remotely" in result.errors[0]
    assert ws.remote_path("x.md") in ws.gh.files
    assert "x.md" in ws.baseline_snapshot()


class _StuckFolderStore(DirectoryLocalStore):
    def delete_recursive(self, physical: str) -> None:
        raise PermissionError(f"{physical} is in use")


def test_force_pull_records_folder_cleanup_failure(ws):
    ws.store = _StuckFolderStore(ws.root)
    ws.write("old.md", "old")
    with ws.baseline:
        ws.baseline.set("old.md", git_blob_sha1("old"))
    sha = ws.gh.seed(ws.remote_path("new.md"), "new")

    with ws.engine() as engine:
        result = engine.force_pull_all()

    assert [e.split(":", 1)[0] for e in result.errors] == ["files", ".themes"]
    assert (result.deleted, result.pulled) == (1, 1)
    assert ws.read("old.md") is None
    assert ws.read("new.md") == "new"
    assert ws.baseline_snapshot() == {"new.md": sha}
