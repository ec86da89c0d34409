import json

import pytest

from muse_core import JsonBaselineStore, MemoryBaselineStore


def test_json_baseline_persists_flat_object(tmp_path):
    path = tmp_path / ".markmuse" / "baseline.json"
    with JsonBaselineStore(path) as b:
        b.set("notes/a.md", "ABCDEF" + "0" * 34)
        b.set(".themes/t.css", "1" * 40)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data == {".themes/t.css": "1" * 40, "notes/a.md": "abcdef" + "0" * 34}

    with JsonBaselineStore(path) as b:
        assert b.get("notes/a.md") == "abcdef" + "0" * 34
        assert b.get("missing.md") is None
        b.delete("notes/a.md")
        assert len(b) == 1
    assert "notes/a.md" not in json.loads(path.read_text(encoding="utf-8"))


def test_json_baseline_leaves_no_temp_file(tmp_path):
    path = tmp_path / "baseline.json"
    with JsonBaselineStore(path) as b:
        b.set("a.md", "2" * 40)
    assert sorted(p.name for p in tmp_path.iterdir()) == ["baseline.json"]


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]", ""])
def test_unreadable_baseline_starts_empty(tmp_path, content):
    path = tmp_path / "baseline.json"
    path.write_text(content, encoding="utf-8")
    with JsonBaselineStore(path) as b:
        assert b.snapshot() == {}


def test_baseline_requires_open():
    b = MemoryBaselineStore({"a.md": "3" * 40})
    with pytest.raises(RuntimeError):
        b.get("a.md")
    b.open()
    assert b.is_open
    assert b.get("a.md") == "3" * 40
    b.close()
    assert not b.is_open
    with pytest.raises(RuntimeError):
        b.set("a.md", "4" * 40)


def test_open_is_idempotent_and_clear_empties():
    b = MemoryBaselineStore()
    b.open()
    b.set("x.md", "5" * 40)
    b.open()  # must not reload and lose the entry
    assert b.get("x.md") == "5" * 40
    b.clear()
    assert len(b) == 0
    b.close()
    assert b.open().snapshot() == {}
