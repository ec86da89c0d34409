"""Sync baseline: the content hash of each logical path at its last successful sync.

This is the only persisted sync state. A path missing from the baseline was
never synchronized.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class BaselineStore(ABC):
    """Per-path baseline with an explicit open/close lifecycle."""

    def __init__(self) -> None:
        self._entries: dict[str, str] | None = None

    # ---- lifecycle ---------------------------------------------------------
    def open(self) -> BaselineStore:
        if self._entries is None:
            self._entries = self._load()
        return self

    def close(self) -> None:
        self._entries = None

    @property
    def is_open(self) -> bool:
        return self._entries is not None

    def __enter__(self) -> BaselineStore:
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- operations --------------------------------------------------------
    def get(self, path: str) -> str | None:
        return self._require().get(path)

    def set(self, path: str, sha: str) -> None:
        entries = self._require()
        sha = sha.lower()
        if entries.get(path) == sha:
            return
        entries[path] = sha
        self._persist(entries)

    def delete(self, path: str) -> None:
        entries = self._require()
        if entries.pop(path, None) is not None:
            self._persist(entries)

    def clear(self) -> None:
        entries = self._require()
        entries.clear()
        self._persist(entries)

    def snapshot(self) -> dict[str, str]:
        """Copy of all entries."""
        return dict(self._require())

    def __len__(self) -> int:
        return len(self._require())

    def _require(self) -> dict[str, str]:
        if self._entries is None:
            raise RuntimeError(f"{type(self).__name__} is not open")
        return self._entries

    @abstractmethod
    def _load(self) -> dict[str, str]: ...

    @abstractmethod
    def _persist(self, entries: dict[str, str]) -> None: ...


class MemoryBaselineStore(BaselineStore):
    """Baseline kept in memory only (tests, dry runs)."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__()
        self._initial = dict(initial or {})

    def _load(self) -> dict[str, str]:
        return dict(self._initial)

    def _persist(self, entries: dict[str, str]) -> None:
        self._initial = dict(entries)


class JsonBaselineStore(BaselineStore):
    """Baseline stored as one JSON object {logical_path: sha} on disk."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Baseline at {self.path} unreadable ({e}); starting empty")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Baseline at {self.path} is not a JSON object; starting empty")
            return {}
        return {str(k): str(v).lower() for k, v in data.items() if isinstance(v, str)}

    def _persist(self, entries: dict[str, str]) -> None:
        # Write atomically
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.parent / f".{self.path.name}.museswap"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(entries, f, indent=2, ensure_ascii=False, sort_keys=True)
        tmp.replace(self.path)
