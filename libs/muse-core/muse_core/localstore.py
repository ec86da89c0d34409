"""Local file store adapter.

The sync engine only talks to the `LocalStore` interface. `DirectoryLocalStore`
keeps the store in a plain folder using the same physical layout as the
browser store (files/..., .themes/...).
"""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from muse_core.models import FileRecord
from muse_core.paths import MARKMUSE_DIR, normalize_logical


class LocalStore(ABC):
    """Physical-path file store used by the sync engine."""

    @abstractmethod
    def list_all(self) -> list[FileRecord]:
        """Every file and directory, recursively, as physical paths."""

    @abstractmethod
    def read(self, physical: str) -> bytes | None:
        """File bytes, or None when the file does not exist."""

    @abstractmethod
    def write(self, physical: str, data: bytes) -> None:
        """Create or overwrite a file, creating parent folders."""

    @abstractmethod
    def delete(self, physical: str) -> None:
        """Remove a file if present."""

    @abstractmethod
    def delete_recursive(self, physical: str) -> None:
        """Remove a folder and everything below it, if present."""


class DirectoryLocalStore(LocalStore):
    """LocalStore backed by a directory; the .markmuse/ state folder is hidden."""

    def __init__(self, root: Path, ignore: tuple[str, ...] = (MARKMUSE_DIR,)):
        self.root = Path(root)
        self.ignore = ignore

    def _abs(self, physical: str) -> Path:
        rel = normalize_logical(physical)
        if not rel:
            raise ValueError("Empty path")
        if rel.split("/", 1)[0] in self.ignore:
            raise ValueError(f"Reserved path: {physical!r}")
        return self.root / rel

    def list_all(self) -> list[FileRecord]:
        if not self.root.exists():
            return []
        out: list[FileRecord] = []
        for p in sorted(self.root.rglob("*")):
            rel = p.relative_to(self.root).as_posix()
            if rel.split("/", 1)[0] in self.ignore:
                continue
            if p.name.endswith(".museswap"):
                continue
            out.append(FileRecord(path=rel, is_directory=p.is_dir()))
        return out

    def read(self, physical: str) -> bytes | None:
        path = self._abs(physical)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

    def write(self, physical: str, data: bytes) -> None:
        path = self._abs(physical)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write atomically
        tmp = path.parent / f".{path.name}.museswap"
        tmp.write_bytes(data)
        tmp.replace(path)

    def delete(self, physical: str) -> None:
        self._abs(physical).unlink(missing_ok=True)

    def delete_recursive(self, physical: str) -> None:
        path = self._abs(physical)
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
