"""Blob storage abstraction and the local filesystem implementation."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..utils.logging import get_logger

__all__ = ["BlobStore", "LocalBlobStore", "join_key"]

LOGGER = get_logger(__name__)


@runtime_checkable
class BlobStore(Protocol):
    """Key/value file storage addressed by ``/``-delimited logical keys."""

    def file_exists(self, key: str) -> bool: ...

    def get_file(self, key: str) -> bytes: ...

    def save_file(self, key: str, data: bytes) -> None: ...

    def list_files(self, prefix: str) -> list[str]: ...

    def list_directories(self, prefix: str) -> list[str]: ...

    def create_directory(self, prefix: str) -> None: ...

    def delete_file(self, key: str) -> None: ...

    def get_directory_size(self, prefix: str) -> int: ...


def join_key(*parts: str) -> str:
    """Join logical key fragments with single ``/`` separators."""
    cleaned = [part.strip("/") for part in parts if part and part.strip("/")]
    return "/".join(cleaned)


class LocalBlobStore:
    """Blob store backed by a directory tree rooted at ``root``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return f"LocalBlobStore(root={str(self.root)!r})"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def file_exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def get_file(self, key: str) -> bytes:
        path = self._resolve(key)
        if not path.is_file():
            raise FileNotFoundError(f"Blob not found: {key}")
        return path.read_bytes()

    def save_file(self, key: str, data: bytes) -> None:
        """Write ``data`` atomically so readers never observe a partial blob."""
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def list_files(self, prefix: str) -> list[str]:
        """Return keys of the files directly under ``prefix`` (dotfiles excluded)."""
        directory = self._resolve(prefix)
        if not directory.is_dir():
            return []
        base = join_key(prefix)
        return sorted(
            join_key(base, child.name)
            for child in directory.iterdir()
            if child.is_file() and not child.name.startswith(".")
        )

    def list_directories(self, prefix: str) -> list[str]:
        directory = self._resolve(prefix)
        if not directory.is_dir():
            return []
        base = join_key(prefix)
        return sorted(join_key(base, child.name) for child in directory.iterdir() if child.is_dir())

    def create_directory(self, prefix: str) -> None:
        self._resolve(prefix).mkdir(parents=True, exist_ok=True)

    def delete_file(self, key: str) -> None:
        path = self._resolve(key)
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)

    def get_directory_size(self, prefix: str) -> int:
        directory = self._resolve(prefix)
        if not directory.is_dir():
            return 0
        return sum(path.stat().st_size for path in directory.rglob("*") if path.is_file())

    def local_path(self, key: str) -> Path:
        """Return the filesystem path backing ``key``."""
        return self._resolve(key)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _resolve(self, key: str) -> Path:
        relative = join_key(key)
        path = (self.root / relative).resolve() if relative else self.root
        if path != self.root and self.root not in path.parents:
            raise ValueError(f"Key escapes the blob store root: {key!r}")
        return path
