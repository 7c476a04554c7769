"""Global pytest fixtures for podcast search."""

from __future__ import annotations

from pathlib import Path

import pytest

from podcast_search.storage.blob_store import LocalBlobStore
from podcast_search.storage.paths import StorageLayout


@pytest.fixture
def store(tmp_path: Path) -> LocalBlobStore:
    """A blob store rooted in a fresh temporary directory."""
    return LocalBlobStore(tmp_path / "blob-store")


@pytest.fixture
def layout() -> StorageLayout:
    return StorageLayout()


@pytest.fixture(autouse=True)
def _clear_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment overrides out of configuration tests."""
    import os

    for key in list(os.environ):
        if key.startswith("PODCAST_SEARCH_"):
            monkeypatch.delenv(key, raising=False)
