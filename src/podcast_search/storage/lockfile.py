"""Advisory lockfile shared by concurrent transcription workers.

The lockfile is a single JSON document on the blob store::

    {"entries": [{"fileKey": "...", "processId": "...", "timestamp": 1700000000000}], "version": 3}

Every operation is a read-modify-write cycle with no compare-and-swap, so two workers racing
on the same key can both win. Downstream stages tolerate duplicate work instead.
"""

from __future__ import annotations

import json
import random
import string
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import LockfileWriteError
from ..utils.logging import get_logger
from .blob_store import BlobStore

__all__ = [
    "DEFAULT_STALE_AFTER_MS",
    "LockCoordinator",
    "LockEntry",
    "Lockfile",
    "generate_process_id",
]

LOGGER = get_logger(__name__)

DEFAULT_STALE_AFTER_MS = 2 * 60 * 60 * 1000
_ID_ALPHABET = string.ascii_lowercase + string.digits


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_process_id(now_ms: int | None = None) -> str:
    """Return an identifier of the form ``{epochMs}-{9 base36 chars}``."""
    stamp = now_ms if now_ms is not None else _now_ms()
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{stamp}-{suffix}"


@dataclass(slots=True)
class LockEntry:
    file_key: str
    process_id: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"fileKey": self.file_key, "processId": self.process_id, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> LockEntry:
        return cls(
            file_key=str(payload["fileKey"]),
            process_id=str(payload["processId"]),
            timestamp=int(payload["timestamp"]),
        )


@dataclass(slots=True)
class Lockfile:
    entries: list[LockEntry] = field(default_factory=list)
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"entries": [entry.to_dict() for entry in self.entries], "version": self.version}

    def find(self, file_key: str) -> LockEntry | None:
        for entry in self.entries:
            if entry.file_key == file_key:
                return entry
        return None


class LockCoordinator:
    """Best-effort mutual exclusion over a lockfile stored on the blob store."""

    def __init__(
        self,
        store: BlobStore,
        lockfile_key: str,
        process_id: str,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.lockfile_key = lockfile_key
        self.process_id = process_id
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def read(self) -> Lockfile:
        """Return the current lockfile; missing or corrupt documents read as empty."""
        try:
            if not self.store.file_exists(self.lockfile_key):
                return Lockfile()
            payload = json.loads(self.store.get_file(self.lockfile_key).decode("utf-8"))
            entries = [LockEntry.from_dict(item) for item in payload.get("entries", [])]
            return Lockfile(entries=entries, version=int(payload.get("version", 0)))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            LOGGER.warning(
                "Could not read lockfile %s (%s); treating it as empty.", self.lockfile_key, exc
            )
            return Lockfile()

    def is_locked(self, file_key: str) -> bool:
        return self.read().find(file_key) is not None

    def try_acquire(self, file_key: str) -> bool:
        """Record ownership of ``file_key``; return False when another entry already exists.

        Raises:
            LockfileWriteError: if the updated lockfile cannot be persisted.
        """
        lockfile = self.read()
        existing = lockfile.find(file_key)
        if existing is not None:
            LOGGER.debug(
                "File %s is locked by process %s since %s.",
                file_key,
                existing.process_id,
                existing.timestamp,
            )
            return False

        lockfile.entries.append(LockEntry(file_key, self.process_id, self._clock()))
        self._write(lockfile)
        LOGGER.debug("Acquired lock for %s as %s.", file_key, self.process_id)
        return True

    def release(self, file_key: str) -> None:
        """Remove entries for ``file_key`` owned by this process.

        Write failures are logged; a leftover entry expires through stale pruning.
        """
        lockfile = self.read()
        remaining = [
            entry
            for entry in lockfile.entries
            if not (entry.file_key == file_key and entry.process_id == self.process_id)
        ]
        if len(remaining) == len(lockfile.entries):
            return
        lockfile.entries = remaining
        try:
            self._write(lockfile)
        except LockfileWriteError as exc:
            LOGGER.error("Failed to release lock for %s: %s", file_key, exc)
            return
        LOGGER.debug("Released lock for %s.", file_key)

    def prune_stale(self, max_age_ms: int = DEFAULT_STALE_AFTER_MS) -> int:
        """Drop entries at least ``max_age_ms`` old and return how many were removed."""
        lockfile = self.read()
        now = self._clock()
        fresh = [entry for entry in lockfile.entries if now - entry.timestamp < max_age_ms]
        removed = len(lockfile.entries) - len(fresh)
        if not removed:
            return 0

        lockfile.entries = fresh
        try:
            self._write(lockfile)
        except LockfileWriteError as exc:
            LOGGER.error("Failed to prune stale lockfile entries: %s", exc)
            return 0
        LOGGER.info("Removed %d stale lockfile entries.", removed)
        return removed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _write(self, lockfile: Lockfile) -> None:
        lockfile.version += 1
        data = json.dumps(lockfile.to_dict(), indent=2).encode("utf-8")
        try:
            self.store.save_file(self.lockfile_key, data)
        except OSError as exc:
            raise LockfileWriteError(
                f"Could not write lockfile {self.lockfile_key}: {exc}"
            ) from exc
