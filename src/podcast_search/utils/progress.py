"""Line-delimited progress events for aggregating concurrent workers."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, TextIO

from .logging import get_logger

__all__ = ["ProgressEventType", "ProgressReporter"]

LOGGER = get_logger(__name__)


class ProgressEventType(str, Enum):
    START = "START"
    PROGRESS = "PROGRESS"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class ProgressReporter:
    """Emit one JSON object per line to stdout and, optionally, an append-only file."""

    def __init__(
        self,
        process_id: str,
        *,
        log_file: str | Path | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self.process_id = process_id
        self.log_file = Path(log_file).expanduser() if log_file else None
        self._stream = stream

    def emit(
        self,
        event_type: ProgressEventType | str,
        message: str,
        data: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        event = {
            "processId": self.process_id,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "type": ProgressEventType(event_type).value,
            "message": message,
            "data": dict(data or {}),
        }
        line = json.dumps(event, ensure_ascii=False)

        stream = self._stream or sys.stdout
        stream.write(line + "\n")
        stream.flush()

        if self.log_file is not None:
            try:
                self.log_file.parent.mkdir(parents=True, exist_ok=True)
                with self.log_file.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError as exc:
                LOGGER.warning("Could not append progress event to %s: %s", self.log_file, exc)
        return event
