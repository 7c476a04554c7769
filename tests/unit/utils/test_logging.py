"""Tests for logging configuration."""

from __future__ import annotations

import logging
from pathlib import Path

from podcast_search.utils.logging import configure_logging, get_logger


def test_configure_logging_writes_to_file(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "podcast-search.log"
    root = logging.getLogger()
    previous_level = root.level
    previous_handlers = list(root.handlers)

    try:
        configure_logging({"level": "warning", "file": {"enabled": True, "path": str(log_path)}})
        get_logger("podcast_search.test").warning("lock contention on %s", "episode.mp3")
        for handler in root.handlers:
            handler.flush()

        assert root.level == logging.WARNING
        assert "WARNING | podcast_search.test | lock contention on episode.mp3" in (
            log_path.read_text(encoding="utf-8")
        )
    finally:
        for handler in list(root.handlers):
            if handler not in previous_handlers:
                root.removeHandler(handler)
                handler.close()
        for handler in previous_handlers:
            if handler not in root.handlers:
                root.addHandler(handler)
        root.setLevel(previous_level)


def test_unknown_level_defaults_to_info() -> None:
    root = logging.getLogger()
    previous_level = root.level
    previous_handlers = list(root.handlers)
    try:
        configure_logging({"level": "chatty"})
        assert root.level == logging.INFO
    finally:
        for handler in list(root.handlers):
            if handler not in previous_handlers:
                root.removeHandler(handler)
        for handler in previous_handlers:
            if handler not in root.handlers:
                root.addHandler(handler)
        root.setLevel(previous_level)


def test_get_logger_defaults_to_package_logger() -> None:
    assert get_logger().name == "podcast_search"
