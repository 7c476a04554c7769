"""Lock-coordinated transcription of every new audio file in the blob store."""

from __future__ import annotations

import signal
import threading
import time
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import FrameType
from typing import Any, TextIO

from ..exceptions import ConfigurationError, LockfileWriteError
from ..storage.blob_store import BlobStore
from ..storage.lockfile import DEFAULT_STALE_AFTER_MS, LockCoordinator, generate_process_id
from ..storage.paths import AUDIO_EXTENSION, StorageLayout, build_layout, file_stem, podcast_of
from ..utils.ffmpeg import FFmpeg
from ..utils.logging import get_logger
from ..utils.progress import ProgressEventType, ProgressReporter
from ..utils.spelling import (
    CorrectionOutcome,
    CorrectionResult,
    SpellingRule,
    aggregate_correction_results,
    apply_corrections_to_file,
)
from .asr import SpeechToTextProvider, TranscriptionClient, build_transcription_client
from .chunking import AudioChunkPlanner, ChunkingSettings, cleanup_stale_process_dirs
from .transcript import ChunkTranscript, combine_srt
from .versions import cleanup_older_transcripts, has_newer_version

__all__ = [
    "FileOutcome",
    "PodcastStats",
    "TranscriptionRun",
    "TranscriptionSummary",
    "build_transcription_run",
]

LOGGER = get_logger(__name__)

BYTES_PER_MB = 1024 * 1024


class FileOutcome(Enum):
    """How a single audio file was handled during a run."""

    PROCESSED = "processed"
    ALREADY_TRANSCRIBED = "already_transcribed"
    LOCKED = "locked"
    NEWER_VERSION = "newer_version"


@dataclass(slots=True)
class PodcastStats:
    total: int = 0
    skipped: int = 0
    processed: int = 0
    failed: int = 0
    size_bytes: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "skipped": self.skipped,
            "processed": self.processed,
            "failed": self.failed,
            "sizeBytes": self.size_bytes,
        }


@dataclass(slots=True)
class TranscriptionSummary:
    """Counters for one run; always returned, even when files fail."""

    process_id: str
    total_files: int = 0
    processed_files: int = 0
    skipped_files: int = 0
    failed_files: int = 0
    in_flight_files: int = 0
    bytes_processed: int = 0
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None
    interrupted: bool = False
    podcasts: dict[str, PodcastStats] = field(default_factory=dict)
    corrections: list[CorrectionResult] = field(default_factory=list)

    @property
    def new_transcripts(self) -> bool:
        return self.processed_files > 0

    @property
    def elapsed_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def podcast(self, name: str) -> PodcastStats:
        return self.podcasts.setdefault(name, PodcastStats())

    def to_dict(self) -> dict[str, Any]:
        return {
            "processId": self.process_id,
            "status": "interrupted" if self.interrupted else "success",
            "totalFiles": self.total_files,
            "processedFiles": self.processed_files,
            "skippedFiles": self.skipped_files,
            "failedFiles": self.failed_files,
            "bytesProcessed": self.bytes_processed,
            "elapsedSeconds": round(self.elapsed_seconds, 2),
            "newTranscripts": self.new_transcripts,
            "podcasts": {name: stats.to_dict() for name, stats in self.podcasts.items()},
            "corrections": [result.to_dict() for result in self.corrections],
        }

    def log(self) -> None:
        """Write a human-readable summary to the log."""
        elapsed = self.elapsed_seconds
        size_mb = self.bytes_processed / BYTES_PER_MB
        suffix = " (interrupted)" if self.interrupted else ""
        LOGGER.info("Transcription summary%s after %.2fs:", suffix, elapsed)
        LOGGER.info("  Total files found: %d", self.total_files)
        LOGGER.info("  Processed: %d", self.processed_files)
        LOGGER.info("  Skipped: %d", self.skipped_files)
        LOGGER.info("  Failed: %d", self.failed_files)
        if self.in_flight_files:
            LOGGER.info("  Incomplete transcripts: %d", self.in_flight_files)
        LOGGER.info("  Size processed: %.2f MB", size_mb)
        if size_mb > 0:
            LOGGER.info("  Speed: %.2f seconds per 10 MB", elapsed / size_mb * 10)
        for name, stats in sorted(self.podcasts.items()):
            LOGGER.info(
                "  %s: %d files, %.2f MB, %d processed, %d skipped, %d failed",
                name,
                stats.total,
                stats.size_bytes / BYTES_PER_MB,
                stats.processed,
                stats.skipped,
                stats.failed,
            )
        if self.corrections:
            LOGGER.info("  Spelling corrections:")
            for result in self.corrections:
                LOGGER.info("    %s: %d", result.corrected_spelling, result.corrections_applied)


class TranscriptionRun:
    """Transcribe every audio file that does not yet have a transcript."""

    def __init__(
        self,
        *,
        store: BlobStore,
        layout: StorageLayout,
        client: TranscriptionClient,
        planner: AudioChunkPlanner,
        locks: LockCoordinator,
        prompt: str,
        rules: Sequence[SpellingRule] = (),
        progress: ProgressReporter | None = None,
        lock_stale_after_ms: int = DEFAULT_STALE_AFTER_MS,
    ) -> None:
        if not prompt or not prompt.strip():
            raise ConfigurationError("A transcription prompt is required before processing.")
        self.store = store
        self.layout = layout
        self.client = client
        self.planner = planner
        self.locks = locks
        self.prompt = prompt
        self.rules = list(rules)
        self.progress = progress or ProgressReporter(locks.process_id)
        self.lock_stale_after_ms = lock_stale_after_ms
        self.summary = TranscriptionSummary(process_id=locks.process_id)
        # Every audio key per podcast before --only/--debug-file filtering.
        self.audio_listing: dict[str, list[str]] = {}

    @property
    def process_id(self) -> str:
        return self.locks.process_id

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(
        self,
        *,
        only_files: Collection[str] | None = None,
        debug_match: str | None = None,
    ) -> TranscriptionSummary:
        """Process all pending audio files and return the run summary.

        ``only_files`` restricts the run to the given audio basenames (used to split work
        across terminals); ``debug_match`` keeps only the first file whose name contains it.
        """
        summary = self.summary = TranscriptionSummary(process_id=self.process_id)
        LOGGER.info(
            "Starting transcription run %s with provider %s.",
            self.process_id,
            self.client.provider.name,
        )

        previous_handler = self._install_interrupt_handler()
        try:
            self.locks.prune_stale(self.lock_stale_after_ms)
            cleanup_stale_process_dirs(
                self.planner.settings.temp_root,
                self.planner.settings.stale_temp_dir_hours * 3600,
                keep=self.process_id,
            )

            files = self.collect_files(only_files=only_files, debug_match=debug_match)
            summary.total_files = len(files)
            self.progress.emit(
                ProgressEventType.START,
                f"Starting transcription of {len(files)} files",
                {"totalFiles": len(files), "completedFiles": 0, "percentComplete": 0},
            )

            outcomes: list[CorrectionOutcome] = []
            for audio_key in files:
                siblings = self.audio_listing.get(podcast_of(audio_key), [])
                correction = self._run_one(audio_key, siblings)
                if correction is not None:
                    outcomes.append(correction)
                    summary.corrections = aggregate_correction_results(outcomes)
        finally:
            self._restore_interrupt_handler(previous_handler)

        summary.finished_at = time.monotonic()
        summary.log()
        self.progress.emit(
            ProgressEventType.COMPLETE,
            f"Transcription completed: {summary.processed_files} files processed",
            summary.to_dict(),
        )
        return summary

    def collect_files(
        self,
        *,
        only_files: Collection[str] | None = None,
        debug_match: str | None = None,
    ) -> list[str]:
        files: list[str] = []
        sizes: dict[str, int] = {}
        self.audio_listing = {}
        for podcast_dir in self.store.list_directories(self.layout.audio_prefix):
            podcast = podcast_dir.rstrip("/").rsplit("/", 1)[-1]
            if not podcast or podcast.startswith("."):
                continue
            podcast_files = [
                key
                for key in self.store.list_files(podcast_dir)
                if key.lower().endswith(AUDIO_EXTENSION)
            ]
            sizes[podcast] = self.store.get_directory_size(podcast_dir)
            self.audio_listing[podcast] = podcast_files
            LOGGER.info("Found %d audio files in %s.", len(podcast_files), podcast_dir)
            files.extend(podcast_files)

        if only_files:
            allowed = {name.strip() for name in only_files if name.strip()}
            original = len(files)
            files = [key for key in files if key.rsplit("/", 1)[-1] in allowed]
            LOGGER.info("Filtered %d files down to %d assigned files.", original, len(files))

        if debug_match:
            matches = [key for key in files if debug_match in key.rsplit("/", 1)[-1]]
            if not matches:
                LOGGER.warning("No audio file matches %r; nothing to process.", debug_match)
                files = []
            else:
                LOGGER.info("Debug mode: only processing %s.", matches[0])
                files = matches[:1]

        self.summary.podcasts = {}
        for key in files:
            stats = self.summary.podcast(podcast_of(key))
            stats.total += 1
            stats.size_bytes = sizes.get(podcast_of(key), 0)
        return files

    def process_file(self, audio_key: str, sibling_keys: Sequence[str] = ()) -> FileOutcome:
        """Transcribe one audio file under the advisory lock."""
        podcast = podcast_of(audio_key)
        file_key = file_stem(audio_key)
        transcript_key = self.layout.transcript_key(podcast, file_key)

        if self.store.file_exists(transcript_key):
            LOGGER.info("Transcript already exists for %s; skipping.", audio_key)
            return FileOutcome.ALREADY_TRANSCRIBED
        if self.locks.is_locked(audio_key):
            LOGGER.info("%s is being processed by another worker; skipping.", audio_key)
            return FileOutcome.LOCKED
        if has_newer_version(file_key, [file_stem(key) for key in sibling_keys]):
            LOGGER.info("Skipping %s because a newer version exists.", audio_key)
            return FileOutcome.NEWER_VERSION

        if not self.locks.try_acquire(audio_key):
            return FileOutcome.LOCKED

        try:
            self.store.create_directory(self.layout.transcripts_dir(podcast))
            if self.store.file_exists(transcript_key):
                LOGGER.info("Transcript for %s appeared after locking; skipping.", audio_key)
                return FileOutcome.ALREADY_TRANSCRIBED

            cleanup_older_transcripts(self.store, self.layout, podcast, file_key)
            subtitle_text = self._transcribe_audio(audio_key, file_key)
            self.store.save_file(transcript_key, subtitle_text.encode("utf-8"))
            LOGGER.info("Saved transcript %s.", transcript_key)
            return FileOutcome.PROCESSED
        finally:
            self.planner.cleanup()
            self.locks.release(audio_key)

    def apply_corrections(self, transcript_key: str) -> CorrectionOutcome | None:
        if not self.rules:
            return None
        return apply_corrections_to_file(self.store, transcript_key, self.rules)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run_one(self, audio_key: str, sibling_keys: Sequence[str]) -> CorrectionOutcome | None:
        summary = self.summary
        podcast = podcast_of(audio_key)
        stats = summary.podcast(podcast)
        started = time.monotonic()
        summary.in_flight_files += 1
        try:
            outcome = self.process_file(audio_key, sibling_keys)
            correction = None
            if outcome is FileOutcome.PROCESSED:
                correction = self.apply_corrections(self.layout.transcript_key_for_audio(audio_key))
        except ConfigurationError:
            raise
        except LockfileWriteError as exc:
            LOGGER.error("Could not lock %s (%s); it will be retried next run.", audio_key, exc)
            summary.skipped_files += 1
            stats.skipped += 1
            return None
        except Exception as exc:  # noqa: BLE001 - one failing file must not stop the batch
            LOGGER.error("Error processing %s at transcription stage: %s", audio_key, exc)
            summary.failed_files += 1
            stats.failed += 1
            self.progress.emit(
                ProgressEventType.ERROR,
                f"Failed to transcribe {audio_key.rsplit('/', 1)[-1]}",
                {"fileKey": audio_key, "error": str(exc)},
            )
            return None
        finally:
            summary.in_flight_files -= 1

        if outcome is not FileOutcome.PROCESSED:
            summary.skipped_files += 1
            stats.skipped += 1
            return None

        size_bytes = self._size_of(audio_key)
        elapsed = time.monotonic() - started
        summary.processed_files += 1
        summary.bytes_processed += size_bytes
        stats.processed += 1
        size_mb = size_bytes / BYTES_PER_MB
        LOGGER.info(
            "Processed %s: %.2f MB in %.2fs (%.2fs per 10 MB).",
            audio_key,
            size_mb,
            elapsed,
            elapsed / size_mb * 10 if size_mb else 0.0,
        )

        completed = summary.processed_files
        self.progress.emit(
            ProgressEventType.PROGRESS,
            f"Completed transcription of {audio_key.rsplit('/', 1)[-1]}",
            {
                "totalFiles": summary.total_files,
                "completedFiles": completed,
                "percentComplete": round(completed / summary.total_files * 100, 2)
                if summary.total_files
                else 0,
                "currentFile": audio_key.rsplit("/", 1)[-1],
            },
        )
        return correction

    def _transcribe_audio(self, audio_key: str, file_key: str) -> str:
        source = self.planner.stage_source(file_key, self.store.get_file(audio_key))
        chunks = self.planner.plan(source, file_key)
        if len(chunks) > 1:
            source.unlink(missing_ok=True)

        results: list[ChunkTranscript] = []
        for index, chunk in enumerate(chunks, start=1):
            LOGGER.info("Transcribing chunk %d/%d of %s.", index, len(chunks), file_key)
            text = self.client.transcribe(
                chunk.local_path, prompt=self.prompt, response_format="srt"
            )
            chunk.local_path.unlink(missing_ok=True)
            results.append(ChunkTranscript(text, chunk.start_seconds))
        return combine_srt(results)

    def _size_of(self, audio_key: str) -> int:
        path_getter = getattr(self.store, "local_path", None)
        if path_getter is not None:
            try:
                return path_getter(audio_key).stat().st_size
            except OSError:
                return 0
        return len(self.store.get_file(audio_key))

    def _handle_interrupt(self, _signum: int, _frame: FrameType | None) -> None:
        LOGGER.warning("Process interrupted; stopping in-flight transcription.")
        self.summary.interrupted = True
        self.summary.finished_at = time.monotonic()
        self.client.terminate_active()
        self.summary.log()
        raise KeyboardInterrupt

    def _install_interrupt_handler(self) -> Any:
        if threading.current_thread() is not threading.main_thread():
            return None
        return signal.signal(signal.SIGINT, self._handle_interrupt)

    @staticmethod
    def _restore_interrupt_handler(previous: Any) -> None:
        if previous is not None and threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, previous)


def build_transcription_run(
    config: Mapping[str, Any],
    *,
    store: BlobStore,
    prompt: str,
    rules: Sequence[SpellingRule] = (),
    provider: SpeechToTextProvider | None = None,
    ffmpeg: FFmpeg | None = None,
    process_id: str | None = None,
    progress_stream: TextIO | None = None,
) -> TranscriptionRun:
    """Assemble a :class:`TranscriptionRun` from configuration."""
    pid = process_id or generate_process_id()
    layout = build_layout(config)
    client = build_transcription_client(config, provider=provider)
    planner = AudioChunkPlanner(
        ffmpeg or FFmpeg.from_config(config),
        ChunkingSettings.from_config(config),
        pid,
    )

    section = config.get("transcription")
    stale_hours = float(section.get("lock_stale_hours", 2)) if isinstance(section, Mapping) else 2.0
    progress_cfg = config.get("progress")
    log_file = progress_cfg.get("log_file") if isinstance(progress_cfg, Mapping) else None

    return TranscriptionRun(
        store=store,
        layout=layout,
        client=client,
        planner=planner,
        locks=LockCoordinator(store, layout.lockfile_key, pid),
        prompt=prompt,
        rules=rules,
        progress=ProgressReporter(pid, log_file=log_file, stream=progress_stream),
        lock_stale_after_ms=int(stale_hours * 3600 * 1000),
    )
