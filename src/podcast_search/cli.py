"""Command-line entrypoints for podcast search."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import typer

from podcast_search.config import (
    load_config,
    load_custom_corrections,
    load_site_config,
    require_transcription_prompt,
)
from podcast_search.config.load import PROJECT_ROOT
from podcast_search.exceptions import ConfigurationError, SerializationError
from podcast_search.pipelines.indexing import (
    IndexingSettings,
    deserialize,
    run_indexing_from_config,
)
from podcast_search.pipelines.indexing.builder import list_transcripts
from podcast_search.pipelines.transcribe import build_transcription_run
from podcast_search.storage.blob_store import LocalBlobStore
from podcast_search.storage.paths import build_layout, resolve_local_path
from podcast_search.utils.logging import configure_logging, get_logger
from podcast_search.utils.spelling import (
    SpellingRule,
    aggregate_correction_results,
    apply_corrections_to_file,
    merge_rules,
)

app = typer.Typer(help="Transcribe podcast audio and build a searchable index.")

LOGGER = get_logger(__name__)

DEFAULT_STORE_ROOT = "./data/blob-store"
_ENV_HELP = "Configuration environment to load (default: dev)."


def _load(env: str) -> dict[str, Any]:
    try:
        config = load_config(env)
    except ConfigurationError as exc:
        typer.echo(f"Failed to load configuration: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    configure_logging(config.get("logging"))
    return config


def _open_store(config: Mapping[str, Any]) -> LocalBlobStore:
    storage = config.get("storage")
    root = storage.get("root") if isinstance(storage, Mapping) else None
    return LocalBlobStore(resolve_local_path(root or DEFAULT_STORE_ROOT, relative_to=PROJECT_ROOT))


def _load_rules(site_config: Mapping[str, Any], corrections: Path | None) -> list[SpellingRule]:
    return merge_rules(
        site_config.get("spelling_corrections") or [],
        load_custom_corrections(corrections),
    )


def _echo_json(payload: Mapping[str, Any]) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@app.command()
def transcribe(
    site_config: Path = typer.Option(
        ...,
        "--site-config",
        "-s",
        help="Path to the site configuration JSON (must define transcription_prompt).",
    ),
    corrections: Optional[Path] = typer.Option(
        None,
        "--corrections",
        help="Optional global spelling corrections JSON.",
    ),
    env: str = typer.Option("dev", "--env", help=_ENV_HELP),
    only: Optional[list[str]] = typer.Option(
        None,
        "--only",
        help="Restrict the run to these audio file names; repeat to pass several.",
    ),
    debug_file: Optional[str] = typer.Option(
        None,
        "--debug-file",
        help="Process only the first audio file whose name contains this text.",
    ),
    index_after: bool = typer.Option(
        False,
        "--index-after/--no-index-after",
        help="Rebuild the search index when new transcripts were created.",
    ),
) -> None:
    """Transcribe every audio file that has no transcript yet."""

    config = _load(env)
    store = _open_store(config)
    try:
        site = load_site_config(site_config)
        prompt = require_transcription_prompt(site)
        rules = _load_rules(site, corrections)
        run = build_transcription_run(config, store=store, prompt=prompt, rules=rules)
        summary = run.run(only_files=only or None, debug_match=debug_file)
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    except KeyboardInterrupt:  # pragma: no cover - interactive guard
        typer.echo("Interrupted, in-flight transcription stopped.", err=True)
        raise typer.Exit(code=130) from None

    if index_after and summary.new_transcripts:
        LOGGER.info("New transcripts created; rebuilding the search index.")
        indexing = run_indexing_from_config(config, store)
        if not indexing.ok:
            typer.echo(indexing.message, err=True)
            raise typer.Exit(code=1)


@app.command()
def index(
    env: str = typer.Option("dev", "--env", help=_ENV_HELP),
    force: bool = typer.Option(
        False,
        "--force",
        help="Regenerate cached search entries instead of reusing them.",
    ),
) -> None:
    """Rebuild the search index from every transcript."""

    config = _load(env)
    store = _open_store(config)
    try:
        summary = run_indexing_from_config(config, store, force=force)
    except KeyboardInterrupt:  # pragma: no cover - interactive guard
        typer.echo("Interrupted, index was not rebuilt.", err=True)
        raise typer.Exit(code=130) from None

    _echo_json(summary.to_dict())
    if not summary.ok:
        raise typer.Exit(code=1)


@app.command()
def search(
    term: str = typer.Argument(..., help="Words that must all appear in a hit."),
    env: str = typer.Option("dev", "--env", help=_ENV_HELP),
    limit: int = typer.Option(10, "--limit", help="Maximum number of hits to print."),
    offset: int = typer.Option(0, "--offset", help="Number of hits to skip."),
    sort_by: Optional[str] = typer.Option(
        None,
        "--sort-by",
        help="Sort field, e.g. episodePublishedUnixTimestamp (default: insertion order).",
    ),
    order: str = typer.Option("DESC", "--order", help="ASC or DESC when --sort-by is set."),
) -> None:
    """Query the persisted search index."""

    config = _load(env)
    store = _open_store(config)
    layout = build_layout(config)
    settings = IndexingSettings.from_config(config)

    if not store.file_exists(layout.search_index_key):
        typer.echo(f"No search index found at {layout.search_index_key}.", err=True)
        raise typer.Exit(code=1)

    try:
        search_index = deserialize(
            store.get_file(layout.search_index_key),
            settings.compression,
            chunk_bytes=settings.stream_chunk_bytes,
        )
        results = search_index.search(
            term, limit=limit, offset=offset, sort_by=sort_by, sort_order=order
        )
    except (SerializationError, ValueError) as exc:
        typer.echo(f"Search failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"{results.count} hit(s) for {term!r}")
    for hit in results.hits:
        document = hit.document
        seconds = int(document["startTimeMs"]) // 1000
        stamp = f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"
        typer.echo(
            f"[episode {document['sequentialEpisodeIdAsString']} @ {stamp}] {document['text']}"
        )


@app.command("apply-corrections")
def apply_corrections(
    site_config: Path = typer.Option(
        ...,
        "--site-config",
        "-s",
        help="Path to the site configuration JSON.",
    ),
    corrections: Optional[Path] = typer.Option(
        None,
        "--corrections",
        help="Optional global spelling corrections JSON.",
    ),
    env: str = typer.Option("dev", "--env", help=_ENV_HELP),
) -> None:
    """Re-apply spelling corrections to every stored transcript."""

    config = _load(env)
    store = _open_store(config)
    try:
        rules = _load_rules(load_site_config(site_config), corrections)
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    if not rules:
        typer.echo("No spelling corrections configured.")
        return

    outcomes = [
        apply_corrections_to_file(store, key, rules)
        for key in list_transcripts(store, build_layout(config))
    ]
    changed = sum(1 for outcome in outcomes if outcome.changed)
    typer.echo(f"Corrected {changed} of {len(outcomes)} transcript(s).")
    for result in aggregate_correction_results(outcomes):
        typer.echo(f"  {result.corrected_spelling}: {result.corrections_applied}")


def main() -> None:
    """Entrypoint used by the console script."""
    app()


if __name__ == "__main__":
    main()
