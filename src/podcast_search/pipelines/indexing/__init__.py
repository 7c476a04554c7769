"""Search-entry extraction, index construction and persistence."""

from __future__ import annotations

from .builder import (
    IndexingSettings,
    IndexingSummary,
    build_index,
    find_duplicate_ids,
    persist_index,
    run_indexing,
    run_indexing_from_config,
)
from .extractor import ExtractionSettings, SearchEntry, SearchEntryExtractor, extract_search_entries
from .manifest import EpisodeManifest, EpisodeManifestEntry, load_manifest
from .notify import IndexRefreshNotifier
from .search_index import SearchIndex, SearchResults
from .serializer import deserialize, serialize

__all__ = [
    "EpisodeManifest",
    "EpisodeManifestEntry",
    "ExtractionSettings",
    "IndexRefreshNotifier",
    "IndexingSettings",
    "IndexingSummary",
    "SearchEntry",
    "SearchEntryExtractor",
    "SearchIndex",
    "SearchResults",
    "build_index",
    "deserialize",
    "extract_search_entries",
    "find_duplicate_ids",
    "load_manifest",
    "persist_index",
    "run_indexing",
    "run_indexing_from_config",
    "serialize",
]
