"""Bookmark extraction jobs and records."""

from readable_archive.bookmarks.jobs import (
    ExtractionPool,
    run_extraction,
    run_extraction_job,
    standard_processors,
)
from readable_archive.bookmarks.models import (
    Bookmark,
    BookmarkFile,
    BookmarkState,
    BookmarkStore,
    MemoryStore,
)

__all__ = [
    "Bookmark",
    "BookmarkFile",
    "BookmarkState",
    "BookmarkStore",
    "ExtractionPool",
    "MemoryStore",
    "run_extraction",
    "run_extraction_job",
    "standard_processors",
]
