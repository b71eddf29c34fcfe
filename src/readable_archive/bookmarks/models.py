"""Bookmark records and their storage boundary."""

import enum
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

import idna
import structlog
from pydantic import BaseModel, Field

from readable_archive.extract.drop import registered_domain

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class BookmarkState(enum.IntEnum):
    """Extraction state of a bookmark."""

    LOADED = 0
    ERROR = 1
    LOADING = 2


class BookmarkFile(BaseModel):
    """A file stored in the bookmark archive."""

    name: str = Field(..., description="Path in the archive")
    type: str = Field(default="", description="MIME type")
    size: tuple[int, int] | None = Field(default=None, description="Image size (width, height)")

    model_config = {"extra": "ignore"}


class Bookmark(BaseModel):
    """A saved URL and the result of its last extraction."""

    uid: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Unique identifier")
    url: str = Field(..., description="Bookmarked URL")
    state: BookmarkState = Field(default=BookmarkState.LOADING, description="Extraction state")
    created: datetime = Field(default_factory=_now, description="Creation time")
    updated: datetime = Field(default_factory=_now, description="Last update time")

    domain: str = Field(default="", description="Registered domain of the final URL")
    title: str = ""
    site: str = Field(default="", description="Hostname of the final URL")
    site_name: str = Field(default="", description="Site name, as declared by the page")
    published: datetime | None = None
    authors: list[str] = Field(default_factory=list)
    lang: str = ""
    document_type: str = ""
    description: str = ""
    text: str = ""
    word_count: int = Field(default=0, ge=0)
    embed: str = Field(default="", description="Embed HTML for media documents")

    file_path: str = Field(default="", description="Archive path, relative to the storage path")
    files: dict[str, BookmarkFile] = Field(default_factory=dict, description="Archive manifest")
    errors: list[str] = Field(default_factory=list, description="Extraction errors")
    logs: list[str] = Field(default_factory=list, description="Extraction log")

    model_config = {"extra": "ignore"}

    def reset_for_extraction(self) -> None:
        """Put the bookmark back in the loading state, for a new extraction."""
        self.state = BookmarkState.LOADING
        self.errors = []
        self.logs = []
        self.updated = _now()

    def base_file_url(self) -> str:
        """
        Return the archive location, without extension.

        The path is ``<registered domain>/<creation date>/<uid>``, with the
        domain in its ASCII form.
        """
        domain = registered_domain(self.site) or self.site
        domain = idna.encode(domain, uts46=True).decode("ascii") if domain else "_"
        return f"{domain}/{self.created:%Y%m%d}/{self.uid}"

    def get_file_path(self, storage: Path) -> Path | None:
        """Return the archive file path, when there is one."""
        if not self.file_path:
            return None
        return storage / f"{self.file_path}.zip"

    def remove_files(self, storage: Path) -> None:
        """Remove the archive file and the directories it leaves empty."""
        filename = self.get_file_path(storage)
        if filename is None:
            return

        try:
            filename.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("file_remove_error", path=str(filename), error=str(e))
            return
        else:
            logger.debug("file_removed", path=str(filename))

        dirname = filename.parent
        while dirname != storage and storage in dirname.parents:
            try:
                dirname.rmdir()
            except OSError:
                break
            logger.debug("directory_removed", dir=str(dirname))
            dirname = dirname.parent


@runtime_checkable
class BookmarkStore(Protocol):
    """Persistence of bookmark records."""

    def save(self, bookmark: Bookmark) -> None: ...


class MemoryStore:
    """In memory :class:`BookmarkStore`, safe to share between workers."""

    def __init__(self) -> None:
        self._items: dict[str, Bookmark] = {}
        self._lock = threading.Lock()

    def save(self, bookmark: Bookmark) -> None:
        with self._lock:
            self._items[bookmark.uid] = bookmark.model_copy(deep=True)

    def get(self, uid: str) -> Bookmark | None:
        with self._lock:
            item = self._items.get(uid)
            return item.model_copy(deep=True) if item else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
