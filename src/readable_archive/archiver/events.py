"""Archiver events.

Events are advisory: handlers observe the archive progress and never
change its outcome.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from readable_archive.archiver.archiver import Archiver

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EventStartHTML:
    """Emitted at the beginning of an archive."""

    uri: str

    def fields(self) -> dict[str, Any]:
        return {"uri": self.uri}


@dataclass(frozen=True)
class EventFetchURL:
    """Emitted when a resource is resolved, from the network or the cache."""

    uri: str
    parent: str
    cached: bool

    def fields(self) -> dict[str, Any]:
        return {"uri": self.uri, "parent": self.parent, "cached": self.cached}


@dataclass(frozen=True)
class EventError:
    """Emitted when a resource can't be archived."""

    error: Exception
    uri: str

    def fields(self) -> dict[str, Any]:
        return {"error": str(self.error), "uri": self.uri}


Event = EventStartHTML | EventFetchURL | EventError

EventHandler = Callable[["Archiver", Event], None]


def log_event(arc: "Archiver", event: Event) -> None:
    """Default event handler: send the events to the logger."""
    match event:
        case EventStartHTML():
            logger.info("archive_start", **event.fields())
        case EventFetchURL():
            logger.debug("archive_fetch", **event.fields())
        case EventError():
            logger.debug("archive_error", **event.fields())
