"""HTML resource archiver."""

from readable_archive.archiver.archiver import (
    DEFAULT_FLAGS,
    ArchiveFlag,
    Archiver,
    ImageProcessor,
    URLProcessor,
    data_url_processor,
    keep_image,
)
from readable_archive.archiver.events import (
    Event,
    EventError,
    EventFetchURL,
    EventHandler,
    EventStartHTML,
    log_event,
)

__all__ = [
    "DEFAULT_FLAGS",
    "ArchiveFlag",
    "Archiver",
    "Event",
    "EventError",
    "EventFetchURL",
    "EventHandler",
    "EventStartHTML",
    "ImageProcessor",
    "URLProcessor",
    "data_url_processor",
    "keep_image",
    "log_event",
]
