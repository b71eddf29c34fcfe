"""Archive of a bookmark content, with its resources relocated to ``_resources/``."""

import httpx

from readable_archive.archiver import ArchiveFlag, Archiver, Event, EventError, EventFetchURL
from readable_archive.archiver.archiver import ImageProcessor
from readable_archive.config import Settings
from readable_archive.exceptions import SkippedURLError
from readable_archive.extract.extractor import Extractor
from readable_archive.img import fit, quality, transcode_async
from readable_archive.utils.cache import url_hash

RESOURCE_DIR = "_resources"

# Formats the transcoder can't read are stored as they are
PASSTHROUGH_IMAGES = frozenset({"image/svg+xml", "image/vnd.microsoft.icon", "image/x-icon"})

MIME_TYPES = {
    "application/javascript": ".js",
    "application/json": ".json",
    "application/ogg": ".ogx",
    "application/pdf": ".pdf",
    "application/rtf": ".rtf",
    "application/vnd.ms-fontobject": ".eot",
    "application/xhtml+xml": ".xhtml",
    "application/xml": ".xml",
    "audio/aac": ".aac",
    "audio/midi": ".midi",
    "audio/x-midi": ".midi",
    "audio/mpeg": ".mp3",
    "audio/ogg": ".oga",
    "audio/opus": ".opus",
    "audio/wav": ".wav",
    "audio/webm": ".weba",
    "font/otf": ".otf",
    "font/ttf": ".ttf",
    "font/woff": ".woff",
    "font/woff2": ".woff2",
    "image/bmp": ".bmp",
    "image/gif": ".gif",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/svg+xml": ".svg",
    "image/tiff": ".tiff",
    "image/vnd.microsoft.icon": ".ico",
    "image/webp": ".webp",
    "text/calendar": ".ics",
    "text/css": ".css",
    "text/csv": ".csv",
    "text/html": ".html",
    "text/javascript": ".js",
    "text/plain": ".txt",
    "video/mp2t": ".ts",
    "video/mp4": ".mp4",
    "video/mpeg": ".mpeg",
    "video/ogg": ".ogv",
    "video/webm": ".webm",
    "video/x-msvideo": ".avi",
}


def _mime(content_type: str) -> str:
    return content_type.split(";")[0].strip().lower()


def url_filename(uri: str, content_type: str) -> str:
    """Return the stable file name of a resource, with an extension matching its type."""
    return url_hash(uri) + MIME_TYPES.get(_mime(content_type), ".bin")


def url_processor(uri: str, data: bytes, content_type: str) -> str:
    return f"./{RESOURCE_DIR}/{url_filename(uri, content_type)}"


def image_processor(size: int, image_quality: int, max_pixels: int) -> ImageProcessor:
    """Return an archiver image processor fitting images into ``size`` pixels."""

    async def _process(arc: Archiver, data: bytes, content_type: str, uri: str) -> tuple[bytes, str]:
        if _mime(content_type) in PASSTHROUGH_IMAGES:
            return data, content_type

        res, im = await transcode_async(
            data, fit(size, size), quality(image_quality), max_pixels=max_pixels
        )
        return res, im.content_type

    return _process


def event_logger(ex: Extractor):
    """Return an archiver event handler writing to the extraction log."""

    def _handler(arc: Archiver, event: Event) -> None:
        if isinstance(event, EventFetchURL):
            ex.log.debug("archive_fetch", **event.fields())
        elif isinstance(event, EventError):
            if isinstance(event.error, SkippedURLError):
                ex.log.debug("archive_skip", **event.fields())
            else:
                ex.log.warning("archive_error", **event.fields())

    return _handler


async def new_archive(
    ex: Extractor,
    settings: Settings,
    client: httpx.AsyncClient,
) -> Archiver:
    """
    Archive the extraction result: every image of the document is
    fetched, recompressed and referenced from ``./_resources/``.

    Returns:
        The archiver, holding the rewritten document and the resources
    """
    arc = Archiver(
        client,
        flags=ArchiveFlag.IMAGES,
        max_concurrent_download=settings.archive_max_concurrent_download,
        request_timeout=settings.archive_request_timeout,
        image_processor=image_processor(
            settings.archive_image_size, settings.image_quality, settings.image_max_pixels
        ),
        url_processor=url_processor,
        event_handler=event_logger(ex),
    )
    await arc.archive(ex.html, ex.drop.url)
    return arc
