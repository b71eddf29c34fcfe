"""Extraction jobs.

A job runs the extraction of one bookmark, archives the result and saves
the record. Jobs run in a fixed size pool of worker threads, each job in
its own event loop.

Whatever happens during a job, the saved bookmark is either LOADED or
ERROR, never LOADING.
"""

import functools
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime

import anyio
import httpx
import structlog

from readable_archive.archiver import Archiver
from readable_archive.bookmarks.archive import new_archive
from readable_archive.bookmarks.models import Bookmark, BookmarkState, BookmarkStore
from readable_archive.bookmarks.processors import check_ip, clean_dom
from readable_archive.bookmarks.zip import create_zip_file
from readable_archive.config import Settings
from readable_archive.config import settings as default_settings
from readable_archive.extract import contents, meta
from readable_archive.extract.extractor import Extractor, Processor
from readable_archive.extract.http import Network, new_client
from readable_archive.extract.siteconfig import ConfigFolder
from readable_archive.extract.siteconfig import processors as siteconfig

logger = structlog.get_logger(__name__)


def standard_processors(
    folders: Sequence[ConfigFolder],
    networks: Sequence[Network],
    with_pagination: bool = True,
    settings: Settings | None = None,
) -> list[Processor]:
    """
    Return the processor chain of a bookmark extraction.

    Pagination (single page and next page discovery) is only useful when
    the document is fetched, not when its HTML is given. Picture and icon
    sizes come from ``settings``, the global ones by default.
    """
    config = settings or default_settings
    processors: list[Processor] = [
        check_ip(networks),
        meta.extract_meta,
        meta.extract_oembed,
        meta.set_drop_properties,
        meta.favicon_loader(config.icon_size),
        meta.picture_loader(config.picture_size, config.photo_size, config.thumbnail_size),
        siteconfig.load_site_config(folders),
        siteconfig.replace_strings,
    ]

    if with_pagination:
        processors.extend([siteconfig.find_content_page, siteconfig.find_next_page])

    processors.extend(
        [
            siteconfig.extract_author,
            siteconfig.extract_date,
            siteconfig.extract_body,
            siteconfig.strip_tags,
            siteconfig.go_to_next_page,
            contents.readability,
            clean_dom,
            contents.text,
        ]
    )
    return processors


async def _extract(
    bookmark: Bookmark,
    config: Settings,
    html: bytes,
    processors: list[Processor] | None,
    client: httpx.AsyncClient,
) -> None:
    if processors is None:
        folders = [ConfigFolder(path, name) for path, name in config.get_config_folders()]
        processors = standard_processors(
            folders, config.get_denied_networks(), with_pagination=not html, settings=config
        )

    ex = Extractor(
        bookmark.url,
        html,
        client=client,
        processors=processors,
        log_level="debug" if config.debug else config.log_level,
        uid=bookmark.uid,
    )
    result = await ex.run()

    bookmark.logs = list(result.logs)
    drop = ex.drop
    if drop is None:
        return

    bookmark.updated = datetime.now(UTC)
    bookmark.url = drop.unescaped_url()
    bookmark.state = BookmarkState.ERROR if result.fatal else BookmarkState.LOADED
    bookmark.domain = drop.domain
    bookmark.title = drop.title
    bookmark.site = drop.hostname
    bookmark.site_name = drop.site
    bookmark.authors = list(drop.authors)
    bookmark.lang = drop.lang
    bookmark.document_type = drop.document_type
    bookmark.description = drop.description
    bookmark.text = ex.text
    bookmark.word_count = len(ex.text.split())
    bookmark.errors.extend(result.errors)

    if drop.date is not None:
        bookmark.published = drop.date

    if drop.is_media():
        bookmark.embed = drop.meta.lookup_get("oembed.html")

    arc: Archiver | None = None
    if ex.html and drop.is_html():
        arc = await new_archive(ex, config, client)

    storage = config.storage_path()
    try:
        create_zip_file(bookmark, ex, arc, storage)
    except OSError as e:
        logger.error("archive_write_error", uid=bookmark.uid, error=str(e))
        bookmark.errors.append(str(e))
        bookmark.remove_files(storage)
        bookmark.file_path = ""
        bookmark.files = {}


async def run_extraction(
    bookmark: Bookmark,
    *,
    store: BookmarkStore,
    settings: Settings | None = None,
    html: bytes = b"",
    processors: list[Processor] | None = None,
    client: httpx.AsyncClient | None = None,
) -> Bookmark:
    """
    Extract a bookmark and save it.

    This is the only place where any exception is caught: it is recorded
    on the bookmark, which then ends in the ERROR state.

    Args:
        bookmark: Bookmark to extract, in the LOADING state
        store: Where the bookmark is saved
        settings: Settings, the global ones by default
        html: HTML content of the page; when given, the page is not fetched
        processors: Processor chain, the standard one by default
        client: HTTP client, a new one by default
    """
    config = settings or default_settings
    log = logger.bind(uid=bookmark.uid, url=bookmark.url)
    log.info("extraction_start")

    try:
        if client is not None:
            await _extract(bookmark, config, html, processors, client)
        else:
            async with new_client(
                timeout=config.request_timeout,
                denied_networks=config.get_denied_networks(),
                verify=config.get_ssl_context(),
                user_agent=config.user_agent,
            ) as own_client:
                await _extract(bookmark, config, html, processors, own_client)
    except Exception as e:
        log.exception("extraction_error")
        bookmark.state = BookmarkState.ERROR
        bookmark.errors.append(str(e) or type(e).__name__)

    if bookmark.state == BookmarkState.LOADING:
        bookmark.state = BookmarkState.LOADED

    bookmark.updated = datetime.now(UTC)
    store.save(bookmark)
    log.info("extraction_done", state=bookmark.state.name, errors=len(bookmark.errors))
    return bookmark


def run_extraction_job(
    bookmark: Bookmark,
    *,
    store: BookmarkStore,
    settings: Settings | None = None,
    html: bytes = b"",
    processors: list[Processor] | None = None,
    client: httpx.AsyncClient | None = None,
) -> Bookmark:
    """Run :func:`run_extraction` in a new event loop."""
    return anyio.run(
        functools.partial(
            run_extraction,
            bookmark,
            store=store,
            settings=settings,
            html=html,
            processors=processors,
            client=client,
        )
    )


class ExtractionPool:
    """
    Fixed size pool of extraction workers.

    Completion is observed through the saved bookmarks.
    """

    def __init__(
        self,
        workers: int,
        store: BookmarkStore,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or default_settings
        self._executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="extract")
        self._futures: set[Future] = set()

    def submit(self, bookmark: Bookmark, html: bytes = b"") -> None:
        """Queue the extraction of a bookmark."""
        future = self._executor.submit(
            run_extraction_job, bookmark, store=self.store, settings=self.settings, html=html
        )
        self._futures.add(future)
        future.add_done_callback(self._done)
        logger.debug("extraction_queued", uid=bookmark.uid, pending=len(self._futures))

    def _done(self, future: Future) -> None:
        self._futures.discard(future)
        error = future.exception()
        if error is not None:
            # Saving the bookmark failed
            logger.error("extraction_job_failed", error=str(error))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "ExtractionPool":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
