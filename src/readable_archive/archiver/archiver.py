"""Self-contained HTML archives.

The :class:`Archiver` walks an HTML document, downloads the resources it
references (images, stylesheets, scripts, frames, media) and rewrites
every reference with the value returned by its URL processor. By default
resources are inlined as data URLs.

Downloads run concurrently, bounded by ``max_concurrent_download``. A
resource is fetched at most once per archive, whatever the number of
references to it: concurrent references wait for the download in progress
and share its result.
"""

import enum
from collections.abc import Awaitable, Callable
from contextvars import ContextVar

import anyio
import filetype
import httpx
import structlog
from anyio.abc import TaskGroup
from bs4 import BeautifulSoup, Tag

from readable_archive.archiver.events import (
    Event,
    EventError,
    EventFetchURL,
    EventHandler,
    EventStartHTML,
    log_event,
)
from readable_archive.archiver.utils import (
    CSS_IMPORT_RE,
    CSS_URL_RE,
    create_absolute_url,
    create_data_url,
    css_references,
    format_srcset,
    is_absolute_url,
    parse_srcset,
)
from readable_archive.exceptions import (
    ArchiverError,
    AssetContentError,
    AssetDownloadError,
    DestinationBlockedError,
    ImageError,
    SkippedURLError,
    ValidationError,
)
from readable_archive.utils.cache import Asset, AssetCache

logger = structlog.get_logger(__name__)

MAX_CONCURRENT_DOWNLOAD = 10
REQUEST_TIMEOUT = 20.0

# Content types accepted for the content of an <img> element
IMAGE_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/x-icon",
        "image/bmp",
        "image/tiff",
    }
)


class ArchiveFlag(enum.IntFlag):
    """Kinds of resources kept in an archive."""

    CSS = enum.auto()
    EMBEDS = enum.auto()
    JS = enum.auto()
    MEDIA = enum.auto()
    IMAGES = enum.auto()


DEFAULT_FLAGS = ArchiveFlag.IMAGES | ArchiveFlag.EMBEDS

ImageProcessor = Callable[["Archiver", bytes, str, str], Awaitable[tuple[bytes, str]]]
URLProcessor = Callable[[str, bytes, str], str]

# (selector, attribute, flag, embedded document)
_URL_SELECTORS: tuple[tuple[str, str, ArchiveFlag, bool], ...] = (
    ("img[src]", "src", ArchiveFlag.IMAGES, False),
    ("input[type=image][src]", "src", ArchiveFlag.IMAGES, False),
    ("link[rel~=icon][href]", "href", ArchiveFlag.IMAGES, False),
    ("link[rel~=stylesheet][href]", "href", ArchiveFlag.CSS, False),
    ("script[src]", "src", ArchiveFlag.JS, False),
    ("iframe[src]", "src", ArchiveFlag.EMBEDS, True),
    ("embed[src]", "src", ArchiveFlag.EMBEDS, True),
    ("object[data]", "data", ArchiveFlag.EMBEDS, True),
    ("video[src]", "src", ArchiveFlag.MEDIA, False),
    ("video[poster]", "poster", ArchiveFlag.MEDIA, False),
    ("audio[src]", "src", ArchiveFlag.MEDIA, False),
    ("video source[src], audio source[src]", "src", ArchiveFlag.MEDIA, False),
    ("track[src]", "src", ArchiveFlag.MEDIA, False),
)

_SRCSET_SELECTORS = "img[srcset], picture source[srcset]"

# Elements removed when their flag is not set
_DISABLED_SELECTORS: tuple[tuple[ArchiveFlag, str], ...] = (
    (ArchiveFlag.JS, "script"),
    (ArchiveFlag.CSS, "style, link[rel~=stylesheet]"),
    (ArchiveFlag.EMBEDS, "iframe, embed, object"),
)


async def keep_image(arc: "Archiver", data: bytes, content_type: str, uri: str) -> tuple[bytes, str]:
    """Default image processor: keep the image as is."""
    return data, content_type


def data_url_processor(uri: str, data: bytes, content_type: str) -> str:
    """Default URL processor: inline the resource as a data URL."""
    return create_data_url(data, content_type)


# URL whose download the current task is working for
_owner: ContextVar[str | None] = ContextVar("archiver_owner", default=None)


class _Flight:
    """A download in progress, and the URLs it is waiting for."""

    def __init__(self) -> None:
        self.done = anyio.Event()
        self.error: ArchiverError | None = None
        self.deps: list[str] = []


class Archiver:
    """Archive of one HTML document and its resources."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        flags: ArchiveFlag = DEFAULT_FLAGS,
        max_concurrent_download: int = MAX_CONCURRENT_DOWNLOAD,
        request_timeout: float = REQUEST_TIMEOUT,
        image_processor: ImageProcessor | None = None,
        url_processor: URLProcessor | None = None,
        event_handler: EventHandler | None = None,
    ) -> None:
        self.client = client
        self.flags = flags
        self.max_concurrent_download = max(1, max_concurrent_download)
        self.request_timeout = request_timeout
        self.image_processor = image_processor or keep_image
        self.url_processor = url_processor or data_url_processor
        self.event_handler = event_handler or log_event

        self.cache = AssetCache()
        self.result = b""
        self._semaphore = anyio.Semaphore(self.max_concurrent_download)
        self._inflight: dict[str, _Flight] = {}

    def send_event(self, event: Event) -> None:
        self.event_handler(self, event)

    async def archive(self, html: bytes | str, base_url: str) -> bytes:
        """
        Archive an HTML document.

        Failed resources never fail the archive: their references are
        left as absolute URLs.

        Returns:
            The rewritten document
        """
        if isinstance(html, bytes):
            html = html.decode("utf-8", errors="replace")

        self.send_event(EventStartHTML(base_url))
        res = await self.process_html(html, base_url)
        self.result = res.encode("utf-8")
        logger.debug("archive_done", url=base_url, resources=self.cache.size)
        return self.result

    def _error(self, error: ArchiverError) -> ArchiverError:
        self.send_event(EventError(error, error.uri))
        return error

    async def process_url(
        self,
        uri: str,
        parent: str,
        *,
        embedded: bool = False,
        check_image: bool = False,
    ) -> Asset:
        """
        Resolve one resource, from the cache or the network.

        Stylesheets and embedded documents are archived recursively.
        Images go through the image processor. Concurrent calls for the
        same URL share a single download: the first one fetches, the
        others wait for its result.

        Raises:
            SkippedURLError: For empty, fragment and data URLs, URLs that
                are not absolute http(s) URLs, and circular references
            AssetDownloadError: When the resource can't be downloaded
            AssetContentError: When the content is not what the
                referencing element expects
        """
        uri = uri.strip()
        if not uri or uri.startswith(("data:", "#")):
            raise self._error(SkippedURLError(uri))

        if not is_absolute_url(uri):
            raise self._error(SkippedURLError(uri, "can't parse URL"))

        owner = _owner.get()
        if owner not in self._inflight:
            owner = None
        while True:
            cached = await self.cache.get(uri)
            if cached is not None:
                self.send_event(EventFetchURL(uri, parent, cached=True))
                return cached

            flight = self._inflight.get(uri)
            if flight is None:
                break

            if owner is not None and self._depends_on(uri, owner):
                raise self._error(SkippedURLError(uri, "circular reference"))

            await self._wait(owner, uri, flight)
            if flight.error is not None:
                raise flight.error
            # The owner was cancelled before storing anything; try again.

        flight = _Flight()
        self._inflight[uri] = flight
        if owner is not None:
            self._inflight[owner].deps.append(uri)
        token = _owner.set(uri)
        try:
            asset = await self._fetch(uri, parent, embedded, check_image)
        except ArchiverError as e:
            flight.error = e
            raise
        finally:
            _owner.reset(token)
            if owner is not None:
                self._inflight[owner].deps.remove(uri)
            del self._inflight[uri]
            flight.done.set()

        return asset

    async def _wait(self, owner: str | None, uri: str, flight: "_Flight") -> None:
        if owner is None:
            await flight.done.wait()
            return

        deps = self._inflight[owner].deps
        deps.append(uri)
        try:
            await flight.done.wait()
        finally:
            deps.remove(uri)

    def _depends_on(self, uri: str, target: str) -> bool:
        """Tell whether the download of ``uri`` waits, at any depth, for ``target``."""
        seen = set()
        stack = [uri]
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in seen or current not in self._inflight:
                continue
            seen.add(current)
            stack.extend(self._inflight[current].deps)
        return False

    async def _fetch(self, uri: str, parent: str, embedded: bool, check_image: bool) -> Asset:
        self.send_event(EventFetchURL(uri, parent, cached=False))

        headers = {"Referer": parent} if parent else {}
        async with self._semaphore:
            try:
                rsp = await self.client.get(uri, headers=headers, timeout=self.request_timeout)
            except httpx.HTTPError as e:
                raise self._error(AssetDownloadError(uri, str(e) or type(e).__name__)) from e
            except (DestinationBlockedError, ValidationError) as e:
                raise self._error(AssetDownloadError(uri, str(e))) from e

        if not rsp.is_success:
            raise self._error(
                AssetDownloadError(uri, f"status {rsp.status_code}", status_code=rsp.status_code)
            )

        content_type = rsp.headers.get("content-type", "").strip() or "text/plain"
        mime = content_type.split(";")[0].strip().lower()

        if mime == "text/html" and embedded:
            data = (await self.process_html(rsp.text, uri)).encode("utf-8")
        elif mime == "text/css":
            data = (await self.process_css(rsp.text, uri)).encode("utf-8")
        elif mime.startswith("image/"):
            try:
                data, content_type = await self.image_processor(self, rsp.content, content_type, uri)
            except ImageError as e:
                raise self._error(AssetContentError(uri, str(e))) from e
        else:
            data = rsp.content

        if check_image:
            kind = filetype.guess(data)
            if kind is None or kind.mime not in IMAGE_TYPES:
                raise self._error(AssetContentError(uri, "not an image"))

        return await self.cache.set(uri, Asset(data, content_type))

    async def process_css(self, text: str, base_url: str) -> str:
        """
        Rewrite every ``url()`` and ``@import`` of a stylesheet.

        Raises:
            ArchiverError: The first resource error; the stylesheet is then
                left to the caller
        """
        refs = css_references(text)
        if not refs:
            return text

        results: dict[str, str] = {}
        errors: list[ArchiverError] = []

        async def _process(value: str, tg: TaskGroup) -> None:
            if errors:
                return
            css_url = create_absolute_url(value, base_url)
            try:
                asset = await self.process_url(css_url, base_url)
            except SkippedURLError:
                if not css_url.startswith(("data:", "#")) and css_url:
                    results[value] = css_url
                return
            except ArchiverError as e:
                errors.append(e)
                tg.cancel_scope.cancel()
                return
            results[value] = self.url_processor(css_url, asset.data, asset.content_type)

        async with anyio.create_task_group() as tg:
            for value in refs:
                tg.start_soon(_process, value, tg)

        if errors:
            raise errors[0]

        def _url(m) -> str:
            value = m.group(2).strip()
            if value not in results:
                return m.group(0)
            return f'url("{results[value]}")'

        def _import(m) -> str:
            value = m.group(3).strip()
            if value not in results:
                return m.group(0)
            return f'{m.group(1)}url("{results[value]}")'

        text = CSS_URL_RE.sub(_url, text)
        return CSS_IMPORT_RE.sub(_import, text)

    async def process_html(self, html: str, base_url: str) -> str:
        """
        Archive the resources of an HTML document or fragment.

        Returns:
            The rewritten document
        """
        soup = BeautifulSoup(html, "html.parser")
        base_tag = soup.find("base", href=True)
        if isinstance(base_tag, Tag):
            base_url = create_absolute_url(str(base_tag["href"]), base_url) or base_url

        for flag, selector in _DISABLED_SELECTORS:
            if not self.flags & flag:
                for node in soup.select(selector):
                    node.decompose()

        # absolute URL -> (embedded, check_image)
        urls: dict[str, tuple[bool, bool]] = {}
        refs: list[tuple[Tag, str]] = []
        srcsets: list[Tag] = []

        def _add(value: str, embedded: bool, check_image: bool) -> None:
            uri = create_absolute_url(value, base_url)
            if not is_absolute_url(uri):
                return
            prev = urls.get(uri, (False, False))
            urls[uri] = (prev[0] or embedded, prev[1] or check_image)

        for selector, attr, flag, embedded in _URL_SELECTORS:
            for node in soup.select(selector):
                if not self.flags & flag:
                    self._make_absolute(node, attr, base_url)
                    continue
                refs.append((node, attr))
                _add(str(node[attr]), embedded, node.name == "img")

        for node in soup.select(_SRCSET_SELECTORS):
            if not self.flags & ArchiveFlag.IMAGES:
                continue
            srcsets.append(node)
            for value, _ in parse_srcset(str(node["srcset"])):
                _add(value, False, node.name == "img")

        style_tags: list[Tag] = []
        style_attrs: list[Tag] = []
        if self.flags & ArchiveFlag.CSS:
            style_tags = [n for n in soup.find_all("style") if isinstance(n, Tag)]
            style_attrs = soup.select("[style]")

        assets: dict[str, str] = {}

        async def _resolve(uri: str, embedded: bool, check_image: bool) -> None:
            try:
                asset = await self.process_url(
                    uri, base_url, embedded=embedded, check_image=check_image
                )
            except ArchiverError:
                return
            assets[uri] = self.url_processor(uri, asset.data, asset.content_type)

        async def _style_tag(node: Tag) -> None:
            try:
                res = await self.process_css(node.get_text(), base_url)
            except ArchiverError:
                return
            node.string = res

        async def _style_attr(node: Tag) -> None:
            try:
                res = await self.process_css(str(node["style"]), base_url)
            except ArchiverError:
                return
            node["style"] = res

        async with anyio.create_task_group() as tg:
            for uri, (embedded, check_image) in urls.items():
                tg.start_soon(_resolve, uri, embedded, check_image)
            for node in style_tags:
                tg.start_soon(_style_tag, node)
            for node in style_attrs:
                tg.start_soon(_style_attr, node)

        for node, attr in refs:
            uri = create_absolute_url(str(node[attr]), base_url)
            if uri in assets:
                node[attr] = assets[uri]
            elif is_absolute_url(uri):
                node[attr] = uri

        for node in srcsets:
            candidates = []
            for value, descriptor in parse_srcset(str(node["srcset"])):
                uri = create_absolute_url(value, base_url)
                if uri in assets:
                    value = assets[uri]
                elif is_absolute_url(uri):
                    value = uri
                candidates.append((value, descriptor))
            node["srcset"] = format_srcset(candidates)

        return soup.decode()

    @staticmethod
    def _make_absolute(node: Tag, attr: str, base_url: str) -> None:
        uri = create_absolute_url(str(node[attr]), base_url)
        if is_absolute_url(uri):
            node[attr] = uri
