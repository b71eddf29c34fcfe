"""Drops: the resources fetched during one extraction."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, urldefrag, urlsplit, urlunsplit

import httpx
import idna
import structlog
import tldextract
from bs4.dammit import EncodingDetector, UnicodeDammit

from readable_archive.exceptions import DestinationBlockedError, FetchError, ValidationError

if TYPE_CHECKING:
    from readable_archive.extract.picture import Picture

logger = structlog.get_logger(__name__)

HTML_TYPES = ("text/html", "application/xhtml+xml")
MEDIA_TYPES = ("photo", "video", "audio", "music")

# Only use the bundled public suffix snapshot, never fetch it.
_tld_extract = tldextract.TLDExtract(suffix_list_urls=())

_rx_author = re.compile(r"^by(\s*:)?\s+", re.IGNORECASE)
_rx_spaces = re.compile(r"\s+")


def normalize_url(url: str) -> str:
    """Strip the fragment and convert the host to its Unicode form."""
    url, _ = urldefrag(url)
    parts = urlsplit(url)
    if not parts.hostname:
        return url

    try:
        host = idna.decode(parts.hostname)
    except idna.IDNAError:
        host = parts.hostname

    netloc = host
    if parts.port:
        netloc = f"{host}:{parts.port}"
    if parts.username:
        creds = parts.username
        if parts.password:
            creds = f"{creds}:{parts.password}"
        netloc = f"{creds}@{netloc}"

    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, ""))


def registered_domain(hostname: str) -> str:
    """Return the public suffix plus one label of a hostname."""
    ext = _tld_extract(hostname)
    if not ext.domain or not ext.suffix:
        return ""
    return f"{ext.domain}.{ext.suffix}"


class DropMeta(dict[str, list[str]]):
    """Multi-valued metadata collected on a Drop (``graph.title``, ``html.author``...)."""

    def add(self, name: str, value: str) -> None:
        self.setdefault(name, []).append(value)

    def lookup(self, *names: str) -> list[str]:
        """Return all the values of the first name that is present."""
        for name in names:
            if name in self:
                return self[name]
        return []

    def lookup_get(self, *names: str) -> str:
        """Return the first value of the first name that is present."""
        values = self.lookup(*names)
        return values[0] if values else ""


class URLList:
    """A set of URLs where fragments are not significant."""

    def __init__(self) -> None:
        self._urls: set[str] = set()

    @staticmethod
    def _key(url: str) -> str:
        return urldefrag(url)[0]

    def add(self, url: str) -> None:
        self._urls.add(self._key(url))

    def is_present(self, url: str) -> bool:
        return self._key(url) in self._urls

    def __contains__(self, url: str) -> bool:
        return self.is_present(url)

    def __len__(self) -> int:
        return len(self._urls)


@dataclass
class Drop:
    """The result of the extraction of one resource."""

    url: str
    domain: str = ""
    content_type: str = ""
    charset: str = ""
    document_type: str = ""

    title: str = ""
    description: str = ""
    authors: list[str] = field(default_factory=list)
    site: str = ""
    lang: str = ""
    date: datetime | None = None

    header: dict[str, str] = field(default_factory=dict)
    meta: DropMeta = field(default_factory=DropMeta)
    body: bytes = field(default=b"", repr=False)

    pictures: dict[str, "Picture"] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.url = normalize_url(self.url)
        if not self.domain:
            self.domain = registered_domain(self.hostname)

    @property
    def hostname(self) -> str:
        return urlsplit(self.url).hostname or ""

    async def load(self, client: httpx.AsyncClient, timeout: float | None = None) -> None:
        """
        Fetch the Drop URL and set its body, content type and charset.

        When the Drop already has a body (HTML given by the caller),
        nothing is fetched.

        Raises:
            FetchError: On transport errors and non 2xx responses
        """
        if self.body:
            self.site = self.hostname
            self.content_type = "text/html"
            self.charset = "utf-8"
            return

        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            rsp = await client.get(self.url, follow_redirects=True, **kwargs)
        except httpx.TimeoutException as e:
            raise FetchError(self.url, f"timed out: {e}") from e
        except httpx.HTTPError as e:
            raise FetchError(self.url, str(e) or type(e).__name__) from e
        except (DestinationBlockedError, ValidationError) as e:
            raise FetchError(self.url, str(e)) from e

        self.header = dict(rsp.headers)
        if not rsp.is_success:
            raise FetchError(self.url, rsp.reason_phrase, status_code=rsp.status_code)

        # Final URL, after redirects
        self.url = normalize_url(str(rsp.url))
        self.domain = registered_domain(self.hostname)
        self.site = self.hostname

        content_type = rsp.headers.get("content-type", "")
        self.content_type = content_type.split(";")[0].strip().lower()

        if not self.is_html():
            return

        self._load_html_body(rsp.content, content_type)

    def _load_html_body(self, body: bytes, content_type: str) -> None:
        # Header charset first, then a <meta> scan of the document start.
        declared = []
        if "charset=" in content_type:
            declared.append(content_type.split("charset=", 1)[1].split(";")[0].strip(" \"'"))
        meta_charset = EncodingDetector.find_declared_encoding(body[: 1024 * 3], is_html=True)
        if meta_charset:
            declared.append(meta_charset)

        dammit = UnicodeDammit(body, known_definite_encodings=declared, is_html=True)
        if dammit.unicode_markup is None:
            self.charset = "utf-8"
            self.body = body
            return

        self.charset = (dammit.original_encoding or "utf-8").lower()
        self.body = dammit.unicode_markup.encode("utf-8")

    def is_html(self) -> bool:
        """Return True when the resource is an HTML document."""
        return self.content_type in HTML_TYPES

    def is_media(self) -> bool:
        """Return True when the document type is a media type."""
        return self.document_type in MEDIA_TYPES

    def unescaped_url(self) -> str:
        """Return the Drop URL with its path unescaped, for storage."""
        return unquote(self.url)

    def add_authors(self, *values: str) -> None:
        """Add authors to the author list, ignoring duplicates (case insensitive)."""
        keys = {a.lower(): a for a in self.authors}
        for value in values:
            value = _rx_spaces.sub(" ", value.strip())
            value = _rx_author.sub("", value)
            if not value:
                continue
            keys.setdefault(value.lower(), value)

        self.authors = sorted(keys.values())

    def to_dict(self) -> dict[str, Any]:
        """Return the Drop properties, without its body."""
        return {
            "url": self.url,
            "domain": self.domain,
            "content_type": self.content_type,
            "charset": self.charset,
            "document_type": self.document_type,
            "title": self.title,
            "description": self.description,
            "authors": list(self.authors),
            "site": self.site,
            "lang": self.lang,
            "date": self.date.isoformat() if self.date else None,
            "header": dict(self.header),
            "meta": {k: list(v) for k, v in self.meta.items()},
            "pictures": {
                name: {"href": p.href, "type": p.type, "size": list(p.size)}
                for name, p in self.pictures.items()
            },
        }
