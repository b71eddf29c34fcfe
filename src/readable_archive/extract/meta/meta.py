"""Document metadata processors."""

import re
from collections.abc import Callable

import lxml.html
import trafilatura
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from readable_archive.extract.drop import DropMeta
from readable_archive.extract.extractor import ProcessMessage, ProcessStep, Signal

_rx_opengraph_type = re.compile(r"^([^:]*:)?(.+?)(\..*|$)")

DESCRIPTION_MAX_WORDS = 60
DOCUMENT_TYPES = ("article", "photo", "video")


def _text(node) -> str:
    if isinstance(node, str):
        return node
    return node.text_content()


def _strip_html(value: str) -> str:
    # Some attributes contain HTML
    if "<" not in value:
        return value
    return BeautifulSoup(value, "html.parser").get_text()


def _attr_meta(key: str, value: str, trim: int = 0) -> Callable:
    def _extract(node) -> tuple[str, str]:
        name = (node.get(key) or "")[trim:].strip()
        return name, _strip_html((node.get(value) or "").strip())

    return _extract


_SPEC_LIST: list[tuple[str, str, Callable]] = [
    ("html", "//title", lambda n: ("title", _text(n))),
    ("html", "/html[@lang]/@lang", lambda n: ("lang", _text(n))),
    # Common HTML meta tags
    (
        "html",
        "//meta[@content][@name='author' or @name='byl' or @name='copyright'"
        " or @name='date' or @name='description' or @name='keywords'"
        " or @name='language' or @name='subtitle']",
        _attr_meta("name", "content"),
    ),
    # Dublin Core
    (
        "dc",
        "//meta[@content][starts-with(@name, 'DC.') or starts-with(@name, 'dc.')]",
        _attr_meta("name", "content", 3),
    ),
    # OpenGraph
    (
        "graph",
        "//meta[@content][starts-with(@property, 'og:')]",
        _attr_meta("property", "content", 3),
    ),
    # Twitter cards
    (
        "twitter",
        "//meta[@content][starts-with(@name, 'twitter:')]",
        _attr_meta("name", "content", 8),
    ),
    # Schema.org
    ("schema", "//meta[@content][@itemprop]", _attr_meta("itemprop", "content")),
    (
        "schema",
        "//*[contains(concat(' ',normalize-space(@itemprop),' '),' author ')]"
        "//*[contains(concat(' ',normalize-space(@itemprop),' '),' name ')]",
        lambda n: ("author", _text(n)),
    ),
    # Header links, without icons and stylesheets
    (
        "link",
        "//link[@href][@rel][not(contains(@rel, 'icon')) and not(contains(@rel, 'stylesheet'))]",
        _attr_meta("rel", "href"),
    ),
]


def parse_meta(doc: lxml.html.HtmlElement) -> DropMeta:
    """Collect the document metadata, with namespaced names."""
    res = DropMeta()
    for prefix, selector, fn in _SPEC_LIST:
        for node in doc.xpath(selector):
            name, value = fn(node)
            name, value = name.strip(), value.strip()
            if not name or not value:
                continue
            res.add(f"{prefix}.{name}", value)
    return res


async def extract_meta(m: ProcessMessage) -> Signal | None:
    """Read the first document metadata and set the Drop title, description, authors, site and lang."""
    if m.step != ProcessStep.DOM or m.dom is None or m.position > 0:
        return None

    m.log.debug("loading_metadata")
    d = m.extractor.drop
    d.meta = parse_meta(m.dom)

    d.title = d.meta.lookup_get("graph.title", "twitter.title", "html.title")

    description = d.meta.lookup_get("graph.description", "twitter.description", "html.description")
    words = description.split(" ")
    if len(words) > DESCRIPTION_MAX_WORDS:
        description = " ".join(words[:DESCRIPTION_MAX_WORDS]) + "..."
    d.description = description

    d.add_authors(*d.meta.lookup("schema.author", "dc.creator", "html.author", "html.byl"))

    site = d.meta.lookup_get("graph.site_name", "schema.name")
    if site:
        d.site = site

    lang = d.meta.lookup_get("html.lang", "html.language")
    d.lang = lang[:2] if len(lang) >= 2 else ""

    m.log.debug("metadata_loaded", count=len(d.meta))
    return None


def _find_date(m: ProcessMessage) -> None:
    d = m.extractor.drop
    value = d.meta.lookup_get("html.date")
    if value:
        try:
            d.date = date_parser.parse(value)
            return
        except (ValueError, OverflowError) as e:
            m.log.debug("date_invalid", value=value, error=str(e))

    if m.dom is None:
        return

    # Look for a date in the whole document
    document = trafilatura.extract_metadata(
        lxml.html.tostring(m.dom, encoding="unicode"), default_url=d.url
    )
    if document is not None and document.date:
        try:
            d.date = date_parser.parse(document.date)
        except (ValueError, OverflowError) as e:
            m.log.debug("date_invalid", value=document.date, error=str(e))


async def set_drop_properties(m: ProcessMessage) -> Signal | None:
    """
    Set the Drop date and document type from the collected metadata.

    Runs after the meta and oembed extraction.
    """
    if m.step != ProcessStep.DOM or m.position > 0:
        return None

    d = m.extractor.drop

    if d.date is None:
        _find_date(m)

    if not d.document_type:
        ogt = d.meta.lookup_get("graph.type")
        if ogt:
            d.document_type = _rx_opengraph_type.sub(r"\2", ogt)

    if not d.authors:
        d.add_authors(*d.meta.lookup("oembed.author_name"))

    if not d.site or d.site == d.hostname:
        site = d.meta.lookup_get("oembed.provider_name")
        if site:
            d.site = site

    # A photo gets its picture from oembed
    otype = d.meta.lookup_get("oembed.type")
    if d.document_type == "photo" or otype == "photo":
        d.document_type = "photo"
        if otype == "photo":
            d.meta.add("x.picture_url", d.meta.lookup_get("oembed.url"))

    if otype == "video":
        d.document_type = otype

    if d.document_type not in DOCUMENT_TYPES:
        d.document_type = "article"

    m.log.info("document_type", type=d.document_type)
    return None
