"""Extraction processors applying site configuration rules."""

from collections.abc import Sequence
from urllib.parse import urldefrag, urljoin

import lxml.etree
import lxml.html
from dateutil import parser as date_parser

from readable_archive.exceptions import ExtractError, SiteConfigError
from readable_archive.extract.extractor import STOP, ProcessMessage, ProcessStep, Signal
from readable_archive.extract.siteconfig.config import ConfigFolder, SiteConfig, resolve_config


def _config(m: ProcessMessage) -> SiteConfig | None:
    return m.value("config")


def query_all(m: ProcessMessage, selector: str) -> list:
    """Run an XPath selector on the message document. Invalid selectors match nothing."""
    if m.dom is None:
        return []
    try:
        res = m.dom.xpath(selector)
    except lxml.etree.XPathError as e:
        m.log.warning("site_config_invalid_selector", selector=selector, error=str(e))
        return []
    if not isinstance(res, list):
        return [res] if res else []
    return res


def node_text(node) -> str:
    if isinstance(node, str):
        return node.strip()
    if isinstance(node, lxml.html.HtmlElement):
        return node.text_content().strip()
    return ""


def _link_target(m: ProcessMessage, node) -> str:
    href = ""
    if isinstance(node, lxml.html.HtmlElement):
        href = (node.get("href") or "").strip()
    if not href:
        href = node_text(node)
    if not href:
        return ""
    return urldefrag(urljoin(m.drop.url, href))[0]


def _remove_nodes(nodes: list) -> int:
    count = 0
    for node in nodes:
        if isinstance(node, lxml.html.HtmlElement) and node.getparent() is not None:
            node.drop_tree()
            count += 1
    return count


def load_site_config(folders: Sequence[ConfigFolder]):
    """
    Build the processor that finds the configuration of the first Drop.

    The configuration is stored in the ``config`` message value and its
    custom HTTP headers are set on the extractor client. It is removed
    at the DOM step when the document is a media.
    """

    async def load_configuration(m: ProcessMessage) -> Signal | None:
        if m.step == ProcessStep.DOM and m.extractor.drop.is_media():
            m.log.debug("site_config_removed", reason="document is a media")
            m.set_value("config", None)

        if m.position > 0 or m.step != ProcessStep.START:
            return None

        try:
            cfg = resolve_config(m.extractor.drop.url, folders)
        except SiteConfigError as e:
            m.log.error("site_config_load_failed", error=str(e))
            return None

        if cfg.files:
            m.log.debug("site_config_loaded", files=cfg.files)
        else:
            m.log.debug("site_config_not_found")

        m.set_value("config", cfg)

        for name, value in cfg.http_headers.items():
            m.log.debug("site_config_header", header=[name, value])
            m.extractor.client.headers[name] = value

        return None

    return load_configuration


async def replace_strings(m: ProcessMessage) -> Signal | None:
    """Apply every ``replace_strings`` pair to the raw body."""
    if m.step != ProcessStep.BODY:
        return None

    cfg = _config(m)
    if cfg is None:
        return None

    d = m.drop
    for search, replacement in cfg.replace_strings:
        d.body = d.body.replace(search.encode("utf-8"), replacement.encode("utf-8"))
        m.log.debug("site_config_replace_string", replace=[search, replacement])

    return None


async def extract_body(m: ProcessMessage) -> Signal | None:
    """Replace the document body with the first node matching a body selector."""
    if m.step != ProcessStep.DOM:
        return None

    cfg = _config(m)
    if cfg is None or m.dom is None:
        return None

    body = m.dom.find("body")
    if body is None:
        return None

    for selector in cfg.body_selectors:
        nodes = [n for n in query_all(m, selector) if isinstance(n, lxml.html.HtmlElement)]
        if not nodes:
            continue

        node = nodes[0]
        if node is body or node in body.iterancestors():
            break

        m.log.debug("site_config_body_found", nodes=len(node))

        new_body = lxml.html.Element("body")
        section = lxml.html.Element("section", {"class": "article", "id": "article"})
        new_body.append(section)
        node.tail = None
        section.append(node)
        body.getparent().replace(body, new_body)
        break

    return None


async def extract_author(m: ProcessMessage) -> Signal | None:
    """Add the text of every author selector match to the Drop authors."""
    if m.position > 0 or m.step != ProcessStep.DOM:
        return None

    cfg = _config(m)
    if cfg is None:
        return None

    for selector in cfg.author_selectors:
        for node in query_all(m, selector):
            value = node_text(node)
            if not value:
                continue
            m.log.debug("site_config_author", author=value)
            m.extractor.drop.add_authors(value)

    return None


async def extract_date(m: ProcessMessage) -> Signal | None:
    """Set the Drop date from the first date selector match that parses."""
    if m.position > 0 or m.step != ProcessStep.DOM:
        return None

    d = m.extractor.drop
    if d.date is not None:
        return None

    cfg = _config(m)
    if cfg is None:
        return None

    for selector in cfg.date_selectors:
        for node in query_all(m, selector):
            text = node_text(node)
            if not text:
                continue
            try:
                date = date_parser.parse(text)
            except (ValueError, OverflowError) as e:
                m.log.debug("site_config_date_invalid", value=text, error=str(e))
                continue

            m.log.debug("site_config_date", date=date.isoformat())
            d.date = date
            return None

    return None


async def strip_tags(m: ProcessMessage) -> Signal | None:
    """Remove the nodes matched by the strip rules."""
    if m.step != ProcessStep.DOM:
        return None

    cfg = _config(m)
    if cfg is None or m.dom is None:
        return None

    for value in cfg.strip_selectors:
        count = _remove_nodes(query_all(m, value))
        m.log.debug("site_config_strip_tags", value=value, nodes=count)

    for value in cfg.strip_id_or_class:
        selector = (
            f"//*[@id='{value}' or "
            f"contains(concat(' ',normalize-space(@class),' '),' {value} ')]"
        )
        count = _remove_nodes(query_all(m, selector))
        m.log.debug("site_config_strip_id_or_class", value=value, nodes=count)

    for value in cfg.strip_image_src:
        selector = f"//img[contains(@src, '{value}')]"
        count = _remove_nodes(query_all(m, selector))
        m.log.debug("site_config_strip_image_src", value=value, nodes=count)

    return None


async def find_content_page(m: ProcessMessage) -> Signal | None:
    """
    Restart the extraction on the single page version of the document.

    When a single page link is found and was not visited yet, the main
    Drop is replaced and the loop restarts from the beginning.
    """
    if m.step != ProcessStep.DOM:
        return None

    cfg = _config(m)
    if cfg is None:
        return None

    for selector in cfg.single_page_link_selectors:
        nodes = query_all(m, selector)
        if not nodes:
            continue

        url = _link_target(m, nodes[0])
        if not url:
            continue

        if m.extractor.visited.is_present(url):
            m.log.debug("single_page_already_visited", url=url)
            continue

        try:
            m.extractor.replace_drop(url)
        except ExtractError as e:
            m.log.warning("single_page_ignored", url=url, error=str(e))
            continue

        m.log.info("single_page_link_found", url=url)
        m.position = -1
        return STOP

    return None


async def find_next_page(m: ProcessMessage) -> Signal | None:
    """Store the first next page link in the ``next_page`` message value."""
    if m.step != ProcessStep.DOM:
        return None

    cfg = _config(m)
    if cfg is None:
        return None

    for selector in cfg.next_page_link_selectors:
        nodes = query_all(m, selector)
        if not nodes:
            continue

        url = _link_target(m, nodes[0])
        if not url:
            continue

        m.log.debug("next_page_found", url=url)
        m.set_value("next_page", url)
        break

    return None


async def go_to_next_page(m: ProcessMessage) -> Signal | None:
    """Queue a Drop for the ``next_page`` value, unless it was already visited."""
    if m.step != ProcessStep.FINISH:
        return None

    url = m.value("next_page")
    if not url:
        return None

    m.set_value("next_page", None)

    if m.extractor.visited.is_present(url):
        m.log.debug("next_page_already_visited", url=url)
        return None

    m.log.info("go_to_next_page", url=url)
    m.extractor.add_drop(url)
    return None
