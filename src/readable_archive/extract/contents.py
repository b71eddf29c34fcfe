"""Readable content and text processors."""

import copy
import re

import lxml.etree
import lxml.html
from readability import Document
from readability.readability import Unparseable

from readable_archive.extract.extractor import ProcessMessage, ProcessStep, Signal, parse_html

_rx_space = re.compile(r"[ ]+")
_rx_newline = re.compile(r"\r?\n\s*(\r?\n)+")
_rx_srcset_url = re.compile(r"(\S+)(?:\s+([\d.]+)[xw])?(\s*(?:,|$))", re.IGNORECASE)

EMBED_TAGS = ("object", "embed", "iframe", "video", "audio")


def _elements(node) -> list:
    return [c for c in node if isinstance(c.tag, str)]


def _has_text(node) -> bool:
    if (node.text or "").strip():
        return True
    return any((c.tail or "").strip() for c in node)


def is_single_image(node) -> bool:
    """True when the node is an image, or only wraps one image."""
    if node.tag == "img":
        return True
    children = _elements(node)
    if len(children) != 1 or node.text_content().strip():
        return False
    return is_single_image(children[0])


def fix_noscript_images(doc: lxml.html.HtmlElement) -> None:
    """Replace ``<noscript>`` blocks holding a single image with that image."""
    for noscript in list(doc.iter("noscript")):
        parent = noscript.getparent()
        if parent is None:
            continue

        if _elements(noscript):
            container = noscript
        else:
            content = noscript.text_content().strip()
            if not content:
                continue
            try:
                container = lxml.html.fragment_fromstring(content, create_parent="div")
            except lxml.etree.ParserError:
                continue

        if not is_single_image(container):
            continue

        # The image is sometimes placed after the noscript tag
        next_element = noscript.getnext()
        if next_element is not None and isinstance(next_element.tag, str) and is_single_image(next_element):
            tail = next_element.tail
            next_element.tail = None
            noscript.addprevious(next_element)
            noscript.tail = (noscript.tail or "") + (tail or "") or None

        prev_element = noscript.getprevious()
        if prev_element is None or not is_single_image(prev_element):
            image = copy.deepcopy(_elements(container)[0])
            image.tail = noscript.tail
            parent.replace(noscript, image)


def remove_embeds(top: lxml.html.HtmlElement) -> None:
    for node in list(top.iter(*EMBED_TAGS)):
        if node.getparent() is not None:
            node.drop_tree()


def best_srcset_url(srcset: str) -> str:
    """Return the largest candidate of a ``srcset`` value."""
    candidates = []
    for src, descriptor, _ in _rx_srcset_url.findall(srcset):
        try:
            value = float(descriptor or "1")
        except ValueError:
            continue
        candidates.append((value, src.rstrip(",")))

    if not candidates:
        return ""
    # Stable: first candidate wins on equal descriptors
    candidates.sort(key=lambda c: c[0], reverse=True)
    return candidates[0][1]


def fix_images(top: lxml.html.HtmlElement) -> None:
    """Keep only the best image of every ``srcset``."""
    for node in top.xpath(".//*[@srcset]"):
        src = best_srcset_url(node.get("srcset", ""))
        if not src:
            continue
        node.set("src", src)
        for attr in ("srcset", "width", "height"):
            node.attrib.pop(attr, None)


def find_first_content_node(node: lxml.html.HtmlElement) -> lxml.html.HtmlElement:
    """Walk down single child wrappers, up to the first node with several children."""
    children = _elements(node)
    count = len(children)
    if (node.text or "").strip():
        count += 1
    count += sum(1 for c in node if (c.tail or "").strip())

    if count > 1 or not children:
        return node
    return find_first_content_node(children[0])


def enclose_article(body: lxml.html.HtmlElement) -> None:
    """Make sure the body content starts with a single ``<section>``."""
    children = _elements(body)
    if len(children) == 1 and not _has_text(body):
        node = children[0]
        if node.tag == "div":
            node.tag = "section"
            return
        if node.tag == "section":
            return

    section = lxml.html.Element("section")
    section.text = body.text
    body.text = None
    for child in list(body):
        section.append(child)
    body.append(section)


async def readability(m: ProcessMessage) -> Signal | None:
    """
    Replace the document with its readable content.

    Media documents have no content. When nothing can be extracted the
    content is reset and an error is logged.
    """
    if m.step != ProcessStep.DOM or m.dom is None:
        return None

    if m.extractor.drop.is_media():
        m.reset_content()
        return None

    fix_noscript_images(m.dom)
    source = lxml.html.tostring(m.dom, encoding="unicode")

    try:
        summary = Document(source, url=m.drop.url).summary(html_partial=True)
    except Unparseable as e:
        m.log.error("readability_error", error=str(e))
        m.reset_content()
        return None

    article = parse_html(summary.encode("utf-8")).find("body")
    if article is None or (not article.text_content().strip() and not article.xpath(".//img")):
        m.log.error("could_not_extract_content")
        m.reset_content()
        return None

    m.log.debug("readability_on_contents")

    doc = lxml.html.document_fromstring("<html><body></body></html>")
    body = doc.find("body")
    body.text = article.text
    for child in list(article):
        body.append(child)

    remove_embeds(body)
    fix_images(body)

    # Simplify the top hierarchy
    node = find_first_content_node(body)
    first = _elements(body)[0] if _elements(body) else None
    if first is not None and node is not body and node is not first:
        node.tail = None
        body.replace(first, node)

    enclose_article(body)
    m.dom = doc
    return None


async def text(m: ProcessMessage) -> Signal | None:
    """Set the plain text of the final HTML."""
    if m.step != ProcessStep.POST_PROCESS:
        return None

    ex = m.extractor
    if not ex.html or not ex.drop.is_html():
        return None

    m.log.debug("get_text_content")
    doc = parse_html(ex.html)

    content = doc.text_content()
    content = _rx_space.sub(" ", content)
    content = _rx_newline.sub("\n\n", content)
    ex.text = content.strip()
    return None
