"""Extraction processors specific to bookmarks."""

import re
from collections.abc import Sequence

import lxml.html

from readable_archive.exceptions import DestinationBlockedError, ValidationError
from readable_archive.extract.extractor import STOP, ProcessMessage, ProcessStep, Processor, Signal
from readable_archive.extract.http import Network, check_destination

BLOCK_ATTRS = (
    re.compile(r"^class$"),
    re.compile(r"^data-"),
    re.compile(r"^on[a-z]+"),
    re.compile(r"^(rel|srcset|sizes)$"),
)

LINK_REL = "nofollow noopener noreferrer"

_KEEP_TAGS = frozenset({"html", "head", "body"})


def check_ip(networks: Sequence[Network]) -> Processor:
    """
    Return a processor that cancels the extraction when a Drop host
    resolves into one of the denied networks.
    """

    async def check_ip_processor(m: ProcessMessage) -> Signal | None:
        if m.step != ProcessStep.START or not networks:
            return None

        try:
            await check_destination(m.drop.url, networks)
        except DestinationBlockedError as e:
            m.cancel(f"destination {e.ip} is not allowed")
            return STOP
        except ValidationError as e:
            m.cancel(e.message)
            return STOP

        return None

    return check_ip_processor


def clean_attributes(top: lxml.html.HtmlElement) -> None:
    """Remove the blocked attributes from every element."""
    for node in top.iter():
        if not isinstance(node.tag, str):
            continue
        for name in list(node.attrib):
            if any(rx.match(name) for rx in BLOCK_ATTRS):
                del node.attrib[name]


def remove_empty_nodes(top: lxml.html.HtmlElement) -> None:
    """Remove elements without attributes, children or text."""
    # Deepest first, so a parent emptied by the removal of its children goes too.
    for node in reversed(list(top.iter())):
        if not isinstance(node.tag, str) or node.tag in _KEEP_TAGS:
            continue
        if node.attrib or any(isinstance(c.tag, str) for c in node):
            continue
        if node.text_content().strip():
            continue
        if node.getparent() is not None:
            node.drop_tree()


def set_link_rel(top: lxml.html.HtmlElement) -> None:
    for node in top.iter("a"):
        node.set("rel", LINK_REL)


async def clean_dom(m: ProcessMessage) -> Signal | None:
    """Last cleaning pass on the document."""
    if m.step != ProcessStep.DOM or m.dom is None:
        return None

    m.log.debug("clean_dom")
    clean_attributes(m.dom)
    remove_empty_nodes(m.dom)
    set_link_rel(m.dom)
    return None
