"""Site icon."""

import re
from urllib.parse import urljoin

import lxml.html

from readable_archive.exceptions import FetchError, ImageError
from readable_archive.extract.extractor import ProcessMessage, ProcessStep, Processor, Signal
from readable_archive.extract.picture import Picture

_rx_icon_size = re.compile(r"(\d+)x\d+")

DEFAULT_ICON_SIZE = 32
ICON_SIZE = 48


def _icon_size(node: lxml.html.HtmlElement) -> int:
    sizes = [int(s) for s in _rx_icon_size.findall(node.get("sizes") or "")]
    return max(sizes) if sizes else DEFAULT_ICON_SIZE


def favicon_list(doc: lxml.html.HtmlElement, base: str) -> list[Picture]:
    """
    List the icon candidates of a document, biggest first.

    The site ``/favicon.ico`` always comes last.
    """
    nodes = doc.xpath(
        "//link[@href][@rel='icon' or @rel='shortcut-icon' or @rel='apple-touch-icon']"
    )
    candidates = []
    for node in nodes:
        href = (node.get("href") or "").strip()
        if not href:
            continue
        candidates.append((_icon_size(node), Picture(href, base)))

    # Stable: same sizes keep the document order
    candidates.sort(key=lambda c: c[0], reverse=True)
    res = [p for _, p in candidates]
    res.append(Picture(urljoin(base, "/favicon.ico")))
    return res


def favicon_loader(icon_size: int = ICON_SIZE) -> Processor:
    """Return a processor loading the first usable icon as the ``icon`` picture."""

    async def extract_favicon(m: ProcessMessage) -> Signal | None:
        if m.step != ProcessStep.DOM or m.dom is None or m.position > 0:
            return None

        m.log.debug("loading_icon")
        d = m.extractor.drop

        for icon in favicon_list(m.dom, d.url):
            try:
                await icon.load(m.extractor.client, icon_size, "png")
            except (FetchError, ImageError) as e:
                m.log.debug("icon_not_loaded", href=icon.href, error=str(e))
                continue

            d.pictures["icon"] = icon
            m.log.debug("icon_loaded", href=icon.href, size=list(icon.size))
            break

        return None

    return extract_favicon


extract_favicon = favicon_loader()
