"""oEmbed metadata."""

import json
from urllib.parse import urljoin

import httpx

from readable_archive.exceptions import DestinationBlockedError, FetchError, ValidationError
from readable_archive.extract.extractor import ProcessMessage, ProcessStep, Signal

OEMBED_FIELDS = (
    "type",
    "version",
    "title",
    "author_name",
    "author_url",
    "provider_name",
    "provider_url",
    "cache_age",
    "thumbnail_url",
    "thumbnail_width",
    "thumbnail_height",
    "url",
    "width",
    "height",
    "html",
)


def _as_string(value) -> str:
    # Numbers and other values are kept as their JSON text
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


async def fetch_oembed(client: httpx.AsyncClient, url: str) -> dict[str, str]:
    """
    Fetch an oEmbed document.

    Raises:
        FetchError: When the document can't be retrieved or decoded
    """
    try:
        rsp = await client.get(url)
    except httpx.HTTPError as e:
        raise FetchError(url, str(e) or type(e).__name__) from e
    except (DestinationBlockedError, ValidationError) as e:
        raise FetchError(url, str(e)) from e

    if not rsp.is_success:
        raise FetchError(url, "oembed", status_code=rsp.status_code)

    try:
        data = rsp.json()
    except ValueError as e:
        raise FetchError(url, f"invalid oembed document: {e}") from e
    if not isinstance(data, dict):
        raise FetchError(url, "invalid oembed document")

    return {name: _as_string(data.get(name)) for name in OEMBED_FIELDS}


async def extract_oembed(m: ProcessMessage) -> Signal | None:
    """Load the document oEmbed data into ``oembed.*`` metadata. Runs after extract_meta."""
    if m.step != ProcessStep.DOM or m.dom is None or m.position > 0:
        return None

    m.log.debug("looking_for_oembed")
    nodes = m.dom.xpath("//link[@href][@type='application/json+oembed']")
    if not nodes:
        return None

    href = (nodes[0].get("href") or "").strip()
    if not href:
        return None

    d = m.extractor.drop
    url = urljoin(d.url, href)
    try:
        values = await fetch_oembed(m.extractor.client, url)
    except FetchError as e:
        m.log.warning("oembed_error", error=str(e))
        return None

    m.log.debug("found_oembed", url=url)
    for name, value in values.items():
        if value:
            d.meta.add(f"oembed.{name}", value)

    return None
