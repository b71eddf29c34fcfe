"""URL helpers for the archiver."""

import base64
import re
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

CSS_URL_RE = re.compile(r"url\(\s*([\"']?)([^)\"']+)\1\s*\)", re.IGNORECASE)
CSS_IMPORT_RE = re.compile(r"(@import\s+)([\"'])([^\"']+)\2", re.IGNORECASE)
SRCSET_SPLIT_RE = re.compile(r"\s*,\s*")
WS_RE = re.compile(r"\s+")


def is_absolute_url(uri: str) -> bool:
    parts = urlsplit(uri)
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def clean_url(uri: str) -> str:
    """Remove the fragment and the ``utm_*`` query parameters of a URL."""
    parts = urlsplit(uri)
    query = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not k.startswith("utm_")
    ]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ""))


def create_absolute_url(uri: str, base: str) -> str:
    """
    Resolve a reference against a base URL and clean it.

    Data URLs and fragments are returned unchanged.
    """
    uri = uri.strip()
    if not uri or not base:
        return ""

    if uri.startswith(("data:", "#")):
        return uri

    if is_absolute_url(uri):
        return clean_url(uri)

    return clean_url(urljoin(base, uri))


def create_data_url(content: bytes, content_type: str) -> str:
    """Return a base64 data URL."""
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def parse_srcset(value: str) -> list[tuple[str, str]]:
    """Split a ``srcset`` value into (url, descriptor) pairs."""
    res = []
    for candidate in SRCSET_SPLIT_RE.split(value.strip()):
        if not candidate:
            continue
        parts = WS_RE.split(candidate.strip(), maxsplit=1)
        res.append((parts[0], parts[1] if len(parts) > 1 else ""))
    return res


def format_srcset(candidates: list[tuple[str, str]]) -> str:
    return ", ".join(f"{url} {desc}".strip() for url, desc in candidates)


def css_references(text: str) -> list[str]:
    """List the distinct references of a stylesheet (``url()`` and ``@import``), in order."""
    refs: dict[str, None] = {}
    for m in CSS_URL_RE.finditer(text):
        refs.setdefault(m.group(2).strip(), None)
    for m in CSS_IMPORT_RE.finditer(text):
        refs.setdefault(m.group(3).strip(), None)
    return list(refs)
