"""Shared test fixtures for the Readable Archive test suite."""

import io
from collections.abc import Callable
from pathlib import Path

import pytest
import respx
from PIL import Image as PILImage

FIXTURES = Path(__file__).parent / "fixtures"

# ─── Async Backend ───────────────────────────────────────────────


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio as the async backend."""
    return "asyncio"


# ─── Settings Fixtures ───────────────────────────────────────────


@pytest.fixture
def test_settings(tmp_path):
    """Settings writing into a temporary data directory, without site configs."""
    from readable_archive.config import Settings

    return Settings(
        debug=True,
        log_level="DEBUG",
        denied_ips="",
        site_config_path=None,
        standard_site_config_path=None,
        data_directory=str(tmp_path / "data"),
    )


@pytest.fixture
def site_config_folders():
    """Custom and standard site-config fixture folders."""
    from readable_archive.extract.siteconfig import ConfigFolder

    return [
        ConfigFolder(FIXTURES / "site-config" / "custom", "custom"),
        ConfigFolder(FIXTURES / "site-config" / "standard", "standard"),
    ]


# ─── HTTP Fixtures ───────────────────────────────────────────────


@pytest.fixture
def mock_http():
    """RESPX mock router for HTTP mocking."""
    with respx.mock(assert_all_called=False) as router:
        yield router


# ─── Image Fixtures ──────────────────────────────────────────────


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory for encoded test images."""

    def _make(width: int = 64, height: int = 48, format: str = "PNG", color=(200, 30, 30)) -> bytes:
        mode = "RGB" if format.upper() in ("JPEG", "BMP") else "RGBA"
        im = PILImage.new(mode, (width, height), color)
        buf = io.BytesIO()
        im.save(buf, format=format)
        return buf.getvalue()

    return _make


@pytest.fixture
def png_bytes(make_image) -> bytes:
    return make_image(64, 48, "PNG")


# ─── Sample Data Fixtures ────────────────────────────────────────


@pytest.fixture
def sample_html_content() -> str:
    """Sample article page."""
    return """<!DOCTYPE html>
<html lang="en-US">
<head>
    <meta charset="UTF-8">
    <title>Test Page Title</title>
    <meta name="description" content="Test page description">
    <meta name="author" content="Jane Doe">
    <meta property="og:title" content="The Open Graph Title">
    <meta property="og:type" content="article">
    <meta property="og:site_name" content="Example News">
    <meta property="og:image" content="/media/cover.png">
    <meta property="article:published_time" content="2021-03-04T10:20:00Z">
    <link rel="icon" href="/favicon.png" sizes="32x32">
</head>
<body>
    <nav class="menu"><a href="/">Home</a> <a href="/about">About</a></nav>
    <article>
        <h1>Welcome to Test Page</h1>
        <p class="lead" data-track="1">This is a test paragraph with some <strong>bold text</strong>.
        It talks about many things, at length, so that it looks like real content to
        anyone who reads it, including a content extraction library.</p>
        <p>Here is a <a href="https://example.com/link1">link to example</a>, and the
        paragraph goes on with more words, more commas, and more sentences. The goal is
        to have enough text for the readability scoring to pick this block.</p>
        <p><img src="/media/photo.png" alt="A photo"></p>
        <p>Another paragraph closes the article. It also has, like the others, a good
        amount of text with commas, so the scoring keeps it in the final content.</p>
        <span></span>
    </article>
    <footer>Copyright</footer>
</body>
</html>
"""
