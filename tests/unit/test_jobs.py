"""Unit tests for extraction jobs."""

from datetime import date

import httpx
import pytest
from httpx import Response

from readable_archive.bookmarks import (
    Bookmark,
    BookmarkState,
    ExtractionPool,
    MemoryStore,
    run_extraction,
    run_extraction_job,
    standard_processors,
)
from readable_archive.extract import ProcessMessage, ProcessStep


def _not_found(router) -> None:
    router.route().mock(return_value=Response(404))


def _mock_images(router, make_image, png_bytes) -> None:
    router.get("https://example.com/media/cover.png").mock(
        return_value=Response(200, content=make_image(1000, 500), headers={"content-type": "image/png"})
    )
    router.get("https://example.com/media/photo.png").mock(
        return_value=Response(200, content=make_image(900, 600), headers={"content-type": "image/png"})
    )
    router.get("https://example.com/favicon.png").mock(
        return_value=Response(200, content=png_bytes, headers={"content-type": "image/png"})
    )
    _not_found(router)


class TestStandardProcessors:
    def test_pagination(self):
        assert len(standard_processors([], [])) == len(standard_processors([], [], False)) + 2


class TestRunExtraction:
    """Tests for run_extraction."""

    @pytest.mark.asyncio
    async def test_given_html(self, mock_http, make_image, png_bytes, sample_html_content, test_settings):
        """Test a complete extraction of a given document."""
        _mock_images(mock_http, make_image, png_bytes)
        store = MemoryStore()
        bookmark = Bookmark(url="https://example.com/article#comments")

        async with httpx.AsyncClient() as client:
            await run_extraction(
                bookmark,
                store=store,
                settings=test_settings,
                html=sample_html_content.encode("utf-8"),
                client=client,
            )

        saved = store.get(bookmark.uid)
        assert saved is not None
        assert saved.state == BookmarkState.LOADED
        assert saved.url == "https://example.com/article"
        assert saved.title == "The Open Graph Title"
        assert saved.site_name == "Example News"
        assert saved.site == "example.com"
        assert saved.domain == "example.com"
        assert saved.authors == ["Jane Doe"]
        assert saved.lang == "en"
        assert saved.document_type == "article"
        assert saved.published is not None
        assert saved.published.date() == date(2021, 3, 4)
        assert "This is a test paragraph" in saved.text
        assert saved.word_count == len(saved.text.split())
        assert saved.logs

        assert {"image", "thumbnail", "icon", "article", "log", "props"} <= set(saved.files)
        assert saved.get_file_path(test_settings.storage_path()).exists()

    @pytest.mark.asyncio
    async def test_picture_sizes(self, mock_http, make_image, png_bytes, sample_html_content, test_settings):
        """Test that the picture sizes come from the job settings."""
        _mock_images(mock_http, make_image, png_bytes)
        config = test_settings.model_copy(
            update={"picture_size": 100, "thumbnail_size": 40, "icon_size": 16}
        )
        store = MemoryStore()
        bookmark = Bookmark(url="https://example.com/article")

        async with httpx.AsyncClient() as client:
            await run_extraction(
                bookmark,
                store=store,
                settings=config,
                html=sample_html_content.encode("utf-8"),
                client=client,
            )

        files = store.get(bookmark.uid).files
        assert files["image"].size == (100, 50)
        assert files["thumbnail"].size == (40, 20)
        assert files["icon"].size == (16, 12)

    @pytest.mark.asyncio
    async def test_processor_exception(self, test_settings):
        """Test that an unexpected error ends in the ERROR state."""

        async def broken(m: ProcessMessage):
            if m.step == ProcessStep.DOM:
                raise RuntimeError("boom")
            return None

        store = MemoryStore()
        bookmark = Bookmark(url="https://example.com/")
        await run_extraction(
            bookmark, store=store, settings=test_settings, html=b"<p>x</p>", processors=[broken]
        )

        saved = store.get(bookmark.uid)
        assert saved.state == BookmarkState.ERROR
        assert "boom" in saved.errors

    @pytest.mark.asyncio
    async def test_fetch_error(self, mock_http, test_settings):
        """Test that a page that can't be fetched ends in the ERROR state."""
        _not_found(mock_http)
        store = MemoryStore()
        bookmark = Bookmark(url="https://example.com/missing")

        async with httpx.AsyncClient() as client:
            await run_extraction(bookmark, store=store, settings=test_settings, client=client)

        saved = store.get(bookmark.uid)
        assert saved.state == BookmarkState.ERROR
        assert any("404" in e for e in saved.errors)
        assert "article" not in saved.files
        assert "log" in saved.files

    @pytest.mark.asyncio
    async def test_canceled(self, mock_http, test_settings):
        """Test that a canceled extraction is loaded, with its errors."""
        config = test_settings.model_copy(update={"denied_ips": "127.0.0.0/8"})
        store = MemoryStore()
        bookmark = Bookmark(url="http://127.0.0.1/admin")

        async with httpx.AsyncClient() as client:
            await run_extraction(bookmark, store=store, settings=config, client=client)

        saved = store.get(bookmark.uid)
        assert saved.state == BookmarkState.LOADED
        assert any("destination 127.0.0.1 is not allowed" in e for e in saved.errors)
        assert saved.text == ""
        assert "article" not in saved.files
        assert not mock_http.calls

    @pytest.mark.asyncio
    async def test_archive_write_error(self, test_settings):
        """Test that a storage error is recorded without failing the bookmark."""
        data = test_settings.storage_path().parent
        data.mkdir(parents=True)
        test_settings.storage_path().write_bytes(b"not a directory")

        store = MemoryStore()
        bookmark = Bookmark(url="https://example.com/")
        await run_extraction(
            bookmark, store=store, settings=test_settings, html=b"<p>text</p>", processors=[]
        )

        saved = store.get(bookmark.uid)
        assert saved.state == BookmarkState.LOADED
        assert saved.errors
        assert saved.file_path == ""
        assert saved.files == {}


class TestJobs:
    """Tests for the synchronous job runners."""

    def test_run_extraction_job(self, test_settings):
        store = MemoryStore()
        bookmark = Bookmark(url="https://example.com/")

        res = run_extraction_job(
            bookmark, store=store, settings=test_settings, html=b"<p>text</p>", processors=[]
        )

        assert res is bookmark
        assert store.get(bookmark.uid).state == BookmarkState.LOADED

    def test_pool(self, mock_http, test_settings, sample_html_content):
        """Test that every submitted bookmark is saved."""
        _not_found(mock_http)
        store = MemoryStore()
        bookmarks = [Bookmark(url=f"https://example.com/{i}") for i in range(3)]

        with ExtractionPool(2, store, test_settings) as pool:
            for b in bookmarks:
                pool.submit(b, sample_html_content.encode("utf-8"))

        assert len(store) == 3
        for b in bookmarks:
            saved = store.get(b.uid)
            assert saved.state == BookmarkState.LOADED
            assert saved.title == "The Open Graph Title"
