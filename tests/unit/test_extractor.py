"""Unit tests for the extraction pipeline."""

import httpx
import pytest
from httpx import Response

from readable_archive.exceptions import ExtractError, InvalidURLError
from readable_archive.extract import STOP, Extractor, ProcessMessage, ProcessStep
from readable_archive.extract.extractor import parse_html, render_body

PAGE = b"<html><head><title>T</title></head><body><p>Hello</p></body></html>"


def _html(text: str) -> Response:
    return Response(200, text=text, headers={"content-type": "text/html; charset=utf-8"})


class Recorder:
    """Processor recording the steps it sees."""

    def __init__(self) -> None:
        self.calls: list[tuple[ProcessStep, int, str]] = []

    async def __call__(self, m: ProcessMessage):
        self.calls.append((m.step, m.position, m.drop.url))
        return None

    @property
    def steps(self) -> list[ProcessStep]:
        return [c[0] for c in self.calls]


class TestHelpers:
    def test_parse_empty_document(self):
        """Test that an empty body gives an empty document."""
        doc = parse_html(b"")
        assert doc.find("body") is not None

    def test_render_body(self):
        """Test that the body wrapper is removed."""
        doc = parse_html(b"<html><body>text <p>para</p></body></html>")
        assert render_body(doc) == b"text <p>para</p>"


class TestExtractor:
    """Tests for Extractor."""

    def test_invalid_url(self):
        with pytest.raises(InvalidURLError):
            Extractor("ftp://example.com/file")

        with pytest.raises(InvalidURLError):
            Extractor("https:///path")

    @pytest.mark.asyncio
    async def test_step_order(self):
        """Test the lifecycle steps of one HTML Drop."""
        rec = Recorder()
        ex = Extractor("https://example.com/", PAGE, processors=[rec])

        result = await ex.run()

        assert rec.steps == [
            ProcessStep.START,
            ProcessStep.BODY,
            ProcessStep.DOM,
            ProcessStep.FINISH,
            ProcessStep.POST_PROCESS,
        ]
        assert result.fatal is None
        assert result.html == b"<!-- page 1 -->\n<p>Hello</p>\n"

    @pytest.mark.asyncio
    async def test_non_html_has_no_dom_step(self, mock_http):
        mock_http.get("https://example.com/file.txt").mock(
            return_value=Response(200, text="plain", headers={"content-type": "text/plain"})
        )
        rec = Recorder()

        async with httpx.AsyncClient() as client:
            ex = Extractor("https://example.com/file.txt", client=client, processors=[rec])
            await ex.run()

        assert ProcessStep.DOM not in rec.steps
        assert ProcessStep.FINISH in rec.steps

    @pytest.mark.asyncio
    async def test_stop_ends_chain(self):
        """Test that STOP skips the next processors of the step only."""
        rec = Recorder()

        async def stopper(m: ProcessMessage):
            if m.step == ProcessStep.DOM:
                return STOP
            return None

        ex = Extractor("https://example.com/", PAGE, processors=[stopper, rec])
        await ex.run()

        assert ProcessStep.DOM not in rec.steps
        assert ProcessStep.FINISH in rec.steps

    @pytest.mark.asyncio
    async def test_dom_changes_are_rendered(self):
        async def edit(m: ProcessMessage):
            if m.step == ProcessStep.DOM:
                m.dom.find("body").find("p").text = "Changed"
            return None

        ex = Extractor("https://example.com/", PAGE, processors=[edit])
        result = await ex.run()

        assert b"<p>Changed</p>" in result.html
        assert b"<body>" not in result.html

    @pytest.mark.asyncio
    async def test_reset_content(self):
        """Test that a reset document leaves no content."""

        async def reset(m: ProcessMessage):
            if m.step == ProcessStep.DOM:
                m.reset_content()
            return None

        ex = Extractor("https://example.com/", PAGE, processors=[reset])
        result = await ex.run()

        assert result.html == b""
        assert ex.drop.body == b""

    @pytest.mark.asyncio
    async def test_values_shared_between_steps(self):
        seen = []

        async def setter(m: ProcessMessage):
            if m.step == ProcessStep.START:
                m.set_value("key", "value")
            elif m.step == ProcessStep.FINISH:
                seen.append(m.value("key"))
                m.set_value("key", None)
                seen.append(m.value("key", "default"))
            return None

        ex = Extractor("https://example.com/", PAGE, processors=[setter])
        await ex.run()

        assert seen == ["value", "default"]

    @pytest.mark.asyncio
    async def test_cancel_aborts(self):
        """Test that a cancel stops the run and clears the content."""
        rec = Recorder()

        async def canceler(m: ProcessMessage):
            if m.step == ProcessStep.BODY:
                m.cancel("not allowed")
            return None

        ex = Extractor("https://example.com/", PAGE, processors=[canceler, rec])
        result = await ex.run()

        assert result.canceled is True
        assert result.html == b""
        assert ex.drop.body == b""
        assert rec.steps == [ProcessStep.START]
        assert any("operation_canceled" in e and "not allowed" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_fetch_error_is_fatal(self, mock_http):
        mock_http.get("https://example.com/missing").mock(return_value=Response(404))
        rec = Recorder()

        async with httpx.AsyncClient() as client:
            ex = Extractor("https://example.com/missing", client=client, processors=[rec])
            result = await ex.run()

        assert result.fatal is not None
        assert "404" in result.fatal
        assert rec.steps == [ProcessStep.START]
        assert any(e.startswith("cannot_load_resource") for e in result.errors)

    @pytest.mark.asyncio
    async def test_next_page(self, mock_http):
        """Test that a Drop appended at FINISH is processed after the current one."""
        mock_http.get("https://example.com/p1").mock(return_value=_html("<p>one</p>"))
        mock_http.get("https://example.com/p2").mock(return_value=_html("<p>two</p>"))
        rec = Recorder()

        async def paginate(m: ProcessMessage):
            if m.step == ProcessStep.FINISH and m.drop.url.endswith("/p1"):
                m.extractor.add_drop("https://example.com/p2")
            return None

        async with httpx.AsyncClient() as client:
            ex = Extractor("https://example.com/p1", client=client, processors=[paginate, rec])
            result = await ex.run()

        assert len(ex.drops) == 2
        assert result.html == b"<!-- page 1 -->\n<p>one</p>\n<!-- page 2 -->\n<p>two</p>\n"
        assert [c[1] for c in rec.calls if c[0] == ProcessStep.START] == [0, 1]

    @pytest.mark.asyncio
    async def test_visited_drop_is_skipped(self, mock_http):
        route = mock_http.get("https://example.com/p1").mock(return_value=_html("<p>one</p>"))

        async def loop(m: ProcessMessage):
            if m.step == ProcessStep.FINISH:
                m.extractor.add_drop("https://example.com/p1#again")
            return None

        async with httpx.AsyncClient() as client:
            ex = Extractor("https://example.com/p1", client=client, processors=[loop])
            result = await ex.run()

        assert route.call_count == 1
        assert result.html.count(b"<!-- page") == 1

    @pytest.mark.asyncio
    async def test_replace_drop_restarts(self, mock_http):
        """Test the restart on a replaced Drop."""
        mock_http.get("https://example.com/p1").mock(return_value=_html("<p>page 1</p>"))
        mock_http.get("https://example.com/single").mock(return_value=_html("<p>full</p>"))
        rec = Recorder()

        async def single_page(m: ProcessMessage):
            if m.step == ProcessStep.DOM and m.drop.url.endswith("/p1"):
                m.extractor.replace_drop("https://example.com/single")
                m.position = -1
                return STOP
            return None

        async with httpx.AsyncClient() as client:
            ex = Extractor("https://example.com/p1", client=client, processors=[single_page, rec])
            result = await ex.run()

        assert result.html == b"<!-- page 1 -->\n<p>full</p>\n"
        assert (ProcessStep.FINISH, 0, "https://example.com/p1") not in rec.calls
        assert (ProcessStep.FINISH, 0, "https://example.com/single") in rec.calls

    def test_replace_drop_with_several_drops(self):
        ex = Extractor("https://example.com/p1")
        ex.add_drop("https://example.com/p2")
        with pytest.raises(ExtractError):
            ex.replace_drop("https://example.com/single")

    @pytest.mark.asyncio
    async def test_log_capture(self):
        """Test that processor log entries are recorded."""

        async def logger(m: ProcessMessage):
            if m.step == ProcessStep.START:
                m.log.info("hello", key="value")
                m.log.error("broken", detail="x")
            return None

        ex = Extractor("https://example.com/", PAGE, processors=[logger])
        result = await ex.run()

        assert '[INFO] hello key="value"' in result.logs
        assert '[ERRO] broken detail="x"' in result.logs
        assert 'broken detail="x"' in result.errors
        assert not any("hello" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_own_client_closed(self):
        """Test that a client created by the extractor is closed after the run."""
        ex = Extractor("https://example.com/", PAGE)
        await ex.run()
        assert ex.client.is_closed

    @pytest.mark.asyncio
    async def test_given_client_left_open(self):
        async with httpx.AsyncClient() as client:
            ex = Extractor("https://example.com/", PAGE, client=client)
            await ex.run()
            assert not client.is_closed
