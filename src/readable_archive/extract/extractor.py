"""Extraction pipeline.

An :class:`Extractor` fetches one URL, and possibly more pages discovered
on the way, and runs a list of processors at each step of the life of
every :class:`Drop`:

- ``START``: before anything is fetched
- ``BODY``: after the raw body was received
- ``DOM``: after the HTML document was parsed (HTML only)
- ``FINISH``: at the end of the Drop processing

Once every Drop was processed, ``POST_PROCESS`` runs once on the combined
result.

A processor is an async callable receiving a :class:`ProcessMessage`.
It returns ``None`` to hand over to the next processor, or :data:`STOP`
to end the chain for the current step.
"""

import enum
import html
from collections.abc import Awaitable, Callable, Iterable
from typing import Any
from urllib.parse import urlsplit

import httpx
import lxml.etree
import lxml.html
import structlog
from pydantic import BaseModel, Field

from readable_archive.exceptions import (
    DocumentParseError,
    ExtractError,
    FetchError,
    InvalidURLError,
)
from readable_archive.extract.drop import Drop, URLList, normalize_url
from readable_archive.extract.http import new_client
from readable_archive.extract.logger import new_extract_logger

logger = structlog.get_logger(__name__)


class ProcessStep(enum.IntEnum):
    """Steps of a Drop processing."""

    START = 1
    BODY = 2
    DOM = 3
    FINISH = 4
    POST_PROCESS = 5


class Signal(enum.Enum):
    STOP = "stop"


STOP = Signal.STOP

Processor = Callable[["ProcessMessage"], Awaitable[Signal | None]]


class ProcessMessage:
    """The context given to processors during one step."""

    def __init__(
        self,
        extractor: "Extractor",
        step: ProcessStep,
        position: int,
        values: dict[str, Any],
        log: Any,
    ) -> None:
        self.extractor = extractor
        self.step = step
        self.position = position
        self.dom: lxml.html.HtmlElement | None = None
        self.log = log
        self._values = values
        self._canceled = False

    @property
    def drop(self) -> Drop:
        """The Drop being processed."""
        return self.extractor.drops[self.position]

    @property
    def canceled(self) -> bool:
        return self._canceled

    def value(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def set_value(self, name: str, value: Any) -> None:
        if value is None:
            self._values.pop(name, None)
        else:
            self._values[name] = value

    def reset_content(self) -> None:
        """Drop the document and the current Drop body."""
        self.dom = None
        self.drop.body = b""

    def cancel(self, reason: str) -> None:
        """Stop the whole extraction."""
        self.log.error("operation_canceled", error=reason)
        self._canceled = True


class ExtractResult(BaseModel):
    """Output of an extraction run."""

    html: bytes = Field(default=b"", description="Combined HTML of every Drop")
    text: str = Field(default="", description="Plain text of the combined HTML")
    errors: list[str] = Field(default_factory=list, description="Non fatal errors")
    logs: list[str] = Field(default_factory=list, description="Extraction log")
    fatal: str | None = Field(default=None, description="Error that stopped the run")
    canceled: bool = Field(default=False, description="Whether a processor canceled the run")


def validate_url(url: str) -> str:
    """
    Check that a URL can be extracted.

    Raises:
        InvalidURLError: When the URL is not an absolute http(s) URL
    """
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        raise InvalidURLError(url, "Unsupported URL scheme")
    if not parts.hostname:
        raise InvalidURLError(url, "Missing host")
    return normalize_url(url)


def parse_html(body: bytes) -> lxml.html.HtmlElement:
    """
    Parse an UTF-8 HTML document.

    Raises:
        DocumentParseError: When the document can't be parsed
    """
    if not body.strip():
        body = b"<html><body></body></html>"

    parser = lxml.html.HTMLParser(encoding="utf-8")
    try:
        return lxml.html.document_fromstring(body, parser=parser)
    except (lxml.etree.ParserError, ValueError) as e:
        raise DocumentParseError("", str(e)) from e


def render_body(doc: lxml.html.HtmlElement) -> bytes:
    """Render the children of the document ``<body>``, without the wrapper."""
    body = doc.find("body")
    if body is None:
        return b""

    parts = []
    if body.text:
        parts.append(html.escape(body.text, quote=False))
    for child in body:
        parts.append(lxml.html.tostring(child, encoding="unicode", method="html"))

    return "".join(parts).strip().encode("utf-8")


class Extractor:
    """Extraction of one URL."""

    def __init__(
        self,
        url: str,
        html: bytes = b"",
        *,
        client: httpx.AsyncClient | None = None,
        processors: Iterable[Processor] = (),
        log_level: str = "info",
        **log_context: Any,
    ) -> None:
        self.url = validate_url(url)
        self.html = b""
        self.text = ""
        self.visited = URLList()
        self.logs: list[str] = []
        self.errors: list[str] = []
        self.fatal: ExtractError | None = None
        self.canceled = False

        # A client created here is closed at the end of run()
        self._own_client = client is None
        self.client = client or new_client()
        self.processors: list[Processor] = list(processors)
        self.log = new_extract_logger(self.logs, self.errors, log_level, **log_context)

        self._drops = [Drop(self.url)]
        if html:
            self._drops[0].body = html

        # Values shared by the messages of every step
        self._values: dict[str, Any] = {}

    @property
    def drops(self) -> list[Drop]:
        return self._drops

    @property
    def drop(self) -> Drop | None:
        """The first Drop, when there is one."""
        return self._drops[0] if self._drops else None

    def add_drop(self, url: str) -> None:
        """Append a new Drop, visited after the current one."""
        self._drops.append(Drop(url))

    def replace_drop(self, url: str) -> None:
        """
        Replace the main Drop with a new one.

        Raises:
            ExtractError: When more than one Drop was already collected
        """
        if len(self._drops) != 1:
            raise ExtractError(url, "cannot replace a drop when there are more than one")
        self._drops[0] = Drop(url)

    def new_process_message(self, step: ProcessStep, position: int) -> ProcessMessage:
        return ProcessMessage(self, step, position, self._values, self.log)

    async def run_processors(self, m: ProcessMessage) -> None:
        """Call every processor in order, until one stops the chain."""
        for processor in self.processors:
            if m.canceled:
                return
            if await processor(m) is STOP:
                return

    async def _run_step(self, step: ProcessStep, position: int, dom=None) -> ProcessMessage:
        m = self.new_process_message(step, position)
        m.dom = dom
        self.log.debug("step", step=step.name.lower())
        await self.run_processors(m)
        return m

    def _abort(self, m: ProcessMessage) -> ExtractResult:
        if 0 <= m.position < len(self._drops):
            m.reset_content()
        self.canceled = True
        self.html = b""
        self.text = ""
        return self.result()

    def _fail(self, error: ExtractError) -> ExtractResult:
        self.log.error("cannot_load_resource", error=str(error))
        self.fatal = error
        return self.result()

    async def run(self) -> ExtractResult:
        """
        Run the extraction.

        Each Drop is processed at most once per URL (fragments excluded).
        The run stops at the first canceled step, and at the first Drop
        that can't be fetched or parsed.
        """
        try:
            return await self._run()
        finally:
            if self._own_client:
                await self.client.aclose()

    async def _run(self) -> ExtractResult:
        i = 0
        while i < len(self._drops):
            d = self._drops[i]

            if self.visited.is_present(d.url):
                i += 1
                continue

            self.visited.add(d.url)
            self.log.info("start", idx=i, url=d.url)

            m = await self._run_step(ProcessStep.START, i)
            if m.canceled:
                return self._abort(m)
            if m.position != i:
                i = m.position + 1
                continue

            try:
                await d.load(self.client)
            except FetchError as e:
                return self._fail(e)
            self.visited.add(d.url)

            m = await self._run_step(ProcessStep.BODY, i)
            if m.canceled:
                return self._abort(m)
            if m.position != i:
                i = m.position + 1
                continue

            if d.is_html():
                try:
                    doc = parse_html(d.body)
                except DocumentParseError as e:
                    return self._fail(DocumentParseError(d.url, e.message))

                m = await self._run_step(ProcessStep.DOM, i, dom=doc)
                if m.canceled:
                    return self._abort(m)
                if m.position != i:
                    i = m.position + 1
                    continue

                if m.dom is not None:
                    d.body = render_body(m.dom)
                m.dom = None

            m = await self._run_step(ProcessStep.FINISH, i)
            if m.canceled:
                return self._abort(m)

            # A processor can move the position in the loop
            i = m.position + 1

        self.set_final_html()
        await self._run_step(ProcessStep.POST_PROCESS, 0)
        logger.debug("extraction_finished", url=self.url, drops=len(self._drops))
        return self.result()

    def set_final_html(self) -> None:
        parts = []
        for i, d in enumerate(self._drops):
            if not d.body:
                continue
            parts.append(f"<!-- page {i + 1} -->\n".encode())
            parts.append(d.body)
            parts.append(b"\n")
        self.html = b"".join(parts)

    def result(self) -> ExtractResult:
        return ExtractResult(
            html=self.html,
            text=self.text,
            errors=list(self.errors),
            logs=list(self.logs),
            fatal=str(self.fatal) if self.fatal else None,
            canceled=self.canceled,
        )
