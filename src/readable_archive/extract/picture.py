"""Remote pictures attached to a Drop (main image, thumbnail, icon)."""

from urllib.parse import urljoin

import httpx

from readable_archive.exceptions import DestinationBlockedError, FetchError, ValidationError
from readable_archive.img import fit, to_format, transcode_async


class Picture:
    """A remote picture, fitted into a square and re-encoded."""

    def __init__(self, href: str, base: str | None = None) -> None:
        self.href = urljoin(base, href) if base else href
        self.type = ""
        self.size: tuple[int, int] = (0, 0)
        self._data = b""

    def __repr__(self) -> str:
        return f"Picture(href={self.href!r}, type={self.type!r}, size={self.size!r})"

    async def load(self, client: httpx.AsyncClient, size: int, format: str = "") -> None:
        """
        Fetch the picture and fit it into a ``size`` square.

        Args:
            client: HTTP client
            size: Maximum width and height
            format: Output format, empty to keep the original one (or JPEG)

        Raises:
            FetchError: When the picture can't be retrieved
            ImageError: When the data is not a usable image
        """
        if not self.href:
            raise FetchError(self.href, "No image URL")

        try:
            rsp = await client.get(self.href, follow_redirects=True)
        except httpx.HTTPError as e:
            raise FetchError(self.href, str(e) or type(e).__name__) from e
        except (DestinationBlockedError, ValidationError) as e:
            raise FetchError(self.href, str(e)) from e

        if not rsp.is_success:
            raise FetchError(self.href, rsp.reason_phrase, status_code=rsp.status_code)

        await self._transcode(rsp.content, size, format)

    async def copy(self, size: int, format: str = "") -> "Picture":
        """Return a resized copy of the picture."""
        res = Picture(self.href)
        await res._transcode(self._data, size, format)
        return res

    async def _transcode(self, data: bytes, size: int, format: str) -> None:
        filters = [fit(size, size)]
        if format:
            filters.append(to_format(format))

        self._data, im = await transcode_async(data, *filters)
        self.size = im.size
        self.type = im.content_type

    def name(self, base: str) -> str:
        """Return ``base`` with the extension of the picture type."""
        return f"{base}.{self.type.removeprefix('image/')}"

    @property
    def data(self) -> bytes:
        return self._data
