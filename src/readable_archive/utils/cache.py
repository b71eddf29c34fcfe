"""Asset cache shared by the concurrent fetches of one archive run."""

import hashlib
from collections.abc import Iterator
from dataclasses import dataclass

import anyio


@dataclass(frozen=True)
class Asset:
    """A resolved resource: its bytes and content type."""

    data: bytes
    content_type: str


class AssetCache:
    """
    Map of absolute URL to resolved :class:`Asset`.

    Entries are write-once: the first value stored for a URL wins and
    later writes are ignored, so readers never see an entry change.
    All access goes through one lock.
    """

    def __init__(self) -> None:
        self._cache: dict[str, Asset] = {}
        self._lock = anyio.Lock()

    async def get(self, url: str) -> Asset | None:
        """
        Get an asset from the cache.

        Args:
            url: Absolute URL of the asset

        Returns:
            Cached asset or None if not found
        """
        async with self._lock:
            return self._cache.get(url)

    async def set(self, url: str, asset: Asset) -> Asset:
        """
        Store an asset, unless one is already present for this URL.

        Returns:
            The asset that is now in the cache
        """
        async with self._lock:
            return self._cache.setdefault(url, asset)

    def __contains__(self, url: str) -> bool:
        return url in self._cache

    def items(self) -> Iterator[tuple[str, Asset]]:
        return iter(list(self._cache.items()))

    @property
    def size(self) -> int:
        """Return current cache size."""
        return len(self._cache)


def url_hash(url: str) -> str:
    """
    Generate a stable file name stem for a URL.

    Returns:
        SHA256 hash of the URL, truncated to 32 hex characters
    """
    return hashlib.sha256(url.encode()).hexdigest()[:32]
