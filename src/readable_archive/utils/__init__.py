"""Utility modules for Readable Archive."""

from readable_archive.utils.cache import Asset, AssetCache, url_hash

__all__ = [
    "Asset",
    "AssetCache",
    "url_hash",
]
