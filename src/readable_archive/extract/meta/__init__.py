"""Metadata processors."""

from readable_archive.extract.meta.favicon import extract_favicon, favicon_list, favicon_loader
from readable_archive.extract.meta.meta import extract_meta, parse_meta, set_drop_properties
from readable_archive.extract.meta.oembed import extract_oembed, fetch_oembed
from readable_archive.extract.meta.picture import extract_picture, picture_loader

__all__ = [
    "extract_favicon",
    "extract_meta",
    "extract_oembed",
    "extract_picture",
    "favicon_list",
    "favicon_loader",
    "fetch_oembed",
    "parse_meta",
    "picture_loader",
    "set_drop_properties",
]
