"""Image transcoding."""

from readable_archive.img.image import (
    MAX_CONCURRENT_TRANSCODE,
    MAX_PIXELS,
    Image,
    ImageCompression,
    ImageFilter,
    compression,
    fit,
    grayscale,
    quality,
    to_format,
    transcode,
    transcode_async,
)

__all__ = [
    "MAX_CONCURRENT_TRANSCODE",
    "MAX_PIXELS",
    "Image",
    "ImageCompression",
    "ImageFilter",
    "compression",
    "fit",
    "grayscale",
    "quality",
    "to_format",
    "transcode",
    "transcode_async",
]
