"""Pillow based image transcoding.

An :class:`Image` wraps a decoded picture together with its encoding
options. Filters are plain callables applied in order by
:meth:`Image.pipeline`, so callers compose a transcoding recipe as a list::

    im = Image.load(data)
    im.pipeline(fit(800, 800), quality(75), to_format("png"))
    result = im.encode()

Transcoding is CPU and memory heavy. :func:`transcode` runs the whole
load/pipeline/encode sequence under a process-wide concurrency cap that is
independent from any download limit.
"""

import enum
import io
import threading
from collections.abc import Callable

import anyio.to_thread
import structlog
from PIL import Image as PILImage
from PIL import ImageOps, UnidentifiedImageError

from readable_archive.exceptions import ImageTooBigError, UnsupportedImageError

logger = structlog.get_logger(__name__)

MAX_PIXELS = 30_000_000
DEFAULT_QUALITY = 80
MAX_CONCURRENT_TRANSCODE = 2

# Shared by every thread of the process.
_transcode_slots = threading.BoundedSemaphore(MAX_CONCURRENT_TRANSCODE)


class ImageCompression(enum.IntEnum):
    """PNG compression level."""

    FAST = 1
    BEST = 9


ImageFilter = Callable[["Image"], None]


class Image:
    """A decoded image and its encoding options."""

    def __init__(self, im: PILImage.Image, format: str) -> None:
        self._im = im
        self.format = format
        self.encode_format = ""
        self.compression = ImageCompression.FAST
        self.quality = DEFAULT_QUALITY

    @classmethod
    def load(cls, data: bytes, max_pixels: int = MAX_PIXELS) -> "Image":
        """
        Decode image data.

        The pixel count is checked from the image header, before the
        pixels are decoded.

        Raises:
            ImageTooBigError: If the image is over ``max_pixels``
            UnsupportedImageError: If the data is not a known image format
        """
        try:
            im = PILImage.open(io.BytesIO(data))
        except PILImage.DecompressionBombError as e:
            # Pillow's own ceiling, checked before ours
            raise ImageTooBigError(None, None, max_pixels) from e
        except UnidentifiedImageError as e:
            raise UnsupportedImageError(str(e)) from e
        except (OSError, SyntaxError, ValueError) as e:
            raise UnsupportedImageError(str(e)) from e

        width, height = im.size
        if width * height > max_pixels:
            raise ImageTooBigError(width, height, max_pixels)

        format = (im.format or "").lower()
        try:
            im.load()
            im = ImageOps.exif_transpose(im)
        except (OSError, SyntaxError, ValueError) as e:
            raise UnsupportedImageError(str(e)) from e

        return cls(im, format)

    @property
    def width(self) -> int:
        return self._im.width

    @property
    def height(self) -> int:
        return self._im.height

    @property
    def size(self) -> tuple[int, int]:
        return self._im.size

    def pipeline(self, *filters: ImageFilter) -> None:
        """Apply every filter, in order."""
        for fn in filters:
            fn(self)

    def resize(self, width: int, height: int) -> None:
        self._im = self._im.resize((max(width, 1), max(height, 1)), PILImage.Resampling.LANCZOS)

    def fit(self, width: int, height: int) -> None:
        """
        Resize the image within the given bounds, keeping its aspect ratio.

        The image is never enlarged.
        """
        ow, oh = self.size
        if width > ow and height > oh:
            return

        src_ratio = ow / oh
        max_ratio = width / height

        if src_ratio > max_ratio:
            nw = width
            nh = int(nw / src_ratio)
        else:
            nh = height
            nw = int(nh * src_ratio)

        self.resize(nw, nh)

    def grayscale(self) -> None:
        self._im = ImageOps.grayscale(self._im)

    def encode(self) -> bytes:
        """
        Encode the image.

        The requested encoding format is used when set, otherwise the
        original format. GIF and PNG are kept, anything else becomes JPEG.
        ``format`` is updated with the format that was actually written.

        Raises:
            UnsupportedImageError: If the image can't be written in that format
        """
        fmt = self.encode_format or self.format
        buf = io.BytesIO()
        im = self._im

        try:
            if fmt == "gif":
                self.format = "gif"
                im.save(buf, format="GIF")
            elif fmt == "png":
                self.format = "png"
                if im.mode == "CMYK":
                    im = im.convert("RGB")
                im.save(
                    buf,
                    format="PNG",
                    compress_level=int(self.compression),
                    optimize=self.compression == ImageCompression.BEST,
                )
            else:
                self.format = "jpeg"
                if im.mode not in ("RGB", "L"):
                    im = im.convert("RGB")
                im.save(buf, format="JPEG", quality=self.quality)
        except (OSError, ValueError) as e:
            raise UnsupportedImageError(str(e)) from e

        return buf.getvalue()

    @property
    def content_type(self) -> str:
        return f"image/{self.format}"


# ─── Filters ─────────────────────────────────────────────────────


def fit(width: int, height: int) -> ImageFilter:
    def _fit(im: Image) -> None:
        im.fit(width, height)

    return _fit


def quality(value: int) -> ImageFilter:
    def _quality(im: Image) -> None:
        im.quality = value

    return _quality


def compression(level: ImageCompression) -> ImageFilter:
    def _compression(im: Image) -> None:
        im.compression = level

    return _compression


def to_format(name: str) -> ImageFilter:
    def _format(im: Image) -> None:
        im.encode_format = name.lower()

    return _format


def grayscale() -> ImageFilter:
    def _grayscale(im: Image) -> None:
        im.grayscale()

    return _grayscale


# ─── Transcoding ─────────────────────────────────────────────────


def transcode(
    data: bytes, *filters: ImageFilter, max_pixels: int = MAX_PIXELS
) -> tuple[bytes, Image]:
    """
    Load, transform and encode an image.

    At most ``MAX_CONCURRENT_TRANSCODE`` images are processed at once in
    the whole process; other callers block until a slot is free.

    Returns:
        The encoded bytes and the transformed image (for its format and size)
    """
    with _transcode_slots:
        im = Image.load(data, max_pixels=max_pixels)
        im.pipeline(*filters)
        result = im.encode()

    logger.debug("image_transcoded", format=im.format, width=im.width, height=im.height)
    return result, im


async def transcode_async(
    data: bytes, *filters: ImageFilter, max_pixels: int = MAX_PIXELS
) -> tuple[bytes, Image]:
    """Run :func:`transcode` in a worker thread."""
    return await anyio.to_thread.run_sync(
        lambda: transcode(data, *filters, max_pixels=max_pixels)
    )
