"""Unit tests for image transcoding."""

import io
import threading
import time

import anyio
import pytest
from PIL import Image as PILImage

from readable_archive.exceptions import ImageTooBigError, UnsupportedImageError
from readable_archive.img import (
    MAX_CONCURRENT_TRANSCODE,
    Image,
    ImageCompression,
    compression,
    fit,
    grayscale,
    quality,
    to_format,
    transcode,
    transcode_async,
)


def _decode(data: bytes) -> PILImage.Image:
    return PILImage.open(io.BytesIO(data))


class TestLoad:
    """Tests for Image.load."""

    def test_load_png(self, png_bytes):
        """Test loading a PNG image."""
        im = Image.load(png_bytes)
        assert im.format == "png"
        assert im.size == (64, 48)
        assert im.width == 64
        assert im.height == 48

    def test_too_big(self, make_image):
        """Test that the pixel ceiling is checked."""
        with pytest.raises(ImageTooBigError) as exc:
            Image.load(make_image(100, 100), max_pixels=5000)
        assert exc.value.width == 100
        assert exc.value.max_pixels == 5000

    def test_decompression_bomb(self, monkeypatch, png_bytes):
        """Test that Pillow's own size limit is reported as a too big image."""
        monkeypatch.setattr(PILImage, "MAX_IMAGE_PIXELS", 100)
        with pytest.raises(ImageTooBigError) as exc:
            Image.load(png_bytes)
        assert exc.value.width is None
        assert exc.value.max_pixels == 30_000_000

    def test_not_an_image(self):
        """Test that unknown data is rejected."""
        with pytest.raises(UnsupportedImageError):
            Image.load(b"definitely not an image")

    def test_exif_orientation(self):
        """Test that the EXIF orientation is applied."""
        exif = PILImage.Exif()
        exif[0x0112] = 6
        buf = io.BytesIO()
        PILImage.new("RGB", (40, 20), (10, 10, 10)).save(buf, format="JPEG", exif=exif.tobytes())

        im = Image.load(buf.getvalue())
        assert im.size == (20, 40)


class TestFit:
    """Tests for the fit filter."""

    def test_landscape(self, make_image):
        im = Image.load(make_image(200, 100))
        im.pipeline(fit(50, 50))
        assert im.size == (50, 25)

    def test_portrait(self, make_image):
        im = Image.load(make_image(100, 200))
        im.pipeline(fit(50, 50))
        assert im.size == (25, 50)

    def test_never_upscales(self, make_image):
        """Test that a smaller image is left untouched."""
        im = Image.load(make_image(100, 50))
        im.pipeline(fit(400, 400))
        assert im.size == (100, 50)


class TestEncode:
    """Tests for Image.encode."""

    def test_png_kept(self, png_bytes):
        im = Image.load(png_bytes)
        data = im.encode()
        assert im.content_type == "image/png"
        assert _decode(data).format == "PNG"

    def test_gif_kept(self, make_image):
        im = Image.load(make_image(20, 20, "GIF"))
        data = im.encode()
        assert im.content_type == "image/gif"
        assert _decode(data).format == "GIF"

    def test_other_formats_become_jpeg(self, make_image):
        """Test the JPEG fallback."""
        im = Image.load(make_image(20, 20, "BMP"))
        data = im.encode()
        assert im.content_type == "image/jpeg"
        assert _decode(data).format == "JPEG"

    def test_to_format(self, make_image):
        """Test an explicit output format."""
        im = Image.load(make_image(20, 20, "JPEG"))
        im.pipeline(to_format("PNG"), compression(ImageCompression.BEST))
        data = im.encode()
        assert im.content_type == "image/png"
        assert _decode(data).format == "PNG"

    def test_cmyk_to_png(self):
        """Test that a CMYK image can be written as PNG."""
        buf = io.BytesIO()
        PILImage.new("CMYK", (20, 10), (0, 50, 100, 0)).save(buf, format="JPEG")

        im = Image.load(buf.getvalue())
        im.pipeline(to_format("png"))
        data = im.encode()

        assert im.content_type == "image/png"
        assert _decode(data).mode == "RGB"

    def test_write_error(self, monkeypatch, png_bytes):
        """Test that an encoder failure is an image error."""
        im = Image.load(png_bytes)

        def _fail(*args, **kwargs):
            raise OSError("cannot write image")

        monkeypatch.setattr(PILImage.Image, "save", _fail)
        with pytest.raises(UnsupportedImageError):
            im.encode()

    def test_quality_and_grayscale(self, make_image):
        im = Image.load(make_image(20, 20, "JPEG"))
        im.pipeline(quality(40), grayscale())
        assert im.quality == 40

        data = im.encode()
        assert _decode(data).mode == "L"


class TestTranscode:
    """Tests for transcode helpers."""

    def test_transcode(self, make_image):
        data, im = transcode(make_image(300, 150, "PNG"), fit(100, 100))
        assert im.size == (100, 50)
        assert _decode(data).size == (100, 50)

    def test_transcode_rejects_big_images(self, make_image):
        with pytest.raises(ImageTooBigError):
            transcode(make_image(100, 100), max_pixels=10)

    @pytest.mark.asyncio
    async def test_transcode_async_concurrent(self, make_image):
        """Test that no more than MAX_CONCURRENT_TRANSCODE images are processed at once."""
        lock = threading.Lock()
        running = 0
        peak = 0

        def _track(im: Image) -> None:
            nonlocal running, peak
            with lock:
                running += 1
                peak = max(peak, running)
            time.sleep(0.05)
            with lock:
                running -= 1

        sources = [make_image(50 + i * 10, 40) for i in range(6)]
        sizes: list[tuple[int, int]] = []

        async def _run(data: bytes) -> None:
            _, im = await transcode_async(data, _track, fit(30, 30))
            sizes.append(im.size)

        async with anyio.create_task_group() as tg:
            for data in sources:
                tg.start_soon(_run, data)

        assert len(sizes) == 6
        assert all(w == 30 for w, _ in sizes)
        assert 1 <= peak <= MAX_CONCURRENT_TRANSCODE
