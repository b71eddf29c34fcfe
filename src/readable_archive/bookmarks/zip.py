"""Bookmark archive container.

Layout of an archive::

    article.html        rewritten content (deflated)
    _resources/         archived resources (stored)
    image.<ext>         main picture
    thumbnail.<ext>     thumbnail picture
    icon.<ext>          site icon
    log                 extraction log
    props.json          Drop properties
"""

import json
import time
import zipfile
from pathlib import Path

import structlog

from readable_archive.archiver import Archiver
from readable_archive.bookmarks.archive import RESOURCE_DIR, url_filename
from readable_archive.bookmarks.models import Bookmark, BookmarkFile
from readable_archive.extract.extractor import Extractor

logger = structlog.get_logger(__name__)

ARTICLE_NAME = "article.html"


class Zipper:
    """Zip file writer. Stored entries are used for already compressed data."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self._zf = zipfile.ZipFile(path, "w")

    def __enter__(self) -> "Zipper":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @staticmethod
    def _info(name: str, compress_type: int) -> zipfile.ZipInfo:
        info = zipfile.ZipInfo(name, date_time=time.localtime()[:6])
        info.compress_type = compress_type
        return info

    def add_file(self, name: str, data: bytes) -> None:
        self._zf.writestr(self._info(name, zipfile.ZIP_STORED), data)

    def add_compressed_file(self, name: str, data: bytes) -> None:
        self._zf.writestr(self._info(name, zipfile.ZIP_DEFLATED), data, compresslevel=1)

    def add_directory(self, name: str) -> None:
        if not name.endswith("/"):
            name += "/"
        self._zf.writestr(self._info(name, zipfile.ZIP_STORED), b"")

    def close(self) -> None:
        self._zf.close()


def create_zip_file(
    bookmark: Bookmark,
    ex: Extractor,
    arc: Archiver | None,
    storage: Path,
) -> None:
    """
    Write the bookmark archive and set its manifest on the bookmark.

    Raises:
        OSError: When the archive can't be written
    """
    file_url = bookmark.base_file_url()
    bookmark.file_path = file_url
    bookmark.files = {}

    drop = ex.drop
    with Zipper(storage / f"{file_url}.zip") as z:
        for key, picture in drop.pictures.items():
            if not picture.data:
                continue
            name = picture.name(key)
            z.add_file(name, picture.data)
            bookmark.files[key] = BookmarkFile(name=name, type=picture.type, size=picture.size)

        if arc is not None and arc.result:
            z.add_compressed_file(ARTICLE_NAME, arc.result)
            bookmark.files["article"] = BookmarkFile(name=ARTICLE_NAME, type="text/html")

        if arc is not None and arc.cache.size:
            z.add_directory(RESOURCE_DIR)
            for uri, asset in arc.cache.items():
                z.add_file(f"{RESOURCE_DIR}/{url_filename(uri, asset.content_type)}", asset.data)

        z.add_compressed_file("log", "\n".join(ex.logs).encode("utf-8"))
        bookmark.files["log"] = BookmarkFile(name="log", type="text/plain")

        props = json.dumps(drop.to_dict(), indent=2, ensure_ascii=False)
        z.add_compressed_file("props.json", props.encode("utf-8"))
        bookmark.files["props"] = BookmarkFile(name="props.json", type="application/json")

    logger.debug("archive_written", uid=bookmark.uid, path=file_url, files=len(bookmark.files))


def read_article(bookmark: Bookmark, storage: Path, base_url: str) -> str:
    """
    Return the archived article, with its resource references pointing
    to ``base_url``.

    Raises:
        FileNotFoundError: When the bookmark has no archived article
    """
    article = bookmark.files.get("article")
    filename = bookmark.get_file_path(storage)
    if article is None or filename is None:
        raise FileNotFoundError(f"no article for bookmark {bookmark.uid}")

    content = ""
    resources = []
    with zipfile.ZipFile(filename) as zf:
        for entry in zf.infolist():
            if entry.is_dir():
                continue
            if entry.filename.startswith(f"{RESOURCE_DIR}/"):
                resources.append(entry.filename)
            elif entry.filename == article.name:
                content = zf.read(entry).decode("utf-8")

    base_url = base_url.rstrip("/")
    for name in resources:
        content = content.replace(f"./{name}", f"{base_url}/{name}")
    return content
