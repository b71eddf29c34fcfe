"""Main picture of a document."""

from readable_archive.exceptions import FetchError, ImageError
from readable_archive.extract.extractor import ProcessMessage, ProcessStep, Processor, Signal
from readable_archive.extract.picture import Picture

PICTURE_SIZE = 800
PHOTO_SIZE = 1280
THUMBNAIL_SIZE = 380


def picture_loader(
    picture_size: int = PICTURE_SIZE,
    photo_size: int = PHOTO_SIZE,
    thumbnail_size: int = THUMBNAIL_SIZE,
) -> Processor:
    """
    Return a processor loading the document picture and its thumbnail.

    The picture is fitted into ``picture_size``, or ``photo_size`` when
    the document is a photo. It runs after extract_meta, extract_oembed and
    set_drop_properties.
    """

    async def extract_picture(m: ProcessMessage) -> Signal | None:
        if m.step != ProcessStep.DOM or m.position > 0:
            return None

        d = m.extractor.drop
        href = d.meta.lookup_get(
            "x.picture_url", "graph.image", "twitter.image", "oembed.thumbnail_url"
        )
        if not href:
            return None

        size = photo_size if d.document_type == "photo" else picture_size

        m.log.debug("loading_picture", href=href)
        picture = Picture(href, d.url)
        try:
            await picture.load(m.extractor.client, size)
        except (FetchError, ImageError) as e:
            m.log.warning("cannot_load_picture", url=href, error=str(e))
            return None

        d.pictures["image"] = picture
        m.log.debug("picture_loaded", size=list(picture.size))

        try:
            d.pictures["thumbnail"] = await picture.copy(thumbnail_size)
        except ImageError as e:
            m.log.warning("cannot_create_thumbnail", error=str(e))

        return None

    return extract_picture


extract_picture = picture_loader()
