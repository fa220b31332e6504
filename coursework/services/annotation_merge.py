"""Composites a hand-drawn annotation raster onto a submitted document.

The raster is stretched over the whole first page of the document (full
bleed, not pixel mapped), so it should be captured at the rendered page's
aspect ratio. Later pages are copied untouched.
"""
import io
import logging

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from coursework.core.config import settings
from coursework.core.errors import MergeFailed

logger = logging.getLogger(__name__)

_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError)


def _open_raster(data: bytes) -> Image.Image:
    """Reads the raster header only; pixel data is decoded by the caller."""
    try:
        img = Image.open(io.BytesIO(data))
    except _DECODE_ERRORS as exc:
        raise MergeFailed("Annotation raster could not be decoded") from exc

    width, height = img.size
    if width * height > settings.MAX_ANNOTATION_PIXELS:
        img.close()
        raise MergeFailed(f"Annotation raster is too large ({width}x{height})")
    return img


def raster_is_blank(data: bytes | None) -> bool:
    """True for a missing/zero-length raster or one with no visible pixels.

    Undecodable or oversized bytes are *not* blank: they go through
    ``merge`` and are reported as a merge failure there.
    """
    if not data:
        return True
    try:
        with _open_raster(data) as img:
            img.load()
            alpha = img.convert("RGBA").getchannel("A")
    except MergeFailed:
        return False
    except _DECODE_ERRORS:
        return False
    return alpha.getbbox() is None


def _decode_raster(data: bytes) -> bytes:
    try:
        with _open_raster(data) as img:
            img.load()
            rgba = img.convert("RGBA")
    except _DECODE_ERRORS as exc:
        raise MergeFailed("Annotation raster could not be decoded") from exc

    buf = io.BytesIO()
    rgba.save(buf, format="PNG")
    return buf.getvalue()


class AnnotationMergeEngine:
    def merge(self, source: bytes, raster: bytes) -> bytes:
        overlay = _decode_raster(raster)

        try:
            doc = fitz.open(stream=source, filetype="pdf")
        except (RuntimeError, ValueError) as exc:
            raise MergeFailed("Source document could not be opened") from exc

        with doc:
            pages = doc.page_count
            if pages == 0:
                raise MergeFailed("Source document has no pages")

            first_page = doc[0]
            try:
                first_page.insert_image(
                    first_page.rect,
                    stream=overlay,
                    keep_proportion=False,
                    overlay=True,
                )
                merged = doc.tobytes(deflate=True)
            except (RuntimeError, ValueError) as exc:
                raise MergeFailed("Annotation could not be drawn onto the document") from exc

        logger.debug("merged annotation onto page 1 of %d", pages)
        return merged
