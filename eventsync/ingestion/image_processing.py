"""Cover image rendition and perceptual hashing."""

import io
from typing import Tuple

import imagehash
from PIL import Image, ImageOps

from eventsync.ingestion.errors import ImageProcessingError

COVER_MAX_SIZE = (850, 850)
WEBP_QUALITY = 90


def resize_cover_image(image: Image.Image, max_size: Tuple[int, int] = COVER_MAX_SIZE) -> Image.Image:
    """Fit ``image`` inside ``max_size`` keeping its aspect ratio. Never enlarges."""
    image = ImageOps.exif_transpose(image)
    if image.mode != "RGB":
        image = image.convert("RGB")
    image.thumbnail(max_size, Image.Resampling.LANCZOS)
    return image


def process_cover_image(data: bytes) -> Tuple[bytes, str]:
    """
    Turn raw image bytes into the cached cover rendition.

    Args:
        data: Raw bytes as downloaded from the source

    Returns:
        Tuple of (WebP encoded rendition, perceptual hash as hex string)

    Raises:
        ImageProcessingError: if the bytes cannot be decoded or encoded
    """
    if not data:
        raise ImageProcessingError("empty image data")

    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            rendition = resize_cover_image(source)

        phash = str(imagehash.phash(rendition))

        buffer = io.BytesIO()
        rendition.save(buffer, format="WEBP", quality=WEBP_QUALITY)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageProcessingError(f"cannot process image: {e}") from e

    return buffer.getvalue(), phash
