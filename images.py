import io
import logging
from typing import NamedTuple

from PIL import Image, UnidentifiedImageError

from errors import ValidationError

logger = logging.getLogger(__name__)


class ConvertedImage(NamedTuple):
    data: bytes
    ext: str
    content_type: str


def convert_to_webp_or_jpeg(data: bytes, quality: int = 80) -> ConvertedImage:
    """Re-encode an uploaded image as WebP, or as JPEG if WebP encoding fails."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError("Uploaded file is not a readable image") from e

    out = io.BytesIO()
    try:
        image.save(out, format="WEBP", quality=quality)
        return ConvertedImage(out.getvalue(), "webp", "image/webp")
    except (OSError, KeyError, ValueError) as webp_error:
        logger.warning("webp encoding failed, falling back to jpeg: %s", webp_error)
        out = io.BytesIO()
        try:
            image.convert("RGB").save(out, format="JPEG", quality=quality)
        except (OSError, ValueError):
            raise webp_error
        return ConvertedImage(out.getvalue(), "jpg", "image/jpeg")
