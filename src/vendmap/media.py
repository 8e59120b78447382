import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError
import pillow_heif

from .exceptions import NoImageDataError

# Register HEIF opener
pillow_heif.register_heif_opener()

logger = logging.getLogger(__name__)


def _load(image_bytes: bytes) -> Image.Image:
    if not image_bytes:
        raise NoImageDataError("empty payload")
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img = ImageOps.exif_transpose(img)
            return img.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise NoImageDataError(str(e)) from e


def encode_jpeg(image_bytes: bytes, quality: int = 80) -> bytes:
    """Re-encode any supported photo as an upright JPEG. Metadata is not carried over."""
    img = _load(image_bytes)
    out = io.BytesIO()
    img.save(out, format="JPEG", quality=quality)
    return out.getvalue()


def make_thumbnail(image_bytes: bytes, size: int = 200, quality: int = 70) -> bytes:
    """JPEG thumbnail fitting in a ``size`` x ``size`` box, aspect ratio kept."""
    img = _load(image_bytes)
    img.thumbnail((size, size))
    out = io.BytesIO()
    img.save(out, format="JPEG", quality=quality)
    logger.debug(f"Thumbnail {img.size[0]}x{img.size[1]} ({out.tell()} bytes)")
    return out.getvalue()
