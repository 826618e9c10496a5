import base64
import binascii
import io
import logging
from typing import Dict, Any

from PIL import Image, ImageOps, UnidentifiedImageError

from mealvision.exceptions import InvalidImageError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}

# Browsers and some clients report JPEG as image/jpg
_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}


def normalize_mime_type(mime_type: str) -> str:
    """Returns the canonical MIME type or raises InvalidImageError."""
    mime = (mime_type or "").split(";")[0].strip().lower()
    mime = _MIME_ALIASES.get(mime, mime)
    if mime not in ALLOWED_MIME_TYPES:
        allowed = ", ".join(sorted(ALLOWED_MIME_TYPES))
        raise InvalidImageError(f"Unsupported image type '{mime_type}'. Allowed: {allowed}")
    return mime


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_base64_image(payload: str) -> bytes:
    """
    Decodes an image sent as base64 text. A leading data-URL header
    ("data:image/png;base64,") is accepted and stripped.
    """
    if "," in payload and payload.lstrip().startswith("data:"):
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"imageData is not valid base64: {e}")


def image_content_part(data: bytes, mime_type: str) -> Dict[str, Any]:
    """LangChain multimodal content block carrying an inline image."""
    return {
        "type": "image_url",
        "image_url": {"url": f"data:{mime_type};base64,{encode_base64(data)}"},
    }


def reencode_image(data: bytes, max_dimension: int, quality: int) -> bytes:
    """
    Re-encodes an image as JPEG so that neither side exceeds max_dimension,
    keeping the aspect ratio. EXIF orientation is applied and transparency is
    flattened onto white. Images already within bounds are only re-compressed.
    """
    if max_dimension <= 0:
        raise ValueError("max_dimension must be positive")
    if not 1 <= quality <= 95:
        raise ValueError("quality must be between 1 and 95")

    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        img = ImageOps.exif_transpose(img)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
        raise InvalidImageError(f"Could not decode image: {e}")

    if img.mode in ("RGBA", "LA", "P"):
        if img.mode == "P":
            img = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        img = background
    elif img.mode != "RGB":
        img = img.convert("RGB")

    if img.width > max_dimension or img.height > max_dimension:
        img.thumbnail((max_dimension, max_dimension))

    output = io.BytesIO()
    img.save(output, format="JPEG", quality=quality, optimize=True)
    result = output.getvalue()
    logger.debug(f"[Image] Re-encoded {len(data)} -> {len(result)} bytes ({img.width}x{img.height})")
    return result
