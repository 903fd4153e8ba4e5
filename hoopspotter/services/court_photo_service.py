"""
Court photo processing service.

Validates, resizes, and converts court submission photos to JPEG.
"""

import asyncio
import logging
from io import BytesIO

from fastapi import UploadFile
from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

MAX_FILE_SIZE_BYTES = 5 * 1024 * 1024
MAX_IMAGE_PIXELS = 25_000_000
MAX_DIMENSION = 1600
JPEG_QUALITY = 85
BACKGROUND_COLOR = (255, 255, 255)
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp"}

Image.MAX_IMAGE_PIXELS = MAX_IMAGE_PIXELS


def validate_photo_upload(content: bytes, content_type: str) -> None:
    """
    Check size and declared type of an uploaded photo.

    Raises:
        ValueError: If the file is empty, too large or of an unsupported type
    """
    if not content:
        raise ValueError("Please choose an image file")

    if len(content) > MAX_FILE_SIZE_BYTES:
        raise ValueError(
            f"Images must be {MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB or smaller"
        )

    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValueError(f"Invalid file type '{content_type}'. Allowed: JPEG, PNG, WebP")


def _decode(content: bytes) -> Image.Image:
    try:
        img = Image.open(BytesIO(content))
        img.load()
    except Image.DecompressionBombError:
        raise ValueError("Image dimensions too large")
    except Exception as e:
        raise ValueError(f"Invalid or corrupted image: {e}")
    return img


def _to_rgb(img: Image.Image) -> Image.Image:
    """Flatten transparency onto a white background; JPEG has no alpha."""
    if img.mode == "RGB":
        return img
    if img.mode in ("RGBA", "LA", "P"):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, BACKGROUND_COLOR)
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def normalize_photo(content: bytes) -> bytes:
    """
    Re-encode an uploaded photo as an upright JPEG no larger than
    MAX_DIMENSION on its longest side.

    Camera rotation stored in EXIF is applied to the pixels, since the
    metadata is dropped on re-encode.

    Raises:
        ValueError: If the bytes are not a decodable image
    """
    img = ImageOps.exif_transpose(_decode(content))
    img = _to_rgb(img)
    img.thumbnail((MAX_DIMENSION, MAX_DIMENSION), Image.LANCZOS)

    out = BytesIO()
    img.save(out, format="JPEG", quality=JPEG_QUALITY, optimize=True)
    return out.getvalue()


async def process_court_photo(file: UploadFile) -> bytes:
    """
    Validate and normalize an uploaded court photo.

    Args:
        file: Uploaded file from FastAPI

    Returns:
        Processed JPEG bytes

    Raises:
        ValueError: If file is invalid (empty, too large, wrong type, corrupted)
    """
    content = await file.read()
    validate_photo_upload(content, file.content_type or "")
    return await asyncio.to_thread(normalize_photo, content)
