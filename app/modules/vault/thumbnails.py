"""Best-effort thumbnails for raster uploads. PDFs and anything Pillow cannot decode get none."""

import io
import logging

from PIL import Image

from app.modules import storage

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = (300, 300)
THUMBNAIL_QUALITY = 80
RASTER_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png"}


def render_thumbnail(content: bytes) -> bytes:
    with Image.open(io.BytesIO(content)) as img:
        img = img.convert("RGB")
        img.thumbnail(THUMBNAIL_SIZE)
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=THUMBNAIL_QUALITY)
        return buffer.getvalue()


def thumbnail_path(storage_path: str) -> str:
    return f"{storage_path}_thumb.jpg"


async def generate_thumbnail(content: bytes, mime_type: str, storage_path: str) -> str | None:
    """Store a thumbnail beside the original and return its path, or None."""
    if mime_type not in RASTER_MIME_TYPES:
        return None
    try:
        data = render_thumbnail(content)
        path = thumbnail_path(storage_path)
        await storage.upload_file(data, path, "image/jpeg")
        return path
    except Exception as e:
        logger.warning("Thumbnail generation failed for %s: %s", storage_path, e)
        return None
