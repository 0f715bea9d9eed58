"""Re-encode fetched product images before they go to the blob store.

Raster images are shrunk to fit inside the configured box (never enlarged)
and written as WebP. SVG and animated GIF are stored as-is.
"""

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from catalog_backend.core.config import settings
from catalog_backend.core.errors import ImageFetchError

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/avif": "avif",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}


@dataclass(frozen=True)
class OptimizedImage:
    data: bytes
    content_type: str
    extension: str


def extension_for(content_type: str) -> str:
    base = (content_type or "").split(";")[0].strip().lower()
    return _EXTENSIONS.get(base, "jpg")


def _passthrough(data: bytes, content_type: str) -> OptimizedImage:
    base = content_type.split(";")[0].strip().lower()
    return OptimizedImage(data=data, content_type=base, extension=extension_for(base))


def optimize_image(
    data: bytes,
    content_type: str,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
    quality: Optional[int] = None,
) -> OptimizedImage:
    max_width = max_width or settings.image_max_width
    max_height = max_height or settings.image_max_height
    quality = quality or settings.image_webp_quality

    if "svg" in content_type.lower():
        return _passthrough(data, content_type)

    try:
        with Image.open(BytesIO(data)) as img:
            if img.format == "GIF" and getattr(img, "is_animated", False):
                return _passthrough(data, content_type)

            img.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)
            if img.mode not in ("RGB", "RGBA"):
                has_alpha = img.mode in ("LA", "PA") or "transparency" in img.info
                img = img.convert("RGBA" if has_alpha else "RGB")

            out = BytesIO()
            img.save(out, format="WEBP", quality=quality)
    except Image.DecompressionBombError as e:
        raise ImageFetchError(f"Image too large to process: {e}")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning(f"Image re-encode failed, storing original bytes: {e}")
        return OptimizedImage(data=data, content_type="image/jpeg", extension="jpg")

    webp = out.getvalue()
    if len(webp) >= len(data):
        return _passthrough(data, content_type)
    return OptimizedImage(data=webp, content_type="image/webp", extension="webp")
