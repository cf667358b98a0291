"""
Size normalization for uploaded problem images.
"""

from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from crowdsolve.errors import UploadFailed

logger = logging.getLogger(__name__)


def normalize_image(
    data: bytes, *, max_width: int, max_height: int, quality: int = 85
) -> tuple[bytes, str]:
    """
    Bound an image to ``max_width`` x ``max_height`` and re-encode it.

    The aspect ratio is preserved and smaller images are never enlarged.
    Images with transparency are kept as PNG, everything else becomes a
    progressive JPEG at ``quality``.

    Returns:
        A ``(bytes, content_type)`` tuple.

    Raises:
        UploadFailed: If ``data`` is not a decodable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            image = ImageOps.exif_transpose(source)
            image.thumbnail((max_width, max_height))

            output = io.BytesIO()
            if _has_alpha(image):
                image.save(output, format="PNG", optimize=True)
                content_type = "image/png"
            else:
                image.convert("RGB").save(
                    output,
                    format="JPEG",
                    quality=quality,
                    optimize=True,
                    progressive=True,
                )
                content_type = "image/jpeg"
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("Rejected image upload: %s", exc)
        raise UploadFailed("Unsupported image data", detail=str(exc)) from exc
    return output.getvalue(), content_type


def _has_alpha(image: Image.Image) -> bool:
    if image.mode in ("RGBA", "LA"):
        return True
    return image.mode == "P" and "transparency" in image.info
