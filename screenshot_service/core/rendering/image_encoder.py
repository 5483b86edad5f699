"""
Image Encoder
=============

Pillow helpers applied to raw browser captures. Chromium only encodes PNG
and JPEG screenshots, so WebP output is produced by transcoding a lossless
PNG capture.
"""

from typing import Optional, Tuple
import io

from PIL import Image

from screenshot_service.config.logging import get_logger
from screenshot_service.core.errors import CaptureFailure
from screenshot_service.models.schemas import ImageFormat

logger = get_logger(__name__)

DEFAULT_WEBP_QUALITY = 80


def transcode(png_bytes: bytes, target: ImageFormat, quality: Optional[int] = None) -> bytes:
    """
    Re-encode a PNG capture into ``target``.

    Args:
        png_bytes: PNG screenshot bytes
        target: Desired output format
        quality: Encoder quality for lossy formats

    Returns:
        Encoded image bytes

    Raises:
        CaptureFailure: If Pillow cannot decode or encode the image
    """
    if target is ImageFormat.PNG:
        return png_bytes

    try:
        image = Image.open(io.BytesIO(png_bytes))
        output = io.BytesIO()
        if target is ImageFormat.WEBP:
            image.save(output, format="WEBP", quality=quality or DEFAULT_WEBP_QUALITY, method=4)
        else:
            if image.mode != "RGB":
                image = image.convert("RGB")
            image.save(output, format="JPEG", quality=quality or 90, optimize=True)
        encoded = output.getvalue()
    except (OSError, ValueError) as e:
        raise CaptureFailure(f"Image encoding failed: {e}") from e

    logger.debug(
        "Capture transcoded",
        target=target.value,
        original_size=len(png_bytes),
        encoded_size=len(encoded),
    )
    return encoded


def image_size(data: bytes) -> Tuple[int, int]:
    """Return ``(width, height)`` of encoded image bytes."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (OSError, ValueError) as e:
        raise CaptureFailure(f"Captured image is unreadable: {e}") from e
