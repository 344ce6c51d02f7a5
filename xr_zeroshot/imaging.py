"""
Image helpers for building request inputs.

Usage:
    from xr_zeroshot.imaging import encode_jpeg, load_image

    image = encode_jpeg(frame)            # PIL.Image or numpy HxWxC array
    image = load_image("/path/to/photo.png")
"""

import io
from pathlib import Path

import numpy as np
from PIL import Image

from .core.errors import ConfigurationError
from .models import ImageBuffer

DEFAULT_JPEG_QUALITY = 75


def _to_pil(image: Image.Image | np.ndarray) -> Image.Image:
    if isinstance(image, np.ndarray):
        if image.dtype != np.uint8:
            image = np.clip(image, 0, 255).astype(np.uint8)
        return Image.fromarray(image)
    return image


def encode_jpeg(
    image: Image.Image | np.ndarray, quality: int = DEFAULT_JPEG_QUALITY
) -> ImageBuffer:
    """Encode a frame as JPEG.

    Raises:
        ConfigurationError: If the image is missing or has zero width/height
    """
    if image is None:
        raise ConfigurationError("Source image is missing")
    if isinstance(image, np.ndarray) and (image.ndim < 2 or 0 in image.shape[:2]):
        raise ConfigurationError(
            f"Image has invalid dimensions {image.shape}. Is the camera started?"
        )

    pil_image = _to_pil(image)
    width, height = pil_image.size
    if width == 0 or height == 0:
        raise ConfigurationError(
            f"Image has invalid dimensions ({width}x{height}). Is the camera started?"
        )

    if pil_image.mode != "RGB":
        pil_image = pil_image.convert("RGB")

    buffer = io.BytesIO()
    pil_image.save(buffer, format="JPEG", quality=quality)
    return ImageBuffer(data=buffer.getvalue(), width=width, height=height)


def decode_image_bytes(data: bytes, quality: int = DEFAULT_JPEG_QUALITY) -> ImageBuffer:
    """Re-encode arbitrary image bytes (PNG, WebP, ...) as JPEG."""
    if not data:
        raise ConfigurationError("Image data is empty")
    try:
        pil_image = Image.open(io.BytesIO(data))
        pil_image.load()
    except (OSError, Image.DecompressionBombError) as e:
        raise ConfigurationError(f"Could not decode image: {e}") from e
    return encode_jpeg(pil_image, quality=quality)


def load_image(path: str | Path, quality: int = DEFAULT_JPEG_QUALITY) -> ImageBuffer:
    """Read an image file and return it JPEG-encoded."""
    return decode_image_bytes(Path(path).read_bytes(), quality=quality)
