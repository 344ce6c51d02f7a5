"""Tests for JPEG encoding helpers."""

import io

import numpy as np
import pytest
from PIL import Image

from xr_zeroshot.core.errors import ConfigurationError
from xr_zeroshot.imaging import decode_image_bytes, encode_jpeg, load_image


def _png_bytes(width=32, height=16, mode="RGBA") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color=(255, 0, 0, 255)[: len(mode)]).save(
        buffer, format="PNG"
    )
    return buffer.getvalue()


def test_encode_numpy_frame():
    frame = np.zeros((48, 64, 3), dtype=np.uint8)

    image = encode_jpeg(frame)

    assert image.data.startswith(b"\xff\xd8")
    assert (image.width, image.height) == (64, 48)
    assert image.content_type == "image/jpeg"


def test_encode_float_frame_is_clipped():
    frame = np.full((8, 8, 3), 300.0)

    image = encode_jpeg(frame)

    assert (image.width, image.height) == (8, 8)


def test_encode_pil_image_converts_mode():
    image = encode_jpeg(Image.new("L", (10, 20)))

    assert (image.width, image.height) == (10, 20)
    assert Image.open(io.BytesIO(image.data)).mode == "RGB"


def test_encode_missing_image():
    with pytest.raises(ConfigurationError):
        encode_jpeg(None)


def test_encode_zero_size_frame():
    with pytest.raises(ConfigurationError, match="invalid dimensions"):
        encode_jpeg(np.zeros((0, 0, 3), dtype=np.uint8))


def test_decode_png_bytes():
    image = decode_image_bytes(_png_bytes())

    assert image.data.startswith(b"\xff\xd8")
    assert (image.width, image.height) == (32, 16)


@pytest.mark.parametrize("data", [b"", b"not an image at all"])
def test_decode_unusable_bytes(data):
    with pytest.raises(ConfigurationError):
        decode_image_bytes(data)


def test_load_image(tmp_path):
    path = tmp_path / "frame.png"
    path.write_bytes(_png_bytes(width=5, height=7))

    image = load_image(path)

    assert (image.width, image.height) == (5, 7)
