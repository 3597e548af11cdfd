from __future__ import annotations

import io
from typing import Callable

import numpy as np
import pytest
from PIL import Image

from errors import DecodeError
from grayscale import gray_matrix


def _rgba_bytes(w: int, h: int) -> bytes:
    im = Image.new("RGBA", (w, h), color=(200, 10, 60, 128))
    out = io.BytesIO()
    im.save(out, format="PNG")
    return out.getvalue()


def test_shape_is_height_by_width_regardless_of_input() -> None:
    buf = _rgba_bytes(100, 40)
    assert gray_matrix(buf, 8, 8).shape == (8, 8)
    assert gray_matrix(buf, 9, 8).shape == (8, 9)
    assert gray_matrix(buf, 32, 32).shape == (32, 32)


def test_values_are_uint8_and_read_only(png: Callable[..., bytes]) -> None:
    arr = gray_matrix(png(128), 8, 8)
    assert arr.dtype == np.uint8
    assert not arr.flags.writeable
    assert np.all(np.abs(arr.astype(int) - 128) <= 1)


def test_deterministic(noise: Callable[..., bytes]) -> None:
    buf = noise(7)
    a = gray_matrix(buf, 32, 32)
    b = gray_matrix(buf, 32, 32)
    assert np.array_equal(a, b)


def test_same_size_is_identity() -> None:
    pattern = np.arange(72, dtype=np.uint8).reshape(8, 9) * 3
    out = io.BytesIO()
    Image.fromarray(pattern).save(out, format="PNG")
    assert np.array_equal(gray_matrix(out.getvalue(), 9, 8), pattern)


def test_jpeg_and_gif_decode(noise: Callable[..., bytes]) -> None:
    src = Image.open(io.BytesIO(noise(3))).convert("RGB")
    for fmt in ("JPEG", "GIF", "BMP"):
        out = io.BytesIO()
        src.save(out, format=fmt)
        assert gray_matrix(out.getvalue(), 8, 8).shape == (8, 8)


@pytest.mark.parametrize("buf", [b"", b"not an image", b"\x89PNG\r\n\x1a\n truncated"])
def test_decode_error(buf: bytes) -> None:
    with pytest.raises(DecodeError):
        gray_matrix(buf, 8, 8)


def test_rejects_non_positive_size(png: Callable[..., bytes]) -> None:
    with pytest.raises(ValueError):
        gray_matrix(png(10), 0, 8)


def _encode(im: Image.Image, fmt: str) -> bytes:
    out = io.BytesIO()
    im.save(out, format=fmt)
    return out.getvalue()


def test_16bit_gradient_is_scaled_not_clipped() -> None:
    ramp = np.linspace(0, 65535, 64).astype(np.uint16)
    buf = _encode(Image.fromarray(np.tile(ramp, (64, 1))), "PNG")

    arr = gray_matrix(buf, 8, 8)

    for row in arr.astype(int):
        assert row.min() < 64
        assert row.max() > 192
        assert row[0] < row[-1]


def test_float_image_is_stretched() -> None:
    ramp = np.linspace(-500.0, 1500.0, 64, dtype=np.float32)
    buf = _encode(Image.fromarray(np.tile(ramp, (16, 1))), "TIFF")

    arr = gray_matrix(buf, 8, 8).astype(int)

    assert arr[:, 0].max() < 64
    assert arr[:, -1].min() > 192


def test_oversized_image_is_decode_error(
    monkeypatch: pytest.MonkeyPatch, png: Callable[..., bytes]
) -> None:
    buf = png(50, (64, 64))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    with pytest.raises(DecodeError):
        gray_matrix(buf, 8, 8)
