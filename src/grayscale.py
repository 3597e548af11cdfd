"""
Grayscale resampler shared by all perceptual hashes.

- Decodes any format Pillow understands from an in-memory buffer.
- Stretches (no aspect preservation) to exactly width x height.
- Scales 16-bit and float grayscale down to 8 bits before resizing.
- Converts to 8-bit luminance and returns a read-only uint8 matrix,
  shape (height, width), row-major.
"""

from __future__ import annotations

import io
from typing import cast

import numpy as np
from numpy.typing import NDArray
from PIL import Image, UnidentifiedImageError

from errors import DecodeError

GrayMatrix = NDArray[np.uint8]

# Fixed kernel: the same bytes must always give the same matrix.
_RESAMPLE = Image.Resampling.LANCZOS


def _to_8bit(im: Image.Image) -> Image.Image:
    """
    Scale high-bit-depth grayscale (I;16*, I, F) down to 8-bit "L".

    Pillow's own convert() clips these modes at 255 instead of scaling.
      - I;16*: top byte of each 16-bit sample
      - I / F within 0..255: kept as is (F within 0..1 is stretched to 0..255)
      - I / F within 0..65535: divided by 257
      - anything else: min-max stretched to 0..255
    """
    if im.mode.startswith("I;16"):
        arr16 = np.asarray(im).astype(np.uint32) >> 8
        return Image.fromarray(arr16.astype(np.uint8))
    if im.mode not in {"I", "F"}:
        return im

    arr = np.asarray(im, dtype=np.float64)
    lo, hi = float(arr.min()), float(arr.max())
    if im.mode == "F" and lo >= 0.0 and hi <= 1.0:
        arr = arr * 255.0
    elif lo >= 0.0 and hi <= 255.0:
        pass
    elif lo >= 0.0 and hi <= 65535.0:
        arr = arr / 257.0
    elif hi > lo:
        arr = (arr - lo) * 255.0 / (hi - lo)
    else:
        arr = np.zeros_like(arr)
    return Image.fromarray(np.clip(np.rint(arr), 0, 255).astype(np.uint8))


def gray_matrix(buf: bytes, width: int, height: int) -> GrayMatrix:
    """
    Decode *buf*, resize to (width, height) and return grayscale intensities.

    Raises:
        DecodeError: if *buf* is empty or not a decodable image.
        ValueError: if the target size is not positive.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Target size must be positive, got {width}x{height}")
    if not buf:
        raise DecodeError("Empty image buffer")

    try:
        with Image.open(io.BytesIO(buf)) as im:
            im.load()
            src = _to_8bit(im)
            rgb = src.convert("RGB") if src.mode not in {"RGB", "L"} else src
            resized = rgb.resize((width, height), _RESAMPLE)
            gray = resized.convert("L")
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        SyntaxError,
        ValueError,
    ) as exc:
        raise DecodeError(f"Cannot decode image ({len(buf)} bytes): {exc}") from exc

    arr = np.array(gray, dtype=np.uint8)
    arr.setflags(write=False)
    return cast(GrayMatrix, arr)
