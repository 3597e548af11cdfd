"""
Perceptual hashing for image buffers.

- aHash on 8x8 grayscale (each pixel vs global mean) -> 64 bits
- dHash on 9x8 grayscale (each pixel vs its right neighbour) -> 64 bits
- pHash via DCT on 32x32 grayscale -> 8x8 low-frequency block -> 64 bits
- Hamming distance between two bit strings of equal length

Hashes are strings of '0'/'1' in row-major order.
"""

from __future__ import annotations

from typing import cast

import cv2  # type: ignore[import-untyped]
import numpy as np
from numpy.typing import NDArray

from errors import LengthMismatchError
from grayscale import gray_matrix

HASH_BITS = 64

_AHASH_SIZE = (8, 8)
_DHASH_SIZE = (9, 8)  # width x height: 8 comparisons per row
_PHASH_SIZE = 32
_PHASH_LOW = 8


def _bits(mask: NDArray[np.bool_]) -> str:
    return "".join("1" if b else "0" for b in mask.ravel())


def ahash(buf: bytes) -> str:
    """
    Compute a 64-bit average hash:
      - 8x8 grayscale
      - bit = 1 where pixel >= mean of all 64 pixels
    """
    arr = gray_matrix(buf, *_AHASH_SIZE).astype(np.float64)
    return _bits(arr >= arr.mean())


def dhash(buf: bytes) -> str:
    """
    Compute a 64-bit difference hash:
      - 9x8 grayscale
      - bit = 1 where a pixel is strictly brighter than its right neighbour
    """
    arr = gray_matrix(buf, *_DHASH_SIZE)
    return _bits(arr[:, :-1] > arr[:, 1:])


def dct2(matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Orthonormal 2-D DCT-II of a square matrix.

    Coefficient (u, v) is (2/N) c(u) c(v) sum_xy m[x, y]
    cos((2x+1)u pi / 2N) cos((2y+1)v pi / 2N), with c(0) = 1/sqrt(2).
    """
    src = np.ascontiguousarray(matrix, dtype=np.float64)
    # cv2.dct has no stubs; cast its result
    return cast(NDArray[np.float64], np.asarray(cv2.dct(src), dtype=np.float64))  # type: ignore[no-untyped-call]


def phash(buf: bytes) -> str:
    """
    Compute a 64-bit pHash:
      - 32x32 grayscale, mean removed
      - 2-D DCT
      - take top-left 8x8 (low freq)
      - bit = 1 where coefficient > median (ties give 0)

    The median is the upper middle element of the 64 sorted coefficients.
    """
    arr = gray_matrix(buf, _PHASH_SIZE, _PHASH_SIZE).astype(np.float64)
    freq = dct2(arr - arr.mean())
    low = freq[:_PHASH_LOW, :_PHASH_LOW].ravel()
    med = float(np.sort(low)[low.size // 2])
    return _bits(low > med)


def hamming_distance(a: str, b: str) -> int:
    """Count positions where two equal-length hashes differ."""
    if len(a) != len(b):
        raise LengthMismatchError(
            f"Cannot compare hashes of length {len(a)} and {len(b)}"
        )
    return sum(1 for x, y in zip(a, b) if x != y)


def to_hex(bits: str) -> str:
    """Render a bit-string hash as zero-padded hex (16 chars for 64 bits)."""
    if not bits:
        return ""
    return f"{int(bits, 2):0{(len(bits) + 3) // 4}x}"
