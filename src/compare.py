"""
Comparison engine: two image URLs -> one similarity record.

- Fetch both images concurrently (one failure cancels the other fetch).
- Fingerprint each buffer with aHash/dHash/pHash off the event loop.
- Score each hash pair as 1 - hamming/64, rounded to 4 decimals.
- Average the three *rounded* scores, then round that again.

A comparison is all-or-nothing: any fetch or decode failure propagates.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict

from errors import DecodeError
from fetch import ImageFetcher
from image_hash import HASH_BITS, ahash, dhash, hamming_distance, phash
from logs import get_logger

log = get_logger(__name__)

_FOUR_PLACES = Decimal("0.0001")


def round4(value: float) -> float:
    """Round half-up on the exact binary value (matches JS ``toFixed(4)``)."""
    return float(Decimal(value).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP))


@dataclass(frozen=True, slots=True)
class ImageFingerprint:
    """The three 64-bit hashes of one image."""

    ahash: str
    dhash: str
    phash: str


@dataclass(frozen=True, slots=True)
class SimilarityRecord:
    """Per-algorithm similarities in [0, 1] plus their average."""

    a_similarity: float
    d_similarity: float
    p_similarity: float
    average_similarity: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "aSimilarity": self.a_similarity,
            "dSimilarity": self.d_similarity,
            "pSimilarity": self.p_similarity,
            "averageSimilarity": self.average_similarity,
        }


def fingerprint(buf: bytes) -> ImageFingerprint:
    """Hash one image buffer with all three algorithms (CPU-bound, no I/O)."""
    return ImageFingerprint(ahash=ahash(buf), dhash=dhash(buf), phash=phash(buf))


def hash_similarity(a: str, b: str) -> float:
    """1.0 for identical hashes, 0.0 when every bit differs."""
    return round4(1 - hamming_distance(a, b) / HASH_BITS)


def compare_fingerprints(a: ImageFingerprint, b: ImageFingerprint) -> SimilarityRecord:
    sa = hash_similarity(a.ahash, b.ahash)
    sd = hash_similarity(a.dhash, b.dhash)
    sp = hash_similarity(a.phash, b.phash)
    return SimilarityRecord(
        a_similarity=sa,
        d_similarity=sd,
        p_similarity=sp,
        average_similarity=round4((sa + sd + sp) / 3),
    )


class ComparisonEngine:
    """Fetch + fingerprint + score, for one pair of images at a time."""

    def __init__(self, fetcher: ImageFetcher) -> None:
        self.fetcher = fetcher

    async def fingerprint_url(self, url: str) -> ImageFingerprint:
        """
        Fetch *url* and fingerprint it in a worker thread.

        Raises:
            FetchError: from the fetcher.
            DecodeError: the body is not an image.
        """
        buf = await self.fetcher.fetch(url)
        try:
            return await asyncio.to_thread(fingerprint, buf)
        except DecodeError as exc:
            raise DecodeError(f"{exc} [{url}]") from exc

    async def compare_to(self, reference: ImageFingerprint, url: str) -> SimilarityRecord:
        """Score *url* against an already fingerprinted reference image."""
        candidate = await self.fingerprint_url(url)
        return compare_fingerprints(reference, candidate)

    async def compare(self, url_a: str, url_b: str) -> SimilarityRecord:
        """Fetch and fingerprint both images concurrently, then score them."""
        tasks = [
            asyncio.create_task(self.fingerprint_url(url_a)),
            asyncio.create_task(self.fingerprint_url(url_b)),
        ]
        try:
            fp_a, fp_b = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        record = compare_fingerprints(fp_a, fp_b)
        log.debug(f"compared {url_a} <> {url_b}: avg={record.average_similarity}")
        return record
