"""
Batch comparator: one reference image vs. many candidate images.

- Output has the same length and order as the input candidates.
- Candidates without an image are reported as NoImage, never fetched.
- Each candidate's failure becomes a Failed record; siblings carry on.
- At most `image_fetch_concurrency` comparisons run at once.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, field_validator

from compare import ComparisonEngine, ImageFingerprint, SimilarityRecord
from config import CompareConfig
from errors import ImgSimError, describe_error
from logs import get_logger

log = get_logger(__name__)

SortMetric = Literal["aSimilarity", "dSimilarity", "pSimilarity", "averageSimilarity"]


class Candidate(BaseModel):
    """One search result. Unknown fields are kept and echoed back in output."""

    model_config = ConfigDict(extra="allow")

    name: str
    url: str
    price: Optional[str] = None
    image: Optional[str] = None

    @field_validator("price", mode="before")
    @classmethod
    def _price_as_text(cls, v: Any) -> Optional[str]:
        """Search APIs send prices as numbers or strings; keep text."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        raise ValueError(f"Unsupported price value: {v!r}")

    @field_validator("image", mode="before")
    @classmethod
    def _blank_image_is_none(cls, v: Any) -> Optional[str]:
        """An empty/whitespace image URL means 'no image'."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def output_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


@dataclass(frozen=True, slots=True)
class NoImage:
    """Candidate had no image: nothing to compare."""

    candidate: Candidate

    def to_dict(self) -> Dict[str, Any]:
        return {**self.candidate.output_fields(), "similarity": None}


@dataclass(frozen=True, slots=True)
class Compared:
    """Comparison succeeded."""

    candidate: Candidate
    similarity: SimilarityRecord

    def to_dict(self) -> Dict[str, Any]:
        return {**self.candidate.output_fields(), "similarity": self.similarity.to_dict()}


@dataclass(frozen=True, slots=True)
class Failed:
    """Comparison was attempted and failed."""

    candidate: Candidate
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {**self.candidate.output_fields(), "similarity": None, "error": self.error}


ComparisonResult = Union[NoImage, Compared, Failed]


class BatchComparator:
    """Compares candidates against a reference with bounded concurrency."""

    def __init__(self, engine: ComparisonEngine, config: CompareConfig) -> None:
        self.engine = engine
        self.config = config

    async def run(
        self, reference_url: str, candidates: Sequence[Candidate]
    ) -> List[ComparisonResult]:
        """
        Compare every candidate image to *reference_url*.

        The reference is fetched and fingerprinted once for this call. If that
        fails, every candidate with an image gets a Failed record carrying the
        reference error.
        """
        if not candidates:
            return []

        reference: Optional[ImageFingerprint] = None
        reference_error = ""
        if any(c.image for c in candidates):
            try:
                reference = await self.engine.fingerprint_url(reference_url)
            except ImgSimError as exc:
                reference_error = describe_error(exc)
                log.warning(f"Reference image unusable ({reference_url}): {reference_error}")
            except Exception as exc:
                reference_error = describe_error(exc)
                log.exception(f"Unexpected error fetching reference {reference_url}")

        gate = asyncio.Semaphore(self.config.image_fetch_concurrency)

        async def one(index: int, candidate: Candidate) -> ComparisonResult:
            if not candidate.image:
                return NoImage(candidate)
            if reference is None:
                return Failed(candidate, reference_error)
            async with gate:
                try:
                    record = await self.engine.compare_to(reference, candidate.image)
                except ImgSimError as exc:
                    log.warning(f"Candidate #{index} ({candidate.image}) failed: {exc}")
                    return Failed(candidate, describe_error(exc))
                except Exception as exc:
                    log.exception(f"Unexpected error comparing candidate #{index}")
                    return Failed(candidate, describe_error(exc))
            return Compared(candidate, record)

        results = list(
            await asyncio.gather(*(one(i, c) for i, c in enumerate(candidates)))
        )

        compared = sum(isinstance(r, Compared) for r in results)
        failed = sum(isinstance(r, Failed) for r in results)
        log.info(
            f"Batch done: {len(results)} candidates, {compared} compared, "
            f"{failed} failed, {len(results) - compared - failed} without image"
        )
        return results


def sort_results(
    results: Sequence[ComparisonResult],
    metric: SortMetric = "averageSimilarity",
    *,
    ascending: bool = False,
) -> List[ComparisonResult]:
    """Order compared results by *metric*; uncompared ones keep their order, last."""
    compared = [r for r in results if isinstance(r, Compared)]
    rest = [r for r in results if not isinstance(r, Compared)]
    compared.sort(
        key=lambda r: r.similarity.to_dict()[metric], reverse=not ascending
    )
    return [*compared, *rest]
