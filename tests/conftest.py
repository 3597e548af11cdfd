"""
Shared fixtures:

- png(): in-memory PNG bytes from a color or a uint8 array.
- FakeFetcher: drop-in for ImageFetcher that serves canned bytes, can delay
  or fail per URL, and records calls / in-flight / cancellations.
"""

from __future__ import annotations

import asyncio
import io
from typing import Callable, Dict, Iterable, List, Optional, Union

import numpy as np
import pytest
from PIL import Image

from errors import FetchHTTPError


def make_png(
    source: Union[int, np.ndarray], size: tuple[int, int] = (32, 32), fmt: str = "PNG"
) -> bytes:
    if isinstance(source, np.ndarray):
        im = Image.fromarray(source.astype(np.uint8))
    else:
        im = Image.new("L", size, color=source)
    out = io.BytesIO()
    im.save(out, format=fmt)
    return out.getvalue()


def noise_png(seed: int, size: int = 64) -> bytes:
    rng = np.random.default_rng(seed)
    return make_png((rng.random((size, size)) * 255).astype("uint8"))


class FakeFetcher:
    def __init__(
        self,
        images: Dict[str, bytes],
        *,
        delays: Optional[Dict[str, float]] = None,
        errors: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self.images = images
        self.delays = delays or {}
        self.errors = errors or {}
        self.calls: List[str] = []
        self.cancelled: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, url: str, *, timeout_ms: Optional[int] = None) -> bytes:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(url, 0.001))
            if url in self.errors:
                raise self.errors[url]
            if url not in self.images:
                raise FetchHTTPError(404, url=url)
            return self.images[url]
        except asyncio.CancelledError:
            self.cancelled.append(url)
            raise
        finally:
            self.in_flight -= 1


@pytest.fixture
def png() -> Callable[..., bytes]:
    return make_png


@pytest.fixture
def noise() -> Callable[..., bytes]:
    return noise_png


@pytest.fixture
def fake_fetcher() -> Callable[..., FakeFetcher]:
    def _make(images: Iterable[tuple[str, bytes]] = (), **kwargs: object) -> FakeFetcher:
        return FakeFetcher(dict(images), **kwargs)  # type: ignore[arg-type]

    return _make
