"""Async HTTP image fetching for the comparison pipeline."""

from __future__ import annotations

import asyncio
from typing import Optional
from urllib.parse import urlparse

import httpx

from config import CompareConfig
from errors import FetchHTTPError, FetchTimeoutError, NetworkError
from logs import get_logger

log = get_logger(__name__)


def ensure_http_scheme(url: str) -> str:
    """Ensure *url* is qualified with an HTTP scheme, defaulting to https."""
    cleaned = url.strip()
    if not cleaned:
        return cleaned
    if cleaned.startswith(("http://", "https://")):
        return cleaned
    if cleaned.startswith("//"):
        return f"https:{cleaned}"
    if urlparse(cleaned).scheme:
        return cleaned
    return f"https://{cleaned}"


class ImageFetcher:
    """
    Retrieves raw image bytes over HTTP(S).

    One ``httpx.AsyncClient`` is shared by every fetch made through the
    instance; use it as an async context manager so connections are released.
    Each fetch carries its own deadline. On expiry the in-flight request is
    cancelled (its connection closed), siblings are unaffected.
    """

    def __init__(
        self,
        config: CompareConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            headers={"User-Agent": config.user_agent},
            follow_redirects=True,
            timeout=httpx.Timeout(config.timeout_seconds),
            transport=transport,
        )

    async def __aenter__(self) -> "ImageFetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(self, url: str, *, timeout_ms: Optional[int] = None) -> bytes:
        """
        Return the full response body for *url*.

        Raises:
            FetchTimeoutError: the deadline elapsed before the body arrived.
            FetchHTTPError: the server answered with a non-2xx status.
            NetworkError: connection-level failure or malformed URL.
        """
        target = ensure_http_scheme(url)
        deadline_ms = timeout_ms if timeout_ms is not None else self.config.image_fetch_timeout_ms
        log.debug(f"GET {target} (timeout {deadline_ms} ms)")

        try:
            async with asyncio.timeout(deadline_ms / 1000.0):
                response = await self._client.get(
                    target, timeout=httpx.Timeout(deadline_ms / 1000.0)
                )
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise FetchTimeoutError(
                f"Image fetch timed out after {deadline_ms} ms", url=url
            ) from exc
        except httpx.InvalidURL as exc:
            raise NetworkError(f"Invalid image URL: {url!r}", url=url) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"Image fetch failed: {type(exc).__name__}: {exc}", url=url
            ) from exc

        if not response.is_success:
            raise FetchHTTPError(response.status_code, url=url)

        log.debug(f"GET {target} -> {response.status_code}, {len(response.content)} bytes")
        return response.content
