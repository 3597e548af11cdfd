"""
Centralized, typed exceptions for the app.

Every failure the pipeline can produce derives from ImgSimError, so:
- The CLI can report any of them with one handler.
- The batch comparator can contain per-candidate failures without
  swallowing unrelated bugs.
- Tests can expect precise types (e.g., FetchTimeoutError).
"""

from __future__ import annotations

from typing import Optional


class ImgSimError(Exception):
    """Base class for all custom errors in Image Similarity."""


class ConfigLoadError(ImgSimError):
    """Raised when a configuration file or env override is unreadable or invalid."""


class DecodeError(ImgSimError):
    """Raised when a buffer is not a decodable image."""


class FetchError(ImgSimError):
    """Base class for failures while retrieving an image over the network."""

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class FetchTimeoutError(FetchError):
    """Raised when a fetch does not complete within its deadline."""


class FetchHTTPError(FetchError):
    """Raised when the server answers with a non-success status."""

    def __init__(self, status: int, *, url: Optional[str] = None) -> None:
        super().__init__(f"Image fetch failed {status}", url=url)
        self.status = status


class NetworkError(FetchError):
    """Raised for connection-level failures (DNS, refused, reset, TLS...)."""


class LengthMismatchError(ImgSimError):
    """Raised when two hashes of different lengths are compared."""


class SearchError(ImgSimError):
    """Raised when the product search API call fails or is misused."""


def describe_error(exc: BaseException) -> str:
    """Render *exc* as the short ``"Type: message"`` string used in results."""
    message = str(exc)
    name = type(exc).__name__
    return f"{name}: {message}" if message else name
