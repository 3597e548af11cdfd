# src/config.py
"""
Configuration loader with validation and safe error handling.

- Reads optional imgsim.toml (or a provided path).
- Provides defaults if file is absent.
- Applies environment overrides (concurrency, timeout, search API key).
- Exposes a typed configuration object built once at startup and passed
  explicitly to the fetcher, comparison engine and batch comparator.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from errors import ConfigLoadError

DEFAULT_SEARCH_ENDPOINT = "https://api.scraperapi.com/structured/amazon/search/v1"


class CompareConfig(BaseModel):
    """Configuration governing image fetching and batch comparison."""

    image_fetch_concurrency: int = Field(
        6, ge=1, description="Max comparisons (and candidate fetches) in flight."
    )
    image_fetch_timeout_ms: int = Field(
        15000, gt=0, description="Per-fetch deadline in milliseconds."
    )
    user_agent: str = Field(
        "Mozilla/5.0", description="User-Agent header sent with image requests."
    )

    @property
    def timeout_seconds(self) -> float:
        return self.image_fetch_timeout_ms / 1000.0


class SearchConfig(BaseModel):
    """Configuration for the structured product search API."""

    api_key: Optional[str] = None
    endpoint: str = DEFAULT_SEARCH_ENDPOINT
    tld: str = "com"
    max_pages: int = Field(20, ge=1)

    @field_validator("api_key", mode="after")
    @classmethod
    def _blank_key_is_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty/whitespace keys as missing."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("tld", mode="after")
    @classmethod
    def _normalize_tld(cls, v: str) -> str:
        """Lowercase and drop a leading dot ('.CO.UK' -> 'co.uk')."""
        return v.strip().lower().lstrip(".")


class AppConfig(BaseModel):
    """Root application configuration object."""

    compare: CompareConfig = CompareConfig()
    search: SearchConfig = SearchConfig()

    @staticmethod
    def load(path: Optional[Path] = None) -> "AppConfig":
        """
        Load config from TOML if present; otherwise return defaults.

        Load order:
          1) Provided path (if any).
          2) ./imgsim.toml in the current working directory.
        Env overrides:
          - IMGSIM_FETCH_CONCURRENCY: overrides compare.image_fetch_concurrency
          - IMGSIM_FETCH_TIMEOUT_MS: overrides compare.image_fetch_timeout_ms
          - SCRAPERAPI_KEY: overrides search.api_key

        Raises:
            ConfigLoadError: if a TOML file cannot be read or validated, or an
            env override holds an invalid value.
        """
        toml_path = path or (Path.cwd() / "imgsim.toml")
        data: dict = {}

        if path is not None and not toml_path.exists():
            raise ConfigLoadError(f"Config file not found: {toml_path}")

        if toml_path.exists():
            import tomllib  # Python 3.11+ standard library

            try:
                raw_text = toml_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigLoadError(
                    f"Failed to read config file: {toml_path}"
                ) from exc

            try:
                data = tomllib.loads(raw_text)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigLoadError(
                    f"Invalid TOML in config file: {toml_path}"
                ) from exc

        sections = {}
        for name in ("compare", "search"):
            section = data.get(name, {})
            if not isinstance(section, dict):
                raise ConfigLoadError(
                    f"[{name}] in {toml_path} must be a table, got {type(section).__name__}"
                )
            sections[name] = dict(section)
        compare_data = sections["compare"]
        search_data = sections["search"]

        concurrency_env = os.getenv("IMGSIM_FETCH_CONCURRENCY")
        if concurrency_env:
            compare_data["image_fetch_concurrency"] = concurrency_env
        timeout_env = os.getenv("IMGSIM_FETCH_TIMEOUT_MS")
        if timeout_env:
            compare_data["image_fetch_timeout_ms"] = timeout_env
        key_env = os.getenv("SCRAPERAPI_KEY")
        if key_env:
            search_data["api_key"] = key_env

        try:
            return AppConfig(
                compare=CompareConfig(**compare_data),
                search=SearchConfig(**search_data),
            )
        except ValidationError as exc:
            raise ConfigLoadError(
                f"Invalid configuration values ({toml_path} / environment): {exc}"
            ) from exc
