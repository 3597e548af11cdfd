"""
Structured product search (ScraperAPI Amazon search v1).

Produces the ordered candidate list the batch comparator consumes:
one request per page, issued concurrently, pages merged in page order.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from batch import Candidate
from config import SearchConfig
from errors import SearchError
from logs import get_logger

log = get_logger(__name__)

_SEARCH_TIMEOUT = 60.0


def resolve_pages(pages: int, max_pages: int) -> int:
    """-1 means "all pages" (max_pages); anything else must be in 1..max_pages."""
    if pages == -1:
        return max_pages
    if pages < 1 or pages > max_pages:
        raise SearchError(
            f"'pages' parameter must be between 1 and {max_pages}, or -1 for all pages."
        )
    return pages


def parse_candidates(payload: Dict[str, Any]) -> List[Candidate]:
    """Turn one page of API results into candidates, skipping malformed rows."""
    out: List[Candidate] = []
    for i, item in enumerate(payload.get("results") or []):
        try:
            out.append(Candidate.model_validate(item))
        except ValidationError as exc:
            log.warning(f"Skipping malformed search result #{i}: {exc.error_count()} error(s)")
    return out


async def _fetch_page(
    client: httpx.AsyncClient, config: SearchConfig, query: str, page: int
) -> List[Candidate]:
    params = {
        "api_key": config.api_key or "",
        "query": query,
        "tld": config.tld,
        "page": str(page),
    }
    try:
        response = await client.get(config.endpoint, params=params)
    except httpx.HTTPError as exc:
        raise SearchError(f"Search request failed (page {page}): {exc}") from exc

    if not response.is_success:
        try:
            detail: Any = response.json()
        except ValueError:
            detail = response.text
        raise SearchError(f"ScraperAPI error: {json.dumps(detail)}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise SearchError(f"Search returned invalid JSON (page {page})") from exc
    if not isinstance(payload, dict):
        raise SearchError(f"Unexpected search payload on page {page}")
    return parse_candidates(payload)


async def run_search(
    query: str,
    pages: int = 1,
    *,
    config: SearchConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> List[Candidate]:
    """
    Search *query* across *pages* result pages and merge the candidates.

    Raises:
        SearchError: empty query, missing API key, bad page count, or any
        page failing (the whole search fails).
    """
    if not query.strip():
        raise SearchError('Missing query "q"')
    if not config.api_key:
        raise SearchError("SCRAPERAPI_KEY not set")
    n_pages = resolve_pages(pages, config.max_pages)

    owned = client is None
    http = client or httpx.AsyncClient(timeout=_SEARCH_TIMEOUT)
    try:
        log.info(f"Searching {query!r} ({n_pages} page(s), tld={config.tld})")
        tasks = [
            asyncio.create_task(_fetch_page(http, config, query, p))
            for p in range(1, n_pages + 1)
        ]
        try:
            per_page = await asyncio.gather(*tasks)
        except BaseException:
            # first failing page fails the search; drop the rest
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
    finally:
        if owned:
            await http.aclose()

    merged = [c for page in per_page for c in page]
    log.info(f"Search returned {len(merged)} candidates")
    return merged
