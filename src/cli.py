"""
CLI entrypoint:
- hash: aHash/dHash/pHash of a local file or URL
- pair: similarity record for two image URLs
- compare: reference image vs. candidates from a JSON file
- search: product search, then compare every result image to the reference
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, List, Optional, Sequence

import typer
from pydantic import ValidationError

from batch import BatchComparator, Candidate, ComparisonResult, SortMetric, sort_results
from compare import ComparisonEngine, SimilarityRecord, fingerprint
from config import AppConfig
from errors import ConfigLoadError, ImgSimError
from fetch import ImageFetcher
from image_hash import to_hex
from logs import get_logger, init_logging
from search import run_search

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Image Similarity: perceptual-hash comparison of product images",
)

log = get_logger("imgsim")

_VERSION = "imgsim v0.3.0"


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose (DEBUG) logging"
    ),
) -> None:
    init_logging(level="DEBUG" if verbose else None)
    global log
    log = get_logger("imgsim.cli")
    if verbose:
        log.debug("Verbose logging enabled")


@app.command("version")
def version_cmd() -> None:
    typer.echo(_VERSION)


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _fail(exc: Exception) -> typer.Exit:
    """Log *exc* the way every command reports errors; return the exit to raise."""
    if isinstance(exc, ConfigLoadError):
        log.error(f"[red]Config error:[/] {exc}")
    elif isinstance(exc, ImgSimError):
        log.error(f"[red]Error:[/] {exc}")
    else:
        log.exception("Unexpected failure")
    return typer.Exit(code=1)


def _results_payload(
    results: Sequence[ComparisonResult], sort: bool, metric: SortMetric, ascending: bool
) -> dict:
    ordered = sort_results(results, metric, ascending=ascending) if sort else list(results)
    return {"results": [r.to_dict() for r in ordered]}


def _load_candidates(path: Path) -> List[Candidate]:
    """Read a JSON list of candidates (or an object with a "results" list)."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Cannot read candidates from {path}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("results")
    if not isinstance(data, list):
        raise typer.BadParameter(f"{path} must hold a JSON list of candidates")
    try:
        return [Candidate.model_validate(item) for item in data]
    except ValidationError as exc:
        raise typer.BadParameter(f"Invalid candidate in {path}: {exc}") from exc


async def _compare_batch(
    cfg: AppConfig, image_url: str, candidates: Sequence[Candidate]
) -> List[ComparisonResult]:
    async with ImageFetcher(cfg.compare) as fetcher:
        comparator = BatchComparator(ComparisonEngine(fetcher), cfg.compare)
        return await comparator.run(image_url, candidates)


# -------------------------------- hash ----------------------------------------


@app.command("hash")
def hash_cmd(
    source: str = typer.Argument(..., help="Local image file or image URL"),
    hex_out: bool = typer.Option(False, "--hex", help="Print hashes as hex"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to imgsim.toml"
    ),
) -> None:
    """Print aHash, dHash and pHash of one image."""
    try:
        path = Path(source)
        if path.is_file():
            buf = path.read_bytes()
        else:
            cfg = AppConfig.load(config_file)

            async def _download() -> bytes:
                async with ImageFetcher(cfg.compare) as fetcher:
                    return await fetcher.fetch(source)

            buf = asyncio.run(_download())

        fp = fingerprint(buf)
        render = to_hex if hex_out else (lambda bits: bits)
        _emit({"ahash": render(fp.ahash), "dhash": render(fp.dhash), "phash": render(fp.phash)})
    except Exception as exc:
        raise _fail(exc) from exc


# -------------------------------- pair ----------------------------------------


@app.command("pair")
def pair_cmd(
    url_a: str = typer.Argument(..., help="First image URL"),
    url_b: str = typer.Argument(..., help="Second image URL"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to imgsim.toml"
    ),
) -> None:
    """Compare two images and print their similarity record."""
    try:
        cfg = AppConfig.load(config_file)

        async def _pair() -> SimilarityRecord:
            async with ImageFetcher(cfg.compare) as fetcher:
                return await ComparisonEngine(fetcher).compare(url_a, url_b)

        _emit(asyncio.run(_pair()).to_dict())
    except Exception as exc:
        raise _fail(exc) from exc


# ------------------------------- compare --------------------------------------


@app.command("compare")
def compare_cmd(
    image_url: str = typer.Argument(..., help="Reference image URL"),
    candidates_file: Path = typer.Option(
        ..., "--candidates", help="JSON file with candidate records"
    ),
    sort: bool = typer.Option(False, "--sort", help="Sort by similarity"),
    metric: str = typer.Option("averageSimilarity", "--metric", help="Sort metric"),
    ascending: bool = typer.Option(False, "--ascending", help="Sort ascending"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to imgsim.toml"
    ),
) -> None:
    """Compare a reference image against candidates listed in a JSON file."""
    candidates = _load_candidates(candidates_file)
    sort_metric = _check_metric(metric)
    try:
        cfg = AppConfig.load(config_file)
        log.info(f"[bold]Comparing[/] {len(candidates)} candidate(s) against {image_url}")
        results = asyncio.run(_compare_batch(cfg, image_url, candidates))
        _emit(_results_payload(results, sort, sort_metric, ascending))
    except Exception as exc:
        raise _fail(exc) from exc


# ------------------------------- search ---------------------------------------


@app.command("search")
def search_cmd(
    image_url: str = typer.Argument(..., help="Reference image URL"),
    query: str = typer.Option(..., "--query", "-q", help="Search query"),
    pages: int = typer.Option(1, "--pages", help="Result pages (1..max, -1 = all)"),
    sort: bool = typer.Option(False, "--sort", help="Sort by similarity"),
    metric: str = typer.Option("averageSimilarity", "--metric", help="Sort metric"),
    ascending: bool = typer.Option(False, "--ascending", help="Sort ascending"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to imgsim.toml"
    ),
) -> None:
    """Search products, then compare each result image to the reference."""
    sort_metric = _check_metric(metric)
    try:
        cfg = AppConfig.load(config_file)

        async def _run() -> List[ComparisonResult]:
            candidates = await run_search(query, pages, config=cfg.search)
            return await _compare_batch(cfg, image_url, candidates)

        results = asyncio.run(_run())
        _emit(_results_payload(results, sort, sort_metric, ascending))
    except Exception as exc:
        raise _fail(exc) from exc


def _check_metric(metric: str) -> SortMetric:
    allowed = ("aSimilarity", "dSimilarity", "pSimilarity", "averageSimilarity")
    if metric not in allowed:
        raise typer.BadParameter(f"--metric must be one of {', '.join(allowed)}")
    return metric  # type: ignore[return-value]


if __name__ == "__main__":
    app()
