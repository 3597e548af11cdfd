"""
CLI smoke tests:

- help/version work.
- hash works offline on a local file.
- compare over candidates without images needs no network.
- search fails cleanly without an API key.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

import pytest
from typer.testing import CliRunner

from cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # keep log lines out of the captured JSON output
    monkeypatch.setenv("IMGSIM_LOG_LEVEL", "ERROR")
    monkeypatch.delenv("SCRAPERAPI_KEY", raising=False)
    monkeypatch.chdir(tmp_path)


def test_help() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "Image Similarity" in result.stdout


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "imgsim" in result.stdout.lower()


def test_hash_local_file(tmp_path: Path, png: Callable[..., bytes]) -> None:
    img = tmp_path / "a.png"
    img.write_bytes(png(128, (8, 8)))
    result = runner.invoke(app, ["hash", str(img), "--hex"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert set(data) == {"ahash", "dhash", "phash"}
    assert data["ahash"] == "f" * 16
    assert data["dhash"] == "0" * 16


def test_compare_without_images(tmp_path: Path) -> None:
    cands = tmp_path / "cands.json"
    cands.write_text(
        json.dumps({"results": [{"name": "a", "url": "https://s/a"}, {"name": "b", "url": "https://s/b"}]}),
        encoding="utf-8",
    )
    result = runner.invoke(
        app, ["compare", "https://ref.example/r.png", "--candidates", str(cands), "--sort"]
    )
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert [r["name"] for r in data["results"]] == ["a", "b"]
    assert all(r["similarity"] is None for r in data["results"])


def test_compare_rejects_bad_candidates_file(tmp_path: Path) -> None:
    cands = tmp_path / "cands.json"
    cands.write_text('{"results": 3}', encoding="utf-8")
    result = runner.invoke(app, ["compare", "https://r/x.png", "--candidates", str(cands)])
    assert result.exit_code != 0


def test_search_without_key_fails() -> None:
    result = runner.invoke(app, ["search", "https://r/x.png", "--query", "lamp"])
    assert result.exit_code == 1
