"""
Process-wide logging for Image Similarity:
- Rich console for humans (default).
- Optional JSON lines (for piping into log collectors).
- Optional rotating file logs.
- Sinks live behind a QueueHandler/QueueListener so the event loop never
  blocks on console or disk I/O.

Usage:
    from logs import init_logging, get_logger

    init_logging(level="INFO")
    log = get_logger(__name__)
    log.info("comparing %d candidates", n)

Env vars:
    IMGSIM_LOG_LEVEL   = DEBUG|INFO|WARNING|ERROR (default INFO)
    IMGSIM_LOG_JSON    = 0|1  (default 0)
    IMGSIM_LOG_TO_FILE = 0|1  (default 0)
    IMGSIM_LOG_FILE    = path to log file (default .imgsim/logs/imgsim.log)
"""

from __future__ import annotations

import atexit
import json
import logging
import os
import queue
import sys
from dataclasses import dataclass
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_DEFAULT_FILE = Path(".imgsim/logs/imgsim.log")
_NOISY_LOGGERS = ("PIL", "httpx", "httpcore", "asyncio")


@dataclass
class LogConfig:
    level: str = "INFO"
    json: bool = False
    to_file: bool = False
    file_path: Path = _DEFAULT_FILE
    max_bytes: int = 2 * 1024 * 1024  # 2 MB per file
    backup_count: int = 3


_CONSOLE = Console(stderr=True, highlight=False, soft_wrap=True)
_LISTENER: Optional[QueueListener] = None
_INITIALIZED = False


class JsonFormatter(logging.Formatter):
    """One JSON object per record; keys kept stable for ingestion."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "level": record.levelname,
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "msg": record.getMessage(),
            "task": getattr(record, "taskName", None),
            "line": f"{record.filename}:{record.lineno}",
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "0").strip().lower() in {"1", "true", "yes"}


def _resolve_config(
    level: Optional[str],
    json_out: Optional[bool],
    to_file: Optional[bool],
    file_path: Optional[Path],
) -> LogConfig:
    """Arguments win over env vars, env vars win over defaults."""
    env_file = os.getenv("IMGSIM_LOG_FILE")
    return LogConfig(
        level=(level or os.getenv("IMGSIM_LOG_LEVEL") or "INFO").upper(),
        json=json_out if json_out is not None else _env_flag("IMGSIM_LOG_JSON"),
        to_file=to_file if to_file is not None else _env_flag("IMGSIM_LOG_TO_FILE"),
        file_path=file_path or (Path(env_file) if env_file else _DEFAULT_FILE),
    )


def _build_handlers(cfg: LogConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    console: logging.Handler
    if cfg.json:
        console = logging.StreamHandler(stream=sys.stderr)
        console.setFormatter(JsonFormatter())
    else:
        console = RichHandler(
            console=_CONSOLE, show_time=True, show_path=False, markup=True
        )
        console.setFormatter(logging.Formatter("%(message)s"))
    handlers.append(console)

    if cfg.to_file:
        try:
            cfg.file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                cfg.file_path,
                maxBytes=cfg.max_bytes,
                backupCount=cfg.backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            # File logging is optional; report on the console sink and continue.
            _CONSOLE.print(f"[yellow]File logging disabled:[/] {exc}")
        else:
            file_handler.setFormatter(
                JsonFormatter()
                if cfg.json
                else logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            )
            handlers.append(file_handler)

    return handlers


def init_logging(
    level: Optional[str] = None,
    *,
    json: Optional[bool] = None,
    to_file: Optional[bool] = None,
    file_path: Optional[Path] = None,
) -> None:
    """
    Initialize process-wide logging. Safe to call multiple times (idempotent).

    Honors the IMGSIM_LOG_* env vars when arguments are not provided.
    """
    global _INITIALIZED, _LISTENER

    if _INITIALIZED:
        return

    cfg = _resolve_config(level, json, to_file, file_path)

    root = logging.getLogger()
    root.setLevel(getattr(logging, cfg.level, logging.INFO))

    if not any(isinstance(h, QueueHandler) for h in root.handlers):
        log_queue: queue.Queue[logging.LogRecord] = queue.Queue(-1)
        root.addHandler(QueueHandler(log_queue))
        _LISTENER = QueueListener(
            log_queue, *_build_handlers(cfg), respect_handler_level=True
        )
        _LISTENER.start()
        atexit.register(_stop_listener)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _INITIALIZED = True


def _stop_listener() -> None:
    global _LISTENER
    if _LISTENER is not None:
        _LISTENER.stop()
        _LISTENER = None


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a namespaced logger. Call `init_logging()` once early in your program
    (CLI entrypoint) to configure sinks/levels.
    """
    return logging.getLogger(name or "imgsim")
