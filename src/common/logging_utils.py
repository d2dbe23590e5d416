"""Shared logging utilities.

Usage:

  from common.logging_utils import get_logger
  logger = get_logger(__name__)
  logger.info("analysis visitor_id=%s risk_score=%s", visitor_id, score)

The first call configures logging for the whole process (console + rotating file
under `logs/flowauth.log`). Subsequent calls will not add duplicate handlers.

Environment:
- FLOWAUTH_LOG_LEVEL: level name or number (default INFO)
- FLOWAUTH_LOG_DIR: directory for the rotating file (default `<repo>/logs`)
- FLOWAUTH_LOG_FILE: set to `0` to log to stdout only
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final


_CONFIG_LOCK: Final[threading.Lock] = threading.Lock()
_CONFIGURED: bool = False

LOG_FORMAT: Final[str] = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def _project_root() -> Path:
    here = Path(__file__).resolve()
    for parent in here.parents:
        if (parent / "pyproject.toml").exists():
            return parent
    # .../src/common/logging_utils.py -> repo root is 2 levels up.
    return here.parents[2]


def _parse_level(level: str | None) -> int:
    if not level:
        return logging.INFO

    text = level.strip()
    if not text:
        return logging.INFO

    if text.isdigit():
        return int(text)

    return getattr(logging, text.upper(), logging.INFO)


def _file_logging_enabled() -> bool:
    return os.getenv("FLOWAUTH_LOG_FILE", "1").strip().lower() not in {"0", "false", "no", "off"}


def _log_dir() -> Path:
    override = os.getenv("FLOWAUTH_LOG_DIR", "").strip()
    if override:
        return Path(override)
    return _project_root() / "logs"


def configure_logging(level: str | None = None) -> None:
    """Configure root handlers once; a later explicit `level` only adjusts the level."""

    global _CONFIGURED

    with _CONFIG_LOCK:
        resolved = _parse_level(level if level is not None else os.getenv("FLOWAUTH_LOG_LEVEL", "INFO"))
        root = logging.getLogger()

        if _CONFIGURED:
            if level is not None:
                root.setLevel(resolved)
                for handler in root.handlers:
                    handler.setLevel(resolved)
            return

        root.setLevel(resolved)
        fmt = logging.Formatter(LOG_FORMAT)
        existing = root.handlers

        has_console = any(
            isinstance(h, logging.StreamHandler)
            and not isinstance(h, logging.FileHandler)
            and getattr(h, "stream", None) is sys.stdout
            for h in existing
        )
        if not has_console:
            console = logging.StreamHandler(stream=sys.stdout)
            console.setLevel(resolved)
            console.setFormatter(fmt)
            root.addHandler(console)

        if _file_logging_enabled():
            logs_dir = _log_dir()
            logs_dir.mkdir(parents=True, exist_ok=True)
            logfile_str = str(logs_dir / "flowauth.log")

            has_same_rotating_file = any(
                isinstance(h, RotatingFileHandler)
                and getattr(h, "baseFilename", None) == logfile_str
                for h in existing
            )
            if not has_same_rotating_file:
                file_handler = RotatingFileHandler(
                    logfile_str,
                    maxBytes=5 * 1024 * 1024,
                    backupCount=5,
                    encoding="utf-8",
                    delay=True,
                )
                file_handler.setLevel(resolved)
                file_handler.setFormatter(fmt)
                root.addHandler(file_handler)

        _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger configured for FlowAuth."""

    if not _CONFIGURED:
        configure_logging()
    return logging.getLogger(name)
