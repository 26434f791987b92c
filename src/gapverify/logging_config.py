"""Logging setup for gapverify runs.

Verification logs live under ``<repo>/.gapverify/logs/`` next to the evidence
they explain. Console output goes to stderr so reports rendered on stdout
stay machine readable.

Usage:
    from gapverify.logging_config import configure_logging

    configure_logging(run_id="iterate-mvp", workspace=repo_root)

Environment:
    GAPVERIFY_LOG_DIR    overrides the log directory
    GAPVERIFY_LOG_LEVEL  default level when none is passed
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "gapverify"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord has; anything else arrived via ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    ``extra`` fields such as ``gap_id`` or ``iteration`` become top-level keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def get_default_log_dir(workspace: Optional[Path] = None) -> Path:
    """``$GAPVERIFY_LOG_DIR`` if set, else ``<workspace>/.gapverify/logs``."""
    override = os.environ.get("GAPVERIFY_LOG_DIR")
    if override:
        return Path(override)
    return (workspace or Path.cwd()) / ".gapverify" / "logs"


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(
    run_id: Optional[str] = None,
    workspace: Optional[Path] = None,
    log_dir: Optional[Path] = None,
    log_level: Optional[str] = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    structured: bool = False,
) -> logging.Logger:
    """Attach console and file handlers to the ``gapverify`` logger.

    Repeated calls replace the handlers of the previous call, so CLI
    commands invoked in one process do not log twice. The file handler
    always records DEBUG; the console follows ``log_level``.

    Returns:
        The ``gapverify`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level = _level(log_level or os.environ.get("GAPVERIFY_LOG_LEVEL", "INFO"))
    logger.setLevel(logging.DEBUG if log_to_file else level)
    formatter = StructuredFormatter() if structured else logging.Formatter(TEXT_FORMAT, DATE_FORMAT)

    if log_to_console:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(formatter)
        logger.addHandler(console)

    if log_to_file:
        directory = log_dir or get_default_log_dir(workspace)
        directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = directory / f"{run_id or ROOT_LOGGER}_{stamp}.log"

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.debug(f"[Logging] Writing run log to {log_path}")

    return logger
