"""Shared logging helpers for the agent and the tray launcher."""
from __future__ import annotations

import logging
import os
import sys
import tempfile
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "DarkBinding"
LOG_FILE_NAME = "dark-binding.log"
LOG_DIR_NAME = "logs"
LOG_LEVEL_ENV_VAR = "DARK_BINDING_LOG_LEVEL"
MAX_LOG_BYTES = 512 * 1024
DEFAULT_LOG_RETENTION = 5


def resolve_logs_dir(base_dir: Path, log_dir_name: str = LOG_DIR_NAME) -> Path:
    """Return (and create) the directory that holds the agent's log files.

    Falls back to a directory under the system temp dir when ``base_dir`` is
    not writable.
    """

    logs_dir = Path(base_dir) / log_dir_name
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        logs_dir = Path(tempfile.gettempdir()) / "dark-binding" / log_dir_name
        logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def build_formatter() -> logging.Formatter:
    formatter = logging.Formatter(
        "%(asctime)s.%(msecs)03d UTC - %(levelname)s - %(name)s - %(message)s",
        "%Y-%m-%d %H:%M:%S",
    )
    formatter.converter = time.gmtime
    return formatter


def build_rotating_file_handler(
    logs_dir: Path,
    file_name: str,
    *,
    retention: int,
    max_bytes: int,
    formatter: logging.Formatter,
) -> RotatingFileHandler:
    """Rotating handler keeping ``retention`` files in total (live plus backups)."""

    logs_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        logs_dir / file_name,
        maxBytes=max_bytes,
        backupCount=max(0, int(retention) - 1),
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def resolve_log_level(debug_enabled: bool) -> int:
    """DEBUG when requested, INFO otherwise; ``DARK_BINDING_LOG_LEVEL`` wins when valid."""

    override = os.getenv(LOG_LEVEL_ENV_VAR)
    if override:
        candidate = getattr(logging, override.strip().upper(), None)
        if isinstance(candidate, int):
            return candidate
    return logging.DEBUG if debug_enabled else logging.INFO


def configure_agent_logging(
    *,
    level: int,
    retention: int = DEFAULT_LOG_RETENTION,
    logs_dir: Optional[Path] = None,
    console: bool = True,
) -> logging.Logger:
    """Attach handlers to the ``DarkBinding`` logger and return it.

    Calling again replaces the handlers installed by a previous call. When the
    log directory cannot be used, logging continues on stderr only.
    """

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.propagate = False
    formatter = build_formatter()

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if logs_dir is not None:
        try:
            handler = build_rotating_file_handler(
                logs_dir,
                LOG_FILE_NAME,
                retention=retention,
                max_bytes=MAX_LOG_BYTES,
                formatter=formatter,
            )
        except OSError as exc:
            if not console:
                fallback = logging.StreamHandler(sys.stderr)
                fallback.setFormatter(formatter)
                logger.addHandler(fallback)
            logger.warning("Failed to initialise file logging in %s: %s", logs_dir, exc)
        else:
            logger.addHandler(handler)
            logger.debug(
                "Agent logging initialised: path=%s retention=%d max_bytes=%d backup_count=%d",
                logs_dir / LOG_FILE_NAME,
                retention,
                MAX_LOG_BYTES,
                max(0, retention - 1),
            )
    return logger
