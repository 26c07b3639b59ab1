# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

"""Logging handlers for the two entry points."""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from tokengauge_core.core.constants import ENV_LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
HANDLER_NAME = "tokengauge-app"


def resolve_level(default: int = logging.WARNING) -> int:
    """Level named by $TOKENGAUGE_LOG_LEVEL, or ``default``."""
    name = os.environ.get(ENV_LOG_LEVEL, "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def _build_console_handler() -> logging.Handler:
    # stdout belongs to the status-bar payload
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("tokengauge: %(levelname)s: %(message)s"))
    return handler


def _build_file_handler(log_file: Path) -> Optional[logging.Handler]:
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        sys.stderr.write(f"tokengauge: cannot open log file {log_file}: {e}\n")
        return None
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_logging(
    log_file: Optional[Path] = None,
    default_level: int = logging.WARNING,
) -> logging.Logger:
    """
    Attach handlers to the library logger.

    Args:
        log_file: Log to this file instead of stderr (the dashboard owns
            the terminal)
        default_level: Level used when $TOKENGAUGE_LOG_LEVEL is unset

    Returns:
        The configured "tokengauge" logger
    """
    logger = logging.getLogger("tokengauge")
    logger.setLevel(resolve_level(default_level))

    handler = _build_file_handler(log_file) if log_file is not None else None
    if handler is None and log_file is None:
        handler = _build_console_handler()
    for old in [h for h in logger.handlers if h.get_name() == HANDLER_NAME]:
        logger.removeHandler(old)
        old.close()
    if handler is not None:
        handler.set_name(HANDLER_NAME)
        logger.addHandler(handler)
    logger.propagate = False
    return logger
