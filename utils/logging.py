from __future__ import annotations

import logging
import os
import sys
from typing import Any, List, Optional

import structlog

from utils.env_loader import load_environments


def configure_logging(level: Optional[str] = None, json_format: Optional[bool] = None) -> None:
    """Configure structlog for the process.

    ``level`` defaults to ``LOG_LEVEL`` (INFO). ``json_format`` defaults to
    ``LOG_JSON`` and, when that is unset, to JSON whenever stdout is not a tty.
    """
    load_environments()
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    if json_format is None:
        raw = os.getenv("LOG_JSON")
        json_format = raw.strip().lower() in {"1", "true", "yes"} if raw else not sys.stdout.isatty()

    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )


def get_logger(name: Optional[str] = None) -> Any:
    return structlog.get_logger(name)
