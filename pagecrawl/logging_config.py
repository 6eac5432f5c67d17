"""One JSON object per log line, tagged with the service name."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from pythonjsonlogger.json import JsonFormatter

SERVICE_NAME = "pagecrawl"

# Server loggers routed through the root handler instead of their own.
SERVER_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")

# Client libraries that log each media download or LLM call at INFO/DEBUG.
QUIET_LOGGERS = ("httpx", "httpcore")


def json_formatter() -> JsonFormatter:
    return JsonFormatter(
        "{asctime}{levelname}{name}{message}",
        style="{",
        rename_fields={"asctime": "time", "levelname": "level", "name": "logger"},
        static_fields={"service": SERVICE_NAME},
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )


def setup_logging(log_level: str = "INFO", stream: TextIO | None = None) -> logging.Handler:
    """Install a JSON handler on the root logger and return it.

    Unknown level names fall back to INFO. Crawl and job records carry their
    ``extra=`` fields (url, job id, attempt) as top-level keys.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(json_formatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.propagate = True

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return handler
