"""Logging setup for the modgraph command line."""

from __future__ import annotations

import logging
from typing import TextIO

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that log every HTTP request at debug level
NOISY_LOGGERS = ("urllib3", "requests")


def setup_logger(level: str, stream: TextIO | None = None) -> int:
    """Send every log record at or above `level` to stderr (or `stream`) through a single handler.

    Unknown level names fall back to `INFO`. HTTP client libraries stay at `WARNING` unless `level` is
    `DEBUG`. Returns the numeric level that was applied.
    """
    level_value = logging.getLevelName(level.upper())
    if not isinstance(level_value, int):
        level_value = logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level_value <= logging.DEBUG else logging.WARNING)
    return level_value
