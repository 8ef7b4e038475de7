from __future__ import annotations

import logging
import os
import sys

import structlog


def configure_logging(*, force: bool = False) -> None:
    """
    Send structlog output to stderr; stdout is reserved for answers and
    puzzle input. Leaves an existing configuration alone unless `force`.
    """
    if structlog.is_configured() and not force:
        return
    log_level = (os.getenv("AOCD_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level, logging.INFO)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
