"""Structured operation log on stderr.

User-facing output goes through the rich console in cli.py; this log is
for diagnosing what cowork did. Quiet unless COWORK_LOG_LEVEL is lowered.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


def _setup_logging() -> structlog.stdlib.BoundLogger:
    level = logging.getLevelName(os.environ.get("COWORK_LOG_LEVEL", "WARNING").upper())
    if not isinstance(level, int):
        level = logging.WARNING

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    stdlib_logger = logging.getLogger("cowork")
    stdlib_logger.handlers[:] = [handler]
    stdlib_logger.setLevel(level)
    stdlib_logger.propagate = False

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger("cowork")


logger = _setup_logging()
