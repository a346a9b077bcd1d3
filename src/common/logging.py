"""
Logging configuration helpers.
Both the CLI and any embedding web handler call `configure_logging` once at startup.
Estimator modules only create named loggers and never touch handlers themselves.
"""

from __future__ import annotations

import logging

from src.common.settings import get_settings

_LOGGING_CONFIGURED = False
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level_name: str | None = None) -> None:
    """Configure process-wide logging from settings, or an explicit level name."""

    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    resolved = (level_name or get_settings().LOG_LEVEL).upper()
    level = getattr(logging, resolved, logging.INFO)

    logging.basicConfig(level=level, format=LOG_FORMAT)
    # SQLAlchemy echoes every statement at INFO; the fan-out makes that unreadable.
    logging.getLogger("sqlalchemy.engine").setLevel(max(level, logging.WARNING))
    _LOGGING_CONFIGURED = True
