"""
Structured logging setup.

Shared by the API (main.py) and the scheduled reconciliation script so
both emit the same event format.
"""

import logging
import sys

import structlog

from config.settings import Settings


def configure_logging(app_settings: Settings) -> None:
    """
    Configure structlog on top of stdlib logging.

    JSON lines in production, colored console output elsewhere.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, app_settings.log_level),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer() if app_settings.is_production
                else structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
