"""
Structured logging setup.

Every module logs through structlog with snake_case event names and
key/value context, e.g.::

    logger.info("collection_refetched", table="expenses", count=12)

configure_logging() is called once by the orchestrator. Until then
structlog falls back to its defaults, which is what tests see.
"""

import logging
import sys

import structlog


_configured = False


def configure_logging(level: str = "INFO", json: bool = True) -> None:
    """Configure structlog on top of the stdlib logging module."""
    global _configured

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def is_configured() -> bool:
    return _configured
