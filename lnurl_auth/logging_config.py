"""structlog configuration for the login server."""

import logging
import sys

import structlog

from .config import Settings


def setup_logging(settings: Settings) -> None:
    """
    Configure structlog from LOG_LEVEL and LOG_JSON.

    The renderer follows LOG_JSON only: JSON lines for collectors, console
    output otherwise. Values bound with structlog.contextvars (e.g. a request
    id bound by the host) are merged into every event.
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.LOG_JSON:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger().setLevel(level)
