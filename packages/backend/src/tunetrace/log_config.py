"""structlog configuration.

Learn: Modules just call structlog.get_logger() and log dotted event
names with keyword context. This decides how those lines are rendered:
JSON in production (one object per line for log aggregation), colored
console output everywhere else. merge_contextvars pulls in whatever the
request-id middleware bound for the current request.
"""

import logging

import structlog

from tunetrace.config import Settings


def configure_logging(config: Settings) -> None:
    level = logging.DEBUG if config.debug else logging.INFO

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if config.environment == "production":
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=config.environment == "development")]

    structlog.configure(
        processors=shared_processors + renderers,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
