"""structlog setup."""

import logging
import sys

import structlog

from readable_archive.config import Settings, settings


def configure_logging(config: Settings | None = None) -> None:
    """
    Configure structlog for the process.

    Entries are rendered for the console, or as JSON lines when
    ``log_json`` is set, at the configured level (``debug`` forces DEBUG).
    """
    config = config or settings
    level_name = "DEBUG" if config.debug else config.log_level.upper()
    level = logging.getLevelNamesMapping().get(level_name, logging.INFO)

    renderers = (
        [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
        if config.log_json
        else [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            *renderers,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
