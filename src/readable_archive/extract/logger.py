"""Extraction logger.

Loggers handed to processors are regular structlog loggers with one more
processor at the head of the chain. It copies every entry, as a short text
line, into the extraction log, and entries at error level or above into the
extraction error list.
"""

import logging
from typing import Any

import structlog

_ERROR_LEVELS = frozenset({"error", "exception", "critical", "fatal"})
_LEVEL_NAMES = {"exception": "error", "warn": "warning", "msg": "info"}
_SKIPPED_KEYS = frozenset({"event", "exc_info", "stack_info"})
_LEVEL_NUMBERS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "exception": logging.ERROR,
    "critical": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}


def format_entry(method_name: str, event_dict: dict[str, Any], with_prefix: bool = True) -> str:
    """Format a log entry as ``[LEVL] event key="value" ...``."""
    parts = []
    if with_prefix:
        level = _LEVEL_NAMES.get(method_name, method_name)
        parts.append(f"[{level.upper()[:4]}]")

    event = event_dict.get("event")
    if event:
        parts.append(str(event))

    for key, value in event_dict.items():
        if key in _SKIPPED_KEYS:
            continue
        parts.append(f'{key}="{value}"')

    return " ".join(parts)


class LogCapture:
    """structlog processor that records entries into lists."""

    def __init__(self, logs: list[str], errors: list[str]) -> None:
        self.logs = logs
        self.errors = errors

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        self.logs.append(format_entry(method_name, event_dict))
        if method_name in _ERROR_LEVELS:
            self.errors.append(format_entry(method_name, event_dict, with_prefix=False))
        return event_dict


def drop_below(level: str):
    """Return a processor dropping the entries under ``level``."""
    threshold = _LEVEL_NUMBERS.get(level.lower(), logging.INFO)

    def _filter(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        if _LEVEL_NUMBERS.get(method_name, logging.INFO) < threshold:
            raise structlog.DropEvent
        return event_dict

    return _filter


def new_extract_logger(
    logs: list[str], errors: list[str], level: str = "info", **context: Any
) -> Any:
    """
    Return a logger that also records its entries in ``logs`` and ``errors``.

    Every entry is recorded, debug included. Entries then flow through the
    globally configured processors, filtered at ``level``.
    """
    processors = [
        LogCapture(logs, errors),
        drop_below(level),
        *structlog.get_config()["processors"],
    ]
    return structlog.wrap_logger(
        None,
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        **context,
    )
