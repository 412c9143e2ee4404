"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import sys
from typing import Any, Iterable

import structlog

from gemini_relay.core.errors import Redactor


def _redacting_processor(redactor: Redactor):
    def _processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        for key, value in event_dict.items():
            if key == "exc_info":
                continue
            if isinstance(value, (str, BaseException)):
                event_dict[key] = redactor.redact(value)
        return event_dict

    return _processor


def setup_logging(level: str = "INFO", secrets: Iterable[str] = ()) -> None:
    """Configure structlog with console output and secret redaction."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            _redacting_processor(Redactor(secrets)),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named logger instance."""
    return structlog.get_logger(name)
