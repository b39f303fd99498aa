"""Logging utilities for the evaluation engine."""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: str = "INFO", *, renderer: str = "json") -> None:
    """Configure structlog with JSON (default) or console output."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=log_level, format="%(message)s")

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]
    if renderer == "json":
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    elif renderer == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        raise ValueError(f"Unknown log renderer: {renderer!r}")

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )
