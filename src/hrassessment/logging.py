"""Logging utilities for the assessment engine."""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: str = "INFO", *, fmt: str = "json") -> None:
    """Configure structlog with JSON output, or a console renderer when ``fmt`` is ``"console"``.

    Context variables bound with ``structlog.contextvars`` (background task
    name and id) are merged into every event.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=log_level, format="%(message)s")

    renderer = structlog.dev.ConsoleRenderer() if fmt == "console" else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.dict_tracebacks,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )
