"""Centralized structlog configuration for the KPI engine and CLI."""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import Processor

LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

LOG_FORMATS = ("console", "json")


def _resolve_level(level: str) -> int:
    """Map a level name onto its numeric value."""
    normalized = level.lower()
    if normalized not in LOG_LEVELS:
        valid = ", ".join(sorted(LOG_LEVELS))
        raise ValueError(f"Unsupported log level {level!r}. Choose one of: {valid}.")
    return LOG_LEVELS[normalized]


def _renderer(fmt: str) -> Processor:
    """Return the final processor for the requested output format."""
    normalized = fmt.lower()
    if normalized == "json":
        return structlog.processors.JSONRenderer(sort_keys=True)
    if normalized == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    raise ValueError(f"Unsupported log format {fmt!r}. Choose one of: {', '.join(LOG_FORMATS)}.")


def configure_logging(level: str = "warning", *, fmt: str = "console") -> None:
    """Route structlog events through stdlib logging on stderr.

    The engine logs rejected records and recompute decisions; the CLI
    configures this once per invocation.
    """
    level_value = _resolve_level(level)
    renderer = _renderer(fmt)

    logging.basicConfig(level=level_value, format="%(message)s", stream=sys.stderr)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


__all__ = ["LOG_FORMATS", "LOG_LEVELS", "configure_logging"]
