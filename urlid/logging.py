"""Logging configuration helpers for urlid."""

from __future__ import annotations

import logging
import sys

import structlog

from urlid import config

_CONFIGURED = False


def configure_logging(level: str | None = None, json: bool | None = None, force: bool = False) -> None:
    """Configure structlog once; later calls are no-ops unless force=True."""
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    level_name = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level_name, logging.WARNING),
        force=force,
    )

    use_json = config.LOG_JSON if json is None else json
    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


__all__ = ["configure_logging", "get_logger"]
