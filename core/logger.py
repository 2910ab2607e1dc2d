"""Structured logging — JSON outside dev, coloured console in dev.

Every record carries ``service`` (``APP_NAME``) and ``chain_id`` so that
settlement logs from several markets can share one sink.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog

from config.settings import settings

_configured = False


def _add_market_context(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", settings.APP_NAME)
    event_dict.setdefault("chain_id", settings.CHAIN_ID)
    return event_dict


def setup_logging(
    level: str | None = None,
    stream: TextIO | None = None,
    force: bool = False,
) -> None:
    """Configure structlog processors and stdlib integration.

    Only the first call (or ``force=True``) touches the root logger.
    *level* defaults to ``LOG_LEVEL``; *stream* defaults to stderr so
    that CLI output on stdout stays machine readable.
    """
    global _configured
    if _configured and not force:
        return

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_market_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.APP_ENV == "dev":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL).upper())
    _configured = True
