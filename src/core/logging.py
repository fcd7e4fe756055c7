"""Logging and tracing for chorely, backed by Pydantic Logfire.

Modules log through the standard library (``logging.getLogger(__name__)``).
``configure_logfire()`` routes those records into Logfire, so service code never
imports logfire directly except through ``span``.

Typical service usage:
    logger = logging.getLogger(__name__)

    with span("chore_service.create_chore"):
        logger.info("Created chore %s", chore_id)

Household-scoped events carry the group key as a structured field:
    log_with_group_context(logger, "info", "Vote recorded", group_key="123456", chore_id="abc")
"""

import logging

import logfire
from fastapi import FastAPI

from src.core.config import settings


def configure_logfire() -> None:
    """Configure Logfire and attach it to the root logger.

    Spans and records stay local unless a Logfire token is configured.
    """
    logfire.configure(
        token=settings.logfire_token,
        service_name="chorely",
        service_version="0.1.0",
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )
    logging.basicConfig(level=settings.log_level.upper(), handlers=[logfire.LogfireLoggingHandler()])

    logging.getLogger(__name__).info("Logfire configured", extra={"environment": settings.environment})


def instrument_fastapi(app: FastAPI) -> None:
    """Trace every HTTP request and WebSocket session of the app."""
    logfire.instrument_fastapi(app)
    logging.getLogger(__name__).debug("FastAPI instrumentation configured")


def span(name: str) -> logfire.LogfireSpan:
    """Open a span around one service operation, named ``<module>.<function>``."""
    return logfire.span(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: object,
) -> None:
    """Log ``message`` at ``level`` with ``context`` attached as structured fields.

    Args:
        logger: Logger instance to use
        level: Level name ("debug", "info", "warning", "error", "critical")
        message: Log message
        **context: Structured fields (chore_id, user_id, series_id, ...)
    """
    log_method = getattr(logger, level.lower())
    log_method(message, extra=context)


def log_with_group_context(
    logger: logging.Logger,
    level: str,
    message: str,
    group_key: str | None = None,
    **extra: object,
) -> None:
    """Log a household event; ``group_key`` is omitted from the fields when unknown."""
    context = {"group_key": group_key, **extra} if group_key else extra
    log_with_context(logger, level, message, **context)
