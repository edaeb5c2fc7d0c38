"""
O2 Gateway — Structured Logging
================================
structlog over the stdlib root logger. Every entry carries the gateway's
name and environment, plus the request's correlation ID when a caller set
one, so a DTIAS retry and the Helm release it belongs to line up in the
log stream.

Event names are ``<component>.<what_happened>`` (``dtias.request_retry``,
``helm_adapter.release_installed``); the backend rides along as a field.

Usage:
    from o2gateway.core.logging import get_logger
    logger = get_logger(__name__)
    logger.info("dtias.request_retry", attempt=2, path="/server-pools")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from o2gateway.core.config import Settings, get_settings
from o2gateway.core.tracing import correlation_id_ctx

# SDK and transport loggers that drown out adapter events at INFO.
QUIET_LOGGERS = ("botocore", "aiobotocore", "httpx", "httpcore", "kubernetes_asyncio")


def _add_gateway_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp gateway name, environment and correlation ID; explicit fields win."""
    settings = get_settings()
    event_dict.setdefault("app", settings.app_name)
    event_dict.setdefault("environment", settings.environment.value)
    cid = correlation_id_ctx.get(None)
    if cid is not None:
        event_dict.setdefault("correlation_id", cid)
    return event_dict


def _renderer(settings: Settings) -> Processor:
    if settings.log_format == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging() -> None:
    """Route structlog and stdlib records through one stdout handler.

    Call once per process, before the first adapter is built.
    """
    settings = get_settings()

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _add_gateway_context,
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(settings.log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structured logger named after the calling module."""
    return structlog.get_logger(name)
