"""
O2 Gateway — Logging Tests
===========================
Validates:
- Gateway name and environment stamped on every entry
- Correlation ID added only when one is set, never overriding a caller's
- configure_logging renders adapter events and quiets SDK loggers
"""

from __future__ import annotations

import logging

from o2gateway.core.logging import QUIET_LOGGERS, _add_gateway_context
from o2gateway.core.tracing import correlation_id_ctx


def test_gateway_context_added(settings):
    event = _add_gateway_context(None, "info", {"event": "dtias.request_retry"})

    assert event["app"] == "o2-gateway"
    assert event["environment"] == "development"
    assert "correlation_id" not in event


def test_correlation_id_injected(settings):
    token = correlation_id_ctx.set("log-test-cid")
    try:
        event = _add_gateway_context(None, "info", {"event": "helm_adapter.closed"})
        explicit = _add_gateway_context(
            None, "info", {"event": "helm_adapter.closed", "correlation_id": "caller"}
        )
    finally:
        correlation_id_ctx.reset(token)

    assert event["correlation_id"] == "log-test-cid"
    assert explicit["correlation_id"] == "caller"


def test_structured_log_output(settings, capsys):
    from o2gateway.core.logging import configure_logging, get_logger

    configure_logging()
    logger = get_logger("test")
    logger.info("argocd_adapter.application_created", name="web")

    out = capsys.readouterr().out
    assert "argocd_adapter.application_created" in out
    assert all(logging.getLogger(n).level == logging.WARNING for n in QUIET_LOGGERS)
