"""
O2 Gateway — Tracing Tests
===========================
Validates:
- TracingContext captures correlation ID from context
- Span timing and lifecycle
- Header injection for outgoing backend calls
"""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest

from o2gateway.core.tracing import Span, TracingContext, correlation_id_ctx, create_span


# ── TracingContext Tests ────────────────────────────────────────────────


def test_tracing_context_from_context_var():
    """TracingContext.current() reads from the correlation_id_ctx."""
    with patch("o2gateway.core.tracing.correlation_id_ctx") as mock_ctx:
        mock_ctx.get.return_value = "test-correlation-123"
        ctx = TracingContext.current()

    assert ctx.correlation_id == "test-correlation-123"


def test_tracing_context_without_correlation_id():
    assert TracingContext.current().correlation_id is None


def test_correlation_id_context_isolation():
    """Context variable is properly scoped and reset."""
    assert correlation_id_ctx.get(None) is None

    token = correlation_id_ctx.set("isolated-id")
    assert TracingContext.current().correlation_id == "isolated-id"
    correlation_id_ctx.reset(token)

    assert correlation_id_ctx.get(None) is None


# ── Header Injection Tests ─────────────────────────────────────────────


def test_inject_headers_with_correlation_id():
    ctx = TracingContext(correlation_id="abc-123")
    headers = ctx.inject_headers({})

    assert headers == {"X-Correlation-ID": "abc-123"}


def test_inject_headers_without_correlation_id():
    ctx = TracingContext(correlation_id=None)
    assert ctx.inject_headers({}) == {}


def test_inject_headers_preserves_existing():
    """inject_headers does not drop existing headers."""
    ctx = TracingContext(correlation_id="abc-123")
    headers = ctx.inject_headers({"Authorization": "Bearer token"}, "X-Request-ID")

    assert headers["Authorization"] == "Bearer token"
    assert headers["X-Request-ID"] == "abc-123"


# ── Span Tests ─────────────────────────────────────────────────────────


def test_span_creation():
    """Span is created with name and auto-generated ID."""
    span = Span(name="dtias.request")
    assert span.name == "dtias.request"
    assert len(span.span_id) == 16
    assert span.end_time is None
    assert span.duration_ms is None


def test_span_close():
    """Closing a span records end time and computes duration."""
    span = Span(name="dtias.request")
    time.sleep(0.01)
    span.close()

    assert span.duration_ms is not None
    assert span.duration_ms > 0


def test_span_close_idempotent():
    span = Span(name="dtias.request")
    span.close()
    first_end = span.end_time
    span.close()
    assert span.end_time == first_end


def test_create_span_closes_on_error():
    """The span is closed even when the body raises."""
    with pytest.raises(RuntimeError):
        with create_span("aws.describe_instances", region="us-east-1") as span:
            raise RuntimeError("boom")

    assert span.end_time is not None
    assert span.metadata == {"region": "us-east-1"}
