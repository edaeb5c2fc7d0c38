"""
O2 Gateway — Correlation & Span Tracing
========================================
Correlation ID propagation and span timing for outgoing backend calls.

The front end that dispatches O2-IMS / O2-DMS requests sets
``correlation_id_ctx``; the logging processors and the REST client read it
so backend requests and log lines can be joined.

Usage:
    from o2gateway.core.tracing import TracingContext, create_span

    ctx = TracingContext.current()
    with create_span("dtias.request", path="/server-pools") as span:
        headers = ctx.inject_headers({})
    print(span.duration_ms)
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Generator

correlation_id_ctx: ContextVar[str | None] = ContextVar(
    "correlation_id", default=None
)


@dataclass
class Span:
    """A single timed span within a trace."""

    name: str
    span_id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    start_time: float = field(default_factory=time.monotonic)
    end_time: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float | None:
        """Duration in milliseconds, or None if still open."""
        if self.end_time is None:
            return None
        return round((self.end_time - self.start_time) * 1000, 2)

    def close(self) -> None:
        """Close the span, recording end time."""
        if self.end_time is None:
            self.end_time = time.monotonic()


@dataclass
class TracingContext:
    """Holds the correlation ID for the current request."""

    correlation_id: str | None = None

    @classmethod
    def current(cls) -> TracingContext:
        """Create a TracingContext from the current context variable."""
        return cls(correlation_id=correlation_id_ctx.get(None))

    def inject_headers(
        self, headers: dict[str, str], header_name: str = "X-Correlation-ID"
    ) -> dict[str, str]:
        """Add the correlation header to an outgoing request when one is set."""
        if self.correlation_id:
            headers[header_name] = self.correlation_id
        return headers


@contextmanager
def create_span(name: str, **metadata: Any) -> Generator[Span, None, None]:
    """
    Context manager that creates and auto-closes a timed span.

    Usage:
        with create_span("aws.describe_instances", region="us-east-1") as span:
            ...
        print(span.duration_ms)
    """
    span = Span(name=name, metadata=metadata)
    try:
        yield span
    finally:
        span.close()
