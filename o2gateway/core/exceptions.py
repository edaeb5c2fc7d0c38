"""
O2 Gateway — Centralized Exception Taxonomy
============================================
Category-based exception hierarchy shared by every backend adapter.

Design decisions:
- One class per error kind callers match on (``NotFoundError``,
  ``AlreadyExistsError``, ``OperationNotSupportedError``,
  ``InvalidArgumentError``, ``ConnectionFailedError``,
  ``AuthenticationFailedError``, ``InternalError``)
- Severity property on each exception for error classification
- Context identifiers for correlation: backend, operation, entity_id
- Backend failures are chained with ``raise ... from exc``

Usage:
    from o2gateway.core.exceptions import NotFoundError

    raise NotFoundError(
        "resource pool not found",
        backend="dtias",
        operation="get_resource_pool",
        entity_id="pool-1",
    )
"""

from __future__ import annotations

from enum import StrEnum


class ErrorSeverity(StrEnum):
    """
    Error severity levels for exception classification.

    LOW < MEDIUM < HIGH < CRITICAL
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GatewayError(Exception):
    """
    Base exception for all gateway errors.

    All gateway exceptions inherit from this base class, providing:
    - severity: Classification for error handling/routing
    - error_code: Unique identifier for programmatic handling
    - Context identifiers: backend, operation, entity_id

    The rendered message is prefixed with the operation and entity so a
    caller can log the error without re-deriving context.
    """

    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    error_code: str = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        operation: str | None = None,
        entity_id: str | None = None,
    ) -> None:
        self.backend = backend
        self.operation = operation
        self.entity_id = entity_id
        self.reason = message
        super().__init__(self._render(message))

    def _render(self, message: str) -> str:
        prefix = []
        if self.backend:
            prefix.append(self.backend)
        if self.operation:
            prefix.append(self.operation)
        head = " ".join(prefix)
        if self.entity_id:
            head = f"{head} {self.entity_id!r}" if head else repr(self.entity_id)
        return f"{head}: {message}" if head else message

    def __repr__(self) -> str:
        parts = [
            f"{self.__class__.__name__}(",
            f"error_code={self.error_code!r}, ",
            f"severity={self.severity.value!r}",
        ]
        if self.backend:
            parts.append(f", backend={self.backend!r}")
        if self.operation:
            parts.append(f", operation={self.operation!r}")
        if self.entity_id:
            parts.append(f", entity_id={self.entity_id!r}")
        parts.append(")")
        return "".join(parts)


# ── Request Errors ────────────────────────────────────────────────────────


class NotFoundError(GatewayError):
    """Raised when the requested entity does not exist in the backend."""

    severity = ErrorSeverity.LOW
    error_code = "NOT_FOUND"


class AlreadyExistsError(GatewayError):
    """Raised when a create collides with an existing identifier."""

    severity = ErrorSeverity.LOW
    error_code = "ALREADY_EXISTS"


class OperationNotSupportedError(GatewayError):
    """Raised when the backend structurally cannot perform the request."""

    severity = ErrorSeverity.LOW
    error_code = "OPERATION_NOT_SUPPORTED"


class InvalidArgumentError(GatewayError):
    """Raised when a request is malformed (empty required field, negative count)."""

    severity = ErrorSeverity.LOW
    error_code = "INVALID_ARGUMENT"


# ── Backend Errors ────────────────────────────────────────────────────────


class BackendError(GatewayError):
    """Errors raised while talking to a backend system."""

    severity = ErrorSeverity.HIGH
    error_code = "BACKEND_ERROR"


class ConnectionFailedError(BackendError):
    """Raised when the backend is unreachable or keeps failing transiently."""

    error_code = "CONNECTION_FAILED"


class AuthenticationFailedError(BackendError):
    """Raised when the backend rejects the configured credentials."""

    error_code = "AUTHENTICATION_FAILED"


class DeadlineExceededError(BackendError):
    """Raised when a backend call does not finish within its time bound."""

    severity = ErrorSeverity.MEDIUM
    error_code = "DEADLINE_EXCEEDED"


class InternalError(GatewayError):
    """Raised on unexpected translation or marshaling failures."""

    severity = ErrorSeverity.CRITICAL
    error_code = "INTERNAL_ERROR"


# ── Configuration Exceptions ──────────────────────────────────────────────


class ConfigurationError(GatewayError):
    """Errors in configuration (missing settings, invalid values)."""

    severity = ErrorSeverity.HIGH
    error_code = "CONFIGURATION_ERROR"


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration is missing."""

    error_code = "MISSING_CONFIGURATION_ERROR"
