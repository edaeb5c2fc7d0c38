"""
O2 Gateway — Exception Taxonomy Tests
======================================
Validates:
- Error kinds and their codes/severities
- Rendered messages carry backend, operation and entity context
- Backend-error subclassing used by callers to classify failures
"""

from __future__ import annotations

import pytest

from o2gateway.core.exceptions import (
    AuthenticationFailedError,
    BackendError,
    ConfigurationError,
    ConnectionFailedError,
    DeadlineExceededError,
    ErrorSeverity,
    GatewayError,
    MissingConfigurationError,
    NotFoundError,
    OperationNotSupportedError,
)


def test_message_includes_context():
    err = NotFoundError(
        "resource pool not found",
        backend="dtias",
        operation="get_resource_pool",
        entity_id="pool-1",
    )

    assert str(err) == "dtias get_resource_pool 'pool-1': resource pool not found"
    assert err.reason == "resource pool not found"
    assert err.error_code == "NOT_FOUND"
    assert err.severity is ErrorSeverity.LOW


def test_message_without_context():
    assert str(GatewayError("plain")) == "plain"


def test_message_entity_only():
    assert str(GatewayError("gone", entity_id="x")) == "'x': gone"


@pytest.mark.parametrize(
    "cls",
    [ConnectionFailedError, AuthenticationFailedError, DeadlineExceededError],
)
def test_backend_error_family(cls):
    err = cls("failure", backend="aws")
    assert isinstance(err, BackendError)
    assert isinstance(err, GatewayError)


def test_not_supported_is_not_backend_error():
    err = OperationNotSupportedError("no rollback", backend="crossplane")
    assert not isinstance(err, BackendError)


def test_missing_configuration_is_configuration_error():
    err = MissingConfigurationError("repository URL not configured", backend="helm")
    assert isinstance(err, ConfigurationError)
    assert err.error_code == "MISSING_CONFIGURATION_ERROR"


def test_repr_lists_context():
    err = NotFoundError("x", backend="helm", operation="get_deployment", entity_id="web")
    text = repr(err)
    assert "NotFoundError(" in text
    assert "backend='helm'" in text
    assert "entity_id='web'" in text
