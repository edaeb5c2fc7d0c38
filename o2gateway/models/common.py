"""
O2 Gateway — Shared Model Primitives
=====================================
Capability enumeration and the extension-bag type shared by the IMS and
DMS models.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

# Namespaced ``"<backend>.<field>"`` keys to loosely typed native values.
# Consumers treat keys from unknown backends as opaque.
Extensions = dict[str, Any]


class Capability(StrEnum):
    """Features an adapter advertises statically at construction time."""

    RESOURCE_POOLS = "resource-pools"
    RESOURCES = "resources"
    RESOURCE_TYPES = "resource-types"
    DEPLOYMENT_MANAGERS = "deployment-managers"
    SUBSCRIPTIONS = "subscriptions"
    HEALTH_CHECKS = "health-checks"
    PACKAGE_MANAGEMENT = "package-management"
    DEPLOYMENT_LIFECYCLE = "deployment-lifecycle"
    ROLLBACK = "rollback"
    SCALING = "scaling"
    METRICS = "metrics"
    GITOPS = "gitops"


def namespaced(prefix: str, values: dict[str, Any]) -> Extensions:
    """Prefix every key of ``values`` with ``"<prefix>."``."""
    return {f"{prefix}.{key}": value for key, value in values.items()}
