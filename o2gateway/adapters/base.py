"""
O2 Gateway — Adapter Contract
==============================
The single polymorphic surface every backend variant implements.

Callers hold an instance typed as ``InfrastructureAdapter`` (O2-IMS) or
``DeploymentAdapter`` (O2-DMS) and are otherwise unaware of the backend.

Contract:
- ``name`` / ``version`` / ``capabilities`` are static; the capability set
  is fixed at construction and never mutated.
- Callers check ``supports(capability)`` before invoking an operation a
  backend may reject with ``OperationNotSupportedError``.
- Every operation is a coroutine. Task cancellation propagates as
  ``asyncio.CancelledError`` and is never wrapped; backend errors are
  always re-raised as a typed gateway error carrying the operation name
  and entity identifier.
- ``close()`` is idempotent and resets subscriptions and client handles;
  later calls re-initialize lazily.
"""

from __future__ import annotations

import abc
import re
from typing import ClassVar

from o2gateway.core.exceptions import (
    InvalidArgumentError,
    OperationNotSupportedError,
)
from o2gateway.core.subscriptions import PollingRecommendation, SubscriptionStore
from o2gateway.models.common import Capability
from o2gateway.models.dms import (
    Deployment,
    DeploymentFilter,
    DeploymentHistory,
    DeploymentPackage,
    DeploymentPackageUpload,
    DeploymentRequest,
    DeploymentStatusDetail,
    DeploymentUpdate,
    LogOptions,
)
from o2gateway.models.ims import (
    DeploymentManager,
    Filter,
    Resource,
    ResourcePool,
    ResourceType,
    Subscription,
)

_DNS1123_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def validate_dns1123_name(name: str, *, backend: str, operation: str) -> str:
    """Reject names Kubernetes-style backends would refuse."""
    if not name:
        raise InvalidArgumentError(
            "name cannot be empty", backend=backend, operation=operation
        )
    if len(name) > 63:
        raise InvalidArgumentError(
            "name too long (max 63 chars)",
            backend=backend,
            operation=operation,
            entity_id=name,
        )
    if not _DNS1123_LABEL.match(name):
        raise InvalidArgumentError(
            "name must be DNS-1123 compliant",
            backend=backend,
            operation=operation,
            entity_id=name,
        )
    return name


def validate_non_negative(
    value: int, field_name: str, *, backend: str, operation: str, entity_id: str
) -> int:
    if value < 0:
        raise InvalidArgumentError(
            f"{field_name} must be non-negative",
            backend=backend,
            operation=operation,
            entity_id=entity_id,
        )
    return value


class GatewayAdapter(abc.ABC):
    """Self-description, health and lifecycle shared by every backend."""

    NAME: ClassVar[str]
    VERSION: ClassVar[str]
    CAPABILITIES: ClassVar[frozenset[Capability]]

    def __init__(self) -> None:
        self._capabilities = frozenset(self.CAPABILITIES)

    @property
    def name(self) -> str:
        return self.NAME

    @property
    def version(self) -> str:
        return self.VERSION

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self._capabilities

    def supports(self, capability: Capability) -> bool:
        return capability in self._capabilities

    def _not_supported(
        self, operation: str, reason: str, entity_id: str | None = None
    ) -> OperationNotSupportedError:
        return OperationNotSupportedError(
            reason, backend=self.NAME, operation=operation, entity_id=entity_id
        )

    @abc.abstractmethod
    async def health(self) -> None:
        """Probe backend connectivity and credentials within the health bound."""
        ...

    @abc.abstractmethod
    async def close(self) -> None:
        """Release connections and reset adapter-owned state. Idempotent."""
        ...

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


# ── O2-IMS ──────────────────────────────────────────────────────────────


class InfrastructureAdapter(GatewayAdapter):
    """
    O2-IMS contract: resource pools, resources, resource types, the
    deployment manager and inventory subscriptions.

    Backends with an in-memory subscription store set ``_subscriptions``;
    backends without one leave it ``None`` and every subscription call is
    rejected with ``OperationNotSupportedError``.
    """

    def __init__(self) -> None:
        super().__init__()
        self._subscriptions: SubscriptionStore | None = None

    @abc.abstractmethod
    async def get_deployment_manager(self, deployment_manager_id: str) -> DeploymentManager:
        ...

    @abc.abstractmethod
    async def list_resource_pools(self, flt: Filter | None = None) -> list[ResourcePool]:
        ...

    @abc.abstractmethod
    async def get_resource_pool(self, resource_pool_id: str) -> ResourcePool:
        ...

    @abc.abstractmethod
    async def create_resource_pool(self, pool: ResourcePool) -> ResourcePool:
        ...

    @abc.abstractmethod
    async def update_resource_pool(
        self, resource_pool_id: str, pool: ResourcePool
    ) -> ResourcePool:
        ...

    @abc.abstractmethod
    async def delete_resource_pool(self, resource_pool_id: str) -> None:
        ...

    @abc.abstractmethod
    async def list_resources(self, flt: Filter | None = None) -> list[Resource]:
        ...

    @abc.abstractmethod
    async def get_resource(self, resource_id: str) -> Resource:
        ...

    @abc.abstractmethod
    async def create_resource(self, resource: Resource) -> Resource:
        ...

    @abc.abstractmethod
    async def update_resource(self, resource_id: str, resource: Resource) -> Resource:
        ...

    @abc.abstractmethod
    async def delete_resource(self, resource_id: str) -> None:
        ...

    @abc.abstractmethod
    async def list_resource_types(self, flt: Filter | None = None) -> list[ResourceType]:
        ...

    @abc.abstractmethod
    async def get_resource_type(self, resource_type_id: str) -> ResourceType:
        ...

    # ── Subscriptions ───────────────────────────────────────────────────

    def _store(self, operation: str) -> SubscriptionStore:
        if self._subscriptions is None:
            raise self._not_supported(
                operation, "backend has no subscription support; poll instead"
            )
        return self._subscriptions

    async def create_subscription(self, sub: Subscription) -> Subscription:
        return self._store("create_subscription").create(sub)

    async def get_subscription(self, subscription_id: str) -> Subscription:
        return self._store("get_subscription").get(subscription_id)

    async def update_subscription(
        self, subscription_id: str, sub: Subscription
    ) -> Subscription:
        return self._store("update_subscription").update(subscription_id, sub)

    async def delete_subscription(self, subscription_id: str) -> None:
        self._store("delete_subscription").delete(subscription_id)

    async def list_subscriptions(self) -> list[Subscription]:
        return self._store("list_subscriptions").list()

    def polling_recommendation(self) -> PollingRecommendation | None:
        """Polling guidance for backends without native change notification."""
        return None


# ── O2-DMS ──────────────────────────────────────────────────────────────


class DeploymentAdapter(GatewayAdapter):
    """O2-DMS contract: deployment packages and deployment lifecycle."""

    @abc.abstractmethod
    async def list_deployment_packages(
        self, flt: DeploymentFilter | None = None
    ) -> list[DeploymentPackage]:
        ...

    @abc.abstractmethod
    async def get_deployment_package(self, package_id: str) -> DeploymentPackage:
        ...

    @abc.abstractmethod
    async def upload_deployment_package(
        self, pkg: DeploymentPackageUpload
    ) -> DeploymentPackage:
        ...

    @abc.abstractmethod
    async def delete_deployment_package(self, package_id: str) -> None:
        ...

    @abc.abstractmethod
    async def list_deployments(
        self, flt: DeploymentFilter | None = None
    ) -> list[Deployment]:
        ...

    @abc.abstractmethod
    async def get_deployment(self, deployment_id: str) -> Deployment:
        ...

    @abc.abstractmethod
    async def create_deployment(self, req: DeploymentRequest) -> Deployment:
        ...

    @abc.abstractmethod
    async def update_deployment(
        self, deployment_id: str, update: DeploymentUpdate
    ) -> Deployment:
        ...

    @abc.abstractmethod
    async def delete_deployment(self, deployment_id: str) -> None:
        ...

    @abc.abstractmethod
    async def scale_deployment(self, deployment_id: str, replicas: int) -> None:
        ...

    @abc.abstractmethod
    async def rollback_deployment(self, deployment_id: str, revision: int) -> None:
        ...

    @abc.abstractmethod
    async def get_deployment_status(self, deployment_id: str) -> DeploymentStatusDetail:
        ...

    @abc.abstractmethod
    async def get_deployment_history(self, deployment_id: str) -> DeploymentHistory:
        ...

    @abc.abstractmethod
    async def get_deployment_logs(
        self, deployment_id: str, opts: LogOptions | None = None
    ) -> bytes:
        ...

    def supports_rollback(self) -> bool:
        return self.supports(Capability.ROLLBACK)

    def supports_scaling(self) -> bool:
        return self.supports(Capability.SCALING)

    def supports_gitops(self) -> bool:
        return self.supports(Capability.GITOPS)
