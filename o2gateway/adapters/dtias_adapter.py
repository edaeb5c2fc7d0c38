"""
O2 Gateway — Dell DTIAS Bare-Metal Adapter
===========================================
O2-IMS over the DTIAS REST API.

Mapping:
- server pools  → resource pools
- servers       → resources
- server types  → resource types
- one datacenter → the deployment manager

DTIAS has no change-notification mechanism. Subscriptions are kept in an
adapter-local store and ``polling_recommendation()`` tells the gateway how
to detect changes by polling.

Usage:
    async with DtiasAdapter(DtiasConfig(...)) as adapter:
        pools = await adapter.list_resource_pools(Filter(location="dc-1"))
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from o2gateway.adapters.base import InfrastructureAdapter
from o2gateway.core.concurrency import InitGuard, bounded
from o2gateway.core.config import DtiasConfig
from o2gateway.core.exceptions import (
    GatewayError,
    InvalidArgumentError,
    NotFoundError,
)
from o2gateway.core.filtering import filter_and_paginate, matches_filter, paginate
from o2gateway.core.logging import get_logger
from o2gateway.core.subscriptions import (
    DEFAULT_POLLING_TIPS,
    PollingEntity,
    PollingRecommendation,
    SubscriptionStore,
)
from o2gateway.integrations.dtias_client import DtiasClient, PowerAction
from o2gateway.models.common import Capability
from o2gateway.models.ims import (
    DeploymentManager,
    Filter,
    Resource,
    ResourcePool,
    ResourceType,
)
from o2gateway.translators import dtias as translate

logger = get_logger(__name__)

DM_CAPABILITIES = (
    "bare-metal-provisioning",
    "hardware-inventory",
    "power-management",
    "health-monitoring",
    "bios-configuration",
    "server-pools",
)


class DtiasAdapter(InfrastructureAdapter):
    """Bare-metal inventory backed by Dell DTIAS."""

    NAME = "dtias"
    VERSION = "1.0.0"
    CAPABILITIES = frozenset(
        {
            Capability.RESOURCE_POOLS,
            Capability.RESOURCES,
            Capability.RESOURCE_TYPES,
            Capability.DEPLOYMENT_MANAGERS,
            Capability.SUBSCRIPTIONS,
            Capability.HEALTH_CHECKS,
        }
    )

    def __init__(
        self,
        config: DtiasConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self._config = config
        self._transport = transport
        self._subscriptions = SubscriptionStore(self.NAME)
        self._client: InitGuard[DtiasClient] = InitGuard(
            self._create_client, name="dtias.client"
        )

    @classmethod
    def from_settings(cls) -> DtiasAdapter:
        """Create an adapter from ``O2GW_*`` settings."""
        return cls(DtiasClient.config_from_settings())

    @property
    def config(self) -> DtiasConfig:
        return self._config

    @property
    def deployment_manager_id(self) -> str:
        return self._config.deployment_manager_id

    async def _create_client(self) -> DtiasClient:
        logger.info(
            "dtias_adapter.client_created",
            endpoint=self._config.endpoint,
            datacenter=self._config.datacenter,
        )
        return DtiasClient.from_config(self._config, transport=self._transport)

    def _deadline(self) -> float:
        """Whole-call bound: every attempt at full timeout plus retry delays."""
        attempts = self._config.retry_attempts + 1
        return (
            self._config.timeout * attempts
            + self._config.retry_delay * self._config.retry_attempts
        )

    @asynccontextmanager
    async def _call(
        self, operation: str, entity_id: str | None = None
    ) -> AsyncIterator[DtiasClient]:
        async with bounded(
            self._deadline(),
            backend=self.NAME,
            operation=operation,
            entity_id=entity_id,
        ):
            yield await self._client.get()

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def health(self) -> None:
        async with bounded(
            self._config.health_timeout, backend=self.NAME, operation="health"
        ):
            client = await self._client.get()
            try:
                await client.version()
            except GatewayError as exc:
                logger.error("dtias_adapter.health_failed", error=str(exc))
                raise
        logger.debug("dtias_adapter.health_ok")

    async def close(self) -> None:
        self._subscriptions.clear()
        client = await self._client.reset()
        if client is not None and not client.closed:
            await client.aclose()
        logger.info("dtias_adapter.closed")

    # ── Deployment Manager ──────────────────────────────────────────────

    async def get_deployment_manager(self, deployment_manager_id: str) -> DeploymentManager:
        if deployment_manager_id not in (self.deployment_manager_id, "default"):
            raise NotFoundError(
                "deployment manager not found",
                backend=self.NAME,
                operation="get_deployment_manager",
                entity_id=deployment_manager_id,
            )

        datacenter = self._config.datacenter
        site: dict[str, Any] | None = None
        if datacenter:
            try:
                async with self._call("get_deployment_manager", datacenter) as client:
                    site = await client.get_site(datacenter)
            except GatewayError as exc:
                logger.warning(
                    "dtias_adapter.site_info_unavailable",
                    datacenter=datacenter,
                    error=str(exc),
                )

        extensions: dict[str, Any] = {
            "dtias.endpoint": self._config.endpoint,
            "dtias.datacenter": datacenter,
            "dtias.apiVersion": "1.0",
            "dtias.adapterVersion": self.VERSION,
            "dtias.tlsEnabled": bool(self._config.client_cert),
            "dtias.nativeSubscriptions": False,
        }
        supported_locations: tuple[str, ...] = ()
        if site is not None:
            supported_locations = (datacenter,)
            if site.get("city"):
                extensions["dtias.location.city"] = site["city"]
            if site.get("country"):
                extensions["dtias.location.country"] = site["country"]
            if site.get("latitude") and site.get("longitude"):
                extensions["dtias.location.latitude"] = site["latitude"]
                extensions["dtias.location.longitude"] = site["longitude"]

        return DeploymentManager(
            deployment_manager_id=self.deployment_manager_id,
            name=f"DTIAS Bare-Metal Infrastructure - {datacenter}",
            description=f"Dell DTIAS bare-metal deployment manager for datacenter {datacenter}",
            o_cloud_id=self._config.ocloud_id,
            service_uri=self._config.endpoint,
            capabilities=DM_CAPABILITIES,
            supported_locations=supported_locations,
            extensions=extensions,
        )

    # ── Resource Pools ──────────────────────────────────────────────────

    @staticmethod
    def _pool_matches(pool: ResourcePool, flt: Filter | None) -> bool:
        location = pool.location
        if flt is not None and flt.location and flt.location == pool.extensions.get(
            "dtias.datacenter"
        ):
            location = flt.location
        return matches_filter(
            flt,
            resource_pool_id=pool.resource_pool_id,
            location=location,
            labels=pool.extensions.get("dtias.metadata"),
        )

    async def list_resource_pools(self, flt: Filter | None = None) -> list[ResourcePool]:
        async with self._call("list_resource_pools") as client:
            native = await client.list_server_pools()
        pools = [
            translate.server_pool_to_resource_pool(p, self._config.ocloud_id)
            for p in native
        ]
        result = filter_and_paginate(pools, lambda p: self._pool_matches(p, flt), flt)
        logger.debug(
            "dtias_adapter.resource_pools_listed", fetched=len(pools), returned=len(result)
        )
        return result

    async def get_resource_pool(self, resource_pool_id: str) -> ResourcePool:
        async with self._call("get_resource_pool", resource_pool_id) as client:
            native = await client.get_server_pool(resource_pool_id)
        return translate.server_pool_to_resource_pool(native, self._config.ocloud_id)

    async def create_resource_pool(self, pool: ResourcePool) -> ResourcePool:
        if not pool.name:
            raise InvalidArgumentError(
                "resource pool name is required",
                backend=self.NAME,
                operation="create_resource_pool",
            )
        body = translate.resource_pool_to_create_request(pool, self._config.datacenter)
        async with self._call("create_resource_pool", pool.name) as client:
            native = await client.create_server_pool(body)
        created = translate.server_pool_to_resource_pool(native, self._config.ocloud_id)
        logger.info(
            "dtias_adapter.resource_pool_created",
            resource_pool_id=created.resource_pool_id,
            name=created.name,
        )
        return created

    async def update_resource_pool(
        self, resource_pool_id: str, pool: ResourcePool
    ) -> ResourcePool:
        body = translate.resource_pool_to_update_request(pool)
        async with self._call("update_resource_pool", resource_pool_id) as client:
            native = await client.update_server_pool(resource_pool_id, body)
        logger.info("dtias_adapter.resource_pool_updated", resource_pool_id=resource_pool_id)
        return translate.server_pool_to_resource_pool(native, self._config.ocloud_id)

    async def delete_resource_pool(self, resource_pool_id: str) -> None:
        async with self._call("delete_resource_pool", resource_pool_id) as client:
            await client.delete_server_pool(resource_pool_id)
        logger.info("dtias_adapter.resource_pool_deleted", resource_pool_id=resource_pool_id)

    # ── Resources ───────────────────────────────────────────────────────

    @staticmethod
    def _resource_matches(resource: Resource, flt: Filter | None) -> bool:
        return matches_filter(
            flt,
            resource_pool_id=resource.resource_pool_id,
            resource_type_id=resource.resource_type_id,
            location=resource.extensions.get("dtias.location.datacenter") or "",
            labels=resource.extensions.get("dtias.metadata"),
        )

    async def list_resources(self, flt: Filter | None = None) -> list[Resource]:
        pool_id = flt.resource_pool_id if flt else ""
        server_type = (
            translate.server_type_from_resource_type_id(flt.resource_type_id)
            if flt and flt.resource_type_id
            else ""
        )
        async with self._call("list_resources") as client:
            native = await client.list_servers(pool_id=pool_id, server_type=server_type)
        resources = [translate.server_to_resource(s) for s in native]
        return filter_and_paginate(
            resources, lambda r: self._resource_matches(r, flt), flt
        )

    async def get_resource(self, resource_id: str) -> Resource:
        async with self._call("get_resource", resource_id) as client:
            native = await client.get_server(resource_id)
        return translate.server_to_resource(native)

    async def create_resource(self, resource: Resource) -> Resource:
        if not resource.resource_pool_id:
            raise InvalidArgumentError(
                "resource pool id is required",
                backend=self.NAME,
                operation="create_resource",
            )
        if not resource.resource_type_id:
            raise InvalidArgumentError(
                "resource type id is required",
                backend=self.NAME,
                operation="create_resource",
            )
        body = translate.resource_to_allocate_request(resource)
        async with self._call("create_resource", resource.resource_pool_id) as client:
            native = await client.allocate_server(body)
        created = translate.server_to_resource(native)
        logger.info(
            "dtias_adapter.resource_allocated",
            resource_id=created.resource_id,
            resource_pool_id=resource.resource_pool_id,
        )
        return created

    async def update_resource(self, resource_id: str, resource: Resource) -> Resource:
        body = translate.resource_to_metadata_update(resource)
        async with self._call("update_resource", resource_id) as client:
            await client.update_server_metadata(resource_id, body)
            native = await client.get_server(resource_id)
        logger.info("dtias_adapter.resource_updated", resource_id=resource_id)
        return translate.server_to_resource(native)

    async def delete_resource(self, resource_id: str) -> None:
        async with self._call("delete_resource", resource_id) as client:
            await client.release_server(resource_id)
        logger.info("dtias_adapter.resource_released", resource_id=resource_id)

    # ── Resource Types ──────────────────────────────────────────────────

    async def list_resource_types(self, flt: Filter | None = None) -> list[ResourceType]:
        async with self._call("list_resource_types") as client:
            native = await client.list_server_types()
        types = [translate.server_type_to_resource_type(t) for t in native]
        if flt is not None and flt.resource_type_id:
            types = [t for t in types if t.resource_type_id == flt.resource_type_id]
        return paginate(types, flt)

    async def get_resource_type(self, resource_type_id: str) -> ResourceType:
        native_id = translate.server_type_from_resource_type_id(resource_type_id)
        async with self._call("get_resource_type", resource_type_id) as client:
            native = await client.get_server_type(native_id)
        return translate.server_type_to_resource_type(native)

    # ── Hardware Operations ─────────────────────────────────────────────

    async def power_control(self, server_id: str, action: PowerAction | str) -> None:
        """Run a power operation (on, off, force-off, reset, cycle) on a server."""
        try:
            power = PowerAction(action)
        except ValueError as exc:
            raise InvalidArgumentError(
                f"unsupported power operation {action!r}",
                backend=self.NAME,
                operation="power_control",
                entity_id=server_id,
            ) from exc
        async with self._call("power_control", server_id) as client:
            await client.power_action(server_id, power)
        logger.info("dtias_adapter.power_action", server_id=server_id, action=power.value)

    async def get_health_metrics(self, server_id: str) -> dict[str, Any]:
        """Hardware health snapshot (utilization, temperatures, fans, voltages)."""
        async with self._call("get_health_metrics", server_id) as client:
            native = await client.get_server_details(server_id)
        return translate.server_to_health_metrics(native)

    # ── Polling ─────────────────────────────────────────────────────────

    def polling_recommendation(self) -> PollingRecommendation:
        return PollingRecommendation(
            backend=self.NAME,
            entities=(
                PollingEntity(
                    "resource-pools", 60, ("state", "serverCount", "availableServers")
                ),
                PollingEntity(
                    "resources", 30, ("state", "powerState", "healthState", "serverPoolId")
                ),
                PollingEntity("health-metrics", 10),
            ),
            optimization_tips=DEFAULT_POLLING_TIPS,
        )
