"""
O2 Gateway — AWS Cloud-Compute Adapter
=======================================
O2-IMS over EC2 and Auto Scaling.

Pool modes (``AwsConfig.pool_mode``):
- ``az``:  each available zone of the region is a resource pool
- ``asg``: each Auto Scaling group is a resource pool

Instances are resources and instance types are resource types. Pools are
AWS-managed and cannot be created, changed or removed through the
gateway; instances can be launched and terminated but not updated.

Subscriptions are held in an adapter-local store (ids ``aws-sub-<uuid>``).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from o2gateway.adapters.base import InfrastructureAdapter
from o2gateway.core.concurrency import InitGuard, bounded
from o2gateway.core.config import AwsConfig, AwsPoolMode, get_settings
from o2gateway.core.exceptions import (
    GatewayError,
    InvalidArgumentError,
    MissingConfigurationError,
    NotFoundError,
)
from o2gateway.core.filtering import filter_and_paginate, matches_filter, paginate
from o2gateway.core.logging import get_logger
from o2gateway.core.subscriptions import SubscriptionStore
from o2gateway.integrations.aws_client import AioBotoComputeClient, BaseAwsComputeClient
from o2gateway.models.common import Capability
from o2gateway.models.ims import (
    DeploymentManager,
    Filter,
    Resource,
    ResourcePool,
    ResourceType,
)
from o2gateway.translators import aws as translate

logger = get_logger(__name__)

DM_CAPABILITIES = ("resource-pools", "resources", "resource-types", "subscriptions")


class AwsAdapter(InfrastructureAdapter):
    """Cloud-compute inventory backed by AWS EC2 and Auto Scaling."""

    NAME = "aws"
    VERSION = "ec2-v2"
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
        config: AwsConfig,
        *,
        client: BaseAwsComputeClient | None = None,
    ) -> None:
        super().__init__()
        self._config = config
        self._injected_client = client
        self._subscriptions = SubscriptionStore(self.NAME, id_prefix="aws-sub-")
        self._client: InitGuard[BaseAwsComputeClient] = InitGuard(
            self._create_client, name="aws.client"
        )

    @classmethod
    def from_settings(cls) -> AwsAdapter:
        settings = get_settings()
        if not settings.aws_region or not settings.ocloud_id:
            raise MissingConfigurationError(
                "O2GW_AWS_REGION and O2GW_OCLOUD_ID are required", backend=cls.NAME
            )
        return cls(
            AwsConfig(
                region=settings.aws_region,
                ocloud_id=settings.ocloud_id,
                access_key_id=settings.aws_access_key_id,
                secret_access_key=settings.aws_secret_access_key,
                session_token=settings.aws_session_token,
                profile=settings.aws_profile,
                pool_mode=settings.aws_pool_mode,
                timeout=settings.request_timeout_seconds,
                health_timeout=settings.health_timeout_seconds,
            )
        )

    @property
    def pool_mode(self) -> AwsPoolMode:
        return self._config.pool_mode

    @property
    def deployment_manager_id(self) -> str:
        return self._config.deployment_manager_id

    async def _create_client(self) -> BaseAwsComputeClient:
        if self._injected_client is not None:
            return self._injected_client
        logger.info("aws_adapter.client_created", region=self._config.region)
        return AioBotoComputeClient.from_config(self._config)

    @asynccontextmanager
    async def _call(
        self, operation: str, entity_id: str | None = None
    ) -> AsyncIterator[BaseAwsComputeClient]:
        async with bounded(
            self._config.timeout,
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
                await client.describe_region()
                await client.describe_account_limits()
            except GatewayError as exc:
                logger.error("aws_adapter.health_failed", error=str(exc))
                raise
        logger.debug("aws_adapter.health_ok")

    async def close(self) -> None:
        self._subscriptions.clear()
        client = await self._client.reset()
        if client is not None:
            await client.aclose()
        logger.info("aws_adapter.closed")

    # ── Deployment Manager ──────────────────────────────────────────────

    async def get_deployment_manager(self, deployment_manager_id: str) -> DeploymentManager:
        if deployment_manager_id != self.deployment_manager_id:
            raise NotFoundError(
                "deployment manager not found",
                backend=self.NAME,
                operation="get_deployment_manager",
                entity_id=deployment_manager_id,
            )
        region = self._config.region
        async with self._call("get_deployment_manager", deployment_manager_id) as client:
            region_info = await client.describe_region()
            zones = await client.describe_availability_zones()

        return DeploymentManager(
            deployment_manager_id=self.deployment_manager_id,
            name=f"AWS {region}",
            description=f"AWS cloud deployment in region {region}",
            o_cloud_id=self._config.ocloud_id,
            service_uri=f"https://ec2.{region}.amazonaws.com",
            capabilities=DM_CAPABILITIES,
            supported_locations=tuple(z.get("ZoneName", "") for z in zones),
            extensions={
                "aws.region": region,
                "aws.regionEndpoint": region_info.get("Endpoint", ""),
                "aws.poolMode": self.pool_mode.value,
                "aws.optInStatus": region_info.get("OptInStatus", ""),
            },
        )

    # ── Resource Pools ──────────────────────────────────────────────────

    async def _all_pools(self, operation: str) -> list[ResourcePool]:
        ocloud_id = self._config.ocloud_id
        async with self._call(operation) as client:
            if self.pool_mode is AwsPoolMode.AUTO_SCALING_GROUP:
                groups = await client.describe_auto_scaling_groups()
                return [
                    translate.auto_scaling_group_to_resource_pool(g, ocloud_id)
                    for g in groups
                ]
            zones = await client.describe_availability_zones()
        return [translate.availability_zone_to_resource_pool(z, ocloud_id) for z in zones]

    async def list_resource_pools(self, flt: Filter | None = None) -> list[ResourcePool]:
        pools = await self._all_pools("list_resource_pools")
        result = filter_and_paginate(
            pools,
            lambda p: matches_filter(
                flt,
                resource_pool_id=p.resource_pool_id,
                location=p.location,
                labels=p.extensions.get("aws.tags", {}),
            ),
            flt,
        )
        logger.info(
            "aws_adapter.resource_pools_listed",
            pool_mode=self.pool_mode.value,
            count=len(result),
        )
        return result

    async def get_resource_pool(self, resource_pool_id: str) -> ResourcePool:
        for pool in await self._all_pools("get_resource_pool"):
            if pool.resource_pool_id == resource_pool_id:
                return pool
        raise NotFoundError(
            "resource pool not found",
            backend=self.NAME,
            operation="get_resource_pool",
            entity_id=resource_pool_id,
        )

    def _pool_mutation_rejected(self, operation: str, verb: str, entity_id: str | None):
        if self.pool_mode is AwsPoolMode.AVAILABILITY_ZONE:
            reason = f"cannot {verb} resource pools in 'az' mode: availability zones are AWS-managed"
        else:
            reason = f"{verb} of Auto Scaling Groups must be done through AWS tooling"
        return self._not_supported(operation, reason, entity_id)

    async def create_resource_pool(self, pool: ResourcePool) -> ResourcePool:
        raise self._pool_mutation_rejected("create_resource_pool", "create", pool.name)

    async def update_resource_pool(
        self, resource_pool_id: str, pool: ResourcePool
    ) -> ResourcePool:
        raise self._pool_mutation_rejected("update_resource_pool", "update", resource_pool_id)

    async def delete_resource_pool(self, resource_pool_id: str) -> None:
        raise self._pool_mutation_rejected("delete_resource_pool", "delete", resource_pool_id)

    # ── Resources ───────────────────────────────────────────────────────

    async def list_resources(self, flt: Filter | None = None) -> list[Resource]:
        zone = flt.location if flt else ""
        async with self._call("list_resources") as client:
            instances = await client.describe_instances(
                availability_zone=zone, states=translate.LISTED_INSTANCE_STATES
            )
        resources = [translate.instance_to_resource(i, self._config.region) for i in instances]
        result = filter_and_paginate(
            resources,
            lambda r: matches_filter(
                flt,
                resource_pool_id=r.resource_pool_id,
                resource_type_id=r.resource_type_id,
                location=r.extensions.get("aws.availabilityZone", ""),
                labels=r.extensions.get("aws.tags", {}),
            ),
            flt,
        )
        logger.info("aws_adapter.resources_listed", count=len(result))
        return result

    async def get_resource(self, resource_id: str) -> Resource:
        instance_id = translate.native_instance_id(resource_id)
        async with self._call("get_resource", resource_id) as client:
            instances = await client.describe_instances(instance_ids=[instance_id])
        if not instances:
            raise NotFoundError(
                "resource not found",
                backend=self.NAME,
                operation="get_resource",
                entity_id=resource_id,
            )
        return translate.instance_to_resource(instances[0], self._config.region)

    async def create_resource(self, resource: Resource) -> Resource:
        image_id = resource.extensions.get("aws.imageId")
        if not isinstance(image_id, str) or not image_id:
            raise InvalidArgumentError(
                "aws.imageId is required in extensions",
                backend=self.NAME,
                operation="create_resource",
            )
        if not resource.resource_type_id:
            raise InvalidArgumentError(
                "resource type id is required",
                backend=self.NAME,
                operation="create_resource",
            )
        params = translate.resource_to_run_instances(resource, image_id)
        async with self._call("create_resource") as client:
            instance = await client.run_instance(params)
        created = translate.instance_to_resource(instance, self._config.region)
        logger.info(
            "aws_adapter.instance_launched",
            resource_id=created.resource_id,
            instance_type=params["InstanceType"],
        )
        return created

    async def update_resource(self, resource_id: str, resource: Resource) -> Resource:
        raise self._not_supported(
            "update_resource", "updating EC2 instances is not supported", resource_id
        )

    async def delete_resource(self, resource_id: str) -> None:
        instance_id = translate.native_instance_id(resource_id)
        async with self._call("delete_resource", resource_id) as client:
            await client.terminate_instance(instance_id)
        logger.info(
            "aws_adapter.instance_terminated", resource_id=resource_id, instance_id=instance_id
        )

    # ── Resource Types ──────────────────────────────────────────────────

    async def list_resource_types(self, flt: Filter | None = None) -> list[ResourceType]:
        wanted = (
            [translate.native_instance_type(flt.resource_type_id)]
            if flt and flt.resource_type_id
            else None
        )
        async with self._call("list_resource_types") as client:
            infos = await client.describe_instance_types(wanted)
        types = [translate.instance_type_to_resource_type(i) for i in infos]
        return paginate(types, flt)

    async def get_resource_type(self, resource_type_id: str) -> ResourceType:
        instance_type = translate.native_instance_type(resource_type_id)
        async with self._call("get_resource_type", resource_type_id) as client:
            infos = await client.describe_instance_types([instance_type])
        if not infos:
            raise NotFoundError(
                "resource type not found",
                backend=self.NAME,
                operation="get_resource_type",
                entity_id=resource_type_id,
            )
        return translate.instance_type_to_resource_type(infos[0])
