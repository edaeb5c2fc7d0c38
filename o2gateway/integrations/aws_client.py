"""
O2 Gateway — AWS Compute Client
================================
Abstraction layer over the EC2 and Auto Scaling APIs.

``AioBotoComputeClient`` talks to AWS through ``aioboto3``; every call
opens a short-lived service client from one shared session and drains
paginators fully. ``MockAwsComputeClient`` keeps zones, groups,
instances and instance types in memory for tests and development.

All methods return the native AWS dict shapes; translation lives in
``o2gateway.translators.aws``. ``botocore`` failures are re-raised as
gateway errors:

- auth / permission codes   → ``AuthenticationFailedError``
- ``*.NotFound`` codes      → ``NotFoundError``
- ``*.Malformed`` codes     → ``InvalidArgumentError``
- endpoint / connect errors → ``ConnectionFailedError``
- anything else             → ``BackendError``

Usage:
    client = AioBotoComputeClient.from_config(AwsConfig(region="us-east-1", ocloud_id="oc"))
    zones = await client.describe_availability_zones()
"""

from __future__ import annotations

import abc
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import aioboto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
)

from o2gateway.core.config import AwsConfig
from o2gateway.core.exceptions import (
    AuthenticationFailedError,
    BackendError,
    ConnectionFailedError,
    GatewayError,
    InvalidArgumentError,
    NotFoundError,
)
from o2gateway.core.logging import get_logger
from o2gateway.core.tracing import create_span

logger = get_logger(__name__)

BACKEND = "aws"

_AUTH_ERROR_CODES = frozenset(
    {
        "AuthFailure",
        "UnauthorizedOperation",
        "AccessDenied",
        "AccessDeniedException",
        "InvalidClientTokenId",
        "SignatureDoesNotMatch",
        "ExpiredToken",
    }
)


# ── Abstract Base ───────────────────────────────────────────────────────


class BaseAwsComputeClient(abc.ABC):
    """EC2 / Auto Scaling operations used by the AWS adapter."""

    @abc.abstractmethod
    async def describe_availability_zones(self) -> list[dict[str, Any]]:
        """Available zones of the configured region."""
        ...

    @abc.abstractmethod
    async def describe_auto_scaling_groups(self) -> list[dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def describe_instances(
        self,
        instance_ids: list[str] | None = None,
        availability_zone: str = "",
        states: tuple[str, ...] = (),
    ) -> list[dict[str, Any]]:
        """Instances, flattened out of their reservations."""
        ...

    @abc.abstractmethod
    async def run_instance(self, params: dict[str, Any]) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def terminate_instance(self, instance_id: str) -> None:
        ...

    @abc.abstractmethod
    async def describe_instance_types(
        self, instance_types: list[str] | None = None
    ) -> list[dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def describe_region(self) -> dict[str, Any]:
        """Region record for the configured region (used by health and DM)."""
        ...

    @abc.abstractmethod
    async def describe_account_limits(self) -> dict[str, Any]:
        ...

    async def aclose(self) -> None:
        """Release held resources. Default: nothing to release."""
        return None


# ── Mock Implementation ────────────────────────────────────────────────


class MockAwsComputeClient(BaseAwsComputeClient):
    """
    In-memory EC2 / Auto Scaling stand-in.

    Seed it with native-shaped dicts; ``run_instance`` appends a new
    instance and ``terminate_instance`` marks it terminated.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        zones: list[dict[str, Any]] | None = None,
        groups: list[dict[str, Any]] | None = None,
        instances: list[dict[str, Any]] | None = None,
        instance_types: list[dict[str, Any]] | None = None,
    ) -> None:
        self.region = region
        self.zones = list(zones or [])
        self.groups = list(groups or [])
        self.instances = list(instances or [])
        self.instance_types = list(instance_types or [])
        self.calls: list[str] = []

    async def describe_availability_zones(self) -> list[dict[str, Any]]:
        self.calls.append("describe_availability_zones")
        return [z for z in self.zones if z.get("State", "available") == "available"]

    async def describe_auto_scaling_groups(self) -> list[dict[str, Any]]:
        self.calls.append("describe_auto_scaling_groups")
        return list(self.groups)

    async def describe_instances(
        self,
        instance_ids: list[str] | None = None,
        availability_zone: str = "",
        states: tuple[str, ...] = (),
    ) -> list[dict[str, Any]]:
        self.calls.append("describe_instances")
        result = []
        for instance in self.instances:
            if instance_ids and instance.get("InstanceId") not in instance_ids:
                continue
            zone = (instance.get("Placement") or {}).get("AvailabilityZone")
            if availability_zone and zone != availability_zone:
                continue
            if states and (instance.get("State") or {}).get("Name") not in states:
                continue
            result.append(instance)
        if instance_ids and not result:
            raise NotFoundError(
                "instance not found",
                backend=BACKEND,
                operation="describe_instances",
                entity_id=instance_ids[0],
            )
        return result

    async def run_instance(self, params: dict[str, Any]) -> dict[str, Any]:
        self.calls.append("run_instance")
        zone = self.zones[0]["ZoneName"] if self.zones else f"{self.region}a"
        tags = []
        for spec in params.get("TagSpecifications") or ():
            tags.extend(spec.get("Tags") or ())
        instance = {
            "InstanceId": f"i-{uuid.uuid4().hex[:17]}",
            "InstanceType": params["InstanceType"],
            "ImageId": params["ImageId"],
            "Placement": {"AvailabilityZone": zone},
            "State": {"Name": "pending", "Code": 0},
            "SubnetId": params.get("SubnetId"),
            "LaunchTime": datetime.now(timezone.utc),
            "Tags": tags,
        }
        self.instances.append(instance)
        return instance

    async def terminate_instance(self, instance_id: str) -> None:
        self.calls.append("terminate_instance")
        for instance in self.instances:
            if instance.get("InstanceId") == instance_id:
                instance["State"] = {"Name": "terminated", "Code": 48}
                return
        raise NotFoundError(
            "instance not found",
            backend=BACKEND,
            operation="terminate_instance",
            entity_id=instance_id,
        )

    async def describe_instance_types(
        self, instance_types: list[str] | None = None
    ) -> list[dict[str, Any]]:
        self.calls.append("describe_instance_types")
        if not instance_types:
            return list(self.instance_types)
        return [t for t in self.instance_types if t.get("InstanceType") in instance_types]

    async def describe_region(self) -> dict[str, Any]:
        self.calls.append("describe_region")
        return {
            "RegionName": self.region,
            "Endpoint": f"ec2.{self.region}.amazonaws.com",
            "OptInStatus": "opt-in-not-required",
        }

    async def describe_account_limits(self) -> dict[str, Any]:
        self.calls.append("describe_account_limits")
        return {"MaxNumberOfAutoScalingGroups": 200}


# ── aioboto3 Implementation ────────────────────────────────────────────


class AioBotoComputeClient(BaseAwsComputeClient):
    """EC2 / Auto Scaling client on ``aioboto3``."""

    def __init__(self, session: aioboto3.Session, region: str) -> None:
        self._session = session
        self._region = region

    @classmethod
    def from_config(cls, config: AwsConfig) -> AioBotoComputeClient:
        if config.profile:
            session = aioboto3.Session(profile_name=config.profile, region_name=config.region)
            logger.info("aws_client.auth_profile", profile=config.profile)
        elif config.access_key_id and config.secret_access_key:
            session = aioboto3.Session(
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key.get_secret_value(),
                aws_session_token=(
                    config.session_token.get_secret_value()
                    if config.session_token
                    else None
                ),
                region_name=config.region,
            )
            logger.info("aws_client.auth_static_credentials")
        else:
            session = aioboto3.Session(region_name=config.region)
            logger.info("aws_client.auth_default_chain")
        return cls(session, config.region)

    @asynccontextmanager
    async def _client(
        self, service: str, operation: str, entity_id: str | None = None
    ) -> AsyncIterator[Any]:
        with create_span(f"aws.{operation}", region=self._region):
            try:
                async with self._session.client(service, region_name=self._region) as client:
                    yield client
            except ClientError as exc:
                raise _from_client_error(exc, operation, entity_id) from exc
            except (EndpointConnectionError, NoCredentialsError) as exc:
                cls = (
                    AuthenticationFailedError
                    if isinstance(exc, NoCredentialsError)
                    else ConnectionFailedError
                )
                raise cls(
                    str(exc), backend=BACKEND, operation=operation, entity_id=entity_id
                ) from exc
            except BotoCoreError as exc:
                raise BackendError(
                    str(exc), backend=BACKEND, operation=operation, entity_id=entity_id
                ) from exc

    async def describe_availability_zones(self) -> list[dict[str, Any]]:
        async with self._client("ec2", "describe_availability_zones") as ec2:
            response = await ec2.describe_availability_zones(
                Filters=[
                    {"Name": "region-name", "Values": [self._region]},
                    {"Name": "state", "Values": ["available"]},
                ]
            )
        return list(response.get("AvailabilityZones", []))

    async def describe_auto_scaling_groups(self) -> list[dict[str, Any]]:
        groups: list[dict[str, Any]] = []
        async with self._client("autoscaling", "describe_auto_scaling_groups") as asg:
            paginator = asg.get_paginator("describe_auto_scaling_groups")
            async for page in paginator.paginate():
                groups.extend(page.get("AutoScalingGroups", []))
        return groups

    async def describe_instances(
        self,
        instance_ids: list[str] | None = None,
        availability_zone: str = "",
        states: tuple[str, ...] = (),
    ) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {}
        filters = []
        if availability_zone:
            filters.append({"Name": "availability-zone", "Values": [availability_zone]})
        if states:
            filters.append({"Name": "instance-state-name", "Values": list(states)})
        if filters:
            kwargs["Filters"] = filters
        if instance_ids:
            kwargs["InstanceIds"] = instance_ids

        instances: list[dict[str, Any]] = []
        entity_id = instance_ids[0] if instance_ids else None
        async with self._client("ec2", "describe_instances", entity_id) as ec2:
            paginator = ec2.get_paginator("describe_instances")
            async for page in paginator.paginate(**kwargs):
                for reservation in page.get("Reservations", []):
                    instances.extend(reservation.get("Instances", []))
        return instances

    async def run_instance(self, params: dict[str, Any]) -> dict[str, Any]:
        async with self._client("ec2", "run_instances") as ec2:
            response = await ec2.run_instances(**params)
        launched = response.get("Instances", [])
        if not launched:
            raise BackendError(
                "no instance was launched", backend=BACKEND, operation="run_instances"
            )
        return launched[0]

    async def terminate_instance(self, instance_id: str) -> None:
        async with self._client("ec2", "terminate_instances", instance_id) as ec2:
            await ec2.terminate_instances(InstanceIds=[instance_id])

    async def describe_instance_types(
        self, instance_types: list[str] | None = None
    ) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {}
        if instance_types:
            kwargs["InstanceTypes"] = instance_types
        types: list[dict[str, Any]] = []
        async with self._client("ec2", "describe_instance_types") as ec2:
            paginator = ec2.get_paginator("describe_instance_types")
            async for page in paginator.paginate(**kwargs):
                types.extend(page.get("InstanceTypes", []))
        return types

    async def describe_region(self) -> dict[str, Any]:
        async with self._client("ec2", "describe_regions", self._region) as ec2:
            response = await ec2.describe_regions(RegionNames=[self._region])
        regions = response.get("Regions", [])
        if not regions:
            raise NotFoundError(
                "region not found",
                backend=BACKEND,
                operation="describe_regions",
                entity_id=self._region,
            )
        return regions[0]

    async def describe_account_limits(self) -> dict[str, Any]:
        async with self._client("autoscaling", "describe_account_limits") as asg:
            return await asg.describe_account_limits()


def _from_client_error(
    exc: ClientError, operation: str, entity_id: str | None
) -> GatewayError:
    error = exc.response.get("Error", {})
    code = error.get("Code", "")
    message = error.get("Message") or str(exc)
    if code in _AUTH_ERROR_CODES:
        return AuthenticationFailedError(
            message, backend=BACKEND, operation=operation, entity_id=entity_id
        )
    if code.endswith("NotFound"):
        return NotFoundError(
            message, backend=BACKEND, operation=operation, entity_id=entity_id
        )
    if code.endswith(".Malformed"):
        return InvalidArgumentError(
            message, backend=BACKEND, operation=operation, entity_id=entity_id
        )
    return BackendError(
        f"{code}: {message}", backend=BACKEND, operation=operation, entity_id=entity_id
    )
