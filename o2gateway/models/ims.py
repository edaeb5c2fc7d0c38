"""
O2 Gateway — Infrastructure Inventory Model (O2-IMS)
=====================================================
Canonical, backend-independent entities for infrastructure inventory.

All entities are immutable value objects built fresh on every
translation call from a just-fetched native object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from o2gateway.models.common import Extensions


class ResourceClass(StrEnum):
    """Coarse resource classification derived by heuristic."""

    COMPUTE = "compute"
    STORAGE = "storage"
    NETWORK = "network"


class ResourceKind(StrEnum):
    """Whether a resource type describes hardware or a virtual shape."""

    PHYSICAL = "physical"
    VIRTUAL = "virtual"


@dataclass(frozen=True)
class ResourcePool:
    """A group of resources sharing a location or scaling boundary."""

    resource_pool_id: str
    name: str
    description: str = ""
    location: str = ""
    o_cloud_id: str = ""
    global_location_id: str = ""
    extensions: Extensions = field(default_factory=dict)


@dataclass(frozen=True)
class Resource:
    """A single infrastructure resource (server, instance)."""

    resource_id: str
    resource_type_id: str = ""
    resource_pool_id: str = ""
    global_asset_id: str = ""
    description: str = ""
    extensions: Extensions = field(default_factory=dict)


@dataclass(frozen=True)
class ResourceType:
    """Hardware profile or instance shape a resource is built from."""

    resource_type_id: str
    name: str
    description: str = ""
    vendor: str = ""
    model: str = ""
    version: str = ""
    resource_class: str = ResourceClass.COMPUTE
    resource_kind: str = ResourceKind.PHYSICAL
    extensions: Extensions = field(default_factory=dict)


@dataclass(frozen=True)
class DeploymentManager:
    """Self-description of one backend instance."""

    deployment_manager_id: str
    name: str
    description: str = ""
    o_cloud_id: str = ""
    service_uri: str = ""
    capabilities: tuple[str, ...] = ()
    supported_locations: tuple[str, ...] = ()
    extensions: Extensions = field(default_factory=dict)


@dataclass(frozen=True)
class SubscriptionFilter:
    """Narrows the inventory changes a subscriber is notified about."""

    resource_pool_id: str = ""
    resource_type_id: str = ""
    resource_id: str = ""


@dataclass(frozen=True)
class Subscription:
    """An O2-IMS inventory change subscription."""

    callback: str
    subscription_id: str = ""
    consumer_subscription_id: str = ""
    filter: SubscriptionFilter | None = None


@dataclass(frozen=True)
class Filter:
    """
    Canonical inventory filter.

    Empty fields are ignored. ``labels`` must all match exactly.
    ``limit == 0`` means unbounded.
    """

    resource_pool_id: str = ""
    resource_type_id: str = ""
    location: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    extensions: Extensions = field(default_factory=dict)
    limit: int = 0
    offset: int = 0
