"""
O2 Gateway — Canonical Models
=============================
Backend-independent O2-IMS and O2-DMS entities.
"""

from o2gateway.models.common import Capability, Extensions, namespaced
from o2gateway.models.dms import (
    ConditionStatus,
    Deployment,
    DeploymentCondition,
    DeploymentFilter,
    DeploymentHistory,
    DeploymentPackage,
    DeploymentPackageUpload,
    DeploymentRequest,
    DeploymentRevision,
    DeploymentStatus,
    DeploymentStatusDetail,
    DeploymentUpdate,
    LogOptions,
)
from o2gateway.models.ims import (
    DeploymentManager,
    Filter,
    Resource,
    ResourceClass,
    ResourceKind,
    ResourcePool,
    ResourceType,
    Subscription,
    SubscriptionFilter,
)

__all__ = [
    "Capability",
    "ConditionStatus",
    "Deployment",
    "DeploymentCondition",
    "DeploymentFilter",
    "DeploymentHistory",
    "DeploymentManager",
    "DeploymentPackage",
    "DeploymentPackageUpload",
    "DeploymentRequest",
    "DeploymentRevision",
    "DeploymentStatus",
    "DeploymentStatusDetail",
    "DeploymentUpdate",
    "Extensions",
    "Filter",
    "LogOptions",
    "Resource",
    "ResourceClass",
    "ResourceKind",
    "ResourcePool",
    "ResourceType",
    "Subscription",
    "SubscriptionFilter",
    "namespaced",
]
