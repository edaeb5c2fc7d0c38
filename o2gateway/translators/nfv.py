"""
O2 Gateway — NFV Orchestrator Records
======================================
Helpers for the ONAP SO and OSM NBI adapters, which track packages and
instantiations as adapter-local records.
"""

from __future__ import annotations

import copy
import time
from dataclasses import replace
from typing import Any, TypeVar

from o2gateway.models.dms import (
    Deployment,
    DeploymentCondition,
    DeploymentPackage,
    DeploymentStatus,
    DeploymentStatusDetail,
    utcnow,
)
from o2gateway.translators.common import STANDARD_PROGRESS, condition, status_detail

Record = TypeVar("Record", Deployment, DeploymentPackage)

_REASONS: dict[DeploymentStatus, str] = {
    DeploymentStatus.DEPLOYED: "InstantiationSucceeded",
    DeploymentStatus.DEPLOYING: "Instantiating",
    DeploymentStatus.PENDING: "Pending",
    DeploymentStatus.ROLLING_BACK: "RollingBack",
    DeploymentStatus.DELETING: "Deleting",
    DeploymentStatus.FAILED: "InstantiationFailed",
}


def instance_id(prefix: str, name: str) -> str:
    """Unique instantiation id, e.g. ``vnf-edge-fw-1718000000000000000``."""
    return f"{prefix}-{name}-{time.time_ns()}"


def condition_reason(status: DeploymentStatus) -> str:
    return _REASONS.get(status, "Unknown")


def ready_condition(deployment: Deployment) -> DeploymentCondition:
    return condition(
        "Ready",
        deployment.status is DeploymentStatus.DEPLOYED,
        reason=condition_reason(deployment.status),
        message=deployment.description,
        at=deployment.updated_at,
    )


def record_status_detail(deployment: Deployment) -> DeploymentStatusDetail:
    return status_detail(deployment, STANDARD_PROGRESS, (ready_condition(deployment),))


def touch(deployment: Deployment, **changes: Any) -> Deployment:
    """Copy of ``deployment`` with ``changes`` applied and a fresh ``updated_at``."""
    return replace(deployment, updated_at=utcnow(), **changes)


def snapshot(record: Record) -> Record:
    """Copy of a stored record whose ``extensions`` no longer alias the store."""
    return replace(record, extensions=copy.deepcopy(record.extensions))
