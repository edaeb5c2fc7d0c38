"""
O2 Gateway — Deployment Lifecycle Model (O2-DMS)
=================================================
Canonical deployment entities and the closed status enumeration every
backend projects onto.

Every native status vocabulary maps onto exactly one ``DeploymentStatus``.
Native detail is kept in the extension bag and in condition reason/message
fields, never discarded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from o2gateway.models.common import Extensions


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentStatus(StrEnum):
    """Canonical deployment status (lossy but total projection)."""

    PENDING = "pending"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    FAILED = "failed"
    ROLLING_BACK = "rolling-back"
    DELETING = "deleting"


class ConditionStatus(StrEnum):
    """Tri-state condition value."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


# ── Entities ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DeploymentPackage:
    """A deployable artifact (chart, composition, VNF/NS descriptor, Git source)."""

    package_id: str
    name: str
    version: str = ""
    package_type: str = ""
    description: str = ""
    uploaded_at: datetime | None = None
    extensions: Extensions = field(default_factory=dict)


@dataclass(frozen=True)
class Deployment:
    """A running (or converging) instance of a deployment package."""

    deployment_id: str
    name: str
    package_id: str = ""
    namespace: str = ""
    status: DeploymentStatus = DeploymentStatus.PENDING
    version: int = 1
    description: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    extensions: Extensions = field(default_factory=dict)


@dataclass(frozen=True)
class DeploymentCondition:
    """One observed condition of a deployment."""

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None


@dataclass(frozen=True)
class DeploymentStatusDetail:
    """Status, advisory progress and conditions for one deployment."""

    deployment_id: str
    status: DeploymentStatus
    message: str = ""
    progress: int = 0
    updated_at: datetime | None = None
    conditions: tuple[DeploymentCondition, ...] = ()
    extensions: Extensions = field(default_factory=dict)


@dataclass(frozen=True)
class DeploymentRevision:
    """A single entry in a deployment's revision history."""

    revision: int
    version: str = ""
    deployed_at: datetime | None = None
    status: DeploymentStatus = DeploymentStatus.DEPLOYED
    description: str = ""


@dataclass(frozen=True)
class DeploymentHistory:
    """Ordered revision history of a deployment."""

    deployment_id: str
    revisions: tuple[DeploymentRevision, ...] = ()


# ── Requests ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DeploymentFilter:
    """
    Canonical deployment filter.

    Empty fields are ignored. ``limit == 0`` means unbounded.
    """

    namespace: str = ""
    status: DeploymentStatus | None = None
    labels: dict[str, str] = field(default_factory=dict)
    extensions: Extensions = field(default_factory=dict)
    limit: int = 0
    offset: int = 0


@dataclass(frozen=True)
class DeploymentPackageUpload:
    """Request to register a new deployment package."""

    name: str
    version: str = ""
    package_type: str = ""
    description: str = ""
    content: bytes = b""
    repository: str = ""
    extensions: Extensions = field(default_factory=dict)


@dataclass(frozen=True)
class DeploymentRequest:
    """Request to create a deployment. Git fields are used by GitOps backends."""

    name: str
    package_id: str = ""
    namespace: str = ""
    values: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    extensions: Extensions = field(default_factory=dict)
    git_repo: str = ""
    git_revision: str = ""
    git_path: str = ""
    labels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DeploymentUpdate:
    """Request to change an existing deployment."""

    values: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    extensions: Extensions = field(default_factory=dict)
    git_revision: str = ""


@dataclass(frozen=True)
class LogOptions:
    """Log retrieval options."""

    container: str = ""
    tail_lines: int = 0
    since: datetime | None = None
    follow: bool = False
