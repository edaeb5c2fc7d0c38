"""
O2 Gateway — Translator Helpers
================================
Identifier, timestamp and status-projection helpers shared by the
per-backend translators. Everything here is pure.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Mapping

from o2gateway.models.dms import (
    ConditionStatus,
    Deployment,
    DeploymentCondition,
    DeploymentHistory,
    DeploymentRevision,
    DeploymentStatus,
    DeploymentStatusDetail,
)


def prefixed(prefix: str, native_id: str) -> str:
    """Build a synthetic canonical identifier from a native one."""
    return f"{prefix}{native_id}"


def strip_prefix(prefix: str, canonical_id: str) -> str:
    """Recover the native identifier; ids without the prefix pass through."""
    if canonical_id.startswith(prefix):
        return canonical_id[len(prefix):]
    return canonical_id


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 / ISO 8601 timestamp; ``None`` when absent or malformed."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_timestamp(value: datetime | None) -> str:
    return value.isoformat() if value else ""


def progress_for(
    status: DeploymentStatus, table: Mapping[DeploymentStatus, int]
) -> int:
    """
    Advisory 0–100 progress hint for a canonical status.

    Values come from fixed per-backend tables; they are UI hints, not
    completion measurements. Statuses missing from the table project to 0.
    """
    return table.get(status, 0)


# Shared by backends whose progress depends only on the canonical status.
STANDARD_PROGRESS: dict[DeploymentStatus, int] = {
    DeploymentStatus.DEPLOYED: 100,
    DeploymentStatus.DEPLOYING: 50,
    DeploymentStatus.ROLLING_BACK: 30,
    DeploymentStatus.PENDING: 25,
    DeploymentStatus.DELETING: 10,
    DeploymentStatus.FAILED: 0,
}


def condition(
    type_: str,
    truthy: bool | None,
    reason: str = "",
    message: str = "",
    at: datetime | None = None,
) -> DeploymentCondition:
    if truthy is None:
        status = ConditionStatus.UNKNOWN
    else:
        status = ConditionStatus.TRUE if truthy else ConditionStatus.FALSE
    return DeploymentCondition(
        type=type_,
        status=status,
        reason=reason,
        message=message,
        last_transition_time=at,
    )


def single_revision_history(deployment: Deployment) -> DeploymentHistory:
    """History for backends that only know the current revision."""
    return DeploymentHistory(
        deployment_id=deployment.deployment_id,
        revisions=(
            DeploymentRevision(
                revision=deployment.version,
                version=str(deployment.version),
                deployed_at=deployment.updated_at,
                status=deployment.status,
                description=deployment.description,
            ),
        ),
    )


def status_detail(
    deployment: Deployment,
    progress_table: Mapping[DeploymentStatus, int],
    conditions: tuple[DeploymentCondition, ...],
) -> DeploymentStatusDetail:
    return DeploymentStatusDetail(
        deployment_id=deployment.deployment_id,
        status=deployment.status,
        message=deployment.description,
        progress=progress_for(deployment.status, progress_table),
        updated_at=deployment.updated_at,
        conditions=conditions,
        extensions=dict(deployment.extensions),
    )


def deployment_summary(deployment: Deployment) -> bytes:
    """JSON status document used as the log body by backends without log access."""
    info = {
        "deploymentId": deployment.deployment_id,
        "name": deployment.name,
        "status": deployment.status.value,
        "version": deployment.version,
        "updatedAt": format_timestamp(deployment.updated_at),
        "extensions": deployment.extensions,
    }
    return json.dumps(info, indent=2, default=str).encode()
