"""
O2 Gateway — Crossplane Translator
===================================
Crossplane ``Composition`` and ``Configuration`` objects ⇄ O2-DMS entities.

Compositions are deployment packages (id = composition name);
Configurations are deployments (id = configuration name). Status comes
from the Configuration's conditions:

- ``Healthy=True`` or ``Installed=True`` → deployed
- ``Healthy=False``                      → failed
- anything else                          → deploying
"""

from __future__ import annotations

from typing import Any, Mapping

from o2gateway.models.dms import (
    Deployment,
    DeploymentCondition,
    DeploymentPackage,
    DeploymentRequest,
    DeploymentStatus,
)
from o2gateway.translators.common import condition, parse_timestamp

NAMESPACE = "crossplane"
PACKAGE_TYPE = "crossplane-composition"
MANAGED_BY = "crossplane-adapter"


def conditions_status(conditions: list[Mapping[str, Any]]) -> DeploymentStatus:
    """
    >>> conditions_status([{"type": "Installed", "status": "True"}])
    <DeploymentStatus.DEPLOYED: 'deployed'>
    >>> conditions_status([])
    <DeploymentStatus.DEPLOYING: 'deploying'>
    """
    for cond in conditions:
        kind, status = cond.get("type"), cond.get("status")
        if kind in ("Healthy", "Installed") and status == "True":
            return DeploymentStatus.DEPLOYED
        if kind == "Healthy" and status == "False":
            return DeploymentStatus.FAILED
    return DeploymentStatus.DEPLOYING


def _conditions(obj: Mapping[str, Any]) -> list[dict[str, Any]]:
    return [c for c in (obj.get("status") or {}).get("conditions") or [] if isinstance(c, dict)]


def composition_to_package(composition: Mapping[str, Any]) -> DeploymentPackage:
    meta = composition.get("metadata") or {}
    type_ref = (composition.get("spec") or {}).get("compositeTypeRef") or {}
    kind = type_ref.get("kind", "")
    return DeploymentPackage(
        package_id=meta.get("name", ""),
        name=meta.get("name", ""),
        version=meta.get("resourceVersion", ""),
        package_type=PACKAGE_TYPE,
        description=f"Crossplane Composition for {kind}",
        uploaded_at=parse_timestamp(meta.get("creationTimestamp")),
        extensions={
            "crossplane.compositeTypeRef.kind": kind,
            "crossplane.compositeTypeRef.apiVersion": type_ref.get("apiVersion", ""),
        },
    )


def configuration_to_deployment(config: Mapping[str, Any]) -> Deployment:
    meta = config.get("metadata") or {}
    spec = config.get("spec") or {}
    package_ref = spec.get("package", "")
    conditions = _conditions(config)
    revision = (config.get("status") or {}).get("currentRevision")
    created = parse_timestamp(meta.get("creationTimestamp"))
    return Deployment(
        deployment_id=meta.get("name", ""),
        name=meta.get("name", ""),
        package_id=package_ref,
        namespace=meta.get("namespace", ""),
        status=conditions_status(conditions),
        version=revision if isinstance(revision, int) and revision > 0 else 1,
        description=f"Crossplane Configuration: {package_ref}",
        created_at=created,
        updated_at=created,
        extensions={
            "crossplane.package": package_ref,
            "crossplane.revisionActivationPolicy": spec.get("revisionActivationPolicy", ""),
            "crossplane.conditions": conditions,
            "crossplane.labels": dict(meta.get("labels") or {}),
        },
    )


def configuration_conditions(config: Mapping[str, Any]) -> tuple[DeploymentCondition, ...]:
    result = []
    for cond in _conditions(config):
        status = cond.get("status")
        result.append(
            condition(
                cond.get("type", ""),
                None if status not in ("True", "False") else status == "True",
                reason=cond.get("reason", ""),
                message=cond.get("message", ""),
                at=parse_timestamp(cond.get("lastTransitionTime")),
            )
        )
    if not result:
        result.append(
            condition("Ready", None, reason="Unknown", message="No conditions available")
        )
    return tuple(result)


def build_configuration(
    req: DeploymentRequest, package_ref: str, *, api_version: str
) -> dict[str, Any]:
    spec: dict[str, Any] = {"package": package_ref}
    policy = req.extensions.get("crossplane.revisionActivationPolicy")
    if isinstance(policy, str) and policy:
        spec["revisionActivationPolicy"] = policy
    labels = {
        "app.kubernetes.io/managed-by": MANAGED_BY,
        "app.kubernetes.io/name": req.name,
    }
    labels.update(req.labels)
    return {
        "apiVersion": api_version,
        "kind": "Configuration",
        "metadata": {"name": req.name, "labels": labels},
        "spec": spec,
    }


def apply_configuration_update(config: dict[str, Any], extensions: Mapping[str, Any]) -> None:
    spec = config.setdefault("spec", {})
    package_ref = extensions.get("crossplane.package")
    if isinstance(package_ref, str) and package_ref:
        spec["package"] = package_ref
    policy = extensions.get("crossplane.revisionActivationPolicy")
    if isinstance(policy, str) and policy:
        spec["revisionActivationPolicy"] = policy
