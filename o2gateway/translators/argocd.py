"""
O2 Gateway — ArgoCD Translator
===============================
ArgoCD ``Application`` custom resources ⇄ O2-DMS entities.

An application is a deployment (id = application name); its Git source
(repo URL + path) is the deployment package. Status is projected from
the (health, sync) pair:

    health       sync        status      progress
    Healthy      Synced      deployed    100
    Healthy      *           deploying    90
    Progressing  *           deploying    50
    Suspended    *           pending      25
    Degraded     *           failed        0
    Missing      *           failed        0
    Unknown      OutOfSync   deploying     0
    anything else            failed        0
"""

from __future__ import annotations

from typing import Any, Mapping

from o2gateway.models.dms import (
    Deployment,
    DeploymentCondition,
    DeploymentHistory,
    DeploymentPackage,
    DeploymentRequest,
    DeploymentRevision,
    DeploymentStatus,
    DeploymentStatusDetail,
)
from o2gateway.translators.common import condition, parse_timestamp

NAMESPACE = "argocd"
PACKAGE_TYPE = "git-repo"
DEFAULT_REVISION = "HEAD"
IN_CLUSTER_SERVER = "https://kubernetes.default.svc"
REPLICA_PARAMETER = "replicaCount"

_STATUS_TABLE: dict[tuple[str, str], tuple[DeploymentStatus, int]] = {
    ("Healthy", "Synced"): (DeploymentStatus.DEPLOYED, 100),
    ("Unknown", "OutOfSync"): (DeploymentStatus.DEPLOYING, 0),
}

_HEALTH_TABLE: dict[str, tuple[DeploymentStatus, int]] = {
    "Healthy": (DeploymentStatus.DEPLOYING, 90),
    "Progressing": (DeploymentStatus.DEPLOYING, 50),
    "Suspended": (DeploymentStatus.PENDING, 25),
    "Degraded": (DeploymentStatus.FAILED, 0),
    "Missing": (DeploymentStatus.FAILED, 0),
}


def project_status(health: str, sync: str) -> tuple[DeploymentStatus, int]:
    """
    Canonical status and advisory progress for an application.

    >>> project_status("Healthy", "OutOfSync")
    (<DeploymentStatus.DEPLOYING: 'deploying'>, 90)
    >>> project_status("Unknown", "Unknown")
    (<DeploymentStatus.FAILED: 'failed'>, 0)
    """
    if (health, sync) in _STATUS_TABLE:
        return _STATUS_TABLE[(health, sync)]
    return _HEALTH_TABLE.get(health, (DeploymentStatus.FAILED, 0))


def generate_package_id(repo_url: str, path: str = "") -> str:
    """
    Deterministic package id from a Git source.

    >>> generate_package_id("https://github.com/example/repo", "apps/myapp")
    'https-github-com-example-repo-apps-myapp'
    >>> generate_package_id("git@github.com:example/repo.git", "helm")
    'git@github-com:example-repo-git-helm'
    """

    def clean(value: str) -> str:
        return value.replace("://", "-").replace("/", "-").replace(".", "-")

    package_id = clean(repo_url)
    if path:
        package_id = f"{package_id}-{clean(path)}"
    return package_id


# ── Field access ────────────────────────────────────────────────────────


def _get(obj: Mapping[str, Any] | None, *keys: str) -> Any:
    for key in keys:
        if not isinstance(obj, Mapping):
            return None
        obj = obj.get(key)
    return obj


def source(app: Mapping[str, Any]) -> dict[str, Any]:
    return dict(_get(app, "spec", "source") or {})


def health_status(app: Mapping[str, Any]) -> str:
    return _get(app, "status", "health", "status") or "Unknown"


def sync_status(app: Mapping[str, Any]) -> str:
    return _get(app, "status", "sync", "status") or "Unknown"


def history(app: Mapping[str, Any]) -> list[dict[str, Any]]:
    return list(_get(app, "status", "history") or [])


# ── Application → canonical ─────────────────────────────────────────────


def application_to_deployment(app: Mapping[str, Any]) -> Deployment:
    meta = app.get("metadata") or {}
    src = source(app)
    repo_url = src.get("repoURL", "")
    path = src.get("path", "")
    health = health_status(app)
    sync = sync_status(app)
    status, _ = project_status(health, sync)
    created = parse_timestamp(meta.get("creationTimestamp"))

    return Deployment(
        deployment_id=meta.get("name", ""),
        name=meta.get("name", ""),
        package_id=generate_package_id(repo_url, path),
        namespace=_get(app, "spec", "destination", "namespace") or "",
        status=status,
        version=max(len(history(app)), 1),
        description=_get(app, "status", "health", "message") or "",
        created_at=created,
        updated_at=parse_timestamp(_get(app, "status", "reconciledAt")) or created,
        extensions={
            "argocd.appName": meta.get("name", ""),
            "argocd.project": _get(app, "spec", "project") or "",
            "argocd.repoURL": repo_url,
            "argocd.revision": src.get("targetRevision", ""),
            "argocd.path": path,
            "argocd.syncStatus": sync,
            "argocd.healthStatus": health,
            "argocd.labels": dict(meta.get("labels") or {}),
        },
    )


def application_to_package(app: Mapping[str, Any]) -> DeploymentPackage:
    src = source(app)
    repo_url = src.get("repoURL", "")
    path = src.get("path", "")
    return DeploymentPackage(
        package_id=generate_package_id(repo_url, path),
        name=path or repo_url,
        version=src.get("targetRevision", ""),
        package_type=PACKAGE_TYPE,
        description=f"Git repository: {repo_url}",
        uploaded_at=parse_timestamp(_get(app, "metadata", "creationTimestamp")),
        extensions={
            "argocd.repoURL": repo_url,
            "argocd.targetRevision": src.get("targetRevision", ""),
            "argocd.path": path,
        },
    )


def application_conditions(app: Mapping[str, Any]) -> tuple[DeploymentCondition, ...]:
    sync = sync_status(app)
    health = health_status(app)
    at = parse_timestamp(_get(app, "status", "reconciledAt"))
    return (
        condition("Synced", sync == "Synced", reason=sync, message=f"Sync status: {sync}", at=at),
        condition(
            "Healthy",
            None if health == "Unknown" else health == "Healthy",
            reason=health,
            message=_get(app, "status", "health", "message") or "",
            at=at,
        ),
    )


def application_status_detail(app: Mapping[str, Any]) -> DeploymentStatusDetail:
    deployment = application_to_deployment(app)
    _, progress = project_status(health_status(app), sync_status(app))
    return DeploymentStatusDetail(
        deployment_id=deployment.deployment_id,
        status=deployment.status,
        message=deployment.description,
        progress=progress,
        updated_at=deployment.updated_at,
        conditions=application_conditions(app),
        extensions={
            "argocd.syncStatus": sync_status(app),
            "argocd.healthStatus": health_status(app),
            "argocd.revision": _get(app, "status", "sync", "revision") or "",
            "argocd.resources": len(_get(app, "status", "resources") or []),
        },
    )


def application_history(app: Mapping[str, Any]) -> DeploymentHistory:
    entries = history(app)
    revisions = tuple(
        DeploymentRevision(
            revision=index,
            version=str(entry.get("revision", "")),
            deployed_at=parse_timestamp(entry.get("deployedAt")),
            status=DeploymentStatus.DEPLOYED,
            description=_get(entry, "source", "targetRevision") or "",
        )
        for index, entry in enumerate(entries)
    )
    return DeploymentHistory(
        deployment_id=_get(app, "metadata", "name") or "", revisions=revisions
    )


def history_target_revision(entry: Mapping[str, Any]) -> str:
    """Git revision a history entry was deployed from."""
    return _get(entry, "source", "targetRevision") or entry.get("revision") or ""


# ── canonical → Application ─────────────────────────────────────────────


def helm_parameters(values: Mapping[str, Any]) -> list[dict[str, str]]:
    return [{"name": key, "value": str(value)} for key, value in sorted(values.items())]


def merge_helm_parameters(app: dict[str, Any], values: Mapping[str, Any]) -> None:
    """Set ``values`` on the application's helm parameters, keeping the others."""
    helm = app.setdefault("spec", {}).setdefault("source", {}).setdefault("helm", {})
    merged = {p.get("name"): p.get("value") for p in helm.get("parameters") or []}
    merged.update({key: str(value) for key, value in values.items()})
    helm["parameters"] = [{"name": k, "value": v} for k, v in sorted(merged.items())]


def build_application(
    req: DeploymentRequest,
    repo_url: str,
    *,
    api_version: str,
    namespace: str,
    project: str,
    auto_sync: bool,
    prune: bool,
    self_heal: bool,
) -> dict[str, Any]:
    ext = req.extensions
    src: dict[str, Any] = {
        "repoURL": repo_url,
        "targetRevision": req.git_revision
        or ext.get("argocd.targetRevision")
        or DEFAULT_REVISION,
        "path": req.git_path or ext.get("argocd.path") or "",
    }
    if req.values:
        src["helm"] = {"parameters": helm_parameters(req.values)}

    spec: dict[str, Any] = {
        "project": ext.get("argocd.project") or project,
        "source": src,
        "destination": {
            "server": ext.get("argocd.destinationServer") or IN_CLUSTER_SERVER,
            "namespace": req.namespace or "default",
        },
    }
    if auto_sync:
        spec["syncPolicy"] = {"automated": {"prune": prune, "selfHeal": self_heal}}

    return {
        "apiVersion": api_version,
        "kind": "Application",
        "metadata": {
            "name": req.name,
            "namespace": namespace,
            "labels": dict(req.labels),
        },
        "spec": spec,
    }
