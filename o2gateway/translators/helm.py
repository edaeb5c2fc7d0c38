"""
O2 Gateway — Helm Translator
=============================
Helm releases and chart index entries ⇄ O2-DMS entities.

A chart version is a deployment package (id = ``<chart>-<version>``);
a release is a deployment (id = release name). Release status mapping:

    helm status        canonical      progress
    pending-install    pending         25
    pending-upgrade    deploying       50
    pending-rollback   rolling-back    50
    deployed           deployed       100
    uninstalling       deleting        75
    uninstalled        deleting         0
    failed             failed           0
    anything else      failed           0
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping

from o2gateway.models.dms import (
    Deployment,
    DeploymentCondition,
    DeploymentFilter,
    DeploymentHistory,
    DeploymentPackage,
    DeploymentRevision,
    DeploymentStatus,
    DeploymentStatusDetail,
)
from o2gateway.translators.common import condition, parse_timestamp

PACKAGE_TYPE = "helm-chart"
REPLICA_VALUE = "replicaCount"

_STATUS_MAP: dict[str, DeploymentStatus] = {
    "pending-install": DeploymentStatus.PENDING,
    "pending-upgrade": DeploymentStatus.DEPLOYING,
    "deployed": DeploymentStatus.DEPLOYED,
    "failed": DeploymentStatus.FAILED,
    "pending-rollback": DeploymentStatus.ROLLING_BACK,
    "uninstalling": DeploymentStatus.DELETING,
    "uninstalled": DeploymentStatus.DELETING,
}

_PROGRESS: dict[str, int] = {
    "deployed": 100,
    "pending-install": 25,
    "pending-upgrade": 50,
    "pending-rollback": 50,
    "uninstalling": 75,
}


def release_status(helm_status: str) -> DeploymentStatus:
    """
    >>> release_status("pending-rollback")
    <DeploymentStatus.ROLLING_BACK: 'rolling-back'>
    >>> release_status("superseded")
    <DeploymentStatus.FAILED: 'failed'>
    """
    return _STATUS_MAP.get(helm_status, DeploymentStatus.FAILED)


def release_progress(helm_status: str) -> int:
    return _PROGRESS.get(helm_status, 0)


def package_id(chart: str, version: str) -> str:
    return f"{chart}-{version}"


# ── Chart Index ─────────────────────────────────────────────────────────


def _chart_package(
    chart: str, entry: Mapping[str, Any], repository: str, *, detailed: bool = False
) -> DeploymentPackage:
    version = str(entry.get("version", ""))
    extensions: dict[str, Any] = {
        "helm.chartName": chart,
        "helm.chartVersion": version,
        "helm.appVersion": str(entry.get("appVersion", "")),
        "helm.repository": repository,
        "helm.apiVersion": entry.get("apiVersion", ""),
        "helm.deprecated": bool(entry.get("deprecated", False)),
    }
    if detailed:
        extensions["helm.urls"] = list(entry.get("urls") or [])
        extensions["helm.digest"] = entry.get("digest", "")
    return DeploymentPackage(
        package_id=package_id(chart, version),
        name=chart,
        version=version,
        package_type=PACKAGE_TYPE,
        description=entry.get("description", ""),
        uploaded_at=parse_timestamp(entry.get("created")),
        extensions=extensions,
    )


def _entries(index: Mapping[str, Any]) -> Iterator[tuple[str, list[Mapping[str, Any]]]]:
    for chart, versions in sorted((index.get("entries") or {}).items()):
        if isinstance(versions, list):
            yield chart, [v for v in versions if isinstance(v, Mapping)]


def _matches_chart(flt: DeploymentFilter | None, chart: str, version: str) -> bool:
    if flt is None:
        return True
    name = flt.extensions.get("helm.chartName")
    if isinstance(name, str) and name and name != chart:
        return False
    wanted = flt.extensions.get("helm.chartVersion")
    if isinstance(wanted, str) and wanted and wanted != version:
        return False
    return True


def index_packages(
    index: Mapping[str, Any], repository: str, flt: DeploymentFilter | None = None
) -> list[DeploymentPackage]:
    """One package per chart: the newest version, which the index lists first."""
    packages = []
    for chart, versions in _entries(index):
        if not versions:
            continue
        latest = versions[0]
        if _matches_chart(flt, chart, str(latest.get("version", ""))):
            packages.append(_chart_package(chart, latest, repository))
    return packages


def find_package(
    index: Mapping[str, Any], repository: str, pkg_id: str
) -> DeploymentPackage | None:
    for chart, versions in _entries(index):
        for entry in versions:
            if package_id(chart, str(entry.get("version", ""))) == pkg_id:
                return _chart_package(chart, entry, repository, detailed=True)
    return None


# ── Releases ────────────────────────────────────────────────────────────


def _info(release: Mapping[str, Any]) -> Mapping[str, Any]:
    return release.get("info") or {}


def _chart_meta(release: Mapping[str, Any]) -> Mapping[str, Any]:
    return (release.get("chart") or {}).get("metadata") or {}


def helm_status(release: Mapping[str, Any]) -> str:
    return _info(release).get("status", "unknown")


def release_to_deployment(release: Mapping[str, Any]) -> Deployment:
    info = _info(release)
    meta = _chart_meta(release)
    name = release.get("name", "")
    chart = meta.get("name", "")
    chart_version = meta.get("version", "")
    revision = int(release.get("version") or 0)
    return Deployment(
        deployment_id=name,
        name=name,
        package_id=package_id(chart, chart_version),
        namespace=release.get("namespace", ""),
        status=release_status(info.get("status", "unknown")),
        version=revision,
        description=info.get("description", ""),
        created_at=parse_timestamp(info.get("first_deployed")),
        updated_at=parse_timestamp(info.get("last_deployed")),
        extensions={
            "helm.releaseName": name,
            "helm.revision": revision,
            "helm.chart": chart,
            "helm.chartVersion": chart_version,
            "helm.appVersion": meta.get("appVersion", ""),
            "helm.namespace": release.get("namespace", ""),
        },
    )


def release_conditions(release: Mapping[str, Any]) -> tuple[DeploymentCondition, ...]:
    status = helm_status(release)
    at = parse_timestamp(_info(release).get("last_deployed"))
    if status == "deployed":
        deployed = condition(
            "Deployed",
            True,
            reason="DeploymentSuccessful",
            message="Release deployed successfully",
            at=at,
        )
    else:
        deployed = condition(
            "Deployed",
            False,
            reason="DeploymentInProgress",
            message=f"Release status: {status}",
            at=at,
        )
    return (deployed,)


def release_status_detail(release: Mapping[str, Any]) -> DeploymentStatusDetail:
    info = _info(release)
    status = helm_status(release)
    return DeploymentStatusDetail(
        deployment_id=release.get("name", ""),
        status=release_status(status),
        message=info.get("description", ""),
        progress=release_progress(status),
        updated_at=parse_timestamp(info.get("last_deployed")),
        conditions=release_conditions(release),
        extensions={
            "helm.status": status,
            "helm.revision": int(release.get("version") or 0),
            "helm.notes": info.get("notes", ""),
            "helm.resources": info.get("resources", {}),
        },
    )


def release_history(name: str, releases: list[Mapping[str, Any]]) -> DeploymentHistory:
    return DeploymentHistory(
        deployment_id=name,
        revisions=tuple(
            DeploymentRevision(
                revision=int(rel.get("version") or 0),
                version=_chart_meta(rel).get("version", ""),
                deployed_at=parse_timestamp(_info(rel).get("last_deployed")),
                status=release_status(helm_status(rel)),
                description=_info(rel).get("description", ""),
            )
            for rel in releases
        ),
    )
