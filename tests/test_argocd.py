"""
O2 Gateway — ArgoCD Adapter Tests
==================================
Validates:
- Health/sync → canonical status and progress projection
- Deterministic package ids from Git sources
- Application create/update/scale/rollback via read-modify-replace
- Rollback revision bounds and package upload validation
"""

from __future__ import annotations

import json

import pytest

from o2gateway.adapters.argocd_adapter import ArgoCDAdapter
from o2gateway.core.config import ArgoCDConfig
from o2gateway.core.exceptions import (
    AlreadyExistsError,
    InvalidArgumentError,
    NotFoundError,
    OperationNotSupportedError,
)
from o2gateway.integrations.kubernetes_client import ARGOCD_APPLICATION, MockKubernetesClient
from o2gateway.models.dms import (
    ConditionStatus,
    DeploymentFilter,
    DeploymentPackageUpload,
    DeploymentRequest,
    DeploymentStatus,
    DeploymentUpdate,
)
from o2gateway.translators import argocd as translate

REPO = "https://github.com/example/apps"


def _application(name="web", health="Healthy", sync="Synced", history=None, labels=None):
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": {
            "name": name,
            "namespace": "argocd",
            "labels": labels or {},
            "creationTimestamp": "2024-05-01T10:00:00Z",
        },
        "spec": {
            "project": "default",
            "source": {"repoURL": REPO, "path": "web", "targetRevision": "v2"},
            "destination": {"namespace": "prod"},
        },
        "status": {
            "health": {"status": health},
            "sync": {"status": sync, "revision": "abc123"},
            "history": history or [],
        },
    }


@pytest.fixture
def k8s():
    return MockKubernetesClient(backend="argocd")


@pytest.fixture
def adapter(k8s):
    return ArgoCDAdapter(ArgoCDConfig(namespace="argocd"), client=k8s)


# ── Status Projection ───────────────────────────────────────────────────


@pytest.mark.parametrize(
    "health, sync, expected",
    [
        ("Healthy", "Synced", (DeploymentStatus.DEPLOYED, 100)),
        ("Healthy", "OutOfSync", (DeploymentStatus.DEPLOYING, 90)),
        ("Unknown", "OutOfSync", (DeploymentStatus.DEPLOYING, 0)),
        ("Progressing", "Synced", (DeploymentStatus.DEPLOYING, 50)),
        ("Suspended", "Synced", (DeploymentStatus.PENDING, 25)),
        ("Degraded", "Synced", (DeploymentStatus.FAILED, 0)),
        ("Whatever", "Synced", (DeploymentStatus.FAILED, 0)),
    ],
)
def test_project_status(health, sync, expected):
    assert translate.project_status(health, sync) == expected


def test_generate_package_id():
    assert (
        translate.generate_package_id("https://github.com/example/repo", "apps/myapp")
        == "https-github-com-example-repo-apps-myapp"
    )
    assert translate.generate_package_id("https://github.com/example/repo") == (
        "https-github-com-example-repo"
    )


def test_application_to_deployment():
    dep = translate.application_to_deployment(
        _application(history=[{"revision": "a"}, {"revision": "b"}])
    )

    assert dep.deployment_id == "web"
    assert dep.namespace == "prod"
    assert dep.version == 2
    assert dep.package_id == "https-github-com-example-apps-web"
    assert dep.extensions["argocd.revision"] == "v2"


def test_unknown_health_condition_is_unknown():
    conditions = translate.application_conditions(_application(health="Unknown", sync="Synced"))
    assert [c.status for c in conditions] == [ConditionStatus.TRUE, ConditionStatus.UNKNOWN]


# ── Packages ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_packages_are_derived_and_deduplicated(adapter, k8s):
    k8s.seed(ARGOCD_APPLICATION, _application("web"))
    k8s.seed(ARGOCD_APPLICATION, _application("web-canary"))

    packages = await adapter.list_deployment_packages()

    assert [p.package_id for p in packages] == ["https-github-com-example-apps-web"]
    pkg = await adapter.get_deployment_package(packages[0].package_id)
    assert pkg.package_type == "git-repo"

    with pytest.raises(NotFoundError):
        await adapter.get_deployment_package("nope")


@pytest.mark.asyncio
async def test_upload_requires_repo_url(adapter):
    with pytest.raises(InvalidArgumentError):
        await adapter.upload_deployment_package(DeploymentPackageUpload(name="app"))

    pkg = await adapter.upload_deployment_package(
        DeploymentPackageUpload(
            name="app", extensions={"argocd.repoURL": REPO, "argocd.path": "charts/app"}
        )
    )
    assert pkg.package_id == "https-github-com-example-apps-charts-app"
    assert pkg.extensions["argocd.targetRevision"] == "HEAD"


@pytest.mark.asyncio
async def test_package_delete_not_supported(adapter):
    with pytest.raises(OperationNotSupportedError):
        await adapter.delete_deployment_package("any")


# ── Deployments ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_deployment(adapter, k8s):
    dep = await adapter.create_deployment(
        DeploymentRequest(
            name="web",
            namespace="prod",
            git_repo=REPO,
            git_path="web",
            values={"replicaCount": 2},
            labels={"team": "edge"},
        )
    )

    assert dep.deployment_id == "web"
    stored = await k8s.get_object(ARGOCD_APPLICATION, "web", "argocd")
    assert stored["spec"]["source"]["targetRevision"] == "HEAD"
    assert stored["spec"]["source"]["helm"]["parameters"] == [
        {"name": "replicaCount", "value": "2"}
    ]
    assert "syncPolicy" not in stored["spec"]

    with pytest.raises(AlreadyExistsError):
        await adapter.create_deployment(DeploymentRequest(name="web", git_repo=REPO))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "req",
    [
        DeploymentRequest(name="", git_repo=REPO),
        DeploymentRequest(name="Bad_Name", git_repo=REPO),
        DeploymentRequest(name="web"),
    ],
)
async def test_create_deployment_validation(adapter, k8s, req):
    with pytest.raises(InvalidArgumentError):
        await adapter.create_deployment(req)
    assert "create:applications" not in k8s.calls


@pytest.mark.asyncio
async def test_list_deployments_by_label_and_status(adapter, k8s):
    k8s.seed(ARGOCD_APPLICATION, _application("web", labels={"team": "edge"}))
    k8s.seed(ARGOCD_APPLICATION, _application("db", health="Degraded", labels={"team": "edge"}))
    k8s.seed(ARGOCD_APPLICATION, _application("ops", labels={"team": "core"}))

    edge = await adapter.list_deployments(DeploymentFilter(labels={"team": "edge"}))
    assert sorted(d.name for d in edge) == ["db", "web"]

    healthy = await adapter.list_deployments(
        DeploymentFilter(labels={"team": "edge"}, status=DeploymentStatus.DEPLOYED)
    )
    assert [d.name for d in healthy] == ["web"]


@pytest.mark.asyncio
async def test_update_and_scale(adapter, k8s):
    k8s.seed(ARGOCD_APPLICATION, _application("web"))

    await adapter.update_deployment(
        "web", DeploymentUpdate(git_revision="v3", values={"image.tag": "1.2"})
    )
    await adapter.scale_deployment("web", 5)

    src = (await k8s.get_object(ARGOCD_APPLICATION, "web", "argocd"))["spec"]["source"]
    assert src["targetRevision"] == "v3"
    assert src["helm"]["parameters"] == [
        {"name": "image.tag", "value": "1.2"},
        {"name": "replicaCount", "value": "5"},
    ]


@pytest.mark.asyncio
async def test_scale_rejects_negative(adapter):
    with pytest.raises(InvalidArgumentError):
        await adapter.scale_deployment("web", -1)


@pytest.mark.asyncio
async def test_rollback(adapter, k8s):
    history = [
        {"revision": "aaa", "source": {"targetRevision": "v1"}},
        {"revision": "bbb", "source": {"targetRevision": "v2"}},
    ]
    k8s.seed(ARGOCD_APPLICATION, _application("web", history=history))

    await adapter.rollback_deployment("web", 0)
    stored = await k8s.get_object(ARGOCD_APPLICATION, "web", "argocd")
    assert stored["spec"]["source"]["targetRevision"] == "v1"

    with pytest.raises(NotFoundError):
        await adapter.rollback_deployment("web", 2)
    with pytest.raises(InvalidArgumentError):
        await adapter.rollback_deployment("web", -1)


@pytest.mark.asyncio
async def test_status_history_and_logs(adapter, k8s):
    k8s.seed(
        ARGOCD_APPLICATION,
        _application("web", sync="OutOfSync", history=[{"revision": "aaa"}]),
    )

    detail = await adapter.get_deployment_status("web")
    assert detail.status is DeploymentStatus.DEPLOYING
    assert detail.progress == 90
    assert detail.extensions["argocd.revision"] == "abc123"

    history = await adapter.get_deployment_history("web")
    assert [r.version for r in history.revisions] == ["aaa"]

    logs = json.loads(await adapter.get_deployment_logs("web"))
    assert logs["deploymentId"] == "web"
    assert logs["status"] == "deploying"


@pytest.mark.asyncio
async def test_missing_deployment(adapter):
    with pytest.raises(NotFoundError, match="deployment not found"):
        await adapter.get_deployment("ghost")
    with pytest.raises(NotFoundError):
        await adapter.delete_deployment("ghost")


@pytest.mark.asyncio
async def test_delete_deployment(adapter, k8s):
    k8s.seed(ARGOCD_APPLICATION, _application("web"))
    await adapter.delete_deployment("web")
    assert await adapter.list_deployments() == []


@pytest.mark.asyncio
async def test_health(adapter, k8s):
    await adapter.health()
    assert k8s.calls == ["list:applications"]
    await adapter.close()
