"""
O2 Gateway — Crossplane Adapter Tests
======================================
Validates:
- Condition-driven status projection
- Compositions as packages, Configurations as deployments
- Scale/rollback validate arguments before rejecting
- Single-revision history and JSON status logs
"""

from __future__ import annotations

import json

import pytest

from o2gateway.adapters.crossplane_adapter import CrossplaneAdapter
from o2gateway.core.config import CrossplaneConfig
from o2gateway.core.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    OperationNotSupportedError,
)
from o2gateway.integrations.kubernetes_client import (
    CROSSPLANE_COMPOSITION,
    CROSSPLANE_CONFIGURATION,
    MockKubernetesClient,
)
from o2gateway.models.common import Capability
from o2gateway.models.dms import (
    ConditionStatus,
    DeploymentFilter,
    DeploymentPackageUpload,
    DeploymentRequest,
    DeploymentStatus,
    DeploymentUpdate,
)
from o2gateway.translators import crossplane as translate


def _configuration(name, conditions=(), labels=None, revision=None):
    status: dict = {"conditions": list(conditions)}
    if revision is not None:
        status["currentRevision"] = revision
    return {
        "apiVersion": "pkg.crossplane.io/v1",
        "kind": "Configuration",
        "metadata": {"name": name, "labels": labels or {}},
        "spec": {"package": f"xpkg.upbound.io/example/{name}:v1.0.0"},
        "status": status,
    }


HEALTHY = {"type": "Healthy", "status": "True", "reason": "HealthyPackageRevision"}
UNHEALTHY = {"type": "Healthy", "status": "False", "reason": "UnhealthyPackageRevision"}


@pytest.fixture
def k8s():
    return MockKubernetesClient(backend="crossplane")


@pytest.fixture
def adapter(k8s):
    return CrossplaneAdapter(CrossplaneConfig(), client=k8s)


# ── Translation ─────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "conditions, expected",
    [
        ([HEALTHY], DeploymentStatus.DEPLOYED),
        ([{"type": "Installed", "status": "True"}], DeploymentStatus.DEPLOYED),
        ([UNHEALTHY], DeploymentStatus.FAILED),
        ([{"type": "Installed", "status": "False"}], DeploymentStatus.DEPLOYING),
        ([], DeploymentStatus.DEPLOYING),
    ],
)
def test_conditions_status(conditions, expected):
    assert translate.conditions_status(conditions) is expected


def test_configuration_version_from_revision():
    assert translate.configuration_to_deployment(_configuration("a", revision=3)).version == 3
    assert translate.configuration_to_deployment(_configuration("a", revision=0)).version == 1


def test_conditions_default_to_unknown_ready():
    (cond,) = translate.configuration_conditions(_configuration("a"))
    assert cond.type == "Ready"
    assert cond.status is ConditionStatus.UNKNOWN


def test_build_configuration_labels():
    body = translate.build_configuration(
        DeploymentRequest(name="net", labels={"team": "ran"}),
        "xpkg/net:v1",
        api_version="pkg.crossplane.io/v1",
    )
    assert body["metadata"]["labels"] == {
        "app.kubernetes.io/managed-by": "crossplane-adapter",
        "app.kubernetes.io/name": "net",
        "team": "ran",
    }


# ── Adapter ─────────────────────────────────────────────────────────────


def test_capabilities(adapter):
    assert adapter.supports_gitops()
    assert not adapter.supports_rollback()
    assert not adapter.supports(Capability.SCALING)


@pytest.mark.asyncio
async def test_packages(adapter, k8s):
    k8s.seed(
        CROSSPLANE_COMPOSITION,
        {
            "metadata": {"name": "xnetwork-aws"},
            "spec": {"compositeTypeRef": {"kind": "XNetwork", "apiVersion": "net.example.org/v1"}},
        },
    )

    (pkg,) = await adapter.list_deployment_packages()
    assert pkg.package_id == "xnetwork-aws"
    assert pkg.description == "Crossplane Composition for XNetwork"
    assert (await adapter.get_deployment_package("xnetwork-aws")).name == "xnetwork-aws"

    with pytest.raises(NotFoundError, match="package not found"):
        await adapter.get_deployment_package("missing")
    with pytest.raises(OperationNotSupportedError):
        await adapter.delete_deployment_package("xnetwork-aws")


@pytest.mark.asyncio
async def test_upload_requires_composition_ref(adapter):
    with pytest.raises(InvalidArgumentError):
        await adapter.upload_deployment_package(DeploymentPackageUpload(name="x"))

    pkg = await adapter.upload_deployment_package(
        DeploymentPackageUpload(name="x", extensions={"crossplane.compositionRef": "xdb"})
    )
    assert pkg.package_id == "xdb"


@pytest.mark.asyncio
async def test_create_update_delete(adapter, k8s):
    dep = await adapter.create_deployment(
        DeploymentRequest(name="net", package_id="xpkg/net:v1")
    )
    assert dep.status is DeploymentStatus.DEPLOYING

    updated = await adapter.update_deployment(
        "net", DeploymentUpdate(extensions={"crossplane.package": "xpkg/net:v2"})
    )
    assert updated.package_id == "xpkg/net:v2"

    await adapter.delete_deployment("net")
    with pytest.raises(NotFoundError, match="deployment not found"):
        await adapter.get_deployment("net")


@pytest.mark.asyncio
async def test_create_requires_package(adapter, k8s):
    with pytest.raises(InvalidArgumentError):
        await adapter.create_deployment(DeploymentRequest(name="net"))
    assert "create:configurations" not in k8s.calls


@pytest.mark.asyncio
async def test_list_deployments_filters(adapter, k8s):
    k8s.seed(CROSSPLANE_CONFIGURATION, _configuration("a", [HEALTHY], {"env": "prod"}))
    k8s.seed(CROSSPLANE_CONFIGURATION, _configuration("b", [UNHEALTHY], {"env": "prod"}))
    k8s.seed(CROSSPLANE_CONFIGURATION, _configuration("c", [HEALTHY], {"env": "dev"}))

    prod = await adapter.list_deployments(DeploymentFilter(labels={"env": "prod"}))
    assert [d.name for d in prod] == ["a", "b"]

    failed = await adapter.list_deployments(DeploymentFilter(status=DeploymentStatus.FAILED))
    assert [d.name for d in failed] == ["b"]


@pytest.mark.asyncio
async def test_scale_and_rollback_rejected(adapter):
    with pytest.raises(InvalidArgumentError):
        await adapter.scale_deployment("a", -1)
    with pytest.raises(OperationNotSupportedError, match="composition updates"):
        await adapter.scale_deployment("a", 3)
    with pytest.raises(InvalidArgumentError):
        await adapter.rollback_deployment("a", -1)
    with pytest.raises(OperationNotSupportedError, match="package version changes"):
        await adapter.rollback_deployment("a", 1)


@pytest.mark.asyncio
async def test_status_history_logs(adapter, k8s):
    k8s.seed(CROSSPLANE_CONFIGURATION, _configuration("a", [HEALTHY], revision=2))

    detail = await adapter.get_deployment_status("a")
    assert detail.progress == 100
    assert detail.conditions[0].reason == "HealthyPackageRevision"

    history = await adapter.get_deployment_history("a")
    assert [r.revision for r in history.revisions] == [2]

    logs = json.loads(await adapter.get_deployment_logs("a"))
    assert logs["status"] == "deployed"


@pytest.mark.asyncio
async def test_health_lists_providers(adapter, k8s):
    await adapter.health()
    assert k8s.calls == ["list:providers"]
