"""
O2 Gateway — Kubernetes Client Tests
=====================================
Validates:
- In-memory client honours create conflicts and stale resourceVersions
- Label selectors and pod log tailing
- ApiException → gateway error mapping
"""

from __future__ import annotations

import pytest
from kubernetes_asyncio.client.exceptions import ApiException

from o2gateway.core.exceptions import (
    AlreadyExistsError,
    AuthenticationFailedError,
    BackendError,
    InvalidArgumentError,
    NotFoundError,
)
from o2gateway.integrations.kubernetes_client import (
    ARGOCD_APPLICATION,
    CROSSPLANE_COMPOSITION,
    MockKubernetesClient,
    _from_api_exception,
    label_selector,
)


def _app(name, labels=None):
    return {
        "apiVersion": ARGOCD_APPLICATION.api_version,
        "kind": "Application",
        "metadata": {"name": name, "labels": labels or {}},
        "spec": {},
    }


@pytest.fixture
def k8s():
    return MockKubernetesClient(backend="argocd")


def test_label_selector_is_sorted():
    assert label_selector({"tier": "edge", "app": "web"}) == "app=web,tier=edge"
    assert label_selector(None) == ""


@pytest.mark.asyncio
async def test_create_stamps_metadata(k8s):
    created = await k8s.create_object(ARGOCD_APPLICATION, _app("web"), namespace="argocd")

    meta = created["metadata"]
    assert meta["namespace"] == "argocd"
    assert meta["resourceVersion"]
    assert meta["creationTimestamp"].endswith("Z")


@pytest.mark.asyncio
async def test_create_conflict(k8s):
    await k8s.create_object(ARGOCD_APPLICATION, _app("web"), namespace="argocd")
    with pytest.raises(AlreadyExistsError) as exc_info:
        await k8s.create_object(ARGOCD_APPLICATION, _app("web"), namespace="argocd")
    assert exc_info.value.backend == "argocd"


@pytest.mark.asyncio
async def test_replace_rejects_stale_version(k8s):
    created = await k8s.create_object(ARGOCD_APPLICATION, _app("web"), namespace="argocd")
    await k8s.replace_object(ARGOCD_APPLICATION, "web", created, namespace="argocd")

    with pytest.raises(BackendError, match="modified"):
        await k8s.replace_object(ARGOCD_APPLICATION, "web", created, namespace="argocd")


@pytest.mark.asyncio
async def test_missing_objects(k8s):
    with pytest.raises(NotFoundError):
        await k8s.get_object(ARGOCD_APPLICATION, "nope", namespace="argocd")
    with pytest.raises(NotFoundError):
        await k8s.delete_object(ARGOCD_APPLICATION, "nope", namespace="argocd")


@pytest.mark.asyncio
async def test_list_by_namespace_and_selector(k8s):
    await k8s.create_object(ARGOCD_APPLICATION, _app("web", {"app": "web"}), namespace="argocd")
    await k8s.create_object(ARGOCD_APPLICATION, _app("db", {"app": "db"}), namespace="argocd")
    await k8s.create_object(ARGOCD_APPLICATION, _app("web"), namespace="other")

    names = [
        o["metadata"]["name"]
        for o in await k8s.list_objects(ARGOCD_APPLICATION, namespace="argocd", selector="app=web")
    ]
    assert names == ["web"]
    assert len(await k8s.list_objects(ARGOCD_APPLICATION)) == 3
    assert len(await k8s.list_objects(ARGOCD_APPLICATION, limit=1)) == 1


@pytest.mark.asyncio
async def test_cluster_scoped_ignores_namespace(k8s):
    k8s.seed(CROSSPLANE_COMPOSITION, {"metadata": {"name": "xnet"}})
    obj = await k8s.get_object(CROSSPLANE_COMPOSITION, "xnet", namespace="anything")
    assert obj["metadata"]["name"] == "xnet"


@pytest.mark.asyncio
async def test_pod_logs(k8s):
    k8s.add_pod("web-1", "apps", {"app.kubernetes.io/instance": "web"}, "a\nb\nc")
    k8s.add_pod("db-1", "apps", {"app.kubernetes.io/instance": "db"}, "x")

    assert await k8s.list_pod_names("apps", "app.kubernetes.io/instance=web") == ["web-1"]
    assert await k8s.read_pod_log("web-1", "apps", tail_lines=2) == "b\nc"
    with pytest.raises(NotFoundError):
        await k8s.read_pod_log("web-1", "other")


@pytest.mark.parametrize(
    "status, operation, expected",
    [
        (404, "get_applications", NotFoundError),
        (409, "create_applications", AlreadyExistsError),
        (409, "replace_applications", BackendError),
        (401, "list_applications", AuthenticationFailedError),
        (403, "list_applications", AuthenticationFailedError),
        (422, "create_applications", InvalidArgumentError),
        (500, "list_applications", BackendError),
    ],
)
def test_api_exception_mapping(status, operation, expected):
    err = _from_api_exception(
        ApiException(status=status, reason="Reason"), "argocd", operation, "web"
    )

    assert type(err) is expected
    assert err.backend == "argocd"
    assert err.entity_id == "web"
