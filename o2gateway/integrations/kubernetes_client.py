"""
O2 Gateway — Kubernetes Client
===============================
Abstraction layer over the Kubernetes API for the cluster-backed
deployment adapters (ArgoCD, Crossplane, Helm logs).

Custom resources are handled as plain dicts, the same shape the API
server returns. ``KubernetesAsyncioClient`` talks to a cluster through
``kubernetes_asyncio``; ``MockKubernetesClient`` keeps objects and pods
in memory for tests and development.

API errors are re-raised as gateway errors:

- 404       → ``NotFoundError``
- 409       → ``AlreadyExistsError`` (create) / ``BackendError`` (update)
- 401 / 403 → ``AuthenticationFailedError``
- 400 / 422 → ``InvalidArgumentError``
- socket    → ``ConnectionFailedError``

Usage:
    client = await KubernetesAsyncioClient.from_kubeconfig(config.kubeconfig)
    apps = await client.list_objects(ARGOCD_APPLICATION, namespace="argocd")
    await client.aclose()
"""

from __future__ import annotations

import abc
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from kubernetes_asyncio import client, config as k8s_config
from kubernetes_asyncio.client.exceptions import ApiException
from kubernetes_asyncio.config import ConfigException

from o2gateway.core.exceptions import (
    AlreadyExistsError,
    AuthenticationFailedError,
    BackendError,
    ConfigurationError,
    ConnectionFailedError,
    GatewayError,
    InvalidArgumentError,
    NotFoundError,
)
from o2gateway.core.logging import get_logger
from o2gateway.core.tracing import create_span

logger = get_logger(__name__)

BACKEND = "kubernetes"


@dataclass(frozen=True)
class CustomResource:
    """Group/version/plural coordinates of a custom resource kind."""

    group: str
    version: str
    plural: str
    kind: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


ARGOCD_APPLICATION = CustomResource("argoproj.io", "v1alpha1", "applications", "Application")
CROSSPLANE_COMPOSITION = CustomResource(
    "apiextensions.crossplane.io", "v1", "compositions", "Composition", namespaced=False
)
CROSSPLANE_CONFIGURATION = CustomResource(
    "pkg.crossplane.io", "v1", "configurations", "Configuration", namespaced=False
)
CROSSPLANE_PROVIDER = CustomResource(
    "pkg.crossplane.io", "v1", "providers", "Provider", namespaced=False
)


def label_selector(labels: dict[str, str] | None) -> str:
    """
    Render a label map as an equality-based selector.

    >>> label_selector({"app": "myapp"})
    'app=myapp'
    >>> label_selector({})
    ''
    """
    return ",".join(f"{key}={value}" for key, value in sorted((labels or {}).items()))


def _matches_selector(labels: dict[str, str], selector: str) -> bool:
    for term in filter(None, selector.split(",")):
        key, _, value = term.partition("=")
        if labels.get(key) != value:
            return False
    return True


# ── Abstract Base ───────────────────────────────────────────────────────


class BaseKubernetesClient(abc.ABC):
    """Custom-object and pod-log operations used by the cluster adapters."""

    backend: str = BACKEND

    @abc.abstractmethod
    async def list_objects(
        self,
        resource: CustomResource,
        namespace: str = "",
        selector: str = "",
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def get_object(
        self, resource: CustomResource, name: str, namespace: str = ""
    ) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def create_object(
        self, resource: CustomResource, body: dict[str, Any], namespace: str = ""
    ) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def replace_object(
        self,
        resource: CustomResource,
        name: str,
        body: dict[str, Any],
        namespace: str = "",
    ) -> dict[str, Any]:
        """Full update; the body must carry the ``resourceVersion`` it was read at."""
        ...

    @abc.abstractmethod
    async def delete_object(
        self, resource: CustomResource, name: str, namespace: str = ""
    ) -> None:
        ...

    @abc.abstractmethod
    async def list_pod_names(self, namespace: str, selector: str) -> list[str]:
        ...

    @abc.abstractmethod
    async def read_pod_log(
        self,
        name: str,
        namespace: str,
        container: str = "",
        tail_lines: int = 0,
        since_seconds: int = 0,
    ) -> str:
        ...

    async def aclose(self) -> None:
        """Release held resources. Default: nothing to release."""
        return None


# ── Mock Implementation ────────────────────────────────────────────────


@dataclass
class MockPod:
    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    log: str = ""


class MockKubernetesClient(BaseKubernetesClient):
    """
    In-memory API server stand-in.

    Objects are stored by (plural, namespace, name). Creates stamp a
    ``resourceVersion`` and ``creationTimestamp``; replaces with a stale
    ``resourceVersion`` are rejected like the real API server does.
    """

    def __init__(self, backend: str = BACKEND) -> None:
        self.backend = backend
        self._objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self._pods: list[MockPod] = []
        self._version = 0
        self.calls: list[str] = []

    def _key(self, resource: CustomResource, name: str, namespace: str) -> tuple[str, str, str]:
        return (resource.plural, namespace if resource.namespaced else "", name)

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def seed(self, resource: CustomResource, obj: dict[str, Any]) -> None:
        """Insert ``obj`` as-is (no conflict checks)."""
        meta = obj.setdefault("metadata", {})
        meta.setdefault("resourceVersion", self._next_version())
        key = self._key(resource, meta["name"], meta.get("namespace", ""))
        self._objects[key] = copy.deepcopy(obj)

    def add_pod(
        self,
        name: str,
        namespace: str,
        labels: dict[str, str] | None = None,
        log: str = "",
    ) -> None:
        self._pods.append(MockPod(name, namespace, dict(labels or {}), log))

    def _missing(self, resource: CustomResource, name: str, operation: str) -> NotFoundError:
        return NotFoundError(
            f"{resource.plural} {name!r} not found",
            backend=self.backend,
            operation=operation,
            entity_id=name,
        )

    async def list_objects(
        self,
        resource: CustomResource,
        namespace: str = "",
        selector: str = "",
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        self.calls.append(f"list:{resource.plural}")
        result = []
        for (plural, ns, _), obj in sorted(self._objects.items()):
            if plural != resource.plural:
                continue
            if resource.namespaced and namespace and ns != namespace:
                continue
            labels = (obj.get("metadata") or {}).get("labels") or {}
            if selector and not _matches_selector(labels, selector):
                continue
            result.append(copy.deepcopy(obj))
        return result[:limit] if limit else result

    async def get_object(
        self, resource: CustomResource, name: str, namespace: str = ""
    ) -> dict[str, Any]:
        self.calls.append(f"get:{resource.plural}")
        obj = self._objects.get(self._key(resource, name, namespace))
        if obj is None:
            raise self._missing(resource, name, "get")
        return copy.deepcopy(obj)

    async def create_object(
        self, resource: CustomResource, body: dict[str, Any], namespace: str = ""
    ) -> dict[str, Any]:
        self.calls.append(f"create:{resource.plural}")
        obj = copy.deepcopy(body)
        meta = obj.setdefault("metadata", {})
        key = self._key(resource, meta.get("name", ""), namespace)
        if key in self._objects:
            raise AlreadyExistsError(
                f"{resource.plural} {meta.get('name')!r} already exists",
                backend=self.backend,
                operation="create",
                entity_id=meta.get("name"),
            )
        if resource.namespaced:
            meta["namespace"] = namespace
        meta["resourceVersion"] = self._next_version()
        meta["creationTimestamp"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        self._objects[key] = obj
        return copy.deepcopy(obj)

    async def replace_object(
        self,
        resource: CustomResource,
        name: str,
        body: dict[str, Any],
        namespace: str = "",
    ) -> dict[str, Any]:
        self.calls.append(f"replace:{resource.plural}")
        key = self._key(resource, name, namespace)
        current = self._objects.get(key)
        if current is None:
            raise self._missing(resource, name, "replace")
        sent = (body.get("metadata") or {}).get("resourceVersion")
        if sent and sent != current["metadata"].get("resourceVersion"):
            raise BackendError(
                "the object has been modified; apply changes to the latest version",
                backend=self.backend,
                operation="replace",
                entity_id=name,
            )
        obj = copy.deepcopy(body)
        obj.setdefault("metadata", {})["resourceVersion"] = self._next_version()
        self._objects[key] = obj
        return copy.deepcopy(obj)

    async def delete_object(
        self, resource: CustomResource, name: str, namespace: str = ""
    ) -> None:
        self.calls.append(f"delete:{resource.plural}")
        if self._objects.pop(self._key(resource, name, namespace), None) is None:
            raise self._missing(resource, name, "delete")

    async def list_pod_names(self, namespace: str, selector: str) -> list[str]:
        self.calls.append("list:pods")
        return [
            pod.name
            for pod in self._pods
            if pod.namespace == namespace and _matches_selector(pod.labels, selector)
        ]

    async def read_pod_log(
        self,
        name: str,
        namespace: str,
        container: str = "",
        tail_lines: int = 0,
        since_seconds: int = 0,
    ) -> str:
        self.calls.append("read:pod_log")
        for pod in self._pods:
            if pod.name == name and pod.namespace == namespace:
                if tail_lines:
                    return "\n".join(pod.log.splitlines()[-tail_lines:])
                return pod.log
        raise NotFoundError(
            "pod not found", backend=self.backend, operation="read_pod_log", entity_id=name
        )


# ── kubernetes_asyncio Implementation ──────────────────────────────────


class KubernetesAsyncioClient(BaseKubernetesClient):
    """Cluster client on ``kubernetes_asyncio`` with one shared ``ApiClient``."""

    def __init__(self, api_client: client.ApiClient, backend: str = BACKEND) -> None:
        self.backend = backend
        self._api_client = api_client
        self._custom = client.CustomObjectsApi(api_client)
        self._core = client.CoreV1Api(api_client)

    @classmethod
    async def from_kubeconfig(
        cls, kubeconfig: str | None = None, backend: str = BACKEND
    ) -> KubernetesAsyncioClient:
        """
        Load credentials from ``kubeconfig`` when given, otherwise the
        in-cluster service account, otherwise the default kubeconfig.
        """
        configuration = client.Configuration()
        try:
            if kubeconfig:
                await k8s_config.load_kube_config(
                    config_file=kubeconfig, client_configuration=configuration
                )
                logger.info("kubernetes_client.auth_kubeconfig", path=kubeconfig)
            else:
                try:
                    k8s_config.load_incluster_config(client_configuration=configuration)
                    logger.info("kubernetes_client.auth_incluster")
                except ConfigException:
                    await k8s_config.load_kube_config(client_configuration=configuration)
                    logger.info("kubernetes_client.auth_default_kubeconfig")
        except ConfigException as exc:
            raise ConfigurationError(
                f"failed to load Kubernetes configuration: {exc}", backend=backend
            ) from exc
        return cls(client.ApiClient(configuration=configuration), backend=backend)

    @asynccontextmanager
    async def _call(self, operation: str, entity_id: str | None = None) -> AsyncIterator[None]:
        with create_span(f"kubernetes.{operation}"):
            try:
                yield
            except ApiException as exc:
                raise _from_api_exception(exc, self.backend, operation, entity_id) from exc
            except OSError as exc:
                raise ConnectionFailedError(
                    str(exc), backend=self.backend, operation=operation, entity_id=entity_id
                ) from exc

    async def list_objects(
        self,
        resource: CustomResource,
        namespace: str = "",
        selector: str = "",
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {}
        if selector:
            kwargs["label_selector"] = selector
        if limit:
            kwargs["limit"] = limit
        async with self._call(f"list_{resource.plural}"):
            if resource.namespaced and namespace:
                response = await self._custom.list_namespaced_custom_object(
                    resource.group, resource.version, namespace, resource.plural, **kwargs
                )
            else:
                response = await self._custom.list_cluster_custom_object(
                    resource.group, resource.version, resource.plural, **kwargs
                )
        return list(response.get("items") or [])

    async def get_object(
        self, resource: CustomResource, name: str, namespace: str = ""
    ) -> dict[str, Any]:
        async with self._call(f"get_{resource.plural}", name):
            if resource.namespaced:
                return await self._custom.get_namespaced_custom_object(
                    resource.group, resource.version, namespace, resource.plural, name
                )
            return await self._custom.get_cluster_custom_object(
                resource.group, resource.version, resource.plural, name
            )

    async def create_object(
        self, resource: CustomResource, body: dict[str, Any], namespace: str = ""
    ) -> dict[str, Any]:
        name = (body.get("metadata") or {}).get("name")
        async with self._call(f"create_{resource.plural}", name):
            if resource.namespaced:
                return await self._custom.create_namespaced_custom_object(
                    resource.group, resource.version, namespace, resource.plural, body
                )
            return await self._custom.create_cluster_custom_object(
                resource.group, resource.version, resource.plural, body
            )

    async def replace_object(
        self,
        resource: CustomResource,
        name: str,
        body: dict[str, Any],
        namespace: str = "",
    ) -> dict[str, Any]:
        async with self._call(f"replace_{resource.plural}", name):
            if resource.namespaced:
                return await self._custom.replace_namespaced_custom_object(
                    resource.group, resource.version, namespace, resource.plural, name, body
                )
            return await self._custom.replace_cluster_custom_object(
                resource.group, resource.version, resource.plural, name, body
            )

    async def delete_object(
        self, resource: CustomResource, name: str, namespace: str = ""
    ) -> None:
        async with self._call(f"delete_{resource.plural}", name):
            if resource.namespaced:
                await self._custom.delete_namespaced_custom_object(
                    resource.group, resource.version, namespace, resource.plural, name
                )
            else:
                await self._custom.delete_cluster_custom_object(
                    resource.group, resource.version, resource.plural, name
                )

    async def list_pod_names(self, namespace: str, selector: str) -> list[str]:
        async with self._call("list_pods"):
            pods = await self._core.list_namespaced_pod(namespace, label_selector=selector)
        return [pod.metadata.name for pod in pods.items]

    async def read_pod_log(
        self,
        name: str,
        namespace: str,
        container: str = "",
        tail_lines: int = 0,
        since_seconds: int = 0,
    ) -> str:
        kwargs: dict[str, Any] = {}
        if container:
            kwargs["container"] = container
        if tail_lines:
            kwargs["tail_lines"] = tail_lines
        if since_seconds:
            kwargs["since_seconds"] = since_seconds
        async with self._call("read_pod_log", name):
            return await self._core.read_namespaced_pod_log(name, namespace, **kwargs)

    async def aclose(self) -> None:
        await self._api_client.close()


def _from_api_exception(
    exc: ApiException, backend: str, operation: str, entity_id: str | None
) -> GatewayError:
    message = exc.reason or str(exc)
    context = {"backend": backend, "operation": operation, "entity_id": entity_id}
    if exc.status == 404:
        return NotFoundError(message, **context)
    if exc.status == 409 and operation.startswith("create_"):
        return AlreadyExistsError(message, **context)
    if exc.status in (401, 403):
        return AuthenticationFailedError(message, **context)
    if exc.status in (400, 422):
        return InvalidArgumentError(message, **context)
    return BackendError(f"status {exc.status}: {message}", **context)
