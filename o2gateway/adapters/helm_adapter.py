"""
O2 Gateway — Helm Adapter
==========================
O2-DMS over Helm releases and an HTTP chart repository.

Mapping:
- chart version (repository ``index.yaml``) → deployment package
- release                                   → deployment

Both backend handles are created lazily: the Helm client on the first
release operation, the Kubernetes client on the first log request. The
repository index is downloaded on demand and cached per repository URL
until a package delete or ``close()`` invalidates it.

Usage:
    adapter = HelmAdapter.from_settings()
    dep = await adapter.create_deployment(
        DeploymentRequest(name="web", package_id="nginx-15.0.0", values={"replicaCount": 2})
    )
    await adapter.rollback_deployment("web", 0)   # previous revision
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, AsyncIterator

import httpx

from o2gateway.adapters.base import (
    DeploymentAdapter,
    validate_dns1123_name,
    validate_non_negative,
)
from o2gateway.core.concurrency import InitGuard, ReadWriteLock, bounded
from o2gateway.core.config import HelmConfig, get_settings
from o2gateway.core.exceptions import (
    GatewayError,
    InvalidArgumentError,
    MissingConfigurationError,
    NotFoundError,
)
from o2gateway.core.filtering import filter_and_paginate, matches_deployment_filter, paginate
from o2gateway.core.logging import get_logger
from o2gateway.integrations.helm_client import BaseHelmClient, ChartRepository, HelmCLIClient
from o2gateway.integrations.kubernetes_client import (
    BaseKubernetesClient,
    KubernetesAsyncioClient,
    label_selector,
)
from o2gateway.models.common import Capability
from o2gateway.models.dms import (
    Deployment,
    DeploymentFilter,
    DeploymentHistory,
    DeploymentPackage,
    DeploymentPackageUpload,
    DeploymentRequest,
    DeploymentStatusDetail,
    DeploymentUpdate,
    LogOptions,
    utcnow,
)
from o2gateway.translators import helm as translate

logger = get_logger(__name__)

INSTANCE_LABEL = "app.kubernetes.io/instance"


class HelmAdapter(DeploymentAdapter):
    """Imperative deployments backed by Helm releases."""

    NAME = "helm"
    VERSION = "3.14.0"
    CAPABILITIES = frozenset(
        {
            Capability.PACKAGE_MANAGEMENT,
            Capability.DEPLOYMENT_LIFECYCLE,
            Capability.ROLLBACK,
            Capability.SCALING,
            Capability.HEALTH_CHECKS,
        }
    )

    def __init__(
        self,
        config: HelmConfig,
        *,
        client: BaseHelmClient | None = None,
        kubernetes: BaseKubernetesClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self._config = config
        self._injected_client = client
        self._injected_kubernetes = kubernetes
        self._transport = transport
        self._client: InitGuard[BaseHelmClient] = InitGuard(
            self._create_client, name="helm.client"
        )
        self._kubernetes: InitGuard[BaseKubernetesClient] = InitGuard(
            self._create_kubernetes, name="helm.kubernetes"
        )
        self._repository: ChartRepository | None = None
        self._indexes: dict[str, dict[str, Any]] = {}
        self._index_lock = ReadWriteLock()

    @classmethod
    def from_settings(cls) -> HelmAdapter:
        settings = get_settings()
        return cls(
            HelmConfig(
                kubeconfig=settings.kubeconfig,
                namespace=settings.helm_namespace,
                repository_url=settings.helm_repository_url,
                repository_username=settings.helm_repository_username,
                repository_password=settings.helm_repository_password,
                helm_binary=settings.helm_binary,
                health_timeout=settings.health_timeout_seconds,
            )
        )

    async def _create_client(self) -> BaseHelmClient:
        if self._injected_client is not None:
            return self._injected_client
        logger.info("helm_adapter.client_created", binary=self._config.helm_binary)
        return HelmCLIClient(self._config.helm_binary, self._config.kubeconfig)

    async def _create_kubernetes(self) -> BaseKubernetesClient:
        if self._injected_kubernetes is not None:
            return self._injected_kubernetes
        return await KubernetesAsyncioClient.from_kubeconfig(
            self._config.kubeconfig, backend=self.NAME
        )

    @asynccontextmanager
    async def _call(
        self, operation: str, entity_id: str | None = None
    ) -> AsyncIterator[BaseHelmClient]:
        async with bounded(
            self._config.timeout,
            backend=self.NAME,
            operation=operation,
            entity_id=entity_id,
        ):
            yield await self._client.get()

    async def _locate(self, client: BaseHelmClient, name: str, operation: str) -> str:
        """Namespace of release ``name``, searched across all namespaces."""
        for release in await client.list_releases():
            if release.get("name") == name:
                return release.get("namespace") or self._config.namespace
        raise NotFoundError(
            "deployment not found", backend=self.NAME, operation=operation, entity_id=name
        )

    # ── Repository Index ────────────────────────────────────────────────

    def _repository_url(self, operation: str) -> str:
        if not self._config.repository_url:
            raise MissingConfigurationError(
                "repository URL not configured", backend=self.NAME, operation=operation
            )
        return self._config.repository_url

    async def _index(self, operation: str) -> tuple[str, dict[str, Any]]:
        url = self._repository_url(operation)
        with self._index_lock.read():
            cached = self._indexes.get(url)
        if cached is not None:
            return url, cached

        if self._repository is None:
            password = self._config.repository_password
            self._repository = ChartRepository(
                url,
                username=self._config.repository_username,
                password=password.get_secret_value() if password else None,
                transport=self._transport,
            )
        async with bounded(self._config.timeout, backend=self.NAME, operation=operation):
            index = await self._repository.fetch_index()
        with self._index_lock.write():
            self._indexes[url] = index
        return url, index

    def _invalidate_index(self) -> None:
        with self._index_lock.write():
            self._indexes.clear()

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def health(self) -> None:
        async with bounded(
            self._config.health_timeout, backend=self.NAME, operation="health"
        ):
            client = await self._client.get()
            try:
                await client.list_releases(limit=1)
            except GatewayError as exc:
                logger.error("helm_adapter.health_failed", error=str(exc))
                raise
        logger.debug("helm_adapter.health_ok")

    async def close(self) -> None:
        client = await self._client.reset()
        if client is not None:
            await client.aclose()
        kubernetes = await self._kubernetes.reset()
        if kubernetes is not None:
            await kubernetes.aclose()
        if self._repository is not None:
            await self._repository.aclose()
            self._repository = None
        self._invalidate_index()
        logger.info("helm_adapter.closed")

    # ── Packages ────────────────────────────────────────────────────────

    async def list_deployment_packages(
        self, flt: DeploymentFilter | None = None
    ) -> list[DeploymentPackage]:
        url, index = await self._index("list_deployment_packages")
        return paginate(translate.index_packages(index, url, flt), flt)

    async def get_deployment_package(self, package_id: str) -> DeploymentPackage:
        url, index = await self._index("get_deployment_package")
        pkg = translate.find_package(index, url, package_id)
        if pkg is None:
            raise NotFoundError(
                "chart not found",
                backend=self.NAME,
                operation="get_deployment_package",
                entity_id=package_id,
            )
        return pkg

    async def upload_deployment_package(
        self, pkg: DeploymentPackageUpload
    ) -> DeploymentPackage:
        if not pkg.name or not pkg.version:
            raise InvalidArgumentError(
                "chart name and version are required",
                backend=self.NAME,
                operation="upload_deployment_package",
                entity_id=pkg.name or None,
            )
        # Pushing chart archives is repository specific; the package is
        # registered by reference and resolved from the index on install.
        return DeploymentPackage(
            package_id=translate.package_id(pkg.name, pkg.version),
            name=pkg.name,
            version=pkg.version,
            package_type=translate.PACKAGE_TYPE,
            description=pkg.description,
            uploaded_at=utcnow(),
            extensions={
                "helm.chartName": pkg.name,
                "helm.chartVersion": pkg.version,
                "helm.repository": pkg.repository or self._config.repository_url or "",
            },
        )

    async def delete_deployment_package(self, package_id: str) -> None:
        pkg = await self.get_deployment_package(package_id)
        self._invalidate_index()
        raise self._not_supported(
            "delete_deployment_package",
            f"chart deletion is not supported by the repository (index cache cleared for {pkg.name})",
            package_id,
        )

    # ── Deployments ─────────────────────────────────────────────────────

    async def list_deployments(
        self, flt: DeploymentFilter | None = None
    ) -> list[Deployment]:
        async with self._call("list_deployments") as client:
            releases = await client.list_releases()
        deployments = [translate.release_to_deployment(r) for r in releases]
        # Release labels live on the rendered resources; only namespace and
        # status narrow the result.
        scope = replace(flt, labels={}) if flt else None
        return filter_and_paginate(
            deployments,
            lambda d: matches_deployment_filter(scope, namespace=d.namespace, status=d.status),
            flt,
        )

    async def get_deployment(self, deployment_id: str) -> Deployment:
        async with self._call("get_deployment", deployment_id) as client:
            namespace = await self._locate(client, deployment_id, "get_deployment")
            release = await client.get_release(deployment_id, namespace)
        return translate.release_to_deployment(release)

    async def _resolve_chart(self, package_id: str) -> tuple[str, str, str]:
        """Chart reference, version and repository for an install."""
        if not self._config.repository_url:
            return package_id, "", ""
        url, index = await self._index("create_deployment")
        pkg = translate.find_package(index, url, package_id)
        if pkg is None:
            # Not an index entry: pass it through as a chart reference.
            return package_id, "", ""
        return pkg.name, pkg.version, url

    async def create_deployment(self, req: DeploymentRequest) -> Deployment:
        validate_dns1123_name(req.name, backend=self.NAME, operation="create_deployment")
        if not req.package_id:
            raise InvalidArgumentError(
                "package ID is required",
                backend=self.NAME,
                operation="create_deployment",
                entity_id=req.name,
            )
        chart, version, repository = await self._resolve_chart(req.package_id)
        namespace = req.namespace or self._config.namespace
        async with self._call("create_deployment", req.name) as client:
            release = await client.install(
                req.name,
                chart,
                namespace,
                dict(req.values),
                version=version,
                repository=repository,
                timeout=self._config.timeout,
            )
        logger.info(
            "helm_adapter.release_installed",
            release=req.name,
            chart=chart,
            version=version,
            namespace=namespace,
        )
        return translate.release_to_deployment(release)

    async def update_deployment(
        self, deployment_id: str, update: DeploymentUpdate
    ) -> Deployment:
        async with self._call("update_deployment", deployment_id) as client:
            namespace = await self._locate(client, deployment_id, "update_deployment")
            current = translate.release_to_deployment(
                await client.get_release(deployment_id, namespace)
            )
            chart = update.extensions.get("helm.chart") or current.extensions["helm.chart"]
            version = (
                update.extensions.get("helm.chartVersion")
                or current.extensions["helm.chartVersion"]
            )
            release = await client.upgrade(
                deployment_id,
                chart,
                namespace,
                dict(update.values),
                version=version,
                repository=self._config.repository_url or "",
                max_history=self._config.max_history,
                timeout=self._config.timeout,
            )
        logger.info("helm_adapter.release_upgraded", release=deployment_id, chart=chart)
        return translate.release_to_deployment(release)

    async def delete_deployment(self, deployment_id: str) -> None:
        async with self._call("delete_deployment", deployment_id) as client:
            namespace = await self._locate(client, deployment_id, "delete_deployment")
            await client.uninstall(deployment_id, namespace, timeout=self._config.timeout)
        logger.info("helm_adapter.release_uninstalled", release=deployment_id)

    async def scale_deployment(self, deployment_id: str, replicas: int) -> None:
        validate_non_negative(
            replicas,
            "replicas",
            backend=self.NAME,
            operation="scale_deployment",
            entity_id=deployment_id,
        )
        async with self._call("scale_deployment", deployment_id) as client:
            namespace = await self._locate(client, deployment_id, "scale_deployment")
            current = translate.release_to_deployment(
                await client.get_release(deployment_id, namespace)
            )
            values = await client.get_values(deployment_id, namespace)
            values[translate.REPLICA_VALUE] = replicas
            await client.upgrade(
                deployment_id,
                current.extensions["helm.chart"],
                namespace,
                values,
                version=current.extensions["helm.chartVersion"],
                repository=self._config.repository_url or "",
                reuse_values=True,
                max_history=self._config.max_history,
                timeout=self._config.timeout,
            )
        logger.info("helm_adapter.release_scaled", release=deployment_id, replicas=replicas)

    async def rollback_deployment(self, deployment_id: str, revision: int) -> None:
        validate_non_negative(
            revision,
            "revision",
            backend=self.NAME,
            operation="rollback_deployment",
            entity_id=deployment_id,
        )
        async with self._call("rollback_deployment", deployment_id) as client:
            namespace = await self._locate(client, deployment_id, "rollback_deployment")
            await client.rollback(
                deployment_id,
                revision,
                namespace,
                max_history=self._config.max_history,
                timeout=self._config.timeout,
            )
        logger.info(
            "helm_adapter.release_rolled_back", release=deployment_id, revision=revision
        )

    async def get_deployment_status(self, deployment_id: str) -> DeploymentStatusDetail:
        async with self._call("get_deployment_status", deployment_id) as client:
            namespace = await self._locate(client, deployment_id, "get_deployment_status")
            release = await client.get_release(deployment_id, namespace)
        return translate.release_status_detail(release)

    async def get_deployment_history(self, deployment_id: str) -> DeploymentHistory:
        async with self._call("get_deployment_history", deployment_id) as client:
            namespace = await self._locate(client, deployment_id, "get_deployment_history")
            releases = await client.history(
                deployment_id, namespace, self._config.max_history
            )
        return translate.release_history(deployment_id, releases)

    async def get_deployment_logs(
        self, deployment_id: str, opts: LogOptions | None = None
    ) -> bytes:
        opts = opts or LogOptions()
        async with self._call("get_deployment_logs", deployment_id) as client:
            namespace = await self._locate(client, deployment_id, "get_deployment_logs")

        kubernetes = await self._kubernetes.get()
        selector = label_selector({INSTANCE_LABEL: deployment_id})
        async with bounded(
            self._config.timeout,
            backend=self.NAME,
            operation="get_deployment_logs",
            entity_id=deployment_id,
        ):
            pods = await kubernetes.list_pod_names(namespace, selector)
            if not pods:
                return (
                    f"No pods found for release {deployment_id} in namespace {namespace}"
                ).encode()

            since_seconds = 0
            if opts.since is not None:
                since_seconds = max(int((utcnow() - opts.since).total_seconds()), 1)

            sections = []
            for pod in pods:
                header = f"===== Pod: {pod} =====\n\n"
                try:
                    body = await kubernetes.read_pod_log(
                        pod,
                        namespace,
                        container=opts.container,
                        tail_lines=opts.tail_lines,
                        since_seconds=since_seconds,
                    )
                except GatewayError as exc:
                    logger.warning(
                        "helm_adapter.pod_log_failed",
                        release=deployment_id,
                        pod=pod,
                        error=str(exc),
                    )
                    body = f"Error retrieving logs: {exc}\n"
                sections.append(header + body)
        return "\n\n".join(sections).encode()
