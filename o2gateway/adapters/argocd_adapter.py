"""
O2 Gateway — ArgoCD GitOps Adapter
===================================
O2-DMS over ArgoCD ``Application`` custom resources.

Mapping:
- Application          → deployment (id = application name)
- Git source repo+path → deployment package (derived, never stored)

Every mutation is a read-modify-replace of the Application object; the
ArgoCD controller does the actual rollout. Scaling writes the
``replicaCount`` helm parameter, rollback re-targets the source at a
revision taken from ``status.history``.

Usage:
    async with ArgoCDAdapter(ArgoCDConfig(namespace="argocd")) as adapter:
        apps = await adapter.list_deployments(DeploymentFilter(status=DeploymentStatus.DEPLOYED))
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from o2gateway.adapters.base import (
    DeploymentAdapter,
    validate_dns1123_name,
    validate_non_negative,
)
from o2gateway.core.concurrency import InitGuard, bounded
from o2gateway.core.config import ArgoCDConfig, get_settings
from o2gateway.core.exceptions import GatewayError, InvalidArgumentError, NotFoundError
from o2gateway.core.filtering import filter_and_paginate, matches_deployment_filter, paginate
from o2gateway.core.logging import get_logger
from o2gateway.integrations.kubernetes_client import (
    ARGOCD_APPLICATION,
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
from o2gateway.translators import argocd as translate
from o2gateway.translators.common import deployment_summary

logger = get_logger(__name__)


class ArgoCDAdapter(DeploymentAdapter):
    """GitOps deployment lifecycle backed by ArgoCD Applications."""

    NAME = "argocd"
    VERSION = "2.10.0"
    CAPABILITIES = frozenset(
        {
            Capability.PACKAGE_MANAGEMENT,
            Capability.DEPLOYMENT_LIFECYCLE,
            Capability.ROLLBACK,
            Capability.SCALING,
            Capability.GITOPS,
            Capability.HEALTH_CHECKS,
        }
    )

    def __init__(
        self,
        config: ArgoCDConfig,
        *,
        client: BaseKubernetesClient | None = None,
    ) -> None:
        super().__init__()
        self._config = config
        self._injected_client = client
        self._client: InitGuard[BaseKubernetesClient] = InitGuard(
            self._create_client, name="argocd.client"
        )

    @classmethod
    def from_settings(cls) -> ArgoCDAdapter:
        settings = get_settings()
        return cls(
            ArgoCDConfig(
                kubeconfig=settings.kubeconfig,
                namespace=settings.argocd_namespace,
                default_project=settings.argocd_default_project,
                timeout=settings.request_timeout_seconds,
                health_timeout=settings.health_timeout_seconds,
            )
        )

    @property
    def namespace(self) -> str:
        return self._config.namespace

    async def _create_client(self) -> BaseKubernetesClient:
        if self._injected_client is not None:
            return self._injected_client
        logger.info("argocd_adapter.client_created", namespace=self.namespace)
        return await KubernetesAsyncioClient.from_kubeconfig(
            self._config.kubeconfig, backend=self.NAME
        )

    @asynccontextmanager
    async def _call(
        self, operation: str, entity_id: str | None = None
    ) -> AsyncIterator[BaseKubernetesClient]:
        async with bounded(
            self._config.timeout,
            backend=self.NAME,
            operation=operation,
            entity_id=entity_id,
        ):
            yield await self._client.get()

    async def _application(
        self, client: BaseKubernetesClient, name: str, operation: str
    ) -> dict[str, Any]:
        try:
            return await client.get_object(ARGOCD_APPLICATION, name, self.namespace)
        except NotFoundError as exc:
            raise NotFoundError(
                "deployment not found",
                backend=self.NAME,
                operation=operation,
                entity_id=name,
            ) from exc

    async def _applications(self, operation: str, selector: str = "") -> list[dict[str, Any]]:
        async with self._call(operation) as client:
            return await client.list_objects(
                ARGOCD_APPLICATION, self.namespace, selector=selector
            )

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def health(self) -> None:
        async with bounded(
            self._config.health_timeout, backend=self.NAME, operation="health"
        ):
            client = await self._client.get()
            try:
                await client.list_objects(ARGOCD_APPLICATION, self.namespace, limit=1)
            except GatewayError as exc:
                logger.error("argocd_adapter.health_failed", error=str(exc))
                raise
        logger.debug("argocd_adapter.health_ok")

    async def close(self) -> None:
        client = await self._client.reset()
        if client is not None:
            await client.aclose()
        logger.info("argocd_adapter.closed")

    # ── Packages ────────────────────────────────────────────────────────

    async def _all_packages(self, operation: str) -> list[DeploymentPackage]:
        seen: dict[str, DeploymentPackage] = {}
        for app in await self._applications(operation):
            pkg = translate.application_to_package(app)
            seen.setdefault(pkg.package_id, pkg)
        return list(seen.values())

    async def list_deployment_packages(
        self, flt: DeploymentFilter | None = None
    ) -> list[DeploymentPackage]:
        return paginate(await self._all_packages("list_deployment_packages"), flt)

    async def get_deployment_package(self, package_id: str) -> DeploymentPackage:
        for pkg in await self._all_packages("get_deployment_package"):
            if pkg.package_id == package_id:
                return pkg
        raise NotFoundError(
            "package not found",
            backend=self.NAME,
            operation="get_deployment_package",
            entity_id=package_id,
        )

    async def upload_deployment_package(
        self, pkg: DeploymentPackageUpload
    ) -> DeploymentPackage:
        repo_url = pkg.extensions.get("argocd.repoURL") or pkg.repository
        if not repo_url:
            raise InvalidArgumentError(
                "argocd.repoURL extension is required",
                backend=self.NAME,
                operation="upload_deployment_package",
                entity_id=pkg.name or None,
            )
        path = pkg.extensions.get("argocd.path", "")
        revision = pkg.extensions.get("argocd.targetRevision") or pkg.version
        # Nothing is written: the Git repository itself is the package.
        return DeploymentPackage(
            package_id=translate.generate_package_id(repo_url, path),
            name=pkg.name,
            version=pkg.version,
            package_type=translate.PACKAGE_TYPE,
            description=pkg.description or f"Git repository: {repo_url}",
            uploaded_at=utcnow(),
            extensions={
                "argocd.repoURL": repo_url,
                "argocd.targetRevision": revision or translate.DEFAULT_REVISION,
                "argocd.path": path,
            },
        )

    async def delete_deployment_package(self, package_id: str) -> None:
        raise self._not_supported(
            "delete_deployment_package",
            "ArgoCD does not support package deletion; remove the Git source instead",
            package_id,
        )

    # ── Deployments ─────────────────────────────────────────────────────

    async def list_deployments(
        self, flt: DeploymentFilter | None = None
    ) -> list[Deployment]:
        selector = label_selector(flt.labels) if flt else ""
        apps = await self._applications("list_deployments", selector)
        deployments = [translate.application_to_deployment(app) for app in apps]
        return filter_and_paginate(
            deployments,
            lambda d: matches_deployment_filter(
                flt,
                namespace=d.namespace,
                status=d.status,
                labels=d.extensions.get("argocd.labels"),
            ),
            flt,
        )

    async def get_deployment(self, deployment_id: str) -> Deployment:
        async with self._call("get_deployment", deployment_id) as client:
            app = await self._application(client, deployment_id, "get_deployment")
        return translate.application_to_deployment(app)

    async def create_deployment(self, req: DeploymentRequest) -> Deployment:
        if not req.name:
            raise InvalidArgumentError(
                "deployment name is required",
                backend=self.NAME,
                operation="create_deployment",
            )
        validate_dns1123_name(req.name, backend=self.NAME, operation="create_deployment")
        repo_url = req.git_repo or req.extensions.get("argocd.repoURL")
        if not repo_url:
            raise InvalidArgumentError(
                "argocd.repoURL extension is required",
                backend=self.NAME,
                operation="create_deployment",
                entity_id=req.name,
            )
        body = translate.build_application(
            req,
            repo_url,
            api_version=ARGOCD_APPLICATION.api_version,
            namespace=self.namespace,
            project=self._config.default_project,
            auto_sync=self._config.auto_sync,
            prune=self._config.prune,
            self_heal=self._config.self_heal,
        )
        async with self._call("create_deployment", req.name) as client:
            created = await client.create_object(ARGOCD_APPLICATION, body, self.namespace)
        logger.info(
            "argocd_adapter.application_created",
            name=req.name,
            repo_url=repo_url,
            revision=body["spec"]["source"]["targetRevision"],
        )
        return translate.application_to_deployment(created)

    async def update_deployment(
        self, deployment_id: str, update: DeploymentUpdate
    ) -> Deployment:
        async with self._call("update_deployment", deployment_id) as client:
            app = await self._application(client, deployment_id, "update_deployment")
            src = app.setdefault("spec", {}).setdefault("source", {})
            revision = update.git_revision or update.extensions.get("argocd.targetRevision")
            if revision:
                src["targetRevision"] = revision
            if update.extensions.get("argocd.path"):
                src["path"] = update.extensions["argocd.path"]
            if update.values:
                translate.merge_helm_parameters(app, update.values)
            updated = await client.replace_object(
                ARGOCD_APPLICATION, deployment_id, app, self.namespace
            )
        logger.info("argocd_adapter.application_updated", name=deployment_id)
        return translate.application_to_deployment(updated)

    async def delete_deployment(self, deployment_id: str) -> None:
        async with self._call("delete_deployment", deployment_id) as client:
            try:
                await client.delete_object(ARGOCD_APPLICATION, deployment_id, self.namespace)
            except NotFoundError as exc:
                raise NotFoundError(
                    "deployment not found",
                    backend=self.NAME,
                    operation="delete_deployment",
                    entity_id=deployment_id,
                ) from exc
        logger.info("argocd_adapter.application_deleted", name=deployment_id)

    async def scale_deployment(self, deployment_id: str, replicas: int) -> None:
        validate_non_negative(
            replicas,
            "replicas",
            backend=self.NAME,
            operation="scale_deployment",
            entity_id=deployment_id,
        )
        async with self._call("scale_deployment", deployment_id) as client:
            app = await self._application(client, deployment_id, "scale_deployment")
            translate.merge_helm_parameters(app, {translate.REPLICA_PARAMETER: replicas})
            await client.replace_object(ARGOCD_APPLICATION, deployment_id, app, self.namespace)
        logger.info("argocd_adapter.application_scaled", name=deployment_id, replicas=replicas)

    async def rollback_deployment(self, deployment_id: str, revision: int) -> None:
        validate_non_negative(
            revision,
            "revision",
            backend=self.NAME,
            operation="rollback_deployment",
            entity_id=deployment_id,
        )
        async with self._call("rollback_deployment", deployment_id) as client:
            app = await self._application(client, deployment_id, "rollback_deployment")
            entries = translate.history(app)
            if revision >= len(entries):
                raise NotFoundError(
                    f"revision {revision} not found in history",
                    backend=self.NAME,
                    operation="rollback_deployment",
                    entity_id=deployment_id,
                )
            target = translate.history_target_revision(entries[revision])
            app.setdefault("spec", {}).setdefault("source", {})["targetRevision"] = target
            await client.replace_object(ARGOCD_APPLICATION, deployment_id, app, self.namespace)
        logger.info(
            "argocd_adapter.application_rolled_back",
            name=deployment_id,
            revision=revision,
            target_revision=target,
        )

    async def get_deployment_status(self, deployment_id: str) -> DeploymentStatusDetail:
        async with self._call("get_deployment_status", deployment_id) as client:
            app = await self._application(client, deployment_id, "get_deployment_status")
        return translate.application_status_detail(app)

    async def get_deployment_history(self, deployment_id: str) -> DeploymentHistory:
        async with self._call("get_deployment_history", deployment_id) as client:
            app = await self._application(client, deployment_id, "get_deployment_history")
        return translate.application_history(app)

    async def get_deployment_logs(
        self, deployment_id: str, opts: LogOptions | None = None
    ) -> bytes:
        return deployment_summary(await self.get_deployment(deployment_id))
