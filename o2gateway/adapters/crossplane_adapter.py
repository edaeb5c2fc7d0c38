"""
O2 Gateway — Crossplane Composition Adapter
============================================
O2-DMS over Crossplane packages.

Mapping:
- Composition   (apiextensions.crossplane.io/v1) → deployment package
- Configuration (pkg.crossplane.io/v1)           → deployment

Crossplane reconciles declaratively: compositions are owned by GitOps
and cannot be deleted here, and there is no imperative scale or
rollback. Logs return the Configuration's status document as JSON.
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
from o2gateway.core.config import CrossplaneConfig, get_settings
from o2gateway.core.exceptions import GatewayError, InvalidArgumentError, NotFoundError
from o2gateway.core.filtering import filter_and_paginate, matches_deployment_filter, paginate
from o2gateway.core.logging import get_logger
from o2gateway.integrations.kubernetes_client import (
    CROSSPLANE_COMPOSITION,
    CROSSPLANE_CONFIGURATION,
    CROSSPLANE_PROVIDER,
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
from o2gateway.translators import crossplane as translate
from o2gateway.translators.common import (
    STANDARD_PROGRESS,
    deployment_summary,
    single_revision_history,
    status_detail,
)

logger = get_logger(__name__)


class CrossplaneAdapter(DeploymentAdapter):
    """Declarative deployments backed by Crossplane Configurations."""

    NAME = "crossplane"
    VERSION = "1.14.0"
    CAPABILITIES = frozenset(
        {
            Capability.PACKAGE_MANAGEMENT,
            Capability.DEPLOYMENT_LIFECYCLE,
            Capability.GITOPS,
            Capability.HEALTH_CHECKS,
        }
    )

    def __init__(
        self,
        config: CrossplaneConfig,
        *,
        client: BaseKubernetesClient | None = None,
    ) -> None:
        super().__init__()
        self._config = config
        self._injected_client = client
        self._client: InitGuard[BaseKubernetesClient] = InitGuard(
            self._create_client, name="crossplane.client"
        )

    @classmethod
    def from_settings(cls) -> CrossplaneAdapter:
        settings = get_settings()
        return cls(
            CrossplaneConfig(
                kubeconfig=settings.kubeconfig,
                namespace=settings.crossplane_namespace,
                health_timeout=settings.health_timeout_seconds,
            )
        )

    async def _create_client(self) -> BaseKubernetesClient:
        if self._injected_client is not None:
            return self._injected_client
        logger.info("crossplane_adapter.client_created")
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

    async def _configuration(
        self, client: BaseKubernetesClient, name: str, operation: str
    ) -> dict[str, Any]:
        try:
            return await client.get_object(CROSSPLANE_CONFIGURATION, name)
        except NotFoundError as exc:
            raise NotFoundError(
                "deployment not found",
                backend=self.NAME,
                operation=operation,
                entity_id=name,
            ) from exc

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def health(self) -> None:
        async with bounded(
            self._config.health_timeout, backend=self.NAME, operation="health"
        ):
            client = await self._client.get()
            try:
                # Any installed provider proves the Crossplane CRDs are served.
                await client.list_objects(CROSSPLANE_PROVIDER, limit=1)
            except GatewayError as exc:
                logger.error("crossplane_adapter.health_failed", error=str(exc))
                raise
        logger.debug("crossplane_adapter.health_ok")

    async def close(self) -> None:
        client = await self._client.reset()
        if client is not None:
            await client.aclose()
        logger.info("crossplane_adapter.closed")

    # ── Packages ────────────────────────────────────────────────────────

    async def list_deployment_packages(
        self, flt: DeploymentFilter | None = None
    ) -> list[DeploymentPackage]:
        async with self._call("list_deployment_packages") as client:
            compositions = await client.list_objects(CROSSPLANE_COMPOSITION)
        return paginate([translate.composition_to_package(c) for c in compositions], flt)

    async def get_deployment_package(self, package_id: str) -> DeploymentPackage:
        async with self._call("get_deployment_package", package_id) as client:
            try:
                composition = await client.get_object(CROSSPLANE_COMPOSITION, package_id)
            except NotFoundError as exc:
                raise NotFoundError(
                    "package not found",
                    backend=self.NAME,
                    operation="get_deployment_package",
                    entity_id=package_id,
                ) from exc
        return translate.composition_to_package(composition)

    async def upload_deployment_package(
        self, pkg: DeploymentPackageUpload
    ) -> DeploymentPackage:
        ref = pkg.extensions.get("crossplane.compositionRef") or self._config.default_composition_ref
        if not isinstance(ref, str) or not ref:
            raise InvalidArgumentError(
                "crossplane.compositionRef extension is required",
                backend=self.NAME,
                operation="upload_deployment_package",
                entity_id=pkg.name or None,
            )
        return DeploymentPackage(
            package_id=ref,
            name=pkg.name,
            version=pkg.version,
            package_type=translate.PACKAGE_TYPE,
            description=pkg.description,
            uploaded_at=utcnow(),
            extensions={"crossplane.compositionRef": ref},
        )

    async def delete_deployment_package(self, package_id: str) -> None:
        raise self._not_supported(
            "delete_deployment_package",
            "composition deletion must be done through GitOps",
            package_id,
        )

    # ── Deployments ─────────────────────────────────────────────────────

    async def list_deployments(
        self, flt: DeploymentFilter | None = None
    ) -> list[Deployment]:
        selector = label_selector(flt.labels) if flt else ""
        async with self._call("list_deployments") as client:
            configs = await client.list_objects(CROSSPLANE_CONFIGURATION, selector=selector)
        deployments = [translate.configuration_to_deployment(c) for c in configs]
        return filter_and_paginate(
            deployments,
            lambda d: matches_deployment_filter(
                flt,
                namespace=d.namespace,
                status=d.status,
                labels=d.extensions.get("crossplane.labels"),
            ),
            flt,
        )

    async def get_deployment(self, deployment_id: str) -> Deployment:
        async with self._call("get_deployment", deployment_id) as client:
            config = await self._configuration(client, deployment_id, "get_deployment")
        return translate.configuration_to_deployment(config)

    async def create_deployment(self, req: DeploymentRequest) -> Deployment:
        validate_dns1123_name(req.name, backend=self.NAME, operation="create_deployment")
        package_ref = req.extensions.get("crossplane.package") or req.package_id
        if not package_ref:
            raise InvalidArgumentError(
                "package reference is required (package_id or crossplane.package extension)",
                backend=self.NAME,
                operation="create_deployment",
                entity_id=req.name,
            )
        body = translate.build_configuration(
            req, package_ref, api_version=CROSSPLANE_CONFIGURATION.api_version
        )
        async with self._call("create_deployment", req.name) as client:
            created = await client.create_object(CROSSPLANE_CONFIGURATION, body)
        logger.info(
            "crossplane_adapter.configuration_created", name=req.name, package=package_ref
        )
        return translate.configuration_to_deployment(created)

    async def update_deployment(
        self, deployment_id: str, update: DeploymentUpdate
    ) -> Deployment:
        async with self._call("update_deployment", deployment_id) as client:
            config = await self._configuration(client, deployment_id, "update_deployment")
            translate.apply_configuration_update(config, update.extensions)
            updated = await client.replace_object(
                CROSSPLANE_CONFIGURATION, deployment_id, config
            )
        logger.info("crossplane_adapter.configuration_updated", name=deployment_id)
        return translate.configuration_to_deployment(updated)

    async def delete_deployment(self, deployment_id: str) -> None:
        async with self._call("delete_deployment", deployment_id) as client:
            try:
                await client.delete_object(CROSSPLANE_CONFIGURATION, deployment_id)
            except NotFoundError as exc:
                raise NotFoundError(
                    "deployment not found",
                    backend=self.NAME,
                    operation="delete_deployment",
                    entity_id=deployment_id,
                ) from exc
        logger.info("crossplane_adapter.configuration_deleted", name=deployment_id)

    async def scale_deployment(self, deployment_id: str, replicas: int) -> None:
        validate_non_negative(
            replicas,
            "replicas",
            backend=self.NAME,
            operation="scale_deployment",
            entity_id=deployment_id,
        )
        raise self._not_supported(
            "scale_deployment",
            "scaling must be done through composition updates",
            deployment_id,
        )

    async def rollback_deployment(self, deployment_id: str, revision: int) -> None:
        validate_non_negative(
            revision,
            "revision",
            backend=self.NAME,
            operation="rollback_deployment",
            entity_id=deployment_id,
        )
        raise self._not_supported(
            "rollback_deployment",
            "rollback must be done through package version changes",
            deployment_id,
        )

    async def get_deployment_status(self, deployment_id: str) -> DeploymentStatusDetail:
        async with self._call("get_deployment_status", deployment_id) as client:
            config = await self._configuration(client, deployment_id, "get_deployment_status")
        return status_detail(
            translate.configuration_to_deployment(config),
            STANDARD_PROGRESS,
            translate.configuration_conditions(config),
        )

    async def get_deployment_history(self, deployment_id: str) -> DeploymentHistory:
        return single_revision_history(await self.get_deployment(deployment_id))

    async def get_deployment_logs(
        self, deployment_id: str, opts: LogOptions | None = None
    ) -> bytes:
        return deployment_summary(await self.get_deployment(deployment_id))
