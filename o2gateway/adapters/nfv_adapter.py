"""
O2 Gateway — NFV Orchestrator Adapter Base
===========================================
Shared O2-DMS behaviour for orchestrators that are reached over a
basic-auth REST API (ONAP SO, OSM NBI).

Packages and instantiations are adapter-local records keyed by
generated ids and guarded by a ``ReadWriteLock``. The REST client is
created lazily and only used for health probes; with no endpoint
configured the probe is skipped.

Subclasses supply naming (``NAME``, extension keys, id formats) and the
REST client; everything else lives here.
"""

from __future__ import annotations

import abc
from dataclasses import replace

import httpx

from o2gateway.adapters.base import (
    DeploymentAdapter,
    validate_dns1123_name,
    validate_non_negative,
)
from o2gateway.core.concurrency import InitGuard, ReadWriteLock, bounded, ensure_not_cancelled
from o2gateway.core.exceptions import GatewayError, NotFoundError
from o2gateway.core.filtering import filter_and_paginate, matches_deployment_filter, paginate
from o2gateway.core.logging import get_logger
from o2gateway.integrations.rest_client import ResilientClient
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
)
from o2gateway.translators import nfv as translate
from o2gateway.translators.common import deployment_summary, single_revision_history

logger = get_logger(__name__)


class NFVOrchestratorAdapter(DeploymentAdapter):
    """Local-record deployment adapter with a REST health probe."""

    VERSION = "1.0.0"
    CAPABILITIES = frozenset(
        {
            Capability.PACKAGE_MANAGEMENT,
            Capability.DEPLOYMENT_LIFECYCLE,
            Capability.SCALING,
            Capability.HEALTH_CHECKS,
        }
    )

    HEALTH_PATH: str
    SCALE_EXTENSION: str
    ROLLBACK_REASON: str

    def __init__(
        self,
        endpoint: str,
        *,
        health_timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self._endpoint = endpoint
        self._health_timeout = health_timeout
        self._transport = transport
        self._http: InitGuard[ResilientClient] = InitGuard(
            self._create_http, name=f"{self.NAME}.http"
        )
        self._packages: dict[str, DeploymentPackage] = {}
        self._deployments: dict[str, Deployment] = {}
        self._lock = ReadWriteLock()

    async def _create_http(self) -> ResilientClient:
        client = self._build_http(self._transport)
        logger.info("nfv_adapter.client_created", backend=self.NAME, endpoint=self._endpoint)
        return client

    @abc.abstractmethod
    def _build_http(self, transport: httpx.AsyncBaseTransport | None) -> ResilientClient:
        ...

    @abc.abstractmethod
    def _new_package(self, pkg: DeploymentPackageUpload) -> DeploymentPackage:
        ...

    @abc.abstractmethod
    def _new_deployment(self, req: DeploymentRequest) -> Deployment:
        ...

    def _record(self, deployment_id: str, operation: str) -> Deployment:
        dep = self._deployments.get(deployment_id)
        if dep is None:
            raise NotFoundError(
                "deployment not found",
                backend=self.NAME,
                operation=operation,
                entity_id=deployment_id,
            )
        return dep

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def health(self) -> None:
        if not self._endpoint:
            logger.debug("nfv_adapter.health_skipped", backend=self.NAME)
            return
        async with bounded(self._health_timeout, backend=self.NAME, operation="health"):
            http = await self._http.get()
            try:
                await http.send("GET", self.HEALTH_PATH, operation="health")
            except GatewayError as exc:
                logger.error("nfv_adapter.health_failed", backend=self.NAME, error=str(exc))
                raise
        logger.debug("nfv_adapter.health_ok", backend=self.NAME)

    async def close(self) -> None:
        http = await self._http.reset()
        if http is not None:
            await http.aclose()
        logger.info("nfv_adapter.closed", backend=self.NAME)

    # ── Packages ────────────────────────────────────────────────────────

    async def list_deployment_packages(
        self, flt: DeploymentFilter | None = None
    ) -> list[DeploymentPackage]:
        ensure_not_cancelled()
        with self._lock.read():
            packages = [translate.snapshot(p) for p in self._packages.values()]
        return paginate(packages, flt)

    async def get_deployment_package(self, package_id: str) -> DeploymentPackage:
        ensure_not_cancelled()
        with self._lock.read():
            pkg = self._packages.get(package_id)
        if pkg is None:
            raise NotFoundError(
                "package not found",
                backend=self.NAME,
                operation="get_deployment_package",
                entity_id=package_id,
            )
        return translate.snapshot(pkg)

    async def upload_deployment_package(
        self, pkg: DeploymentPackageUpload
    ) -> DeploymentPackage:
        ensure_not_cancelled()
        record = self._new_package(pkg)
        with self._lock.write():
            self._packages[record.package_id] = translate.snapshot(record)
        logger.info(
            "nfv_adapter.package_registered", backend=self.NAME, package_id=record.package_id
        )
        return record

    async def delete_deployment_package(self, package_id: str) -> None:
        ensure_not_cancelled()
        with self._lock.write():
            if self._packages.pop(package_id, None) is None:
                raise NotFoundError(
                    "package not found",
                    backend=self.NAME,
                    operation="delete_deployment_package",
                    entity_id=package_id,
                )
        logger.info("nfv_adapter.package_deleted", backend=self.NAME, package_id=package_id)

    # ── Deployments ─────────────────────────────────────────────────────

    async def list_deployments(
        self, flt: DeploymentFilter | None = None
    ) -> list[Deployment]:
        ensure_not_cancelled()
        with self._lock.read():
            deployments = [translate.snapshot(d) for d in self._deployments.values()]
        # Records carry no labels.
        scope = replace(flt, labels={}) if flt else None
        return filter_and_paginate(
            deployments,
            lambda d: matches_deployment_filter(scope, namespace=d.namespace, status=d.status),
            flt,
        )

    async def get_deployment(self, deployment_id: str) -> Deployment:
        ensure_not_cancelled()
        with self._lock.read():
            return translate.snapshot(self._record(deployment_id, "get_deployment"))

    async def create_deployment(self, req: DeploymentRequest) -> Deployment:
        ensure_not_cancelled()
        validate_dns1123_name(req.name, backend=self.NAME, operation="create_deployment")
        dep = self._new_deployment(req)
        with self._lock.write():
            self._deployments[dep.deployment_id] = translate.snapshot(dep)
        logger.info(
            "nfv_adapter.instantiated",
            backend=self.NAME,
            deployment_id=dep.deployment_id,
            package_id=dep.package_id,
        )
        return dep

    async def update_deployment(
        self, deployment_id: str, update: DeploymentUpdate
    ) -> Deployment:
        ensure_not_cancelled()
        with self._lock.write():
            dep = self._record(deployment_id, "update_deployment")
            dep = translate.touch(
                dep,
                version=dep.version + 1,
                description=update.description or dep.description,
            )
            self._deployments[deployment_id] = dep
        logger.info(
            "nfv_adapter.updated", backend=self.NAME, deployment_id=deployment_id, version=dep.version
        )
        return translate.snapshot(dep)

    async def delete_deployment(self, deployment_id: str) -> None:
        ensure_not_cancelled()
        with self._lock.write():
            self._record(deployment_id, "delete_deployment")
            del self._deployments[deployment_id]
        logger.info("nfv_adapter.terminated", backend=self.NAME, deployment_id=deployment_id)

    async def scale_deployment(self, deployment_id: str, replicas: int) -> None:
        ensure_not_cancelled()
        validate_non_negative(
            replicas,
            "replicas",
            backend=self.NAME,
            operation="scale_deployment",
            entity_id=deployment_id,
        )
        with self._lock.write():
            dep = self._record(deployment_id, "scale_deployment")
            extensions = {**dep.extensions, self.SCALE_EXTENSION: replicas}
            self._deployments[deployment_id] = translate.touch(dep, extensions=extensions)
        logger.info(
            "nfv_adapter.scaled", backend=self.NAME, deployment_id=deployment_id, replicas=replicas
        )

    async def rollback_deployment(self, deployment_id: str, revision: int) -> None:
        ensure_not_cancelled()
        validate_non_negative(
            revision,
            "revision",
            backend=self.NAME,
            operation="rollback_deployment",
            entity_id=deployment_id,
        )
        raise self._not_supported("rollback_deployment", self.ROLLBACK_REASON, deployment_id)

    async def get_deployment_status(self, deployment_id: str) -> DeploymentStatusDetail:
        return translate.record_status_detail(await self.get_deployment(deployment_id))

    async def get_deployment_history(self, deployment_id: str) -> DeploymentHistory:
        return single_revision_history(await self.get_deployment(deployment_id))

    async def get_deployment_logs(
        self, deployment_id: str, opts: LogOptions | None = None
    ) -> bytes:
        return deployment_summary(await self.get_deployment(deployment_id))
