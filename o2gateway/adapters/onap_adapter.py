"""
O2 Gateway — ONAP LCM Adapter
==============================
O2-DMS over the ONAP Service Orchestrator.

- VNF/CNF packages are registered by descriptor id
  (``onap.vnfdId`` extension, else ``vnfd-<name>-<version>``).
- Instantiations are recorded as ``vnf-<name>-<ns timestamp>``.
- Health probes ``GET /manage/health`` on the SO endpoint.

Usage:
    adapter = OnapAdapter.from_settings()
    pkg = await adapter.upload_deployment_package(
        DeploymentPackageUpload(name="vfw", version="1.0")
    )
"""

from __future__ import annotations

import httpx

from o2gateway.adapters.nfv_adapter import NFVOrchestratorAdapter
from o2gateway.core.config import OnapConfig, get_settings
from o2gateway.integrations.rest_client import ResilientClient
from o2gateway.models.dms import (
    Deployment,
    DeploymentPackage,
    DeploymentPackageUpload,
    DeploymentRequest,
    DeploymentStatus,
    utcnow,
)
from o2gateway.translators import nfv as translate


class OnapAdapter(NFVOrchestratorAdapter):
    """ONAP SO backed VNF/CNF lifecycle management."""

    NAME = "onap-lcm"
    PACKAGE_TYPE = "onap-vnf"
    HEALTH_PATH = "/manage/health"
    SCALE_EXTENSION = "onap.replicas"
    ROLLBACK_REASON = "rollback must be done through ONAP SO workflow"

    def __init__(
        self,
        config: OnapConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        super().__init__(
            config.so_endpoint, health_timeout=config.health_timeout, transport=transport
        )

    @classmethod
    def from_settings(cls) -> OnapAdapter:
        settings = get_settings()
        return cls(
            OnapConfig(
                so_endpoint=settings.onap_so_endpoint or "",
                username=settings.onap_username,
                password=settings.onap_password,
                timeout=settings.request_timeout_seconds,
                health_timeout=settings.health_timeout_seconds,
            )
        )

    def _build_http(self, transport: httpx.AsyncBaseTransport | None) -> ResilientClient:
        headers = {}
        if self._config.request_id:
            headers["X-RequestID"] = self._config.request_id
        auth = None
        if self._config.username:
            password = self._config.password
            auth = (self._config.username, password.get_secret_value() if password else "")
        return ResilientClient(
            backend=self.NAME,
            base_url=self._config.so_endpoint,
            headers=headers,
            auth=auth,
            timeout=self._config.timeout,
            retry_attempts=self._config.retry_attempts,
            retry_delay=self._config.retry_delay,
            transport=transport,
        )

    def _new_package(self, pkg: DeploymentPackageUpload) -> DeploymentPackage:
        vnfd_id = pkg.extensions.get("onap.vnfdId")
        if not isinstance(vnfd_id, str) or not vnfd_id:
            vnfd_id = f"vnfd-{pkg.name}-{pkg.version}"
        return DeploymentPackage(
            package_id=vnfd_id,
            name=pkg.name,
            version=pkg.version,
            package_type=self.PACKAGE_TYPE,
            description=pkg.description,
            uploaded_at=utcnow(),
            extensions={"onap.vnfdId": vnfd_id, "onap.packageType": "VNF"},
        )

    def _new_deployment(self, req: DeploymentRequest) -> Deployment:
        vnf_instance_id = translate.instance_id("vnf", req.name)
        now = utcnow()
        return Deployment(
            deployment_id=vnf_instance_id,
            name=req.name,
            package_id=req.package_id,
            namespace=req.namespace,
            status=DeploymentStatus.DEPLOYED,
            version=1,
            description=req.description,
            created_at=now,
            updated_at=now,
            extensions={
                "onap.vnfInstanceId": vnf_instance_id,
                "onap.vnfdId": req.package_id,
                "onap.instantiateVnf": True,
            },
        )
