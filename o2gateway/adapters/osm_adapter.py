"""
O2 Gateway — OSM LCM Adapter
=============================
O2-DMS over the Open Source MANO northbound interface.

Packages are VNF or NS descriptors (``osm.packageType``, default
``vnfd``) with id ``<type>-<name>-<version>``; NS instantiations are
recorded as ``ns-<name>-<ns timestamp>`` against a VIM account
(``osm.vimAccount``, default ``openstack-site``). Health probes
``GET /version`` on the NBI endpoint.
"""

from __future__ import annotations

import httpx

from o2gateway.adapters.nfv_adapter import NFVOrchestratorAdapter
from o2gateway.core.config import OsmConfig, get_settings
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

DEFAULT_PACKAGE_TYPE = "vnfd"
DEFAULT_VIM_ACCOUNT = "openstack-site"


class OsmAdapter(NFVOrchestratorAdapter):
    """OSM backed network service lifecycle management."""

    NAME = "osm-lcm"
    HEALTH_PATH = "/version"
    SCALE_EXTENSION = "osm.scaleCount"
    ROLLBACK_REASON = "rollback must be done through OSM day-2 operations"

    def __init__(
        self,
        config: OsmConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        super().__init__(
            config.nbi_endpoint, health_timeout=config.health_timeout, transport=transport
        )

    @classmethod
    def from_settings(cls) -> OsmAdapter:
        settings = get_settings()
        return cls(
            OsmConfig(
                nbi_endpoint=settings.osm_nbi_endpoint or "",
                username=settings.osm_username,
                password=settings.osm_password,
                project=settings.osm_project,
                timeout=settings.request_timeout_seconds,
                health_timeout=settings.health_timeout_seconds,
            )
        )

    def _build_http(self, transport: httpx.AsyncBaseTransport | None) -> ResilientClient:
        auth = None
        if self._config.username:
            password = self._config.password
            auth = (self._config.username, password.get_secret_value() if password else "")
        return ResilientClient(
            backend=self.NAME,
            base_url=self._config.nbi_endpoint,
            auth=auth,
            timeout=self._config.timeout,
            retry_attempts=self._config.retry_attempts,
            retry_delay=self._config.retry_delay,
            transport=transport,
        )

    def _new_package(self, pkg: DeploymentPackageUpload) -> DeploymentPackage:
        pkg_type = pkg.extensions.get("osm.packageType")
        if not isinstance(pkg_type, str) or not pkg_type:
            pkg_type = DEFAULT_PACKAGE_TYPE
        return DeploymentPackage(
            package_id=f"{pkg_type}-{pkg.name}-{pkg.version}",
            name=pkg.name,
            version=pkg.version,
            package_type=f"osm-{pkg_type}",
            description=pkg.description,
            uploaded_at=utcnow(),
            extensions={"osm.packageType": pkg_type, "osm.project": self._config.project},
        )

    def _new_deployment(self, req: DeploymentRequest) -> Deployment:
        ns_instance_id = translate.instance_id("ns", req.name)
        vim_account = req.extensions.get("osm.vimAccount")
        if not isinstance(vim_account, str) or not vim_account:
            vim_account = DEFAULT_VIM_ACCOUNT
        now = utcnow()
        return Deployment(
            deployment_id=ns_instance_id,
            name=req.name,
            package_id=req.package_id,
            namespace=req.namespace,
            status=DeploymentStatus.DEPLOYED,
            version=1,
            description=req.description,
            created_at=now,
            updated_at=now,
            extensions={
                "osm.nsInstanceId": ns_instance_id,
                "osm.nsdId": req.package_id,
                "osm.vimAccount": vim_account,
                "osm.project": self._config.project,
            },
        )
