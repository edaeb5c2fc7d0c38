"""
O2 Gateway — Dell DTIAS REST Client
====================================
Typed wrapper over ``ResilientClient`` for the DTIAS bare-metal API.

Returns decoded native documents (plain dicts); translation to the
canonical model lives in ``o2gateway.translators.dtias``. Every call
goes through the shared retry, TLS and error-typing policy.

Endpoints:
- ``/server-pools`` (list, get, create, update, delete)
- ``/v2/inventory/servers`` (list with query, metadata update)
- ``/v2/resources/allocate`` | ``release`` | ``action``
- ``/v2/resourcetypes``, ``/v2/search/resourcetypes/{id}``
- ``/v2/inventory/sites/{datacenter}``, ``/v2/version``

Usage:
    client = DtiasClient.from_config(DtiasConfig(...))
    pools = await client.list_server_pools(datacenter="dc-1")
    await client.aclose()
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import httpx

from o2gateway.core.config import DtiasConfig, get_settings
from o2gateway.core.exceptions import MissingConfigurationError, NotFoundError
from o2gateway.core.logging import get_logger
from o2gateway.integrations.rest_client import ResilientClient, build_ssl_context

logger = get_logger(__name__)

BACKEND = "dtias"


class PowerAction(StrEnum):
    """Server power operations accepted by ``/v2/resources/action``."""

    ON = "on"
    OFF = "off"
    FORCE_OFF = "force-off"
    RESET = "reset"
    CYCLE = "cycle"


def _unwrap(data: Any, key: str) -> Any:
    """DTIAS wraps some payloads in a single-key envelope."""
    if isinstance(data, dict) and key in data:
        return data[key]
    return data


class DtiasClient:
    """DTIAS API calls, one method per endpoint."""

    def __init__(self, http: ResilientClient) -> None:
        self._http = http

    @classmethod
    def from_config(
        cls,
        config: DtiasConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> DtiasClient:
        verify = True
        if transport is None:
            verify = build_ssl_context(
                config.client_cert, config.client_key, config.ca_cert
            )
        http = ResilientClient(
            backend=BACKEND,
            base_url=config.endpoint,
            headers={"Authorization": f"Bearer {config.api_key.get_secret_value()}"},
            timeout=config.timeout,
            retry_attempts=config.retry_attempts,
            retry_delay=config.retry_delay,
            verify=verify,
            transport=transport,
        )
        return cls(http)

    @staticmethod
    def config_from_settings() -> DtiasConfig:
        """Build a ``DtiasConfig`` from ``O2GW_DTIAS_*`` settings."""
        settings = get_settings()
        if not settings.dtias_endpoint or settings.dtias_api_key is None:
            raise MissingConfigurationError(
                "O2GW_DTIAS_ENDPOINT and O2GW_DTIAS_API_KEY are required",
                backend=BACKEND,
            )
        if not settings.ocloud_id:
            raise MissingConfigurationError(
                "O2GW_OCLOUD_ID is required", backend=BACKEND
            )
        return DtiasConfig(
            endpoint=settings.dtias_endpoint,
            api_key=settings.dtias_api_key,
            ocloud_id=settings.ocloud_id,
            client_cert=settings.dtias_client_cert,
            client_key=settings.dtias_client_key,
            ca_cert=settings.dtias_ca_cert,
            datacenter=settings.dtias_datacenter or "",
            timeout=settings.request_timeout_seconds,
            health_timeout=settings.health_timeout_seconds,
            retry_attempts=settings.dtias_retry_attempts,
            retry_delay=settings.dtias_retry_delay_seconds,
        )

    @property
    def closed(self) -> bool:
        return self._http.closed

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Server Pools ────────────────────────────────────────────────────

    async def list_server_pools(self, datacenter: str = "") -> list[dict[str, Any]]:
        data = await self._http.request(
            "GET",
            "/server-pools",
            operation="list_resource_pools",
            params={"datacenter": datacenter},
        )
        return list(_unwrap(data, "Rps") or [])

    async def get_server_pool(self, pool_id: str) -> dict[str, Any]:
        data = await self._http.request(
            "GET",
            f"/server-pools/{pool_id}",
            operation="get_resource_pool",
            entity_id=pool_id,
        )
        pool = _unwrap(data, "Rp")
        if not pool:
            raise NotFoundError(
                "resource pool not found",
                backend=BACKEND,
                operation="get_resource_pool",
                entity_id=pool_id,
            )
        return pool

    async def create_server_pool(self, body: dict[str, Any]) -> dict[str, Any]:
        data = await self._http.request(
            "POST",
            "/server-pools",
            operation="create_resource_pool",
            entity_id=body.get("name"),
            body=body,
        )
        return _unwrap(data, "Rp") or {}

    async def update_server_pool(
        self, pool_id: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        data = await self._http.request(
            "PUT",
            f"/server-pools/{pool_id}",
            operation="update_resource_pool",
            entity_id=pool_id,
            body=body,
        )
        return _unwrap(data, "Rp") or {}

    async def delete_server_pool(self, pool_id: str) -> None:
        await self._http.send(
            "DELETE",
            f"/server-pools/{pool_id}",
            operation="delete_resource_pool",
            entity_id=pool_id,
        )

    # ── Servers ─────────────────────────────────────────────────────────

    async def list_servers(
        self,
        *,
        server_id: str = "",
        pool_id: str = "",
        server_type: str = "",
        location: str = "",
        operation: str = "list_resources",
    ) -> list[dict[str, Any]]:
        data = await self._http.request(
            "GET",
            "/v2/inventory/servers",
            operation=operation,
            entity_id=server_id or None,
            params={
                "id": server_id,
                "resourcePool": pool_id,
                "resourceProfileId": server_type,
                "location": location,
            },
        )
        if isinstance(data, dict):
            return list(data.get("Full") or [])
        return list(data or [])

    async def get_server(self, server_id: str) -> dict[str, Any]:
        # The single-server endpoint answers with an async job document;
        # an id-filtered list returns the server itself.
        servers = await self.list_servers(server_id=server_id, operation="get_resource")
        if not servers:
            raise NotFoundError(
                "server not found",
                backend=BACKEND,
                operation="get_resource",
                entity_id=server_id,
            )
        if len(servers) > 1:
            logger.warning(
                "dtias.multiple_servers_for_id", server_id=server_id, count=len(servers)
            )
        return servers[0]

    async def allocate_server(self, body: dict[str, Any]) -> dict[str, Any]:
        data = await self._http.request(
            "POST",
            "/v2/resources/allocate",
            operation="create_resource",
            entity_id=body.get("hostname") or body.get("serverPoolId"),
            body=body,
        )
        return data or {}

    async def update_server_metadata(
        self, server_id: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        data = await self._http.request(
            "PUT",
            f"/v2/inventory/servers/{server_id}/metadata",
            operation="update_resource",
            entity_id=server_id,
            body=body,
        )
        return data or {}

    async def release_server(self, server_id: str) -> None:
        await self._http.send(
            "POST",
            "/v2/resources/release",
            operation="delete_resource",
            entity_id=server_id,
            body={"id": server_id},
        )

    async def power_action(self, server_id: str, action: PowerAction) -> None:
        await self._http.send(
            "POST",
            "/v2/resources/action",
            operation="power_control",
            entity_id=server_id,
            body={"id": server_id, "action": action.value},
        )

    async def get_server_details(self, server_id: str) -> dict[str, Any]:
        data = await self._http.request(
            "GET",
            f"/v2/inventory/servers/{server_id}",
            operation="get_health_metrics",
            entity_id=server_id,
        )
        return data or {}

    # ── Server Types ────────────────────────────────────────────────────

    async def list_server_types(self) -> list[dict[str, Any]]:
        data = await self._http.request(
            "GET", "/v2/resourcetypes", operation="list_resource_types"
        )
        return list(_unwrap(data, "ResourceTypes") or [])

    async def get_server_type(self, type_id: str) -> dict[str, Any]:
        data = await self._http.request(
            "GET",
            f"/v2/search/resourcetypes/{type_id}",
            operation="get_resource_type",
            entity_id=type_id,
        )
        found = _unwrap(data, "ResourceTypes")
        if isinstance(found, list):
            found = found[0] if found else None
        if not found:
            raise NotFoundError(
                "resource type not found",
                backend=BACKEND,
                operation="get_resource_type",
                entity_id=type_id,
            )
        return found

    # ── Sites & Health ──────────────────────────────────────────────────

    async def get_site(self, datacenter: str) -> dict[str, Any]:
        data = await self._http.request(
            "GET",
            f"/v2/inventory/sites/{datacenter}",
            operation="get_deployment_manager",
            entity_id=datacenter,
        )
        return data or {}

    async def version(self) -> dict[str, Any]:
        data = await self._http.request("GET", "/v2/version", operation="health")
        return data or {}
