"""
O2 Gateway — DTIAS Translator
==============================
Bare-metal server pools, servers and server types ⇄ O2-IMS entities.

Native objects are the decoded DTIAS JSON documents. Every native field
without a canonical attribute is kept under a ``"dtias.<field>"`` key;
nested hardware inventory (storage devices, network interfaces, pool
location) stays nested.

Identifier scheme:
- resource pool: native pool id
- resource: native server id, global asset id ``urn:dtias:server:<id>``
- resource type: ``dtias-server-type-<id>``
"""

from __future__ import annotations

from typing import Any, Mapping

from o2gateway.models.ims import (
    Resource,
    ResourceClass,
    ResourceKind,
    ResourcePool,
    ResourceType,
)
from o2gateway.translators.common import prefixed, strip_prefix

NAMESPACE = "dtias"
RESOURCE_TYPE_PREFIX = "dtias-server-type-"
GLOBAL_ASSET_PREFIX = "urn:dtias:server:"

# Storage-optimized when storage capacity exceeds this multiple of memory.
STORAGE_TO_MEMORY_RATIO = 100
# Network-optimized above this many network ports.
NETWORK_PORT_THRESHOLD = 4

HEALTHY = "healthy"


def _section(native: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = native.get(key)
    return value if isinstance(value, Mapping) else {}


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _ext(values: Mapping[str, Any], prefix: str, keys: tuple[str, ...]) -> dict[str, Any]:
    return {f"{prefix}.{key}": values.get(key) for key in keys}


# ── Resource Pools ──────────────────────────────────────────────────────


def pool_location(pool: Mapping[str, Any]) -> str:
    """``"<city>, <datacenter>"``, or the datacenter alone when there is no city."""
    datacenter = pool.get("datacenter") or ""
    city = _section(pool, "location").get("city") or ""
    if city:
        return f"{city}, {datacenter}"
    return datacenter


def global_location_id(pool: Mapping[str, Any]) -> str:
    """Geo URI with six decimals; empty unless both coordinates are non-zero."""
    location = _section(pool, "location")
    lat = _number(location.get("latitude"))
    lon = _number(location.get("longitude"))
    if lat != 0 and lon != 0:
        return f"geo:{lat:.6f},{lon:.6f}"
    return ""


def server_pool_to_resource_pool(pool: Mapping[str, Any], ocloud_id: str) -> ResourcePool:
    pool_id = pool.get("id") or ""
    return ResourcePool(
        resource_pool_id=pool_id,
        name=pool.get("name") or "",
        description=pool.get("description") or "",
        location=pool_location(pool),
        o_cloud_id=ocloud_id,
        global_location_id=global_location_id(pool),
        extensions={
            "dtias.poolId": pool_id,
            "dtias.poolType": pool.get("type"),
            "dtias.state": pool.get("state"),
            "dtias.datacenter": pool.get("datacenter"),
            "dtias.serverCount": pool.get("serverCount", 0),
            "dtias.availableServers": pool.get("availableServers", 0),
            "dtias.location": dict(_section(pool, "location")),
            "dtias.metadata": pool.get("metadata"),
            "dtias.createdAt": pool.get("createdAt"),
            "dtias.updatedAt": pool.get("updatedAt"),
        },
    )


def resource_pool_to_create_request(pool: ResourcePool, datacenter: str) -> dict[str, Any]:
    """Body for ``POST /server-pools``."""
    return {
        "name": pool.name,
        "description": pool.description,
        "datacenter": pool.location or datacenter,
        "type": pool.extensions.get("dtias.poolType") or "compute",
        "metadata": pool.extensions.get("dtias.metadata") or {},
    }


def resource_pool_to_update_request(pool: ResourcePool) -> dict[str, Any]:
    """Body for ``PUT /server-pools/{id}``."""
    return {
        "name": pool.name,
        "description": pool.description,
        "metadata": pool.extensions.get("dtias.metadata") or {},
    }


# ── Resources ───────────────────────────────────────────────────────────


def resource_type_id_for(server_type: str) -> str:
    return prefixed(RESOURCE_TYPE_PREFIX, server_type)


def server_type_from_resource_type_id(resource_type_id: str) -> str:
    return strip_prefix(RESOURCE_TYPE_PREFIX, resource_type_id)


def server_to_resource(server: Mapping[str, Any]) -> Resource:
    server_id = server.get("id") or ""
    hostname = server.get("hostname") or ""
    server_type = server.get("type") or ""
    health = server.get("healthState") or ""

    description = f"Physical server: {hostname} ({server_type})"
    if health != HEALTHY:
        description += f" [health: {health}]"

    storage = list(server.get("storage") or [])
    network = list(server.get("network") or [])

    extensions: dict[str, Any] = {
        "dtias.serverId": server_id,
        "dtias.hostname": hostname,
        "dtias.serverType": server_type,
        "dtias.state": server.get("state"),
        "dtias.powerState": server.get("powerState"),
        "dtias.healthState": health,
    }
    extensions.update(
        _ext(
            _section(server, "cpu"),
            "dtias.cpu",
            (
                "vendor",
                "model",
                "architecture",
                "sockets",
                "coresPerSocket",
                "totalCores",
                "totalThreads",
                "frequencyMhz",
            ),
        )
    )
    extensions.update(
        _ext(
            _section(server, "memory"),
            "dtias.memory",
            (
                "totalGb",
                "availableGb",
                "type",
                "speedMhz",
                "dimms",
                "slotsUsed",
                "slotsAvailable",
            ),
        )
    )
    extensions["dtias.storage.devices"] = len(storage)
    extensions["dtias.storage.details"] = storage
    extensions["dtias.network.interfaces"] = len(network)
    extensions["dtias.network.details"] = network
    extensions.update(
        _ext(_section(server, "bios"), "dtias.bios", ("vendor", "version", "releaseDate"))
    )
    extensions.update(
        _ext(
            _section(server, "management"),
            "dtias.management",
            ("type", "version", "ipAddress", "macAddress", "hostname"),
        )
    )
    extensions.update(
        _ext(
            _section(server, "location"),
            "dtias.location",
            ("datacenter", "rack", "rackUnit", "row", "city", "country"),
        )
    )
    extensions["dtias.metadata"] = server.get("metadata")
    extensions["dtias.createdAt"] = server.get("createdAt")
    extensions["dtias.updatedAt"] = server.get("updatedAt")
    extensions["dtias.lastHealthCheck"] = server.get("lastHealthCheck")

    return Resource(
        resource_id=server_id,
        resource_type_id=resource_type_id_for(server_type),
        resource_pool_id=server.get("serverPoolId") or "",
        global_asset_id=prefixed(GLOBAL_ASSET_PREFIX, server_id),
        description=description,
        extensions=extensions,
    )


def resource_to_allocate_request(resource: Resource) -> dict[str, Any]:
    """Body for ``POST /v2/resources/allocate``."""
    body: dict[str, Any] = {
        "serverPoolId": resource.resource_pool_id,
        "serverTypeId": server_type_from_resource_type_id(resource.resource_type_id),
    }
    for key in ("hostname", "operatingSystem", "networkConfig", "metadata"):
        value = resource.extensions.get(f"dtias.{key}")
        if value:
            body[key] = value
    return body


def resource_to_metadata_update(resource: Resource) -> dict[str, Any]:
    """Body for ``PUT /v2/inventory/servers/{id}/metadata``."""
    body: dict[str, Any] = {}
    if resource.extensions.get("dtias.hostname"):
        body["hostname"] = resource.extensions["dtias.hostname"]
    if resource.description:
        body["description"] = resource.description
    if resource.extensions.get("dtias.metadata"):
        body["metadata"] = resource.extensions["dtias.metadata"]
    return body


# ── Resource Types ──────────────────────────────────────────────────────


def classify_server_type(server_type: Mapping[str, Any]) -> ResourceClass:
    """
    Coarse resource class from capacity attributes.

    >>> classify_server_type({"storageCapacityGb": 50000, "memoryGb": 256})
    <ResourceClass.STORAGE: 'storage'>
    >>> classify_server_type({"memoryGb": 256, "networkPorts": 8})
    <ResourceClass.NETWORK: 'network'>
    >>> classify_server_type({})
    <ResourceClass.COMPUTE: 'compute'>
    """
    storage_gb = _number(server_type.get("storageCapacityGb"))
    memory_gb = _number(server_type.get("memoryGb"))
    if storage_gb > memory_gb * STORAGE_TO_MEMORY_RATIO:
        return ResourceClass.STORAGE
    if _number(server_type.get("networkPorts")) > NETWORK_PORT_THRESHOLD:
        return ResourceClass.NETWORK
    return ResourceClass.COMPUTE


def server_type_to_resource_type(server_type: Mapping[str, Any]) -> ResourceType:
    type_id = server_type.get("id") or ""
    name = server_type.get("name") or ""
    description = (
        f"{name} - {server_type.get('cpuCores', 0)} cores, "
        f"{server_type.get('memoryGb', 0)}GB RAM, "
        f"{server_type.get('storageCapacityGb', 0)}GB storage, "
        f"{server_type.get('networkSpeed') or ''} networking"
    )
    return ResourceType(
        resource_type_id=resource_type_id_for(type_id),
        name=name,
        description=description,
        vendor=server_type.get("vendor") or "",
        model=server_type.get("model") or "",
        version=server_type.get("generation") or "",
        resource_class=classify_server_type(server_type),
        resource_kind=ResourceKind.PHYSICAL,
        extensions={
            "dtias.serverTypeId": type_id,
            "dtias.vendor": server_type.get("vendor"),
            "dtias.model": server_type.get("model"),
            "dtias.generation": server_type.get("generation"),
            "dtias.formFactor": server_type.get("formFactor"),
            "dtias.cpu.model": server_type.get("cpuModel"),
            "dtias.cpu.cores": server_type.get("cpuCores", 0),
            "dtias.memory.sizeGb": server_type.get("memoryGb", 0),
            "dtias.storage.type": server_type.get("storageType"),
            "dtias.storage.capacityGb": server_type.get("storageCapacityGb", 0),
            "dtias.network.ports": server_type.get("networkPorts", 0),
            "dtias.network.speed": server_type.get("networkSpeed"),
            "dtias.power.watts": server_type.get("powerWatts", 0),
            "dtias.rack.units": server_type.get("rackUnits", 0),
        },
    )


# ── Health Metrics ──────────────────────────────────────────────────────


def server_to_health_metrics(server: Mapping[str, Any]) -> dict[str, Any]:
    """Health snapshot of one server as reported by the inventory endpoint."""
    metrics = _section(server, "healthMetrics") or server
    return {
        "serverId": metrics.get("serverId") or server.get("id") or "",
        "timestamp": metrics.get("timestamp") or server.get("lastHealthCheck"),
        "cpuUtilization": metrics.get("cpuUtilization", 0),
        "memoryUtilization": metrics.get("memoryUtilization", 0),
        "cpuTemperature": metrics.get("cpuTemperature", 0),
        "powerConsumptionWatts": metrics.get("powerConsumptionWatts", 0),
        "fanSpeeds": dict(metrics.get("fanSpeeds") or {}),
        "temperatures": dict(metrics.get("temperatures") or {}),
        "voltages": dict(metrics.get("voltages") or {}),
    }
