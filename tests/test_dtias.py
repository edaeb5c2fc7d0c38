"""
O2 Gateway — DTIAS Adapter Tests
=================================
Validates:
- Pool location and geo URI derivation
- Server → resource translation (ids, health suffix)
- Server type classification heuristic
- Adapter calls against a mocked DTIAS API (httpx.MockTransport)
- Deployment manager lookup and power-operation validation
"""

from __future__ import annotations

import json

import httpx
import pytest

from o2gateway.adapters.dtias_adapter import DtiasAdapter
from o2gateway.core.config import DtiasConfig
from o2gateway.core.exceptions import InvalidArgumentError, NotFoundError
from o2gateway.models.common import Capability
from o2gateway.models.ims import Filter, Resource, ResourceClass, ResourcePool, Subscription
from o2gateway.translators import dtias as translate

POOLS = [
    {
        "id": "pool-1",
        "name": "edge-compute",
        "datacenter": "dc-dallas",
        "state": "active",
        "location": {"city": "Dallas", "latitude": 32.7767, "longitude": -96.797},
        "metadata": {"tier": "edge"},
    },
    {"id": "pool-2", "name": "core", "datacenter": "dc-austin", "state": "active"},
]

SERVER = {
    "id": "srv-1",
    "hostname": "node-01",
    "type": "r750",
    "serverPoolId": "pool-1",
    "healthState": "healthy",
    "powerState": "on",
    "cpu": {"vendor": "Intel", "totalCores": 64},
    "storage": [{"type": "nvme"}, {"type": "nvme"}],
    "location": {"datacenter": "dc-dallas", "rack": "r12"},
}


def _config(**overrides):
    values = {
        "endpoint": "https://dtias.test/api",
        "api_key": "secret",
        "ocloud_id": "oc-1",
        "datacenter": "dc-dallas",
        "retry_attempts": 1,
        "retry_delay": 0.01,
    }
    values.update(overrides)
    return DtiasConfig(**values)


class FakeDtias:
    """Minimal DTIAS API answering from in-memory fixtures."""

    def __init__(self):
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")
        if path == "/server-pools":
            if request.method == "POST":
                body = json.loads(request.content)
                return httpx.Response(201, json={"Rp": {"id": "pool-9", **body}})
            return httpx.Response(200, json={"Rps": POOLS})
        if path.startswith("/server-pools/"):
            pool_id = path.rsplit("/", 1)[-1]
            for pool in POOLS:
                if pool["id"] == pool_id:
                    return httpx.Response(200, json={"Rp": pool})
            return httpx.Response(404, text="no such pool")
        if path == "/v2/inventory/servers":
            server_id = request.url.params.get("id")
            servers = [SERVER] if server_id in (None, "srv-1") else []
            return httpx.Response(200, json={"Full": servers})
        if path == "/v2/resources/action":
            return httpx.Response(202)
        if path == "/v2/inventory/sites/dc-dallas":
            return httpx.Response(200, json={"city": "Dallas", "country": "US"})
        if path == "/v2/version":
            return httpx.Response(200, json={"version": "2.1"})
        return httpx.Response(404)


@pytest.fixture
def api():
    return FakeDtias()


@pytest.fixture
def adapter(api):
    return DtiasAdapter(_config(), transport=httpx.MockTransport(api))


# ── Translation ─────────────────────────────────────────────────────────


def test_pool_location_and_geo():
    assert translate.pool_location(POOLS[0]) == "Dallas, dc-dallas"
    assert translate.pool_location(POOLS[1]) == "dc-austin"
    assert translate.global_location_id(POOLS[0]) == "geo:32.776700,-96.797000"
    assert translate.global_location_id(POOLS[1]) == ""


def test_geo_requires_both_coordinates():
    pool = {"location": {"latitude": 32.7, "longitude": 0}}
    assert translate.global_location_id(pool) == ""


def test_server_to_resource():
    resource = translate.server_to_resource(SERVER)

    assert resource.resource_id == "srv-1"
    assert resource.resource_type_id == "dtias-server-type-r750"
    assert resource.global_asset_id == "urn:dtias:server:srv-1"
    assert resource.description == "Physical server: node-01 (r750)"
    assert resource.extensions["dtias.storage.devices"] == 2
    assert resource.extensions["dtias.cpu.totalCores"] == 64
    assert resource.extensions["dtias.location.rack"] == "r12"


def test_unhealthy_server_description():
    resource = translate.server_to_resource({**SERVER, "healthState": "critical"})
    assert resource.description.endswith("[health: critical]")


@pytest.mark.parametrize(
    "server_type, expected",
    [
        ({"storageCapacityGb": 100_000, "memoryGb": 512}, ResourceClass.STORAGE),
        ({"storageCapacityGb": 2_000, "memoryGb": 512, "networkPorts": 8}, ResourceClass.NETWORK),
        ({"storageCapacityGb": 2_000, "memoryGb": 512, "networkPorts": 4}, ResourceClass.COMPUTE),
    ],
)
def test_classify_server_type(server_type, expected):
    assert translate.classify_server_type(server_type) is expected


def test_allocate_request_strips_type_prefix():
    body = translate.resource_to_allocate_request(
        Resource(
            resource_id="",
            resource_pool_id="pool-1",
            resource_type_id="dtias-server-type-r750",
            extensions={"dtias.hostname": "node-02"},
        )
    )
    assert body == {"serverPoolId": "pool-1", "serverTypeId": "r750", "hostname": "node-02"}


# ── Adapter ─────────────────────────────────────────────────────────────


def test_adapter_identity(adapter):
    assert adapter.name == "dtias"
    assert adapter.supports(Capability.SUBSCRIPTIONS)
    assert not adapter.supports(Capability.ROLLBACK)


@pytest.mark.asyncio
async def test_list_resource_pools_filters_by_datacenter(adapter, api):
    pools = await adapter.list_resource_pools(Filter(location="dc-dallas"))

    assert [p.resource_pool_id for p in pools] == ["pool-1"]
    assert pools[0].o_cloud_id == "oc-1"
    assert api.requests[0].headers["authorization"] == "Bearer secret"
    await adapter.close()


@pytest.mark.asyncio
async def test_list_resource_pools_by_label(adapter):
    pools = await adapter.list_resource_pools(Filter(labels={"tier": "edge"}))
    assert [p.resource_pool_id for p in pools] == ["pool-1"]
    await adapter.close()


@pytest.mark.asyncio
async def test_get_missing_pool(adapter):
    with pytest.raises(NotFoundError):
        await adapter.get_resource_pool("pool-404")
    await adapter.close()


@pytest.mark.asyncio
async def test_create_resource_pool(adapter, api):
    created = await adapter.create_resource_pool(ResourcePool(resource_pool_id="", name="new"))

    assert created.resource_pool_id == "pool-9"
    sent = json.loads(api.requests[-1].content)
    assert sent["datacenter"] == "dc-dallas"
    assert sent["type"] == "compute"
    await adapter.close()


@pytest.mark.asyncio
async def test_create_resource_pool_requires_name(adapter, api):
    with pytest.raises(InvalidArgumentError):
        await adapter.create_resource_pool(ResourcePool(resource_pool_id="", name=""))
    assert api.requests == []


@pytest.mark.asyncio
async def test_get_resource(adapter):
    resource = await adapter.get_resource("srv-1")
    assert resource.resource_pool_id == "pool-1"

    with pytest.raises(NotFoundError):
        await adapter.get_resource("srv-404")
    await adapter.close()


@pytest.mark.asyncio
async def test_deployment_manager(adapter):
    dm = await adapter.get_deployment_manager("oc-1-dtias-dm")

    assert dm.supported_locations == ("dc-dallas",)
    assert dm.extensions["dtias.location.city"] == "Dallas"
    assert "power-management" in dm.capabilities

    with pytest.raises(NotFoundError):
        await adapter.get_deployment_manager("other-dm")
    await adapter.close()


@pytest.mark.asyncio
async def test_power_control(adapter, api):
    await adapter.power_control("srv-1", "cycle")
    assert json.loads(api.requests[-1].content) == {"id": "srv-1", "action": "cycle"}

    with pytest.raises(InvalidArgumentError):
        await adapter.power_control("srv-1", "explode")
    await adapter.close()


@pytest.mark.asyncio
async def test_health_and_subscriptions(adapter):
    await adapter.health()

    sub = await adapter.create_subscription(Subscription(callback="https://smo/notify"))
    assert [s.subscription_id for s in await adapter.list_subscriptions()] == [sub.subscription_id]

    await adapter.close()
    assert await adapter.list_subscriptions() == []


def test_polling_recommendation(adapter):
    rec = adapter.polling_recommendation()
    assert rec.interval_for("resources") == 30
    assert rec.interval_for("health-metrics") == 10
