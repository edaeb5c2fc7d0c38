"""
O2 Gateway — Resilient REST Client Tests
=========================================
Validates:
- 5xx/429 and transport errors are retried; exhaustion reports the
  attempt count and tells server failures from unreachable backends
- 4xx responses end the loop immediately with a typed error
- Structured error payloads are decoded
- Correlation ID header forwarding
- TLS 1.3 minimum for every backend client unless a transport is injected
"""

from __future__ import annotations

import ssl

import httpx
import pytest

from o2gateway.adapters.onap_adapter import OnapAdapter
from o2gateway.adapters.osm_adapter import OsmAdapter
from o2gateway.core.config import DtiasConfig, OnapConfig, OsmConfig
from o2gateway.core.exceptions import (
    AuthenticationFailedError,
    ConnectionFailedError,
    InternalError,
    NotFoundError,
)
from o2gateway.core.tracing import correlation_id_ctx
from o2gateway.integrations import dtias_client, rest_client
from o2gateway.integrations.dtias_client import DtiasClient
from o2gateway.integrations.helm_client import ChartRepository
from o2gateway.integrations.rest_client import (
    APIErrorPayload,
    BackendAPIError,
    BackendStatusError,
    BackendUnavailableError,
    ResilientClient,
    build_ssl_context,
    parse_error_payload,
)


def _client(handler, retry_attempts=2):
    return ResilientClient(
        backend="dtias",
        base_url="https://dtias.test/api",
        headers={"Authorization": "Bearer token"},
        retry_attempts=retry_attempts,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


# ── Retry Policy ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_server_errors_exhaust_after_all_attempts():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    client = _client(handler, retry_attempts=2)
    with pytest.raises(BackendUnavailableError) as exc_info:
        await client.request("GET", "/server-pools", operation="list_resource_pools")

    assert len(calls) == 3
    assert exc_info.value.status_code == 500
    assert exc_info.value.attempts == 3
    assert "request failed after 3 attempts: API error: boom (status 500)" in str(
        exc_info.value
    )
    assert isinstance(exc_info.value.__cause__, BackendStatusError)
    assert not isinstance(exc_info.value, ConnectionFailedError)
    await client.aclose()


@pytest.mark.asyncio
async def test_retry_then_success():
    responses = iter(
        [httpx.Response(429), httpx.Response(503), httpx.Response(200, json={"ok": True})]
    )

    client = _client(lambda request: next(responses))
    assert await client.request("GET", "/v2/version", operation="health") == {"ok": True}
    await client.aclose()


@pytest.mark.asyncio
async def test_transport_error_is_retried():
    attempts = 0

    def handler(request):
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json=[])

    client = _client(handler)
    assert await client.request("GET", "/server-pools", operation="list_resource_pools") == []
    assert attempts == 2
    await client.aclose()


@pytest.mark.asyncio
async def test_unreachable_backend_exhausts_as_connection_failure():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler, retry_attempts=1)
    with pytest.raises(ConnectionFailedError) as exc_info:
        await client.request("GET", "/server-pools", operation="list_resource_pools")

    assert len(calls) == 2
    assert "request failed after 2 attempts: refused" in str(exc_info.value)
    assert not isinstance(exc_info.value, BackendStatusError)
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
    await client.aclose()


@pytest.mark.asyncio
async def test_rate_limit_exhaustion_keeps_status():
    client = _client(lambda request: httpx.Response(429, text="slow down"), retry_attempts=0)
    with pytest.raises(BackendUnavailableError) as exc_info:
        await client.request("POST", "/server-pools", operation="create_resource_pool", body={})

    assert exc_info.value.status_code == 429
    assert exc_info.value.body == "slow down"
    assert exc_info.value.error_code == "BACKEND_UNAVAILABLE"
    await client.aclose()


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, text="bad request")

    client = _client(handler)
    with pytest.raises(BackendStatusError) as exc_info:
        await client.request("POST", "/server-pools", operation="create_resource_pool", body={})

    assert len(calls) == 1
    assert exc_info.value.status_code == 400
    assert "API error: bad request (status 400)" in str(exc_info.value)
    await client.aclose()


# ── Error Typing ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_not_found_is_typed():
    client = _client(lambda request: httpx.Response(404, text="missing"))
    with pytest.raises(NotFoundError) as exc_info:
        await client.request(
            "GET", "/server-pools/p1", operation="get_resource_pool", entity_id="p1"
        )

    assert exc_info.value.entity_id == "p1"
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_auth_failures_are_typed(status):
    client = _client(lambda request: httpx.Response(status))
    with pytest.raises(AuthenticationFailedError):
        await client.request("GET", "/v2/version", operation="health")
    await client.aclose()


@pytest.mark.asyncio
async def test_structured_payload_is_decoded():
    body = {"code": "E42", "message": "pool busy", "details": "allocation pending"}
    client = _client(lambda request: httpx.Response(409, json=body))

    with pytest.raises(BackendAPIError) as exc_info:
        await client.request("DELETE", "/server-pools/p1", operation="delete_resource_pool")

    assert exc_info.value.payload == APIErrorPayload("E42", "pool busy", "allocation pending")
    assert "[E42]: pool busy - allocation pending" in str(exc_info.value)
    await client.aclose()


def test_parse_error_payload_requires_message():
    assert parse_error_payload("not json") is None
    assert parse_error_payload('{"code": "E1"}') is None
    assert parse_error_payload('["x"]') is None
    assert str(parse_error_payload('{"code": "E1", "message": "m"}')) == "[E1]: m"


@pytest.mark.asyncio
async def test_invalid_json_body():
    client = _client(lambda request: httpx.Response(200, text="{oops"))
    with pytest.raises(InternalError):
        await client.request("GET", "/v2/version", operation="health")
    await client.aclose()


@pytest.mark.asyncio
async def test_empty_body_decodes_to_none():
    client = _client(lambda request: httpx.Response(204))
    assert await client.request("DELETE", "/server-pools/p1", operation="delete") is None
    await client.aclose()


# ── Headers ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_headers_and_correlation_id():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json={})

    client = _client(handler)
    token = correlation_id_ctx.set("cid-1")
    try:
        await client.request("GET", "/v2/version", operation="health", params={"a": "", "b": 1})
    finally:
        correlation_id_ctx.reset(token)

    assert seen["authorization"] == "Bearer token"
    assert seen["x-correlation-id"] == "cid-1"
    assert seen["user-agent"].startswith("o2-gateway/")
    await client.aclose()


# ── TLS ─────────────────────────────────────────────────────────────────


def _pool_ssl_context(client: ResilientClient) -> ssl.SSLContext:
    return client._client._transport._pool._ssl_context


def test_ssl_context_requires_tls13():
    ctx = build_ssl_context()

    assert ctx.minimum_version == ssl.TLSVersion.TLSv1_3
    assert ctx.verify_mode == ssl.CERT_REQUIRED
    assert ctx.check_hostname


def test_ssl_context_uses_custom_ca_bundle(monkeypatch):
    loaded = []

    def load_verify_locations(self, cafile=None, capath=None, cadata=None):
        loaded.append(cafile)

    monkeypatch.setattr(ssl.SSLContext, "load_verify_locations", load_verify_locations)
    ctx = build_ssl_context(ca_cert="/etc/o2/ca.pem")

    assert loaded == ["/etc/o2/ca.pem"]
    assert ctx.minimum_version == ssl.TLSVersion.TLSv1_3


def test_ssl_context_loads_client_cert_pair(monkeypatch):
    chains = []

    def load_cert_chain(self, certfile, keyfile=None, password=None):
        chains.append((certfile, keyfile))

    monkeypatch.setattr(ssl.SSLContext, "load_cert_chain", load_cert_chain)
    build_ssl_context("/etc/o2/client.pem", "/etc/o2/client.key")
    build_ssl_context("/etc/o2/client.pem", None)

    assert chains == [("/etc/o2/client.pem", "/etc/o2/client.key")]


@pytest.mark.asyncio
async def test_default_client_requires_tls13():
    client = ResilientClient(backend="onap", base_url="https://so.example")

    assert _pool_ssl_context(client).minimum_version == ssl.TLSVersion.TLSv1_3
    await client.aclose()


@pytest.mark.asyncio
async def test_injected_transport_skips_ssl_context(monkeypatch):
    built = []
    monkeypatch.setattr(rest_client, "build_ssl_context", lambda *args: built.append(args))

    client = _client(lambda request: httpx.Response(200))

    assert built == []
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "build",
    [
        lambda: OnapAdapter(OnapConfig(so_endpoint="https://so.example"))._build_http(None),
        lambda: OsmAdapter(OsmConfig(nbi_endpoint="https://nbi.example"))._build_http(None),
        lambda: ChartRepository("https://charts.example")._http,
    ],
    ids=["onap", "osm", "chart-repository"],
)
async def test_backend_clients_require_tls13(build):
    client = build()

    assert _pool_ssl_context(client).minimum_version == ssl.TLSVersion.TLSv1_3
    await client.aclose()


@pytest.mark.asyncio
async def test_dtias_client_loads_configured_certificates(monkeypatch):
    calls = []

    def spy(client_cert=None, client_key=None, ca_cert=None):
        calls.append((client_cert, client_key, ca_cert))
        return build_ssl_context()

    monkeypatch.setattr(dtias_client, "build_ssl_context", spy)
    client = DtiasClient.from_config(
        DtiasConfig(
            endpoint="https://dtias.example",
            api_key="key",
            ocloud_id="oc-1",
            client_cert="/etc/o2/client.pem",
            client_key="/etc/o2/client.key",
            ca_cert="/etc/o2/ca.pem",
        )
    )

    assert calls == [("/etc/o2/client.pem", "/etc/o2/client.key", "/etc/o2/ca.pem")]
    await client.aclose()
