"""
O2 Gateway — Resilient Backend REST Client
===========================================
Shared request/response plumbing for REST-style backends (DTIAS, ONAP SO,
OSM NBI).

Behavior:
- Fixed authentication, content-type and identification headers on every
  request, plus ``X-Correlation-ID`` when one is set in context.
- Retry with a fixed inter-attempt delay (``tenacity``). 5xx and 429
  responses and transport errors are retried; every other response ends
  the loop immediately. After ``retry_attempts + 1`` attempts the caller
  receives ``BackendUnavailableError`` (last status code kept) when the
  last attempt got a 5xx/429, or ``ConnectionFailedError`` when it could
  not reach the backend. Both name the attempt count and chain the last
  failure.
- Non-2xx bodies are probed for a structured ``{code, message, details}``
  payload (``BackendAPIError``); otherwise ``BackendStatusError`` carries
  the status code and raw body.
- 401/403 surface as ``AuthenticationFailedError`` and 404 as
  ``NotFoundError``, both chained to the status error.
- Responses are read fully by ``httpx`` and closed on every exit path.
- TLS 1.3 minimum, system trust store unless a CA bundle is supplied,
  optional client certificate/key pair.

Usage:
    client = ResilientClient(
        backend="dtias",
        base_url="https://dtias.example.com/api",
        headers={"Authorization": "Bearer ..."},
        retry_attempts=2,
        retry_delay=1.0,
    )
    pools = await client.request("GET", "/server-pools", operation="list_resource_pools")
    await client.aclose()
"""

from __future__ import annotations

import json
import ssl
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from o2gateway.core.exceptions import (
    AuthenticationFailedError,
    BackendError,
    ConnectionFailedError,
    InternalError,
    NotFoundError,
)
from o2gateway.core.logging import get_logger
from o2gateway.core.tracing import TracingContext, create_span

logger = get_logger(__name__)

USER_AGENT = "o2-gateway/1.0"


# ── Errors ──────────────────────────────────────────────────────────────


class BackendStatusError(BackendError):
    """Raised when a backend answers with a non-2xx status."""

    error_code = "BACKEND_STATUS_ERROR"

    def __init__(
        self,
        status_code: int,
        body: str,
        *,
        backend: str | None = None,
        operation: str | None = None,
        entity_id: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(
            self._describe(),
            backend=backend,
            operation=operation,
            entity_id=entity_id,
        )

    def _describe(self) -> str:
        return f"API error: {self.body} (status {self.status_code})"

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


@dataclass(frozen=True)
class APIErrorPayload:
    """Structured error body returned by a backend."""

    code: str
    message: str
    details: str = ""

    def __str__(self) -> str:
        if self.details:
            return f"[{self.code}]: {self.message} - {self.details}"
        return f"[{self.code}]: {self.message}"


class BackendAPIError(BackendStatusError):
    """Non-2xx response that carried a structured error payload."""

    error_code = "BACKEND_API_ERROR"

    def __init__(
        self,
        status_code: int,
        payload: APIErrorPayload,
        *,
        backend: str | None = None,
        operation: str | None = None,
        entity_id: str | None = None,
    ) -> None:
        self.payload = payload
        super().__init__(
            status_code,
            json.dumps({"code": payload.code, "message": payload.message}),
            backend=backend,
            operation=operation,
            entity_id=entity_id,
        )

    def _describe(self) -> str:
        return f"API error {self.payload}"


class BackendUnavailableError(BackendStatusError):
    """Retries ran out and the last attempt got a 5xx or 429 back."""

    error_code = "BACKEND_UNAVAILABLE"

    def __init__(
        self,
        last: BackendStatusError,
        attempts: int,
        *,
        backend: str | None = None,
        operation: str | None = None,
        entity_id: str | None = None,
    ) -> None:
        self.attempts = attempts
        self.last_error = last.reason
        super().__init__(
            last.status_code,
            last.body,
            backend=backend,
            operation=operation,
            entity_id=entity_id,
        )

    def _describe(self) -> str:
        return f"request failed after {self.attempts} attempts: {self.last_error}"


class _TransientFailure(Exception):
    """Internal marker for a failure that should be retried."""

    def __init__(self, cause: Exception) -> None:
        self.cause = cause
        super().__init__(str(cause))


# ── TLS ─────────────────────────────────────────────────────────────────


def build_ssl_context(
    client_cert: str | None = None,
    client_key: str | None = None,
    ca_cert: str | None = None,
) -> ssl.SSLContext:
    """TLS 1.3 context; system trust store unless ``ca_cert`` is given."""
    ctx = ssl.create_default_context(cafile=ca_cert)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_3
    if client_cert and client_key:
        ctx.load_cert_chain(certfile=client_cert, keyfile=client_key)
    return ctx


def parse_error_payload(body: str) -> APIErrorPayload | None:
    """Return the structured error in ``body``, or None when there is none."""
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if not isinstance(data, dict) or not data.get("message"):
        return None
    return APIErrorPayload(
        code=str(data.get("code", "")),
        message=str(data["message"]),
        details=str(data.get("details") or ""),
    )


# ── Client ──────────────────────────────────────────────────────────────


class ResilientClient:
    """
    Authenticated JSON client with bounded retries.

    ``transport`` is forwarded to ``httpx.AsyncClient`` and is how tests
    substitute ``httpx.MockTransport``. Without ``verify`` the client gets
    ``build_ssl_context()``, so TLS 1.3 is required by default.
    """

    def __init__(
        self,
        *,
        backend: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_delay: float = 2.0,
        verify: ssl.SSLContext | bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._backend = backend
        self._retry_attempts = max(retry_attempts, 0)
        self._retry_delay = retry_delay
        base_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        base_headers.update(headers or {})
        if verify is None:
            verify = build_ssl_context() if transport is None else True
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=base_headers,
            auth=auth,
            timeout=timeout,
            verify=verify,
            transport=transport,
        )

    @property
    def backend(self) -> str:
        return self._backend

    @property
    def max_attempts(self) -> int:
        return self._retry_attempts + 1

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        cause = exc.cause if isinstance(exc, _TransientFailure) else exc
        logger.warning(
            "rest_client.request_retry",
            backend=self._backend,
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            status_code=getattr(cause, "status_code", None),
            error=str(cause),
        )

    async def _send_once(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        body: Any,
        operation: str,
        entity_id: str | None,
    ) -> httpx.Response:
        headers = TracingContext.current().inject_headers({})
        try:
            response = await self._client.request(
                method, path, params=params, json=body, headers=headers
            )
        except httpx.TransportError as exc:
            raise _TransientFailure(exc) from exc

        if response.is_success:
            return response

        error = self._status_error(response, operation, entity_id)
        if error.retryable:
            raise _TransientFailure(error) from error
        if response.status_code == 404:
            raise NotFoundError(
                str(error.reason),
                backend=self._backend,
                operation=operation,
                entity_id=entity_id,
            ) from error
        if response.status_code in (401, 403):
            raise AuthenticationFailedError(
                str(error.reason),
                backend=self._backend,
                operation=operation,
                entity_id=entity_id,
            ) from error
        raise error

    def _status_error(
        self, response: httpx.Response, operation: str, entity_id: str | None
    ) -> BackendStatusError:
        body = response.text
        payload = parse_error_payload(body)
        if payload is not None:
            return BackendAPIError(
                response.status_code,
                payload,
                backend=self._backend,
                operation=operation,
                entity_id=entity_id,
            )
        return BackendStatusError(
            response.status_code,
            body,
            backend=self._backend,
            operation=operation,
            entity_id=entity_id,
        )

    async def send(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        entity_id: str | None = None,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> httpx.Response:
        """Send one logical request, retrying transient failures."""
        if params:
            params = {k: v for k, v in params.items() if v not in (None, "")}

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self._retry_delay),
            retry=retry_if_exception_type(_TransientFailure),
            before_sleep=self._log_retry,
            reraise=True,
        )

        with create_span(f"{self._backend}.request", method=method, path=path) as span:
            try:
                async for attempt in retrying:
                    with attempt:
                        response = await self._send_once(
                            method, path, params, body, operation, entity_id
                        )
            except _TransientFailure as exc:
                last_error = getattr(exc.cause, "reason", str(exc.cause))
                logger.error(
                    "rest_client.request_exhausted",
                    backend=self._backend,
                    method=method,
                    path=path,
                    attempts=self.max_attempts,
                    error=last_error,
                )
                if isinstance(exc.cause, BackendStatusError):
                    raise BackendUnavailableError(
                        exc.cause,
                        self.max_attempts,
                        backend=self._backend,
                        operation=operation,
                        entity_id=entity_id,
                    ) from exc.cause
                raise ConnectionFailedError(
                    f"request failed after {self.max_attempts} attempts: {last_error}",
                    backend=self._backend,
                    operation=operation,
                    entity_id=entity_id,
                ) from exc.cause

        logger.debug(
            "rest_client.request_completed",
            backend=self._backend,
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=span.duration_ms,
        )
        return response

    async def request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        entity_id: str | None = None,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        """Send a request and decode the JSON body (``None`` when empty)."""
        response = await self.send(
            method,
            path,
            operation=operation,
            entity_id=entity_id,
            params=params,
            body=body,
        )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise InternalError(
                f"failed to parse response: {exc}",
                backend=self._backend,
                operation=operation,
                entity_id=entity_id,
            ) from exc
