"""
O2 Gateway — Helm Client
=========================
Release operations and chart repository access for the Helm adapter.

- ``HelmCLIClient`` drives the ``helm`` binary with ``--output json``.
  Each call is one subprocess; a cancelled call kills its process.
- ``MockHelmClient`` keeps releases and their revision history in memory.
- ``ChartRepository`` downloads ``index.yaml`` from a chart repository
  through ``ResilientClient`` and parses it with PyYAML.

Release documents use the ``helm status --output json`` shape::

    {"name": ..., "namespace": ..., "version": 3,
     "info": {"status": "deployed", "first_deployed": ..., "last_deployed": ...,
              "description": ..., "notes": ...},
     "chart": {"metadata": {"name": ..., "version": ..., "appVersion": ...}},
     "config": {...}}

``helm list`` and ``helm history`` rows are normalized into that shape.

CLI failures are classified from stderr:

- "not found"                       → ``NotFoundError``
- "cannot re-use a name"            → ``AlreadyExistsError``
- "unauthorized" / "forbidden"      → ``AuthenticationFailedError``
- "cluster unreachable"             → ``ConnectionFailedError``
- anything else                     → ``BackendError``
"""

from __future__ import annotations

import abc
import asyncio
import copy
import json
import re
from datetime import datetime, timezone
from typing import Any

import httpx
import yaml

from o2gateway.core.exceptions import (
    AlreadyExistsError,
    AuthenticationFailedError,
    BackendError,
    ConfigurationError,
    ConnectionFailedError,
    GatewayError,
    InternalError,
    NotFoundError,
)
from o2gateway.core.logging import get_logger
from o2gateway.core.tracing import create_span
from o2gateway.integrations.rest_client import ResilientClient

logger = get_logger(__name__)

BACKEND = "helm"

_CHART_REF = re.compile(r"^(?P<name>.+?)-(?P<version>v?\d+(?:\.\d+)*(?:[-+].*)?)$")


def split_chart_ref(chart: str) -> tuple[str, str]:
    """
    Split a ``helm list`` chart column into name and version.

    >>> split_chart_ref("my-app-1.2.3")
    ('my-app', '1.2.3')
    >>> split_chart_ref("nginx-15.0.0-rc.1")
    ('nginx', '15.0.0-rc.1')
    """
    match = _CHART_REF.match(chart or "")
    if not match:
        return chart or "", ""
    return match.group("name"), match.group("version")


def _row_to_release(row: dict[str, Any]) -> dict[str, Any]:
    name, version = split_chart_ref(row.get("chart", ""))
    return {
        "name": row.get("name", ""),
        "namespace": row.get("namespace", ""),
        "version": int(row.get("revision") or 0),
        "info": {
            "status": row.get("status", "unknown"),
            "last_deployed": row.get("updated", ""),
            "description": row.get("description", ""),
        },
        "chart": {
            "metadata": {
                "name": name,
                "version": version,
                "appVersion": row.get("app_version", ""),
            }
        },
    }


def _classify(stderr: str, operation: str, entity_id: str | None) -> GatewayError:
    lowered = stderr.lower()
    context = {"backend": BACKEND, "operation": operation, "entity_id": entity_id}
    if "not found" in lowered:
        return NotFoundError(stderr, **context)
    if "cannot re-use a name" in lowered:
        return AlreadyExistsError(stderr, **context)
    if "unauthorized" in lowered or "forbidden" in lowered:
        return AuthenticationFailedError(stderr, **context)
    if "cluster unreachable" in lowered:
        return ConnectionFailedError(stderr, **context)
    return BackendError(stderr, **context)


# ── Abstract Base ───────────────────────────────────────────────────────


class BaseHelmClient(abc.ABC):
    """Helm release operations used by the Helm adapter."""

    @abc.abstractmethod
    async def list_releases(self, namespace: str = "", limit: int = 0) -> list[dict[str, Any]]:
        """Releases in every state; all namespaces when ``namespace`` is empty."""
        ...

    @abc.abstractmethod
    async def get_release(self, name: str, namespace: str) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def get_values(self, name: str, namespace: str) -> dict[str, Any]:
        """User-supplied values of the current revision."""
        ...

    @abc.abstractmethod
    async def history(self, name: str, namespace: str, max_entries: int = 0) -> list[dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def install(
        self,
        name: str,
        chart: str,
        namespace: str,
        values: dict[str, Any],
        *,
        version: str = "",
        repository: str = "",
        timeout: float,
    ) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def upgrade(
        self,
        name: str,
        chart: str,
        namespace: str,
        values: dict[str, Any],
        *,
        version: str = "",
        repository: str = "",
        reuse_values: bool = False,
        max_history: int = 0,
        timeout: float,
    ) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def uninstall(self, name: str, namespace: str, *, timeout: float) -> None:
        ...

    @abc.abstractmethod
    async def rollback(
        self,
        name: str,
        revision: int,
        namespace: str,
        *,
        max_history: int = 0,
        timeout: float,
    ) -> None:
        """Roll back to ``revision``; ``0`` means the previous revision."""
        ...

    async def aclose(self) -> None:
        return None


# ── Mock Implementation ────────────────────────────────────────────────


class MockHelmClient(BaseHelmClient):
    """
    In-memory release store.

    Each release keeps its full revision list; upgrades and rollbacks
    append a revision and mark the previous one ``superseded``.
    """

    def __init__(self) -> None:
        self._releases: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[str] = []

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def _revision(
        self,
        name: str,
        namespace: str,
        revision: int,
        chart: str,
        version: str,
        values: dict[str, Any],
        description: str,
        first_deployed: str = "",
    ) -> dict[str, Any]:
        now = self._now()
        return {
            "name": name,
            "namespace": namespace,
            "version": revision,
            "info": {
                "status": "deployed",
                "first_deployed": first_deployed or now,
                "last_deployed": now,
                "description": description,
                "notes": "",
            },
            "chart": {"metadata": {"name": chart, "version": version, "appVersion": ""}},
            "config": copy.deepcopy(values),
        }

    def seed(self, release: dict[str, Any]) -> None:
        self._releases.setdefault(release["name"], []).append(copy.deepcopy(release))

    def _history_of(self, name: str, namespace: str, operation: str) -> list[dict[str, Any]]:
        revisions = self._releases.get(name)
        if not revisions or revisions[-1]["namespace"] != namespace:
            raise NotFoundError(
                "release: not found", backend=BACKEND, operation=operation, entity_id=name
            )
        return revisions

    def _push(self, revisions: list[dict[str, Any]], release: dict[str, Any]) -> dict[str, Any]:
        revisions[-1]["info"]["status"] = "superseded"
        revisions.append(release)
        return copy.deepcopy(release)

    async def list_releases(self, namespace: str = "", limit: int = 0) -> list[dict[str, Any]]:
        self.calls.append("list")
        result = [
            copy.deepcopy(revisions[-1])
            for _, revisions in sorted(self._releases.items())
            if not namespace or revisions[-1]["namespace"] == namespace
        ]
        return result[:limit] if limit else result

    async def get_release(self, name: str, namespace: str) -> dict[str, Any]:
        self.calls.append("status")
        return copy.deepcopy(self._history_of(name, namespace, "get_release")[-1])

    async def get_values(self, name: str, namespace: str) -> dict[str, Any]:
        self.calls.append("get_values")
        return copy.deepcopy(self._history_of(name, namespace, "get_values")[-1].get("config") or {})

    async def history(self, name: str, namespace: str, max_entries: int = 0) -> list[dict[str, Any]]:
        self.calls.append("history")
        revisions = copy.deepcopy(self._history_of(name, namespace, "history"))
        return revisions[-max_entries:] if max_entries else revisions

    async def install(
        self,
        name: str,
        chart: str,
        namespace: str,
        values: dict[str, Any],
        *,
        version: str = "",
        repository: str = "",
        timeout: float,
    ) -> dict[str, Any]:
        self.calls.append("install")
        if name in self._releases:
            raise AlreadyExistsError(
                "cannot re-use a name that is still in use",
                backend=BACKEND,
                operation="install",
                entity_id=name,
            )
        release = self._revision(name, namespace, 1, chart, version, values, "Install complete")
        self._releases[name] = [release]
        return copy.deepcopy(release)

    async def upgrade(
        self,
        name: str,
        chart: str,
        namespace: str,
        values: dict[str, Any],
        *,
        version: str = "",
        repository: str = "",
        reuse_values: bool = False,
        max_history: int = 0,
        timeout: float,
    ) -> dict[str, Any]:
        self.calls.append("upgrade")
        revisions = self._history_of(name, namespace, "upgrade")
        current = revisions[-1]
        merged = dict(current.get("config") or {}) if reuse_values else {}
        merged.update(values)
        release = self._revision(
            name,
            namespace,
            current["version"] + 1,
            chart or current["chart"]["metadata"]["name"],
            version or current["chart"]["metadata"]["version"],
            merged,
            "Upgrade complete",
            first_deployed=current["info"].get("first_deployed", ""),
        )
        return self._push(revisions, release)

    async def uninstall(self, name: str, namespace: str, *, timeout: float) -> None:
        self.calls.append("uninstall")
        self._history_of(name, namespace, "uninstall")
        del self._releases[name]

    async def rollback(
        self,
        name: str,
        revision: int,
        namespace: str,
        *,
        max_history: int = 0,
        timeout: float,
    ) -> None:
        self.calls.append("rollback")
        revisions = self._history_of(name, namespace, "rollback")
        current = revisions[-1]
        target_number = revision or current["version"] - 1
        target = next((r for r in revisions if r["version"] == target_number), None)
        if target is None:
            raise NotFoundError(
                f"release: revision {target_number} not found",
                backend=BACKEND,
                operation="rollback",
                entity_id=name,
            )
        meta = target["chart"]["metadata"]
        release = self._revision(
            name,
            namespace,
            current["version"] + 1,
            meta["name"],
            meta["version"],
            target.get("config") or {},
            f"Rollback to {target_number}",
            first_deployed=current["info"].get("first_deployed", ""),
        )
        self._push(revisions, release)


# ── helm CLI Implementation ────────────────────────────────────────────


class HelmCLIClient(BaseHelmClient):
    """Runs the ``helm`` binary; one subprocess per call."""

    def __init__(self, binary: str = "helm", kubeconfig: str | None = None) -> None:
        self._binary = binary
        self._kubeconfig = kubeconfig

    async def _run(
        self,
        args: list[str],
        *,
        operation: str,
        entity_id: str | None = None,
        stdin: bytes | None = None,
    ) -> str:
        command = [self._binary, *args]
        if self._kubeconfig:
            command += ["--kubeconfig", self._kubeconfig]
        with create_span(f"helm.{operation}", release=entity_id):
            try:
                proc = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=asyncio.subprocess.PIPE if stdin is not None else None,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError as exc:
                raise ConfigurationError(
                    f"helm binary not found: {self._binary}",
                    backend=BACKEND,
                    operation=operation,
                ) from exc
            try:
                stdout, stderr = await proc.communicate(stdin)
            finally:
                if proc.returncode is None:
                    proc.kill()
                    await proc.wait()

        if proc.returncode != 0:
            message = stderr.decode(errors="replace").strip() or f"exit status {proc.returncode}"
            logger.warning(
                "helm_client.command_failed",
                operation=operation,
                release=entity_id,
                returncode=proc.returncode,
                error=message,
            )
            raise _classify(message, operation, entity_id)
        return stdout.decode(errors="replace")

    async def _run_json(self, args: list[str], **kwargs: Any) -> Any:
        output = await self._run([*args, "--output", "json"], **kwargs)
        if not output.strip():
            return None
        try:
            return json.loads(output)
        except ValueError as exc:
            raise InternalError(
                f"failed to parse helm output: {exc}",
                backend=BACKEND,
                operation=kwargs.get("operation"),
                entity_id=kwargs.get("entity_id"),
            ) from exc

    @staticmethod
    def _timeout(seconds: float) -> list[str]:
        return ["--wait", "--timeout", f"{int(seconds)}s"]

    @staticmethod
    def _chart_args(chart: str, version: str, repository: str) -> list[str]:
        args = [chart]
        if repository:
            args += ["--repo", repository]
        if version:
            args += ["--version", version]
        return args

    async def version(self) -> str:
        return (await self._run(["version", "--short"], operation="version")).strip()

    async def list_releases(self, namespace: str = "", limit: int = 0) -> list[dict[str, Any]]:
        args = ["list", "--all"]
        args += ["--namespace", namespace] if namespace else ["--all-namespaces"]
        if limit:
            args += ["--max", str(limit)]
        rows = await self._run_json(args, operation="list")
        return [_row_to_release(row) for row in rows or []]

    async def get_release(self, name: str, namespace: str) -> dict[str, Any]:
        return await self._run_json(
            ["status", name, "--namespace", namespace], operation="status", entity_id=name
        )

    async def get_values(self, name: str, namespace: str) -> dict[str, Any]:
        values = await self._run_json(
            ["get", "values", name, "--namespace", namespace],
            operation="get_values",
            entity_id=name,
        )
        return values or {}

    async def history(self, name: str, namespace: str, max_entries: int = 0) -> list[dict[str, Any]]:
        args = ["history", name, "--namespace", namespace]
        if max_entries:
            args += ["--max", str(max_entries)]
        rows = await self._run_json(args, operation="history", entity_id=name)
        releases = []
        for row in rows or []:
            release = _row_to_release({**row, "name": name, "namespace": namespace})
            releases.append(release)
        return releases

    async def install(
        self,
        name: str,
        chart: str,
        namespace: str,
        values: dict[str, Any],
        *,
        version: str = "",
        repository: str = "",
        timeout: float,
    ) -> dict[str, Any]:
        args = ["install", name, *self._chart_args(chart, version, repository)]
        args += ["--namespace", namespace, "--create-namespace", "--values", "-"]
        args += self._timeout(timeout)
        release = await self._run_json(
            args, operation="install", entity_id=name, stdin=json.dumps(values).encode()
        )
        logger.info("helm_client.installed", release=name, chart=chart, namespace=namespace)
        return release

    async def upgrade(
        self,
        name: str,
        chart: str,
        namespace: str,
        values: dict[str, Any],
        *,
        version: str = "",
        repository: str = "",
        reuse_values: bool = False,
        max_history: int = 0,
        timeout: float,
    ) -> dict[str, Any]:
        args = ["upgrade", name, *self._chart_args(chart, version, repository)]
        args += ["--namespace", namespace, "--values", "-"]
        if reuse_values:
            args.append("--reuse-values")
        if max_history:
            args += ["--history-max", str(max_history)]
        args += self._timeout(timeout)
        release = await self._run_json(
            args, operation="upgrade", entity_id=name, stdin=json.dumps(values).encode()
        )
        logger.info("helm_client.upgraded", release=name, chart=chart, namespace=namespace)
        return release

    async def uninstall(self, name: str, namespace: str, *, timeout: float) -> None:
        await self._run(
            ["uninstall", name, "--namespace", namespace, *self._timeout(timeout)],
            operation="uninstall",
            entity_id=name,
        )
        logger.info("helm_client.uninstalled", release=name, namespace=namespace)

    async def rollback(
        self,
        name: str,
        revision: int,
        namespace: str,
        *,
        max_history: int = 0,
        timeout: float,
    ) -> None:
        args = ["rollback", name]
        if revision:
            args.append(str(revision))
        args += ["--namespace", namespace, "--cleanup-on-fail"]
        if max_history:
            args += ["--history-max", str(max_history)]
        args += self._timeout(timeout)
        await self._run(args, operation="rollback", entity_id=name)
        logger.info("helm_client.rolled_back", release=name, revision=revision)


# ── Chart Repository ────────────────────────────────────────────────────


class ChartRepository:
    """``index.yaml`` access for one HTTP chart repository."""

    def __init__(
        self,
        url: str,
        *,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self._http = ResilientClient(
            backend=BACKEND,
            base_url=self.url,
            headers={"Accept": "application/x-yaml, text/yaml, */*"},
            auth=(username, password or "") if username else None,
            timeout=timeout,
            retry_attempts=2,
            retry_delay=1.0,
            transport=transport,
        )

    async def fetch_index(self) -> dict[str, Any]:
        response = await self._http.send(
            "GET", "/index.yaml", operation="list_deployment_packages", entity_id=self.url
        )
        try:
            index = yaml.safe_load(response.text) or {}
        except yaml.YAMLError as exc:
            raise InternalError(
                f"failed to parse repository index: {exc}",
                backend=BACKEND,
                operation="list_deployment_packages",
                entity_id=self.url,
            ) from exc
        entries = index.get("entries") if isinstance(index, dict) else None
        logger.info(
            "helm_client.index_loaded", repository=self.url, charts=len(entries or {})
        )
        return {"entries": entries or {}}

    async def aclose(self) -> None:
        await self._http.aclose()
