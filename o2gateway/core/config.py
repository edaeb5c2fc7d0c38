"""
O2 Gateway — Configuration Management
======================================
Centralized, validated configuration with environment-based overrides.

Two layers:
- ``Settings``: process-wide values loaded from ``O2GW_*`` environment
  variables (logging, per-backend endpoints and credentials).
- Per-backend configuration models (``DtiasConfig``, ``AwsConfig`` ...)
  consumed by adapter constructors. Zero/empty values are replaced by the
  documented defaults; required fields are validated on construction.

Usage:
    from o2gateway.core.config import get_settings
    settings = get_settings()

    config = DtiasConfig(endpoint="https://dtias", api_key="k", ocloud_id="oc-1")
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class AwsPoolMode(StrEnum):
    """How AWS infrastructure is grouped into resource pools."""

    AVAILABILITY_ZONE = "az"
    AUTO_SCALING_GROUP = "asg"


DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_HEALTH_TIMEOUT = 10.0
DEFAULT_RELEASE_TIMEOUT = 600.0


class Settings(BaseSettings):
    """
    Root configuration object.

    All values can be overridden via environment variables prefixed with ``O2GW_``.
    Example: ``O2GW_DTIAS_ENDPOINT=https://dtias.example.com/api``
    """

    model_config = SettingsConfigDict(
        env_prefix="O2GW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────────
    app_name: str = "o2-gateway"
    environment: Environment = Environment.DEVELOPMENT
    ocloud_id: str | None = None

    # ── Logging & Observability ──────────────────────────────────────────
    log_level: str = Field(
        default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_format: str = "json"  # "json" or "console"
    correlation_id_header: str = "X-Correlation-ID"

    # ── Timeouts ─────────────────────────────────────────────────────────
    request_timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    health_timeout_seconds: float = Field(default=DEFAULT_HEALTH_TIMEOUT, gt=0)

    # ── DTIAS (bare metal) ───────────────────────────────────────────────
    dtias_endpoint: str | None = None
    dtias_api_key: SecretStr | None = None
    dtias_client_cert: str | None = None
    dtias_client_key: str | None = None
    dtias_ca_cert: str | None = None
    dtias_datacenter: str | None = None
    dtias_retry_attempts: int = Field(default=3, ge=0, le=10)
    dtias_retry_delay_seconds: float = Field(default=2.0, ge=0)

    # ── AWS (cloud compute) ──────────────────────────────────────────────
    aws_region: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: SecretStr | None = None
    aws_session_token: SecretStr | None = None
    aws_profile: str | None = None
    aws_pool_mode: AwsPoolMode = AwsPoolMode.AVAILABILITY_ZONE

    # ── Kubernetes-backed adapters ───────────────────────────────────────
    kubeconfig: str | None = None
    argocd_namespace: str = "argocd"
    argocd_default_project: str = "default"
    crossplane_namespace: str = "default"
    helm_namespace: str = "default"
    helm_repository_url: str | None = None
    helm_repository_username: str | None = None
    helm_repository_password: SecretStr | None = None
    helm_binary: str = "helm"

    # ── NFV orchestrators ────────────────────────────────────────────────
    onap_so_endpoint: str | None = None
    onap_username: str | None = None
    onap_password: SecretStr | None = None
    osm_nbi_endpoint: str | None = None
    osm_username: str | None = None
    osm_password: SecretStr | None = None
    osm_project: str = "admin"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the singleton Settings instance.

    Cached so environment is read exactly once per process lifetime.
    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    return Settings()


# ── Per-backend configuration ───────────────────────────────────────────


class BackendConfig(BaseModel):
    """Common base for adapter configuration values."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout: float = DEFAULT_REQUEST_TIMEOUT
    health_timeout: float = DEFAULT_HEALTH_TIMEOUT

    @field_validator(
        "timeout",
        "health_timeout",
        "retry_attempts",
        "retry_delay",
        mode="before",
        check_fields=False,
    )
    @classmethod
    def _default_when_zero(cls, value: Any, info: ValidationInfo) -> Any:
        if not value:
            return cls.model_fields[info.field_name].default
        return value


def _require(value: str | None, field_name: str) -> str:
    if not value:
        raise ValueError(f"{field_name} is required")
    return value


class DtiasConfig(BackendConfig):
    """Dell DTIAS bare-metal backend configuration."""

    endpoint: str
    api_key: SecretStr
    ocloud_id: str
    client_cert: str | None = None
    client_key: str | None = None
    ca_cert: str | None = None
    datacenter: str = ""
    deployment_manager_id: str = ""
    retry_attempts: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=2.0, ge=0)

    @model_validator(mode="after")
    def _apply_defaults(self) -> DtiasConfig:
        _require(self.endpoint, "endpoint")
        _require(self.api_key.get_secret_value(), "api_key")
        _require(self.ocloud_id, "ocloud_id")
        if bool(self.client_cert) != bool(self.client_key):
            raise ValueError("client_cert and client_key must be provided together")
        if not self.deployment_manager_id:
            object.__setattr__(
                self, "deployment_manager_id", f"{self.ocloud_id}-dtias-dm"
            )
        return self


class AwsConfig(BackendConfig):
    """AWS EC2 / Auto Scaling backend configuration."""

    region: str
    ocloud_id: str
    access_key_id: str | None = None
    secret_access_key: SecretStr | None = None
    session_token: SecretStr | None = None
    profile: str | None = None
    pool_mode: AwsPoolMode = AwsPoolMode.AVAILABILITY_ZONE
    deployment_manager_id: str = ""

    @field_validator("pool_mode", mode="before")
    @classmethod
    def _default_pool_mode(cls, value: Any) -> Any:
        return value or AwsPoolMode.AVAILABILITY_ZONE

    @model_validator(mode="after")
    def _apply_defaults(self) -> AwsConfig:
        _require(self.region, "region")
        _require(self.ocloud_id, "ocloud_id")
        if bool(self.access_key_id) != bool(self.secret_access_key):
            raise ValueError(
                "access_key_id and secret_access_key must be provided together"
            )
        if not self.deployment_manager_id:
            object.__setattr__(
                self, "deployment_manager_id", f"ocloud-aws-{self.region}"
            )
        return self


class KubernetesConfig(BackendConfig):
    """Shared settings for adapters that talk to a Kubernetes API server."""

    kubeconfig: str | None = None
    namespace: str = "default"

    @field_validator("namespace", mode="before")
    @classmethod
    def _default_namespace(cls, value: Any) -> Any:
        return value or cls.model_fields["namespace"].default


class ArgoCDConfig(KubernetesConfig):
    """ArgoCD Application controller configuration."""

    namespace: str = "argocd"
    default_project: str = "default"
    auto_sync: bool = False
    prune: bool = False
    self_heal: bool = False


class CrossplaneConfig(KubernetesConfig):
    """Crossplane Configuration / Composition configuration."""

    timeout: float = DEFAULT_RELEASE_TIMEOUT
    default_composition_ref: str | None = None
    provider_config: str | None = None


class HelmConfig(KubernetesConfig):
    """Helm release manager configuration."""

    timeout: float = DEFAULT_RELEASE_TIMEOUT
    repository_url: str | None = None
    repository_username: str | None = None
    repository_password: SecretStr | None = None
    helm_binary: str = "helm"
    max_history: int = Field(default=10, ge=0)

    @field_validator("max_history", mode="before")
    @classmethod
    def _default_max_history(cls, value: Any) -> Any:
        return value or 10


class OnapConfig(BackendConfig):
    """ONAP Service Orchestrator configuration."""

    so_endpoint: str = ""
    username: str | None = None
    password: SecretStr | None = None
    request_id: str | None = None
    retry_attempts: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=2.0, ge=0)


class OsmConfig(BackendConfig):
    """Open Source MANO northbound interface configuration."""

    nbi_endpoint: str = ""
    username: str | None = None
    password: SecretStr | None = None
    project: str = "admin"
    retry_attempts: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=2.0, ge=0)

    @field_validator("project", mode="before")
    @classmethod
    def _default_project(cls, value: Any) -> Any:
        return value or "admin"
