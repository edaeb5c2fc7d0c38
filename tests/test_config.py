"""
O2 Gateway — Configuration Tests
=================================
Validates:
- Settings read O2GW_* environment variables and are cached
- Per-backend configs apply defaults for zero/empty values
- Required fields are enforced
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from o2gateway.core.config import (
    DEFAULT_HEALTH_TIMEOUT,
    DEFAULT_RELEASE_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    ArgoCDConfig,
    AwsConfig,
    AwsPoolMode,
    CrossplaneConfig,
    DtiasConfig,
    HelmConfig,
    OsmConfig,
    get_settings,
)


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("O2GW_DTIAS_ENDPOINT", "https://dtias.example.com/api")
    monkeypatch.setenv("O2GW_HELM_NAMESPACE", "apps")

    settings = get_settings()

    assert settings.dtias_endpoint == "https://dtias.example.com/api"
    assert settings.helm_namespace == "apps"
    assert get_settings() is settings


def test_settings_reject_bad_log_level(monkeypatch):
    monkeypatch.setenv("O2GW_LOG_LEVEL", "LOUD")
    with pytest.raises(ValidationError):
        get_settings()


def test_dtias_defaults():
    cfg = DtiasConfig(
        endpoint="https://dtias", api_key="key", ocloud_id="oc-1", timeout=0, retry_attempts=0
    )

    assert cfg.timeout == DEFAULT_REQUEST_TIMEOUT
    assert cfg.health_timeout == DEFAULT_HEALTH_TIMEOUT
    assert cfg.retry_attempts == 3
    assert cfg.deployment_manager_id == "oc-1-dtias-dm"


@pytest.mark.parametrize("missing", ["endpoint", "api_key", "ocloud_id"])
def test_dtias_required_fields(missing):
    values = {"endpoint": "https://dtias", "api_key": "key", "ocloud_id": "oc-1"}
    values[missing] = ""
    with pytest.raises(ValidationError):
        DtiasConfig(**values)


def test_dtias_client_cert_pairing():
    with pytest.raises(ValidationError):
        DtiasConfig(
            endpoint="https://dtias", api_key="key", ocloud_id="oc-1", client_cert="/c.pem"
        )


def test_aws_defaults():
    cfg = AwsConfig(region="us-east-1", ocloud_id="oc-1", pool_mode="")

    assert cfg.pool_mode is AwsPoolMode.AVAILABILITY_ZONE
    assert cfg.deployment_manager_id == "ocloud-aws-us-east-1"


def test_aws_credentials_pairing():
    with pytest.raises(ValidationError):
        AwsConfig(region="us-east-1", ocloud_id="oc-1", access_key_id="AKIA")


def test_kubernetes_backed_defaults():
    assert ArgoCDConfig().namespace == "argocd"
    assert CrossplaneConfig(namespace="").namespace == "default"
    assert CrossplaneConfig().timeout == DEFAULT_RELEASE_TIMEOUT

    helm = HelmConfig(max_history=0)
    assert helm.max_history == 10
    assert helm.timeout == DEFAULT_RELEASE_TIMEOUT
    assert helm.helm_binary == "helm"


def test_osm_project_default():
    assert OsmConfig(project="").project == "admin"


def test_configs_are_frozen():
    cfg = HelmConfig()
    with pytest.raises(ValidationError):
        cfg.namespace = "other"
