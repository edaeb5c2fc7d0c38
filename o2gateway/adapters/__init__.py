"""
O2 Gateway — Backend Adapters
==============================
One adapter per backend variant, all implementing the O2-IMS
(``InfrastructureAdapter``) or O2-DMS (``DeploymentAdapter``) contract.

Public API:
    GatewayAdapter, InfrastructureAdapter, DeploymentAdapter,
    DtiasAdapter, AwsAdapter,
    ArgoCDAdapter, CrossplaneAdapter, HelmAdapter, OnapAdapter, OsmAdapter
"""

from o2gateway.adapters.base import (
    DeploymentAdapter,
    GatewayAdapter,
    InfrastructureAdapter,
)
from o2gateway.adapters.dtias_adapter import DtiasAdapter
from o2gateway.adapters.aws_adapter import AwsAdapter
from o2gateway.adapters.argocd_adapter import ArgoCDAdapter
from o2gateway.adapters.crossplane_adapter import CrossplaneAdapter
from o2gateway.adapters.helm_adapter import HelmAdapter
from o2gateway.adapters.onap_adapter import OnapAdapter
from o2gateway.adapters.osm_adapter import OsmAdapter

__all__ = [
    "ArgoCDAdapter",
    "AwsAdapter",
    "CrossplaneAdapter",
    "DeploymentAdapter",
    "DtiasAdapter",
    "GatewayAdapter",
    "HelmAdapter",
    "InfrastructureAdapter",
    "OnapAdapter",
    "OsmAdapter",
]
