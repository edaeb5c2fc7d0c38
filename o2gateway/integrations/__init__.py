# O2 Gateway — Backend Integration Clients
from o2gateway.integrations.rest_client import (
    BackendAPIError,
    BackendStatusError,
    BackendUnavailableError,
    ResilientClient,
    build_ssl_context,
)
from o2gateway.integrations.dtias_client import DtiasClient, PowerAction
from o2gateway.integrations.aws_client import (
    AioBotoComputeClient,
    BaseAwsComputeClient,
    MockAwsComputeClient,
)
from o2gateway.integrations.kubernetes_client import (
    BaseKubernetesClient,
    CustomResource,
    KubernetesAsyncioClient,
    MockKubernetesClient,
)
from o2gateway.integrations.helm_client import (
    BaseHelmClient,
    ChartRepository,
    HelmCLIClient,
    MockHelmClient,
)
