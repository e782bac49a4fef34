"""AWS and Kubernetes provider lifecycle.

The AWS provider can be declared at any time. The Kubernetes and Helm
providers embed the cluster endpoint, CA and an auth token, which are only
valid once the cluster and its native add-ons exist, so they are handed out
only after an explicit ``promote``.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping

import pulumi

from eks_platform import kinds
from eks_platform.errors import NotInitializedError
from eks_platform.graph import ResourceGraph
from eks_platform.values import Deferred


class LifecycleState(str, Enum):
    UNINITIALIZED = "Uninitialized"
    AWS_READY = "AwsReady"
    CLUSTER_API_READY = "ClusterApiReady"


@dataclass(frozen=True)
class ProviderHandle:
    """Reference to a provider node; resources pass ``node_id`` as their provider."""

    node_id: str
    kind: str


class ProviderLifecycleManager:
    """Gates access to cluster-scoped provider handles.

    One instance per graph build, passed explicitly to every component that
    needs a provider.
    """

    AWS_NODE_ID = "aws"
    CLUSTER_API_NODE_ID = "k8s"
    CHART_DEPLOY_NODE_ID = "helm"

    def __init__(
        self,
        graph: ResourceGraph,
        region: str,
        default_tags: Mapping[str, str] | None = None,
        assume_role_arn: str | None = None,
        external_id: str | None = None,
    ):
        self._graph = graph
        self._region = region
        self._default_tags = dict(default_tags or {})
        self._assume_role_arn = assume_role_arn
        self._external_id = external_id
        self._state = LifecycleState.UNINITIALIZED
        self._aws: ProviderHandle | None = None
        self._cluster_api: ProviderHandle | None = None
        self._chart_deploy: ProviderHandle | None = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def is_cluster_api_ready(self) -> bool:
        return self._state is LifecycleState.CLUSTER_API_READY

    @property
    def promotion_node_ids(self) -> list[str]:
        """Nodes that cluster-scoped resources must wait for."""
        self._require_cluster_api("promotion nodes")
        return [self._cluster_api.node_id, self._chart_deploy.node_id]

    def get_aws_provider(self) -> ProviderHandle:
        """Declare the AWS provider on first use and return the same handle after."""
        if self._aws is None:
            properties: dict = {"region": self._region}
            if self._default_tags:
                properties["default_tags"] = {"tags": dict(self._default_tags)}
            if self._assume_role_arn:
                assume_role = {
                    "role_arn": self._assume_role_arn,
                    "session_name": f"eks-platform-{self._graph.name}",
                    "duration": "1h",
                }
                if self._external_id:
                    assume_role["external_id"] = self._external_id
                properties["assume_roles"] = [assume_role]

            node = self._graph.add_node(self.AWS_NODE_ID, kinds.AWS_PROVIDER, properties)
            self._aws = ProviderHandle(node.node_id, node.kind)
            self._state = LifecycleState.AWS_READY
        return self._aws

    def promote(
        self,
        cluster_endpoint,
        cluster_ca_cert,
        auth_token,
        depends_on: Iterable[str] = (),
    ) -> None:
        """Make cluster-scoped handles available.

        Call only after the cluster and its native add-ons are declared and
        pass them as ``depends_on``. A repeated call is ignored with a warning.
        """
        if self._state is LifecycleState.CLUSTER_API_READY:
            pulumi.log.warn("Kubernetes providers already initialized. Skipping.")
            return
        if self._state is LifecycleState.UNINITIALIZED:
            raise NotInitializedError(
                "Cannot promote to cluster API access before the AWS provider is initialized"
            )

        kubeconfig = build_token_kubeconfig(cluster_endpoint, cluster_ca_cert, auth_token)
        depends_on = list(depends_on)
        for node_id in (self.CLUSTER_API_NODE_ID, self.CHART_DEPLOY_NODE_ID):
            self._graph.add_node(
                node_id,
                kinds.KUBERNETES_PROVIDER,
                {"kubeconfig": kubeconfig},
                depends_on=depends_on,
            )

        self._cluster_api = ProviderHandle(self.CLUSTER_API_NODE_ID, kinds.KUBERNETES_PROVIDER)
        self._chart_deploy = ProviderHandle(self.CHART_DEPLOY_NODE_ID, kinds.KUBERNETES_PROVIDER)
        self._state = LifecycleState.CLUSTER_API_READY
        pulumi.log.debug("Cluster API providers declared; cluster-scoped resources may follow")

    def get_cluster_api_provider(self) -> ProviderHandle:
        self._require_cluster_api("Kubernetes provider")
        return self._cluster_api

    def get_chart_deploy_provider(self) -> ProviderHandle:
        self._require_cluster_api("Helm provider")
        return self._chart_deploy

    def _require_cluster_api(self, what: str) -> None:
        if self._state is not LifecycleState.CLUSTER_API_READY:
            raise NotInitializedError(
                f"{what} not initialized (state: {self._state.value}). "
                "Call promote() after the EKS cluster and its add-ons are declared."
            )


def build_token_kubeconfig(endpoint, ca_data, token):
    """Kubeconfig JSON authenticating with a bearer token."""

    def render(values: list) -> str:
        server, certificate_authority, bearer = values
        return json.dumps(
            {
                "apiVersion": "v1",
                "kind": "Config",
                "clusters": [
                    {
                        "name": "eks",
                        "cluster": {
                            "server": server,
                            "certificate-authority-data": certificate_authority,
                        },
                    }
                ],
                "users": [{"name": "eks", "user": {"token": bearer}}],
                "contexts": [{"name": "eks", "context": {"cluster": "eks", "user": "eks"}}],
                "current-context": "eks",
            }
        )

    combined = Deferred.all(endpoint, ca_data, token)
    if not combined.sources:
        return render(combined.resolve(()))
    return combined.apply(render)
