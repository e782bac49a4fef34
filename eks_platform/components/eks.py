"""EKS cluster, node group and the OIDC federation provider."""

from typing import Iterable, Sequence

from eks_platform import kinds
from eks_platform.config import NodeGroupConfig
from eks_platform.graph import ResourceGraph
from eks_platform.models import ClusterContext, LateBoundStr
from eks_platform.providers import ProviderHandle
from eks_platform.values import Ref

CLUSTER_LOG_TYPES = ["api", "audit", "authenticator", "controllerManager", "scheduler"]


class EksCluster:
    """EKS control plane plus one managed node group.

    The node group is sized from ``NodeGroupConfig``; it waits for the node
    role's policy attachments, which EKS requires before nodes can join.
    """

    def __init__(
        self,
        name: str,
        graph: ResourceGraph,
        cluster_name: str,
        kubernetes_version: str,
        cluster_role_arn: LateBoundStr,
        node_role_arn: LateBoundStr,
        subnet_ids: Sequence[LateBoundStr],
        node_group: NodeGroupConfig,
        provider: ProviderHandle,
        depends_on: Iterable[str] = (),
        node_group_depends_on: Iterable[str] = (),
        service_ipv4_cidr: str = "10.100.0.0/16",
    ):
        aws = provider.node_id

        self.cluster = graph.add_node(
            f"{name}-cluster",
            kinds.EKS_CLUSTER,
            {
                "name": cluster_name,
                "role_arn": cluster_role_arn,
                "version": kubernetes_version,
                "access_config": {
                    "authentication_mode": "API_AND_CONFIG_MAP",
                    "bootstrap_cluster_creator_admin_permissions": True,
                },
                "bootstrap_self_managed_addons": True,
                "kubernetes_network_config": {
                    "service_ipv4_cidr": service_ipv4_cidr,
                    "ip_family": "ipv4",
                },
                "vpc_config": {
                    "subnet_ids": list(subnet_ids),
                    "endpoint_private_access": False,
                    "endpoint_public_access": True,
                    "public_access_cidrs": ["0.0.0.0/0"],
                },
                "enabled_cluster_log_types": CLUSTER_LOG_TYPES,
                "tags": {"Name": cluster_name},
            },
            provider=aws,
            depends_on=depends_on,
        )

        self.node_group = graph.add_node(
            f"{name}-node-group",
            kinds.EKS_NODE_GROUP,
            {
                "cluster_name": Ref(self.cluster.node_id, "name"),
                "node_group_name": f"{cluster_name}-node",
                "node_role_arn": node_role_arn,
                "subnet_ids": list(subnet_ids),
                "version": Ref(self.cluster.node_id, "version"),
                "instance_types": list(node_group.instance_types),
                "disk_size": node_group.disk_size,
                "ami_type": node_group.ami_type,
                "scaling_config": {
                    "desired_size": node_group.desired_size,
                    "max_size": node_group.max_size,
                    "min_size": node_group.min_size,
                },
                "tags": {
                    "Name": f"{cluster_name}-node",
                    f"kubernetes.io/cluster/{cluster_name}": "owned",
                },
            },
            provider=aws,
            depends_on=[self.cluster.node_id, *node_group_depends_on],
        )

        # Export outputs
        self.cluster_name = Ref(self.cluster.node_id, "name")
        self.cluster_endpoint = Ref(self.cluster.node_id, "endpoint")
        self.cluster_ca_data = Ref(self.cluster.node_id, "certificate_authority.data")
        self.oidc_issuer_url = Ref(self.cluster.node_id, "identities.0.oidcs.0.issuer")


class FederationProvider:
    """IAM OIDC provider trusting the cluster's service-account token issuer."""

    def __init__(
        self,
        name: str,
        graph: ResourceGraph,
        cluster: EksCluster,
        provider: ProviderHandle,
    ):
        issuer_url = cluster.oidc_issuer_url

        self.certificate = graph.add_node(
            f"{name}-oidc-certificate",
            kinds.TLS_CERTIFICATE,
            {"url": issuer_url},
        )
        thumbprint = Ref(self.certificate.node_id, "certificates.0.sha1_fingerprint")

        self.oidc_provider = graph.add_node(
            f"{name}-oidc-provider",
            kinds.OIDC_PROVIDER,
            {
                "url": issuer_url,
                "client_id_lists": ["sts.amazonaws.com"],
                "thumbprint_lists": [thumbprint],
                "tags": {"Name": f"{name}-oidc-provider"},
            },
            provider=provider.node_id,
            depends_on=[cluster.cluster.node_id],
        )

        # Export outputs
        self.arn = Ref(self.oidc_provider.node_id, "arn")
        self.issuer_host = issuer_url.apply(lambda url: url.replace("https://", ""))

    def context(
        self,
        cluster: EksCluster,
        region: str,
        cluster_name: str,
        kubernetes_version: str,
        account_id: LateBoundStr,
    ) -> ClusterContext:
        return ClusterContext(
            region=region,
            cluster_name=cluster_name,
            kubernetes_version=kubernetes_version,
            account_id=account_id,
            federation_issuer_host=self.issuer_host,
            federation_provider_arn=self.arn,
            cluster_node_id=cluster.cluster.node_id,
            federation_node_id=self.oidc_provider.node_id,
        )
