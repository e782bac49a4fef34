"""Native EKS add-ons and the default storage class."""

from typing import Iterable

from eks_platform import kinds
from eks_platform.graph import ResourceGraph
from eks_platform.providers import ProviderHandle
from eks_platform.values import Ref


class EksAddons:
    """Add-ons installed through the EKS API rather than Helm.

    VPC CNI, CoreDNS and kube-proxy come from ``bootstrap_self_managed_addons``
    on the cluster, so only the EBS CSI driver is declared here.
    """

    def __init__(
        self,
        name: str,
        graph: ResourceGraph,
        cluster_name: Ref,
        ebs_csi_role_arn,
        provider: ProviderHandle,
        addon_version: str,
        depends_on: Iterable[str] = (),
    ):
        self.ebs_csi_driver = graph.add_node(
            f"{name}-aws-ebs-csi-driver",
            kinds.EKS_ADDON,
            {
                "addon_name": "aws-ebs-csi-driver",
                "cluster_name": cluster_name,
                "addon_version": addon_version,
                "service_account_role_arn": ebs_csi_role_arn,
                "resolve_conflicts_on_create": "OVERWRITE",
                "resolve_conflicts_on_update": "PRESERVE",
            },
            provider=provider.node_id,
            depends_on=depends_on,
        )
        self.node_ids = [self.ebs_csi_driver.node_id]


class EbsStorageClass:
    """Default gp3 storage class backed by the EBS CSI driver."""

    def __init__(
        self,
        graph: ResourceGraph,
        provider: ProviderHandle,
        name: str = "ebs-sc-gp3",
        depends_on: Iterable[str] = (),
    ):
        self.storage_class = graph.add_node(
            name,
            kinds.STORAGE_CLASS,
            {
                "metadata": {
                    "name": name,
                    "annotations": {"storageclass.kubernetes.io/is-default-class": "true"},
                },
                "provisioner": "ebs.csi.aws.com",
                "volume_binding_mode": "Immediate",
                "allow_volume_expansion": True,
                "parameters": {
                    "type": "gp3",
                    "encrypted": "true",
                    "fsType": "ext4",
                    "iops": "3000",
                    "throughput": "125",
                },
                "reclaim_policy": "Delete",
            },
            provider=provider.node_id,
            depends_on=depends_on,
        )
        self.name = name
