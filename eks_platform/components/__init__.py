"""EKS platform graph components."""

from eks_platform.components.addons import EbsStorageClass, EksAddons
from eks_platform.components.bootstrap import ArgoCDInstall, ExternalSecretsInstall, IngressControllerInstall
from eks_platform.components.eks import EksCluster, FederationProvider
from eks_platform.components.iam import ClusterIamRoles, IdentityRoles, ebs_csi_driver_role
from eks_platform.components.networking import Networking

__all__ = [
    "Networking",
    "ClusterIamRoles",
    "IdentityRoles",
    "ebs_csi_driver_role",
    "EksCluster",
    "FederationProvider",
    "EksAddons",
    "EbsStorageClass",
    "IngressControllerInstall",
    "ExternalSecretsInstall",
    "ArgoCDInstall",
]
