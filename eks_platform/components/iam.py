"""IAM roles for the EKS control plane, worker nodes and workload identities."""

from typing import Iterable

from eks_platform import kinds
from eks_platform.app_roles import AppRoleRegistry
from eks_platform.errors import InvalidConfigError
from eks_platform.graph import ResourceGraph
from eks_platform.models import ClusterContext, IdentityRoleSpec, ManagedPolicy
from eks_platform.naming import build_graph_node_id, build_runtime_name
from eks_platform.providers import ProviderHandle
from eks_platform.trust import (
    RoleBinding,
    RoleDraft,
    bind_role,
    binding_node_id,
    build_service_trust,
    draft_role,
)
from eks_platform.values import Ref, json_dumps

CLUSTER_POLICY_ARNS = ["arn:{partition}:iam::aws:policy/AmazonEKSClusterPolicy"]

NODE_POLICY_ARNS = [
    "arn:{partition}:iam::aws:policy/AmazonEKSWorkerNodePolicy",
    "arn:{partition}:iam::aws:policy/AmazonEKS_CNI_Policy",
    "arn:{partition}:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly",
    # SSM access for troubleshooting
    "arn:{partition}:iam::aws:policy/AmazonSSMManagedInstanceCore",
]

EBS_CSI_POLICY_ARN = "arn:{partition}:iam::aws:policy/service-role/AmazonEBSCSIDriverPolicy"


class ClusterIamRoles:
    """Service roles assumed by the EKS control plane and by EC2 worker nodes."""

    def __init__(
        self,
        name: str,
        graph: ResourceGraph,
        provider: ProviderHandle,
        partition: str = "aws",
    ):
        self._graph = graph
        self._provider = provider
        self.node_ids: list[str] = []

        self.cluster_role = self._service_role(
            f"{name}-cluster-role",
            "eks.amazonaws.com",
            [arn.format(partition=partition) for arn in CLUSTER_POLICY_ARNS],
        )
        self.node_role = self._service_role(
            f"{name}-node-role",
            "ec2.amazonaws.com",
            [arn.format(partition=partition) for arn in NODE_POLICY_ARNS],
        )

        self.cluster_role_arn = Ref(self.cluster_role.node_id, "arn")
        self.node_role_arn = Ref(self.node_role.node_id, "arn")

    def _service_role(self, role_name: str, service: str, policy_arns: list[str]):
        role = self._graph.add_node(
            role_name,
            kinds.IAM_ROLE,
            {
                "name": role_name,
                "assume_role_policy": build_service_trust(service).to_json(),
            },
            provider=self._provider.node_id,
        )
        for policy_arn in policy_arns:
            attachment = self._graph.add_node(
                build_graph_node_id([role_name, policy_arn.rsplit("/", 1)[-1]]),
                kinds.IAM_ROLE_POLICY_ATTACHMENT,
                {"role": Ref(role.node_id, "name"), "policy_arn": policy_arn},
                provider=self._provider.node_id,
            )
            self.node_ids.append(attachment.node_id)
        self.node_ids.append(role.node_id)
        return role


def ebs_csi_driver_role(cluster_name: str, partition: str = "aws") -> IdentityRoleSpec:
    """Workload identity for the EBS CSI controller in ``kube-system``."""
    return IdentityRoleSpec(
        role_name=build_runtime_name([cluster_name, "ebs-csi-driver", "role"]),
        app_name="ebs-csi-driver",
        namespace_selector="kube-system",
        service_account_name="ebs-csi-controller-sa",
        resource_grants=(ManagedPolicy(EBS_CSI_POLICY_ARN.format(partition=partition)),),
        description="IAM role for the EBS CSI driver controller",
    )


class IdentityRoles:
    """Workload identity roles, declared in two phases.

    ``draft`` declares a role with placeholder trust plus its inline policies
    and managed attachments. ``bind_all`` runs once the federation provider
    is declared and rebinds every drafted role to federated trust.
    """

    def __init__(self, graph: ResourceGraph, registry: AppRoleRegistry, provider: ProviderHandle):
        self._graph = graph
        self._registry = registry
        self._provider = provider
        self._owners: dict[str, str] = {}
        self.drafts: list[RoleDraft] = []
        self.bindings: list[RoleBinding] = []
        self.policy_node_ids: dict[str, list[str]] = {}

    def draft(self, spec: IdentityRoleSpec, node_id: str) -> RoleDraft:
        policies = self._registry.policies_for(spec)
        managed_arns = self._registry.managed_policy_arns(spec)
        policy_ids = [f"{node_id}-{policy.suffix}" for policy in policies]
        managed_ids = [f"{node_id}-managed-policy-{index}" for index in range(len(managed_arns))]
        self._claim(spec, [node_id, *policy_ids, *managed_ids, binding_node_id(node_id)])

        draft = draft_role(self._graph, spec, self._provider, node_id)
        role_name = Ref(node_id, "name")

        for policy_id, policy in zip(policy_ids, policies):
            self._graph.add_node(
                policy_id,
                kinds.IAM_ROLE_POLICY,
                {
                    "name": policy.name,
                    "role": Ref(node_id, "id"),
                    "policy": json_dumps(policy.document),
                },
                provider=self._provider.node_id,
            )

        for managed_id, policy_arn in zip(managed_ids, managed_arns):
            self._graph.add_node(
                managed_id,
                kinds.IAM_ROLE_POLICY_ATTACHMENT,
                {"role": role_name, "policy_arn": policy_arn},
                provider=self._provider.node_id,
            )

        self.drafts.append(draft)
        self.policy_node_ids[node_id] = policy_ids + managed_ids
        return draft

    def _claim(self, spec: IdentityRoleSpec, node_ids: list[str]) -> None:
        """Reserve every node id a role will use, including its later trust binding.

        Ids are derived by suffixing the role's node id, so one application's
        policy or binding id can equal another application's role id.
        """
        for node_id in node_ids:
            owner = self._owners.get(node_id)
            if owner is None and node_id not in self._graph:
                continue
            holder = f"application '{owner}'" if owner else "another platform resource"
            raise InvalidConfigError(
                f"Identity role for application '{spec.app_name}' (namespace "
                f"'{spec.namespace_selector}') needs graph node '{node_id}', which {holder} "
                f"already uses; rename one of the applications",
                app_name=spec.app_name,
            )
        self._owners.update(dict.fromkeys(node_ids, spec.app_name))

    def bind_all(self, ctx: ClusterContext, drafts: Iterable[RoleDraft] | None = None) -> list[RoleBinding]:
        bindings = [bind_role(self._graph, draft, ctx) for draft in (self.drafts if drafts is None else drafts)]
        self.bindings.extend(bindings)
        return bindings

    def binding_for(self, draft: RoleDraft) -> RoleBinding | None:
        return next((binding for binding in self.bindings if binding.draft is draft), None)
