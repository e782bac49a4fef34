"""Trust policies for workload identity roles.

An IRSA role has to trust the cluster's OIDC provider, but that provider only
exists after the cluster does, while the roles are needed earlier (add-ons
reference them). Roles are therefore created in two phases:

1. ``draft_role`` declares the role with a placeholder trust that lets the
   EKS service assume it, producing a ``RoleDraft``.
2. ``bind_role`` consumes the draft together with the resolved
   ``ClusterContext`` and declares a ``TrustBinding`` that replaces the
   role's trust policy with the federated one, producing a ``RoleBinding``.

A role whose binding is never declared keeps the placeholder trust. Nothing
fails at assembly time, but the workload cannot assume the role at runtime;
``find_unbound_roles`` reports such roles.
"""

from dataclasses import dataclass
from typing import Any, Iterable

from eks_platform import kinds
from eks_platform.graph import ResourceGraph
from eks_platform.models import ClusterContext, IdentityRoleSpec, LateBoundStr, TrustMode
from eks_platform.providers import ProviderHandle
from eks_platform.values import Deferred, Ref, json_dumps

POLICY_VERSION = "2012-10-17"
PLACEHOLDER_SERVICE = "eks.amazonaws.com"

CONDITION_OPERATORS = {
    TrustMode.EXACT: "StringEquals",
    TrustMode.PATTERN: "StringLike",
}


@dataclass(frozen=True)
class TrustCondition:
    mode: TrustMode
    key: LateBoundStr
    value: str

    @property
    def operator(self) -> str:
        return CONDITION_OPERATORS[self.mode]


@dataclass(frozen=True)
class TrustPolicyDocument:
    principal_type: str
    principal: LateBoundStr
    action: str
    condition: TrustCondition | None = None
    effect: str = "Allow"

    @property
    def mode(self) -> TrustMode | None:
        return self.condition.mode if self.condition else None

    def to_dict(self) -> dict[str, Any]:
        statement: dict[str, Any] = {
            "Effect": self.effect,
            "Principal": {self.principal_type: self.principal},
            "Action": self.action,
        }
        if self.condition is not None:
            statement["Condition"] = {
                self.condition.operator: {self.condition.key: self.condition.value}
            }
        return {"Version": POLICY_VERSION, "Statement": [statement]}

    def to_json(self) -> LateBoundStr:
        """Canonical JSON; deferred while the principal or issuer is late-bound."""
        return json_dumps(self.to_dict())


def build_service_trust(principal_service: str) -> TrustPolicyDocument:
    """Let an AWS service principal assume the role."""
    return TrustPolicyDocument(
        principal_type="Service",
        principal=principal_service,
        action="sts:AssumeRole",
    )


def build_placeholder_trust(principal_service: str = PLACEHOLDER_SERVICE) -> TrustPolicyDocument:
    """Temporary trust used while the federation provider does not exist yet."""
    return build_service_trust(principal_service)


def build_federated_trust(ctx: ClusterContext, role: IdentityRoleSpec) -> TrustPolicyDocument:
    """Trust the cluster's OIDC provider for the role's service account subject."""
    issuer = ctx.federation_issuer_host
    if isinstance(issuer, Deferred):
        key: LateBoundStr = issuer.apply(lambda host: f"{host}:sub")
    else:
        key = f"{issuer}:sub"

    subject = f"system:serviceaccount:{role.namespace_selector}:{role.subject_service_account}"
    return TrustPolicyDocument(
        principal_type="Federated",
        principal=ctx.federation_provider_arn,
        action="sts:AssumeRoleWithWebIdentity",
        condition=TrustCondition(mode=role.trust_mode, key=key, value=subject),
    )


@dataclass(frozen=True)
class RoleDraft:
    """Phase one: the role exists with placeholder trust."""

    spec: IdentityRoleSpec
    node_id: str
    placeholder: TrustPolicyDocument

    @property
    def arn(self) -> Ref:
        return Ref(self.node_id, "arn")


@dataclass(frozen=True)
class RoleBinding:
    """Phase two: the federated trust that replaces the placeholder."""

    draft: RoleDraft
    node_id: str
    trust: TrustPolicyDocument


def draft_role(
    graph: ResourceGraph,
    spec: IdentityRoleSpec,
    provider: ProviderHandle,
    node_id: str,
    principal_service: str = PLACEHOLDER_SERVICE,
) -> RoleDraft:
    placeholder = build_placeholder_trust(principal_service)
    graph.add_node(
        node_id,
        kinds.IAM_ROLE,
        {
            "name": spec.role_name,
            "description": spec.description,
            "assume_role_policy": placeholder.to_json(),
            "tags": dict(spec.tags),
        },
        provider=provider.node_id,
    )
    return RoleDraft(spec=spec, node_id=node_id, placeholder=placeholder)


def binding_node_id(role_node_id: str) -> str:
    return f"{role_node_id}-trust-binding"


def bind_role(graph: ResourceGraph, draft: RoleDraft, ctx: ClusterContext) -> RoleBinding:
    trust = build_federated_trust(ctx, draft.spec)
    depends_on = [node_id for node_id in (ctx.federation_node_id, ctx.cluster_node_id) if node_id]
    node = graph.add_node(
        binding_node_id(draft.node_id),
        kinds.TRUST_BINDING,
        {"assume_role_policy": trust.to_json()},
        depends_on=depends_on,
        patches=draft.node_id,
    )
    return RoleBinding(draft=draft, node_id=node.node_id, trust=trust)


def find_unbound_roles(graph: ResourceGraph, drafts: Iterable[RoleDraft]) -> list[str]:
    """Drafted roles that no ``TrustBinding`` patches; they keep placeholder trust."""
    bound = {node.patches for node in graph.nodes_of_kind(kinds.TRUST_BINDING)}
    return [draft.node_id for draft in drafts if draft.node_id not in bound]
