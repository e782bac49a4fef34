"""Immutable records shared across graph assembly."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union

from eks_platform.values import Deferred

LateBoundStr = Union[str, Deferred]


class TrustMode(str, Enum):
    """How a federated trust condition matches the service-account subject."""

    EXACT = "ExactMatch"
    PATTERN = "PatternMatch"

    @classmethod
    def for_namespace(cls, namespace_selector: str) -> "TrustMode":
        return cls.PATTERN if "*" in namespace_selector else cls.EXACT


@dataclass(frozen=True)
class ClusterContext:
    """Cluster facts known once the cluster and its OIDC provider are declared."""

    region: str
    cluster_name: str
    kubernetes_version: str
    account_id: LateBoundStr
    federation_issuer_host: LateBoundStr
    federation_provider_arn: LateBoundStr
    cluster_node_id: str | None = None
    federation_node_id: str | None = None


@dataclass(frozen=True)
class SubnetRecord:
    node_id: str
    subnet_id: LateBoundStr
    cidr_block: str
    availability_zone: str


@dataclass(frozen=True)
class NetworkTopology:
    vpc_node_id: str
    vpc_id: LateBoundStr
    cidr_block: str
    subnets: tuple[SubnetRecord, ...]

    @property
    def subnet_ids(self) -> list[LateBoundStr]:
        return [subnet.subnet_id for subnet in self.subnets]

    @property
    def node_ids(self) -> list[str]:
        return [self.vpc_node_id, *(subnet.node_id for subnet in self.subnets)]


# Resource grants


@dataclass(frozen=True)
class SecretAccess:
    pattern: str


@dataclass(frozen=True)
class ObjectStoreAccess:
    bucket: str


@dataclass(frozen=True)
class QueueAccess:
    name: str


@dataclass(frozen=True)
class RawPolicy:
    document: Mapping[str, Any]


@dataclass(frozen=True)
class ManagedPolicy:
    policy_arn: str


ResourceGrant = Union[SecretAccess, ObjectStoreAccess, QueueAccess, RawPolicy, ManagedPolicy]


@dataclass(frozen=True)
class IdentityRoleSpec:
    """An IAM role bound to a Kubernetes service account through federated OIDC.

    ``trust_mode`` follows from the namespace selector: a ``*`` anywhere in
    it makes the trust condition a pattern match.
    """

    role_name: str
    app_name: str
    namespace_selector: str
    service_account_name: str | None = None
    resource_grants: tuple[ResourceGrant, ...] = ()
    tags: Mapping[str, str] = field(default_factory=dict)
    description: str = ""
    trust_mode: TrustMode = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "trust_mode", TrustMode.for_namespace(self.namespace_selector))

    @property
    def subject_service_account(self) -> str:
        return self.service_account_name or self.app_name

    def grants_of(self, grant_type: type) -> list:
        return [grant for grant in self.resource_grants if isinstance(grant, grant_type)]
