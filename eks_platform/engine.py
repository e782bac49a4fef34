"""Renders a frozen platform graph as Pulumi resources."""

from dataclasses import dataclass
from typing import Any, Mapping

import pulumi
import pulumi_aws as aws
import pulumi_kubernetes as k8s
import pulumi_tls as tls

from eks_platform import kinds
from eks_platform.errors import GraphError
from eks_platform.graph import ReleasePolicy, ResourceGraph, ResourceNode
from eks_platform.values import Deferred, Ref

PROVIDER_TYPES = {
    kinds.AWS_PROVIDER: aws.Provider,
    kinds.KUBERNETES_PROVIDER: k8s.Provider,
}

DATA_SOURCE_FUNCTIONS = {
    kinds.CALLER_IDENTITY: aws.get_caller_identity_output,
    kinds.CLUSTER_AUTH: aws.eks.get_cluster_auth_output,
    kinds.TLS_CERTIFICATE: tls.get_certificate_output,
}

RESOURCE_TYPES = {
    kinds.VPC: aws.ec2.Vpc,
    kinds.SUBNET: aws.ec2.Subnet,
    kinds.INTERNET_GATEWAY: aws.ec2.InternetGateway,
    kinds.ROUTE_TABLE: aws.ec2.RouteTable,
    kinds.ROUTE: aws.ec2.Route,
    kinds.ROUTE_TABLE_ASSOCIATION: aws.ec2.RouteTableAssociation,
    kinds.IAM_ROLE: aws.iam.Role,
    kinds.IAM_ROLE_POLICY: aws.iam.RolePolicy,
    kinds.IAM_ROLE_POLICY_ATTACHMENT: aws.iam.RolePolicyAttachment,
    kinds.OIDC_PROVIDER: aws.iam.OpenIdConnectProvider,
    kinds.EKS_CLUSTER: aws.eks.Cluster,
    kinds.EKS_NODE_GROUP: aws.eks.NodeGroup,
    kinds.EKS_ADDON: aws.eks.Addon,
    kinds.STORAGE_CLASS: k8s.storage.v1.StorageClass,
    kinds.HELM_RELEASE: k8s.helm.v3.Release,
}

# Patches never become resources of their own
FOLDED_KINDS = frozenset({kinds.TRUST_BINDING})

KNOWN_KINDS = frozenset(PROVIDER_TYPES) | frozenset(DATA_SOURCE_FUNCTIONS) | frozenset(RESOURCE_TYPES) | FOLDED_KINDS


@dataclass(frozen=True)
class PlannedNode:
    """A node as it will be rendered, with patches already applied."""

    node: ResourceNode
    properties: Mapping[str, Any]
    depends_on: tuple[str, ...]


def fold_trust_bindings(graph: ResourceGraph) -> tuple[list[PlannedNode], dict[str, str]]:
    """Merge every ``TrustBinding`` into the role it patches.

    Pulumi declares a role once, so the role is created directly with the
    federated trust and inherits the binding's prerequisites. Returns the
    render order and a map from each binding to the node standing in for it.
    """
    properties = {node.node_id: dict(node.properties) for node in graph.nodes}
    dependencies = {node.node_id: list(graph.dependencies_of(node.node_id)) for node in graph.nodes}
    aliases: dict[str, str] = {}

    for binding in graph.nodes_of_kind(kinds.TRUST_BINDING):
        target = binding.patches
        if target is None:
            raise GraphError(f"Trust binding '{binding.node_id}' does not name the role it patches")
        properties[target].update(binding.properties)
        for prerequisite in dependencies.pop(binding.node_id):
            if prerequisite != target and prerequisite not in dependencies[target]:
                dependencies[target].append(prerequisite)
        aliases[binding.node_id] = target

    for node_id, prerequisites in dependencies.items():
        resolved = (aliases.get(prerequisite, prerequisite) for prerequisite in prerequisites)
        dependencies[node_id] = list(dict.fromkeys(p for p in resolved if p != node_id))

    remaining = {node_id: len(prerequisites) for node_id, prerequisites in dependencies.items()}
    dependents: dict[str, list[str]] = {node_id: [] for node_id in dependencies}
    for node_id, prerequisites in dependencies.items():
        for prerequisite in prerequisites:
            dependents[prerequisite].append(node_id)

    ready = [node_id for node_id, count in remaining.items() if count == 0]
    plan: list[PlannedNode] = []
    while ready:
        current = ready.pop(0)
        plan.append(PlannedNode(graph.node(current), properties[current], tuple(dependencies[current])))
        for dependent in dependents[current]:
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                ready.append(dependent)

    if len(plan) != len(dependencies):
        stuck = sorted(node_id for node_id, count in remaining.items() if count > 0)
        raise GraphError(f"Folding trust bindings created a dependency cycle: {', '.join(stuck)}")
    return plan, aliases


def release_options(policy: ReleasePolicy | None) -> dict[str, Any]:
    if policy is None:
        return {}
    return {
        "atomic": policy.atomic,
        "cleanup_on_fail": policy.cleanup_on_fail,
        "timeout": policy.timeout,
        "skip_await": not policy.wait,
        "replace": policy.replace,
        "recreate_pods": policy.recreate_pods,
        "skip_crds": policy.skip_crds,
    }


def _step(value: Any, key: str | int) -> Any:
    if isinstance(key, int):
        return value[key]
    if isinstance(value, dict):
        return value[key]
    return getattr(value, key)


class ClusterPlatform(pulumi.ComponentResource):
    """Every node of a platform graph, declared as children of one component.

    ``outputs`` holds the graph outputs as ``pulumi.Output`` values, ready
    for ``pulumi.export``.
    """

    def __init__(
        self,
        name: str,
        graph: ResourceGraph,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("eks-platform:index:ClusterPlatform", name, None, opts)

        if not graph.frozen:
            raise GraphError(f"Graph '{graph.name}' must be frozen before it is rendered")

        unknown = sorted({node.kind for node in graph.nodes} - KNOWN_KINDS)
        if unknown:
            raise GraphError(f"No Pulumi mapping for node kinds: {', '.join(unknown)}")

        self._rendered: dict[str, Any] = {}
        plan, aliases = fold_trust_bindings(graph)
        for planned in plan:
            self._rendered[planned.node.node_id] = self._render(planned)
            pulumi.log.debug(f"Declared {planned.node.kind} '{planned.node.node_id}'", resource=self)
        for binding_id, target in aliases.items():
            self._rendered[binding_id] = self._rendered[target]

        # Export outputs
        self.outputs: dict[str, pulumi.Output] = {}
        for output_name, output in graph.outputs.items():
            value = pulumi.Output.from_input(self._to_input(output.value))
            waits_for = [
                self._rendered[node_id].urn
                for node_id in output.depends_on
                if isinstance(self._rendered[node_id], pulumi.Resource)
            ]
            if waits_for:
                value = pulumi.Output.all(value, *waits_for).apply(lambda values: values[0])
            self.outputs[output_name] = pulumi.Output.secret(value) if output.sensitive else value

        self.register_outputs(self.outputs)

    def resource(self, node_id: str) -> Any:
        """The Pulumi resource (or data source output) declared for ``node_id``."""
        return self._rendered[node_id]

    def _render(self, planned: PlannedNode) -> Any:
        node = planned.node
        args = {key: self._to_input(value) for key, value in planned.properties.items()}

        if node.kind in DATA_SOURCE_FUNCTIONS:
            invoke_opts = pulumi.InvokeOptions(
                parent=self,
                provider=self._rendered[node.provider] if node.provider else None,
            )
            return DATA_SOURCE_FUNCTIONS[node.kind](**args, opts=invoke_opts)

        depends_on = [
            self._rendered[node_id]
            for node_id in planned.depends_on
            if node_id != node.provider and isinstance(self._rendered[node_id], pulumi.Resource)
        ]
        resource_opts = pulumi.ResourceOptions(
            parent=self,
            provider=self._rendered[node.provider] if node.provider else None,
            depends_on=depends_on,
        )

        if node.kind in PROVIDER_TYPES:
            return PROVIDER_TYPES[node.kind](node.node_id, **args, opts=resource_opts)

        if node.kind == kinds.HELM_RELEASE:
            args.update(release_options(node.policy))
        return RESOURCE_TYPES[node.kind](node.node_id, **args, opts=resource_opts)

    def _to_input(self, value: Any) -> Any:
        if isinstance(value, Deferred):
            sources = [self._ref_output(ref) for ref in value.sources]
            return pulumi.Output.all(*sources).apply(value.resolve)
        if isinstance(value, dict):
            if any(isinstance(key, Deferred) for key in value):
                keys = [self._to_input(key) for key in value]
                items = [self._to_input(item) for item in value.values()]
                return pulumi.Output.all(pulumi.Output.all(*keys), pulumi.Output.all(*items)).apply(
                    lambda pair: dict(zip(pair[0], pair[1]))
                )
            return {key: self._to_input(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._to_input(item) for item in value]
        return value

    def _ref_output(self, ref: Ref) -> pulumi.Output:
        target = self._rendered.get(ref.node_id)
        if target is None:
            raise GraphError(f"Reference to '{ref.node_id}' used before it was declared")

        path = ref.path
        if isinstance(target, pulumi.Resource):
            # Resource attributes are outputs already
            head, path = getattr(target, path[0]), path[1:]
        else:
            head = target
        if not path:
            return head

        def walk(value: Any) -> Any:
            for key in path:
                value = _step(value, key)
            return value

        return pulumi.Output.from_input(head).apply(walk)
