"""Explicit dependency graph of declared infrastructure.

Every node is a unit of declared infrastructure (resource, data source,
provider or attribute patch). An edge ``from_node -> to_node`` means
``from_node`` may not start until ``to_node`` has completed. Edges only order
execution; values flow through ``Ref``s in node properties.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from eks_platform.errors import GraphError, GraphFrozenError
from eks_platform.values import collect_refs, resolve_value


@dataclass(frozen=True)
class ReleasePolicy:
    """Per-node failure policy handed to the execution engine as-is."""

    atomic: bool = True
    cleanup_on_fail: bool = True
    timeout: int = 900
    wait: bool = True
    replace: bool = False
    recreate_pods: bool = False
    skip_crds: bool = False


@dataclass(frozen=True)
class DependencyEdge:
    from_node: str
    to_node: str


@dataclass(frozen=True)
class ResourceNode:
    node_id: str
    kind: str
    properties: Mapping[str, Any] = field(default_factory=dict)
    provider: str | None = None
    policy: ReleasePolicy | None = None
    patches: str | None = None  # node id this node patches, for attribute patches


@dataclass(frozen=True)
class GraphOutput:
    name: str
    value: Any
    description: str = ""
    sensitive: bool = False
    depends_on: tuple[str, ...] = ()


class ResourceGraph:
    """Mutable while the orchestrator assembles it, frozen afterwards."""

    def __init__(self, name: str):
        self.name = name
        self._nodes: dict[str, ResourceNode] = {}
        self._edges: dict[DependencyEdge, None] = {}
        self._outputs: dict[str, GraphOutput] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def nodes(self) -> list[ResourceNode]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[DependencyEdge]:
        return list(self._edges)

    @property
    def outputs(self) -> dict[str, GraphOutput]:
        return dict(self._outputs)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: str) -> ResourceNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise GraphError(f"Unknown graph node '{node_id}'") from None

    def add_node(
        self,
        node_id: str,
        kind: str,
        properties: Mapping[str, Any] | None = None,
        provider: str | None = None,
        depends_on: Iterable[str] = (),
        policy: ReleasePolicy | None = None,
        patches: str | None = None,
    ) -> ResourceNode:
        """Declare a node; refs in ``properties`` become edges automatically."""
        self._check_mutable()
        if node_id in self._nodes:
            raise GraphError(f"Graph node '{node_id}' is declared twice")

        node = ResourceNode(
            node_id=node_id,
            kind=kind,
            properties=dict(properties or {}),
            provider=provider,
            policy=policy,
            patches=patches,
        )

        prerequisites = [ref.node_id for ref in collect_refs(node.properties)]
        if provider is not None:
            prerequisites.append(provider)
        if patches is not None:
            prerequisites.append(patches)
        prerequisites.extend(depends_on)
        for prerequisite in prerequisites:
            if prerequisite not in self._nodes:
                raise GraphError(f"Graph node '{node_id}' depends on undeclared node '{prerequisite}'")

        self._nodes[node_id] = node
        for prerequisite in prerequisites:
            self.add_edge(node_id, prerequisite)
        return node

    def add_edge(self, from_node: str, to_node: str) -> DependencyEdge:
        """Record that ``from_node`` must wait for ``to_node``."""
        self._check_mutable()
        if from_node == to_node:
            raise GraphError(f"Graph node '{from_node}' cannot depend on itself")
        for node_id in (from_node, to_node):
            if node_id not in self._nodes:
                raise GraphError(
                    f"Edge {from_node} -> {to_node} references undeclared node '{node_id}'"
                )
        edge = DependencyEdge(from_node, to_node)
        self._edges.setdefault(edge, None)
        return edge

    def add_output(
        self,
        name: str,
        value: Any,
        description: str = "",
        sensitive: bool = False,
        depends_on: Iterable[str] = (),
    ) -> GraphOutput:
        self._check_mutable()
        if name in self._outputs:
            raise GraphError(f"Output '{name}' is declared twice")
        depends = tuple(dict.fromkeys([*(ref.node_id for ref in collect_refs(value)), *depends_on]))
        for node_id in depends:
            if node_id not in self._nodes:
                raise GraphError(f"Output '{name}' depends on undeclared node '{node_id}'")
        output = GraphOutput(name, value, description, sensitive, depends)
        self._outputs[name] = output
        return output

    def dependencies_of(self, node_id: str) -> list[str]:
        """Direct prerequisites of ``node_id``, in declaration order."""
        self.node(node_id)
        return [edge.to_node for edge in self._edges if edge.from_node == node_id]

    def dependents_of(self, node_id: str) -> list[str]:
        self.node(node_id)
        return [edge.from_node for edge in self._edges if edge.to_node == node_id]

    def depends_on(self, node_id: str, prerequisite: str) -> bool:
        """True if ``prerequisite`` is a direct or transitive dependency."""
        seen: set[str] = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            for dependency in self.dependencies_of(current):
                if dependency == prerequisite:
                    return True
                if dependency not in seen:
                    seen.add(dependency)
                    stack.append(dependency)
        return False

    def nodes_of_kind(self, kind: str) -> list[ResourceNode]:
        return [node for node in self._nodes.values() if node.kind == kind]

    def topological_order(self) -> list[str]:
        """Prerequisites first; ready nodes are emitted in the order they became ready."""
        remaining = {node_id: 0 for node_id in self._nodes}
        dependents: dict[str, list[str]] = {node_id: [] for node_id in self._nodes}
        for edge in self._edges:
            remaining[edge.from_node] += 1
            dependents[edge.to_node].append(edge.from_node)

        ready = [node_id for node_id, count in remaining.items() if count == 0]
        order: list[str] = []
        while ready:
            current = ready.pop(0)
            order.append(current)
            for dependent in dependents[current]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    ready.append(dependent)

        if len(order) != len(self._nodes):
            stuck = sorted(node_id for node_id, count in remaining.items() if count > 0)
            raise GraphError(f"Dependency cycle between graph nodes: {', '.join(stuck)}")
        return order

    def freeze(self) -> "ResourceGraph":
        """Validate the graph and reject further changes."""
        self.topological_order()
        self._frozen = True
        return self

    def snapshot(self, lookup) -> dict[str, Any]:
        """Fully resolved view of the graph, with refs replaced by ``lookup(ref)``."""
        return {
            "nodes": {
                node.node_id: {
                    "kind": node.kind,
                    "provider": node.provider,
                    "patches": node.patches,
                    "properties": resolve_value(dict(node.properties), lookup),
                }
                for node in self._nodes.values()
            },
            "edges": [(edge.from_node, edge.to_node) for edge in self._edges],
            "outputs": {
                name: resolve_value(output.value, lookup) for name, output in self._outputs.items()
            },
        }

    def _check_mutable(self) -> None:
        if self._frozen:
            raise GraphFrozenError(f"Graph '{self.name}' is frozen; no further changes allowed")
