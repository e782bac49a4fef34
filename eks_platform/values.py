"""Late-bound values.

Graph assembly happens before any resource exists, so attributes such as a
cluster endpoint or an account id are only known once the execution engine
has applied the graph. ``Ref`` names such an attribute and ``Deferred``
composes refs with pure functions, much like ``pulumi.Output.apply``. The
renderer turns both into real outputs.
"""

import json
from typing import Any, Callable, Iterable, Sequence


class Deferred:
    """A value computed from one or more refs once they are known."""

    __slots__ = ("_sources", "_compute")

    def __init__(self, sources: Sequence["Ref"], compute: Callable[[tuple], Any]):
        self._sources = tuple(sources)
        self._compute = compute

    @property
    def sources(self) -> tuple["Ref", ...]:
        return self._sources

    def resolve(self, values: Iterable[Any]) -> Any:
        """Compute the value given the resolved sources, in ``sources`` order."""
        return self._compute(tuple(values))

    def apply(self, func: Callable[[Any], Any]) -> "Deferred":
        compute = self._compute
        return Deferred(self._sources, lambda values: func(compute(values)))

    @staticmethod
    def all(*items: Any) -> "Deferred":
        """Combine concrete and deferred items into one deferred list."""
        sources: list[Ref] = []
        layout: list[tuple[Any, int, int]] = []
        for item in items:
            if isinstance(item, Deferred):
                start = len(sources)
                sources.extend(item.sources)
                layout.append((item, start, len(sources)))
            else:
                layout.append((item, -1, -1))

        def compute(values: tuple) -> list:
            out = []
            for item, start, end in layout:
                if start < 0:
                    out.append(item)
                else:
                    out.append(item.resolve(values[start:end]))
            return out

        return Deferred(sources, compute)

    def __repr__(self) -> str:
        names = ", ".join(repr(ref) for ref in self._sources)
        return f"Deferred({names})"


class Ref(Deferred):
    """An attribute of another graph node, e.g. ``Ref("eks-cluster", "endpoint")``.

    The attribute is a dotted path; integer segments index into lists, so
    ``identities.0.oidcs.0.issuer`` walks nested outputs.
    """

    __slots__ = ("node_id", "attribute")

    def __init__(self, node_id: str, attribute: str):
        self.node_id = node_id
        self.attribute = attribute
        super().__init__((self,), lambda values: values[0])

    @property
    def path(self) -> list[str | int]:
        return [int(part) if part.isdigit() else part for part in self.attribute.split(".")]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ref):
            return NotImplemented
        return (self.node_id, self.attribute) == (other.node_id, other.attribute)

    def __hash__(self) -> int:
        return hash((self.node_id, self.attribute))

    def __repr__(self) -> str:
        return f"Ref({self.node_id!r}, {self.attribute!r})"


def is_known(value: Any) -> bool:
    """True when ``value`` contains no late-bound parts."""
    return not collect_refs(value)


def collect_refs(value: Any) -> list[Ref]:
    """Every ref reachable from ``value``, deduplicated in discovery order."""
    found: dict[Ref, None] = {}
    _walk_refs(value, found)
    return list(found)


def _walk_refs(value: Any, found: dict) -> None:
    if isinstance(value, Deferred):
        for ref in value.sources:
            found.setdefault(ref, None)
    elif isinstance(value, dict):
        for key, item in value.items():
            _walk_refs(key, found)
            _walk_refs(item, found)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _walk_refs(item, found)


def json_dumps(value: Any) -> Any:
    """``json.dumps`` that defers until every late-bound part is known."""
    refs = collect_refs(value)
    if not refs:
        return json.dumps(value)

    def render(values: tuple) -> str:
        known = dict(zip(refs, values))
        return json.dumps(resolve_value(value, known.__getitem__))

    return Deferred(refs, render)


def resolve_value(value: Any, lookup: Callable[[Ref], Any]) -> Any:
    """Replace every late-bound part of ``value`` with ``lookup`` results."""
    if isinstance(value, Deferred):
        return value.resolve(lookup(ref) for ref in value.sources)
    if isinstance(value, dict):
        return {resolve_value(key, lookup): resolve_value(item, lookup) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_value(item, lookup) for item in value]
    return value
