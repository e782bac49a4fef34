"""Resource name and graph-node id sanitization.

Runtime names (IAM role and policy names) may embed late-bound values, so
``sanitize`` is a pure string transform that is applied through
``Deferred.apply`` when its input is not known yet. Graph-node ids identify
nodes while the graph is being built and must be concrete.
"""

import re
from typing import Sequence

from eks_platform.errors import UnresolvedValueError
from eks_platform.values import Deferred, is_known

FALLBACK_NAME = "resource"
WILDCARD_TOKEN = "wildcard"

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9-]")
_REPEATED_DASHES = re.compile(r"-{2,}")


def sanitize(raw):
    """Normalize ``raw`` into ``[A-Za-z0-9-]`` with single dashes.

    ``*`` becomes ``wildcard`` so namespace patterns stay distinguishable from
    their literal prefix (``monitoring-*`` -> ``monitoring-wildcard``).
    """
    if isinstance(raw, Deferred):
        return raw.apply(sanitize)
    if raw is None or raw == "":
        return FALLBACK_NAME

    name = str(raw).replace("*", WILDCARD_TOKEN)
    name = _INVALID_CHARS.sub("-", name)
    name = _REPEATED_DASHES.sub("-", name).strip("-")
    return name or FALLBACK_NAME


def build_runtime_name(parts: Sequence):
    """Join sanitized ``parts`` with ``-``; deferred if any part is late-bound."""
    if not parts:
        return FALLBACK_NAME

    sanitized = [sanitize(part) for part in parts]
    if all(isinstance(part, str) for part in sanitized):
        return "-".join(sanitized)
    return Deferred.all(*sanitized).apply("-".join)


def build_graph_node_id(parts: Sequence, suffix: str | None = None) -> str:
    """Build a concrete node id; late-bound parts raise ``UnresolvedValueError``."""
    components = list(parts)
    if suffix is not None:
        components.append(suffix)

    for position, part in enumerate(components):
        if not is_known(part):
            label = "suffix" if suffix is not None and position == len(components) - 1 else f"part {position}"
            raise UnresolvedValueError(
                f"Graph node id {label} is a late-bound value ({part!r}); "
                "node ids must be known while the graph is assembled"
            )

    return build_runtime_name(components)
