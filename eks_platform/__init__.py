"""EKS cluster and platform services as a declarative resource graph."""

from eks_platform.config import PlatformConfig, load_platform_config, parse_platform_config
from eks_platform.errors import (
    DuplicateRoleError,
    GraphError,
    GraphFrozenError,
    InvalidConfigError,
    NotInitializedError,
    PlatformError,
    UnresolvedValueError,
)
from eks_platform.graph import ResourceGraph
from eks_platform.orchestrator import Orchestrator, PlatformStack
from eks_platform.settings import PlatformSettings, get_settings

__all__ = [
    "PlatformConfig",
    "load_platform_config",
    "parse_platform_config",
    "PlatformSettings",
    "get_settings",
    "ResourceGraph",
    "Orchestrator",
    "PlatformStack",
    "PlatformError",
    "InvalidConfigError",
    "DuplicateRoleError",
    "UnresolvedValueError",
    "NotInitializedError",
    "GraphError",
    "GraphFrozenError",
]
