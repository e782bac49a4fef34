"""EKS Platform - Main entry point for Pulumi infrastructure deployment."""

import pulumi

from eks_platform.config import load_platform_config
from eks_platform.engine import ClusterPlatform
from eks_platform.orchestrator import Orchestrator
from eks_platform.settings import get_settings

# Load platform configuration from stack config
config = load_platform_config()

# Assemble the resource graph (no cloud calls happen here)
stack = Orchestrator(config, get_settings()).build()

# Declare every graph node as a Pulumi resource
platform = ClusterPlatform(config.cluster.name, stack.graph)

# Exports
for name, value in platform.outputs.items():
    pulumi.export(name, value)
