"""Platform configuration schema and loader."""

import ipaddress
from typing import Any, Optional

import pulumi
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from eks_platform.errors import InvalidConfigError


class ClusterConfig(BaseModel):
    """Cluster identity and target account."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(
        ...,
        description="EKS cluster name (also the prefix of every resource name)",
        pattern=r"^[A-Za-z][A-Za-z0-9-]*$",
        min_length=1,
        max_length=100,
    )
    version: str = Field(default="1.31", description="Kubernetes version")
    region: str = Field(default="us-east-1")
    partition: str = Field(default="aws")
    environment: str = Field(default="prod")

    # Cross-account access (optional)
    assume_role_arn: Optional[str] = Field(default=None, validation_alias=AliasChoices("assumeRoleArn", "assume_role_arn"))
    external_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("externalId", "external_id"))


class NetworkConfig(BaseModel):
    """VPC sizing. Subnets are carved from the VPC CIDR, one per AZ."""

    model_config = ConfigDict(populate_by_name=True)

    cidr_block: str = Field(default="10.0.0.0/16", validation_alias=AliasChoices("cidrBlock", "cidr_block", "cidr"))
    az_count: int = Field(default=2, ge=1, le=6, validation_alias=AliasChoices("azCount", "az_count", "numSubnets"))
    subnet_prefix: int = Field(default=20, ge=16, le=28, validation_alias=AliasChoices("subnetPrefix", "subnet_prefix"))
    availability_zones: Optional[list[str]] = Field(
        default=None, validation_alias=AliasChoices("availabilityZones", "availability_zones")
    )

    @field_validator("cidr_block")
    @classmethod
    def _valid_cidr(cls, value: str) -> str:
        network = ipaddress.ip_network(value, strict=True)
        if network.version != 4:
            raise ValueError("only IPv4 VPC CIDR blocks are supported")
        return value

    @model_validator(mode="after")
    def _zones_match_count(self) -> "NetworkConfig":
        if self.availability_zones:
            self.az_count = len(self.availability_zones)
        return self

    def zone_names(self, region: str) -> list[str]:
        """Configured AZ names, or ``<region>a``, ``<region>b``, ... by default."""
        if self.availability_zones:
            return list(self.availability_zones)
        return [f"{region}{chr(ord('a') + index)}" for index in range(self.az_count)]


class NodeGroupConfig(BaseModel):
    """Configuration for the managed node group."""

    model_config = ConfigDict(populate_by_name=True)

    instance_types: list[str] = Field(default=["t3.medium"], validation_alias=AliasChoices("instanceTypes", "instance_types"))
    desired_size: int = Field(default=2, ge=1, le=100, validation_alias=AliasChoices("desiredSize", "desired_size"))
    min_size: int = Field(default=1, ge=1, le=100, validation_alias=AliasChoices("minSize", "min_size"))
    max_size: int = Field(default=4, ge=1, le=100, validation_alias=AliasChoices("maxSize", "max_size"))
    disk_size: int = Field(default=20, ge=20, le=1000, validation_alias=AliasChoices("diskSize", "disk_size"))
    ami_type: str = Field(default="AL2_x86_64", validation_alias=AliasChoices("amiType", "ami_type"))

    @model_validator(mode="after")
    def _sizes_ordered(self) -> "NodeGroupConfig":
        if not self.min_size <= self.desired_size <= self.max_size:
            raise ValueError("node group sizes must satisfy min_size <= desired_size <= max_size")
        return self


class AppIamConfig(BaseModel):
    """IAM access for one application's Kubernetes service account.

    ``namespace_selector`` may contain ``*`` (e.g. ``data-processing-*``) to
    trust every matching namespace. Secret patterns are used verbatim:
    include ``*`` explicitly when pattern matching is wanted.
    """

    model_config = ConfigDict(populate_by_name=True)

    app_name: str = Field(default="", validation_alias=AliasChoices("appName", "app_name"))
    namespace_selector: str = Field(
        default="", validation_alias=AliasChoices("namespaceSelector", "namespace", "namespace_selector")
    )
    service_account_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("serviceAccountName", "serviceAccount", "service_account_name"),
    )
    secrets_access: list[str] = Field(default_factory=list, validation_alias=AliasChoices("secretsAccess", "secrets_access"))
    object_store_access: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("objectStoreAccess", "s3Access", "object_store_access")
    )
    queue_access: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("queueAccess", "sqsAccess", "queue_access")
    )
    raw_policies: list[dict[str, Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("rawPolicies", "customPolicies", "raw_policies")
    )
    managed_policy_arns: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("managedPolicyArns", "managed_policy_arns")
    )
    tags: dict[str, str] = Field(default_factory=dict)


class PlatformConfig(BaseModel):
    """Everything one platform stack is built from."""

    cluster: ClusterConfig
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    node_group: NodeGroupConfig = Field(default_factory=NodeGroupConfig)
    apps: list[AppIamConfig] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)


def parse_platform_config(data: dict[str, Any]) -> PlatformConfig:
    """Validate raw configuration, reporting problems as ``InvalidConfigError``."""
    try:
        return PlatformConfig.model_validate(data)
    except ValidationError as e:
        raise InvalidConfigError(f"Invalid platform configuration: {e}") from e


def load_platform_config() -> PlatformConfig:
    """Load and validate platform configuration from Pulumi stack config."""
    config = pulumi.Config()

    # Parse availability zones from config (comma-separated string)
    network: dict[str, Any] = dict(config.get_object("network") or {})
    az_config = config.get("availabilityZones")
    if az_config:
        network["availability_zones"] = [az.strip() for az in az_config.split(",")]

    return parse_platform_config(
        {
            "cluster": {
                "name": config.require("clusterName"),
                "version": config.get("kubernetesVersion") or "1.31",
                "region": config.get("awsRegion") or "us-east-1",
                "partition": config.get("awsPartition") or "aws",
                "environment": config.get("environment") or "prod",
                "assume_role_arn": config.get("assumeRoleArn"),
                "external_id": config.get("externalId"),
            },
            "network": network,
            "node_group": config.get_object("nodeGroup") or {},
            "apps": config.get_object("appIam") or [],
            "tags": config.get_object("tags") or {},
        }
    )
