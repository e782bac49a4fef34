"""Expansion of per-application IAM configs into identity roles and policies."""

import re
from dataclasses import dataclass
from typing import Any, Sequence

from eks_platform.config import AppIamConfig
from eks_platform.errors import DuplicateRoleError, InvalidConfigError
from eks_platform.models import (
    IdentityRoleSpec,
    LateBoundStr,
    ManagedPolicy,
    ObjectStoreAccess,
    QueueAccess,
    RawPolicy,
    ResourceGrant,
    SecretAccess,
)
from eks_platform.naming import build_runtime_name
from eks_platform.values import Deferred

POLICY_VERSION = "2012-10-17"

SECRETS_ACTIONS = ["secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret"]
OBJECT_STORE_ACTIONS = ["s3:GetObject", "s3:ListBucket"]
QUEUE_ACTIONS = [
    "sqs:ReceiveMessage",
    "sqs:DeleteMessage",
    "sqs:GetQueueAttributes",
    "sqs:GetQueueUrl",
]

_ARN_PREFIX = "arn:"
_BUCKET_ARN_PREFIX = re.compile(r"^arn:[^:]+:s3:::")


@dataclass(frozen=True)
class RolePolicy:
    """An inline policy attached to an identity role."""

    suffix: str
    name: LateBoundStr
    document: dict[str, Any]


class AppRoleRegistry:
    """Turns ``AppIamConfig`` records into ``IdentityRoleSpec``s and their policies."""

    def __init__(
        self,
        cluster_name: str,
        region: str,
        account_id: LateBoundStr,
        partition: str = "aws",
    ):
        self.cluster_name = cluster_name
        self.region = region
        self.account_id = account_id
        self.partition = partition

    def role_name(self, namespace_selector: str, app_name: str) -> str:
        return build_runtime_name([self.cluster_name, namespace_selector, app_name, "role"])

    def expand(self, configs: Sequence[AppIamConfig]) -> list[IdentityRoleSpec]:
        """One spec per config, in order; rejects incomplete or colliding configs."""
        specs: list[IdentityRoleSpec] = []
        owners: dict[str, str] = {}
        for index, config in enumerate(configs):
            spec = self.expand_one(config, index)
            if spec.role_name in owners:
                raise DuplicateRoleError(spec.role_name, owners[spec.role_name], spec.app_name)
            owners[spec.role_name] = spec.app_name
            specs.append(spec)
        return specs

    def expand_one(self, config: AppIamConfig, index: int = 0) -> IdentityRoleSpec:
        app_name = (config.app_name or "").strip()
        namespace = (config.namespace_selector or "").strip()
        if not app_name:
            raise InvalidConfigError(
                f"App IAM config #{index} (namespace '{namespace}') has an empty appName"
            )
        if not namespace:
            raise InvalidConfigError(
                f"App IAM config '{app_name}' has an empty namespace selector", app_name=app_name
            )

        grants: list[ResourceGrant] = []
        grants.extend(SecretAccess(pattern) for pattern in config.secrets_access)
        grants.extend(ObjectStoreAccess(bucket) for bucket in config.object_store_access)
        grants.extend(QueueAccess(queue) for queue in config.queue_access)
        grants.extend(RawPolicy(document) for document in config.raw_policies)
        grants.extend(ManagedPolicy(arn) for arn in config.managed_policy_arns)

        return IdentityRoleSpec(
            role_name=self.role_name(namespace, app_name),
            app_name=app_name,
            namespace_selector=namespace,
            service_account_name=config.service_account_name or app_name,
            resource_grants=tuple(grants),
            tags=dict(config.tags),
            description=f"IAM role for {app_name} in the {namespace} namespace",
        )

    # ARN synthesis

    def secret_arn(self, pattern: str) -> LateBoundStr:
        """Pass ARNs through; otherwise embed the pattern as-is (no wildcard added)."""
        if pattern.startswith(_ARN_PREFIX):
            return pattern
        return self._regional_arn("secretsmanager", f"secret:{pattern}")

    def bucket_arns(self, bucket: str) -> list[str]:
        """The bucket and all of its objects, whatever form the input takes."""
        name = _BUCKET_ARN_PREFIX.sub("", bucket)
        if name.endswith("/*"):
            name = name[:-2]
        name = name.rstrip("/")
        return [
            f"arn:{self.partition}:s3:::{name}",
            f"arn:{self.partition}:s3:::{name}/*",
        ]

    def queue_arn(self, name: str) -> LateBoundStr:
        if name.startswith(_ARN_PREFIX):
            return name
        return self._regional_arn("sqs", name)

    def _regional_arn(self, service: str, resource: str) -> LateBoundStr:
        prefix = f"arn:{self.partition}:{service}:{self.region}:"
        if isinstance(self.account_id, Deferred):
            return self.account_id.apply(lambda account: f"{prefix}{account}:{resource}")
        return f"{prefix}{self.account_id}:{resource}"

    # Policies

    def policy_name(self, spec: IdentityRoleSpec, suffix: str) -> LateBoundStr:
        return build_runtime_name([self.cluster_name, spec.namespace_selector, spec.app_name, suffix])

    def policies_for(self, spec: IdentityRoleSpec) -> list[RolePolicy]:
        """One inline policy per grant kind, then one per raw document."""
        policies: list[RolePolicy] = []

        secrets = spec.grants_of(SecretAccess)
        if secrets:
            resources = [self.secret_arn(grant.pattern) for grant in secrets]
            policies.append(self._policy(spec, "secrets-access", SECRETS_ACTIONS, resources))

        buckets = spec.grants_of(ObjectStoreAccess)
        if buckets:
            resources = [arn for grant in buckets for arn in self.bucket_arns(grant.bucket)]
            policies.append(self._policy(spec, "s3-access", OBJECT_STORE_ACTIONS, resources))

        queues = spec.grants_of(QueueAccess)
        if queues:
            resources = [self.queue_arn(grant.name) for grant in queues]
            policies.append(self._policy(spec, "sqs-access", QUEUE_ACTIONS, resources))

        for index, grant in enumerate(spec.grants_of(RawPolicy)):
            suffix = f"custom-policy-{index}"
            policies.append(RolePolicy(suffix, self.policy_name(spec, suffix), dict(grant.document)))

        return policies

    def managed_policy_arns(self, spec: IdentityRoleSpec) -> list[str]:
        return [grant.policy_arn for grant in spec.grants_of(ManagedPolicy)]

    def _policy(self, spec: IdentityRoleSpec, suffix: str, actions: list[str], resources: list) -> RolePolicy:
        document = {
            "Version": POLICY_VERSION,
            "Statement": [
                {
                    "Effect": "Allow",
                    "Action": list(actions),
                    "Resource": resources,
                }
            ],
        }
        return RolePolicy(suffix, self.policy_name(spec, suffix), document)
