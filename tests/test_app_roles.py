import pytest

from eks_platform.app_roles import AppRoleRegistry
from eks_platform.config import AppIamConfig
from eks_platform.errors import DuplicateRoleError, InvalidConfigError
from eks_platform.models import ManagedPolicy, ObjectStoreAccess, SecretAccess, TrustMode
from eks_platform.values import Deferred, Ref


def _config(**data):
    return AppIamConfig.model_validate(data)


def test_event_exporter_scenario(registry):
    [spec] = registry.expand(
        [_config(appName="event-exporter", namespaceSelector="monitoring", secretsAccess=["home-assignments/layerx"])]
    )

    assert spec.role_name == "demo-monitoring-event-exporter-role"
    assert spec.trust_mode is TrustMode.EXACT
    assert spec.subject_service_account == "event-exporter"

    [policy] = registry.policies_for(spec)
    assert policy.suffix == "secrets-access"
    assert policy.name == "demo-monitoring-event-exporter-secrets-access"
    statement = policy.document["Statement"][0]
    assert statement["Action"] == ["secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret"]
    assert statement["Resource"] == [
        "arn:aws:secretsmanager:us-east-1:123456789012:secret:home-assignments/layerx"
    ]


def test_data_processing_scenario(registry):
    [spec] = registry.expand(
        [_config(appName="spark", namespaceSelector="data-processing-*", objectStoreAccess=["data-lake-bucket"])]
    )

    assert spec.trust_mode is TrustMode.PATTERN
    assert spec.role_name == "demo-data-processing-wildcard-spark-role"
    [policy] = registry.policies_for(spec)
    assert policy.suffix == "s3-access"
    assert policy.document["Statement"][0]["Action"] == ["s3:GetObject", "s3:ListBucket"]
    assert policy.document["Statement"][0]["Resource"] == [
        "arn:aws:s3:::data-lake-bucket",
        "arn:aws:s3:::data-lake-bucket/*",
    ]


@pytest.mark.parametrize(
    "bucket",
    ["data-lake-bucket", "data-lake-bucket/*", "arn:aws:s3:::data-lake-bucket", "arn:aws:s3:::data-lake-bucket/*"],
)
def test_bucket_always_expands_to_two_arns(registry, bucket):
    assert registry.bucket_arns(bucket) == ["arn:aws:s3:::data-lake-bucket", "arn:aws:s3:::data-lake-bucket/*"]


def test_secret_patterns_are_embedded_unchanged(registry):
    assert registry.secret_arn("prod/*") == "arn:aws:secretsmanager:us-east-1:123456789012:secret:prod/*"
    arn = "arn:aws:secretsmanager:us-east-1:1:secret:x-AbCd"
    assert registry.secret_arn(arn) == arn


def test_queue_arns(registry):
    assert registry.queue_arn("jobs") == "arn:aws:sqs:us-east-1:123456789012:jobs"
    assert registry.queue_arn("arn:aws:sqs:eu-west-1:1:jobs") == "arn:aws:sqs:eu-west-1:1:jobs"


def test_partition_flows_into_arns():
    registry = AppRoleRegistry("demo", "cn-north-1", "1", partition="aws-cn")
    assert registry.bucket_arns("b")[0] == "arn:aws-cn:s3:::b"
    assert registry.queue_arn("q") == "arn:aws-cn:sqs:cn-north-1:1:q"


def test_late_bound_account_defers_arns():
    registry = AppRoleRegistry("demo", "us-east-1", Ref("identity", "account_id"))
    arn = registry.secret_arn("app/db")

    assert isinstance(arn, Deferred)
    assert arn.resolve(["42"]) == "arn:aws:secretsmanager:us-east-1:42:secret:app/db"


def test_policies_are_one_per_kind_in_fixed_order(registry):
    raw = {"Version": "2012-10-17", "Statement": [{"Effect": "Allow", "Action": "logs:*", "Resource": "*"}]}
    [spec] = registry.expand(
        [
            _config(
                appName="worker",
                namespace="jobs",
                customPolicies=[raw, raw],
                sqsAccess=["a", "b"],
                s3Access=["x", "y"],
                secretsAccess=["s1", "s2"],
                managedPolicyArns=["arn:aws:iam::aws:policy/ReadOnlyAccess"],
            )
        ]
    )

    policies = registry.policies_for(spec)
    assert [policy.suffix for policy in policies] == [
        "secrets-access",
        "s3-access",
        "sqs-access",
        "custom-policy-0",
        "custom-policy-1",
    ]
    assert len(policies[1].document["Statement"][0]["Resource"]) == 4
    assert policies[3].document == raw
    assert registry.managed_policy_arns(spec) == ["arn:aws:iam::aws:policy/ReadOnlyAccess"]
    assert spec.grants_of(ManagedPolicy) == [ManagedPolicy("arn:aws:iam::aws:policy/ReadOnlyAccess")]


def test_grants_keep_input_order(registry):
    [spec] = registry.expand([_config(appName="a", namespace="n", secretsAccess=["2", "1"], s3Access=["b"])])

    assert spec.grants_of(SecretAccess) == [SecretAccess("2"), SecretAccess("1")]
    assert spec.grants_of(ObjectStoreAccess) == [ObjectStoreAccess("b")]


def test_service_account_override(registry):
    [spec] = registry.expand([_config(appName="api", namespace="web", serviceAccount="api-sa")])
    assert spec.subject_service_account == "api-sa"


def test_app_without_grants_gets_no_policies(registry):
    [spec] = registry.expand([_config(appName="api", namespace="web")])
    assert registry.policies_for(spec) == []


def test_empty_app_name_rejected(registry):
    with pytest.raises(InvalidConfigError, match="empty appName"):
        registry.expand([_config(appName="", namespace="web")])


def test_empty_namespace_rejected(registry):
    with pytest.raises(InvalidConfigError) as excinfo:
        registry.expand([_config(appName="api", namespace=" ")])
    assert excinfo.value.app_name == "api"


def test_colliding_role_names_rejected(registry):
    with pytest.raises(DuplicateRoleError) as excinfo:
        registry.expand(
            [
                _config(appName="api", namespace="web"),
                _config(appName="other", namespace="x"),
                _config(appName="api", namespace="web", secretsAccess=["s"]),
            ]
        )

    assert excinfo.value.role_name == "demo-web-api-role"
    assert isinstance(excinfo.value, InvalidConfigError)
