import json

import pulumi
import pytest

from eks_platform import kinds
from eks_platform.engine import ClusterPlatform
from eks_platform.errors import GraphError
from eks_platform.graph import ResourceGraph
from eks_platform.orchestrator import Orchestrator
from eks_platform.values import Ref

ACCOUNT_ID = "123456789012"
ISSUER = "https://oidc.eks.example/id/ABC"
ISSUER_HOST = "oidc.eks.example/id/ABC"
OIDC_PROVIDER_ARN = f"arn:aws:iam::{ACCOUNT_ID}:oidc-provider/{ISSUER_HOST}"
APP_NODE = "app-iam-monitoring-event-exporter"


class PlatformMocks(pulumi.runtime.Mocks):
    """Echo inputs back as outputs, plus the attributes AWS would compute."""

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        outputs = dict(args.inputs)
        if args.typ.startswith("aws:"):
            outputs["arn"] = f"arn:aws:mock::{ACCOUNT_ID}:{args.name}"
        if args.typ == kinds.EKS_CLUSTER:
            outputs["endpoint"] = "https://ABC.gr7.eu-west-1.eks.amazonaws.com"
            outputs["certificateAuthority"] = {"data": "Q0E="}
            outputs["identities"] = [{"oidcs": [{"issuer": ISSUER}]}]
        if args.typ == kinds.OIDC_PROVIDER:
            outputs["arn"] = OIDC_PROVIDER_ARN
        return [f"{args.name}-id", outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        if args.token == kinds.CALLER_IDENTITY:
            return {
                "accountId": ACCOUNT_ID,
                "arn": f"arn:aws:iam::{ACCOUNT_ID}:user/deployer",
                "id": ACCOUNT_ID,
                "userId": "AIDAEXAMPLE",
            }
        if args.token == kinds.CLUSTER_AUTH:
            return {"id": args.args["name"], "name": args.args["name"], "token": "k8s-aws-v1.token"}
        if args.token == kinds.TLS_CERTIFICATE:
            return {"id": args.args["url"], "url": args.args["url"], "certificates": [{"sha1Fingerprint": "abc"}]}
        return {}


@pytest.fixture(autouse=True)
def pulumi_mocks():
    pulumi.runtime.set_mocks(PlatformMocks(), project="eks-platform", stack="test", preview=False)


@pytest.fixture
def stack(platform_config, settings):
    return Orchestrator(platform_config, settings).build()


@pulumi.runtime.test
def test_roles_are_created_with_federated_trust(stack):
    platform = ClusterPlatform("demo", stack.graph)
    role = platform.resource(APP_NODE)

    # the binding renders as the role itself
    assert platform.resource(f"{APP_NODE}-trust-binding") is role

    def check(policy):
        [statement] = json.loads(policy)["Statement"]
        assert statement["Principal"] == {"Federated": OIDC_PROVIDER_ARN}
        assert statement["Action"] == "sts:AssumeRoleWithWebIdentity"
        assert statement["Condition"] == {
            "StringEquals": {f"{ISSUER_HOST}:sub": "system:serviceaccount:monitoring:event-exporter"}
        }

    return role.assume_role_policy.apply(check)


@pulumi.runtime.test
def test_oidc_provider_uses_issuer_thumbprint(stack):
    platform = ClusterPlatform("demo", stack.graph)
    oidc = platform.resource("demo-oidc-provider")

    def check(values):
        url, thumbprints = values
        assert url == ISSUER
        assert thumbprints == ["abc"]

    return pulumi.Output.all(oidc.url, oidc.thumbprint_lists).apply(check)


@pulumi.runtime.test
def test_app_policy_embeds_caller_account(stack):
    platform = ClusterPlatform("demo", stack.graph)
    policy = platform.resource(f"{APP_NODE}-secrets-access")

    def check(document):
        [statement] = json.loads(document)["Statement"]
        assert statement["Resource"] == [
            f"arn:aws:secretsmanager:eu-west-1:{ACCOUNT_ID}:secret:home-assignments/layerx"
        ]

    return policy.policy.apply(check)


@pulumi.runtime.test
def test_helm_release_carries_release_policy(stack, settings):
    platform = ClusterPlatform("demo", stack.graph)
    release = platform.resource("demo-aws-load-balancer-controller")

    def check(values):
        timeout, atomic, replace, skip_await = values
        assert timeout == settings.helm_timeout
        assert atomic is True
        assert replace is True
        assert skip_await is False

    return pulumi.Output.all(release.timeout, release.atomic, release.replace, release.skip_await).apply(check)


@pulumi.runtime.test
def test_outputs(stack):
    platform = ClusterPlatform("demo", stack.graph)

    def check(values):
        name, command, role_arns = values
        assert name == "demo"
        assert command == "aws eks update-kubeconfig --name demo --region eu-west-1"
        assert role_arns == {
            "event-exporter": f"arn:aws:mock::{ACCOUNT_ID}:{APP_NODE}",
            "spark-job": f"arn:aws:mock::{ACCOUNT_ID}:app-iam-data-processing-wildcard-spark-job",
        }

    return pulumi.Output.all(
        platform.outputs["cluster_name"],
        platform.outputs["kubeconfig_command"],
        platform.outputs["app_role_arns"],
    ).apply(check)


@pulumi.runtime.test
def test_ca_certificate_output_is_secret(stack):
    platform = ClusterPlatform("demo", stack.graph)

    async def check():
        assert await platform.outputs["cluster_ca_certificate"].is_secret()
        assert not await platform.outputs["cluster_endpoint"].is_secret()
        assert await platform.outputs["cluster_ca_certificate"].future() == "Q0E="

    return check()


@pulumi.runtime.test
def test_late_bound_dict_keys_are_resolved():
    graph = ResourceGraph("keys")
    graph.add_node("aws", kinds.AWS_PROVIDER, {"region": "eu-west-1"})
    graph.add_node("vpc", kinds.VPC, {"cidr_block": "10.0.0.0/16"}, provider="aws")
    owner = Ref("vpc", "id").apply(lambda vpc_id: f"owner/{vpc_id}")
    graph.add_node(
        "subnet",
        kinds.SUBNET,
        {"vpc_id": Ref("vpc", "id"), "cidr_block": "10.0.0.0/20", "tags": {owner: "yes", "Name": "subnet"}},
        provider="aws",
    )
    graph.freeze()

    platform = ClusterPlatform("keys", graph)

    def check(tags):
        assert tags == {"owner/vpc-id": "yes", "Name": "subnet"}

    return platform.resource("subnet").tags.apply(check)


@pulumi.runtime.test
def test_unfrozen_graph_is_rejected():
    graph = ResourceGraph("draft")
    graph.add_node("aws", kinds.AWS_PROVIDER, {"region": "eu-west-1"})

    with pytest.raises(GraphError, match="frozen"):
        ClusterPlatform("draft", graph)


@pulumi.runtime.test
def test_unknown_kind_is_rejected():
    graph = ResourceGraph("odd")
    graph.add_node("queue", "aws:sqs/queue:Queue")
    graph.freeze()

    with pytest.raises(GraphError, match="aws:sqs/queue:Queue"):
        ClusterPlatform("odd", graph)
