import json

import pulumi
import pytest

from eks_platform import kinds
from eks_platform.errors import NotInitializedError
from eks_platform.graph import ResourceGraph
from eks_platform.providers import LifecycleState, ProviderLifecycleManager, build_token_kubeconfig
from eks_platform.values import Deferred, Ref


def test_starts_uninitialized(providers):
    assert providers.state is LifecycleState.UNINITIALIZED
    assert not providers.is_cluster_api_ready


def test_aws_provider_is_declared_once(graph, providers):
    first = providers.get_aws_provider()
    second = providers.get_aws_provider()

    assert first is second
    assert providers.state is LifecycleState.AWS_READY
    assert len(graph.nodes_of_kind(kinds.AWS_PROVIDER)) == 1
    assert graph.node(first.node_id).properties == {
        "region": "us-east-1",
        "default_tags": {"tags": {"ManagedBy": "pulumi"}},
    }


def test_assume_role_is_configured():
    graph = ResourceGraph("x")
    providers = ProviderLifecycleManager(
        graph, "us-west-2", assume_role_arn="arn:aws:iam::1:role/deployer", external_id="ext"
    )
    handle = providers.get_aws_provider()

    [assume_role] = graph.node(handle.node_id).properties["assume_roles"]
    assert assume_role["role_arn"] == "arn:aws:iam::1:role/deployer"
    assert assume_role["external_id"] == "ext"


def test_cluster_handles_unavailable_before_promotion(providers):
    providers.get_aws_provider()

    with pytest.raises(NotInitializedError):
        providers.get_cluster_api_provider()
    with pytest.raises(NotInitializedError):
        providers.get_chart_deploy_provider()
    with pytest.raises(NotInitializedError):
        providers.promotion_node_ids


def test_promote_requires_aws_provider(providers):
    with pytest.raises(NotInitializedError):
        providers.promote("https://endpoint", "ca", "token")
    assert providers.state is LifecycleState.UNINITIALIZED


def test_promote_makes_stable_handles(graph, providers):
    providers.get_aws_provider()
    graph.add_node("cluster", kinds.EKS_CLUSTER)
    providers.promote(Ref("cluster", "endpoint"), Ref("cluster", "ca"), "token", depends_on=["cluster"])

    assert providers.is_cluster_api_ready
    cluster_api = providers.get_cluster_api_provider()
    chart_deploy = providers.get_chart_deploy_provider()
    assert providers.get_cluster_api_provider() is cluster_api
    assert providers.get_chart_deploy_provider() is chart_deploy
    assert cluster_api.node_id != chart_deploy.node_id
    for node_id in providers.promotion_node_ids:
        assert graph.depends_on(node_id, "cluster")


def test_second_promote_warns_and_does_nothing(graph, providers, monkeypatch):
    warnings = []
    monkeypatch.setattr(pulumi.log, "warn", lambda message, *args, **kwargs: warnings.append(message))
    providers.get_aws_provider()
    providers.promote("https://endpoint", "ca", "token")
    node_count = len(graph)

    providers.promote("https://other", "ca", "token")

    assert len(graph) == node_count
    assert warnings == ["Kubernetes providers already initialized. Skipping."]


def test_token_kubeconfig():
    kubeconfig = json.loads(build_token_kubeconfig("https://endpoint", "Q0E=", "secret"))

    assert kubeconfig["clusters"][0]["cluster"] == {
        "server": "https://endpoint",
        "certificate-authority-data": "Q0E=",
    }
    assert kubeconfig["users"][0]["user"] == {"token": "secret"}


def test_token_kubeconfig_defers_on_refs():
    kubeconfig = build_token_kubeconfig(Ref("c", "endpoint"), Ref("c", "ca"), Ref("auth", "token"))

    assert isinstance(kubeconfig, Deferred)
    resolved = json.loads(kubeconfig.resolve(["https://e", "ca", "t"]))
    assert resolved["users"][0]["user"]["token"] == "t"
