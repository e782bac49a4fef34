import pytest

from eks_platform.app_roles import AppRoleRegistry
from eks_platform.config import parse_platform_config
from eks_platform.graph import ResourceGraph
from eks_platform.models import ClusterContext
from eks_platform.providers import ProviderLifecycleManager
from eks_platform.settings import PlatformSettings


def fake_lookup(ref):
    """Stand-in for engine values: every ref resolves to a readable placeholder."""
    return f"<{ref.node_id}.{ref.attribute}>"


@pytest.fixture
def lookup():
    return fake_lookup


@pytest.fixture
def raw_config():
    return {
        "cluster": {"name": "demo", "region": "eu-west-1", "version": "1.31"},
        "network": {"cidrBlock": "10.0.0.0/16", "azCount": 2},
        "apps": [
            {
                "appName": "event-exporter",
                "namespaceSelector": "monitoring",
                "secretsAccess": ["home-assignments/layerx"],
            },
            {
                "appName": "spark-job",
                "namespaceSelector": "data-processing-*",
                "objectStoreAccess": ["data-lake-bucket"],
            },
        ],
    }


@pytest.fixture
def platform_config(raw_config):
    return parse_platform_config(raw_config)


@pytest.fixture
def settings():
    return PlatformSettings(_env_file=None)


@pytest.fixture
def graph():
    return ResourceGraph("test")


@pytest.fixture
def providers(graph):
    return ProviderLifecycleManager(graph, "us-east-1", default_tags={"ManagedBy": "pulumi"})


@pytest.fixture
def registry():
    return AppRoleRegistry("demo", "us-east-1", "123456789012")


@pytest.fixture
def context():
    return ClusterContext(
        region="us-east-1",
        cluster_name="demo",
        kubernetes_version="1.31",
        account_id="123456789012",
        federation_issuer_host="oidc.eks.us-east-1.amazonaws.com/id/ABC",
        federation_provider_arn="arn:aws:iam::123456789012:oidc-provider/oidc.eks.us-east-1.amazonaws.com/id/ABC",
    )
