"""Cluster-scoped platform services installed with Helm.

Installs, in order:
- AWS Load Balancer Controller (ingress)
- External Secrets Operator (secret sync from AWS Secrets Manager)
- Argo CD (GitOps)

Every release takes the chart-deploy provider, which only exists after the
provider lifecycle has been promoted, and waits for the promotion nodes.
"""

from typing import Any, Iterable

from eks_platform import kinds
from eks_platform.graph import ReleasePolicy, ResourceGraph
from eks_platform.providers import ProviderHandle
from eks_platform.settings import PlatformSettings


def _declare_release(
    graph: ResourceGraph,
    node_id: str,
    release_name: str,
    chart: str,
    repo: str,
    version: str,
    namespace: str,
    values: dict[str, Any],
    provider: ProviderHandle,
    policy: ReleasePolicy,
    depends_on: Iterable[str],
    create_namespace: bool = False,
):
    return graph.add_node(
        node_id,
        kinds.HELM_RELEASE,
        {
            "name": release_name,
            "chart": chart,
            "version": version,
            "namespace": namespace,
            "create_namespace": create_namespace,
            "repository_opts": {"repo": repo},
            "values": values,
        },
        provider=provider.node_id,
        policy=policy,
        depends_on=depends_on,
    )


class IngressControllerInstall:
    """Install the AWS Load Balancer Controller into kube-system."""

    def __init__(
        self,
        name: str,
        graph: ResourceGraph,
        cluster_name,
        vpc_id,
        region: str,
        settings: PlatformSettings,
        provider: ProviderHandle,
        service_account_role_arn=None,
        depends_on: Iterable[str] = (),
    ):
        values = {
            "clusterName": cluster_name,
            "region": region,
            "vpcId": vpc_id,
            "installCRDs": True,
            "ingressClass": settings.ingress_class,
            "serviceAccount": {
                "create": True,
                "name": "aws-load-balancer-controller",
                "annotations": (
                    {"eks.amazonaws.com/role-arn": service_account_role_arn}
                    if service_account_role_arn is not None
                    else {}
                ),
            },
            "enableShield": False,
            "enableWaf": False,
            "enableWafv2": False,
            "resources": {
                "requests": {"cpu": "50m", "memory": "64Mi"},
                "limits": {"cpu": "200m", "memory": "256Mi"},
            },
            "podDisruptionBudget": {"maxUnavailable": 1},
            "webhookNamespaceSelectors": [],
        }

        self.namespace = "kube-system"
        self.release = _declare_release(
            graph,
            f"{name}-aws-load-balancer-controller",
            release_name="aws-load-balancer-controller",
            chart="aws-load-balancer-controller",
            repo="https://aws.github.io/eks-charts",
            version=settings.ingress_chart_version,
            namespace=self.namespace,
            values=values,
            provider=provider,
            policy=ReleasePolicy(
                timeout=settings.helm_timeout,
                replace=True,
                recreate_pods=True,
            ),
            depends_on=depends_on,
        )


class ExternalSecretsInstall:
    """Install External Secrets Operator for secrets management."""

    def __init__(
        self,
        name: str,
        graph: ResourceGraph,
        region: str,
        settings: PlatformSettings,
        provider: ProviderHandle,
        depends_on: Iterable[str] = (),
    ):
        small = {
            "requests": {"cpu": "50m", "memory": "64Mi"},
            "limits": {"cpu": "100m", "memory": "128Mi"},
        }
        values = {
            "installCRDs": True,
            "serviceAccount": {"create": True, "name": "external-secrets"},
            "resources": small,
            "aws": {"region": region, "service": "SecretsManager"},
            "webhook": {"resources": small},
            "certController": {"resources": small},
        }

        self.namespace = settings.external_secrets_namespace
        self.release = _declare_release(
            graph,
            f"{name}-external-secrets",
            release_name="external-secrets",
            chart="external-secrets",
            repo="https://charts.external-secrets.io",
            version=settings.external_secrets_chart_version,
            namespace=self.namespace,
            values=values,
            provider=provider,
            policy=ReleasePolicy(timeout=settings.helm_timeout),
            depends_on=depends_on,
            create_namespace=self.namespace != "kube-system",
        )


class ArgoCDInstall:
    """Install Argo CD for GitOps."""

    def __init__(
        self,
        name: str,
        graph: ResourceGraph,
        settings: PlatformSettings,
        provider: ProviderHandle,
        storage_class: str | None = None,
        depends_on: Iterable[str] = (),
    ):
        server: dict[str, Any] = {"service": {"type": settings.argocd_service_type}}
        if settings.argocd_insecure:
            server["extraArgs"] = ["--insecure"]

        values: dict[str, Any] = {
            "ha": {"enabled": settings.argocd_ha_enabled},
            "server": server,
        }
        if storage_class:
            values["redis"] = {"persistence": {"storageClass": storage_class}}

        # Add repository configuration if provided
        if settings.argocd_repo_url:
            values["configs"] = {
                "repositories": {
                    "app-repo": {
                        "url": settings.argocd_repo_url,
                        "type": "git",
                    },
                },
            }

        self.namespace = settings.argocd_namespace
        self.release = _declare_release(
            graph,
            f"{name}-argocd",
            release_name="argocd",
            chart="argo-cd",
            repo="https://argoproj.github.io/argo-helm",
            version=settings.argocd_chart_version,
            namespace=self.namespace,
            values=values,
            provider=provider,
            policy=ReleasePolicy(timeout=settings.helm_timeout),
            depends_on=depends_on,
            create_namespace=True,
        )
