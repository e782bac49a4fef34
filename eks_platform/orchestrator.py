"""Assembles the full platform graph in dependency order.

The orchestrator owns the ``ProviderLifecycleManager`` and threads it into
every component, so the order below is the only place where cluster-scoped
providers become available.
"""

from dataclasses import dataclass

import pulumi

from eks_platform import kinds
from eks_platform.app_roles import AppRoleRegistry
from eks_platform.components.addons import EbsStorageClass, EksAddons
from eks_platform.components.bootstrap import ArgoCDInstall, ExternalSecretsInstall, IngressControllerInstall
from eks_platform.components.eks import EksCluster, FederationProvider
from eks_platform.components.iam import ClusterIamRoles, IdentityRoles, ebs_csi_driver_role
from eks_platform.components.networking import Networking
from eks_platform.config import PlatformConfig
from eks_platform.graph import ResourceGraph
from eks_platform.models import ClusterContext, NetworkTopology
from eks_platform.naming import build_graph_node_id
from eks_platform.providers import ProviderLifecycleManager
from eks_platform.settings import PlatformSettings, get_settings
from eks_platform.trust import RoleBinding, RoleDraft, find_unbound_roles
from eks_platform.values import Ref


@dataclass(frozen=True)
class PlatformStack:
    """Result of one build: the frozen graph plus what was derived on the way."""

    graph: ResourceGraph
    context: ClusterContext
    network: NetworkTopology
    drafts: tuple[RoleDraft, ...]
    bindings: tuple[RoleBinding, ...]
    role_arns: dict[str, Ref]
    providers: ProviderLifecycleManager


class Orchestrator:
    """Builds the platform graph for one cluster."""

    def __init__(self, config: PlatformConfig, settings: PlatformSettings | None = None):
        self.config = config
        self.settings = settings or get_settings()

    def default_tags(self) -> dict[str, str]:
        cluster = self.config.cluster
        return {
            "ManagedBy": "pulumi",
            "Environment": cluster.environment,
            "Cluster": cluster.name,
            **self.config.tags,
        }

    def build(self) -> PlatformStack:
        config = self.config
        settings = self.settings
        cluster = config.cluster
        name = cluster.name
        region = cluster.region

        graph = ResourceGraph(name)
        providers = ProviderLifecycleManager(
            graph,
            region,
            default_tags=self.default_tags(),
            assume_role_arn=cluster.assume_role_arn,
            external_id=cluster.external_id,
        )

        # 1. AWS provider
        aws = providers.get_aws_provider()

        # 2. Account id
        identity = graph.add_node(f"{name}-caller-identity", kinds.CALLER_IDENTITY, provider=aws.node_id)
        account_id = Ref(identity.node_id, "account_id")

        # Reject bad app configs before anything else is declared
        registry = AppRoleRegistry(name, region, account_id, cluster.partition)
        app_specs = registry.expand(config.apps)

        # 3. Network
        networking = Networking(
            name,
            graph,
            vpc_cidr=config.network.cidr_block,
            availability_zones=config.network.zone_names(region),
            provider=aws,
            cluster_name=name,
            subnet_prefix=config.network.subnet_prefix,
        )
        topology = networking.topology

        # 4. Control plane and node roles
        cluster_iam = ClusterIamRoles(name, graph, aws, cluster.partition)

        # 5. Identity roles, phase one (placeholder trust)
        identities = IdentityRoles(graph, registry, aws)
        ebs_draft = identities.draft(
            ebs_csi_driver_role(name, cluster.partition),
            build_graph_node_id([name, "ebs-csi-driver", "role"]),
        )
        app_drafts = [
            identities.draft(spec, build_graph_node_id(["app-iam", spec.namespace_selector, spec.app_name]))
            for spec in app_specs
        ]

        # 6. Cluster and node group
        eks = EksCluster(
            name,
            graph,
            cluster_name=name,
            kubernetes_version=cluster.version,
            cluster_role_arn=cluster_iam.cluster_role_arn,
            node_role_arn=cluster_iam.node_role_arn,
            subnet_ids=topology.subnet_ids,
            node_group=config.node_group,
            provider=aws,
            depends_on=[*topology.node_ids, *cluster_iam.node_ids],
            node_group_depends_on=cluster_iam.node_ids,
        )

        # 7. Federation provider
        federation = FederationProvider(name, graph, eks, aws)
        context = federation.context(eks, region, name, cluster.version, account_id)

        # 8. Identity roles, phase two (federated trust)
        bindings = identities.bind_all(context)
        ebs_binding = identities.binding_for(ebs_draft)

        # 9. Native add-ons
        addons = EksAddons(
            name,
            graph,
            cluster_name=eks.cluster_name,
            ebs_csi_role_arn=ebs_draft.arn,
            provider=aws,
            addon_version=settings.ebs_csi_addon_version,
            depends_on=[
                ebs_binding.node_id,
                eks.node_group.node_id,
                *identities.policy_node_ids[ebs_draft.node_id],
            ],
        )

        # 10. Cluster API access
        auth = graph.add_node(
            f"{name}-cluster-auth",
            kinds.CLUSTER_AUTH,
            {"name": eks.cluster_name},
            provider=aws.node_id,
        )
        providers.promote(
            eks.cluster_endpoint,
            eks.cluster_ca_data,
            Ref(auth.node_id, "token"),
            depends_on=[eks.cluster.node_id, eks.node_group.node_id, *addons.node_ids],
        )
        cluster_api = providers.get_cluster_api_provider()
        chart_deploy = providers.get_chart_deploy_provider()
        promoted = providers.promotion_node_ids

        # 11. Ingress controller
        ingress = IngressControllerInstall(
            name,
            graph,
            cluster_name=eks.cluster_name,
            vpc_id=networking.vpc_id,
            region=region,
            settings=settings,
            provider=chart_deploy,
            depends_on=promoted,
        )

        # 12. Secret sync
        external_secrets = ExternalSecretsInstall(
            name,
            graph,
            region=region,
            settings=settings,
            provider=chart_deploy,
            depends_on=[*promoted, ingress.release.node_id],
        )

        # 13. Per-app role ARNs
        role_arns: dict[str, Ref] = {}
        for draft in app_drafts:
            spec = draft.spec
            binding = identities.binding_for(draft)
            role_arns[spec.app_name] = draft.arn
            graph.add_output(
                build_graph_node_id([spec.namespace_selector, spec.app_name], "role-arn"),
                draft.arn,
                description=f"IAM role ARN for {spec.app_name} ({spec.namespace_selector})",
                depends_on=[context.federation_node_id, binding.node_id],
            )

        # 14. Shared storage class
        storage = EbsStorageClass(
            graph,
            cluster_api,
            name=settings.storage_class_name,
            depends_on=[*promoted, *addons.node_ids],
        )

        # 15. GitOps
        ArgoCDInstall(
            name,
            graph,
            settings=settings,
            provider=chart_deploy,
            storage_class=storage.name,
            depends_on=[
                *promoted,
                ingress.release.node_id,
                external_secrets.release.node_id,
                storage.storage_class.node_id,
            ],
        )

        # 16. Outputs
        graph.add_output("cluster_name", eks.cluster_name, description="EKS cluster name")
        graph.add_output("cluster_endpoint", eks.cluster_endpoint, description="EKS API server endpoint")
        graph.add_output(
            "cluster_ca_certificate",
            eks.cluster_ca_data,
            description="Base64 cluster certificate authority",
            sensitive=True,
        )
        graph.add_output(
            "kubeconfig_command",
            eks.cluster_name.apply(lambda cluster_name: f"aws eks update-kubeconfig --name {cluster_name} --region {region}"),
            description="Command to configure kubectl",
        )
        graph.add_output(
            "app_role_arns",
            dict(role_arns),
            description="IAM role ARN per application",
            depends_on=[binding.node_id for binding in bindings],
        )

        for node_id in find_unbound_roles(graph, identities.drafts):
            pulumi.log.warn(
                f"IAM role '{node_id}' still trusts the placeholder principal; "
                "its service account will not be able to assume it"
            )

        graph.freeze()
        pulumi.log.info(f"Assembled platform graph '{name}' with {len(graph)} nodes")

        return PlatformStack(
            graph=graph,
            context=context,
            network=topology,
            drafts=tuple(identities.drafts),
            bindings=tuple(bindings),
            role_arns=role_arns,
            providers=providers,
        )
