"""VPC and networking infrastructure for the cluster."""

import ipaddress
from typing import Sequence

from eks_platform import kinds
from eks_platform.errors import InvalidConfigError
from eks_platform.graph import ResourceGraph
from eks_platform.models import NetworkTopology, SubnetRecord
from eks_platform.providers import ProviderHandle
from eks_platform.values import Ref


def subnet_cidrs(vpc_cidr: str, count: int, prefix: int = 20) -> list[str]:
    """The first ``count`` ``/prefix`` blocks of ``vpc_cidr``.

    With the defaults a ``10.0.0.0/16`` VPC yields ``10.0.0.0/20``,
    ``10.0.16.0/20``, ``10.0.32.0/20``, ...
    """
    network = ipaddress.ip_network(vpc_cidr)
    if prefix < network.prefixlen:
        raise InvalidConfigError(f"Subnet prefix /{prefix} is larger than VPC CIDR {vpc_cidr}")
    available = 2 ** (prefix - network.prefixlen)
    if count > available:
        raise InvalidConfigError(
            f"VPC CIDR {vpc_cidr} only fits {available} /{prefix} subnets, {count} requested"
        )

    blocks = network.subnets(new_prefix=prefix)
    return [str(next(blocks)) for _ in range(count)]


class Networking:
    """VPC with one public subnet per availability zone.

    Creates:
    - VPC with DNS support (required by EKS)
    - Internet gateway and a public route table with a default route
    - Public subnets tagged for EKS and for external/internal load balancers
    - Route table associations
    """

    def __init__(
        self,
        name: str,
        graph: ResourceGraph,
        vpc_cidr: str,
        availability_zones: Sequence[str],
        provider: ProviderHandle,
        cluster_name: str | None = None,
        subnet_prefix: int = 20,
    ):
        cluster_tag = {f"kubernetes.io/cluster/{cluster_name}": "owned"} if cluster_name else {}
        aws = provider.node_id

        self.vpc = graph.add_node(
            f"{name}-vpc",
            kinds.VPC,
            {
                "cidr_block": vpc_cidr,
                "enable_dns_support": True,
                "enable_dns_hostnames": True,
                "tags": {"Name": f"{name}-vpc", **cluster_tag},
            },
            provider=aws,
        )
        vpc_id = Ref(self.vpc.node_id, "id")

        self.internet_gateway = graph.add_node(
            f"{name}-igw",
            kinds.INTERNET_GATEWAY,
            {"vpc_id": vpc_id, "tags": {"Name": f"{name}-igw"}},
            provider=aws,
        )
        self.route_table = graph.add_node(
            f"{name}-public-rtb",
            kinds.ROUTE_TABLE,
            {"vpc_id": vpc_id, "tags": {"Name": f"{name}-public-rtb"}},
            provider=aws,
        )
        self.default_route = graph.add_node(
            f"{name}-public-route",
            kinds.ROUTE,
            {
                "route_table_id": Ref(self.route_table.node_id, "id"),
                "destination_cidr_block": "0.0.0.0/0",
                "gateway_id": Ref(self.internet_gateway.node_id, "id"),
            },
            provider=aws,
        )

        cidrs = subnet_cidrs(vpc_cidr, len(availability_zones), subnet_prefix)
        subnets = []
        for index, (zone, cidr) in enumerate(zip(availability_zones, cidrs), start=1):
            subnet = graph.add_node(
                f"{name}-public-subnet-{index}",
                kinds.SUBNET,
                {
                    "vpc_id": vpc_id,
                    "cidr_block": cidr,
                    "availability_zone": zone,
                    "map_public_ip_on_launch": True,
                    "tags": {
                        "Name": f"{name}-public-subnet-{index}",
                        "kubernetes.io/role/elb": "1",
                        "kubernetes.io/role/internal-elb": "1",
                        **cluster_tag,
                    },
                },
                provider=aws,
            )
            graph.add_node(
                f"{name}-public-rta-{index}",
                kinds.ROUTE_TABLE_ASSOCIATION,
                {
                    "subnet_id": Ref(subnet.node_id, "id"),
                    "route_table_id": Ref(self.route_table.node_id, "id"),
                },
                provider=aws,
            )
            subnets.append(SubnetRecord(subnet.node_id, Ref(subnet.node_id, "id"), cidr, zone))

        self.topology = NetworkTopology(
            vpc_node_id=self.vpc.node_id,
            vpc_id=vpc_id,
            cidr_block=vpc_cidr,
            subnets=tuple(subnets),
        )

        # Export outputs
        self.vpc_id = self.topology.vpc_id
        self.subnet_ids = self.topology.subnet_ids
