"""
Count Resolver

Derives every scalar quantity of the topology (how many NAT gateways,
route tables, routes, and which tiers exist) from a NetworkSpec. Each
quantity is a small pure function so it can be checked on its own.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict

from .network_spec import NetworkFlags, NetworkSpec, SubnetTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CountSet:
    """Derived counts for one spec. Zero means the resource is not created."""

    create_vpc: bool
    public_subnets_enabled: bool
    subnet_counts: Dict[SubnetTier, int] = field(default_factory=dict)
    secondary_cidr_count: int = 0
    max_subnet_length: int = 0
    nat_gateway_count: int = 0
    nat_gateways: int = 0
    nat_eips: int = 0
    create_igw: bool = False
    create_egress_only_igw: bool = False
    public_route_table_count: int = 0
    private_route_table_count: int = 0
    create_db_subnet_group: bool = False
    create_db_route_table: bool = False
    db_route_table_count: int = 0
    public_internet_gateway_routes: int = 0
    public_internet_gateway_ipv6_routes: int = 0
    private_nat_gateway_routes: int = 0
    private_ipv6_egress_routes: int = 0
    database_internet_gateway_routes: int = 0
    database_ipv6_egress_routes: int = 0
    database_nat_gateway_routes: int = 0

    def subnets(self, tier: SubnetTier) -> int:
        return self.subnet_counts.get(tier, 0)


def public_subnets_enabled(spec: NetworkSpec) -> bool:
    """Whether the public tier is created at all.

    The tier is dropped entirely, without an error, when it has fewer
    subnets than there are availability zones.
    """
    public = spec.subnets(SubnetTier.PUBLIC)
    return spec.create_vpc and len(public) > 0 and len(public) >= len(spec.azs)


def max_subnet_length(spec: NetworkSpec) -> int:
    return max(len(spec.subnets(SubnetTier.PRIVATE)), len(spec.subnets(SubnetTier.DATABASE)))


def nat_gateway_count(spec: NetworkSpec) -> int:
    """NAT gateway count, shared by the EIPs and the private route tables."""
    if spec.flags.single_nat_gateway:
        return 1
    if spec.flags.one_nat_gateway_per_az:
        return len(spec.azs)
    return max_subnet_length(spec)


def database_route_table_count(create_db_route_table: bool, db_subnet_count: int, flags: NetworkFlags) -> int:
    if not (create_db_route_table and db_subnet_count > 0):
        return 0
    if flags.create_database_internet_gateway_route and flags.create_igw:
        if flags.single_nat_gateway or flags.create_database_nat_gateway_route:
            return 1
        return db_subnet_count
    return 1


def resolve_counts(spec: NetworkSpec) -> CountSet:
    """Compute the CountSet for ``spec``.

    Args:
        spec: A spec that has already passed validation

    Returns:
        The derived counts; everything is zero when the VPC is disabled
    """
    flags = spec.flags
    create_vpc = spec.create_vpc

    public_enabled = public_subnets_enabled(spec)
    subnet_counts = {
        SubnetTier.PUBLIC: len(spec.subnets(SubnetTier.PUBLIC)) if public_enabled else 0,
        SubnetTier.PRIVATE: len(spec.subnets(SubnetTier.PRIVATE)) if create_vpc else 0,
        SubnetTier.DATABASE: len(spec.subnets(SubnetTier.DATABASE)) if create_vpc else 0,
    }
    if create_vpc and spec.subnets(SubnetTier.PUBLIC) and not public_enabled:
        logger.info(
            "Public subnets disabled: %d subnet(s) for %d availability zone(s)",
            len(spec.subnets(SubnetTier.PUBLIC)),
            len(spec.azs),
        )

    max_length = max_subnet_length(spec) if create_vpc else 0
    nat_count = nat_gateway_count(spec) if create_vpc else 0
    nat_gateways = nat_count if create_vpc and flags.enable_nat_gateway else 0
    nat_eips = 0 if flags.reuse_nat_ips else nat_gateways

    create_igw = create_vpc and flags.create_igw and subnet_counts[SubnetTier.PUBLIC] > 0
    create_egress_only_igw = (
        create_vpc and flags.create_egress_only_igw and flags.enable_ipv6 and max_length > 0
    )

    public_route_tables = 1 if subnet_counts[SubnetTier.PUBLIC] > 0 else 0
    private_route_tables = nat_count if create_vpc and max_length > 0 else 0

    db_subnets = subnet_counts[SubnetTier.DATABASE]
    create_db_route_table = create_vpc and flags.create_database_subnet_route_table
    db_route_tables = database_route_table_count(create_db_route_table, db_subnets, flags)
    has_db_route_table = db_route_tables > 0

    db_nat_routes = 0
    if (
        has_db_route_table
        and nat_gateways > 0
        and flags.create_database_nat_gateway_route
        and not flags.create_database_internet_gateway_route
    ):
        db_nat_routes = db_route_tables

    counts = CountSet(
        create_vpc=create_vpc,
        public_subnets_enabled=public_enabled,
        subnet_counts=subnet_counts,
        secondary_cidr_count=len(spec.secondary_cidr_blocks) if create_vpc else 0,
        max_subnet_length=max_length,
        nat_gateway_count=nat_count,
        nat_gateways=nat_gateways,
        nat_eips=nat_eips,
        create_igw=create_igw,
        create_egress_only_igw=create_egress_only_igw,
        public_route_table_count=public_route_tables,
        private_route_table_count=private_route_tables,
        create_db_subnet_group=(
            create_vpc and flags.create_database_subnet_group and db_subnets > 0
        ),
        create_db_route_table=create_db_route_table,
        db_route_table_count=db_route_tables,
        public_internet_gateway_routes=1 if create_igw else 0,
        public_internet_gateway_ipv6_routes=1 if create_igw and flags.enable_ipv6 else 0,
        private_nat_gateway_routes=private_route_tables if nat_gateways > 0 else 0,
        private_ipv6_egress_routes=(
            private_route_tables
            if create_egress_only_igw and subnet_counts[SubnetTier.PRIVATE] > 0
            else 0
        ),
        database_internet_gateway_routes=(
            1
            if create_igw
            and has_db_route_table
            and flags.create_database_internet_gateway_route
            and not flags.create_database_nat_gateway_route
            else 0
        ),
        database_ipv6_egress_routes=(
            1
            if create_egress_only_igw
            and has_db_route_table
            and flags.create_database_internet_gateway_route
            else 0
        ),
        database_nat_gateway_routes=db_nat_routes,
    )
    logger.debug(
        "Resolved counts: nat_gateway_count=%d private_route_tables=%d db_route_tables=%d",
        counts.nat_gateway_count,
        counts.private_route_table_count,
        counts.db_route_table_count,
    )
    return counts
