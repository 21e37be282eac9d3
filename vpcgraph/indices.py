"""
Index Mapper

Decides, for every subnet, NAT gateway, route table and route, which
availability zone and which peer instance it points at. Every lookup is
bounds-checked: a rule that would read past the end of a list is reported
as an IndexOutOfRange issue instead of wrapping around.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .counts import CountSet
from .errors import ResolutionError, TopologyIssue, index_issue, topology_issue
from .graph import RoutePurpose
from .nat_ips import NatIpSource, nat_ip_source
from .network_spec import NetworkSpec, SubnetTier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubnetPlan:
    tier: SubnetTier
    index: int
    az: str
    route_table_tier: SubnetTier
    route_table_index: int
    nat_gateway_index: Optional[int] = None  # private subnets only, when NAT is enabled


@dataclass(frozen=True)
class NatGatewayPlan:
    index: int
    az: str
    allocation_index: int
    public_subnet_index: int


@dataclass(frozen=True)
class EipPlan:
    index: int
    az: str


@dataclass(frozen=True)
class RouteTablePlan:
    tier: SubnetTier
    index: int
    az: Optional[str] = None  # None when one table serves every AZ


@dataclass(frozen=True)
class RoutePlan:
    purpose: RoutePurpose
    index: int
    route_table_tier: SubnetTier
    route_table_index: int
    target_index: int


@dataclass
class IndexPlan:
    """Every cross-reference index of the topology."""

    subnets: Dict[SubnetTier, List[SubnetPlan]] = field(default_factory=dict)
    route_tables: Dict[SubnetTier, List[RouteTablePlan]] = field(default_factory=dict)
    nat_eips: List[EipPlan] = field(default_factory=list)
    nat_gateways: List[NatGatewayPlan] = field(default_factory=list)
    routes: List[RoutePlan] = field(default_factory=list)


class IndexMapper:
    """Builds the IndexPlan for one spec and its resolved counts."""

    def __init__(self, counts: CountSet, spec: NetworkSpec, nat_ips: Optional[NatIpSource] = None):
        self.counts = counts
        self.spec = spec
        self.nat_ips = nat_ips or nat_ip_source(spec)
        self._issues: List[TopologyIssue] = []

    @property
    def _single(self) -> bool:
        return self.spec.flags.single_nat_gateway

    def _shared_index(self, index: int) -> int:
        """Single NAT gateway mode collapses every per-AZ index to 0."""
        return 0 if self._single else index

    def _lookup(self, field_name: str, index: int, size: int, what: str) -> Optional[int]:
        if 0 <= index < size:
            return index
        self._issues.append(
            index_issue(field_name, f"needs {what} {index} but only {size} exist")
        )
        return None

    def _az(self, field_name: str, index: int) -> Optional[str]:
        azs: Sequence[str] = self.spec.azs
        found = self._lookup(field_name, index, len(azs), "availability zone")
        return None if found is None else azs[found]

    def _route_table_count(self, tier: SubnetTier) -> int:
        counts = self.counts
        return {
            SubnetTier.PUBLIC: counts.public_route_table_count,
            SubnetTier.PRIVATE: counts.private_route_table_count,
            SubnetTier.DATABASE: counts.db_route_table_count,
        }[tier]

    def map(self) -> IndexPlan:
        """Resolve all indices.

        Returns:
            The complete IndexPlan

        Raises:
            ResolutionError: Listing every out-of-range reference found
        """
        self._issues = []
        plan = IndexPlan()

        for tier in SubnetTier:
            plan.route_tables[tier] = self._map_route_tables(tier)
            plan.subnets[tier] = self._map_subnets(tier)
        plan.nat_eips = self._map_eips()
        plan.nat_gateways = self._map_nat_gateways()
        plan.routes = self._map_routes()

        if self._issues:
            raise ResolutionError(self._issues)

        logger.debug(
            "Mapped indices: %d subnet(s), %d NAT gateway(s), %d route(s)",
            sum(len(subnets) for subnets in plan.subnets.values()),
            len(plan.nat_gateways),
            len(plan.routes),
        )
        return plan

    def _map_subnets(self, tier: SubnetTier) -> List[SubnetPlan]:
        plans = []
        for i in range(self.counts.subnets(tier)):
            field_name = f"{tier.value}_subnets[{i}]"
            az = self._az(field_name, i)
            table_tier, table_index = self._route_table_for(tier, i)
            table = self._lookup(
                field_name,
                table_index,
                self._route_table_count(table_tier),
                f"{table_tier.value} route table",
            )

            nat_index = None
            if tier == SubnetTier.PRIVATE and self.counts.nat_gateways > 0:
                nat_index = self._lookup(
                    field_name, self._shared_index(i), self.counts.nat_gateways, "NAT gateway"
                )

            if az is None or table is None:
                continue
            plans.append(SubnetPlan(tier, i, az, table_tier, table, nat_index))
        return plans

    def _route_table_for(self, tier: SubnetTier, index: int):
        """Route table tier and index a subnet is associated with."""
        if tier == SubnetTier.PUBLIC:
            return SubnetTier.PUBLIC, 0
        if tier == SubnetTier.PRIVATE:
            return SubnetTier.PRIVATE, self._shared_index(index)
        return self.database_route_table_for(index)

    def database_route_table_for(self, index: int):
        """Route table for database subnet ``index``.

        The dedicated database tables are used when they exist, the private
        tables otherwise. The index rule is the same either way: 0 when a
        single NAT gateway or the database NAT route is in use, the subnet's
        own position otherwise. A lone table serves every subnet.
        """
        flags = self.spec.flags
        if self.counts.db_route_table_count > 0:
            table_tier = SubnetTier.DATABASE
        else:
            table_tier = SubnetTier.PRIVATE

        if flags.single_nat_gateway or flags.create_database_nat_gateway_route:
            table_index = 0
        else:
            table_index = index
        if self._route_table_count(table_tier) == 1:
            table_index = 0
        return table_tier, table_index

    def _map_route_tables(self, tier: SubnetTier) -> List[RouteTablePlan]:
        count = self._route_table_count(tier)
        plans = []
        for i in range(count):
            az = None
            if tier == SubnetTier.PRIVATE and not self._single:
                az = self._az(f"aws_route_table.private[{i}]", i)
            elif tier == SubnetTier.DATABASE and count > 1:
                az = self._az(f"aws_route_table.database[{i}]", i)
            plans.append(RouteTablePlan(tier, i, az))
        return plans

    def _map_eips(self) -> List[EipPlan]:
        plans = []
        for i in range(self.nat_ips.eip_count(self.counts.nat_gateways)):
            az = self._az(f"aws_eip.nat[{i}]", self._shared_index(i))
            if az is not None:
                plans.append(EipPlan(i, az))
        return plans

    def _map_nat_gateways(self) -> List[NatGatewayPlan]:
        nat_gateways = self.counts.nat_gateways
        if nat_gateways == 0:
            return []

        public_count = self.counts.subnets(SubnetTier.PUBLIC)
        if public_count == 0:
            self._issues.append(
                topology_issue(
                    "enable_nat_gateway",
                    f"{nat_gateways} NAT gateway(s) need public subnets but the public tier is empty",
                )
            )
            return []

        available_ips = self.nat_ips.available()
        plans = []
        for i in range(nat_gateways):
            field_name = f"aws_nat_gateway.this[{i}]"
            shared = self._shared_index(i)
            az = self._az(field_name, shared)
            subnet = self._lookup(field_name, shared, public_count, "public subnet")
            if available_ips is None:
                allocation = shared
            else:
                allocation = self._lookup(field_name, shared, available_ips, "external NAT IP")
            if az is None or subnet is None or allocation is None:
                continue
            plans.append(NatGatewayPlan(i, az, allocation, subnet))
        return plans

    def _map_routes(self) -> List[RoutePlan]:
        counts = self.counts
        plans = []

        for i in range(counts.public_internet_gateway_routes):
            plans.append(RoutePlan(RoutePurpose.PUBLIC_INTERNET_GATEWAY, i, SubnetTier.PUBLIC, 0, 0))
        for i in range(counts.public_internet_gateway_ipv6_routes):
            plans.append(RoutePlan(RoutePurpose.PUBLIC_INTERNET_GATEWAY_IPV6, i, SubnetTier.PUBLIC, 0, 0))

        for i in range(counts.private_nat_gateway_routes):
            nat = self._lookup(
                f"aws_route.private_nat_gateway[{i}]",
                self._shared_index(i),
                counts.nat_gateways,
                "NAT gateway",
            )
            if nat is not None:
                plans.append(RoutePlan(RoutePurpose.PRIVATE_NAT_GATEWAY, i, SubnetTier.PRIVATE, i, nat))
        for i in range(counts.private_ipv6_egress_routes):
            plans.append(RoutePlan(RoutePurpose.PRIVATE_IPV6_EGRESS, i, SubnetTier.PRIVATE, i, 0))

        for i in range(counts.database_internet_gateway_routes):
            plans.append(RoutePlan(RoutePurpose.DATABASE_INTERNET_GATEWAY, i, SubnetTier.DATABASE, 0, 0))
        for i in range(counts.database_ipv6_egress_routes):
            plans.append(RoutePlan(RoutePurpose.DATABASE_IPV6_EGRESS, i, SubnetTier.DATABASE, 0, 0))
        for i in range(counts.database_nat_gateway_routes):
            nat = self._lookup(
                f"aws_route.database_nat_gateway[{i}]",
                self._shared_index(i),
                counts.nat_gateways,
                "NAT gateway",
            )
            if nat is not None:
                plans.append(RoutePlan(RoutePurpose.DATABASE_NAT_GATEWAY, i, SubnetTier.DATABASE, i, nat))
        return plans


def map_indices(counts: CountSet, spec: NetworkSpec) -> IndexPlan:
    return IndexMapper(counts, spec).map()
