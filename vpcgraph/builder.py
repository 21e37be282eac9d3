"""
Resource Graph Builder

Runs validation, count resolution, tag resolution and index mapping in
order, then emits one ResourceNode per resolved instance together with its
dependency edges.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .counts import CountSet, resolve_counts
from .errors import ResolutionError, TopologyIssue
from .graph import (
    CidrSubnet,
    Reference,
    ResourceGraph,
    ResourceKind,
    ResourceNode,
    RoutePurpose,
    make_address,
)
from .indices import IndexMapper, IndexPlan, RoutePlan, SubnetPlan
from .nat_ips import NatIpSource, nat_ip_source
from .network_spec import (
    ROUTE_TABLE_TAG_KINDS,
    SUBNET_TAG_KINDS,
    NetworkSpec,
    SubnetTier,
    TagKind,
)
from .tags import TagResolver
from .validator import validate

logger = logging.getLogger(__name__)

# AZ names look like "us-east-1a"; anything else is treated as an AZ id ("use1-az1")
AZ_NAME_PATTERN = re.compile(r"^[a-z]{2}-")

IPV4_ANYWHERE = "0.0.0.0/0"
IPV6_ANYWHERE = "::/0"
ROUTE_TIMEOUTS = {"create": "5m"}


@dataclass
class BuildResult:
    """Either a complete graph or the full list of problems, never both."""

    graph: Optional[ResourceGraph] = None
    errors: List[TopologyIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> ResourceGraph:
        if self.errors or self.graph is None:
            raise ResolutionError(self.errors)
        return self.graph


class ResourceGraphBuilder:
    """Turns a NetworkSpec into a ResourceGraph. Holds no state between builds."""

    def build(self, spec: NetworkSpec) -> BuildResult:
        """Resolve ``spec`` into a graph.

        Args:
            spec: The desired network

        Returns:
            BuildResult holding the graph, or every error found
        """
        issues = validate(spec)
        if issues:
            logger.info("Spec rejected with %d validation error(s)", len(issues))
            return BuildResult(errors=issues)

        counts = resolve_counts(spec)
        tags = TagResolver(spec.tag_layers)
        nat_ips = nat_ip_source(spec)
        try:
            plan = IndexMapper(counts, spec, nat_ips).map()
            graph = _GraphAssembly(spec, counts, plan, tags, nat_ips).assemble()
            graph.check_references()
        except ResolutionError as e:
            logger.info("Spec rejected with %d topology error(s)", len(e.issues))
            return BuildResult(errors=e.issues)

        logger.info("Resolved %d resource(s) for VPC %r", len(graph), spec.name)
        return BuildResult(graph=graph)


def build(spec: NetworkSpec) -> BuildResult:
    return ResourceGraphBuilder().build(spec)


def resolve(spec: NetworkSpec) -> ResourceGraph:
    """Build the graph for ``spec``, raising ResolutionError on any problem."""
    return build(spec).raise_for_errors()


def az_attributes(az: str) -> Dict[str, str]:
    if AZ_NAME_PATTERN.match(az):
        return {"availability_zone": az}
    return {"availability_zone_id": az}


class _GraphAssembly:
    """Emits nodes for one build in dependency order."""

    def __init__(
        self,
        spec: NetworkSpec,
        counts: CountSet,
        plan: IndexPlan,
        tags: TagResolver,
        nat_ips: NatIpSource,
    ):
        self.spec = spec
        self.counts = counts
        self.plan = plan
        self.tags = tags
        self.nat_ips = nat_ips
        self.graph = ResourceGraph()

    def _add(
        self,
        kind: ResourceKind,
        name: str,
        index: int,
        attributes: Dict[str, Any],
        depends_on: List[str],
        tags: Optional[Dict[str, str]] = None,
    ) -> ResourceNode:
        unique = list(dict.fromkeys(depends_on))
        return self.graph.add(ResourceNode(kind, name, index, attributes, unique, tags or {}))

    def _name(self, *parts: str) -> str:
        return "-".join(part for part in (self.spec.name, *parts) if part)

    @property
    def _vpc(self) -> str:
        return make_address(ResourceKind.VPC, "this", 0)

    @property
    def _igw(self) -> str:
        return make_address(ResourceKind.IGW, "this", 0)

    @property
    def _egress_igw(self) -> str:
        return make_address(ResourceKind.EGRESS_ONLY_IGW, "this", 0)

    def assemble(self) -> ResourceGraph:
        if not self.counts.create_vpc:
            logger.info("VPC disabled (empty cidr); nothing to create")
            return self.graph

        self._add_vpc()
        self._add_gateways()
        for tier in SubnetTier:
            self._add_subnets(tier)
        self._add_db_subnet_group()
        for tier in SubnetTier:
            self._add_route_tables(tier)
        self._add_nat_gateways()
        self._add_routes()
        for tier in SubnetTier:
            self._add_associations(tier)
        return self.graph

    def _add_vpc(self) -> None:
        spec = self.spec
        flags = spec.flags
        attributes: Dict[str, Any] = {
            "cidr_block": spec.cidr,
            "instance_tenancy": spec.instance_tenancy,
            "enable_dns_hostnames": flags.enable_dns_hostnames,
            "enable_dns_support": flags.enable_dns_support,
            "assign_generated_ipv6_cidr_block": flags.enable_ipv6 and spec.ipv6_cidr is None,
        }
        if flags.enable_ipv6 and spec.ipv6_cidr is not None:
            attributes["ipv6_cidr_block"] = spec.ipv6_cidr
        vpc = self._add(
            ResourceKind.VPC, "this", 0, attributes, [],
            self.tags.resolve(TagKind.VPC, name=spec.name),
        )

        for i, block in enumerate(spec.secondary_cidr_blocks[: self.counts.secondary_cidr_count]):
            self._add(
                ResourceKind.VPC_CIDR_ASSOCIATION, "this", i,
                {"vpc_id": vpc.ref(), "cidr_block": block},
                [self._vpc],
            )

    def _add_gateways(self) -> None:
        vpc_ref = {"vpc_id": Reference(self._vpc)}
        if self.counts.create_igw:
            self._add(
                ResourceKind.IGW, "this", 0, dict(vpc_ref), [self._vpc],
                self.tags.resolve(TagKind.IGW, name=self.spec.name),
            )
        if self.counts.create_egress_only_igw:
            self._add(
                ResourceKind.EGRESS_ONLY_IGW, "this", 0, dict(vpc_ref), [self._vpc],
                self.tags.resolve(TagKind.IGW, name=self.spec.name),
            )

    def _subnet_vpc_dependencies(self) -> List[str]:
        return [self._vpc] + [
            make_address(ResourceKind.VPC_CIDR_ASSOCIATION, "this", i)
            for i in range(self.counts.secondary_cidr_count)
        ]

    def _add_subnets(self, tier: SubnetTier) -> None:
        spec = self.spec
        cidrs = spec.subnets(tier)
        prefixes = spec.ipv6_prefixes(tier)
        for subnet in self.plan.subnets[tier]:
            attributes: Dict[str, Any] = {
                "vpc_id": Reference(self._vpc),
                "cidr_block": cidrs[subnet.index],
            }
            attributes.update(az_attributes(subnet.az))
            if tier == SubnetTier.PUBLIC:
                attributes["map_public_ip_on_launch"] = spec.flags.map_public_ip_on_launch
            if spec.flags.enable_ipv6:
                attributes["assign_ipv6_address_on_creation"] = spec.flags.assign_ipv6_address_on_creation
                if prefixes:
                    attributes["ipv6_cidr_block"] = CidrSubnet(
                        Reference(self._vpc, "ipv6_cidr_block"), 8, prefixes[subnet.index]
                    )
            self._add(
                ResourceKind.SUBNET, tier.value, subnet.index, attributes,
                self._subnet_vpc_dependencies(),
                self.tags.resolve(
                    SUBNET_TAG_KINDS[tier],
                    az=subnet.az,
                    name=self._name(spec.suffix(tier), subnet.az),
                ),
            )

    def _add_db_subnet_group(self) -> None:
        if not self.counts.create_db_subnet_group:
            return
        subnets = [
            make_address(ResourceKind.SUBNET, SubnetTier.DATABASE.value, plan.index)
            for plan in self.plan.subnets[SubnetTier.DATABASE]
        ]
        group_name = (self.spec.database_subnet_group_name or self.spec.name).lower()
        self._add(
            ResourceKind.DB_SUBNET_GROUP, SubnetTier.DATABASE.value, 0,
            {
                "name": group_name,
                "description": f"Database subnet group for {self.spec.name}",
                "subnet_ids": [Reference(address) for address in subnets],
            },
            subnets,
            self.tags.resolve(TagKind.DATABASE_SUBNET_GROUP, name=group_name),
        )

    def _add_route_tables(self, tier: SubnetTier) -> None:
        for table in self.plan.route_tables[tier]:
            suffix = self.spec.suffix(tier)
            name = self._name(suffix, table.az) if table.az else self._name(suffix)
            self._add(
                ResourceKind.ROUTE_TABLE, tier.value, table.index,
                {"vpc_id": Reference(self._vpc)},
                [self._vpc],
                self.tags.resolve(ROUTE_TABLE_TAG_KINDS[tier], name=name),
            )

    def _add_nat_gateways(self) -> None:
        for eip in self.plan.nat_eips:
            self._add(
                ResourceKind.NAT_EIP, "nat", eip.index, {"domain": "vpc"}, [],
                self.tags.resolve(TagKind.NAT_EIP, name=self._name(eip.az)),
            )

        for gateway in self.plan.nat_gateways:
            subnet = make_address(ResourceKind.SUBNET, SubnetTier.PUBLIC.value, gateway.public_subnet_index)
            allocation = self.nat_ips.allocation(gateway.allocation_index)
            depends_on = [subnet]
            if isinstance(allocation, Reference):
                depends_on.insert(0, allocation.address)
            if self.counts.create_igw:
                depends_on.append(self._igw)
            self._add(
                ResourceKind.NAT_GATEWAY, "this", gateway.index,
                {"allocation_id": allocation, "subnet_id": Reference(subnet)},
                depends_on,
                self.tags.resolve(TagKind.NAT_GATEWAY, name=self._name(gateway.az)),
            )

    def _add_routes(self) -> None:
        for route in self.plan.routes:
            table = make_address(ResourceKind.ROUTE_TABLE, route.route_table_tier.value, route.route_table_index)
            attributes: Dict[str, Any] = {"route_table_id": Reference(table)}
            target_key, target = self._route_target(route)
            if route.purpose in _IPV6_ROUTES:
                attributes["destination_ipv6_cidr_block"] = IPV6_ANYWHERE
            else:
                attributes["destination_cidr_block"] = IPV4_ANYWHERE
            attributes[target_key] = Reference(target)
            attributes["timeouts"] = dict(ROUTE_TIMEOUTS)
            self._add(ResourceKind.ROUTE, route.purpose.value, route.index, attributes, [table, target])

    def _route_target(self, route: RoutePlan):
        if route.purpose in (
            RoutePurpose.PUBLIC_INTERNET_GATEWAY,
            RoutePurpose.PUBLIC_INTERNET_GATEWAY_IPV6,
            RoutePurpose.DATABASE_INTERNET_GATEWAY,
        ):
            return "gateway_id", self._igw
        if route.purpose in (RoutePurpose.PRIVATE_IPV6_EGRESS, RoutePurpose.DATABASE_IPV6_EGRESS):
            return "egress_only_gateway_id", self._egress_igw
        return "nat_gateway_id", make_address(ResourceKind.NAT_GATEWAY, "this", route.target_index)

    def _add_associations(self, tier: SubnetTier) -> None:
        for subnet in self.plan.subnets[tier]:
            self._add_association(subnet)

    def _add_association(self, subnet: SubnetPlan) -> None:
        subnet_node = self.graph.get(make_address(ResourceKind.SUBNET, subnet.tier.value, subnet.index))
        table = make_address(ResourceKind.ROUTE_TABLE, subnet.route_table_tier.value, subnet.route_table_index)
        self._add(
            ResourceKind.ROUTE_TABLE_ASSOCIATION, subnet.tier.value, subnet.index,
            {"subnet_id": subnet_node.ref(), "route_table_id": Reference(table)},
            [subnet_node.address, table],
        )


_IPV6_ROUTES = (
    RoutePurpose.PUBLIC_INTERNET_GATEWAY_IPV6,
    RoutePurpose.PRIVATE_IPV6_EGRESS,
    RoutePurpose.DATABASE_IPV6_EGRESS,
)
