"""Tests for the resource graph builder."""

import pytest

from vpcgraph.builder import ResourceGraphBuilder, build, resolve
from vpcgraph.errors import ErrorKind, ResolutionError
from vpcgraph.graph import CidrSubnet, Reference, ResourceKind


def _addresses(graph, kind, name=None):
    return [node.address for node in graph.nodes_of(kind, name)]


class TestDisabledVpc:
    """Tests for an empty CIDR."""

    def test_no_network_nodes(self, make_spec):
        """Test nothing is emitted when the VPC is disabled."""
        result = build(make_spec(cidr="", enable_nat_gateway=True, create_database_subnet_route_table=True))

        assert result.ok
        graph = result.graph
        for kind in (ResourceKind.VPC, ResourceKind.SUBNET, ResourceKind.ROUTE_TABLE, ResourceKind.NAT_GATEWAY):
            assert graph.nodes_of(kind) == []
        assert len(graph) == 0


class TestBaseTopology:
    """Tests for a three-AZ VPC with one NAT gateway per AZ."""

    @pytest.fixture
    def graph(self, make_spec):
        return resolve(make_spec(enable_nat_gateway=True, one_nat_gateway_per_az=True))

    def test_node_counts(self, graph):
        """Test every resource kind appears the expected number of times."""
        assert len(graph.nodes_of(ResourceKind.VPC)) == 1
        assert len(graph.nodes_of(ResourceKind.IGW)) == 1
        assert graph.nodes_of(ResourceKind.EGRESS_ONLY_IGW) == []
        assert len(graph.nodes_of(ResourceKind.SUBNET, "public")) == 3
        assert len(graph.nodes_of(ResourceKind.SUBNET, "private")) == 3
        assert len(graph.nodes_of(ResourceKind.SUBNET, "database")) == 3
        assert len(graph.nodes_of(ResourceKind.NAT_EIP)) == 3
        assert len(graph.nodes_of(ResourceKind.NAT_GATEWAY)) == 3
        assert len(graph.nodes_of(ResourceKind.ROUTE_TABLE, "public")) == 1
        assert len(graph.nodes_of(ResourceKind.ROUTE_TABLE, "private")) == 3
        assert graph.nodes_of(ResourceKind.ROUTE_TABLE, "database") == []
        assert len(graph.nodes_of(ResourceKind.ROUTE_TABLE_ASSOCIATION)) == 9
        assert len(graph.nodes_of(ResourceKind.DB_SUBNET_GROUP)) == 1

    def test_nat_gateway_dependencies(self, graph):
        """Test NAT gateway i depends on EIP i, public subnet i and the IGW."""
        for i in range(3):
            node = graph.get(f"aws_nat_gateway.this[{i}]")
            assert node.depends_on == [
                f"aws_eip.nat[{i}]",
                f"aws_subnet.public[{i}]",
                "aws_internet_gateway.this[0]",
            ]
            assert node.attributes["allocation_id"] == Reference(f"aws_eip.nat[{i}]")
            assert node.attributes["subnet_id"] == Reference(f"aws_subnet.public[{i}]")

    def test_private_routes(self, graph):
        """Test private route i sends 0.0.0.0/0 from table i to NAT gateway i."""
        for i in range(3):
            route = graph.get(f"aws_route.private_nat_gateway[{i}]")
            assert route.attributes["destination_cidr_block"] == "0.0.0.0/0"
            assert route.attributes["route_table_id"] == Reference(f"aws_route_table.private[{i}]")
            assert route.attributes["nat_gateway_id"] == Reference(f"aws_nat_gateway.this[{i}]")
            assert route.attributes["timeouts"] == {"create": "5m"}

    def test_public_route(self, graph):
        route = graph.get("aws_route.public_internet_gateway[0]")
        assert route.depends_on == ["aws_route_table.public[0]", "aws_internet_gateway.this[0]"]

    def test_associations_reference_existing_tables(self, graph):
        """Test every association points at a subnet and table in the graph."""
        for node in graph.nodes_of(ResourceKind.ROUTE_TABLE_ASSOCIATION):
            assert len(node.depends_on) == 2
            for address in node.depends_on:
                assert address in graph

    def test_database_subnets_use_private_tables(self, graph):
        association = graph.get("aws_route_table_association.database[1]")
        assert association.attributes["route_table_id"] == Reference("aws_route_table.private[1]")
        assert association.attributes["subnet_id"] == Reference("aws_subnet.database[1]")

    def test_subnet_attributes(self, graph):
        subnet = graph.get("aws_subnet.public[2]")
        assert subnet.attributes["cidr_block"] == "10.0.103.0/24"
        assert subnet.attributes["availability_zone"] == "us-east-1c"
        assert subnet.attributes["map_public_ip_on_launch"] is True
        assert subnet.depends_on == ["aws_vpc.this[0]"]

    def test_names(self, graph):
        """Test the generated Name tags."""
        assert graph.get("aws_vpc.this[0]").tags["Name"] == "main"
        assert graph.get("aws_subnet.private[0]").tags["Name"] == "main-private-us-east-1a"
        assert graph.get("aws_subnet.database[2]").tags["Name"] == "main-db-us-east-1c"
        assert graph.get("aws_route_table.public[0]").tags["Name"] == "main-public"
        assert graph.get("aws_route_table.private[1]").tags["Name"] == "main-private-us-east-1b"
        assert graph.get("aws_nat_gateway.this[2]").tags["Name"] == "main-us-east-1c"

    def test_db_subnet_group(self, graph):
        """Test the subnet group depends on every database subnet."""
        group = graph.get("aws_db_subnet_group.database[0]")
        expected = [f"aws_subnet.database[{i}]" for i in range(3)]

        assert group.depends_on == expected
        assert group.attributes["subnet_ids"] == [Reference(address) for address in expected]
        assert group.attributes["name"] == "main"

    def test_references_are_consistent(self, graph):
        graph.check_references()


class TestSingleNatGateway:
    """Tests for single NAT gateway mode."""

    def test_everything_routes_through_gateway_zero(self, make_spec):
        """Test private associations and NAT routes all use index 0."""
        graph = resolve(
            make_spec(
                enable_nat_gateway=True,
                single_nat_gateway=True,
                create_database_subnet_route_table=True,
                create_database_nat_gateway_route=True,
            )
        )

        assert _addresses(graph, ResourceKind.NAT_GATEWAY) == ["aws_nat_gateway.this[0]"]
        for node in graph.nodes_of(ResourceKind.ROUTE_TABLE_ASSOCIATION, "private"):
            assert node.attributes["route_table_id"] == Reference("aws_route_table.private[0]")
        for node in graph.nodes_of(ResourceKind.ROUTE):
            if "nat_gateway_id" in node.attributes:
                assert node.attributes["nat_gateway_id"] == Reference("aws_nat_gateway.this[0]")
        assert graph.get("aws_route_table.private[0]").tags["Name"] == "main-private"


class TestDegeneratePublicTier:
    """Tests for the public tier being dropped."""

    def test_no_public_nodes(self, make_spec):
        """Test two public subnets with three AZs produce no public resources."""
        graph = resolve(make_spec(public_subnets=["10.0.101.0/24", "10.0.102.0/24"]))

        assert graph.nodes_of(ResourceKind.SUBNET, "public") == []
        assert graph.nodes_of(ResourceKind.ROUTE_TABLE, "public") == []
        assert graph.nodes_of(ResourceKind.IGW) == []
        assert graph.nodes_of(ResourceKind.ROUTE_TABLE_ASSOCIATION, "public") == []
        assert len(graph.nodes_of(ResourceKind.SUBNET, "private")) == 3

    def test_nat_without_public_tier_fails(self, make_spec):
        """Test NAT gateways cannot be placed once the public tier is dropped."""
        result = build(make_spec(enable_nat_gateway=True, public_subnets=["10.0.101.0/24"]))

        assert not result.ok
        assert result.graph is None
        assert [issue.kind for issue in result.errors] == [ErrorKind.TOPOLOGY]


class TestDatabaseRouting:
    """Tests for dedicated database route tables and routes."""

    def test_internet_route_per_table(self, make_spec):
        """Test the database internet route and per-subnet tables."""
        graph = resolve(
            make_spec(
                enable_ipv6=True,
                create_database_subnet_route_table=True,
                create_database_internet_gateway_route=True,
            )
        )

        assert len(graph.nodes_of(ResourceKind.ROUTE_TABLE, "database")) == 3
        route = graph.get("aws_route.database_internet_gateway[0]")
        assert route.attributes["gateway_id"] == Reference("aws_internet_gateway.this[0]")
        ipv6 = graph.get("aws_route.database_ipv6_egress[0]")
        assert ipv6.attributes["destination_ipv6_cidr_block"] == "::/0"
        assert ipv6.attributes["egress_only_gateway_id"] == Reference("aws_egress_only_internet_gateway.this[0]")
        association = graph.get("aws_route_table_association.database[2]")
        assert association.attributes["route_table_id"] == Reference("aws_route_table.database[2]")

    def test_nat_route_on_shared_table(self, make_spec):
        """Test the database NAT route goes on the shared database table."""
        graph = resolve(
            make_spec(
                enable_nat_gateway=True,
                create_database_subnet_route_table=True,
                create_database_nat_gateway_route=True,
            )
        )

        assert _addresses(graph, ResourceKind.ROUTE_TABLE, "database") == ["aws_route_table.database[0]"]
        assert graph.get("aws_route_table.database[0]").tags["Name"] == "main-db"
        route = graph.get("aws_route.database_nat_gateway[0]")
        assert route.attributes["nat_gateway_id"] == Reference("aws_nat_gateway.this[0]")
        for node in graph.nodes_of(ResourceKind.ROUTE_TABLE_ASSOCIATION, "database"):
            assert node.attributes["route_table_id"] == Reference("aws_route_table.database[0]")


class TestReusedNatIps:
    """Tests for externally allocated NAT IPs."""

    def test_allocation_ids_are_literal(self, make_spec):
        """Test reused IPs create no EIPs and are passed through verbatim."""
        graph = resolve(
            make_spec(
                enable_nat_gateway=True,
                one_nat_gateway_per_az=True,
                reuse_nat_ips=True,
                external_nat_ip_ids=["eipalloc-a", "eipalloc-b", "eipalloc-c"],
            )
        )

        assert graph.nodes_of(ResourceKind.NAT_EIP) == []
        gateway = graph.get("aws_nat_gateway.this[1]")
        assert gateway.attributes["allocation_id"] == "eipalloc-b"
        assert gateway.depends_on == ["aws_subnet.public[1]", "aws_internet_gateway.this[0]"]


class TestIpv6:
    """Tests for dual-stack subnets."""

    def test_subnet_ipv6_blocks(self, make_spec):
        """Test subnets carve their IPv6 block from the VPC's block."""
        graph = resolve(make_spec(enable_ipv6=True, private_subnet_ipv6_prefixes=[3, 4, 5]))

        assert graph.get("aws_vpc.this[0]").attributes["assign_generated_ipv6_cidr_block"] is True
        subnet = graph.get("aws_subnet.private[1]")
        assert subnet.attributes["ipv6_cidr_block"] == CidrSubnet(
            Reference("aws_vpc.this[0]", "ipv6_cidr_block"), 8, 4
        )
        assert "ipv6_cidr_block" not in graph.get("aws_subnet.public[0]").attributes
        assert len(graph.nodes_of(ResourceKind.ROUTE, "private_ipv6_egress")) == 3
        assert len(graph.nodes_of(ResourceKind.ROUTE, "public_internet_gateway_ipv6")) == 1

    def test_explicit_ipv6_block(self, make_spec):
        vpc = resolve(make_spec(enable_ipv6=True, ipv6_cidr="2600:1f18:abcd:1200::/56")).get("aws_vpc.this[0]")
        assert vpc.attributes["ipv6_cidr_block"] == "2600:1f18:abcd:1200::/56"
        assert vpc.attributes["assign_generated_ipv6_cidr_block"] is False


class TestAzIdentifiers:
    """Tests for AZ name vs id handling."""

    def test_az_ids(self, make_spec):
        """Test AZ ids are emitted as availability_zone_id."""
        graph = resolve(make_spec(azs=["use1-az1", "use1-az2", "use1-az4"]))
        subnet = graph.get("aws_subnet.private[2]")

        assert subnet.attributes["availability_zone_id"] == "use1-az4"
        assert "availability_zone" not in subnet.attributes


class TestSecondaryCidrs:
    """Tests for secondary VPC CIDR blocks."""

    def test_subnets_wait_for_associations(self, make_spec):
        graph = resolve(make_spec(secondary_cidr_blocks=["10.1.0.0/16"]))

        association = graph.get("aws_vpc_ipv4_cidr_block_association.this[0]")
        assert association.attributes["cidr_block"] == "10.1.0.0/16"
        assert association.attributes["vpc_id"] == Reference("aws_vpc.this[0]")
        assert graph.get("aws_subnet.public[0]").depends_on == [
            "aws_vpc.this[0]",
            "aws_vpc_ipv4_cidr_block_association.this[0]",
        ]


class TestErrors:
    """Tests for error reporting."""

    def test_validation_errors_are_batched(self, make_spec):
        """Test every validation error is returned and no graph is built."""
        result = build(make_spec(cidr="10.0.0.0/99", azs=[], tags={"Env": 1}))

        assert not result.ok
        assert result.graph is None
        assert {issue.field for issue in result.errors} == {"cidr", "azs", "tags"}
        assert all(issue.kind == ErrorKind.VALIDATION for issue in result.errors)

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"name": 5}, "name"),
            ({"database_subnet_group_name": 5}, "database_subnet_group_name"),
            ({"private_subnet_suffix": ["a"]}, "private_subnet_suffix"),
            ({"instance_tenancy": True}, "instance_tenancy"),
        ],
    )
    def test_non_string_names_are_returned(self, make_spec, overrides, field):
        """Test a non-string name field comes back as an error, not an exception."""
        result = build(make_spec(**overrides))

        assert not result.ok
        assert [issue.field for issue in result.errors] == [field]
        assert result.errors[0].kind == ErrorKind.VALIDATION

    def test_resolve_raises(self, make_spec):
        with pytest.raises(ResolutionError) as exc_info:
            resolve(make_spec(cidr="bogus"))
        assert exc_info.value.kinds == [ErrorKind.VALIDATION]

    def test_index_errors_are_returned(self, make_spec):
        """Test index mapping failures surface as IndexOutOfRange errors."""
        result = build(
            make_spec(
                enable_nat_gateway=True,
                one_nat_gateway_per_az=True,
                reuse_nat_ips=True,
                external_nat_ip_ids=["eipalloc-a"],
            )
        )

        assert not result.ok
        assert {issue.kind for issue in result.errors} == {ErrorKind.INDEX_OUT_OF_RANGE}


class TestDeterminism:
    """Tests for the builder being a pure function."""

    def test_same_spec_same_graph(self, make_spec):
        """Test two builds of one spec serialize identically."""
        spec = make_spec(enable_nat_gateway=True, enable_ipv6=True, create_database_subnet_route_table=True)
        builder = ResourceGraphBuilder()

        assert builder.build(spec).graph.to_dict() == builder.build(spec).graph.to_dict()


class TestSerialization:
    """Tests for JSON and DOT output."""

    def test_json_references(self, make_spec):
        data = resolve(make_spec()).to_dict()
        subnet = next(item for item in data["resources"] if item["address"] == "aws_subnet.public[0]")

        assert subnet["attributes"]["vpc_id"] == {"$ref": "aws_vpc.this[0].id"}
        assert subnet["type"] == "aws_subnet"
        assert subnet["index"] == 0

    def test_dot_edges(self, make_spec):
        dot = resolve(make_spec()).to_dot()

        assert dot.startswith("digraph {")
        assert '"[root] aws_subnet.public[0]" -> "[root] aws_vpc.this[0]"' in dot
