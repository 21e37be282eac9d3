"""
Resource Graph

Resource descriptors, cross-resource references and the ordered graph
handed to the provisioning engine.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import ResolutionError, topology_issue

logger = logging.getLogger(__name__)


class ResourceKind(Enum):
    """Kinds of resource the resolver emits, valued by their Terraform type."""

    VPC = "aws_vpc"
    VPC_CIDR_ASSOCIATION = "aws_vpc_ipv4_cidr_block_association"
    IGW = "aws_internet_gateway"
    EGRESS_ONLY_IGW = "aws_egress_only_internet_gateway"
    SUBNET = "aws_subnet"
    NAT_EIP = "aws_eip"
    NAT_GATEWAY = "aws_nat_gateway"
    ROUTE_TABLE = "aws_route_table"
    ROUTE = "aws_route"
    ROUTE_TABLE_ASSOCIATION = "aws_route_table_association"
    DB_SUBNET_GROUP = "aws_db_subnet_group"


class RoutePurpose(Enum):
    PUBLIC_INTERNET_GATEWAY = "public_internet_gateway"
    PUBLIC_INTERNET_GATEWAY_IPV6 = "public_internet_gateway_ipv6"
    PRIVATE_NAT_GATEWAY = "private_nat_gateway"
    PRIVATE_IPV6_EGRESS = "private_ipv6_egress"
    DATABASE_INTERNET_GATEWAY = "database_internet_gateway"
    DATABASE_IPV6_EGRESS = "database_ipv6_egress"
    DATABASE_NAT_GATEWAY = "database_nat_gateway"


def make_address(kind: ResourceKind, name: str, index: int) -> str:
    """Terraform-style address, e.g. ``aws_subnet.public[0]``."""
    return f"{kind.value}.{name}[{index}]"


@dataclass(frozen=True)
class Reference:
    """An attribute of another node, resolved by the provisioning engine."""

    address: str
    attribute: str = "id"

    def __str__(self) -> str:
        return f"{self.address}.{self.attribute}"

    def to_dict(self) -> Dict[str, str]:
        return {"$ref": str(self)}


@dataclass(frozen=True)
class CidrSubnet:
    """A block carved out of a referenced prefix, like Terraform's cidrsubnet()."""

    prefix: Reference
    newbits: int
    netnum: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "$cidrsubnet": {
                "prefix": str(self.prefix),
                "newbits": self.newbits,
                "netnum": self.netnum,
            }
        }


@dataclass
class ResourceNode:
    """One resource instance in the desired-state graph."""

    kind: ResourceKind
    name: str
    index: int
    attributes: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)
    remote_id: Optional[str] = None  # assigned by the provisioning engine after apply
    remote_attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def address(self) -> str:
        return make_address(self.kind, self.name, self.index)

    def ref(self, attribute: str = "id") -> Reference:
        return Reference(self.address, attribute)

    def references(self) -> List[Reference]:
        """All references found in the attribute values."""
        found: List[Reference] = []
        _collect_references(self.attributes, found)
        return found

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "address": self.address,
            "type": self.kind.value,
            "name": self.name,
            "index": self.index,
            "attributes": _serialize(self.attributes),
            "depends_on": list(self.depends_on),
            "tags": dict(self.tags),
        }
        if self.remote_id is not None:
            data["remote_id"] = self.remote_id
        return data


def _collect_references(value: Any, found: List[Reference]) -> None:
    if isinstance(value, Reference):
        found.append(value)
    elif isinstance(value, CidrSubnet):
        found.append(value.prefix)
    elif isinstance(value, dict):
        for item in value.values():
            _collect_references(item, found)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _collect_references(item, found)


def _serialize(value: Any) -> Any:
    if isinstance(value, (Reference, CidrSubnet)):
        return value.to_dict()
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value


class ResourceGraph:
    """Insertion-ordered set of resource nodes keyed by address."""

    def __init__(self) -> None:
        self._nodes: Dict[str, ResourceNode] = {}

    def add(self, node: ResourceNode) -> ResourceNode:
        if node.address in self._nodes:
            raise ValueError(f"Duplicate resource address: {node.address}")
        self._nodes[node.address] = node
        return node

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(self._nodes.values())

    def __contains__(self, address: str) -> bool:
        return address in self._nodes

    @property
    def nodes(self) -> List[ResourceNode]:
        return list(self._nodes.values())

    def get(self, address: str) -> Optional[ResourceNode]:
        return self._nodes.get(address)

    def nodes_of(self, kind: ResourceKind, name: Optional[str] = None) -> List[ResourceNode]:
        """Nodes of one kind, optionally restricted to one resource name."""
        return [
            node for node in self._nodes.values()
            if node.kind == kind and (name is None or node.name == name)
        ]

    def edges(self) -> List[Tuple[str, str]]:
        """Dependency edges as (dependent, dependency) address pairs."""
        return [
            (node.address, target)
            for node in self._nodes.values()
            for target in node.depends_on
        ]

    def check_references(self) -> None:
        """Verify that every dependency and reference points into the graph.

        Raises:
            ResolutionError: With one TopologyError per dangling reference
        """
        issues = []
        for node in self._nodes.values():
            for target in node.depends_on:
                if target not in self._nodes:
                    issues.append(topology_issue(node.address, f"depends on missing {target}"))
            for reference in node.references():
                if reference.address not in self._nodes:
                    issues.append(topology_issue(node.address, f"references missing {reference}"))
                elif reference.address not in node.depends_on:
                    issues.append(
                        topology_issue(node.address, f"reference {reference} is not a dependency")
                    )
        if issues:
            raise ResolutionError(issues)

    def to_dict(self) -> Dict[str, Any]:
        return {"resources": [node.to_dict() for node in self._nodes.values()]}

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def to_dot(self) -> str:
        """Render the graph in the DOT format ``terraform graph`` produces.

        Edges point from a resource to the resource it depends on.
        """
        lines = ["digraph {", '\tcompound = "true"', '\tnewrank = "true"']
        for node in self._nodes.values():
            lines.append(f'\t"[root] {node.address}" [label = "{node.address}", shape = "box"]')
        for source, target in self.edges():
            lines.append(f'\t"[root] {source}" -> "[root] {target}"')
        lines.append("}")
        logger.debug("Rendered DOT graph: %d nodes, %d edges", len(self._nodes), len(self.edges()))
        return "\n".join(lines) + "\n"
