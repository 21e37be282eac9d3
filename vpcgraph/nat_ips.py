"""
NAT IP Sources

Where NAT gateways get their Elastic IP allocations from: EIPs the graph
provisions itself, or allocation ids supplied from outside.
"""

from typing import Optional, Sequence, Union

from .graph import Reference, ResourceKind, make_address
from .network_spec import NetworkSpec

Allocation = Union[Reference, str]


class NatIpSource:
    """Resolved once per spec; answers how many EIPs to create and which to use."""

    def eip_count(self, nat_gateways: int) -> int:
        raise NotImplementedError

    def available(self) -> Optional[int]:
        """How many allocations exist, or None when the graph creates them."""
        raise NotImplementedError

    def allocation(self, index: int) -> Allocation:
        raise NotImplementedError


class ProvisionedNatIps(NatIpSource):
    """One ``aws_eip.nat`` per NAT gateway."""

    def eip_count(self, nat_gateways: int) -> int:
        return nat_gateways

    def available(self) -> Optional[int]:
        return None

    def allocation(self, index: int) -> Allocation:
        return Reference(make_address(ResourceKind.NAT_EIP, "nat", index))


class ExternalNatIps(NatIpSource):
    """Pre-allocated EIPs passed in as ``external_nat_ip_ids``."""

    def __init__(self, allocation_ids: Sequence[str]):
        self.allocation_ids = list(allocation_ids)

    def eip_count(self, nat_gateways: int) -> int:
        return 0

    def available(self) -> Optional[int]:
        return len(self.allocation_ids)

    def allocation(self, index: int) -> Allocation:
        return self.allocation_ids[index]


def nat_ip_source(spec: NetworkSpec) -> NatIpSource:
    if spec.flags.reuse_nat_ips:
        return ExternalNatIps(spec.external_nat_ip_ids)
    return ProvisionedNatIps()
