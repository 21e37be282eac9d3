"""
Spec Validator

Checks the structural invariants of a NetworkSpec before any derivation
runs. All violations are collected so callers can report them in one pass.
"""

import ipaddress
import logging
from dataclasses import fields
from typing import Any, List

from .errors import TopologyIssue, validation_issue
from .network_spec import NetworkFlags, NetworkSpec, SubnetTier

logger = logging.getLogger(__name__)


class SpecValidator:
    """Collects every structural problem in a NetworkSpec."""

    def __init__(self, spec: NetworkSpec):
        self.spec = spec
        self._issues: List[TopologyIssue] = []
        self._vpc_networks: List[ipaddress.IPv4Network] = []

    def validate(self) -> List[TopologyIssue]:
        """Run all checks.

        Returns:
            Every issue found, in field order; empty when the NetworkSpec is valid
        """
        self._issues = []
        self._vpc_networks = []

        self._check_flags()
        self._check_strings()
        self._check_vpc_cidrs()
        self._check_azs()
        for tier in SubnetTier:
            self._check_subnets(tier)
        self._check_external_nat_ips()
        self._check_tags()

        if self._issues:
            logger.debug("Spec validation found %d issue(s)", len(self._issues))
        return list(self._issues)

    def _report(self, field: str, message: str) -> None:
        self._issues.append(validation_issue(field, message))

    def _check_flags(self) -> None:
        for flag in fields(NetworkFlags):
            value = getattr(self.spec.flags, flag.name)
            if not isinstance(value, bool):
                self._report(flag.name, f"must be a boolean, got {value!r}")

    def _check_strings(self) -> None:
        spec = self.spec
        values = [
            ("name", spec.name),
            ("instance_tenancy", spec.instance_tenancy),
        ]
        if spec.database_subnet_group_name is not None:
            values.append(("database_subnet_group_name", spec.database_subnet_group_name))
        if not isinstance(spec.subnet_suffixes, dict):
            self._report("subnet_suffixes", "must be a map of tier to suffix")
        else:
            for tier, suffix in spec.subnet_suffixes.items():
                values.append((f"{tier.value}_subnet_suffix", suffix))

        for field_name, value in values:
            if not isinstance(value, str):
                self._report(field_name, f"must be a string, got {value!r}")

    def _check_vpc_cidrs(self) -> None:
        spec = self.spec
        if not isinstance(spec.cidr, str):
            self._report("cidr", f"must be a string, got {spec.cidr!r}")
        elif spec.cidr:
            network = self._parse_ipv4("cidr", spec.cidr)
            if network is not None:
                self._vpc_networks.append(network)

        if not _is_sequence(spec.secondary_cidr_blocks):
            self._report("secondary_cidr_blocks", "must be a list of CIDR blocks")
        else:
            for i, block in enumerate(spec.secondary_cidr_blocks):
                network = self._parse_ipv4(f"secondary_cidr_blocks[{i}]", block)
                if network is not None:
                    self._vpc_networks.append(network)

        if spec.ipv6_cidr is not None:
            if spec.flags.enable_ipv6 is not True:
                self._report("ipv6_cidr", "an IPv6 block requires enable_ipv6")
            try:
                ipaddress.IPv6Network(str(spec.ipv6_cidr))
            except ValueError as e:
                self._report("ipv6_cidr", f"invalid IPv6 CIDR block: {e}")

    def _check_azs(self) -> None:
        azs = self.spec.azs
        if not _is_sequence(azs):
            self._report("azs", "must be a list of availability zones")
            return
        for i, az in enumerate(azs):
            if not isinstance(az, str) or not az:
                self._report(f"azs[{i}]", f"must be a non-empty string, got {az!r}")
        names = [az for az in azs if isinstance(az, str)]
        if len(set(names)) != len(names):
            self._report("azs", "availability zones must be unique")

        if not azs and any(self.spec.subnet_tiers.get(tier) for tier in SubnetTier):
            self._report("azs", "at least one availability zone is required when subnets are defined")

    def _check_subnets(self, tier: SubnetTier) -> None:
        field_name = f"{tier.value}_subnets"
        subnets = self.spec.subnet_tiers.get(tier, ())
        if not _is_sequence(subnets):
            self._report(field_name, "must be a list of CIDR blocks")
            return

        for i, cidr in enumerate(subnets):
            network = self._parse_ipv4(f"{field_name}[{i}]", cidr)
            if network is None or not self._vpc_networks:
                continue
            if not any(network.subnet_of(vpc) for vpc in self._vpc_networks):
                self._report(f"{field_name}[{i}]", f"{cidr} is outside the VPC CIDR blocks")

        prefixes_field = f"{tier.value}_subnet_ipv6_prefixes"
        prefixes = self.spec.subnet_ipv6_prefixes.get(tier, ())
        if not _is_sequence(prefixes):
            self._report(prefixes_field, "must be a list of integers")
            return
        if prefixes and len(prefixes) < len(subnets):
            self._report(
                prefixes_field,
                f"{len(prefixes)} prefix(es) for {len(subnets)} subnet(s)",
            )
        for i, prefix in enumerate(prefixes):
            if isinstance(prefix, bool) or not isinstance(prefix, int) or not 0 <= prefix <= 255:
                self._report(f"{prefixes_field}[{i}]", f"must be an integer in 0-255, got {prefix!r}")

    def _check_external_nat_ips(self) -> None:
        ids = self.spec.external_nat_ip_ids
        if not _is_sequence(ids):
            self._report("external_nat_ip_ids", "must be a list of allocation ids")
            return
        for i, allocation_id in enumerate(ids):
            if not isinstance(allocation_id, str) or not allocation_id:
                self._report(f"external_nat_ip_ids[{i}]", f"must be a non-empty string, got {allocation_id!r}")

    def _check_tags(self) -> None:
        layers = self.spec.tag_layers
        self._check_tag_map("tags", layers.global_tags)
        for kind, tags in layers.kind_tags.items():
            self._check_tag_map(f"{kind.value}_tags", tags)
        for kind, per_az in layers.az_tags.items():
            field_name = f"{kind.value}_tags_per_az"
            if not isinstance(per_az, dict):
                self._report(field_name, "must be a map of availability zone to tags")
                continue
            for az, tags in per_az.items():
                self._check_tag_map(f"{field_name}[{az!r}]", tags)

    def _check_tag_map(self, field_name: str, tags: Any) -> None:
        if not isinstance(tags, dict):
            self._report(field_name, f"must be a map of strings, got {type(tags).__name__}")
            return
        for key, value in tags.items():
            if not isinstance(key, str) or not isinstance(value, str):
                self._report(field_name, f"tag {key!r} = {value!r} is not a string pair")

    def _parse_ipv4(self, field_name: str, value: Any):
        if not isinstance(value, str):
            self._report(field_name, f"must be a CIDR string, got {value!r}")
            return None
        try:
            return ipaddress.IPv4Network(value)
        except ValueError as e:
            self._report(field_name, f"invalid IPv4 CIDR block: {e}")
            return None


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def validate(spec: NetworkSpec) -> List[TopologyIssue]:
    """Return every structural issue in ``spec``."""
    return SpecValidator(spec).validate()
