"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from vpcgraph.network_spec import NetworkSpec

THREE_AZS = ["us-east-1a", "us-east-1b", "us-east-1c"]


def base_variables() -> dict:
    """Three-AZ VPC with every tier populated and nothing optional switched on."""
    return {
        "name": "main",
        "cidr": "10.0.0.0/16",
        "azs": list(THREE_AZS),
        "public_subnets": ["10.0.101.0/24", "10.0.102.0/24", "10.0.103.0/24"],
        "private_subnets": ["10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"],
        "database_subnets": ["10.0.21.0/24", "10.0.22.0/24", "10.0.23.0/24"],
    }


@pytest.fixture
def make_spec():
    """Return a factory building a NetworkSpec from the base variables plus overrides."""

    def factory(**overrides) -> NetworkSpec:
        variables = base_variables()
        variables.update(overrides)
        return NetworkSpec.from_variables(variables)

    return factory
