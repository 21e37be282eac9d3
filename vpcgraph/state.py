"""
Terraform State Integration

Reads ``terraform show -json`` / ``terraform plan -json`` output and
attaches the identifiers the provisioning engine assigned after apply to
the matching nodes of a resolved graph.
"""

import json
import logging
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .graph import ResourceGraph, ResourceKind, ResourceNode
from .network_spec import SubnetTier

logger = logging.getLogger(__name__)

STATE_JSON_FILES = ("plan.json", "state.json", "terraform.tfstate.json")


@dataclass
class TerraformStateResource:
    """A resource from terraform state/plan JSON output."""
    address: str  # e.g., "module.vpc.aws_subnet.public[0]"
    resource_type: str
    name: str
    index: Optional[Union[int, str]]
    values: Dict[str, Any]
    module_path: str = ""

    @property
    def local_address(self) -> str:
        """Address within its module, in the resolver's ``type.name[index]`` form."""
        if isinstance(self.index, int):
            return f"{self.resource_type}.{self.name}[{self.index}]"
        return f"{self.resource_type}.{self.name}"


@dataclass
class TerraformStateResult:
    """Result from parsing terraform show/plan JSON output."""
    resources: List[TerraformStateResource] = field(default_factory=list)

    def in_module(self, module_path: str) -> Dict[str, TerraformStateResource]:
        return {
            resource.local_address: resource
            for resource in self.resources
            if resource.module_path == module_path
        }


class TerraformStateRunner:
    """Finds cached state JSON or runs ``terraform show -json``."""

    TIMEOUT_SHOW = 120  # seconds

    def __init__(self, terraform_dir: Union[str, Path], terraform_bin: str = "terraform"):
        self.terraform_dir = Path(terraform_dir)
        self.terraform_bin = terraform_bin

    def check_terraform_available(self) -> bool:
        """Check if terraform CLI is available in PATH."""
        return shutil.which(self.terraform_bin) is not None

    def check_initialized(self) -> bool:
        """Check if terraform init has been run in the directory."""
        terraform_dir = self.terraform_dir / ".terraform"
        return terraform_dir.exists() and terraform_dir.is_dir()

    def run_show_json(self) -> Optional[TerraformStateResult]:
        """Load the current state.

        First tries the local JSON files (plan.json, state.json,
        terraform.tfstate.json), then falls back to running terraform show -json.

        Returns:
            TerraformStateResult with resources, or None if no state is available.
        """
        for filename in STATE_JSON_FILES:
            json_file = self.terraform_dir / filename
            if not json_file.exists():
                continue
            try:
                result = load_state_file(json_file)
            except (OSError, ValueError) as e:
                logger.debug("Could not load %s: %s", json_file.name, e)
                continue
            if result.resources:
                logger.info("Loaded state from %s: %d resources", json_file.name, len(result.resources))
                return result

        if not self.check_terraform_available():
            logger.warning("Terraform CLI not found in PATH")
            return None

        if not self.check_initialized():
            logger.warning(
                "Terraform not initialized in %s. Run 'terraform init' first.",
                self.terraform_dir
            )
            return None

        try:
            completed = subprocess.run(
                [self.terraform_bin, "show", "-json"],
                cwd=self.terraform_dir,
                capture_output=True,
                text=True,
                timeout=self.TIMEOUT_SHOW
            )
        except subprocess.TimeoutExpired:
            logger.warning("terraform show timed out after %ds", self.TIMEOUT_SHOW)
            return None
        except OSError as e:
            logger.warning("Error running terraform show: %s", e)
            return None

        if completed.returncode != 0:
            logger.warning("terraform show -json failed: %s", completed.stderr)
            return None

        if not completed.stdout.strip():
            logger.info("No terraform state found")
            return None

        try:
            json_data = json.loads(completed.stdout)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse terraform show output: %s", e)
            return None

        return parse_state_json(json_data)


def load_state_file(path: Union[str, Path]) -> TerraformStateResult:
    """Parse a saved ``terraform show -json`` file."""
    with open(path, "r", encoding="utf-8") as f:
        return parse_state_json(json.load(f))


def parse_state_json(json_data: Any) -> TerraformStateResult:
    """Parse terraform show -json or terraform plan -json output.

    Looks for the root module under ``values`` (state), then
    ``planned_values`` and ``prior_state.values`` (plan).

    Args:
        json_data: Parsed JSON from terraform show/plan -json

    Returns:
        TerraformStateResult with parsed resources
    """
    result = TerraformStateResult()
    if not isinstance(json_data, dict):
        return result

    root_module = None
    for path in (("values",), ("planned_values",), ("prior_state", "values")):
        node: Any = json_data
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        if isinstance(node, dict) and node.get("root_module"):
            root_module = node["root_module"]
            logger.debug("Using '%s.root_module' structure", ".".join(path))
            break

    if not root_module:
        logger.debug("No root_module found in terraform JSON")
        return result

    _parse_module_resources(root_module, result, module_path="")
    for child_module in root_module.get("child_modules", []):
        _parse_child_module(child_module, result)

    logger.debug("Parsed terraform state: %d resources", len(result.resources))
    return result


def _parse_module_resources(module_data: dict, result: TerraformStateResult, module_path: str) -> None:
    """Parse managed resources from a module in state JSON."""
    for res in module_data.get("resources", []):
        if res.get("mode", "managed") != "managed":
            continue
        resource_type = res.get("type", "")
        name = res.get("name", "")
        if resource_type and name:
            result.resources.append(
                TerraformStateResource(
                    address=res.get("address", ""),
                    resource_type=resource_type,
                    name=name,
                    index=res.get("index"),
                    values=res.get("values") or {},
                    module_path=module_path,
                )
            )


def _parse_child_module(module_data: dict, result: TerraformStateResult) -> None:
    """Recursively parse a child module from state JSON."""
    address = module_data.get("address", "")

    # "module.vpc.module.subnets" -> "vpc.subnets"
    module_path = ".".join(re.findall(r"module\.([\w-]+)", address))

    _parse_module_resources(module_data, result, module_path)

    for child in module_data.get("child_modules", []):
        _parse_child_module(child, result)


def attach_state(graph: ResourceGraph, state: TerraformStateResult, module_path: str = "") -> int:
    """Copy engine-assigned ids and attributes onto matching graph nodes.

    Args:
        graph: A resolved graph
        state: Parsed terraform state
        module_path: Module the graph was applied as, e.g. "vpc" for module.vpc

    Returns:
        Number of nodes matched
    """
    by_address = state.in_module(module_path)
    matched = 0
    for node in graph:
        resource = by_address.get(node.address)
        if resource is None:
            continue
        node.remote_id = resource.values.get("id")
        node.remote_attributes = {
            key: value for key, value in resource.values.items() if value is not None
        }
        matched += 1

    missing = len(graph) - matched
    if missing:
        logger.info("%d of %d resource(s) have no state yet", missing, len(graph))
    return matched


def collect_outputs(graph: ResourceGraph) -> Dict[str, Any]:
    """Module outputs derived from the state attached to ``graph``."""

    def ids(nodes: List[ResourceNode]) -> List[Optional[str]]:
        return [node.remote_id for node in nodes]

    def first_id(kind: ResourceKind) -> Optional[str]:
        nodes = graph.nodes_of(kind)
        return nodes[0].remote_id if nodes else None

    vpcs = graph.nodes_of(ResourceKind.VPC)
    nat_gateways = graph.nodes_of(ResourceKind.NAT_GATEWAY)
    db_groups = graph.nodes_of(ResourceKind.DB_SUBNET_GROUP)

    outputs: Dict[str, Any] = {
        "vpc_id": vpcs[0].remote_id if vpcs else None,
        "vpc_cidr_block": vpcs[0].attributes.get("cidr_block") if vpcs else None,
        "igw_id": first_id(ResourceKind.IGW),
        "egress_only_internet_gateway_id": first_id(ResourceKind.EGRESS_ONLY_IGW),
        "database_subnet_group": db_groups[0].remote_id if db_groups else None,
        "nat_ids": ids(graph.nodes_of(ResourceKind.NAT_EIP)),
        "natgw_ids": ids(nat_gateways),
        "nat_public_ips": [node.remote_attributes.get("public_ip") for node in nat_gateways],
    }
    for tier in SubnetTier:
        outputs[f"{tier.value}_subnets"] = ids(graph.nodes_of(ResourceKind.SUBNET, tier.value))
        outputs[f"{tier.value}_route_table_ids"] = ids(graph.nodes_of(ResourceKind.ROUTE_TABLE, tier.value))
    return outputs
