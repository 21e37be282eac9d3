#!/usr/bin/env python3
"""
vpcgraph - VPC Topology Resolver

Resolves the variables of a VPC module into the complete graph of network
resources (subnets, NAT gateways, route tables, routes, associations) the
provisioning engine has to create, with their dependency edges.

Usage:
    # Resolve the variables in a Terraform directory, print JSON
    vpcgraph -t ./infrastructure/network

    # Extra tfvars file, DOT output written to a file
    vpcgraph -t ./infrastructure/network --var-file prod.tfvars --format dot -o vpc.dot

    # Attach ids from an applied state and print the module outputs
    vpcgraph -t ./infrastructure/network --state-file state.json --outputs
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .builder import ResourceGraphBuilder
from .state import TerraformStateRunner, attach_state, collect_outputs, load_state_file
from .variable_loader import VariableLoader

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resolve VPC module variables into a resource graph.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    vpcgraph -t ./network
    vpcgraph -t ./network --var-file prod.tfvars --format dot -o vpc.dot
    vpcgraph -t ./network --state-file state.json --outputs
        """,
    )

    parser.add_argument(
        "-t", "--terraform", required=True, help="Directory holding the variables and tfvars files"
    )

    parser.add_argument(
        "--var-file",
        action="append",
        default=[],
        metavar="FILE",
        help="Additional tfvars file, applied after the directory's own (repeatable)",
    )

    parser.add_argument(
        "-o", "--output", default=None, help="Output file path. Default: standard output"
    )

    parser.add_argument(
        "-f", "--format", choices=("json", "dot"), default="json", help="Output format. Default: json"
    )

    parser.add_argument(
        "--state-file",
        "-s",
        metavar="FILE",
        help="Terraform state JSON (from 'terraform show -json') to attach resource ids from",
    )

    parser.add_argument(
        "--use-state",
        action="store_true",
        help="Attach ids from the directory's cached state JSON or 'terraform show -json'",
    )

    parser.add_argument(
        "--module", default="", help="Module name the VPC was applied as, e.g. 'vpc' for module.vpc"
    )

    parser.add_argument(
        "--outputs", action="store_true", help="Print module outputs instead of the graph"
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    return parser


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    terraform_path = Path(args.terraform)
    if not terraform_path.is_dir():
        print(f"Error: Terraform directory not found: {terraform_path}", file=sys.stderr)
        return 1

    loader = VariableLoader(terraform_path, extra_files=args.var_file)
    spec = loader.to_spec()
    logger.info("Loaded %d variable(s) from %s", len(loader.variables), terraform_path)

    result = ResourceGraphBuilder().build(spec)
    if not result.ok:
        print(f"Error: could not resolve {terraform_path}:", file=sys.stderr)
        for issue in result.errors:
            print(f"  {issue}", file=sys.stderr)
        return 1
    graph = result.graph

    try:
        if args.state_file:
            state = load_state_file(args.state_file)
        elif args.use_state:
            state = TerraformStateRunner(terraform_path).run_show_json()
        else:
            state = None
    except (OSError, ValueError) as e:
        print(f"Error: could not read state: {e}", file=sys.stderr)
        return 1

    if state is not None:
        matched = attach_state(graph, state, module_path=args.module)
        logger.info("Attached state to %d resource(s)", matched)

    if args.outputs:
        content = json.dumps(collect_outputs(graph), indent=2) + "\n"
    elif args.format == "dot":
        content = graph.to_dot()
    else:
        content = graph.to_json() + "\n"

    if args.output:
        output_path = Path(args.output)
        output_path.write_text(content, encoding="utf-8")
        print(f"Resource graph written: {output_path.absolute()} ({len(graph)} resources)")
    else:
        sys.stdout.write(content)
    return 0


if __name__ == "__main__":
    sys.exit(main())
