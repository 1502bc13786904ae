#!/usr/bin/env python3
"""
Offline checks for a stack definition: validate it, show the order the
resources would be created and deleted in, and plan it against the state
exported from a deployed stack.
"""

import argparse
import sys

from config import Config, load_config
from graph import ResourceGraph
from planner import load_state, plan
from validation import validate


def validate_command(args) -> int:
    config = Config.from_dict(load_config(args.config))
    issues = validate(config)
    if issues:
        print(f"{len(issues)} issue(s) found in {args.config}:")
        for issue in issues:
            print(f"  {issue}")
        return 1
    print(f"{args.config}: {len(config.aws_resources)} resources, no issues")
    return 0


def graph_command(args) -> int:
    config = Config.from_dict(load_config(args.config))
    graph = ResourceGraph.from_config(config)
    print("Create order:")
    for i, name in enumerate(graph.create_order(), 1):
        deps = graph.dependencies(name)
        print(f"  {i:>2}. {name}" + (f"  <- {', '.join(deps)}" if deps else ""))
    print("Waves:")
    for i, wave in enumerate(graph.waves(), 1):
        print(f"  {i:>2}. {', '.join(wave)}")
    print("Delete order:")
    for i, name in enumerate(graph.delete_order(), 1):
        print(f"  {i:>2}. {name}")
    return 0


def plan_command(args) -> int:
    config_data = load_config(args.config)
    issues = validate(Config.from_dict(config_data))
    if issues:
        for issue in issues:
            print(f"  {issue}")
        return 1
    state = load_state(args.state) if args.state else []
    result = plan(config_data, state)
    print(result.render())
    return 2 if args.detailed_exitcode and result.has_changes else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stackgraph",
        description="Validate and plan YAML-defined AWS stacks",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate", help="Run static checks over a stack definition")
    validate_parser.add_argument("config", help="Path to the stack YAML")
    validate_parser.set_defaults(func=validate_command)

    graph_parser = subparsers.add_parser("graph", help="Show create order, parallel waves and delete order")
    graph_parser.add_argument("config", help="Path to the stack YAML")
    graph_parser.set_defaults(func=graph_command)

    plan_parser = subparsers.add_parser("plan", help="Diff the definition against exported stack state")
    plan_parser.add_argument("config", help="Path to the stack YAML")
    plan_parser.add_argument("--state", help="JSON written by 'pulumi stack export' (omit for an empty stack)")
    plan_parser.add_argument(
        "--detailed-exitcode", action="store_true",
        help="Exit with 2 when the plan has changes",
    )
    plan_parser.set_defaults(func=plan_command)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
