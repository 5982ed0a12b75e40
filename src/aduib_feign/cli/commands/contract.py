"""Contract command for aduib-feign.

Compiles a client type and prints its request templates.
"""
from __future__ import annotations

import argparse
import json
import sys
from typing import Final

from aduib_feign.config.models import import_string
from aduib_feign.contract.compiler import MvcContract
from aduib_feign.environment import Environment
from aduib_feign.exceptions import ContractError

__all__ = ["register_parser", "run"]

EXIT_SUCCESS: Final = 0
EXIT_ERROR: Final = 1
EXIT_INVALID_CONTRACT: Final = 2


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    parser = subparsers.add_parser(
        "contract",
        help="Compile client types and inspect their request templates.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  aduib-feign contract describe my_app.clients:UsersClient
  aduib-feign contract describe my_app.clients:UsersClient -p users.api=/v2
        """,
    )
    parser.set_defaults(handler=run)
    contract_subparsers = parser.add_subparsers(dest="subcommand", required=True)

    describe_parser = contract_subparsers.add_parser(
        "describe",
        help="Print the compiled templates of a client type as JSON.",
    )
    describe_parser.add_argument(
        "client",
        help="Client type as 'package.module:ClassName'.",
    )
    describe_parser.add_argument(
        "-p",
        "--property",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Placeholder value used while compiling (repeatable).",
    )


def _parse_properties(items: list[str]) -> dict[str, str]:
    properties: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got '{item}'")
        properties[key.strip()] = value
    return properties


def run(args: argparse.Namespace) -> int:
    if args.subcommand != "describe":
        print(f"Error: Unknown subcommand '{args.subcommand}'", file=sys.stderr)
        return EXIT_ERROR
    try:
        properties = _parse_properties(args.property)
        client_type = import_string(args.client)
    except (ImportError, AttributeError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    if not isinstance(client_type, type):
        print(f"Error: {args.client} is not a class", file=sys.stderr)
        return EXIT_ERROR

    contract = MvcContract(environment=Environment(properties))
    try:
        templates = contract.parse_and_validate_metadata(client_type)
    except ContractError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return EXIT_INVALID_CONTRACT
    payload = {
        "client": f"{client_type.__module__}:{client_type.__qualname__}",
        "templates": [template.describe() for template in templates],
    }
    print(json.dumps(payload, indent=2))
    return EXIT_SUCCESS
