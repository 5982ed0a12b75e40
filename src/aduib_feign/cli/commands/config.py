"""Config command for aduib-feign.

Validates client property files.
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Final

from aduib_feign.config.loader import load_properties_with_overrides
from aduib_feign.exceptions import PropertiesError

__all__ = ["register_parser", "run"]

EXIT_SUCCESS: Final = 0
EXIT_ERROR: Final = 1
EXIT_VALIDATION_FAILED: Final = 2


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the config command subparser.

    Args:
        subparsers: The argparse subparsers action to add to.
    """
    parser = subparsers.add_parser(
        "config",
        help="Validate aduib-feign property files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  aduib-feign config validate aduib_feign.yaml
  aduib-feign config validate base.yaml --override prod.yaml --verbose
        """,
    )
    parser.set_defaults(handler=run)
    config_subparsers = parser.add_subparsers(dest="subcommand", required=True)

    validate_parser = config_subparsers.add_parser(
        "validate",
        help="Validate a property file.",
    )
    validate_parser.add_argument(
        "config_file",
        type=Path,
        help="Path to the YAML property file to validate.",
    )
    validate_parser.add_argument(
        "--override",
        type=Path,
        action="append",
        default=[],
        help="Override file applied on top of the base file (repeatable).",
    )
    validate_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print the per-client settings that were found.",
    )


def run(args: argparse.Namespace) -> int:
    """Execute the config command.

    Returns:
        Exit code (0=success, 1=error, 2=validation failed).
    """
    if args.subcommand == "validate":
        return _run_validate(args)
    print(f"Error: Unknown subcommand '{args.subcommand}'", file=sys.stderr)
    return EXIT_ERROR


def _run_validate(args: argparse.Namespace) -> int:
    config_file: Path = args.config_file
    if not config_file.exists():
        print(f"Error: Property file not found: {config_file}", file=sys.stderr)
        return EXIT_ERROR
    try:
        properties = load_properties_with_overrides(config_file, *args.override)
    except PropertiesError as exc:
        print(f"✗ {exc.message}", file=sys.stderr)
        return EXIT_VALIDATION_FAILED

    print(f"✓ {config_file} is valid ({len(properties.config)} client entr{'y' if len(properties.config) == 1 else 'ies'})")
    if args.verbose:
        summary = {
            "default_to_properties": properties.default_to_properties,
            "default_config": properties.default_config,
            "refresh_enabled": properties.refresh_enabled,
            "clients": {
                name: {key: _describe(value) for key, value in vars(entry).items() if value is not None}
                for name, entry in properties.config.items()
            },
        }
        print(json.dumps(summary, indent=2))
    return EXIT_SUCCESS


def _describe(value: object) -> object:
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _describe(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_describe(item) for item in value]
    enum_value = getattr(value, "value", None)
    if isinstance(enum_value, str):
        return enum_value
    if isinstance(value, type):
        return f"{value.__module__}:{value.__qualname__}"
    return repr(value)
