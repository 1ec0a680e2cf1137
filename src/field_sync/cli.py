"""Command-line entry point: inspect and validate sync configuration.

The sync core itself never runs from here (exchanges are supplied by the
embedding application); the CLI checks that mapping manuals load and
shows what a run would ask each side for.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .config_loader import load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, build_mapping_manual
from .logger import setup_logging
from .sync.errors import DuplicateMappingError
from .sync.mapping import MappingManual, Side
from .sync.process import build_requests

logger = logging.getLogger(__name__)


def _load(config_path: str | None) -> UnifiedConfig:
    explicit = Path(config_path) if config_path else None
    if explicit is not None and not explicit.exists():
        raise FileNotFoundError(f"Config file not found: {explicit}")
    return build_config(load_hierarchical_config(explicit))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_validate(config: UnifiedConfig) -> int:
    """Build every manual; return the process exit code."""
    if not config.integrations:
        print("No integrations configured.", file=sys.stderr)
        return 0

    failed = 0
    for name, profile in config.integrations.items():
        try:
            manual = build_mapping_manual(name, profile)
        except DuplicateMappingError as exc:
            print(f"{name}: {exc}", file=sys.stderr)
            failed += 1
            continue
        print(f"{name}: {len(manual)} mappings, judge={profile.judge}")
    return 1 if failed else 0


def _manual_to_dict(manual: MappingManual) -> dict:
    requests = build_requests(manual, None)
    return {
        "integration": manual.integration,
        "mappings": [m.model_dump() for m in manual],
        "requests": {
            side.value: [
                {"entity": obj.entity, "fields": list(obj.fields)}
                for obj in requests[side].objects
            ]
            for side in Side
        },
    }


def cmd_show(config: UnifiedConfig, name: str, as_json: bool) -> int:
    """Print the mapping table of integration *name*."""
    profile = config.integrations.get(name)
    if profile is None:
        known = ", ".join(sorted(config.integrations)) or "none"
        print(
            f"Unknown integration '{name}' (configured: {known})",
            file=sys.stderr,
        )
        return 1

    try:
        manual = build_mapping_manual(name, profile)
    except DuplicateMappingError as exc:
        print(f"{name}: {exc}", file=sys.stderr)
        return 1

    if as_json:
        print(json.dumps(_manual_to_dict(manual), indent=2))
        return 0

    print(f"Integration '{name}' (judge={profile.judge})")
    print("")
    for mapping in manual:
        internal = mapping.ref(Side.INTERNAL)
        integration = mapping.ref(Side.INTEGRATION)
        print(
            f"  {internal.entity}.{internal.field}"
            f" <-> {integration.entity}.{integration.field}"
        )
    requests = build_requests(manual, None)
    for side in Side:
        print("")
        print(f"Request to {side.value} side:")
        for obj in requests[side].objects:
            print(f"  {obj.entity}: {', '.join(obj.fields)}")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="field-sync",
        description="field-sync - inspect bidirectional field sync configuration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check every configured integration
  field-sync validate

  # Use an explicit config file
  field-sync validate --config ./sync.yml

  # Show the mapping table of one integration
  field-sync show crm

  # Machine-readable output
  field-sync show crm --json

Config discovery: FIELD_SYNC_CONFIG, ./.field_sync/config.yml,
~/.config/field_sync/config.yml. Variables from a .env file are loaded
first and may be referenced as ${VAR} in config values.
        """,
    )
    parser.add_argument(
        "--config",
        help="Config file path (takes precedence over discovered files)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"field-sync version {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser(
        "validate", help="Load config and build every mapping manual"
    )
    show = subparsers.add_parser(
        "show", help="Print the mapping table of one integration"
    )
    show.add_argument("name", help="Integration name")
    show.add_argument("--json", action="store_true", help="Output JSON")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return its exit code."""
    args = build_parser().parse_args(argv)
    load_dotenv()

    try:
        config = _load(args.config)
    except ValidationError as exc:
        setup_logging(debug=args.debug)
        print(f"Invalid configuration:\n{exc}", file=sys.stderr)
        return 1
    except (OSError, ValueError, yaml.YAMLError) as exc:
        setup_logging(debug=args.debug)
        print(f"Cannot load configuration: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        debug=args.debug,
        log_file=config.logging.file,
        level=config.logging.level,
    )
    logger.debug("Loaded %d integration(s)", len(config.integrations))

    if args.command == "validate":
        return cmd_validate(config)
    return cmd_show(config, args.name, args.json)


def run() -> None:
    """Entry point that handles errors gracefully."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
