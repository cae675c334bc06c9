"""
Command-line interface for researchstamp.

This module provides the main entry point and argument parser for the
researchstamp CLI. All commands are implemented in the commands module.
"""

import argparse
import logging
import sys
from typing import Optional

from researchstamp import __version__
from researchstamp.config import Settings
from researchstamp.core.errors import DEFAULT_MESSAGE, ResearchStampError, user_message

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """
    Create the argument parser with all subcommands.

    Global options default to None so that unset ones fall back to the
    RESEARCHSTAMP_* environment settings.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="researchstamp",
        description="Fingerprint research data and register it once on a ledger",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"researchstamp {__version__}",
    )

    parser.add_argument(
        "--path",
        type=str,
        default=None,
        help="Path to the registry store (default: ./researchstamp.db)",
    )

    parser.add_argument(
        "--ledger-url",
        type=str,
        default=None,
        help="Ledger node URL (default: local ledger in the store)",
    )

    parser.add_argument(
        "--network",
        type=str,
        default=None,
        help="Ledger network name (default: testnet)",
    )

    parser.add_argument(
        "--identity",
        type=str,
        default=None,
        help="Researcher address used for submissions",
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-essential output",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands",
    )

    # init command
    subparsers.add_parser(
        "init",
        help="Initialize a new registry store",
    )

    # status command
    subparsers.add_parser(
        "status",
        help="Show registry statistics",
    )

    # hash command
    hash_parser = subparsers.add_parser(
        "hash",
        help="Compute the fingerprint of a file",
    )
    hash_parser.add_argument(
        "file",
        help="File to hash",
    )
    hash_parser.add_argument(
        "--metadata", "-m",
        action="store_true",
        help="Also show metadata and combined fingerprints",
    )

    # fingerprint command
    fingerprint_parser = subparsers.add_parser(
        "fingerprint",
        help="Combine several inputs into one order-independent fingerprint",
    )
    fingerprint_parser.add_argument(
        "inputs",
        nargs="+",
        help="Input strings",
    )

    # submit command
    submit_parser = subparsers.add_parser(
        "submit",
        help="Submit a data fingerprint to the ledger",
    )
    source = submit_parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--file", "-f",
        type=str,
        help="File to hash and submit",
    )
    source.add_argument(
        "--hash",
        type=str,
        dest="data_hash",
        help="Precomputed data hash to submit",
    )
    submit_parser.add_argument(
        "--description", "-d",
        type=str,
        required=True,
        help="Description of the research data (10-500 characters)",
    )

    # search command
    search_parser = subparsers.add_parser(
        "search",
        help="Search records by address or data hash",
    )
    search_parser.add_argument(
        "term",
        help="Substring to look for (case-insensitive)",
    )

    # show command
    show_parser = subparsers.add_parser(
        "show",
        help="Show the record of a researcher",
    )
    show_parser.add_argument(
        "address",
        help="Researcher address",
    )
    show_parser.add_argument(
        "--remote", "-r",
        action="store_true",
        help="Fetch from the ledger and refresh the local registry",
    )

    # recent command
    recent_parser = subparsers.add_parser(
        "recent",
        help="List the most recent submissions",
    )
    recent_parser.add_argument(
        "--limit", "-n",
        type=int,
        default=10,
        help="Maximum number of records to show (default: 10)",
    )

    # activity command
    activity_parser = subparsers.add_parser(
        "activity",
        help="Show submissions per day",
    )
    activity_parser.add_argument(
        "--days",
        type=int,
        default=7,
        help="Number of days to show (default: 7)",
    )

    # verify-file command
    verify_parser = subparsers.add_parser(
        "verify-file",
        help="Check a file against a researcher's registered fingerprint",
    )
    verify_parser.add_argument(
        "file",
        help="File to check",
    )
    verify_parser.add_argument(
        "address",
        help="Researcher address",
    )

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export the registry",
    )
    export_parser.add_argument(
        "--format", "-f",
        choices=["json", "jsonl", "csv"],
        default="json",
        help="Export format (default: json)",
    )
    export_parser.add_argument(
        "--output", "-o",
        type=str,
        help="Output file path (required for jsonl and csv, default: stdout for json)",
    )

    # fund command
    fund_parser = subparsers.add_parser(
        "fund",
        help="Fund an identity with test tokens (development networks only)",
    )
    fund_parser.add_argument(
        "address",
        help="Researcher address",
    )

    # version command
    subparsers.add_parser(
        "version",
        help="Show version information",
    )

    return parser


def resolve_settings(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    """Overlay command-line options on environment settings."""
    settings = base or Settings.from_env()
    overrides = {
        "store": args.path,
        "ledger_url": args.ledger_url,
        "network": args.network,
        "identity": args.identity,
    }
    values = settings.to_dict()
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (uses sys.argv if None).

    Returns:
        Exit code (0 for success, 1 for error, 2 for not found or mismatch).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        args.settings = resolve_settings(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, args.settings.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Import commands module here to avoid circular imports
    from researchstamp.cli import commands

    # Map commands to functions
    command_map = {
        "init": commands.cmd_init,
        "status": commands.cmd_status,
        "hash": commands.cmd_hash,
        "fingerprint": commands.cmd_fingerprint,
        "submit": commands.cmd_submit,
        "search": commands.cmd_search,
        "show": commands.cmd_show,
        "recent": commands.cmd_recent,
        "activity": commands.cmd_activity,
        "verify-file": commands.cmd_verify_file,
        "export": commands.cmd_export,
        "fund": commands.cmd_fund,
        "version": commands.cmd_version,
    }

    cmd_func = command_map.get(args.command)
    if cmd_func is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return cmd_func(args)
    except ResearchStampError as e:
        print(f"Error: {user_message(e)}", file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception:
        logger.exception("Unhandled error in command %s", args.command)
        print(f"Error: {DEFAULT_MESSAGE}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
