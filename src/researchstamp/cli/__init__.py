"""
researchstamp CLI module.

Provides the command-line interface for fingerprinting and registration.
"""

from researchstamp.cli.main import main, create_parser
from researchstamp.cli.commands import (
    cmd_init,
    cmd_status,
    cmd_hash,
    cmd_fingerprint,
    cmd_submit,
    cmd_search,
    cmd_show,
    cmd_recent,
    cmd_activity,
    cmd_verify_file,
    cmd_export,
    cmd_fund,
    cmd_version,
)

__all__ = [
    "main",
    "create_parser",
    "cmd_init",
    "cmd_status",
    "cmd_hash",
    "cmd_fingerprint",
    "cmd_submit",
    "cmd_search",
    "cmd_show",
    "cmd_recent",
    "cmd_activity",
    "cmd_verify_file",
    "cmd_export",
    "cmd_fund",
    "cmd_version",
]
