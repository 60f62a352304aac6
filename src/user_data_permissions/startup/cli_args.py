# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

from __future__ import annotations
from argparse import ArgumentParser, Namespace
from pathlib import Path


class ParsedCommandLineArguments(Namespace):
    """Represents the parsed command-line arguments"""

    start_from: str | None = None
    skip_parent_permissions: bool | None = None
    debug: bool | None = None
    logs_dir: Path | None = None


def get_argument_parser() -> ArgumentParser:
    """Returns the command-line argument parser. Every argument overrides its configuration file
    setting; running without arguments uses the configuration as-is."""
    parser = ArgumentParser(
        prog="user-data-permissions",
        description=(
            "Resets the owner and permissions of every user directory below a user data root"
        ),
    )
    parser.add_argument(
        "--start-from",
        help="Name of the user directory to start from. Directories sorted before it are skipped.",
        default=None,
    )
    parser.add_argument(
        "--skip-parent-permissions",
        help="Leave the permissions of the user data root unchanged",
        dest="skip_parent_permissions",
        action="store_const",
        const=True,
        default=None,
    )
    parser.add_argument(
        "--debug",
        help="Log every file and directory that is processed",
        action="store_const",
        const=True,
        default=None,
    )
    parser.add_argument(
        "--logs-dir",
        help="Also write the log to a daily rotated file in this directory",
        default=None,
        type=Path,
    )
    return parser
