"""comfysync CLI.

Usage:
    comfysync status                  # Show configuration and backend status
    comfysync connect                 # Connect and sync the catalog
    comfysync list <category> [-r]    # List a category (local, or with backend entries)
    comfysync headers list|set|remove # Manage auth headers
    comfysync config show|set-host    # Show or change configuration
    comfysync upload <file>           # Upload an input image
"""

from __future__ import annotations

import argparse

from . import __version__
from .commands import add_commands, run_command
from .logging_config import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="comfysync",
        description="comfysync: keep a local catalog in sync with a ComfyUI backend",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Console log level (default: WARNING)",
    )
    parser.add_argument("--log-file", help="Also write JSON Lines diagnostics to this file")

    sub = parser.add_subparsers(dest="subcmd")
    add_commands(sub)

    args = parser.parse_args()

    setup_logging(args.log_level, jsonl_file=args.log_file)

    result = run_command(args)
    if result == -1:
        parser.print_help()
        raise SystemExit(1)
    raise SystemExit(result)


if __name__ == "__main__":
    main()
