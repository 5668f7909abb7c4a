"""
f2l-cli: management tool for a running file2link server.

Commands are written into the server's control pipe; the server does not
answer, so a zero exit status means the command was delivered, not that the
reload succeeded (check the server log for that).
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from file2link.config import DEFAULT_PERMISSIONS_PATH, DEFAULT_PIPE_PATH, PIPE_PATH_ENV
from file2link.control.client import send_command
from file2link.control.protocol import ControlCommand
from file2link.errors import ChannelError, ConfigError

logger = logging.getLogger(__name__)

_COMMANDS = {
    "update-permissions": ControlCommand.RELOAD,
    "shutdown": ControlCommand.SHUTDOWN,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="f2l-cli",
        description="CLI tool for file2link",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Re-read config/permissions.json in the running server
  f2l-cli update-permissions

  # Validate a permissions file before reloading
  f2l-cli check --config config/permissions.json

  # Stop the server
  f2l-cli --path /run/file2link.pipe shutdown
        """,
    )
    parser.add_argument(
        "--path",
        default=os.getenv(PIPE_PATH_ENV) or DEFAULT_PIPE_PATH,
        help=f"Path to the FIFO (default: {DEFAULT_PIPE_PATH}, env: {PIPE_PATH_ENV})",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("update-permissions", help="Updates the permissions from the config file")
    sub.add_parser("shutdown", help="Shutting down the system")
    check = sub.add_parser("check", help="Parse a permissions file and print the normalized rules")
    check.add_argument(
        "--config",
        default=os.getenv("PERMISSIONS_PATH") or DEFAULT_PERMISSIONS_PATH,
        help=f"Permissions file (default: {DEFAULT_PERMISSIONS_PATH}, env: PERMISSIONS_PATH)",
    )
    return parser


def _check(path: str) -> int:
    from file2link.permissions.parser import PolicyDocument, read_policy_file

    try:
        policy = read_policy_file(path)
    except ConfigError as e:
        logger.error("Invalid permissions file %s: %s", path, e)
        return 1
    print(json.dumps(PolicyDocument.from_policy(policy).model_dump(mode="json"), indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.command == "check":
        return _check(args.config)

    command = _COMMANDS[args.command]
    try:
        send_command(args.path, command)
    except ChannelError as e:
        logger.error("Failed to send command '%s': %s", command.value, e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
