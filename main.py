#!/usr/bin/env python3
"""
file2link server - chat uploads to HTTP links, gated by a permissions file.

Runs the HTTP server together with the permissions refresh scheduler and the
control pipe listener used by `f2l-cli`.
"""

import argparse
import sys

#
# NOTE: Keep file2link imports lazy (inside main) so `--help` stays fast and
# does not need the server dependencies installed.
#


def main():
    """Server entry point."""
    parser = argparse.ArgumentParser(
        description="Run the file2link server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve with settings from the environment / .env
  python main.py

  # Reload config/permissions.json every 5 minutes
  python main.py --refresh-seconds 300

  # Custom control pipe (same path must be given to f2l-cli --path)
  python main.py --pipe-path /run/file2link.pipe
        """,
    )
    parser.add_argument("--host", help="Bind host (default: SERVER_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Listen port (default: SERVER_PORT or 8080)")
    parser.add_argument("--config", help="Permissions file (default: PERMISSIONS_PATH or config/permissions.json)")
    parser.add_argument("--pipe-path", help="Control FIFO path (default: F2L_PIPE_PATH or /tmp/file2link.pipe)")
    parser.add_argument(
        "--refresh-seconds",
        type=int,
        help="Permissions refresh interval in seconds, 0 disables (default: PERMISSIONS_REFRESH_SECONDS or 0)",
    )
    parser.add_argument("--env-file", default=".env", help="dotenv file to load if present (default: .env)")

    args = parser.parse_args()

    from file2link.api.server import run
    from file2link.config import load_app_config, load_env

    load_env(args.env_file)
    config = load_app_config().with_overrides(
        permissions_path=args.config,
        pipe_path=args.pipe_path,
        server_host=args.host,
        server_port=args.port,
        refresh_interval_seconds=max(0, args.refresh_seconds) if args.refresh_seconds is not None else None,
    )
    sys.exit(run(config))


if __name__ == "__main__":
    main()
