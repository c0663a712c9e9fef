"""
CLI entry point for the Snowflake writer.

Usage:
    python -m snowflake_writer.cli --data /data [command]

Available commands:
    run              - Load every exported table (default when config.yml says so)
    test-connection  - Open a session, verify warehouse and schema, then exit

Exit codes:
    0  success
    1  user error (configuration, credentials, data or schema mismatch)
    2  application error
"""

import argparse
import json
import sys
from typing import List, Optional

from snowflake_writer.cli.executors import Application
from snowflake_writer.exceptions import UserError
from snowflake_writer.utils.logging import get_logger

logger = get_logger(__name__)

COMMANDS = {
    "run": "run",
    "test-connection": "testConnection",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snowflake_writer.cli",
        description="Snowflake writer - load staged CSV tables into Snowflake",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the action configured in /data/config.yml
  python -m snowflake_writer.cli --data /data

  # Only verify credentials, warehouse and schema
  python -m snowflake_writer.cli --data /data test-connection
        """,
    )
    parser.add_argument(
        "--data",
        required=True,
        help="Data directory holding config.yml and in/tables/*.manifest",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=sorted(COMMANDS),
        help="Action to execute (defaults to the action in config.yml)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for user errors, 2 for application errors)
    """
    args = build_parser().parse_args(argv)
    action = COMMANDS[args.command] if args.command else None

    try:
        result = Application(args.data).execute(action)
    except UserError as e:
        logger.error("cli.user_error", **e.to_dict())
        print(str(e), file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("cli.application_error", error=str(e))
        return 2

    print(json.dumps(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
