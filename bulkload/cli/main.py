"""Main CLI entry point."""

import argparse
import sys

from bulkload.cli.run import run_command
from bulkload.cli.validate import validate_command


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Bulk-load records into SQLite",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bulkload run load.yaml --input rows.json         Load rows.json
  bulkload run load.yaml --input rows.json --env prod
  bulkload validate load.yaml                      Validate configuration
        """,
    )

    # Global arguments
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging verbosity (default: from config, else INFO)",
    )
    parser.add_argument(
        "--structured", action="store_true", help="Emit JSON log lines instead of rich output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # bulkload run
    run_parser = subparsers.add_parser("run", help="Load records into the configured table")
    run_parser.add_argument("config", help="Path to YAML config file")
    run_parser.add_argument(
        "--input", required=True, help="JSON file with the records (list or single object)"
    )
    run_parser.add_argument("--env", default=None, help="Environment override to apply")
    run_parser.add_argument("--db", default=None, help="Database path, overrides the config")

    # bulkload validate
    validate_parser = subparsers.add_parser("validate", help="Validate config")
    validate_parser.add_argument("config", help="Path to YAML config file")
    validate_parser.add_argument("--env", default=None, help="Environment override to apply")

    args = parser.parse_args()

    if args.command == "run":
        return run_command(args)
    elif args.command == "validate":
        return validate_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
