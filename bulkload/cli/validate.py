"""Validate command implementation."""

import yaml

from bulkload.config import load_config_from_file
from bulkload.exceptions import BulkLoadException
from bulkload.statement import StatementBuilder


def validate_command(args):
    """Validate config file."""
    try:
        config = load_config_from_file(args.config, env=getattr(args, "env", None))
        if config.table and config.mapping:
            # Identifiers are checked the same way a run would check them.
            StatementBuilder(
                config.table,
                [m.column for m in config.mapping],
                config.conflict,
                config.returning.id_column,
            )
        print("Config is valid")
        return 0
    except (BulkLoadException, FileNotFoundError, ValueError, yaml.YAMLError) as e:
        print(f"Config validation failed: {e}")
        return 1
