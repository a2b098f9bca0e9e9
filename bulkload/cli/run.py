"""Run command implementation."""

import json
from pathlib import Path

import yaml

from bulkload.config import load_config_from_file
from bulkload.context import RunContext
from bulkload.exceptions import BulkLoadException
from bulkload.node import BulkInsertNode
from bulkload.utils.logging import configure_logging


def _read_records(path: str):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def run_command(args):
    """Load the records in ``args.input`` using the config in ``args.config``."""
    try:
        config = load_config_from_file(args.config, env=getattr(args, "env", None))
    except (BulkLoadException, FileNotFoundError, ValueError, yaml.YAMLError) as e:
        print(f"Config loading failed: {e}")
        return 1

    log = configure_logging(
        structured=bool(getattr(args, "structured", False)) or config.logging.structured,
        level=getattr(args, "log_level", None) or config.logging.level.value,
    )

    try:
        records = _read_records(args.input)
    except (OSError, ValueError) as e:
        log.error("Could not read input", path=str(args.input), error=str(e))
        return 1

    db_path = getattr(args, "db", None)
    if db_path:
        db_path = str(Path(db_path))

    node = BulkInsertNode(config)
    try:
        summary = node.run(RunContext(message={"payload": records}), db_path=db_path)
    except BulkLoadException as e:
        log.error(str(e))
        suggestions = getattr(e, "suggestions", [])
        if suggestions:
            log.info("💡 Suggestions:")
            for suggestion in suggestions:
                log.info(f"   - {suggestion}")
        partial = getattr(e, "summary", None)
        if partial is not None:
            print(json.dumps(partial.to_dict(), indent=2, default=str))
        return 1

    print(json.dumps(summary.to_dict(), indent=2, default=str))
    return 0 if summary.ok else 1
