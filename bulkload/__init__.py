"""bulkload - bulk insert, ignore, replace and upsert of records into SQLite."""

__version__ = "0.3.0"

from bulkload.config import BulkInsertConfig, load_config_from_file
from bulkload.context import RunContext, ScopeStore
from bulkload.executor import BatchExecutor, InsertPlan
from bulkload.node import BulkInsertNode
from bulkload.results import ExecutionSummary, RowOutcome

__all__ = [
    "BulkInsertConfig",
    "BulkInsertNode",
    "BatchExecutor",
    "ExecutionSummary",
    "InsertPlan",
    "RowOutcome",
    "RunContext",
    "ScopeStore",
    "load_config_from_file",
    "__version__",
]
