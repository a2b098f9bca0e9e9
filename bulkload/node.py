"""Bulk insert node: resolves inputs from the run context, loads them, reports back."""

import time
from dataclasses import dataclass
from typing import Any, List, Optional

from bulkload.config import BulkInsertConfig, ReturnMode, SourceKind
from bulkload.connections.sqlite import SqliteSession
from bulkload.context import RunContext
from bulkload.exceptions import BulkLoadException, ConfigValidationError
from bulkload.executor import BatchExecutor, InsertPlan
from bulkload.resolver import RowMapper, TypedValueResolver, auto_mapping
from bulkload.results import ExecutionSummary
from bulkload.utils.logging_context import get_logging_context


@dataclass
class NodeStatus:
    """Status indicator for the host: colour plus a short text."""

    fill: str = "grey"
    shape: str = "dot"
    text: str = ""


def normalize_records(records: Any) -> List[Any]:
    """None -> [], a single record -> [record], tuples -> lists."""
    if records is None:
        return []
    if isinstance(records, (list, tuple)):
        return list(records)
    return [records]


class BulkInsertNode:
    """
    Loads the records found in the run context into one SQLite table.

    Each :meth:`run` opens its own session and closes it on every exit path.
    The summary is written to ``config.output`` and, when a return mode is
    set, the returned rows to ``config.returning``.
    """

    def __init__(self, config: BulkInsertConfig):
        self.config = config
        self.status = NodeStatus()
        self.ctx = get_logging_context().with_context(
            node_name=config.name or "bulk-insert", table=config.table
        )

    def _set_status(self, fill: str, text: str, shape: str = "dot") -> None:
        self.status = NodeStatus(fill=fill, shape=shape, text=text)

    def _resolve_db_path(self, resolver: TypedValueResolver) -> str:
        conn = self.config.connection
        db_path = resolver.get_typed(conn.db_path_kind, conn.db_path)
        if not db_path or not isinstance(db_path, str):
            self._set_status("red", "invalid db path", shape="ring")
            raise ConfigValidationError("Invalid database path")
        return db_path

    def _resolve_records(self, resolver: TypedValueResolver) -> List[Any]:
        source = self.config.source
        records = resolver.get_typed(source.kind, source.value)
        if records is None and source.kind == SourceKind.MSG:
            records = resolver.context.message.get("payload")
        return normalize_records(records)

    def run(self, context: RunContext, db_path: Optional[str] = None) -> ExecutionSummary:
        """
        Execute one load.

        Args:
            context: Message, scope stores and environment for this run
            db_path: Overrides the configured database location

        Returns:
            ExecutionSummary of the run

        Raises:
            ConfigValidationError: Missing table, path or columns
            InvalidIdentifierError: Malformed table or column name
            ConnectionError: Database could not be opened
            BracketStatementError: pre-SQL or post-SQL failed
            ChunkAbortError: A row or chunk failed with continue_on_error off
        """
        try:
            resolver = TypedValueResolver(context)
            path = db_path or self._resolve_db_path(resolver)
            records = self._resolve_records(resolver)

            mapping = auto_mapping(records) if self.config.auto_map else list(self.config.mapping)
            if not mapping:
                self._set_status("red", "no columns", shape="ring")
                raise ConfigValidationError("No columns configured")
            if not self.config.table:
                raise ConfigValidationError("Table name is required")

            mapper = RowMapper(resolver, mapping)
            plan = InsertPlan(
                table=self.config.table,
                columns=mapper.columns,
                conflict=self.config.conflict,
                transaction=self.config.transaction,
                returning=self.config.returning,
            )

            session = SqliteSession(path, self.config.connection.pragmas)
            start_open = time.perf_counter()
            try:
                session.open()
                ms_open = (time.perf_counter() - start_open) * 1000
                summary = BatchExecutor(session, plan, mapper).execute(records)
            finally:
                session.close()
            summary.timings.ms_open = ms_open

            resolver.set_typed(self.config.output.scope, self.config.output.path, summary.to_dict())
            if self.config.returning.mode != ReturnMode.NONE:
                resolver.set_typed(
                    self.config.returning.scope,
                    self.config.returning.path,
                    summary.returned_payload(),
                )
        except BulkLoadException as e:
            if self.status.fill != "red":
                text = getattr(e, "message", None) or str(e).splitlines()[0]
                self._set_status("red", text, shape="ring")
            self.ctx.error("Bulk insert failed", error_type=type(e).__name__, error=str(e))
            raise

        c = summary.counts
        worst = "red" if c.errors else ("yellow" if c.updated else "green")
        self._set_status(worst, f"I:{c.inserted} U:{c.updated} S:{c.skipped} E:{c.errors}")
        return summary
