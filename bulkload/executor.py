"""Runs the insert statement over every row under a transaction policy.

A run moves through ``idle -> pre_hook -> running -> post_hook -> done``
(or ``failed``). Rows are executed strictly in input order, one round trip
at a time. How each row's result is captured is decided once per run:

* :class:`ReturningCapture` reads the row back through ``RETURNING``;
* :class:`ChangeCountCapture` infers the outcome from the change count and
  the last generated rowid, for engines without ``RETURNING``.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from bulkload.capability import detect_returning_support
from bulkload.config import (
    ConflictPolicy,
    ConflictStrategy,
    ReturnMode,
    ReturnPolicy,
    TransactionMode,
    TransactionPolicy,
)
from bulkload.exceptions import (
    BracketStatementError,
    BulkLoadException,
    ChunkAbortError,
    ConnectionError,
    RowExecutionError,
)
from bulkload.results import (
    ChunkLedger,
    ExecutionCounts,
    ExecutionSummary,
    ResultReconciler,
    RowOutcome,
)
from bulkload.statement import StatementBuilder
from bulkload.utils.logging_context import OperationType, get_logging_context

IndexedRow = Tuple[int, Any]

# sqlite3 raises OverflowError for out-of-range integers while binding,
# before SQLAlchemy gets a chance to wrap it.
ROW_ERRORS = (SQLAlchemyError, OverflowError)


class ExecutorState(str, Enum):
    IDLE = "idle"
    PRE_HOOK = "pre_hook"
    RUNNING = "running"
    POST_HOOK = "post_hook"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class InsertPlan:
    """Everything the executor needs to know about the target and policies."""

    table: str
    columns: List[str]
    conflict: ConflictPolicy = field(default_factory=ConflictPolicy)
    transaction: TransactionPolicy = field(default_factory=TransactionPolicy)
    returning: ReturnPolicy = field(default_factory=ReturnPolicy)


def describe_error(error: BaseException) -> str:
    """Driver message without SQLAlchemy's statement dump."""
    original = getattr(error, "orig", None)
    return str(original if original is not None else error)


class CaptureStrategy(ABC):
    """Executes one row and reports its outcome."""

    def __init__(
        self,
        session,
        builder: StatementBuilder,
        sql: str,
        reconciler: ResultReconciler,
        plan: InsertPlan,
    ):
        self.session = session
        self.builder = builder
        self.sql = sql
        self.reconciler = reconciler
        self.plan = plan

    def prime(self) -> None:
        """Hook run once before the first row."""

    @abstractmethod
    def execute_row(self, index: int, params: Mapping[str, Any]) -> RowOutcome:
        """Run the statement for one row; database errors propagate."""


class ReturningCapture(CaptureStrategy):
    """One result row means the row was written; none means it was skipped."""

    def execute_row(self, index: int, params: Mapping[str, Any]) -> RowOutcome:
        row = self.session.execute(self.sql, dict(params)).first()
        returned = row._mapping if row is not None else None
        return self.reconciler.from_returning(index, params, returned)


class ChangeCountCapture(CaptureStrategy):
    """Infers the outcome from the change count and the last generated rowid.

    SQLite keeps reporting the previous rowid after an update, so a rowid only
    counts as freshly generated when it differs from the last one seen.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._last_seen_id: Optional[int] = None
        self._upsert = self.plan.conflict.strategy == ConflictStrategy.UPSERT
        keys = self.plan.conflict.keys
        self._lookup_sql: Optional[str] = None
        if (
            self._upsert
            and self.plan.returning.mode == ReturnMode.AFFECTED
            and keys
            and all(k in self.plan.columns for k in keys)
        ):
            self._lookup_sql = self.builder.build_key_lookup()

    def prime(self) -> None:
        if self._upsert:
            self._last_seen_id = self.session.scalar("SELECT last_insert_rowid()")

    def _lookup_id(self, params: Mapping[str, Any]) -> Any:
        try:
            row = self.session.execute(
                self._lookup_sql, {k: params.get(k) for k in self.plan.conflict.keys}
            ).first()
        except SQLAlchemyError as e:
            get_logging_context().warning(
                "Id lookup for updated row failed", error=describe_error(e)
            )
            return None
        return row._mapping["id"] if row is not None else None

    def execute_row(self, index: int, params: Mapping[str, Any]) -> RowOutcome:
        result = self.session.execute(self.sql, dict(params))
        changes = result.rowcount
        last_id = result.lastrowid

        inserted_id = None
        if changes:
            if not self._upsert:
                inserted_id = last_id or None
            elif last_id and last_id != self._last_seen_id:
                inserted_id = last_id
        if last_id:
            self._last_seen_id = last_id

        updated_id = None
        if changes and inserted_id is None and self._lookup_sql:
            updated_id = self._lookup_id(params)

        return self.reconciler.from_changes(
            index, params, changes, inserted_id=inserted_id, updated_id=updated_id
        )


def select_capture_strategy(
    session, builder: StatementBuilder, plan: InsertPlan, reconciler: ResultReconciler
) -> CaptureStrategy:
    """Pick the capture path for the whole run."""
    use_returning = plan.returning.mode != ReturnMode.NONE and detect_returning_support(session)
    sql = builder.build(use_returning=use_returning)
    strategy_cls = ReturningCapture if use_returning else ChangeCountCapture
    return strategy_cls(session, builder, sql, reconciler, plan)


class BatchExecutor:
    """
    Applies one insert statement to a sequence of records.

    Args:
        session: Open SqliteSession (or anything with the same methods)
        plan: Target table, columns and policies
        mapper: Turns a record into its ``{column: value}`` parameters
    """

    def __init__(self, session, plan: InsertPlan, mapper: Callable[[Any], Dict[str, Any]]):
        self.session = session
        self.plan = plan
        self.mapper = mapper
        self.state = ExecutorState.IDLE
        self.ctx = get_logging_context().with_context(table=plan.table)

    def _transition(self, state: ExecutorState) -> None:
        self.ctx.debug("Executor state", previous=self.state.value, state=state.value)
        self.state = state

    def _bracket(self, phase: str, sql: Optional[str]) -> None:
        if not sql or not sql.strip():
            return
        with self.ctx.operation(OperationType.BRACKET, f"{phase}-SQL"):
            try:
                self.session.execute_script(sql)
            except SQLAlchemyError as e:
                raise BracketStatementError(phase, sql, e) from e

    def execute(self, records: Sequence[Any]) -> ExecutionSummary:
        """Run every record; returns the summary or raises with it attached."""
        # Validates every identifier before anything touches the database.
        builder = StatementBuilder(
            self.plan.table,
            self.plan.columns,
            self.plan.conflict,
            self.plan.returning.id_column,
        )
        reconciler = ResultReconciler(self.plan.conflict.strategy, self.plan.columns)
        summary = ExecutionSummary(
            table=self.plan.table,
            return_mode=self.plan.returning.mode,
            counts=ExecutionCounts(total=len(records)),
        )

        start_total = time.perf_counter()
        try:
            self._transition(ExecutorState.PRE_HOOK)
            self._bracket("pre", self.plan.transaction.pre_sql)

            self._transition(ExecutorState.RUNNING)
            capture = select_capture_strategy(self.session, builder, self.plan, reconciler)
            capture.prime()
            self.ctx.debug(
                "Prepared statement",
                capture=type(capture).__name__,
                mode=self.plan.transaction.mode.value,
                rows=len(records),
            )

            start_exec = time.perf_counter()
            try:
                with self.ctx.operation(OperationType.EXECUTE, "rows", rows_in=len(records)):
                    self._run(list(enumerate(records)), capture, reconciler, summary)
            finally:
                summary.timings.ms_exec = (time.perf_counter() - start_exec) * 1000

            self._transition(ExecutorState.POST_HOOK)
            self._bracket("post", self.plan.transaction.post_sql)
        except SQLAlchemyError as e:
            self._fail(summary, start_total)
            raise ConnectionError(
                connection_name=f"SQLite({self.plan.table})",
                reason=f"Statement preparation failed: {describe_error(e)}",
            ) from e
        except BulkLoadException as e:
            self._fail(summary, start_total)
            e.summary = summary
            raise
        except Exception:
            self._fail(summary, start_total)
            raise

        summary.timings.ms_total = (time.perf_counter() - start_total) * 1000
        self._transition(ExecutorState.DONE)
        c = summary.counts
        self.ctx.info(
            "Bulk insert completed",
            inserted=c.inserted,
            updated=c.updated,
            skipped=c.skipped,
            errors=c.errors,
            total=c.total,
        )
        return summary

    def _fail(self, summary: ExecutionSummary, start_total: float) -> None:
        summary.aborted = True
        summary.timings.ms_total = (time.perf_counter() - start_total) * 1000
        self._transition(ExecutorState.FAILED)

    def _run(
        self,
        rows: List[IndexedRow],
        capture: CaptureStrategy,
        reconciler: ResultReconciler,
        summary: ExecutionSummary,
    ) -> None:
        tx = self.plan.transaction
        if tx.mode == TransactionMode.NONE:
            ledger = ChunkLedger()
            try:
                self._run_rows(rows, capture, reconciler, ledger)
            except RowExecutionError as e:
                # Without a transaction every executed row is already durable.
                summary.absorb(ledger)
                raise ChunkAbortError(
                    describe_error(e.original_error), 0, e.row_index, summary
                ) from e
            summary.absorb(ledger)
            return

        size = tx.chunk_size if tx.mode == TransactionMode.CHUNKED else max(len(rows), 1)
        for chunk_index, start in enumerate(range(0, len(rows), size)):
            self._run_chunk(chunk_index, rows[start : start + size], capture, reconciler, summary)

    def _run_chunk(
        self,
        chunk_index: int,
        batch: List[IndexedRow],
        capture: CaptureStrategy,
        reconciler: ResultReconciler,
        summary: ExecutionSummary,
    ) -> None:
        tx = self.plan.transaction
        ledger = ChunkLedger()
        with self.ctx.operation(OperationType.CHUNK, f"chunk {chunk_index}", rows_in=len(batch)):
            try:
                self.session.begin()
                self._run_rows(batch, capture, reconciler, ledger)
                self.session.commit()
            except RowExecutionError as e:
                self._rollback()
                summary.discard(ledger, tolerated=False)
                raise ChunkAbortError(
                    describe_error(e.original_error), chunk_index, e.row_index, summary
                ) from e
            except SQLAlchemyError as e:
                self._rollback()
                if tx.continue_on_error and tx.mode == TransactionMode.CHUNKED:
                    reason = f"chunk {chunk_index} rolled back: {describe_error(e)}"
                    self.ctx.warning(
                        "Chunk rolled back, continuing",
                        chunk=chunk_index,
                        error=describe_error(e),
                    )
                    summary.discard(ledger, tolerated=True, reason=reason)
                    for index, _ in batch[len(ledger) :]:
                        summary.record_error(index, reason)
                    return
                summary.discard(ledger, tolerated=False)
                raise ChunkAbortError(describe_error(e), chunk_index, None, summary) from e
            except Exception:
                self._rollback()
                summary.discard(ledger, tolerated=False)
                raise
        summary.absorb(ledger)

    def _run_rows(
        self,
        batch: List[IndexedRow],
        capture: CaptureStrategy,
        reconciler: ResultReconciler,
        ledger: ChunkLedger,
    ) -> None:
        continue_on_error = self.plan.transaction.continue_on_error
        for index, record in batch:
            params = self.mapper(record)
            try:
                outcome = capture.execute_row(index, params)
            except ROW_ERRORS as e:
                ledger.add(reconciler.from_error(index, params, describe_error(e)))
                if not continue_on_error:
                    raise RowExecutionError(index, e) from e
                self.ctx.warning("Row failed, continuing", row=index, error=describe_error(e))
                continue
            ledger.add(outcome)

    def _rollback(self) -> None:
        try:
            self.session.rollback()
        except SQLAlchemyError as e:
            self.ctx.warning("Rollback failed", error=describe_error(e))
