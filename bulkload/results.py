"""Per-row outcomes and the run summary."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from bulkload.config import ConflictStrategy, ReturnMode
from bulkload.statement import RETURNED_ID


class RowAction(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass(frozen=True)
class RowOutcome:
    """What happened to one input row."""

    index: int
    action: RowAction
    id: Any = None
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action.value, "id": self.id, "data": dict(self.data)}


@dataclass
class ExecutionCounts:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    total: int = 0
    # Rows that succeeded but were undone by a chunk rollback.
    rolled_back: int = 0

    @property
    def accounted(self) -> int:
        return self.inserted + self.updated + self.skipped + self.errors


@dataclass
class Timings:
    ms_open: float = 0.0
    ms_exec: float = 0.0
    ms_total: float = 0.0


@dataclass
class RowFailure:
    index: int
    message: str


class ResultReconciler:
    """Normalizes what either capture path observed into a RowOutcome.

    With ``strategy=upsert`` a RETURNING row cannot tell an insert from an
    update-on-conflict, so every returned row is reported as ``updated``.
    """

    def __init__(self, strategy: ConflictStrategy, columns: Sequence[str]):
        self.strategy = strategy
        self.columns = list(columns)

    def from_returning(
        self, index: int, params: Mapping[str, Any], returned: Optional[Mapping[str, Any]]
    ) -> RowOutcome:
        if returned is None:
            return RowOutcome(index, RowAction.SKIPPED, data=dict(params))
        data = {c: returned.get(c, params.get(c)) for c in self.columns}
        if self.strategy == ConflictStrategy.UPSERT:
            action = RowAction.UPDATED
        else:
            action = RowAction.INSERTED
        return RowOutcome(index, action, id=returned.get(RETURNED_ID), data=data)

    def from_changes(
        self,
        index: int,
        params: Mapping[str, Any],
        changes: int,
        inserted_id: Any = None,
        updated_id: Any = None,
    ) -> RowOutcome:
        data = dict(params)
        if not changes:
            return RowOutcome(index, RowAction.SKIPPED, data=data)
        if inserted_id is not None:
            return RowOutcome(index, RowAction.INSERTED, id=inserted_id, data=data)
        if self.strategy == ConflictStrategy.UPSERT:
            return RowOutcome(index, RowAction.UPDATED, id=updated_id, data=data)
        return RowOutcome(index, RowAction.INSERTED, data=data)

    def from_error(self, index: int, params: Mapping[str, Any], error: Any) -> RowOutcome:
        return RowOutcome(index, RowAction.ERRORED, data=dict(params), error=str(error))


class ChunkLedger:
    """Outcomes of one transaction scope, held until it commits or rolls back."""

    def __init__(self) -> None:
        self.outcomes: List[RowOutcome] = []

    def add(self, outcome: RowOutcome) -> None:
        self.outcomes.append(outcome)

    def __len__(self) -> int:
        return len(self.outcomes)


@dataclass
class ExecutionSummary:
    """Aggregate result of one run."""

    table: str = ""
    return_mode: ReturnMode = ReturnMode.NONE
    counts: ExecutionCounts = field(default_factory=ExecutionCounts)
    first_id: Any = None
    last_id: Any = None
    returned_rows: List[RowOutcome] = field(default_factory=list)
    failures: List[RowFailure] = field(default_factory=list)
    timings: Timings = field(default_factory=Timings)
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return self.counts.errors == 0 and not self.aborted

    def _wants(self, outcome: RowOutcome) -> bool:
        if self.return_mode == ReturnMode.INSERTED:
            return outcome.action == RowAction.INSERTED
        if self.return_mode == ReturnMode.AFFECTED:
            return outcome.action in (RowAction.INSERTED, RowAction.UPDATED)
        return False

    def _record(self, outcome: RowOutcome) -> None:
        if outcome.action == RowAction.INSERTED:
            self.counts.inserted += 1
        elif outcome.action == RowAction.UPDATED:
            self.counts.updated += 1
        elif outcome.action == RowAction.SKIPPED:
            self.counts.skipped += 1
        else:
            self.counts.errors += 1
            self.failures.append(RowFailure(outcome.index, outcome.error or ""))
            return

        if outcome.id is not None:
            if self.first_id is None:
                self.first_id = outcome.id
            self.last_id = outcome.id
        if self._wants(outcome):
            self.returned_rows.append(outcome)

    def absorb(self, ledger: ChunkLedger) -> None:
        """Record a committed (or non-transactional) scope."""
        for outcome in ledger.outcomes:
            self._record(outcome)

    def record_error(self, index: int, message: str) -> None:
        """Count a row that was never attempted because its scope failed."""
        self._record(RowOutcome(index, RowAction.ERRORED, error=message))

    def discard(self, ledger: ChunkLedger, tolerated: bool, reason: str = "rolled back") -> None:
        """Record a rolled-back scope.

        Row errors are kept. Successful rows are counted as rolled back, and
        also as errors when the run carries on past the rollback.
        """
        for outcome in ledger.outcomes:
            if outcome.action == RowAction.ERRORED:
                self._record(outcome)
                continue
            self.counts.rolled_back += 1
            if tolerated:
                self._record(
                    RowOutcome(outcome.index, RowAction.ERRORED, data=outcome.data, error=reason)
                )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "table": self.table,
            "counts": asdict(self.counts),
            "first_id": self.first_id,
            "last_id": self.last_id,
            "timings": asdict(self.timings),
            "failures": [asdict(f) for f in self.failures],
        }

    def returned_payload(self) -> List[Dict[str, Any]]:
        return [outcome.to_dict() for outcome in self.returned_rows]
