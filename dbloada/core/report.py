"""Load reports: per-table outcomes and the run-level status."""

import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class TableStatus(str, Enum):
    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    HARD_FAILURE = "hard_failure"

    def exit_code(self, strict: bool = False) -> int:
        """Process exit code for this status.

        Partial success exits 0 unless ``strict`` is set, then 2.
        """
        if self == RunStatus.HARD_FAILURE:
            return 1
        if self == RunStatus.PARTIAL_SUCCESS and strict:
            return 2
        return 0


@dataclass(frozen=True)
class RejectedRow:
    """A record that did not reach the target, and why."""

    source_id: str
    position: Any
    reason: str
    message: str
    column: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "position": self.position,
            "reason": self.reason,
            "message": self.message,
            "column": self.column,
        }


@dataclass(frozen=True)
class SourceFailure:
    """A source that could not be read (fully or from some point on)."""

    source_id: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"source_id": self.source_id, "message": self.message}


@dataclass(frozen=True)
class BatchFailure:
    """A batch the writer refused; its rows are also listed as rejected."""

    source_id: str
    batch_id: int
    rows: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "batch_id": self.batch_id,
            "rows": self.rows,
            "message": self.message,
        }


@dataclass(frozen=True)
class TableReport:
    """Outcome of loading one table.

    Invariant: ``rows_attempted == rows_written + rows_rejected``.
    """

    table: str
    status: TableStatus
    rows_attempted: int = 0
    rows_written: int = 0
    rejected: tuple[RejectedRow, ...] = ()
    source_failures: tuple[SourceFailure, ...] = ()
    batch_failures: tuple[BatchFailure, ...] = ()
    errors: tuple[str, ...] = ()
    cancelled: bool = False
    duration: float = 0.0

    @property
    def rows_rejected(self) -> int:
        return len(self.rejected)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "status": self.status.value,
            "rows_attempted": self.rows_attempted,
            "rows_written": self.rows_written,
            "rows_rejected": self.rows_rejected,
            "rejected": [row.to_dict() for row in self.rejected],
            "source_failures": [f.to_dict() for f in self.source_failures],
            "batch_failures": [f.to_dict() for f in self.batch_failures],
            "errors": list(self.errors),
            "cancelled": self.cancelled,
            "duration": self.duration,
        }


class TableCollector:
    """Mutable accumulator for one table's outcome.

    Owned by the single loader working on the table; turned into a frozen
    TableReport by ``finish()``.
    """

    def __init__(self, table: str, source_count: int):
        self.table = table
        self.source_count = source_count
        self.rows_attempted = 0
        self.rows_written = 0
        self.rejected: list[RejectedRow] = []
        self.source_failures: list[SourceFailure] = []
        self.batch_failures: list[BatchFailure] = []
        self.errors: list[str] = []
        self.cancelled = False
        self._start = time.monotonic()

    def record_written(self, count: int) -> None:
        self.rows_attempted += count
        self.rows_written += count

    def record_rejected(
        self,
        source_id: str,
        position: Any,
        reason: str,
        message: str,
        column: Optional[str] = None,
    ) -> None:
        self.rows_attempted += 1
        self.rejected.append(RejectedRow(source_id, position, reason, message, column))

    def record_source_failure(self, source_id: str, message: str) -> None:
        self.source_failures.append(SourceFailure(source_id, message))

    def record_batch_failure(self, source_id: str, batch_id: int, rows: int, message: str) -> None:
        self.batch_failures.append(BatchFailure(source_id, batch_id, rows, message))

    def record_error(self, message: str) -> None:
        self.errors.append(message)

    def status(self) -> TableStatus:
        if self.source_count == 0:
            return TableStatus.SKIPPED
        if self.cancelled:
            return TableStatus.CANCELLED
        troubled = bool(self.source_failures or self.errors)
        if self.rows_written == 0 and (self.rows_attempted > 0 or troubled):
            return TableStatus.FAILED
        if self.rejected or troubled or self.batch_failures:
            return TableStatus.PARTIAL
        return TableStatus.OK

    def finish(self) -> TableReport:
        return TableReport(
            table=self.table,
            status=self.status(),
            rows_attempted=self.rows_attempted,
            rows_written=self.rows_written,
            rejected=tuple(self.rejected),
            source_failures=tuple(self.source_failures),
            batch_failures=tuple(self.batch_failures),
            errors=tuple(self.errors),
            cancelled=self.cancelled,
            duration=time.monotonic() - self._start,
        )


def run_status(tables: Mapping[str, TableReport]) -> RunStatus:
    statuses = {report.status for report in tables.values()}
    if TableStatus.FAILED in statuses:
        return RunStatus.HARD_FAILURE
    if statuses & {TableStatus.PARTIAL, TableStatus.CANCELLED}:
        return RunStatus.PARTIAL_SUCCESS
    return RunStatus.SUCCESS


@dataclass(frozen=True)
class LoadReport:
    """Outcome of a whole load run, one TableReport per table in load order."""

    project: str
    tables: Mapping[str, TableReport]
    started_at: float
    finished_at: float
    skill_path: Optional[str] = None
    skill_error: Optional[str] = None
    status: RunStatus = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "tables", MappingProxyType(dict(self.tables)))
        object.__setattr__(self, "status", run_status(self.tables))

    @property
    def duration(self) -> float:
        return self.finished_at - self.started_at

    @property
    def rows_written(self) -> int:
        return sum(report.rows_written for report in self.tables.values())

    @property
    def rows_rejected(self) -> int:
        return sum(report.rows_rejected for report in self.tables.values())

    def table(self, name: str) -> TableReport:
        return self.tables[name]

    def exit_code(self, strict: bool = False) -> int:
        return self.status.exit_code(strict)

    def to_dict(self) -> dict[str, Any]:
        """Export the report as a JSON-serializable dictionary."""
        return {
            "project": self.project,
            "status": self.status.value,
            "duration": self.duration,
            "rows_written": self.rows_written,
            "rows_rejected": self.rows_rejected,
            "skill_path": self.skill_path,
            "skill_error": self.skill_error,
            "tables": [report.to_dict() for report in self.tables.values()],
        }

    def summary(self) -> str:
        """Human-readable multi-line summary."""
        lines = [
            " | ".join(
                [
                    f"Project: {self.project}",
                    f"Status: {self.status.value}",
                    f"Rows: {self.rows_written} written, {self.rows_rejected} rejected",
                    f"Time: {self.duration:.2f}s",
                ]
            )
        ]
        for report in self.tables.values():
            line = (
                f"  {report.table}: {report.status.value} "
                f"({report.rows_written}/{report.rows_attempted} written"
            )
            if report.rows_rejected:
                line += f", {report.rows_rejected} rejected"
            line += ")"
            lines.append(line)
            for failure in report.source_failures:
                lines.append(f"    source {failure.source_id} failed: {failure.message}")
            for message in report.errors:
                lines.append(f"    error: {message}")
        if self.skill_error:
            lines.append(f"  skill: {self.skill_error}")
        return "\n".join(lines)
