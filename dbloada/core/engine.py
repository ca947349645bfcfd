"""Load orchestration: validate, load tables in dependency order, emit the skill."""

import logging
import threading
import time
from enum import Enum
from typing import Any, Mapping, Optional, Protocol

import pyarrow as pa

from dbloada.connectors.base import DatabaseWriter, SourceConnector
from dbloada.core.batch import ArrowBatch
from dbloada.core.coercion import coerce_record
from dbloada.core.exceptions import (
    ConnectorError,
    DbLoadaError,
    FormatFailure,
    ValidationError,
    WriteFailure,
)
from dbloada.core.parallel import AsyncParallelExecutor, run_async
from dbloada.core.report import LoadReport, TableCollector, TableReport
from dbloada.core.schema import SchemaGraph, validate_project
from dbloada.models.project import Project, SourceKind, SourceSpec, TableSpec
from dbloada.models.runtime_config import RuntimeConfig

logger = logging.getLogger(__name__)

KEY_CONFLICT = "KeyConflict"


class RunState(str, Enum):
    VALIDATING = "validating"
    LOADING = "loading"
    EMITTING = "emitting"
    DONE = "done"
    FAILED = "failed"


class Emitter(Protocol):
    def emit(self, graph: SchemaGraph, report: Optional[LoadReport] = None) -> Any:
        ...


class LoadOrchestrator:
    """Drives a project load from validation to the emitted skill file.

    Tables load in topological order. A table's written keys become visible
    to its dependents only after the table has finished. With
    ``parallelism > 1``, tables of equal depth load concurrently.

    Args:
        connectors: Source connector per source kind.
        writer: Target writer shared by all tables.
        runtime: Load settings; defaults to the project's own.
        emitter: Optional skill emitter run after loading.
        cancel_event: Set from another thread to stop the run cleanly.
    """

    def __init__(
        self,
        connectors: Mapping[SourceKind, SourceConnector],
        writer: DatabaseWriter,
        runtime: Optional[RuntimeConfig] = None,
        emitter: Optional[Emitter] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.connectors = dict(connectors)
        self.writer = writer
        self.runtime = runtime
        self.emitter = emitter
        self.cancel_event = cancel_event or threading.Event()
        self.state = RunState.VALIDATING
        self._deadline: Optional[float] = None

    def run(self, project: Project) -> LoadReport:
        """Load every table of ``project`` and return the run report.

        Raises:
            ValidationError: If the project is invalid (nothing is written).
        """
        started_at = time.time()
        self.state = RunState.VALIDATING
        try:
            graph = validate_project(project)
        except ValidationError:
            self.state = RunState.FAILED
            logger.error("Project validation failed", extra={"project": project.name})
            raise

        runtime = self.runtime or project.runtime
        if runtime.timeout is not None:
            self._deadline = time.monotonic() + runtime.timeout

        self.state = RunState.LOADING
        logger.info(
            f"Loading {len(graph.load_order)} table(s): {' -> '.join(graph.load_order)}",
            extra={"project": project.name},
        )
        if runtime.parallelism > 1:
            tables = self._load_parallel(graph, runtime)
        else:
            tables = self._load_sequential(graph, runtime)

        report = LoadReport(
            project=project.name,
            tables=tables,
            started_at=started_at,
            finished_at=time.time(),
        )

        if self.emitter is not None:
            self.state = RunState.EMITTING
            report = self._emit(graph, report)

        self.state = RunState.DONE
        logger.info(
            f"Load finished with status {report.status.value}",
            extra={"project": project.name, "context": {"rows_written": report.rows_written}},
        )
        return report

    def cancelled(self) -> bool:
        if self.cancel_event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel_event.set()
            return True
        return False

    def _load_sequential(
        self, graph: SchemaGraph, runtime: RuntimeConfig
    ) -> dict[str, TableReport]:
        reports: dict[str, TableReport] = {}
        key_sets: dict[str, frozenset] = {}
        for name in graph.load_order:
            report, keys = self._load_table(graph, graph.table(name), runtime, key_sets)
            reports[name] = report
            key_sets[name] = keys
        return reports

    def _load_parallel(
        self, graph: SchemaGraph, runtime: RuntimeConfig
    ) -> dict[str, TableReport]:
        executor = AsyncParallelExecutor(runtime.parallelism)
        results: dict[str, TableReport] = {}
        key_sets: dict[str, frozenset] = {}
        for level in graph.levels():
            # Snapshot: tables in one level never read each other's keys.
            visible = dict(key_sets)
            funcs = [
                (lambda name=name: self._load_table(graph, graph.table(name), runtime, visible))
                for name in level
            ]
            outcomes = run_async(executor.run_all(funcs))
            for name, (report, keys) in zip(level, outcomes):
                results[name] = report
                key_sets[name] = keys
        return {name: results[name] for name in graph.load_order}

    def _load_table(
        self,
        graph: SchemaGraph,
        table: TableSpec,
        runtime: RuntimeConfig,
        key_sets: Mapping[str, frozenset],
    ) -> tuple[TableReport, frozenset]:
        sources = graph.project.sources_for(table.name)
        collector = TableCollector(table.name, len(sources))
        written_keys: set = set()
        log_extra = {"project": graph.project.name, "table": table.name}

        if not sources:
            logger.info("No sources configured, skipping", extra=log_extra)
            return collector.finish(), frozenset()

        if self.cancelled():
            collector.cancelled = True
            logger.warning("Run cancelled before table started", extra=log_extra)
            return collector.finish(), frozenset()

        try:
            self.writer.prepare(table, graph)
        except WriteFailure as e:
            collector.record_error(str(e))
            logger.error(f"Could not prepare table: {e}", extra=log_extra)
            return collector.finish(), frozenset()

        loader = _TableLoader(
            orchestrator=self,
            graph=graph,
            table=table,
            runtime=runtime,
            key_sets=key_sets,
            collector=collector,
            written_keys=written_keys,
        )
        for source in sources:
            if self.cancelled():
                collector.cancelled = True
                break
            loader.load_source(source)
            if collector.cancelled:
                break

        report = collector.finish()
        logger.info(
            f"Table {report.status.value}: {report.rows_written} written, "
            f"{report.rows_rejected} rejected",
            extra=log_extra,
        )
        return report, frozenset(written_keys)

    def _emit(self, graph: SchemaGraph, report: LoadReport) -> LoadReport:
        skill_path = None
        skill_error = None
        try:
            skill_path = self.emitter.emit(graph, report)
        except (OSError, DbLoadaError) as e:
            skill_error = f"Skill emission failed: {e}"
            logger.error(skill_error, extra={"project": report.project})
        return LoadReport(
            project=report.project,
            tables=report.tables,
            started_at=report.started_at,
            finished_at=report.finished_at,
            skill_path=str(skill_path) if skill_path is not None else None,
            skill_error=skill_error,
        )


class _TableLoader:
    """Per-table loading state: buffer, key ownership and batch numbering."""

    def __init__(
        self,
        orchestrator: LoadOrchestrator,
        graph: SchemaGraph,
        table: TableSpec,
        runtime: RuntimeConfig,
        key_sets: Mapping[str, frozenset],
        collector: TableCollector,
        written_keys: set,
    ):
        self.orchestrator = orchestrator
        self.graph = graph
        self.table = table
        self.runtime = runtime
        self.key_sets = key_sets
        self.collector = collector
        self.written_keys = written_keys
        self.schema: pa.Schema = graph.arrow_schema(table.name)
        self.value_types = graph.reference_value_types(table.name)
        self.primary_key = table.primary_key
        self.key_owner: dict[Any, str] = {}
        self.batch_id = 0

    def load_source(self, source: SourceSpec) -> None:
        log_extra = {
            "project": self.graph.project.name,
            "table": self.table.name,
            "source": source.id,
        }
        connector = self.orchestrator.connectors.get(source.kind)
        if connector is None:
            self.collector.record_source_failure(
                source.id, f"no connector configured for kind '{source.kind.value}'"
            )
            logger.error("No connector for source kind", extra=log_extra)
            return

        buffer: list[tuple[Any, dict]] = []
        position = 0
        records = None
        try:
            records = connector.read_records(source, self.table)
            for item in records:
                if self.orchestrator.cancelled():
                    self.collector.cancelled = True
                    logger.warning(
                        f"Run cancelled; dropping {len(buffer)} buffered row(s)",
                        extra=log_extra,
                    )
                    return
                position += 1
                self._accept(source, item, position, buffer)
                if self.runtime.batch_size and len(buffer) >= self.runtime.batch_size:
                    self._flush(source, buffer)
                    buffer = []
                    if self.collector.cancelled:
                        return
        except ConnectorError as e:
            self.collector.record_source_failure(source.id, str(e))
            logger.error(f"Source failed: {e}", extra=log_extra)
        finally:
            close = getattr(records, "close", None)
            if close is not None:
                close()

        if buffer:
            self._flush(source, buffer)

    def _accept(self, source: SourceSpec, item: Any, position: int, buffer: list) -> None:
        if isinstance(item, FormatFailure):
            where = item.position if item.position is not None else position
            self.collector.record_rejected(source.id, where, "FormatFailure", item.message)
            return

        row, failures = coerce_record(self.table, item, self.value_types, self.key_sets)
        if failures:
            first = failures[0]
            self.collector.record_rejected(
                source.id,
                position,
                first.kind,
                "; ".join(f.message for f in failures),
                column=first.column,
            )
            return

        if self.primary_key is not None and self.runtime.on_key_conflict == "reject":
            key = row[self.primary_key.name]
            owner = self.key_owner.get(key)
            if owner is not None and owner != source.id:
                self.collector.record_rejected(
                    source.id,
                    position,
                    KEY_CONFLICT,
                    f"key {key!r} already loaded from source '{owner}'",
                    column=self.primary_key.name,
                )
                return

        buffer.append((position, row))

    def _flush(self, source: SourceSpec, buffer: list[tuple[Any, dict]]) -> None:
        if self.orchestrator.cancelled():
            self.collector.cancelled = True
            return

        self.batch_id += 1
        rows = [row for _, row in buffer]
        log_extra = {
            "project": self.graph.project.name,
            "table": self.table.name,
            "source": source.id,
            "batch_id": self.batch_id,
        }
        try:
            batch = ArrowBatch.from_rows(
                rows,
                self.schema,
                metadata={"table": self.table.name, "source": source.id, "batch_id": self.batch_id},
            )
            self.orchestrator.writer.write_batch(self.table, batch)
        except (WriteFailure, pa.ArrowException) as e:
            message = str(e)
            self.collector.record_batch_failure(source.id, self.batch_id, len(rows), message)
            for position, _ in buffer:
                self.collector.record_rejected(source.id, position, "WriteFailure", message)
            logger.error(f"Batch rejected by writer: {message}", extra=log_extra)
            return

        self.collector.record_written(len(rows))
        if self.primary_key is not None:
            for row in rows:
                key = row[self.primary_key.name]
                self.written_keys.add(key)
                self.key_owner.setdefault(key, source.id)
        logger.debug(f"Wrote {len(rows)} row(s)", extra=log_extra)


def execute(
    project: Project,
    connectors: Mapping[SourceKind, SourceConnector],
    writer: DatabaseWriter,
    emitter: Optional[Emitter] = None,
    cancel_event: Optional[threading.Event] = None,
) -> LoadReport:
    """Validate and load ``project`` with the given collaborators."""
    orchestrator = LoadOrchestrator(
        connectors, writer, emitter=emitter, cancel_event=cancel_event
    )
    return orchestrator.run(project)
