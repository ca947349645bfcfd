"""Unit tests for the load orchestrator."""

import threading

import pytest

from conftest import StaticConnector
from dbloada.connectors.duckdb.writer import DuckDBWriter
from dbloada.connectors.file import FileConnector
from dbloada.core.engine import LoadOrchestrator, RunState, execute
from dbloada.core.exceptions import ConnectionFailure, FormatFailure, ValidationError, WriteFailure
from dbloada.core.report import RunStatus, TableStatus
from dbloada.models.project import Project, SourceKind
from dbloada.models.runtime_config import RuntimeConfig
from dbloada.models.target_config import DuckDBTargetConfig


class RecordingWriter:
    """Writer double that keeps every batch and can refuse some."""

    def __init__(self, fail_batches=()):
        self.prepared: list[str] = []
        self.batches: list[tuple[str, list[dict]]] = []
        self.fail_batches = set(fail_batches)
        self.closed = False

    def prepare(self, table, graph):
        self.prepared.append(table.name)

    def write_batch(self, table, batch):
        number = len(self.batches) + 1
        self.batches.append((table.name, batch.rows))
        if number in self.fail_batches:
            raise WriteFailure("disk full")
        return batch.row_count

    def close(self):
        self.closed = True

    def rows(self, table):
        return [row for name, rows in self.batches if name == table for row in rows]


class RecordingEmitter:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def emit(self, graph, report=None):
        self.calls.append((graph, report))
        if self.error is not None:
            raise self.error
        return "SKILL.md"


def _connectors(records):
    connector = StaticConnector(records)
    return {kind: connector for kind in SourceKind}


def _single_table_project(sources, runtime=None):
    return Project.model_validate(
        {
            "name": "p",
            "tables": [
                {
                    "name": "item",
                    "columns": [
                        {"name": "id", "type": "integer", "primary_key": True},
                        {"name": "label", "type": "text"},
                    ],
                    "sources": sources,
                }
            ],
            "runtime": runtime or {},
        }
    )


def _file_source(source_id):
    return {"id": source_id, "kind": "file", "options": {"path": f"{source_id}.csv"}}


class TestCountryCityScenario:
    """Two countries and three cities, one with an unknown country."""

    def test_partial_success(self, country_city_project, static_connectors):
        writer = DuckDBWriter(DuckDBTargetConfig(database=":memory:"))
        orchestrator = LoadOrchestrator(static_connectors, writer)

        report = orchestrator.run(country_city_project)

        country, city = report.table("country"), report.table("city")
        assert (country.rows_attempted, country.rows_written, country.status) == (2, 2, TableStatus.OK)
        assert (city.rows_attempted, city.rows_written, city.rows_rejected) == (3, 2, 1)
        assert city.rejected[0].reason == "DanglingReference"
        assert city.rejected[0].column == "country_id"
        assert city.status == TableStatus.PARTIAL
        assert report.status == RunStatus.PARTIAL_SUCCESS
        assert report.exit_code() == 0
        assert report.exit_code(strict=True) == 2
        assert orchestrator.state == RunState.DONE

        rows = writer.connection.execute('SELECT id, country_id FROM "city" ORDER BY id').fetchall()
        assert rows == [(1, "DE"), (2, "FR")]
        writer.close()

    def test_tables_load_in_dependency_order(self, country_city_project, static_connectors):
        writer = RecordingWriter()
        LoadOrchestrator(static_connectors, writer).run(country_city_project)

        assert writer.prepared == ["country", "city"]
        assert static_connectors[SourceKind.FILE].calls == ["countries", "cities"]

    def test_parallel_load_matches_sequential(self, country_city_project, static_connectors):
        writer = RecordingWriter()
        runtime = RuntimeConfig(parallelism=4)

        report = LoadOrchestrator(static_connectors, writer, runtime=runtime).run(country_city_project)

        assert list(report.tables) == ["country", "city"]
        assert report.table("city").rows_written == 2
        assert report.status == RunStatus.PARTIAL_SUCCESS


class TestFailures:
    """Tests for failure isolation."""

    def test_lone_failing_source_is_hard_failure(self):
        project = _single_table_project(
            [{"id": "remote", "kind": "api", "options": {"endpoint": "https://x"}}]
        )
        connectors = _connectors({"remote": [ConnectionFailure("connection refused")]})

        report = LoadOrchestrator(connectors, RecordingWriter()).run(project)

        item = report.table("item")
        assert item.rows_written == 0
        assert item.status == TableStatus.FAILED
        assert item.source_failures[0].source_id == "remote"
        assert report.status == RunStatus.HARD_FAILURE
        assert report.exit_code() == 1

    def test_failing_source_keeps_other_sources(self):
        project = _single_table_project([_file_source("good"), _file_source("bad")])
        connectors = _connectors(
            {
                "good": [{"id": "1", "label": "a"}],
                "bad": [{"id": "2", "label": "b"}, ConnectionFailure("lost")],
            }
        )
        writer = RecordingWriter()

        report = LoadOrchestrator(connectors, writer).run(project)

        item = report.table("item")
        assert item.rows_written == 2
        assert item.status == TableStatus.PARTIAL
        assert [r["id"] for r in writer.rows("item")] == [1, 2]

    def test_format_and_coercion_failures_are_rejected(self):
        project = _single_table_project([_file_source("s")])
        connectors = _connectors(
            {
                "s": [
                    {"id": "1", "label": "ok"},
                    FormatFailure("row has 1 field(s), expected 2", position=3),
                    {"id": "x", "label": "bad"},
                ]
            }
        )

        report = LoadOrchestrator(connectors, RecordingWriter()).run(project)

        item = report.table("item")
        assert [r.reason for r in item.rejected] == ["FormatFailure", "CoercionFailure"]
        assert item.rejected[0].position == 3
        assert item.rejected[1].position == 3
        assert item.rows_attempted == item.rows_written + item.rows_rejected == 3

    def test_unparseable_csv_row_does_not_abort_run(self, temp_dir):
        (temp_dir / "s.csv").write_text("id,label\n1,ok\n2," + "x" * 200_000 + "\n3,ok\n")
        project = _single_table_project([_file_source("s")])
        connectors = {SourceKind.FILE: FileConnector(base_dir=temp_dir)}

        report = LoadOrchestrator(connectors, RecordingWriter()).run(project)

        item = report.table("item")
        assert (item.rows_written, item.rows_rejected) == (2, 1)
        assert item.rejected[0].reason == "FormatFailure"
        assert item.rejected[0].position == 3
        assert report.status == RunStatus.PARTIAL_SUCCESS

    def test_out_of_range_timestamp_is_rejected(self):
        project = Project.model_validate(
            {
                "name": "p",
                "tables": [
                    {
                        "name": "event",
                        "columns": [
                            {"name": "id", "type": "integer", "primary_key": True},
                            {"name": "at", "type": "timestamp"},
                        ],
                        "sources": [_file_source("s")],
                    }
                ],
            }
        )
        records = [
            {"id": 1, "at": "2024-01-01T00:00:00Z"},
            {"id": 2, "at": "2024-01-01T00:00:00+24:00"},
            {"id": 3, "at": "0001-01-01T00:00:00+01:00"},
        ]

        report = LoadOrchestrator(_connectors({"s": records}), RecordingWriter()).run(project)

        event = report.table("event")
        assert event.rows_written == 1
        assert [(r.reason, r.column) for r in event.rejected] == [
            ("CoercionFailure", "at"),
            ("CoercionFailure", "at"),
        ]

    def test_refused_batch_rejects_its_rows(self):
        project = _single_table_project([_file_source("s")], runtime={"batch_size": 2})
        rows = [{"id": str(i), "label": "x"} for i in range(1, 6)]
        writer = RecordingWriter(fail_batches={2})

        report = LoadOrchestrator(_connectors({"s": rows}), writer).run(project)

        item = report.table("item")
        assert [len(rows) for _, rows in writer.batches] == [2, 2, 1]
        assert item.rows_written == 3
        assert item.rows_rejected == 2
        assert {r.reason for r in item.rejected} == {"WriteFailure"}
        assert item.batch_failures[0].batch_id == 2
        assert item.rows_attempted == 5

    def test_prepare_failure_fails_table(self, country_city_project, static_connectors):
        class BrokenWriter(RecordingWriter):
            def prepare(self, table, graph):
                raise WriteFailure("no space")

        report = LoadOrchestrator(static_connectors, BrokenWriter()).run(country_city_project)

        assert report.table("country").status == TableStatus.FAILED
        assert report.status == RunStatus.HARD_FAILURE

    def test_missing_connector(self, country_city_project):
        report = LoadOrchestrator({}, RecordingWriter()).run(country_city_project)
        assert "no connector configured" in report.table("country").source_failures[0].message

    def test_validation_error_writes_nothing(self):
        project = Project.model_validate(
            {"name": "p", "tables": [{"name": "t", "columns": []}, {"name": "t", "columns": []}]}
        )
        writer = RecordingWriter()
        orchestrator = LoadOrchestrator({}, writer)

        with pytest.raises(ValidationError):
            orchestrator.run(project)
        assert orchestrator.state == RunState.FAILED
        assert writer.prepared == []


class TestKeys:
    """Tests for key handling across sources."""

    def test_last_source_wins(self):
        project = _single_table_project([_file_source("a"), _file_source("b")])
        connectors = _connectors(
            {"a": [{"id": "1", "label": "from a"}], "b": [{"id": "1", "label": "from b"}]}
        )
        writer = RecordingWriter()

        report = LoadOrchestrator(connectors, writer).run(project)

        assert report.table("item").rows_rejected == 0
        assert writer.rows("item")[-1]["label"] == "from b"

    def test_reject_mode(self):
        project = _single_table_project(
            [_file_source("a"), _file_source("b")], runtime={"on_key_conflict": "reject"}
        )
        connectors = _connectors(
            {
                "a": [{"id": "1", "label": "from a"}],
                "b": [{"id": "1", "label": "from b"}, {"id": "2", "label": "new"}],
            }
        )
        writer = RecordingWriter()

        report = LoadOrchestrator(connectors, writer).run(project)

        item = report.table("item")
        assert [r.reason for r in item.rejected] == ["KeyConflict"]
        assert item.rejected[0].source_id == "b"
        assert [r["label"] for r in writer.rows("item")] == ["from a", "new"]

    def test_rejected_parent_rows_are_not_referenceable(self, country_city_project):
        records = {
            "countries": [{"id": "DE", "name": "Germany"}, {"id": None, "name": "Nowhere"}],
            "cities": [{"id": "1", "name": "Berlin", "country_id": "DE"}],
        }
        report = LoadOrchestrator(_connectors(records), RecordingWriter()).run(country_city_project)

        assert report.table("country").rows_rejected == 1
        assert report.table("city").rows_written == 1


class TestLifecycle:
    """Tests for skipping, cancellation and the skill emitter."""

    def test_table_without_sources_is_skipped(self):
        project = _single_table_project([])
        report = LoadOrchestrator({}, RecordingWriter()).run(project)

        assert report.table("item").status == TableStatus.SKIPPED
        assert report.status == RunStatus.SUCCESS

    def test_cancel_before_start(self, country_city_project, static_connectors):
        event = threading.Event()
        event.set()
        writer = RecordingWriter()

        report = LoadOrchestrator(static_connectors, writer, cancel_event=event).run(country_city_project)

        assert {r.status for r in report.tables.values()} == {TableStatus.CANCELLED}
        assert report.status == RunStatus.PARTIAL_SUCCESS
        assert writer.batches == []

    def test_cancel_mid_source_drops_buffer(self):
        event = threading.Event()

        def records():
            yield {"id": "1", "label": "a"}
            event.set()
            yield {"id": "2", "label": "b"}

        class GeneratorConnector:
            def read_records(self, source, table):
                return records()

        project = _single_table_project([_file_source("s")])
        writer = RecordingWriter()
        orchestrator = LoadOrchestrator(
            {SourceKind.FILE: GeneratorConnector()}, writer, cancel_event=event
        )

        report = orchestrator.run(project)

        item = report.table("item")
        assert item.status == TableStatus.CANCELLED
        assert item.cancelled
        assert writer.batches == []
        assert item.rows_attempted == item.rows_written + item.rows_rejected

    def test_emitter_receives_report(self, country_city_project, static_connectors):
        emitter = RecordingEmitter()
        report = LoadOrchestrator(static_connectors, RecordingWriter(), emitter=emitter).run(
            country_city_project
        )

        assert report.skill_path == "SKILL.md"
        graph, passed = emitter.calls[0]
        assert graph.load_order == ("country", "city")
        assert passed.table("city").rows_written == 2

    def test_emitter_failure_is_reported(self, country_city_project, static_connectors):
        emitter = RecordingEmitter(error=OSError("read-only file system"))
        report = LoadOrchestrator(static_connectors, RecordingWriter(), emitter=emitter).run(
            country_city_project
        )

        assert report.skill_path is None
        assert "read-only file system" in report.skill_error
        assert report.status == RunStatus.PARTIAL_SUCCESS

    def test_execute(self, country_city_project, static_connectors):
        report = execute(country_city_project, static_connectors, RecordingWriter())
        assert report.rows_written == 4
