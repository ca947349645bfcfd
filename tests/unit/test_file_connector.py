"""Unit tests for format handlers and the file connector."""

import json

import pytest

from dbloada.connectors.file.config import FileSourceOptions, infer_format
from dbloada.connectors.file.connector import FileConnector
from dbloada.connectors.file.formats import (
    CSVFormat,
    JSONFormat,
    JSONLFormat,
    clean_field,
    extract_items,
    get_format,
    list_formats,
)
from dbloada.core.exceptions import ConnectionFailure, FormatFailure
from dbloada.models.project import SourceSpec, TableSpec


@pytest.fixture
def city_table() -> TableSpec:
    return TableSpec.model_validate(
        {
            "name": "city",
            "columns": [
                {"name": "id", "type": "integer", "primary_key": True},
                {"name": "name", "type": "text"},
                {"name": "country_id", "type": "reference", "identifier": "country"},
            ],
            "relationships": [
                {"source_column": "country_id", "target_table": "country", "target_column": "id"}
            ],
        }
    )


class TestCSVFormat:
    """Tests for CSVFormat."""

    def test_header_mapping(self, city_table):
        text = "country,id,name\nDE,1,Berlin\nFR,2,\"Paris\"\n"
        records = list(CSVFormat().read_records(text, city_table, "x.csv"))

        assert records == [
            {"id": "1", "name": "Berlin", "country_id": "DE"},
            {"id": "2", "name": "Paris", "country_id": "FR"},
        ]

    def test_short_row_is_a_format_failure(self, city_table):
        text = "id,name,country\n1,Berlin,DE\n2,Paris\n3,Rome,IT\n"
        records = list(CSVFormat().read_records(text, city_table, "x.csv"))

        assert len(records) == 3
        assert isinstance(records[1], FormatFailure)
        assert records[1].position == 3
        assert records[2]["name"] == "Rome"

    def test_missing_explicit_identifier(self, city_table):
        text = "id,name\n1,Berlin\n"
        with pytest.raises(ConnectionFailure, match="header has no field 'country'"):
            list(CSVFormat().read_records(text, city_table, "x.csv"))

    def test_missing_implicit_column_reads_as_absent(self, city_table):
        text = "id,country\n1,DE\n"
        records = list(CSVFormat().read_records(text, city_table, "x.csv"))
        assert records == [{"id": "1", "country_id": "DE"}]

    def test_headerless_uses_positions(self):
        table = TableSpec.model_validate(
            {
                "name": "t",
                "columns": [
                    {"name": "a", "type": "text"},
                    {"name": "b", "type": "text", "identifier": 2},
                ],
            }
        )
        records = list(CSVFormat(delimiter=";", has_header=False).read_records("x;y;z\n", table, "t"))
        assert records == [{"a": "x", "b": "z"}]

    def test_headerless_index_out_of_range(self):
        table = TableSpec.model_validate(
            {"name": "t", "columns": [{"name": "a", "type": "text", "identifier": 5}]}
        )
        with pytest.raises(ConnectionFailure, match="out of range"):
            list(CSVFormat(has_header=False).read_records("x,y\n", table, "t"))

    def test_blank_lines_and_empty_document(self, city_table):
        assert list(CSVFormat().read_records("", city_table, "x")) == []
        text = "id,name,country\n\n1,Berlin,DE\n\n"
        assert len(list(CSVFormat().read_records(text, city_table, "x"))) == 1

    def test_oversized_field_is_a_format_failure(self, city_table):
        text = "id,name,country\n1,ok,DE\n2," + "x" * 200_000 + ",FR\n3,ok,IT\n"

        records = list(CSVFormat().read_records(text, city_table, "x.csv"))

        assert len(records) == 3
        assert isinstance(records[1], FormatFailure)
        assert "field larger than field limit" in records[1].message
        assert records[1].position == 3
        assert [records[0]["id"], records[2]["id"]] == ["1", "3"]

    def test_unparseable_header(self, city_table):
        text = "id," + "x" * 200_000 + "\n1,ok\n"
        with pytest.raises(ConnectionFailure, match="Failed to parse CSV header"):
            list(CSVFormat().read_records(text, city_table, "x.csv"))


def test_clean_field():
    assert clean_field("  'quoted'  ") == "quoted"
    assert clean_field('"a"') == "a"
    assert clean_field("'mismatched\"") == "'mismatched\""


class TestJSONFormats:
    """Tests for JSON and JSONL handling."""

    def test_json_array(self, city_table):
        text = json.dumps([{"id": 1, "name": "Berlin", "country": "DE"}])
        records = list(JSONFormat().read_records(text, city_table, "x.json"))
        assert records == [{"id": 1, "name": "Berlin", "country_id": "DE"}]

    def test_json_data_path(self, city_table):
        text = json.dumps({"data": {"cities": [{"id": 1}, {"id": 2}]}})
        records = list(JSONFormat(data_path="data.cities").read_records(text, city_table, "x"))
        assert [r["id"] for r in records] == [1, 2]

    def test_json_non_object_item(self, city_table):
        records = list(JSONFormat().read_records("[1, {\"id\": 2}]", city_table, "x"))
        assert isinstance(records[0], FormatFailure)
        assert records[1]["id"] == 2

    def test_nested_value_is_a_format_failure(self, city_table):
        text = json.dumps([{"id": 1, "name": {"de": "Berlin"}}])
        records = list(JSONFormat().read_records(text, city_table, "x"))
        assert isinstance(records[0], FormatFailure)

    def test_invalid_json_document(self, city_table):
        with pytest.raises(ConnectionFailure, match="Failed to parse JSON"):
            list(JSONFormat().read_records("{", city_table, "x"))

    def test_jsonl_bad_line_continues(self, city_table):
        text = '{"id": 1}\n\nnot json\n{"id": 3}\n'
        records = list(JSONLFormat().read_records(text, city_table, "x"))

        assert records[0]["id"] == 1
        assert isinstance(records[1], FormatFailure)
        assert records[1].position == 3
        assert records[2]["id"] == 3

    def test_jsonl_splits_on_newlines_only(self, city_table):
        text = '{"id": 1, "name": "a b\x85c"}\r\n{"id": 2, "name": "d\u2028e"}\n'

        records = list(JSONLFormat().read_records(text, city_table, "x"))

        assert records == [
            {"id": 1, "name": "a b\x85c", "country_id": None},
            {"id": 2, "name": "d\u2028e", "country_id": None},
        ]

    def test_extract_items_scalar_document(self):
        with pytest.raises(ConnectionFailure):
            extract_items(42, None, "x")

    def test_extract_items_missing_path(self):
        assert extract_items({"a": 1}, "b", "x") == []


def test_get_format():
    assert isinstance(get_format("CSV"), CSVFormat)
    assert list_formats() == ["csv", "json", "jsonl"]
    with pytest.raises(ConnectionFailure, match="Unsupported format"):
        get_format("parquet")


class TestFileSourceOptions:
    """Tests for FileSourceOptions."""

    def test_format_inferred(self):
        assert FileSourceOptions(path="a/b.ndjson").resolved_format == "jsonl"
        assert infer_format("s3://bucket/x.csv?version=1") == "csv"

    def test_explicit_format(self):
        assert FileSourceOptions(path="data.txt", format="csv").resolved_format == "csv"

    def test_uninferable_format(self):
        with pytest.raises(ValueError, match="cannot infer format"):
            FileSourceOptions(path="data.txt")

    def test_bad_delimiter_and_encoding(self):
        with pytest.raises(ValueError):
            FileSourceOptions(path="a.csv", delimiter=";;")
        with pytest.raises(ValueError):
            FileSourceOptions(path="a.csv", encoding="klingon")


class TestFileConnector:
    """Tests for FileConnector."""

    def test_reads_relative_path(self, temp_dir, city_table):
        (temp_dir / "cities.csv").write_text("id,name,country\n1,Berlin,DE\n")
        source = SourceSpec(id="s", kind="file", table="city", options={"path": "cities.csv"})

        records = list(FileConnector(base_dir=temp_dir).read_records(source, city_table))
        assert records == [{"id": "1", "name": "Berlin", "country_id": "DE"}]

    def test_reads_fsspec_url(self, city_table):
        import fsspec

        with fsspec.open("memory://dbloada/cities.jsonl", "w") as f:
            f.write('{"id": 1, "name": "Berlin"}\n')
        source = SourceSpec(
            id="s", kind="file", options={"path": "memory://dbloada/cities.jsonl"}
        )

        records = list(FileConnector().read_records(source, city_table))
        assert records == [{"id": 1, "name": "Berlin", "country_id": None}]

    def test_missing_file(self, temp_dir, city_table):
        source = SourceSpec(id="s", kind="file", options={"path": "nope.csv"})
        with pytest.raises(ConnectionFailure, match="File not found"):
            list(FileConnector(base_dir=temp_dir).read_records(source, city_table))

    def test_undecodable_record_is_rejected_alone(self, temp_dir, city_table):
        (temp_dir / "bad.csv").write_bytes(b"id,name,country\n1,\xff\xfe,DE\n2,Paris,FR\n")
        source = SourceSpec(id="s", kind="file", options={"path": "bad.csv"})

        records = list(FileConnector(base_dir=temp_dir).read_records(source, city_table))

        assert len(records) == 2
        assert isinstance(records[0], FormatFailure)
        assert "not valid utf-8" in records[0].message
        assert records[1] == {"id": "2", "name": "Paris", "country_id": "FR"}

    def test_undecodable_list_item(self, temp_dir, city_table):
        (temp_dir / "bad.jsonl").write_bytes(
            b'{"id": 1, "country": ["D\xffE"]}\n{"id": 2}\n'
        )
        source = SourceSpec(id="s", kind="file", options={"path": "bad.jsonl"})

        records = list(FileConnector(base_dir=temp_dir).read_records(source, city_table))

        assert isinstance(records[0], FormatFailure)
        assert records[1]["id"] == 2

    def test_resolve_path(self, temp_dir):
        connector = FileConnector(base_dir=temp_dir)
        assert connector.resolve_path("a.csv") == str(temp_dir / "a.csv")
        assert connector.resolve_path("s3://b/a.csv") == "s3://b/a.csv"
