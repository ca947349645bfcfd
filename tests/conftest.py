"""Pytest configuration and shared fixtures."""

import tempfile
import textwrap
from pathlib import Path

import pytest

from dbloada.core.exceptions import ConnectionFailure
from dbloada.models.project import Project, SourceKind


class StaticConnector:
    """In-memory source connector for engine tests.

    ``records`` maps source ids to lists of raw records; a value that is an
    exception instance is raised at that point of the iteration.
    """

    def __init__(self, records: dict):
        self.records = records
        self.calls: list[str] = []

    def read_records(self, source, table):
        self.calls.append(source.id)
        for item in self.records.get(source.id, []):
            if isinstance(item, ConnectionFailure):
                raise item
            yield item


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def env_vars(monkeypatch):
    """Fixture to set environment variables for testing."""
    test_vars = {
        "TEST_API_TOKEN": "secret-token",
        "TEST_DATA_DIR": "data",
    }
    for key, value in test_vars.items():
        monkeypatch.setenv(key, value)
    return test_vars


@pytest.fixture
def cli_vars():
    """Fixture providing CLI variables for testing."""
    return {
        "CLI_VAR_1": "cli_value_1",
        "CLI_VAR_2": "cli_value_2",
    }


@pytest.fixture
def country_city_project() -> Project:
    """country(id, name) and city(id, name, country_id -> country.id)."""
    return Project.model_validate(
        {
            "name": "geo",
            "tables": [
                {
                    "name": "country",
                    "columns": [
                        {"name": "id", "type": "text", "primary_key": True},
                        {"name": "name", "type": "text"},
                    ],
                    "sources": [{"id": "countries", "kind": "file", "options": {"path": "c.csv"}}],
                },
                {
                    "name": "city",
                    "columns": [
                        {"name": "id", "type": "integer", "primary_key": True},
                        {"name": "name", "type": "text"},
                        {"name": "country_id", "type": "reference"},
                    ],
                    "relationships": [
                        {
                            "source_column": "country_id",
                            "target_table": "country",
                            "target_column": "id",
                            "cardinality": "one_to_many",
                        }
                    ],
                    "sources": [{"id": "cities", "kind": "file", "options": {"path": "ci.csv"}}],
                },
            ],
            "skill": {"enabled": False},
        }
    )


@pytest.fixture
def country_city_records():
    """Two countries and three cities, one referencing an unknown country."""
    return {
        "countries": [
            {"id": "DE", "name": "Germany"},
            {"id": "FR", "name": "France"},
        ],
        "cities": [
            {"id": "1", "name": "Berlin", "country_id": "DE"},
            {"id": "2", "name": "Paris", "country_id": "FR"},
            {"id": "3", "name": "Atlantis", "country_id": "XX"},
        ],
    }


@pytest.fixture
def static_connectors(country_city_records):
    connector = StaticConnector(country_city_records)
    return {SourceKind.FILE: connector, SourceKind.API: connector, SourceKind.COMMAND: connector}


@pytest.fixture
def project_dir(temp_dir):
    """A project directory with a country/city manifest and CSV sources."""
    data_dir = temp_dir / "data"
    data_dir.mkdir()
    (data_dir / "countries.csv").write_text("id,name\nDE,Germany\nFR,France\n")
    (data_dir / "cities.csv").write_text(
        "id,name,country\n1,Berlin,DE\n2,Paris,FR\n3,Atlantis,XX\n"
    )
    (temp_dir / "dbloada.yaml").write_text(
        textwrap.dedent(
            """\
            apiVersion: project.dbloada.io/v1
            kind: DBLoadaProject
            metadata:
              name: geo
            spec:
              tables:
                - name: country
                  description: Countries of the world
                  columns:
                    - name: id
                      type: text
                      primary_key: true
                    - name: name
                      type: text
                  sources:
                    - id: countries
                      kind: file
                      options:
                        path: data/countries.csv
                - name: city
                  columns:
                    - name: id
                      type: integer
                      primary_key: true
                    - name: name
                      type: text
                    - name: country_id
                      type: reference
                      identifier: country
                  relationships:
                    - source_column: country_id
                      target_table: country
                      target_column: id
                  sources:
                    - id: cities
                      kind: file
                      options:
                        path: data/cities.csv
              target:
                kind: duckdb
                database: geo.duckdb
            """
        )
    )
    return temp_dir
