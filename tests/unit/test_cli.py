"""Unit tests for the command-line interface."""

import json
import logging

import pytest
from click.testing import CliRunner

from dbloada import __version__
from dbloada.cli.main import main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_dbloada_logger():
    yield
    logging.getLogger("dbloada").handlers.clear()


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestInit:
    def test_creates_manifest_and_gitignore(self, runner, temp_dir):
        target = temp_dir / "new_project"

        result = runner.invoke(main, ["init", str(target)])

        assert result.exit_code == 0, result.output
        assert "Created project file" in result.output
        assert "name: new-project" in (target / "dbloada.yaml").read_text()
        assert "*.duckdb" in (target / ".gitignore").read_text().splitlines()

    def test_gitignore_entries_are_not_duplicated(self, runner, temp_dir):
        (temp_dir / ".gitignore").write_text("*.duckdb\n")

        runner.invoke(main, ["init", str(temp_dir), "--name", "geo"])

        lines = (temp_dir / ".gitignore").read_text().splitlines()
        assert lines.count("*.duckdb") == 1
        assert "graph.json" in lines

    def test_existing_manifest(self, runner, project_dir):
        result = runner.invoke(main, ["init", str(project_dir)])
        assert result.exit_code == 1
        assert "already exists" in result.output


class TestValidate:
    def test_valid_project(self, runner, project_dir):
        result = runner.invoke(main, ["validate", str(project_dir)])

        assert result.exit_code == 0, result.output
        assert "✓ Project 'geo' is valid" in result.output
        assert "Load order: country -> city" in result.output

    def test_invalid_project_lists_issues(self, runner, project_dir):
        manifest = project_dir / "dbloada.yaml"
        manifest.write_text(manifest.read_text().replace("target_table: country", "target_table: nation"))

        result = runner.invoke(main, ["validate", str(project_dir)])

        assert result.exit_code == 1
        assert "✗ Project validation failed with" in result.output
        assert "nation" in result.output

    def test_unloadable_manifest(self, runner, temp_dir):
        (temp_dir / "dbloada.yaml").write_text("kind: [unclosed")

        result = runner.invoke(main, ["validate", str(temp_dir)])

        assert result.exit_code == 1
        assert "✗ Project could not be loaded" in result.output

    def test_malformed_vars(self, runner, project_dir):
        result = runner.invoke(main, ["validate", str(project_dir), "--vars", "novalue"])
        assert result.exit_code == 1
        assert "Invalid variable format: novalue" in result.output


class TestLoad:
    def test_partial_load_exit_codes(self, runner, project_dir):
        result = runner.invoke(main, ["load", str(project_dir)])

        assert result.exit_code == 0, result.output
        assert "Status: partial_success" in result.output
        assert "city: partial (2/3 written, 1 rejected)" in result.output
        assert "Wrote skill file" in result.output
        assert (project_dir / "geo.duckdb").exists()
        assert (project_dir / "SKILL.md").exists()

        strict = runner.invoke(main, ["load", str(project_dir), "--strict"])
        assert strict.exit_code == 2

    def test_json_report(self, runner, project_dir):
        result = runner.invoke(
            main, ["--log-level", "CRITICAL", "load", str(project_dir), "--json-report"]
        )

        report = json.loads(result.output)
        assert report["status"] == "partial_success"
        assert [t["table"] for t in report["tables"]] == ["country", "city"]

    def test_validation_failure(self, runner, project_dir):
        manifest = project_dir / "dbloada.yaml"
        manifest.write_text(manifest.read_text().replace("target_column: id", "target_column: name"))

        result = runner.invoke(main, ["load", str(project_dir)])

        assert result.exit_code == 1
        assert "✗ Project validation failed with" in result.output
        assert not (project_dir / "geo.duckdb").exists()


def test_skill_command(runner, project_dir):
    result = runner.invoke(main, ["skill", str(project_dir)])

    assert result.exit_code == 0, result.output
    assert "Wrote skill file" in result.output
    assert (project_dir / "SKILL.md").read_text().startswith("---\nname: geo\n")
    assert not (project_dir / "geo.duckdb").exists()


def test_list_connectors(runner):
    result = runner.invoke(main, ["list-connectors"])

    assert result.exit_code == 0
    assert "Source kinds:" in result.output
    assert "  - file" in result.output
    assert "path (required)" in result.output
    assert "  - duckdb (database, db_schema)" in result.output
    assert "  - graph (path)" in result.output
