"""Public Python API for dbloada package.

This module wires concrete connectors and writers to the load engine and
provides the main entry points for validating, loading and describing
projects.
"""

import threading
from pathlib import Path
from typing import Optional, Union

from dbloada.connectors.api import ApiConnector
from dbloada.connectors.base import DatabaseWriter, SourceConnector
from dbloada.connectors.command import CommandConnector
from dbloada.connectors.duckdb import DuckDBWriter
from dbloada.connectors.file import FileConnector
from dbloada.connectors.graph import GraphWriter
from dbloada.core.engine import LoadOrchestrator
from dbloada.core.report import LoadReport
from dbloada.core.schema import SchemaGraph, validate_project
from dbloada.core.skill import SkillEmitter
from dbloada.models.loader import load_project, project_file_path
from dbloada.models.project import Project, SourceKind
from dbloada.models.target_config import DuckDBTargetConfig

PathLike = Union[str, Path]


def project_dir(path: PathLike) -> Path:
    """Directory that relative paths in a project resolve against."""
    return project_file_path(path).resolve().parent


def build_connectors(base_dir: Optional[PathLike] = None) -> dict[SourceKind, SourceConnector]:
    """Create one connector per built-in source kind.

    Args:
        base_dir: Directory relative file paths and commands run from.
    """
    return {
        SourceKind.FILE: FileConnector(base_dir=base_dir),
        SourceKind.API: ApiConnector(),
        SourceKind.COMMAND: CommandConnector(base_dir=base_dir),
    }


def build_writer(project: Project, base_dir: Optional[PathLike] = None) -> DatabaseWriter:
    """Create the writer for the project's target."""
    if isinstance(project.target, DuckDBTargetConfig):
        return DuckDBWriter(project.target, base_dir=base_dir)
    return GraphWriter(project.target, base_dir=base_dir)


def _db_schema(project: Project) -> Optional[str]:
    if isinstance(project.target, DuckDBTargetConfig):
        return project.target.db_schema
    return None


def build_emitter(project: Project, base_dir: Optional[PathLike] = None) -> Optional[SkillEmitter]:
    """Create the skill emitter, or None when the project disables it."""
    if not project.skill.enabled:
        return None
    path = Path(project.skill.path)
    if base_dir is not None and not path.is_absolute():
        path = Path(base_dir) / path
    return SkillEmitter(path, project.target.kind, _db_schema(project))


def validate(path: PathLike, cli_vars: Optional[dict[str, str]] = None) -> SchemaGraph:
    """Load and validate a project without touching any source or target.

    Raises:
        ProjectError: If the manifest cannot be loaded.
        ValidationError: If the project is inconsistent.
    """
    return validate_project(load_project(path, cli_vars=cli_vars))


def run_project(
    path: PathLike,
    cli_vars: Optional[dict[str, str]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> LoadReport:
    """Load a project from its manifest and run it end to end.

    Example:
        >>> from dbloada import run_project
        >>> report = run_project("projects/countries")
        >>> print(report.summary())
    """
    project = load_project(path, cli_vars=cli_vars)
    return run(project, base_dir=project_dir(path), cancel_event=cancel_event)


def run(
    project: Project,
    base_dir: Optional[PathLike] = None,
    cancel_event: Optional[threading.Event] = None,
) -> LoadReport:
    """Run an already-loaded project with the built-in connectors and writer.

    Raises:
        ValidationError: If the project is invalid (nothing is written).
    """
    writer = build_writer(project, base_dir)
    orchestrator = LoadOrchestrator(
        build_connectors(base_dir),
        writer,
        emitter=build_emitter(project, base_dir),
        cancel_event=cancel_event,
    )
    try:
        return orchestrator.run(project)
    finally:
        writer.close()


def emit_skill(path: PathLike, cli_vars: Optional[dict[str, str]] = None) -> Path:
    """Write the skill file for a project without loading any data."""
    project = load_project(path, cli_vars=cli_vars)
    graph = validate_project(project)
    base_dir = project_dir(path)
    path = Path(project.skill.path)
    if not path.is_absolute():
        path = base_dir / path
    return SkillEmitter(path, project.target.kind, _db_schema(project)).emit(graph)
