"""dbloada - Compile declarative project manifests into queryable databases.

A project manifest (``dbloada.yaml``) declares tables, relationships and
sources; dbloada validates it, loads every source in dependency order into
DuckDB or a property graph, and writes a skill file describing how to
query the result.
"""

__version__ = "0.1.0"

# Public API
from dbloada.api import (
    build_connectors,
    build_emitter,
    build_writer,
    emit_skill,
    run,
    run_project,
    validate,
)

# Core classes
from dbloada.core.batch import ArrowBatch
from dbloada.core.engine import LoadOrchestrator

# Exceptions
from dbloada.core.exceptions import (
    ConnectorError,
    DbLoadaError,
    EngineError,
    ProjectError,
    ValidationError,
    WriteFailure,
)
from dbloada.core.report import LoadReport, RunStatus
from dbloada.core.schema import SchemaGraph

# Project model
from dbloada.models.loader import load_project
from dbloada.models.project import Project

__all__ = [
    # Version
    "__version__",
    # Public API
    "load_project",
    "validate",
    "run",
    "run_project",
    "emit_skill",
    "build_connectors",
    "build_writer",
    "build_emitter",
    # Core classes
    "Project",
    "SchemaGraph",
    "LoadOrchestrator",
    "LoadReport",
    "RunStatus",
    "ArrowBatch",
    # Exceptions
    "DbLoadaError",
    "ProjectError",
    "ValidationError",
    "ConnectorError",
    "WriteFailure",
    "EngineError",
]
