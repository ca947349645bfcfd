"""Models module for project definitions."""

from dbloada.models.loader import PROJECT_FILE_NAME, load_project, project_file_path
from dbloada.models.project import (
    PROJECT_API_VERSION,
    PROJECT_KIND,
    Cardinality,
    ColumnSpec,
    ColumnType,
    Project,
    RelationshipSpec,
    SourceKind,
    SourceSpec,
    TableSpec,
)
from dbloada.models.runtime_config import RuntimeConfig, SkillConfig
from dbloada.models.target_config import (
    DuckDBTargetConfig,
    GraphTargetConfig,
    TargetConfig,
)

__all__ = [
    "PROJECT_API_VERSION",
    "PROJECT_FILE_NAME",
    "PROJECT_KIND",
    "Cardinality",
    "ColumnSpec",
    "ColumnType",
    "Project",
    "RelationshipSpec",
    "SourceKind",
    "SourceSpec",
    "TableSpec",
    "RuntimeConfig",
    "SkillConfig",
    "DuckDBTargetConfig",
    "GraphTargetConfig",
    "TargetConfig",
    "load_project",
    "project_file_path",
]
