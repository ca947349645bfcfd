"""Project model: tables, columns, relationships and sources.

These are plain data entities produced by manifest deserialization (or built
directly in Python). They carry no load behavior and are frozen once built.
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dbloada.models.runtime_config import RuntimeConfig, SkillConfig
from dbloada.models.target_config import DuckDBTargetConfig, TargetConfig

PROJECT_API_VERSION = "project.dbloada.io/v1"
PROJECT_KIND = "DBLoadaProject"


class ColumnType(str, Enum):
    """Closed set of declared column types."""

    TEXT = "text"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    REFERENCE = "reference"


class Cardinality(str, Enum):
    """Relationship cardinality, read from the target side.

    ``one_to_many`` means one target row is referenced by many source rows
    (a city referencing its country).
    """

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"

    @property
    def requires_existing_target(self) -> bool:
        # Every cardinality resolves references against written target keys.
        return True


class SourceKind(str, Enum):
    """Built-in source connector kinds."""

    FILE = "file"
    API = "api"
    COMMAND = "command"


class ColumnSpec(BaseModel):
    """Schema definition for a single column."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(description="Column name, unique within its table")
    type: ColumnType = Field(description="Declared column type")
    nullable: bool = Field(default=True, description="Whether nulls are allowed")
    default: Optional[Union[bool, int, float, str]] = Field(
        default=None, description="Raw default used when the source value is missing"
    )
    primary_key: bool = Field(
        default=False, description="Whether this column is the table's natural key"
    )
    identifier: Optional[Union[int, str]] = Field(
        default=None,
        description="Source field name or zero-based index (defaults to the column name)",
    )
    description: str = Field(default="", description="Human readable description")

    @property
    def has_default(self) -> bool:
        return self.default is not None


class RelationshipSpec(BaseModel):
    """A reference from one of a table's columns to another table's key."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="", description="Relationship name, unique within its table")
    source_table: Optional[str] = Field(
        default=None, description="Declaring table (filled in from the enclosing table)"
    )
    source_column: str = Field(description="Reference-typed column in the source table")
    target_table: str = Field(description="Referenced table")
    target_column: str = Field(description="Referenced column (the target's primary key)")
    cardinality: Cardinality = Field(default=Cardinality.ONE_TO_MANY)
    delimiter: str = Field(
        default=";", description="Separator for many-to-many values given as text"
    )
    description: str = Field(default="")

    @model_validator(mode="before")
    @classmethod
    def default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name"):
            data = dict(data)
            data["name"] = f"{data.get('source_column')}_{data.get('target_table')}"
        return data


class SourceSpec(BaseModel):
    """A data source populating one table."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(description="Source identifier, unique within the project")
    kind: SourceKind = Field(description="Connector kind")
    table: Optional[str] = Field(
        default=None, description="Table populated (implied when nested under a table)"
    )
    options: dict[str, Any] = Field(
        default_factory=dict, description="Kind-specific options, validated per kind"
    )


class TableSpec(BaseModel):
    """A table with its columns and outbound relationships."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(description="Table name, unique within the project")
    description: str = Field(default="")
    columns: list[ColumnSpec] = Field(default_factory=list)
    relationships: list[RelationshipSpec] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def fill_relationship_source(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        relationships = []
        for rel in data.get("relationships") or []:
            if isinstance(rel, RelationshipSpec):
                if rel.source_table is None:
                    rel = rel.model_copy(update={"source_table": data.get("name")})
            elif isinstance(rel, dict):
                rel = {"source_table": data.get("name"), **rel}
            relationships.append(rel)
        data["relationships"] = relationships
        return data

    def get_column(self, name: str) -> Optional[ColumnSpec]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def get_column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    @property
    def primary_key(self) -> Optional[ColumnSpec]:
        for col in self.columns:
            if col.primary_key:
                return col
        return None

    def relationship_for(self, column_name: str) -> Optional[RelationshipSpec]:
        for rel in self.relationships:
            if rel.source_column == column_name:
                return rel
        return None


class Project(BaseModel):
    """The deserialized manifest: tables, sources and load settings."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str = Field(description="Project name")
    api_version: str = Field(default=PROJECT_API_VERSION, alias="apiVersion")
    tables: list[TableSpec] = Field(default_factory=list)
    sources: list[SourceSpec] = Field(default_factory=list)
    target: TargetConfig = Field(default_factory=DuckDBTargetConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    skill: SkillConfig = Field(default_factory=SkillConfig)

    @model_validator(mode="before")
    @classmethod
    def flatten_table_sources(cls, data: Any) -> Any:
        """Move sources nested under tables into the project-level list.

        Nested sources keep their declaration order and come after any
        project-level sources for the same table.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        sources = list(data.get("sources") or [])
        tables = []
        for table in data.get("tables") or []:
            if isinstance(table, dict) and "sources" in table:
                table = dict(table)
                for source in table.pop("sources") or []:
                    if isinstance(source, SourceSpec):
                        if source.table is None:
                            source = source.model_copy(update={"table": table.get("name")})
                    elif isinstance(source, dict):
                        source = {"table": table.get("name"), **source}
                    sources.append(source)
            tables.append(table)
        data["tables"] = tables
        data["sources"] = sources
        return data

    def get_table(self, name: str) -> Optional[TableSpec]:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def sources_for(self, table_name: str) -> list[SourceSpec]:
        """Return the sources populating a table, in declaration order."""
        return [source for source in self.sources if source.table == table_name]
