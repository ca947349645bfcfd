"""Target database configuration models."""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class DuckDBTargetConfig(BaseModel):
    """Relational target backed by DuckDB."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["duckdb"] = "duckdb"
    database: str = Field(
        default="dbloada.duckdb",
        description="Database file path (relative to the project) or ':memory:'",
    )
    db_schema: Optional[str] = Field(default=None, description="Database schema")


class GraphTargetConfig(BaseModel):
    """Property-graph target persisted as node-link JSON."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["graph"] = "graph"
    path: str = Field(
        default="graph.json", description="Graph file path, relative to the project"
    )


TargetConfig = Annotated[
    Union[DuckDBTargetConfig, GraphTargetConfig], Field(discriminator="kind")
]
