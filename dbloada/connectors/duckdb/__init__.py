"""DuckDB writer module."""

from dbloada.connectors.duckdb.type_mapper import DuckDBTypeMapper
from dbloada.connectors.duckdb.writer import (
    RELATIONSHIPS_TABLE,
    DuckDBWriter,
    join_table_name,
)

__all__ = [
    "DuckDBWriter",
    "DuckDBTypeMapper",
    "RELATIONSHIPS_TABLE",
    "join_table_name",
]
