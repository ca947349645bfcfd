"""Validated, read-only view of a project's tables and their dependencies."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

import pyarrow as pa

from dbloada.core.type_mapping import column_type_to_arrow
from dbloada.models.project import (
    Cardinality,
    ColumnType,
    Project,
    RelationshipSpec,
    TableSpec,
)


@dataclass(frozen=True)
class SchemaGraph:
    """A validated Project plus load order and dependency indexes.

    Attributes:
        project: The validated project.
        load_order: Table names in a valid load order.
        dependencies: Table -> tables that must be loaded before it.
        depth: Table -> length of its longest dependency chain.
        referenced_by: Table -> relationships (of other tables) targeting it.
    """

    project: Project
    load_order: tuple[str, ...]
    dependencies: Mapping[str, tuple[str, ...]]
    depth: Mapping[str, int]
    referenced_by: Mapping[str, tuple[RelationshipSpec, ...]]
    _tables: Mapping[str, TableSpec] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        tables = {table.name: table for table in self.project.tables}
        object.__setattr__(self, "_tables", MappingProxyType(tables))
        object.__setattr__(self, "dependencies", MappingProxyType(dict(self.dependencies)))
        object.__setattr__(self, "depth", MappingProxyType(dict(self.depth)))
        object.__setattr__(
            self, "referenced_by", MappingProxyType(dict(self.referenced_by))
        )

    def table(self, name: str) -> TableSpec:
        return self._tables[name]

    def tables_in_order(self) -> list[TableSpec]:
        return [self._tables[name] for name in self.load_order]

    def levels(self) -> list[list[str]]:
        """Group tables by depth; tables within one level are independent."""
        grouped: dict[int, list[str]] = {}
        for name in self.load_order:
            grouped.setdefault(self.depth[name], []).append(name)
        return [grouped[level] for level in sorted(grouped)]

    def value_type(self, table_name: str, column_name: str) -> ColumnType:
        """Return the stored value type of a column.

        Reference columns store the type of the key they point at.
        """
        seen = set()
        table = self._tables[table_name]
        column = table.get_column(column_name)
        while column.type == ColumnType.REFERENCE:
            if (table.name, column.name) in seen:
                raise ValueError(f"reference chain loops at {table.name}.{column.name}")
            seen.add((table.name, column.name))
            rel = table.relationship_for(column.name)
            table = self._tables[rel.target_table]
            column = table.get_column(rel.target_column)
        return column.type

    def reference_value_types(self, table_name: str) -> dict[str, ColumnType]:
        """Resolved key type for each reference column of a table."""
        table = self._tables[table_name]
        return {
            col.name: self.value_type(table_name, col.name)
            for col in table.columns
            if col.type == ColumnType.REFERENCE
        }

    def is_many(self, table_name: str, column_name: str) -> bool:
        rel = self._tables[table_name].relationship_for(column_name)
        return rel is not None and rel.cardinality == Cardinality.MANY_TO_MANY

    def arrow_schema(self, table_name: str) -> pa.Schema:
        """Arrow schema for batches of ``table_name`` rows."""
        table = self._tables[table_name]
        fields = []
        for col in table.columns:
            arrow_type = column_type_to_arrow(
                self.value_type(table_name, col.name),
                many=self.is_many(table_name, col.name),
            )
            fields.append(pa.field(col.name, arrow_type, nullable=not col.primary_key))
        return pa.schema(fields)
