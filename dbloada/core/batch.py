"""Batches of typed rows passed from the orchestrator to writers."""

from typing import Any, Optional

import pyarrow as pa


class ArrowBatch:
    """Arrow-backed batch of typed rows for one table.

    Rows are kept as a PyArrow Table whose schema comes from the table's
    declared column types, so writers never infer types from data.
    """

    def __init__(self, table: pa.Table, metadata: dict[str, Any] | None = None):
        """Initialize from Arrow table.

        Raises:
            ValueError: If table has zero columns
        """
        if len(table.column_names) == 0:
            raise ValueError("table cannot have zero columns")

        self._table = table
        self._metadata = metadata or {}

    @classmethod
    def from_rows(
        cls,
        rows: list[dict[str, Any]],
        schema: pa.Schema,
        metadata: dict[str, Any] | None = None,
    ) -> "ArrowBatch":
        """Create an ArrowBatch from row dictionaries and an explicit schema.

        Args:
            rows: Typed rows keyed by column name (missing keys become null)
            schema: Arrow schema derived from the table's column types
            metadata: Optional metadata dictionary

        Raises:
            ValueError: If the schema has no fields
        """
        if len(schema) == 0:
            raise ValueError("schema cannot be empty")
        normalized = [
            {name: _to_arrow_value(row.get(name)) for name in schema.names} for row in rows
        ]
        table = pa.Table.from_pylist(normalized, schema=schema)
        return cls(table, metadata)

    @property
    def columns(self) -> list[str]:
        return self._table.column_names

    @property
    def schema(self) -> pa.Schema:
        return self._table.schema

    @property
    def rows(self) -> list[dict[str, Any]]:
        """Return rows as dictionaries keyed by column name."""
        return self._table.to_pylist()

    @property
    def row_count(self) -> int:
        return len(self._table)

    @property
    def metadata(self) -> dict[str, Any]:
        return self._metadata

    def to_arrow(self) -> pa.Table:
        """Return underlying Arrow table for zero-copy operations."""
        return self._table

    def column(self, name: str) -> list[Any]:
        return self._table.column(name).to_pylist()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict representation (for debugging)."""
        return {
            "columns": self.columns,
            "rows": self.rows,
            "metadata": self.metadata,
        }


def _to_arrow_value(value: Optional[Any]) -> Any:
    # Many-to-many keys travel as tuples; Arrow list arrays want lists.
    if isinstance(value, tuple):
        return list(value)
    return value
