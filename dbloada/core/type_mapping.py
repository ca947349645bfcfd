"""Shared type mapping between declared column types and Arrow types.

Writers build their physical schemas from the Arrow types defined here, so
every backend sees the same representation of a table's rows.
"""

from typing import Protocol

import pyarrow as pa

from dbloada.models.project import ColumnType

COLUMN_TYPE_TO_ARROW: dict[ColumnType, pa.DataType] = {
    ColumnType.TEXT: pa.string(),
    ColumnType.INTEGER: pa.int64(),
    ColumnType.FLOAT: pa.float64(),
    ColumnType.BOOLEAN: pa.bool_(),
    ColumnType.TIMESTAMP: pa.timestamp("us"),
}


def column_type_to_arrow(column_type: ColumnType, many: bool = False) -> pa.DataType:
    """Convert a value column type to its Arrow type.

    Args:
        column_type: A non-reference column type (references resolve to the
            type of the key they point at before reaching here)
        many: Wrap the type in a list (many-to-many reference columns)

    Raises:
        ValueError: If column_type is ``reference``
    """
    arrow_type = COLUMN_TYPE_TO_ARROW.get(column_type)
    if arrow_type is None:
        raise ValueError(
            f"Unsupported value type: {column_type.value}. "
            f"Supported types: {[t.value for t in COLUMN_TYPE_TO_ARROW]}"
        )
    return pa.list_(arrow_type) if many else arrow_type


class TypeMapper(Protocol):
    """Protocol for backend-specific type mapping."""

    def arrow_to_connector_type(self, arrow_type: pa.DataType) -> str:
        """Map an Arrow type to a backend type string (e.g. "VARCHAR")."""
        ...
