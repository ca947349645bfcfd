"""Type mapper for the DuckDB writer."""

import pyarrow as pa


class DuckDBTypeMapper:
    """Maps Arrow types to DuckDB column types."""

    def arrow_to_connector_type(self, arrow_type: pa.DataType) -> str:
        """Map Arrow type to DuckDB type.

        Args:
            arrow_type: PyArrow DataType

        Returns:
            DuckDB type string (e.g., "VARCHAR", "BIGINT", "TIMESTAMP")
        """
        if pa.types.is_string(arrow_type) or pa.types.is_large_string(arrow_type):
            return "VARCHAR"
        elif pa.types.is_int64(arrow_type):
            return "BIGINT"
        elif pa.types.is_integer(arrow_type):
            return "INTEGER"
        elif pa.types.is_float64(arrow_type):
            return "DOUBLE"
        elif pa.types.is_floating(arrow_type):
            return "FLOAT"
        elif pa.types.is_boolean(arrow_type):
            return "BOOLEAN"
        elif pa.types.is_timestamp(arrow_type):
            return "TIMESTAMP"
        elif pa.types.is_list(arrow_type):
            return f"{self.arrow_to_connector_type(arrow_type.value_type)}[]"
        else:
            return "VARCHAR"
