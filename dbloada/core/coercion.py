"""Conversion of untyped source values into declared column types.

Everything here is pure: no I/O, no shared state. Reference columns are
checked against key sets passed in by the caller.
"""

import math
import re
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from dbloada.core.exceptions import CoercionFailure, DanglingReference
from dbloada.models.project import Cardinality, ColumnSpec, ColumnType, RelationshipSpec

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,6}))?"
    r"(Z|[+-]\d{2}:\d{2})?$"
)

TRUE_TOKENS = frozenset({"true", "1"})
FALSE_TOKENS = frozenset({"false", "0"})

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def is_missing(raw: Any, column_type: ColumnType) -> bool:
    """Return True when a raw value counts as null for the given type.

    Empty strings are null for every type except text.
    """
    if raw is None:
        return True
    if isinstance(raw, str) and raw.strip() == "" and column_type != ColumnType.TEXT:
        return True
    return False


def coerce_value(column_type: ColumnType, raw: Any, column: str = "") -> Any:
    """Convert a single non-null raw value to ``column_type``.

    Raises:
        CoercionFailure: If the value does not fit the type.
    """
    if isinstance(raw, (list, tuple, dict)):
        raise CoercionFailure(column, raw, column_type.value, "expected a scalar value")

    if column_type == ColumnType.TEXT:
        return _to_text(raw)
    if column_type == ColumnType.INTEGER:
        return _to_integer(raw, column)
    if column_type == ColumnType.FLOAT:
        return _to_float(raw, column)
    if column_type == ColumnType.BOOLEAN:
        return _to_boolean(raw, column)
    if column_type == ColumnType.TIMESTAMP:
        return _to_timestamp(raw, column)
    raise CoercionFailure(
        column, raw, column_type.value, "reference values need a target key set"
    )


def _to_text(raw: Any) -> str:
    if isinstance(raw, bool):
        return "true" if raw else "false"
    return str(raw)


def _to_integer(raw: Any, column: str) -> int:
    if isinstance(raw, bool):
        raise CoercionFailure(column, raw, "integer", "booleans are not integers")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float):
        if not math.isfinite(raw) or not raw.is_integer():
            raise CoercionFailure(column, raw, "integer", "not a whole number")
        value = int(raw)
    elif isinstance(raw, str) and _INTEGER_RE.match(raw.strip()):
        value = int(raw.strip())
    else:
        raise CoercionFailure(column, raw, "integer")
    if not INT64_MIN <= value <= INT64_MAX:
        raise CoercionFailure(column, raw, "integer", "outside the 64-bit range")
    return value


def _to_float(raw: Any, column: str) -> float:
    if isinstance(raw, bool):
        raise CoercionFailure(column, raw, "float", "booleans are not numbers")
    if isinstance(raw, (int, float)):
        try:
            value = float(raw)
        except OverflowError as e:
            raise CoercionFailure(column, raw, "float", "not a finite number") from e
    elif isinstance(raw, str) and _FLOAT_RE.match(raw.strip()):
        value = float(raw.strip())
    else:
        raise CoercionFailure(column, raw, "float")
    if not math.isfinite(value):
        raise CoercionFailure(column, raw, "float", "not a finite number")
    return value


def _to_boolean(raw: Any, column: str) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        token = raw.strip().lower()
        if token in TRUE_TOKENS:
            return True
        if token in FALSE_TOKENS:
            return False
    raise CoercionFailure(column, raw, "boolean", "expected true/false or 1/0")


def _to_timestamp(raw: Any, column: str) -> datetime:
    """Parse ``YYYY-MM-DDTHH:MM:SS[.ffffff][Z|+HH:MM]`` into naive UTC."""
    if not isinstance(raw, str):
        raise CoercionFailure(column, raw, "timestamp", "expected an ISO-8601 string")
    match = _TIMESTAMP_RE.match(raw.strip())
    if not match:
        raise CoercionFailure(
            column, raw, "timestamp", "expected YYYY-MM-DDTHH:MM:SS[.ffffff][Z|+HH:MM]"
        )
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    microsecond = int(fraction.ljust(6, "0")) if fraction else 0
    try:
        tzinfo = None
        if offset == "Z":
            tzinfo = timezone.utc
        elif offset:
            sign = 1 if offset[0] == "+" else -1
            hours, minutes = offset[1:].split(":")
            tzinfo = timezone(sign * timedelta(hours=int(hours), minutes=int(minutes)))
        value = datetime(
            int(year),
            int(month),
            int(day),
            int(hour),
            int(minute),
            int(second),
            microsecond,
            tzinfo=tzinfo,
        )
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
    except (ValueError, OverflowError) as e:
        raise CoercionFailure(column, raw, "timestamp", str(e)) from e
    return value


def coerce_column(
    column: ColumnSpec,
    raw: Any,
    value_type: Optional[ColumnType] = None,
    relationship: Optional[RelationshipSpec] = None,
    key_set: Optional[set] = None,
) -> Any:
    """Coerce one raw value for ``column``, applying null and default rules.

    Args:
        column: Column being populated.
        raw: Raw source value (may be None or absent-as-None).
        value_type: For reference columns, the type of the target key.
        relationship: For reference columns, the owning relationship.
        key_set: For reference columns, keys already written to the target.

    Raises:
        CoercionFailure: On a type mismatch or a missing non-nullable value.
        DanglingReference: When a reference has no matching target key.
    """
    base_type = value_type if column.type == ColumnType.REFERENCE else column.type
    many = (
        relationship is not None
        and relationship.cardinality == Cardinality.MANY_TO_MANY
    )

    if column.type == ColumnType.REFERENCE and many:
        raw = _split_many(raw, relationship.delimiter)

    if is_missing(raw, base_type or ColumnType.TEXT) or raw == []:
        if column.has_default:
            return coerce_value(column.type, column.default, column.name)
        if column.nullable and not column.primary_key:
            return None
        raise CoercionFailure(column.name, raw, column.type.value, "value is required")

    if column.type != ColumnType.REFERENCE:
        return coerce_value(column.type, raw, column.name)

    if relationship is None or value_type is None:
        raise CoercionFailure(column.name, raw, "reference", "no owning relationship")

    keys = key_set if key_set is not None else set()
    if many:
        values = []
        for item in raw:
            key = _resolve_key(column, item, value_type, relationship, keys)
            if key not in values:
                values.append(key)
        return tuple(values)
    return _resolve_key(column, raw, value_type, relationship, keys)


def _split_many(raw: Any, delimiter: str) -> Any:
    if isinstance(raw, (list, tuple)):
        return [item for item in raw if not is_missing(item, ColumnType.TEXT)]
    if isinstance(raw, str):
        return [part.strip() for part in raw.split(delimiter) if part.strip()]
    return raw if raw is None else [raw]


def _resolve_key(
    column: ColumnSpec,
    raw: Any,
    value_type: ColumnType,
    relationship: RelationshipSpec,
    key_set: set,
) -> Any:
    key = coerce_value(value_type, raw, column.name)
    if key not in key_set:
        raise DanglingReference(
            column.name, raw, relationship.target_table, relationship.target_column
        )
    return key


def coerce_record(
    table,
    record: Mapping[str, Any],
    value_types: Mapping[str, ColumnType],
    key_sets: Mapping[str, set],
) -> tuple[dict[str, Any], list[CoercionFailure]]:
    """Coerce every column of ``table`` from a raw record.

    Args:
        table: The TableSpec being loaded.
        record: Raw values keyed by column name; absent keys count as null.
        value_types: Resolved key type for each reference column.
        key_sets: Written keys per target table.

    Returns:
        The typed row and the list of failures (empty when the row is good).
    """
    row: dict[str, Any] = {}
    failures: list[CoercionFailure] = []
    for column in table.columns:
        relationship = (
            table.relationship_for(column.name)
            if column.type == ColumnType.REFERENCE
            else None
        )
        try:
            row[column.name] = coerce_column(
                column,
                record.get(column.name),
                value_type=value_types.get(column.name),
                relationship=relationship,
                key_set=key_sets.get(relationship.target_table) if relationship else None,
            )
        except CoercionFailure as failure:
            failures.append(failure)
    return row, failures
