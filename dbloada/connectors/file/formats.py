"""Record format handlers shared by file and command sources.

Each handler turns decoded text into raw records keyed by column name.
Malformed individual records come back as FormatFailure values; problems
with the document as a whole raise ConnectionFailure.
"""

import csv
import json
from abc import ABC, abstractmethod
from io import StringIO
from typing import Any, Iterator, Optional, Union

from jsonpath_ng import parse as parse_jsonpath

from dbloada.core.exceptions import ConnectionFailure, FormatFailure
from dbloada.models.project import TableSpec

RecordOrFailure = Union[dict[str, Any], FormatFailure]

_QUOTES = ('"', "'")


class Format(ABC):
    """Base class for record format handlers."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def read_records(
        self, text: str, table: TableSpec, origin: str
    ) -> Iterator[RecordOrFailure]:
        """Parse ``text`` into records for ``table``.

        Args:
            text: Decoded document text.
            table: Table whose columns are being populated.
            origin: Where the text came from (path, URL or command), for messages.
        """
        ...


def clean_field(value: str) -> str:
    """Trim whitespace and remove one level of surrounding quotes."""
    value = value.strip()
    if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
        value = value[1:-1]
    return value


class CSVFormat(Format):
    """CSV handler mapping column identifiers onto header names or indexes."""

    def __init__(self, delimiter: str = ",", has_header: bool = True, **kwargs: Any):
        self._delimiter = delimiter
        self._has_header = has_header

    @property
    def name(self) -> str:
        return "csv"

    def read_records(
        self, text: str, table: TableSpec, origin: str
    ) -> Iterator[RecordOrFailure]:
        reader = csv.reader(StringIO(text), delimiter=self._delimiter)
        expected: Optional[int] = None
        indexes: Optional[dict[str, int]] = None

        rows = self._rows(reader, origin)

        if self._has_header:
            header = next((row for row in rows if row), None)
            if header is None:
                return
            if isinstance(header, FormatFailure):
                raise ConnectionFailure(
                    f"Failed to parse CSV header: {header.message}",
                    context={"origin": origin},
                )
            header = [clean_field(name) for name in header]
            expected = len(header)
            indexes = self._resolve_header(header, table, origin)

        for row in rows:
            if isinstance(row, FormatFailure):
                yield row
                continue
            if not row or all(not field.strip() for field in row):
                continue
            line = reader.line_num
            if expected is None:
                expected = len(row)
                indexes = self._resolve_positions(expected, table, origin)
            if len(row) != expected:
                yield FormatFailure(
                    f"row has {len(row)} field(s), expected {expected}",
                    position=line,
                    context={"origin": origin},
                )
                continue
            yield {column: clean_field(row[index]) for column, index in indexes.items()}

    @staticmethod
    def _rows(reader, origin: str) -> Iterator[Union[list[str], FormatFailure]]:
        """Iterate parsed rows, turning unparseable lines into FormatFailures.

        The csv reader drops the rest of a bad line and resumes on the next
        one; a parse error that consumed no input ends the source.
        """
        while True:
            before = reader.line_num
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                if reader.line_num == before:
                    raise ConnectionFailure(
                        f"Failed to parse CSV: {e}", context={"origin": origin}
                    ) from e
                yield FormatFailure(
                    f"malformed CSV row: {e}",
                    position=reader.line_num,
                    context={"origin": origin},
                )
                continue
            yield row

    def _resolve_header(
        self, header: list[str], table: TableSpec, origin: str
    ) -> dict[str, int]:
        indexes: dict[str, int] = {}
        for column in table.columns:
            identifier = column.name if column.identifier is None else column.identifier
            if isinstance(identifier, int):
                if not 0 <= identifier < len(header):
                    raise ConnectionFailure(
                        f"column index {identifier} is out of range for {len(header)} field(s)",
                        context={"origin": origin, "column": column.name},
                    )
                indexes[column.name] = identifier
            elif identifier in header:
                indexes[column.name] = header.index(identifier)
            elif column.identifier is not None:
                raise ConnectionFailure(
                    f"header has no field '{identifier}'",
                    context={"origin": origin, "column": column.name},
                )
        return indexes

    def _resolve_positions(
        self, field_count: int, table: TableSpec, origin: str
    ) -> dict[str, int]:
        indexes: dict[str, int] = {}
        for position, column in enumerate(table.columns):
            index = position if column.identifier is None else column.identifier
            if not isinstance(index, int) or not 0 <= index < field_count:
                raise ConnectionFailure(
                    f"column index {index} is out of range for {field_count} field(s)",
                    context={"origin": origin, "column": column.name},
                )
            indexes[column.name] = index
        return indexes


def record_from_object(
    obj: Any, table: TableSpec, position: Any, origin: str
) -> RecordOrFailure:
    """Map a decoded JSON object onto the table's columns.

    Values may be scalars or lists of scalars; anything more deeply nested is
    a FormatFailure.
    """
    if not isinstance(obj, dict):
        return FormatFailure(
            f"expected a JSON object, got {type(obj).__name__}",
            position=position,
            context={"origin": origin},
        )
    record: dict[str, Any] = {}
    for column in table.columns:
        key = column.name if column.identifier is None else str(column.identifier)
        value = obj.get(key)
        if isinstance(value, dict) or (
            isinstance(value, list) and any(isinstance(v, (dict, list)) for v in value)
        ):
            return FormatFailure(
                f"field '{key}' holds a nested value",
                position=position,
                context={"origin": origin},
            )
        record[column.name] = value
    return record


def extract_items(document: Any, data_path: Optional[str], origin: str) -> list[Any]:
    """Locate the record array inside a decoded JSON document.

    Raises:
        ConnectionFailure: If ``data_path`` is invalid or points at a scalar.
    """
    if data_path:
        try:
            matches = parse_jsonpath(data_path).find(document)
        except Exception as e:
            raise ConnectionFailure(
                f"Invalid data_path '{data_path}': {e}", context={"origin": origin}
            ) from e
        if not matches:
            return []
        document = matches[0].value

    if isinstance(document, list):
        return document
    if isinstance(document, dict):
        return [document]
    raise ConnectionFailure(
        f"expected a JSON array or object, got {type(document).__name__}",
        context={"origin": origin, "data_path": data_path},
    )


class JSONFormat(Format):
    """JSON handler: an array of objects, a single object, or a JSONPath into either."""

    def __init__(self, data_path: Optional[str] = None, **kwargs: Any):
        self._data_path = data_path

    @property
    def name(self) -> str:
        return "json"

    def read_records(
        self, text: str, table: TableSpec, origin: str
    ) -> Iterator[RecordOrFailure]:
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConnectionFailure(
                f"Failed to parse JSON: {e}", context={"origin": origin}
            ) from e

        for index, item in enumerate(extract_items(document, self._data_path, origin)):
            yield record_from_object(item, table, index, origin)


class JSONLFormat(Format):
    """JSON Lines handler: one object per line, blank lines ignored."""

    def __init__(self, **kwargs: Any):
        pass

    @property
    def name(self) -> str:
        return "jsonl"

    def read_records(
        self, text: str, table: TableSpec, origin: str
    ) -> Iterator[RecordOrFailure]:
        # str.splitlines() also breaks on U+2028 and friends, which JSON
        # allows raw inside strings.
        for line_num, line in enumerate(StringIO(text, newline="\n"), 1):
            line = line.rstrip("\r\n")
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError as e:
                yield FormatFailure(
                    f"invalid JSON: {e.msg}", position=line_num, context={"origin": origin}
                )
                continue
            yield record_from_object(obj, table, line_num, origin)


_FORMATS: dict[str, type[Format]] = {
    "csv": CSVFormat,
    "json": JSONFormat,
    "jsonl": JSONLFormat,
}


def get_format(format_name: str, **kwargs: Any) -> Format:
    """Get a format handler by name.

    Raises:
        ConnectionFailure: If the format is not supported.
    """
    format_class = _FORMATS.get(format_name.lower())
    if format_class is None:
        raise ConnectionFailure(
            f"Unsupported format: '{format_name}'. Available formats: {', '.join(_FORMATS)}",
            context={"format": format_name},
        )
    return format_class(**kwargs)


def list_formats() -> list[str]:
    return sorted(_FORMATS)
