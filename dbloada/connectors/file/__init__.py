"""File connector module."""

from dbloada.connectors.file.config import FileSourceOptions, infer_format
from dbloada.connectors.file.connector import FileConnector
from dbloada.connectors.file.formats import (
    CSVFormat,
    Format,
    JSONFormat,
    JSONLFormat,
    get_format,
    list_formats,
)

__all__ = [
    "FileConnector",
    "FileSourceOptions",
    "infer_format",
    # Format handlers
    "Format",
    "CSVFormat",
    "JSONFormat",
    "JSONLFormat",
    "get_format",
    "list_formats",
]
