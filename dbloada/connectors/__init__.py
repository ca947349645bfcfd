"""Source connectors and database writers.

This module exposes:
- SourceConnector / DatabaseWriter: the protocols the load engine works against
- SOURCE_OPTION_MODELS / parse_source_options: per-kind source option models

Concrete connectors live in the ``file``, ``api`` and ``command`` packages;
writers in ``duckdb`` and ``graph``. They are built by ``dbloada.api``.
"""

from dbloada.connectors.base import DatabaseWriter, RawRecord, SourceConnector
from dbloada.connectors.options import SOURCE_OPTION_MODELS, parse_source_options

__all__ = [
    "DatabaseWriter",
    "RawRecord",
    "SourceConnector",
    "SOURCE_OPTION_MODELS",
    "parse_source_options",
]
