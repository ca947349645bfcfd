"""Core module for dbloada package."""

from dbloada.core.batch import ArrowBatch
from dbloada.core.exceptions import (
    CoercionFailure,
    ConnectionFailure,
    ConnectorError,
    DanglingReference,
    DbLoadaError,
    EngineError,
    FormatFailure,
    ProjectError,
    ValidationError,
    WriteFailure,
)
from dbloada.core.report import LoadReport, RunStatus, TableReport, TableStatus

__all__ = [
    "ArrowBatch",
    "LoadReport",
    "RunStatus",
    "TableReport",
    "TableStatus",
    "DbLoadaError",
    "ProjectError",
    "ValidationError",
    "ConnectorError",
    "ConnectionFailure",
    "FormatFailure",
    "CoercionFailure",
    "DanglingReference",
    "WriteFailure",
    "EngineError",
]
