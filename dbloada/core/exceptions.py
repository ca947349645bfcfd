"""Exception hierarchy for the dbloada package."""

from typing import Any


class DbLoadaError(Exception):
    """Base exception for all dbloada errors."""

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class ProjectError(DbLoadaError):
    """Raised when a project manifest cannot be read or deserialized."""

    pass


class ValidationError(DbLoadaError):
    """Raised when the project model is structurally invalid.

    Carries every issue found in the first failing validation category.
    """

    def __init__(self, issues: list, context: dict | None = None):
        self.issues = list(issues)
        lines = "; ".join(str(issue) for issue in self.issues)
        super().__init__(
            f"Project validation failed with {len(self.issues)} issue(s): {lines}",
            context,
        )


class ConnectorError(DbLoadaError):
    """Raised when connector operations fail."""

    pass


class ConnectionFailure(ConnectorError):
    """A source could not be read as a whole.

    Covers unreachable endpoints, missing files, failed commands and
    documents that cannot be parsed at all.
    """

    pass


class FormatFailure(DbLoadaError):
    """A single malformed record from a source.

    Connectors yield these instead of raising so that reading continues.
    """

    def __init__(self, message: str, position: Any = None, context: dict | None = None):
        context = dict(context or {})
        if position is not None:
            context.setdefault("position", position)
        super().__init__(message, context)
        self.position = position


class CoercionFailure(DbLoadaError):
    """A raw value could not be converted to its column's declared type."""

    kind = "CoercionFailure"

    def __init__(self, column: str, raw_value: Any, target_type: str, reason: str = ""):
        self.column = column
        self.raw_value = raw_value
        self.target_type = target_type
        self.reason = reason
        message = f"cannot coerce {raw_value!r} to {target_type} for column '{column}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DanglingReference(CoercionFailure):
    """A reference value with no matching key in the target table."""

    kind = "DanglingReference"

    def __init__(self, column: str, raw_value: Any, target_table: str, target_column: str):
        self.target_table = target_table
        self.target_column = target_column
        super().__init__(
            column,
            raw_value,
            "reference",
            f"no row in '{target_table}' with {target_column}={raw_value!r}",
        )


class WriteFailure(DbLoadaError):
    """Raised when a database writer rejects a batch."""

    pass


class EngineError(DbLoadaError):
    """Raised when the load orchestrator cannot proceed."""

    pass
