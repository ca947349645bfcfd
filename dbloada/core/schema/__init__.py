"""Schema package: project validation and the validated schema graph."""

from dbloada.core.schema.graph import SchemaGraph
from dbloada.core.schema.validation import (
    SchemaValidator,
    ValidationIssue,
    validate_project,
)

__all__ = [
    "SchemaGraph",
    "SchemaValidator",
    "ValidationIssue",
    "validate_project",
]
