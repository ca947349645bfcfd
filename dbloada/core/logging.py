"""Structured logging configuration for dbloada."""

import logging
import sys
from typing import Optional

from json_log_formatter import JSONFormatter

CONTEXT_FIELDS = ("project", "table", "source", "batch_id")


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    project_name: Optional[str] = None,
) -> None:
    """Configure logging for dbloada.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, use JSON format; otherwise use normal format
        project_name: Optional project name attached to every record
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger("dbloada")
    logger.setLevel(log_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    if json_format:
        formatter = ContextJSONFormatter()
    else:
        formatter = StructuredFormatter()
    handler.setFormatter(formatter)

    if project_name:
        handler.addFilter(_ProjectFilter(project_name))

    logger.addHandler(handler)


class _ProjectFilter(logging.Filter):
    def __init__(self, project_name: str):
        super().__init__()
        self.project_name = project_name

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "project"):
            record.project = self.project_name
        return True


class StructuredFormatter(logging.Formatter):
    """Structured formatter that adds load context to log messages."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with context."""
        context = getattr(record, "context", {})

        parts = [f"[{record.levelname}]"]

        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                parts.append(f"{name}={getattr(record, name)}")

        for key, value in context.items():
            parts.append(f"{key}={value}")

        parts.append(record.getMessage())

        message = " ".join(parts)
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


class ContextJSONFormatter(JSONFormatter):
    """JSON formatter that keeps the level and logger name."""

    def json_record(self, message: str, extra: dict, record: logging.LogRecord) -> dict:
        extra = super().json_record(message, extra, record)
        extra["level"] = record.levelname
        extra["logger"] = record.name
        return extra
