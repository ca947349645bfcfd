"""Command connector module."""

from dbloada.connectors.command.config import OUTPUT_PATH_PLACEHOLDER, CommandSourceOptions
from dbloada.connectors.command.connector import CommandConnector

__all__ = [
    "CommandConnector",
    "CommandSourceOptions",
    "OUTPUT_PATH_PLACEHOLDER",
]
