"""API connector module."""

from dbloada.connectors.api.config import ApiSourceOptions
from dbloada.connectors.api.connector import ApiConnector

__all__ = [
    "ApiConnector",
    "ApiSourceOptions",
]
