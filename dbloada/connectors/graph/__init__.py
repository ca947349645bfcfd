"""Graph writer module."""

from dbloada.connectors.graph.writer import GraphWriter, node_id

__all__ = [
    "GraphWriter",
    "node_id",
]
