"""Graph writer: materializes tables as a property graph with networkx."""

import hashlib
import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import networkx as nx
from networkx.readwrite import json_graph

from dbloada.core.batch import ArrowBatch
from dbloada.core.exceptions import WriteFailure
from dbloada.models.project import Cardinality, ColumnType, TableSpec
from dbloada.models.target_config import GraphTargetConfig

logger = logging.getLogger(__name__)


def node_id(table: str, key: Any) -> str:
    """Node identifier for a row: ``<table>:<key>``."""
    return f"{table}:{key}"


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_json_value(v) for v in value]
    return value


def content_id(table: str, row: dict[str, Any]) -> str:
    """Stable node identifier for a row without a primary key."""
    payload = json.dumps({k: _json_value(v) for k, v in row.items()}, sort_keys=True)
    return node_id(table, hashlib.sha1(payload.encode("utf-8")).hexdigest()[:16])


class GraphWriter:
    """Writes typed batches into a networkx MultiDiGraph.

    Every row becomes a node labelled with its table; reference columns
    become edges keyed by relationship name. The graph is saved as
    node-link JSON after each batch (atomically, through a temporary file)
    and reloaded on open, so repeated loads upsert into the same graph.
    """

    def __init__(
        self,
        config: Optional[GraphTargetConfig] = None,
        base_dir: Optional[Union[str, Path]] = None,
    ):
        self._config = config or GraphTargetConfig()
        path = Path(self._config.path)
        if base_dir is not None and not path.is_absolute():
            path = Path(base_dir) / path
        self._path = path
        self._lock = threading.RLock()
        self._graph: Optional[nx.MultiDiGraph] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def graph(self) -> nx.MultiDiGraph:
        with self._lock:
            return self._get_graph()

    def _get_graph(self) -> nx.MultiDiGraph:
        if self._graph is None:
            self._graph = self._load()
        return self._graph

    def _load(self) -> nx.MultiDiGraph:
        if not self._path.exists():
            return nx.MultiDiGraph()
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return json_graph.node_link_graph(data, directed=True, multigraph=True, edges="edges")
        except (OSError, ValueError, KeyError, nx.NetworkXError) as e:
            raise WriteFailure(
                f"Failed to load graph: {e}", context={"path": str(self._path)}
            ) from e

    def _save(self, g: nx.MultiDiGraph) -> None:
        data = json_graph.node_link_data(g, edges="edges")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(temp_path, self._path)
        except OSError as e:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise WriteFailure(
                f"Failed to save graph: {e}", context={"path": str(self._path)}
            ) from e

    def close(self) -> None:
        with self._lock:
            self._graph = None

    def prepare(self, table: TableSpec, graph) -> None:
        """Record the table's shape in the graph metadata."""
        with self._lock:
            g = self._get_graph().copy()
            tables = dict(g.graph.get("tables", {}))
            g.graph["tables"] = tables
            tables[table.name] = {
                "primary_key": table.primary_key.name if table.primary_key else None,
                "columns": [
                    {"name": col.name, "type": graph.value_type(table.name, col.name).value}
                    for col in table.columns
                ],
                "relationships": [
                    {
                        "name": rel.name,
                        "column": rel.source_column,
                        "target": rel.target_table,
                        "cardinality": rel.cardinality.value,
                    }
                    for rel in table.relationships
                ],
            }
            self._save(g)
            self._graph = g
        logger.debug("Prepared graph label", extra={"table": table.name})

    def write_batch(self, table: TableSpec, batch: ArrowBatch) -> int:
        """Upsert one node per row and replace its relationship edges."""
        pk = table.primary_key
        references = [col for col in table.columns if col.type == ColumnType.REFERENCE]

        with self._lock:
            # Applied to a copy so a failed save leaves the graph untouched.
            g = self._get_graph().copy()
            nodes_written: set[str] = set()
            for row in batch.rows:
                if pk is not None:
                    nid = node_id(table.name, row[pk.name])
                else:
                    nid = content_id(table.name, row)
                properties = {
                    name: _json_value(value)
                    for name, value in row.items()
                    if table.relationship_for(name) is None
                    or table.relationship_for(name).cardinality != Cardinality.MANY_TO_MANY
                }
                g.add_node(nid, label=table.name, properties=properties)

                for col in references:
                    rel = table.relationship_for(col.name)
                    stale = [
                        (u, v, k) for u, v, k in g.out_edges(nid, keys=True) if k == rel.name
                    ]
                    g.remove_edges_from(stale)
                    value = row.get(col.name)
                    targets = value if isinstance(value, (list, tuple)) else [value]
                    for target in targets:
                        if target is None:
                            continue
                        g.add_edge(
                            nid,
                            node_id(rel.target_table, target),
                            key=rel.name,
                            label=rel.name,
                            cardinality=rel.cardinality.value,
                        )
                nodes_written.add(nid)
            self._save(g)
            self._graph = g
        return len(nodes_written)
