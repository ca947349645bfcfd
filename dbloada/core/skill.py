"""Skill emitter: a markdown guide to querying the loaded database."""

import logging
import os
from pathlib import Path
from typing import Optional, Union

import yaml

from dbloada.connectors.duckdb.writer import RELATIONSHIPS_TABLE, join_table_name, qualified_name
from dbloada.core.exceptions import DbLoadaError
from dbloada.core.report import LoadReport
from dbloada.core.schema import SchemaGraph
from dbloada.models.project import Cardinality, ColumnType, RelationshipSpec, TableSpec

logger = logging.getLogger(__name__)

BACKENDS = ("duckdb", "graph")


def _escape_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def _storage(table: TableSpec, rel: RelationshipSpec, backend: str) -> str:
    if backend == "graph":
        if rel.cardinality == Cardinality.MANY_TO_MANY:
            return f"`{rel.name}` edges (one per target) from `{table.name}` to `{rel.target_table}` nodes"
        return f"`{rel.name}` edge from `{table.name}` to `{rel.target_table}` nodes"
    if rel.cardinality == Cardinality.MANY_TO_MANY:
        join = join_table_name(table.name, rel.source_column)
        return (
            f"join table `{join}` "
            f"(`{table.name}_{table.primary_key.name}`, `{rel.target_table}_{rel.target_column}`)"
        )
    return f"key column `{table.name}.{rel.source_column}`"


def _column_section(graph: SchemaGraph, table: TableSpec, backend: str) -> list[str]:
    lines = [
        "| Column | Type | Nullable | Key | Description |",
        "|---|---|---|---|---|",
    ]
    for col in table.columns:
        value_type = graph.value_type(table.name, col.name).value
        if graph.is_many(table.name, col.name):
            value_type = f"list of {value_type}"
        if col.type == ColumnType.REFERENCE:
            rel = table.relationship_for(col.name)
            key = f"-> {rel.target_table}.{rel.target_column}"
        else:
            key = "primary" if col.primary_key else ""
        nullable = "no" if col.primary_key or not col.nullable else "yes"
        lines.append(
            f"| `{col.name}` | {value_type} | {nullable} | {key} | {_escape_cell(col.description)} |"
        )
    if backend == "graph":
        lines.append("")
        lines.append(
            f"Nodes are labelled `{table.name}`; columns are under the `properties` attribute."
        )
    return lines


def _relational_patterns(graph: SchemaGraph, db_schema: Optional[str] = None) -> list[str]:
    def q(name: str) -> str:
        return qualified_name(name, db_schema)

    lines = [
        "Tables carry no foreign-key constraints; join on the key columns below. "
        f"`{q(RELATIONSHIPS_TABLE)}` lists every relationship and its storage.",
        "",
    ]
    examples = 0
    for table in graph.tables_in_order():
        for rel in table.relationships:
            if rel.cardinality == Cardinality.MANY_TO_MANY:
                join = join_table_name(table.name, rel.source_column)
                source_key = f"{table.name}_{table.primary_key.name}"
                target_key = f"{rel.target_table}_{rel.target_column}"
                sql = (
                    f'SELECT s.*, t.*\nFROM {q(table.name)} s\n'
                    f'JOIN {q(join)} j ON j."{source_key}" = s."{table.primary_key.name}"\n'
                    f'JOIN {q(rel.target_table)} t ON t."{rel.target_column}" = j."{target_key}";'
                )
            else:
                sql = (
                    f'SELECT s.*, t.*\nFROM {q(table.name)} s\n'
                    f'JOIN {q(rel.target_table)} t ON t."{rel.target_column}" = s."{rel.source_column}";'
                )
            lines.extend([f"{table.name} -> {rel.target_table} (`{rel.name}`):", "", "```sql", sql, "```", ""])
            examples += 1
    if not examples and graph.load_order:
        lines.extend(["```sql", f"SELECT * FROM {q(graph.load_order[0])} LIMIT 10;", "```", ""])
    return lines


def _graph_patterns(graph: SchemaGraph) -> list[str]:
    lines = [
        "Node ids are `<table>:<key>`. Load the graph with networkx:",
        "",
        "```python",
        "import json",
        "import networkx as nx",
        "from networkx.readwrite import json_graph",
        "",
        "with open(PATH) as f:",
        '    G = json_graph.node_link_graph(json.load(f), directed=True, multigraph=True, edges="edges")',
        "```",
        "",
    ]
    for table in graph.tables_in_order():
        for rel in table.relationships:
            lines.extend(
                [
                    f"{table.name} -> {rel.target_table} (`{rel.name}`):",
                    "",
                    "```python",
                    f'targets = [v for _, v, k in G.out_edges("{table.name}:<key>", keys=True) if k == "{rel.name}"]',
                    f'sources = [u for u, _, k in G.in_edges("{rel.target_table}:<key>", keys=True) if k == "{rel.name}"]',
                    "```",
                    "",
                ]
            )
    return lines


def render_skill(
    graph: SchemaGraph,
    backend: str,
    report: Optional[LoadReport] = None,
    db_schema: Optional[str] = None,
) -> str:
    """Render the skill markdown for a validated project.

    Args:
        graph: Validated schema graph.
        backend: Target kind, ``duckdb`` or ``graph``.
        report: Optional load report; adds row counts per table.
        db_schema: DuckDB schema the tables live in, used to qualify SQL names.
    """
    if backend not in BACKENDS:
        raise DbLoadaError(f"Unknown backend '{backend}'", context={"backends": BACKENDS})

    project = graph.project
    store = "DuckDB database" if backend == "duckdb" else "property graph"
    front_matter = yaml.safe_dump(
        {
            "name": project.name,
            "description": (
                f"Query the {project.name} {store} "
                f"({len(project.tables)} tables: {', '.join(graph.load_order)})."
            ),
        },
        sort_keys=False,
        width=1000,
    )

    lines = ["---", front_matter.rstrip(), "---", "", f"# {project.name}", ""]
    lines.append(f"Backend: {backend}")
    lines.append("")
    lines.append("## Load order")
    lines.append("")
    for index, name in enumerate(graph.load_order, 1):
        deps = graph.dependencies.get(name, ())
        suffix = f" (after {', '.join(deps)})" if deps else ""
        lines.append(f"{index}. `{name}`{suffix}")
    lines.append("")

    lines.append("## Tables")
    lines.append("")
    for table in graph.tables_in_order():
        lines.append(f"### {table.name}")
        lines.append("")
        if table.description:
            lines.append(table.description)
            lines.append("")
        if report is not None and table.name in report.tables:
            table_report = report.table(table.name)
            lines.append(
                f"Rows: {table_report.rows_written} written, "
                f"{table_report.rows_rejected} rejected ({table_report.status.value})"
            )
            lines.append("")
        lines.extend(_column_section(graph, table, backend))
        lines.append("")

    relationships = [(t, rel) for t in graph.tables_in_order() for rel in t.relationships]
    if relationships:
        lines.append("## Relationships")
        lines.append("")
        for table, rel in relationships:
            line = (
                f"- `{rel.name}`: `{table.name}.{rel.source_column}` -> "
                f"`{rel.target_table}.{rel.target_column}` ({rel.cardinality.value}); "
                f"stored as {_storage(table, rel, backend)}"
            )
            if rel.description:
                line += f". {rel.description}"
            lines.append(line)
        lines.append("")

    lines.append("## Query patterns")
    lines.append("")
    if backend == "duckdb":
        lines.extend(_relational_patterns(graph, db_schema))
    else:
        lines.extend(_graph_patterns(graph))

    return "\n".join(lines).rstrip() + "\n"


class SkillEmitter:
    """Writes the rendered skill to ``path``."""

    def __init__(self, path: Union[str, Path], backend: str, db_schema: Optional[str] = None):
        self.path = Path(path)
        self.backend = backend
        self.db_schema = db_schema

    def emit(self, graph: SchemaGraph, report: Optional[LoadReport] = None) -> Path:
        content = render_skill(graph, self.backend, report, self.db_schema)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(f".{self.path.name}.tmp")
        temp_path.write_text(content, encoding="utf-8")
        os.replace(temp_path, self.path)
        logger.info(f"Wrote skill file {self.path}", extra={"project": graph.project.name})
        return self.path
