"""Project validation: structural checks, cycle detection and load ordering."""

from __future__ import annotations

import heapq
import logging
from typing import Callable, List, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from dbloada.connectors.command.config import CommandSourceOptions
from dbloada.connectors.file.config import FileSourceOptions
from dbloada.connectors.options import parse_source_options
from dbloada.core.coercion import coerce_value
from dbloada.core.exceptions import CoercionFailure, ValidationError
from dbloada.core.schema.graph import SchemaGraph
from dbloada.models.project import Cardinality, ColumnType, Project

logger = logging.getLogger(__name__)

CATEGORY_UNIQUENESS = "uniqueness"
CATEGORY_COLUMNS = "columns"
CATEGORY_REFERENCES = "references"
CATEGORY_SOURCES = "sources"
CATEGORY_CYCLES = "cycles"


class ValidationIssue(BaseModel):
    category: str
    message: str
    table: Optional[str] = None
    column: Optional[str] = None

    def __str__(self) -> str:
        location = ".".join(part for part in (self.table, self.column) if part)
        if location:
            return f"[{self.category}] {location}: {self.message}"
        return f"[{self.category}] {self.message}"


class SchemaValidator:
    """Checks a Project and builds its SchemaGraph.

    Checks run category by category. The first category with any failure
    stops validation, and all failures found in it are reported together.
    """

    def __init__(self, project: Project) -> None:
        self.project = project
        self._issues: List[ValidationIssue] = []

    def validate(self) -> SchemaGraph:
        """Validate the project.

        Raises:
            ValidationError: With every issue from the first failing category.
        """
        checks: list[Callable[[], None]] = [
            self._check_uniqueness,
            self._check_columns,
            self._check_references,
            self._check_sources,
            self._check_cycles,
        ]
        for check in checks:
            check()
            if self._issues:
                logger.debug(
                    "Project validation failed",
                    extra={"project": self.project.name, "context": {"issues": len(self._issues)}},
                )
                raise ValidationError(self._issues, context={"project": self.project.name})

        graph = self._build_graph()
        logger.debug(
            "Project validated",
            extra={
                "project": self.project.name,
                "context": {"load_order": " -> ".join(graph.load_order)},
            },
        )
        return graph

    def _add(self, category: str, message: str, table: str | None = None, column: str | None = None):
        self._issues.append(
            ValidationIssue(category=category, message=message, table=table, column=column)
        )

    def _check_uniqueness(self) -> None:
        seen_tables: set[str] = set()
        for table in self.project.tables:
            if table.name in seen_tables:
                self._add(CATEGORY_UNIQUENESS, f"duplicate table name '{table.name}'", table.name)
            seen_tables.add(table.name)

            seen_columns: set[str] = set()
            for column in table.columns:
                if column.name in seen_columns:
                    self._add(
                        CATEGORY_UNIQUENESS,
                        f"duplicate column name '{column.name}'",
                        table.name,
                        column.name,
                    )
                seen_columns.add(column.name)

            seen_relationships: set[str] = set()
            for rel in table.relationships:
                if rel.name in seen_relationships:
                    self._add(
                        CATEGORY_UNIQUENESS,
                        f"duplicate relationship name '{rel.name}'",
                        table.name,
                    )
                seen_relationships.add(rel.name)

            keys = [col.name for col in table.columns if col.primary_key]
            if len(keys) > 1:
                self._add(
                    CATEGORY_UNIQUENESS,
                    f"multiple primary key columns: {', '.join(keys)}",
                    table.name,
                )

        seen_sources: set[str] = set()
        for source in self.project.sources:
            if source.id in seen_sources:
                self._add(CATEGORY_UNIQUENESS, f"duplicate source id '{source.id}'")
            seen_sources.add(source.id)

    def _check_columns(self) -> None:
        for table in self.project.tables:
            for column in table.columns:
                if column.type == ColumnType.REFERENCE:
                    owners = [r for r in table.relationships if r.source_column == column.name]
                    if len(owners) != 1:
                        self._add(
                            CATEGORY_COLUMNS,
                            f"reference column must be the source of exactly one "
                            f"relationship (found {len(owners)})",
                            table.name,
                            column.name,
                        )
                    if column.has_default:
                        self._add(
                            CATEGORY_COLUMNS,
                            "reference columns cannot declare a default",
                            table.name,
                            column.name,
                        )
                elif column.has_default:
                    try:
                        coerce_value(column.type, column.default, column.name)
                    except CoercionFailure as e:
                        self._add(
                            CATEGORY_COLUMNS,
                            f"default does not fit the column type: {e.message}",
                            table.name,
                            column.name,
                        )

            for rel in table.relationships:
                source_column = table.get_column(rel.source_column)
                if source_column is None:
                    self._add(
                        CATEGORY_COLUMNS,
                        f"relationship '{rel.name}' uses unknown column '{rel.source_column}'",
                        table.name,
                    )
                elif source_column.type != ColumnType.REFERENCE:
                    self._add(
                        CATEGORY_COLUMNS,
                        f"relationship '{rel.name}' source column must be of type reference, "
                        f"not {source_column.type.value}",
                        table.name,
                        rel.source_column,
                    )
                elif source_column.primary_key and rel.cardinality == Cardinality.MANY_TO_MANY:
                    self._add(
                        CATEGORY_COLUMNS,
                        "a many_to_many column cannot be the primary key",
                        table.name,
                        rel.source_column,
                    )
                if rel.cardinality == Cardinality.MANY_TO_MANY and table.primary_key is None:
                    self._add(
                        CATEGORY_COLUMNS,
                        f"many_to_many relationship '{rel.name}' needs a primary key "
                        f"on its source table",
                        table.name,
                    )

    def _check_references(self) -> None:
        for table in self.project.tables:
            for rel in table.relationships:
                target = self.project.get_table(rel.target_table)
                if target is None:
                    self._add(
                        CATEGORY_REFERENCES,
                        f"relationship '{rel.name}' targets unknown table '{rel.target_table}'",
                        table.name,
                    )
                    continue
                target_column = target.get_column(rel.target_column)
                if target_column is None:
                    self._add(
                        CATEGORY_REFERENCES,
                        f"relationship '{rel.name}' targets unknown column "
                        f"'{rel.target_table}.{rel.target_column}'",
                        table.name,
                    )
                elif not target_column.primary_key:
                    self._add(
                        CATEGORY_REFERENCES,
                        f"relationship '{rel.name}' must target the primary key of "
                        f"'{rel.target_table}', not '{rel.target_column}'",
                        table.name,
                    )

        for source in self.project.sources:
            if source.table is None:
                self._add(CATEGORY_REFERENCES, f"source '{source.id}' does not name a table")
            elif self.project.get_table(source.table) is None:
                self._add(
                    CATEGORY_REFERENCES,
                    f"source '{source.id}' populates unknown table '{source.table}'",
                )

    def _check_sources(self) -> None:
        for source in self.project.sources:
            try:
                options = parse_source_options(source)
            except PydanticValidationError as e:
                for error in e.errors():
                    location = ".".join(str(part) for part in error["loc"]) or "options"
                    self._add(
                        CATEGORY_SOURCES,
                        f"source '{source.id}' option {location}: {error['msg']}",
                        source.table,
                    )
                continue

            if isinstance(options, (FileSourceOptions, CommandSourceOptions)):
                if options.resolved_format == "csv" and not options.has_header:
                    table = self.project.get_table(source.table)
                    for column in table.columns:
                        if isinstance(column.identifier, str):
                            self._add(
                                CATEGORY_SOURCES,
                                f"source '{source.id}' has no header row, so column "
                                f"identifiers must be indexes (got '{column.identifier}')",
                                table.name,
                                column.name,
                            )

    def _dependency_edges(self) -> dict[str, list[str]]:
        edges: dict[str, list[str]] = {table.name: [] for table in self.project.tables}
        for table in self.project.tables:
            for rel in table.relationships:
                if rel.cardinality.requires_existing_target and rel.target_table not in edges[table.name]:
                    edges[table.name].append(rel.target_table)
        return edges

    def _check_cycles(self) -> None:
        edges = self._dependency_edges()
        visited: set[str] = set()
        reported: set[frozenset] = set()

        for table in self.project.tables:
            if table.name in visited:
                continue
            # Iterative DFS: path holds the current chain and on_path maps each
            # table on it to its index.
            visited.add(table.name)
            path: list[str] = [table.name]
            on_path: dict[str, int] = {table.name: 0}
            pending = [iter(edges[table.name])]
            while pending:
                target = next(pending[-1], None)
                if target is None:
                    pending.pop()
                    del on_path[path.pop()]
                    continue
                if target in on_path:
                    cycle = path[on_path[target]:] + [target]
                    key = frozenset(cycle)
                    if key not in reported:
                        reported.add(key)
                        self._add(
                            CATEGORY_CYCLES,
                            f"dependency cycle: {' -> '.join(cycle)}",
                            cycle[0],
                        )
                elif target not in visited:
                    visited.add(target)
                    on_path[target] = len(path)
                    path.append(target)
                    pending.append(iter(edges[target]))

    def _build_graph(self) -> SchemaGraph:
        edges = self._dependency_edges()
        position = {table.name: i for i, table in enumerate(self.project.tables)}

        # Kahn's algorithm; the heap breaks ties by declaration order.
        in_degree = {name: len(targets) for name, targets in edges.items()}
        dependents: dict[str, list[str]] = {name: [] for name in edges}
        for name, targets in edges.items():
            for target in targets:
                dependents[target].append(name)

        ready = [(position[name], name) for name, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            _, name = heapq.heappop(ready)
            order.append(name)
            for dependent in dependents[name]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (position[dependent], dependent))

        depth: dict[str, int] = {}
        for name in order:
            depth[name] = 1 + max((depth[t] for t in edges[name]), default=-1)

        referenced_by: dict[str, list] = {table.name: [] for table in self.project.tables}
        for table in self.project.tables:
            for rel in table.relationships:
                referenced_by[rel.target_table].append(rel)

        return SchemaGraph(
            project=self.project,
            load_order=tuple(order),
            dependencies={name: tuple(targets) for name, targets in edges.items()},
            depth=depth,
            referenced_by={name: tuple(rels) for name, rels in referenced_by.items()},
        )


def validate_project(project: Project) -> SchemaGraph:
    """Validate a project and return its SchemaGraph.

    Raises:
        ValidationError: If the project is structurally invalid.
    """
    return SchemaValidator(project).validate()
