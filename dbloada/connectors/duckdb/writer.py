"""DuckDB writer: materializes tables relationally with idempotent upserts."""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import duckdb
import pyarrow as pa
from duckdb import DuckDBPyConnection

from dbloada.connectors.duckdb.type_mapper import DuckDBTypeMapper
from dbloada.core.batch import ArrowBatch
from dbloada.core.exceptions import WriteFailure
from dbloada.core.type_mapping import TypeMapper
from dbloada.models.project import Cardinality, TableSpec
from dbloada.models.target_config import DuckDBTargetConfig

logger = logging.getLogger(__name__)

RELATIONSHIPS_TABLE = "_dbloada_relationships"
_BATCH_VIEW = "_dbloada_batch"
_LINKS_VIEW = "_dbloada_links"
_KEYS_VIEW = "_dbloada_keys"


def join_table_name(table: str, column: str) -> str:
    """Name of the join table holding a many-to-many column's links."""
    return f"{table}__{column}"


def qualified_name(name: str, schema: Optional[str] = None) -> str:
    """Quote a table name, prefixed by its schema when one is set."""
    if schema:
        return f'"{schema}"."{name}"'
    return f'"{name}"'


@dataclass
class _JoinPlan:
    column: str
    table: str
    source_key: str
    target_key: str


@dataclass
class _TablePlan:
    name: str
    columns: list[str]
    primary_key: Optional[str]
    joins: list[_JoinPlan] = field(default_factory=list)


class DuckDBWriter:
    """Writes typed batches into a DuckDB database.

    Each table gets a ``PRIMARY KEY`` on its key column and rows are
    upserted, so loading the same data twice leaves the same state. One-to-one
    and one-to-many references are stored as plain key columns; many-to-many
    references go to a ``<table>__<column>`` join table. Relationships are
    described in ``_dbloada_relationships`` rather than as foreign-key
    constraints, which DuckDB would check against every upsert.
    """

    def __init__(
        self,
        config: Optional[DuckDBTargetConfig] = None,
        base_dir: Optional[Union[str, Path]] = None,
    ):
        self._config = config or DuckDBTargetConfig()
        database = self._config.database
        if database != ":memory:" and base_dir is not None and not Path(database).is_absolute():
            database = str(Path(base_dir) / database)
        self._database = database
        self._schema = self._config.db_schema
        self._conn: Optional[DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self._plans: dict[str, _TablePlan] = {}
        self._type_mapper: TypeMapper = DuckDBTypeMapper()

    @property
    def database(self) -> str:
        return self._database

    @property
    def connection(self) -> DuckDBPyConnection:
        with self._lock:
            return self._get_connection()

    def qualified(self, name: str) -> str:
        """Return the fully qualified, quoted name of a table."""
        return qualified_name(name, self._schema)

    def _get_connection(self) -> DuckDBPyConnection:
        if self._conn is None:
            try:
                self._conn = duckdb.connect(self._database)
            except duckdb.Error as e:
                raise WriteFailure(
                    f"Failed to connect to DuckDB: {e}",
                    context={"database": self._database},
                ) from e
        return self._conn

    def close(self) -> None:
        """Close the DuckDB connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def prepare(self, table: TableSpec, graph) -> None:
        """Create the table, its join tables, and its relationship records."""
        schema = graph.arrow_schema(table.name)
        pk = table.primary_key
        plan = _TablePlan(name=table.name, columns=[], primary_key=pk.name if pk else None)

        statements = []
        if self._schema:
            statements.append(f'CREATE SCHEMA IF NOT EXISTS "{self._schema}"')

        column_defs = []
        for column in table.columns:
            arrow_type = schema.field(column.name).type
            rel = table.relationship_for(column.name)
            if rel is not None and rel.cardinality == Cardinality.MANY_TO_MANY:
                join = _JoinPlan(
                    column=column.name,
                    table=join_table_name(table.name, column.name),
                    source_key=f"{table.name}_{pk.name}",
                    target_key=f"{rel.target_table}_{rel.target_column}",
                )
                plan.joins.append(join)
                pk_type = self._type_mapper.arrow_to_connector_type(schema.field(pk.name).type)
                target_type = self._type_mapper.arrow_to_connector_type(arrow_type.value_type)
                statements.append(
                    f"CREATE TABLE IF NOT EXISTS {self.qualified(join.table)} ("
                    f'"{join.source_key}" {pk_type} NOT NULL, '
                    f'"{join.target_key}" {target_type} NOT NULL, '
                    f'PRIMARY KEY ("{join.source_key}", "{join.target_key}"))'
                )
                continue

            plan.columns.append(column.name)
            definition = f'"{column.name}" {self._type_mapper.arrow_to_connector_type(arrow_type)}'
            if not column.nullable or column.primary_key:
                definition += " NOT NULL"
            column_defs.append(definition)

        if pk is not None:
            column_defs.append(f'PRIMARY KEY ("{pk.name}")')
        statements.insert(
            1 if self._schema else 0,
            f"CREATE TABLE IF NOT EXISTS {self.qualified(table.name)} ({', '.join(column_defs)})",
        )
        statements.append(
            f"CREATE TABLE IF NOT EXISTS {self.qualified(RELATIONSHIPS_TABLE)} ("
            "table_name VARCHAR NOT NULL, name VARCHAR NOT NULL, "
            "source_column VARCHAR NOT NULL, target_table VARCHAR NOT NULL, "
            "target_column VARCHAR NOT NULL, cardinality VARCHAR NOT NULL, "
            "storage VARCHAR NOT NULL, PRIMARY KEY (table_name, name))"
        )

        with self._lock:
            conn = self._get_connection()
            try:
                for statement in statements:
                    conn.execute(statement)
                for rel in table.relationships:
                    storage = (
                        join_table_name(table.name, rel.source_column)
                        if rel.cardinality == Cardinality.MANY_TO_MANY
                        else rel.source_column
                    )
                    conn.execute(
                        f"INSERT INTO {self.qualified(RELATIONSHIPS_TABLE)} "
                        "VALUES (?, ?, ?, ?, ?, ?, ?) ON CONFLICT (table_name, name) "
                        "DO UPDATE SET source_column = excluded.source_column, "
                        "target_table = excluded.target_table, "
                        "target_column = excluded.target_column, "
                        "cardinality = excluded.cardinality, storage = excluded.storage",
                        [
                            table.name,
                            rel.name,
                            rel.source_column,
                            rel.target_table,
                            rel.target_column,
                            rel.cardinality.value,
                            storage,
                        ],
                    )
            except duckdb.Error as e:
                raise WriteFailure(
                    f"Failed to create table: {e}",
                    context={"table": table.name, "database": self._database},
                ) from e
            self._plans[table.name] = plan

        logger.debug("Prepared DuckDB table", extra={"table": table.name})

    def write_batch(self, table: TableSpec, batch: ArrowBatch) -> int:
        """Upsert a batch; returns the number of distinct rows stored."""
        plan = self._plans.get(table.name)
        if plan is None:
            raise WriteFailure(
                f"Table '{table.name}' was not prepared", context={"table": table.name}
            )
        if batch.row_count == 0:
            return 0

        arrow_table = batch.to_arrow()
        if plan.primary_key is not None:
            arrow_table = _last_per_key(arrow_table, plan.primary_key)

        with self._lock:
            conn = self._get_connection()
            try:
                conn.begin()
                self._upsert_rows(conn, plan, arrow_table)
                for join in plan.joins:
                    self._replace_links(conn, plan, join, arrow_table)
                conn.commit()
            except (duckdb.Error, pa.ArrowException) as e:
                conn.rollback()
                raise WriteFailure(
                    f"Failed to write batch: {e}",
                    context={"table": table.name, "row_count": batch.row_count},
                ) from e
            finally:
                for view in (_BATCH_VIEW, _KEYS_VIEW, _LINKS_VIEW):
                    _unregister(conn, view)
        return arrow_table.num_rows

    def _upsert_rows(self, conn: DuckDBPyConnection, plan: _TablePlan, arrow_table: pa.Table) -> None:
        conn.register(_BATCH_VIEW, arrow_table.select(plan.columns))
        columns = ", ".join(f'"{c}"' for c in plan.columns)
        sql = (
            f"INSERT INTO {self.qualified(plan.name)} ({columns}) "
            f"SELECT {columns} FROM {_BATCH_VIEW}"
        )
        if plan.primary_key is not None:
            updates = [c for c in plan.columns if c != plan.primary_key]
            if updates:
                assignments = ", ".join(f'"{c}" = excluded."{c}"' for c in updates)
                sql += f' ON CONFLICT ("{plan.primary_key}") DO UPDATE SET {assignments}'
            else:
                sql += f' ON CONFLICT ("{plan.primary_key}") DO NOTHING'
        conn.execute(sql)

    def _replace_links(
        self,
        conn: DuckDBPyConnection,
        plan: _TablePlan,
        join: _JoinPlan,
        arrow_table: pa.Table,
    ) -> None:
        keys = arrow_table.column(plan.primary_key).to_pylist()
        targets = arrow_table.column(join.column).to_pylist()
        source_keys: list[Any] = []
        target_keys: list[Any] = []
        for key, linked in zip(keys, targets):
            for target in linked or []:
                source_keys.append(key)
                target_keys.append(target)

        key_field = arrow_table.schema.field(plan.primary_key)
        target_type = arrow_table.schema.field(join.column).type.value_type
        links = pa.table(
            {
                join.source_key: pa.array(source_keys, type=key_field.type),
                join.target_key: pa.array(target_keys, type=target_type),
            }
        )
        conn.register(_KEYS_VIEW, pa.table({join.source_key: pa.array(keys, type=key_field.type)}))
        conn.register(_LINKS_VIEW, links)
        target = self.qualified(join.table)
        # Only stale links are deleted; links that survive conflict on insert and are skipped.
        conn.execute(
            f"DELETE FROM {target} "
            f'WHERE {target}."{join.source_key}" IN (SELECT "{join.source_key}" FROM {_KEYS_VIEW}) '
            f"AND NOT EXISTS (SELECT 1 FROM {_LINKS_VIEW} AS l "
            f'WHERE l."{join.source_key}" = {target}."{join.source_key}" '
            f'AND l."{join.target_key}" = {target}."{join.target_key}")'
        )
        if links.num_rows:
            conn.execute(
                f"INSERT INTO {target} "
                f'SELECT "{join.source_key}", "{join.target_key}" FROM {_LINKS_VIEW} '
                "ON CONFLICT DO NOTHING"
            )


def _last_per_key(arrow_table: pa.Table, key: str) -> pa.Table:
    """Keep only the last row for each key value, in first-seen key order."""
    last: dict[Any, int] = {}
    for index, value in enumerate(arrow_table.column(key).to_pylist()):
        last.pop(value, None)
        last[value] = index
    if len(last) == arrow_table.num_rows:
        return arrow_table
    return arrow_table.take(pa.array(sorted(last.values()), type=pa.int64()))


def _unregister(conn: DuckDBPyConnection, view: str) -> None:
    try:
        conn.unregister(view)
    except duckdb.Error:
        pass
