"""Base protocols for source connectors and database writers.

- SourceConnector: pulls raw records for one table from one source
- DatabaseWriter: persists batches of typed rows for one table
"""

from typing import Any, Iterator, Protocol, Union, runtime_checkable

from dbloada.core.batch import ArrowBatch
from dbloada.core.exceptions import FormatFailure
from dbloada.models.project import SourceSpec, TableSpec

RawRecord = dict[str, Any]
"""Column name to untyped value (str, int, float, bool, None or list of scalars)."""


@runtime_checkable
class SourceConnector(Protocol):
    """Protocol for connectors that read raw records from a source.

    Example:
        class StaticConnector:
            def read_records(self, source, table):
                yield {"code": "DE", "name": "Germany"}
                yield FormatFailure("row 2 has 3 fields, expected 2", position=2)
    """

    def read_records(
        self, source: SourceSpec, table: TableSpec
    ) -> Iterator[Union[RawRecord, FormatFailure]]:
        """Read records for ``table`` from ``source``.

        The iterator is lazy and forward-only; calling again re-reads from
        the beginning.

        Yields:
            RawRecord dictionaries keyed by column name, or FormatFailure
            for records that could not be parsed (reading continues).

        Raises:
            ConnectionFailure: If the source cannot be read as a whole.
        """
        ...


@runtime_checkable
class DatabaseWriter(Protocol):
    """Protocol for writers that materialize tables in a target store.

    Writers must be safe to call from several threads at once; each
    implementation serializes its own I/O.
    """

    def prepare(self, table: TableSpec, graph: Any) -> None:
        """Create (or verify) physical storage for ``table``.

        Args:
            table: Table about to be loaded.
            graph: The validated SchemaGraph, for resolving reference types.

        Raises:
            WriteFailure: If storage cannot be created.
        """
        ...

    def write_batch(self, table: TableSpec, batch: ArrowBatch) -> int:
        """Upsert a batch of typed rows and return the number of rows written.

        Raises:
            WriteFailure: If the backend rejects the batch.
        """
        ...

    def close(self) -> None:
        """Flush and release backend resources."""
        ...
