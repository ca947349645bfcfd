"""File connector: static CSV, JSON and JSONL sources read through fsspec."""

import logging
import re
from pathlib import Path
from typing import Iterator, Optional, Union

import fsspec

from dbloada.connectors.base import RawRecord
from dbloada.connectors.file.config import FileSourceOptions
from dbloada.connectors.file.formats import get_format
from dbloada.core.exceptions import ConnectionFailure, FormatFailure
from dbloada.models.project import SourceSpec, TableSpec

logger = logging.getLogger(__name__)

_ESCAPED_BYTE = re.compile("[\udc80-\udcff]")


class FileConnector:
    """Reads records from files on any fsspec-supported filesystem.

    Relative paths resolve against ``base_dir`` (the project directory).
    URLs with a scheme (``s3://``, ``gs://``, ``memory://``...) are passed to
    fsspec unchanged.
    """

    def __init__(self, base_dir: Optional[Union[str, Path]] = None):
        self._base_dir = Path(base_dir) if base_dir is not None else Path.cwd()

    def resolve_path(self, path: str) -> str:
        if "://" in path or Path(path).is_absolute():
            return path
        return str(self._base_dir / path)

    def read_records(
        self, source: SourceSpec, table: TableSpec
    ) -> Iterator[Union[RawRecord, FormatFailure]]:
        options = FileSourceOptions.model_validate(source.options)
        url = self.resolve_path(options.path)
        handler = get_format(
            options.resolved_format,
            delimiter=options.delimiter,
            has_header=options.has_header,
            data_path=options.data_path,
        )

        logger.debug(
            f"Reading {options.resolved_format} file",
            extra={"source": source.id, "table": table.name, "context": {"path": url}},
        )
        try:
            with fsspec.open(
                url, mode="r", encoding=options.encoding, errors="surrogateescape"
            ) as f:
                text = f.read()
        except FileNotFoundError as e:
            raise ConnectionFailure(
                f"File not found: {url}", context={"source": source.id}
            ) from e
        except (OSError, UnicodeError, ValueError) as e:
            raise ConnectionFailure(
                f"Failed to read file: {e}", context={"source": source.id, "path": url}
            ) from e

        for record in handler.read_records(text, table, url):
            if not isinstance(record, FormatFailure) and _has_undecodable(record.values()):
                record = FormatFailure(
                    f"record holds bytes that are not valid {options.encoding}",
                    context={"origin": url},
                )
            yield record


def _has_undecodable(values) -> bool:
    """True when any string value carries bytes escaped by surrogateescape."""
    for value in values:
        if isinstance(value, str) and _ESCAPED_BYTE.search(value):
            return True
        if isinstance(value, list) and _has_undecodable(value):
            return True
    return False
