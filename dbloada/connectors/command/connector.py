"""Command connector: runs an external program and parses its output."""

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Iterator, Optional, Union

from dbloada.connectors.base import RawRecord
from dbloada.connectors.command.config import OUTPUT_PATH_PLACEHOLDER, CommandSourceOptions
from dbloada.connectors.file.formats import get_format
from dbloada.core.exceptions import ConnectionFailure, FormatFailure
from dbloada.models.project import SourceSpec, TableSpec

logger = logging.getLogger(__name__)


def substitute_output_path(args: list[str], path: str) -> list[str]:
    """Replace ``$OUTPUT_PATH`` in every argument with ``path``."""
    return [arg.replace(OUTPUT_PATH_PLACEHOLDER, path) for arg in args]


def decode_output(data: bytes, encoding: str) -> str:
    """Decode program output strictly.

    Raises:
        ConnectionFailure: If the bytes are not valid in ``encoding``.
    """
    try:
        return data.decode(encoding)
    except UnicodeDecodeError as e:
        raise ConnectionFailure(
            f"encoding errors while decoding as '{encoding}': {e.reason}"
        ) from e


class CommandConnector:
    """Reads records produced by an external program.

    In stdout mode the program's standard output is parsed. Otherwise the
    program is given a temporary file path through ``$OUTPUT_PATH`` and that
    file is parsed after it exits. Programs run in ``base_dir``.
    """

    def __init__(self, base_dir: Optional[Union[str, Path]] = None):
        self._base_dir = Path(base_dir) if base_dir is not None else Path.cwd()

    def read_records(
        self, source: SourceSpec, table: TableSpec
    ) -> Iterator[Union[RawRecord, FormatFailure]]:
        options = CommandSourceOptions.model_validate(source.options)
        handler = get_format(
            options.resolved_format,
            delimiter=options.delimiter,
            has_header=options.has_header,
            data_path=options.data_path,
        )
        if options.stdout:
            text = self._run_stdout(source, options)
        else:
            text = self._run_to_file(source, options)
        yield from handler.read_records(text, table, options.command)

    def _run(self, source: SourceSpec, options: CommandSourceOptions, args: list[str], capture: bool):
        logger.info(
            f"Running command: {options.command} {' '.join(args)}",
            extra={"source": source.id},
        )
        try:
            result = subprocess.run(
                [options.command, *args],
                cwd=self._base_dir,
                capture_output=capture,
                timeout=options.timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise ConnectionFailure(
                f"failed to execute command '{options.command}': {e}",
                context={"source": source.id},
            ) from e

        if result.returncode != 0:
            message = f"command '{options.command}' exited with status {result.returncode}"
            if capture and result.stderr:
                message = f"{message}: {result.stderr.decode(errors='replace').strip()}"
            raise ConnectionFailure(message, context={"source": source.id})
        return result

    def _run_stdout(self, source: SourceSpec, options: CommandSourceOptions) -> str:
        result = self._run(source, options, list(options.args), capture=True)
        return decode_output(result.stdout, options.encoding)

    def _run_to_file(self, source: SourceSpec, options: CommandSourceOptions) -> str:
        fd, temp_path = tempfile.mkstemp(
            prefix="dbloada-", suffix=f".{options.resolved_format}"
        )
        os.close(fd)
        try:
            self._run(
                source,
                options,
                substitute_output_path(options.args, temp_path),
                capture=False,
            )
            try:
                data = Path(temp_path).read_bytes()
            except OSError as e:
                raise ConnectionFailure(
                    f"failed to read output file '{temp_path}': {e}",
                    context={"source": source.id},
                ) from e
            return decode_output(data, options.encoding)
        finally:
            if os.path.exists(temp_path):
                os.remove(temp_path)
