"""Option models for each built-in source kind."""

from pydantic import BaseModel

from dbloada.connectors.api.config import ApiSourceOptions
from dbloada.connectors.command.config import CommandSourceOptions
from dbloada.connectors.file.config import FileSourceOptions
from dbloada.models.project import SourceKind, SourceSpec

SOURCE_OPTION_MODELS: dict[SourceKind, type[BaseModel]] = {
    SourceKind.FILE: FileSourceOptions,
    SourceKind.API: ApiSourceOptions,
    SourceKind.COMMAND: CommandSourceOptions,
}


def parse_source_options(source: SourceSpec) -> BaseModel:
    """Validate a source's raw options against its kind's model.

    Raises:
        pydantic.ValidationError: If options are unknown, missing or invalid.
    """
    return SOURCE_OPTION_MODELS[source.kind].model_validate(source.options)
