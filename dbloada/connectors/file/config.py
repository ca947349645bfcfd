"""File source options.

Paths are resolved relative to the project directory unless they carry a
URL scheme, in which case fsspec picks the backend (``s3://``, ``gs://``...).
"""

import codecs
from pathlib import PurePosixPath
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

FileFormat = Literal["csv", "json", "jsonl"]

EXTENSION_FORMATS: dict[str, str] = {
    ".csv": "csv",
    ".json": "json",
    ".jsonl": "jsonl",
    ".ndjson": "jsonl",
}


def infer_format(path: str) -> Optional[str]:
    """Infer a file format from a path's extension."""
    suffix = PurePosixPath(path.split("?", 1)[0]).suffix.lower()
    return EXTENSION_FORMATS.get(suffix)


class TextFormatOptions(BaseModel):
    """Options shared by sources that parse CSV/JSON/JSONL text."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    format: Optional[FileFormat] = Field(
        default=None, description="Record format (inferred from the path when absent)"
    )
    has_header: bool = Field(default=True, description="CSV input starts with a header row")
    delimiter: str = Field(default=",", description="CSV field delimiter")
    encoding: str = Field(default="utf-8", description="Text encoding")
    data_path: Optional[str] = Field(
        default=None,
        description="JSONPath to the record array in a JSON document (e.g. 'data.items')",
    )

    @field_validator("delimiter")
    @classmethod
    def validate_delimiter(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError("delimiter must be a single character")
        return v

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError as e:
            raise ValueError(f"unknown encoding '{v}'") from e
        return v


class FileSourceOptions(TextFormatOptions):
    """Options for ``file`` sources (static CSV, JSON or JSONL files)."""

    path: str = Field(description="File path or fsspec URL")

    @model_validator(mode="after")
    def validate_format(self):
        if self.format is None and infer_format(self.path) is None:
            raise ValueError(
                f"cannot infer format from '{self.path}'; set 'format' to csv, json or jsonl"
            )
        return self

    @property
    def resolved_format(self) -> str:
        return self.format or infer_format(self.path)
