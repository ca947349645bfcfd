"""Command source options."""

from pydantic import Field, model_validator

from dbloada.connectors.file.config import TextFormatOptions

OUTPUT_PATH_PLACEHOLDER = "$OUTPUT_PATH"


class CommandSourceOptions(TextFormatOptions):
    """Options for ``command`` sources.

    The program either prints records on stdout, or (with ``stdout: false``)
    writes them to a file whose path replaces ``$OUTPUT_PATH`` in ``args``.
    """

    command: str = Field(description="Program to execute")
    args: list[str] = Field(default_factory=list, description="Program arguments")
    stdout: bool = Field(default=True, description="Parse the program's stdout")
    timeout: float | None = Field(
        default=None, description="Seconds to wait for the program", gt=0
    )

    @model_validator(mode="after")
    def validate_output_path(self):
        if not self.stdout and not any(OUTPUT_PATH_PLACEHOLDER in arg for arg in self.args):
            raise ValueError(
                f"args must contain {OUTPUT_PATH_PLACEHOLDER} when stdout is false"
            )
        return self

    @property
    def resolved_format(self) -> str:
        return self.format or "csv"
