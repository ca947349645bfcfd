"""Runtime configuration model for project loads."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RuntimeConfig(BaseModel):
    """Configuration for runtime behavior of a load."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    batch_size: Optional[int] = Field(
        default=None,
        description="Rows per write batch (null = one batch per source)",
    )
    parallelism: int = Field(
        default=1,
        description="Tables of equal depth loaded concurrently (1 = sequential)",
    )
    timeout: Optional[float] = Field(
        default=None,
        description="Run deadline in seconds; loading stops cleanly when reached",
    )
    on_key_conflict: Literal["last_source_wins", "reject"] = Field(
        default="last_source_wins",
        description="What to do when two sources of one table supply the same key",
    )

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v):
        """Validate batch_size is positive when given."""
        if v is not None and v <= 0:
            raise ValueError("batch_size must be greater than 0")
        return v

    @field_validator("parallelism")
    @classmethod
    def validate_parallelism(cls, v):
        """Validate parallelism is at least 1."""
        if v < 1:
            raise ValueError("parallelism must be at least 1")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v):
        if v is not None and v <= 0:
            raise ValueError("timeout must be greater than 0")
        return v


class SkillConfig(BaseModel):
    """Where and whether to emit the query-guide artifact."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = Field(default=True, description="Emit the skill file after loading")
    path: str = Field(
        default="SKILL.md", description="Output path, relative to the project directory"
    )
