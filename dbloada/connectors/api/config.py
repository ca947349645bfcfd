"""API source options."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


class ApiSourceOptions(BaseModel):
    """Options for ``api`` sources.

    Supports reading records from REST endpoints with pagination,
    authentication, and retries.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = Field(default="", description="Base URL of the API")
    endpoint: str = Field(description="Endpoint path, or a full URL when base_url is empty")
    params: Optional[dict[str, Any]] = Field(
        default=None, description="Query string parameters"
    )
    headers: Optional[dict[str, str]] = Field(default=None, description="HTTP headers")

    # Authentication
    auth_type: Literal["none", "bearer", "basic"] = Field(
        default="none", description="Authentication type"
    )
    auth_token: Optional[SecretStr] = Field(default=None, description="Bearer token")
    auth_username: Optional[str] = Field(default=None, description="Basic auth username")
    auth_password: Optional[SecretStr] = Field(
        default=None, description="Basic auth password"
    )

    # Pagination
    pagination_type: Literal["none", "page", "offset"] = Field(
        default="none", description="Pagination strategy"
    )
    page_param: str = Field(default="page", description="Name of the page/offset parameter")
    limit_param: Optional[str] = Field(
        default=None, description="Name of the page size parameter (optional)"
    )
    page_size: int = Field(default=100, description="Records requested per page", ge=1)
    max_pages: Optional[int] = Field(
        default=None, description="Stop after this many pages", ge=1
    )

    # Response parsing
    data_path: Optional[str] = Field(
        default=None,
        description="JSONPath to the record array (e.g. 'data', 'results.items')",
    )

    # Error handling
    timeout: float = Field(default=30, description="Request timeout in seconds", gt=0)
    max_retries: int = Field(default=3, description="Maximum number of retries", ge=0)
    retry_delay: float = Field(
        default=1.0, description="Initial delay between retries in seconds", ge=0.0
    )
    backoff_rate: float = Field(
        default=2.0,
        description="Exponential backoff multiplier for retry_delay (1s, 2s, 4s...)",
        ge=1.0,
    )

    @model_validator(mode="after")
    def validate_auth_fields(self):
        """Validate authentication fields based on auth_type."""
        if self.auth_type == "bearer" and not self.auth_token:
            raise ValueError("auth_token is required when auth_type is 'bearer'")
        if self.auth_type == "basic":
            if not self.auth_username:
                raise ValueError("auth_username is required when auth_type is 'basic'")
            if not self.auth_password:
                raise ValueError("auth_password is required when auth_type is 'basic'")
        return self

    @property
    def url(self) -> str:
        if not self.base_url:
            return self.endpoint
        return f"{self.base_url.rstrip('/')}/{self.endpoint.lstrip('/')}"
