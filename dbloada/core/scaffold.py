"""Project scaffolding for ``dbloada init``."""

import re
from pathlib import Path
from typing import Optional, Union

from dbloada.core.exceptions import ProjectError
from dbloada.models.loader import PROJECT_FILE_NAME
from dbloada.models.project import PROJECT_API_VERSION, PROJECT_KIND

MAX_NAME_LENGTH = 63

_INVALID_CHARS = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUNS = re.compile(r"-{2,}")


def sanitize_resource_name(raw: str) -> str:
    """Turn an arbitrary string (usually a directory name) into a resource name.

    Lowercases, maps spaces and underscores to hyphens, drops everything else
    that is not ``[a-z0-9-]``, collapses hyphen runs, trims hyphens from both
    ends and truncates to 63 characters.
    """
    name = raw.lower().replace(" ", "-").replace("_", "-")
    name = _INVALID_CHARS.sub("", name)
    name = _HYPHEN_RUNS.sub("-", name).strip("-")
    return name[:MAX_NAME_LENGTH].rstrip("-")


def validate_resource_name(name: str) -> None:
    """Check a project name.

    Raises:
        ValueError: With the reason the name is not acceptable.
    """
    if not name:
        raise ValueError("name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(
            f"name must be no more than {MAX_NAME_LENGTH} characters, got {len(name)}"
        )
    if _INVALID_CHARS.search(name):
        raise ValueError("name must contain only lowercase alphanumeric characters or '-'")
    if not name[0].isalnum():
        raise ValueError("name must start with an alphanumeric character")
    if not name[-1].isalnum():
        raise ValueError("name must end with an alphanumeric character")


def build_project_yaml(name: str) -> str:
    """Render a starter manifest for a project called ``name``."""
    validate_resource_name(name)
    return f"""apiVersion: {PROJECT_API_VERSION}
kind: {PROJECT_KIND}
metadata:
  name: {name}
spec:
  tables: []
  # - name: country
  #   columns:
  #     - name: code
  #       type: text
  #       primary_key: true
  #     - name: name
  #       type: text
  #   sources:
  #     - id: countries_csv
  #       kind: file
  #       options:
  #         path: data/countries.csv
  target:
    kind: duckdb
    database: {name}.duckdb
  runtime:
    batch_size: 10000
"""


def init_project(path: Union[str, Path], name: Optional[str] = None) -> Path:
    """Write a starter ``dbloada.yaml`` into an existing directory.

    The project name defaults to the sanitized directory name.

    Raises:
        ProjectError: If the directory is missing, the name is invalid, or a
            manifest already exists.
    """
    directory = Path(path)
    if not directory.is_dir():
        raise ProjectError(f"Directory not found: {directory}", context={"path": str(path)})

    if name is None:
        name = sanitize_resource_name(directory.resolve().name)
    try:
        validate_resource_name(name)
    except ValueError as e:
        raise ProjectError(
            f"Invalid project name '{name}': {e}", context={"path": str(directory)}
        ) from e

    manifest_path = directory / PROJECT_FILE_NAME
    if manifest_path.exists():
        raise ProjectError(
            f"Project file already exists: {manifest_path}",
            context={"path": str(manifest_path)},
        )
    manifest_path.write_text(build_project_yaml(name), encoding="utf-8")
    return manifest_path
