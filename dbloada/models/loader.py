"""Project manifest loader.

A manifest (``dbloada.yaml``) has a Kubernetes-style envelope::

    apiVersion: project.dbloada.io/v1
    kind: DBLoadaProject
    metadata:
      name: my-project
    spec:
      tables: [...]
      sources: [...]
      target: {...}
      runtime: {...}
      skill: {...}
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from dbloada.core.exceptions import ProjectError
from dbloada.models.project import PROJECT_API_VERSION, PROJECT_KIND, Project
from dbloada.models.templates import render_templates

PROJECT_FILE_NAME = "dbloada.yaml"

_SPEC_KEYS = ("tables", "sources", "target", "runtime", "skill")


def project_file_path(path: str | Path) -> Path:
    """Resolve a project directory or manifest path to the manifest file."""
    path = Path(path)
    if path.is_dir():
        return path / PROJECT_FILE_NAME
    return path


def load_project(path: str | Path, cli_vars: dict[str, str] | None = None) -> Project:
    """Load a project from a manifest file or a directory containing one.

    Args:
        path: Project directory or path to the manifest YAML
        cli_vars: Variables available to ``{{ var('...') }}`` templates

    Returns:
        The deserialized Project (not yet validated as a schema)

    Raises:
        ProjectError: If the file is missing, is not valid YAML, has the wrong
            envelope, or does not deserialize into a Project
    """
    manifest_path = project_file_path(path)
    if not manifest_path.exists():
        raise ProjectError(
            f"Project file not found: {manifest_path}", context={"path": str(path)}
        )

    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            manifest = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ProjectError(
            f"Invalid YAML in project file: {e}", context={"path": str(manifest_path)}
        ) from e

    if not isinstance(manifest, dict):
        raise ProjectError(
            "Project file must contain a YAML mapping",
            context={"path": str(manifest_path)},
        )

    manifest = render_templates(manifest, cli_vars)
    return project_from_manifest(manifest, source=str(manifest_path))


def project_from_manifest(manifest: dict[str, Any], source: str = "<manifest>") -> Project:
    """Build a Project from an already-parsed manifest dictionary."""
    kind = manifest.get("kind")
    if kind != PROJECT_KIND:
        raise ProjectError(
            f"Unsupported manifest kind: {kind!r} (expected {PROJECT_KIND!r})",
            context={"path": source},
        )
    api_version = manifest.get("apiVersion")
    if api_version != PROJECT_API_VERSION:
        raise ProjectError(
            f"Unsupported apiVersion: {api_version!r} (expected {PROJECT_API_VERSION!r})",
            context={"path": source},
        )

    metadata = manifest.get("metadata") or {}
    spec = manifest.get("spec") or {}
    if not isinstance(metadata, dict) or not isinstance(spec, dict):
        raise ProjectError(
            "'metadata' and 'spec' must be mappings", context={"path": source}
        )
    unknown = sorted(set(spec) - set(_SPEC_KEYS))
    if unknown:
        raise ProjectError(
            f"Unknown keys in spec: {', '.join(unknown)}", context={"path": source}
        )

    data: dict[str, Any] = {"name": metadata.get("name"), "apiVersion": api_version}
    for key in _SPEC_KEYS:
        if spec.get(key) is not None:
            data[key] = spec[key]

    try:
        return Project.model_validate(data)
    except PydanticValidationError as e:
        raise ProjectError(
            f"Project deserialization failed: {e}", context={"path": source}
        ) from e
