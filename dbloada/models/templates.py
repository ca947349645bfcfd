"""Template rendering for manifest values.

Supported expressions:

- ``{{ env_var('NAME') }}``: environment variable lookup
- ``{{ var('NAME') }}``: variable passed on the command line
- ``{{ project.name }}``: the project's own name
"""

import os
import re
from typing import Any

from dbloada.core.exceptions import ProjectError

_EXPRESSION_RE = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")
_CALL_RE = re.compile(r"^(\w+)\(\s*['\"]([^'\"]+)['\"]\s*\)$")


def render_templates(
    manifest: dict[str, Any], cli_vars: dict[str, str] | None = None
) -> dict[str, Any]:
    """Render every template expression found in a manifest dictionary.

    Args:
        manifest: Manifest dictionary (may contain template expressions)
        cli_vars: Variables passed via CLI (e.g., --vars key=value)

    Returns:
        A new dictionary with templates rendered
    """
    metadata = manifest.get("metadata") or {}
    project_name = metadata.get("name", "") if isinstance(metadata, dict) else ""
    context = {
        "project": {"name": project_name},
        "env_var": _get_env_var,
        "var": lambda key: _get_cli_var(key, cli_vars or {}),
    }
    return _render_value(manifest, context)


def _get_env_var(key: str) -> str:
    value = os.environ.get(key)
    if value is None:
        raise ProjectError(
            f"Environment variable '{key}' not found",
            context={"key": key},
        )
    return value


def _get_cli_var(key: str, cli_vars: dict[str, str]) -> str:
    if key not in cli_vars:
        raise ProjectError(
            f"CLI variable '{key}' not provided",
            context={"key": key, "available": sorted(cli_vars)},
        )
    return cli_vars[key]


def _render_value(value: Any, context: dict[str, Any]) -> Any:
    if isinstance(value, dict):
        return {key: _render_value(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [_render_value(item, context) for item in value]
    if isinstance(value, str):
        return _render_string(value, context)
    return value


def _render_string(text: str, context: dict[str, Any]) -> str:
    def replace(match: re.Match) -> str:
        expr = match.group(1).strip()
        call = _CALL_RE.match(expr)
        if call:
            func_name, arg = call.groups()
            func = context.get(func_name)
            if not callable(func):
                raise ProjectError(
                    f"Unknown template function: {func_name}",
                    context={"expression": expr},
                )
            return str(func(arg))

        result: Any = context
        try:
            for part in expr.split("."):
                result = result[part]
        except (KeyError, TypeError) as e:
            raise ProjectError(
                f"Template rendering failed: {expr}",
                context={"expression": expr, "error": str(e)},
            ) from e
        return str(result)

    return _EXPRESSION_RE.sub(replace, text)
