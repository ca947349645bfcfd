"""CLI command for listing available connectors."""

import click

from dbloada.connectors.options import SOURCE_OPTION_MODELS
from dbloada.models.target_config import DuckDBTargetConfig, GraphTargetConfig


@click.command("list-connectors")
def list_connectors():
    """List built-in source kinds and targets with their options."""
    click.echo("Source kinds:")
    for kind, model in SOURCE_OPTION_MODELS.items():
        click.echo(f"  - {kind.value}")
        for field_name, info in model.model_fields.items():
            marker = " (required)" if info.is_required() else ""
            click.echo(f"      {field_name}{marker}")

    click.echo("Targets:")
    for model in (DuckDBTargetConfig, GraphTargetConfig):
        kind = model.model_fields["kind"].default
        options = ", ".join(name for name in model.model_fields if name != "kind")
        click.echo(f"  - {kind} ({options})")
