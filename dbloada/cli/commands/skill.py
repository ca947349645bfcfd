"""CLI command for writing the skill file."""

import sys

import click

from dbloada.api import emit_skill
from dbloada.cli.commands.options import parse_vars, project_argument, vars_option
from dbloada.core.exceptions import DbLoadaError, ValidationError


@click.command()
@project_argument
@vars_option
def skill(project_path: str, vars: tuple):
    """Write the project's skill file without loading data.

    Examples:

        dbloada skill
        dbloada skill projects/countries
    """
    cli_vars = parse_vars(vars)
    try:
        path = emit_skill(project_path, cli_vars=cli_vars)
    except ValidationError as e:
        click.echo(f"✗ Project validation failed with {len(e.issues)} issue(s):", err=True)
        for issue in e.issues:
            click.echo(f"  - {issue}", err=True)
        sys.exit(1)
    except (DbLoadaError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Wrote skill file: {path}")
