"""CLI command for validating projects."""

import sys

import click

from dbloada.api import validate as validate_project
from dbloada.cli.commands.options import parse_vars, project_argument, vars_option
from dbloada.core.exceptions import ProjectError, ValidationError


@click.command()
@project_argument
@vars_option
def validate(project_path: str, vars: tuple):
    """Validate a project manifest without loading any data.

    Checks:
    - YAML syntax and manifest envelope
    - Template variable resolution
    - Table, column, relationship and source consistency
    - Dependency cycles

    Examples:

        dbloada validate
        dbloada validate projects/countries --vars env=prod
    """
    cli_vars = parse_vars(vars)
    try:
        graph = validate_project(project_path, cli_vars=cli_vars)
    except ProjectError as e:
        click.echo(f"✗ Project could not be loaded: {e}", err=True)
        sys.exit(1)
    except ValidationError as e:
        click.echo(f"✗ Project validation failed with {len(e.issues)} issue(s):", err=True)
        for issue in e.issues:
            click.echo(f"  - {issue}", err=True)
        sys.exit(1)

    project = graph.project
    click.echo(f"✓ Project '{project.name}' is valid")
    click.echo(f"  Tables: {len(project.tables)}")
    click.echo(f"  Sources: {len(project.sources)}")
    click.echo(f"  Load order: {' -> '.join(graph.load_order) or '(empty)'}")
    click.echo(f"  Target: {project.target.kind}")
