"""CLI command for initializing a new project."""

import sys
from pathlib import Path

import click

from dbloada.core.exceptions import ProjectError
from dbloada.core.scaffold import init_project

GITIGNORE_ENTRIES = [
    "# dbloada outputs",
    "*.duckdb",
    "*.duckdb.wal",
    "graph.json",
]


@click.command()
@click.argument("path", default=".", type=click.Path(file_okay=False))
@click.option(
    "--name",
    help="Project name (default: the sanitized directory name)",
)
def init(path: str, name: str | None):
    """Initialize a new dbloada project.

    Creates:
    - dbloada.yaml with no tables yet
    - .gitignore entries for database outputs

    Examples:

        dbloada init
        dbloada init projects/countries --name countries
    """
    output_path = Path(path)
    output_path.mkdir(parents=True, exist_ok=True)

    try:
        manifest_path = init_project(output_path, name)
    except ProjectError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Created project file: {manifest_path}")

    gitignore_file = output_path / ".gitignore"
    existing_entries = set()
    if gitignore_file.exists():
        existing_entries = set(gitignore_file.read_text().splitlines())

    new_entries = [entry for entry in GITIGNORE_ENTRIES if entry not in existing_entries]
    if new_entries:
        with gitignore_file.open("a") as f:
            f.write("\n".join(new_entries) + "\n")
        click.echo(f"Updated .gitignore: {gitignore_file}")

    click.echo("")
    click.echo("Next steps:")
    click.echo(f"  1. Declare tables and sources in {manifest_path}")
    click.echo(f"  2. Run: dbloada validate {output_path}")
    click.echo(f"  3. Run: dbloada load {output_path}")
