"""Options shared by several commands."""

import sys

import click

project_argument = click.argument(
    "project_path", default=".", type=click.Path(exists=True)
)

vars_option = click.option(
    "--vars",
    multiple=True,
    help="CLI variables in key=value format (can be used multiple times)",
)


def parse_vars(vars: tuple) -> dict[str, str] | None:
    """Turn ``key=value`` pairs into a dict; exits on a malformed pair."""
    cli_vars = {}
    for var in vars:
        if "=" not in var:
            click.echo(f"Error: Invalid variable format: {var}. Use key=value", err=True)
            sys.exit(1)
        key, value = var.split("=", 1)
        cli_vars[key] = value
    return cli_vars or None
