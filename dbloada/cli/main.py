"""Main CLI entry point for dbloada."""

import click

from dbloada import __version__
from dbloada.cli.commands.init import init
from dbloada.cli.commands.list import list_connectors
from dbloada.cli.commands.load import load
from dbloada.cli.commands.skill import skill
from dbloada.cli.commands.validate import validate
from dbloada.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Log level (default: INFO)",
)
@click.option(
    "--json-logs",
    is_flag=True,
    help="Use JSON format for logs",
)
def main(log_level: str, json_logs: bool):
    """dbloada - Compile project manifests into queryable databases."""
    configure_logging(level=log_level, json_format=json_logs)


# Register commands
main.add_command(init)
main.add_command(validate)
main.add_command(load)
main.add_command(skill)
main.add_command(list_connectors)


if __name__ == "__main__":
    main()
