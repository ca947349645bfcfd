"""CLI command for loading projects."""

import json
import sys
import threading

import click

from dbloada.api import run_project
from dbloada.cli.commands.options import parse_vars, project_argument, vars_option
from dbloada.core.exceptions import DbLoadaError, ProjectError, ValidationError


@click.command()
@project_argument
@vars_option
@click.option(
    "--strict",
    is_flag=True,
    help="Exit with status 2 when the load only partially succeeds",
)
@click.option(
    "--json-report",
    is_flag=True,
    help="Print the load report as JSON instead of a summary",
)
def load(project_path: str, vars: tuple, strict: bool, json_report: bool):
    """Load every table of a project into its target database.

    Exit status is 0 on success or partial success (2 with --strict) and 1
    on a hard failure. Ctrl+C stops the load after the current batch.

    Examples:

        dbloada load
        dbloada load projects/countries --vars env=prod
        dbloada load --strict --json-report
    """
    cli_vars = parse_vars(vars)
    cancel_event = threading.Event()
    outcome: dict = {}

    def _run():
        try:
            outcome["report"] = run_project(
                project_path, cli_vars=cli_vars, cancel_event=cancel_event
            )
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=_run, name="dbloada-load", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        click.echo("Interrupted, stopping after the current batch...", err=True)
        cancel_event.set()
        worker.join()

    error = outcome.get("error")
    if isinstance(error, ProjectError):
        click.echo(f"Project error: {error}", err=True)
        sys.exit(1)
    if isinstance(error, ValidationError):
        click.echo(f"✗ Project validation failed with {len(error.issues)} issue(s):", err=True)
        for issue in error.issues:
            click.echo(f"  - {issue}", err=True)
        sys.exit(1)
    if isinstance(error, DbLoadaError):
        click.echo(f"Execution error: {error}", err=True)
        sys.exit(1)
    if error is not None:
        click.echo(f"Unexpected error: {error}", err=True)
        sys.exit(1)

    report = outcome["report"]
    if json_report:
        click.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        click.echo(report.summary())
        if report.skill_path:
            click.echo(f"Wrote skill file: {report.skill_path}")
    sys.exit(report.exit_code(strict))
