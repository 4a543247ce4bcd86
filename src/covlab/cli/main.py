"""covlab CLI - covlab command."""

from pathlib import Path

import click

from covlab.cli.run import run_command
from covlab.cli.show import show_command
from covlab.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="covlab")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file to use instead of .covlab.yaml",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_file: Path | None) -> None:
    """covlab - statement and branch coverage for Python code."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_file"] = config_file
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(run_command, name="run")
cli.add_command(show_command, name="show")


if __name__ == "__main__":
    cli()
