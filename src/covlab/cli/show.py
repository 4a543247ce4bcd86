"""covlab show command - print the instrumented text of a file."""

from pathlib import Path

import click

from covlab.config import load_config
from covlab.core.errors import CovLabError
from covlab.coverage.hook import CoverageHook
from covlab.coverage.registry import CoverageContext


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--stats", is_flag=True, help="Also print tracked line and branch counts")
@click.pass_context
def show_command(ctx: click.Context, file: Path, stats: bool) -> None:
    """Print FILE as it would run under coverage.

    Configured transforms for FILE's extension are applied first. The file is
    shown whether or not it lies under the inclusion root.
    """
    try:
        config = load_config(Path.cwd(), config_file=(ctx.obj or {}).get("config_file"))
        hook = CoverageHook(config.coverage, CoverageContext())
        text = file.read_text(encoding="utf-8")
        instrumented = hook.prepare(str(file.resolve()), text)
    except CovLabError as e:
        raise click.ClickException(str(e)) from e

    click.echo(instrumented.text, nl=False)
    if stats:
        click.echo(
            f"\n# tracked lines: {len(instrumented.tracked_lines)}, "
            f"branches: {len(instrumented.statements)}, "
            f"bypass ranges: {len(instrumented.bypass)}",
            err=True,
        )
