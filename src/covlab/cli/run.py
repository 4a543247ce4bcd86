"""covlab run command - execute a script or module under coverage."""

import json
import traceback
from pathlib import Path
from typing import Any

import click

from covlab.cli.report import print_report
from covlab.config import load_config
from covlab.core.errors import CovLabError
from covlab.core.logging import configure_logging, get_logger
from covlab.coverage.hook import CoverageSession

log = get_logger(__name__)


@click.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option(
    "--include",
    "root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Inclusion root (default: from config, else the current directory)",
)
@click.option(
    "--exclude",
    multiple=True,
    help="Sub-path of the inclusion root to leave uninstrumented (repeatable)",
)
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.option(
    "--source-maps/--no-source-maps",
    default=None,
    help="Report original positions for transformed files",
)
@click.option(
    "--threshold",
    type=click.FloatRange(0, 100),
    default=None,
    help="Exit with status 1 when total coverage is below this percent",
)
@click.option("-m", "module", default=None, help="Run a library module as a script")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run_command(
    ctx: click.Context,
    root: Path | None,
    exclude: tuple[str, ...],
    as_json: bool,
    source_maps: bool | None,
    threshold: float | None,
    module: str | None,
    args: tuple[str, ...],
) -> None:
    """Run SCRIPT (or -m MODULE) with coverage and print the report.

    Arguments after the script or module name are passed to it unchanged.

    Exit status is 1 when coverage is below the threshold, otherwise the
    program's own exit status.
    """
    if module is None and not args:
        raise click.UsageError("Provide a SCRIPT to run, or -m MODULE")

    overrides: dict[str, Any] = {}
    if root is not None:
        overrides["root"] = str(root)
    if exclude:
        overrides["exclude"] = list(exclude)
    if source_maps is not None:
        overrides["source_maps"] = source_maps
    if threshold is not None:
        overrides["threshold"] = threshold

    try:
        config = load_config(
            Path.cwd(),
            config_file=(ctx.obj or {}).get("config_file"),
            **({"coverage": overrides} if overrides else {}),
        )
    except CovLabError as e:
        raise click.ClickException(str(e)) from e

    if not (ctx.obj or {}).get("verbose"):
        configure_logging(config=config.logging)

    try:
        session = CoverageSession(config.coverage)
    except CovLabError as e:
        raise click.ClickException(str(e)) from e

    exit_code = 0
    with session:
        try:
            if module is not None:
                session.run_module(module, args)
            else:
                session.run_script(args[0], args[1:])
        except SystemExit as e:
            exit_code = _exit_status(e.code)
        except FileNotFoundError as e:
            raise click.ClickException(f"Could not find program to run: {e.filename}") from e
        except ImportError as e:
            if module is None:
                traceback.print_exc()
                exit_code = 1
            else:
                raise click.ClickException(f"Could not run module {module}: {e}") from e
        except Exception:
            # Same output and status as the interpreter for an uncaught exception.
            traceback.print_exc()
            exit_code = 1

    report = session.analyze()
    log.info("run_finished", run_id=session.run_id, exit_code=exit_code, percent=report.percent)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report, threshold=config.coverage.threshold)

    if config.coverage.threshold is not None and report.percent < config.coverage.threshold:
        ctx.exit(1)
    ctx.exit(exit_code)


def _exit_status(code: object) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    click.echo(str(code), err=True)
    return 1
