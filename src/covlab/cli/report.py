"""Console rendering of coverage reports."""

from collections.abc import Iterable

from rich.console import Console
from rich.table import Table
from rich.text import Text

from covlab.coverage.models import AggregateReport, FileReport


def line_ranges(lines: Iterable[int]) -> str:
    """Compress sorted line numbers: [1, 2, 3, 7, 9, 10] -> '1-3, 7, 9-10'."""
    ranges: list[str] = []
    start = prev = None
    for num in lines:
        if prev is not None and num == prev + 1:
            prev = num
            continue
        if start is not None:
            ranges.append(f"{start}-{prev}" if start != prev else str(start))
        start = prev = num
    if start is not None:
        ranges.append(f"{start}-{prev}" if start != prev else str(start))
    return ", ".join(ranges)


def _percent_style(percent: float, threshold: float | None) -> str:
    if threshold is not None:
        return "green" if percent >= threshold else "red"
    if percent >= 90:
        return "green"
    return "yellow" if percent >= 50 else "red"


def _partial_lines(data: FileReport) -> list[int]:
    return sorted(num for num, line in data.source.items() if line.chunks)


def make_report_table(report: AggregateReport, threshold: float | None = None) -> Table:
    table = Table(title="Coverage", title_justify="left", show_footer=True, pad_edge=False)
    table.add_column("File", footer="TOTAL", no_wrap=True)
    table.add_column("Lines", justify="right", footer=str(report.sloc))
    table.add_column("Miss", justify="right", footer=str(report.misses))
    table.add_column(
        "Cover",
        justify="right",
        footer=Text(f"{report.percent:.2f}%", style=_percent_style(report.percent, threshold)),
    )
    table.add_column("Missing")
    table.add_column("Branches", style="dim")

    for data in report.files:
        table.add_row(
            data.filename,
            str(data.sloc),
            str(data.misses),
            Text(f"{data.percent:.2f}%", style=_percent_style(data.percent, threshold)),
            line_ranges(data.missed_lines),
            line_ranges(_partial_lines(data)),
        )
    return table


def print_report(
    report: AggregateReport,
    *,
    threshold: float | None = None,
    console: Console | None = None,
) -> None:
    console = console or Console()
    if not report.files:
        console.print("[yellow]No files matched the inclusion root[/yellow]")
        return
    console.print(make_report_table(report, threshold))
    if threshold is not None and report.percent < threshold:
        console.print(
            f"[red]✗[/red] Total coverage {report.percent:.2f}% is below the threshold of {threshold:g}%"
        )
