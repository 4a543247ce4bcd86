"""Turn registry counters into a line/column-level coverage report.

Per file and per 1-based line:

- a tracked line whose counter is 0 is a miss;
- a blank line counts for nothing;
- a line with branch records is judged column by column: every record that
  did not observe both outcomes paints its columns with a verdict and makes
  the line a miss; painted columns are collapsed into chunks;
- any other line with a positive counter is a hit;
- untracked lines without records count for nothing.

Records spanning several lines are moved to their start line and split at
each line break, so every spanned line judges the record once.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from functools import cmp_to_key
from pathlib import Path

from covlab.config.models import CoverageConfig
from covlab.coverage.models import (
    AggregateReport,
    BranchStatement,
    Chunk,
    FileRecord,
    FileReport,
    LineReport,
    Location,
    Position,
    Verdict,
)
from covlab.coverage.pattern import PathFilter, is_own_file, normalize_path
from covlab.coverage.registry import CoverageContext
from covlab.coverage.sourcemaps import PositionMapper
from covlab.core.logging import get_logger

log = get_logger(__name__)

# Never walked when looking for files that were not loaded.
PRUNED_DIRS: frozenset[str] = frozenset(
    (
        ".git",
        ".hg",
        ".svn",
        "__pycache__",
        ".venv",
        "venv",
        ".tox",
        ".nox",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        "node_modules",
        "site-packages",
    )
)


def compare_paths(a: str, b: str) -> int:
    """Directory-depth ordering: at the first differing segment a path that
    ends there sorts before one that goes deeper; otherwise segments compare
    as strings; equal prefixes fall back to segment count."""
    segments_a = a.split("/")
    segments_b = b.split("/")
    for seg_a, seg_b, index in zip(segments_a, segments_b, range(len(segments_a))):
        if seg_a == seg_b:
            continue
        last_a = index + 1 == len(segments_a)
        last_b = index + 1 == len(segments_b)
        if last_a != last_b:
            return -1 if last_a else 1
        return -1 if seg_a < seg_b else 1
    return -1 if len(segments_a) < len(segments_b) else 1


class Analyzer:
    """Builds an AggregateReport from a registry snapshot."""

    def __init__(
        self,
        config: CoverageConfig,
        files: dict[str, FileRecord],
        *,
        bridge: PositionMapper | None = None,
        extensions: tuple[str, ...] = (".py",),
    ) -> None:
        self.config = config
        self.files = files
        self.bridge = bridge if config.source_maps else None
        self.extensions = extensions
        self.path_filter = PathFilter(config.root, config.exclude)
        self._relative_prefix = normalize_path(config.relative_to or Path.cwd()).rstrip("/") + "/"

    def run(self) -> AggregateReport:
        report = AggregateReport()

        for filename, record in self.files.items():
            if self.path_filter.matches(filename):
                report.files.append(self.file(record))

        if self.config.all_files:
            for filename in self._unloaded_files():
                log.debug("file_not_loaded", path=filename)
                report.files.append(self.unloaded_file(filename))

        for data in report.files:
            report.hits += data.hits
            report.misses += data.misses
            report.sloc += data.sloc

        report.files.sort(key=cmp_to_key(lambda a, b: compare_paths(a.filename, b.filename)))
        if report.sloc > 0:
            report.percent = report.hits / report.sloc * 100

        log.info(
            "report_built",
            files=len(report.files),
            sloc=report.sloc,
            percent=round(report.percent, 2),
        )
        return report

    # -- per file -----------------------------------------------------------

    def display_name(self, filename: str) -> str:
        if filename.startswith(self._relative_prefix):
            return filename[len(self._relative_prefix) :]
        return filename

    def file(self, record: FileRecord) -> FileReport:
        ret = FileReport(filename=self.display_name(record.filename))
        statements = record.statements

        for num, line in enumerate(record.source, start=1):
            entry = LineReport(source=line, hits=record.lines.get(num))
            ret.source[num] = entry
            self._map_position(ret, record.filename, num)

            if record.lines.get(num) == 0:
                entry.miss = True
            elif not line.strip():
                continue
            elif statements.get(num):
                chunks = self._judge(statements, num, line)
                if chunks is not None:
                    entry.chunks = chunks
                    entry.miss = True
            elif not record.lines.get(num):
                continue

            ret.sloc += 1
            if entry.miss:
                ret.misses += 1
            else:
                ret.hits += 1

        if ret.sloc > 0:
            ret.percent = ret.hits / ret.sloc * 100
        return ret

    def unloaded_file(self, filename: str) -> FileReport:
        """A file in scope that never ran: every non-blank line is a miss."""
        text = Path(filename).read_text(encoding="utf-8", errors="replace")
        ret = FileReport(filename=self.display_name(filename))
        for num, line in enumerate(text.replace("\r\n", "\n").replace("\r", "\n").split("\n"), 1):
            entry = LineReport(source=line)
            ret.source[num] = entry
            self._map_position(ret, filename, num)
            if line.strip():
                entry.miss = True
                ret.sloc += 1
                ret.misses += 1
        return ret

    def _judge(
        self,
        statements: dict[int, dict[int, BranchStatement]],
        num: int,
        line: str,
    ) -> list[Chunk] | None:
        """Column mask for one line; None when every record on it is covered."""
        mask: list[Verdict | None] = [None] * len(line)
        is_miss = False

        # Iterate over a copy: cross-line records are re-keyed while judging.
        for statement_id, statement in list(statements[num].items()):
            if statement.covered:
                continue

            start, end = statement.loc.start, statement.loc.end
            if start.line != num:
                statements.setdefault(start.line, {})[statement_id] = statement
                continue

            if end.line != num:
                following = num + 1
                statements.setdefault(following, {})[statement_id] = BranchStatement(
                    id=statement.id,
                    line=following,
                    loc=Location(start=Position(following, 0), end=end),
                    scored=statement.scored,
                    hit_true=statement.hit_true,
                    hit_false=statement.hit_false,
                )
                end = Position(num, len(line))

            is_miss = True
            verdict = _verdict(statement)
            for column in range(start.column, min(end.column, len(line))):
                mask[column] = verdict

        if not is_miss:
            return None
        return list(_chunks(line, mask))

    def _map_position(self, ret: FileReport, filename: str, num: int) -> None:
        if self.bridge is None:
            return
        entry = ret.source[num]
        original = self.bridge.map_position(filename, num, 0)
        if original is not None and (original.source, original.line) != (filename, num):
            entry.original_filename = self.display_name(original.source)
            entry.original_line = original.line
            ret.sourcemaps = True
        else:
            entry.original_filename = ret.filename
            entry.original_line = num

    # -- discovery ----------------------------------------------------------

    def _unloaded_files(self) -> Iterator[str]:
        root = Path(self.path_filter.root)
        if not root.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in PRUNED_DIRS)
            for name in sorted(filenames):
                if not name.endswith(self.extensions):
                    continue
                filename = normalize_path(os.path.join(dirpath, name))
                if (
                    filename not in self.files
                    and not is_own_file(filename)
                    and self.path_filter.matches(filename)
                ):
                    yield filename


def _verdict(statement: BranchStatement) -> Verdict:
    if statement.hit_true:
        return Verdict.ALWAYS_TRUE
    if statement.hit_false:
        return Verdict.ALWAYS_FALSE
    return Verdict.NEVER


def _chunks(line: str, mask: list[Verdict | None]) -> Iterator[Chunk]:
    start = 0
    for column in range(1, len(mask)):
        if mask[column] != mask[column - 1]:
            yield Chunk(source=line[start:column], miss=mask[column - 1])
            start = column
    yield Chunk(source=line[start:], miss=mask[start] if mask else None)


def analyze(
    config: CoverageConfig,
    context: CoverageContext,
    *,
    bridge: PositionMapper | None = None,
) -> AggregateReport:
    """Build the aggregate report for every file in scope.

    The registry is snapshotted first, so analysis never mutates live counters
    and instrumented code may keep running meanwhile.
    """
    extensions = (".py", *(t.extension for t in config.transforms))
    analyzer = Analyzer(
        config,
        context.snapshot(),
        bridge=bridge if bridge is not None else context.source_maps,
        extensions=tuple(dict.fromkeys(extensions)),
    )
    return analyzer.run()
