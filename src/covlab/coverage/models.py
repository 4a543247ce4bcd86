"""Coverage data model.

Two halves:
- Schema and live counters written while instrumented code runs
  (Position, Location, BranchStatement, BypassRange, FileRecord).
- Report types derived from a registry snapshot (Chunk, LineReport,
  FileReport, AggregateReport), serialised with ``to_dict()``.

Line numbers are 1-based, columns are 0-based character offsets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True, slots=True)
class Position:
    line: int
    column: int


@dataclass(frozen=True, slots=True)
class Location:
    start: Position
    end: Position


@dataclass(frozen=True, slots=True)
class BypassRange:
    """Half-open character-offset interval excluded from instrumentation."""

    start: int
    end: int

    def __contains__(self, offset: int) -> bool:
        return self.start <= offset < self.end


@dataclass(slots=True)
class BranchStatement:
    """A boolean-relevant sub-expression and the outcomes observed for it.

    Scored records track the true and false outcomes independently. A
    non-scored record (a ternary branch, a composite operand) can only produce
    one outcome, so a single execution counts as fully covered.
    """

    id: int
    line: int
    loc: Location
    scored: bool
    hit_true: bool = False
    hit_false: bool = False

    def outcome(self, value: Any) -> bool:
        """Outcome a value produces; truthiness is only evaluated for scored records."""
        return bool(value) if self.scored else True

    def mark(self, outcome: bool) -> None:
        if not self.scored:
            self.hit_true = self.hit_false = True
        elif outcome:
            self.hit_true = True
        else:
            self.hit_false = True

    @property
    def covered(self) -> bool:
        return self.hit_true and self.hit_false


@dataclass(slots=True)
class FileRecord:
    """Registry entry for one instrumented file."""

    filename: str
    source: list[str] = field(default_factory=list)  # original text, newline-normalized
    lines: dict[int, int] = field(default_factory=dict)  # line_number → hit_count
    statements: dict[int, dict[int, BranchStatement]] = field(default_factory=dict)


class Verdict(str, Enum):
    """Why a chunk of a line is not fully covered."""

    ALWAYS_TRUE = "true"
    ALWAYS_FALSE = "false"
    NEVER = "never"


@dataclass(frozen=True, slots=True)
class Chunk:
    """Contiguous columns of a report line sharing one verdict (None = covered)."""

    source: str
    miss: Verdict | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "miss": self.miss.value if self.miss else None}


@dataclass(slots=True)
class LineReport:
    source: str
    hits: int | None = None
    miss: bool = False
    chunks: list[Chunk] | None = None
    original_filename: str | None = None
    original_line: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"source": self.source, "hits": self.hits, "miss": self.miss}
        if self.chunks is not None:
            data["chunks"] = [chunk.to_dict() for chunk in self.chunks]
        if self.original_filename is not None:
            data["originalFilename"] = self.original_filename
            data["originalLine"] = self.original_line
        return data


@dataclass(slots=True)
class FileReport:
    filename: str
    percent: float = 0.0
    hits: int = 0
    misses: int = 0
    sloc: int = 0
    source: dict[int, LineReport] = field(default_factory=dict)  # line_number → report
    sourcemaps: bool = False

    @property
    def missed_lines(self) -> list[int]:
        """Sorted line numbers reported as misses."""
        return sorted(num for num, line in self.source.items() if line.miss)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "filename": self.filename,
            "percent": self.percent,
            "hits": self.hits,
            "misses": self.misses,
            "sloc": self.sloc,
            "source": {num: line.to_dict() for num, line in self.source.items()},
        }
        if self.sourcemaps:
            data["sourcemaps"] = True
        return data


@dataclass(slots=True)
class AggregateReport:
    sloc: int = 0
    hits: int = 0
    misses: int = 0
    percent: float = 0.0
    files: list[FileReport] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sloc": self.sloc,
            "hits": self.hits,
            "misses": self.misses,
            "percent": self.percent,
            "files": [f.to_dict() for f in self.files],
        }
