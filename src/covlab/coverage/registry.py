"""Coverage context: the registry of live counters for instrumented files.

One CoverageContext is owned by a coverage run. The instrumenter registers a
zeroed schema per file; instrumented modules receive the context as the module
global ``__covlab__`` and call ``line()`` / ``statement()`` on it while they
run. Analysis reads a deep-copied ``snapshot()``.
"""

from __future__ import annotations

import copy
import threading
from typing import TYPE_CHECKING, Any, TypeVar

from covlab.coverage.models import FileRecord
from covlab.coverage.sourcemaps import LineMapBridge
from covlab.core.logging import get_logger

if TYPE_CHECKING:
    from covlab.coverage.instrument import InstrumentedFile

log = get_logger(__name__)

TRACKER_NAME = "__covlab__"

T = TypeVar("T")


class CoverageContext:
    """Process-local registry: filename → FileRecord."""

    def __init__(self) -> None:
        self.files: dict[str, FileRecord] = {}
        self.source_maps = LineMapBridge()
        self._lock = threading.Lock()

    def register(self, instrumented: InstrumentedFile) -> FileRecord:
        """Install a zeroed schema for a file, replacing any earlier one."""
        record = FileRecord(
            filename=instrumented.filename,
            source=instrumented.source.split("\n"),
        )
        for line in instrumented.tracked_lines:
            record.lines[line] = 0
        for statement in instrumented.statements:
            record.statements.setdefault(statement.line, {})[statement.id] = statement

        with self._lock:
            previous = self.files.get(instrumented.filename)
            self.files[instrumented.filename] = record

        if previous is not None:
            log.warning(
                "file_reinstrumented",
                path=instrumented.filename,
                discarded_hits=sum(previous.lines.values()),
            )
        return record

    # -- tracking calls (run inside instrumented code) ----------------------

    def line(self, filename: str, line: int) -> None:
        record = self.files.get(filename)
        if record is None:
            return
        with self._lock:
            if line in record.lines:
                record.lines[line] += 1

    def statement(self, filename: str, statement_id: int, line: int, value: T) -> T:
        # A module object that outlives a re-registration keeps calling in
        # with ids of the discarded schema; those calls are dropped.
        record = self.files.get(filename)
        statement = record.statements.get(line, {}).get(statement_id) if record else None
        if statement is None:
            return value
        # Truthiness may run user code; evaluate it outside the lock.
        outcome = statement.outcome(value)
        with self._lock:
            statement.mark(outcome)
        return value

    # -- reading ------------------------------------------------------------

    def snapshot(self) -> dict[str, FileRecord]:
        with self._lock:
            return copy.deepcopy(self.files)

    def clear(self) -> None:
        with self._lock:
            self.files.clear()
        self.source_maps.clear()

    def __contains__(self, filename: Any) -> bool:
        return filename in self.files

    def __len__(self) -> int:
        return len(self.files)
