"""Position-mapping bridge used to enrich reports.

When a transform rewrites a file before it is instrumented, report line N no
longer corresponds to line N of the file the user wrote. A bridge maps an
instrumented position back to the original one. The analyzer only consults it
when source maps are enabled.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from covlab.coverage.pattern import normalize_path


@dataclass(frozen=True, slots=True)
class OriginalPosition:
    source: str
    line: int
    column: int = 0


class PositionMapper(Protocol):
    def map_position(self, filename: str, line: int, column: int) -> OriginalPosition | None:
        """Return the original position, or None when the position is unmapped."""
        ...


class LineMapBridge:
    """Line-granular mapper fed by transforms or callers.

    Usage::

        bridge.register("/src/page.pyt", {3: ("/src/page.tmpl", 1), 4: ("/src/page.tmpl", 2)})
    """

    def __init__(self) -> None:
        self._maps: dict[str, dict[int, OriginalPosition]] = {}

    def register(self, filename: str, mapping: Mapping[int, int | tuple[str, int]]) -> None:
        """Map instrumented lines of ``filename``; a bare int means a line of the same file."""
        filename = normalize_path(filename)
        positions: dict[int, OriginalPosition] = {}
        for line, target in mapping.items():
            source, original = (filename, target) if isinstance(target, int) else target
            positions[line] = OriginalPosition(source=normalize_path(source), line=original)
        self._maps[filename] = positions

    def discard(self, filename: str) -> None:
        self._maps.pop(normalize_path(filename), None)

    def map_position(self, filename: str, line: int, column: int) -> OriginalPosition | None:
        mapped = self._maps.get(filename, {}).get(line)
        if mapped is None:
            return None
        return OriginalPosition(source=mapped.source, line=mapped.line, column=column)

    def clear(self) -> None:
        self._maps.clear()
