"""Inline bypass directives.

    # $covlab:coverage:off$
    ...code that is neither instrumented nor reported...
    # $covlab:coverage:on$

Directives are processed in source order and only a state change counts, so
repeating "off" (or "on") is a no-op. An "off" that is never switched back on
bypasses the rest of the file.
"""

from __future__ import annotations

import io
import re
import tokenize
from bisect import bisect_right
from collections.abc import Iterator

from covlab.coverage.models import BypassRange, Position
from covlab.coverage.tree import SyntaxTree
from covlab.core.errors import InstrumentError

DIRECTIVE = re.compile(r"^#\s*\$covlab:coverage:(off|on)\$\s*$")


class BypassRanges:
    """Sorted, non-overlapping bypass ranges with offset lookup."""

    def __init__(self, ranges: list[BypassRange]) -> None:
        self.ranges = ranges
        self._starts = [r.start for r in ranges]

    def contains(self, offset: int) -> bool:
        index = bisect_right(self._starts, offset) - 1
        return index >= 0 and offset in self.ranges[index]

    def __iter__(self) -> Iterator[BypassRange]:
        return iter(self.ranges)

    def __len__(self) -> int:
        return len(self.ranges)


def scan_bypass(tree: SyntaxTree, filename: str) -> BypassRanges:
    """Collect bypass ranges from the directive comments of a parsed file."""
    ranges: list[BypassRange] = []
    skipping = False
    skip_start = 0

    for start, end, text in _comments(tree, filename):
        match = DIRECTIVE.match(text)
        if not match:
            continue
        skip = match.group(1) == "off"
        if skip == skipping:
            continue
        skipping = skip
        if skip:
            skip_start = end
        else:
            ranges.append(BypassRange(skip_start, start))

    if skipping:
        ranges.append(BypassRange(skip_start, len(tree.text)))
    return BypassRanges(ranges)


def _comments(tree: SyntaxTree, filename: str) -> list[tuple[int, int, str]]:
    comments = []
    try:
        for token in tokenize.generate_tokens(io.StringIO(tree.text).readline):
            if token.type != tokenize.COMMENT:
                continue
            start = tree.offset(Position(*token.start))
            comments.append((start, start + len(token.string), token.string))
    except (tokenize.TokenError, SyntaxError) as e:
        raise InstrumentError.parse_error(filename, f"tokenize failed: {e}") from e
    return comments
