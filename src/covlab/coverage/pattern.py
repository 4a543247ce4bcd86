"""Include/exclude path matching.

A PathFilter is one regular expression: the escaped inclusion root anchored at
the start of the path, followed (when exclusions exist) by a negative lookahead
that rejects any path whose next segment(s) after the root spell an excluded
sub-path. Exclusions match whole segments only.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from os import PathLike
from pathlib import Path

from covlab.core.errors import PatternError

_OWN_PACKAGE = Path(os.path.abspath(__file__)).parent.parent.as_posix() + "/"


def normalize_path(path: str | PathLike[str]) -> str:
    """Absolute, forward-slash form used for every registry and filter key."""
    return Path(os.path.abspath(os.fspath(path))).as_posix()


def is_own_file(path: str) -> bool:
    """Whether a normalized path lies inside covlab's own package, which is never covered."""
    return path.startswith(_OWN_PACKAGE)


class PathFilter:
    """Compiled inclusion root plus exclusion sub-paths."""

    def __init__(self, root: str | PathLike[str], exclude: Iterable[str] = ()) -> None:
        self.root = normalize_path(root)
        self.exclude = [self._relativize(entry) for entry in exclude]
        self.pattern = self._compile()

    def _relativize(self, entry: str) -> str:
        path = entry.replace("\\", "/")
        prefix = self.root.rstrip("/") + "/"
        if path.startswith(prefix):
            path = path[len(prefix) :]
        path = path.strip("/")
        if not path:
            raise PatternError.empty_exclusion(self.root)
        return path

    def _compile(self) -> re.Pattern[str]:
        base = re.escape(self.root)
        regex = "^" + base
        if self.exclude:
            excludes = "|".join(re.escape(entry) for entry in self.exclude)
            separator = "" if self.root.endswith("/") else "/"
            regex += f"{separator}(?!(?:{excludes})(?:/|$))"
        elif not self.root.endswith("/"):
            regex += "(?=/|$)"
        try:
            return re.compile(regex)
        except re.error as e:
            raise PatternError.invalid_pattern(regex, str(e)) from e

    def matches(self, path: str | PathLike[str]) -> bool:
        return self.pattern.match(normalize_path(path)) is not None

    def __repr__(self) -> str:
        return f"PathFilter(root={self.root!r}, exclude={self.exclude!r})"
