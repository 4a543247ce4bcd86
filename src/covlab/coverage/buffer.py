"""Offset-addressed edit buffer for in-place source splicing.

The buffer holds one slot per character of the original text. Replacing a
range writes the new text into the slot at the range start and blanks the
rest, so offsets of everything outside the range never move and an outer
edit always reads the inner edits already applied inside its range.
"""

from __future__ import annotations


class EditBuffer:
    def __init__(self, text: str) -> None:
        self._slots = list(text)

    def source(self, start: int, end: int) -> str:
        return "".join(self._slots[start:end])

    def replace(self, start: int, end: int, text: str) -> None:
        if not 0 <= start < end <= len(self._slots):
            raise ValueError(f"Invalid edit range [{start}, {end}) for {len(self._slots)} slots")
        self._slots[start] = text
        for offset in range(start + 1, end):
            self._slots[offset] = ""

    def render(self) -> str:
        return "".join(self._slots)

    def __len__(self) -> int:
        return len(self._slots)
