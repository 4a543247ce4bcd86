"""Arena syntax tree over the standard library ``ast``.

Every ``ast`` node that carries a source position becomes a SyntaxNode stored
in a flat list and addressed by index; parent and child links are indices, so
the tree holds no reference cycles. Ranges are character offsets into the
parsed text (``ast`` reports UTF-8 byte columns, converted here).

Operator and context singletons (``ast.Load``, ``ast.Add``, ...) are not part
of the arena. f-strings are kept as leaves: nothing inside them is edited.
"""

from __future__ import annotations

import ast
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from covlab.coverage.models import Location, Position
from covlab.core.errors import InstrumentError

_SKIPPED = (ast.expr_context, ast.boolop, ast.operator, ast.unaryop, ast.cmpop)
_OPAQUE: tuple[type[ast.AST], ...] = (ast.JoinedStr,)
if hasattr(ast, "TemplateStr"):
    _OPAQUE += (ast.TemplateStr,)


@dataclass(slots=True)
class SyntaxNode:
    index: int
    node: ast.AST
    parent: int | None
    field: str | None  # field of the parent holding this node
    children: list[int] = field(default_factory=list)
    start: int | None = None
    end: int | None = None
    loc: Location | None = None

    @property
    def kind(self) -> str:
        return type(self.node).__name__

    @property
    def line(self) -> int:
        assert self.loc is not None
        return self.loc.start.line


class SyntaxTree:
    """Parsed text plus the arena of positioned nodes (index 0 is the module)."""

    def __init__(self, text: str, module: ast.Module) -> None:
        self.text = text
        self.lines = text.split("\n")
        self._line_starts: list[int] = []
        offset = 0
        for line in self.lines:
            self._line_starts.append(offset)
            offset += len(line) + 1
        self.nodes: list[SyntaxNode] = []
        self._by_id: dict[int, int] = {}
        self._build(module)

    @classmethod
    def parse(cls, text: str, filename: str) -> SyntaxTree:
        try:
            module = ast.parse(text, filename=filename)
        except SyntaxError as e:
            raise InstrumentError.parse_error(filename, e.msg or str(e), e.lineno) from e
        except ValueError as e:
            raise InstrumentError.parse_error(filename, str(e)) from e
        return cls(text, module)

    # -- construction -------------------------------------------------------

    def _build(self, module: ast.Module) -> None:
        pending: list[tuple[ast.AST, int | None, str | None]] = [(module, None, None)]
        while pending:
            node, parent, field_name = pending.pop()
            index = len(self.nodes)
            entry = SyntaxNode(index=index, node=node, parent=parent, field=field_name)
            self._locate(entry)
            self.nodes.append(entry)
            self._by_id[id(node)] = index
            if parent is not None:
                self.nodes[parent].children.append(index)
            if isinstance(node, _OPAQUE):
                continue
            # Reversed so children pop off the stack in source field order.
            for child_field, child in reversed(list(_child_nodes(node))):
                pending.append((child, index, child_field))

    def _locate(self, entry: SyntaxNode) -> None:
        node = entry.node
        end_lineno = getattr(node, "end_lineno", None)
        if getattr(node, "lineno", None) is None or end_lineno is None:
            return
        start = self.position(node.lineno, node.col_offset)  # type: ignore[attr-defined]
        end = self.position(end_lineno, node.end_col_offset)  # type: ignore[attr-defined]
        entry.loc = Location(start=start, end=end)
        entry.start = self.offset(start)
        entry.end = self.offset(end)

    # -- positions ----------------------------------------------------------

    def position(self, line: int, byte_column: int) -> Position:
        text = self.lines[line - 1]
        if text.isascii():
            return Position(line, byte_column)
        column = len(text.encode("utf-8")[:byte_column].decode("utf-8", errors="ignore"))
        return Position(line, column)

    def offset(self, position: Position) -> int:
        return self._line_starts[position.line - 1] + position.column

    # -- navigation ---------------------------------------------------------

    def __getitem__(self, index: int) -> SyntaxNode:
        return self.nodes[index]

    def __len__(self) -> int:
        return len(self.nodes)

    def lookup(self, node: ast.AST) -> SyntaxNode:
        return self.nodes[self._by_id[id(node)]]

    def parent(self, entry: SyntaxNode) -> SyntaxNode | None:
        return None if entry.parent is None else self.nodes[entry.parent]

    def postorder(self, prune: Callable[[SyntaxNode], bool] | None = None) -> Iterator[SyntaxNode]:
        """Yield children before parents; a pruned node hides its whole subtree."""
        stack: list[tuple[int, bool]] = [(0, False)]
        while stack:
            index, expanded = stack.pop()
            entry = self.nodes[index]
            if expanded:
                yield entry
                continue
            if prune is not None and prune(entry):
                continue
            stack.append((index, True))
            stack.extend((child, False) for child in reversed(entry.children))


def _child_nodes(node: ast.AST) -> Iterator[tuple[str, ast.AST]]:
    for name, value in ast.iter_fields(node):
        if isinstance(value, ast.AST):
            if not isinstance(value, _SKIPPED):
                yield name, value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, ast.AST) and not isinstance(item, _SKIPPED):
                    yield name, item
