"""Python source instrumentation by in-place text splicing.

The source is parsed once into an arena tree; nodes are visited children
first and every rewrite goes into an EditBuffer addressed by original
offsets, so an outer rewrite always wraps the already-rewritten text of its
inner nodes. Only call expressions are inserted, never new lines: every
statement keeps its original line number.

Inserted calls (``f`` is the quoted filename)::

    __covlab__.line(f, 3); total += 1                 # simple statement
    if (__covlab__.line(f, 4) or (<test>)):           # compound statement header
    __covlab__.statement(f, 7, 4, (<operand>))        # branch operand

``statement()`` returns its last argument unchanged, so a wrapped operand
evaluates to the same value and short-circuit order is preserved.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass, field

from covlab.coverage.buffer import EditBuffer
from covlab.coverage.bypass import scan_bypass
from covlab.coverage.models import BranchStatement, BypassRange
from covlab.coverage.registry import TRACKER_NAME
from covlab.coverage.tree import SyntaxNode, SyntaxTree
from covlab.core.logging import get_logger

log = get_logger(__name__)

_SHEBANG = re.compile(r"\A#!.*")
_NEWLINES = re.compile(r"\r\n?")
_CLOSING_PAREN = re.compile(r"\s*\)")

_SIMPLE_STATEMENTS: tuple[type[ast.AST], ...] = (
    ast.Expr,
    ast.Assign,
    ast.AugAssign,
    ast.AnnAssign,
    ast.Delete,
    ast.Pass,
    ast.Break,
    ast.Continue,
    ast.Return,
    ast.Raise,
    ast.Import,
    ast.ImportFrom,
    ast.Assert,
)
_TRY_STATEMENTS: tuple[type[ast.AST], ...] = (ast.Try,)
if hasattr(ast, "TryStar"):
    _TRY_STATEMENTS += (ast.TryStar,)
_COMPOUND_STATEMENTS: tuple[type[ast.AST], ...] = (
    ast.If,
    ast.While,
    ast.For,
    ast.AsyncFor,
    ast.With,
    ast.AsyncWith,
    ast.Match,
    ast.FunctionDef,
    ast.AsyncFunctionDef,
    ast.ClassDef,
    *_TRY_STATEMENTS,
)
_TRACKED_STATEMENTS = _SIMPLE_STATEMENTS + _COMPOUND_STATEMENTS
_TEST_OWNERS = (ast.If, ast.While, ast.IfExp)
_COMPOSITES = (ast.IfExp, ast.BoolOp)
_DOCSTRING_OWNERS = (ast.Module, ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)


@dataclass(slots=True)
class InstrumentedFile:
    """Result of one instrumentation pass: rewritten text plus its coverage schema."""

    filename: str
    text: str  # instrumented
    source: str  # original, newline-normalized
    tracked_lines: list[int] = field(default_factory=list)
    statements: list[BranchStatement] = field(default_factory=list)
    bypass: list[BypassRange] = field(default_factory=list)


class Instrumenter:
    """Single-use rewriter for one file.

    Raises:
        InstrumentError: The text does not parse. The caller serves the file
            without instrumentation.
    """

    def __init__(self, filename: str, text: str, *, tracker: str = TRACKER_NAME) -> None:
        self.filename = filename
        self.source = _NEWLINES.sub("\n", text)
        self.tree = SyntaxTree.parse(_SHEBANG.sub("", self.source, count=1), filename)
        self.bypass = scan_bypass(self.tree, filename)
        self.buffer = EditBuffer(self.tree.text)
        self._tracker = tracker
        self._quoted = repr(filename)
        self._tracked: set[int] = set()
        self._statements: list[BranchStatement] = []

    def run(self) -> InstrumentedFile:
        for node in self.tree.postorder(prune=self._bypassed):
            self._annotate(node)

        result = InstrumentedFile(
            filename=self.filename,
            text=self.buffer.render(),
            source=self.source,
            tracked_lines=sorted(self._tracked),
            statements=self._statements,
            bypass=list(self.bypass),
        )
        log.debug(
            "file_instrumented",
            path=self.filename,
            tracked_lines=len(result.tracked_lines),
            branches=len(result.statements),
            bypass_ranges=len(result.bypass),
        )
        return result

    # -- dispatch -----------------------------------------------------------

    def _bypassed(self, node: SyntaxNode) -> bool:
        return node.start is not None and self.bypass.contains(node.start)

    def _annotate(self, node: SyntaxNode) -> None:
        if isinstance(node.node, _TRACKED_STATEMENTS):
            if self._trackable(node):
                self._track_line(node)
        elif isinstance(node.node, ast.IfExp):
            self._track_ternary(node)
        elif isinstance(node.node, ast.BoolOp):
            self._track_logical(node)
        elif node.loc is not None and self._in_test_position(node):
            self._track_test(node)

    # -- statements ---------------------------------------------------------

    def _trackable(self, node: SyntaxNode) -> bool:
        stmt = node.node
        if isinstance(stmt, ast.ImportFrom) and stmt.module == "__future__":
            return False
        return not self._is_docstring(node)

    def _is_docstring(self, node: SyntaxNode) -> bool:
        stmt = node.node
        if not (
            isinstance(stmt, ast.Expr)
            and isinstance(stmt.value, ast.Constant)
            and isinstance(stmt.value.value, str)
        ):
            return False
        parent = self.tree.parent(node)
        return (
            parent is not None
            and isinstance(parent.node, _DOCSTRING_OWNERS)
            and node.field == "body"
            and parent.node.body[0] is stmt
        )

    def _track_line(self, node: SyntaxNode) -> None:
        anchor = self._anchor(node)
        if anchor is None:
            return
        mode, start, end = anchor
        if self.bypass.contains(start):
            return

        call = f"{self._tracker}.line({self._quoted}, {node.line})"
        src = self.buffer.source(start, end)
        if mode == "prefix":
            text = f"{call}; {src}"
        elif mode == "wrap":
            text = f"({call} or ({src}))"
        elif mode == "bases":
            text = f"{src}(*({call} or ()))"
        elif mode == "args":
            text = f"{src}*({call} or ())"
        else:
            text = f"{src}*({call} or ()), "
        self.buffer.replace(start, end, text)
        self._tracked.add(node.line)

    def _anchor(self, node: SyntaxNode) -> tuple[str, int, int] | None:
        """Where a statement's line call can legally go without adding a line.

        Simple statements take a ``;``-joined prefix. Compound statements
        cannot follow ``;``, so the call rides on an expression of their
        header; a ``try`` borrows the anchor of its first body statement.
        """
        stmt = node.node
        if isinstance(stmt, _SIMPLE_STATEMENTS):
            assert node.start is not None and node.end is not None
            return "prefix", node.start, node.end
        if isinstance(stmt, _TRY_STATEMENTS):
            return self._anchor(self.tree.lookup(stmt.body[0]))  # type: ignore[attr-defined]

        expr = _header_expression(stmt)
        if expr is not None:
            target = self.tree.lookup(expr)
            assert target.start is not None and target.end is not None
            return "wrap", target.start, target.end
        if isinstance(stmt, ast.ClassDef) and not getattr(stmt, "type_params", None):
            return self._class_head(node)
        return None

    def _class_head(self, node: SyntaxNode) -> tuple[str, int, int] | None:
        # `class Name:` gets a star-args base list: `class Name(*(...)):`.
        # `class Name():` and `class Name(*bases):` get it inside the parentheses.
        stmt = node.node
        assert isinstance(stmt, ast.ClassDef) and node.start is not None
        head = re.compile(r"class\s+" + re.escape(stmt.name) + r"\b(\s*\()?")
        match = head.match(self.tree.text, node.start)
        if match is None:
            return None
        if match.group(1) is None:
            return "bases", node.start, match.end()
        empty = _CLOSING_PAREN.match(self.tree.text, match.end()) is not None
        return ("args" if empty else "leading_args"), node.start, match.end()

    # -- branches -----------------------------------------------------------

    def _track_ternary(self, node: SyntaxNode) -> None:
        expr = node.node
        assert isinstance(expr, ast.IfExp)
        for branch in (expr.body, expr.orelse):
            target = self.tree.lookup(branch)
            self._wrap(target, self._add_statement(node.line, target, scored=False), node.line)

    def _track_logical(self, node: SyntaxNode) -> None:
        expr = node.node
        assert isinstance(expr, ast.BoolOp)
        last = len(expr.values) - 1
        for position, operand in enumerate(expr.values):
            target = self.tree.lookup(operand)
            # Python truth-tests every operand but the last; the last one only
            # when the whole expression is itself truth-tested.
            scored = position < last or self._truth_tested(node)
            self._wrap(target, self._add_statement(node.line, target, scored), node.line)

    def _track_test(self, node: SyntaxNode) -> None:
        self._wrap(node, self._add_statement(node.line, node, scored=True), node.line)

    def _in_test_position(self, node: SyntaxNode) -> bool:
        parent = self.tree.parent(node)
        return parent is not None and node.field == "test" and isinstance(parent.node, _TEST_OWNERS)

    def _truth_tested(self, node: SyntaxNode) -> bool:
        parent = self.tree.parent(node)
        if parent is None:
            return False
        owner = parent.node
        if isinstance(owner, ast.BoolOp):
            return owner.values[-1] is not node.node or self._truth_tested(parent)
        if isinstance(owner, ast.UnaryOp) and isinstance(owner.op, ast.Not):
            return True
        return self._in_test_position(node)

    def _add_statement(self, line: int, target: SyntaxNode, scored: bool) -> int:
        assert target.loc is not None
        statement = BranchStatement(
            id=len(self._statements) + 1,
            line=line,
            loc=target.loc,
            scored=scored and not isinstance(target.node, _COMPOSITES),
        )
        self._statements.append(statement)
        return statement.id

    def _wrap(self, target: SyntaxNode, statement_id: int, line: int) -> None:
        assert target.start is not None and target.end is not None
        src = self.buffer.source(target.start, target.end)
        self.buffer.replace(
            target.start,
            target.end,
            f"{self._tracker}.statement({self._quoted}, {statement_id}, {line}, ({src}))",
        )


def _header_expression(stmt: ast.AST) -> ast.expr | None:
    if isinstance(stmt, (ast.If, ast.While)):
        return stmt.test
    if isinstance(stmt, (ast.For, ast.AsyncFor)):
        return stmt.iter
    if isinstance(stmt, (ast.With, ast.AsyncWith)):
        return stmt.items[0].context_expr
    if isinstance(stmt, ast.Match):
        return stmt.subject

    candidates: list[ast.expr]
    if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
        defaults = [d for d in stmt.args.kw_defaults if d is not None]
        candidates = [*stmt.decorator_list, *stmt.args.defaults, *defaults]
    elif isinstance(stmt, ast.ClassDef):
        # A starred base cannot be wrapped: `(call or (*bases))` is not an expression.
        bases = [b for b in stmt.bases if not isinstance(b, ast.Starred)]
        candidates = [*stmt.decorator_list, *bases, *(k.value for k in stmt.keywords)]
    else:
        return None
    return candidates[0] if candidates else None


def instrument_source(filename: str, text: str, *, tracker: str = TRACKER_NAME) -> InstrumentedFile:
    """Instrument one file's text. Registration is left to the caller."""
    return Instrumenter(filename, text, tracker=tracker).run()
