"""Control flow assembly for the Kiln compiler.

Provides the mixin that turns the flat open/else/close instructions into
nested ``ast.If`` and ``ast.For`` statements. A stack of frames tracks the
open structures; each frame knows which statement list receives the next
instruction.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import TYPE_CHECKING, NoReturn, TypeVar

from kiln.compiler.instructions import Instruction, Op
from kiln.environment.exceptions import ErrorCode

_StmtT = TypeVar("_StmtT", bound=ast.stmt)


def iter_name(n: int) -> str:
    """Temporary holding the collection of the ``n``-th loop."""
    return f"_iter_{n}"


def saved_name(n: int, name: str) -> str:
    """Temporary holding the outer value of ``name`` around the ``n``-th loop."""
    return f"_saved_{n}_{name}"


@dataclass(slots=True)
class _Frame:
    """An open conditional or loop.

    Attributes:
        op: OPEN_BRANCH or OPEN_LOOP.
        lineno: Template line of the opening directive.
        body: Statement list receiving the next instruction.
        head: First ``if`` of the chain (branches only).
        tail: Innermost ``if`` of an elif chain (branches only).
        has_else: Whether ``{{?? }}`` has been seen (branches only).
        names: Loop value and index names (loops only).
    """

    op: Op
    lineno: int
    body: list[ast.stmt]
    head: ast.If | None = None
    tail: ast.If | None = None
    has_else: bool = False
    names: tuple[str, ...] = ()


def _fill_empty(node: ast.If) -> None:
    """Give every empty branch of an if/elif chain a ``pass``."""
    while True:
        if not node.body:
            node.body.append(ast.Pass())
        if len(node.orelse) == 1 and isinstance(node.orelse[0], ast.If):
            node = node.orelse[0]
            continue
        return


class ControlFlowMixin:
    """Mixin for assembling conditionals and loops.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.

    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:
        _stack: list[_Frame]
        _loop_counter: int
        _free: frozenset[str]

        def _expression(self, instruction: Instruction) -> ast.expr: ...

        def _fail(
            self,
            message: str,
            lineno: int | None,
            code: ErrorCode,
        ) -> NoReturn: ...

    def _open_branch(self, instruction: Instruction, body: list[ast.stmt]) -> None:
        """Compile ``{{? expr }}``."""
        node = _located(
            ast.If(test=self._expression(instruction), body=[], orelse=[]),
            instruction.lineno,
        )
        body.append(node)
        self._stack.append(
            _Frame(Op.OPEN_BRANCH, instruction.lineno, node.body, head=node, tail=node)
        )

    def _else_if(self, instruction: Instruction) -> None:
        """Compile ``{{?? expr }}``."""
        frame = self._branch_frame(instruction)
        node = _located(
            ast.If(test=self._expression(instruction), body=[], orelse=[]),
            instruction.lineno,
        )
        frame.tail.orelse.append(node)
        frame.tail = node
        frame.body = node.body

    def _else(self, instruction: Instruction) -> None:
        """Compile ``{{?? }}``."""
        frame = self._branch_frame(instruction)
        frame.has_else = True
        frame.body = frame.tail.orelse

    def _close_branch(self, instruction: Instruction) -> None:
        """Compile ``{{? }}``."""
        frame = self._pop(instruction, Op.OPEN_BRANCH)
        _fill_empty(frame.head)

    def _open_loop(self, instruction: Instruction, body: list[ast.stmt]) -> None:
        """Compile ``{{~ coll:value[:index] }}``.

        Generates:
            _iter_N = coll
            if _iter_N:
                _saved_N_value = value
                index = -1
                for value in _iter_N:
                    index += 1
                    ... body ...
                value = _saved_N_value

        Loop names are scoped to the loop: a value or index name that is
        also visible outside (bound from data, or by an enclosing loop) is
        saved before the loop and restored after it.
        """
        n = self._loop_counter
        self._loop_counter += 1
        collection = iter_name(n)
        names = [instruction.target]
        if instruction.index:
            names.append(instruction.index)
        outer = {name for frame in self._stack for name in frame.names}
        shadowed = [name for name in names if name in self._free or name in outer]

        lineno = instruction.lineno
        body.append(_assign(collection, self._expression(instruction), lineno))

        guard_body: list[ast.stmt] = [
            _assign(saved_name(n, name), ast.Name(id=name, ctx=ast.Load()), lineno)
            for name in shadowed
        ]
        loop_body: list[ast.stmt] = []
        if instruction.index:
            guard_body.append(_assign(instruction.index, ast.Constant(value=-1), lineno))
            loop_body.append(
                _located(
                    ast.AugAssign(
                        target=ast.Name(id=instruction.index, ctx=ast.Store()),
                        op=ast.Add(),
                        value=ast.Constant(value=1),
                    ),
                    lineno,
                )
            )
        guard_body.append(
            _located(
                ast.For(
                    target=ast.Name(id=instruction.target, ctx=ast.Store()),
                    iter=ast.Name(id=collection, ctx=ast.Load()),
                    body=loop_body,
                    orelse=[],
                ),
                lineno,
            )
        )
        guard_body.extend(
            _assign(name, ast.Name(id=saved_name(n, name), ctx=ast.Load()), lineno)
            for name in shadowed
        )
        body.append(
            _located(
                ast.If(test=ast.Name(id=collection, ctx=ast.Load()), body=guard_body, orelse=[]),
                lineno,
            )
        )
        self._stack.append(_Frame(Op.OPEN_LOOP, lineno, loop_body, names=tuple(names)))

    def _close_loop(self, instruction: Instruction) -> None:
        """Compile ``{{~ }}``."""
        frame = self._pop(instruction, Op.OPEN_LOOP)
        if not frame.body:
            frame.body.append(ast.Pass())

    # ─────────────────────────────────────────────────────────────────────────
    # Stack helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _branch_frame(self, instruction: Instruction) -> _Frame:
        if not self._stack or self._stack[-1].op is not Op.OPEN_BRANCH:
            self._fail(
                "'{{??' outside of a conditional",
                instruction.lineno,
                ErrorCode.UNEXPECTED_CLOSE,
            )
        frame = self._stack[-1]
        if frame.has_else:
            self._fail(
                f"'{{{{??' after the else branch of the conditional opened at line {frame.lineno}",
                instruction.lineno,
                ErrorCode.UNEXPECTED_CLOSE,
            )
        return frame

    def _pop(self, instruction: Instruction, expected: Op) -> _Frame:
        closer = "{{? }}" if expected is Op.OPEN_BRANCH else "{{~ }}"
        if not self._stack:
            self._fail(
                f"'{closer}' without an open block",
                instruction.lineno,
                ErrorCode.UNEXPECTED_CLOSE,
            )
        frame = self._stack[-1]
        if frame.op is not expected:
            opened = "conditional" if frame.op is Op.OPEN_BRANCH else "loop"
            self._fail(
                f"'{closer}' closes the {opened} opened at line {frame.lineno}",
                instruction.lineno,
                ErrorCode.UNEXPECTED_CLOSE,
            )
        return self._stack.pop()


def _located(node: _StmtT, lineno: int) -> _StmtT:
    """Stamp a generated statement with its template line."""
    node.lineno = node.end_lineno = lineno
    node.col_offset = node.end_col_offset = 0
    return node


def _assign(name: str, value: ast.expr, lineno: int) -> ast.stmt:
    """``name = value``, stamped with ``lineno``."""
    return _located(ast.Assign(targets=[ast.Name(id=name, ctx=ast.Store())], value=value), lineno)
