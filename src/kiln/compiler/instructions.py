"""Instruction sequence between the fragment stream and the Python AST.

Each directive becomes one instruction; literal text becomes EMIT_LITERAL.
The sequence is flat and in document order, which is also the order the
render function executes. Nesting only appears when the sequence is
assembled into Python AST (see ``ControlFlowMixin``).

``Program.dump()`` renders the sequence as indented pseudo-Python. It is the
generated code attached to syntax errors raised before a module exists.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from kiln.normalize import escape_literal


class Op(Enum):
    """Instruction opcodes."""

    EMIT_LITERAL = "emit_literal"
    EMIT_EXPRESSION = "emit_expression"
    EMIT_STATEMENT = "emit_statement"
    OPEN_BRANCH = "open_branch"
    ELSE_IF = "else_if"
    ELSE = "else"
    CLOSE_BRANCH = "close_branch"
    OPEN_LOOP = "open_loop"
    CLOSE_LOOP = "close_loop"


_OPENERS = frozenset({Op.OPEN_BRANCH, Op.OPEN_LOOP})
_CLOSERS = frozenset({Op.CLOSE_BRANCH, Op.CLOSE_LOOP})
_CONTINUATIONS = frozenset({Op.ELSE_IF, Op.ELSE})


@dataclass(frozen=True, slots=True)
class Instruction:
    """One step of a render function.

    Attributes:
        op: What to do.
        arg: Literal text, expression, or statement source (empty for ELSE
            and the close ops).
        lineno: Template line the instruction came from.
        target: Loop value name (OPEN_LOOP).
        index: Loop index name (OPEN_LOOP, optional).
    """

    op: Op
    arg: str = ""
    lineno: int = 0
    target: str | None = None
    index: str | None = None

    def describe(self) -> str:
        """Pseudo-Python for this instruction alone."""
        op = self.op
        if op is Op.EMIT_LITERAL:
            return f"_append('{escape_literal(self.arg)}')"
        if op is Op.EMIT_EXPRESSION:
            return f"_append(_str({self.arg}))"
        if op is Op.EMIT_STATEMENT:
            return self.arg
        if op is Op.OPEN_BRANCH:
            return f"if {self.arg}:"
        if op is Op.ELSE_IF:
            return f"elif {self.arg}:"
        if op is Op.ELSE:
            return "else:"
        if op is Op.OPEN_LOOP:
            head = f"for {self.target} in {self.arg}:"
            return f"{head}  # index: {self.index}" if self.index else head
        return f"# end {'if' if op is Op.CLOSE_BRANCH else 'for'}"


@dataclass(slots=True)
class Program:
    """Instruction sequence plus what the free-name analysis needs.

    Attributes:
        instructions: Instructions in document order.
        snippets: Every expression/statement text, in document order, with
            the values and indexes of the template loops enclosing it.
        bound: Internal temporaries the render function binds itself.
    """

    instructions: list[Instruction] = field(default_factory=list)
    snippets: list[tuple[str, frozenset[str]]] = field(default_factory=list)
    bound: dict[str, None] = field(default_factory=dict)

    def emit(self, instruction: Instruction) -> None:
        """Append an instruction, merging adjacent literals."""
        if instruction.op is Op.EMIT_LITERAL:
            if not instruction.arg:
                return
            if self.instructions and self.instructions[-1].op is Op.EMIT_LITERAL:
                last = self.instructions[-1]
                self.instructions[-1] = Instruction(
                    Op.EMIT_LITERAL, last.arg + instruction.arg, last.lineno
                )
                return
        self.instructions.append(instruction)

    def add_snippet(self, text: str, loop_names: Iterable[tuple[str, ...]] = ()) -> None:
        self.snippets.append((text, frozenset(name for names in loop_names for name in names)))

    def bind(self, name: str) -> None:
        self.bound.setdefault(name, None)

    def dump(self) -> str:
        """Render the sequence as indented pseudo-Python."""
        lines: list[str] = []
        depth = 0
        for instruction in self.instructions:
            op = instruction.op
            if op in _CLOSERS:
                depth = max(depth - 1, 0)
            indent = "    " * (max(depth - 1, 0) if op in _CONTINUATIONS else depth)
            for line in instruction.describe().splitlines() or [""]:
                lines.append(f"{indent}{line}")
            if op in _OPENERS:
                depth += 1
        return "\n".join(lines)

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)

    def __len__(self) -> int:
        return len(self.instructions)
