"""Kiln Compiler Core — main Compiler class.

The Compiler turns a normalized fragment stream into a code object defining
one ``render(_data)`` function. It works in two stages:

1. **Generate**: each fragment becomes an Instruction (emit literal, emit
   expression, emit statement, open/else/close branch, open/close loop).
   Expression and statement text is parsed here, so invalid Python is
   reported against the directive that holds it.
2. **Assemble**: the flat instruction sequence becomes a nested Python AST
   (``ControlFlowMixin``), free names are bound from ``_data``, and the module
   is handed to ``compile()``.

Generated code:
    ```python
    def render(_data):
        user = _resolve(_data, 'user')
        items = _resolve(_data, 'items')
        _out = []
        _append = _out.append
        _append('Hello ')
        _append(_str(user.name))
        _iter_0 = items
        if _iter_0:
            i = -1
            for item in _iter_0:
                i += 1
                _append(_str(i))
        return ''.join(_out)
    ```

``_str`` and ``_resolve`` come from the namespace the Template executes the
code object in (see ``kiln.template.helpers``).

Generated statements carry the template line of their directive, so a
traceback from a render-time error points at the template line.
"""

from __future__ import annotations

import ast
import logging
import textwrap
import types
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import NoReturn

from kiln._types import Fragment, FragmentKind
from kiln.analysis.free_vars import FreeNameScanner
from kiln.compiler.control_flow import ControlFlowMixin, _Frame, _located, iter_name
from kiln.compiler.instructions import Instruction, Op, Program
from kiln.environment.exceptions import ErrorCode, TemplateSyntaxError

logger = logging.getLogger(__name__)

RENDER_FUNCTION = "render"
DATA_NAME = "_data"
OUTPUT_NAME = "_out"
APPEND_NAME = "_append"
STR_NAME = "_str"
RESOLVE_NAME = "_resolve"

# Names the generated function defines or receives; never bound from data
INTERNAL_NAMES = frozenset({DATA_NAME, OUTPUT_NAME, APPEND_NAME, STR_NAME, RESOLVE_NAME})


@dataclass(frozen=True, slots=True)
class CompiledUnit:
    """Result of compiling one template.

    Attributes:
        code: Module code object defining ``render(_data)``.
        source: Python source of the module (``ast.unparse``); identical for
            identical template text.
        free_names: Names bound from ``_data`` at the top of ``render``.
        program: The instruction sequence the module was assembled from.
    """

    code: types.CodeType
    source: str
    free_names: tuple[str, ...]
    program: Program


def _statement_source(body: str) -> tuple[str, int]:
    """Dedent an evaluate body into parseable statements.

    Returns:
        The statement source and the number of lines dropped before it.
    """
    stripped = body.lstrip()
    skipped = body[: len(body) - len(stripped)].count("\n")
    lines = stripped.rstrip().split("\n")
    if len(lines) == 1:
        return lines[0], skipped
    # First line starts right after "{{"; the rest carry template indentation.
    # A suite written flush with the directive is nested under a compound head.
    head = lines[0].strip()
    tail = textwrap.dedent("\n".join(lines[1:]))
    if head.endswith(":") and not tail[:1].isspace():
        tail = textwrap.indent(tail, "    ")
    return f"{head}\n{tail}", skipped


class Compiler(ControlFlowMixin):
    """Compile a fragment stream to a Python code object.

    A Compiler instance compiles one template; create a new one per call.

    Attributes:
        _name: Template name for error messages and ``compile()`` filename
        _source: Lexed template text, for error snippets
        _program: Instruction sequence being built
        _stack: Open conditionals and loops during assembly
        _loop_counter: Counter for unique ``_iter_N`` names
        _loop_names: Values and indexes of the loops open while generating
        _free: Names bound from ``_data``, known once assembly starts

    Dispatch:
        Both stages use O(1) dict lookup, fragment kind → handler and
        opcode → handler.

    Example:
            >>> from kiln.lexer import tokenize
            >>> unit = Compiler().compile(tokenize("Hi {{= name }}"))
            >>> unit.free_names
            ('name',)

    """

    __slots__ = (
        "_fragment_dispatch",
        "_free",
        "_instruction_dispatch",
        "_loop_counter",
        "_loop_names",
        "_name",
        "_program",
        "_source",
        "_stack",
    )

    def __init__(self, name: str | None = None, source: str | None = None):
        self._name = name
        self._source = source
        self._program = Program()
        self._stack: list[_Frame] = []
        self._loop_counter = 0
        self._loop_names: list[tuple[str, ...]] = []
        self._free: frozenset[str] = frozenset()
        self._fragment_dispatch: dict[FragmentKind, Callable[[Fragment], None]] = {
            FragmentKind.DATA: self._gen_data,
            FragmentKind.INTERPOLATE: self._gen_interpolate,
            FragmentKind.IF: self._gen_if,
            FragmentKind.ELIF: self._gen_elif,
            FragmentKind.ELSE: self._gen_else,
            FragmentKind.END_IF: self._gen_end_if,
            FragmentKind.FOR: self._gen_for,
            FragmentKind.END_FOR: self._gen_end_for,
            FragmentKind.EVALUATE: self._gen_evaluate,
            FragmentKind.PARTIAL: self._gen_partial,
            FragmentKind.BLOCK_HOLDER: self._gen_block,
            FragmentKind.BLOCK_DEFINE: self._gen_block,
        }
        self._instruction_dispatch: dict[Op, Callable[[Instruction, list[ast.stmt]], None]] = {
            Op.EMIT_LITERAL: self._emit_literal,
            Op.EMIT_EXPRESSION: self._emit_expression,
            Op.EMIT_STATEMENT: self._emit_statement,
            Op.OPEN_BRANCH: self._open_branch,
            Op.ELSE_IF: lambda instruction, _body: self._else_if(instruction),
            Op.ELSE: lambda instruction, _body: self._else(instruction),
            Op.CLOSE_BRANCH: lambda instruction, _body: self._close_branch(instruction),
            Op.OPEN_LOOP: self._open_loop,
            Op.CLOSE_LOOP: lambda instruction, _body: self._close_loop(instruction),
        }

    def compile(self, fragments: Sequence[Fragment]) -> CompiledUnit:
        """Compile fragments to a code object.

        Raises:
            TemplateSyntaxError: Invalid Python in a directive, unbalanced
                conditionals or loops, or a failure of ``compile()`` itself.
                ``generated`` holds the code generated so far.
        """
        program = self.generate(fragments)
        module, free = self.assemble(program)
        source = ast.unparse(module)
        try:
            code = compile(module, self._name or "<template>", "exec")
        except (SyntaxError, ValueError) as e:
            raise TemplateSyntaxError(
                f"Generated code does not compile: {e}",
                lineno=getattr(e, "lineno", None),
                name=self._name,
                source=self._source,
                code=ErrorCode.HOST_COMPILE,
                generated=source,
            ) from e

        logger.debug(
            "Compiled %s: %d instructions, free names %s",
            self._name or "<template>",
            len(program),
            free,
        )
        return CompiledUnit(code=code, source=source, free_names=free, program=program)

    # ─────────────────────────────────────────────────────────────────────────
    # Stage 1: fragments → instructions
    # ─────────────────────────────────────────────────────────────────────────

    def generate(self, fragments: Sequence[Fragment]) -> Program:
        """Build the instruction sequence for ``fragments``."""
        for fragment in fragments:
            self._fragment_dispatch[fragment.kind](fragment)
        return self._program

    def _gen_data(self, fragment: Fragment) -> None:
        self._program.emit(Instruction(Op.EMIT_LITERAL, fragment.value, fragment.lineno))

    def _gen_interpolate(self, fragment: Fragment) -> None:
        self._emit_parsed_expression(Op.EMIT_EXPRESSION, fragment)

    def _gen_if(self, fragment: Fragment) -> None:
        self._emit_parsed_expression(Op.OPEN_BRANCH, fragment)

    def _gen_elif(self, fragment: Fragment) -> None:
        self._emit_parsed_expression(Op.ELSE_IF, fragment)

    def _gen_else(self, fragment: Fragment) -> None:
        self._program.emit(Instruction(Op.ELSE, lineno=fragment.lineno))

    def _gen_end_if(self, fragment: Fragment) -> None:
        self._program.emit(Instruction(Op.CLOSE_BRANCH, lineno=fragment.lineno))

    def _gen_for(self, fragment: Fragment) -> None:
        self._program.bind(iter_name(self._loop_counter))
        self._loop_counter += 1
        # The collection is evaluated outside the loop it opens
        self._emit_parsed_expression(
            Op.OPEN_LOOP, fragment, target=fragment.target, index=fragment.index
        )
        names = [fragment.target]
        if fragment.index:
            names.append(fragment.index)
        self._loop_names.append(tuple(names))

    def _gen_end_for(self, fragment: Fragment) -> None:
        if self._loop_names:
            self._loop_names.pop()
        self._program.emit(Instruction(Op.CLOSE_LOOP, lineno=fragment.lineno))

    def _gen_evaluate(self, fragment: Fragment) -> None:
        code, skipped = _statement_source(fragment.value)
        self._parse(code, "exec", fragment, fragment.lineno - 1 + skipped)
        self._program.add_snippet(code, self._loop_names)
        self._program.emit(
            Instruction(Op.EMIT_STATEMENT, code, fragment.lineno + skipped)
        )

    def _gen_partial(self, fragment: Fragment) -> None:
        self._fail(
            f"Unresolved partial include '{{{{@ {fragment.value} }}}}'; "
            "load the template through view() to inline partials",
            fragment.lineno,
            ErrorCode.UNRESOLVED_PARTIAL,
        )

    def _gen_block(self, fragment: Fragment) -> None:
        if fragment.kind is FragmentKind.BLOCK_DEFINE and fragment.value:
            message = f"Block '{fragment.value}' has no closing '{{{{< }}}}'"
            code = ErrorCode.UNCLOSED_BLOCK
        else:
            message = "'{{< }}' without an open block define"
            code = ErrorCode.UNEXPECTED_CLOSE
        self._fail(message, fragment.lineno, code)

    def _emit_parsed_expression(
        self,
        op: Op,
        fragment: Fragment,
        *,
        target: str | None = None,
        index: str | None = None,
    ) -> None:
        # Parenthesized so expressions may span lines and end in a comment.
        wrapped = f"({fragment.value}\n)"
        self._parse(wrapped, "eval", fragment, fragment.lineno - 1)
        self._program.add_snippet(wrapped, self._loop_names)
        self._program.emit(Instruction(op, fragment.value, fragment.lineno, target, index))

    def _parse(self, code: str, mode: str, fragment: Fragment, line_offset: int) -> ast.AST:
        try:
            tree = ast.parse(code, mode=mode)
        except SyntaxError as e:
            # The closing-parenthesis line of a wrapped expression is not template text.
            last = code.count("\n") if mode == "eval" else code.count("\n") + 1
            self._fail(
                f"Invalid Python in directive: {e.msg}",
                line_offset + min(e.lineno or 1, last),
                ErrorCode.INVALID_EXPRESSION,
                cause=e,
            )
        ast.increment_lineno(tree, line_offset)
        return tree

    # ─────────────────────────────────────────────────────────────────────────
    # Stage 2: instructions → Python AST
    # ─────────────────────────────────────────────────────────────────────────

    def assemble(self, program: Program) -> tuple[ast.Module, tuple[str, ...]]:
        """Build the module for ``program``.

        Returns:
            The module and the free names bound at the top of ``render``.
        """
        self._program = program
        self._stack = []
        self._loop_counter = 0
        free = FreeNameScanner().analyze_scoped(
            program.snippets, bound=INTERNAL_NAMES.union(program.bound)
        )
        self._free = frozenset(free)

        body: list[ast.stmt] = []
        for instruction in program:
            target = self._stack[-1].body if self._stack else body
            self._instruction_dispatch[instruction.op](instruction, target)

        if self._stack:
            frame = self._stack[-1]
            kind = "conditional" if frame.op is Op.OPEN_BRANCH else "loop"
            self._fail(
                f"Unclosed {kind} opened at line {frame.lineno}",
                frame.lineno,
                ErrorCode.UNCLOSED_BLOCK,
            )

        func = ast.FunctionDef(
            name=RENDER_FUNCTION,
            args=ast.arguments(
                posonlyargs=[],
                args=[ast.arg(arg=DATA_NAME)],
                vararg=None,
                kwonlyargs=[],
                kw_defaults=[],
                kwarg=None,
                defaults=[],
            ),
            body=[*self._bindings(free), *self._prologue(), *body, self._epilogue()],
            decorator_list=[],
            returns=None,
        )
        module = ast.Module(body=[_located(func, 1)], type_ignores=[])
        ast.fix_missing_locations(module)
        return module, free

    def _bindings(self, free: tuple[str, ...]) -> list[ast.stmt]:
        # name = _resolve(_data, 'name')
        return [
            _located(
                ast.Assign(
                    targets=[ast.Name(id=name, ctx=ast.Store())],
                    value=ast.Call(
                        func=ast.Name(id=RESOLVE_NAME, ctx=ast.Load()),
                        args=[ast.Name(id=DATA_NAME, ctx=ast.Load()), ast.Constant(value=name)],
                        keywords=[],
                    ),
                ),
                1,
            )
            for name in free
        ]

    def _prologue(self) -> list[ast.stmt]:
        return [
            # _out = []
            _located(
                ast.Assign(
                    targets=[ast.Name(id=OUTPUT_NAME, ctx=ast.Store())],
                    value=ast.List(elts=[], ctx=ast.Load()),
                ),
                1,
            ),
            # _append = _out.append
            _located(
                ast.Assign(
                    targets=[ast.Name(id=APPEND_NAME, ctx=ast.Store())],
                    value=ast.Attribute(
                        value=ast.Name(id=OUTPUT_NAME, ctx=ast.Load()),
                        attr="append",
                        ctx=ast.Load(),
                    ),
                ),
                1,
            ),
        ]

    def _epilogue(self) -> ast.stmt:
        # return ''.join(_out)
        return _located(
            ast.Return(
                value=ast.Call(
                    func=ast.Attribute(value=ast.Constant(value=""), attr="join", ctx=ast.Load()),
                    args=[ast.Name(id=OUTPUT_NAME, ctx=ast.Load())],
                    keywords=[],
                )
            ),
            1,
        )

    def _append_call(self, value: ast.expr, lineno: int) -> ast.stmt:
        return _located(
            ast.Expr(
                value=ast.Call(
                    func=ast.Name(id=APPEND_NAME, ctx=ast.Load()),
                    args=[value],
                    keywords=[],
                )
            ),
            lineno,
        )

    def _emit_literal(self, instruction: Instruction, body: list[ast.stmt]) -> None:
        body.append(self._append_call(ast.Constant(value=instruction.arg), instruction.lineno))

    def _emit_expression(self, instruction: Instruction, body: list[ast.stmt]) -> None:
        # _append(_str(expr))
        value = ast.Call(
            func=ast.Name(id=STR_NAME, ctx=ast.Load()),
            args=[self._expression(instruction)],
            keywords=[],
        )
        body.append(self._append_call(value, instruction.lineno))

    def _emit_statement(self, instruction: Instruction, body: list[ast.stmt]) -> None:
        tree = ast.parse(instruction.arg, mode="exec")
        ast.increment_lineno(tree, instruction.lineno - 1)
        body.extend(tree.body)

    def _expression(self, instruction: Instruction) -> ast.expr:
        tree = ast.parse(f"({instruction.arg}\n)", mode="eval")
        ast.increment_lineno(tree, instruction.lineno - 1)
        return tree.body

    def _fail(
        self,
        message: str,
        lineno: int | None,
        code: ErrorCode,
        *,
        cause: BaseException | None = None,
    ) -> NoReturn:
        raise TemplateSyntaxError(
            message,
            lineno=lineno,
            name=self._name,
            source=self._source,
            code=code,
            generated=self._program.dump(),
        ) from cause
