"""Kiln Lexer — splits template text into a fragment stream.

Directives open with ``{{`` and the character right after it selects the
kind:

    ``{{@ path }}``            partial include
    ``{{> name }}``            block placeholder
    ``{{< name }}…{{< }}``     block define
    ``{{= expr }}``            interpolate
    ``{{? expr }}``            conditional (``{{?? expr }}``, ``{{?? }}``, ``{{? }}``)
    ``{{~ coll:val:idx }}``    iterative (``{{~ }}`` closes)
    ``{{ statements }}``       evaluate

Characters in RESERVED_MARKERS are kept for future directive kinds and are
rejected rather than read as evaluate code.

Expression-bearing directives close at the first ``}}`` reached at brace
depth zero, skipping braces inside Python string literals, so dict literals
and f-strings survive inside ``{{ }}``.

The text-level patterns (PARTIAL, BLOCK_HOLDER, BLOCK_DEFINE) are shared with
the block resolver and the file loader, which rewrite raw text before lexing.

Example:
    >>> [f.kind.name for f in tokenize("Hi {{= name }}!")]
    ['DATA', 'INTERPOLATE', 'DATA']

"""

from __future__ import annotations

import keyword
import re
from typing import NoReturn

from kiln._types import Fragment, FragmentKind
from kiln.environment.exceptions import ErrorCode, TemplateSyntaxError

PARTIAL = re.compile(r"\{\{@\s*(\S+?)\s*\}\}")
BLOCK_HOLDER = re.compile(r"\{\{>\s*(\S+?)\s*\}\}")
BLOCK_DEFINE = re.compile(r"\{\{<\s*(\S+?)\s*\}\}(.*?)\{\{<\s*\}\}", re.DOTALL)

RESERVED_MARKERS = frozenset("!#$%^&+-*")

_NAMED_TAG = re.compile(r"\{\{([@><])\s*(\S*?)\s*\}\}")
_LOOP_HEAD = re.compile(r"(.+?)\s*:\s*(\w+)\s*(?::\s*(\w+))?", re.DOTALL)

_NAMED_KINDS = {
    "@": FragmentKind.PARTIAL,
    ">": FragmentKind.BLOCK_HOLDER,
    "<": FragmentKind.BLOCK_DEFINE,
}


class Lexer:
    """Single-pass scanner over block-resolved template text.

    Produces fragments left to right; no two fragments overlap and their
    concatenated spans cover the whole source.
    """

    __slots__ = ("_line", "_line_start", "_name", "_pos", "_scan_pos", "_source")

    def __init__(self, source: str, name: str | None = None):
        self._source = source
        self._name = name
        self._pos = 0
        # Incremental line tracking; offsets only move forward.
        self._scan_pos = 0
        self._line = 1
        self._line_start = 0

    def tokenize(self) -> list[Fragment]:
        source = self._source
        fragments: list[Fragment] = []

        while True:
            start = source.find("{{", self._pos)
            if start == -1:
                if self._pos < len(source):
                    fragments.append(self._data(self._pos, len(source)))
                break
            if start > self._pos:
                fragments.append(self._data(self._pos, start))

            fragment = self._directive(start)
            if fragment is not None:
                fragments.append(fragment)

        return fragments

    # ------------------------------------------------------------------
    # Fragment builders
    # ------------------------------------------------------------------

    def _data(self, start: int, end: int) -> Fragment:
        lineno, col = self._location(start)
        return Fragment(FragmentKind.DATA, self._source[start:end], lineno, col)

    def _directive(self, start: int) -> Fragment | None:
        source = self._source
        marker = source[start + 2 : start + 3]

        if marker and marker in RESERVED_MARKERS:
            self._error(
                f"Reserved directive marker '{{{{{marker}'",
                start,
                ErrorCode.RESERVED_MARKER,
            )

        if marker in _NAMED_KINDS:
            return self._named(start, marker)

        if marker == "=":
            body, lineno, col = self._body(start, start + 3)
            expr = body.strip()
            if not expr:
                self._error("Empty interpolation", start, ErrorCode.INVALID_EXPRESSION)
            return Fragment(FragmentKind.INTERPOLATE, expr, lineno, col)

        if marker == "?":
            if source.startswith("??", start + 2):
                body, lineno, col = self._body(start, start + 4)
                expr = body.strip()
                kind = FragmentKind.ELIF if expr else FragmentKind.ELSE
            else:
                body, lineno, col = self._body(start, start + 3)
                expr = body.strip()
                kind = FragmentKind.IF if expr else FragmentKind.END_IF
            return Fragment(kind, expr, lineno, col)

        if marker == "~":
            body, lineno, col = self._body(start, start + 3)
            head = body.strip()
            if not head:
                return Fragment(FragmentKind.END_FOR, "", lineno, col)
            return self._loop(head, start, lineno, col)

        body, lineno, col = self._body(start, start + 2)
        if not body.strip():
            return None
        return Fragment(FragmentKind.EVALUATE, body, lineno, col)

    def _named(self, start: int, marker: str) -> Fragment:
        match = _NAMED_TAG.match(self._source, start)
        if match is None:
            if self._source.find("}}", start) == -1:
                self._error("Unclosed directive", start, ErrorCode.UNCLOSED_TAG)
            self._error(
                f"Directive '{{{{{marker}' takes a single name",
                start,
                ErrorCode.INVALID_NAME,
            )
        name = match.group(2)
        if not name and marker != "<":
            self._error(f"Directive '{{{{{marker}' needs a name", start, ErrorCode.INVALID_NAME)
        lineno, col = self._location(start)
        self._pos = match.end()
        return Fragment(_NAMED_KINDS[marker], name, lineno, col)

    def _loop(self, head: str, start: int, lineno: int, col: int) -> Fragment:
        match = _LOOP_HEAD.fullmatch(head)
        if match is None:
            self._error(
                f"Expected 'collection:value[:index]', got {head!r}",
                start,
                ErrorCode.INVALID_LOOP_TARGET,
            )
        iterable, target, index = match.groups()
        for name in (target, index):
            if name is not None and (not name.isidentifier() or keyword.iskeyword(name)):
                self._error(
                    f"Invalid loop variable name {name!r}",
                    start,
                    ErrorCode.INVALID_LOOP_TARGET,
                )
        if index is not None and index == target:
            self._error(
                f"Loop value and index share the name {target!r}",
                start,
                ErrorCode.INVALID_LOOP_TARGET,
            )
        return Fragment(FragmentKind.FOR, iterable, lineno, col, target=target, index=index)

    # ------------------------------------------------------------------
    # Scanning helpers
    # ------------------------------------------------------------------

    def _body(self, start: int, body_start: int) -> tuple[str, int, int]:
        """Return the directive body and advance past its closing ``}}``."""
        end = self._find_close(start, body_start)
        lineno, col = self._location(start)
        self._pos = end + 2
        return self._source[body_start:end], lineno, col

    def _find_close(self, start: int, pos: int) -> int:
        source = self._source
        n = len(source)
        depth = 0
        i = pos
        while i < n:
            ch = source[i]
            if ch == "'" or ch == '"':
                i = self._skip_string(i)
                continue
            if ch == "#":
                # Comment runs to end of line or to the directive close.
                while i < n and source[i] != "\n" and not source.startswith("}}", i):
                    i += 1
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                if depth == 0 and source.startswith("}}", i):
                    return i
                if depth > 0:
                    depth -= 1
            i += 1
        self._error("Unclosed directive", start, ErrorCode.UNCLOSED_TAG)

    def _skip_string(self, i: int) -> int:
        """Index just past the string literal opening at ``i``.

        A quote with no matching close is treated as a plain character.
        """
        source = self._source
        quote = source[i] * 3 if source.startswith(source[i] * 3, i) else source[i]
        j = i + len(quote)
        n = len(source)
        while j < n:
            if source[j] == "\\":
                j += 2
                continue
            if source.startswith(quote, j):
                return j + len(quote)
            if len(quote) == 1 and source[j] == "\n":
                break
            j += 1
        return i + 1

    def _location(self, offset: int) -> tuple[int, int]:
        if offset >= self._scan_pos:
            source = self._source
            newlines = source.count("\n", self._scan_pos, offset)
            if newlines:
                self._line += newlines
                self._line_start = source.rfind("\n", self._scan_pos, offset) + 1
            self._scan_pos = offset
        return self._line, offset - self._line_start

    def _error(self, message: str, offset: int, code: ErrorCode) -> NoReturn:
        lineno, col = self._location(offset)
        raise TemplateSyntaxError(
            message,
            lineno=lineno,
            name=self._name,
            source=self._source,
            col_offset=col,
            code=code,
        )


def tokenize(source: str, name: str | None = None) -> list[Fragment]:
    """Convenience wrapper: ``Lexer(source, name).tokenize()``."""
    return Lexer(source, name).tokenize()
