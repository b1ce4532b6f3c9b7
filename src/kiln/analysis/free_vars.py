"""Free-variable analysis for compiled templates.

Finds the identifiers a template's code reads from the data context, so the
compiler can bind each one at the top of the render function:

    ```python
    def render(_data):
        user = _resolve(_data, 'user')
        items = _resolve(_data, 'items')
        ...
    ```

Works on the token stream of each snippet (``tokenize``), not on raw text:

- comments and string literals are separate tokens and never yield names
  (f-string replacement fields are tokenized as code on Python 3.12+)
- a name right after ``.`` is an attribute, not a variable
- hard keywords are skipped; soft keywords (``match``, ``type``) are names
- keyword-argument names inside a call are skipped
- names bound inside one snippet are local to it: comprehension targets
  within their brackets, lambda parameters within the lambda body, and
  statement-level bindings (``for … in`` targets, ``as`` targets, imports,
  ``def``/``class`` names) across the snippet

The compiler's own internal names are passed in as ``bound`` and never
reported. Loop values and indexes are scoped: ``analyze_scoped()`` takes,
with each snippet, the names of the template loops enclosing it, so a loop
name read outside its loop is still free.

Example:
    >>> FreeNameScanner().analyze(["user.name", "len(items) > limit"])
    ('user', 'len', 'items', 'limit')

"""

from __future__ import annotations

import io
import keyword
import textwrap
import tokenize
from collections.abc import Collection, Iterable

from kiln.environment.exceptions import ErrorCode, TemplateSyntaxError

# Token types that never carry names or structure we care about
_SKIP_TYPES = frozenset(
    {
        tokenize.COMMENT,
        tokenize.NL,
        tokenize.NEWLINE,
        tokenize.INDENT,
        tokenize.DEDENT,
        tokenize.ENCODING,
        tokenize.ENDMARKER,
    }
)

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = frozenset(_OPENERS.values())

# Tokens after which a name in a lambda parameter list is a parameter
_PARAM_LEADERS = frozenset({"lambda", ",", "*", "**"})

# Names that end the first iterable of a comprehension
_CLAUSE_STARTS = frozenset({"for", "if", "async"})


def _significant_tokens(snippet: str) -> list[tokenize.TokenInfo]:
    source = textwrap.dedent(snippet).strip()
    try:
        return [
            tok
            for tok in tokenize.generate_tokens(io.StringIO(source).readline)
            if tok.type not in _SKIP_TYPES
        ]
    except (tokenize.TokenError, SyntaxError) as e:
        raise TemplateSyntaxError(
            f"Cannot tokenize {snippet.strip()!r}: {e}",
            code=ErrorCode.INVALID_EXPRESSION,
        ) from e


def _is_name(tok: tokenize.TokenInfo, value: str | None = None) -> bool:
    if tok.type != tokenize.NAME:
        return False
    return value is None or tok.string == value


def _is_op(tok: tokenize.TokenInfo, value: str) -> bool:
    return tok.type == tokenize.OP and tok.string == value


def _is_clause_start(tok: tokenize.TokenInfo) -> bool:
    return tok.type == tokenize.NAME and tok.string in _CLAUSE_STARTS


class FreeNameScanner:
    """Collect free names from expression and statement snippets.

    Thread-safe: holds no state between ``analyze()`` calls.
    """

    def analyze(self, snippets: Iterable[str], bound: Iterable[str] = ()) -> tuple[str, ...]:
        """Return free names across ``snippets`` in first-seen order.

        Args:
            snippets: Python expression or statement texts, in document order.
            bound: Names already bound by the render function; excluded.
        """
        return self.analyze_scoped(((snippet, ()) for snippet in snippets), bound)

    def analyze_scoped(
        self,
        snippets: Iterable[tuple[str, Collection[str]]],
        bound: Iterable[str] = (),
    ) -> tuple[str, ...]:
        """Like ``analyze()``, with names in scope around each snippet.

        Args:
            snippets: Pairs of snippet text and the loop values and indexes
                of the template loops enclosing it.
            bound: Names bound for the whole render function; excluded.
        """
        excluded = set(bound)
        seen: dict[str, None] = {}
        for snippet, scoped in snippets:
            for name in self.scan(snippet):
                if name not in excluded and name not in scoped:
                    seen.setdefault(name, None)
        return tuple(seen)

    def scan(self, snippet: str) -> list[str]:
        """Free names of one snippet, in order, possibly repeated."""
        tokens = _significant_tokens(snippet)
        local, ignored = self._local_names(tokens)

        names: list[str] = []
        brackets: list[str] = []
        for i, tok in enumerate(tokens):
            if tok.type == tokenize.OP:
                if tok.string in _OPENERS:
                    brackets.append(tok.string)
                elif tok.string in _CLOSERS and brackets:
                    brackets.pop()
                continue
            if tok.type != tokenize.NAME or keyword.iskeyword(tok.string):
                continue
            if i in ignored or any(lo <= i < hi for lo, hi in local.get(tok.string, ())):
                continue
            # Attribute access, or an f-string conversion such as !r
            if i > 0 and (_is_op(tokens[i - 1], ".") or _is_op(tokens[i - 1], "!")):
                continue
            if (
                brackets
                and brackets[-1] == "("
                and i + 1 < len(tokens)
                and _is_op(tokens[i + 1], "=")
            ):
                continue
            names.append(tok.string)
        return names

    def _local_names(
        self, tokens: list[tokenize.TokenInfo]
    ) -> tuple[dict[str, list[tuple[int, int]]], set[int]]:
        """Find names a snippet binds for itself.

        Comprehension targets are local to their brackets, except for the
        first iterable, which is evaluated outside. Lambda parameters are
        local to the lambda body. Statement-level bindings cover the whole
        snippet.

        Returns:
            Bound names mapped to the token ranges they cover, and token
            positions that are neither bound nor free (lambda parameters and
            module paths in ``from … import``).
        """
        local: dict[str, list[tuple[int, int]]] = {}
        ignored: set[int] = set()
        enclosing, closing = _brackets(tokens)
        comprehensions: set[int] = set()
        n = len(tokens)

        def bind(name: str, lo: int, hi: int) -> None:
            local.setdefault(name, []).append((lo, hi))

        i = 0
        while i < n:
            tok = tokens[i]
            if _is_name(tok, "lambda"):
                colon = self._lambda_params(tokens, i, ignored)
                if colon < n:
                    end = _lambda_end(tokens, colon, bracketed=enclosing[i] is not None)
                    for j in range(i + 1, colon):
                        if j in ignored:
                            bind(tokens[j].string, colon, end)
                i = colon
                continue
            if _is_name(tok, "for"):
                j = i + 1
                targets: list[str] = []
                while j < n and not _is_name(tokens[j], "in"):
                    if _is_name(tokens[j]):
                        targets.append(tokens[j].string)
                    j += 1
                opener = enclosing[i]
                if opener is None:
                    spans = [(0, n)]
                else:
                    close = closing[opener]
                    spans = [(opener + 1, close)]
                    if opener not in comprehensions:
                        comprehensions.add(opener)
                        stop = j + 1
                        while stop < close and not (
                            enclosing[stop] == opener and _is_clause_start(tokens[stop])
                        ):
                            stop += 1
                        spans = [(opener + 1, j + 1), (stop, close)]
                for name in targets:
                    for lo, hi in spans:
                        bind(name, lo, hi)
                i = j
                continue
            if _is_name(tok, "as") and i + 1 < n and _is_name(tokens[i + 1]):
                bind(tokens[i + 1].string, 0, n)
            elif (_is_name(tok, "def") or _is_name(tok, "class")) and i + 1 < n:
                bind(tokens[i + 1].string, 0, n)
            elif _is_name(tok, "from"):
                j = i + 1
                while j < n and not _is_name(tokens[j], "import"):
                    ignored.add(j)
                    j += 1
                i = j
                continue
            elif _is_name(tok, "import"):
                j = i + 1
                line = tok.start[0]
                depth = 0
                while j < n and not _is_op(tokens[j], ";"):
                    if _is_op(tokens[j], "("):
                        depth += 1
                    elif _is_op(tokens[j], ")"):
                        depth -= 1
                    elif depth == 0 and tokens[j].start[0] != line:
                        # Statement ended at the line break
                        break
                    prev = tokens[j - 1]
                    leads = prev.string in {"import", "as", ",", "("}
                    if _is_name(tokens[j]) and leads:
                        bind(tokens[j].string, 0, n)
                    j += 1
                i = j
                continue
            i += 1
        return local, ignored

    def _lambda_params(self, tokens: list[tokenize.TokenInfo], i: int, params: set[int]) -> int:
        """Record parameter positions of the lambda at ``i``; return its colon."""
        depth = 0
        j = i + 1
        while j < len(tokens):
            tok = tokens[j]
            if tok.type == tokenize.OP:
                if tok.string in _OPENERS:
                    depth += 1
                elif tok.string in _CLOSERS:
                    depth -= 1
                elif tok.string == ":" and depth == 0:
                    return j
            elif _is_name(tok) and tokens[j - 1].string in _PARAM_LEADERS:
                params.add(j)
            j += 1
        return j


def _brackets(tokens: list[tokenize.TokenInfo]) -> tuple[list[int | None], dict[int, int]]:
    """Innermost open bracket around each token, and each opener's closer."""
    enclosing: list[int | None] = []
    closing: dict[int, int] = {}
    stack: list[int] = []
    for i, tok in enumerate(tokens):
        if tok.type == tokenize.OP and tok.string in _CLOSERS and stack:
            closing[stack.pop()] = i
        enclosing.append(stack[-1] if stack else None)
        if tok.type == tokenize.OP and tok.string in _OPENERS:
            stack.append(i)
    for opener in stack:
        closing[opener] = len(tokens)
    return enclosing, closing


def _lambda_end(tokens: list[tokenize.TokenInfo], colon: int, *, bracketed: bool) -> int:
    """Position just past the body of the lambda whose colon is at ``colon``."""
    line = tokens[colon].start[0]
    depth = 0
    j = colon + 1
    while j < len(tokens):
        tok = tokens[j]
        if tok.type == tokenize.OP:
            if tok.string in _OPENERS:
                depth += 1
            elif tok.string in _CLOSERS:
                if depth == 0:
                    break
                depth -= 1
            elif depth == 0 and tok.string in {",", ";"}:
                break
        elif depth == 0 and _is_name(tok, "for"):
            break
        elif depth == 0 and not bracketed and tok.start[0] != line:
            # Statement ended at the line break
            break
        j += 1
    return j


def free_names(snippets: Iterable[str], bound: Iterable[str] = ()) -> tuple[str, ...]:
    """Convenience wrapper: ``FreeNameScanner().analyze(snippets, bound)``."""
    return FreeNameScanner().analyze(snippets, bound)
