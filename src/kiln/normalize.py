"""Literal-text normalization for Kiln templates.

Templates are mostly markup written for people; the rendered output does not
need its comments or its indentation. Normalization removes:

- HTML comments, anywhere in the document (including ones that wrap
  directives, which are commented out along with them)
- ``/* … */`` comments and whole-line ``//`` comments in literal text
- line breaks, tabs, and the indentation around line breaks in literal text

Directive bodies are never touched, so Python code inside ``{{ }}`` keeps its
line structure.

Quotes and backslashes in literal text need no escaping here: the compiler
emits literal text as constant nodes of the generated module, so no
string-literal boundary exists to break. ``escape_literal`` is kept for the
human-readable instruction listing attached to syntax errors.
"""

from __future__ import annotations

import re
from dataclasses import replace

from kiln._types import Fragment, FragmentKind

_HTML_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"\n\s*//.*")
_LEADING_SPACE = re.compile(r"[\r\n][\t ]+")
_TRAILING_SPACE = re.compile(r"[\t ]+[\r\n]")
_BREAKS = re.compile(r"[\r\n\t]")


def strip_html_comments(source: str) -> str:
    """Remove HTML comments, keeping their line breaks.

    Line breaks are kept so directive line numbers still match the original
    source; literal normalization drops them afterwards.
    """
    return _HTML_COMMENT.sub(lambda m: "\n" * m.group(0).count("\n"), source)


def reduce_literal(text: str) -> str:
    """Strip comments and insignificant whitespace from literal text."""
    text = _BLOCK_COMMENT.sub("", text)
    text = _LINE_COMMENT.sub("", text)
    text = _LEADING_SPACE.sub("", text)
    text = _TRAILING_SPACE.sub("", text)
    return _BREAKS.sub("", text)


def normalize(fragments: list[Fragment]) -> list[Fragment]:
    """Normalize the literal fragments of a lexed template.

    The document is trimmed at both ends and literal fragments that end up
    empty are dropped.
    """
    result: list[Fragment] = []
    last = len(fragments) - 1
    for i, fragment in enumerate(fragments):
        if fragment.kind is not FragmentKind.DATA:
            result.append(fragment)
            continue
        text = fragment.value
        if i == 0:
            text = text.lstrip()
        if i == last:
            text = text.rstrip()
        text = reduce_literal(text)
        if text:
            result.append(replace(fragment, value=text))
    return result


def escape_literal(text: str) -> str:
    """Escape backslashes and single quotes for a single-quoted literal."""
    return text.replace("\\", "\\\\").replace("'", "\\'")
