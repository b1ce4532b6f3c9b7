"""Fragment types produced by the Kiln lexer.

The lexer turns block-resolved template text into a flat, ordered stream of
fragments. Literal text and each directive kind get their own FragmentKind,
so later stages dispatch on type instead of re-matching raw text.

"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FragmentKind(Enum):
    """Kinds of fragment in a lexed template.

    Literal text is DATA. Every other member corresponds to one directive
    form; open and close forms of the same directive are distinct kinds.
    """

    DATA = "data"

    # {{@ path }}
    PARTIAL = "partial"
    # {{> name }}
    BLOCK_HOLDER = "block_holder"
    # {{< name }} / {{< }}
    BLOCK_DEFINE = "block_define"

    # {{= expr }}
    INTERPOLATE = "interpolate"

    # {{? expr }} / {{?? expr }} / {{?? }} / {{? }}
    IF = "if"
    ELIF = "elif"
    ELSE = "else"
    END_IF = "end_if"

    # {{~ coll:value:index }} / {{~ }}
    FOR = "for"
    END_FOR = "end_for"

    # {{ statements }}
    EVALUATE = "evaluate"


@dataclass(frozen=True, slots=True)
class Fragment:
    """One span of template text.

    Attributes:
        kind: What the span is.
        value: Literal text for DATA, the raw expression or statement text for
            expression-bearing directives, the name or path for PARTIAL,
            BLOCK_HOLDER and BLOCK_DEFINE.
        lineno: 1-based line of the span start.
        col_offset: 0-based column of the span start.
        target: Loop value name (FOR only).
        index: Loop index name (FOR only, optional).
    """

    kind: FragmentKind
    value: str
    lineno: int
    col_offset: int
    target: str | None = None
    index: str | None = None

    @property
    def is_directive(self) -> bool:
        return self.kind is not FragmentKind.DATA
