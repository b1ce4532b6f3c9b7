"""Exceptions for the Kiln template compiler.

Exception Hierarchy:
TemplateError (base)
├── TemplateNotFoundError       # Loader could not find a template file
├── TemplateSyntaxError         # Lexing or code generation failed
└── TemplateIncludeCycleError   # Partial includes reference each other

Render-time errors are never wrapped: an exception raised by an expression
inside a directive reaches the caller of the rendering function unchanged.

Error Messages:
Syntax errors carry the template location, a source snippet, and (when code
generation had started) the generated code, so the offending directive can be
found from the error alone:

    ```
    KL-GEN-002: Unclosed conditional opened at line 3
      --> page.html:3
       |
      3 | {{? user }}
       |
    ```

"""

from __future__ import annotations

from enum import Enum

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------


class ErrorCode(Enum):
    """Searchable error codes for Kiln template errors.

    Format: KL-{CATEGORY}-{NUMBER}
    Categories: LEX (lexer), GEN (code generation), TPL (template loading)
    """

    # Lexer errors (KL-LEX-xxx)
    UNCLOSED_TAG = "KL-LEX-001"
    RESERVED_MARKER = "KL-LEX-002"
    INVALID_LOOP_TARGET = "KL-LEX-003"
    INVALID_NAME = "KL-LEX-004"

    # Code generation errors (KL-GEN-xxx)
    UNEXPECTED_CLOSE = "KL-GEN-001"
    UNCLOSED_BLOCK = "KL-GEN-002"
    INVALID_EXPRESSION = "KL-GEN-003"
    UNRESOLVED_PARTIAL = "KL-GEN-004"
    BLOCK_CYCLE = "KL-GEN-005"
    HOST_COMPILE = "KL-GEN-006"

    # Template loading errors (KL-TPL-xxx)
    TEMPLATE_NOT_FOUND = "KL-TPL-001"
    INCLUDE_CYCLE = "KL-TPL-002"
    INCLUDE_DEPTH = "KL-TPL-003"

    @property
    def category(self) -> str:
        """Error category (e.g., 'lexer', 'generator', 'template')."""
        prefix = self.value.split("-")[1]
        return {
            "LEX": "lexer",
            "GEN": "generator",
            "TPL": "template",
        }.get(prefix, "unknown")


class TemplateError(Exception):
    """Base exception for all Kiln template errors.

    All template-related exceptions inherit from this class, enabling
    broad exception handling:

        >>> try:
        ...     kiln.view("page.html", data)
        ... except TemplateError as e:
        ...     log.error(f"Template error: {e}")

    Attributes:
        code: Optional ErrorCode for searchable error identification.
    """

    code: ErrorCode | None = None

    def format_compact(self) -> str:
        """Format error as a short, human-readable summary."""
        header = str(self)
        if self.code and self.code.value not in header:
            header = f"{self.code.value}: {header}"
        return header


class TemplateNotFoundError(TemplateError):
    """Template file not found by the loader.

    Example:
            >>> loader.load("nonexistent.html")
        TemplateNotFoundError: Template 'nonexistent.html' not found in: templates/

    """

    code: ErrorCode | None = ErrorCode.TEMPLATE_NOT_FOUND


class TemplateIncludeCycleError(TemplateError):
    """A partial include chain refers back to itself.

    Attributes:
        chain: Template names from the outermost file to the repeated one.
    """

    code: ErrorCode | None = ErrorCode.INCLUDE_CYCLE

    def __init__(self, chain: list[str] | tuple[str, ...], code: ErrorCode | None = None):
        self.chain = tuple(chain)
        if code is not None:
            self.code = code
        if self.code is ErrorCode.INCLUDE_DEPTH:
            message = f"Partial include depth exceeded ({len(self.chain)}): "
        else:
            message = "Cyclic partial include: "
        super().__init__(message + " -> ".join(self.chain))


class TemplateSyntaxError(TemplateError):
    """Lex-time or generation-time error in template source.

    When ``source`` and ``lineno`` are provided, the error message includes
    a source snippet with the offending line. If ``col_offset`` is also
    given, a caret (``^``) points at the exact column.

    Attributes:
        generated: Generated code at the time of failure, if generation had
            started. For failures of the final host compilation step this is
            the complete Python source of the render function.
    """

    code: ErrorCode | None = ErrorCode.UNCLOSED_TAG

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        name: str | None = None,
        source: str | None = None,
        col_offset: int | None = None,
        *,
        code: ErrorCode | None = None,
        generated: str | None = None,
    ):
        self.message = message
        self.lineno = lineno
        self.name = name
        self.source = source
        self.col_offset = col_offset
        self.generated = generated
        if code is not None:
            self.code = code
        super().__init__(self._format_message())

    def _location(self) -> str:
        location = self.name or "<template>"
        if self.lineno:
            location += f":{self.lineno}"
            if self.col_offset is not None:
                location += f":{self.col_offset}"
        return location

    def _snippet(self) -> list[str]:
        if not (self.source and self.lineno):
            return []
        lines = self.source.splitlines()
        if not 0 < self.lineno <= len(lines):
            return []
        parts = ["   |", f"{self.lineno:>3} | {lines[self.lineno - 1]}"]
        if self.col_offset is not None:
            parts.append(f"   | {' ' * self.col_offset}^")
        return parts

    def _format_message(self) -> str:
        parts = [f"Syntax Error: {self.message}", f"  --> {self._location()}"]
        parts.extend(self._snippet())
        return "\n".join(parts)

    def format_compact(self) -> str:
        """Format syntax error as structured terminal diagnostic.

        Includes the generated code, since generation failures are usually
        diagnosed by reading what the directives turned into.
        """
        code_prefix = f"{self.code.value}: " if self.code else ""
        parts = [f"{code_prefix}{self.message}", f"  --> {self._location()}"]
        snippet = self._snippet()
        if snippet:
            parts.extend([*snippet, "   |"])
        if self.generated:
            parts.append("  Generated:")
            parts.extend(f"    {line}" for line in self.generated.splitlines())
        return "\n".join(parts)
