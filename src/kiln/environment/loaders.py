"""Template loading for Kiln.

The compiler itself only ever sees text. Loading a template file and
inlining its partial includes (``{{@ path }}``) happens here, before
compilation.

Partial paths are resolved against the loader root, not against the file
that includes them. Includes are expanded recursively; a file that includes
itself, directly or through other files, raises TemplateIncludeCycleError
instead of looping.

Thread-Safety:
FileSystemLoader holds only its root and settings; ``load()`` reads files
atomically and ``resolve_partials()`` keeps its state on the call stack.

"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from kiln.environment.exceptions import (
    ErrorCode,
    TemplateIncludeCycleError,
    TemplateNotFoundError,
)
from kiln.lexer import PARTIAL

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 50


class FileSystemLoader:
    """Load templates from a root directory.

    Attributes:
        root: Directory that template and partial paths are relative to
        _encoding: File encoding (default: utf-8)
        _max_depth: Deepest allowed partial nesting

    Example:
            >>> loader = FileSystemLoader("templates/")
            >>> loader.load("pages/about.html")
            '<h1>About</h1>{{@ footer.html }}'
            >>> loader.load_resolved("pages/about.html")
            '<h1>About</h1><footer>…</footer>'

    Raises:
        TemplateNotFoundError: If a template or partial file does not exist

    """

    __slots__ = ("_encoding", "_max_depth", "root")

    def __init__(
        self,
        root: str | Path = "",
        encoding: str = "utf-8",
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.root = Path(root)
        self._encoding = encoding
        self._max_depth = max_depth

    def _path(self, name: str) -> Path:
        return self.root / name

    def get_source(self, name: str) -> tuple[str, str]:
        """Load template source, returning ``(source, filename)``."""
        path = self._path(name)
        if not path.is_file():
            raise TemplateNotFoundError(f"Template '{name}' not found in: {self.root}")
        logger.debug("Loading template %s from %s", name, path)
        return path.read_text(self._encoding), str(path)

    def load(self, name: str) -> str:
        """Load template source text."""
        return self.get_source(name)[0]

    def load_resolved(self, name: str) -> str:
        """Load a template with every partial include inlined."""
        return self.resolve_partials(self.load(name), name)

    def resolve_partials(self, text: str, name: str | None = None) -> str:
        """Replace every ``{{@ path }}`` in ``text`` with that file's content.

        Included files are resolved the same way, until no partial markers
        remain.

        Args:
            text: Template text.
            name: Name of the file ``text`` came from, if any; lets a file
                that includes itself be caught on the first level.

        Raises:
            TemplateNotFoundError: A partial file does not exist.
            TemplateIncludeCycleError: Partials include each other in a
                cycle, or nest deeper than ``max_depth``.
        """
        if name is None:
            return self._expand(text, (), ())
        return self._expand(text, (name,), (self._key(name),))

    def _key(self, name: str) -> str:
        return str(self._path(name).resolve())

    def _expand(self, text: str, names: tuple[str, ...], keys: tuple[str, ...]) -> str:
        if len(names) > self._max_depth:
            raise TemplateIncludeCycleError(names, code=ErrorCode.INCLUDE_DEPTH)

        def include(match: re.Match[str]) -> str:
            target = match.group(1)
            key = self._key(target)
            if key in keys:
                raise TemplateIncludeCycleError((*names, target))
            return self._expand(self.load(target), (*names, target), (*keys, key))

        return PARTIAL.sub(include, text)
