"""Kiln Environment — configuration, compilation pipeline, and view cache.

An Environment owns the Options every compilation and render reads, runs the
compilation pipeline, and memoizes file-based templates.

Pipeline:
    Template Source → Block Resolver → HTML comment stripping → Lexer →
    Text Normalizer → Compiler → Template

Options:
    root     base directory for ``view()`` and partial includes
    imports  bindings merged into every render context, lowest precedence

Options may change at any time; later compilations and renders see the
change. ``imports`` is read per render, so even templates compiled before
the change pick it up.

Process-wide default:
The module-level ``init``/``compile``/``render``/``view`` functions operate
on one shared Environment (``get_default_environment()``). Create separate
Environment instances for isolated configuration.

Thread-Safety:
Compilation keeps its state in per-call objects. The view cache is a plain
dict written with ``setdefault``: two threads compiling the same file at
once both do the work, but only one Template is kept. Options have no
locking; concurrent ``init()`` calls race, last write wins.

"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from kiln.blocks import resolve_blocks
from kiln.compiler import Compiler
from kiln.environment.loaders import FileSystemLoader
from kiln.lexer import tokenize
from kiln.normalize import normalize, strip_html_comments
from kiln.template import Template

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Options:
    """Environment configuration.

    Attributes:
        root: Base directory for file loading.
        imports: Extra bindings for every render; context data overrides them.
    """

    root: str | Path = ""
    imports: dict[str, Any] = field(default_factory=dict)

    def merge(self, options: Mapping[str, Any] | None = None, /, **extra: Any) -> None:
        """Overwrite the given fields; fields not mentioned keep their value.

        Raises:
            TypeError: For a field other than ``root`` or ``imports``.
        """
        updates = {**(options or {}), **extra}
        known = {f.name for f in fields(self)}
        unknown = sorted(set(updates) - known)
        if unknown:
            raise TypeError(f"Unknown option(s): {', '.join(unknown)}")
        for key, value in updates.items():
            if key == "imports":
                value = dict(value or {})
            setattr(self, key, value)


class Environment:
    """Compile and render templates under one configuration.

    Example:
            >>> env = Environment(imports={"site": "Kiln"})
            >>> env.render("{{= site }}: {{= title }}", {"title": "Home"})
            'Kiln: Home'

            >>> env = Environment(root="templates/")
            >>> env.view("index.html", {"user": user})

    """

    __slots__ = ("_cache", "_loader", "options")

    def __init__(self, root: str | Path = "", imports: Mapping[str, Any] | None = None):
        self.options = Options(root=root, imports=dict(imports or {}))
        self._loader: FileSystemLoader | None = None
        self._cache: dict[str, Template] = {}

    def init(self, options: Mapping[str, Any] | None = None, /, **extra: Any) -> None:
        """Merge fields into this environment's Options.

        Changing ``root`` drops cached views, since their files now resolve
        elsewhere.
        """
        old_root = self.options.root
        self.options.merge(options, **extra)
        if Path(self.options.root) != Path(old_root):
            self.clear_cache()

    @property
    def loader(self) -> FileSystemLoader:
        """Loader for the current ``root``."""
        loader = self._loader
        if loader is None or loader.root != Path(self.options.root):
            loader = self._loader = FileSystemLoader(self.options.root)
        return loader

    def compile(self, source: str, name: str | None = None) -> Template:
        """Compile template text.

        ``source`` must already have its partial includes inlined; see
        ``view()`` for file-based templates.

        Raises:
            TemplateSyntaxError: If the template cannot be compiled.
        """
        text = strip_html_comments(resolve_blocks(source, name))
        fragments = normalize(tokenize(text, name))
        unit = Compiler(name, text).compile(fragments)
        return Template(unit, self.options, name=name)

    def render(self, source: str, data: Mapping[str, Any] | None = None, /, **kwargs: Any) -> str:
        """Compile template text and render it once."""
        return self.compile(source).render(data, **kwargs)

    def get_template(self, file: str) -> Template:
        """Load, inline partials, and compile a file; memoized by ``file``."""
        template = self._cache.get(file)
        if template is not None:
            logger.debug("View cache hit: %s", file)
            return template
        logger.debug("View cache miss: %s", file)
        template = self.compile(self.loader.load_resolved(file), name=file)
        return self._cache.setdefault(file, template)

    def view(self, file: str, data: Mapping[str, Any] | None = None, /, **kwargs: Any) -> str:
        """Render a template file, compiling it on first use."""
        return self.get_template(file).render(data, **kwargs)

    def clear_cache(self) -> None:
        """Forget every compiled view."""
        self._cache.clear()

    def cache_info(self) -> dict[str, Any]:
        """Cached view names and count."""
        return {"size": len(self._cache), "files": sorted(self._cache)}


# ---------------------------------------------------------------------------
# Process-wide default environment
# ---------------------------------------------------------------------------

_default_environment = Environment()


def get_default_environment() -> Environment:
    """The Environment behind the module-level functions."""
    return _default_environment


def init(options: Mapping[str, Any] | None = None, /, **extra: Any) -> None:
    """Merge ``root`` and/or ``imports`` into the default Options."""
    _default_environment.init(options, **extra)


def compile(source: str, name: str | None = None) -> Template:  # noqa: A001
    """Compile template text with the default environment."""
    return _default_environment.compile(source, name)


def render(source: str, data: Mapping[str, Any] | None = None, /, **kwargs: Any) -> str:
    """Compile and render template text with the default environment."""
    return _default_environment.render(source, data, **kwargs)


def view(file: str, data: Mapping[str, Any] | None = None, /, **kwargs: Any) -> str:
    """Render a template file with the default environment."""
    return _default_environment.view(file, data, **kwargs)
