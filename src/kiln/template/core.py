"""Kiln Template — compiled template object ready for rendering.

The Template class wraps a compiled code object and provides the
``render()`` API. Templates are immutable and thread-safe for concurrent
rendering.

Architecture:
    ```
    Template
    ├── _render_func: callable   # render(_data) extracted from the module
    ├── _options: Options        # shared with the Environment; imports read per render
    ├── _unit: CompiledUnit      # code, generated source, free names
    └── _name                    # for error messages
    ```

Context:
Each render builds a fresh context dict: the environment's ``imports``
first, then the positional mapping, then keyword arguments. Later entries
win, so explicit data always overrides an import of the same name.

Thread-Safety:
- Templates are immutable after construction
- ``render()`` creates only local state (context dict, output list)
- Multiple threads can call ``render()`` concurrently

Errors raised while rendering (a failing expression, a missing attribute)
propagate unchanged.

"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from kiln.compiler.core import RENDER_FUNCTION
from kiln.template.helpers import STATIC_NAMESPACE

if TYPE_CHECKING:
    from kiln.compiler import CompiledUnit
    from kiln.environment.core import Options


class Template:
    """Compiled template ready for rendering.

    Calling the template is the same as calling ``render()``, so a Template
    can be used wherever a ``(data) -> str`` function is expected.

    Attributes:
        name: Template identifier (for error messages)
        source: Generated Python source of the render function
        free_names: Names bound from the render context

    Example:
            >>> import kiln
            >>> t = kiln.compile("Hello, {{= name }}!")
            >>> t.render({"name": "World"})
            'Hello, World!'
            >>> t(name="World")
            'Hello, World!'

    """

    __slots__ = ("_name", "_options", "_render_func", "_unit")

    def __init__(self, unit: CompiledUnit, options: Options, name: str | None = None):
        namespace: dict[str, Any] = dict(STATIC_NAMESPACE)
        exec(unit.code, namespace)
        self._render_func: Callable[[dict[str, Any]], str] = namespace[RENDER_FUNCTION]
        self._unit = unit
        self._options = options
        self._name = name

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def source(self) -> str:
        return self._unit.source

    @property
    def free_names(self) -> tuple[str, ...]:
        return self._unit.free_names

    def render(self, data: Mapping[str, Any] | None = None, /, **kwargs: Any) -> str:
        """Render the template.

        Args:
            data: Render context mapping.
            **kwargs: Extra context entries; override ``data``.
        """
        ctx: dict[str, Any] = dict(self._options.imports)
        if data:
            ctx.update(data)
        if kwargs:
            ctx.update(kwargs)
        return self._render_func(ctx)

    __call__ = render

    def __repr__(self) -> str:
        return f"<Template {self._name or '(string)'!s} free={list(self.free_names)}>"
