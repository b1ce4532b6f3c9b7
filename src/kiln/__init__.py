"""Kiln — a micro-template compiler for Python.

Compiles text templates with embedded directives into reusable render
functions. Expressions inside directives are plain Python, evaluated with
full capability (Kiln is not a sandbox).

Quickstart:
    >>> import kiln
    >>> kiln.render("Hello, {{= name }}!", {"name": "World"})
    'Hello, World!'

    >>> page = kiln.compile("{{~ items:item:i }}{{= i }}:{{= item }};{{~ }}")
    >>> page({"items": ["x", "y"]})
    '0:x;1:y;'

File-based templates:
    >>> kiln.init(root="templates/", imports={"site": "Kiln"})
    >>> kiln.view("index.html", {"user": user})

Directives:
    ``{{= expr }}``                 interpolate (None renders as nothing)
    ``{{? a }}…{{?? b }}…{{?? }}…{{? }}``   if / elif / else
    ``{{~ items:item:i }}…{{~ }}``   loop, index optional, skipped when empty
    ``{{ statements }}``            evaluate Python statements
    ``{{< name }}…{{< }}``          define a block
    ``{{> name }}``                 place a block
    ``{{@ path }}``                 include a file (view() only)

Architecture:
Template Source → Block Resolver → Lexer → Normalizer → Compiler → Python AST → exec()

Free names in directive code (``name`` above) are bound from the render
context at the top of the generated function, so templates never write
``data['name']``. The generated function is available as
``Template.source``.

Thread-Safety:
Compilation is pure and compiled templates are immutable; any number of
threads may render the same template with different contexts.

"""

from kiln._types import Fragment, FragmentKind
from kiln.environment import (
    Environment,
    ErrorCode,
    FileSystemLoader,
    Options,
    TemplateError,
    TemplateIncludeCycleError,
    TemplateNotFoundError,
    TemplateSyntaxError,
    compile,
    get_default_environment,
    init,
    render,
    view,
)
from kiln.lexer import tokenize
from kiln.template import Template

__version__ = "0.1.0"

__all__ = [
    "Environment",
    "ErrorCode",
    "FileSystemLoader",
    "Fragment",
    "FragmentKind",
    "Options",
    "Template",
    "TemplateError",
    "TemplateIncludeCycleError",
    "TemplateNotFoundError",
    "TemplateSyntaxError",
    "__version__",
    "compile",
    "get_default_environment",
    "init",
    "render",
    "tokenize",
    "view",
]


# Free-threading declaration (PEP 703)
def __getattr__(name: str) -> object:
    """Module-level getattr for the free-threading declaration."""
    if name == "_Py_mod_gil":
        # 0 = Py_MOD_GIL_NOT_USED
        return 0
    raise AttributeError(f"module 'kiln' has no attribute {name!r}")
