"""Runtime helpers available to compiled render functions.

Compiled code references these through fixed names in its module namespace
(``_str``, ``_resolve``); STATIC_NAMESPACE maps those names to the helpers.
"""

from __future__ import annotations

import builtins
from collections.abc import Mapping
from typing import Any

_BUILTINS: dict[str, Any] = vars(builtins)


def resolve(data: Mapping[str, Any], name: str) -> Any:
    """Bind a free name of the template.

    Lookup order: the render context, then Python builtins, then ``None``.
    Context keys therefore shadow builtins of the same name (``id``,
    ``type``, ``format``), and names found nowhere render as empty text.
    """
    try:
        return data[name]
    except KeyError:
        return _BUILTINS.get(name)


def str_safe(value: Any) -> str:
    """Convert value to string, treating None as empty string.

    This is the interpolation policy for absent values: a name missing from
    the context binds to None and ``{{= name }}`` renders nothing rather
    than the text 'None'.
    """
    if value is None:
        return ""
    return str(value)


STATIC_NAMESPACE: dict[str, Any] = {
    "_str": str_safe,
    "_resolve": resolve,
}
