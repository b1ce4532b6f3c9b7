"""Block inheritance for Kiln templates.

A template defines named blocks with ``{{< name }}…{{< }}`` and places them
with ``{{> name }}``. Resolution is purely textual and runs before any other
pass, so block bodies go through normalization and code generation like the
rest of the document.

Resolution:
1. Every define is captured and removed. A later define of the same name
   replaces an earlier one.
2. Every placeholder is replaced with its block body, or with nothing when no
   block of that name exists. Defines are all captured first, so a
   placeholder may precede its define.

Placeholders inside a block body are resolved when the body is placed. A block
that places itself, directly or through other blocks, is an error.

Example:
    >>> resolve_blocks("{{> title }}|{{< title }}Home{{< }}")
    'Home|'

"""

from __future__ import annotations

import logging
import re

from kiln.environment.exceptions import ErrorCode, TemplateSyntaxError
from kiln.lexer import BLOCK_DEFINE, BLOCK_HOLDER

logger = logging.getLogger(__name__)


def collect_blocks(source: str, name: str | None = None) -> tuple[str, dict[str, str]]:
    """Remove block defines from ``source``.

    Returns:
        The source without defines, and a mapping of block name to body.
    """
    blocks: dict[str, str] = {}

    def capture(match: re.Match[str]) -> str:
        block_name, body = match.group(1), match.group(2)
        if block_name in blocks:
            logger.warning(
                "Block %r defined more than once in %s; the last definition wins",
                block_name,
                name or "<template>",
            )
        blocks[block_name] = body
        return ""

    return BLOCK_DEFINE.sub(capture, source), blocks


def resolve_blocks(source: str, name: str | None = None) -> str:
    """Inline every block placeholder in ``source``."""
    text, blocks = collect_blocks(source, name)
    if not blocks and BLOCK_HOLDER.search(text) is None:
        return text

    def place(block_name: str, chain: tuple[str, ...]) -> str:
        if block_name in chain:
            raise TemplateSyntaxError(
                "Block places itself: " + " -> ".join((*chain, block_name)),
                name=name,
                code=ErrorCode.BLOCK_CYCLE,
            )
        body = blocks.get(block_name)
        if body is None:
            logger.debug("Block %r is not defined; placeholder renders empty", block_name)
            return ""
        inner = (*chain, block_name)
        return BLOCK_HOLDER.sub(lambda m: place(m.group(1), inner), body)

    return BLOCK_HOLDER.sub(lambda m: place(m.group(1), ()), text)
