"""Shared hypothesis strategies for Kiln property-based testing.

Provides reusable strategies at three levels:

- **Lexer**: Plain text and arbitrary input for tokenization
- **Literals**: Text that normalization leaves untouched
- **Names**: Identifiers usable as free variables and block names

These are building blocks -- individual test modules compose them into
property-specific strategies.
"""

from __future__ import annotations

import keyword
import string

from hypothesis import strategies as st

from kiln.compiler.core import INTERNAL_NAMES

# ---------------------------------------------------------------------------
# Lexer strategies
# ---------------------------------------------------------------------------

# Text without directive delimiters (no { or })
plain_text = st.text(
    alphabet=st.characters(
        blacklist_categories=("Cs",),  # no surrogates
        blacklist_characters="{}\x00",
    ),
    min_size=1,
    max_size=200,
)

# Arbitrary input that might stress the lexer (fuzz-like)
arbitrary_template_source = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",)),
    min_size=0,
    max_size=300,
)

# ---------------------------------------------------------------------------
# Literal strategies
# ---------------------------------------------------------------------------

# No line breaks, tabs, comment openers or braces; quotes and backslashes
# are included on purpose.
_LITERAL_ALPHABET = string.ascii_letters + string.digits + " '\"\\.,;:!?()[]=+-_&#%$@^|~`"

literal_text = (
    st.text(alphabet=_LITERAL_ALPHABET, min_size=1, max_size=120)
    .map(str.strip)
    .filter(bool)
)

# ---------------------------------------------------------------------------
# Name strategies
# ---------------------------------------------------------------------------

identifier = st.from_regex(r"[a-z][a-z0-9]{0,8}", fullmatch=True).filter(
    lambda name: not keyword.iskeyword(name) and name not in INTERNAL_NAMES
)

# Short alphanumeric block bodies and loop values
word = st.text(alphabet=string.ascii_letters + string.digits, min_size=1, max_size=12)
