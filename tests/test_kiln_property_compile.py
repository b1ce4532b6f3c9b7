"""Property-based tests for the Kiln compilation pipeline.

Uses hypothesis to verify invariants that must hold for *all* inputs:

- Plain text round-trips through tokenization unchanged
- Arbitrary input never causes an unhandled crash in the lexer
- Literal text survives normalization and rendering byte for byte
- Compiling the same text twice yields identical generated code
- The free-name set is exactly the referenced names, in first-seen order
- Block resolution does not depend on where defines appear
- Loop indexes count from zero in iteration order
"""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from kiln import Environment, TemplateSyntaxError
from kiln._types import FragmentKind
from kiln.blocks import resolve_blocks
from kiln.lexer import tokenize

from .strategies import arbitrary_template_source, identifier, literal_text, plain_text, word


class TestLexerProperties:
    @given(source=plain_text)
    @settings(max_examples=200)
    def test_plain_text_roundtrip(self, source: str) -> None:
        """Text without delimiters produces a single DATA fragment with the original content."""
        fragments = tokenize(source)
        assert [f.kind for f in fragments] == [FragmentKind.DATA]
        assert fragments[0].value == source

    @given(source=arbitrary_template_source)
    @settings(max_examples=300)
    def test_no_unhandled_crash(self, source: str) -> None:
        """The lexer may reject input, but only with TemplateSyntaxError."""
        try:
            tokenize(source)
        except TemplateSyntaxError:
            pass  # Expected for malformed input


class TestCompileProperties:
    @given(text=literal_text)
    @settings(max_examples=200)
    def test_literal_roundtrip(self, text: str) -> None:
        """Quotes and backslashes in literal text render unchanged."""
        assert Environment().render(text) == text

    @given(text=literal_text, names=st.lists(identifier, min_size=1, max_size=4))
    @settings(max_examples=100)
    def test_idempotent_source(self, text: str, names: list[str]) -> None:
        """The generated code is a pure function of the template text."""
        source = text + "".join(f"{{{{= {name} }}}}" for name in names)
        env = Environment()
        assert env.compile(source).source == env.compile(source).source

    @given(names=st.lists(identifier, min_size=1, max_size=8))
    @settings(max_examples=200)
    def test_free_names_minimal_and_ordered(self, names: list[str]) -> None:
        """Exactly the referenced names are bound, once each, in first-seen order."""
        source = "-".join(f"{{{{= {name} }}}}" for name in names)
        template = Environment().compile(source)
        assert template.free_names == tuple(dict.fromkeys(names))

    @given(values=st.lists(word, max_size=10))
    @settings(max_examples=100)
    def test_loop_indexes(self, values: list[str]) -> None:
        """Indexes start at zero and follow iteration order."""
        source = "{{~ arr:v:i }}{{= i }}:{{= v }};{{~ }}"
        expected = "".join(f"{i}:{v};" for i, v in enumerate(values))
        assert Environment().render(source, {"arr": values}) == expected


class TestBlockProperties:
    @given(
        blocks=st.dictionaries(identifier, word, min_size=1, max_size=5),
        data=st.data(),
    )
    @settings(max_examples=100)
    def test_define_position_irrelevant(self, blocks: dict[str, str], data) -> None:
        """Placeholders resolve the same whether defines come first or last."""
        order = data.draw(st.permutations(list(blocks)))
        defines = "".join(f"{{{{< {name} }}}}{body}{{{{< }}}}" for name, body in blocks.items())
        holders = "|".join(f"{{{{> {name} }}}}" for name in order)
        expected = "|".join(blocks[name] for name in order)
        assert resolve_blocks(defines + holders) == expected
        assert resolve_blocks(holders + defines) == expected
