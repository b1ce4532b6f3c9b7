"""Tests for literal-text normalization."""

import pytest

from kiln._types import FragmentKind
from kiln.lexer import tokenize
from kiln.normalize import escape_literal, normalize, reduce_literal, strip_html_comments


class TestStripHtmlComments:
    def test_comment_removed(self):
        assert strip_html_comments("a<!-- note -->b") == "ab"

    def test_line_breaks_kept(self):
        assert strip_html_comments("a<!-- x\ny\n -->b") == "a\n\nb"

    def test_commented_directive_removed(self):
        assert strip_html_comments("<!-- {{= boom() }} -->ok") == "ok"

    def test_non_greedy(self):
        assert strip_html_comments("<!--1-->keep<!--2-->") == "keep"


class TestReduceLiteral:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("<ul>\n    <li>", "<ul><li>"),
            ("a   \nb", "ab"),
            ("a\tb", "ab"),
            ("a\r\nb", "ab"),
            ("a /* c */b", "a b"),
            ("a/* multi\nline */b", "ab"),
            ("x\n  // comment\ny", "xy"),
            ("keep  inner  spaces", "keep  inner  spaces"),
            ("http://example.com", "http://example.com"),
        ],
    )
    def test_reduce(self, text, expected):
        assert reduce_literal(text) == expected


class TestNormalize:
    def test_document_trimmed(self):
        fragments = normalize(tokenize("  \n Hello {{= x }}  \n"))
        assert [(f.kind, f.value) for f in fragments] == [
            (FragmentKind.DATA, "Hello "),
            (FragmentKind.INTERPOLATE, "x"),
        ]

    def test_inner_fragments_not_trimmed(self):
        fragments = normalize(tokenize("{{= a }} and {{= b }}"))
        assert fragments[1].value == " and "

    def test_empty_literals_dropped(self):
        fragments = normalize(tokenize("{{? a }}\n    {{= a }}\n{{? }}"))
        assert [f.kind for f in fragments] == [
            FragmentKind.IF,
            FragmentKind.INTERPOLATE,
            FragmentKind.END_IF,
        ]

    def test_directive_bodies_untouched(self):
        fragments = normalize(tokenize("{{\n  x = 1\n  y = 2\n}}"))
        assert fragments[0].value == "\n  x = 1\n  y = 2\n"

    def test_locations_kept(self):
        fragments = normalize(tokenize("{{= a }}\n  text"))
        assert fragments[1].value == "text"
        assert fragments[1].lineno == 1


class TestEscapeLiteral:
    def test_quotes_and_backslashes(self):
        assert escape_literal("it's \\ ok") == "it\\'s \\\\ ok"

    def test_backslash_escaped_first(self):
        assert escape_literal("\\'") == "\\\\\\'"
