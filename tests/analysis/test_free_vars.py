"""Tests for free-variable extraction."""

import pytest

from kiln.analysis import FreeNameScanner, free_names
from kiln.environment.exceptions import ErrorCode, TemplateSyntaxError


class TestFreeNames:
    """Names read from the data context, in first-seen order."""

    def test_attribute_access(self):
        assert free_names(["user.name", "len(items) > limit"]) == (
            "user",
            "len",
            "items",
            "limit",
        )

    def test_ordered_and_deduplicated(self):
        assert free_names(["b + a", "a * b", "c"]) == ("b", "a", "c")

    def test_strings_and_comments_skipped(self):
        assert free_names(["'abc def' + x  # y z", '"""q"""']) == ("x",)

    def test_keywords_skipped(self):
        assert free_names(["a if b else c", "not d and e is None"]) == (
            "a",
            "b",
            "c",
            "d",
            "e",
        )

    def test_numbers_skipped(self):
        assert free_names(["x + 1.5e3 + 0x1f"]) == ("x",)

    def test_soft_keywords_are_names(self):
        assert free_names(["type", "match"]) == ("type", "match")

    def test_keyword_arguments_skipped(self):
        assert free_names(["fmt(value, width=w)"]) == ("fmt", "value", "w")

    def test_comparison_inside_call_is_not_keyword(self):
        assert free_names(["check(a == b)"]) == ("check", "a", "b")

    def test_lambda_parameters_local(self):
        assert free_names(["sorted(xs, key=lambda v: v.size)"]) == ("sorted", "xs")

    def test_lambda_several_parameters(self):
        assert free_names(["reduce(lambda acc, n=start: acc + n + k, ns)"]) == (
            "reduce",
            "start",
            "k",
            "ns",
        )

    def test_comprehension_targets_local(self):
        assert free_names(["[n * k for n in nums if n]"]) == ("k", "nums")

    def test_comprehension_tuple_targets(self):
        assert free_names(["{k: v for k, v in pairs.items()}"]) == ("pairs",)

    def test_fstring_fields(self):
        assert free_names(['f"{greeting}, {name!r:>10}"']) == ("greeting", "name")

    def test_bound_names_excluded(self):
        assert free_names(["item.name", "i", "other"], bound={"item", "i"}) == ("other",)

    def test_comprehension_target_read_outside_brackets(self):
        assert free_names(["[x for x in xs] + [x]"]) == ("xs", "x")

    def test_comprehension_first_iterable_is_outside(self):
        assert free_names(["[x for x in x]"]) == ("x",)

    def test_later_iterables_are_inside(self):
        assert free_names(["[y for x in xs for y in x]"]) == ("xs",)

    def test_lambda_parameter_read_outside_body(self):
        assert free_names(["f(lambda a: a, a)"]) == ("f", "a")
        assert free_names(["(lambda v: v)(v)"]) == ("v",)


class TestScopedAnalysis:
    """Loop names are excluded only for snippets inside their loop."""

    def test_enclosing_loop_names_excluded(self):
        snippets = [
            ("item", frozenset()),
            ("item.name + i", frozenset({"item", "i"})),
            ("total", frozenset({"item", "i"})),
        ]
        assert FreeNameScanner().analyze_scoped(snippets) == ("item", "total")

    def test_name_only_inside_loop(self):
        snippets = [("rows", frozenset()), ("row", frozenset({"row"}))]
        assert FreeNameScanner().analyze_scoped(snippets, bound={"_out"}) == ("rows",)


class TestStatements:
    """Statement snippets bind some names for themselves."""

    def test_assignment_and_for(self):
        snippet = "total = 0\nfor row in rows:\n    total += row.amount"
        assert free_names([snippet]) == ("total", "rows")

    def test_import(self):
        assert free_names(["import math\nresult = math.sqrt(x)"]) == ("result", "x")

    def test_from_import(self):
        assert free_names(["from os import path as p\nbase = p.join(root, name)"]) == (
            "base",
            "root",
            "name",
        )

    def test_with_as(self):
        assert free_names(["with open(fn) as fh:\n    text = fh.read()"]) == (
            "open",
            "fn",
            "text",
        )

    def test_def_name_local(self):
        assert free_names(["def helper():\n    return scale\nout = helper()"]) == (
            "scale",
            "out",
        )


class TestScanner:
    def test_scan_keeps_repeats(self):
        assert FreeNameScanner().scan("a + a") == ["a", "a"]

    def test_untokenizable_snippet(self):
        with pytest.raises(TemplateSyntaxError) as exc_info:
            FreeNameScanner().scan("(a")
        assert exc_info.value.code is ErrorCode.INVALID_EXPRESSION
