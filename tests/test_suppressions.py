# tests/test_suppressions.py
"""
Tests for inline suppression comments.
"""

import pytest

from chartlint.errors import SourceSpan
from chartlint.evaluator import lint
from chartlint.grammar_loader import load_grammar
from chartlint.rules import compile_rule
from chartlint.suppressions import Suppression, SuppressionManager, collect_suppressions
from chartlint.tree import parse
from tests.conftest import JS_SUPPRESSED, MINI_GRAMMAR


@pytest.fixture
def no_eval(js):
    return compile_rule("no-eval", 'call(name: "eval", ...)', "avoid eval", js)


@pytest.fixture
def mini():
    return load_grammar(MINI_GRAMMAR)


def _covered(tree, suppression):
    return tree.source.slice(suppression.span.start, suppression.span.end)


class TestCollect:

    def test_directives(self, js_tree):
        tree = js_tree(JS_SUPPRESSED)
        found = collect_suppressions(tree)
        assert [s.rules for s in found] == [("no-eval",), ("no-eval",), ("other-rule",)]
        assert _covered(tree, found[0]) == "eval(a);"
        assert _covered(tree, found[1]) == "eval(c); // chartlint: ignore[no-eval]"
        assert found[0].comment.line == 1

    def test_plain_comments_are_ignored(self, js_tree):
        tree = js_tree("// just a note\neval(a); /* no directive */\n")
        assert collect_suppressions(tree) == []

    def test_block_comment(self, js_tree):
        tree = js_tree("/* chartlint: ignore[a, b] */\nf();\ng();\n")
        found = collect_suppressions(tree)
        assert found[0].rules == ("a", "b")
        assert _covered(tree, found[0]) == "f();"

    def test_bare_directive_applies_to_every_rule(self, js_tree):
        tree = js_tree("f(); // chartlint: ignore\n")
        (suppression,) = collect_suppressions(tree)
        assert suppression.rules == ()
        assert suppression.applies_to("anything")

    def test_nothing_after_comment(self, js_tree):
        assert collect_suppressions(js_tree("f();\n// chartlint: ignore\n")) == []

    def test_own_line_covers_the_next_list_item_only(self, mini):
        tree, _ = parse(mini, "1 2\n# chartlint: ignore\nx = 3 4\n")
        (suppression,) = collect_suppressions(tree)
        assert _covered(tree, suppression) == "x = 3"

    def test_own_line_at_file_start(self, mini):
        tree, _ = parse(mini, "# chartlint: ignore\n1 2\n")
        (suppression,) = collect_suppressions(tree)
        assert _covered(tree, suppression) == "1"

    def test_own_line_covers_a_whole_nested_statement(self, js_tree):
        source = "function f() {\n  // chartlint: ignore[no-eval]\n  if (x) {\n    eval(x);\n  }\n  eval(y);\n}\n"
        tree = js_tree(source)
        (suppression,) = collect_suppressions(tree)
        assert _covered(tree, suppression) == "if (x) {\n    eval(x);\n  }"


class TestSuppressedLint:

    def test_inline_directives(self, js, no_eval):
        diagnostics = lint(js, [no_eval], JS_SUPPRESSED, "app.js")
        assert [d.line for d in diagnostics] == [3, 5]

    def test_glob(self, js):
        rules = [
            compile_rule("no-eval", 'call(name: "eval", ...)', "eval", js),
            compile_rule("no-calls", "call", "call", js),
            compile_rule("style-call", "call", "call", js),
        ]
        diagnostics = lint(js, rules, "eval(a); // chartlint: ignore[no-*]\n")
        assert [d.rule_id for d in diagnostics] == ["style-call"]

    def test_other_rules_unaffected(self, js, no_eval):
        rules = [no_eval, compile_rule("any-call", "call", "call", js)]
        diagnostics = lint(js, rules, "// chartlint: ignore[no-eval]\neval(a);\n")
        assert [d.rule_id for d in diagnostics] == ["any-call"]


class TestSuppressionManager:

    def test_global_suppression(self, js, no_eval):
        diagnostics = lint(js, [no_eval], "eval(a);\neval(b);\n")
        manager = SuppressionManager()
        assert manager.filter_diagnostics(diagnostics) == diagnostics
        manager.add_global_suppression("no-*")
        assert manager.filter_diagnostics(diagnostics) == []

    def test_for_tree(self, js_tree):
        manager = SuppressionManager.for_tree(js_tree(JS_SUPPRESSED))
        assert len(manager.suppressions) == 3

    def test_span_intersection(self):
        manager = SuppressionManager([Suppression(SourceSpan(10, 20), ("r",))])
        assert manager.is_suppressed("r", SourceSpan(15, 30))
        assert manager.is_suppressed("r", SourceSpan(12, 12))
        assert not manager.is_suppressed("r", SourceSpan(20, 25))
        assert not manager.is_suppressed("other", SourceSpan(15, 30))
