# tests/test_chart.py
"""
Tests for the Earley chart parser: disambiguation and error recovery.
"""

import pytest

from chartlint.chart import parse_tokens
from chartlint.config import EngineConfig
from chartlint.errors import ErrorCodes, LexicalError, ParseError
from chartlint.grammar_loader import load_grammar
from chartlint.lexer import tokenize
from chartlint.tree import parse
from tests.conftest import (
    CALC_BROKEN, CALC_CHAIN, JSON_MISSING_COMMA, JSON_OBJECT, assert_partition,
)


class TestDisambiguation:

    def test_left_associative_by_default(self, calc):
        tree, errors = parse(calc, CALC_CHAIN)
        assert errors == []
        assert tree.sexp() == (
            "(document (expr (expr (expr (NUMBER '1')) (+ '+') (expr (NUMBER '2')))"
            " (+ '+') (expr (NUMBER '3'))))"
        )

    def test_right_associative_alternative(self):
        g = load_grammar('(grammar pow (token N "[0-9]+") (rule e N (e "^" e :right)))')
        tree, errors = parse(g, "1^2^3")
        assert errors == []
        assert tree.sexp() == (
            "(document (e (e (N '1')) (^ '^') (e (e (N '2')) (^ '^') (e (N '3')))))"
        )

    def test_earlier_alternative_wins(self):
        g = load_grammar(
            '(grammar pick (token NAME "[a-z]+") (rule s a b) (rule a NAME) (rule b NAME))'
        )
        tree, _ = parse(g, "x")
        assert tree.sexp() == "(document (s (a (NAME 'x'))))"

    def test_transparent_and_inline_productions_disappear(self, json_grammar):
        tree, errors = parse(json_grammar, JSON_OBJECT)
        assert errors == []
        kinds = {n.kind for n in tree.nodes}
        assert "value" not in kinds
        assert not any("#" in k for k in kinds)
        assert len(tree.find("member")) == 3
        assert tree.nodes[1].kind == "object"

    def test_forest_reports_no_recoveries_on_valid_input(self, json_grammar):
        tokens, _ = tokenize(json_grammar, JSON_OBJECT)
        forest = parse_tokens(json_grammar, tokens)
        assert forest.errors == []
        assert forest.unparsed_from is None
        assert forest.recoveries == 0


class TestRecovery:

    def test_skipped_token_becomes_error_node(self, json_grammar):
        tree, errors = parse(json_grammar, JSON_MISSING_COMMA)
        assert len(errors) == 1
        err = errors[0]
        assert not err.terminal
        assert err.code == ErrorCodes.UNEXPECTED_TOKEN
        assert err.message.startswith("unexpected NUMBER '3'")
        assert "skipped 1 token" in err.message
        assert set(err.expected) == {",", "]"}
        error_nodes = tree.find("error")
        assert [tree.text(n.id) for n in error_nodes] == ["3"]
        assert tree.nodes[1].kind == "array"
        assert not tree.find("unparsed")

    def test_skip_bound_zero_disables_resync(self, json_grammar):
        tree, errors = parse(json_grammar, JSON_MISSING_COMMA, config=EngineConfig(recovery_skip_bound=0))
        assert len(errors) == 1
        assert errors[0].terminal
        unparsed = tree.find("unparsed")
        assert len(unparsed) == 1
        assert tree.text(unparsed[0].id) == JSON_MISSING_COMMA

    def test_unexpected_end_of_input(self, json_grammar):
        tree, errors = parse(json_grammar, "[1, 2")
        assert len(errors) == 1
        assert errors[0].code == ErrorCodes.UNEXPECTED_EOF
        assert errors[0].terminal
        assert [n.kind for n in tree.children(0)] == ["unparsed"]

    def test_empty_input_without_nullable_start(self, calc):
        tree, errors = parse(calc, "")
        assert len(tree.nodes) == 1
        assert tree.root.kind == "document"
        assert [e.code for e in errors] == [ErrorCodes.UNEXPECTED_EOF]

    def test_empty_input_with_nullable_start(self, js):
        tree, errors = parse(js, "")
        assert errors == []
        assert [n.kind for n in tree.children(0)] == ["program"]


class TestCalcScenario:
    """``1 + 2 + x``: the valid prefix survives, the tail is reported."""

    def test_prefix_is_a_valid_expr(self, calc):
        tree, _ = parse(calc, CALC_BROKEN)
        top = [tree.nodes[c] for c in tree.significant_children(0)]
        assert [n.kind for n in top] == ["expr", "unparsed"]
        assert tree.text(top[0].id) == "1 + 2"
        assert tree.text(top[1].id) == "+ x"

    def test_one_lexical_and_one_syntax_error(self, calc):
        _, errors = parse(calc, CALC_BROKEN)
        lexical = [e for e in errors if isinstance(e, LexicalError)]
        syntax = [e for e in errors if not isinstance(e, LexicalError)]
        assert len(lexical) == 1
        assert lexical[0].text == "x"
        assert len(syntax) == 1
        assert isinstance(syntax[0], ParseError)
        assert syntax[0].terminal
        assert (syntax[0].span.start, syntax[0].span.end) == (6, 9)
        assert syntax[0].message == "unexpected unknown 'x'; expected NUMBER"

    def test_errors_are_ordered_by_position(self, calc):
        _, errors = parse(calc, CALC_BROKEN)
        starts = [e.span.start for e in errors]
        assert starts == sorted(starts)


class TestRobustness:

    @pytest.mark.parametrize("text", [
        "}}}{{{",
        "function (",
        "var = = ;",
        "if (x { return }",
        '"unterminated',
        "eval(((((((((",
        ";;;;;;;;;;;;;;;;;;;;",
        "@#%^&",
        "var x = 1 var y = 2",
    ])
    def test_malformed_input_returns_a_tree(self, js, text):
        tree, errors = parse(js, text)
        assert tree.root.kind == "document"
        assert errors
        assert_partition(tree)

    @pytest.mark.parametrize("text", [CALC_CHAIN, CALC_BROKEN, "", "1 +", "+ 1", "1 2 3"])
    def test_calc_partition(self, calc, text):
        tree, _ = parse(calc, text)
        assert_partition(tree)

    def test_deep_nesting(self, json_grammar):
        depth = 400
        tree, errors = parse(json_grammar, "[" * depth + "]" * depth)
        assert errors == []
        assert len(tree.find("array")) == depth
        assert_partition(tree)
