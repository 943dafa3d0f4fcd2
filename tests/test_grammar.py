# tests/test_grammar.py
"""
Tests for the grammar model: validation, lowering and kind tables.
"""

import pytest

from chartlint.errors import ErrorCodes, GrammarValidationError
from chartlint.grammar import (
    DOCUMENT,
    RESERVED_KINDS,
    Alternative,
    Grammar,
    Group,
    Literal,
    Production,
    Ref,
    SuppressionConvention,
    TokenRule,
)


def _expr_grammar(**kwargs):
    return Grammar(
        "expr",
        [
            Production("expr", (
                Alternative((Ref("NUMBER"),)),
                Alternative((Ref("expr"), Literal("+"), Ref("expr"))),
            )),
        ],
        [TokenRule("NUMBER", r"[0-9]+")],
        **kwargs,
    )


class TestGrammarConstruction:

    def test_start_defaults_to_first_production(self):
        g = _expr_grammar()
        assert g.start == "expr"

    def test_literals_become_token_rules(self):
        g = _expr_grammar()
        plus = g.token_rule("+")
        assert plus.literal
        assert plus.priority == 1
        assert g.token_rule("NUMBER").priority == 0

    def test_literal_rules_precede_explicit_tokens(self):
        g = _expr_grammar()
        assert [t.name for t in g.token_rules] == ["+", "NUMBER"]

    def test_kind_table_starts_with_reserved_kinds(self):
        g = _expr_grammar()
        assert g.kind_names[: len(RESERVED_KINDS)] == RESERVED_KINDS
        assert g.kind_id(DOCUMENT) == 0
        assert g.kind_name(g.kind_id("expr")) == "expr"
        assert g.has_kind("NUMBER")
        assert not g.has_kind("nope")

    def test_unknown_kind_id_raises_key_error(self):
        with pytest.raises(KeyError):
            _expr_grammar().kind_id("nope")

    def test_pretty_lists_productions(self):
        text = _expr_grammar().pretty()
        assert "grammar expr" in text
        assert "token NUMBER" in text


class TestGrammarLowering:

    def test_groups_become_hidden_inline_productions(self):
        g = Grammar(
            "list",
            [Production("list", (Alternative((Group("*", (Ref("NUMBER"),)),)),))],
            [TokenRule("NUMBER", r"[0-9]+")],
        )
        assert "list#1" in g.nonterminals
        assert g.inline["list#1"]
        assert "list#1" in g.nullable
        assert "list" in g.nullable

    def test_plus_group_is_not_nullable(self):
        g = Grammar(
            "list",
            [Production("list", (Alternative((Group("+", (Ref("NUMBER"),)),)),))],
            [TokenRule("NUMBER", r"[0-9]+")],
        )
        assert "list" not in g.nullable

    def test_alternative_ranks_follow_declaration_order(self):
        g = _expr_grammar()
        ranks = [alt.rank for alt in g.alts_by_lhs["expr"]]
        assert ranks == [0, 1]


class TestGrammarValidation:

    def _fails(self, code, *args, **kwargs):
        with pytest.raises(GrammarValidationError) as info:
            Grammar(*args, **kwargs)
        assert info.value.code == code
        return info.value

    def test_no_productions(self):
        self._fails(ErrorCodes.INVALID_GRAMMAR, "empty", [])

    def test_undefined_nonterminal(self):
        err = self._fails(
            ErrorCodes.UNDEFINED_NONTERMINAL,
            "bad",
            [Production("a", (Alternative((Ref("b"),)),))],
        )
        assert "'b'" in err.message
        assert err.grammar_name == "bad"

    def test_duplicate_production(self):
        alt = (Alternative((Literal("x"),)),)
        self._fails(
            ErrorCodes.DUPLICATE_PRODUCTION,
            "dup",
            [Production("a", alt), Production("a", alt)],
        )

    def test_duplicate_token_rule(self):
        self._fails(
            ErrorCodes.DUPLICATE_TOKEN_RULE,
            "dup",
            [Production("a", (Alternative((Ref("N"),)),))],
            [TokenRule("N", "[0-9]+"), TokenRule("N", "[a-z]+")],
        )

    def test_conflicting_token_rules(self):
        self._fails(
            ErrorCodes.CONFLICTING_TOKEN_RULES,
            "conflict",
            [Production("a", (Alternative((Ref("N"),)), Alternative((Ref("M"),))))],
            [TokenRule("N", "[0-9]+"), TokenRule("M", "[0-9]+")],
        )

    def test_same_pattern_with_different_priority_is_allowed(self):
        g = Grammar(
            "ok",
            [Production("a", (Alternative((Ref("N"),)), Alternative((Ref("M"),))))],
            [TokenRule("N", "[0-9]+"), TokenRule("M", "[0-9]+", priority=2)],
        )
        assert g.token_rule("M").priority == 2

    def test_invalid_token_regex(self):
        self._fails(
            ErrorCodes.INVALID_TOKEN_PATTERN,
            "bad",
            [Production("a", (Alternative((Ref("N"),)),))],
            [TokenRule("N", "[0-9")],
        )

    def test_reserved_production_name(self):
        self._fails(
            ErrorCodes.RESERVED_NAME,
            "bad",
            [Production("document", (Alternative((Literal("x"),)),))],
        )

    def test_unknown_start_symbol(self):
        self._fails(
            ErrorCodes.UNDEFINED_NONTERMINAL,
            "bad",
            [Production("a", (Alternative((Literal("x"),)),))],
            start="b",
        )

    def test_suppression_comment_kind_must_exist(self):
        self._fails(
            ErrorCodes.UNDEFINED_TERMINAL,
            "bad",
            [Production("a", (Alternative((Literal("x"),)),))],
            suppression=SuppressionConvention(("COMMENT",)),
        )
