# tests/test_lexer.py
"""
Tests for the token-rule-driven scanner.
"""

from chartlint.errors import ErrorCodes, LexicalError
from chartlint.grammar_loader import load_grammar
from chartlint.lexer import SourceText, tokenize
from tests.conftest import CALC_SIMPLE, MINI_GRAMMAR


def _kinds(tokens, trivia=False):
    return [t.kind for t in tokens if trivia or not t.trivia]


class TestTokenize:

    def test_calc_tokens(self, calc):
        tokens, errors = tokenize(calc, CALC_SIMPLE)
        assert _kinds(tokens) == ["NUMBER", "+", "NUMBER"]
        assert _kinds(tokens, trivia=True) == ["NUMBER", "whitespace", "+", "whitespace", "NUMBER"]
        assert errors == []

    def test_spans_partition_input(self, js):
        text = "var x = 1; // note\nx = x + 2;"
        tokens, _ = tokenize(js, text)
        cursor = 0
        for tok in tokens:
            assert tok.start == cursor
            cursor = tok.end
        assert cursor == len(text)

    def test_longest_match_wins(self, js):
        tokens, _ = tokenize(js, "variable === x")
        assert [(t.kind, t.text) for t in tokens if not t.trivia] == [
            ("NAME", "variable"), ("===", "==="), ("NAME", "x"),
        ]

    def test_literal_beats_token_rule_of_same_length(self, js):
        tokens, _ = tokenize(js, "var")
        assert tokens[0].kind == "var"

    def test_trivia_comments(self, js):
        tokens, _ = tokenize(js, "a /* b */ c")
        comment = [t for t in tokens if t.kind == "BLOCK_COMMENT"]
        assert len(comment) == 1
        assert comment[0].trivia
        assert comment[0].text == "/* b */"

    def test_line_and_column(self):
        g = load_grammar(MINI_GRAMMAR)
        tokens, _ = tokenize(g, "a = 1\n  b = 2")
        b = [t for t in tokens if t.text == "b"][0]
        assert (b.line, b.column) == (2, 3)
        assert (tokens[0].line, tokens[0].column) == (1, 1)

    def test_empty_input(self, calc):
        assert tokenize(calc, "") == ([], [])


class TestLexicalErrors:

    def test_unknown_character(self, calc):
        tokens, errors = tokenize(calc, "1 # 2")
        unknown = [t for t in tokens if t.kind == "unknown"]
        assert len(unknown) == 1
        assert unknown[0].text == "#"
        assert not unknown[0].trivia
        assert len(errors) == 1
        err = errors[0]
        assert isinstance(err, LexicalError)
        assert err.code == ErrorCodes.UNMATCHED_INPUT
        assert (err.span.start, err.span.end) == (2, 3)
        assert err.message == "unrecognized input '#'"

    def test_unknown_run_stops_where_a_rule_matches(self, calc):
        tokens, errors = tokenize(calc, "1@@2")
        assert [(t.kind, t.text) for t in tokens] == [
            ("NUMBER", "1"), ("unknown", "@@"), ("NUMBER", "2"),
        ]
        assert len(errors) == 1

    def test_zero_length_matches_are_ignored(self):
        g = load_grammar('(grammar g (token A "a*") (rule r (* A)))')
        tokens, errors = tokenize(g, "aab")
        assert [(t.kind, t.text) for t in tokens] == [("A", "aa"), ("unknown", "b")]
        assert len(errors) == 1


class TestSourceText:

    def test_byte_offsets_for_multibyte_text(self, js):
        text = 'var s = "é";'
        tokens, _ = tokenize(js, text)
        string = [t for t in tokens if t.kind == "STRING"][0]
        semi = tokens[-1]
        assert (string.start, string.end) == (8, 12)
        assert (semi.start, semi.end) == (12, 13)
        assert semi.column == 12

    def test_bytes_input(self, calc):
        tokens, errors = tokenize(calc, b"1 + 2")
        assert _kinds(tokens) == ["NUMBER", "+", "NUMBER"]
        assert errors == []

    def test_line_helpers(self):
        src = SourceText("ab\ncd\n")
        assert len(src) == 6
        assert src.line_col(3) == (2, 1)
        assert src.line_span(1) == (0, 2)
        assert src.line_span(2) == (3, 5)
        assert src.slice(3, 5) == "cd"
