# tests/test_sexp.py
"""
Tests for the S-expression reader used by grammar, rule and pattern files.
"""

import pytest

from chartlint.errors import ChartlintError, GrammarLoadError, PatternCompileError, RuleLoadError
from chartlint.sexp import Symbol, dumps, head, is_symbol, loads, loads_all


class TestReader:

    def test_atoms(self):
        assert loads('(a "b" 3 1.5)') == [Symbol("a"), "b", 3, 1.5]

    def test_symbols_are_distinguishable_from_strings(self):
        sym, text = loads('(a "a")')
        assert isinstance(sym, Symbol)
        assert not isinstance(text, Symbol)
        assert sym == text

    def test_nested_lists_and_comments(self):
        forms = loads_all("; header\n(a (b c)) ; trailing\n(d)")
        assert forms == [[Symbol("a"), [Symbol("b"), Symbol("c")]], [Symbol("d")]]

    def test_string_escapes(self):
        assert loads(r'"a\"b\\c\n"') == 'a"b\\c\n'

    def test_unknown_escapes_are_kept(self):
        assert loads(r'"[0-9]\.x"') == r"[0-9]\.x"

    def test_punctuation_symbols(self):
        assert loads("(? * + ... :right $x)") == [
            Symbol("?"), Symbol("*"), Symbol("+"), Symbol("..."), Symbol(":right"), Symbol("$x"),
        ]

    def test_negative_number(self):
        assert loads("-4") == -4

    def test_nil_and_t_stay_symbols(self):
        assert loads("(nil t)") == [Symbol("nil"), Symbol("t")]

    def test_empty_text_has_no_forms(self):
        assert loads_all("  ; only a comment\n") == []


class TestReaderErrors:

    def test_unbalanced_parenthesis(self):
        with pytest.raises(ChartlintError):
            loads_all("(a (b)")

    def test_error_class_is_configurable(self):
        with pytest.raises(GrammarLoadError) as info:
            loads_all("(a", GrammarLoadError)
        assert info.value.code == GrammarLoadError.default_code

    def test_unterminated_string(self):
        with pytest.raises(RuleLoadError):
            loads_all('(rule x (message "oops)', RuleLoadError)

    def test_stray_closing_parenthesis(self):
        with pytest.raises(ChartlintError):
            loads_all("(a))")

    @pytest.mark.parametrize("text", ["(a 'b)", "(a [b])"])
    def test_quote_and_brackets_are_rejected(self, text):
        with pytest.raises(PatternCompileError):
            loads(text, PatternCompileError)

    def test_loads_wants_exactly_one_form(self):
        with pytest.raises(ChartlintError):
            loads("(a) (b)")


class TestHelpers:

    def test_dumps_round_trips_shape(self):
        form = [Symbol("rule"), Symbol("x"), [Symbol("message"), 'say "hi"']]
        assert dumps(form) == '(rule x (message "say \\"hi\\""))'
        assert loads(dumps(form)) == form

    def test_head(self):
        assert head(loads("(grammar g)")) == "grammar"
        assert head(loads('("x")')) == ""
        assert head(Symbol("a")) == ""

    def test_is_symbol(self):
        assert is_symbol(Symbol("a"))
        assert is_symbol(Symbol("a"), "a")
        assert not is_symbol("a")
