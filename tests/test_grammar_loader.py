# tests/test_grammar_loader.py
"""
Tests for S-expression grammar descriptions and the built-in languages.
"""

import pytest

from chartlint.errors import ErrorCodes, GrammarLoadError, GrammarValidationError
from chartlint.grammar_loader import load_grammar
from chartlint.languages import available, get_grammar, grammar_source
from chartlint.evaluator import LINT, lint
from chartlint.matcher import matches
from chartlint.pattern import compile_pattern
from chartlint.rules import compile_rule
from chartlint.tree import parse
from tests.conftest import MINI_GRAMMAR, PY_PROGRAM, assert_partition


class TestLoadGrammar:

    def test_mini_grammar(self):
        g = load_grammar(MINI_GRAMMAR)
        assert g.name == "mini"
        assert g.start == "list"
        assert g.production("item").transparent
        assert g.token_rule("COMMENT").trivia
        assert g.suppression.comment_kinds == ("COMMENT",)
        assert g.is_comment("COMMENT")

    def test_start_form(self):
        g = load_grammar('(grammar g (start b) (rule a "x") (rule b a))')
        assert g.start == "b"

    def test_priority_keyword(self):
        g = load_grammar('(grammar g (token KW "if" :priority 5) (token ID "[a-z]+") (rule a KW ID))')
        assert g.token_rule("KW").priority == 5
        assert g.token_rule("ID").priority == 0

    def test_right_associative_alternative(self):
        g = load_grammar(
            '(grammar g (token N "[0-9]+") (rule e N (e "^" e :right)))'
        )
        assoc = [alt.assoc for alt in g.production("e").alternatives]
        assert assoc == ["left", "right"]

    def test_empty_alternative(self):
        g = load_grammar('(grammar g (rule a () ("x" a)))')
        assert "a" in g.nullable

    def test_groups(self):
        g = load_grammar('(grammar g (token N "[0-9]+") (rule a (N (? "," N) (* ";") (+ N))))')
        hidden = sorted(n for n in g.nonterminals if n.startswith("a#"))
        assert hidden == ["a#1", "a#2", "a#3"]

    def test_custom_directive(self):
        g = load_grammar(
            '(grammar g (token C "#.*" :trivia) (rule a "x")'
            ' (suppress (comments C) (directive "noqa(?::(?P<rules>.*))?")))'
        )
        assert g.directive_regex.search("# noqa:x").group("rules") == "x"


class TestLoadGrammarErrors:

    @pytest.mark.parametrize("text", [
        "(grammar)",
        "(language g (rule a \"x\"))",
        '(grammar g (rule a "x")) (grammar h (rule a "x"))',
        '(grammar g (bogus a))',
        '(grammar g (rule a "x" :sideways))',
        '(grammar g (token N))',
        '(grammar g (token N "x" :priority high) (rule a N))',
        '(grammar g (rule a ("x" (% "y"))))',
        '(grammar g (rule a))',
        '(grammar g (rule a "x"',
    ])
    def test_malformed_description(self, text):
        with pytest.raises(GrammarLoadError) as info:
            load_grammar(text)
        assert info.value.code == ErrorCodes.GRAMMAR_SYNTAX

    def test_well_formed_but_invalid(self):
        with pytest.raises(GrammarValidationError) as info:
            load_grammar("(grammar g (rule a b))")
        assert info.value.code == ErrorCodes.UNDEFINED_NONTERMINAL


class TestBuiltinLanguages:

    def test_available(self):
        assert available() == ["calc", "json", "minijs", "python"]

    @pytest.mark.parametrize("name", ["calc", "json", "minijs", "python"])
    def test_builtins_load(self, name):
        g = get_grammar(name)
        assert g.name == name

    def test_grammars_are_loaded_once(self):
        assert get_grammar("json") is get_grammar("json")

    def test_unknown_language(self):
        with pytest.raises(KeyError):
            grammar_source("cobol")

    def test_minijs_suppression_convention(self):
        g = get_grammar("minijs")
        assert g.suppression.comment_kinds == ("COMMENT", "BLOCK_COMMENT")
        assert g.is_trivia("COMMENT")


class TestPythonLanguage:

    def _tree(self, py, source):
        tree, errors = parse(py, source, "t.py")
        assert errors == []
        return tree

    def _statements(self, tree):
        module = tree.find("module")[0]
        kinds = [tree.nodes[i].kind for i in tree.significant_children(module.id)]
        return [k for k in kinds if k != "NEWLINE"]

    def test_program_parses_cleanly(self, py):
        tree = self._tree(py, PY_PROGRAM)
        assert_partition(tree)
        assert self._statements(tree) == [
            "import_stmt", "from_import_stmt", "def_stmt", "assign_stmt",
            "return_stmt", "expr_stmt", "assign_stmt", "expr_stmt",
        ]

    def test_comments_are_trivia_with_suppressions(self, py):
        assert py.is_trivia("COMMENT")
        assert py.suppression.comment_kinds == ("COMMENT",)

    def test_eval_rule_honours_suppressions(self, py):
        rule = compile_rule("no-eval", 'call(name: "eval", ...)', "avoid eval", py)
        diagnostics = lint(py, [rule], PY_PROGRAM, "prog.py")
        assert [(d.kind, d.span.line) for d in diagnostics] == [(LINT, 12)]

    def test_operator_precedence(self, py):
        tree = self._tree(py, "x = a.b(1) + 2 * c\n")
        pattern = compile_pattern(
            'sum(call(attribute(NAME, ".", "b"), ...), "+", term(NUMBER, "*", NAME))', py
        )
        assert len(list(matches(pattern, tree))) == 1

    def test_block_bodies_are_siblings_of_their_header(self, py):
        tree = self._tree(py, "if ready:\n    go()\nelse: stop()\n")
        assert self._statements(tree) == ["if_stmt", "expr_stmt", "else_clause"]
        clause = tree.find("else_clause")[0]
        kinds = [tree.nodes[i].kind for i in tree.significant_children(clause.id)]
        assert kinds == ["else", ":", "expr_stmt"]

    def test_newlines_inside_brackets(self, py):
        tree = self._tree(py, "total = add(\n    1,\n    2,\n)\nitems = [\n    a,\n]\n")
        assert len(tree.find("call")) == 1
        assert len(tree.find("list_display")) == 1

    def test_backslash_continuation(self, py):
        tree = self._tree(py, "x = 1 + \\\n    2\n")
        assert len(tree.find("sum")) == 1

    def test_string_forms(self, py):
        tree = self._tree(py, 's = r"a\\b" \'c\' """two\nlines"""\n')
        strings = tree.find("strings")
        assert len(strings) == 1
        assert len(tree.significant_children(strings[0].id)) == 3

    def test_missing_final_newline(self, py):
        tree = self._tree(py, "import os\nos.exit(0)")
        assert self._statements(tree) == ["import_stmt", "expr_stmt"]

    def test_broken_line_is_reported(self, py):
        _, errors = parse(py, "x = (1 +\n")
        assert errors
