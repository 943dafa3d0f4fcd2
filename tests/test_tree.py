# tests/test_tree.py
"""
Tests for the arena syntax tree and its builder.
"""

import pytest

from chartlint.lexer import SourceText
from chartlint.tree import parse
from tests.conftest import CALC_SIMPLE, JS_PROGRAM, assert_partition, leaf_texts


class TestTreeShape:

    def test_preorder_ids(self, calc):
        tree, _ = parse(calc, CALC_SIMPLE)
        assert [n.kind for n in tree.nodes] == [
            "document", "expr", "expr", "NUMBER", "whitespace", "+", "whitespace", "expr", "NUMBER",
        ]
        assert all(n.id == i for i, n in enumerate(tree.nodes))

    def test_trivia_is_woven_between_surrounding_children(self, calc):
        tree, _ = parse(calc, CALC_SIMPLE)
        assert tree.nodes[1].children == (2, 4, 5, 6, 7)
        assert tree.significant_children(1) == (2, 5, 7)
        assert tree.nodes[4].trivia

    def test_parent_span_is_union_of_children(self, js):
        tree, _ = parse(js, JS_PROGRAM)
        for node in tree.nodes:
            if node.children:
                kids = [tree.nodes[c] for c in node.children]
                assert node.start == kids[0].start
                assert node.end == kids[-1].end

    def test_leading_and_trailing_trivia_hang_off_the_root(self, js):
        tree, _ = parse(js, "  f();  ")
        kinds = [n.kind for n in tree.children(0)]
        assert kinds == ["whitespace", "program", "whitespace"]

    def test_partition(self, js):
        tree, errors = parse(js, JS_PROGRAM)
        assert errors == []
        assert_partition(tree)

    def test_every_significant_token_is_one_leaf(self, js):
        tree, _ = parse(js, JS_PROGRAM)
        leaves = [n.token for n in tree.leaves()]
        assert leaves == list(range(len(tree.tokens)))

    def test_call_shape(self, js):
        tree, _ = parse(js, "eval(userInput);")
        assert tree.sexp() == (
            "(document (program (expr_stmt (call (NAME 'eval') (( '(')"
            " (arguments (NAME 'userInput')) () ')')) (; ';'))))"
        )

    def test_reparse_is_structurally_identical(self, js):
        first, _ = parse(js, JS_PROGRAM)
        second, _ = parse(js, JS_PROGRAM)
        assert first.structure() == second.structure()

    def test_path_is_kept(self, calc):
        tree, _ = parse(calc, "1", path="a.calc")
        assert tree.path == "a.calc"

    def test_accepts_source_text(self, calc):
        tree, _ = parse(calc, SourceText("1 + 2"))
        assert tree.text(0) == "1 + 2"


class TestNavigation:

    @pytest.fixture
    def tree(self, calc):
        return parse(calc, CALC_SIMPLE)[0]

    def test_descendants_are_contiguous(self, tree):
        assert list(tree.descendants(1)) == list(range(2, 9))
        assert list(tree.descendants(3)) == []

    def test_node_at(self, tree):
        assert tree.node_at(2).kind == "+"
        assert tree.node_at(4).kind == "NUMBER"

    def test_parent_and_ancestors(self, tree):
        assert tree.parent(3).id == 2
        assert tree.parent(0) is None
        assert [n.id for n in tree.ancestors(3)] == [2, 1, 0]

    def test_find_and_kind_index(self, tree, calc):
        assert [n.id for n in tree.find("expr")] == [1, 2, 7]
        assert tree.nodes_of_kind(calc.kind_id("NUMBER")) == (3, 8)
        assert tree.find("no-such-kind") == []

    def test_text_and_line_col(self, tree):
        assert tree.text(7) == "2"
        assert tree.line_col(7) == (1, 5)

    def test_leaf_texts(self, tree):
        assert leaf_texts(tree) == ["1", "+", "2"]

    def test_pretty(self, tree):
        text = tree.pretty()
        assert text.splitlines()[0] == "document [0, 5)"
        assert "NUMBER [0, 1) '1'" in text
