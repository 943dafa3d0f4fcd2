# tests/test_predicate.py
"""
Tests for the predicate language used by rule scripts and pattern guards.
"""

import pytest

from chartlint.errors import ErrorCodes, PatternCompileError, PredicateEvaluationError
from chartlint.predicate import CaptureRef, compile_predicate
from tests.conftest import JS_EVAL


@pytest.fixture
def tree(js_tree):
    return js_tree(JS_EVAL)


@pytest.fixture
def names(tree):
    eval_name, arg_name = tree.find("NAME")
    return {"x": eval_name.id, "y": arg_name.id, "args": (eval_name.id, arg_name.id)}


def _eval(source, tree, bindings):
    return compile_predicate(source).evaluate(tree, bindings)


class TestPredicateEvaluation:

    @pytest.mark.parametrize("source", [
        'x.text == "eval"',
        "x == 'eval'",
        'x != y',
        'x startswith "ev"',
        'x endswith "al"',
        'y contains "Input"',
        'x =~ "^e.a"',
        'x in ["exec", "eval"]',
        'y not in ["eval"]',
        'x in "xeval"',
        'len(x) == 4',
        'count(args) == 2 and args.count == 2 and len(args) == 2',
        'x.kind == "NAME"',
        'x.line >= 1 and x.column == 1',
        'y.start == 5 and y.end == 14',
        'lower(upper(x)) == "eval"',
        'trim("  a ") == "a"',
        'matches(y, "In")',
        'text(x) == "eval" and kind(x) == "NAME" and line(x) == 1 and column(y) == 6',
        '$x.text == "eval"',
        'not false and true',
        'false or (true and not false)',
        '1 < 2 and 1.5 > 1 and "a" <= "b"',
    ])
    def test_true(self, tree, names, source):
        assert _eval(source, tree, names) is True

    @pytest.mark.parametrize("source", [
        'x == "exec"',
        'x startswith "x"',
        'not (x == "eval")',
        'x in []',
        'true and false',
    ])
    def test_false(self, tree, names, source):
        assert _eval(source, tree, names) is False


class TestPredicateRuntimeErrors:

    def test_type_mismatch(self, tree, names):
        with pytest.raises(PredicateEvaluationError) as info:
            _eval('x.line == "1"', tree, names)
        assert info.value.code == ErrorCodes.PREDICATE_TYPE

    def test_non_boolean_result(self, tree, names):
        with pytest.raises(PredicateEvaluationError) as info:
            _eval("x.text", tree, names)
        assert info.value.code == ErrorCodes.PREDICATE_TYPE

    def test_unbound_capture(self, tree):
        with pytest.raises(PredicateEvaluationError) as info:
            _eval('z == "a"', tree, {})
        assert info.value.code == ErrorCodes.PREDICATE_RUNTIME

    def test_invalid_runtime_regex(self, tree, names):
        with pytest.raises(PredicateEvaluationError):
            _eval('x =~ "("', tree, names)

    def test_ordering_needs_numbers_or_strings(self, tree, names):
        with pytest.raises(PredicateEvaluationError):
            _eval("true < false", tree, names)


class TestPredicateCompilation:

    def test_references(self):
        predicate = compile_predicate('x == y or len($z) > 0')
        assert predicate.references == frozenset({"x", "y", "z"})

    @pytest.mark.parametrize("source", [
        "x ==",
        "(x == y",
        "foo(x)",
        "len(x, y)",
        "x.colour == 1",
        "",
    ])
    def test_syntax_errors(self, source):
        with pytest.raises(PatternCompileError) as info:
            compile_predicate(source)
        assert info.value.code == ErrorCodes.PREDICATE_SYNTAX

    def test_known_captures(self):
        compile_predicate("x == 'a'", known=["x"])
        with pytest.raises(PatternCompileError) as info:
            compile_predicate("y == 'a'", known=["x"])
        assert info.value.code == ErrorCodes.UNBOUND_CAPTURE


class TestCaptureRef:

    def test_single_node(self, tree, names):
        ref = CaptureRef(tree, names["x"])
        assert (ref.text, ref.kind, ref.count) == ("eval", "NAME", 1)
        assert not ref.many

    def test_sibling_run(self, tree, names):
        ref = CaptureRef(tree, names["args"])
        assert ref.many
        assert ref.text == "eval(userInput"

    def test_empty_run(self, tree):
        ref = CaptureRef(tree, ())
        assert (ref.text, ref.kind, ref.count, ref.start) == ("", "", 0, 0)
