# tests/conftest.py
"""
Shared fixtures and source constants for the chartlint test-suite.
"""

import pytest

from chartlint.languages import get_grammar
from chartlint.tree import parse


# ---------------------------------------------------------------------------
# Source constants
# ---------------------------------------------------------------------------

CALC_SIMPLE = "1 + 2"
CALC_CHAIN = "1 + 2 + 3"
CALC_BROKEN = "1 + 2 + x"

JSON_OBJECT = '{"name": "chartlint", "tags": [1, 2, 3], "ok": true}'
JSON_MISSING_COMMA = "[1, 2 3]"

JS_EVAL = "eval(userInput);"
JS_SAFE_EVAL = "safeEval(userInput);"

JS_PROGRAM = """\
// entry point
var config = load("app.json");
function run(input) {
  if (input == null) {
    return 0;
  }
  eval(input);
  return 1;
}
run(config);
"""

JS_SIBLINGS = "var a = 1;\nf();\ng();\nreturn 1;\nreturn 2;\n"

JS_SUPPRESSED = """\
// chartlint: ignore[no-eval]
eval(a);
eval(b);
eval(c); // chartlint: ignore[no-eval]
eval(d); // chartlint: ignore[other-rule]
"""

PY_PROGRAM = """\
import os
from subprocess import call as run_call


def load(path):
    data = open(path).read()
    return eval(data)  # chartlint: ignore[no-eval]


# chartlint: ignore[no-eval]
eval(os.environ["SEED"])
result = eval(input("expr: "))
print(result, sep="")
"""

MINI_GRAMMAR = r'''
(grammar mini
  (token NUMBER "[0-9]+")
  (token NAME "[a-z]+")
  (token COMMENT "#[^\n]*" :trivia)
  (rule list (* item))
  (rule item :transparent NUMBER pair)
  (rule pair (NAME "=" NUMBER))
  (suppress (comments COMMENT)))
'''


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def calc():
    return get_grammar("calc")


@pytest.fixture
def json_grammar():
    return get_grammar("json")


@pytest.fixture
def js():
    return get_grammar("minijs")


@pytest.fixture
def py():
    return get_grammar("python")


@pytest.fixture
def js_tree(js):
    def build(source, path="<string>"):
        tree, _ = parse(js, source, path)
        return tree
    return build


def leaf_texts(tree, node_id=0):
    """Source text of every leaf under *node_id*, trivia excluded."""
    return [tree.text(n.id) for n in tree.leaves(node_id) if not n.trivia]


def assert_partition(tree):
    """Leaf spans tile the whole source without gaps or overlaps."""
    cursor = 0
    for leaf in tree.leaves():
        assert leaf.start == cursor
        cursor = leaf.end
    assert cursor == len(tree.source)
