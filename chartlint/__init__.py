"""
chartlint — Grammar-Driven Structural Linting
=============================================

Parse any language described by a declarative grammar into a concrete syntax
tree, then run structural pattern rules over the tree to produce lint
diagnostics. Grammars and rules are both data.

Core modules
------------
grammar
    Grammar model and validation (productions, token rules, kinds).
grammar_loader
    S-expression grammar descriptions.
lexer
    Longest-match tokenizer with lexical error recovery.
chart
    Earley chart parser, disambiguation and bounded error recovery.
tree
    Arena-backed syntax trees; ``parse()``.
pattern
    Pattern compiler (textual and S-expression syntax).
matcher
    Match engine with memoized non-greedy ellipsis matching.
predicate
    Boolean expressions over captures (rule ``where`` scripts, guards).
rules
    Rule model, message templates, rule files.
suppressions
    Inline suppression comments.
evaluator
    Diagnostics; ``evaluate()`` and ``lint()``.
batch
    Worker-pool runner over many files.
languages
    Built-in grammars (``calc``, ``json``, ``minijs``, ``python``).

Quick start
-----------
>>> from chartlint import compile_rule, get_grammar, lint
>>> js = get_grammar("minijs")
>>> rule = compile_rule("no-eval", 'call(name: "eval", args: ...)', "avoid {name}()", js)
>>> [d.message for d in lint(js, [rule], "eval(userInput);")]
['avoid eval()']

Package layout
--------------
::

    chartlint/
    ├── __init__.py            ← this file
    ├── errors.py
    ├── config.py
    ├── sexp.py
    ├── grammar.py
    ├── grammar_loader.py
    ├── lexer.py
    ├── chart.py
    ├── tree.py
    ├── predicate.py
    ├── pattern.py
    ├── matcher.py
    ├── rules.py
    ├── suppressions.py
    ├── evaluator.py
    ├── batch.py
    └── languages/
"""

from __future__ import annotations

import logging

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__author__ = "chartlint contributors"
__license__ = "MIT"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .batch import lint_sources
from .chart import ParseForest, parse_tokens
from .config import DEFAULT_CONFIG, SEVERITIES, EngineConfig
from .errors import (
    ChartlintError,
    ErrorCode,
    ErrorCodes,
    GrammarLoadError,
    GrammarValidationError,
    LexicalError,
    ParseError,
    PatternCompileError,
    PredicateEvaluationError,
    RuleConfigError,
    RuleLoadError,
    SourceSpan,
)
from .evaluator import Diagnostic, RunContext, evaluate, lint
from .grammar import (
    Alternative,
    Grammar,
    Group,
    Literal,
    Production,
    Ref,
    SuppressionConvention,
    TokenRule,
)
from .grammar_loader import load_grammar
from .languages import get_grammar
from .lexer import SourceText, Token, tokenize
from .matcher import Match, PatternMatcher, matches
from .pattern import Pattern, compile_pattern, compile_sexp_pattern
from .predicate import Predicate, compile_predicate
from .rules import Rule, compile_rule, load_rules
from .suppressions import Suppression, SuppressionManager, collect_suppressions
from .tree import SyntaxNode, SyntaxTree, build_tree, parse

__all__ = [
    "__version__",
    # config / errors
    "EngineConfig",
    "DEFAULT_CONFIG",
    "SEVERITIES",
    "ChartlintError",
    "ErrorCode",
    "ErrorCodes",
    "GrammarLoadError",
    "GrammarValidationError",
    "LexicalError",
    "ParseError",
    "PatternCompileError",
    "PredicateEvaluationError",
    "RuleConfigError",
    "RuleLoadError",
    "SourceSpan",
    # grammar
    "Grammar",
    "Production",
    "Alternative",
    "Ref",
    "Literal",
    "Group",
    "TokenRule",
    "SuppressionConvention",
    "load_grammar",
    "get_grammar",
    # parsing
    "SourceText",
    "Token",
    "tokenize",
    "ParseForest",
    "parse_tokens",
    "SyntaxNode",
    "SyntaxTree",
    "build_tree",
    "parse",
    # patterns and rules
    "Pattern",
    "compile_pattern",
    "compile_sexp_pattern",
    "Match",
    "PatternMatcher",
    "matches",
    "Predicate",
    "compile_predicate",
    "Rule",
    "compile_rule",
    "load_rules",
    # evaluation
    "Suppression",
    "SuppressionManager",
    "collect_suppressions",
    "Diagnostic",
    "RunContext",
    "evaluate",
    "lint",
    "lint_sources",
]
