# chartlint/evaluator.py
"""
Rule evaluation: rules + tree -> ordered diagnostics.

Pipeline per rule
─────────────────
  1. skip disabled rules and rules below the severity threshold
  2. report a rule whose message template is broken once, as ``config-error``
  3. run the match engine, then the rule's ``where`` script per match
  4. render the message and anchor the diagnostic at the primary capture
  5. drop diagnostics covered by a suppression comment

Predicate failures skip the match and are reported once per rule and file
as ``predicate-warning``. Output is sorted by ``(file, start, rule id)``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .config import DEFAULT_CONFIG, EngineConfig
from .errors import ParseError, PredicateEvaluationError, SourceSpan
from .grammar import Grammar
from .lexer import SourceText
from .matcher import Match, PatternMatcher
from .rules import Rule
from .suppressions import SuppressionManager
from .tree import SyntaxTree, parse

logger = logging.getLogger(__name__)

#: ``Diagnostic.kind`` values
LINT = "lint"
SYNTAX_ERROR = "syntax-error"
CONFIG_ERROR = "config-error"
PREDICATE_WARNING = "predicate-warning"


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — DIAGNOSTIC MODEL
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Diagnostic:
    """
    A single finding.

    Attributes
    ----------
    rule_id   : Rule that produced it (``syntax-error`` for parse problems)
    severity  : One of :data:`chartlint.config.SEVERITIES`
    message   : Rendered message
    span      : Primary span; ``span.file`` is the source path
    secondary : Related spans
    kind      : ``lint``, ``syntax-error``, ``config-error`` or ``predicate-warning``
    code      : Structured error code for non-lint kinds
    """
    rule_id: str
    severity: str
    message: str
    span: SourceSpan
    secondary: Tuple[SourceSpan, ...] = ()
    kind: str = LINT
    code: str = ""

    @property
    def file(self) -> str:
        return self.span.file

    @property
    def line(self) -> int:
        return self.span.line

    @property
    def column(self) -> int:
        return self.span.column

    def sort_key(self) -> Tuple[str, int, str]:
        return (self.span.file, self.span.start, self.rule_id)

    def to_json(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "rule": self.rule_id,
            "severity": self.severity,
            "message": self.message,
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "start": self.span.start,
            "end": self.span.end,
            "kind": self.kind,
        }
        if self.code:
            result["code"] = self.code
        if self.secondary:
            result["secondary"] = [[s.start, s.end, s.line, s.column] for s in self.secondary]
        return result

    def to_json_str(self) -> str:
        return json.dumps(self.to_json())

    def to_gcc_format(self) -> str:
        """``file:line:col: severity: message [rule]``"""
        return f"{self.span}: {self.severity}: {self.message} [{self.rule_id}]"


def sort_diagnostics(diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
    return sorted(diagnostics, key=Diagnostic.sort_key)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — RUN CONTEXT
# ═════════════════════════════════════════════════════════════════════════

class RunContext:
    """
    State scoped to one evaluation run: the tree cache (keyed by grammar,
    path and content hash) and the rules whose configuration error has
    already been reported.

    One context belongs to one caller; the batch runner gives every job
    its own.
    """

    def __init__(self) -> None:
        self._trees: Dict[Tuple[str, str, str], SyntaxTree] = {}
        self._reported: Set[str] = set()

    @staticmethod
    def content_hash(source: Union[str, bytes, SourceText]) -> str:
        if isinstance(source, SourceText):
            data = source.data
        elif isinstance(source, str):
            data = source.encode("utf-8", "surrogateescape")
        else:
            data = source
        return hashlib.sha256(data).hexdigest()

    def tree_for(
        self,
        grammar: Grammar,
        source: Union[str, bytes, SourceText],
        path: str = "<string>",
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> SyntaxTree:
        """Parse *source*, reusing an earlier tree for identical input."""
        if not config.cache_trees:
            return parse(grammar, source, path, config)[0]
        key = (grammar.name, path, self.content_hash(source))
        tree = self._trees.get(key)
        if tree is None:
            tree = parse(grammar, source, path, config)[0]
            self._trees[key] = tree
        else:
            logger.debug("tree cache hit for %s", path)
        return tree

    @property
    def cached_trees(self) -> int:
        return len(self._trees)

    def first_report(self, rule_id: str) -> bool:
        """True the first time *rule_id*'s configuration error is seen."""
        if rule_id in self._reported:
            return False
        self._reported.add(rule_id)
        return True


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — EVALUATION
# ═════════════════════════════════════════════════════════════════════════

def _span_of(tree: SyntaxTree, ids: Sequence[int]) -> SourceSpan:
    start = tree.nodes[ids[0]].start
    end = tree.nodes[ids[-1]].end
    line, column = tree.source.line_col(start)
    return SourceSpan(start, end, line, column, tree.path)


def _capture_span(tree: SyntaxTree, match: Match, name: str) -> Optional[SourceSpan]:
    if name not in match.captures:
        return None
    ids = match.capture_ids(name)
    if not ids:
        return None
    return _span_of(tree, ids)


def config_error_diagnostic(rule: Rule, path: str = "") -> Diagnostic:
    error = rule.config_error
    return Diagnostic(
        rule_id=rule.id,
        severity="error",
        message=error.message,
        span=SourceSpan(0, 0, 0, 0, path),
        kind=CONFIG_ERROR,
        code=error.code.code,
    )


def _predicate_warning(rule: Rule, tree: SyntaxTree, error: PredicateEvaluationError) -> Diagnostic:
    logger.warning("rule %s: predicate failed on %s: %s", rule.id, tree.path, error.message)
    return Diagnostic(
        rule_id=rule.id,
        severity=error.severity.value,
        message=f"predicate of rule {rule.id!r} failed: {error.message}",
        span=SourceSpan(0, 0, 0, 0, tree.path),
        kind=PREDICATE_WARNING,
        code=error.code.code,
    )


def _match_diagnostic(rule: Rule, severity: str, tree: SyntaxTree, match: Match) -> Diagnostic:
    span = None
    if rule.primary is not None:
        span = _capture_span(tree, match, rule.primary)
    if span is None:
        span = _span_of(tree, match.nodes or (match.anchor,))
    secondary = tuple(
        s for s in (_capture_span(tree, match, name) for name in rule.secondary) if s is not None
    )
    return Diagnostic(
        rule_id=rule.id,
        severity=severity,
        message=rule.render(tree, match.captures),
        span=span,
        secondary=secondary,
    )


def _evaluate_rule(
    rule: Rule,
    tree: SyntaxTree,
    severity: str,
    config: EngineConfig,
    suppressions: SuppressionManager,
) -> List[Diagnostic]:
    out: List[Diagnostic] = []
    warned = False
    limit = config.max_matches_per_rule
    matcher = PatternMatcher(rule.pattern, tree)
    for match in matcher.run():
        if rule.predicate is not None:
            try:
                ok = rule.predicate.evaluate(tree, match.captures)
            except PredicateEvaluationError as exc:
                if not warned:
                    out.append(_predicate_warning(rule, tree, exc))
                    warned = True
                continue
            if not ok:
                continue
        diag = _match_diagnostic(rule, severity, tree, match)
        if suppressions.is_suppressed(rule.id, diag.span):
            logger.debug("suppressed %s at %s", rule.id, diag.span)
            continue
        out.append(diag)
        if limit is not None and len(out) - warned >= limit:
            break
    if matcher.guard_errors and not warned:
        out.append(_predicate_warning(rule, tree, matcher.guard_errors[0]))
    return out


def evaluate(
    rules: Iterable[Rule],
    tree: SyntaxTree,
    config: Optional[EngineConfig] = None,
    context: Optional[RunContext] = None,
) -> List[Diagnostic]:
    """
    Evaluate *rules* against *tree*.

    Parameters
    ----------
    rules:
        Compiled rules for ``tree.grammar``. Rules compiled for another
        grammar are skipped with a warning.
    config:
        Severity overrides, threshold, disabled rules and match limit.
    context:
        Run state; configuration errors are reported once per context.

    Returns
    -------
    list of Diagnostic
        Sorted by ``(file, start, rule id)``.
    """
    config = config or DEFAULT_CONFIG
    context = context or RunContext()
    suppressions = SuppressionManager.for_tree(tree)
    out: List[Diagnostic] = []
    for rule in rules:
        if not config.is_enabled(rule.id):
            continue
        if rule.grammar.name != tree.grammar.name:
            logger.warning(
                "rule %s targets grammar %s, not %s; skipped",
                rule.id, rule.grammar.name, tree.grammar.name,
            )
            continue
        if rule.config_error is not None:
            if context.first_report(rule.id):
                logger.warning("rule %s: %s", rule.id, rule.config_error.message)
                out.append(config_error_diagnostic(rule, tree.path))
            continue
        severity = config.severity_for(rule.id, rule.severity)
        if not config.passes_threshold(severity):
            continue
        out.extend(_evaluate_rule(rule, tree, severity, config, suppressions))
    return sort_diagnostics(out)


def syntax_diagnostics(errors: Iterable[ParseError], path: str = "") -> List[Diagnostic]:
    """Turn lexical/syntax error records into ``syntax-error`` diagnostics."""
    out = []
    for error in errors:
        span = error.span
        if path and not span.file:
            span = SourceSpan(span.start, span.end, span.line, span.column, path)
        out.append(
            Diagnostic(
                rule_id=SYNTAX_ERROR,
                severity="error",
                message=error.message,
                span=span,
                kind=SYNTAX_ERROR,
                code=error.code.code,
            )
        )
    return out


def lint(
    grammar: Grammar,
    rules: Iterable[Rule],
    source: Union[str, bytes, SourceText],
    path: str = "<string>",
    config: Optional[EngineConfig] = None,
    context: Optional[RunContext] = None,
) -> List[Diagnostic]:
    """
    Parse *source* and evaluate *rules*: one file, start to finish.

    Syntax errors are reported alongside lint findings, which still cover
    the part of the file that parsed.
    """
    config = config or DEFAULT_CONFIG
    context = context or RunContext()
    tree = context.tree_for(grammar, source, path, config)
    diagnostics = syntax_diagnostics(tree.errors, path)
    diagnostics.extend(evaluate(rules, tree, config, context))
    return sort_diagnostics(diagnostics)


__all__ = [
    "Diagnostic",
    "RunContext",
    "evaluate",
    "lint",
    "syntax_diagnostics",
    "sort_diagnostics",
    "LINT",
    "SYNTAX_ERROR",
    "CONFIG_ERROR",
    "PREDICATE_WARNING",
]
