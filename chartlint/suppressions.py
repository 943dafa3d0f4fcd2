# chartlint/suppressions.py
"""
Inline suppression comments.

A grammar's :class:`~chartlint.grammar.SuppressionConvention` names its
comment token kinds and a directive regex (by default
``chartlint: ignore[rule-a, prefix-*]``). Each comment whose text contains
the directive suppresses the listed rules (``fnmatch`` globs; no list means
every rule):

* a comment that shares its line with code suppresses that line;
* a comment alone on its line suppresses the outermost node that starts at
  the next significant token, skipping layout tokens such as a ``NEWLINE``
  (significant tokens made of whitespace only).

Diagnostics are suppressed when their primary span intersects a suppressed
span for their rule id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Iterable, List, Optional, Tuple

from .errors import SourceSpan
from .grammar import DOCUMENT, Grammar, Group
from .tree import SyntaxTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Suppression:
    """One suppressed span, for the rule ids matching ``rules``."""
    span: SourceSpan
    rules: Tuple[str, ...] = ()
    comment: Optional[SourceSpan] = None

    def applies_to(self, rule_id: str) -> bool:
        if not self.rules:
            return True
        return any(fnmatchcase(rule_id, pattern) for pattern in self.rules)

    def covers(self, rule_id: str, span: SourceSpan) -> bool:
        return self.applies_to(rule_id) and self.span.intersects(span)


def _directive_rules(text: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in text.split(",") if part.strip())


def _repeats(grammar: Grammar, kind: str) -> bool:
    """True when production *kind* contains a ``*`` or ``+`` group."""
    try:
        production = grammar.production(kind)
    except KeyError:
        return False
    stack = [s for alt in production.alternatives for s in alt.symbols]
    while stack:
        sym = stack.pop()
        if isinstance(sym, Group):
            if sym.quantifier in ("*", "+"):
                return True
            stack.extend(sym.symbols)
    return False


def _outermost_at(tree: SyntaxTree, offset: int) -> int:
    """
    The outermost node starting at *offset*, without climbing into a list
    (a node built from a repetition) that holds other items too.
    """
    node = tree.node_at(offset)
    while node.parent is not None:
        parent = tree.nodes[node.parent]
        if parent.start != node.start or parent.kind == DOCUMENT:
            break
        if len(tree.significant_children(parent.id)) > 1 and _repeats(tree.grammar, parent.kind):
            break
        node = parent
    return node.id


def collect_suppressions(tree: SyntaxTree) -> List[Suppression]:
    """Scan *tree*'s comment tokens for suppression directives."""
    grammar = tree.grammar
    convention = grammar.suppression
    if not convention.comment_kinds:
        return []
    source = tree.source
    tokens = tree.tokens
    found: List[Suppression] = []
    for index, tok in enumerate(tokens):
        if tok.kind not in convention.comment_kinds:
            continue
        m = grammar.directive_regex.search(tok.text)
        if m is None:
            continue
        rules = _directive_rules(m.groupdict().get("rules") or "")
        comment = SourceSpan(tok.start, tok.end, tok.line, tok.column, tree.path)
        line_start, line_end = source.line_span(tok.line)
        before = source.slice(line_start, tok.start).strip()
        if before:
            span = SourceSpan(line_start, line_end, tok.line, 1, tree.path)
        else:
            nxt = next(
                (t for t in tokens[index + 1:] if not t.trivia and t.text.strip()), None
            )
            if nxt is None:
                logger.debug("suppression comment at %s has nothing after it", comment)
                continue
            node = tree.nodes[_outermost_at(tree, nxt.start)]
            line, column = source.line_col(node.start)
            span = SourceSpan(node.start, node.end, line, column, tree.path)
        found.append(Suppression(span, rules, comment))
    return found


class SuppressionManager:
    """
    Suppressions for one tree, plus programmatic ones.

    >>> sm = SuppressionManager.for_tree(tree)
    >>> sm.add_global_suppression("no-eval")
    >>> kept = sm.filter_diagnostics(diagnostics)
    """

    def __init__(self, suppressions: Iterable[Suppression] = ()) -> None:
        self._inline: List[Suppression] = list(suppressions)
        self._global: List[str] = []

    @classmethod
    def for_tree(cls, tree: SyntaxTree) -> "SuppressionManager":
        return cls(collect_suppressions(tree))

    @property
    def suppressions(self) -> Tuple[Suppression, ...]:
        return tuple(self._inline)

    def add_global_suppression(self, rule_glob: str) -> None:
        """Suppress every diagnostic of rules matching *rule_glob*."""
        self._global.append(rule_glob)

    def is_suppressed(self, rule_id: str, span: SourceSpan) -> bool:
        if any(fnmatchcase(rule_id, g) for g in self._global):
            return True
        return any(s.covers(rule_id, span) for s in self._inline)

    def filter_diagnostics(self, diagnostics):
        """Return only the diagnostics that are not suppressed."""
        return [d for d in diagnostics if not self.is_suppressed(d.rule_id, d.span)]


__all__ = ["Suppression", "SuppressionManager", "collect_suppressions"]
