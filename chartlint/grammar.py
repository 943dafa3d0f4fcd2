# chartlint/grammar.py
"""
In-memory grammar model.

A :class:`Grammar` is an immutable, validated description of one language:
ordered productions over terminal references, nonterminal references and
quantified groups, plus ordered token rules. Construction validates the
description and lowers it into the flat tables the lexer and the chart
parser consume:

* quantified groups become hidden *inline* productions (``expr#1``), so the
  parser only ever sees plain sequences of names;
* string literals become implicit token rules whose kind is the literal text;
* every production and token name gets a stable integer kind id.

Public API
----------
    Ref(name)                   - reference to a production or token rule
    Literal(text)               - literal terminal, e.g. ``Literal("+")``
    Group(quantifier, symbols)  - ``?`` / ``*`` / ``+`` over a sequence
    Alternative(symbols, assoc) - one right-hand side
    Production(name, alternatives, transparent=False, inline=False)
    TokenRule(name, pattern, priority=0, trivia=False)
    SuppressionConvention(comment_kinds, directive)
    Grammar(name, productions, tokens, start=None, suppression=None)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import ErrorCodes, GrammarValidationError

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════
# §1  Reserved kinds
# ════════════════════════════════════════════════════════════════════════

DOCUMENT = "document"
ERROR = "error"
UNPARSED = "unparsed"
UNKNOWN = "unknown"
WHITESPACE = "whitespace"

#: Kinds every grammar's kind table starts with, in id order.
RESERVED_KINDS: Tuple[str, ...] = (DOCUMENT, ERROR, UNPARSED, UNKNOWN, WHITESPACE)

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*$")

DEFAULT_DIRECTIVE = r"chartlint:\s*ignore(?:\[(?P<rules>[^\]]*)\])?"


# ════════════════════════════════════════════════════════════════════════
# §2  Declarative description
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Ref:
    """A reference to a production or a token rule, by name."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class Literal:
    """A literal terminal; its token kind is the text itself."""

    text: str

    def __str__(self) -> str:
        return repr(self.text)


@dataclass(frozen=True, slots=True)
class Group:
    """A quantified symbol sequence: ``?`` optional, ``*`` zero-or-more, ``+`` one-or-more."""

    quantifier: str
    symbols: Tuple["Symbol", ...]

    def __str__(self) -> str:
        inner = " ".join(str(s) for s in self.symbols)
        return f"({inner}){self.quantifier}"


Symbol = Union[Ref, Literal, Group]


@dataclass(frozen=True, slots=True)
class Alternative:
    symbols: Tuple[Symbol, ...]
    assoc: str = "left"

    def __str__(self) -> str:
        body = " ".join(str(s) for s in self.symbols) or "ε"
        return body if self.assoc == "left" else f"{body} %right"


@dataclass(frozen=True, slots=True)
class Production:
    """
    A named nonterminal and its ordered alternatives.

    ``transparent`` collapses the node into its only child when it has
    exactly one; ``inline`` always splices the node's children into the
    parent.
    """

    name: str
    alternatives: Tuple[Alternative, ...]
    transparent: bool = False
    inline: bool = False


@dataclass(frozen=True, slots=True)
class TokenRule:
    name: str
    pattern: str
    priority: int = 0
    trivia: bool = False
    literal: bool = False


@dataclass(frozen=True, slots=True)
class SuppressionConvention:
    """
    How suppression comments look in a language.

    ``comment_kinds`` names the token kinds that are comments. The
    ``directive`` regex is searched in a comment's text; its ``rules`` group,
    when present, is a comma separated list of rule ids or globs. A directive
    without a ``rules`` group (or with an empty one) suppresses every rule.
    """

    comment_kinds: Tuple[str, ...] = ()
    directive: str = DEFAULT_DIRECTIVE


# ════════════════════════════════════════════════════════════════════════
# §3  Lowered tables
# ════════════════════════════════════════════════════════════════════════


class FlatAlternative:
    """One alternative after group lowering: a plain sequence of names."""

    __slots__ = ("id", "lhs", "symbols", "terminal", "assoc", "rank")

    def __init__(
        self,
        id: int,
        lhs: str,
        symbols: Tuple[str, ...],
        terminal: Tuple[bool, ...],
        assoc: str,
        rank: int,
    ) -> None:
        self.id = id
        self.lhs = lhs
        self.symbols = symbols
        self.terminal = terminal
        self.assoc = assoc
        self.rank = rank

    def __len__(self) -> int:
        return len(self.symbols)

    def __repr__(self) -> str:
        return f"<{self.id}: {self.lhs} -> {' '.join(self.symbols) or 'ε'}>"


def _hidden_name(lhs: str, index: int) -> str:
    return f"{lhs}#{index}"


# ════════════════════════════════════════════════════════════════════════
# §4  Grammar
# ════════════════════════════════════════════════════════════════════════


class Grammar:
    """
    A validated, immutable grammar.

    Parameters
    ----------
    name:
        Language name, e.g. ``"json"``.
    productions:
        Ordered productions. The first one is the start symbol unless
        *start* says otherwise.
    tokens:
        Ordered explicit token rules. Literal terminals used in productions
        are registered ahead of them.
    start:
        Optional start symbol.
    suppression:
        Optional suppression comment convention.

    Raises
    ------
    GrammarValidationError
        On undefined nonterminals, duplicate productions, duplicate or
        conflicting token rules, invalid regexes and reserved names.
    """

    def __init__(
        self,
        name: str,
        productions: Sequence[Production],
        tokens: Sequence[TokenRule] = (),
        start: Optional[str] = None,
        suppression: Optional[SuppressionConvention] = None,
    ) -> None:
        self.name = name
        self.productions: Tuple[Production, ...] = tuple(productions)
        self.suppression = suppression or SuppressionConvention()
        if not self.productions:
            self._fail("grammar defines no productions", ErrorCodes.INVALID_GRAMMAR)
        self.start: str = start or self.productions[0].name

        self._by_name: Dict[str, Production] = {}
        for prod in self.productions:
            if not _NAME_RE.match(prod.name):
                self._fail(f"invalid production name {prod.name!r}", ErrorCodes.INVALID_GRAMMAR)
            if prod.name in RESERVED_KINDS:
                self._fail(f"production name {prod.name!r} is reserved", ErrorCodes.RESERVED_NAME)
            if prod.name in self._by_name:
                self._fail(f"duplicate production {prod.name!r}", ErrorCodes.DUPLICATE_PRODUCTION)
            self._by_name[prod.name] = prod
        if self.start not in self._by_name:
            self._fail(f"start symbol {self.start!r} is not a production", ErrorCodes.UNDEFINED_NONTERMINAL)

        self.token_rules: Tuple[TokenRule, ...] = self._collect_tokens(tokens)
        self._token_by_name: Dict[str, TokenRule] = {t.name: t for t in self.token_rules}
        self.trivia_kinds: FrozenSet[str] = frozenset(
            [WHITESPACE] + [t.name for t in self.token_rules if t.trivia]
        )

        for kind in self.suppression.comment_kinds:
            if kind not in self._token_by_name:
                self._fail(
                    f"suppression comment kind {kind!r} is not a token rule",
                    ErrorCodes.UNDEFINED_TERMINAL,
                )
        try:
            self.directive_regex = re.compile(self.suppression.directive)
        except re.error as exc:
            self._fail(f"invalid suppression directive: {exc}", ErrorCodes.INVALID_TOKEN_PATTERN)

        self._lower()
        self._compute_nullable()
        self._build_kind_table()
        logger.debug(
            "grammar %s: %d productions (%d lowered alternatives), %d token rules",
            self.name, len(self.productions), len(self.alternatives), len(self.token_rules),
        )

    # ─── validation helpers ─────────────────────────────────────────────

    def _fail(self, message: str, code) -> None:
        raise GrammarValidationError(
            f"grammar {self.name!r}: {message}", grammar_name=self.name, code=code
        )

    def _collect_tokens(self, tokens: Sequence[TokenRule]) -> Tuple[TokenRule, ...]:
        literals: Dict[str, TokenRule] = {}

        def visit(symbols: Iterable[Symbol]) -> None:
            for sym in symbols:
                if isinstance(sym, Literal):
                    if not sym.text:
                        self._fail("empty literal terminal", ErrorCodes.INVALID_GRAMMAR)
                    if sym.text not in literals:
                        literals[sym.text] = TokenRule(
                            sym.text, re.escape(sym.text), priority=1, literal=True
                        )
                elif isinstance(sym, Group):
                    if sym.quantifier not in ("?", "*", "+"):
                        self._fail(f"unknown quantifier {sym.quantifier!r}", ErrorCodes.INVALID_GRAMMAR)
                    if not sym.symbols:
                        self._fail("empty quantified group", ErrorCodes.INVALID_GRAMMAR)
                    visit(sym.symbols)

        for prod in self.productions:
            for alt in prod.alternatives:
                visit(alt.symbols)

        rules: List[TokenRule] = list(literals.values())
        seen: Dict[str, TokenRule] = dict(literals)
        for tok in tokens:
            if not _NAME_RE.match(tok.name):
                self._fail(f"invalid token name {tok.name!r}", ErrorCodes.INVALID_GRAMMAR)
            if tok.name in seen:
                self._fail(f"duplicate token rule {tok.name!r}", ErrorCodes.DUPLICATE_TOKEN_RULE)
            if tok.name in RESERVED_KINDS and tok.name != WHITESPACE:
                self._fail(f"token name {tok.name!r} is reserved", ErrorCodes.RESERVED_NAME)
            if tok.name in self._by_name:
                self._fail(
                    f"{tok.name!r} names both a production and a token rule",
                    ErrorCodes.DUPLICATE_PRODUCTION,
                )
            seen[tok.name] = tok
            rules.append(tok)

        specificity: Dict[Tuple[str, int], str] = {}
        regexes: List[re.Pattern] = []
        for tok in rules:
            try:
                regexes.append(re.compile(tok.pattern))
            except re.error as exc:
                self._fail(
                    f"token rule {tok.name!r} has an invalid pattern: {exc}",
                    ErrorCodes.INVALID_TOKEN_PATTERN,
                )
            key = (tok.pattern, tok.priority)
            if key in specificity:
                self._fail(
                    f"token rules {specificity[key]!r} and {tok.name!r} have the same "
                    f"pattern and priority {tok.priority}",
                    ErrorCodes.CONFLICTING_TOKEN_RULES,
                )
            specificity[key] = tok.name
        for text in literals:
            if text in RESERVED_KINDS:
                self._fail(f"literal {text!r} is a reserved kind", ErrorCodes.RESERVED_NAME)
            if text in self._by_name:
                self._fail(
                    f"literal {text!r} collides with a production name",
                    ErrorCodes.INVALID_GRAMMAR,
                )
        self.token_regexes: Tuple[re.Pattern, ...] = tuple(regexes)
        return tuple(rules)

    # ─── lowering ───────────────────────────────────────────────────────

    def _lower(self) -> None:
        self.alternatives: List[FlatAlternative] = []
        self.alts_by_lhs: Dict[str, Tuple[FlatAlternative, ...]] = {}
        self.inline: Dict[str, bool] = {}
        self.transparent: Dict[str, bool] = {}
        pending: Dict[str, List[FlatAlternative]] = {}
        counters: Dict[str, int] = {}

        def add(lhs: str, names: List[str], terms: List[bool], assoc: str) -> None:
            bucket = pending.setdefault(lhs, [])
            alt = FlatAlternative(
                len(self.alternatives), lhs, tuple(names), tuple(terms), assoc, len(bucket)
            )
            self.alternatives.append(alt)
            bucket.append(alt)

        def flatten(owner: str, symbols: Sequence[Symbol]) -> Tuple[List[str], List[bool]]:
            names: List[str] = []
            terms: List[bool] = []
            for sym in symbols:
                if isinstance(sym, Literal):
                    names.append(sym.text)
                    terms.append(True)
                elif isinstance(sym, Ref):
                    if sym.name in self._token_by_name:
                        names.append(sym.name)
                        terms.append(True)
                    elif sym.name in self._by_name:
                        names.append(sym.name)
                        terms.append(False)
                    else:
                        self._fail(
                            f"production {owner!r} references undefined nonterminal {sym.name!r}",
                            ErrorCodes.UNDEFINED_NONTERMINAL,
                        )
                else:
                    names.append(lower_group(owner, sym))
                    terms.append(False)
            return names, terms

        def lower_group(owner: str, group: Group) -> str:
            counters[owner] = counters.get(owner, 0) + 1
            hidden = _hidden_name(owner, counters[owner])
            self.inline[hidden] = True
            self.transparent[hidden] = False
            names, terms = flatten(owner, group.symbols)
            if group.quantifier == "?":
                add(hidden, names, terms, "left")
                add(hidden, [], [], "left")
            elif group.quantifier == "*":
                add(hidden, [], [], "left")
                add(hidden, [hidden] + names, [False] + terms, "left")
            else:
                add(hidden, names, terms, "left")
                add(hidden, [hidden] + names, [False] + terms, "left")
            return hidden

        for prod in self.productions:
            self.inline[prod.name] = prod.inline
            self.transparent[prod.name] = prod.transparent
            pending.setdefault(prod.name, [])
            for alt in prod.alternatives:
                if alt.assoc not in ("left", "right"):
                    self._fail(f"unknown associativity {alt.assoc!r}", ErrorCodes.INVALID_GRAMMAR)
                names, terms = flatten(prod.name, alt.symbols)
                add(prod.name, names, terms, alt.assoc)

        self.alts_by_lhs = {lhs: tuple(alts) for lhs, alts in pending.items()}
        self.nonterminals: FrozenSet[str] = frozenset(self.alts_by_lhs)

    def _compute_nullable(self) -> None:
        # null_alt[N] only depends on nonterminals that became nullable
        # before N, so following it never cycles.
        self.null_alt: Dict[str, FlatAlternative] = {}
        changed = True
        while changed:
            changed = False
            for alt in self.alternatives:
                if alt.lhs in self.null_alt:
                    continue
                if all(
                    not term and name in self.null_alt
                    for name, term in zip(alt.symbols, alt.terminal)
                ):
                    self.null_alt[alt.lhs] = alt
                    changed = True
        self.nullable: FrozenSet[str] = frozenset(self.null_alt)

    def _build_kind_table(self) -> None:
        names: List[str] = list(RESERVED_KINDS)
        for prod in self.productions:
            names.append(prod.name)
        for tok in self.token_rules:
            if tok.name not in names:
                names.append(tok.name)
        self.kind_names: Tuple[str, ...] = tuple(names)
        self.kind_ids: Dict[str, int] = {n: i for i, n in enumerate(names)}

    # ─── queries ────────────────────────────────────────────────────────

    def production(self, name: str) -> Production:
        return self._by_name[name]

    def token_rule(self, name: str) -> TokenRule:
        return self._token_by_name[name]

    def has_kind(self, name: str) -> bool:
        return name in self.kind_ids

    def kind_id(self, name: str) -> int:
        """Integer kind id for *name*; raises ``KeyError`` for unknown kinds."""
        return self.kind_ids[name]

    def kind_name(self, kind_id: int) -> str:
        return self.kind_names[kind_id]

    def is_token_kind(self, name: str) -> bool:
        return name in self._token_by_name or name in (UNKNOWN, WHITESPACE)

    def is_trivia(self, kind: str) -> bool:
        return kind in self.trivia_kinds

    def is_comment(self, kind: str) -> bool:
        return kind in self.suppression.comment_kinds

    def pretty(self) -> str:
        lines = [f"grammar {self.name} (start {self.start})"]
        for prod in self.productions:
            flags = "".join(
                f" :{f}" for f, on in (("transparent", prod.transparent), ("inline", prod.inline)) if on
            )
            lines.append(f"  {prod.name}{flags}")
            for alt in prod.alternatives:
                lines.append(f"    | {alt}")
        for tok in self.token_rules:
            if not tok.literal:
                extra = " trivia" if tok.trivia else ""
                lines.append(f"  token {tok.name} /{tok.pattern}/ priority {tok.priority}{extra}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Grammar({self.name!r}, productions={len(self.productions)}, tokens={len(self.token_rules)})"

    # Grammars are shared by reference; pickling them for process pools
    # rebuilds the lowered tables on the other side.
    def __reduce__(self):
        return (
            Grammar,
            (
                self.name,
                self.productions,
                tuple(t for t in self.token_rules if not t.literal),
                self.start,
                self.suppression,
            ),
        )


__all__ = [
    "RESERVED_KINDS",
    "DOCUMENT",
    "ERROR",
    "UNPARSED",
    "UNKNOWN",
    "WHITESPACE",
    "Ref",
    "Literal",
    "Group",
    "Symbol",
    "Alternative",
    "Production",
    "TokenRule",
    "SuppressionConvention",
    "FlatAlternative",
    "Grammar",
]
