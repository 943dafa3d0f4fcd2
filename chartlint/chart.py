# chartlint/chart.py
"""
Earley chart parser with bounded token-skipping recovery.

The recognizer runs over the *significant* tokens (trivia filtered out).
Every chart item ``(alternative, dot, origin)`` keeps the ordered set of
links it was derived through, which makes the chart itself a shared packed
parse forest:

    ("tok", p)       scanned significant token ``p``; predecessor at ``p``
    ("nt", p, N)     completed ``N`` over ``[p, here)``; predecessor at ``p``
    ("null", N)      ``N`` derives the empty string; predecessor here
    ("skip", i)      same item carried over skipped tokens ``[i, here)``

Nullable nonterminals are advanced over during prediction (Aycock and
Horspool), so the completer never has to handle empty completions.

Disambiguation happens afterwards in :class:`ParseForest`, which computes,
for every reachable item and nonterminal span, the preferred derivation:

1. for one nonterminal over one range, the earliest declared alternative,
   then the fewest recovery skips;
2. for one item, the fewest skips, then the alternative's associativity
   (``left``: later children shortest, ``right``: earlier children
   shortest), then link insertion order;
3. at the root, the longest accepted span.

The evaluation is an explicit-stack memoized traversal; cyclic derivations
(``A -> B``, ``B -> A`` over one span) are cut at the first repeat.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .errors import ErrorCodes, ParseError, SourceSpan
from .grammar import Grammar
from .lexer import Token

logger = logging.getLogger(__name__)

Item = Tuple[int, int, int]
Link = tuple
Child = tuple

_EXPANDING = object()
_DEAD = object()


# ════════════════════════════════════════════════════════════════════════
# §1  Recognizer
# ════════════════════════════════════════════════════════════════════════


class _Recognizer:
    """One parse of one token sequence. Not reusable."""

    def __init__(self, grammar: Grammar, kinds: Sequence[str]) -> None:
        self.grammar = grammar
        self.kinds = kinds
        self.n = len(kinds)
        size = self.n + 1
        self.chart: List[Dict[Item, Dict[Link, None]]] = [{} for _ in range(size)]
        self.agenda: List[List[Item]] = [[] for _ in range(size)]
        self.waiting: List[Dict[str, List[Item]]] = [{} for _ in range(size)]
        self.scans: List[Dict[str, List[Item]]] = [{} for _ in range(size)]
        self.predicted: List[set] = [set() for _ in range(size)]
        self.alts = grammar.alternatives

    def add(self, pos: int, item: Item, link: Optional[Link]) -> None:
        links = self.chart[pos].get(item)
        if links is None:
            links = self.chart[pos][item] = {}
            self.agenda[pos].append(item)
        if link is not None:
            links[link] = None

    def seed(self) -> None:
        for alt in self.grammar.alts_by_lhs[self.grammar.start]:
            self.add(0, (alt.id, 0, 0), None)

    def process(self, pos: int) -> None:
        grammar = self.grammar
        agenda = self.agenda[pos]
        k = 0
        while k < len(agenda):
            item = agenda[k]
            k += 1
            alt_id, dot, origin = item
            alt = self.alts[alt_id]
            if dot == len(alt.symbols):
                if origin != pos:
                    self._complete(pos, alt.lhs, origin)
                continue
            name = alt.symbols[dot]
            if alt.terminal[dot]:
                self.scans[pos].setdefault(name, []).append(item)
                continue
            self.waiting[pos].setdefault(name, []).append(item)
            if name not in self.predicted[pos]:
                self.predicted[pos].add(name)
                for sub in grammar.alts_by_lhs[name]:
                    self.add(pos, (sub.id, 0, pos), None)
            if name in grammar.nullable:
                self.add(pos, (alt_id, dot + 1, origin), ("null", name))

    def _complete(self, pos: int, lhs: str, origin: int) -> None:
        for parent in self.waiting[origin].get(lhs, ()):
            self.add(pos, (parent[0], parent[1] + 1, parent[2]), ("nt", origin, lhs))

    def scan(self, pos: int) -> bool:
        items = self.scans[pos].get(self.kinds[pos])
        if not items:
            return False
        for alt_id, dot, origin in items:
            self.add(pos + 1, (alt_id, dot + 1, origin), ("tok", pos))
        return True

    def expected(self, pos: int) -> Tuple[str, ...]:
        return tuple(sorted(self.scans[pos]))

    def resync(self, pos: int, bound: int) -> Optional[int]:
        scannable = self.scans[pos]
        for j in range(pos + 1, min(pos + bound, self.n - 1) + 1):
            if self.kinds[j] in scannable:
                return j
        return None

    def carry(self, pos: int, target: int) -> None:
        """Copy the live items of ``chart[pos]`` to ``chart[target]`` over a skip link."""
        start = self.grammar.start
        for item in list(self.chart[pos]):
            alt_id, dot, origin = item
            alt = self.alts[alt_id]
            if dot == len(alt.symbols):
                continue
            if dot == 0 and not (origin == 0 and alt.lhs == start):
                continue
            self.add(target, item, ("skip", pos))

    def accepts(self, pos: int) -> bool:
        for alt in self.grammar.alts_by_lhs[self.grammar.start]:
            if (alt.id, len(alt.symbols), 0) in self.chart[pos]:
                return True
        return False


# ════════════════════════════════════════════════════════════════════════
# §2  Forest and disambiguation
# ════════════════════════════════════════════════════════════════════════


class ParseForest:
    """
    The chart of one parse plus the selected derivation.

    Attributes
    ----------
    tokens:
        The full token sequence, trivia included.
    significant:
        Full-sequence indices of the significant tokens; chart positions
        index into this list.
    root:
        ``(start, 0, end)`` for the selected root derivation, or ``None``
        when no prefix of the input was accepted.
    unparsed_from:
        Chart position where the ``unparsed`` tail begins, or ``None``.
    errors:
        Recovery and terminal :class:`ParseError` records, in input order.
    """

    def __init__(
        self,
        grammar: Grammar,
        tokens: Sequence[Token],
        significant: Sequence[int],
        recognizer: _Recognizer,
        root: Optional[Tuple[str, int, int]],
        unparsed_from: Optional[int],
        errors: List[ParseError],
    ) -> None:
        self.grammar = grammar
        self.tokens = tokens
        self.significant = significant
        self.chart = recognizer.chart
        self.root = root
        self.unparsed_from = unparsed_from
        self.errors = errors
        self._value: Dict[tuple, object] = {}
        if root is not None and root[1] != root[2]:
            self._solve(("n",) + root)

    # ─── dynamic programme ──────────────────────────────────────────────

    def _deps(self, node: tuple) -> List[tuple]:
        if node[0] == "n":
            _, lhs, s, e = node
            deps = []
            for alt in self.grammar.alts_by_lhs[lhs]:
                item = (alt.id, len(alt.symbols), s)
                if item in self.chart[e]:
                    deps.append(("i", e, item))
            return deps
        _, pos, item = node
        alt_id, dot, origin = item
        prev = (alt_id, dot - 1, origin)
        deps = []
        for link in self.chart[pos][item]:
            tag = link[0]
            if tag == "tok":
                deps.append(("i", link[1], prev))
            elif tag == "nt":
                deps.append(("i", link[1], prev))
                deps.append(("n", link[2], link[1], pos))
            elif tag == "null":
                deps.append(("i", pos, prev))
            else:
                deps.append(("i", link[1], item))
        return deps

    def _cost(self, node: tuple) -> object:
        value = self._value.get(node)
        if value is None or value is _EXPANDING or value is _DEAD:
            return None
        return value[0]

    def _evaluate(self, node: tuple) -> object:
        if node[0] == "n":
            _, lhs, s, e = node
            best = None
            best_key = None
            for alt in self.grammar.alts_by_lhs[lhs]:
                item = (alt.id, len(alt.symbols), s)
                if item not in self.chart[e]:
                    continue
                cost = self._cost(("i", e, item))
                if cost is None:
                    continue
                key = (alt.rank, cost)
                if best_key is None or key < best_key:
                    best, best_key = (cost, item), key
            return best if best is not None else _DEAD

        _, pos, item = node
        alt_id, dot, origin = item
        links = self.chart[pos][item]
        if not links:
            return (0, None) if dot == 0 else _DEAD
        prev = (alt_id, dot - 1, origin)
        right = self.grammar.alternatives[alt_id].assoc == "right"
        best = None
        best_key = None
        for order, link in enumerate(links):
            tag = link[0]
            if tag == "tok":
                split = link[1]
                cost = self._cost(("i", split, prev))
            elif tag == "nt":
                split = link[1]
                a = self._cost(("i", split, prev))
                b = self._cost(("n", link[2], split, pos))
                cost = None if a is None or b is None else a + b
            elif tag == "null":
                split = pos
                cost = self._cost(("i", pos, prev))
            else:
                split = link[1]
                cost = self._cost(("i", split, item))
                if cost is not None:
                    cost += 1
            if cost is None:
                continue
            key = (cost, split if right else -split, order)
            if best_key is None or key < best_key:
                best, best_key = (cost, link), key
        return best if best is not None else _DEAD

    def _solve(self, root: tuple) -> None:
        value = self._value
        stack = [root]
        while stack:
            node = stack[-1]
            state = value.get(node)
            if state is not None and state is not _EXPANDING:
                stack.pop()
                continue
            if state is None:
                value[node] = _EXPANDING
                pending = [d for d in self._deps(node) if d not in value]
                if pending:
                    stack.extend(pending)
                    continue
            value[node] = self._evaluate(node)
            stack.pop()

    # ─── derivation access ──────────────────────────────────────────────

    @property
    def recoveries(self) -> int:
        """Number of skip links on the selected root derivation."""
        if self.root is None or self.root[1] == self.root[2]:
            return 0
        return self._value[("n",) + self.root][0]

    def children(self, lhs: str, s: int, e: int) -> List[Child]:
        """
        The selected derivation of ``lhs`` over ``[s, e)`` as a child list.

        Entries are ``("tok", p)``, ``("nt", N, s, e)``, ``("null", N, p)``
        and ``("skip", i, j)``.
        """
        if s == e:
            return self.null_children(lhs, s)
        chosen = self._value[("n", lhs, s, e)]
        if chosen is _DEAD or chosen is _EXPANDING:
            raise KeyError((lhs, s, e))
        _, item = chosen
        pos = e
        out: List[Child] = []
        while True:
            entry = self._value[("i", pos, item)]
            link = entry[1]
            if link is None:
                break
            alt_id, dot, origin = item
            tag = link[0]
            if tag == "tok":
                out.append(("tok", link[1]))
                pos, item = link[1], (alt_id, dot - 1, origin)
            elif tag == "nt":
                out.append(("nt", link[2], link[1], pos))
                pos, item = link[1], (alt_id, dot - 1, origin)
            elif tag == "null":
                out.append(("null", link[1], pos))
                item = (alt_id, dot - 1, origin)
            else:
                out.append(("skip", link[1], pos))
                pos = link[1]
        out.reverse()
        return out

    def null_children(self, lhs: str, pos: int) -> List[Child]:
        alt = self.grammar.null_alt[lhs]
        return [("null", name, pos) for name in alt.symbols]

    def token(self, position: int) -> Token:
        return self.tokens[self.significant[position]]


# ════════════════════════════════════════════════════════════════════════
# §3  Driver
# ════════════════════════════════════════════════════════════════════════


def _describe(grammar: Grammar, kind: str) -> str:
    try:
        rule = grammar.token_rule(kind)
    except KeyError:
        return kind
    return repr(kind) if rule.literal else kind


def _expected_text(grammar: Grammar, expected: Sequence[str]) -> str:
    if not expected:
        return ""
    names = [_describe(grammar, k) for k in expected]
    if len(names) == 1:
        return f"; expected {names[0]}"
    return f"; expected one of {', '.join(names)}"


def _span(tokens: Sequence[Token], first: int, last: int) -> SourceSpan:
    a = tokens[first]
    b = tokens[last]
    return SourceSpan(a.start, b.end, a.line, a.column)


def parse_tokens(
    grammar: Grammar,
    tokens: Sequence[Token],
    config: Optional[EngineConfig] = None,
) -> ParseForest:
    """
    Run the chart parser over *tokens* and select one derivation.

    Never raises on input: unparseable regions are reported through
    ``forest.errors`` and ``forest.unparsed_from``.
    """
    config = config or DEFAULT_CONFIG
    significant = [i for i, t in enumerate(tokens) if not t.trivia]
    sig_tokens = [tokens[i] for i in significant]
    kinds = [t.kind for t in sig_tokens]
    n = len(kinds)
    rec = _Recognizer(grammar, kinds)
    rec.seed()

    recovered: List[Tuple[int, ParseError]] = []
    stop: Optional[int] = None
    pos = 0
    while True:
        rec.process(pos)
        if pos == n:
            break
        if rec.scan(pos):
            pos += 1
            continue
        target = rec.resync(pos, config.recovery_skip_bound)
        if target is None:
            stop = pos
            break
        tok = sig_tokens[pos]
        expected = rec.expected(pos)
        skipped = target - pos
        err = ParseError(
            span=_span(sig_tokens, pos, target - 1),
            message=(
                f"unexpected {_describe(grammar, tok.kind)} {tok.text!r}"
                f"{_expected_text(grammar, expected)}; skipped {skipped} "
                f"token{'s' if skipped != 1 else ''}"
            ),
            code=ErrorCodes.UNEXPECTED_TOKEN,
            expected=expected,
        )
        logger.debug("recovery at token %d: %s", pos, err.message)
        recovered.append((pos, err))
        rec.carry(pos, target)
        pos = target

    root: Optional[Tuple[str, int, int]] = None
    if stop is None and rec.accepts(n):
        return ParseForest(
            grammar, tokens, significant, rec, (grammar.start, 0, n), None,
            [e for _, e in recovered],
        )

    limit = n if stop is None else stop
    accepted = next((p for p in range(limit, -1, -1) if rec.accepts(p)), None)
    if accepted is not None:
        root = (grammar.start, 0, accepted)
    unparsed_from = accepted or 0
    if stop is None:
        expected = rec.expected(n)
        message = f"unexpected end of input{_expected_text(grammar, expected)}"
        code = ErrorCodes.UNEXPECTED_EOF
    else:
        tok = sig_tokens[stop]
        expected = rec.expected(stop)
        message = (
            f"unexpected {_describe(grammar, tok.kind)} {tok.text!r}"
            f"{_expected_text(grammar, expected)}"
        )
        code = ErrorCodes.UNEXPECTED_TOKEN
    if n:
        span = _span(sig_tokens, unparsed_from, n - 1)
    else:
        span = SourceSpan(0, 0, 1, 1)
    logger.debug("parse stopped: %s", message)
    errors = [e for p, e in recovered if p < unparsed_from]
    errors.append(
        ParseError(span=span, message=message, code=code, expected=expected, terminal=True)
    )
    return ParseForest(
        grammar, tokens, significant, rec, root, unparsed_from if n else None, errors
    )


__all__ = ["ParseForest", "parse_tokens"]
