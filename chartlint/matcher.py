# chartlint/matcher.py
"""
Match engine: runs a compiled :class:`~chartlint.pattern.Pattern` over a
:class:`~chartlint.tree.SyntaxTree`.

Matching is top-down. A kind node matches a syntax node of the same kind
whose significant children match the child list positionally; ``_``
consumes exactly one child and ``...`` the fewest children that let the rest
of the list succeed. Each instruction matches atomically (its first
solution is kept) except where a guard is pending: then the guard is carried
into the nearest enclosing child list as a continuation, so a failing guard
makes the ellipsis splits before it backtrack.

Results of ``(instruction, node)`` and ``(child list, item, child)`` attempts
are memoized per run, keyed on the captures the instruction reads and on
the pending continuation with the captures it reads. A pending guard is
decided as soon as every capture it reads is bound. Both keep
ellipsis-heavy patterns polynomial, guarded or not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import PredicateEvaluationError
from .pattern import Pattern, PatternNode, PatternNodeKind
from .predicate import Binding, CaptureRef
from .tree import SyntaxTree

logger = logging.getLogger(__name__)

Bindings = Dict[str, Binding]

_MISS = object()
_FAILED = object()


class _Guard:
    """
    Continuation that evaluates a guard, then its outer continuation.

    ``reads`` is every capture the chain may look at; matcher memo keys
    carry their values, since the outcome of a child list under this
    continuation depends on nothing else in the bindings.
    """

    __slots__ = ("matcher", "instr", "outer", "refs", "reads")

    def __init__(self, matcher: "PatternMatcher", instr: PatternNode, outer: Check) -> None:
        self.matcher = matcher
        self.instr = instr
        self.outer = outer
        references = instr.predicate.references
        self.refs = tuple(sorted(references))
        self.reads = references if outer is None else references | outer.reads

    def holds(self, b: Bindings) -> bool:
        memo = self.matcher._guard_memo
        key = (self.instr.id, tuple(b.get(r) for r in self.refs))
        ok = memo.get(key)
        if ok is None:
            ok = self.matcher._evaluate_guard(self.instr, b)
            memo[key] = ok
        return ok

    def __call__(self, b: Bindings) -> bool:
        return self.holds(b) and (self.outer is None or self.outer(b))

    def settle(self, b: Bindings):
        # captures never change once bound, so a guard whose captures are
        # all present can be decided now
        if all(r in b for r in self.refs):
            if not self.holds(b):
                return _FAILED
            return None if self.outer is None else self.outer.settle(b)
        outer = None if self.outer is None else self.outer.settle(b)
        if outer is _FAILED:
            return _FAILED
        if outer is self.outer:
            return self
        return self.matcher._guard(self.instr, outer)


class _Bind:
    """Continuation that adds ``name = nid`` before calling its outer one."""

    __slots__ = ("matcher", "name", "nid", "outer", "reads")

    def __init__(
        self, matcher: "PatternMatcher", name: str, nid: int, outer: "Union[_Guard, _Bind]"
    ) -> None:
        self.matcher = matcher
        self.name = name
        self.nid = nid
        self.outer = outer
        self.reads = outer.reads - {name}

    def _extend(self, b: Bindings) -> Bindings:
        extended = dict(b)
        extended[self.name] = self.nid
        return extended

    def __call__(self, b: Bindings) -> bool:
        return self.outer(self._extend(b))

    def settle(self, b: Bindings):
        outer = self.outer.settle(self._extend(b))
        if outer is _FAILED or outer is None:
            return outer
        if outer is self.outer:
            return self
        return self.matcher._bind(self.name, self.nid, outer)


Check = Optional[Union[_Guard, _Bind]]


@dataclass(frozen=True)
class Match:
    """
    One successful match.

    ``captures`` maps capture names to a node id, or to a tuple of sibling
    ids for ``name: ...`` captures. ``nodes`` is the matched run for
    sibling-sequence patterns and ``(anchor,)`` otherwise.
    """
    anchor: int
    captures: Dict[str, Binding] = field(default_factory=dict)
    nodes: Tuple[int, ...] = ()

    def capture_ids(self, name: str) -> Tuple[int, ...]:
        value = self.captures[name]
        return value if isinstance(value, tuple) else (value,)

    def key(self) -> tuple:
        return (self.anchor, self.nodes, tuple(sorted(self.captures.items())))


class PatternMatcher:
    """
    Matches one pattern against one tree.

    Each instance owns its memo tables and the guard errors it ran into, so
    instances must not be shared between concurrent callers; create one per
    ``(pattern, tree)`` run (which is what :func:`matches` does).
    """

    def __init__(self, pattern: Pattern, tree: SyntaxTree) -> None:
        if pattern.grammar is not tree.grammar and pattern.grammar.name != tree.grammar.name:
            raise ValueError(
                f"pattern compiled for grammar {pattern.grammar.name!r} "
                f"cannot match a {tree.grammar.name!r} tree"
            )
        self.pattern = pattern
        self.tree = tree
        self.guard_errors: List[PredicateEvaluationError] = []
        self._node_memo: Dict[tuple, object] = {}
        self._seq_memo: Dict[tuple, object] = {}
        self._guard_memo: Dict[tuple, bool] = {}
        self._continuations: Dict[tuple, Union[_Guard, _Bind]] = {}

    # ─── public ─────────────────────────────────────────────────────────

    def __iter__(self) -> Iterator[Match]:
        return self.run()

    def run(self) -> Iterator[Match]:
        """Yield matches in anchor preorder, identical matches once."""
        seen = set()
        produce = self._run_sequence if self.pattern.is_sequence else self._run_node
        for match in produce():
            key = match.key()
            if key in seen:
                continue
            seen.add(key)
            yield match

    def match_at(self, node_id: int) -> Optional[Match]:
        """First match of a node pattern rooted exactly at *node_id*."""
        if self.pattern.is_sequence:
            raise ValueError("match_at() needs a node pattern, not a sibling sequence")
        result = self._node(self.pattern.root, node_id, {}, None)
        if result is None:
            return None
        return Match(node_id, result, (node_id,))

    # ─── anchors ────────────────────────────────────────────────────────

    def _candidates(self) -> Sequence[int]:
        kinds = self.pattern.anchor_kinds
        nodes = self.tree.nodes
        if kinds is None:
            return [n.id for n in nodes if not n.trivia]
        if len(kinds) == 1:
            return self.tree.nodes_of_kind(kinds[0])
        ids: List[int] = []
        for kind_id in kinds:
            ids.extend(self.tree.nodes_of_kind(kind_id))
        return sorted(ids)

    def _run_node(self) -> Iterator[Match]:
        root = self.pattern.root
        for nid in self._candidates():
            result = self._node(root, nid, {}, None)
            if result is not None:
                yield Match(nid, result, (nid,))

    def _run_sequence(self) -> Iterator[Match]:
        seq = self.pattern.root
        tree = self.tree
        guard = self._seq_guard(seq)
        for parent in tree.nodes:
            if parent.is_leaf:
                continue
            kids = tree.significant_children(parent.id)
            for start in range(len(kids)):
                found = self._seq(seq, parent.id, kids, 0, start, {}, guard, False)
                if found is None:
                    continue
                bindings, end = found
                run = kids[start:end]
                if not run:
                    continue
                yield Match(run[0], bindings, tuple(run))

    def _seq_guard(self, seq: PatternNode) -> Check:
        if seq.predicate is None:
            return None
        return self._guard(seq, None)

    # ─── guards ─────────────────────────────────────────────────────────

    def _guard(self, instr: PatternNode, outer: Check) -> _Guard:
        key = ("guard", instr.id, outer)
        cont = self._continuations.get(key)
        if cont is None:
            cont = self._continuations[key] = _Guard(self, instr, outer)
        return cont

    def _bind(self, name: str, nid: int, outer: Union[_Guard, _Bind]) -> _Bind:
        key = ("bind", name, nid, outer)
        cont = self._continuations.get(key)
        if cont is None:
            cont = self._continuations[key] = _Bind(self, name, nid, outer)
        return cont

    def _evaluate_guard(self, instr: PatternNode, b: Bindings) -> bool:
        predicate = instr.predicate
        try:
            return bool(predicate.evaluate(self.tree, b))
        except PredicateEvaluationError as exc:
            logger.debug("guard %r failed: %s", predicate.source, exc)
            self.guard_errors.append(exc)
            return False

    @staticmethod
    def _memo_key(refs: Tuple[str, ...], b: Bindings, k: Check) -> tuple:
        if k is not None:
            refs = tuple(sorted(k.reads.union(refs)))
        return (k, tuple(b.get(r) for r in refs))

    # ─── node instructions ──────────────────────────────────────────────

    def _node(self, instr: PatternNode, nid: int, b: Bindings, k: Check) -> Optional[Bindings]:
        """
        First way *instr* matches node *nid* under bindings *b* for which
        the continuation *k* holds. Returns the extended bindings.
        """
        if k is not None:
            k = k.settle(b)
            if k is _FAILED:
                return None
        key = (instr.id, nid, self._memo_key(instr.refs, b, k))
        delta = self._node_memo.get(key, _MISS)
        if delta is _MISS:
            result = self._node_raw(instr, nid, b, k)
            delta = None if result is None else {n: v for n, v in result.items() if n not in b}
            self._node_memo[key] = delta
        if delta is None:
            return None
        if not delta:
            return b
        merged = dict(b)
        merged.update(delta)
        return merged

    def _accept(self, b: Bindings, k: Check) -> Optional[Bindings]:
        return b if k is None or k(b) else None

    def _node_raw(self, instr: PatternNode, nid: int, b: Bindings, k: Check) -> Optional[Bindings]:
        kind = instr.kind
        tree = self.tree
        node = tree.nodes[nid]

        # ---- KIND ----
        if kind == PatternNodeKind.KIND:
            if node.kind_id != instr.kind_id:
                return None
            if instr.children is None:
                return self._accept(b, k)
            kids = tree.significant_children(nid)
            found = self._seq(instr, nid, kids, 0, 0, b, k, True)
            return None if found is None else found[0]

        # ---- WILDCARD ----
        if kind == PatternNodeKind.WILDCARD:
            return self._accept(b, k)

        # ---- TEXT ----
        if kind == PatternNodeKind.TEXT:
            if tree.text(nid) != instr.value:
                return None
            return self._accept(b, k)

        # ---- REGEX ----
        if kind == PatternNodeKind.REGEX:
            if instr.regex.search(tree.text(nid)) is None:
                return None
            return self._accept(b, k)

        # ---- CAPTURE / METAVAR ----
        if kind in (PatternNodeKind.CAPTURE, PatternNodeKind.METAVAR):
            name = instr.name
            if kind == PatternNodeKind.METAVAR:
                bound = dict(b)
                bound[name] = nid
                return self._accept(bound, k)
            inner_k = None if k is None else self._bind(name, nid, k)
            result = self._node(instr.child, nid, b, inner_k)
            if result is None:
                return None
            result = dict(result)
            result[name] = nid
            return result

        # ---- BACKREF ----
        if kind == PatternNodeKind.BACKREF:
            if tree.text(nid) != CaptureRef(tree, b[instr.name]).text:
                return None
            return self._accept(b, k)

        # ---- ALTERNATION ----
        if kind == PatternNodeKind.ALTERNATION:
            for option in instr.children:
                result = self._node(option, nid, b, k)
                if result is not None:
                    return result
            return None

        # ---- NEGATION ----
        if kind == PatternNodeKind.NEGATION:
            if self._node(instr.child, nid, b, None) is not None:
                return None
            return self._accept(b, k)

        # ---- DEEP ----
        if kind == PatternNodeKind.DEEP:
            nodes = tree.nodes
            for target in (nid, *tree.descendants(nid)):
                if nodes[target].trivia:
                    continue
                result = self._node(instr.child, target, b, k)
                if result is not None:
                    return result
            return None

        # ---- WHERE ----
        if kind == PatternNodeKind.WHERE:
            return self._node(instr.child, nid, b, self._guard(instr, k))

        raise AssertionError(f"unexpected instruction {kind}")

    # ─── child lists ────────────────────────────────────────────────────

    def _seq(
        self,
        owner: PatternNode,
        parent: int,
        kids: Tuple[int, ...],
        pi: int,
        ci: int,
        b: Bindings,
        k: Check,
        anchored: bool,
    ) -> Optional[Tuple[Bindings, int]]:
        """
        Match ``owner.children[pi:]`` against ``kids[ci:]``.

        Returns the bindings and the index one past the last consumed child.
        Child lists of kind nodes are *anchored* (must consume every child);
        top-level sibling sequences end wherever their last item matched.
        """
        if k is not None:
            k = k.settle(b)
            if k is _FAILED:
                return None
        refs = owner.suffix_refs[pi] if pi < len(owner.children) else ()
        key = (owner.id, parent, pi, ci, self._memo_key(refs, b, k))
        cached = self._seq_memo.get(key, _MISS)
        if cached is _MISS:
            found = self._seq_raw(owner, parent, kids, pi, ci, b, k, anchored)
            if found is None:
                cached = None
            else:
                result, end = found
                cached = ({n: v for n, v in result.items() if n not in b}, end)
            self._seq_memo[key] = cached
        if cached is None:
            return None
        delta, end = cached
        if not delta:
            return b, end
        merged = dict(b)
        merged.update(delta)
        return merged, end

    def _seq_raw(
        self,
        owner: PatternNode,
        parent: int,
        kids: Tuple[int, ...],
        pi: int,
        ci: int,
        b: Bindings,
        k: Check,
        anchored: bool,
    ) -> Optional[Tuple[Bindings, int]]:
        items = owner.children
        if pi == len(items):
            if anchored and ci != len(kids):
                return None
            accepted = self._accept(b, k)
            return None if accepted is None else (accepted, ci)

        item = items[pi]
        remaining = len(kids) - ci
        need = owner.rest_fixed[pi]

        if item.is_ellipsis():
            name = item.name if item.kind == PatternNodeKind.CAPTURE else None
            most = remaining - need
            if most < 0:
                return None
            if pi == len(items) - 1 or (anchored and not owner.rest_open[pi]):
                # no later ellipsis: the remaining fixed items decide the split
                takes = range(most, most + 1)
            else:
                takes = range(0, most + 1)
            for take in takes:
                nb = b
                if name is not None:
                    nb = dict(b)
                    nb[name] = tuple(kids[ci:ci + take])
                found = self._seq(owner, parent, kids, pi + 1, ci + take, nb, k, anchored)
                if found is not None:
                    return found
            return None

        if remaining - need < 1:
            return None
        result = self._node(item, kids[ci], b, None)
        if result is None:
            return None
        return self._seq(owner, parent, kids, pi + 1, ci + 1, result, k, anchored)


def matches(pattern: Pattern, tree: SyntaxTree, limit: Optional[int] = None) -> Iterator[Match]:
    """
    Lazily yield every match of *pattern* in *tree*.

    Each call starts an independent run with its own memo tables, so the
    result can be iterated again by calling again, and concurrent callers
    never share state.

    Parameters
    ----------
    pattern:
        A pattern compiled for ``tree.grammar``.
    tree:
        The tree to search.
    limit:
        Stop after this many matches.
    """
    count = 0
    for match in PatternMatcher(pattern, tree).run():
        if limit is not None and count >= limit:
            return
        count += 1
        yield match


__all__ = ["Match", "PatternMatcher", "matches"]
