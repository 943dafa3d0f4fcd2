# chartlint/tree.py
"""
Arena-backed concrete syntax trees.

A :class:`SyntaxTree` stores its nodes in one tuple indexed by node id.
Ids are preorder positions, so ``tree.nodes[0]`` is always the ``document``
root and a node's descendants occupy a contiguous id range after it.

:func:`build_tree` turns the selected derivation of a
:class:`~chartlint.chart.ParseForest` into a tree:

* hidden and ``inline`` productions are spliced into their parent;
* ``transparent`` productions with exactly one child are replaced by it;
* every token becomes exactly one leaf. Trivia leaves are placed under the
  lowest node whose neighbouring children surround them; leading and
  trailing trivia hang off the root;
* tokens skipped by recovery sit under ``error`` nodes, and the tail the
  parser gave up on sits under one ``unparsed`` node.

Leaf spans therefore partition ``[0, len(source))`` and every interior
node's span is the union of its children's spans. Building is iterative, so
deeply nested input does not hit the interpreter's recursion limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .chart import ParseForest, parse_tokens
from .config import EngineConfig
from .errors import ParseError
from .grammar import DOCUMENT, ERROR, UNPARSED, Grammar
from .lexer import SourceText, Token, tokenize

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SyntaxNode:
    id: int
    kind: str
    kind_id: int
    start: int
    end: int
    children: Tuple[int, ...]
    parent: Optional[int]
    token: Optional[int] = None
    trivia: bool = False

    @property
    def is_leaf(self) -> bool:
        return self.token is not None

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)


class SyntaxTree:
    """
    An immutable CST.

    Attributes
    ----------
    nodes:
        The arena; ``nodes[i].id == i``.
    grammar:
        The grammar the tree was parsed with (shared, read-only).
    tokens:
        Every token, trivia included, in source order.
    source:
        The :class:`~chartlint.lexer.SourceText` the tree was built from.
    path:
        Label of the source, used on diagnostics.
    errors:
        Lexical and syntax :class:`~chartlint.errors.ParseError` records.
    """

    def __init__(
        self,
        nodes: Sequence[SyntaxNode],
        grammar: Grammar,
        tokens: Sequence[Token],
        source: SourceText,
        path: str = "<string>",
        errors: Sequence[ParseError] = (),
    ) -> None:
        self.nodes: Tuple[SyntaxNode, ...] = tuple(nodes)
        self.grammar = grammar
        self.tokens: Tuple[Token, ...] = tuple(tokens)
        self.source = source
        self.path = path
        self.errors: Tuple[ParseError, ...] = tuple(errors)
        by_kind: Dict[int, List[int]] = {}
        for node in self.nodes:
            by_kind.setdefault(node.kind_id, []).append(node.id)
        self._by_kind: Dict[int, Tuple[int, ...]] = {k: tuple(v) for k, v in by_kind.items()}
        self._significant: Tuple[Tuple[int, ...], ...] = tuple(
            tuple(c for c in node.children if not self.nodes[c].trivia) for node in self.nodes
        )

    # ─── navigation ─────────────────────────────────────────────────────

    @property
    def root(self) -> SyntaxNode:
        return self.nodes[0]

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, node_id: int) -> SyntaxNode:
        return self.nodes[node_id]

    def children(self, node_id: int) -> List[SyntaxNode]:
        return [self.nodes[c] for c in self.nodes[node_id].children]

    def significant_children(self, node_id: int) -> Tuple[int, ...]:
        """Child ids with trivia leaves removed."""
        return self._significant[node_id]

    def parent(self, node_id: int) -> Optional[SyntaxNode]:
        p = self.nodes[node_id].parent
        return None if p is None else self.nodes[p]

    def ancestors(self, node_id: int) -> Iterator[SyntaxNode]:
        p = self.nodes[node_id].parent
        while p is not None:
            node = self.nodes[p]
            yield node
            p = node.parent

    def walk(self, node_id: int = 0) -> Iterator[SyntaxNode]:
        """Preorder traversal of the subtree at *node_id*."""
        stack = [node_id]
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def descendants(self, node_id: int) -> range:
        """Ids of the strict descendants of *node_id* (contiguous in preorder)."""
        last = node_id
        while self.nodes[last].children:
            last = self.nodes[last].children[-1]
        end = last + 1
        return range(node_id + 1, end)

    def leaves(self, node_id: int = 0) -> Iterator[SyntaxNode]:
        return (n for n in self.walk(node_id) if n.is_leaf)

    def nodes_of_kind(self, kind_id: int) -> Tuple[int, ...]:
        return self._by_kind.get(kind_id, ())

    def find(self, kind: str) -> List[SyntaxNode]:
        if not self.grammar.has_kind(kind):
            return []
        return [self.nodes[i] for i in self.nodes_of_kind(self.grammar.kind_id(kind))]

    def node_at(self, offset: int) -> SyntaxNode:
        """Deepest node whose span contains byte *offset*."""
        node = self.nodes[0]
        while True:
            for c in node.children:
                child = self.nodes[c]
                if child.start <= offset < child.end:
                    node = child
                    break
            else:
                return node

    # ─── text ───────────────────────────────────────────────────────────

    def text(self, node_id: int) -> str:
        node = self.nodes[node_id]
        return self.source.slice(node.start, node.end)

    def line_col(self, node_id: int) -> Tuple[int, int]:
        return self.source.line_col(self.nodes[node_id].start)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    # ─── comparison / debugging ─────────────────────────────────────────

    def structure(self) -> Tuple[Tuple[str, int, int, int], ...]:
        """``(kind, start, end, child count)`` per node, in id order."""
        return tuple((n.kind, n.start, n.end, len(n.children)) for n in self.nodes)

    def sexp(self, node_id: int = 0, trivia: bool = False) -> str:
        """Compact S-expression rendering, e.g. ``(expr (NUMBER '1'))``."""
        out: List[str] = []
        stack: List[Union[int, str]] = [node_id]
        while stack:
            top = stack.pop()
            if isinstance(top, str):
                out.append(top)
                continue
            node = self.nodes[top]
            if node.is_leaf:
                out.append(f'({node.kind} {self.text(top)!r})')
                continue
            kids = [c for c in node.children if trivia or not self.nodes[c].trivia]
            out.append(f"({node.kind}")
            stack.append(")")
            for c in reversed(kids):
                stack.append(c)
                stack.append(" ")
        return "".join(out)

    def pretty(self, node_id: int = 0) -> str:
        lines = []
        depth = {node_id: 0}
        for node in self.walk(node_id):
            d = depth[node.id]
            for c in node.children:
                depth[c] = d + 1
            label = f"{node.kind} [{node.start}, {node.end})"
            if node.is_leaf:
                label += f" {self.text(node.id)!r}"
            lines.append("  " * d + label)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"SyntaxTree({self.path!r}, nodes={len(self.nodes)}, errors={len(self.errors)})"


# ════════════════════════════════════════════════════════════════════════
# Builder
# ════════════════════════════════════════════════════════════════════════


class _Draft:
    __slots__ = ("kind", "token", "children", "first", "last", "start", "end", "id")

    def __init__(self, kind: str, token: Optional[int] = None) -> None:
        self.kind = kind
        self.token = token
        self.children: List["_Draft"] = []
        self.first: Optional[int] = token
        self.last: Optional[int] = token
        self.start = 0
        self.end = 0
        self.id = -1


def _plan(forest: ParseForest) -> _Draft:
    """Expand the selected derivation into drafts, splicing and collapsing."""
    grammar = forest.grammar
    sig = forest.significant
    document = _Draft(DOCUMENT)
    order: List[_Draft] = []
    raw: Dict[int, List[Union[_Draft, int]]] = {}
    expand: List[Tuple[_Draft, List[tuple]]] = []

    def new_node(kind: str, children: List[tuple]) -> _Draft:
        draft = _Draft(kind)
        order.append(draft)
        expand.append((draft, children))
        return draft

    def leaves(kind: str, i: int, j: int) -> _Draft:
        draft = _Draft(kind)
        order.append(draft)
        raw[id(draft)] = [sig[p] for p in range(i, j)]
        return draft

    top: List[Union[_Draft, int]] = []
    if forest.root is not None:
        lhs, s, e = forest.root
        top.append(new_node(lhs, forest.children(lhs, s, e)))
    if forest.unparsed_from is not None:
        top.append(leaves(UNPARSED, forest.unparsed_from, len(sig)))

    while expand:
        draft, entries = expand.pop()
        items: List[Union[_Draft, int]] = []
        for entry in entries:
            tag = entry[0]
            if tag == "tok":
                items.append(sig[entry[1]])
            elif tag == "nt":
                items.append(new_node(entry[1], forest.children(entry[1], entry[2], entry[3])))
            elif tag == "null":
                items.append(new_node(entry[1], forest.null_children(entry[1], entry[2])))
            else:
                items.append(leaves(ERROR, entry[1], entry[2]))
        raw[id(draft)] = items

    # Children are created after their parents, so reverse creation order
    # is a valid bottom-up order.
    final: Dict[int, List[_Draft]] = {}
    tokens = forest.tokens
    for draft in reversed(order):
        kids: List[_Draft] = []
        for item in raw[id(draft)]:
            if isinstance(item, int):
                kids.append(_Draft(tokens[item].kind, item))
            else:
                kids.extend(final[id(item)])
        draft.children = kids
        if draft.kind in (ERROR, UNPARSED):
            final[id(draft)] = [draft]
        elif grammar.inline.get(draft.kind, False):
            final[id(draft)] = kids
        elif grammar.transparent.get(draft.kind, False) and len(kids) == 1:
            final[id(draft)] = kids
        else:
            final[id(draft)] = [draft]

    for item in top:
        document.children.extend(final[id(item)])
    return document


def _bounds(root: _Draft) -> List[_Draft]:
    """Fill ``first``/``last`` token indices bottom-up; returns preorder."""
    pre: List[_Draft] = []
    stack = [root]
    while stack:
        d = stack.pop()
        pre.append(d)
        stack.extend(reversed(d.children))
    for d in reversed(pre):
        if d.token is not None:
            continue
        firsts = [c.first for c in d.children if c.first is not None]
        if firsts:
            d.first = firsts[0]
            d.last = next(c.last for c in reversed(d.children) if c.last is not None)
    return pre


def _weave(root: _Draft, tokens: Sequence[Token], total: int) -> None:
    """Insert trivia leaves and assign byte spans, top-down."""

    def trivia(i: int, j: int) -> List[_Draft]:
        return [_Draft(tokens[k].kind, k) for k in range(i, j)]

    if root.first is None:
        root.children = root.children + trivia(0, len(tokens))
    else:
        root.children = (
            trivia(0, root.first) + root.children + trivia(root.last + 1, len(tokens))
        )
    root.start, root.end = 0, total

    stack = [root]
    while stack:
        d = stack.pop()
        woven: List[_Draft] = []
        prev_last: Optional[int] = None
        for child in d.children:
            if child.first is not None:
                if prev_last is not None and child.first > prev_last + 1:
                    woven.extend(trivia(prev_last + 1, child.first))
                prev_last = child.last
            woven.append(child)
        d.children = woven
        # empty nodes sit right after the previous sibling
        cursor = d.start
        for child in woven:
            if child.first is None:
                child.start = child.end = cursor
            else:
                child.start = tokens[child.first].start
                child.end = tokens[child.last].end
                cursor = child.end
            if child.token is None:
                stack.append(child)


def _freeze(root: _Draft, grammar: Grammar, tokens: Sequence[Token]) -> List[SyntaxNode]:
    order: List[_Draft] = []
    parents: List[Optional[int]] = []
    stack: List[Tuple[_Draft, Optional[int]]] = [(root, None)]
    while stack:
        d, parent = stack.pop()
        d.id = len(order)
        order.append(d)
        parents.append(parent)
        for child in reversed(d.children):
            stack.append((child, d.id))
    nodes = []
    for d, parent in zip(order, parents):
        nodes.append(
            SyntaxNode(
                id=d.id,
                kind=d.kind,
                kind_id=grammar.kind_id(d.kind),
                start=d.start,
                end=d.end,
                children=tuple(c.id for c in d.children),
                parent=parent,
                token=d.token,
                trivia=d.token is not None and tokens[d.token].trivia,
            )
        )
    return nodes


def build_tree(
    forest: ParseForest,
    source: SourceText,
    path: str = "<string>",
    lexical_errors: Sequence[ParseError] = (),
) -> SyntaxTree:
    """Collapse the selected derivation of *forest* into a :class:`SyntaxTree`."""
    root = _plan(forest)
    _bounds(root)
    _weave(root, forest.tokens, len(source))
    nodes = _freeze(root, forest.grammar, forest.tokens)
    errors = sorted(
        list(lexical_errors) + list(forest.errors),
        key=lambda e: (e.span.start, e.span.end, e.terminal),
    )
    return SyntaxTree(nodes, forest.grammar, forest.tokens, source, path, errors)


def parse(
    grammar: Grammar,
    source_text: Union[str, bytes, SourceText],
    path: str = "<string>",
    config: Optional[EngineConfig] = None,
) -> Tuple[SyntaxTree, List[ParseError]]:
    """
    Parse *source_text* with *grammar*.

    Never raises on input: the returned tree may contain ``error`` and
    ``unparsed`` nodes, and the list holds every lexical and syntax error.
    """
    source = source_text if isinstance(source_text, SourceText) else SourceText(source_text)
    tokens, lexical = tokenize(grammar, source)
    forest = parse_tokens(grammar, tokens, config)
    tree = build_tree(forest, source, path, lexical)
    if tree.errors:
        logger.debug("%s: %d parse error(s)", path, len(tree.errors))
    return tree, list(tree.errors)


__all__ = ["SyntaxNode", "SyntaxTree", "build_tree", "parse"]
