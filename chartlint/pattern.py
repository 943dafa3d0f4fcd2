# chartlint/pattern.py
"""
Pattern compiler.

Patterns describe tree shapes in a grammar's own vocabulary and compile,
against one grammar, to a tree of :class:`PatternNode` instructions whose
kinds are already resolved to integer ids.

Textual syntax
--------------
::

    call                       node of kind ``call``, children unconstrained
    call(NAME, arguments)      kind plus the exact significant-children list
    _                          any single node
    ...                        zero or more siblings (non-greedy)
    args: ...                  captured sibling run
    name: NAME                 capture
    $x                         capture on first use, same text afterwards
    "eval"                     node whose source text is ``eval``
    /^unsafe/                  node whose source text matches the regex
    a | b                      alternation, first matching branch wins
    !pat                       negation (never binds)
    >> pat                     the node itself or any descendant matches
    pat where <predicate>      guard over captures bound so far
    [a, ..., b]                top level only: a run of adjacent siblings

S-expression syntax
-------------------
::

    (call (bind name "eval") (bind args ...))
    (kind or ...)  (re "^x")  (or a b)  (not p)  (deep p)  (where p "pred")  (seq a ... b)

Compilation rejects unknown kinds, malformed patterns, a capture name bound
twice (except in different branches of one alternation) and guards that read
captures which are not bound yet.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Any, FrozenSet, List, Optional, Set, Tuple, Union

from parsimonious.exceptions import ParseError as PegParseError
from parsimonious.grammar import Grammar as PegGrammar

from .errors import ErrorCodes, PatternCompileError, SourceSpan
from .grammar import Grammar
from .predicate import PREDICATE_RULES, Predicate, PredicateBuilder, compile_predicate
from .sexp import Symbol, dumps, head, loads

logger = logging.getLogger(__name__)


# ===================================================================
#  PART 1 — PATTERN AST
# ===================================================================

class PatternNodeKind(enum.Enum):
    """Instruction kinds of a compiled pattern."""
    KIND = "kind"                 # kind constraint, optional child list
    WILDCARD = "wildcard"         # _
    ELLIPSIS = "ellipsis"         # ... (inside child lists and sequences)
    CAPTURE = "capture"           # name: pat
    METAVAR = "metavar"           # $name, binds on first use
    BACKREF = "backref"           # $name after it is bound
    TEXT = "text"                 # "literal"
    REGEX = "regex"               # /re/
    ALTERNATION = "alternation"   # a | b
    NEGATION = "negation"         # !pat
    DEEP = "deep"                 # >> pat
    WHERE = "where"               # pat where <predicate>
    SEQUENCE = "sequence"         # [a, b, ...] sibling run


@dataclass(eq=False)
class PatternNode:
    """One instruction. Read-only once compiled."""
    kind: PatternNodeKind
    children: Optional[List["PatternNode"]] = None
    name: Optional[str] = None                  # KIND: kind name; CAPTURE/METAVAR/BACKREF: capture
    value: Optional[str] = None                 # TEXT/REGEX source
    kind_id: Optional[int] = None
    regex: Optional["re.Pattern"] = None
    predicate: Optional[Predicate] = None
    id: int = -1
    refs: Tuple[str, ...] = ()                  # captures read inside this subtree
    # SEQUENCE/KIND child lists: per position, fixed items left and whether
    # another ellipsis follows
    rest_fixed: Tuple[int, ...] = ()
    rest_open: Tuple[bool, ...] = ()
    suffix_refs: Tuple[Tuple[str, ...], ...] = ()

    @property
    def child(self) -> "PatternNode":
        return self.children[0]

    def is_ellipsis(self) -> bool:
        return self.kind == PatternNodeKind.ELLIPSIS or (
            self.kind == PatternNodeKind.CAPTURE
            and self.child.kind == PatternNodeKind.ELLIPSIS
        )

    def pretty(self, indent: int = 0) -> str:
        prefix = "  " * indent
        parts = [f"{prefix}{self.kind.value}"]
        if self.name:
            parts.append(f" {self.name}")
        if self.value is not None:
            parts.append(f" {self.value!r}")
        if self.predicate is not None:
            parts.append(f" where {self.predicate.source!r}")
        if self.kind == PatternNodeKind.KIND and self.children is None:
            parts.append(" (any children)")
        result = "".join(parts)
        for child in self.children or ():
            result += "\n" + child.pretty(indent + 1)
        return result


@dataclass
class Pattern:
    """A compiled pattern bound to one grammar."""
    source: str
    root: PatternNode
    grammar: Grammar
    captures: FrozenSet[str] = frozenset()
    sequence_captures: FrozenSet[str] = frozenset()
    size: int = 0
    anchor_kinds: Optional[Tuple[int, ...]] = None

    @property
    def is_sequence(self) -> bool:
        return self.root.kind == PatternNodeKind.SEQUENCE

    def pretty(self) -> str:
        return self.root.pretty()

    def __repr__(self) -> str:
        return f"Pattern({self.source!r})"


# ===================================================================
#  PART 2 — TEXTUAL SYNTAX
# ===================================================================

PATTERN_GRAMMAR = PegGrammar(
    r"""
    pattern      = _ top _
    top          = sequence / alternation
    sequence     = "[" _ elements _ "]" where_clause?
    alternation  = guarded (_ "|" _ guarded)*
    guarded      = unary where_clause?
    where_clause = _ kw_where _ disjunction
    unary        = negated_pat / deep / capture / primary
    negated_pat  = "!" _ unary
    deep         = ">>" _ unary
    capture      = cap_name _ ":" _ unary
    primary      = group / ellipsis / wildcard / metavar / text_lit / regex_lit / kind_node
    group        = "(" _ alternation _ ")"
    ellipsis     = "..."
    wildcard     = ~r"_(?![A-Za-z0-9_\-])"
    metavar      = ~r"\$[A-Za-z_][A-Za-z0-9_]*"
    text_lit     = ~r'"(?:[^"\\]|\\.)*"' / ~r"'(?:[^'\\]|\\.)*'"
    regex_lit    = ~r"/(?:[^/\\\n]|\\.)+/"
    kind_node    = kind_name child_list?
    child_list   = _ "(" _ elements? _ ")"
    elements     = alternation (_ "," _ alternation)*
    kind_name    = ~r"[A-Za-z_][A-Za-z0-9_\-]*"
    cap_name     = ~r"[A-Za-z_][A-Za-z0-9_]*"
    kw_where     = ~r"where\b"
    """
    + PREDICATE_RULES
)


def _many(value: Any) -> list:
    return value if isinstance(value, list) else []


def _first(value: Any) -> Any:
    return value[0] if isinstance(value, list) and value else None


class _PatternBuilder(PredicateBuilder):
    """Parse tree -> unresolved :class:`PatternNode` tree."""

    def __init__(self, source: str) -> None:
        self.source = source

    def visit_pattern(self, node, visited_children):
        return visited_children[1]

    def visit_top(self, node, visited_children):
        return visited_children[0]

    def visit_sequence(self, node, visited_children):
        _, _, items, _, _, guard = visited_children
        seq = PatternNode(PatternNodeKind.SEQUENCE, children=items)
        return self._guard(seq, _first(guard))

    def visit_alternation(self, node, visited_children):
        first, rest = visited_children
        options = [first] + [x[3] for x in _many(rest)]
        if len(options) == 1:
            return first
        return PatternNode(PatternNodeKind.ALTERNATION, children=options)

    def visit_guarded(self, node, visited_children):
        inner, guard = visited_children
        return self._guard(inner, _first(guard))

    def visit_where_clause(self, node, visited_children):
        expr = visited_children[3]
        text = node.children[3].text
        return Predicate(text, expr)

    def _guard(self, inner: PatternNode, predicate: Optional[Predicate]) -> PatternNode:
        if predicate is None:
            return inner
        return PatternNode(PatternNodeKind.WHERE, children=[inner], predicate=predicate)

    def visit_unary(self, node, visited_children):
        return visited_children[0]

    def visit_negated_pat(self, node, visited_children):
        return PatternNode(PatternNodeKind.NEGATION, children=[visited_children[2]])

    def visit_deep(self, node, visited_children):
        return PatternNode(PatternNodeKind.DEEP, children=[visited_children[2]])

    def visit_capture(self, node, visited_children):
        name = node.children[0].text
        return PatternNode(PatternNodeKind.CAPTURE, children=[visited_children[4]], name=name)

    def visit_primary(self, node, visited_children):
        return visited_children[0]

    def visit_group(self, node, visited_children):
        return visited_children[2]

    def visit_ellipsis(self, node, visited_children):
        return PatternNode(PatternNodeKind.ELLIPSIS)

    def visit_wildcard(self, node, visited_children):
        return PatternNode(PatternNodeKind.WILDCARD)

    def visit_metavar(self, node, visited_children):
        return PatternNode(PatternNodeKind.METAVAR, name=node.text[1:])

    def visit_text_lit(self, node, visited_children):
        return PatternNode(PatternNodeKind.TEXT, value=self.visit_p_string(node, visited_children).value)

    def visit_regex_lit(self, node, visited_children):
        return PatternNode(PatternNodeKind.REGEX, value=node.text[1:-1].replace("\\/", "/"))

    def visit_kind_node(self, node, visited_children):
        name = node.children[0].text
        children = _first(visited_children[1])
        return PatternNode(PatternNodeKind.KIND, name=name, children=children)

    def visit_child_list(self, node, visited_children):
        return _first(visited_children[3]) or []

    def visit_elements(self, node, visited_children):
        first, rest = visited_children
        return [first] + [x[3] for x in _many(rest)]


def _parse_text(source: str) -> PatternNode:
    try:
        tree = PATTERN_GRAMMAR.parse(source)
    except PegParseError as exc:
        raise PatternCompileError(
            f"invalid pattern {source!r}: syntax error at column {exc.column()}",
            code=ErrorCodes.PATTERN_SYNTAX,
            span=SourceSpan(exc.pos, exc.pos + 1, exc.line(), exc.column()),
            pattern=source,
        ) from exc
    return _PatternBuilder(source).visit(tree)


# ===================================================================
#  PART 3 — S-EXPRESSION SYNTAX
# ===================================================================

def _sexp_error(message: str, form: Any) -> PatternCompileError:
    return PatternCompileError(
        f"{message}: {dumps(form)}", code=ErrorCodes.MALFORMED_PATTERN, pattern=dumps(form)
    )


def _from_sexp(form: Any, top: bool = False) -> PatternNode:
    if isinstance(form, Symbol):
        if form == "_":
            return PatternNode(PatternNodeKind.WILDCARD)
        if form == "...":
            return PatternNode(PatternNodeKind.ELLIPSIS)
        if form.startswith("$") and len(form) > 1:
            return PatternNode(PatternNodeKind.METAVAR, name=str(form[1:]))
        return PatternNode(PatternNodeKind.KIND, name=str(form))
    if isinstance(form, str):
        return PatternNode(PatternNodeKind.TEXT, value=form)
    if not isinstance(form, list) or not form:
        raise _sexp_error("expected a pattern", form)
    tag = head(form)
    args = form[1:]
    if tag == "bind":
        if len(args) != 2 or not isinstance(args[0], Symbol):
            raise _sexp_error("expected (bind name pattern)", form)
        return PatternNode(
            PatternNodeKind.CAPTURE, children=[_from_sexp(args[1])], name=str(args[0])
        )
    if tag == "or":
        if not args:
            raise _sexp_error("empty alternation", form)
        return PatternNode(PatternNodeKind.ALTERNATION, children=[_from_sexp(a) for a in args])
    if tag in ("not", "deep"):
        if len(args) != 1:
            raise _sexp_error(f"expected ({tag} pattern)", form)
        kind = PatternNodeKind.NEGATION if tag == "not" else PatternNodeKind.DEEP
        return PatternNode(kind, children=[_from_sexp(args[0])])
    if tag == "re":
        if len(args) != 1 or not isinstance(args[0], str) or isinstance(args[0], Symbol):
            raise _sexp_error('expected (re "regex")', form)
        return PatternNode(PatternNodeKind.REGEX, value=args[0])
    if tag == "where":
        if len(args) != 2 or not isinstance(args[1], str) or isinstance(args[1], Symbol):
            raise _sexp_error('expected (where pattern "predicate")', form)
        return PatternNode(
            PatternNodeKind.WHERE,
            children=[_from_sexp(args[0], top)],
            predicate=compile_predicate(args[1]),
        )
    if tag == "seq":
        if not top:
            raise _sexp_error("(seq ...) is only allowed at the top of a pattern", form)
        return PatternNode(PatternNodeKind.SEQUENCE, children=[_from_sexp(a) for a in args])
    if tag == "kind":
        if not args or not isinstance(args[0], Symbol):
            raise _sexp_error("expected (kind NAME child ...)", form)
        tag, args = str(args[0]), args[1:]
    elif not tag:
        raise _sexp_error("expected a kind name at the head of", form)
    return PatternNode(PatternNodeKind.KIND, name=tag, children=[_from_sexp(a) for a in args])


# ===================================================================
#  PART 4 — PATTERN COMPILER
# ===================================================================

class PatternCompiler:
    """
    Resolves and checks a raw pattern tree against a grammar.

    After :meth:`compile` every node has a preorder ``id`` (used by the
    matcher's memo tables), resolved ``kind_id``/``regex`` fields, and the
    set of capture names its subtree reads.
    """

    def __init__(self, grammar: Grammar, source: str) -> None:
        self.grammar = grammar
        self.source = source
        self._next_id = 0

    def _error(self, message: str, code) -> PatternCompileError:
        return PatternCompileError(
            f"pattern {self.source!r}: {message}", code=code, pattern=self.source
        )

    def compile(self, root: PatternNode) -> Pattern:
        if root.kind == PatternNodeKind.WHERE and root.child.kind == PatternNodeKind.SEQUENCE:
            seq = root.child
        else:
            seq = root if root.kind == PatternNodeKind.SEQUENCE else None
        if seq is not None and not seq.children:
            raise self._error("empty sibling sequence", ErrorCodes.MALFORMED_PATTERN)
        if seq is not None and seq.children[0].is_ellipsis():
            raise self._error("a sibling sequence cannot start with '...'",
                              ErrorCodes.MALFORMED_PATTERN)
        if seq is None and root.kind == PatternNodeKind.ELLIPSIS:
            raise self._error("'...' must appear inside a child list", ErrorCodes.MALFORMED_PATTERN)
        if root.kind == PatternNodeKind.WHERE and seq is not None:
            # A sequence guard runs once the whole run is matched; hoist it
            # into the sequence as its final check.
            seq.predicate = root.predicate
            root = seq

        bound, definite = self._check(root, set(), set(), in_sequence=False, top=True)
        captures = frozenset(bound)
        seq_caps = frozenset(
            n.name for n in self._walk(root)
            if n.kind == PatternNodeKind.CAPTURE and n.child.kind == PatternNodeKind.ELLIPSIS
        )
        pattern = Pattern(
            source=self.source,
            root=root,
            grammar=self.grammar,
            captures=captures,
            sequence_captures=seq_caps,
            size=self._next_id,
            anchor_kinds=self._anchor_kinds(root),
        )
        logger.debug("compiled pattern %r (%d instructions)", self.source, pattern.size)
        return pattern

    @staticmethod
    def _walk(root: PatternNode):
        stack = [root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children or ()))

    def _anchor_kinds(self, node: PatternNode) -> Optional[Tuple[int, ...]]:
        """Kind ids a match of *node* must be rooted at, or ``None`` for any."""
        if node.kind == PatternNodeKind.KIND:
            return (node.kind_id,)
        if node.kind in (PatternNodeKind.CAPTURE, PatternNodeKind.WHERE):
            return self._anchor_kinds(node.child)
        if node.kind == PatternNodeKind.ALTERNATION:
            kinds: Set[int] = set()
            for option in node.children:
                sub = self._anchor_kinds(option)
                if sub is None:
                    return None
                kinds.update(sub)
            return tuple(sorted(kinds))
        return None

    def _check(
        self,
        node: PatternNode,
        before: Set[str],
        possible: Set[str],
        in_sequence: bool,
        top: bool = False,
    ) -> Tuple[Set[str], Set[str]]:
        """
        Resolve *node* and validate its captures.

        *before* holds the names certainly bound when *node* starts matching,
        *possible* the names bound on at least one path. Returns the names
        *node* may bind and the names it certainly binds.
        """
        node.id = self._next_id
        self._next_id += 1
        k = node.kind

        if k == PatternNodeKind.KIND:
            if not self.grammar.has_kind(node.name):
                raise self._error(
                    f"unknown node kind {node.name!r} for grammar {self.grammar.name!r}",
                    ErrorCodes.UNKNOWN_KIND,
                )
            node.kind_id = self.grammar.kind_id(node.name)
            if node.children is None:
                node.refs = ()
                return set(), set()
            return self._check_list(node, before, possible)

        if k == PatternNodeKind.SEQUENCE:
            if not top:
                raise self._error("sibling sequences are only allowed at the top level",
                                  ErrorCodes.MALFORMED_PATTERN)
            may, sure = self._check_list(node, before, possible)
            if node.predicate is not None:
                self._check_guard(node.predicate, before | sure)
                node.refs = tuple(sorted(set(node.refs) | node.predicate.references))
            return may, sure

        if k in (PatternNodeKind.WILDCARD, PatternNodeKind.TEXT):
            return set(), set()

        if k == PatternNodeKind.ELLIPSIS:
            if not in_sequence:
                raise self._error("'...' must appear directly inside a child list",
                                  ErrorCodes.MALFORMED_PATTERN)
            return set(), set()

        if k == PatternNodeKind.REGEX:
            try:
                node.regex = re.compile(node.value)
            except re.error as exc:
                raise self._error(f"invalid regex /{node.value}/: {exc}", ErrorCodes.INVALID_REGEX)
            return set(), set()

        if k == PatternNodeKind.METAVAR:
            if node.name in before:
                node.kind = PatternNodeKind.BACKREF
                node.refs = (node.name,)
                return set(), set()
            if node.name in possible:
                raise self._error(
                    f"${node.name} is bound on only some paths before this use",
                    ErrorCodes.DUPLICATE_CAPTURE,
                )
            return {node.name}, {node.name}

        if k == PatternNodeKind.CAPTURE:
            if node.name in possible:
                raise self._error(f"capture {node.name!r} is bound twice",
                                  ErrorCodes.DUPLICATE_CAPTURE)
            inner = node.child
            if inner.kind == PatternNodeKind.ELLIPSIS:
                if not in_sequence:
                    raise self._error("'...' must appear directly inside a child list",
                                      ErrorCodes.MALFORMED_PATTERN)
                inner.id = self._next_id
                self._next_id += 1
                return {node.name}, {node.name}
            may, sure = self._check(inner, before, possible, in_sequence=False)
            node.refs = inner.refs
            if node.name in may:
                raise self._error(f"capture {node.name!r} is bound twice",
                                  ErrorCodes.DUPLICATE_CAPTURE)
            return may | {node.name}, sure | {node.name}

        if k == PatternNodeKind.ALTERNATION:
            may_all: Set[str] = set()
            sure_all: Optional[Set[str]] = None
            refs: Set[str] = set()
            for option in node.children:
                if option.kind == PatternNodeKind.ELLIPSIS:
                    raise self._error("'...' cannot be an alternation branch",
                                      ErrorCodes.MALFORMED_PATTERN)
                may, sure = self._check(option, before, possible, in_sequence=False)
                may_all |= may
                sure_all = sure if sure_all is None else (sure_all & sure)
                refs.update(option.refs)
            node.refs = tuple(sorted(refs))
            return may_all, sure_all or set()

        if k == PatternNodeKind.NEGATION:
            self._check(node.child, before, possible, in_sequence=False)
            node.refs = node.child.refs
            return set(), set()

        if k == PatternNodeKind.DEEP:
            may, sure = self._check(node.child, before, possible, in_sequence=False)
            node.refs = node.child.refs
            return may, sure

        if k == PatternNodeKind.WHERE:
            if node.child.is_ellipsis():
                raise self._error("guards cannot be attached to '...'; guard the enclosing node",
                                  ErrorCodes.MALFORMED_PATTERN)
            may, sure = self._check(node.child, before, possible, in_sequence=False)
            self._check_guard(node.predicate, before | sure)
            node.refs = tuple(sorted(set(node.child.refs) | node.predicate.references))
            return may, sure

        raise self._error(f"unexpected instruction {k.value}", ErrorCodes.MALFORMED_PATTERN)

    def _check_list(
        self, node: PatternNode, before: Set[str], possible: Set[str]
    ) -> Tuple[Set[str], Set[str]]:
        items = node.children
        may_all: Set[str] = set()
        sure_all: Set[str] = set()
        for item in items:
            may, sure = self._check(item, before | sure_all, possible | may_all, in_sequence=True)
            overlap = may & may_all
            if overlap:
                raise self._error(
                    f"capture {sorted(overlap)[0]!r} is bound twice", ErrorCodes.DUPLICATE_CAPTURE
                )
            may_all |= may
            sure_all |= sure

        fixed: List[int] = []
        open_: List[bool] = []
        suffix: List[Tuple[str, ...]] = []
        count = 0
        has_open = False
        refs: Set[str] = set()
        for item in reversed(items):
            fixed.append(count)
            open_.append(has_open)
            refs.update(item.refs)
            suffix.append(tuple(sorted(refs)))
            if item.is_ellipsis():
                has_open = True
            else:
                count += 1
        node.rest_fixed = tuple(reversed(fixed))
        node.rest_open = tuple(reversed(open_))
        node.suffix_refs = tuple(reversed(suffix))
        node.refs = tuple(sorted(refs))
        return may_all, sure_all

    def _check_guard(self, predicate: Predicate, available: Set[str]) -> None:
        missing = sorted(predicate.references - available)
        if missing:
            raise self._error(
                f"guard {predicate.source!r} reads capture(s) {', '.join(missing)} "
                "that are not bound at that point",
                ErrorCodes.UNBOUND_CAPTURE,
            )


def compile_pattern(source: Union[str, list, Symbol], grammar: Grammar) -> Pattern:
    """
    Compile a pattern for *grammar*.

    *source* is textual pattern syntax, or an already-read S-expression
    (a list or symbol, as produced by :func:`chartlint.sexp.loads`).

    Raises
    ------
    PatternCompileError
        Syntax errors, unknown kinds, conflicting or unbound captures.
    """
    if isinstance(source, (list, Symbol)):
        text = dumps(source)
        raw = _from_sexp(source, top=True)
    else:
        text = source
        raw = _parse_text(source)
    return PatternCompiler(grammar, text).compile(raw)


def compile_sexp_pattern(text: str, grammar: Grammar) -> Pattern:
    """Compile a pattern written in S-expression syntax."""
    return compile_pattern(loads(text, PatternCompileError), grammar)


__all__ = [
    "PatternNodeKind",
    "PatternNode",
    "Pattern",
    "PatternCompiler",
    "PATTERN_GRAMMAR",
    "compile_pattern",
    "compile_sexp_pattern",
]
