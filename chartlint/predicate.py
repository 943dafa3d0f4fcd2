# chartlint/predicate.py
"""
Side-effect-free boolean expressions over match captures.

Used for rule ``where`` scripts and for pattern guards
(``call(name: _) where name.text startswith "unsafe"``).

Syntax
------
::

    a or b        a and b        not a        ( a )
    x == "eval"   x != y         n < 3   <=  >  >=
    x =~ "^re"    x in ["a", "b"]    x not in [...]
    x startswith "s"   x endswith "s"   x contains "s"
    x  $x  x.text  x.kind  x.start  x.end  x.line  x.column  x.count
    len(x) count(x) text(x) kind(x) lower(s) upper(s) trim(s)
    matches(s, "re") line(x) column(x)
    "str"  'str'  12  1.5  true  false  [a, b]

A capture used where a string is expected is read as its source text.
Comparing values of different types, applying an operator to the wrong
type, or producing a non-boolean result raises
:class:`~chartlint.errors.PredicateEvaluationError`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Sequence, Tuple, Union

from parsimonious.exceptions import ParseError as PegParseError
from parsimonious.grammar import Grammar as PegGrammar
from parsimonious.nodes import NodeVisitor

from .errors import ErrorCodes, PatternCompileError, PredicateEvaluationError, SourceSpan

logger = logging.getLogger(__name__)

Binding = Union[int, Tuple[int, ...]]


# ════════════════════════════════════════════════════════════════════════
# §1  Grammar
# ════════════════════════════════════════════════════════════════════════

#: Shared with the pattern grammar, which embeds ``disjunction`` for guards.
PREDICATE_RULES = r"""
    disjunction   = conjunction (_ kw_or _ conjunction)*
    conjunction   = negation (_ kw_and _ negation)*
    negation      = negated / comparison
    negated       = kw_not _ negation
    comparison    = operand (_ comp_op _ operand)?
    comp_op       = "==" / "!=" / "<=" / ">=" / "=~" / "<" / ">" / kw_not_in / kw_in
                  / kw_startswith / kw_endswith / kw_contains
    operand       = p_group / p_list / p_string / p_number / p_boolean / p_call / p_ref
    p_group       = "(" _ disjunction _ ")"
    p_list        = "[" _ p_items? _ "]"
    p_items       = disjunction (_ "," _ disjunction)*
    p_call        = p_name _ "(" _ p_items? _ ")"
    p_ref         = ~r"\$?[A-Za-z_][A-Za-z0-9_]*" p_attribute?
    p_attribute   = "." p_name
    p_string      = ~r'"(?:[^"\\]|\\.)*"' / ~r"'(?:[^'\\]|\\.)*'"
    p_number      = ~r"-?\d+(?:\.\d+)?"
    p_boolean     = ~r"(?:true|false)\b"
    p_name        = ~r"[A-Za-z_][A-Za-z0-9_]*"
    kw_or         = ~r"or\b"
    kw_and        = ~r"and\b"
    kw_not        = ~r"not\b"
    kw_not_in     = ~r"not\s+in\b"
    kw_in         = ~r"in\b"
    kw_startswith = ~r"startswith\b"
    kw_endswith   = ~r"endswith\b"
    kw_contains   = ~r"contains\b"
    _             = ~r"\s*"
"""

PREDICATE_GRAMMAR = PegGrammar(
    r"""
    predicate     = _ disjunction _
    """
    + PREDICATE_RULES
)

ATTRIBUTES = frozenset({"text", "kind", "start", "end", "line", "column", "count"})


# ════════════════════════════════════════════════════════════════════════
# §2  Runtime values
# ════════════════════════════════════════════════════════════════════════


class CaptureRef:
    """A capture as seen by a predicate: one node, or a run of sibling nodes."""

    __slots__ = ("tree", "ids", "many")

    def __init__(self, tree, binding: Binding) -> None:
        self.tree = tree
        self.many = isinstance(binding, tuple)
        self.ids: Tuple[int, ...] = binding if self.many else (binding,)

    @property
    def text(self) -> str:
        if not self.ids:
            return ""
        first = self.tree.nodes[self.ids[0]]
        last = self.tree.nodes[self.ids[-1]]
        return self.tree.source.slice(first.start, last.end)

    @property
    def kind(self) -> str:
        return self.tree.nodes[self.ids[0]].kind if self.ids else ""

    @property
    def start(self) -> int:
        if not self.ids:
            return 0
        return self.tree.nodes[self.ids[0]].start

    @property
    def end(self) -> int:
        if not self.ids:
            return 0
        return self.tree.nodes[self.ids[-1]].end

    @property
    def line(self) -> int:
        return self.tree.source.line_col(self.start)[0]

    @property
    def column(self) -> int:
        return self.tree.source.line_col(self.start)[1]

    @property
    def count(self) -> int:
        return len(self.ids)

    def __repr__(self) -> str:
        return f"CaptureRef({self.text!r})"


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "list"
    if isinstance(value, CaptureRef):
        return "capture"
    return type(value).__name__


def _as_text(value: Any) -> Any:
    return value.text if isinstance(value, CaptureRef) else value


def _expect(value: Any, kind: str, where: str) -> Any:
    value = _as_text(value) if kind == "string" else value
    if _type_name(value) != kind:
        raise PredicateEvaluationError(
            f"{where}: expected {kind}, got {_type_name(value)}",
            code=ErrorCodes.PREDICATE_TYPE,
        )
    return value


class _Env:
    __slots__ = ("tree", "bindings")

    def __init__(self, tree, bindings: Mapping[str, Binding]) -> None:
        self.tree = tree
        self.bindings = bindings

    def lookup(self, name: str) -> CaptureRef:
        try:
            binding = self.bindings[name]
        except KeyError:
            raise PredicateEvaluationError(
                f"capture {name!r} is not bound", code=ErrorCodes.PREDICATE_RUNTIME
            ) from None
        return CaptureRef(self.tree, binding)


# ════════════════════════════════════════════════════════════════════════
# §3  Expression nodes
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Const:
    value: Any

    def evaluate(self, env: _Env) -> Any:
        return self.value

    def references(self) -> FrozenSet[str]:
        return frozenset()


@dataclass(frozen=True, slots=True)
class ListExpr:
    items: Tuple[Any, ...]

    def evaluate(self, env: _Env) -> Any:
        return [item.evaluate(env) for item in self.items]

    def references(self) -> FrozenSet[str]:
        return frozenset().union(*(i.references() for i in self.items))


@dataclass(frozen=True, slots=True)
class CaptureExpr:
    name: str
    attribute: Optional[str] = None

    def evaluate(self, env: _Env) -> Any:
        ref = env.lookup(self.name)
        if self.attribute is None:
            return ref
        return getattr(ref, self.attribute)

    def references(self) -> FrozenSet[str]:
        return frozenset([self.name])


def _fn_len(x):
    if isinstance(x, CaptureRef):
        return x.count if x.many else len(x.text)
    if isinstance(x, (str, list)):
        return len(x)
    raise PredicateEvaluationError(
        f"len(): expected string, list or capture, got {_type_name(x)}",
        code=ErrorCodes.PREDICATE_TYPE,
    )


def _fn_matches(s, pattern):
    s = _expect(s, "string", "matches()")
    pattern = _expect(pattern, "string", "matches()")
    try:
        return re.search(pattern, s) is not None
    except re.error as exc:
        raise PredicateEvaluationError(f"matches(): invalid regex: {exc}") from exc


FUNCTIONS: Dict[str, Tuple[int, Callable[..., Any]]] = {
    "len": (1, _fn_len),
    "count": (1, lambda x: _expect(x, "capture", "count()").count),
    "text": (1, lambda x: _expect(x, "capture", "text()").text),
    "kind": (1, lambda x: _expect(x, "capture", "kind()").kind),
    "line": (1, lambda x: _expect(x, "capture", "line()").line),
    "column": (1, lambda x: _expect(x, "capture", "column()").column),
    "lower": (1, lambda s: _expect(s, "string", "lower()").lower()),
    "upper": (1, lambda s: _expect(s, "string", "upper()").upper()),
    "trim": (1, lambda s: _expect(s, "string", "trim()").strip()),
    "matches": (2, _fn_matches),
}


@dataclass(frozen=True, slots=True)
class CallExpr:
    name: str
    args: Tuple[Any, ...]

    def evaluate(self, env: _Env) -> Any:
        _, fn = FUNCTIONS[self.name]
        return fn(*(a.evaluate(env) for a in self.args))

    def references(self) -> FrozenSet[str]:
        return frozenset().union(*(a.references() for a in self.args))


def _compare(op: str, left: Any, right: Any) -> bool:
    if op in ("in", "not in"):
        left = _as_text(left)
        if isinstance(right, list):
            found = any(_equal(left, _as_text(item), op) for item in right)
        elif isinstance(right, (str, CaptureRef)):
            found = _expect(left, "string", op) in _as_text(right)
        else:
            raise PredicateEvaluationError(
                f"'{op}': right operand must be a list or string, got {_type_name(right)}",
                code=ErrorCodes.PREDICATE_TYPE,
            )
        return found if op == "in" else not found
    if op in ("startswith", "endswith", "contains", "=~"):
        text = _expect(left, "string", op)
        arg = _expect(right, "string", op)
        if op == "startswith":
            return text.startswith(arg)
        if op == "endswith":
            return text.endswith(arg)
        if op == "contains":
            return arg in text
        try:
            return re.search(arg, text) is not None
        except re.error as exc:
            raise PredicateEvaluationError(f"'=~': invalid regex: {exc}") from exc
    left, right = _as_text(left), _as_text(right)
    if op == "==":
        return _equal(left, right, op)
    if op == "!=":
        return not _equal(left, right, op)
    lt, rt = _type_name(left), _type_name(right)
    if lt != rt or lt not in ("number", "string"):
        raise PredicateEvaluationError(
            f"cannot compare {lt} {op} {rt}", code=ErrorCodes.PREDICATE_TYPE
        )
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _equal(left: Any, right: Any, op: str) -> bool:
    lt, rt = _type_name(left), _type_name(right)
    if lt != rt:
        raise PredicateEvaluationError(
            f"cannot compare {lt} {op} {rt}", code=ErrorCodes.PREDICATE_TYPE
        )
    return left == right


@dataclass(frozen=True, slots=True)
class Compare:
    op: str
    left: Any
    right: Any

    def evaluate(self, env: _Env) -> Any:
        return _compare(self.op, self.left.evaluate(env), self.right.evaluate(env))

    def references(self) -> FrozenSet[str]:
        return self.left.references() | self.right.references()


def _truth(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise PredicateEvaluationError(
            f"{where}: expected a boolean, got {_type_name(value)}",
            code=ErrorCodes.PREDICATE_TYPE,
        )
    return value


@dataclass(frozen=True, slots=True)
class BoolOp:
    op: str
    operands: Tuple[Any, ...]

    def evaluate(self, env: _Env) -> Any:
        if self.op == "and":
            for operand in self.operands:
                if not _truth(operand.evaluate(env), "and"):
                    return False
            return True
        for operand in self.operands:
            if _truth(operand.evaluate(env), "or"):
                return True
        return False

    def references(self) -> FrozenSet[str]:
        return frozenset().union(*(o.references() for o in self.operands))


@dataclass(frozen=True, slots=True)
class Not:
    operand: Any

    def evaluate(self, env: _Env) -> Any:
        return not _truth(self.operand.evaluate(env), "not")

    def references(self) -> FrozenSet[str]:
        return self.operand.references()


# ════════════════════════════════════════════════════════════════════════
# §4  Parse tree -> expression nodes
# ════════════════════════════════════════════════════════════════════════

_STR_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "'": "'", "\\": "\\"}


def _many(value: Any) -> list:
    return value if isinstance(value, list) else []


def _first(value: Any) -> Any:
    return value[0] if isinstance(value, list) and value else None


class PredicateBuilder(NodeVisitor):
    """
    Builds expression nodes from a parse of :data:`PREDICATE_RULES`.

    The pattern visitor subclasses this so guards share one implementation.
    """

    unwrapped_exceptions = (PatternCompileError,)

    def visit_predicate(self, node, visited_children):
        return visited_children[1]

    def visit_disjunction(self, node, visited_children):
        first, rest = visited_children
        operands = [first] + [x[3] for x in _many(rest)]
        return operands[0] if len(operands) == 1 else BoolOp("or", tuple(operands))

    def visit_conjunction(self, node, visited_children):
        first, rest = visited_children
        operands = [first] + [x[3] for x in _many(rest)]
        return operands[0] if len(operands) == 1 else BoolOp("and", tuple(operands))

    def visit_negation(self, node, visited_children):
        return visited_children[0]

    def visit_negated(self, node, visited_children):
        return Not(visited_children[2])

    def visit_comparison(self, node, visited_children):
        left, tail = visited_children
        tail = _first(tail)
        if tail is None:
            return left
        return Compare(tail[1], left, tail[3])

    def visit_comp_op(self, node, visited_children):
        return " ".join(node.text.split())

    def visit_operand(self, node, visited_children):
        return visited_children[0]

    def visit_p_group(self, node, visited_children):
        return visited_children[2]

    def visit_p_list(self, node, visited_children):
        items = _first(visited_children[2])
        return ListExpr(tuple(items or ()))

    def visit_p_items(self, node, visited_children):
        first, rest = visited_children
        return [first] + [x[3] for x in _many(rest)]

    def visit_p_call(self, node, visited_children):
        name = visited_children[0]
        args = tuple(_first(visited_children[4]) or ())
        if name not in FUNCTIONS:
            raise PatternCompileError(
                f"unknown predicate function {name!r}",
                code=ErrorCodes.PREDICATE_SYNTAX,
                span=SourceSpan(node.start, node.end),
            )
        arity, _ = FUNCTIONS[name]
        if len(args) != arity:
            raise PatternCompileError(
                f"{name}() takes {arity} argument(s), got {len(args)}",
                code=ErrorCodes.PREDICATE_SYNTAX,
                span=SourceSpan(node.start, node.end),
            )
        return CallExpr(name, args)

    def visit_p_ref(self, node, visited_children):
        name = node.children[0].text.lstrip("$")
        attribute = _first(visited_children[1])
        if attribute is not None and attribute not in ATTRIBUTES:
            raise PatternCompileError(
                f"unknown capture attribute {attribute!r} (expected one of "
                f"{', '.join(sorted(ATTRIBUTES))})",
                code=ErrorCodes.PREDICATE_SYNTAX,
                span=SourceSpan(node.start, node.end),
            )
        return CaptureExpr(name, attribute)

    def visit_p_attribute(self, node, visited_children):
        return visited_children[1]

    def visit_p_string(self, node, visited_children):
        body = node.text[1:-1]
        return Const(re.sub(r"\\(.)", lambda m: _STR_ESCAPES.get(m.group(1), m.group(0)), body))

    def visit_p_number(self, node, visited_children):
        text = node.text
        return Const(float(text) if "." in text else int(text))

    def visit_p_boolean(self, node, visited_children):
        return Const(node.text == "true")

    def visit_p_name(self, node, visited_children):
        return node.text

    def visit__(self, node, visited_children):
        return None

    def generic_visit(self, node, visited_children):
        return visited_children or node


# ════════════════════════════════════════════════════════════════════════
# §5  Compiled predicate
# ════════════════════════════════════════════════════════════════════════


class Predicate:
    """A compiled predicate expression."""

    __slots__ = ("source", "expr", "references")

    def __init__(self, source: str, expr: Any) -> None:
        self.source = source
        self.expr = expr
        self.references: FrozenSet[str] = expr.references()

    def evaluate(self, tree, bindings: Mapping[str, Binding]) -> bool:
        """
        Evaluate against one set of capture bindings.

        Raises
        ------
        PredicateEvaluationError
            On type errors, unbound captures or a non-boolean result.
        """
        value = self.expr.evaluate(_Env(tree, bindings))
        if not isinstance(value, bool):
            raise PredicateEvaluationError(
                f"predicate {self.source!r} produced {_type_name(value)}, not a boolean",
                code=ErrorCodes.PREDICATE_TYPE,
            )
        return value

    def __repr__(self) -> str:
        return f"Predicate({self.source!r})"



def compile_predicate(source: str, known: Optional[Sequence[str]] = None) -> Predicate:
    """
    Compile *source*.

    When *known* is given, references to other capture names are rejected.

    Raises
    ------
    PatternCompileError
        Syntax errors, unknown functions or attributes, unknown captures.
    """
    try:
        parse_tree = PREDICATE_GRAMMAR.parse(source)
    except PegParseError as exc:
        raise PatternCompileError(
            f"invalid predicate {source!r} at column {exc.column()}",
            code=ErrorCodes.PREDICATE_SYNTAX,
            span=SourceSpan(exc.pos, exc.pos + 1, exc.line(), exc.column()),
            pattern=source,
        ) from exc
    predicate = Predicate(source, PredicateBuilder().visit(parse_tree))
    if known is not None:
        unknown = sorted(predicate.references - set(known))
        if unknown:
            raise PatternCompileError(
                f"predicate {source!r} references unknown capture(s) {', '.join(unknown)}",
                code=ErrorCodes.UNBOUND_CAPTURE,
                pattern=source,
            )
    return predicate


__all__ = [
    "PREDICATE_RULES",
    "PREDICATE_GRAMMAR",
    "CaptureRef",
    "Predicate",
    "PredicateBuilder",
    "compile_predicate",
]
