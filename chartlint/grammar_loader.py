# chartlint/grammar_loader.py
"""
S-expression grammar descriptions -> :class:`~chartlint.grammar.Grammar`.

Surface syntax
--------------
::

    (grammar <name>
      (start <production>)                        ; optional, default: first rule
      (token <NAME> "<regex>" [:priority n] [:trivia])
      (rule <name> [:transparent] [:inline]
        <alternative> ...)
      (suppress (comments <TOKEN> ...) (directive "<regex>")))

    ;; alternatives
    (expr "+" expr)          ; a sequence; strings are literal terminals
    (expr "^" expr :right)   ; right associative
    NUMBER                   ; shorthand for a one-symbol sequence
    ()                       ; the empty sequence
    (? "," value)            ; groups, allowed anywhere inside a sequence
    (* "," value)
    (+ digit)

Token rules and rules may be interleaved; token rules are ordered by
declaration. Loading validates the grammar, so anything this module returns
is ready to parse with.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import ErrorCodes, GrammarLoadError
from .grammar import (
    DEFAULT_DIRECTIVE,
    Alternative,
    Grammar,
    Group,
    Literal,
    Production,
    Ref,
    Symbol as GrammarSymbol,
    SuppressionConvention,
    TokenRule,
)
from .sexp import Symbol, dumps, head, loads_all

logger = logging.getLogger(__name__)

Sexp = Any


# ═══════════════════════════════════════════════════════════════════════
#  Shape helpers
# ═══════════════════════════════════════════════════════════════════════


def _fail(message: str) -> GrammarLoadError:
    return GrammarLoadError(message, code=ErrorCodes.GRAMMAR_SYNTAX)


def _sym_name(s: Sexp) -> str:
    if isinstance(s, Symbol):
        return str(s)
    raise _fail(f"expected a symbol, got {dumps(s)}")


def _expect_list(s: Sexp, *, min_len: int = 0, tag: Optional[str] = None) -> list:
    if not isinstance(s, list):
        raise _fail(f"expected a list{f' ({tag} ...)' if tag else ''}, got {dumps(s)}")
    if len(s) < min_len:
        raise _fail(f"form too short: expected at least {min_len} elements in {dumps(s)}")
    return s


def _split_keywords(items: List[Sexp]) -> Tuple[List[Sexp], Dict[str, Any]]:
    """Separate ``:flag`` / ``:key value`` keywords from positional items."""
    positional: List[Sexp] = []
    keywords: Dict[str, Any] = {}
    i = 0
    while i < len(items):
        item = items[i]
        if isinstance(item, Symbol) and item.startswith(":"):
            key = item[1:]
            if i + 1 < len(items) and not (
                isinstance(items[i + 1], Symbol) and items[i + 1].startswith(":")
            ) and key in _VALUED_KEYWORDS:
                keywords[key] = items[i + 1]
                i += 2
                continue
            keywords[key] = True
            i += 1
            continue
        positional.append(item)
        i += 1
    return positional, keywords


_VALUED_KEYWORDS = frozenset({"priority"})


# ═══════════════════════════════════════════════════════════════════════
#  Symbols and alternatives
# ═══════════════════════════════════════════════════════════════════════

_QUANTIFIERS = ("?", "*", "+")


def _parse_symbol(s: Sexp) -> GrammarSymbol:
    if isinstance(s, Symbol):
        if s.startswith(":"):
            raise _fail(f"unexpected keyword {s} inside a sequence")
        return Ref(str(s))
    if isinstance(s, str):
        return Literal(s)
    if isinstance(s, list):
        tag = head(s)
        if tag not in _QUANTIFIERS:
            raise _fail(f"expected a group (? ...), (* ...) or (+ ...), got {dumps(s)}")
        if len(s) < 2:
            raise _fail(f"empty group {dumps(s)}")
        return Group(tag, tuple(_parse_symbol(x) for x in s[1:]))
    raise _fail(f"unexpected {dumps(s)} in a rule")


def _parse_alternative(s: Sexp) -> Alternative:
    if not isinstance(s, list) or head(s) in _QUANTIFIERS:
        return Alternative((_parse_symbol(s),))
    symbols, keywords = _split_keywords(s)
    unknown = set(keywords) - {"right", "left"}
    if unknown:
        raise _fail(f"unknown alternative option(s) {sorted(unknown)} in {dumps(s)}")
    assoc = "right" if keywords.get("right") else "left"
    return Alternative(tuple(_parse_symbol(x) for x in symbols), assoc)


# ═══════════════════════════════════════════════════════════════════════
#  Top-level forms
# ═══════════════════════════════════════════════════════════════════════

_FORM_DISPATCH: Dict[str, Callable[["_GrammarBuilder", list], None]] = {}


def _register(table: dict, tag: str):
    """Decorator: register a form handler under *tag* in *table*."""
    def deco(fn):
        table[tag] = fn
        return fn
    return deco


class _GrammarBuilder:
    def __init__(self, name: str) -> None:
        self.name = name
        self.start: Optional[str] = None
        self.productions: List[Production] = []
        self.tokens: List[TokenRule] = []
        self.suppression: Optional[SuppressionConvention] = None

    def build(self) -> Grammar:
        return Grammar(
            self.name,
            self.productions,
            self.tokens,
            start=self.start,
            suppression=self.suppression,
        )


@_register(_FORM_DISPATCH, "start")
def _form_start(b: _GrammarBuilder, form: list) -> None:
    _expect_list(form, min_len=2, tag="start")
    b.start = _sym_name(form[1])


@_register(_FORM_DISPATCH, "token")
def _form_token(b: _GrammarBuilder, form: list) -> None:
    positional, keywords = _split_keywords(form[1:])
    if len(positional) != 2 or not isinstance(positional[1], str) or isinstance(
        positional[1], Symbol
    ):
        raise _fail(f'expected (token NAME "regex" ...), got {dumps(form)}')
    priority = keywords.get("priority", 0)
    if not isinstance(priority, int) or isinstance(priority, bool):
        raise _fail(f"token priority must be an integer in {dumps(form)}")
    b.tokens.append(
        TokenRule(
            _sym_name(positional[0]),
            positional[1],
            priority=priority,
            trivia=bool(keywords.get("trivia", False)),
        )
    )


@_register(_FORM_DISPATCH, "rule")
def _form_rule(b: _GrammarBuilder, form: list) -> None:
    _expect_list(form, min_len=2, tag="rule")
    name = _sym_name(form[1])
    alternatives, keywords = _split_keywords(form[2:])
    unknown = set(keywords) - {"transparent", "inline"}
    if unknown:
        raise _fail(f"unknown rule option(s) {sorted(unknown)} on {name!r}")
    if not alternatives:
        raise _fail(f"rule {name!r} has no alternatives")
    b.productions.append(
        Production(
            name,
            tuple(_parse_alternative(a) for a in alternatives),
            transparent=bool(keywords.get("transparent")),
            inline=bool(keywords.get("inline")),
        )
    )


@_register(_FORM_DISPATCH, "suppress")
def _form_suppress(b: _GrammarBuilder, form: list) -> None:
    comments: Tuple[str, ...] = ()
    directive = DEFAULT_DIRECTIVE
    for part in form[1:]:
        part = _expect_list(part, min_len=1, tag="comments|directive")
        tag = head(part)
        if tag == "comments":
            comments = tuple(_sym_name(x) for x in part[1:])
        elif tag == "directive":
            if len(part) != 2 or not isinstance(part[1], str) or isinstance(part[1], Symbol):
                raise _fail(f'expected (directive "regex"), got {dumps(part)}')
            directive = part[1]
        else:
            raise _fail(f"unknown suppress option {dumps(part)}")
    b.suppression = SuppressionConvention(comments, directive)


def grammar_from_sexp(form: Sexp) -> Grammar:
    """Build a grammar from an already-read ``(grammar ...)`` form."""
    _expect_list(form, min_len=2, tag="grammar")
    if head(form) != "grammar":
        raise _fail(f"expected (grammar <name> ...), got ({head(form) or dumps(form[0])} ...)")
    builder = _GrammarBuilder(_sym_name(form[1]))
    for item in form[2:]:
        item = _expect_list(item, min_len=1)
        handler = _FORM_DISPATCH.get(head(item))
        if handler is None:
            raise _fail(f"unknown grammar form ({head(item) or dumps(item[0])} ...)")
        handler(builder, item)
    grammar = builder.build()
    logger.debug("loaded grammar %s", grammar.name)
    return grammar


def load_grammar(text: str) -> Grammar:
    """
    Read one grammar description.

    Raises
    ------
    GrammarLoadError
        The text is not a well-formed grammar description.
    GrammarValidationError
        The description is well formed but the grammar is invalid.
    """
    forms = loads_all(text, GrammarLoadError)
    if len(forms) != 1:
        raise _fail(f"expected exactly one (grammar ...) form, found {len(forms)}")
    return grammar_from_sexp(forms[0])


__all__ = ["load_grammar", "grammar_from_sexp"]
