# chartlint/sexp.py
"""
S-expression reading for grammar, rule and pattern descriptions.

Text is read with :mod:`sexpdata` and normalised to plain Python data:

    (a "b" 3 (c))   ->   [Symbol("a"), "b", 3, [Symbol("c")]]

Symbols are a ``str`` subclass so they can be told apart from string
literals while still comparing equal to plain strings. ``;`` starts a
comment that runs to the end of the line.
"""

from __future__ import annotations

from typing import Any, List, Type

import sexpdata

from .errors import ChartlintError, ErrorCodes


class Symbol(str):
    """A bare S-expression symbol."""

    def __repr__(self) -> str:
        return f"Symbol({str.__repr__(self)})"


def _normalise(obj: Any, error: Type[ChartlintError]) -> Any:
    if isinstance(obj, list):
        return [_normalise(x, error) for x in obj]
    if isinstance(obj, sexpdata.Symbol):
        return Symbol(obj.value())
    if isinstance(obj, (sexpdata.Quoted, sexpdata.Delimiters)):
        raise error(
            f"unsupported S-expression syntax {sexpdata.dumps(obj)}",
            code=getattr(error, "default_code", ErrorCodes.GRAMMAR_SYNTAX),
        )
    return obj


def loads_all(text: str, error: Type[ChartlintError] = ChartlintError) -> List[Any]:
    """Read every top-level form in *text*; raises *error* on malformed input."""
    try:
        # nil and t stay ordinary symbols
        forms = sexpdata.parse(text, nil=None, true=None)
    except Exception as exc:
        raise error(
            f"malformed S-expression: {exc}",
            code=getattr(error, "default_code", ErrorCodes.GRAMMAR_SYNTAX),
        ) from exc
    return [_normalise(form, error) for form in forms]


def loads(text: str, error: Type[ChartlintError] = ChartlintError) -> Any:
    """Read exactly one form."""
    forms = loads_all(text, error)
    if len(forms) != 1:
        raise error(f"expected one S-expression, found {len(forms)}")
    return forms[0]




def dumps(obj: Any) -> str:
    if isinstance(obj, list):
        return "(" + " ".join(dumps(x) for x in obj) + ")"
    if isinstance(obj, Symbol):
        return str(obj)
    if isinstance(obj, str):
        escaped = obj.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return str(obj)


def is_symbol(obj: Any, name: str = "") -> bool:
    return isinstance(obj, Symbol) and (not name or obj == name)


def head(form: Any) -> str:
    """The head symbol of a list form, or ``""``."""
    if isinstance(form, list) and form and isinstance(form[0], Symbol):
        return str(form[0])
    return ""


__all__ = ["Symbol", "loads", "loads_all", "dumps", "is_symbol", "head"]
