"""
Built-in language grammars.

Each grammar is loaded and validated once per process and then shared by
reference::

    from chartlint.languages import get_grammar
    grammar = get_grammar("minijs")
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Dict, List

from ..grammar import Grammar
from ..grammar_loader import load_grammar
from . import calc, json, minijs, python

logger = logging.getLogger(__name__)

_SOURCES: Dict[str, str] = {
    "calc": calc.GRAMMAR,
    "json": json.GRAMMAR,
    "minijs": minijs.GRAMMAR,
    "python": python.GRAMMAR,
}


def available() -> List[str]:
    return sorted(_SOURCES)


def grammar_source(name: str) -> str:
    try:
        return _SOURCES[name]
    except KeyError:
        raise KeyError(f"unknown language {name!r}; available: {', '.join(available())}") from None


@lru_cache(maxsize=None)
def get_grammar(name: str) -> Grammar:
    """The built-in grammar called *name*, loaded on first use."""
    grammar = load_grammar(grammar_source(name))
    logger.debug("built-in grammar %s ready", name)
    return grammar


__all__ = ["available", "grammar_source", "get_grammar"]
