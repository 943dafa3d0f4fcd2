# chartlint/lexer.py
"""
Token-rule-driven scanner.

At every position each token rule of the grammar is tried; the winner is
the longest match, then the higher priority, then the earlier declaration.
Characters no rule matches become ``unknown`` tokens (with a
:class:`~chartlint.errors.LexicalError`), whitespace no rule covers becomes
implicit ``whitespace`` trivia, so the token spans always partition the
input. Lexing never aborts.

Spans are byte offsets into the UTF-8 encoding of the source; the scanner
itself runs over ``str`` and converts positions through :class:`SourceText`.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple, Union

from .errors import ErrorCodes, LexicalError, SourceSpan
from .grammar import UNKNOWN, WHITESPACE, Grammar

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Token:
    kind: str
    kind_id: int
    start: int
    end: int
    text: str
    trivia: bool = False
    line: int = 1
    column: int = 1

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)

    def __repr__(self) -> str:
        return f"Token({self.kind}, {self.text!r}, [{self.start}, {self.end}))"


class SourceText:
    """
    A source buffer seen both as text and as UTF-8 bytes.

    Converts character positions to byte offsets and byte offsets to 1-based
    line/column pairs (column counted in characters).
    """

    def __init__(self, source: Union[str, bytes]) -> None:
        if isinstance(source, bytes):
            self.data = source
            self.text = source.decode("utf-8", "surrogateescape")
        else:
            self.text = source
            self.data = source.encode("utf-8", "surrogateescape")
        self._ascii = len(self.data) == len(self.text)
        self._byte_at: Optional[List[int]] = None
        if not self._ascii:
            offsets = [0]
            total = 0
            for ch in self.text:
                total += len(ch.encode("utf-8", "surrogateescape"))
                offsets.append(total)
            self._byte_at = offsets
        self._line_starts = [0]
        for i, ch in enumerate(self.text):
            if ch == "\n":
                self._line_starts.append(self.byte_offset(i + 1))

    def __len__(self) -> int:
        return len(self.data)

    def byte_offset(self, char_pos: int) -> int:
        if self._byte_at is None:
            return char_pos
        return self._byte_at[char_pos]

    def char_offset(self, byte_pos: int) -> int:
        if self._byte_at is None:
            return byte_pos
        return bisect.bisect_right(self._byte_at, byte_pos) - 1

    def line_col(self, byte_pos: int) -> Tuple[int, int]:
        line = bisect.bisect_right(self._line_starts, byte_pos) - 1
        col = self.char_offset(byte_pos) - self.char_offset(self._line_starts[line])
        return line + 1, col + 1

    def line_span(self, line: int) -> Tuple[int, int]:
        """Byte span of 1-based *line*, without its newline."""
        start = self._line_starts[line - 1]
        if line < len(self._line_starts):
            end = self._line_starts[line] - 1
        else:
            end = len(self.data)
        return start, end

    def slice(self, start: int, end: int) -> str:
        return self.data[start:end].decode("utf-8", "surrogateescape")


class Lexer:
    """
    Lazy scanner over one source buffer.

    Iterating yields :class:`Token` values; lexical errors found so far are
    available in :attr:`errors`.
    """

    def __init__(self, grammar: Grammar, source: Union[str, bytes, SourceText]) -> None:
        self.grammar = grammar
        self.source = source if isinstance(source, SourceText) else SourceText(source)
        self.errors: List[LexicalError] = []
        self._rules = list(zip(grammar.token_rules, grammar.token_regexes))
        self._line = 1
        self._column = 1

    def _longest(self, pos: int):
        text = self.source.text
        best = None
        best_key = None
        for order, (rule, regex) in enumerate(self._rules):
            m = regex.match(text, pos)
            if m is None or m.end() == pos:
                continue
            key = (m.end() - pos, rule.priority, -order)
            if best_key is None or key > best_key:
                best, best_key = (rule, m.end()), key
        return best

    def _any_match(self, pos: int) -> bool:
        text = self.source.text
        for _, regex in self._rules:
            m = regex.match(text, pos)
            if m is not None and m.end() > pos:
                return True
        return False

    def _make(self, kind: str, start: int, end: int, trivia: bool) -> Token:
        text = self.source.text[start:end]
        tok = Token(
            kind=kind,
            kind_id=self.grammar.kind_id(kind),
            start=self.source.byte_offset(start),
            end=self.source.byte_offset(end),
            text=text,
            trivia=trivia,
            line=self._line,
            column=self._column,
        )
        newlines = text.count("\n")
        if newlines:
            self._line += newlines
            self._column = len(text) - text.rfind("\n")
        else:
            self._column += len(text)
        return tok

    def __iter__(self) -> Iterator[Token]:
        text = self.source.text
        n = len(text)
        pos = 0
        while pos < n:
            best = self._longest(pos)
            if best is not None:
                rule, end = best
                yield self._make(rule.name, pos, end, rule.trivia)
                pos = end
                continue
            end = pos + 1
            if text[pos].isspace():
                while end < n and text[end].isspace() and not self._any_match(end):
                    end += 1
                yield self._make(WHITESPACE, pos, end, True)
            else:
                while end < n and not text[end].isspace() and not self._any_match(end):
                    end += 1
                tok = self._make(UNKNOWN, pos, end, False)
                self.errors.append(
                    LexicalError(
                        span=SourceSpan(tok.start, tok.end, tok.line, tok.column),
                        message=f"unrecognized input {tok.text!r}",
                        code=ErrorCodes.UNMATCHED_INPUT,
                        text=tok.text,
                    )
                )
                logger.debug("lexical error at %d:%d: %r", tok.line, tok.column, tok.text)
                yield tok
            pos = end


def tokenize(
    grammar: Grammar, text: Union[str, bytes, SourceText]
) -> Tuple[List[Token], List[LexicalError]]:
    """Scan *text* completely; returns every token and the lexical errors."""
    lexer = Lexer(grammar, text)
    tokens = list(lexer)
    return tokens, lexer.errors


__all__ = ["Token", "SourceText", "Lexer", "tokenize"]
