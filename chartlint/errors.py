# chartlint/errors.py
"""
Error types and error records for the chartlint engine.

Architecture Overview:
─────────────────────
┌─────────────────────────────────────────────────────────────────────────────┐
│                          Error Hierarchy                                    │
├─────────────────────────────────────────────────────────────────────────────┤
│  ChartlintError (base exception)                                            │
│  ├── GrammarValidationError   - grammar rejected at load time               │
│  ├── GrammarLoadError         - grammar description could not be read       │
│  ├── PatternCompileError      - pattern rejected at rule load time          │
│  ├── RuleConfigError          - rule fields inconsistent with its pattern   │
│  ├── RuleLoadError            - rule description could not be read          │
│  └── PredicateEvaluationError - guard/predicate failed on one match         │
│                                                                             │
│  ParseError (record, never raised)                                          │
│  └── LexicalError             - unmatched character span                    │
└─────────────────────────────────────────────────────────────────────────────┘

Load-time failures are exceptions and are scoped to the one grammar or rule
being loaded. Per-file failures are *records*: the lexer and the chart parser
collect them on the tree and keep going, so a broken file still produces a
tree and can still be linted.

Error Codes:
────────────
Each error has a code ``CL-NNNN``:
  - 0001-0999: Lexical errors
  - 1000-1999: Syntax errors
  - 2000-2999: Grammar errors
  - 3000-3999: Pattern errors
  - 4000-4999: Rule / predicate errors
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR SEVERITY AND CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class ErrorSeverity(Enum):
    """Severity of an engine error (not of a lint finding)."""

    FATAL = "fatal"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@unique
class ErrorPhase(Enum):
    """Engine phase where the error occurred."""

    LEXICAL = "lexical"
    SYNTAX = "syntax"
    GRAMMAR = "grammar"
    PATTERN = "pattern"
    RULE = "rule"
    MATCH = "match"


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES
# ═══════════════════════════════════════════════════════════════════════════════

class ErrorCode:
    """
    Structured error code ``CL-NNNN``.

    Codes compare equal to their string form so tests and callers can write
    ``err.code == "CL-1000"``.
    """

    __slots__ = ("prefix", "number", "phase", "default_severity")

    def __init__(
        self,
        prefix: str,
        number: int,
        phase: ErrorPhase,
        default_severity: ErrorSeverity = ErrorSeverity.ERROR,
    ) -> None:
        self.prefix = prefix
        self.number = number
        self.phase = phase
        self.default_severity = default_severity

    @property
    def code(self) -> str:
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.phase.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ErrorCodes:
    """Predefined error codes."""

    # ─── lexical (0001-0999) ────────────────────────────────────────────────
    UNMATCHED_INPUT = ErrorCode("CL", 1, ErrorPhase.LEXICAL)

    # ─── syntax (1000-1999) ─────────────────────────────────────────────────
    UNEXPECTED_TOKEN = ErrorCode("CL", 1000, ErrorPhase.SYNTAX)
    UNEXPECTED_EOF = ErrorCode("CL", 1001, ErrorPhase.SYNTAX)

    # ─── grammar (2000-2999) ────────────────────────────────────────────────
    UNDEFINED_NONTERMINAL = ErrorCode("CL", 2000, ErrorPhase.GRAMMAR)
    DUPLICATE_PRODUCTION = ErrorCode("CL", 2001, ErrorPhase.GRAMMAR)
    DUPLICATE_TOKEN_RULE = ErrorCode("CL", 2002, ErrorPhase.GRAMMAR)
    CONFLICTING_TOKEN_RULES = ErrorCode("CL", 2003, ErrorPhase.GRAMMAR)
    INVALID_TOKEN_PATTERN = ErrorCode("CL", 2004, ErrorPhase.GRAMMAR)
    UNDEFINED_TERMINAL = ErrorCode("CL", 2005, ErrorPhase.GRAMMAR)
    RESERVED_NAME = ErrorCode("CL", 2006, ErrorPhase.GRAMMAR)
    INVALID_GRAMMAR = ErrorCode("CL", 2007, ErrorPhase.GRAMMAR)
    GRAMMAR_SYNTAX = ErrorCode("CL", 2100, ErrorPhase.GRAMMAR)

    # ─── pattern (3000-3999) ────────────────────────────────────────────────
    PATTERN_SYNTAX = ErrorCode("CL", 3000, ErrorPhase.PATTERN)
    UNKNOWN_KIND = ErrorCode("CL", 3001, ErrorPhase.PATTERN)
    DUPLICATE_CAPTURE = ErrorCode("CL", 3002, ErrorPhase.PATTERN)
    UNBOUND_CAPTURE = ErrorCode("CL", 3003, ErrorPhase.PATTERN)
    INVALID_REGEX = ErrorCode("CL", 3004, ErrorPhase.PATTERN)
    MALFORMED_PATTERN = ErrorCode("CL", 3005, ErrorPhase.PATTERN)

    # ─── rule / predicate (4000-4999) ───────────────────────────────────────
    UNDEFINED_TEMPLATE_CAPTURE = ErrorCode("CL", 4000, ErrorPhase.RULE)
    INVALID_RULE = ErrorCode("CL", 4001, ErrorPhase.RULE)
    RULE_SYNTAX = ErrorCode("CL", 4002, ErrorPhase.RULE)
    PREDICATE_SYNTAX = ErrorCode("CL", 4100, ErrorPhase.RULE)
    PREDICATE_TYPE = ErrorCode(
        "CL", 4101, ErrorPhase.MATCH, ErrorSeverity.WARNING
    )
    PREDICATE_RUNTIME = ErrorCode(
        "CL", 4102, ErrorPhase.MATCH, ErrorSeverity.WARNING
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE LOCATION TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceSpan:
    """
    A byte range ``[start, end)`` in a source buffer, plus an optional
    1-based line/column for the start, used for human-readable messages.
    """

    start: int = 0
    end: int = 0
    line: int = 0
    column: int = 0
    file: str = ""

    def __post_init__(self) -> None:
        if self.end < self.start:
            object.__setattr__(self, "end", self.start)

    def intersects(self, other: "SourceSpan") -> bool:
        """True when the spans overlap; zero-width spans touch-test."""
        if self.start == self.end:
            return other.start <= self.start <= other.end
        if other.start == other.end:
            return self.start <= other.start <= self.end
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        parts = []
        if self.file:
            parts.append(self.file)
        if self.line > 0:
            parts.append(str(self.line))
            if self.column > 0:
                parts.append(str(self.column))
        if parts:
            return ":".join(parts)
        return f"[{self.start}, {self.end})"


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR RECORDS (collected, never raised)
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ParseError:
    """
    A recoverable per-file syntax problem.

    ``terminal`` is set on the error recorded when recovery gave up and the
    rest of the file was wrapped in an ``unparsed`` node.
    """

    span: SourceSpan
    message: str
    code: ErrorCode = ErrorCodes.UNEXPECTED_TOKEN
    expected: Tuple[str, ...] = ()
    terminal: bool = False

    @property
    def phase(self) -> ErrorPhase:
        return self.code.phase

    def __str__(self) -> str:
        return f"{self.span}: {self.phase.value} error: {self.message} [{self.code}]"


@dataclass(frozen=True)
class LexicalError(ParseError):
    """A span of input no token rule matched."""

    code: ErrorCode = ErrorCodes.UNMATCHED_INPUT
    text: str = ""


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class ChartlintError(Exception):
    """
    Base exception for all chartlint errors.

    Carries a structured code and an optional span inside the offending
    source (grammar text, pattern text or predicate text). The code decides
    the severity: predicate failures are warnings, the rest are errors.
    """

    default_code: ErrorCode = ErrorCodes.INVALID_GRAMMAR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.span = span

    @property
    def severity(self) -> ErrorSeverity:
        return self.code.default_severity

    def __str__(self) -> str:
        where = f"{self.span}: " if self.span is not None else ""
        return f"{where}{self.message} [{self.code}]"


class GrammarValidationError(ChartlintError):
    """A grammar failed validation; fatal to loading that grammar only."""

    default_code = ErrorCodes.INVALID_GRAMMAR

    def __init__(self, message: str, grammar_name: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.grammar_name = grammar_name


class GrammarLoadError(ChartlintError):
    """A grammar description could not be read."""

    default_code = ErrorCodes.GRAMMAR_SYNTAX


class PatternCompileError(ChartlintError):
    """A pattern is malformed or incompatible with its grammar."""

    default_code = ErrorCodes.PATTERN_SYNTAX

    def __init__(self, message: str, pattern: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.pattern = pattern


class RuleConfigError(ChartlintError):
    """A rule's fields are inconsistent (e.g. template names an unknown capture)."""

    default_code = ErrorCodes.INVALID_RULE

    def __init__(self, message: str, rule_id: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.rule_id = rule_id


class RuleLoadError(ChartlintError):
    """A rule description could not be read or compiled."""

    default_code = ErrorCodes.RULE_SYNTAX

    def __init__(self, message: str, rule_id: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.rule_id = rule_id


class PredicateEvaluationError(ChartlintError):
    """A predicate raised while being evaluated against one match."""

    default_code = ErrorCodes.PREDICATE_RUNTIME


__all__ = [
    "ErrorSeverity",
    "ErrorPhase",
    "ErrorCode",
    "ErrorCodes",
    "SourceSpan",
    "ParseError",
    "LexicalError",
    "ChartlintError",
    "GrammarValidationError",
    "GrammarLoadError",
    "PatternCompileError",
    "RuleConfigError",
    "RuleLoadError",
    "PredicateEvaluationError",
]
