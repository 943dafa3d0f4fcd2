# chartlint/rules.py
"""
Lint rules: one compiled pattern, an optional predicate script, a message
template and a severity.

Rule files
----------
::

    (rule no-eval
      (pattern "call(name: \"eval\", args: ...)")
      (message "avoid {name}(): it runs arbitrary code")
      (severity error)
      (where "args.count > 0")
      (primary name)
      (secondary args)
      (description "Calls to eval execute strings as code.")
      (tags security))

``(pattern ...)`` takes either a string in textual pattern syntax or an
S-expression pattern, e.g. ``(pattern (call (bind name "eval") ...))``.

Message templates
-----------------
``{name}`` is replaced by the text of capture ``name``; ``{name.kind}``,
``{name.line}`` and the other predicate attributes are available too.
``{{`` and ``}}`` produce literal braces. A template that names an unknown
capture does not stop the rule from compiling; the problem is kept on the
rule and the evaluator reports it once instead of evaluating the rule.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from .config import SEVERITIES
from .errors import ChartlintError, ErrorCodes, RuleConfigError, RuleLoadError
from .grammar import Grammar
from .pattern import Pattern, compile_pattern
from .predicate import ATTRIBUTES, CaptureRef, Predicate, compile_predicate
from .sexp import dumps, head, loads_all

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — MESSAGE TEMPLATES
# ═════════════════════════════════════════════════════════════════════════

_TEMPLATE_RE = re.compile(r"\{\{|\}\}|\{\$?([A-Za-z_][A-Za-z0-9_]*)(?:\.([A-Za-z_]+))?\}")


def template_references(template: str) -> List[Tuple[str, Optional[str]]]:
    """``(capture, attribute)`` pairs referenced by *template*, in order."""
    return [
        (m.group(1), m.group(2))
        for m in _TEMPLATE_RE.finditer(template)
        if m.group(1) is not None
    ]


def render_template(template: str, tree, captures) -> str:
    """Substitute capture references in *template* for one match."""

    def substitute(m: "re.Match") -> str:
        if m.group(0) == "{{":
            return "{"
        if m.group(0) == "}}":
            return "}"
        if m.group(1) not in captures:
            return ""
        ref = CaptureRef(tree, captures[m.group(1)])
        return str(getattr(ref, m.group(2) or "text"))

    return _TEMPLATE_RE.sub(substitute, template)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — RULE MODEL
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Rule:
    """
    A compiled rule. Stateless; safe to evaluate on many trees at once.

    Attributes
    ----------
    id           : Rule identifier, used in diagnostics and suppressions
    pattern      : Compiled pattern
    message      : Message template
    severity     : One of :data:`chartlint.config.SEVERITIES`
    predicate    : Optional ``where`` script run per match
    primary      : Capture the diagnostic is anchored at (default: match anchor)
    secondary    : Captures reported as secondary spans
    description  : Long-form documentation
    tags         : Free-form labels
    config_error : Set when the rule cannot be evaluated as written
    """
    id: str
    pattern: Pattern
    message: str
    severity: str = "warning"
    predicate: Optional[Predicate] = None
    primary: Optional[str] = None
    secondary: Tuple[str, ...] = ()
    description: str = ""
    tags: Tuple[str, ...] = ()
    config_error: Optional[RuleConfigError] = None

    @property
    def grammar(self) -> Grammar:
        return self.pattern.grammar

    def render(self, tree, captures) -> str:
        return render_template(self.message, tree, captures)

    def __repr__(self) -> str:
        return f"Rule({self.id!r}, {self.pattern.source!r})"


def compile_rule(
    rule_id: str,
    pattern: Union[str, list, Pattern],
    message: str,
    grammar: Optional[Grammar] = None,
    severity: str = "warning",
    where: Optional[str] = None,
    primary: Optional[str] = None,
    secondary: Sequence[str] = (),
    description: str = "",
    tags: Iterable[str] = (),
) -> Rule:
    """
    Build a :class:`Rule`.

    Parameters
    ----------
    rule_id:
        Identifier; must be non-empty.
    pattern:
        A compiled :class:`~chartlint.pattern.Pattern`, or pattern source
        (textual or S-expression) compiled against *grammar*.
    where:
        Optional predicate script over the pattern's captures.

    Raises
    ------
    PatternCompileError
        The pattern or the predicate does not compile.
    RuleConfigError
        Unknown severity, or ``primary``/``secondary`` name a capture the
        pattern does not bind.
    """
    if not rule_id:
        raise RuleConfigError("rule id must not be empty")
    if not isinstance(pattern, Pattern):
        if grammar is None:
            raise RuleConfigError(
                f"rule {rule_id!r}: a grammar is needed to compile the pattern", rule_id=rule_id
            )
        pattern = compile_pattern(pattern, grammar)
    if severity not in SEVERITIES:
        raise RuleConfigError(
            f"rule {rule_id!r}: unknown severity {severity!r} "
            f"(expected one of {', '.join(SEVERITIES)})",
            rule_id=rule_id,
        )
    captures = pattern.captures
    for name in ([primary] if primary else []) + list(secondary):
        if name not in captures:
            raise RuleConfigError(
                f"rule {rule_id!r}: {name!r} is not a capture of {pattern.source!r}",
                rule_id=rule_id,
            )
    predicate = compile_predicate(where, known=sorted(captures)) if where else None
    return Rule(
        id=rule_id,
        pattern=pattern,
        message=message,
        severity=severity,
        predicate=predicate,
        primary=primary,
        secondary=tuple(secondary),
        description=description,
        tags=tuple(tags),
        config_error=_check_template(rule_id, message, captures),
    )


def _check_template(rule_id: str, message: str, captures) -> Optional[RuleConfigError]:
    for name, attribute in template_references(message):
        if name not in captures:
            return RuleConfigError(
                f"rule {rule_id!r}: message references undefined capture {{{name}}}",
                code=ErrorCodes.UNDEFINED_TEMPLATE_CAPTURE,
                rule_id=rule_id,
            )
        if attribute is not None and attribute not in ATTRIBUTES:
            return RuleConfigError(
                f"rule {rule_id!r}: message uses unknown attribute {{{name}.{attribute}}}",
                code=ErrorCodes.UNDEFINED_TEMPLATE_CAPTURE,
                rule_id=rule_id,
            )
    return None


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — RULE FILES
# ═════════════════════════════════════════════════════════════════════════

_SINGLE_FIELDS = ("pattern", "message", "severity", "where", "primary", "description")
_MULTI_FIELDS = ("secondary", "tags")


def _field_text(rule_id: str, name: str, value: Any) -> str:
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return str(value)
    raise RuleLoadError(
        f"rule {rule_id!r}: ({name} ...) expects a string or symbol, got {dumps(value)}",
        rule_id=rule_id,
    )


def rule_from_sexp(form: Any, grammar: Grammar) -> Rule:
    """Compile one ``(rule <id> ...)`` form."""
    if head(form) != "rule" or len(form) < 2:
        raise RuleLoadError(f"expected (rule <id> ...), got {dumps(form)}")
    if isinstance(form[1], list):
        raise RuleLoadError(f"expected a rule id, got {dumps(form[1])}")
    rule_id = str(form[1])
    fields = {}
    for part in form[2:]:
        tag = head(part)
        if tag in _SINGLE_FIELDS:
            if len(part) != 2:
                raise RuleLoadError(
                    f"rule {rule_id!r}: ({tag} ...) takes exactly one value", rule_id=rule_id
                )
            if tag in fields:
                raise RuleLoadError(f"rule {rule_id!r}: duplicate ({tag} ...)", rule_id=rule_id)
            fields[tag] = part[1]
        elif tag in _MULTI_FIELDS:
            fields[tag] = tuple(_field_text(rule_id, tag, v) for v in part[1:])
        else:
            raise RuleLoadError(
                f"rule {rule_id!r}: unknown field {dumps(part)}", rule_id=rule_id
            )
    for required in ("pattern", "message"):
        if required not in fields:
            raise RuleLoadError(f"rule {rule_id!r}: missing ({required} ...)", rule_id=rule_id)

    pattern = fields["pattern"]
    if not isinstance(pattern, (list, str)):
        raise RuleLoadError(
            f"rule {rule_id!r}: (pattern ...) expects a string or a form", rule_id=rule_id
        )
    optional = {
        name: _field_text(rule_id, name, fields[name])
        for name in ("severity", "where", "primary", "description")
        if name in fields
    }
    return compile_rule(
        rule_id,
        pattern,
        _field_text(rule_id, "message", fields["message"]),
        grammar,
        severity=optional.get("severity", "warning"),
        where=optional.get("where"),
        primary=optional.get("primary"),
        secondary=fields.get("secondary", ()),
        description=optional.get("description", ""),
        tags=fields.get("tags", ()),
    )


def load_rules(text: str, grammar: Grammar) -> Tuple[List[Rule], List[ChartlintError]]:
    """
    Read every ``(rule ...)`` form in *text*.

    A rule that fails to compile is reported in the returned error list and
    skipped; the remaining rules still load. A malformed file yields no rules
    and a single error.
    """
    try:
        forms = loads_all(text, RuleLoadError)
    except RuleLoadError as exc:
        return [], [exc]
    rules: List[Rule] = []
    errors: List[ChartlintError] = []
    seen = set()
    for form in forms:
        try:
            rule = rule_from_sexp(form, grammar)
        except ChartlintError as exc:
            logger.warning("skipping rule: %s", exc.message)
            errors.append(exc)
            continue
        if rule.id in seen:
            exc = RuleLoadError(f"duplicate rule id {rule.id!r}", rule_id=rule.id)
            logger.warning("skipping rule: %s", exc.message)
            errors.append(exc)
            continue
        seen.add(rule.id)
        rules.append(rule)
    logger.debug("loaded %d rule(s) for grammar %s", len(rules), grammar.name)
    return rules, errors


__all__ = [
    "Rule",
    "compile_rule",
    "load_rules",
    "rule_from_sexp",
    "render_template",
    "template_references",
]
