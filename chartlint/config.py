# chartlint/config.py
"""
Engine configuration.

One ``EngineConfig`` value is handed to ``parse``, ``evaluate`` and the batch
runner. It is a plain immutable dataclass; callers that read project
configuration from disk build it with :meth:`EngineConfig.from_mapping`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, FrozenSet, Mapping, Optional

logger = logging.getLogger(__name__)

#: Finding severities, lowest first.
SEVERITIES = ("info", "style", "warning", "error")

_EXECUTORS = ("thread", "process")


def severity_rank(severity: str) -> int:
    """Position of *severity* in :data:`SEVERITIES`; unknown names rank lowest."""
    try:
        return SEVERITIES.index(severity)
    except ValueError:
        return -1


@dataclass(frozen=True)
class EngineConfig:
    """Tuning knobs for parsing, matching and evaluation."""

    recovery_skip_bound: int = 8
    max_matches_per_rule: Optional[int] = None
    severity_overrides: Mapping[str, str] = field(default_factory=dict)
    min_severity: str = "info"
    disabled_rules: FrozenSet[str] = frozenset()
    workers: int = 4
    executor: str = "thread"
    cache_trees: bool = True

    def validate(self) -> list[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: list[str] = []
        if self.recovery_skip_bound < 0:
            warnings.append("recovery_skip_bound must be non-negative")
        if self.max_matches_per_rule is not None and self.max_matches_per_rule <= 0:
            warnings.append("max_matches_per_rule must be positive")
        if self.min_severity not in SEVERITIES:
            warnings.append(f"unknown min_severity {self.min_severity!r}")
        for rule_id, severity in self.severity_overrides.items():
            if severity not in SEVERITIES:
                warnings.append(
                    f"unknown severity {severity!r} in override for {rule_id!r}"
                )
        if self.workers <= 0:
            warnings.append("workers must be positive")
        if self.executor not in _EXECUTORS:
            warnings.append(f"unknown executor {self.executor!r}")
        return warnings

    def check(self) -> "EngineConfig":
        """Log every validation warning and return ``self``."""
        for w in self.validate():
            logger.warning("EngineConfig: %s", w)
        return self

    def severity_for(self, rule_id: str, default: str) -> str:
        return self.severity_overrides.get(rule_id, default)

    def is_enabled(self, rule_id: str) -> bool:
        return rule_id not in self.disabled_rules

    def passes_threshold(self, severity: str) -> bool:
        return severity_rank(severity) >= severity_rank(self.min_severity)

    def with_overrides(self, **changes: Any) -> "EngineConfig":
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EngineConfig":
        """
        Build a config from a plain mapping, e.g. a parsed TOML table.

        Unknown keys are logged and ignored. ``disabled_rules`` may be any
        iterable of rule ids.
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            name = key.replace("-", "_")
            if name not in known:
                logger.warning("EngineConfig: ignoring unknown key %r", key)
                continue
            kwargs[name] = value
        if "disabled_rules" in kwargs:
            kwargs["disabled_rules"] = frozenset(kwargs["disabled_rules"])
        if "severity_overrides" in kwargs:
            kwargs["severity_overrides"] = dict(kwargs["severity_overrides"])
        return cls(**kwargs).check()


DEFAULT_CONFIG = EngineConfig()
