# tests/test_config.py
"""
Tests for EngineConfig.
"""

import logging

import pytest

from chartlint.config import DEFAULT_CONFIG, SEVERITIES, EngineConfig, severity_rank


class TestEngineConfig:

    def test_defaults_are_valid(self):
        assert DEFAULT_CONFIG.validate() == []
        assert DEFAULT_CONFIG.recovery_skip_bound == 8
        assert DEFAULT_CONFIG.max_matches_per_rule is None

    @pytest.mark.parametrize("changes", [
        {"recovery_skip_bound": -1},
        {"max_matches_per_rule": 0},
        {"min_severity": "fatal"},
        {"severity_overrides": {"r": "loud"}},
        {"workers": 0},
        {"executor": "fiber"},
    ])
    def test_invalid_values(self, changes):
        assert len(EngineConfig(**changes).validate()) == 1

    def test_check_logs(self, caplog):
        with caplog.at_level(logging.WARNING, logger="chartlint.config"):
            config = EngineConfig(workers=0).check()
        assert config.workers == 0
        assert "workers must be positive" in caplog.text

    def test_severity_rank(self):
        assert [severity_rank(s) for s in SEVERITIES] == [0, 1, 2, 3]
        assert severity_rank("bogus") == -1

    def test_thresholds(self):
        config = EngineConfig(min_severity="warning")
        assert config.passes_threshold("error")
        assert config.passes_threshold("warning")
        assert not config.passes_threshold("style")

    def test_overrides_and_disabled(self):
        config = EngineConfig(
            severity_overrides={"no-eval": "info"}, disabled_rules=frozenset({"off"})
        )
        assert config.severity_for("no-eval", "error") == "info"
        assert config.severity_for("other", "error") == "error"
        assert not config.is_enabled("off")
        assert config.is_enabled("no-eval")

    def test_with_overrides(self):
        config = DEFAULT_CONFIG.with_overrides(workers=1)
        assert config.workers == 1
        assert DEFAULT_CONFIG.workers == 4


class TestFromMapping:

    def test_keys(self, caplog):
        with caplog.at_level(logging.WARNING, logger="chartlint.config"):
            config = EngineConfig.from_mapping({
                "recovery-skip-bound": 3,
                "disabled_rules": ["a", "b"],
                "severity-overrides": {"x": "error"},
                "colour": "red",
            })
        assert config.recovery_skip_bound == 3
        assert config.disabled_rules == frozenset({"a", "b"})
        assert config.severity_overrides == {"x": "error"}
        assert "colour" in caplog.text
