"""Tests for configuration loading."""

from dataclasses import FrozenInstanceError

import pytest

from signal_agent.config import DEFAULT_CONFIG, AnalysisConfig


class TestFromDict:
    """Overrides from parsed JSON."""

    def test_empty_mapping_is_default(self):
        assert AnalysisConfig.from_dict({}) == DEFAULT_CONFIG

    def test_section_override_keeps_other_defaults(self):
        config = AnalysisConfig.from_dict({"scoring": {"ranging_adx": 15.0}})

        assert config.scoring.ranging_adx == 15.0
        assert config.scoring.strong_trend_adx == 25.0
        assert config.validation == DEFAULT_CONFIG.validation

    def test_lists_become_tuples(self):
        config = AnalysisConfig.from_dict({"backtest": {"horizons": [2, 4]}})
        assert config.backtest.horizons == (2, 4)

    def test_flags(self):
        config = AnalysisConfig.from_dict({"apply_quality_multiplier": True, "run_scanner": 0})

        assert config.apply_quality_multiplier is True
        assert config.run_scanner is False

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown configuration key"):
            AnalysisConfig.from_dict({"scorng": {}})

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="ScoringThresholds"):
            AnalysisConfig.from_dict({"scoring": {"adx_ranging": 10}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="ScoringThresholds must be an object"):
            AnalysisConfig.from_dict({"scoring": 5})

    def test_top_level_must_be_mapping(self):
        with pytest.raises(ValueError, match="must be an object"):
            AnalysisConfig.from_dict([1, 2])

    def test_null_section_is_default(self):
        assert AnalysisConfig.from_dict({"scoring": None}) == DEFAULT_CONFIG


class TestDefaults:
    """Shared instances."""

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            DEFAULT_CONFIG.scoring.min_history_bars = 10

    def test_validators_report_only(self):
        assert not DEFAULT_CONFIG.apply_quality_multiplier
        assert not DEFAULT_CONFIG.apply_backtest_multiplier
