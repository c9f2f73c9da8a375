"""Tests for the historical-analog backtest."""

import numpy as np
import pytest

from signal_agent.backtest_validator import BacktestValidator
from signal_agent.config import BacktestParameters


@pytest.fixture
def validator():
    return BacktestValidator()


class TestInsufficientHistory:
    """Fewer than 60 prior bars."""

    def test_no_analogs_before_bar_60(self, validator, rising_bundle):
        result = validator.validate("BUY", rising_bundle, current_index=59)

        assert result.total_signals == 0
        assert result.successful_signals == 0
        assert result.success_rate == 0.5
        assert result.p_value is None
        assert result.examples == ()

    def test_thin_sample_multiplier(self, validator, rising_bundle):
        result = validator.validate("SELL", rising_bundle, current_index=10)
        assert result.confidence_multiplier == 0.8


class TestAnalogSearch:
    """Matching and success on a steady uptrend."""

    def test_uptrend_buy_analogs_all_succeed(self, validator, rising_bundle):
        result = validator.validate("BUY", rising_bundle)

        # Window [249 - 100, 249 - 10)
        assert result.total_signals == 90
        assert result.successful_signals == 90
        assert result.success_rate == 1.0
        assert result.confidence_multiplier == 1.0
        assert result.p_value < 1e-10
        assert len(result.examples) == 3
        assert result.examples[0].index == 149
        assert result.examples[0].successful

    def test_uptrend_sell_analogs_all_fail(self, validator, rising_bundle):
        result = validator.validate("SELL", rising_bundle)

        assert result.total_signals == 90
        assert result.successful_signals == 0
        assert result.success_rate == 0.0
        assert result.confidence_multiplier == 0.0
        # Worst low is the next bar's 0.5% dip below the analog's close
        assert result.examples[0].max_move == pytest.approx(0.005)
        assert not result.examples[0].successful

    def test_example_reports_max_move(self, validator, rising_bundle):
        example = validator.validate("BUY", rising_bundle).examples[0]

        # Best high over the next 10 bars: close * 1.01**10 * 1.005
        assert example.max_move == pytest.approx(1.01 ** 10 * 1.005 - 1.0)
        assert "hit" in example.summary("BUY")

    def test_success_rate_bounds(self, validator, walk_bundle):
        for side in ("BUY", "SELL"):
            for index in range(60, len(walk_bundle), 25):
                result = validator.validate(side, walk_bundle, current_index=index)
                assert 0.0 <= result.success_rate <= 1.0
                if result.total_signals == 0:
                    assert result.success_rate == 0.5

    def test_undefined_indicators_never_match(self, validator, rising_bundle):
        from dataclasses import replace

        bundle = replace(rising_bundle, adx=np.full(len(rising_bundle), np.nan))
        assert validator.validate("BUY", bundle).total_signals == 0


class TestMultiplier:
    """Advisory multiplier table."""

    @pytest.mark.parametrize("total,rate,expected", [
        (2, 1.0, 0.8),
        (10, 0.7, 1.0),
        (10, 0.5, 0.7),
        (10, 0.3, 0.4),
        (10, 0.29, 0.0),
    ])
    def test_table(self, validator, total, rate, expected):
        assert validator.confidence_multiplier(total, rate) == expected

    def test_custom_threshold(self, rising_bundle):
        strict = BacktestValidator(BacktestParameters(success_threshold=0.5))
        result = strict.validate("BUY", rising_bundle)

        assert result.successful_signals == 0
