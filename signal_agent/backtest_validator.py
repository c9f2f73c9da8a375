"""
Historical-Analog Backtest

Asks a simple empirical question about the current signal: the last time
this symbol looked like this, did price follow through?

ANALOG SEARCH
    Bars ``i`` in [current - min(100, current - 20), current - 10), skipping
    the first 20 bars, are analogs of the current bar when

        |RSI_i - RSI_now|                     <= 15
        |ADX_i - ADX_now|                     <= 15
        SMA20 vs SMA50 order                  identical
        |close_i/SMA20_i - close/SMA20|       <= 0.05

    Undefined (NaN) indicator values never match.

SUCCESS
    An analog succeeds when, within any of the 1/3/5/10-bar forward
    horizons, the best high (BUY) or worst low (SELL) moves at least 5%
    away from the analog's close.

OUTPUT
    success_rate = successes / analogs (0.5 without analogs), up to three
    examples, an advisory confidence multiplier and a two-sided binomial
    p-value of the success count against a coin flip.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
from scipy import stats

from .config import BACKTEST, BacktestParameters
from .models import BacktestExample, BacktestResult
from .technical_indicators import IndicatorBundle

# Module-level logger
logger = logging.getLogger(__name__)


class BacktestValidator:
    """
    Historical-analog backtest for one directional signal.

    Usage
    -----
    >>> validator = BacktestValidator()
    >>> result = validator.validate("BUY", bundle)
    >>> result.success_rate, result.confidence_multiplier
    """

    def __init__(self, params: Optional[BacktestParameters] = None):
        self.params = params or BACKTEST

    def validate(self, side: str, bundle: IndicatorBundle, current_index: int = -1) -> BacktestResult:
        """
        Backtest a BUY or SELL on ``current_index`` against its analogs.

        Parameters
        ----------
        side : str
            "BUY" or "SELL"
        bundle : IndicatorBundle
            Indicators for the full series (SMA20/50, RSI, ADX, OHLC)
        current_index : int
            Bar of the live signal (default: last bar)

        Returns
        -------
        BacktestResult
        """
        if side not in ("BUY", "SELL"):
            raise ValueError(f"side must be 'BUY' or 'SELL', got {side!r}")

        p = self.params
        n = len(bundle)
        if current_index < 0:
            current_index += n

        if current_index < p.min_history_bars:
            return self._result(side, [], 0, "Insufficient history for backtest")

        lookback = min(p.max_lookback, current_index - p.warmup_bars)
        start = current_index - lookback
        stop = current_index - p.recent_exclusion

        successes = 0
        matches = 0
        examples: List[BacktestExample] = []

        for i in range(max(start, p.warmup_bars), stop):
            if not self._is_similar(bundle, i, current_index):
                continue

            matches += 1
            successful = self._target_reached(bundle, i, side)
            if successful:
                successes += 1

            if len(examples) < p.max_examples:
                examples.append(BacktestExample(
                    index=i,
                    timestamp=int(bundle.timestamps[i]),
                    price=float(bundle.close[i]),
                    max_move=self._max_move(bundle, i, side),
                    successful=successful,
                ))

        if matches == 0:
            return self._result(side, examples, 0, "No similar historical setups found")

        reason = (
            f"{matches} similar {side} setups in the last {lookback} bars, "
            f"{successes} successful ({successes / matches * 100:.0f}%)"
        )
        logger.debug(reason)
        return self._result(side, examples, matches, reason, successes)

    # -------------------------------------------------------------------------
    # Analog matching
    # -------------------------------------------------------------------------

    def _is_similar(self, b: IndicatorBundle, past: int, current: int) -> bool:
        p = self.params
        values = (
            b.rsi[past], b.rsi[current], b.adx[past], b.adx[current],
            b.sma20[past], b.sma20[current], b.sma50[past], b.sma50[current],
        )
        if np.isnan(values).any() or b.sma20[past] == 0 or b.sma20[current] == 0:
            return False

        if abs(b.rsi[past] - b.rsi[current]) > p.rsi_tolerance:
            return False
        if abs(b.adx[past] - b.adx[current]) > p.adx_tolerance:
            return False
        if (b.sma20[past] > b.sma50[past]) != (b.sma20[current] > b.sma50[current]):
            return False

        past_position = b.close[past] / b.sma20[past] - 1.0
        current_position = b.close[current] / b.sma20[current] - 1.0
        return abs(past_position - current_position) <= p.price_position_tolerance

    def _target_reached(self, b: IndicatorBundle, index: int, side: str) -> bool:
        entry = b.close[index]
        n = len(b)
        for horizon in self.params.horizons:
            end = index + horizon
            if end >= n:
                continue
            if side == "BUY":
                move = (max(entry, np.max(b.high[index + 1:end + 1])) - entry) / entry
            else:
                move = (entry - min(entry, np.min(b.low[index + 1:end + 1]))) / entry
            if move >= self.params.success_threshold:
                return True
        return False

    def _max_move(self, b: IndicatorBundle, index: int, side: str) -> float:
        """Best favorable move over the longest horizon, for reporting."""
        entry = b.close[index]
        end = min(index + max(self.params.horizons) + 1, len(b))
        if end <= index + 1:
            return 0.0
        if side == "BUY":
            move = (np.max(b.high[index + 1:end]) - entry) / entry
        else:
            move = (entry - np.min(b.low[index + 1:end])) / entry
        return float(max(0.0, move))

    # -------------------------------------------------------------------------
    # Result assembly
    # -------------------------------------------------------------------------

    def confidence_multiplier(self, total_signals: int, success_rate: float) -> float:
        """Advisory multiplier: thin samples 0.8, then >=70% 1.0, >=50% 0.7, >=30% 0.4, else 0."""
        if total_signals < self.params.min_signals_for_rate:
            return self.params.thin_sample_multiplier
        if success_rate >= 0.7:
            return 1.0
        if success_rate >= 0.5:
            return 0.7
        if success_rate >= 0.3:
            return 0.4
        return 0.0

    def _result(
        self,
        side: str,
        examples: List[BacktestExample],
        matches: int,
        reason: str,
        successes: int = 0
    ) -> BacktestResult:
        if matches > 0:
            success_rate = successes / matches
            p_value = float(stats.binomtest(successes, matches, 0.5).pvalue)
        else:
            success_rate = self.params.default_success_rate
            p_value = None

        return BacktestResult(
            side=side,
            total_signals=matches,
            successful_signals=successes,
            success_rate=success_rate,
            confidence_multiplier=self.confidence_multiplier(matches, success_rate),
            reason=reason,
            examples=tuple(examples),
            p_value=p_value,
        )
