"""
Multi-Factor Scoring Engine

Fuses the indicator bundle into a signed score for one bar and classifies
the latest bar into STRONG_BUY / BUY / HOLD / SELL / STRONG_SELL.

SCORING FLOW
    1. Gates            liquidity floor, ranging market (ADX < 20)
    2. Sub-scores       trend, momentum, Bollinger, volume, candle,
                        price action, pressure
    3. Adjustments      (a) high volatility damping
                        (b) strong-trend ADX bonus
                        (c) opposing support/resistance damping
    4. Classification   score threshold AND confirmation count

CONFLUENCE
    Rules marked "strong" add one confirmation in their direction. A signal
    is only escalated when enough independent strong rules agree with the
    sign of the total:

        STRONG_*  |score| >= 6 and >= 3 confirmations
        BUY/SELL  |score| >= 4 and >= 2 confirmations

:func:`score_at` is the single per-bar scorer; the live path calls it for
the last bar and the historical scanner calls it for every bar with the
candle, Bollinger, pressure and S/R families switched off.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .config import DEFAULT_CONFIG, SCORING, AnalysisConfig, ScoringThresholds
from .models import ScoreBreakdown, SignalClassification, TraceDirection, TraceEntry
from .technical_indicators import IndicatorBundle

# Module-level logger
logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def _defined(*values: float) -> bool:
    return all(not np.isnan(v) for v in values)


def _change(values: np.ndarray, index: int, bars: int) -> float:
    """values[index] - values[index - bars], NaN without enough history."""
    if index - bars < 0:
        return np.nan
    return float(values[index] - values[index - bars])


class _RuleLog:
    """Collects trace entries and strong-rule confirmations for one bar."""

    def __init__(self):
        self.entries: List[TraceEntry] = []
        self.bullish = 0
        self.bearish = 0

    def fire(self, rule: str, value: float, delta: float, strong: bool = False) -> float:
        self.entries.append(
            TraceEntry(rule, float(value), float(delta), TraceDirection.from_delta(delta))
        )
        if strong:
            if delta > 0:
                self.bullish += 1
            elif delta < 0:
                self.bearish += 1
        return delta

    def info(self, rule: str, value: float, delta: float = 0.0) -> None:
        self.entries.append(TraceEntry(rule, float(value), float(delta), TraceDirection.INFO))

    @property
    def trace(self) -> Tuple[TraceEntry, ...]:
        return tuple(self.entries)


# =============================================================================
# SUB-SCORES
# =============================================================================

def _trend_score(b: IndicatorBundle, i: int, t: ScoringThresholds, log: _RuleLog) -> float:
    score = 0.0
    close = b.close[i]
    e20, e50, e200 = b.ema20[i], b.ema50[i], b.ema200[i]

    if _defined(e20, e50, e200):
        if e20 > e50 > e200:
            score += log.fire("EMA20 > EMA50 > EMA200", e20, 2.0, strong=True)
        elif e20 < e50 < e200:
            score += log.fire("EMA20 < EMA50 < EMA200", e20, -2.0, strong=True)

    slope = _change(b.ema50, i, t.ema_slope_bars)
    if _defined(slope) and slope != 0:
        score += log.fire("EMA50 slope", slope, 1.0 if slope > 0 else -1.0)

    if _defined(e20):
        if close > e20:
            score += log.fire("Close above EMA20", close, 1.0)
        elif close < e20:
            score += log.fire("Close below EMA20", close, -1.0)

    return score


def _momentum_score(b: IndicatorBundle, i: int, t: ScoringThresholds, log: _RuleLog) -> float:
    score = 0.0

    # RSI
    rsi = b.rsi[i]
    rsi_delta = _change(b.rsi, i, t.rsi_delta_bars)
    if _defined(rsi, rsi_delta):
        if rsi < t.rsi_oversold and rsi_delta > 0:
            score += log.fire("RSI oversold reversal", rsi, 2.0, strong=True)
        elif rsi > t.rsi_overbought and rsi_delta < 0:
            score += log.fire("RSI overbought reversal", rsi, -2.0, strong=True)
        elif t.rsi_midline <= rsi <= t.rsi_overbought and rsi_delta > 0:
            delta = 2.0 if rsi_delta > t.rsi_strong_delta else 1.0
            score += log.fire("RSI bullish momentum", rsi, delta)
        elif t.rsi_oversold <= rsi < t.rsi_midline and rsi_delta < 0:
            delta = -2.0 if rsi_delta < -t.rsi_strong_delta else -1.0
            score += log.fire("RSI bearish momentum", rsi, delta)

    # MACD
    if i < 1:
        return score
    macd, signal = b.macd[i], b.macd_signal[i]
    prev_macd, prev_signal = b.macd[i - 1], b.macd_signal[i - 1]
    crossed = False
    if _defined(macd, signal, prev_macd, prev_signal):
        if prev_macd <= prev_signal and macd > signal:
            score += log.fire("MACD bullish crossover", macd - signal, 3.0, strong=True)
            crossed = True
        elif prev_macd >= prev_signal and macd < signal:
            score += log.fire("MACD bearish crossover", macd - signal, -3.0, strong=True)
            crossed = True

    hist, prev_hist = b.macd_hist[i], b.macd_hist[i - 1]
    if not crossed and _defined(hist, prev_hist):
        if hist > 0 and hist > prev_hist:
            score += log.fire("MACD histogram rising", hist, 1.0)
        elif hist < 0 and hist < prev_hist:
            score += log.fire("MACD histogram falling", hist, -1.0)

    return score


def _bollinger_score(
    b: IndicatorBundle, i: int, t: ScoringThresholds, log: _RuleLog
) -> Tuple[float, bool]:
    upper, middle, lower = b.bb_upper[i], b.bb_middle[i], b.bb_lower[i]
    if not _defined(upper, middle, lower):
        return 0.0, False

    score = 0.0
    close = b.close[i]

    if i >= 1 and _defined(b.bb_upper[i - 1], b.bb_lower[i - 1]):
        prev_close = b.close[i - 1]
        if close < lower and prev_close >= b.bb_lower[i - 1]:
            score += log.fire("Close left lower band", close, 3.0, strong=True)
        elif close > upper and prev_close <= b.bb_upper[i - 1]:
            score += log.fire("Close left upper band", close, -3.0, strong=True)

        if score == 0 and upper > lower:
            pct_b = (close - lower) / (upper - lower)
            move = close - prev_close
            if pct_b < t.band_edge_pct and move > 0:
                score += log.fire("%B lower edge, up close", pct_b, 2.0)
            elif pct_b > 1.0 - t.band_edge_pct and move < 0:
                score += log.fire("%B upper edge, down close", pct_b, -2.0)

    squeeze = False
    if middle > 0:
        width = (upper - lower) / middle
        if width < t.squeeze_width_pct:
            squeeze = True
            log.info("Bollinger squeeze", width)

    return score, squeeze


def _volume_score(b: IndicatorBundle, i: int, t: ScoringThresholds, log: _RuleLog) -> float:
    score = 0.0
    close = b.close[i]

    w = t.breakout_window
    if i >= w:
        prior_high = np.max(b.high[i - w:i])
        prior_low = np.min(b.low[i - w:i])
        avg_volume = np.mean(b.volume[i - w:i])
        if avg_volume > 0:
            ratio = b.volume[i] / avg_volume
            if ratio >= t.breakout_volume_ratio:
                delta = 4.0 if ratio >= t.climax_volume_ratio else 2.0
                if close > prior_high:
                    score += log.fire("Volume breakout", ratio, delta, strong=True)
                elif close < prior_low:
                    score += log.fire("Volume breakdown", ratio, -delta, strong=True)

    ow, tb = t.obv_extreme_window, t.obv_trend_bars
    if i >= max(ow - 1, tb):
        obv = b.obv[i]
        obv_trend = _change(b.obv, i, tb)
        close_trend = _change(b.close, i, tb)
        window = b.obv[i - ow + 1:i + 1]
        if obv_trend > 0:
            if obv >= np.max(window):
                score += log.fire("OBV at 20-bar high", obv, 2.0, strong=True)
            elif close_trend > 0:
                score += log.fire("OBV rising with price", obv, 1.0)
        elif obv_trend < 0:
            if obv <= np.min(window):
                score += log.fire("OBV at 20-bar low", obv, -2.0, strong=True)
            elif close_trend < 0:
                score += log.fire("OBV falling with price", obv, -1.0)

    return score


def _candle_score(b: IndicatorBundle, i: int, t: ScoringThresholds, log: _RuleLog) -> float:
    score = 0.0
    pattern = b.candle_at(i)
    rsi = b.rsi[i]

    if pattern.bullish_engulfing:
        score += log.fire("Bullish engulfing", b.close[i], 4.0, strong=True)
    elif pattern.bearish_engulfing:
        score += log.fire("Bearish engulfing", b.close[i], -4.0, strong=True)

    if pattern.hammer and _defined(rsi) and rsi < t.rsi_midline:
        score += log.fire("Hammer", rsi, 3.0, strong=True)
    elif pattern.shooting_star and _defined(rsi) and rsi > t.rsi_midline:
        score += log.fire("Shooting star", rsi, -3.0, strong=True)

    if pattern.bullish_harami:
        score += log.fire("Bullish harami", b.close[i], 2.0)
    elif pattern.bearish_harami:
        score += log.fire("Bearish harami", b.close[i], -2.0)

    return score


def _price_action_score(b: IndicatorBundle, i: int, t: ScoringThresholds, log: _RuleLog) -> float:
    w = t.price_action_window
    half = w // 2
    if i < w - 1:
        return 0.0

    first = slice(i - w + 1, i - half + 1)
    second = slice(i - half + 1, i + 1)
    first_high, second_high = np.max(b.high[first]), np.max(b.high[second])
    first_low, second_low = np.min(b.low[first]), np.min(b.low[second])

    if second_high > first_high and second_low > first_low:
        return log.fire("Higher high and higher low", second_high - first_high, 3.0, strong=True)
    if second_high < first_high and second_low < first_low:
        return log.fire("Lower high and lower low", second_low - first_low, -3.0, strong=True)
    return 0.0


def _pressure_score(b: IndicatorBundle, i: int, t: ScoringThresholds, log: _RuleLog) -> float:
    adx = b.adx[i]
    pw = t.pressure_window
    if not _defined(adx) or adx <= t.strong_trend_adx or i < pw - 1:
        return 0.0

    mean_pressure = float(np.mean(b.pressure[i - pw + 1:i + 1]))
    if mean_pressure != 0 and abs(mean_pressure) > t.pressure_volume_ratio * b.volume[i]:
        delta = 2.0 if mean_pressure > 0 else -2.0
        return log.fire("Volume pressure", mean_pressure, delta, strong=True)
    return 0.0


# =============================================================================
# PER-BAR SCORER
# =============================================================================

def score_at(
    index: int,
    bundle: IndicatorBundle,
    config: Optional[AnalysisConfig] = None,
    include_candle: bool = True,
    include_sr: bool = True,
    include_bollinger: bool = True,
    include_pressure: bool = True
) -> ScoreBreakdown:
    """
    Score one bar of the bundle.

    Parameters
    ----------
    index : int
        Bar to score (negative values count from the end)
    bundle : IndicatorBundle
        Precomputed indicators for the whole series
    config : AnalysisConfig, optional
        Thresholds (defaults to DEFAULT_CONFIG)
    include_candle, include_sr, include_bollinger, include_pressure : bool
        Switch families off for the historical replay. S/R levels describe
        the last bar only and should stay off for any earlier index.

    Returns
    -------
    ScoreBreakdown
        ``filtered`` names the gate that stopped scoring, if any.
    """
    t = (config or DEFAULT_CONFIG).scoring
    n = len(bundle)
    if index < 0:
        index += n
    if not 0 <= index < n:
        raise IndexError(f"Bar index {index} out of range for {n} bars")

    i = index
    log = _RuleLog()
    close = bundle.close[i]

    # ----- Gates -----
    start = max(0, i - t.liquidity_window + 1)
    liquidity = float(np.mean(bundle.volume[start:i + 1] * bundle.close[start:i + 1]))
    if liquidity < t.min_liquidity:
        log.info("Liquidity below floor", liquidity)
        return ScoreBreakdown(index=i, filtered="liquidity", trace=log.trace)

    adx = bundle.adx[i]
    if _defined(adx) and adx < t.ranging_adx:
        log.info("Ranging market (ADX)", adx)
        return ScoreBreakdown(index=i, filtered="ranging", trace=log.trace)

    # ----- Sub-scores -----
    trend = _trend_score(bundle, i, t, log)
    momentum = _momentum_score(bundle, i, t, log)
    bollinger, squeeze = (
        _bollinger_score(bundle, i, t, log) if include_bollinger else (0.0, False)
    )
    volume = _volume_score(bundle, i, t, log)
    candle = _candle_score(bundle, i, t, log) if include_candle else 0.0
    price_action = _price_action_score(bundle, i, t, log)
    pressure = _pressure_score(bundle, i, t, log) if include_pressure else 0.0

    raw_total = trend + momentum + bollinger + volume + candle + price_action + pressure
    total = raw_total

    # ----- Adjustments -----
    volatility_penalty = 1.0
    atr = bundle.atr[i]
    if _defined(atr) and close > 0 and total > 0 and atr / close > t.high_volatility_atr_pct:
        volatility_penalty = t.volatility_penalty
        log.info("High volatility damping", atr / close, total * volatility_penalty - total)
        total *= volatility_penalty

    adx_bonus = 0.0
    if _defined(adx) and adx > t.strong_trend_adx and total != 0:
        adx_bonus = t.adx_bonus if total > 0 else -t.adx_bonus
        log.info("Strong trend bonus (ADX)", adx, adx_bonus)
        total += adx_bonus

    sr_penalty = 1.0
    if include_sr and total != 0 and close > 0:
        for level in bundle.levels:
            if level.strength <= t.sr_min_strength:
                continue
            distance = (level.level - close) / close
            if total > 0 and level.is_resistance and 0 <= distance <= t.sr_proximity_pct:
                opposing = True
            elif total < 0 and level.is_support and -t.sr_proximity_pct <= distance <= 0:
                opposing = True
            else:
                opposing = False
            if opposing:
                sr_penalty = t.sr_penalty
                log.info("Opposing S/R level", level.level, total * sr_penalty - total)
                total *= sr_penalty
                break

    return ScoreBreakdown(
        index=i,
        trend=trend,
        momentum=momentum,
        bollinger=bollinger,
        volume=volume,
        price_action=price_action,
        candle=candle,
        pressure=pressure,
        raw_total=raw_total,
        volatility_penalty=volatility_penalty,
        adx_bonus=adx_bonus,
        sr_penalty=sr_penalty,
        total=total,
        bullish_confirmations=log.bullish,
        bearish_confirmations=log.bearish,
        squeeze=squeeze,
        trace=log.trace,
    )


# =============================================================================
# CLASSIFICATION
# =============================================================================

def classify(breakdown: ScoreBreakdown, thresholds: ScoringThresholds = SCORING) -> SignalClassification:
    """Map an adjusted score and its confirmation count onto a signal tier."""
    if breakdown.filtered:
        return SignalClassification.HOLD

    total = breakdown.total
    confirmations = breakdown.confirmation_count
    t = thresholds

    if total >= t.strong_score and confirmations >= t.strong_confirmations:
        return SignalClassification.STRONG_BUY
    if total >= t.weak_score and confirmations >= t.weak_confirmations:
        return SignalClassification.BUY
    if total <= -t.strong_score and confirmations >= t.strong_confirmations:
        return SignalClassification.STRONG_SELL
    if total <= -t.weak_score and confirmations >= t.weak_confirmations:
        return SignalClassification.SELL
    return SignalClassification.HOLD


def confidence_for(
    classification: SignalClassification,
    confirmations: int,
    thresholds: ScoringThresholds = SCORING
) -> float:
    """Confidence in [0, 100] for a classified signal."""
    t = thresholds
    if classification.is_strong:
        return min(t.strong_confidence_cap, t.strong_confidence_base + t.strong_confidence_step * confirmations)
    if classification is SignalClassification.HOLD:
        return t.hold_confidence
    return min(100.0, t.weak_confidence_base + t.weak_confidence_step * confirmations)


# =============================================================================
# LIVE ENGINE
# =============================================================================

@dataclass(frozen=True)
class Evaluation:
    """Live classification of the latest bar."""
    classification: SignalClassification
    confidence: float
    breakdown: ScoreBreakdown

    @property
    def trace(self) -> Tuple[TraceEntry, ...]:
        return self.breakdown.trace


class ScoringEngine:
    """
    Classifies the latest bar of an indicator bundle.

    Usage
    -----
    >>> engine = ScoringEngine()
    >>> evaluation = engine.evaluate(bundle)
    >>> evaluation.classification, evaluation.confidence
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def evaluate(self, bundle: IndicatorBundle) -> Evaluation:
        """
        Evaluate the last bar.

        Fewer than ``min_history_bars`` bars give HOLD with confidence 0;
        a liquidity or ranging-market gate gives HOLD with confidence 25.
        """
        t = self.config.scoring
        n = len(bundle)

        if n < t.min_history_bars:
            entry = TraceEntry("Insufficient history", float(n), 0.0, TraceDirection.INFO)
            return Evaluation(
                SignalClassification.HOLD,
                0.0,
                ScoreBreakdown(index=n - 1, filtered="history", trace=(entry,)),
            )

        breakdown = score_at(n - 1, bundle, self.config)
        if breakdown.filtered:
            logger.debug(f"Bar {n - 1} stopped by {breakdown.filtered} gate")
            return Evaluation(SignalClassification.HOLD, t.filtered_confidence, breakdown)

        classification = classify(breakdown, t)
        confidence = confidence_for(classification, breakdown.confirmation_count, t)
        logger.debug(
            f"Score {breakdown.total:+.2f} with {breakdown.confirmation_count} "
            f"confirmations -> {classification.value} ({confidence:.0f}%)"
        )
        return Evaluation(classification, confidence, breakdown)
