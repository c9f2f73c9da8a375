"""
False-Signal Validator

Scores how likely a directional signal is to be a trap (fake breakout,
stop hunt, unsupported move) by summing independent penalties into a
``false_score`` clamped to [0, 100]:

    Weak trend (ADX < 20)                          35
    Breakout on thin volume (< 0.8x average)       28
    Just below resistance / above support (< 3%)   25
    Stretched from SMA50 (> 5%)                    15
    Stop-hunt wick (max wick > 2x body)            18
    3-bar fake breakout                            30
    RSI contradicting the direction                20
    Moving averages misaligned                     22
    Volume spike right after a dry bar             15
    Opening gap (> 1.5%) closing against signal    15

The score maps onto an advisory confidence multiplier:

    >= 90 -> 0.0 (reject)   >= 75 -> 0.7   >= 60 -> 0.9   else 1.0

The multiplier is reported, not applied, unless the pipeline is configured
to enforce it. Checks whose inputs are undefined (NaN) abstain.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import VALIDATION, ValidationThresholds
from .models import SignalQuality, SupportResistanceLevel
from .technical_indicators import IndicatorBundle

# Module-level logger
logger = logging.getLogger(__name__)


def _defined(*values: float) -> bool:
    return all(not np.isnan(v) for v in values)


class SignalValidator:
    """
    Red-flag checks for a preliminary BUY or SELL.

    Usage
    -----
    >>> validator = SignalValidator()
    >>> quality = validator.validate("BUY", bundle)
    >>> quality.false_score, quality.red_flags
    """

    def __init__(self, thresholds: Optional[ValidationThresholds] = None):
        self.thresholds = thresholds or VALIDATION

    def validate(self, side: str, bundle: IndicatorBundle, index: int = -1) -> SignalQuality:
        """
        Validate a signal on bar ``index`` of the bundle.

        Parameters
        ----------
        side : str
            "BUY" or "SELL"
        bundle : IndicatorBundle
            Indicators for the series (ADX, SMA20/50, EMA200, RSI, S/R levels)
        index : int
            Bar the signal refers to (default: last bar)

        Returns
        -------
        SignalQuality
        """
        if side not in ("BUY", "SELL"):
            raise ValueError(f"side must be 'BUY' or 'SELL', got {side!r}")

        t = self.thresholds
        n = len(bundle)
        if index < 0:
            index += n

        if n < t.min_bars or index < t.min_bars - 1:
            return SignalQuality(
                false_score=100,
                confidence_multiplier=0.0,
                reason="REJECT - insufficient data (100/100)",
                red_flags=("Insufficient data",),
            )

        i = index
        buy = side == "BUY"
        o, h, l, c = bundle.open[i], bundle.high[i], bundle.low[i], bundle.close[i]
        volume = bundle.volume[i]
        adx, rsi = bundle.adx[i], bundle.rsi[i]
        sma20, sma50, ema200 = bundle.sma20[i], bundle.sma50[i], bundle.ema200[i]

        score = 0
        flags: List[str] = []

        # ----- 1. Weak trend -----
        if _defined(adx) and adx < t.weak_adx:
            score += t.weak_adx_penalty
            flags.append(f"Weak trend: ADX={adx:.1f} < {t.weak_adx:.0f}")

        # ----- 2. Unsupported breakout -----
        start = max(0, i - t.volume_window + 1)
        avg_volume = float(np.mean(bundle.volume[start:i + 1]))
        volume_ratio = volume / avg_volume if avg_volume > 0 else np.nan
        breakout = _defined(sma20) and (c > sma20 if buy else c < sma20)
        if breakout and _defined(volume_ratio) and volume_ratio < t.unsupported_volume_ratio:
            score += t.unsupported_volume_penalty
            flags.append(f"No volume support ({volume_ratio:.1f}x avg)")

        # ----- 3. S/R proximity trap -----
        trap_distance = self._trap_distance(buy, c, bundle.levels)
        if trap_distance is not None:
            score += t.sr_trap_penalty
            flags.append(f"S/R trap within {trap_distance:.2f}%")

        # ----- 4. Stretched from SMA50 -----
        if _defined(sma50) and sma50 > 0:
            distance = abs(c - sma50) / sma50 * 100.0
            if distance > t.sma50_distance_pct:
                score += t.sma50_distance_penalty
                flags.append(f"Price {distance:.2f}% from SMA50 (mean reversion risk)")

        # ----- 5. Stop-hunt wick -----
        body = abs(c - o)
        max_wick = max(h - max(o, c), min(o, c) - l)
        if body > 0 and max_wick > t.wick_body_ratio * body:
            score += t.stop_hunt_penalty
            flags.append(f"Stop-hunt wick (wick/body={max_wick / body:.2f})")

        # ----- 6. 3-bar fake breakout -----
        c1, c2 = bundle.close[i - 1], bundle.close[i - 2]
        if _defined(sma50):
            if buy and c > sma50 and c1 < c and c2 < c1:
                score += t.fake_breakout_penalty
                flags.append("Fake breakout (3-bar run above SMA50)")
            elif not buy and c < sma50 and c1 > c and c2 > c1:
                score += t.fake_breakout_penalty
                flags.append("Fake breakdown (3-bar run below SMA50)")

        # ----- 7. RSI contradiction -----
        if _defined(rsi):
            if buy and rsi < t.buy_min_rsi:
                score += t.rsi_contradiction_penalty
                flags.append(f"RSI={rsi:.1f} too weak for BUY")
            elif not buy and rsi > t.sell_max_rsi:
                score += t.rsi_contradiction_penalty
                flags.append(f"RSI={rsi:.1f} too strong for SELL")

        # ----- 8. MA misalignment -----
        if _defined(sma20, sma50, ema200):
            aligned = sma20 > sma50 > ema200 if buy else sma20 < sma50 < ema200
            if not aligned:
                score += t.ma_misalignment_penalty
                flags.append(
                    f"MA misalignment: SMA20={sma20:.2f} SMA50={sma50:.2f} EMA200={ema200:.2f}"
                )

        # ----- 9. Volume spike after a dry bar -----
        if avg_volume > 0:
            prev_volume = bundle.volume[i - 1]
            if (volume > t.spike_volume_ratio * avg_volume
                    and prev_volume < t.collapse_volume_ratio * avg_volume):
                score += t.volume_trap_penalty
                flags.append("Volume spike after a dry bar")

        # ----- 10. Gap against the close -----
        if c1 > 0:
            gap = abs(o - c1) / c1 * 100.0
            against = o > c if buy else o < c
            if against and gap > t.gap_pct:
                score += t.gap_penalty
                flags.append(f"Gap {gap:.2f}% closing against the signal")

        logger.debug(f"{side} signal on bar {i}: false score {score}, {len(flags)} red flags")
        return self.quality_for(min(100, max(0, score)), flags)

    def quality_for(self, false_score: int, red_flags: Sequence[str] = ()) -> SignalQuality:
        """Apply the false-score step function."""
        t = self.thresholds
        if false_score >= t.reject_score:
            multiplier, verdict = 0.0, "REJECT"
        elif false_score >= t.caution_score:
            multiplier, verdict = t.caution_multiplier, "CAUTION"
        elif false_score >= t.minor_caution_score:
            multiplier, verdict = t.minor_caution_multiplier, "MINOR CAUTION"
        else:
            multiplier, verdict = 1.0, "ACCEPT"

        return SignalQuality(
            false_score=false_score,
            confidence_multiplier=multiplier,
            reason=f"{verdict} ({false_score}/100)",
            red_flags=tuple(red_flags),
        )

    def _trap_distance(
        self, buy: bool, close: float, levels: Sequence[SupportResistanceLevel]
    ) -> Optional[float]:
        """Closest opposing level distance in percent, None when clear."""
        nearest = None
        for level in levels:
            if level.level <= 0:
                continue
            distance = abs(close - level.level) / level.level * 100.0
            if distance >= self.thresholds.sr_trap_pct:
                continue
            if buy and level.is_resistance and close < level.level:
                nearest = distance if nearest is None else min(nearest, distance)
            elif not buy and level.is_support and close > level.level:
                nearest = distance if nearest is None else min(nearest, distance)
        return nearest


# =============================================================================
# STANDALONE PATTERN CHECKS
# =============================================================================

def is_false_breakout(
    frame: pd.DataFrame,
    support: float,
    resistance: float,
    lookback: int = 3
) -> bool:
    """
    True when the last bar pierced a level intrabar and a recent close sat
    back on the other side of it.

    A breakout closes above ``resistance`` with its low below it; a
    breakdown closes below ``support`` with its high above it. The up to
    two bars before it (bounded by ``lookback``) are checked for a close
    back across the level.
    """
    n = len(frame)
    if n == 0 or n < lookback:
        return False

    last = frame.iloc[-1]
    breakout = last["Close"] > resistance and last["Low"] < resistance
    breakdown = last["Close"] < support and last["High"] > support
    if not (breakout or breakdown):
        return False

    closes = frame["Close"].to_numpy(dtype=float)
    for k in range(1, min(lookback, 3)):
        if n - 1 - k < 0:
            break
        prior = closes[n - 1 - k]
        if breakout and prior < resistance:
            return True
        if breakdown and prior > support:
            return True
    return False


def is_stop_hunt_pattern(bar: pd.Series, support: float, atr: float) -> bool:
    """Close holds above support after a wick more than half an ATR below it."""
    return bool(bar["Close"] > support and bar["Low"] < support - 0.5 * atr)
