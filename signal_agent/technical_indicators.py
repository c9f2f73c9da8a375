"""
Technical Indicator Library for Multi-Factor Signal Scoring

Pure, deterministic indicator functions over an OHLCV DataFrame. Every
function returns a series index-aligned with its input; entries before an
indicator's warm-up length are NaN and no function raises on short input.

INDICATOR FAMILIES
    Family 1 - TREND
        - SMA / EMA (EMA seeded by the SMA of its first window)
        - MACD: EMA(fast) - EMA(slow), signal line = SMA(MACD, signal)
        - ADX/DMI: Wilder-smoothed directional movement

    Family 2 - MOMENTUM
        - RSI: Wilder's averages seeded by a plain mean

    Family 3 - VOLATILITY
        - Bollinger Bands (population standard deviation)
        - True Range / ATR (Wilder)

    Family 4 - VOLUME
        - OBV (On-Balance Volume)
        - Intrabar volume pressure

    Family 5 - PRICE STRUCTURE
        - Candle patterns (doji, hammer, shooting star, engulfing, harami)
        - Pivot-based support / resistance clustering

MACD NOTE
    The signal line is a *simple* moving average of the MACD line rather
    than the textbook exponential one. Scores and thresholds downstream are
    calibrated against this variant.

DEGENERATE INPUTS
    - avgLoss = 0: RSI = 100 (50 when avgGain is also 0)
    - zero standard deviation: Bollinger bands collapse onto the middle band
    - zero smoothed true range: +DI/-DI undefined (NaN), ADX abstains
    - +DI + -DI = 0: DX = 0
    - zero-range bar: volume pressure 0, candle is a doji
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.signal import argrelextrema

from .config import INDICATORS, IndicatorParameters
from .models import CandlePattern, SupportResistanceLevel, frame_timestamps, require_ohlcv

# Module-level logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DOJI_BODY_RATIO: float = 0.10
HAMMER_WICK_RATIO: float = 2.0
HAMMER_OPPOSITE_WICK_RATIO: float = 0.5
HARAMI_BODY_RATIO: float = 1.5

CANDLE_FLAGS: Tuple[str, ...] = (
    "doji",
    "hammer",
    "shooting_star",
    "bullish_engulfing",
    "bearish_engulfing",
    "bullish_harami",
    "bearish_harami",
)


# =============================================================================
# SMOOTHING HELPERS
# =============================================================================

def _seeded_average(values: pd.Series, period: int, alpha: float) -> pd.Series:
    """
    Exponential average seeded by the plain mean of the first full window.

    The first ``period`` valid observations are averaged and that mean is
    placed at the end of the window; from there the recurrence
    ``avg[i] = avg[i-1] + alpha * (x[i] - avg[i-1])`` runs forward.
    """
    out = pd.Series(np.nan, index=values.index, dtype=float)
    if period <= 0:
        return out

    arr = values.to_numpy(dtype=float)
    valid = np.flatnonzero(~np.isnan(arr))
    if len(valid) == 0:
        return out

    first = int(valid[0])
    seed_idx = first + period - 1
    if seed_idx >= len(arr):
        return out

    seeded = out.copy()
    seeded.iloc[seed_idx] = np.nanmean(arr[first:seed_idx + 1])
    seeded.iloc[seed_idx + 1:] = arr[seed_idx + 1:]
    return seeded.ewm(alpha=alpha, adjust=False).mean()


def wilder_smooth(values: pd.Series, period: int) -> pd.Series:
    """Wilder's smoothing (alpha = 1/period) seeded by a simple mean."""
    return _seeded_average(values, period, 1.0 / period if period > 0 else 1.0)


# =============================================================================
# TREND INDICATORS
# =============================================================================

class TrendIndicators:
    """Moving averages, MACD and the directional movement system."""

    @staticmethod
    def calculate_sma(close: pd.Series, period: int) -> pd.Series:
        """
        Simple moving average of the last ``period`` closes.

        Parameters
        ----------
        close : pd.Series
            Closing prices
        period : int
            Window length

        Returns
        -------
        pd.Series
            SMA values, NaN before index ``period - 1``
        """
        if period <= 0:
            return pd.Series(np.nan, index=close.index, dtype=float)
        return close.rolling(window=period, min_periods=period).mean()

    @staticmethod
    def calculate_ema(close: pd.Series, period: int) -> pd.Series:
        """
        Exponential moving average seeded by SMA(period).

        ema[period-1] = mean(close[0:period])
        ema[i] = (close[i] - ema[i-1]) * (2 / (period + 1)) + ema[i-1]
        """
        return _seeded_average(close, period, 2.0 / (period + 1.0))

    @staticmethod
    def calculate_macd(
        close: pd.Series,
        fast: int = INDICATORS.macd_fast,
        slow: int = INDICATORS.macd_slow,
        signal: int = INDICATORS.macd_signal
    ) -> Tuple[pd.Series, pd.Series, pd.Series]:
        """
        Calculate MACD line, signal line and histogram.

        MACD = EMA(fast) - EMA(slow)
        Signal = SMA(MACD, signal)
        Histogram = MACD - Signal

        Returns
        -------
        Tuple[pd.Series, pd.Series, pd.Series]
            (MACD line, Signal line, Histogram)
        """
        ema_fast = TrendIndicators.calculate_ema(close, fast)
        ema_slow = TrendIndicators.calculate_ema(close, slow)

        macd_line = ema_fast - ema_slow
        signal_line = macd_line.rolling(window=signal, min_periods=signal).mean()
        histogram = macd_line - signal_line

        return macd_line, signal_line, histogram

    @staticmethod
    def calculate_adx_dmi(
        high: pd.Series,
        low: pd.Series,
        close: pd.Series,
        period: int = INDICATORS.adx_period
    ) -> Tuple[pd.Series, pd.Series, pd.Series]:
        """
        Calculate ADX and Directional Movement indicators.

        +DM/-DM and True Range are Wilder-smoothed (first value at index
        ``period``), giving +DI/-DI; DX = 100 * |+DI - -DI| / (+DI + -DI);
        ADX is the Wilder-smoothed DX, first valid at ``2 * period - 1``.

        ADX > 25 marks a strong trend, ADX < 20 a ranging market.

        Returns
        -------
        Tuple[pd.Series, pd.Series, pd.Series]
            (ADX, +DI, -DI), each in [0, 100] where defined
        """
        tr = VolatilityIndicators.calculate_true_range(high, low, close)

        up_move = high.diff()
        down_move = -low.diff()

        plus_dm = pd.Series(
            np.where((up_move > down_move) & (up_move > 0), up_move, 0.0),
            index=high.index,
        )
        minus_dm = pd.Series(
            np.where((down_move > up_move) & (down_move > 0), down_move, 0.0),
            index=high.index,
        )
        if len(high) > 0:
            plus_dm.iloc[0] = np.nan
            minus_dm.iloc[0] = np.nan

        atr = wilder_smooth(tr, period)
        plus_smooth = wilder_smooth(plus_dm, period)
        minus_smooth = wilder_smooth(minus_dm, period)

        # Zero smoothed range leaves the direction undefined
        safe_atr = atr.where(atr > 0)
        plus_di = 100.0 * plus_smooth / safe_atr
        minus_di = 100.0 * minus_smooth / safe_atr

        di_sum = plus_di + minus_di
        dx = pd.Series(
            np.where(di_sum > 0, 100.0 * (plus_di - minus_di).abs() / di_sum.where(di_sum > 0), 0.0),
            index=high.index,
        )
        dx = dx.where(di_sum.notna())

        adx = wilder_smooth(dx, period)

        return adx, plus_di, minus_di


# =============================================================================
# MOMENTUM INDICATORS
# =============================================================================

class MomentumIndicators:
    """Momentum oscillators."""

    @staticmethod
    def calculate_rsi(close: pd.Series, period: int = INDICATORS.rsi_period) -> pd.Series:
        """
        Calculate Relative Strength Index using Wilder's smoothing.

        RSI = 100 - (100 / (1 + RS)), RS = Average Gain / Average Loss

        The averages are seeded by the plain mean of the first ``period``
        price changes, so the first RSI value sits at index ``period``.
        When the average loss is zero RSI is 100, or 50 if the average gain
        is zero as well.

        Parameters
        ----------
        close : pd.Series
            Closing prices
        period : int
            Lookback period (default: 14)

        Returns
        -------
        pd.Series
            RSI values [0, 100]
        """
        delta = close.diff()

        gains = delta.clip(lower=0.0)
        losses = (-delta).clip(lower=0.0)

        avg_gain = wilder_smooth(gains, period).to_numpy()
        avg_loss = wilder_smooth(losses, period).to_numpy()

        with np.errstate(divide="ignore", invalid="ignore"):
            rs = avg_gain / avg_loss
            rsi = 100.0 - (100.0 / (1.0 + rs))
        rsi = np.where(avg_loss == 0, np.where(avg_gain == 0, 50.0, 100.0), rsi)
        rsi = np.where(np.isnan(avg_gain) | np.isnan(avg_loss), np.nan, rsi)

        return pd.Series(rsi, index=close.index, dtype=float)


# =============================================================================
# VOLATILITY INDICATORS
# =============================================================================

class VolatilityIndicators:
    """Volatility bands and range measures."""

    @staticmethod
    def calculate_bollinger_bands(
        close: pd.Series,
        period: int = INDICATORS.bb_period,
        std_dev: float = INDICATORS.bb_std_dev
    ) -> Tuple[pd.Series, pd.Series, pd.Series]:
        """
        Calculate Bollinger Bands.

        Middle = SMA(close, period)
        Upper = Middle + std_dev * StdDev(close, period)
        Lower = Middle - std_dev * StdDev(close, period)

        StdDev is the population standard deviation of the window. A flat
        window yields upper == middle == lower.

        Returns
        -------
        Tuple[pd.Series, pd.Series, pd.Series]
            (Upper, Middle, Lower)
        """
        middle = TrendIndicators.calculate_sma(close, period)
        std = close.rolling(window=period, min_periods=period).std(ddof=0)

        upper = middle + std_dev * std
        lower = middle - std_dev * std

        return upper, middle, lower

    @staticmethod
    def calculate_true_range(high: pd.Series, low: pd.Series, close: pd.Series) -> pd.Series:
        """True range; NaN on the first bar (no previous close)."""
        prev_close = close.shift(1)
        tr1 = high - low
        tr2 = (high - prev_close).abs()
        tr3 = (low - prev_close).abs()
        tr = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1, skipna=False)
        return tr

    @staticmethod
    def calculate_atr(
        high: pd.Series,
        low: pd.Series,
        close: pd.Series,
        period: int = INDICATORS.atr_period
    ) -> pd.Series:
        """Average True Range with Wilder's smoothing, first valid at ``period``."""
        tr = VolatilityIndicators.calculate_true_range(high, low, close)
        return wilder_smooth(tr, period)


# =============================================================================
# VOLUME INDICATORS
# =============================================================================

class VolumeIndicators:
    """Volume flow indicators."""

    @staticmethod
    def calculate_obv(close: pd.Series, volume: pd.Series) -> pd.Series:
        """
        Calculate On-Balance Volume.

        OBV adds volume on up closes, subtracts it on down closes and is
        unchanged on flat closes. OBV starts at 0 on the first bar.
        """
        direction = np.sign(close.diff()).fillna(0.0)
        return (direction * volume).cumsum()

    @staticmethod
    def calculate_volume_pressure(
        frame: pd.DataFrame,
        close_weight: float = INDICATORS.pressure_close_weight,
        body_weight: float = INDICATORS.pressure_body_weight
    ) -> pd.Series:
        """
        Signed per-bar buying/selling pressure proxy.

        pressure = (0.7 * closePos + 0.3 * (close - open) / range) * volume
        closePos = ((close - low) - (high - close)) / range

        Both terms lie in [-1, 1]; positive values mean buying pressure.
        Zero-range bars carry no pressure.
        """
        high, low = frame["High"], frame["Low"]
        open_, close = frame["Open"], frame["Close"]

        bar_range = (high - low).to_numpy(dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            close_pos = ((close - low) - (high - close)).to_numpy(dtype=float) / bar_range
            body_move = (close - open_).to_numpy(dtype=float) / bar_range
        proxy = np.where(bar_range > 0, close_weight * close_pos + body_weight * body_move, 0.0)

        return pd.Series(proxy * frame["Volume"].to_numpy(dtype=float), index=frame.index)


# =============================================================================
# PRICE STRUCTURE
# =============================================================================

class PatternRecognition:
    """Candle patterns and pivot-based support/resistance."""

    @staticmethod
    def detect_candle_patterns(frame: pd.DataFrame) -> pd.DataFrame:
        """
        Vectorised candle-pattern flags for every bar (single pass).

        Rules
        -----
        doji          body < 10% of the bar range (or zero range)
        hammer        bullish, lower wick > 2x body, upper wick < 0.5x body
        shooting_star bearish, upper wick > 2x body, lower wick < 0.5x body
        engulfing     body covers and exceeds the prior opposite-colored body
        harami        body sits inside a prior opposite-colored body at least
                      1.5x larger

        Returns
        -------
        pd.DataFrame
            Boolean columns named after :data:`CANDLE_FLAGS`
        """
        o, h, l, c = frame["Open"], frame["High"], frame["Low"], frame["Close"]

        body = (c - o).abs()
        bar_range = h - l
        upper_wick = h - np.maximum(o, c)
        lower_wick = np.minimum(o, c) - l
        bullish = c > o
        bearish = c < o

        prev_o, prev_c = o.shift(1), c.shift(1)
        prev_body = (prev_c - prev_o).abs()
        prev_bullish = prev_c > prev_o
        prev_bearish = prev_c < prev_o

        flags = pd.DataFrame(index=frame.index)
        flags["doji"] = (bar_range <= 0) | (body < DOJI_BODY_RATIO * bar_range)
        flags["hammer"] = (
            bullish
            & (lower_wick > HAMMER_WICK_RATIO * body)
            & (upper_wick < HAMMER_OPPOSITE_WICK_RATIO * body)
        )
        flags["shooting_star"] = (
            bearish
            & (upper_wick > HAMMER_WICK_RATIO * body)
            & (lower_wick < HAMMER_OPPOSITE_WICK_RATIO * body)
        )
        flags["bullish_engulfing"] = (
            bullish & prev_bearish & (o <= prev_c) & (c >= prev_o) & (body > prev_body)
        )
        flags["bearish_engulfing"] = (
            bearish & prev_bullish & (o >= prev_c) & (c <= prev_o) & (body > prev_body)
        )
        flags["bullish_harami"] = (
            bullish & prev_bearish
            & (prev_body >= HARAMI_BODY_RATIO * body)
            & (o >= prev_c) & (c <= prev_o)
        )
        flags["bearish_harami"] = (
            bearish & prev_bullish
            & (prev_body >= HARAMI_BODY_RATIO * body)
            & (o <= prev_c) & (c >= prev_o)
        )
        return flags.astype(bool)

    @staticmethod
    def analyze_candle_pattern(frame: pd.DataFrame, index: int) -> CandlePattern:
        """Candle flags for one bar relative to its predecessor."""
        n = len(frame)
        if n == 0:
            return CandlePattern()
        if index < 0:
            index += n
        if not 0 <= index < n:
            raise IndexError(f"Bar index {index} out of range for {n} bars")

        window = frame.iloc[max(0, index - 1):index + 1]
        row = PatternRecognition.detect_candle_patterns(window).iloc[-1]
        return CandlePattern(**{name: bool(row[name]) for name in CANDLE_FLAGS})

    @staticmethod
    def find_support_resistance(
        frame: pd.DataFrame,
        lookback: int = INDICATORS.sr_lookback,
        order: int = INDICATORS.pivot_order,
        cluster_pct: float = INDICATORS.sr_cluster_pct,
        full_strength_touches: int = INDICATORS.sr_full_strength_touches
    ) -> Tuple[SupportResistanceLevel, ...]:
        """
        Cluster pivot highs/lows of the last ``lookback`` bars into levels.

        A bar is a pivot high (low) when its high (low) is strictly the
        extreme of the +/- ``order`` bar window around it. Pivots sorted by
        price join the current cluster while they sit within ``cluster_pct``
        of the cluster mean; strength = min(1, touches / 5).

        Returns
        -------
        Tuple[SupportResistanceLevel, ...]
            Levels sorted by price, ascending
        """
        window = frame.iloc[-lookback:] if lookback > 0 else frame
        n = len(window)
        if n < 2 * order + 1:
            return ()

        highs = window["High"].to_numpy(dtype=float)
        lows = window["Low"].to_numpy(dtype=float)

        # Pivots need a full window on both sides
        def _interior(idx: np.ndarray) -> np.ndarray:
            return idx[(idx >= order) & (idx <= n - 1 - order)]

        high_idx = _interior(argrelextrema(highs, np.greater, order=order)[0])
        low_idx = _interior(argrelextrema(lows, np.less, order=order)[0])

        pivots = [(float(highs[i]), False) for i in high_idx]
        pivots += [(float(lows[i]), True) for i in low_idx]
        pivots.sort(key=lambda p: (p[0], p[1]))

        clusters = []
        for price, is_low in pivots:
            if clusters:
                current = clusters[-1]
                mean = current["total"] / current["touches"]
                if mean > 0 and abs(price - mean) / mean <= cluster_pct:
                    current["total"] += price
                    current["touches"] += 1
                    current["support"] |= is_low
                    current["resistance"] |= not is_low
                    continue
            clusters.append({
                "total": price,
                "touches": 1,
                "support": is_low,
                "resistance": not is_low,
            })

        return tuple(
            SupportResistanceLevel(
                level=c["total"] / c["touches"],
                touches=c["touches"],
                is_support=c["support"],
                is_resistance=c["resistance"],
                strength=min(1.0, c["touches"] / float(full_strength_touches)),
            )
            for c in clusters
        )


# =============================================================================
# INDICATOR BUNDLE
# =============================================================================

@dataclass(frozen=True)
class IndicatorBundle:
    """
    Every indicator for one symbol, as index-aligned numpy arrays.

    Arrays are NaN during each indicator's warm-up. ``candles`` maps each
    candle flag name to a boolean array; ``levels`` holds the support and
    resistance levels as of the last bar.
    """
    timestamps: np.ndarray
    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray

    sma20: np.ndarray
    sma50: np.ndarray
    ema12: np.ndarray
    ema20: np.ndarray
    ema50: np.ndarray
    ema200: np.ndarray

    rsi: np.ndarray
    macd: np.ndarray
    macd_signal: np.ndarray
    macd_hist: np.ndarray

    bb_upper: np.ndarray
    bb_middle: np.ndarray
    bb_lower: np.ndarray

    atr: np.ndarray
    adx: np.ndarray
    plus_di: np.ndarray
    minus_di: np.ndarray

    obv: np.ndarray
    pressure: np.ndarray

    candles: Dict[str, np.ndarray] = field(default_factory=dict)
    levels: Tuple[SupportResistanceLevel, ...] = ()

    def __len__(self) -> int:
        return len(self.close)

    def candle_at(self, index: int) -> CandlePattern:
        if not self.candles:
            return CandlePattern()
        return CandlePattern(**{name: bool(self.candles[name][index]) for name in CANDLE_FLAGS})


# =============================================================================
# MAIN INDICATOR ENGINE
# =============================================================================

class TechnicalIndicatorEngine:
    """
    Computes the complete indicator bundle for one symbol.

    Usage
    -----
    >>> engine = TechnicalIndicatorEngine()
    >>> bundle = engine.process(frame)
    >>> bundle.rsi[-1]
    """

    def __init__(self, params: Optional[IndicatorParameters] = None):
        self.params = params or INDICATORS

    def process(self, frame: pd.DataFrame) -> IndicatorBundle:
        """
        Process OHLCV data through every indicator.

        Parameters
        ----------
        frame : pd.DataFrame
            OHLCV data with columns: Open, High, Low, Close, Volume

        Returns
        -------
        IndicatorBundle
        """
        require_ohlcv(frame)
        p = self.params
        logger.debug(f"Computing indicators for {frame.attrs.get('symbol', 'UNKNOWN')} ({len(frame)} bars)")

        high, low, close, volume = frame["High"], frame["Low"], frame["Close"], frame["Volume"]

        macd, macd_signal, macd_hist = TrendIndicators.calculate_macd(
            close, p.macd_fast, p.macd_slow, p.macd_signal
        )
        bb_upper, bb_middle, bb_lower = VolatilityIndicators.calculate_bollinger_bands(
            close, p.bb_period, p.bb_std_dev
        )
        adx, plus_di, minus_di = TrendIndicators.calculate_adx_dmi(high, low, close, p.adx_period)
        candles = PatternRecognition.detect_candle_patterns(frame)

        timestamps = frame_timestamps(frame)

        def arr(series: pd.Series) -> np.ndarray:
            return series.to_numpy(dtype=float)

        return IndicatorBundle(
            timestamps=timestamps,
            open=arr(frame["Open"]),
            high=arr(high),
            low=arr(low),
            close=arr(close),
            volume=arr(volume),
            sma20=arr(TrendIndicators.calculate_sma(close, p.sma_fast)),
            sma50=arr(TrendIndicators.calculate_sma(close, p.sma_slow)),
            ema12=arr(TrendIndicators.calculate_ema(close, p.ema_chart)),
            ema20=arr(TrendIndicators.calculate_ema(close, p.ema_short)),
            ema50=arr(TrendIndicators.calculate_ema(close, p.ema_medium)),
            ema200=arr(TrendIndicators.calculate_ema(close, p.ema_long)),
            rsi=arr(MomentumIndicators.calculate_rsi(close, p.rsi_period)),
            macd=arr(macd),
            macd_signal=arr(macd_signal),
            macd_hist=arr(macd_hist),
            bb_upper=arr(bb_upper),
            bb_middle=arr(bb_middle),
            bb_lower=arr(bb_lower),
            atr=arr(VolatilityIndicators.calculate_atr(high, low, close, p.atr_period)),
            adx=arr(adx),
            plus_di=arr(plus_di),
            minus_di=arr(minus_di),
            obv=arr(VolumeIndicators.calculate_obv(close, volume)),
            pressure=arr(VolumeIndicators.calculate_volume_pressure(
                frame, p.pressure_close_weight, p.pressure_body_weight
            )),
            candles={name: candles[name].to_numpy(dtype=bool) for name in CANDLE_FLAGS},
            levels=PatternRecognition.find_support_resistance(
                frame, p.sr_lookback, p.pivot_order, p.sr_cluster_pct, p.sr_full_strength_touches
            ),
        )
