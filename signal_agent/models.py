"""
Core Data Model for the Technical Signal Agent

Immutable value types shared by every stage of the pipeline:

    PricePoint            One OHLCV bar
    SignalClassification  STRONG_BUY ... STRONG_SELL
    TraceEntry            One firing scoring rule
    ScoreBreakdown        Signed sub-scores, adjustments and trace for one bar
    SupportResistanceLevel, CandlePattern
    SignalQuality         False-signal validator output
    BacktestResult        Historical-analog backtest output
    TradePoint            Historical BUY/SELL marker for charting
    AnalysisResult        Everything produced for one symbol

Also provides the conversion between a ``Sequence[PricePoint]`` and the
OHLCV DataFrame layout the indicator library works on.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd


OHLCV_COLUMNS: Tuple[str, ...] = ("Open", "High", "Low", "Close", "Volume")
DAY_MS: int = 86_400_000


# =============================================================================
# ENUMERATIONS
# =============================================================================

class SignalClassification(Enum):
    """Discrete trading signal for the latest bar."""
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"

    @property
    def direction(self) -> int:
        """+1 for the buy tiers, -1 for the sell tiers, 0 for HOLD."""
        return {
            SignalClassification.STRONG_BUY: 1,
            SignalClassification.BUY: 1,
            SignalClassification.HOLD: 0,
            SignalClassification.SELL: -1,
            SignalClassification.STRONG_SELL: -1,
        }[self]

    @property
    def side(self) -> Optional[str]:
        """Collapsed "BUY"/"SELL" side, None for HOLD."""
        if self.direction > 0:
            return "BUY"
        if self.direction < 0:
            return "SELL"
        return None

    @property
    def is_strong(self) -> bool:
        return self in (SignalClassification.STRONG_BUY, SignalClassification.STRONG_SELL)


class TraceDirection(Enum):
    """Direction of a trace entry."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    INFO = "INFO"

    @classmethod
    def from_delta(cls, delta: float) -> "TraceDirection":
        if delta > 0:
            return cls.BULLISH
        if delta < 0:
            return cls.BEARISH
        return cls.INFO


# =============================================================================
# INPUT DATA
# =============================================================================

@dataclass(frozen=True)
class PricePoint:
    """One OHLCV bar. Timestamps are epoch milliseconds."""
    symbol: str
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: int


def series_to_frame(points: Sequence[PricePoint]) -> pd.DataFrame:
    """
    Convert a chronological PricePoint series into an OHLCV DataFrame.

    The frame carries ``Open, High, Low, Close, Volume, Timestamp`` columns,
    a UTC DatetimeIndex and the symbol in ``attrs['symbol']``.

    Raises
    ------
    ValueError
        If the points belong to more than one symbol.
    """
    symbols = {p.symbol for p in points}
    if len(symbols) > 1:
        raise ValueError(f"Series mixes symbols: {sorted(symbols)}")

    timestamps = np.array([p.timestamp for p in points], dtype=np.int64)
    frame = pd.DataFrame(
        {
            "Open": np.array([p.open for p in points], dtype=float),
            "High": np.array([p.high for p in points], dtype=float),
            "Low": np.array([p.low for p in points], dtype=float),
            "Close": np.array([p.close for p in points], dtype=float),
            "Volume": np.array([p.volume for p in points], dtype=float),
            "Timestamp": timestamps,
        },
        index=pd.to_datetime(timestamps, unit="ms", utc=True),
    )
    frame.attrs["symbol"] = symbols.pop() if symbols else "UNKNOWN"
    return frame


def frame_to_series(frame: pd.DataFrame, symbol: Optional[str] = None) -> List[PricePoint]:
    """Inverse of :func:`series_to_frame`."""
    require_ohlcv(frame)
    symbol = symbol or frame.attrs.get("symbol", "UNKNOWN")
    stamps = frame_timestamps(frame).tolist()
    return [
        PricePoint(
            symbol=symbol,
            timestamp=int(ts),
            open=float(o),
            high=float(h),
            low=float(lo),
            close=float(c),
            volume=int(v),
        )
        for ts, o, h, lo, c, v in zip(
            stamps,
            frame["Open"], frame["High"], frame["Low"], frame["Close"], frame["Volume"],
        )
    ]


def frame_timestamps(frame: pd.DataFrame) -> np.ndarray:
    """
    Epoch-ms timestamps for every row.

    Taken from the ``Timestamp`` column, else from a DatetimeIndex (naive
    values read as UTC). Any other index is treated as consecutive daily
    bars starting at the epoch, so calendar logic still sees one bar per date.
    """
    if "Timestamp" in frame.columns:
        return frame["Timestamp"].to_numpy(dtype=np.int64)
    if isinstance(frame.index, pd.DatetimeIndex):
        return frame.index.as_unit("ms").asi8.astype(np.int64)
    return np.arange(len(frame), dtype=np.int64) * DAY_MS


def require_ohlcv(frame: pd.DataFrame) -> None:
    """Raise ValueError when any OHLCV column is missing."""
    missing = [c for c in OHLCV_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


# =============================================================================
# DERIVED STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class TraceEntry:
    """One firing scoring rule: which rule, the value it saw, its score delta."""
    rule: str
    value: float
    delta: float
    direction: TraceDirection

    def to_dict(self) -> Dict[str, object]:
        return {
            "rule": self.rule,
            "value": None if np.isnan(self.value) else round(float(self.value), 6),
            "delta": round(float(self.delta), 6),
            "direction": self.direction.value,
        }


@dataclass(frozen=True)
class SupportResistanceLevel:
    """Clustered pivot level."""
    level: float
    touches: int
    is_support: bool
    is_resistance: bool
    strength: float                          # 0.0 to 1.0


@dataclass(frozen=True)
class CandlePattern:
    """Single-bar candle flags relative to the previous bar."""
    doji: bool = False
    hammer: bool = False
    shooting_star: bool = False
    bullish_engulfing: bool = False
    bearish_engulfing: bool = False
    bullish_harami: bool = False
    bearish_harami: bool = False

    @property
    def active(self) -> List[str]:
        return [name for name, flag in vars(self).items() if flag]


@dataclass(frozen=True)
class ScoreBreakdown:
    """
    Per-bar scoring result.

    ``total`` is the adjusted score used for classification; ``raw_total``
    is the plain sum of the sub-scores before adjustments.
    """
    index: int
    trend: float = 0.0
    momentum: float = 0.0
    bollinger: float = 0.0
    volume: float = 0.0
    price_action: float = 0.0
    candle: float = 0.0
    pressure: float = 0.0
    raw_total: float = 0.0
    volatility_penalty: float = 1.0
    adx_bonus: float = 0.0
    sr_penalty: float = 1.0
    total: float = 0.0
    bullish_confirmations: int = 0
    bearish_confirmations: int = 0
    squeeze: bool = False
    filtered: Optional[str] = None           # Name of the gate that stopped scoring
    trace: Tuple[TraceEntry, ...] = ()

    @property
    def confirmation_count(self) -> int:
        """Confirmations agreeing with the sign of the adjusted total."""
        if self.total > 0:
            return self.bullish_confirmations
        if self.total < 0:
            return self.bearish_confirmations
        return 0

    def sub_scores(self) -> Dict[str, float]:
        return {
            "trend": self.trend,
            "momentum": self.momentum,
            "bollinger": self.bollinger,
            "volume": self.volume,
            "priceAction": self.price_action,
            "candle": self.candle,
            "pressure": self.pressure,
        }


@dataclass(frozen=True)
class SignalQuality:
    """False-signal validator output. Advisory only."""
    false_score: int
    confidence_multiplier: float
    reason: str
    red_flags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BacktestExample:
    """One historical analog used by the backtest."""
    index: int
    timestamp: int
    price: float
    max_move: float
    successful: bool

    def summary(self, side: str) -> str:
        verdict = "hit" if self.successful else "miss"
        return (
            f"{verdict}: {side} @ {self.price:.2f} -> {self.max_move * 100:.1f}% "
            f"max move (bar {self.index})"
        )


@dataclass(frozen=True)
class BacktestResult:
    """Historical-analog backtest output. Advisory only."""
    side: Optional[str]
    total_signals: int
    successful_signals: int
    success_rate: float
    confidence_multiplier: float
    reason: str
    examples: Tuple[BacktestExample, ...] = ()
    p_value: Optional[float] = None


@dataclass(frozen=True)
class TradePoint:
    """Historical BUY/SELL marker."""
    index: int
    timestamp: int
    signal: str                              # "BUY" or "SELL"
    price: float
    score: float
    reason: str


@dataclass(frozen=True)
class AnalysisResult:
    """Complete per-symbol output of the pipeline."""
    symbol: str
    timestamp: int
    price: float
    classification: SignalClassification
    confidence: float
    breakdown: ScoreBreakdown
    quality: Optional[SignalQuality] = None
    backtest: Optional[BacktestResult] = None
    trade_points: Tuple[TradePoint, ...] = ()
    levels: Tuple[SupportResistanceLevel, ...] = ()

    @property
    def trace(self) -> Tuple[TraceEntry, ...]:
        return self.breakdown.trace

    @property
    def confirmation_count(self) -> int:
        return self.breakdown.confirmation_count


@dataclass(frozen=True)
class SymbolOutcome:
    """Success or failure-with-reason for one symbol in a batch."""
    symbol: str
    ok: bool
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
