"""
Configuration Module for the Technical Signal Agent

This module centralizes all indicator periods, scoring thresholds, validation
penalties and backtest parameters used throughout the signal pipeline.

All "magic numbers" are defined here to ensure:
1. Single source of truth for all thresholds
2. Easy modification without touching scoring code
3. Transparency in assumptions and thresholds
4. The live scorer and the historical scanner read identical values
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Tuple


# =============================================================================
# ENUMERATIONS
# =============================================================================

class AnalysisStep(Enum):
    """Enumeration of per-symbol pipeline steps."""
    INDICATORS = "Indicator Computation"
    SCORING = "Multi-Factor Scoring"
    VALIDATION = "False-Signal Validation"
    BACKTEST = "Historical Analog Backtest"
    REPLAY = "Historical Signal Replay"


# =============================================================================
# INDICATOR PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class IndicatorParameters:
    """Lookback periods for every indicator in the library."""

    sma_fast: int = 20
    sma_slow: int = 50
    ema_short: int = 20
    ema_medium: int = 50
    ema_long: int = 200
    ema_chart: int = 12                # EMA12 kept for chart overlays

    rsi_period: int = 14

    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9               # Simple moving average of the MACD line

    bb_period: int = 20
    bb_std_dev: float = 2.0

    atr_period: int = 14
    adx_period: int = 14

    pivot_order: int = 5               # Bars on each side of a pivot
    sr_lookback: int = 120             # Bars scanned for pivots
    sr_cluster_pct: float = 0.02       # Pivots within 2% merge into one level
    sr_full_strength_touches: int = 5  # touches / 5, capped at 1.0

    pressure_close_weight: float = 0.7
    pressure_body_weight: float = 0.3


# =============================================================================
# SCORING THRESHOLDS
# =============================================================================

@dataclass(frozen=True)
class ScoringThresholds:
    """Thresholds for the multi-factor scoring engine."""

    # Pre-filters
    min_history_bars: int = 200
    liquidity_window: int = 20
    min_liquidity: float = 1_000_000.0      # Mean (volume * close) per bar
    ranging_adx: float = 20.0               # ADX below = ranging market
    strong_trend_adx: float = 25.0          # ADX above = strong trend

    # Trend
    ema_slope_bars: int = 10

    # Momentum
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    rsi_midline: float = 50.0
    rsi_delta_bars: int = 5
    rsi_strong_delta: float = 5.0

    # Bollinger
    band_edge_pct: float = 0.20             # Outer 20% of the band
    squeeze_width_pct: float = 0.05         # Width < 5% of middle band

    # Volume
    breakout_window: int = 20
    breakout_volume_ratio: float = 2.0
    climax_volume_ratio: float = 3.0
    obv_extreme_window: int = 20
    obv_trend_bars: int = 10

    # Price action
    price_action_window: int = 20           # Two adjacent 10-bar halves

    # Pressure
    pressure_window: int = 5
    pressure_volume_ratio: float = 0.30

    # Adjustments
    high_volatility_atr_pct: float = 0.08
    volatility_penalty: float = 0.8
    adx_bonus: float = 2.0
    sr_proximity_pct: float = 0.03
    sr_min_strength: float = 0.6
    sr_penalty: float = 0.7

    # Classification (score, confirmations)
    strong_score: float = 6.0
    strong_confirmations: int = 3
    weak_score: float = 4.0
    weak_confirmations: int = 2

    # Confidence
    strong_confidence_base: float = 70.0
    strong_confidence_step: float = 4.0
    strong_confidence_cap: float = 95.0
    weak_confidence_base: float = 55.0
    weak_confidence_step: float = 6.0
    hold_confidence: float = 50.0
    filtered_confidence: float = 25.0


# =============================================================================
# FALSE-SIGNAL VALIDATION THRESHOLDS
# =============================================================================

@dataclass(frozen=True)
class ValidationThresholds:
    """Penalty points and trigger levels for the false-signal validator."""

    min_bars: int = 5
    volume_window: int = 20

    weak_adx: float = 20.0
    weak_adx_penalty: int = 35

    unsupported_volume_ratio: float = 0.8
    unsupported_volume_penalty: int = 28

    sr_trap_pct: float = 3.0
    sr_trap_penalty: int = 25

    sma50_distance_pct: float = 5.0
    sma50_distance_penalty: int = 15

    wick_body_ratio: float = 2.0
    stop_hunt_penalty: int = 18

    fake_breakout_penalty: int = 30

    buy_min_rsi: float = 40.0
    sell_max_rsi: float = 60.0
    rsi_contradiction_penalty: int = 20

    ma_misalignment_penalty: int = 22

    spike_volume_ratio: float = 1.5
    collapse_volume_ratio: float = 0.8
    volume_trap_penalty: int = 15

    gap_pct: float = 1.5
    gap_penalty: int = 15

    # falseScore -> confidence multiplier step function
    reject_score: int = 90
    caution_score: int = 75
    minor_caution_score: int = 60
    caution_multiplier: float = 0.7
    minor_caution_multiplier: float = 0.9


# =============================================================================
# BACKTEST PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class BacktestParameters:
    """Parameters for the historical-analog backtest."""

    min_history_bars: int = 60
    max_lookback: int = 100
    recent_exclusion: int = 10         # Most recent bars never used as analogs
    warmup_bars: int = 20
    rsi_tolerance: float = 15.0
    adx_tolerance: float = 15.0
    price_position_tolerance: float = 0.05
    success_threshold: float = 0.05    # 5% favorable move
    horizons: Tuple[int, ...] = (1, 3, 5, 10)
    max_examples: int = 3
    min_signals_for_rate: int = 3
    default_success_rate: float = 0.5
    thin_sample_multiplier: float = 0.8


# =============================================================================
# HISTORICAL SCANNER PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class ScannerParameters:
    """Parameters for replaying the scorer over the whole series."""

    start_index: int = 60
    min_spacing_bars: int = 5
    timezone: str = "Europe/Istanbul"  # Calendar used for same-day dedupe


# =============================================================================
# COMPOSITE CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class AnalysisConfig:
    """
    Complete configuration for one pipeline run.

    The two ``apply_*`` flags control whether the advisory multipliers from
    the validators are applied to the live confidence. Both are off by
    default: validators only report.
    """
    indicators: IndicatorParameters = field(default_factory=IndicatorParameters)
    scoring: ScoringThresholds = field(default_factory=ScoringThresholds)
    validation: ValidationThresholds = field(default_factory=ValidationThresholds)
    backtest: BacktestParameters = field(default_factory=BacktestParameters)
    scanner: ScannerParameters = field(default_factory=ScannerParameters)

    apply_quality_multiplier: bool = False
    apply_backtest_multiplier: bool = False
    run_validators: bool = True
    run_scanner: bool = True

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AnalysisConfig":
        """
        Build a configuration from a nested mapping (e.g. a parsed JSON file).

        Unknown keys raise ``ValueError`` so typos never pass silently.
        """
        sections = {
            "indicators": IndicatorParameters,
            "scoring": ScoringThresholds,
            "validation": ValidationThresholds,
            "backtest": BacktestParameters,
            "scanner": ScannerParameters,
        }
        flags = {f.name for f in fields(cls)} - set(sections)

        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ValueError("Configuration must be an object")

        kwargs: Dict[str, Any] = {}
        for key, value in raw.items():
            if key in sections:
                kwargs[key] = _build_section(sections[key], value)
            elif key in flags:
                kwargs[key] = bool(value)
            else:
                raise ValueError(f"Unknown configuration key: {key}")
        return cls(**kwargs)


def _build_section(section_cls, values: Mapping[str, Any]):
    if values is None:
        values = {}
    if not isinstance(values, Mapping):
        raise ValueError(f"{section_cls.__name__} must be an object")
    known = {f.name: f for f in fields(section_cls)}
    unknown = set(values) - set(known)
    if unknown:
        raise ValueError(
            f"Unknown {section_cls.__name__} keys: {sorted(unknown)}"
        )
    coerced = {}
    for key, value in values.items():
        # JSON has no tuples
        coerced[key] = tuple(value) if isinstance(value, list) else value
    return replace(section_cls(), **coerced)


# =============================================================================
# GLOBAL CONFIGURATION INSTANCES
# =============================================================================

INDICATORS = IndicatorParameters()
SCORING = ScoringThresholds()
VALIDATION = ValidationThresholds()
BACKTEST = BacktestParameters()
SCANNER = ScannerParameters()
DEFAULT_CONFIG = AnalysisConfig()
