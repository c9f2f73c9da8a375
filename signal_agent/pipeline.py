"""
Per-Symbol Analysis Pipeline

Wires the stages together for one symbol:

    Series -> indicators -> live score -> false-signal validator
           -> analog backtest -> historical replay  => AnalysisResult

``analyze`` is pure and holds no module-level state, so it can be fanned out
over a process pool. ``run_symbol`` is the batch boundary: it turns any
exception into a failed ``SymbolOutcome`` carrying a HOLD result, and
``analyze_batch`` runs many symbols without letting one failure touch the
others.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import replace
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .backtest_validator import BacktestValidator
from .config import DEFAULT_CONFIG, AnalysisConfig, AnalysisStep
from .models import (
    AnalysisResult,
    BacktestResult,
    PricePoint,
    ScoreBreakdown,
    SignalClassification,
    SignalQuality,
    SymbolOutcome,
    TraceDirection,
    TraceEntry,
    series_to_frame,
)
from .scoring_engine import Evaluation, ScoringEngine
from .signal_scanner import HistoricalSignalScanner
from .signal_validator import SignalValidator
from .technical_indicators import TechnicalIndicatorEngine

# Module-level logger
logger = logging.getLogger(__name__)

SeriesLike = Union[Sequence[PricePoint], pd.DataFrame]


class AnalysisError(Exception):
    """A pipeline step failed for one symbol."""

    def __init__(self, symbol: str, step: AnalysisStep, cause: Exception):
        self.symbol = symbol
        self.step = step
        self.cause = cause
        super().__init__(f"{step.value} failed for {symbol}: {type(cause).__name__}: {cause}")


# =============================================================================
# RESULT HELPERS
# =============================================================================

def _hold_result(symbol: str, rule: str, filtered: str = "error") -> AnalysisResult:
    entry = TraceEntry(rule, float("nan"), 0.0, TraceDirection.INFO)
    return AnalysisResult(
        symbol=symbol,
        timestamp=0,
        price=0.0,
        classification=SignalClassification.HOLD,
        confidence=0.0,
        breakdown=ScoreBreakdown(index=-1, filtered=filtered, trace=(entry,)),
    )


def apply_advisory_multipliers(
    evaluation: Evaluation,
    quality: Optional[SignalQuality],
    backtest: Optional[BacktestResult],
    config: AnalysisConfig
) -> Tuple[SignalClassification, float, ScoreBreakdown]:
    """
    Apply the validator multipliers when the configuration enforces them.

    A combined multiplier of 0 downgrades the signal to HOLD. With both
    ``apply_*`` flags off (the default) the evaluation passes through.
    """
    multiplier = 1.0
    if config.apply_quality_multiplier and quality is not None:
        multiplier *= quality.confidence_multiplier
    if config.apply_backtest_multiplier and backtest is not None:
        multiplier *= backtest.confidence_multiplier

    classification = evaluation.classification
    confidence = evaluation.confidence
    breakdown = evaluation.breakdown
    if multiplier == 1.0 or classification.side is None:
        return classification, confidence, breakdown

    entry = TraceEntry("Advisory multiplier", multiplier, 0.0, TraceDirection.INFO)
    breakdown = replace(breakdown, trace=breakdown.trace + (entry,))
    if multiplier <= 0.0:
        return SignalClassification.HOLD, config.scoring.hold_confidence, breakdown
    return classification, min(100.0, confidence * multiplier), breakdown


# =============================================================================
# PIPELINE
# =============================================================================

def analyze(series: SeriesLike, config: Optional[AnalysisConfig] = None) -> AnalysisResult:
    """
    Run the full pipeline for one symbol.

    Parameters
    ----------
    series : Sequence[PricePoint] or pd.DataFrame
        Chronological, sanitized bars for a single symbol
    config : AnalysisConfig, optional
        Thresholds and flags (defaults to DEFAULT_CONFIG)

    Returns
    -------
    AnalysisResult

    Raises
    ------
    AnalysisError
        When a step fails; ``run_symbol`` converts it into an outcome.
    """
    cfg = config or DEFAULT_CONFIG
    frame = series if isinstance(series, pd.DataFrame) else series_to_frame(series)
    symbol = frame.attrs.get("symbol", "UNKNOWN")

    if len(frame) == 0:
        return _hold_result(symbol, "No data available", filtered="history")

    step = AnalysisStep.INDICATORS
    try:
        bundle = TechnicalIndicatorEngine(cfg.indicators).process(frame)

        step = AnalysisStep.SCORING
        evaluation = ScoringEngine(cfg).evaluate(bundle)
        side = evaluation.classification.side

        quality = None
        backtest = None
        if side is not None and cfg.run_validators:
            step = AnalysisStep.VALIDATION
            quality = SignalValidator(cfg.validation).validate(side, bundle)

            step = AnalysisStep.BACKTEST
            backtest = BacktestValidator(cfg.backtest).validate(side, bundle)

        classification, confidence, breakdown = apply_advisory_multipliers(
            evaluation, quality, backtest, cfg
        )

        trade_points = ()
        if cfg.run_scanner:
            step = AnalysisStep.REPLAY
            scanner = HistoricalSignalScanner(cfg)
            trade_points = tuple(scanner.merge_current_signal(
                scanner.scan(bundle), bundle, classification, breakdown.total
            ))
    except Exception as exc:
        raise AnalysisError(symbol, step, exc) from exc

    return AnalysisResult(
        symbol=symbol,
        timestamp=int(bundle.timestamps[-1]),
        price=float(bundle.close[-1]),
        classification=classification,
        confidence=float(confidence),
        breakdown=breakdown,
        quality=quality,
        backtest=backtest,
        trade_points=trade_points,
        levels=bundle.levels,
    )


def run_symbol(
    symbol: str,
    series: SeriesLike,
    config: Optional[AnalysisConfig] = None
) -> SymbolOutcome:
    """Analyze one symbol, converting any failure into a HOLD outcome."""
    try:
        result = analyze(series, config)
    except Exception as exc:
        logger.exception(f"Analysis failed for {symbol}")
        return SymbolOutcome(
            symbol=symbol,
            ok=False,
            result=_hold_result(symbol, f"Analysis failed: {exc}"),
            error=str(exc),
        )
    return SymbolOutcome(symbol=symbol, ok=True, result=result)


def analyze_batch(
    series_by_symbol: Mapping[str, SeriesLike],
    config: Optional[AnalysisConfig] = None,
    max_workers: Optional[int] = None
) -> Dict[str, SymbolOutcome]:
    """
    Analyze many symbols independently.

    Parameters
    ----------
    series_by_symbol : Mapping[str, SeriesLike]
        One series per symbol
    config : AnalysisConfig, optional
        Shared configuration
    max_workers : int, optional
        Process-pool size; ``None`` or 1 runs sequentially

    Returns
    -------
    Dict[str, SymbolOutcome]
        Outcomes in input order
    """
    start = time.time()
    outcomes: Dict[str, SymbolOutcome] = {}

    if not max_workers or max_workers <= 1:
        for symbol, series in series_by_symbol.items():
            outcomes[symbol] = run_symbol(symbol, series, config)
    else:
        with ProcessPoolExecutor(max_workers=max_workers) as pool:
            futures = {
                symbol: pool.submit(run_symbol, symbol, series, config)
                for symbol, series in series_by_symbol.items()
            }
            for symbol, future in futures.items():
                try:
                    outcomes[symbol] = future.result()
                except Exception as exc:
                    logger.exception(f"Worker failed for {symbol}")
                    outcomes[symbol] = SymbolOutcome(
                        symbol=symbol,
                        ok=False,
                        result=_hold_result(symbol, f"Worker failed: {exc}"),
                        error=str(exc),
                    )

    failed = sum(1 for o in outcomes.values() if not o.ok)
    logger.info(
        f"Analyzed {len(outcomes)} symbols in {time.time() - start:.2f}s "
        f"({failed} failed)"
    )
    return outcomes
