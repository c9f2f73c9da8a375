"""
Historical Signal Scanner

Replays the per-bar scorer over the whole series to produce the BUY/SELL
markers drawn on a price chart.

The replay uses the trend, momentum, volume and price-action families only
(candle, Bollinger, pressure and S/R are switched off), with the same gates,
adjustments and classification thresholds as the live engine. Markers are:

    - emitted for bars 60 .. n-2 (the last bar belongs to the live signal)
    - spaced at least 5 bars apart
    - unique per calendar date in the exchange timezone; when two land on
      the same date the one with the larger |score| wins
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import DEFAULT_CONFIG, SCANNER, AnalysisConfig
from .models import SignalClassification, TradePoint
from .scoring_engine import classify, score_at
from .technical_indicators import IndicatorBundle

# Module-level logger
logger = logging.getLogger(__name__)


def _calendar_dates(timestamps: np.ndarray, timezone: str = SCANNER.timezone) -> np.ndarray:
    """Epoch-ms timestamps -> local calendar dates."""
    stamps = pd.to_datetime(np.asarray(timestamps, dtype=np.int64), unit="ms", utc=True)
    return np.asarray(stamps.tz_convert(timezone).date)


class HistoricalSignalScanner:
    """
    Replays the scorer over history.

    Usage
    -----
    >>> scanner = HistoricalSignalScanner()
    >>> points = scanner.scan(bundle)
    >>> points = scanner.merge_current_signal(points, bundle, evaluation.classification)
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def scan(self, bundle: IndicatorBundle) -> List[TradePoint]:
        """
        Chronological BUY/SELL markers for bars ``start_index .. n-2``.

        Returns
        -------
        List[TradePoint]
        """
        params = self.config.scanner
        n = len(bundle)
        if n - 1 <= params.start_index:
            return []

        dates = _calendar_dates(bundle.timestamps, params.timezone)
        points: List[TradePoint] = []

        for i in range(params.start_index, n - 1):
            breakdown = score_at(
                i, bundle, self.config,
                include_candle=False,
                include_sr=False,
                include_bollinger=False,
                include_pressure=False,
            )
            if breakdown.filtered:
                continue

            classification = classify(breakdown, self.config.scoring)
            if classification.side is None:
                continue

            point = TradePoint(
                index=i,
                timestamp=int(bundle.timestamps[i]),
                signal=classification.side,
                price=float(bundle.close[i]),
                score=float(breakdown.total),
                reason=(
                    f"{classification.value.replace('_', ' ')}: score {breakdown.total:+.1f}, "
                    f"{breakdown.confirmation_count} confirmations"
                ),
            )

            if points and dates[points[-1].index] == dates[i]:
                if abs(point.score) > abs(points[-1].score):
                    points[-1] = point
                continue

            if points and i - points[-1].index < params.min_spacing_bars:
                continue

            points.append(point)

        logger.debug(f"Replay produced {len(points)} trade points over {n} bars")
        return points

    def merge_current_signal(
        self,
        points: Sequence[TradePoint],
        bundle: IndicatorBundle,
        classification: SignalClassification,
        score: float = 0.0
    ) -> List[TradePoint]:
        """
        Append the live signal for the last bar.

        The live point is added only for a directional classification whose
        date has no historical marker yet.
        """
        merged = list(points)
        n = len(bundle)
        side = classification.side
        if n == 0 or side is None:
            return merged

        last = n - 1
        if merged:
            previous, current = _calendar_dates(
                bundle.timestamps[[merged[-1].index, last]], self.config.scanner.timezone
            )
            if previous == current:
                return merged

        merged.append(TradePoint(
            index=last,
            timestamp=int(bundle.timestamps[last]),
            signal=side,
            price=float(bundle.close[last]),
            score=float(score),
            reason=f"Latest: {classification.value.replace('_', ' ')}",
        ))
        return merged
