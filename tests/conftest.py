"""Shared fixtures: synthetic OHLCV series."""

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
import pytest

from signal_agent.models import PricePoint, series_to_frame
from signal_agent.technical_indicators import TechnicalIndicatorEngine

DAY_MS = 86_400_000
HOUR_MS = 3_600_000
START_MS = int(pd.Timestamp("2023-01-02", tz="UTC").value // 1_000_000)


def build_series(
    closes: Sequence[float],
    volumes: Optional[Sequence[float]] = None,
    opens: Optional[Sequence[float]] = None,
    highs: Optional[Sequence[float]] = None,
    lows: Optional[Sequence[float]] = None,
    symbol: str = "TEST",
    start_ms: int = START_MS,
    step_ms: int = DAY_MS,
) -> List[PricePoint]:
    """PricePoints from arrays; OHLC default to the close."""
    n = len(closes)
    volumes = volumes if volumes is not None else [1_000_000] * n
    opens = opens if opens is not None else closes
    highs = highs if highs is not None else [max(o, c) for o, c in zip(opens, closes)]
    lows = lows if lows is not None else [min(o, c) for o, c in zip(opens, closes)]
    return [
        PricePoint(
            symbol=symbol,
            timestamp=start_ms + i * step_ms,
            open=float(opens[i]),
            high=float(highs[i]),
            low=float(lows[i]),
            close=float(closes[i]),
            volume=int(volumes[i]),
        )
        for i in range(n)
    ]


def rising(n: int = 250, start: float = 100.0, growth: float = 0.01,
           last_volume_ratio: float = 2.0, **kwargs) -> List[PricePoint]:
    """Strict 1%/bar uptrend; each bar opens at the prior close."""
    closes = start * (1.0 + growth) ** np.arange(n)
    opens = np.concatenate([[closes[0] / (1.0 + growth)], closes[:-1]])
    highs = closes * 1.005
    lows = opens * 0.995
    volumes = np.full(n, 1_000_000.0)
    volumes[-1] = 1_000_000.0 * last_volume_ratio
    return build_series(closes, volumes, opens, highs, lows, **kwargs)


def random_walk(n: int = 300, seed: int = 7, start: float = 50.0, **kwargs) -> List[PricePoint]:
    """Seeded geometric random walk with plausible candles."""
    rng = np.random.default_rng(seed)
    closes = start * np.exp(np.cumsum(rng.normal(0.0, 0.02, n)))
    opens = np.concatenate([[closes[0]], closes[:-1]]) * (1.0 + rng.normal(0.0, 0.003, n))
    highs = np.maximum(opens, closes) * (1.0 + rng.uniform(0.0, 0.015, n))
    lows = np.minimum(opens, closes) * (1.0 - rng.uniform(0.0, 0.015, n))
    volumes = rng.integers(200_000, 2_000_000, n)
    return build_series(closes, volumes, opens, highs, lows, **kwargs)


@pytest.fixture
def flat_series() -> List[PricePoint]:
    """200 identical bars (price is a power of two so averages stay exact)."""
    return build_series([128.0] * 200, [100_000] * 200, symbol="FLAT")


@pytest.fixture
def rising_series() -> List[PricePoint]:
    return rising(symbol="RISE")


@pytest.fixture
def walk_series() -> List[PricePoint]:
    return random_walk(symbol="WALK")


@pytest.fixture
def engine() -> TechnicalIndicatorEngine:
    return TechnicalIndicatorEngine()


@pytest.fixture
def rising_bundle(rising_series, engine):
    return engine.process(series_to_frame(rising_series))


@pytest.fixture
def walk_bundle(walk_series, engine):
    return engine.process(series_to_frame(walk_series))
