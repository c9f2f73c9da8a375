"""Tests for the historical signal replay."""

import pandas as pd
import pytest

from signal_agent.models import SignalClassification, TradePoint, series_to_frame
from signal_agent.signal_scanner import HistoricalSignalScanner, _calendar_dates
from signal_agent.technical_indicators import TechnicalIndicatorEngine

from conftest import HOUR_MS, rising


@pytest.fixture
def scanner():
    return HistoricalSignalScanner()


@pytest.fixture
def hourly_bundle(engine):
    return engine.process(series_to_frame(rising(250, step_ms=HOUR_MS)))


def _local_dates(points):
    stamps = pd.to_datetime([p.timestamp for p in points], unit="ms", utc=True)
    return list(stamps.tz_convert("Europe/Istanbul").date)


class TestScan:
    """Replay over the full series."""

    def test_uptrend_markers(self, scanner, rising_bundle):
        points = scanner.scan(rising_bundle)

        assert [p.index for p in points] == list(range(60, 249, 5))
        assert all(p.signal == "BUY" for p in points)
        assert all(p.score > 0 for p in points)
        assert points[0].reason.startswith("BUY: score +")

    def test_replay_is_deterministic(self, scanner, walk_bundle):
        first = scanner.scan(walk_bundle)
        second = HistoricalSignalScanner().scan(walk_bundle)

        assert first == second

    def test_spacing_and_range(self, scanner, walk_bundle):
        points = scanner.scan(walk_bundle)
        indices = [p.index for p in points]

        assert all(60 <= i <= len(walk_bundle) - 2 for i in indices)
        assert all(b - a >= 5 for a, b in zip(indices, indices[1:]))

    def test_one_marker_per_local_date(self, scanner, hourly_bundle):
        points = scanner.scan(hourly_bundle)
        dates = _local_dates(points)

        assert len(points) >= 2
        assert len(set(dates)) == len(dates)
        assert all(b.index - a.index >= 5 for a, b in zip(points, points[1:]))

    def test_short_series_has_no_markers(self, scanner, engine):
        bundle = engine.process(series_to_frame(rising(61)))
        assert scanner.scan(bundle) == []

    def test_dates_default_to_istanbul(self):
        late_evening_utc = int(pd.Timestamp("2023-01-02 22:00", tz="UTC").value // 1_000_000)

        assert str(_calendar_dates([late_evening_utc])[0]) == "2023-01-03"
        assert str(_calendar_dates([late_evening_utc], "UTC")[0]) == "2023-01-02"


class TestMergeCurrentSignal:
    """Appending the live signal."""

    def test_hold_is_not_appended(self, scanner, rising_bundle):
        points = scanner.scan(rising_bundle)
        merged = scanner.merge_current_signal(points, rising_bundle, SignalClassification.HOLD)

        assert merged == points

    def test_live_signal_appended_on_new_date(self, scanner, rising_bundle):
        points = scanner.scan(rising_bundle)
        merged = scanner.merge_current_signal(
            points, rising_bundle, SignalClassification.STRONG_BUY, score=9.0
        )

        assert len(merged) == len(points) + 1
        last = merged[-1]
        assert last.index == len(rising_bundle) - 1
        assert last.signal == "BUY"
        assert last.score == 9.0
        assert last.reason == "Latest: STRONG BUY"

    def test_same_date_keeps_history(self, scanner, hourly_bundle):
        n = len(hourly_bundle)
        existing = [TradePoint(
            index=n - 2,
            timestamp=int(hourly_bundle.timestamps[n - 2]),
            signal="BUY",
            price=float(hourly_bundle.close[n - 2]),
            score=5.0,
            reason="BUY: score +5.0, 2 confirmations",
        )]

        merged = scanner.merge_current_signal(existing, hourly_bundle, SignalClassification.SELL)

        assert merged == existing

    def test_empty_history(self, scanner, rising_bundle):
        merged = scanner.merge_current_signal([], rising_bundle, SignalClassification.SELL)

        assert len(merged) == 1
        assert merged[0].signal == "SELL"
