"""Tests for the shared value types."""

import numpy as np
import pytest

from signal_agent.models import (
    CandlePattern,
    ScoreBreakdown,
    SignalClassification,
    TraceDirection,
    TraceEntry,
    frame_timestamps,
    frame_to_series,
    series_to_frame,
)

from conftest import DAY_MS, START_MS, build_series


class TestClassification:
    """Sides and directions."""

    @pytest.mark.parametrize("cls,side,direction", [
        (SignalClassification.STRONG_BUY, "BUY", 1),
        (SignalClassification.BUY, "BUY", 1),
        (SignalClassification.HOLD, None, 0),
        (SignalClassification.SELL, "SELL", -1),
        (SignalClassification.STRONG_SELL, "SELL", -1),
    ])
    def test_side(self, cls, side, direction):
        assert cls.side == side
        assert cls.direction == direction

    def test_trace_direction_from_delta(self):
        assert TraceDirection.from_delta(2.0) is TraceDirection.BULLISH
        assert TraceDirection.from_delta(-0.5) is TraceDirection.BEARISH
        assert TraceDirection.from_delta(0.0) is TraceDirection.INFO


class TestSeriesConversion:
    """PricePoint sequence <-> DataFrame."""

    def test_frame_layout(self):
        series = build_series([1.0, 2.0, 3.0], symbol="ABC")
        frame = series_to_frame(series)

        assert list(frame.columns) == ["Open", "High", "Low", "Close", "Volume", "Timestamp"]
        assert frame.attrs["symbol"] == "ABC"
        assert str(frame.index.tz) == "UTC"
        assert frame_to_series(frame) == series

    def test_mixed_symbols_rejected(self):
        mixed = build_series([1.0], symbol="A") + build_series([1.0], symbol="B")
        with pytest.raises(ValueError, match="mixes symbols"):
            series_to_frame(mixed)

    def test_timestamps_from_column(self):
        frame = series_to_frame(build_series([1.0, 2.0, 3.0]))

        assert frame_timestamps(frame).tolist() == [START_MS + k * DAY_MS for k in range(3)]

    def test_timestamps_from_datetime_index(self):
        frame = series_to_frame(build_series([1.0, 2.0, 3.0])).drop(columns=["Timestamp"])
        frame.index = frame.index.tz_localize(None)

        assert frame_timestamps(frame).tolist() == [START_MS + k * DAY_MS for k in range(3)]

    def test_range_index_becomes_daily_bars(self):
        frame = series_to_frame(build_series([1.0, 2.0, 3.0]))
        frame = frame.drop(columns=["Timestamp"]).reset_index(drop=True)

        assert frame_timestamps(frame).tolist() == [0, DAY_MS, 2 * DAY_MS]
        assert [p.timestamp for p in frame_to_series(frame)] == [0, DAY_MS, 2 * DAY_MS]


class TestBreakdown:
    """Confirmation counting."""

    def test_confirmations_follow_sign(self):
        assert ScoreBreakdown(index=0, total=3.0, bullish_confirmations=2,
                              bearish_confirmations=1).confirmation_count == 2
        assert ScoreBreakdown(index=0, total=-3.0, bullish_confirmations=2,
                              bearish_confirmations=1).confirmation_count == 1
        assert ScoreBreakdown(index=0, bullish_confirmations=2).confirmation_count == 0

    def test_trace_entry_dict(self):
        entry = TraceEntry("RSI", np.nan, 0.0, TraceDirection.INFO)
        assert entry.to_dict() == {"rule": "RSI", "value": None, "delta": 0.0, "direction": "INFO"}

    def test_candle_active(self):
        assert CandlePattern(doji=True, hammer=True).active == ["doji", "hammer"]
