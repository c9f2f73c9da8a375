"""Tests for CSV loading and row sanitation."""

import pandas as pd
import pytest

from signal_agent.data_loader import load_csv, load_directory, read_symbol_list, sanitize_frame

from conftest import DAY_MS, START_MS


def _raw(rows):
    return pd.DataFrame(rows, columns=["timestamp", "open", "high", "low", "close", "volume"])


class TestSanitize:
    """Row filtering."""

    def test_drops_malformed_rows(self):
        raw = _raw([
            [START_MS, 10, 11, 9, 10.5, 1000],
            [START_MS + DAY_MS, 10, 9, 11, 10, 1000],           # high < low
            [START_MS + 2 * DAY_MS, 10, 11, 9, None, 1000],     # missing close
            [START_MS + 3 * DAY_MS, -1, 11, 9, 10, 1000],       # non-positive open
            [START_MS + 4 * DAY_MS, 10, 10.2, 9.5, 10.8, 1000],  # close above high
            [START_MS + 5 * DAY_MS, 10, 11, 9, 10, -5],         # negative volume
            [START_MS + 6 * DAY_MS, 10, 11, 9, 10, 2000],
        ])

        frame, dropped = sanitize_frame(raw, "ABC")

        assert dropped == 5
        assert frame["Timestamp"].tolist() == [START_MS, START_MS + 6 * DAY_MS]
        assert frame.attrs["symbol"] == "ABC"

    def test_sorts_and_deduplicates(self):
        raw = _raw([
            [START_MS + DAY_MS, 10, 11, 9, 10, 1000],
            [START_MS, 10, 11, 9, 10, 1000],
            [START_MS + DAY_MS, 10, 12, 9, 11, 3000],
        ])

        frame, dropped = sanitize_frame(raw, "ABC")

        assert dropped == 1
        assert frame["Timestamp"].tolist() == [START_MS, START_MS + DAY_MS]
        assert frame["Close"].iloc[-1] == 11

    def test_parses_date_strings(self):
        raw = _raw([
            ["2023-01-02", 10, 11, 9, 10, 1000],
            ["2023-01-03", 10, 11, 9, 10, 1000],
            ["not a date", 10, 11, 9, 10, 1000],
        ])

        frame, dropped = sanitize_frame(raw, "ABC")

        assert dropped == 1
        assert frame["Timestamp"].tolist() == [START_MS, START_MS + DAY_MS]

    def test_column_names_are_case_insensitive(self):
        raw = pd.DataFrame({
            "Timestamp": [START_MS], "Open": [1.0], "HIGH": [1.0],
            "low": [1.0], " Close ": [1.0], "Volume": [0],
        })
        frame, dropped = sanitize_frame(raw, "ABC")

        assert dropped == 0
        assert len(frame) == 1

    def test_missing_column(self):
        with pytest.raises(ValueError, match="Missing required columns"):
            sanitize_frame(pd.DataFrame({"timestamp": [1], "close": [1.0]}), "ABC")


class TestFiles:
    """CSV files and symbol lists."""

    def _write(self, path, closes):
        rows = [
            f"{START_MS + i * DAY_MS},{c},{c + 1},{c - 1},{c},1000"
            for i, c in enumerate(closes)
        ]
        path.write_text("timestamp,open,high,low,close,volume\n" + "\n".join(rows) + "\n")

    def test_load_csv(self, tmp_path):
        path = tmp_path / "thyao.csv"
        self._write(path, [10.0, 11.0, 12.0])

        series = load_csv(path)

        assert len(series) == 3
        assert series[0].symbol == "THYAO"
        assert series[0].timestamp == START_MS
        assert series[-1].close == 12.0
        assert series[-1].volume == 1000

    def test_load_directory_filters_symbols(self, tmp_path):
        for name in ("AAA", "BBB", "CCC"):
            self._write(tmp_path / f"{name}.csv", [5.0, 6.0])
        (tmp_path / "BROKEN.csv").write_text("foo,bar\n1,2\n")

        everything = load_directory(tmp_path)
        subset = load_directory(tmp_path, ["bbb", " aaa ", "ZZZ"])

        assert list(everything) == ["AAA", "BBB", "CCC"]
        assert list(subset) == ["AAA", "BBB"]

    def test_read_symbol_list(self, tmp_path):
        path = tmp_path / "symbols.txt"
        path.write_text("thyao\n\n# banks\nGARAN  # inline\n")

        assert read_symbol_list(path) == ["THYAO", "GARAN"]
