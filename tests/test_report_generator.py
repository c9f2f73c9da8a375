"""Tests for trace formatting and report files."""

import json

import pytest

from signal_agent.models import (
    AnalysisResult,
    ScoreBreakdown,
    SignalClassification,
    SymbolOutcome,
    TraceDirection,
    TraceEntry,
)
from signal_agent.pipeline import analyze, run_symbol
from signal_agent.report_generator import (
    build_batch_report,
    build_json_report,
    format_result_html,
    format_result_text,
    format_trace_html,
    format_trace_text,
    generate_all_reports,
    generate_html_report,
    write_json_report,
)

from conftest import build_series


TRACE = (
    TraceEntry("RSI bullish momentum", 58.25, 1.0, TraceDirection.BULLISH),
    TraceEntry("MACD histogram falling", -0.5, -1.0, TraceDirection.BEARISH),
    TraceEntry("Bollinger squeeze", 0.03, 0.0, TraceDirection.INFO),
)


@pytest.fixture
def rising_result(rising_series):
    return analyze(rising_series)


class TestTraceFormatting:
    """Text and HTML renderings of the trace."""

    def test_text_lines(self):
        lines = format_trace_text(TRACE).splitlines()

        assert lines[0] == "[+] RSI bullish momentum (value 58.25) +1"
        assert lines[1] == "[-] MACD histogram falling (value -0.5) -1"
        assert lines[2] == "[i] Bollinger squeeze (value 0.03)"

    def test_html_escapes_rule_names(self):
        trace = (TraceEntry("EMA20 > EMA50 > EMA200", 10.0, 2.0, TraceDirection.BULLISH),)
        fragment = format_trace_html(trace)

        assert fragment.startswith('<ul class="trace">')
        assert "EMA20 &gt; EMA50 &gt; EMA200" in fragment
        assert '<li class="bullish">' in fragment

    def test_missing_value_rendered(self):
        trace = (TraceEntry("Analysis failed", float("nan"), 0.0, TraceDirection.INFO),)
        assert "(value n/a)" in format_trace_text(trace)

    def test_result_html_badge(self):
        result = AnalysisResult(
            symbol="A&B",
            timestamp=0,
            price=10.0,
            classification=SignalClassification.STRONG_BUY,
            confidence=82.0,
            breakdown=ScoreBreakdown(index=0, total=9.0, bullish_confirmations=3, trace=TRACE),
        )
        fragment = format_result_html(result)

        assert fragment.startswith('<div class="signal" style="color:#10b981">')
        assert "A&amp;B: STRONG BUY (82%)" in fragment
        assert '<li class="bearish">MACD histogram falling' in fragment

    def test_result_text_includes_validators(self, rising_result):
        text = format_result_text(rising_result)

        assert text.startswith("RISE: ")
        assert "Validator:" in text
        assert "Backtest:" in text


class TestJsonReport:
    """Machine-readable output."""

    def test_serializable(self, rising_result):
        report = build_json_report(rising_result)
        payload = json.loads(json.dumps(report))

        assert payload["symbol"] == "RISE"
        assert payload["signal"]["classification"] == rising_result.classification.value
        assert payload["quality"]["false_score"] == rising_result.quality.false_score
        assert payload["backtest"]["total_signals"] == rising_result.backtest.total_signals
        assert payload["trade_points"][-1]["index"] == 249
        assert set(payload["score"]["sub_scores"]) == {
            "trend", "momentum", "bollinger", "volume", "priceAction", "candle", "pressure",
        }

    def test_nan_trace_values_become_null(self):
        result = AnalysisResult(
            symbol="X",
            timestamp=0,
            price=0.0,
            classification=SignalClassification.HOLD,
            confidence=0.0,
            breakdown=ScoreBreakdown(
                index=-1,
                trace=(TraceEntry("No data available", float("nan"), 0.0, TraceDirection.INFO),),
            ),
        )
        report = build_json_report(result)

        assert report["trace"][0]["value"] is None
        assert report["time"] is None
        assert "NaN" not in json.dumps(report)

    def test_batch_distribution(self, rising_series, flat_series):
        outcomes = {
            "RISE": run_symbol("RISE", rising_series),
            "FLAT": run_symbol("FLAT", flat_series),
            "BAD": SymbolOutcome(symbol="BAD", ok=False, error="boom"),
        }
        report = build_batch_report(outcomes)

        assert report["metadata"]["symbols"] == 3
        assert report["metadata"]["failed"] == 1
        assert report["distribution"]["HOLD"] == 1
        assert sum(report["distribution"].values()) == 2
        assert [r["symbol"] for r in report["results"]] == ["RISE", "FLAT", "BAD"]
        assert "result" not in report["results"][2]


class TestFiles:
    """Writing reports to disk."""

    def test_write_json(self, tmp_path, rising_result):
        path = write_json_report(build_json_report(rising_result), tmp_path / "out" / "r.json")

        assert path.exists()
        assert json.loads(path.read_text())["symbol"] == "RISE"

    def test_generate_all(self, tmp_path, rising_series):
        short = build_series([10.0] * 20, symbol="TINY")
        outcomes = {
            "RISE": run_symbol("RISE", rising_series),
            "TINY": run_symbol("TINY", short),
        }

        outputs = generate_all_reports(outcomes, tmp_path)

        assert outputs["batch"] == tmp_path / "reports" / "signals.json"
        assert outputs["RISE"].name == "rise_signal.md"
        markdown = outputs["RISE"].read_text()
        assert markdown.startswith("# RISE Signal Report")
        assert "## Trace" in markdown
        assert "## Historical Signals" in markdown
        assert outputs["TINY"].exists()
        assert outputs["RISE_html"].name == "rise_signal.html"
        assert outputs["TINY_html"].exists()

    def test_html_page(self, tmp_path, rising_result):
        path = generate_html_report(rising_result, tmp_path / "page" / "rise.html")
        page = path.read_text()

        assert page.startswith("<!DOCTYPE html>")
        assert "<title>RISE Signal Report</title>" in page
        assert '<ul class="trace">' in page
        assert rising_result.classification.value.replace("_", " ") in page
