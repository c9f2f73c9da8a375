"""
Report Generator for the Technical Signal Agent

Renders analysis results for people and programs:
    - Text:     plain trace lines for the console
    - HTML:     trace fragment and standalone per-symbol page
    - Markdown: per-symbol documentation report
    - JSON:     complete machine-readable result

The scoring code only produces structured ``TraceEntry`` records; every
formatting decision lives here.
"""

from __future__ import annotations

import html
import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import (
    AnalysisResult,
    BacktestResult,
    SignalQuality,
    SymbolOutcome,
    TraceDirection,
    TraceEntry,
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

SIGNAL_COLORS = {
    "STRONG_BUY": "#10b981", "BUY": "#34d399",
    "HOLD": "#6b7280", "SELL": "#f87171", "STRONG_SELL": "#ef4444",
}
DIRECTION_MARKS = {
    TraceDirection.BULLISH: "+",
    TraceDirection.BEARISH: "-",
    TraceDirection.INFO: "i",
}


def _fmt_value(value: float) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "n/a"
    return f"{value:,.4g}" if abs(value) < 1e6 else f"{value:,.0f}"


def _round(value: Optional[float], digits: int = 4) -> Optional[float]:
    if value is None or math.isnan(value):
        return None
    return round(float(value), digits)


def _iso(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc).isoformat()


# =============================================================================
# TRACE FORMATTING
# =============================================================================

def format_trace_text(trace: Iterable[TraceEntry]) -> str:
    """One line per rule: ``[+] RSI bullish momentum (value 58.2) +1``."""
    lines = []
    for entry in trace:
        mark = DIRECTION_MARKS[entry.direction]
        delta = f" {entry.delta:+g}" if entry.delta else ""
        lines.append(f"[{mark}] {entry.rule} (value {_fmt_value(entry.value)}){delta}")
    return "\n".join(lines)


def format_trace_html(trace: Iterable[TraceEntry]) -> str:
    """Trace as an escaped ``<ul>`` fragment with one class per direction."""
    items = []
    for entry in trace:
        css = entry.direction.value.lower()
        delta = f" <strong>{entry.delta:+g}</strong>" if entry.delta else ""
        items.append(
            f'<li class="{css}">{html.escape(entry.rule)}: '
            f"{html.escape(_fmt_value(entry.value))}{delta}</li>"
        )
    return '<ul class="trace">\n' + "\n".join(items) + "\n</ul>"


def format_result_html(result: AnalysisResult) -> str:
    """Signal badge followed by the trace fragment."""
    label = result.classification.value
    color = SIGNAL_COLORS.get(label, "#6b7280")
    badge = (
        f'<div class="signal" style="color:{color}">'
        f"{html.escape(result.symbol)}: {label.replace('_', ' ')} "
        f"({result.confidence:.0f}%)</div>"
    )
    return badge + "\n" + format_trace_html(result.trace)


def summarize_quality(quality: Optional[SignalQuality]) -> str:
    if quality is None:
        return "Validator: not run"
    lines = [f"Validator: {quality.reason} (x{quality.confidence_multiplier:.1f})"]
    lines.extend(f"  ! {flag}" for flag in quality.red_flags)
    return "\n".join(lines)


def summarize_backtest(backtest: Optional[BacktestResult]) -> str:
    if backtest is None:
        return "Backtest: not run"
    lines = [f"Backtest: {backtest.reason}"]
    if backtest.total_signals >= 3:
        lines.append(
            f"  Success rate {backtest.success_rate:.0%} "
            f"({backtest.successful_signals}/{backtest.total_signals})"
            + (f", p={backtest.p_value:.3f}" if backtest.p_value is not None else "")
        )
        lines.extend(f"  - {ex.summary(backtest.side)}" for ex in backtest.examples)
    return "\n".join(lines)


def format_result_text(result: AnalysisResult) -> str:
    """Console block for one symbol."""
    b = result.breakdown
    header = (
        f"{result.symbol}: {result.classification.value} "
        f"({result.confidence:.0f}%) @ {result.price:.2f}"
    )
    score = (
        f"Score {b.total:+.2f} (raw {b.raw_total:+.2f}), "
        f"{result.confirmation_count} confirmations"
    )
    parts = [header, score, format_trace_text(result.trace)]
    if result.classification.side is not None:
        parts.append(summarize_quality(result.quality))
        parts.append(summarize_backtest(result.backtest))
    return "\n".join(p for p in parts if p)


# =============================================================================
# JSON REPORT
# =============================================================================

def build_json_report(result: AnalysisResult) -> Dict[str, Any]:
    """Complete result as plain JSON-compatible types."""
    b = result.breakdown
    report: Dict[str, Any] = {
        "symbol": result.symbol,
        "timestamp": result.timestamp,
        "time": _iso(result.timestamp) if result.timestamp else None,
        "price": _round(result.price),
        "signal": {
            "classification": result.classification.value,
            "confidence": round(result.confidence, 2),
            "confirmation_count": result.confirmation_count,
        },
        "score": {
            "sub_scores": {k: round(v, 4) for k, v in b.sub_scores().items()},
            "raw_total": round(b.raw_total, 4),
            "volatility_penalty": b.volatility_penalty,
            "adx_bonus": b.adx_bonus,
            "sr_penalty": b.sr_penalty,
            "total": round(b.total, 4),
            "bullish_confirmations": b.bullish_confirmations,
            "bearish_confirmations": b.bearish_confirmations,
            "squeeze": b.squeeze,
            "filtered": b.filtered,
        },
        "trace": [entry.to_dict() for entry in result.trace],
        "quality": None,
        "backtest": None,
        "trade_points": [
            {
                "index": p.index,
                "timestamp": p.timestamp,
                "signal": p.signal,
                "price": _round(p.price),
                "score": _round(p.score),
                "reason": p.reason,
            }
            for p in result.trade_points
        ],
        "levels": [
            {
                "level": _round(lv.level),
                "touches": lv.touches,
                "support": lv.is_support,
                "resistance": lv.is_resistance,
                "strength": _round(lv.strength),
            }
            for lv in result.levels
        ],
    }

    if result.quality is not None:
        q = result.quality
        report["quality"] = {
            "false_score": q.false_score,
            "confidence_multiplier": q.confidence_multiplier,
            "reason": q.reason,
            "red_flags": list(q.red_flags),
        }

    if result.backtest is not None:
        bt = result.backtest
        report["backtest"] = {
            "side": bt.side,
            "total_signals": bt.total_signals,
            "successful_signals": bt.successful_signals,
            "success_rate": round(bt.success_rate, 4),
            "confidence_multiplier": bt.confidence_multiplier,
            "p_value": _round(bt.p_value, 6),
            "reason": bt.reason,
            "examples": [
                {
                    "index": ex.index,
                    "timestamp": ex.timestamp,
                    "price": _round(ex.price),
                    "max_move": _round(ex.max_move),
                    "successful": ex.successful,
                }
                for ex in bt.examples
            ],
        }

    return report


def build_batch_report(outcomes: Mapping[str, SymbolOutcome]) -> Dict[str, Any]:
    """Batch summary plus one entry per symbol."""
    distribution: Dict[str, int] = {}
    symbols: List[Dict[str, Any]] = []
    for symbol, outcome in outcomes.items():
        entry: Dict[str, Any] = {"symbol": symbol, "ok": outcome.ok, "error": outcome.error}
        if outcome.result is not None:
            label = outcome.result.classification.value
            distribution[label] = distribution.get(label, 0) + 1
            entry["result"] = build_json_report(outcome.result)
        symbols.append(entry)

    return {
        "metadata": {
            "generated_at": datetime.now().isoformat(),
            "report_version": VERSION,
            "symbols": len(outcomes),
            "failed": sum(1 for o in outcomes.values() if not o.ok),
        },
        "distribution": distribution,
        "results": symbols,
    }


def write_json_report(report: Mapping[str, Any], output_path: Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, default=str)
    logger.info(f"Generated JSON: {output_path}")
    return output_path


# =============================================================================
# MARKDOWN REPORT
# =============================================================================

def generate_markdown_report(result: AnalysisResult, output_path: Path) -> Path:
    """Per-symbol Markdown report."""
    b = result.breakdown

    md = f"# {result.symbol} Signal Report\n\n"
    md += f"**Signal:** {result.classification.value} | **Confidence:** {result.confidence:.0f}% "
    md += f"| **Price:** {result.price:.2f}\n\n"

    md += "## Score\n\n| Family | Score |\n|--------|-------|\n"
    for name, value in b.sub_scores().items():
        md += f"| {name} | {value:+g} |\n"
    md += f"| **total** | **{b.total:+.2f}** |\n\n"

    md += "## Trace\n\n| Rule | Value | Delta | Direction |\n|------|-------|-------|-----------|\n"
    for entry in result.trace:
        md += f"| {entry.rule} | {_fmt_value(entry.value)} | {entry.delta:+g} | {entry.direction.value} |\n"

    if result.quality is not None:
        md += f"\n## False-Signal Check\n\n{result.quality.reason}\n\n"
        for flag in result.quality.red_flags:
            md += f"- {flag}\n"

    if result.backtest is not None:
        md += f"\n## Backtest\n\n{result.backtest.reason}\n\n"
        for ex in result.backtest.examples:
            md += f"- {ex.summary(result.backtest.side)}\n"

    if result.trade_points:
        md += "\n## Historical Signals\n\n| Bar | Time | Signal | Price | Score |\n"
        md += "|-----|------|--------|-------|-------|\n"
        for p in result.trade_points:
            md += f"| {p.index} | {_iso(p.timestamp)} | {p.signal} | {p.price:.2f} | {p.score:+.1f} |\n"

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(md, encoding="utf-8")
    logger.info(f"Generated Markdown: {output_path}")
    return output_path


# =============================================================================
# HTML REPORT
# =============================================================================

def generate_html_report(result: AnalysisResult, output_path: Path) -> Path:
    """Standalone page with the signal badge, score table and trace."""
    b = result.breakdown
    title = html.escape(f"{result.symbol} Signal Report")

    rows = "\n".join(
        f"<tr><td>{html.escape(name)}</td><td>{value:+g}</td></tr>"
        for name, value in b.sub_scores().items()
    )

    page = f'''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{title}</title>
    <style>
        body {{ font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; background: #0a0a0f; color: #f4f4f6; padding: 32px; }}
        .signal {{ font-size: 24px; font-weight: 700; margin-bottom: 16px; }}
        table {{ border-collapse: collapse; margin-bottom: 24px; }}
        td {{ border: 1px solid #2d2d3a; padding: 4px 12px; }}
        .bullish {{ color: #10b981; }}
        .bearish {{ color: #ef4444; }}
        .info {{ color: #a1a1aa; }}
    </style>
</head>
<body>
<h1>{title}</h1>
<p>Price {result.price:.2f} | Score {b.total:+.2f} | {result.confirmation_count} confirmations</p>
<table>
{rows}
</table>
{format_result_html(result)}
<footer>Report v{VERSION}</footer>
</body>
</html>
'''

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(page, encoding="utf-8")
    logger.info(f"Generated HTML: {output_path}")
    return output_path


def generate_all_reports(
    outcomes: Mapping[str, SymbolOutcome],
    output_dir: Path
) -> Dict[str, Optional[Path]]:
    """Batch JSON plus Markdown and HTML reports per analyzed symbol."""
    reports_dir = Path(output_dir) / "reports"
    reports_dir.mkdir(parents=True, exist_ok=True)

    outputs: Dict[str, Optional[Path]] = {}
    outputs["batch"] = write_json_report(build_batch_report(outcomes), reports_dir / "signals.json")

    for symbol, outcome in outcomes.items():
        if outcome.result is None:
            outputs[symbol] = None
            continue
        md_path = reports_dir / f"{symbol.lower()}_signal.md"
        try:
            outputs[symbol] = generate_markdown_report(outcome.result, md_path)
        except OSError as e:
            logger.error(f"Markdown failed for {symbol}: {e}")
            outputs[symbol] = None

        html_path = reports_dir / f"{symbol.lower()}_signal.html"
        try:
            outputs[f"{symbol}_html"] = generate_html_report(outcome.result, html_path)
        except OSError as e:
            logger.error(f"HTML failed for {symbol}: {e}")
            outputs[f"{symbol}_html"] = None

    return outputs
