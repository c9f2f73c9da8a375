#!/usr/bin/env python3
"""
Technical Signal Agent - Demo Runner

Runs the multi-factor signal pipeline over a directory of OHLCV files:
    Phase 1: Load and sanitize one CSV per symbol
    Phase 2: Indicators, live scoring, false-signal check, analog backtest,
             historical replay (per symbol, optionally in parallel)
    Phase 3: Console summary and optional JSON / Markdown reports

EXECUTION
    python run_demo.py --input-dir data
    python run_demo.py --input-dir data --symbols THYAO,SISE --workers 4
    python run_demo.py --input-dir data --symbols-file stock_list.txt --output outputs
    python run_demo.py --input-dir data --config thresholds.json --log-level DEBUG

INPUT
    data/{SYMBOL}.csv   columns: timestamp,open,high,low,close,volume

OUTPUT ARTIFACTS (with --output)
    outputs/reports/signals.json          Batch result, one entry per symbol
    outputs/reports/{symbol}_signal.md    Per-symbol Markdown report
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from signal_agent.config import DEFAULT_CONFIG, AnalysisConfig
from signal_agent.data_loader import load_directory, read_symbol_list
from signal_agent.models import PricePoint, SignalClassification, SymbolOutcome
from signal_agent.pipeline import analyze_batch
from signal_agent.report_generator import format_result_text, generate_all_reports


# =============================================================================
# CONSTANTS
# =============================================================================

VERSION: str = "1.0.0"
DEFAULT_INPUT_DIR = Path("data")

BANNER = r'''
╔═══════════════════════════════════════════════════════════════════════════════╗
║                                                                               ║
║                 MULTI-FACTOR TECHNICAL SIGNAL AGENT                           ║
║                                                                               ║
║        Confluence scoring  •  False-signal checks  •  Analog backtest         ║
║                                                                               ║
╚═══════════════════════════════════════════════════════════════════════════════╝
'''

SUMMARY_LABELS = (
    (SignalClassification.STRONG_BUY, "STRONG BUY"),
    (SignalClassification.BUY, "BUY"),
    (SignalClassification.HOLD, "HOLD"),
    (SignalClassification.SELL, "SELL"),
    (SignalClassification.STRONG_SELL, "STRONG SELL"),
)


# =============================================================================
# DISPLAY COMPONENTS
# =============================================================================

def print_section_header(title: str, char: str = "═") -> None:
    """Print a formatted section header."""
    width = 79
    print()
    print(char * width)
    print(f"  {title}")
    print(char * width)
    print()


def print_subsection(title: str) -> None:
    """Print a subsection divider."""
    print()
    print(f"  {'─' * 75}")
    print(f"  {title}")
    print(f"  {'─' * 75}")


def signal_distribution(outcomes: Mapping[str, SymbolOutcome]) -> Dict[SignalClassification, int]:
    """Count analyzed symbols per classification."""
    counts = {cls: 0 for cls, _ in SUMMARY_LABELS}
    for outcome in outcomes.values():
        if outcome.result is not None:
            counts[outcome.result.classification] += 1
    return counts


def print_signal_summary(outcomes: Mapping[str, SymbolOutcome]) -> None:
    counts = signal_distribution(outcomes)
    for cls, label in SUMMARY_LABELS:
        print(f"    {label + ':':<14}{counts[cls]:>5}")
    failed = [s for s, o in outcomes.items() if not o.ok]
    print(f"    {'Total:':<14}{len(outcomes):>5}")
    if failed:
        print(f"    {'Failed:':<14}{len(failed):>5}  ({', '.join(failed)})")


# =============================================================================
# PHASES
# =============================================================================

def load_config(path: Optional[str]) -> AnalysisConfig:
    """Defaults, optionally overridden by a JSON file."""
    if not path:
        return DEFAULT_CONFIG
    with open(path, "r", encoding="utf-8") as f:
        return AnalysisConfig.from_dict(json.load(f))


def run_phase1(input_dir: Path, symbols: Optional[List[str]], logger: logging.Logger) -> Dict[str, List[PricePoint]]:
    print_section_header("PHASE 1: DATA LOADING")
    series = load_directory(input_dir, symbols)
    if not series:
        logger.error(f"No usable OHLCV files found in {input_dir}")
    for symbol, points in series.items():
        print(f"    {symbol:<10}{len(points):>6} bars")
    return series


def run_phase2(
    series: Mapping[str, List[PricePoint]],
    config: AnalysisConfig,
    workers: Optional[int]
) -> Dict[str, SymbolOutcome]:
    print_section_header("PHASE 2: SIGNAL ANALYSIS")
    outcomes = analyze_batch(series, config, max_workers=workers)
    for symbol, outcome in outcomes.items():
        print_subsection(symbol)
        if outcome.result is not None:
            for line in format_result_text(outcome.result).splitlines():
                print(f"    {line}")
        if outcome.error:
            print(f"    ERROR: {outcome.error}")
    return outcomes


# =============================================================================
# MAIN
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the demo runner.

    Returns
    -------
    int
        Exit code (0 for success, 1 for failure)
    """
    start_time = time.time()

    parser = argparse.ArgumentParser(
        description="Multi-Factor Technical Signal Agent - Demo Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_demo.py --input-dir data
  python run_demo.py --input-dir data --symbols THYAO,SISE --workers 4
  python run_demo.py --input-dir data --output outputs
        """
    )

    parser.add_argument(
        "--input-dir", "-i",
        type=Path,
        default=DEFAULT_INPUT_DIR,
        help=f"Directory of {{SYMBOL}}.csv files (default: {DEFAULT_INPUT_DIR})"
    )

    parser.add_argument(
        "--symbols", "-s",
        type=str,
        default=None,
        help="Comma-separated symbols to analyze (default: every file)"
    )

    parser.add_argument(
        "--symbols-file",
        type=Path,
        default=None,
        help="File with one symbol per line"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="JSON file overriding thresholds and flags"
    )

    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Directory for JSON and Markdown reports"
    )

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Process-pool size (default: sequential)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {VERSION}"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="  %(asctime)s │ %(levelname)s │ %(message)s",
        datefmt="%H:%M:%S"
    )
    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    symbols: Optional[List[str]] = None
    if args.symbols:
        symbols = [s for s in args.symbols.split(",") if s.strip()]
    if args.symbols_file:
        symbols = (symbols or []) + read_symbol_list(args.symbols_file)

    print(BANNER)
    print(f"  Execution Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"  Input Directory:   {args.input_dir}")
    print(f"  Symbols:           {', '.join(symbols) if symbols else 'all files'}")
    print(f"  Version:           {VERSION}")

    series = run_phase1(args.input_dir, symbols, logger)
    if not series:
        return 1

    outcomes = run_phase2(series, config, args.workers)

    print_section_header("SIGNAL SUMMARY")
    print_signal_summary(outcomes)

    if args.output:
        outputs = generate_all_reports(outcomes, args.output)
        print_subsection("GENERATED REPORTS")
        for name, path in outputs.items():
            print(f"    {name:<10}{path if path else 'Not generated'}")

    print()
    print(f"  Completed in {time.time() - start_time:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
