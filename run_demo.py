#!/usr/bin/env python3
"""
Quantitative Analysis Engine - Demo Runner

Runs the complete analysis for one instrument:
    Phase 1: Market data (Yahoo Finance download or local CSV)
    Phase 2: Analysis (indicators, regime, signals, risk, valuation,
             recommendation)
    Phase 3: Optional rule-strategy backtest
    Phase 4: Reports (text to stdout, JSON and text files)

EXECUTION
    python run_demo.py
    python run_demo.py --symbol MSFT --period 2y
    python run_demo.py --csv data/aapl.csv --symbol AAPL --backtest rsi

OUTPUT ARTIFACTS
    outputs/
        {symbol}_analysis.json      Full analysis payload
        {symbol}_analysis.txt       Text summary

Version: 1.0.0
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from quant_engine.analysis import AnalysisResult, run_analysis
from quant_engine.backtest_engine import (
    BacktestResult,
    BacktestStrategy,
    format_backtest_report,
    run_backtest,
)
from quant_engine.config import DEFAULT_CONFIG, ENGINE_VERSION, AnalysisConfig
from quant_engine.data_collector import DataAcquisition, load_csv
from quant_engine.fundamentals import FundamentalsRegistry
from quant_engine.report_generator import (
    format_analysis_report,
    generate_json_report,
    generate_text_report,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_SYMBOL: str = "AAPL"
DEFAULT_PERIOD: str = "1y"
DEFAULT_INTERVAL: str = "1d"
OUTPUT_DIR = Path("outputs")


def print_section_header(title: str, char: str = "═") -> None:
    """Print a formatted section header."""
    width = 79
    print()
    print(char * width)
    print(f"  {title}")
    print(char * width)
    print()


# =============================================================================
# PHASES
# =============================================================================

def run_phase1(
    symbol: str,
    period: str,
    interval: str,
    csv_path: Optional[Path] = None
) -> Optional[pd.DataFrame]:
    """Acquire bars from the CSV when given, otherwise from Yahoo Finance."""
    print_section_header("PHASE 1: MARKET DATA")
    try:
        if csv_path is not None:
            bars = load_csv(csv_path)
        else:
            bars = DataAcquisition().fetch_ohlcv(symbol, period=period, interval=interval)
        logger.info(f"Bars: {len(bars):,} ({bars.index[0]} to {bars.index[-1]})")
        return bars

    except ImportError as e:
        logger.error(f"Market data library not available: {e}")
        logger.error("Install yfinance or pass --csv")
        return None

    except Exception as e:
        logger.error(f"Phase 1 execution failed: {e}")
        return None


def run_phase2(symbol: str, bars: pd.DataFrame, config: AnalysisConfig) -> Optional[AnalysisResult]:
    """Run the analysis pipeline."""
    print_section_header("PHASE 2: ANALYSIS")
    try:
        result = run_analysis(symbol, bars, config)
        if result.warnings:
            logger.info(f"Completed with {len(result.warnings)} degraded stage(s)")
        return result

    except ValueError as e:
        logger.error(f"Phase 2 execution failed: {e}")
        return None


def run_phase3(
    symbol: str,
    result: AnalysisResult,
    strategy: str,
    capital: float,
    commission: float
) -> Optional[BacktestResult]:
    """Backtest one rule strategy on the enriched series."""
    print_section_header("PHASE 3: BACKTEST")
    try:
        backtest = run_backtest(
            result.data,
            strategy,
            initial_capital=capital,
            commission=commission,
            symbol=symbol,
        )
        print(format_backtest_report(backtest))
        return backtest

    except ValueError as e:
        logger.error(f"Phase 3 execution failed: {e}")
        return None


def run_phase4(
    symbol: str,
    result: AnalysisResult,
    backtest: Optional[BacktestResult],
    output_dir: Path
) -> None:
    """Print the text report and write the report files."""
    print_section_header("PHASE 4: REPORTS")
    print(format_analysis_report(result))

    stem = (symbol or "unknown").lower()
    try:
        json_path = generate_json_report(result, output_dir / f"{stem}_analysis.json", backtest)
        text_path = generate_text_report(result, output_dir / f"{stem}_analysis.txt")
    except OSError as e:
        logger.error(f"Could not write reports: {e}")
        return

    print(f"\n  JSON: {json_path}")
    print(f"  Text: {text_path}")


# =============================================================================
# MAIN
# =============================================================================

def build_config(args: argparse.Namespace) -> AnalysisConfig:
    config = DEFAULT_CONFIG
    if args.risk_free_rate is not None:
        config = replace(config, risk=replace(config.risk, risk_free_rate=args.risk_free_rate))
    if args.fundamentals:
        config = replace(config, fundamentals_provider=args.fundamentals)
    return config


def main() -> int:
    """
    Main entry point for the demo runner.

    Returns
    -------
    int
        Exit code (0 for success, 1 for failure)
    """
    start_time = time.time()

    parser = argparse.ArgumentParser(
        description="Quantitative Analysis Engine - Demo Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_demo.py                                  # Analyze AAPL (default)
  python run_demo.py --symbol MSFT --period 2y
  python run_demo.py --csv prices.csv --symbol XYZ    # Offline run
  python run_demo.py --symbol NVDA --backtest macd
        """
    )

    parser.add_argument(
        "--symbol", "-s",
        type=str,
        default=DEFAULT_SYMBOL,
        help=f"Target security symbol (default: {DEFAULT_SYMBOL})"
    )
    parser.add_argument(
        "--period", "-p",
        type=str,
        default=DEFAULT_PERIOD,
        help=f"Lookback period, e.g. 6mo, 1y, 5y (default: {DEFAULT_PERIOD})"
    )
    parser.add_argument(
        "--interval", "-i",
        type=str,
        default=DEFAULT_INTERVAL,
        help=f"Bar interval, e.g. 1d, 1wk (default: {DEFAULT_INTERVAL})"
    )
    parser.add_argument(
        "--csv",
        type=Path,
        default=None,
        help="Read OHLCV bars from a CSV file instead of downloading"
    )
    parser.add_argument(
        "--output-dir", "-o",
        type=Path,
        default=OUTPUT_DIR,
        help=f"Directory for report files (default: {OUTPUT_DIR})"
    )
    parser.add_argument(
        "--backtest", "-b",
        type=str,
        choices=[s.value for s in BacktestStrategy],
        default=None,
        help="Also backtest a rule strategy"
    )
    parser.add_argument(
        "--capital",
        type=float,
        default=100_000.0,
        help="Backtest starting capital (default: 100000)"
    )
    parser.add_argument(
        "--commission",
        type=float,
        default=0.0,
        help="Backtest commission per fill (default: 0)"
    )
    parser.add_argument(
        "--risk-free-rate",
        type=float,
        default=None,
        help=f"Annual risk-free rate (default: {DEFAULT_CONFIG.risk.risk_free_rate})"
    )
    parser.add_argument(
        "--fundamentals",
        type=str,
        choices=FundamentalsRegistry.list_available(),
        default=None,
        help=f"Fundamentals provider (default: {DEFAULT_CONFIG.fundamentals_provider})"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {ENGINE_VERSION}"
    )

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="  %(asctime)s │ %(levelname)s │ %(message)s",
        datefmt="%H:%M:%S"
    )

    print(f"  Execution Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"  Target Security:   {args.symbol}")
    print(f"  Source:            {args.csv or f'Yahoo Finance ({args.period}, {args.interval})'}")
    print(f"  Version:           {ENGINE_VERSION}")

    config = build_config(args)

    bars = run_phase1(args.symbol, args.period, args.interval, args.csv)
    if bars is None:
        return 1

    result = run_phase2(args.symbol, bars, config)
    if result is None:
        return 1

    backtest = None
    if args.backtest:
        backtest = run_phase3(args.symbol, result, args.backtest, args.capital, args.commission)

    run_phase4(args.symbol, result, backtest, args.output_dir)

    logger.info(f"Completed in {time.time() - start_time:.1f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
