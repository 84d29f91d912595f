#!/usr/bin/env python3
"""
Report Generator for the Quantitative Analysis Engine

Writes an AnalysisResult in two formats:
    - JSON: Machine-readable payload (AnalysisResult.to_dict plus metadata)
    - Text: Plain-text summary for terminals and logs

Version: 1.0.0
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from quant_engine.analysis import AnalysisResult
from quant_engine.backtest_engine import BacktestResult

logger = logging.getLogger(__name__)


# =============================================================================
# FORMATTING HELPERS
# =============================================================================

def _fmt(value: Optional[float], spec: str = ".2f", suffix: str = "") -> str:
    if value is None or (isinstance(value, float) and not math.isfinite(value)):
        return "n/a"
    return f"{value:{spec}}{suffix}"


def _money(value: Optional[float]) -> str:
    return "n/a" if value is None else f"${value:,.2f}"


# =============================================================================
# TEXT REPORT
# =============================================================================

def format_analysis_report(result: AnalysisResult) -> str:
    """
    Format an analysis as a human-readable text report.

    Args:
        result: AnalysisResult from run_analysis

    Returns:
        Formatted string report
    """
    rec = result.recommendation
    regime = result.regime
    risk = result.risk
    stats = result.stat_signals
    val = result.valuation
    models = result.valuation_models

    lines = [
        "=" * 70,
        "QUANTITATIVE ANALYSIS REPORT",
        "=" * 70,
        f"Ticker: {result.ticker or 'UNKNOWN'}",
        f"Bars: {len(result.data):,}",
        f"Current Price: {_money(result.current_price)}",
        "",
        "-" * 70,
        "RECOMMENDATION",
        "-" * 70,
        f"Action:     {rec.action.value}",
        f"Confidence: {rec.confidence:.0%}",
        f"Score:      {rec.score:+.3f}",
        f"Target:     {_money(result.target)}",
        f"Stop Loss:  {_money(result.stop_loss)}",
        (
            f"Components: technical={rec.components.technical:+.2f} "
            f"statistical={rec.components.statistical:+.2f} "
            f"regime={rec.components.regime:+.2f} "
            f"valuation={rec.components.valuation:+.2f}"
        ),
        "",
        "-" * 70,
        "TECHNICAL SIGNALS",
        "-" * 70,
    ]

    if result.tech_signals:
        for name, signal in result.tech_signals.items():
            lines.append(f"  {name:<10} {signal.value}")
    else:
        lines.append("  (insufficient history)")

    lines.extend([
        "",
        "-" * 70,
        "MARKET REGIME",
        "-" * 70,
        f"Regime:      {regime.overall.value}",
        f"Trend:       {regime.trend.direction.value} "
        f"(strength {regime.trend.strength:.1f}, slope {regime.trend.slope:+.3f}%/bar, "
        f"R² {regime.trend.r_squared:.2f})",
        f"Volatility:  {regime.volatility.classification.value} "
        f"(current {regime.volatility.current:.1f}%, ratio {regime.volatility.ratio:.2f})",
        f"Hurst:       {regime.hurst:.3f}",
        f"Strategy:    {regime.strategy.strategy}",
        f"  Tactics:   {', '.join(regime.strategy.tactics)}",
        f"  Avoid:     {', '.join(regime.strategy.avoid)}",
        "",
        "-" * 70,
        "STATISTICAL SIGNALS",
        "-" * 70,
        f"Z-Score:     {stats.zscore.signal.value}",
        f"Momentum:    {stats.momentum.signal.value}",
        f"Volume:      {stats.volume.signal.value}",
        f"Aggregate:   {stats.aggregate.signal.value} "
        f"(score {stats.aggregate.score:+.2f}, confidence {stats.aggregate.confidence:.0%})",
        "",
        "-" * 70,
        "RISK",
        "-" * 70,
        f"Volatility:    {risk.volatility:.2f}%",
        f"Sharpe:        {risk.sharpe:.3f}",
        f"Sortino:       {risk.sortino:.3f}",
        f"Max Drawdown:  {risk.max_drawdown:.2f}%",
        f"VaR (95%):     {risk.var95:.2f}%",
        f"CVaR (95%):    {risk.cvar95:.2f}%",
        f"Risk Level:    {risk.risk_level.value}",
        "",
        "-" * 70,
        "VALUATION",
        "-" * 70,
        f"Stretch:       {val.stretch:.1f} ({val.verdict.value})",
        f"Fair Value:    {_money(val.fair_value)}",
        f"DCF:           {_money(models.dcf)}",
        f"DDM:           {_money(models.ddm)}",
        f"Multiples:     {_money(models.multiples)}",
        f"Anchor:        {_money(models.anchor)}",
        f"Upside:        {_fmt(None if models.upside is None else models.upside * 100, '+.1f', '%')}",
        f"Signal:        {models.signal.value}",
    ])

    if result.fundamentals is not None:
        lines.append(f"Fundamentals:  {result.fundamentals.source} ({result.fundamentals.currency})")
    for issue in models.issues:
        lines.append(f"  ! {issue}")

    if result.warnings:
        lines.extend(["", "-" * 70, "WARNINGS", "-" * 70])
        lines.extend(f"  - {w}" for w in result.warnings)

    lines.append("=" * 70)
    return "\n".join(lines)


# =============================================================================
# FILE OUTPUT
# =============================================================================

def build_json_payload(
    result: AnalysisResult,
    backtest: Optional[BacktestResult] = None,
    include_series: bool = True
) -> Dict[str, Any]:
    """Report payload: metadata, the analysis and an optional backtest."""
    analysis = result.to_dict()
    if not include_series:
        analysis.pop("data", None)

    payload: Dict[str, Any] = {
        "metadata": {
            "ticker": result.ticker,
            "generated_at": datetime.now().isoformat(),
            "engine_version": result.engine_version,
            "bars": len(result.data),
        },
        "analysis": analysis,
    }
    if backtest is not None:
        payload["backtest"] = backtest.to_dict()
    return payload


def generate_json_report(
    result: AnalysisResult,
    output_path: Union[str, Path],
    backtest: Optional[BacktestResult] = None,
    include_series: bool = True
) -> Path:
    """Write the JSON report and return its path."""
    output_path = Path(output_path)
    payload = build_json_payload(result, backtest, include_series)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, default=str)
    logger.info(f"Generated JSON: {output_path}")
    return output_path


def generate_text_report(result: AnalysisResult, output_path: Union[str, Path]) -> Path:
    """Write the plain-text report and return its path."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(format_analysis_report(result) + "\n", encoding="utf-8")
    logger.info(f"Generated text report: {output_path}")
    return output_path
