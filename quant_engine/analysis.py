"""
Quantitative Analysis Pipeline

Runs every engine stage over one instrument's bar history and assembles the
immutable AnalysisResult:

    Stage 1 - NORMALIZE     Validate bars, drop bars without a Close
    Stage 2 - RETURNS       Simple / log returns between valid closes
    Stage 3 - INDICATORS    SMA, RSI, MACD, Bollinger, ATR, Stochastic, ADX
    Stage 4 - REGIME        Trend, volatility, Hurst, overall label
    Stage 5 - SIGNALS       Z-score, momentum, volume and their aggregate
    Stage 6 - RISK          Volatility, Sharpe, Sortino, drawdown, VaR/CVaR
    Stage 7 - VALUATION     Price stretch, fundamentals, DCF / DDM / multiples
    Stage 8 - RECOMMEND     Action, confidence, target and stop

Malformed input raises from Stage 1. After that, a failing stage logs a
warning, records it in ``AnalysisResult.warnings`` and is replaced by a
neutral default, so a recommendation is always produced.

Usage:
    result = run_analysis("AAPL", bars)
    print(result.recommendation.action.value)
    payload = result.to_dict()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

import numpy as np
import pandas as pd

from quant_engine.config import DEFAULT_CONFIG, ENGINE_VERSION, AnalysisConfig
from quant_engine.data_collector import (
    BarsLike,
    InsufficientDataError,
    build_return_series,
    normalize_bars,
)
from quant_engine.fundamentals import Fundamentals, get_fundamentals_provider
from quant_engine.recommendation import Recommendation, compute_levels, generate_recommendation
from quant_engine.regime_detector import RegimeAnalysis, detect_regime, neutral_regime
from quant_engine.risk_analytics import ZERO_RISK, RiskMetrics, compute_risk_metrics
from quant_engine.statistical_signals import (
    StatisticalSignals,
    generate_statistical_signals,
    neutral_signals,
)
from quant_engine.technical_indicators import (
    TechnicalSignal,
    compute_indicator_frame,
    generate_technical_signals,
    hurst_exponent,
)
from quant_engine.utils import optional_float, to_jsonable
from quant_engine.valuation import (
    EMPTY_MODELS,
    ValuationModels,
    ValuationStretch,
    build_valuation_assumptions,
    compute_stretch,
    neutral_stretch,
    run_valuation_models,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

INDICATOR_COLUMNS: Tuple[str, ...] = (
    "rsi", "macd", "macd_signal", "macd_histogram",
    "bb_upper", "bb_middle", "bb_lower", "atr",
    "stoch_k", "stoch_d", "adx", "plus_di", "minus_di",
)


# =============================================================================
# RESULT
# =============================================================================

@dataclass(frozen=True)
class AnalysisResult:
    """
    Complete analysis of one instrument.

    ``data`` is the enriched series (OHLCV, returns and every indicator
    column), private to this result. Unavailable values are NaN here and
    None in ``to_dict()``.
    """
    ticker: str
    data: pd.DataFrame
    current_price: float
    recommendation: Recommendation
    tech_signals: Dict[str, TechnicalSignal]
    regime: RegimeAnalysis
    stat_signals: StatisticalSignals
    risk: RiskMetrics
    target: Optional[float]
    stop_loss: Optional[float]
    valuation: ValuationStretch
    fundamentals: Optional[Fundamentals]
    valuation_models: ValuationModels
    warnings: Tuple[str, ...] = ()
    engine_version: str = ENGINE_VERSION

    @property
    def last_bar(self) -> pd.Series:
        return self.data.iloc[-1]

    def to_dict(self) -> Dict[str, Any]:
        """Plain JSON-serializable representation."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "data":
                value = value.rename_axis("timestamp")
            out[f.name] = to_jsonable(value)
        return out


# =============================================================================
# PIPELINE
# =============================================================================

def _run_stage(name: str, func: Callable[[], T], fallback: Callable[[], T], warnings: List[str]) -> T:
    """Run one stage; on failure log, record and return the neutral fallback."""
    try:
        return func()
    except Exception as e:
        message = f"{name} stage failed: {e}"
        logger.warning(message)
        warnings.append(message)
        return fallback()


def _prepare_bars(bars: BarsLike, warnings: List[str]) -> pd.DataFrame:
    df = normalize_bars(bars)

    missing_close = df["Close"].isna()
    if missing_close.any():
        message = f"Dropped {int(missing_close.sum())} bar(s) without a Close"
        logger.warning(message)
        warnings.append(message)
        df = df.loc[~missing_close].copy()

    if len(df) == 0:
        raise InsufficientDataError("No bars with a valid Close")

    for column in ("Open", "High", "Low"):
        df[column] = df[column].fillna(df["Close"])

    return df


def _empty_indicators(df: pd.DataFrame, config: AnalysisConfig) -> pd.DataFrame:
    columns = [f"sma_{w}" for w in config.indicators.sma_windows] + list(INDICATOR_COLUMNS)
    return pd.DataFrame(np.nan, index=df.index, columns=columns)


def run_analysis(
    ticker: str,
    bars: BarsLike,
    config: AnalysisConfig = DEFAULT_CONFIG
) -> AnalysisResult:
    """
    Analyze one instrument.

    Args:
        ticker: Instrument symbol (seeds the synthetic fundamentals)
        bars: Ascending OHLCV bars (DataFrame or iterable of bars)
        config: Engine configuration

    Returns:
        AnalysisResult

    Raises:
        InsufficientDataError: No bars, or none with a Close
        DataValidationError: Missing columns or negative volume
    """
    warnings: List[str] = []

    df = _prepare_bars(bars, warnings)
    logger.info(f"Analyzing {ticker or 'UNKNOWN'}: {len(df):,} bars")

    returns = build_return_series(df)
    indicators = _run_stage(
        "Indicators",
        lambda: compute_indicator_frame(df, config.indicators),
        lambda: _empty_indicators(df, config),
        warnings,
    )
    data = df.copy()
    for frame in (returns, indicators):
        for column in frame.columns:
            data[column] = frame[column].to_numpy()
    last = data.iloc[-1]
    price = float(last["Close"])

    tech_signals = _run_stage(
        "Technical signals",
        lambda: generate_technical_signals(last, config.indicators),
        dict,
        warnings,
    )

    hurst = _run_stage(
        "Hurst",
        lambda: hurst_exponent(data["Close"], config.indicators.hurst_max_lag),
        lambda: 0.5,
        warnings,
    )
    regime = _run_stage(
        "Regime",
        lambda: detect_regime(data, config, hurst=hurst),
        neutral_regime,
        warnings,
    )

    stat_signals = _run_stage(
        "Statistical signals",
        lambda: generate_statistical_signals(data, config.signals),
        neutral_signals,
        warnings,
    )

    risk = _run_stage(
        "Risk",
        lambda: compute_risk_metrics(data["returns"], config.risk),
        lambda: ZERO_RISK,
        warnings,
    )

    valuation = _run_stage(
        "Valuation",
        lambda: compute_stretch(data, config.valuation),
        lambda: neutral_stretch(price),
        warnings,
    )

    fundamentals = _run_stage(
        "Fundamentals",
        lambda: get_fundamentals_provider(config.fundamentals_provider).get_fundamentals(ticker, price),
        lambda: None,
        warnings,
    )

    valuation_models = _run_stage(
        "Valuation models",
        lambda: run_valuation_models(
            build_valuation_assumptions(fundamentals, price, risk, config.valuation),
            price,
            config.valuation,
        ),
        lambda: EMPTY_MODELS,
        warnings,
    )

    recommendation = generate_recommendation(
        tech_signals,
        regime.overall,
        stat_signals.aggregate.signal,
        risk.risk_level,
        valuation_models.signal,
        config.recommendation,
    )
    levels = compute_levels(
        recommendation.action,
        price,
        optional_float(last.get("atr")),
        regime.overall,
        config.recommendation,
    )

    logger.info(
        f"{ticker or 'UNKNOWN'}: {recommendation.action.value} "
        f"(score={recommendation.score:+.2f}, confidence={recommendation.confidence:.0%}, "
        f"regime={regime.overall.value})"
    )

    return AnalysisResult(
        ticker=ticker,
        data=data,
        current_price=price,
        recommendation=recommendation,
        tech_signals=tech_signals,
        regime=regime,
        stat_signals=stat_signals,
        risk=risk,
        target=levels.target,
        stop_loss=levels.stop_loss,
        valuation=valuation,
        fundamentals=fundamentals,
        valuation_models=valuation_models,
        warnings=tuple(warnings),
    )
