"""
Market Regime Classification
============================

Classifies the current market state from three measurements:

    1. Trend: OLS fit of the recent closes, normalized per bar, confirmed
       by the SMA20/SMA50 alignment
    2. Volatility: current 20-bar volatility relative to the average of
       every rolling 20-bar volatility in the history
    3. Persistence: Hurst exponent of the close series

    H > 0.5: Persistent (trending)
    H = 0.5: Random walk
    H < 0.5: Mean-reverting

REGIME RULES
------------
The overall label comes from an ordered rule table; the first rule whose
predicate holds wins:

    STRONG_<dir>     strength > 60 and hurst > 0.55
    TRENDING_<dir>   strength > 40 and direction is not SIDEWAYS
    MEAN_REVERTING   hurst < 0.45 and volatility LOW/NORMAL
    HIGH_VOLATILITY  volatility HIGH
    RANGING          SIDEWAYS and volatility LOW/NORMAL
    TRANSITIONING    otherwise

Each label maps to a strategy playbook entry (strategy, tactics, avoid).

Version: 1.0.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from quant_engine.config import (
    DEFAULT_CONFIG,
    TRADING_DAYS_YEAR,
    AnalysisConfig,
    RegimeParameters,
    TrendDirection,
    VolatilityClass,
)
from quant_engine.technical_indicators import hurst_exponent, sma
from quant_engine.utils import safe_divide, to_jsonable

logger = logging.getLogger(__name__)

SQRT_252: float = float(np.sqrt(TRADING_DAYS_YEAR))


# =============================================================================
# ENUMERATIONS
# =============================================================================

class MarketRegime(Enum):
    """Overall regime label."""
    STRONG_UPTREND = "STRONG_UPTREND"
    STRONG_DOWNTREND = "STRONG_DOWNTREND"
    # Reachable when a strong, persistent fit lacks MA confirmation
    STRONG_SIDEWAYS = "STRONG_SIDEWAYS"
    TRENDING_UPTREND = "TRENDING_UPTREND"
    TRENDING_DOWNTREND = "TRENDING_DOWNTREND"
    MEAN_REVERTING = "MEAN_REVERTING"
    HIGH_VOLATILITY = "HIGH_VOLATILITY"
    RANGING = "RANGING"
    TRANSITIONING = "TRANSITIONING"

    @property
    def is_strong(self) -> bool:
        return self.value.startswith("STRONG_")


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class TrendAnalysis:
    """Linear trend fit over the recent closes."""
    direction: TrendDirection
    strength: float               # 0 to 100
    slope: float                  # % of mean price per bar
    r_squared: float
    ma_alignment: TrendDirection  # UPTREND if SMA20 > SMA50 else DOWNTREND
    confidence: float


@dataclass(frozen=True)
class VolatilityAnalysis:
    """Annualized volatility (%) relative to its own history."""
    current: float
    average: float
    ratio: float
    classification: VolatilityClass


@dataclass(frozen=True)
class RegimeStrategy:
    """Playbook entry for a regime."""
    strategy: str
    tactics: Tuple[str, ...]
    avoid: Tuple[str, ...]


@dataclass(frozen=True)
class RegimeAnalysis:
    """Complete regime classification."""
    trend: TrendAnalysis
    volatility: VolatilityAnalysis
    hurst: float
    overall: MarketRegime
    strategy: RegimeStrategy

    def to_dict(self) -> Dict:
        return to_jsonable(self)


@dataclass(frozen=True)
class RegimeInputs:
    """Measurements the regime rules are evaluated against."""
    trend: TrendAnalysis
    volatility: VolatilityAnalysis
    hurst: float


@dataclass(frozen=True)
class RegimeRule:
    """One row of the ordered regime table."""
    name: str
    predicate: Callable[[RegimeInputs, RegimeParameters], bool]
    label: Callable[[RegimeInputs], MarketRegime]


# =============================================================================
# REGIME RULE TABLE & PLAYBOOK
# =============================================================================

_CALM = (VolatilityClass.LOW, VolatilityClass.NORMAL)

REGIME_RULES: Tuple[RegimeRule, ...] = (
    RegimeRule(
        "strong_trend",
        lambda x, p: x.trend.strength > p.strong_trend_strength and x.hurst > p.hurst_trending,
        lambda x: MarketRegime(f"STRONG_{x.trend.direction.value}"),
    ),
    RegimeRule(
        "trending",
        lambda x, p: (x.trend.strength > p.trending_strength
                      and x.trend.direction != TrendDirection.SIDEWAYS),
        lambda x: MarketRegime(f"TRENDING_{x.trend.direction.value}"),
    ),
    RegimeRule(
        "mean_reverting",
        lambda x, p: x.hurst < p.hurst_mean_reverting and x.volatility.classification in _CALM,
        lambda x: MarketRegime.MEAN_REVERTING,
    ),
    RegimeRule(
        "high_volatility",
        lambda x, p: x.volatility.classification == VolatilityClass.HIGH,
        lambda x: MarketRegime.HIGH_VOLATILITY,
    ),
    RegimeRule(
        "ranging",
        lambda x, p: (x.trend.direction == TrendDirection.SIDEWAYS
                      and x.volatility.classification in _CALM),
        lambda x: MarketRegime.RANGING,
    ),
    RegimeRule(
        "transitioning",
        lambda x, p: True,
        lambda x: MarketRegime.TRANSITIONING,
    ),
)


STRATEGY_PLAYBOOK: Dict[MarketRegime, RegimeStrategy] = {
    MarketRegime.STRONG_UPTREND: RegimeStrategy(
        "Trend Following (Long)",
        ("Buy breakouts", "Hold positions", "Trail stops"),
        ("Counter-trend trades",),
    ),
    MarketRegime.STRONG_DOWNTREND: RegimeStrategy(
        "Trend Following (Short)",
        ("Short breakdowns", "Tight stops", "Capital preservation"),
        ("Catching falling knives",),
    ),
    MarketRegime.TRENDING_UPTREND: RegimeStrategy(
        "Trend Following with Caution",
        ("Buy dips", "Partial positions", "Take profits"),
        ("Overextension",),
    ),
    MarketRegime.TRENDING_DOWNTREND: RegimeStrategy(
        "Defensive or Short",
        ("Reduce exposure", "Hedge positions"),
        ("Aggressive longs",),
    ),
    MarketRegime.MEAN_REVERTING: RegimeStrategy(
        "Mean Reversion",
        ("Buy oversold", "Sell overbought", "Range trade"),
        ("Chasing momentum",),
    ),
    MarketRegime.RANGING: RegimeStrategy(
        "Range Trading",
        ("Support / resistance", "Oscillator-based"),
        ("Trend following",),
    ),
    MarketRegime.HIGH_VOLATILITY: RegimeStrategy(
        "Reduced Position Size",
        ("Wider stops", "Options strategies"),
        ("Full positions",),
    ),
    MarketRegime.TRANSITIONING: RegimeStrategy(
        "Wait and Observe",
        ("Small positions", "Watch confirmation"),
        ("Large commitments",),
    ),
}


def strategy_for(regime: MarketRegime) -> RegimeStrategy:
    """Playbook entry; regimes without one get the TRANSITIONING entry."""
    return STRATEGY_PLAYBOOK.get(regime, STRATEGY_PLAYBOOK[MarketRegime.TRANSITIONING])


def classify_regime(
    inputs: RegimeInputs,
    params: RegimeParameters = DEFAULT_CONFIG.regime
) -> MarketRegime:
    """Walk the rule table and return the first matching label."""
    for rule in REGIME_RULES:
        if rule.predicate(inputs, params):
            return rule.label(inputs)
    return MarketRegime.TRANSITIONING


# =============================================================================
# TREND
# =============================================================================

def _last_value(series: pd.Series) -> float:
    if len(series) == 0:
        return 0.0
    value = series.iloc[-1]
    return float(value) if pd.notna(value) else 0.0


def detect_trend(
    closes: pd.Series,
    params: RegimeParameters = DEFAULT_CONFIG.regime,
    sma_fast: Optional[pd.Series] = None,
    sma_slow: Optional[pd.Series] = None
) -> TrendAnalysis:
    """
    Fit the trend of the last ``trend_window`` closes.

    Args:
        closes: Close prices in chronological order
        params: Regime thresholds
        sma_fast, sma_slow: Precomputed SMA20/SMA50 (computed when omitted)

    Returns:
        TrendAnalysis; unavailable SMAs count as 0 for the alignment
    """
    closes = closes.dropna().astype(float)
    if sma_fast is None:
        sma_fast = sma(closes, params.fast_ma)
    if sma_slow is None:
        sma_slow = sma(closes, params.slow_ma)

    alignment = (
        TrendDirection.UPTREND
        if _last_value(sma_fast) > _last_value(sma_slow)
        else TrendDirection.DOWNTREND
    )

    recent = closes.to_numpy()[-params.trend_window:]
    mean_price = float(np.mean(recent)) if len(recent) else 0.0

    if len(recent) < 2 or mean_price == 0:
        slope = 0.0
        r_squared = 0.0
    else:
        fit = stats.linregress(np.arange(len(recent), dtype=float), recent)
        slope = safe_divide(fit.slope, mean_price) * 100
        r_squared = max(0.0, float(fit.rvalue) ** 2) if np.isfinite(fit.rvalue) else 0.0

    if slope > params.trend_slope_threshold and alignment == TrendDirection.UPTREND:
        direction = TrendDirection.UPTREND
    elif slope < -params.trend_slope_threshold and alignment == TrendDirection.DOWNTREND:
        direction = TrendDirection.DOWNTREND
    else:
        direction = TrendDirection.SIDEWAYS

    return TrendAnalysis(
        direction=direction,
        strength=min(100.0, abs(slope) * params.trend_strength_scale * r_squared),
        slope=slope,
        r_squared=r_squared,
        ma_alignment=alignment,
        confidence=r_squared,
    )


# =============================================================================
# VOLATILITY
# =============================================================================

def nonzero_returns(returns: pd.Series) -> np.ndarray:
    """Available, non-zero returns; flat bars carry no volatility information."""
    values = pd.Series(returns, dtype=float).to_numpy()
    values = values[np.isfinite(values)]
    return values[values != 0]


def classify_volatility(
    returns: pd.Series,
    params: RegimeParameters = DEFAULT_CONFIG.regime
) -> VolatilityAnalysis:
    """
    Compare current volatility with its historical average.

    current = pop. stdev of the last ``volatility_window`` returns, annualized (%)
    average = mean of every rolling-window pop. stdev, annualized (%)
    """
    window = params.volatility_window
    values = nonzero_returns(returns)

    if len(values) < window + 2:
        return VolatilityAnalysis(0.0, 0.0, 1.0, VolatilityClass.NORMAL)

    current = float(np.std(values[-window:])) * SQRT_252 * 100
    rolling = np.lib.stride_tricks.sliding_window_view(values, window).std(axis=1)
    average = float(np.mean(rolling)) * SQRT_252 * 100
    ratio = current / average if average > 0 else 1.0

    if ratio > params.vol_high_ratio:
        classification = VolatilityClass.HIGH
    elif ratio > params.vol_elevated_ratio:
        classification = VolatilityClass.ELEVATED
    elif ratio < params.vol_low_ratio:
        classification = VolatilityClass.LOW
    else:
        classification = VolatilityClass.NORMAL

    return VolatilityAnalysis(current, average, ratio, classification)


# =============================================================================
# REGIME DETECTION
# =============================================================================

def neutral_regime() -> RegimeAnalysis:
    """Regime used when classification cannot run."""
    trend = TrendAnalysis(
        TrendDirection.SIDEWAYS, 0.0, 0.0, 0.0, TrendDirection.DOWNTREND, 0.0
    )
    volatility = VolatilityAnalysis(0.0, 0.0, 1.0, VolatilityClass.NORMAL)
    return RegimeAnalysis(
        trend=trend,
        volatility=volatility,
        hurst=0.5,
        overall=MarketRegime.TRANSITIONING,
        strategy=strategy_for(MarketRegime.TRANSITIONING),
    )


def detect_regime(
    df: pd.DataFrame,
    config: AnalysisConfig = DEFAULT_CONFIG,
    hurst: Optional[float] = None
) -> RegimeAnalysis:
    """
    Classify the market regime of an enriched series.

    Args:
        df: Frame with ``Close`` and ``returns``; ``sma_20``/``sma_50`` are
            used when present
        config: Engine configuration
        hurst: Precomputed Hurst exponent (computed when omitted)

    Returns:
        RegimeAnalysis
    """
    params = config.regime
    closes = df["Close"]

    trend = detect_trend(
        closes,
        params,
        sma_fast=df.get(f"sma_{params.fast_ma}"),
        sma_slow=df.get(f"sma_{params.slow_ma}"),
    )
    volatility = classify_volatility(df["returns"], params)
    if hurst is None:
        hurst = hurst_exponent(closes, config.indicators.hurst_max_lag)

    inputs = RegimeInputs(trend=trend, volatility=volatility, hurst=hurst)
    overall = classify_regime(inputs, params)

    logger.debug(
        f"Regime {overall.value}: trend={trend.direction.value} "
        f"strength={trend.strength:.1f} vol={volatility.classification.value} hurst={hurst:.3f}"
    )

    return RegimeAnalysis(
        trend=trend,
        volatility=volatility,
        hurst=hurst,
        overall=overall,
        strategy=strategy_for(overall),
    )
