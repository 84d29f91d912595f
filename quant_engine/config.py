"""
Configuration Module for the Quantitative Analysis Engine

This module centralizes every constant, window size, threshold and weight
used throughout the analysis pipeline, together with the enumerations that
make up the engine's output vocabulary.

All "magic numbers" are defined here to ensure:
1. Single source of truth for all constants
2. Easy modification without touching analysis code
3. Transparency in assumptions and thresholds
4. No module depends on global mutable state: an ``AnalysisConfig`` value
   is passed explicitly through the pipeline

Version: 1.0.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


ENGINE_VERSION: str = "1.0.0"

# Trading calendar
TRADING_DAYS_YEAR: int = 252


# =============================================================================
# ENUMERATIONS
# =============================================================================

class SignalDirection(Enum):
    """Statistical signal direction with numeric mapping for aggregation."""
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    NEUTRAL = "NEUTRAL"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"

    @property
    def score(self) -> int:
        """Integer score in [-2, 2] used by the aggregator."""
        return {
            SignalDirection.STRONG_BUY: 2,
            SignalDirection.BUY: 1,
            SignalDirection.NEUTRAL: 0,
            SignalDirection.SELL: -1,
            SignalDirection.STRONG_SELL: -2,
        }[self]


class TrendDirection(Enum):
    """Direction of the fitted price trend."""
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    SIDEWAYS = "SIDEWAYS"


class VolatilityClass(Enum):
    """Current volatility relative to its own history."""
    LOW = "LOW"
    NORMAL = "NORMAL"
    ELEVATED = "ELEVATED"
    HIGH = "HIGH"


class RiskLevel(Enum):
    """Risk assessment level"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ValuationSignal(Enum):
    """Intrinsic-value signal from the valuation models."""
    UNDERVALUED = "UNDERVALUED"
    FAIRLY_VALUED = "FAIRLY VALUED"
    OVERVALUED = "OVERVALUED"


class Action(Enum):
    """Final recommendation action."""
    STRONG_BUY = "STRONG BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG SELL"

    @property
    def is_buy(self) -> bool:
        return self in (Action.STRONG_BUY, Action.BUY)

    @property
    def is_sell(self) -> bool:
        return self in (Action.STRONG_SELL, Action.SELL)

    @property
    def is_strong(self) -> bool:
        return self in (Action.STRONG_BUY, Action.STRONG_SELL)


# =============================================================================
# INDICATOR PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class IndicatorParameters:
    """Window sizes for the indicator library."""

    sma_windows: Tuple[int, ...] = (20, 50, 200)

    rsi_period: int = 14
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0

    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9

    bb_period: int = 20
    bb_std_dev: float = 2.0

    atr_period: int = 14

    stoch_k_period: int = 14
    stoch_d_period: int = 3

    adx_period: int = 14
    adx_strong: float = 25.0
    adx_moderate: float = 20.0

    hurst_max_lag: int = 20


# =============================================================================
# REGIME PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class RegimeParameters:
    """Trend fit, volatility classification and regime rule thresholds."""

    trend_window: int = 50
    trend_slope_threshold: float = 0.1   # % of mean price per bar
    trend_strength_scale: float = 10.0
    fast_ma: int = 20
    slow_ma: int = 50

    volatility_window: int = 20
    vol_high_ratio: float = 1.5
    vol_elevated_ratio: float = 1.2
    vol_low_ratio: float = 0.8

    strong_trend_strength: float = 60.0
    trending_strength: float = 40.0
    hurst_trending: float = 0.55
    hurst_mean_reverting: float = 0.45


# =============================================================================
# STATISTICAL SIGNAL PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class SignalParameters:
    """Z-score, momentum, volume detectors and the aggregate weighting."""

    zscore_window: int = 20
    zscore_strong: float = 2.0
    zscore_weak: float = 1.0

    momentum_periods: Tuple[int, ...] = (5, 10, 20, 50)
    momentum_strong_pct: float = 5.0
    momentum_weak_pct: float = 2.0

    volume_window: int = 20
    volume_strong_z: float = 2.0
    volume_weak_z: float = 1.0

    # Weights sum to 0.8; see normalize_weights
    zscore_weight: float = 0.25
    momentum_weight: float = 0.30
    volume_weight: float = 0.25
    normalize_weights: bool = False

    strong_threshold: float = 1.5
    weak_threshold: float = 0.5
    confidence_base: float = 0.5
    confidence_slope: float = 0.3
    strong_confidence_cap: float = 0.95
    weak_confidence_cap: float = 0.85

    @property
    def weights(self) -> Tuple[Tuple[str, float], ...]:
        """(detector, weight) pairs, rescaled to sum to 1 when requested."""
        raw = (
            ("zscore", self.zscore_weight),
            ("momentum", self.momentum_weight),
            ("volume", self.volume_weight),
        )
        if not self.normalize_weights:
            return raw
        total = sum(w for _, w in raw)
        if total <= 0:
            return raw
        return tuple((name, w / total) for name, w in raw)


# =============================================================================
# RISK PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class RiskParameters:
    """Risk statistics and risk-level thresholds."""

    risk_free_rate: float = 0.02
    min_observations: int = 5
    var_quantile: float = 0.05

    high_volatility: float = 40.0     # annualized %
    medium_volatility: float = 25.0
    high_drawdown: float = -0.30      # fraction
    medium_drawdown: float = -0.20


# =============================================================================
# VALUATION PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class ValuationParameters:
    """Price-stretch scoring and intrinsic-value model assumptions."""

    long_ma: int = 200
    medium_ma: int = 50
    medium_ma_multiplier: float = 1.5
    deviation_clamp: float = 50.0
    range_lookback: int = 252

    # Assumption builder
    growth_floor: float = -0.02
    growth_cap: float = 0.12
    default_growth: float = 0.06
    base_discount_rate: float = 0.08
    max_volatility_premium: float = 0.04
    volatility_premium_divisor: float = 250.0
    default_volatility_premium: float = 0.01
    discount_floor: float = 0.07
    discount_cap: float = 0.14
    terminal_growth_floor: float = 0.01
    terminal_growth_cap: float = 0.03
    base_pe: float = 12.0
    pe_growth_multiplier: float = 0.8
    pe_floor: float = 10.0
    pe_cap: float = 28.0
    projection_years: int = 5
    ddm_growth_cap: float = 0.06

    # Anchor verdict
    undervalued_upside: float = 0.15
    overvalued_upside: float = -0.15


# =============================================================================
# RECOMMENDATION PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class RecommendationParameters:
    """Synthesizer weights, action thresholds and ATR level multiples."""

    technical_weight: float = 0.30
    statistical_weight: float = 0.35
    regime_weight: float = 0.25
    valuation_weight: float = 0.10
    high_risk_dampening: float = 0.7

    strong_threshold: float = 1.2
    weak_threshold: float = 0.4
    confidence_base: float = 0.5
    confidence_slope: float = 0.15
    strong_confidence_cap: float = 0.90
    weak_confidence_cap: float = 0.75

    fallback_atr_pct: float = 0.02
    strong_target_atr: float = 3.0
    target_atr: float = 2.0
    strong_stop_atr: float = 1.5
    stop_atr: float = 1.0
    sell_target_atr: float = 2.0
    sell_stop_atr: float = 1.0


# =============================================================================
# ROOT CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class AnalysisConfig:
    """
    Complete, immutable engine configuration.

    Derive variants with ``dataclasses.replace``::

        cfg = replace(DEFAULT_CONFIG, risk=replace(DEFAULT_CONFIG.risk, risk_free_rate=0.04))
    """
    indicators: IndicatorParameters = field(default_factory=IndicatorParameters)
    regime: RegimeParameters = field(default_factory=RegimeParameters)
    signals: SignalParameters = field(default_factory=SignalParameters)
    risk: RiskParameters = field(default_factory=RiskParameters)
    valuation: ValuationParameters = field(default_factory=ValuationParameters)
    recommendation: RecommendationParameters = field(default_factory=RecommendationParameters)

    # Name registered in quant_engine.fundamentals
    fundamentals_provider: str = "synthetic"


DEFAULT_CONFIG = AnalysisConfig()
