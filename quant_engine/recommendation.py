"""
Recommendation Synthesizer

Combines the technical readings, the aggregate statistical signal, the
regime and the valuation signal into one action:

    final = 0.30 * technical + 0.35 * statistical + 0.25 * regime + 0.10 * valuation

    x 0.7 when the risk level is HIGH

    final >=  1.2  STRONG BUY      confidence min(0.90, 0.5 + |final| * 0.15)
    final >=  0.4  BUY             confidence min(0.75, ...)
    final <= -1.2  STRONG SELL
    final <= -0.4  SELL
    otherwise      HOLD            confidence 0.5

Target and stop are ATR multiples from the current price.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from quant_engine.config import (
    DEFAULT_CONFIG,
    Action,
    RecommendationParameters,
    RiskLevel,
    SignalDirection,
    TrendDirection,
    ValuationSignal,
)
from quant_engine.regime_detector import MarketRegime
from quant_engine.technical_indicators import TechnicalSignal
from quant_engine.utils import is_available, to_jsonable

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class ScoreComponents:
    technical: float
    statistical: float
    regime: float
    valuation: float


@dataclass(frozen=True)
class Recommendation:
    """Final action with its score breakdown."""
    action: Action
    confidence: float
    score: float
    components: ScoreComponents

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


@dataclass(frozen=True)
class PriceLevels:
    """Target and stop for an actionable recommendation (None on HOLD)."""
    target: Optional[float]
    stop_loss: Optional[float]


# =============================================================================
# COMPONENT SCORES
# =============================================================================

def technical_score(signals: Mapping[str, TechnicalSignal]) -> float:
    """Sum of directional scores; ADX strength labels contribute 0."""
    return float(sum(signal.score for signal in signals.values()))


def regime_score(regime: MarketRegime) -> float:
    """+/-1 for strong trends, +/-0.5 for other trending labels, else 0."""
    label = regime.value
    weight = 1.0 if regime.is_strong else 0.5
    if TrendDirection.UPTREND.value in label:
        return weight
    if TrendDirection.DOWNTREND.value in label:
        return -weight
    return 0.0


def valuation_bias(signal: Optional[ValuationSignal]) -> float:
    if signal == ValuationSignal.UNDERVALUED:
        return 1.0
    if signal == ValuationSignal.OVERVALUED:
        return -1.0
    return 0.0


# =============================================================================
# SYNTHESIS
# =============================================================================

def generate_recommendation(
    tech_signals: Mapping[str, TechnicalSignal],
    regime: MarketRegime,
    aggregate_signal: SignalDirection,
    risk_level: RiskLevel,
    valuation_signal: Optional[ValuationSignal],
    params: RecommendationParameters = DEFAULT_CONFIG.recommendation
) -> Recommendation:
    """
    Synthesize the component views into an action.

    Args:
        tech_signals: Latest-bar indicator readings
        regime: Overall regime label
        aggregate_signal: Aggregate statistical signal
        risk_level: Risk level from the risk engine
        valuation_signal: Intrinsic-value signal (None counts as neutral)
        params: Weights, thresholds and confidence caps

    Returns:
        Recommendation
    """
    components = ScoreComponents(
        technical=technical_score(tech_signals),
        statistical=float(aggregate_signal.score),
        regime=regime_score(regime),
        valuation=valuation_bias(valuation_signal),
    )

    final = (
        components.technical * params.technical_weight
        + components.statistical * params.statistical_weight
        + components.regime * params.regime_weight
        + components.valuation * params.valuation_weight
    )
    if risk_level == RiskLevel.HIGH:
        final *= params.high_risk_dampening

    action, cap = _action_for(final, params)
    if action == Action.HOLD:
        confidence = 0.5
    else:
        confidence = min(cap, params.confidence_base + abs(final) * params.confidence_slope)

    logger.debug(f"Recommendation {action.value}: score={final:.3f} components={components}")
    return Recommendation(action=action, confidence=confidence, score=final, components=components)


def _action_for(score: float, params: RecommendationParameters) -> Tuple[Action, float]:
    if score >= params.strong_threshold:
        return Action.STRONG_BUY, params.strong_confidence_cap
    if score >= params.weak_threshold:
        return Action.BUY, params.weak_confidence_cap
    if score <= -params.strong_threshold:
        return Action.STRONG_SELL, params.strong_confidence_cap
    if score <= -params.weak_threshold:
        return Action.SELL, params.weak_confidence_cap
    return Action.HOLD, 0.5


def compute_levels(
    action: Action,
    price: float,
    atr_value: Optional[float],
    regime: MarketRegime,
    params: RecommendationParameters = DEFAULT_CONFIG.recommendation
) -> PriceLevels:
    """
    ATR-based target and stop.

    Buys widen both levels when the regime is a STRONG_* label. Without a
    usable ATR, ``fallback_atr_pct`` of the price stands in.
    """
    atr_used = atr_value if is_available(atr_value) and atr_value > 0 else price * params.fallback_atr_pct

    if action.is_buy:
        strong = regime.is_strong
        target_mult = params.strong_target_atr if strong else params.target_atr
        stop_mult = params.strong_stop_atr if strong else params.stop_atr
        return PriceLevels(price + atr_used * target_mult, price - atr_used * stop_mult)

    if action.is_sell:
        return PriceLevels(
            price - atr_used * params.sell_target_atr,
            price + atr_used * params.sell_stop_atr,
        )

    return PriceLevels(None, None)
