"""
Statistical Signal Generators and Aggregator

Three independent detectors read the latest bar against recent history:

    Z-SCORE      Close vs. its trailing 20-bar mean (contrarian)
    MOMENTUM     % return over 5, 10, 20 and 50 bars (trend following)
    VOLUME       Volume surprise confirmed by the sign of the last return

Each emits a SignalDirection; the aggregator maps them to [-2, 2] and takes
a weighted sum. The default weights (0.25, 0.30, 0.25) sum to 0.8, so the
aggregate score tops out at 1.6; set ``SignalParameters.normalize_weights``
to rescale them to 1.

Version: 1.0.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd

from quant_engine.config import DEFAULT_CONFIG, SignalDirection, SignalParameters
from quant_engine.utils import to_jsonable

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class SignalResult:
    """Output of one detector."""
    signal: SignalDirection
    diagnostics: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AggregateSignal:
    """Weighted combination of the detectors."""
    signal: SignalDirection
    score: float
    confidence: float


@dataclass(frozen=True)
class StatisticalSignals:
    """All detector outputs plus their aggregate."""
    zscore: SignalResult
    momentum: SignalResult
    volume: SignalResult
    aggregate: AggregateSignal

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


# =============================================================================
# DETECTORS
# =============================================================================

def zscore_signal(
    closes: pd.Series,
    params: SignalParameters = DEFAULT_CONFIG.signals
) -> SignalResult:
    """
    Z-score of the last close against the trailing window.

    z > 2 STRONG_SELL, z > 1 SELL, z < -2 STRONG_BUY, z < -1 BUY.
    """
    values = pd.Series(closes, dtype=float).dropna().to_numpy()
    if len(values) == 0:
        return SignalResult(SignalDirection.NEUTRAL, {"zscore": 0.0, "probability": 0.5})

    recent = values[-params.zscore_window:]
    mean = float(np.mean(recent))
    std = float(np.std(recent))
    z = (values[-1] - mean) / std if std > 0 else 0.0

    if z > params.zscore_strong:
        signal, probability = SignalDirection.STRONG_SELL, 0.95
    elif z > params.zscore_weak:
        signal, probability = SignalDirection.SELL, 0.68
    elif z < -params.zscore_strong:
        signal, probability = SignalDirection.STRONG_BUY, 0.95
    elif z < -params.zscore_weak:
        signal, probability = SignalDirection.BUY, 0.68
    else:
        signal, probability = SignalDirection.NEUTRAL, 0.5

    return SignalResult(signal, {
        "zscore": float(z),
        "probability": probability,
        "mean": mean,
        "std": std,
    })


def momentum_signal(
    closes: pd.Series,
    params: SignalParameters = DEFAULT_CONFIG.signals
) -> SignalResult:
    """
    Multi-horizon momentum.

    A horizon counts only when more than ``period`` closes exist. STRONG
    tiers need every horizon to agree in sign.
    """
    values = pd.Series(closes, dtype=float).dropna().to_numpy()
    by_period: Dict[str, float] = {}
    if len(values):
        current = values[-1]
        for period in params.momentum_periods:
            if len(values) > period and values[-1 - period] != 0:
                by_period[f"{period}d"] = (current / values[-1 - period] - 1) * 100

    readings = list(by_period.values())
    average = float(np.mean(readings)) if readings else 0.0
    all_positive = all(r > 0 for r in readings)
    all_negative = all(r < 0 for r in readings)

    if all_positive and average > params.momentum_strong_pct:
        signal = SignalDirection.STRONG_BUY
    elif average > params.momentum_weak_pct:
        signal = SignalDirection.BUY
    elif all_negative and average < -params.momentum_strong_pct:
        signal = SignalDirection.STRONG_SELL
    elif average < -params.momentum_weak_pct:
        signal = SignalDirection.SELL
    else:
        signal = SignalDirection.NEUTRAL

    return SignalResult(signal, {
        "average_momentum": average,
        "by_period": by_period,
        "consistency": "HIGH" if (all_positive or all_negative) else "LOW",
    })


def volume_signal(
    volumes: pd.Series,
    last_return: Optional[float],
    params: SignalParameters = DEFAULT_CONFIG.signals
) -> SignalResult:
    """
    Volume surprise in the direction of the last return.

    An unavailable last return counts as zero, which keeps the signal NEUTRAL.
    """
    values = pd.Series(volumes, dtype=float).fillna(0.0).to_numpy()
    if len(values) == 0:
        return SignalResult(SignalDirection.NEUTRAL, {"volume_zscore": 0.0})

    recent = values[-params.volume_window:]
    mean = float(np.mean(recent))
    std = float(np.std(recent))
    z = (values[-1] - mean) / std if std > 0 else 0.0
    r = last_return if last_return is not None and np.isfinite(last_return) else 0.0

    if z > params.volume_strong_z and r > 0:
        signal = SignalDirection.STRONG_BUY
    elif z > params.volume_weak_z and r > 0:
        signal = SignalDirection.BUY
    elif z > params.volume_strong_z and r < 0:
        signal = SignalDirection.STRONG_SELL
    elif z > params.volume_weak_z and r < 0:
        signal = SignalDirection.SELL
    else:
        signal = SignalDirection.NEUTRAL

    return SignalResult(signal, {
        "volume_zscore": float(z),
        "average_volume": mean,
        "current_volume": float(values[-1]),
    })


# =============================================================================
# AGGREGATION
# =============================================================================

def aggregate_signals(
    signals: Mapping[str, SignalResult],
    params: SignalParameters = DEFAULT_CONFIG.signals
) -> AggregateSignal:
    """
    Weighted sum of detector scores.

    Args:
        signals: Detector results keyed "zscore", "momentum", "volume";
            absent detectors contribute nothing

    Returns:
        AggregateSignal with tiered confidence (0.5 when NEUTRAL)
    """
    total = 0.0
    for name, weight in params.weights:
        result = signals.get(name)
        if result is not None:
            total += result.signal.score * weight

    if total >= params.strong_threshold:
        signal, cap = SignalDirection.STRONG_BUY, params.strong_confidence_cap
    elif total >= params.weak_threshold:
        signal, cap = SignalDirection.BUY, params.weak_confidence_cap
    elif total <= -params.strong_threshold:
        signal, cap = SignalDirection.STRONG_SELL, params.strong_confidence_cap
    elif total <= -params.weak_threshold:
        signal, cap = SignalDirection.SELL, params.weak_confidence_cap
    else:
        return AggregateSignal(SignalDirection.NEUTRAL, total, 0.5)

    confidence = min(cap, params.confidence_base + abs(total) * params.confidence_slope)
    return AggregateSignal(signal, total, confidence)


def neutral_signals() -> StatisticalSignals:
    """Signals used when the detectors cannot run. Each call builds new objects."""
    return StatisticalSignals(
        zscore=SignalResult(SignalDirection.NEUTRAL),
        momentum=SignalResult(SignalDirection.NEUTRAL),
        volume=SignalResult(SignalDirection.NEUTRAL),
        aggregate=AggregateSignal(SignalDirection.NEUTRAL, 0.0, 0.5),
    )


def generate_statistical_signals(
    df: pd.DataFrame,
    params: SignalParameters = DEFAULT_CONFIG.signals
) -> StatisticalSignals:
    """Run all three detectors on an enriched series and aggregate them."""
    last_return = df["returns"].iloc[-1] if "returns" in df and len(df) else None

    zscore = zscore_signal(df["Close"], params)
    momentum = momentum_signal(df["Close"], params)
    volume = volume_signal(df["Volume"], last_return, params)
    aggregate = aggregate_signals(
        {"zscore": zscore, "momentum": momentum, "volume": volume}, params
    )

    return StatisticalSignals(zscore, momentum, volume, aggregate)
