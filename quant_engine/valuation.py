"""
Valuation Engine
================

Two independent views on price versus value:

    1. PRICE STRETCH (technical)
       Average of five components normalized to [0, 100]:
           - Deviation from SMA200 (clamped +/-50, offset +50)
           - Deviation from SMA50 x 1.5 (same clamp)
           - Bollinger %B x 100
           - RSI
           - Position within the 52-week (252-bar) range
       High readings mean price is stretched above its own history.

    2. INTRINSIC VALUE (fundamental)
       - DCF: 5 years of FCF/share growing at g, Gordon terminal value
       - DDM: Gordon growth on dividend/share, growth capped at 6%
       - Multiples: EPS x target P/E
       The anchor is the mean of the valid (positive, finite) outputs.

Models refuse to produce a number when the discount rate does not exceed
the growth rate; the reason is recorded in ``issues``.

Version: 1.0.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from quant_engine.config import DEFAULT_CONFIG, ValuationParameters, ValuationSignal
from quant_engine.fundamentals import Fundamentals
from quant_engine.risk_analytics import RiskMetrics
from quant_engine.technical_indicators import rsi, sma
from quant_engine.utils import clamp, is_available, optional_float, to_jsonable

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class StretchVerdict(Enum):
    """Verdict of the price-stretch score."""
    SIGNIFICANTLY_OVERVALUED = "SIGNIFICANTLY OVERVALUED"
    OVERVALUED = "OVERVALUED"
    SLIGHTLY_OVERVALUED = "SLIGHTLY OVERVALUED"
    FAIRLY_VALUED = "FAIRLY VALUED"
    SLIGHTLY_UNDERVALUED = "SLIGHTLY UNDERVALUED"
    UNDERVALUED = "UNDERVALUED"
    SIGNIFICANTLY_UNDERVALUED = "SIGNIFICANTLY UNDERVALUED"


# Ordered; first matching predicate wins
STRETCH_RULES: Tuple[Tuple[Callable[[float], bool], StretchVerdict], ...] = (
    (lambda s: s > 80, StretchVerdict.SIGNIFICANTLY_OVERVALUED),
    (lambda s: s > 65, StretchVerdict.OVERVALUED),
    (lambda s: s > 55, StretchVerdict.SLIGHTLY_OVERVALUED),
    (lambda s: s < 20, StretchVerdict.SIGNIFICANTLY_UNDERVALUED),
    (lambda s: s < 35, StretchVerdict.UNDERVALUED),
    (lambda s: s < 45, StretchVerdict.SLIGHTLY_UNDERVALUED),
)


def classify_stretch(stretch: float) -> StretchVerdict:
    for predicate, verdict in STRETCH_RULES:
        if predicate(stretch):
            return verdict
    return StretchVerdict.FAIRLY_VALUED


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class ValuationStretch:
    """Price-stretch score and its components."""
    stretch: float
    verdict: StretchVerdict
    dev_sma200: float
    dev_sma50: float
    pct_b: float
    rsi: float
    range_52w_pct: float
    high_52w: float
    low_52w: float
    fair_value: float
    sma200: Optional[float]
    sma50: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


@dataclass(frozen=True)
class ValuationAssumptions:
    """Inputs to the intrinsic-value models."""
    fcf_per_share: Optional[float]
    dividend_per_share: Optional[float]
    eps: Optional[float]
    growth_rate: float
    discount_rate: float
    terminal_growth: float
    target_pe: float
    years: int


@dataclass(frozen=True)
class ValuationModels:
    """Intrinsic-value model outputs."""
    dcf: Optional[float]
    ddm: Optional[float]
    multiples: Optional[float]
    anchor: Optional[float]
    upside: Optional[float]
    signal: ValuationSignal
    issues: Tuple[str, ...] = ()
    assumptions: Optional[ValuationAssumptions] = None

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


EMPTY_MODELS = ValuationModels(None, None, None, None, None, ValuationSignal.FAIRLY_VALUED)


# =============================================================================
# PRICE STRETCH
# =============================================================================

def _last(df: pd.DataFrame, column: str, fallback: Callable[[], pd.Series]) -> Optional[float]:
    series = df[column] if column in df else fallback()
    if len(series) == 0:
        return None
    return optional_float(series.iloc[-1])


def compute_stretch(
    df: pd.DataFrame,
    params: ValuationParameters = DEFAULT_CONFIG.valuation
) -> ValuationStretch:
    """
    Score how far the last close is stretched from its own history.

    Args:
        df: Enriched series; indicator columns are computed when absent

    Returns:
        ValuationStretch; %B outside the bands can push stretch past 0-100
    """
    closes = df["Close"].astype(float)
    last = float(closes.iloc[-1])

    sma200 = _last(df, f"sma_{params.long_ma}", lambda: sma(closes, params.long_ma))
    sma50 = _last(df, f"sma_{params.medium_ma}", lambda: sma(closes, params.medium_ma))
    dev_sma200 = (last - sma200) / sma200 * 100 if sma200 else 0.0
    dev_sma50 = (last - sma50) / sma50 * 100 if sma50 else 0.0

    upper = optional_float(df["bb_upper"].iloc[-1]) if "bb_upper" in df else None
    lower = optional_float(df["bb_lower"].iloc[-1]) if "bb_lower" in df else None
    if upper is not None and lower is not None and upper != lower:
        pct_b = (last - lower) / (upper - lower)
    else:
        pct_b = 0.5

    last_rsi = _last(df, "rsi", lambda: rsi(closes))
    if last_rsi is None:
        last_rsi = 50.0

    window = closes.iloc[-params.range_lookback:]
    high_52w, low_52w = float(window.max()), float(window.min())
    range_pct = (last - low_52w) / (high_52w - low_52w) * 100 if high_52w != low_52w else 50.0

    limit = params.deviation_clamp
    components = (
        clamp(dev_sma200, -limit, limit) + 50,
        clamp(dev_sma50 * params.medium_ma_multiplier, -limit, limit) + 50,
        pct_b * 100,
        last_rsi,
        range_pct,
    )
    stretch = sum(components) / len(components)

    return ValuationStretch(
        stretch=stretch,
        verdict=classify_stretch(stretch),
        dev_sma200=dev_sma200,
        dev_sma50=dev_sma50,
        pct_b=pct_b,
        rsi=last_rsi,
        range_52w_pct=range_pct,
        high_52w=high_52w,
        low_52w=low_52w,
        fair_value=sma200 or sma50 or last,
        sma200=sma200,
        sma50=sma50,
    )


def neutral_stretch(price: float) -> ValuationStretch:
    """Stretch used when the score cannot be computed."""
    return ValuationStretch(
        50.0, StretchVerdict.FAIRLY_VALUED, 0.0, 0.0, 0.5, 50.0, 50.0,
        price, price, price, None, None,
    )


# =============================================================================
# INTRINSIC VALUE MODELS
# =============================================================================

def build_valuation_assumptions(
    fundamentals: Optional[Fundamentals],
    price: Optional[float],
    risk: Optional[RiskMetrics],
    params: ValuationParameters = DEFAULT_CONFIG.valuation
) -> ValuationAssumptions:
    """
    Derive model inputs from fundamentals and observed risk.

    g         = clamp(revenue growth, -2%, 12%)
    discount  = clamp(8% + min(4%, vol / 250), 7%, 14%); +1% when vol unknown
    terminal  = clamp(min(3%, g / 2), 1%, 3%)
    target PE = clamp(12 + 0.8 * g * 100, 10, 28)
    """
    growth_input = params.default_growth
    fcf_ps = dps = eps = None
    if fundamentals is not None:
        if fundamentals.revenue_growth is not None:
            growth_input = fundamentals.revenue_growth
        fcf_ps = fundamentals.per_share.fcf_per_share
        dps = fundamentals.per_share.dividend_per_share
        eps = fundamentals.per_share.eps

    if fcf_ps is None:
        fcf_ps = price * 0.04 if price else 3.0
    if dps is None:
        dps = price * 0.015 if price else 1.0
    if eps is None:
        eps = price / 20 if price else 5.0

    g = clamp(growth_input, params.growth_floor, params.growth_cap)

    if risk is not None and risk.volatility:
        vol_premium = min(params.max_volatility_premium, risk.volatility / params.volatility_premium_divisor)
    else:
        vol_premium = params.default_volatility_premium

    return ValuationAssumptions(
        fcf_per_share=fcf_ps,
        dividend_per_share=dps,
        eps=eps,
        growth_rate=g,
        discount_rate=clamp(params.base_discount_rate + vol_premium, params.discount_floor, params.discount_cap),
        terminal_growth=clamp(min(params.terminal_growth_cap, g * 0.5),
                              params.terminal_growth_floor, params.terminal_growth_cap),
        target_pe=clamp(params.base_pe + params.pe_growth_multiplier * g * 100, params.pe_floor, params.pe_cap),
        years=params.projection_years,
    )


def dcf_value(
    fcf_per_share: Optional[float],
    growth_rate: float,
    discount_rate: float,
    terminal_growth: float,
    years: int
) -> Optional[float]:
    """
    Per-share DCF value.

    PV = sum_{t=1..N} FCF (1+g)^t / (1+r)^t
         + FCF (1+g)^N (1+tg) / (r - tg) / (1+r)^N

    None when FCF is missing/zero, N <= 0 or r <= tg.
    """
    if not fcf_per_share or years <= 0:
        return None
    if discount_rate <= terminal_growth:
        return None

    pv = 0.0
    for t in range(1, years + 1):
        pv += fcf_per_share * (1 + growth_rate) ** t / (1 + discount_rate) ** t

    terminal = (
        fcf_per_share * (1 + growth_rate) ** years * (1 + terminal_growth)
        / (discount_rate - terminal_growth)
    )
    return pv + terminal / (1 + discount_rate) ** years


def ddm_value(
    dividend_per_share: Optional[float],
    growth_rate: float,
    discount_rate: float
) -> Optional[float]:
    """Gordon growth: D (1+g) / (r - g); None without a dividend or when r <= g."""
    if not dividend_per_share:
        return None
    if discount_rate <= growth_rate:
        return None
    return dividend_per_share * (1 + growth_rate) / (discount_rate - growth_rate)


def run_valuation_models(
    assumptions: Optional[ValuationAssumptions],
    price: Optional[float],
    params: ValuationParameters = DEFAULT_CONFIG.valuation
) -> ValuationModels:
    """Run DCF, DDM and multiples and derive the value anchor."""
    if assumptions is None:
        return EMPTY_MODELS

    a = assumptions
    issues: List[str] = []

    dcf = dcf_value(a.fcf_per_share, a.growth_rate, a.discount_rate, a.terminal_growth, a.years)
    if a.discount_rate <= a.terminal_growth:
        issues.append("Discount rate must exceed terminal growth.")

    ddm_growth = min(a.growth_rate, params.ddm_growth_cap)
    has_dividend = a.dividend_per_share is not None and a.dividend_per_share > 0
    ddm = ddm_value(a.dividend_per_share, ddm_growth, a.discount_rate) if has_dividend else None
    if has_dividend and a.discount_rate <= ddm_growth:
        issues.append("Discount rate must exceed dividend growth.")

    multiples = a.eps * a.target_pe if a.eps and a.target_pe else None

    valid = [v for v in (dcf, ddm, multiples) if is_available(v) and v > 0]
    anchor = float(np.mean(valid)) if valid else None
    upside = anchor / price - 1 if anchor and price else None

    signal = ValuationSignal.FAIRLY_VALUED
    if upside is not None:
        if upside > params.undervalued_upside:
            signal = ValuationSignal.UNDERVALUED
        elif upside < params.overvalued_upside:
            signal = ValuationSignal.OVERVALUED

    return ValuationModels(
        dcf=dcf,
        ddm=ddm,
        multiples=multiples,
        anchor=anchor,
        upside=upside,
        signal=signal,
        issues=tuple(issues),
        assumptions=a,
    )
