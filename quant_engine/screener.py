"""
Multi-Ticker Screener

Analyzes a universe of instruments independently, reduces each result to
one screening row and keeps the rows that pass a ScreenFilter.

FILTERS
    rsi      "any" | "<30" | "30-70" | ">70"
    sharpe   "any" | ">0.5" | ">1.0" | ">1.5"
    regime   "any" | substring of the regime label (e.g. "UPTREND")
    action   "any" | substring of the action (e.g. "BUY" also matches STRONG BUY)
    risk     "any" | exact risk level ("LOW", "MEDIUM", "HIGH")

Usage:
    rows = screen_universe({"AAPL": aapl_bars, "MSFT": msft_bars}, PRESETS["momentum"])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from quant_engine.analysis import AnalysisResult, run_analysis
from quant_engine.config import DEFAULT_CONFIG, AnalysisConfig
from quant_engine.data_collector import BarsLike
from quant_engine.utils import optional_float, to_jsonable

logger = logging.getLogger(__name__)

ANY = "any"
RSI_BANDS = (ANY, "<30", "30-70", ">70")
SHARPE_FLOORS = {ANY: None, ">0.5": 0.5, ">1.0": 1.0, ">1.5": 1.5}


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class ScreenRow:
    """One instrument's screening summary."""
    ticker: str
    price: float
    rsi: Optional[float]
    sharpe: float
    regime: str
    action: str
    risk_level: str
    confidence: float
    volatility: float
    upside: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


@dataclass(frozen=True)
class ScreenFilter:
    """Screening criteria; every field defaults to "any"."""
    rsi: str = ANY
    sharpe: str = ANY
    regime: str = ANY
    action: str = ANY
    risk: str = ANY

    def __post_init__(self):
        if self.rsi not in RSI_BANDS:
            raise ValueError(f"Invalid RSI band '{self.rsi}'. Valid: {list(RSI_BANDS)}")
        if self.sharpe not in SHARPE_FLOORS:
            raise ValueError(f"Invalid Sharpe floor '{self.sharpe}'. Valid: {list(SHARPE_FLOORS)}")


PRESETS: Dict[str, ScreenFilter] = {
    "oversold": ScreenFilter(rsi="<30"),
    "momentum": ScreenFilter(sharpe=">0.5", regime="UPTREND", action="BUY"),
    "high_sharpe": ScreenFilter(sharpe=">1.0"),
    "low_vol": ScreenFilter(risk="LOW"),
}


# =============================================================================
# SCREENING
# =============================================================================

def summarize(result: AnalysisResult) -> ScreenRow:
    """Reduce an AnalysisResult to a screening row."""
    return ScreenRow(
        ticker=result.ticker,
        price=result.current_price,
        rsi=optional_float(result.last_bar.get("rsi")),
        sharpe=result.risk.sharpe,
        regime=result.regime.overall.value,
        action=result.recommendation.action.value,
        risk_level=result.risk.risk_level.value,
        confidence=result.recommendation.confidence,
        volatility=result.risk.volatility,
        upside=result.valuation_models.upside,
    )


def matches_filter(row: ScreenRow, criteria: ScreenFilter) -> bool:
    """True when ``row`` passes every non-"any" criterion."""
    if criteria.rsi != ANY:
        if row.rsi is None:
            return False
        if criteria.rsi == "<30" and row.rsi >= 30:
            return False
        if criteria.rsi == "30-70" and (row.rsi < 30 or row.rsi > 70):
            return False
        if criteria.rsi == ">70" and row.rsi <= 70:
            return False

    floor = SHARPE_FLOORS[criteria.sharpe]
    if floor is not None and (row.sharpe is None or row.sharpe <= floor):
        return False

    if criteria.regime != ANY and criteria.regime.upper() not in (row.regime or "").upper():
        return False

    if criteria.action != ANY and criteria.action.upper() not in (row.action or "").upper():
        return False

    if criteria.risk != ANY and (row.risk_level or "").upper() != criteria.risk.upper():
        return False

    return True


def screen_universe(
    series_by_ticker: Mapping[str, BarsLike],
    criteria: ScreenFilter = ScreenFilter(),
    config: AnalysisConfig = DEFAULT_CONFIG
) -> List[ScreenRow]:
    """
    Analyze each ticker and return the matching rows, highest confidence first.

    A ticker whose analysis raises is logged and left out.
    """
    rows: List[ScreenRow] = []
    for ticker, bars in series_by_ticker.items():
        try:
            row = summarize(run_analysis(ticker, bars, config))
        except ValueError as e:
            logger.warning(f"Skipping {ticker}: {e}")
            continue
        if matches_filter(row, criteria):
            rows.append(row)

    rows.sort(key=lambda r: r.confidence, reverse=True)
    logger.info(f"Screened {len(series_by_ticker)} tickers: {len(rows)} matched")
    return rows
