"""
Fundamentals Providers
----------------------
Interface and registry for the company fundamentals that feed the
intrinsic-value models.

The only shipped provider is ``synthetic``: a deterministic generator seeded
by the ticker, producing plausible but *modeled* financials (tagged
``source="Modeled"``). A provider backed by real filings plugs in by
subclassing FundamentalsProvider and registering under a new name; the
valuation engine only ever sees the Fundamentals value.

Usage:
    provider = FundamentalsRegistry.create(config.fundamentals_provider)
    fundamentals = provider.get_fundamentals("AAPL", 187.4)
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type

from quant_engine.utils import clamp, to_jsonable

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class FinancialPeriod:
    """Income-statement snapshot for one reporting period."""
    label: str
    revenue: float
    net_income: float
    fcf: float
    gross_margin: float
    op_margin: float
    net_margin: float
    fcf_margin: float


@dataclass(frozen=True)
class FinancialRatios:
    gross_margin: float
    op_margin: float
    net_margin: float
    fcf_margin: float
    roe: float
    roa: float
    current_ratio: float


@dataclass(frozen=True)
class PerShareMetrics:
    eps: Optional[float]
    fcf_per_share: Optional[float]
    dividend_per_share: Optional[float]


@dataclass(frozen=True)
class Fundamentals:
    """Company fundamentals as consumed by the valuation models."""
    ticker: str
    source: str
    currency: str
    shares: float
    market_cap: float
    revenue: float
    net_income: float
    fcf: float
    capex: float
    revenue_growth: Optional[float]
    debt_to_equity: float
    equity: float
    cash: float
    debt: float
    ratios: FinancialRatios
    per_share: PerShareMetrics
    periods: Tuple[FinancialPeriod, ...]

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


# =============================================================================
# PROVIDER INTERFACE & REGISTRY
# =============================================================================

class FundamentalsProvider(ABC):
    """Abstract source of company fundamentals."""

    name: str = ""

    @abstractmethod
    def get_fundamentals(self, ticker: str, price: Optional[float]) -> Fundamentals:
        """
        Fundamentals for ``ticker`` at the current ``price``.

        Implementations must be deterministic for a given (ticker, price).
        """


class FundamentalsRegistry:
    """
    Registry of fundamentals providers.

    Providers register by name so the configuration can select one without
    the valuation code knowing which kinds exist.

    The table is shared by the whole process. Register providers at import
    time, before analyses run on several threads; lookups never write to it
    and ``create`` returns a new provider instance on every call.
    """

    _providers: Dict[str, Type[FundamentalsProvider]] = {}

    @classmethod
    def register(cls, name: str, provider_class: Type[FundamentalsProvider]) -> None:
        if not issubclass(provider_class, FundamentalsProvider):
            raise ValueError(f"{provider_class} must inherit from FundamentalsProvider")
        if name in cls._providers:
            logger.warning(f"Fundamentals provider '{name}' already registered, overwriting")
        cls._providers[name] = provider_class

    @classmethod
    def get(cls, name: str) -> Type[FundamentalsProvider]:
        if name not in cls._providers:
            raise KeyError(
                f"Fundamentals provider '{name}' not found. "
                f"Available providers: {cls.list_available()}"
            )
        return cls._providers[name]

    @classmethod
    def list_available(cls) -> List[str]:
        return sorted(cls._providers)

    @classmethod
    def create(cls, name: str) -> FundamentalsProvider:
        return cls.get(name)()


def get_fundamentals_provider(name: str) -> FundamentalsProvider:
    """Instantiate the provider registered under ``name``."""
    return FundamentalsRegistry.create(name)


# =============================================================================
# SEEDED GENERATOR
# =============================================================================

def hash_ticker(ticker: str) -> int:
    """Absolute value of the 32-bit ``h = h * 31 + char`` string hash."""
    h = 0
    for char in ticker:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def seeded_random(seed: float) -> float:
    """Fractional part of sin(seed) * 10000, in [0, 1)."""
    x = math.sin(seed) * 10000
    return x - math.floor(x)


def seeded_range(seed: int, salt: int, lo: float, hi: float) -> float:
    return lo + (hi - lo) * seeded_random(seed + salt * 999)


class SyntheticFundamentalsProvider(FundamentalsProvider):
    """
    Deterministic modeled fundamentals.

    Every quantity is drawn from a fixed range with its own salt, so the
    same ticker always yields the same company and the figures scale with
    the price passed in. Margins are chained (operating below gross, net
    below operating) to stay internally consistent.
    """

    name = "synthetic"
    period_labels: Tuple[str, ...] = ("LTM", "FY-1", "FY-2")

    def get_fundamentals(self, ticker: str, price: Optional[float]) -> Fundamentals:
        ticker = ticker or "UNKNOWN"
        seed = hash_ticker(ticker)
        px = price if price else 100.0

        shares = seeded_range(seed, 1, 0.4, 5.0) * 1e9
        market_cap = px * shares
        price_to_sales = seeded_range(seed, 2, 1.5, 8)
        revenue = market_cap / price_to_sales

        gross_margin = seeded_range(seed, 3, 0.3, 0.7)
        op_margin = clamp(gross_margin * seeded_range(seed, 4, 0.35, 0.7), 0.08, gross_margin - 0.05)
        net_margin = clamp(op_margin * seeded_range(seed, 5, 0.6, 0.85), 0.03, op_margin - 0.01)
        fcf_margin = clamp(op_margin * seeded_range(seed, 6, 0.6, 0.95), 0.02, 0.35)

        revenue_growth = seeded_range(seed, 7, -0.05, 0.18)
        debt_to_equity = seeded_range(seed, 8, 0.0, 1.6)
        equity = market_cap * seeded_range(seed, 9, 0.35, 0.8)
        debt = equity * debt_to_equity
        cash = revenue * seeded_range(seed, 10, 0.04, 0.25)
        capex = revenue * seeded_range(seed, 11, 0.03, 0.08)

        net_income = revenue * net_margin
        fcf = revenue * fcf_margin
        dividend_yield = seeded_range(seed, 12, 0.0, 0.035)

        ratios = FinancialRatios(
            gross_margin=gross_margin,
            op_margin=op_margin,
            net_margin=net_margin,
            fcf_margin=fcf_margin,
            roe=seeded_range(seed, 13, 0.08, 0.35),
            roa=seeded_range(seed, 14, 0.03, 0.18),
            current_ratio=seeded_range(seed, 15, 0.9, 2.5),
        )
        per_share = PerShareMetrics(
            eps=net_income / shares,
            fcf_per_share=fcf / shares,
            dividend_per_share=px * dividend_yield,
        )

        return Fundamentals(
            ticker=ticker,
            source="Modeled",
            currency="USD",
            shares=shares,
            market_cap=market_cap,
            revenue=revenue,
            net_income=net_income,
            fcf=fcf,
            capex=capex,
            revenue_growth=revenue_growth,
            debt_to_equity=debt_to_equity,
            equity=equity,
            cash=cash,
            debt=debt,
            ratios=ratios,
            per_share=per_share,
            periods=self._history(seed, revenue, revenue_growth, ratios),
        )

    def _history(
        self,
        seed: int,
        revenue: float,
        growth: float,
        ratios: FinancialRatios
    ) -> Tuple[FinancialPeriod, ...]:
        """Back-cast prior periods by deflating revenue at the growth rate."""
        periods = []
        for idx, label in enumerate(self.period_labels):
            scale = 1 / (1 + growth) ** idx
            drift = 1 + seeded_range(seed, 20 + idx, -0.03, 0.03)
            period_revenue = revenue * scale * drift

            gm = clamp(ratios.gross_margin * (1 + seeded_range(seed, 30 + idx, -0.02, 0.02)), 0.2, 0.8)
            om = clamp(ratios.op_margin * (1 + seeded_range(seed, 40 + idx, -0.03, 0.03)), 0.05, gm - 0.04)
            nm = clamp(ratios.net_margin * (1 + seeded_range(seed, 50 + idx, -0.03, 0.03)), 0.02, om - 0.01)
            fm = clamp(ratios.fcf_margin * (1 + seeded_range(seed, 60 + idx, -0.04, 0.04)), 0.02, 0.35)

            periods.append(FinancialPeriod(
                label=label,
                revenue=period_revenue,
                net_income=period_revenue * nm,
                fcf=period_revenue * fm,
                gross_margin=gm,
                op_margin=om,
                net_margin=nm,
                fcf_margin=fm,
            ))
        return tuple(periods)


FundamentalsRegistry.register(SyntheticFundamentalsProvider.name, SyntheticFundamentalsProvider)
