#!/usr/bin/env python3
"""
Rule-Based Strategy Backtester
==============================

Long-only, whole-share simulation of five indicator rules over a bar
history, with a fixed commission per fill.

STRATEGIES
----------
    rsi        BUY when RSI < oversold, SELL when RSI > overbought
    macd       BUY on a bullish MACD/signal crossover, SELL on a bearish one
    bollinger  BUY when Close < lower band, SELL when Close > upper band
    sma        BUY when the short SMA crosses above the long SMA, SELL below
    meanrev    BUY when the z-score of Close against the previous ``lookback``
               closes is below -zThreshold, SELL above +zThreshold

EXECUTION
---------
    - Signals are evaluated from the second bar onward, at the bar's Close
    - A BUY opens a position only when flat, investing all cash less
      commission in whole shares
    - A SELL closes the whole position
    - Equity is marked to market every bar, alongside a buy-and-hold
      benchmark scaled from the first Close

METRICS
-------
    Total return, CAGR (equity points / 252 years), maximum drawdown,
    Sharpe (sample stdev of equity returns x sqrt(252), no risk-free rate),
    win rate, closed trades, average win / loss, profit factor, final value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from quant_engine.config import TRADING_DAYS_YEAR
from quant_engine.technical_indicators import bollinger_bands, macd, rsi, sma
from quant_engine.utils import to_jsonable

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMERATIONS & DEFAULTS
# =============================================================================

class BacktestStrategy(Enum):
    """Rule strategies available to the backtester."""
    RSI = "rsi"
    MACD = "macd"
    BOLLINGER = "bollinger"
    SMA = "sma"
    MEANREV = "meanrev"


class TradeSide(Enum):
    BUY = "BUY"
    SELL = "SELL"


DEFAULT_PARAMS: Dict[BacktestStrategy, Dict[str, float]] = {
    BacktestStrategy.RSI: {"oversold": 30, "overbought": 70},
    BacktestStrategy.MACD: {"fast_period": 12, "slow_period": 26, "signal_period": 9},
    BacktestStrategy.BOLLINGER: {"period": 20, "std_dev": 2},
    BacktestStrategy.SMA: {"short_period": 20, "long_period": 50},
    BacktestStrategy.MEANREV: {"z_threshold": 2, "lookback": 20},
}

DEFAULT_CAPITAL: float = 100_000.0


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Trade:
    """One fill. P&L is only set on the SELL that closes a position."""
    timestamp: Any
    side: TradeSide
    price: float
    shares: int
    pnl: Optional[float] = None
    pnl_pct: Optional[float] = None


@dataclass(frozen=True)
class BacktestMetrics:
    """Performance summary; returns, drawdown and win stats in percent."""
    total_return: float
    cagr: float
    max_drawdown: float
    sharpe: float
    win_rate: float
    total_trades: int
    avg_win: float
    avg_loss: float
    profit_factor: float
    final_value: float


@dataclass(frozen=True)
class BacktestResult:
    """Complete backtest output."""
    strategy: BacktestStrategy
    params: Dict[str, float]
    initial_capital: float
    commission: float
    equity_curve: pd.DataFrame          # columns: value, benchmark
    trades: Tuple[Trade, ...]
    metrics: BacktestMetrics
    symbol: str = "UNKNOWN"

    def to_dict(self) -> Dict[str, Any]:
        out = to_jsonable({
            "symbol": self.symbol,
            "strategy": self.strategy,
            "params": self.params,
            "initial_capital": self.initial_capital,
            "commission": self.commission,
            "trades": self.trades,
            "metrics": self.metrics,
        })
        out["equity_curve"] = to_jsonable(self.equity_curve.rename_axis("timestamp"))
        return out


# =============================================================================
# SIGNAL RULES
# =============================================================================

def _crossover(fast: pd.Series, slow: pd.Series) -> Tuple[np.ndarray, np.ndarray]:
    """(bullish, bearish) crossings of ``fast`` through ``slow``."""
    prev_fast, prev_slow = fast.shift(1), slow.shift(1)
    available = fast.notna() & slow.notna() & prev_fast.notna() & prev_slow.notna()
    bullish = available & (prev_fast <= prev_slow) & (fast > slow)
    bearish = available & (prev_fast >= prev_slow) & (fast < slow)
    return bullish.to_numpy(), bearish.to_numpy()


def generate_strategy_signals(
    data: pd.DataFrame,
    strategy: BacktestStrategy,
    params: Mapping[str, float]
) -> np.ndarray:
    """
    Per-bar signal: +1 BUY, -1 SELL, 0 none.

    Args:
        data: Bars with ``Close``; an ``rsi`` column is reused when present
        strategy: Rule to apply
        params: Rule parameters (see DEFAULT_PARAMS)
    """
    close = data["Close"].astype(float).reset_index(drop=True)
    n = len(close)

    if strategy == BacktestStrategy.RSI:
        values = (
            data["rsi"].astype(float).reset_index(drop=True)
            if "rsi" in data else rsi(close)
        )
        buy = (values < params["oversold"]).to_numpy()
        sell = (values > params["overbought"]).to_numpy()

    elif strategy == BacktestStrategy.MACD:
        line, signal_line, _ = macd(
            close,
            int(params["fast_period"]),
            int(params["slow_period"]),
            int(params["signal_period"]),
        )
        buy, sell = _crossover(line, signal_line)

    elif strategy == BacktestStrategy.BOLLINGER:
        upper, _, lower = bollinger_bands(close, int(params["period"]), float(params["std_dev"]))
        buy = (close < lower).to_numpy()
        sell = (close > upper).to_numpy()

    elif strategy == BacktestStrategy.SMA:
        buy, sell = _crossover(
            sma(close, int(params["short_period"])),
            sma(close, int(params["long_period"])),
        )

    elif strategy == BacktestStrategy.MEANREV:
        lookback = int(params.get("lookback") or 20)
        threshold = float(params["z_threshold"])
        values = close.to_numpy()
        z = np.full(n, np.nan)
        if 0 < lookback < n:
            # Window for bar i is closes[i - lookback : i], excluding bar i
            windows = np.lib.stride_tricks.sliding_window_view(values, lookback)[: n - lookback]
            mean = windows.mean(axis=1)
            std = windows.std(axis=1)
            with np.errstate(divide="ignore", invalid="ignore"):
                z[lookback:] = np.where(std > 0, (values[lookback:] - mean) / std, np.nan)
        buy = z < -threshold
        sell = z > threshold

    else:
        raise ValueError(f"Unknown strategy: {strategy}")

    signals = np.zeros(n, dtype=int)
    signals[sell] = -1
    signals[buy] = 1
    return signals


# =============================================================================
# SIMULATION
# =============================================================================

def _resolve_strategy(strategy: Union[str, BacktestStrategy]) -> BacktestStrategy:
    if isinstance(strategy, BacktestStrategy):
        return strategy
    try:
        return BacktestStrategy(str(strategy).lower())
    except ValueError:
        valid = [s.value for s in BacktestStrategy]
        raise ValueError(f"Unknown strategy '{strategy}'. Valid strategies: {valid}") from None


def _compute_metrics(
    equity: pd.Series,
    trades: List[Trade],
    initial_capital: float
) -> BacktestMetrics:
    final_value = float(equity.iloc[-1]) if len(equity) else initial_capital
    total_return = (final_value - initial_capital) / initial_capital * 100

    years = len(equity) / TRADING_DAYS_YEAR
    cagr = ((final_value / initial_capital) ** (1 / years) - 1) * 100 if years > 0 else 0.0

    values = equity.to_numpy(dtype=float)
    if len(values):
        peaks = np.maximum.accumulate(np.maximum(values, initial_capital))
        max_drawdown = min(0.0, float(((values - peaks) / peaks).min() * 100))
    else:
        max_drawdown = 0.0

    step_returns = np.diff(values) / values[:-1] if len(values) > 1 else np.array([])
    std = float(np.std(step_returns, ddof=1)) if len(step_returns) > 1 else 0.0
    sharpe = float(np.mean(step_returns)) / std * np.sqrt(TRADING_DAYS_YEAR) if std > 0 else 0.0

    closed = [t for t in trades if t.side == TradeSide.SELL]
    wins = [t for t in closed if t.pnl_pct > 0]
    losses = [t for t in closed if t.pnl_pct <= 0]

    gross_profit = sum(t.pnl or 0.0 for t in wins)
    gross_loss = abs(sum(t.pnl or 0.0 for t in losses))
    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    else:
        profit_factor = float("inf") if gross_profit > 0 else 0.0

    return BacktestMetrics(
        total_return=total_return,
        cagr=cagr,
        max_drawdown=max_drawdown,
        sharpe=sharpe,
        win_rate=len(wins) / len(closed) * 100 if closed else 0.0,
        total_trades=len(closed),
        avg_win=float(np.mean([t.pnl_pct for t in wins])) if wins else 0.0,
        avg_loss=float(np.mean([t.pnl_pct for t in losses])) if losses else 0.0,
        profit_factor=profit_factor,
        final_value=final_value,
    )


def run_backtest(
    data: pd.DataFrame,
    strategy: Union[str, BacktestStrategy] = BacktestStrategy.RSI,
    params: Optional[Mapping[str, float]] = None,
    initial_capital: float = DEFAULT_CAPITAL,
    commission: float = 0.0,
    symbol: str = "UNKNOWN"
) -> BacktestResult:
    """
    Simulate one rule strategy.

    Args:
        data: Bars with ``Close`` (the enriched series from run_analysis works)
        strategy: Strategy key or BacktestStrategy
        params: Overrides merged onto DEFAULT_PARAMS for the strategy
        initial_capital: Starting cash
        commission: Fixed cost per fill
        symbol: Label for reports

    Returns:
        BacktestResult
    """
    strategy = _resolve_strategy(strategy)
    merged = dict(DEFAULT_PARAMS[strategy])
    if params:
        merged.update(params)

    if initial_capital <= 0:
        raise ValueError("initial_capital must be positive")

    signals = generate_strategy_signals(data, strategy, merged)
    closes = data["Close"].to_numpy(dtype=float)
    index = data.index
    base_price = closes[0] if len(closes) and closes[0] else 1.0

    cash = initial_capital
    shares = 0
    entry_price = 0.0
    trades: List[Trade] = []
    values: List[float] = []
    benchmark: List[float] = []

    for i in range(1, len(closes)):
        price = closes[i]

        if signals[i] == 1 and shares == 0:
            available = cash - commission
            if available > 0:
                size = int(available // price)
                if size > 0:
                    shares = size
                    entry_price = price
                    cash -= shares * price + commission
                    trades.append(Trade(index[i], TradeSide.BUY, price, shares))

        if signals[i] == -1 and shares > 0:
            cash += shares * price - commission
            pnl = (price - entry_price) * shares - commission * 2
            pnl_pct = (price - entry_price) / entry_price * 100
            trades.append(Trade(index[i], TradeSide.SELL, price, shares, pnl, pnl_pct))
            shares = 0

        values.append(cash + shares * price)
        benchmark.append(initial_capital * price / base_price)

    equity_curve = pd.DataFrame({"value": values, "benchmark": benchmark}, index=index[1:])
    metrics = _compute_metrics(equity_curve["value"], trades, initial_capital)

    logger.info(
        f"Backtest {symbol} [{strategy.value}]: return={metrics.total_return:+.2f}% "
        f"sharpe={metrics.sharpe:.2f} trades={metrics.total_trades}"
    )

    return BacktestResult(
        strategy=strategy,
        params=merged,
        initial_capital=initial_capital,
        commission=commission,
        equity_curve=equity_curve,
        trades=tuple(trades),
        metrics=metrics,
        symbol=symbol,
    )


# =============================================================================
# REPORTING
# =============================================================================

def format_backtest_report(result: BacktestResult) -> str:
    """
    Format backtest result as human-readable text report.

    Args:
        result: BacktestResult from run_backtest

    Returns:
        Formatted string report
    """
    m = result.metrics
    params = ", ".join(f"{k}={v}" for k, v in result.params.items())
    profit_factor = "inf" if np.isinf(m.profit_factor) else f"{m.profit_factor:.2f}"

    lines = [
        "=" * 70,
        "BACKTEST PERFORMANCE REPORT",
        "=" * 70,
        f"Symbol: {result.symbol}",
        f"Strategy: {result.strategy.value} ({params})",
        f"Bars Simulated: {len(result.equity_curve):,}",
        "",
        "-" * 70,
        "CAPITAL",
        "-" * 70,
        f"Initial Capital: ${result.initial_capital:,.2f}",
        f"Final Value:     ${m.final_value:,.2f}",
        f"Total Return:    {m.total_return:+.2f}%",
        f"Commission:      ${result.commission:,.2f} per fill",
        "",
        "-" * 70,
        "KEY METRICS",
        "-" * 70,
        f"  CAGR:              {m.cagr:+.2f}%",
        f"  Sharpe Ratio:      {m.sharpe:.3f}",
        f"  Maximum Drawdown:  {m.max_drawdown:.2f}%",
        f"  Win Rate:          {m.win_rate:.1f}%",
        "",
        "-" * 70,
        "TRADE ANALYSIS",
        "-" * 70,
        f"Closed Trades:   {m.total_trades}",
        f"Average Win:     {m.avg_win:+.2f}%",
        f"Average Loss:    {m.avg_loss:+.2f}%",
        f"Profit Factor:   {profit_factor}",
    ]

    if len(result.equity_curve):
        bench = result.equity_curve["benchmark"].iloc[-1]
        bench_return = (bench - result.initial_capital) / result.initial_capital * 100
        lines.append(f"Buy & Hold:      {bench_return:+.2f}%")

    lines.append("=" * 70)
    return "\n".join(lines)
