import json

import numpy as np
import pandas as pd
import pytest

from quant_engine.analysis import run_analysis
from quant_engine.backtest_engine import (
    BacktestStrategy,
    TradeSide,
    format_backtest_report,
    generate_strategy_signals,
    run_backtest,
)


@pytest.fixture
def scripted_bars():
    """RSI column drives a single round trip: buy at 10, sell at 15."""
    return pd.DataFrame(
        {
            "Close": [10.0, 10.0, 12.0, 15.0, 15.0],
            "rsi": [50.0, 20.0, 50.0, 80.0, 50.0],
        },
        index=pd.bdate_range("2024-01-01", periods=5),
    )


class TestSignals:

    def test_rsi_rule(self, scripted_bars):
        signals = generate_strategy_signals(
            scripted_bars, BacktestStrategy.RSI, {"oversold": 30, "overbought": 70}
        )
        assert signals.tolist() == [0, 1, 0, -1, 0]

    def test_sma_crossover(self):
        closes = [10.0, 10.0, 10.0, 9.0, 12.0, 12.0, 8.0]
        data = pd.DataFrame({"Close": closes})
        signals = generate_strategy_signals(
            data, BacktestStrategy.SMA, {"short_period": 1, "long_period": 3}
        )
        # price (SMA1) vs SMA3: below at 3, above at 4, below again at 6
        assert signals.tolist() == [0, 0, 0, -1, 1, 0, -1]

    def test_meanrev_excludes_current_bar(self):
        data = pd.DataFrame({"Close": [10.0, 11.0] * 10 + [20.0]})
        signals = generate_strategy_signals(
            data, BacktestStrategy.MEANREV, {"z_threshold": 2, "lookback": 20}
        )
        assert signals[-1] == -1
        assert (signals[:-1] == 0).all()


class TestSimulation:

    def test_round_trip(self, scripted_bars):
        result = run_backtest(scripted_bars, "rsi", initial_capital=100_000)
        buy, sell = result.trades
        assert buy.side == TradeSide.BUY and buy.shares == 10_000 and buy.price == 10.0
        assert sell.side == TradeSide.SELL and sell.pnl == pytest.approx(50_000)
        assert sell.pnl_pct == pytest.approx(50.0)

        m = result.metrics
        assert m.final_value == pytest.approx(150_000)
        assert m.total_return == pytest.approx(50.0)
        assert m.total_trades == 1
        assert m.win_rate == 100.0
        assert m.avg_win == pytest.approx(50.0)
        assert np.isinf(m.profit_factor)
        assert len(result.equity_curve) == 4
        assert result.equity_curve["benchmark"].iloc[-1] == pytest.approx(150_000)

    def test_commission(self, scripted_bars):
        result = run_backtest(scripted_bars, "rsi", initial_capital=100_000, commission=10)
        buy, sell = result.trades
        assert buy.shares == 9_999
        assert sell.pnl == pytest.approx(5 * 9_999 - 20)
        assert result.metrics.final_value == pytest.approx(149_975)

    def test_param_overrides_merge(self, scripted_bars):
        result = run_backtest(scripted_bars, "rsi", params={"oversold": 10})
        assert result.params == {"oversold": 10, "overbought": 70}
        assert result.trades == ()
        assert result.metrics.final_value == pytest.approx(100_000)

    def test_invalid_inputs(self, scripted_bars):
        with pytest.raises(ValueError, match="Unknown strategy"):
            run_backtest(scripted_bars, "momentum")
        with pytest.raises(ValueError):
            run_backtest(scripted_bars, "rsi", initial_capital=0)

    @pytest.mark.parametrize("strategy", [s.value for s in BacktestStrategy])
    def test_every_strategy_on_enriched_series(self, strategy, random_walk_bars):
        data = run_analysis("RAND", random_walk_bars).data
        result = run_backtest(data, strategy, symbol="RAND")
        assert len(result.equity_curve) == len(data) - 1
        assert result.metrics.final_value > 0
        assert result.metrics.max_drawdown <= 0
        sides = [t.side for t in result.trades]
        # long-only: fills alternate BUY, SELL, BUY, ...
        assert all(side == (TradeSide.BUY if i % 2 == 0 else TradeSide.SELL) for i, side in enumerate(sides))


class TestReporting:

    def test_report_text(self, scripted_bars):
        report = format_backtest_report(run_backtest(scripted_bars, "rsi", symbol="TEST"))
        assert "BACKTEST PERFORMANCE REPORT" in report
        assert "Symbol: TEST" in report
        assert "Profit Factor:   inf" in report
        assert "Buy & Hold:      +50.00%" in report

    def test_to_dict_is_json(self, scripted_bars):
        payload = run_backtest(scripted_bars, "rsi").to_dict()
        text = json.dumps(payload, allow_nan=False)
        decoded = json.loads(text)
        assert decoded["strategy"] == "rsi"
        assert decoded["metrics"]["profit_factor"] is None
        assert decoded["trades"][0]["side"] == "BUY"
        assert len(decoded["equity_curve"]) == 4
