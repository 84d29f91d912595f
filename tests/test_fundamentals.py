import pytest

from quant_engine.analysis import run_analysis
from quant_engine.fundamentals import (
    FundamentalsProvider,
    FundamentalsRegistry,
    SyntheticFundamentalsProvider,
    get_fundamentals_provider,
    hash_ticker,
    seeded_random,
)


@pytest.fixture
def isolated_registry(monkeypatch):
    monkeypatch.setattr(FundamentalsRegistry, "_providers", dict(FundamentalsRegistry._providers))
    return FundamentalsRegistry


class TestSeeding:

    def test_hash_ticker(self):
        assert hash_ticker("") == 0
        assert hash_ticker("A") == 65
        assert hash_ticker("AB") == 65 * 31 + 66

    def test_hash_wraps_to_32_bits(self):
        assert 0 <= hash_ticker("A-VERY-LONG-TICKER-SYMBOL") < 2 ** 31 + 1

    def test_seeded_random_in_unit_interval(self):
        for seed in (0, 1, 65, 2081, 123456789):
            assert 0.0 <= seeded_random(seed) < 1.0


class TestSyntheticProvider:

    def test_deterministic(self):
        provider = SyntheticFundamentalsProvider()
        assert provider.get_fundamentals("AAPL", 187.5) == provider.get_fundamentals("AAPL", 187.5)

    def test_different_tickers_differ(self):
        provider = SyntheticFundamentalsProvider()
        assert provider.get_fundamentals("AAPL", 100).shares != provider.get_fundamentals("MSFT", 100).shares

    def test_shape(self):
        f = SyntheticFundamentalsProvider().get_fundamentals("NVDA", 450.0)
        assert f.source == "Modeled"
        assert f.currency == "USD"
        assert [p.label for p in f.periods] == ["LTM", "FY-1", "FY-2"]
        assert f.market_cap == pytest.approx(450.0 * f.shares)
        assert 0.4e9 <= f.shares <= 5e9
        assert f.ratios.op_margin < f.ratios.gross_margin
        assert f.ratios.net_margin < f.ratios.op_margin
        assert f.per_share.eps == pytest.approx(f.net_income / f.shares)

    def test_missing_ticker_and_price(self):
        f = SyntheticFundamentalsProvider().get_fundamentals("", None)
        assert f.ticker == "UNKNOWN"
        assert f.market_cap == pytest.approx(100.0 * f.shares)

    def test_to_dict(self):
        payload = SyntheticFundamentalsProvider().get_fundamentals("IBM", 150.0).to_dict()
        assert payload["source"] == "Modeled"
        assert len(payload["periods"]) == 3


class TestRegistry:

    def test_synthetic_registered(self):
        assert "synthetic" in FundamentalsRegistry.list_available()
        assert isinstance(get_fundamentals_provider("synthetic"), SyntheticFundamentalsProvider)

    def test_unknown_provider(self):
        with pytest.raises(KeyError, match="not found"):
            FundamentalsRegistry.get("bloomberg")

    def test_register_requires_subclass(self, isolated_registry):
        with pytest.raises(ValueError):
            isolated_registry.register("bogus", dict)

    def test_register_custom_provider(self, isolated_registry):
        class FixedProvider(FundamentalsProvider):
            name = "fixed"

            def get_fundamentals(self, ticker, price):
                return SyntheticFundamentalsProvider().get_fundamentals("FIXED", price)

        isolated_registry.register("fixed", FixedProvider)
        provider = isolated_registry.create("fixed")
        assert provider.get_fundamentals("AAPL", 10.0).ticker == "FIXED"

    def test_lookups_leave_registry_unchanged(self, random_walk_bars):
        before = dict(FundamentalsRegistry._providers)
        first = FundamentalsRegistry.create("synthetic")
        second = FundamentalsRegistry.create("synthetic")
        assert first is not second
        run_analysis("RAND", random_walk_bars)
        with pytest.raises(KeyError):
            FundamentalsRegistry.get("missing")
        assert FundamentalsRegistry._providers == before
