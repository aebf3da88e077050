from __future__ import annotations

import pytest

from src.ai.performance import (
    DEFAULT_WIN_RATE,
    StaticWinRateProvider,
    StrategyPerformanceProvider,
    TradeHistoryWinRateProvider,
)
from src.core.config import CoreConfig


@pytest.fixture
def prior():
    return StaticWinRateProvider(CoreConfig().win_rates)


class TestStaticWinRates:

    def test_lookup_by_id_and_alias(self, prior):
        assert prior.win_rate("RSI") == 0.642
        assert prior.win_rate("rsi swing") == 0.642

    def test_unknown_name_gets_default(self, prior):
        assert prior.win_rate("RSI Divergence Breakout") == DEFAULT_WIN_RATE

    def test_unknown_table_entry_ignored(self):
        provider = StaticWinRateProvider({"Momentum": 0.9, "EMA": 0.7})
        assert dict(provider.snapshot()) == {"EMA": 0.7}

    def test_snapshot_is_read_only(self, prior):
        with pytest.raises(TypeError):
            prior.snapshot()["RSI"] = 0.1

    def test_satisfies_protocol(self, prior):
        assert isinstance(prior, StrategyPerformanceProvider)
        assert isinstance(TradeHistoryWinRateProvider(), StrategyPerformanceProvider)


class TestTradeHistory:

    def test_prior_until_enough_trades(self, prior):
        tracker = TradeHistoryWinRateProvider(prior, min_trades=10)
        for _ in range(9):
            tracker.record_trade("RSI", 1.0)
        assert tracker.win_rate("RSI") == 0.642
        tracker.record_trade("RSI", 1.0)
        assert tracker.win_rate("RSI") == 1.0

    def test_observed_rate(self, prior):
        tracker = TradeHistoryWinRateProvider(prior, min_trades=10)
        for pnl in [1.0] * 7 + [-1.0] * 3:
            tracker.record_trade("MACD", pnl)
        assert tracker.win_rate("MACD") == pytest.approx(0.7)
        assert tracker.win_rate("EMA") == 0.687
        assert tracker.trade_count("MACD") == 10

    def test_sliding_window(self, prior):
        tracker = TradeHistoryWinRateProvider(prior, min_trades=10, window_trades=10)
        for pnl in [1.0] * 10 + [-1.0] * 10:
            tracker.record_trade("EMA", pnl)
        assert tracker.win_rate("EMA") == 0.0
        assert tracker.trade_count("EMA") == 10

    def test_unknown_strategy_rejected(self, prior):
        tracker = TradeHistoryWinRateProvider(prior)
        assert tracker.record_trade("Momentum", 1.0) is False
        assert tracker.get_stats() == {}

    def test_held_snapshot_is_stable(self, prior):
        tracker = TradeHistoryWinRateProvider(prior, min_trades=1, window_trades=5)
        before = tracker.snapshot()
        tracker.record_trade("RSI", -1.0)
        assert before["RSI"] == 0.642
        assert tracker.snapshot()["RSI"] == 0.0

    def test_stats(self, prior):
        tracker = TradeHistoryWinRateProvider(prior, min_trades=2)
        tracker.record_trade("Breakout", 2.0)
        tracker.record_trade("Breakout", -0.5)
        stats = tracker.get_stats()["Breakout"]
        assert stats["trades"] == 2
        assert stats["observed"] is True
        assert stats["win_rate"] == 0.5
        assert stats["total_pnl"] == 1.5
