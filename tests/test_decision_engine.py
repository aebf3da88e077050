"""
Tests for the decision cycle: routing, AI fallback, publication ordering
and cancellation of superseded cycles.
"""

from __future__ import annotations

import asyncio

import pytest

from src.ai.fusion import MODE_AI, MODE_STRATEGY_ONLY, FinalDecision
from src.core.config import CoreConfig, RoutingConfig
from src.core.engine import DecisionEngine, DecisionStore, decision_key
from src.core.routing import FallbackReason
from src.strategies.base import SignalDirection
from tests.conftest import FakePredictor, scripted_engine, trending_window

SELL_PAYLOAD = {"direction": "sell", "confidence": 0.9}


def _engine(config=None, predictor=None, **kw):
    return DecisionEngine(
        config or CoreConfig(),
        predictor=predictor,
        strategy_engine=kw.pop("strategy_engine", None) or scripted_engine(),
        **kw,
    )


def _decision(action=SignalDirection.HOLD, confidence=0.5):
    return FinalDecision(action, confidence, "test")


class TestDecisionStore:

    def test_newer_window_replaces_older(self):
        store = DecisionStore()
        key = decision_key("BTC/USD", "4h")
        first, second = _decision(SignalDirection.BUY), _decision(SignalDirection.SELL)
        assert store.publish(key, 100.0, first)
        assert store.publish(key, 200.0, second)
        assert store.latest(key) is second
        assert store.window_end(key) == 200.0

    def test_older_window_never_overwrites(self):
        store = DecisionStore()
        key = decision_key("BTC/USD", "4h")
        newer, older = _decision(SignalDirection.BUY), _decision(SignalDirection.SELL)
        assert store.publish(key, 200.0, newer)
        assert not store.publish(key, 100.0, older)
        assert store.latest(key) is newer

    def test_same_window_republishes(self):
        store = DecisionStore()
        key = decision_key("BTC/USD", "1h")
        store.publish(key, 100.0, _decision())
        replacement = _decision(SignalDirection.BUY)
        assert store.publish(key, 100.0, replacement)
        assert store.latest(key) is replacement

    def test_keys_are_independent(self):
        store = DecisionStore()
        store.publish(decision_key("BTC/USD", "4h"), 200.0, _decision())
        assert store.publish(decision_key("ETH/USD", "4h"), 100.0, _decision())
        assert store.publish(decision_key("BTC/USD", "1h"), 100.0, _decision())
        assert len(store.snapshot()) == 3
        store.clear()
        assert store.snapshot() == {}


class TestRouting:

    @pytest.mark.asyncio
    async def test_short_timeframe_skips_ai(self):
        predictor = FakePredictor(SELL_PAYLOAD)
        engine = _engine(predictor=predictor)
        result = await engine.run_cycle("BTC/USD", "1h", trending_window(60))
        assert predictor.calls == []
        assert result.decision.mode == MODE_STRATEGY_ONLY
        assert result.decision.action is SignalDirection.BUY
        assert result.fallback is None
        assert result.published

    @pytest.mark.asyncio
    async def test_ai_timeframe_fuses_prediction(self):
        predictor = FakePredictor(SELL_PAYLOAD)
        engine = _engine(predictor=predictor)
        result = await engine.run_cycle("BTC/USD", "4h", trending_window(60))
        assert len(predictor.calls) == 1
        assert result.decision.mode == MODE_AI
        assert result.decision.action is SignalDirection.SELL
        assert result.decision.ai_component.source == "AI-4h"
        assert result.ai_prediction.direction is SignalDirection.SELL
        assert result.ensemble.direction is SignalDirection.BUY
        assert engine.latest("BTC/USD", "4h") == result.decision

    @pytest.mark.asyncio
    async def test_run_timeframes(self):
        engine = _engine(predictor=FakePredictor(SELL_PAYLOAD))
        window = trending_window(60)
        results = await engine.run_timeframes("BTC/USD", {"5m": window, "4h": window})
        by_tf = {r.timeframe.value: r for r in results}
        assert by_tf["5m"].decision.ai_component is None
        assert by_tf["4h"].decision.ai_component is not None


class TestFallback:

    @pytest.mark.asyncio
    async def test_missing_predictor(self):
        engine = _engine()
        result = await engine.run_cycle("BTC/USD", "4h", trending_window(60))
        assert result.fallback.reason is FallbackReason.UNAVAILABLE
        assert result.decision.mode == MODE_STRATEGY_ONLY
        assert result.decision.action is SignalDirection.BUY
        assert list(engine.fallback_events) == [result.fallback]

    @pytest.mark.asyncio
    async def test_predictor_reports_unavailable(self, unavailable_predictor):
        engine = _engine(predictor=unavailable_predictor)
        result = await engine.run_cycle("BTC/USD", "4h", trending_window(60))
        assert result.fallback.reason is FallbackReason.UNAVAILABLE
        assert result.fallback.detail == "model not loaded"

    @pytest.mark.asyncio
    async def test_timeout(self, fast_config):
        engine = _engine(fast_config, predictor=FakePredictor(SELL_PAYLOAD, delay=1.0))
        result = await engine.run_cycle("BTC/USD", "4h", trending_window(60))
        assert result.fallback.reason is FallbackReason.TIMEOUT
        assert result.decision.mode == MODE_STRATEGY_ONLY
        assert result.ai_prediction is None

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        engine = _engine(predictor=FakePredictor({"foo": 1}))
        result = await engine.run_cycle("BTC/USD", "4h", trending_window(60))
        assert result.fallback.reason is FallbackReason.MALFORMED
        assert result.decision.action is SignalDirection.BUY

    @pytest.mark.asyncio
    async def test_predictor_crash(self):
        engine = _engine(predictor=FakePredictor(error=RuntimeError("cuda")))
        result = await engine.run_cycle("BTC/USD", "4h", trending_window(60))
        assert result.fallback.reason is FallbackReason.ERROR
        assert engine.get_stats()["fallbacks"] == 1

    @pytest.mark.asyncio
    async def test_short_window_ai_only(self):
        engine = _engine(predictor=FakePredictor(SELL_PAYLOAD))
        result = await engine.run_cycle("BTC/USD", "4h", trending_window(20))
        assert result.ensemble.confidence == 0.0
        assert [c.source for c in result.decision.components] == ["AI-4h"]
        assert result.decision.action is SignalDirection.SELL


class TestLastCycleWins:

    @pytest.mark.asyncio
    async def test_late_older_window_is_not_published(self):
        engine = _engine()
        newer = await engine.run_cycle("BTC/USD", "1h", trending_window(60))
        older = await engine.run_cycle("BTC/USD", "1h", trending_window(55))
        assert newer.published
        assert not older.published
        assert engine.latest("BTC/USD", "1h") == newer.decision

    @pytest.mark.asyncio
    async def test_newer_window_cancels_inflight_cycle(self):
        config = CoreConfig(routing=RoutingConfig(strategy_timeout_seconds=5.0))
        engine = _engine(config, strategy_engine=scripted_engine(delay=0.1))
        old_task = asyncio.ensure_future(
            engine.run_cycle("BTC/USD", "1h", trending_window(55))
        )
        await asyncio.sleep(0.01)
        newer = await engine.run_cycle("BTC/USD", "1h", trending_window(60))
        assert await old_task is None
        assert newer.published
        assert engine.store.window_end(decision_key("BTC/USD", "1h")) == newer.window_end
        assert engine.get_stats()["inflight"] == 0

    @pytest.mark.asyncio
    async def test_older_window_arriving_during_newer_cycle(self):
        config = CoreConfig(routing=RoutingConfig(strategy_timeout_seconds=5.0))
        engine = _engine(config, strategy_engine=scripted_engine(delay=0.1))
        newer_task = asyncio.ensure_future(
            engine.run_cycle("BTC/USD", "1h", trending_window(60))
        )
        await asyncio.sleep(0.01)
        assert await engine.run_cycle("BTC/USD", "1h", trending_window(55)) is None
        newer = await newer_task
        assert newer.published

    @pytest.mark.asyncio
    async def test_timeframes_do_not_cancel_each_other(self):
        config = CoreConfig(routing=RoutingConfig(strategy_timeout_seconds=5.0))
        engine = _engine(config, strategy_engine=scripted_engine(delay=0.05))
        results = await engine.run_timeframes(
            "BTC/USD", {"5m": trending_window(60), "1h": trending_window(60)},
        )
        assert all(r is not None and r.published for r in results)


class TestEngineAccessors:

    def test_record_trade_feeds_win_rates(self):
        engine = _engine()
        assert engine.record_trade("RSI", 1.0)
        assert not engine.record_trade("Momentum", 1.0)
        assert engine.performance_provider.trade_count("RSI") == 1

    @pytest.mark.asyncio
    async def test_cycle_result_serialises(self):
        engine = _engine(predictor=FakePredictor(SELL_PAYLOAD))
        result = await engine.run_cycle("BTC/USD", "4h", trending_window(60))
        payload = result.to_dict()
        assert payload["timeframe"] == "4h"
        assert payload["decision"]["action"] == "sell"
        assert payload["ensemble"]["regime"] == "trending_bullish"
        assert payload["fallback"] is None
        assert payload["published"] is True
