"""Strategy roster: settings boundary, snapshots and concurrent evaluation."""

from __future__ import annotations

import pytest

from src.core.config import StrategySettings
from src.core.exceptions import ParameterValidationError, UnknownStrategyError
from src.strategies.base import SignalDirection
from src.strategies.engine import MAX_WEIGHT, MIN_WEIGHT, StrategyConfig, StrategyEngine
from src.strategies.registry import StrategyID
from tests.conftest import ScriptedStrategy, replay_window, scripted_engine, trending_window


class TestStrategyLookup:

    def test_exact_and_alias_lookup(self):
        assert StrategyID.lookup("rsi") is StrategyID.RSI
        assert StrategyID.lookup("Mean Reversion") is StrategyID.MEAN_REVERSION
        assert StrategyID.lookup(StrategyID.EMA) is StrategyID.EMA

    def test_no_substring_matching(self):
        assert StrategyID.lookup("RSI Divergence Breakout") is None
        assert StrategyID.lookup("Break") is None


class TestRosterSettings:

    def test_default_config(self):
        first, second = StrategyConfig(StrategyID.RSI), StrategyConfig(StrategyID.EMA)
        assert first.enabled and first.weight == 1.0
        assert dict(first.params) == {}
        assert first.to_dict() == {"name": "RSI", "enabled": True, "weight": 1.0, "params": {}}
        with pytest.raises(TypeError):
            first.params["period"] = 3
        assert second.params == {}

    def test_initial_settings_applied(self):
        engine = StrategyEngine({
            "RSI Swing": StrategySettings(weight=1.4, params={"period": 10}),
            "EMA": StrategySettings(enabled=False),
        })
        snap = engine.snapshot()
        assert snap.weight_of("RSI") == 1.4
        assert snap.get("RSI").params["period"] == 10
        assert not snap.get("EMA").enabled
        assert snap.version == 0

    def test_unknown_strategy_in_settings_rejected(self):
        with pytest.raises(UnknownStrategyError):
            StrategyEngine({"Momentum": StrategySettings()})

    def test_weight_is_clamped(self):
        engine = StrategyEngine()
        assert engine.update_weight("RSI", 5.0) == MAX_WEIGHT
        assert engine.snapshot().weight_of("RSI") == MAX_WEIGHT
        assert engine.update_weight("RSI", -1.0) == MIN_WEIGHT
        assert engine.update_weight("RSI", 1.25) == 1.25

    @pytest.mark.parametrize("bad", ["heavy", float("nan"), True, None])
    def test_malformed_weight_rejected_without_change(self, bad):
        engine = StrategyEngine()
        before = engine.snapshot()
        with pytest.raises(ParameterValidationError):
            engine.update_weight("RSI", bad)
        assert engine.snapshot() is before

    def test_unknown_name_is_a_no_op(self):
        engine = StrategyEngine()
        before = engine.snapshot()
        assert engine.update_weight("Nope", 1.0) is None
        assert engine.set_enabled("Nope", True) is False
        assert engine.snapshot() is before
        with pytest.raises(UnknownStrategyError):
            engine.update_parameter("Nope", "period", 10)

    def test_set_enabled_is_idempotent(self):
        engine = StrategyEngine()
        assert engine.set_enabled("RSI", False)
        assert engine.set_enabled("RSI", False)
        names = [c.name for c in engine.snapshot().enabled_configs()]
        assert "RSI" not in names
        assert len(names) == len(StrategyID) - 1

    def test_set_enabled_requires_bool(self):
        with pytest.raises(ParameterValidationError):
            StrategyEngine().set_enabled("RSI", "yes")

    def test_update_parameter_is_isolated(self):
        engine = StrategyEngine()
        ema_before = engine.snapshot().get("EMA").params
        resolved = engine.update_parameter("RSI", "period", 21)
        assert resolved["period"] == 21
        assert engine.snapshot().get("RSI").params["period"] == 21
        assert engine.snapshot().get("EMA").params == ema_before

    def test_rejected_parameter_leaves_state(self):
        engine = StrategyEngine()
        engine.update_parameter("RSI", "period", 21)
        before = engine.snapshot()
        with pytest.raises(ParameterValidationError):
            engine.update_parameter("RSI", "period", 500)
        with pytest.raises(ParameterValidationError):
            engine.update_parameter("RSI", "oversold", 80.0)
        assert engine.snapshot() is before
        assert engine.snapshot().get("RSI").params["period"] == 21

    def test_held_snapshot_never_changes(self):
        engine = StrategyEngine()
        snap = engine.snapshot()
        engine.update_weight("EMA", 1.7)
        engine.set_enabled("MACD", False)
        assert snap.weight_of("EMA") == 1.0
        assert snap.get("MACD").enabled
        assert engine.snapshot().weight_of("EMA") == 1.7
        assert engine.snapshot().version == snap.version + 2


class TestEvaluation:

    def test_evaluate_keeps_roster_order(self):
        engine = scripted_engine()
        signals = engine.evaluate(trending_window(60))
        assert [s.strategy_name for s in signals] == ["RSI", "MACD", "EMA", "MeanReversion", "Breakout"]

    def test_evaluate_uses_given_snapshot(self):
        engine = scripted_engine()
        snap = engine.snapshot()
        engine.set_enabled("RSI", False)
        assert len(engine.evaluate(trending_window(60), snap)) == 5
        assert len(engine.evaluate(trending_window(60))) == 4

    def test_real_roster_evaluates_every_strategy(self):
        signals = StrategyEngine().evaluate(replay_window(4))
        assert len(signals) == len(StrategyID)

    @pytest.mark.asyncio
    async def test_async_matches_sequential(self):
        engine = StrategyEngine()
        window = replay_window(8)
        assert await engine.evaluate_async(window) == engine.evaluate(window)

    @pytest.mark.asyncio
    async def test_crashing_strategy_is_omitted(self):
        strategies = {
            StrategyID.RSI: ScriptedStrategy("RSI", SignalDirection.BUY, 0.7),
            StrategyID.EMA: ScriptedStrategy("EMA", SignalDirection.SELL, 0.5,
                                             error=RuntimeError("boom")),
            StrategyID.MACD: ScriptedStrategy("MACD", SignalDirection.BUY, 0.6),
        }
        engine = StrategyEngine(strategies=strategies)
        signals = await engine.evaluate_async(trending_window(60))
        assert [s.strategy_name for s in signals] == ["RSI", "MACD"]
        assert [s.strategy_name for s in engine.evaluate(trending_window(60))] == ["RSI", "MACD"]

    @pytest.mark.asyncio
    async def test_slow_strategy_is_omitted(self):
        strategies = {
            StrategyID.RSI: ScriptedStrategy("RSI", SignalDirection.BUY, 0.7),
            StrategyID.EMA: ScriptedStrategy("EMA", SignalDirection.SELL, 0.5, delay=0.5),
        }
        engine = StrategyEngine(strategies=strategies)
        signals = await engine.evaluate_async(trending_window(60), timeout=0.05)
        assert [s.strategy_name for s in signals] == ["RSI"]
