"""Shared test fixtures and stubs for the decision-core tests.

Provides candle-window factories (deterministic shapes and seeded replay
series), scripted strategies and fake AI predictors.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, List, Mapping, Optional, Sequence

import numpy as np
import pytest

from src.core.config import CoreConfig, RoutingConfig
from src.core.exceptions import AIUnavailableError
from src.core.models import CandleWindow, Timeframe
from src.strategies.base import BaseStrategy, SignalDirection, StrategySignal
from src.strategies.engine import StrategyEngine
from src.strategies.registry import StrategyID

BASE_TS = 1_700_000_000.0


# ---------------------------------------------------------------------------
# Candle factories
# ---------------------------------------------------------------------------


def make_window(
    closes: Sequence[float],
    spread: float = 0.1,
    volumes: Optional[Sequence[float]] = None,
    start: float = BASE_TS,
    step: float = 3600.0,
) -> CandleWindow:
    """Window whose bars open at the previous close with +/- ``spread`` wicks."""
    closes = [float(c) for c in closes]
    opens = [closes[0]] + closes[:-1]
    highs = [max(o, c) + spread for o, c in zip(opens, closes)]
    lows = [min(o, c) - spread for o, c in zip(opens, closes)]
    times = [start + i * step for i in range(len(closes))]
    if volumes is None:
        volumes = [100.0] * len(closes)
    return CandleWindow.from_arrays(times, opens, highs, lows, closes, volumes)


def trending_window(n: int = 60, slope: float = 0.1, start_price: float = 100.0, **kw) -> CandleWindow:
    """Perfectly linear closes: R^2 of 1 and low volatility."""
    return make_window([start_price + slope * i for i in range(n)], **kw)


def ranging_window(n: int = 60, amplitude: float = 0.3, **kw) -> CandleWindow:
    """Closes alternating between two levels: no trend, low volatility."""
    return make_window([100.0 + (amplitude if i % 2 else 0.0) for i in range(n)], **kw)


def volatile_window(n: int = 60, **kw) -> CandleWindow:
    """Five-percent swings every bar."""
    return make_window([100.0 + (5.0 if i % 2 else 0.0) for i in range(n)], spread=1.5, **kw)


def replay_window(seed: int, n: int = 340) -> CandleWindow:
    """Seeded random walk cycling through trend, chop and high-volatility phases."""
    rng = np.random.default_rng(seed)
    price = 100.0
    times, opens, highs, lows, closes, volumes = [], [], [], [], [], []
    for i in range(n):
        regime = (i // 70) % 5
        if regime == 0:
            drift, sigma = 0.0005, 0.002
        elif regime == 1:
            drift, sigma = -0.0004, 0.0025
        elif regime == 2:
            drift, sigma = 0.0, 0.0015
        elif regime == 3:
            drift, sigma = (0.0008 if i % 2 == 0 else -0.0006), 0.0032
        else:
            drift, sigma = 0.0, 0.004

        ret = drift + float(rng.normal(0.0, sigma))
        open_price = price
        close_price = max(3.0, price * (1.0 + ret))
        wick_up = abs(float(rng.normal(0.001, sigma * 0.5)))
        wick_dn = abs(float(rng.normal(0.001, sigma * 0.5)))
        times.append(BASE_TS + i * 3600.0)
        opens.append(open_price)
        closes.append(close_price)
        highs.append(max(open_price, close_price) * (1.0 + wick_up))
        lows.append(min(open_price, close_price) * max(0.01, 1.0 - wick_dn))
        volumes.append(max(1.0, 100.0 + 20.0 * regime + float(rng.normal(0.0, 10.0))))
        price = close_price
    return CandleWindow.from_arrays(times, opens, highs, lows, closes, volumes)


# ---------------------------------------------------------------------------
# Strategy stubs
# ---------------------------------------------------------------------------


class ScriptedStrategy(BaseStrategy):
    """Returns a fixed vote; counts invocations."""

    def __init__(self, name: str, direction: SignalDirection, confidence: float,
                 delay: float = 0.0, error: Optional[Exception] = None):
        super().__init__()
        self.name = name
        self.direction = direction
        self.confidence = confidence
        self.delay = delay
        self.error = error
        self.calls = 0

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return 1

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self._signal(self.direction, self.confidence, f"scripted {self.direction.value}")


SCENARIO_A = (
    (StrategyID.RSI, SignalDirection.BUY, 0.60),
    (StrategyID.MACD, SignalDirection.BUY, 0.75),
    (StrategyID.EMA, SignalDirection.BUY, 0.65),
    (StrategyID.MEAN_REVERSION, SignalDirection.HOLD, 0.30),
    (StrategyID.BREAKOUT, SignalDirection.BUY, 0.80),
)


def scenario_a_signals() -> List[StrategySignal]:
    return [
        StrategySignal(sid.value, direction, conf, "scenario")
        for sid, direction, conf in SCENARIO_A
    ]


def scripted_engine(votes=SCENARIO_A, **kw) -> StrategyEngine:
    strategies = {
        sid: ScriptedStrategy(sid.value, direction, conf, **kw)
        for sid, direction, conf in votes
    }
    return StrategyEngine(strategies=strategies)


# ---------------------------------------------------------------------------
# AI predictor stubs
# ---------------------------------------------------------------------------


class FakePredictor:
    """Async predictor returning ``payload``, raising ``error`` or sleeping ``delay``."""

    def __init__(self, payload: Any = None, error: Optional[Exception] = None, delay: float = 0.0):
        self.payload = payload
        self.error = error
        self.delay = delay
        self.calls: List[Timeframe] = []

    async def predict(self, window: CandleWindow, timeframe: Timeframe):
        self.calls.append(timeframe)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def bullish_window() -> CandleWindow:
    return trending_window(50)


@pytest.fixture
def fast_config() -> CoreConfig:
    return CoreConfig(routing=RoutingConfig(ai_timeout_seconds=0.05, strategy_timeout_seconds=0.5))


@pytest.fixture
def unavailable_predictor() -> FakePredictor:
    return FakePredictor(error=AIUnavailableError("model not loaded"))
