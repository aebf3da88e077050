"""
EMA Crossover Strategy - Fast/slow exponential moving average cross.

BUY:  fast EMA crosses above slow EMA on the latest bar
SELL: fast EMA crosses below slow EMA on the latest bar

Confidence scales with the gap between the averages relative to price.
Without a fresh cross the strategy holds and reports the prevailing trend.
"""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np

from src.core.exceptions import ParameterValidationError
from src.core.models import CandleWindow
from src.strategies.base import BaseStrategy, SignalDirection, StrategySignal, int_param
from src.utils.indicators import ema


class EMAStrategy(BaseStrategy):

    name = "EMA"
    description = "Exponential Moving Average crossover strategy"
    parameters = (
        int_param("fast_period", 9, 2, 50),
        int_param("slow_period", 21, 3, 200),
    )

    def validate_combination(self, params: Mapping[str, Any]) -> None:
        if params["fast_period"] >= params["slow_period"]:
            raise ParameterValidationError(self.name, "fast_period", "must be below slow_period")

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["slow_period"] * 2

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        closes = window.closes
        fast = ema(closes, params["fast_period"])
        slow = ema(closes, params["slow_period"])

        curr_fast, prev_fast = fast[-1], fast[-2]
        curr_slow, prev_slow = slow[-1], slow[-2]
        for v in (curr_fast, prev_fast, curr_slow, prev_slow):
            if np.isnan(v):
                return self._hold_signal("EMA not converged")
        if curr_slow <= 0:
            return self._hold_signal("Invalid price level")

        cross_up = prev_fast <= prev_slow and curr_fast > curr_slow
        cross_down = prev_fast >= prev_slow and curr_fast < curr_slow
        gap = abs(curr_fast - curr_slow) / curr_slow
        confidence = min(1.0, 0.5 + gap * 10)
        meta = {
            "fast": round(float(curr_fast), 6),
            "slow": round(float(curr_slow), 6),
        }

        if cross_up:
            return self._signal(
                SignalDirection.BUY, confidence, "Fast EMA crossed above slow EMA", **meta
            )
        if cross_down:
            return self._signal(
                SignalDirection.SELL, confidence, "Fast EMA crossed below slow EMA", **meta
            )

        trend = "Bullish" if curr_fast > curr_slow else "Bearish"
        return self._hold_signal(f"{trend} trend, no crossover", confidence=0.3, **meta)
