"""
ATR Breakout Strategy - Closes beyond the recent range plus an ATR buffer.

BUY:  close > highest high of the prior N bars + multiplier x ATR
SELL: close < lowest low of the prior N bars - multiplier x ATR

Inside the range the strategy holds; high ATR relative to price raises the
hold confidence (a breakout is being set up).
"""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np

from src.core.models import CandleWindow
from src.strategies.base import (
    BaseStrategy,
    SignalDirection,
    StrategySignal,
    float_param,
    int_param,
)
from src.utils.indicators import atr


class BreakoutStrategy(BaseStrategy):

    name = "Breakout"
    description = "Average True Range breakout strategy"
    parameters = (
        int_param("atr_period", 14, 5, 30),
        float_param("multiplier", 0.5, 0.0, 3.0),
        float_param("volatility_threshold", 0.02, 0.001, 0.2),
    )

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["atr_period"] * 2

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        period = params["atr_period"]
        atr_vals = atr(window.highs, window.lows, window.closes, period)
        curr_atr = atr_vals[-1]
        if np.isnan(curr_atr):
            return self._hold_signal("ATR not converged")
        if curr_atr <= 0:
            return self._hold_signal("ATR is zero")

        price = window.last_close
        recent_high = float(np.max(window.highs[-period - 1:-1]))
        recent_low = float(np.min(window.lows[-period - 1:-1]))
        upper = recent_high + curr_atr * params["multiplier"]
        lower = recent_low - curr_atr * params["multiplier"]
        meta = {
            "atr": round(float(curr_atr), 6),
            "upper": round(upper, 6),
            "lower": round(lower, 6),
        }

        if price > upper:
            strength = (price - upper) / curr_atr
            return self._signal(
                SignalDirection.BUY,
                min(1.0, 0.5 + strength * 0.3),
                f"Upward breakout above {upper:.2f}",
                **meta,
            )
        if price < lower:
            strength = (lower - price) / curr_atr
            return self._signal(
                SignalDirection.SELL,
                min(1.0, 0.5 + strength * 0.3),
                f"Downward breakout below {lower:.2f}",
                **meta,
            )

        if price > 0 and curr_atr / price > params["volatility_threshold"]:
            return self._hold_signal(
                f"High volatility (ATR: {curr_atr:.2f}), waiting for breakout",
                confidence=0.4, **meta,
            )
        return self._hold_signal(f"Consolidating (ATR: {curr_atr:.2f})", confidence=0.2, **meta)
