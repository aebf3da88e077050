"""
RSI Strategy - Momentum extremes with divergence override.

BUY:
  1. RSI at or below the oversold level, or
  2. Bullish divergence over the last 10 bars: price makes a lower swing
     low while RSI makes a higher swing low

SELL:
  1. RSI at or above the overbought level, or
  2. Bearish divergence: higher price swing high, lower RSI swing high

Otherwise HOLD, with confidence shrinking as RSI drifts away from 50.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import numpy as np

from src.core.exceptions import ParameterValidationError
from src.core.models import CandleWindow
from src.strategies.base import (
    BaseStrategy,
    SignalDirection,
    StrategySignal,
    float_param,
    int_param,
)
from src.utils.indicators import find_swings, rsi

DIVERGENCE_BARS = 10


class RSIStrategy(BaseStrategy):

    name = "RSI"
    description = "Relative Strength Index momentum strategy"
    parameters = (
        int_param("period", 14, 2, 50),
        float_param("overbought", 70.0, 50.0, 95.0),
        float_param("oversold", 30.0, 5.0, 50.0),
    )

    def validate_combination(self, params: Mapping[str, Any]) -> None:
        if params["oversold"] >= params["overbought"]:
            raise ParameterValidationError(self.name, "oversold", "must be below overbought")

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["period"] * 3

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        closes = window.closes
        rsi_vals = rsi(closes, params["period"])
        curr_rsi = rsi_vals[-1]
        if np.isnan(curr_rsi):
            return self._hold_signal("RSI not converged")

        overbought = params["overbought"]
        oversold = params["oversold"]

        divergence = self._check_divergence(closes, rsi_vals, curr_rsi)
        if divergence is not None:
            return divergence

        # ---- BUY ----
        if curr_rsi <= oversold:
            depth = (oversold - curr_rsi) / oversold
            return self._signal(
                SignalDirection.BUY,
                min(1.0, 0.6 + depth * 0.4),
                f"RSI oversold at {curr_rsi:.1f} (threshold: {oversold:.1f})",
                rsi=round(float(curr_rsi), 2),
            )

        # ---- SELL ----
        if curr_rsi >= overbought:
            depth = (curr_rsi - overbought) / (100 - overbought)
            return self._signal(
                SignalDirection.SELL,
                min(1.0, 0.6 + depth * 0.4),
                f"RSI overbought at {curr_rsi:.1f} (threshold: {overbought:.1f})",
                rsi=round(float(curr_rsi), 2),
            )

        distance = abs(curr_rsi - 50) / 50
        bias = "bullish" if curr_rsi > 50 else "bearish"
        return self._hold_signal(
            f"RSI neutral at {curr_rsi:.1f} ({bias} bias)",
            confidence=max(0.2, 0.5 - distance * 0.3),
            rsi=round(float(curr_rsi), 2),
        )

    def _check_divergence(
        self, closes: np.ndarray, rsi_vals: np.ndarray, curr_rsi: float
    ) -> Optional[StrategySignal]:
        recent_rsi = rsi_vals[-DIVERGENCE_BARS:]
        if len(recent_rsi) < DIVERGENCE_BARS or np.isnan(recent_rsi).any():
            return None
        recent_prices = closes[-DIVERGENCE_BARS:]

        price_lows = find_swings(recent_prices, is_high=False)[-2:]
        rsi_lows = find_swings(recent_rsi, is_high=False)[-2:]
        if len(price_lows) == 2 and len(rsi_lows) == 2:
            if (recent_prices[price_lows[1]] < recent_prices[price_lows[0]]
                    and recent_rsi[rsi_lows[1]] > recent_rsi[rsi_lows[0]]):
                return self._signal(
                    SignalDirection.BUY, 0.8, "Bullish RSI divergence detected",
                    rsi=round(float(curr_rsi), 2), divergence="bullish",
                )

        price_highs = find_swings(recent_prices, is_high=True)[-2:]
        rsi_highs = find_swings(recent_rsi, is_high=True)[-2:]
        if len(price_highs) == 2 and len(rsi_highs) == 2:
            if (recent_prices[price_highs[1]] > recent_prices[price_highs[0]]
                    and recent_rsi[rsi_highs[1]] < recent_rsi[rsi_highs[0]]):
                return self._signal(
                    SignalDirection.SELL, 0.8, "Bearish RSI divergence detected",
                    rsi=round(float(curr_rsi), 2), divergence="bearish",
                )
        return None
