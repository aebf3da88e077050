"""
ADX Trend Strategy - Directional index crossovers gated by trend strength.

Below the trend threshold the market is treated as directionless (HOLD).
Above it, a fresh +DI/-DI cross votes in the crossing direction; above the
strong-trend threshold the dominant DI votes even without a cross.
"""

from __future__ import annotations

from typing import Any, Mapping

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
from src.utils.indicators import adx


class ADXStrategy(BaseStrategy):

    name = "ADX"
    description = "Trend strength via the Average Directional Index"
    parameters = (
        int_param("period", 14, 5, 50),
        float_param("trend_threshold", 25.0, 10.0, 50.0),
        float_param("strong_trend_threshold", 40.0, 20.0, 80.0),
    )

    def validate_combination(self, params: Mapping[str, Any]) -> None:
        if params["trend_threshold"] >= params["strong_trend_threshold"]:
            raise ParameterValidationError(
                self.name, "trend_threshold", "must be below strong_trend_threshold"
            )

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["period"] * 2 + 2

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        adx_vals, plus_di, minus_di = adx(window.highs, window.lows, window.closes, params["period"])
        curr_adx = adx_vals[-1]
        curr_plus, prev_plus = plus_di[-1], plus_di[-2]
        curr_minus, prev_minus = minus_di[-1], minus_di[-2]
        for v in (curr_adx, curr_plus, prev_plus, curr_minus, prev_minus):
            if np.isnan(v):
                return self._hold_signal("ADX not converged")

        threshold = params["trend_threshold"]
        strong = params["strong_trend_threshold"]
        meta = {
            "adx": round(float(curr_adx), 2),
            "plus_di": round(float(curr_plus), 2),
            "minus_di": round(float(curr_minus), 2),
        }

        if curr_adx < threshold:
            return self._hold_signal(
                f"ADX indicates weak trend ({curr_adx:.1f})", confidence=0.2, **meta
            )

        cross_conf = min(0.9, 0.5 + 0.4 * (curr_adx - threshold) / (strong - threshold))
        if curr_plus > curr_minus and prev_plus <= prev_minus:
            return self._signal(
                SignalDirection.BUY, cross_conf,
                f"ADX bullish crossover with strong trend ({curr_adx:.1f})", **meta,
            )
        if curr_minus > curr_plus and prev_minus <= prev_plus:
            return self._signal(
                SignalDirection.SELL, cross_conf,
                f"ADX bearish crossover with strong trend ({curr_adx:.1f})", **meta,
            )

        if curr_adx > strong:
            if curr_plus > curr_minus:
                return self._signal(
                    SignalDirection.BUY, 0.6,
                    f"ADX indicates strong uptrend ({curr_adx:.1f})", **meta,
                )
            return self._signal(
                SignalDirection.SELL, 0.6,
                f"ADX indicates strong downtrend ({curr_adx:.1f})", **meta,
            )

        return self._hold_signal(
            f"ADX indicates moderate trend ({curr_adx:.1f})", confidence=0.3, **meta
        )
