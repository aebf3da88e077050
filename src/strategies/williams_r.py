"""
Williams %R Strategy - Zone entries and exits.

Entering the oversold zone (below -80) or leaving it upward votes BUY;
entering the overbought zone (above -20) or leaving it downward votes SELL.
Sitting inside a zone without a transition is a weak vote.
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
from src.utils.indicators import williams_r


class WilliamsRStrategy(BaseStrategy):

    name = "WilliamsR"
    description = "Williams %R overbought/oversold oscillator"
    parameters = (
        int_param("period", 14, 5, 50),
        float_param("overbought", -20.0, -50.0, -5.0),
        float_param("oversold", -80.0, -95.0, -50.0),
    )

    def validate_combination(self, params: Mapping[str, Any]) -> None:
        if params["oversold"] >= params["overbought"]:
            raise ParameterValidationError(self.name, "oversold", "must be below overbought")

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["period"] + 5

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        wr = williams_r(window.highs, window.lows, window.closes, params["period"])
        curr, prev = wr[-1], wr[-2]
        if np.isnan(curr) or np.isnan(prev):
            return self._hold_signal("Williams %R not converged")

        overbought, oversold = params["overbought"], params["oversold"]
        meta = {"williams_r": round(float(curr), 2)}

        if curr < oversold <= prev:
            confidence = 0.6 + 0.3 * (oversold - curr) / (oversold + 100)
            return self._signal(
                SignalDirection.BUY, min(0.9, confidence),
                "Williams %R entering oversold territory", **meta,
            )
        if curr > overbought >= prev:
            confidence = 0.6 + 0.3 * (curr - overbought) / (0 - overbought)
            return self._signal(
                SignalDirection.SELL, min(0.9, confidence),
                "Williams %R entering overbought territory", **meta,
            )
        if curr > oversold >= prev:
            return self._signal(
                SignalDirection.BUY, 0.7, "Williams %R exiting oversold territory", **meta
            )
        if curr < overbought <= prev:
            return self._signal(
                SignalDirection.SELL, 0.7, "Williams %R exiting overbought territory", **meta
            )
        if curr < oversold:
            return self._signal(SignalDirection.BUY, 0.3, "Williams %R in oversold territory", **meta)
        if curr > overbought:
            return self._signal(SignalDirection.SELL, 0.3, "Williams %R in overbought territory", **meta)
        return self._hold_signal("Williams %R in neutral range", confidence=0.3, **meta)
