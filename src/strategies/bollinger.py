"""
Bollinger Bands Strategy - Band touches and band-position bias.

BUY:
  1. Close crosses down through the lower band (fresh touch), or
  2. Close sits in the bottom 20% of the band (weak bias)

SELL mirrors BUY against the upper band.
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
from src.utils.indicators import bollinger_bands


class BollingerBandsStrategy(BaseStrategy):

    name = "BollingerBands"
    description = "Trades price touching or crossing the Bollinger Bands"
    parameters = (
        int_param("period", 20, 5, 100),
        float_param("num_std", 2.0, 0.5, 4.0),
    )

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["period"] + 5

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        upper, _, lower = bollinger_bands(window.closes, params["period"], params["num_std"])
        curr_upper, curr_lower = upper[-1], lower[-1]
        if np.isnan(curr_upper) or np.isnan(curr_lower):
            return self._hold_signal("Bands not converged")

        width = curr_upper - curr_lower
        if width <= 0:
            return self._hold_signal("Zero band width", confidence=0.1)

        price = window.closes[-1]
        prev_price = window.closes[-2]
        position = (price - curr_lower) / width
        meta = {"band_position": round(float(position), 4)}

        if price <= curr_lower and prev_price > curr_lower:
            return self._signal(
                SignalDirection.BUY,
                min(0.9, 0.5 + 0.5 * (1.0 - position)),
                "Price touched lower Bollinger Band (oversold)",
                **meta,
            )
        if price >= curr_upper and prev_price < curr_upper:
            return self._signal(
                SignalDirection.SELL,
                min(0.9, 0.5 + 0.5 * position),
                "Price touched upper Bollinger Band (overbought)",
                **meta,
            )
        if position < 0.2:
            return self._signal(SignalDirection.BUY, 0.3, "Price near lower Bollinger Band", **meta)
        if position > 0.8:
            return self._signal(SignalDirection.SELL, 0.3, "Price near upper Bollinger Band", **meta)
        return self._hold_signal("Price within normal Bollinger Band range", confidence=0.1, **meta)
