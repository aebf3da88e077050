"""
Parabolic SAR Strategy - Stop-and-reverse flips and trend continuation.

A close crossing the SAR level flips the vote (reversal, strongest); while
price stays on one side the strategy keeps voting with the trend, more
confidently when price is far from the SAR.
"""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np

from src.core.exceptions import ParameterValidationError
from src.core.models import CandleWindow
from src.strategies.base import BaseStrategy, SignalDirection, StrategySignal, float_param
from src.utils.indicators import parabolic_sar


class ParabolicSARStrategy(BaseStrategy):

    name = "ParabolicSAR"
    description = "Trend following with stop-and-reverse points"
    parameters = (
        float_param("step", 0.02, 0.005, 0.1),
        float_param("max_step", 0.2, 0.05, 0.5),
        float_param("strong_distance", 0.02, 0.001, 0.2),
    )

    def validate_combination(self, params: Mapping[str, Any]) -> None:
        if params["step"] > params["max_step"]:
            raise ParameterValidationError(self.name, "step", "must not exceed max_step")

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return 30

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        sar = parabolic_sar(
            window.highs, window.lows, window.closes, params["step"], params["max_step"]
        )
        curr_sar, prev_sar = sar[-1], sar[-2]
        if np.isnan(curr_sar) or np.isnan(prev_sar):
            return self._hold_signal("SAR not converged")

        price = window.closes[-1]
        prev_price = window.closes[-2]
        up_now = price > curr_sar
        up_before = prev_price > prev_sar
        distance = abs(price - curr_sar) / price if price > 0 else 0.0
        meta = {"sar": round(float(curr_sar), 6), "distance": round(distance, 5)}

        if up_now and not up_before:
            return self._signal(
                SignalDirection.BUY, min(0.9, 0.6 + distance * 10),
                "Parabolic SAR bullish reversal", **meta,
            )
        if up_before and not up_now:
            return self._signal(
                SignalDirection.SELL, min(0.9, 0.6 + distance * 10),
                "Parabolic SAR bearish reversal", **meta,
            )

        strong = distance > params["strong_distance"]
        if up_now:
            if strong:
                return self._signal(
                    SignalDirection.BUY, 0.6, "Parabolic SAR strong uptrend continuation", **meta
                )
            return self._signal(SignalDirection.BUY, 0.3, "Parabolic SAR uptrend continuation", **meta)
        if strong:
            return self._signal(
                SignalDirection.SELL, 0.6, "Parabolic SAR strong downtrend continuation", **meta
            )
        return self._signal(SignalDirection.SELL, 0.3, "Parabolic SAR downtrend continuation", **meta)
