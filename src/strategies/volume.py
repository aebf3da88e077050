"""
Volume Strategy - Volume spikes confirming price breaks.

BUY:
  1. Volume >= threshold x its trailing average
  2. Close up by at least the price-change threshold, above the open and
     above the prior bar's high
A spike with a half-size move is a weaker vote. Falling price on rising
volume over the last five bars is read as bullish divergence (and the
mirror as bearish).
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import numpy as np

from src.core.models import CandleWindow
from src.strategies.base import (
    BaseStrategy,
    SignalDirection,
    StrategySignal,
    float_param,
    int_param,
)
from src.utils.indicators import linear_regression, volume_ratio


class VolumeStrategy(BaseStrategy):

    name = "Volume"
    description = "Volume spikes with price breakouts"
    parameters = (
        int_param("volume_period", 20, 5, 100),
        float_param("volume_threshold", 1.5, 1.0, 5.0),
        float_param("price_change_threshold", 0.02, 0.001, 0.2),
    )

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["volume_period"] + 5

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        ratios = volume_ratio(window.volumes, params["volume_period"])
        ratio = ratios[-1]
        if np.isnan(ratio):
            return self._hold_signal("No volume data")

        threshold = params["volume_threshold"]
        move_threshold = params["price_change_threshold"]
        curr, prev = window[-1], window[-2]
        change = (curr.close - prev.close) / prev.close if prev.close > 0 else 0.0
        spike = ratio >= threshold
        significant = abs(change) >= move_threshold
        meta = {"volume_ratio": round(float(ratio), 3), "price_change": round(change, 5)}

        if spike and significant:
            if change > 0 and curr.close > curr.open and curr.close > prev.high:
                return self._signal(
                    SignalDirection.BUY, self._breakout_confidence(ratio, threshold, abs(change)),
                    f"Volume spike with bullish breakout ({ratio:.1f}x volume)", **meta,
                )
            if change < 0 and curr.close < curr.open and curr.close < prev.low:
                return self._signal(
                    SignalDirection.SELL, self._breakout_confidence(ratio, threshold, abs(change)),
                    f"Volume spike with bearish breakdown ({ratio:.1f}x volume)", **meta,
                )

        if spike:
            if change > move_threshold / 2:
                return self._signal(
                    SignalDirection.BUY, 0.5,
                    "High volume supporting upward price movement", **meta,
                )
            if change < -move_threshold / 2:
                return self._signal(
                    SignalDirection.SELL, 0.5,
                    "High volume supporting downward price movement", **meta,
                )

        divergence = self._volume_divergence(window)
        if divergence is not None:
            return divergence

        if ratio < 0.5 and significant:
            return self._hold_signal(
                "Significant price move on low volume - potential false signal",
                confidence=0.3, **meta,
            )
        return self._hold_signal("No significant volume patterns detected", confidence=0.1, **meta)

    @staticmethod
    def _breakout_confidence(ratio: float, threshold: float, change: float) -> float:
        confidence = 0.6
        confidence += min(0.3, (ratio - threshold) * 0.1)
        confidence += min(0.2, change * 5)
        return min(0.9, confidence)

    def _volume_divergence(self, window: CandleWindow) -> Optional[StrategySignal]:
        closes = window.closes[-5:]
        volumes = window.volumes[-5:]
        if closes[0] <= 0:
            return None
        price_slope, _, _ = linear_regression(closes / closes[0])
        volume_slope, _, _ = linear_regression(volumes)
        if price_slope < -0.005 and volume_slope > 0:
            return self._signal(SignalDirection.BUY, 0.4, "Bullish volume divergence detected")
        if price_slope > 0.005 and volume_slope < 0:
            return self._signal(SignalDirection.SELL, 0.4, "Bearish volume divergence detected")
        return None
