"""
Ichimoku Cloud Strategy - Trend, momentum and support/resistance in one.

Confidence is built up from independent confirmations, each pointing the
same way:

BUY:
  1. Tenkan-Sen crosses above Kijun-Sen (TK bullish cross)
  2. Price above the cloud (more weight when the cloud itself is bullish)
  3. Price above both Tenkan and Kijun
  4. Chikou Span above the close from kijun bars ago

SELL mirrors BUY. A price inside the cloud halves whatever confidence the
cross produced.
"""

from __future__ import annotations

from typing import Any, List, Mapping

import numpy as np

from src.core.exceptions import ParameterValidationError
from src.core.models import CandleWindow
from src.strategies.base import BaseStrategy, SignalDirection, StrategySignal, int_param
from src.utils.indicators import ichimoku


class IchimokuStrategy(BaseStrategy):

    name = "Ichimoku"
    description = "Trend analysis using Ichimoku Kinko Hyo"
    parameters = (
        int_param("tenkan_period", 9, 5, 30),
        int_param("kijun_period", 26, 10, 60),
        int_param("senkou_b_period", 52, 20, 120),
    )

    def validate_combination(self, params: Mapping[str, Any]) -> None:
        if not params["tenkan_period"] < params["kijun_period"] < params["senkou_b_period"]:
            raise ParameterValidationError(
                self.name, "kijun_period", "require tenkan < kijun < senkou_b"
            )

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["senkou_b_period"] + params["kijun_period"] + 10

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        kijun_period = params["kijun_period"]
        closes = window.closes
        tenkan_sen, kijun_sen, senkou_a, senkou_b, chikou = ichimoku(
            window.highs, window.lows, closes,
            params["tenkan_period"], kijun_period, params["senkou_b_period"],
        )

        price = closes[-1]
        curr_tenkan, prev_tenkan = tenkan_sen[-1], tenkan_sen[-2]
        curr_kijun, prev_kijun = kijun_sen[-1], kijun_sen[-2]
        curr_senkou_a, curr_senkou_b = senkou_a[-1], senkou_b[-1]

        # Validate indicators converged
        for v in (curr_tenkan, prev_tenkan, curr_kijun, prev_kijun, curr_senkou_a, curr_senkou_b):
            if np.isnan(v):
                return self._hold_signal("Indicators not converged")

        cloud_top = max(curr_senkou_a, curr_senkou_b)
        cloud_bottom = min(curr_senkou_a, curr_senkou_b)
        bullish_cloud = curr_senkou_a > curr_senkou_b

        tk_bullish_cross = prev_tenkan <= prev_kijun and curr_tenkan > curr_kijun
        tk_bearish_cross = prev_tenkan >= prev_kijun and curr_tenkan < curr_kijun

        # chikou[i] is the close kijun bars later; compare it with the close at i
        chikou_idx = len(closes) - 1 - kijun_period
        chikou_bullish = False
        chikou_bearish = False
        if 0 <= chikou_idx < len(chikou) and not np.isnan(chikou[chikou_idx]):
            chikou_bullish = chikou[chikou_idx] > closes[chikou_idx]
            chikou_bearish = chikou[chikou_idx] < closes[chikou_idx]

        direction = SignalDirection.HOLD
        confidence = 0.0
        reasons: List[str] = []

        if tk_bullish_cross:
            direction = SignalDirection.BUY
            confidence += 0.3
            reasons.append("Tenkan-Kijun bullish cross")
        elif tk_bearish_cross:
            direction = SignalDirection.SELL
            confidence += 0.3
            reasons.append("Tenkan-Kijun bearish cross")

        if price > cloud_top:
            if direction in (SignalDirection.BUY, SignalDirection.HOLD):
                direction = SignalDirection.BUY
                confidence += 0.4 if bullish_cloud else 0.2
                reasons.append("Price above cloud")
        elif price < cloud_bottom:
            if direction in (SignalDirection.SELL, SignalDirection.HOLD):
                direction = SignalDirection.SELL
                confidence += 0.2 if bullish_cloud else 0.4
                reasons.append("Price below cloud")
        else:
            confidence *= 0.5
            reasons.append("Price in cloud")

        if direction == SignalDirection.BUY:
            if price > curr_tenkan and price > curr_kijun:
                confidence += 0.1
                reasons.append("Price above Tenkan and Kijun")
            if chikou_bullish:
                confidence += 0.1
                reasons.append("Chikou confirms")
        elif direction == SignalDirection.SELL:
            if price < curr_tenkan and price < curr_kijun:
                confidence += 0.1
                reasons.append("Price below Tenkan and Kijun")
            if chikou_bearish:
                confidence += 0.1
                reasons.append("Chikou confirms")

        meta = {
            "tenkan": round(float(curr_tenkan), 4),
            "kijun": round(float(curr_kijun), 4),
            "cloud_top": round(float(cloud_top), 4),
            "cloud_bottom": round(float(cloud_bottom), 4),
            "tk_bullish_cross": bool(tk_bullish_cross),
            "tk_bearish_cross": bool(tk_bearish_cross),
        }
        reason = ", ".join(reasons) if reasons else "Ichimoku neutral"
        if direction == SignalDirection.HOLD:
            return self._hold_signal(reason, confidence=min(confidence, 0.3), **meta)
        return self._signal(direction, min(0.95, confidence), reason, **meta)
