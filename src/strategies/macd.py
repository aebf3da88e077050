"""
MACD Strategy - Signal-line crossover.

BUY:  MACD line crosses above its signal line
SELL: MACD line crosses below its signal line

Confidence grows with the histogram size relative to price; no fresh cross
means HOLD with the prevailing momentum in the reason.
"""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np

from src.core.exceptions import ParameterValidationError
from src.core.models import CandleWindow
from src.strategies.base import BaseStrategy, SignalDirection, StrategySignal, int_param
from src.utils.indicators import macd


class MACDStrategy(BaseStrategy):

    name = "MACD"
    description = "Moving Average Convergence Divergence strategy"
    parameters = (
        int_param("fast_period", 12, 2, 50),
        int_param("slow_period", 26, 5, 100),
        int_param("signal_period", 9, 1, 20),
    )

    def validate_combination(self, params: Mapping[str, Any]) -> None:
        if params["fast_period"] >= params["slow_period"]:
            raise ParameterValidationError(self.name, "fast_period", "must be below slow_period")

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["slow_period"] + params["signal_period"] + 10

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        macd_line, signal_line, hist = macd(
            window.closes, params["fast_period"], params["slow_period"], params["signal_period"]
        )
        curr_macd, prev_macd = macd_line[-1], macd_line[-2]
        curr_sig, prev_sig = signal_line[-1], signal_line[-2]
        for v in (curr_macd, prev_macd, curr_sig, prev_sig):
            if np.isnan(v):
                return self._hold_signal("MACD not converged")

        price = window.last_close
        cross_up = prev_macd <= prev_sig and curr_macd > curr_sig
        cross_down = prev_macd >= prev_sig and curr_macd < curr_sig
        hist_pct = abs(hist[-1]) / price if price > 0 else 0.0
        confidence = min(1.0, 0.5 + hist_pct * 100)
        meta = {
            "macd": round(float(curr_macd), 6),
            "signal": round(float(curr_sig), 6),
            "histogram": round(float(hist[-1]), 6),
        }

        if cross_up:
            return self._signal(
                SignalDirection.BUY, confidence, "MACD crossed above signal line", **meta
            )
        if cross_down:
            return self._signal(
                SignalDirection.SELL, confidence, "MACD crossed below signal line", **meta
            )

        momentum = "Bullish" if curr_macd > curr_sig else "Bearish"
        return self._hold_signal(f"{momentum} momentum, no crossover", confidence=0.3, **meta)
