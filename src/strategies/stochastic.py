"""
Stochastic Strategy - %K/%D crossovers at extremes, with divergence bonus.

BUY:
  1. %K and %D both below the oversold level
  2. Bullish K/D crossover (%K crosses above %D) for full confidence;
     without the cross the zone alone is a weak vote
  3. Bullish divergence (price lower low, %K higher low) adds confidence

SELL mirrors BUY in the overbought zone.
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
from src.utils.indicators import stochastic


class StochasticStrategy(BaseStrategy):

    name = "Stochastic"
    description = "Momentum oscillator comparing close to the recent range"
    parameters = (
        int_param("k_period", 14, 5, 50),
        int_param("d_period", 3, 1, 20),
        int_param("smooth", 1, 1, 5),
        float_param("oversold", 20.0, 5.0, 30.0),
        float_param("overbought", 80.0, 70.0, 95.0),
        int_param("divergence_lookback", 20, 5, 50),
    )

    def validate_combination(self, params: Mapping[str, Any]) -> None:
        if params["oversold"] >= params["overbought"]:
            raise ParameterValidationError(self.name, "oversold", "must be below overbought")

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["k_period"] + params["d_period"] + params["smooth"] + 5

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        pct_k, pct_d = stochastic(
            window.highs, window.lows, window.closes,
            params["k_period"], params["d_period"], params["smooth"],
        )
        curr_k, curr_d = pct_k[-1], pct_d[-1]
        prev_k, prev_d = pct_k[-2], pct_d[-2]
        for v in (curr_k, curr_d, prev_k, prev_d):
            if np.isnan(v):
                return self._hold_signal("Indicators not converged")

        oversold, overbought = params["oversold"], params["overbought"]
        bullish_cross = prev_k <= prev_d and curr_k > curr_d
        bearish_cross = prev_k >= prev_d and curr_k < curr_d

        lb = params["divergence_lookback"]
        bull_divergence = self._detect_bullish_divergence(window.lows, pct_k, lb)
        bear_divergence = self._detect_bearish_divergence(window.highs, pct_k, lb)
        meta = {
            "k": round(float(curr_k), 2),
            "d": round(float(curr_d), 2),
            "bull_divergence": bool(bull_divergence),
            "bear_divergence": bool(bear_divergence),
        }

        # ---- BUY ----
        if curr_k < oversold and curr_d < oversold:
            if bullish_cross:
                confidence = 0.7 + 0.2 * (oversold - min(curr_k, curr_d)) / oversold
                if bull_divergence:
                    confidence += 0.1
                return self._signal(
                    SignalDirection.BUY, min(0.9, confidence),
                    "Stochastic bullish crossover in oversold territory", **meta,
                )
            return self._signal(
                SignalDirection.BUY, 0.4, "Stochastic in oversold territory", **meta
            )

        # ---- SELL ----
        if curr_k > overbought and curr_d > overbought:
            if bearish_cross:
                confidence = 0.7 + 0.2 * (min(curr_k, curr_d) - overbought) / (100 - overbought)
                if bear_divergence:
                    confidence += 0.1
                return self._signal(
                    SignalDirection.SELL, min(0.9, confidence),
                    "Stochastic bearish crossover in overbought territory", **meta,
                )
            return self._signal(
                SignalDirection.SELL, 0.4, "Stochastic in overbought territory", **meta
            )

        return self._hold_signal("Stochastic in neutral territory", confidence=0.3, **meta)

    @staticmethod
    def _detect_bullish_divergence(
        lows: np.ndarray, pct_k: np.ndarray, lookback: int,
    ) -> bool:
        """Price made lower low but stochastic made higher low."""
        if len(lows) < lookback + 2:
            return False

        window_lows = lows[-lookback:]
        window_k = pct_k[-lookback:]

        low_indices = [
            i for i in range(1, len(window_lows) - 1)
            if window_lows[i] <= window_lows[i - 1] and window_lows[i] <= window_lows[i + 1]
        ]
        if len(low_indices) < 2:
            return False

        idx_prior, idx_recent = low_indices[-2], low_indices[-1]
        k_prior, k_recent = window_k[idx_prior], window_k[idx_recent]
        if np.isnan(k_recent) or np.isnan(k_prior):
            return False
        return window_lows[idx_recent] < window_lows[idx_prior] and k_recent > k_prior

    @staticmethod
    def _detect_bearish_divergence(
        highs: np.ndarray, pct_k: np.ndarray, lookback: int,
    ) -> bool:
        """Price made higher high but stochastic made lower high."""
        if len(highs) < lookback + 2:
            return False

        window_highs = highs[-lookback:]
        window_k = pct_k[-lookback:]

        high_indices = [
            i for i in range(1, len(window_highs) - 1)
            if window_highs[i] >= window_highs[i - 1] and window_highs[i] >= window_highs[i + 1]
        ]
        if len(high_indices) < 2:
            return False

        idx_prior, idx_recent = high_indices[-2], high_indices[-1]
        k_prior, k_recent = window_k[idx_prior], window_k[idx_recent]
        if np.isnan(k_recent) or np.isnan(k_prior):
            return False
        return window_highs[idx_recent] > window_highs[idx_prior] and k_recent < k_prior
