"""
Mean Reversion Strategy - Fade closes outside the Bollinger envelope.

BUY:  close at or below the lower band
SELL: close at or above the upper band

Confidence starts at 0.5 and grows with the distance beyond the band in
standard deviations.
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


class MeanReversionStrategy(BaseStrategy):

    name = "MeanReversion"
    description = "Bollinger Bands mean reversion strategy"
    parameters = (
        int_param("period", 20, 10, 50),
        float_param("num_std", 2.0, 1.0, 3.0),
    )

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        return params["period"] + 10

    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        period, num_std = params["period"], params["num_std"]
        upper, mid, lower = bollinger_bands(window.closes, period, num_std)
        price = window.last_close
        curr_upper, curr_lower, curr_mid = upper[-1], lower[-1], mid[-1]
        if np.isnan(curr_upper) or np.isnan(curr_lower):
            return self._hold_signal("Bands not converged")

        std = (curr_upper - curr_mid) / num_std
        width = curr_upper - curr_lower
        position = (price - curr_lower) / width if width > 0 else 0.5
        meta = {"upper": round(float(curr_upper), 6), "lower": round(float(curr_lower), 6)}

        if std <= 0:
            return self._hold_signal("Flat price series", confidence=0.3, **meta)

        if price <= curr_lower:
            return self._signal(
                SignalDirection.BUY,
                min(1.0, (curr_lower - price) / std + 0.5),
                f"Price at lower band ({price:.2f})",
                **meta,
            )
        if price >= curr_upper:
            return self._signal(
                SignalDirection.SELL,
                min(1.0, (price - curr_upper) / std + 0.5),
                f"Price at upper band ({price:.2f})",
                **meta,
            )
        return self._hold_signal(
            f"Price within bands ({position * 100:.1f}% position)", confidence=0.3, **meta
        )
