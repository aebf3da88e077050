"""
Market Regime Detector - Classifies recent price action.

Volatility is the mean true range over the ATR period relative to the last
close; trend strength is the R-squared of a linear fit over the trend
period. Volatile takes precedence over trending, and anything short of
both is ranging. The detector only reads the candle window.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Sequence

import numpy as np

from src.core.config import RegimeConfig
from src.core.exceptions import UnknownStrategyError
from src.core.models import CandleWindow
from src.strategies.registry import StrategyID
from src.utils.indicators import linear_regression, true_range


class MarketRegime(str, Enum):
    TRENDING_BULLISH = "trending_bullish"
    TRENDING_BEARISH = "trending_bearish"
    RANGING = "ranging"
    VOLATILE = "volatile"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def is_trending(self) -> bool:
        return self in (MarketRegime.TRENDING_BULLISH, MarketRegime.TRENDING_BEARISH)


_LABELS = {
    MarketRegime.TRENDING_BULLISH: "bullish trend",
    MarketRegime.TRENDING_BEARISH: "bearish trend",
    MarketRegime.RANGING: "ranging market",
    MarketRegime.VOLATILE: "volatile market",
}


@dataclass(frozen=True)
class RegimeReading:
    regime: MarketRegime
    volatility: float = 0.0
    slope: float = 0.0
    r_squared: float = 0.0
    bars: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "regime": self.regime.value,
            "volatility": round(self.volatility, 6),
            "slope": round(self.slope, 8),
            "r_squared": round(self.r_squared, 4),
            "bars": self.bars,
        }


def _resolve_recommended(
    mapping: Mapping[str, Sequence[str]]
) -> Dict[MarketRegime, FrozenSet[StrategyID]]:
    resolved: Dict[MarketRegime, FrozenSet[StrategyID]] = {r: frozenset() for r in MarketRegime}
    for key, names in mapping.items():
        regime = MarketRegime(key)
        ids = set()
        for name in names:
            sid = StrategyID.lookup(name)
            if sid is None:
                raise UnknownStrategyError(name)
            ids.add(sid)
        resolved[regime] = frozenset(ids)
    return resolved


class RegimeDetector:

    def __init__(self, config: Optional[RegimeConfig] = None):
        self.config = config or RegimeConfig()
        self._recommended = _resolve_recommended(self.config.recommended)

    def read(self, window: CandleWindow) -> RegimeReading:
        """Classify the window and report the measurements behind the call."""
        cfg = self.config
        bars = len(window)
        if bars < cfg.min_candles:
            return RegimeReading(MarketRegime.RANGING, bars=bars)

        price = window.last_close
        tr = true_range(window.highs, window.lows, window.closes)[1:]
        recent_tr = tr[-cfg.atr_period:]
        volatility = float(np.mean(recent_tr)) / price if price > 0 else 0.0

        slope, _, r_squared = linear_regression(window.closes[-cfg.trend_period:])
        normalized_slope = slope / price if price > 0 else 0.0

        if volatility > cfg.volatility_threshold:
            regime = MarketRegime.VOLATILE
        elif r_squared > cfg.trend_strength_threshold:
            regime = (
                MarketRegime.TRENDING_BULLISH if normalized_slope > 0
                else MarketRegime.TRENDING_BEARISH
            )
        else:
            regime = MarketRegime.RANGING

        return RegimeReading(
            regime=regime,
            volatility=volatility,
            slope=normalized_slope,
            r_squared=r_squared,
            bars=bars,
        )

    def detect(self, window: CandleWindow) -> MarketRegime:
        return self.read(window).regime

    def recommended_strategies(self, regime: MarketRegime) -> FrozenSet[StrategyID]:
        """Strategies whose style suits the regime; used only to boost weights."""
        return self._recommended.get(regime, frozenset())
