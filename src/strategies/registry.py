"""
Closed strategy roster.

StrategyID is the single key used for roster lookups, regime
recommendations and win-rate tables. Lookups are exact (case-insensitive
on the id or a registered display alias); there is no substring matching.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Type

from src.strategies.adx import ADXStrategy
from src.strategies.base import BaseStrategy
from src.strategies.bollinger import BollingerBandsStrategy
from src.strategies.breakout import BreakoutStrategy
from src.strategies.ema import EMAStrategy
from src.strategies.ichimoku import IchimokuStrategy
from src.strategies.macd import MACDStrategy
from src.strategies.mean_reversion import MeanReversionStrategy
from src.strategies.parabolic_sar import ParabolicSARStrategy
from src.strategies.rsi import RSIStrategy
from src.strategies.stochastic import StochasticStrategy
from src.strategies.volume import VolumeStrategy
from src.strategies.williams_r import WilliamsRStrategy


class StrategyID(str, Enum):
    RSI = "RSI"
    EMA = "EMA"
    MACD = "MACD"
    MEAN_REVERSION = "MeanReversion"
    BREAKOUT = "Breakout"
    BOLLINGER_BANDS = "BollingerBands"
    STOCHASTIC = "Stochastic"
    WILLIAMS_R = "WilliamsR"
    ADX = "ADX"
    ICHIMOKU = "Ichimoku"
    VOLUME = "Volume"
    PARABOLIC_SAR = "ParabolicSAR"

    @classmethod
    def lookup(cls, name: str) -> Optional["StrategyID"]:
        """Resolve an id or display alias; None when the name is not in the roster."""
        if isinstance(name, StrategyID):
            return name
        return _LOOKUP.get(str(name).strip().lower())


# Display names used by UIs and older settings files
_ALIASES: Dict[str, StrategyID] = {
    "rsi swing": StrategyID.RSI,
    "ema crossover": StrategyID.EMA,
    "mean reversion": StrategyID.MEAN_REVERSION,
    "atr breakout": StrategyID.BREAKOUT,
    "bollinger bands": StrategyID.BOLLINGER_BANDS,
    "williams %r": StrategyID.WILLIAMS_R,
    "adx trend": StrategyID.ADX,
    "ichimoku cloud": StrategyID.ICHIMOKU,
    "volume breakout": StrategyID.VOLUME,
    "parabolic sar": StrategyID.PARABOLIC_SAR,
}

_LOOKUP: Dict[str, StrategyID] = {sid.value.lower(): sid for sid in StrategyID}
_LOOKUP.update(_ALIASES)


STRATEGY_CLASSES: Dict[StrategyID, Type[BaseStrategy]] = {
    StrategyID.RSI: RSIStrategy,
    StrategyID.EMA: EMAStrategy,
    StrategyID.MACD: MACDStrategy,
    StrategyID.MEAN_REVERSION: MeanReversionStrategy,
    StrategyID.BREAKOUT: BreakoutStrategy,
    StrategyID.BOLLINGER_BANDS: BollingerBandsStrategy,
    StrategyID.STOCHASTIC: StochasticStrategy,
    StrategyID.WILLIAMS_R: WilliamsRStrategy,
    StrategyID.ADX: ADXStrategy,
    StrategyID.ICHIMOKU: IchimokuStrategy,
    StrategyID.VOLUME: VolumeStrategy,
    StrategyID.PARABOLIC_SAR: ParabolicSARStrategy,
}


def build_strategies() -> Dict[StrategyID, BaseStrategy]:
    """One instance per roster entry, in StrategyID declaration order."""
    return {sid: STRATEGY_CLASSES[sid]() for sid in StrategyID}
