"""
Strategy Performance - Win-rate sources for per-strategy fusion weights.

Two providers share one small protocol: a static prior table from config,
and a trade-history tracker that reports observed win rates once a strategy
has enough closed trades in its sliding window, falling back to the prior
table otherwise. Fusion reads a provider through snapshot() once per cycle.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from types import MappingProxyType
from typing import Deque, Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable

from src.core.logger import get_logger
from src.strategies.registry import StrategyID

logger = get_logger("performance")

DEFAULT_WIN_RATE = 0.65


@runtime_checkable
class StrategyPerformanceProvider(Protocol):
    def win_rate(self, name: str) -> Optional[float]:
        ...

    def snapshot(self) -> Mapping[str, float]:
        ...


def _key(name: str) -> Optional[str]:
    sid = StrategyID.lookup(name)
    return sid.value if sid is not None else None


class StaticWinRateProvider:
    """Fixed StrategyID -> win rate table; unknown names get the default."""

    def __init__(self, table: Optional[Mapping[str, float]] = None, default: float = DEFAULT_WIN_RATE):
        resolved: Dict[str, float] = {}
        for name, rate in (table or {}).items():
            key = _key(name)
            if key is None:
                logger.warning("Win rate for unknown strategy ignored", strategy=name)
                continue
            resolved[key] = float(rate)
        self.default = float(default)
        self._table = MappingProxyType(resolved)

    def win_rate(self, name: str) -> Optional[float]:
        key = _key(name)
        if key is None:
            return self.default
        return self._table.get(key, self.default)

    def snapshot(self) -> Mapping[str, float]:
        return self._table


class TradeHistoryWinRateProvider:
    """
    Observed win rates from recent closed trades.

    Each strategy keeps its last ``window_trades`` PnL results. Until at
    least ``min_trades`` are recorded, the prior provider's value is used.
    The published snapshot is rebuilt on every record and swapped whole.
    """

    def __init__(
        self,
        prior: Optional[StaticWinRateProvider] = None,
        min_trades: int = 10,
        window_trades: int = 50,
    ):
        self.prior = prior or StaticWinRateProvider()
        self.min_trades = max(1, int(min_trades))
        self.window_trades = max(self.min_trades, int(window_trades))
        self._trades: Dict[str, Deque[Tuple[float, float]]] = {}
        self._lock = threading.Lock()
        self._snapshot: Mapping[str, float] = self._build()

    def record_trade(self, name: str, pnl: float, timestamp: Optional[float] = None) -> bool:
        """Record one closed trade. Returns False for names outside the roster."""
        key = _key(name)
        if key is None:
            logger.error("Trade result for unknown strategy ignored", strategy=name)
            return False
        with self._lock:
            history = self._trades.setdefault(key, deque(maxlen=self.window_trades))
            history.append((float(pnl), timestamp if timestamp is not None else time.time()))
            self._snapshot = self._build()
        return True

    def _observed(self, key: str) -> Optional[float]:
        history = self._trades.get(key)
        if not history or len(history) < self.min_trades:
            return None
        wins = sum(1 for pnl, _ in history if pnl > 0)
        return wins / len(history)

    def _build(self) -> Mapping[str, float]:
        table = {sid.value: self.prior.win_rate(sid.value) for sid in StrategyID}
        for key in self._trades:
            observed = self._observed(key)
            if observed is not None:
                table[key] = observed
        return MappingProxyType(table)

    def win_rate(self, name: str) -> Optional[float]:
        key = _key(name)
        if key is None:
            return self.prior.default
        return self._snapshot.get(key, self.prior.default)

    def snapshot(self) -> Mapping[str, float]:
        return self._snapshot

    def trade_count(self, name: str) -> int:
        key = _key(name)
        return len(self._trades.get(key, ())) if key else 0

    def get_stats(self) -> Dict[str, Dict[str, float]]:
        stats = {}
        for key, history in self._trades.items():
            pnls = [p for p, _ in history]
            stats[key] = {
                "trades": len(pnls),
                "win_rate": round(self._snapshot.get(key, 0.0), 4),
                "observed": self._observed(key) is not None,
                "total_pnl": round(sum(pnls), 6),
            }
        return stats
