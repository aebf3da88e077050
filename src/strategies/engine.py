"""
Strategy Engine - Owns the strategy roster and evaluates enabled strategies.

Roster state (enabled flag, base weight, parameter overrides) lives in an
immutable RosterSnapshot. Every update builds a new snapshot and swaps the
reference under a lock, so a decision cycle that took a snapshot at its
start never sees a half-applied settings change.
"""

from __future__ import annotations

import asyncio
import math
import threading
import traceback
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from src.core.config import StrategySettings
from src.core.exceptions import ParameterValidationError, UnknownStrategyError
from src.core.logger import get_logger
from src.core.models import CandleWindow
from src.strategies.base import BaseStrategy, StrategySignal
from src.strategies.registry import StrategyID, build_strategies

logger = get_logger("strategy_engine")

MIN_WEIGHT = 0.1
MAX_WEIGHT = 2.0


@dataclass(frozen=True)
class StrategyConfig:
    strategy_id: StrategyID
    enabled: bool = True
    weight: float = 1.0
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def name(self) -> str:
        return self.strategy_id.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "weight": self.weight,
            "params": dict(self.params),
        }


@dataclass(frozen=True)
class RosterSnapshot:
    """Point-in-time, read-only view of the roster."""
    configs: Tuple[StrategyConfig, ...]
    version: int = 0

    def get(self, name: Any) -> Optional[StrategyConfig]:
        sid = StrategyID.lookup(name)
        if sid is None:
            return None
        for cfg in self.configs:
            if cfg.strategy_id == sid:
                return cfg
        return None

    def enabled_configs(self) -> List[StrategyConfig]:
        return [cfg for cfg in self.configs if cfg.enabled]

    def weight_of(self, name: Any, default: float = 1.0) -> float:
        cfg = self.get(name)
        return cfg.weight if cfg is not None else default

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "strategies": [c.to_dict() for c in self.configs]}


def _coerce_weight(name: str, weight: Any) -> float:
    if isinstance(weight, (bool, np.bool_)) or not isinstance(
        weight, (int, float, np.integer, np.floating)
    ):
        raise ParameterValidationError(name, "weight", f"expected a number, got {type(weight).__name__}")
    value = float(weight)
    if not math.isfinite(value):
        raise ParameterValidationError(name, "weight", "must be finite")
    return max(MIN_WEIGHT, min(MAX_WEIGHT, value))


class StrategyEngine:
    """
    Runs the enabled strategies of the current roster against a candle window.

    Settings updates are validated at this boundary; a rejected update for
    one strategy leaves every strategy's state untouched.
    """

    def __init__(
        self,
        settings: Optional[Mapping[str, StrategySettings]] = None,
        strategies: Optional[Dict[StrategyID, BaseStrategy]] = None,
        timeout_seconds: float = 5.0,
    ):
        self._strategies: Dict[StrategyID, BaseStrategy] = strategies or build_strategies()
        self.timeout_seconds = timeout_seconds
        self._lock = threading.RLock()
        self._snapshot = self._initial_snapshot(settings or {})

    def _initial_snapshot(self, settings: Mapping[str, StrategySettings]) -> RosterSnapshot:
        overrides: Dict[StrategyID, StrategySettings] = {}
        for name, item in settings.items():
            sid = StrategyID.lookup(name)
            if sid is None or sid not in self._strategies:
                raise UnknownStrategyError(name)
            overrides[sid] = item

        configs = []
        for sid, strategy in self._strategies.items():
            item = overrides.get(sid, StrategySettings())
            configs.append(StrategyConfig(
                strategy_id=sid,
                enabled=item.enabled,
                weight=float(item.weight),
                params=MappingProxyType(strategy.resolve_params(item.params)),
            ))
        return RosterSnapshot(configs=tuple(configs))

    # -- Roster access ---------------------------------------------------

    def snapshot(self) -> RosterSnapshot:
        """Current roster; the reference is immutable and safe to hold for a cycle."""
        return self._snapshot

    def strategy(self, name: Any) -> BaseStrategy:
        sid = StrategyID.lookup(name)
        if sid is None or sid not in self._strategies:
            raise UnknownStrategyError(str(name))
        return self._strategies[sid]

    @property
    def strategy_names(self) -> List[str]:
        return [cfg.name for cfg in self._snapshot.configs]

    def _swap(self, name: Any, **changes) -> Optional[StrategyConfig]:
        sid = StrategyID.lookup(name)
        with self._lock:
            current = self._snapshot
            cfg = current.get(sid) if sid is not None else None
            if cfg is None:
                logger.error("Update for unknown strategy ignored", strategy=str(name))
                return None
            updated = replace(cfg, **changes)
            self._snapshot = RosterSnapshot(
                configs=tuple(updated if c.strategy_id == sid else c for c in current.configs),
                version=current.version + 1,
            )
            return updated

    def update_weight(self, name: str, weight: Any) -> Optional[float]:
        """Store a clamped base weight. Returns the stored value, None for unknown names."""
        value = _coerce_weight(str(name), weight)
        updated = self._swap(name, weight=value)
        if updated is None:
            return None
        if value != weight:
            logger.info("Strategy weight clamped", strategy=updated.name, requested=weight, stored=value)
        return updated.weight

    def set_enabled(self, name: str, enabled: Any) -> bool:
        """Idempotent enable/disable. Returns False when the name is not in the roster."""
        if not isinstance(enabled, (bool, np.bool_)):
            raise ParameterValidationError(
                str(name), "enabled", f"expected bool, got {type(enabled).__name__}"
            )
        updated = self._swap(name, enabled=bool(enabled))
        if updated is not None:
            logger.info("Strategy toggled", strategy=updated.name, enabled=updated.enabled)
        return updated is not None

    def update_parameter(self, name: str, key: str, value: Any) -> Dict[str, Any]:
        """Validate and store one parameter override; returns the resolved params."""
        strategy = self.strategy(name)
        with self._lock:
            merged = dict(self._snapshot.get(name).params)
            merged[key] = value
            resolved = strategy.resolve_params(merged)
            self._swap(name, params=MappingProxyType(resolved))
        logger.info("Strategy parameter updated", strategy=strategy.name, key=key, value=value)
        return resolved

    # -- Evaluation ------------------------------------------------------

    def _log_failure(self, cfg: StrategyConfig, window: CandleWindow, e: Exception) -> None:
        logger.error(
            "Strategy error",
            strategy=cfg.name,
            error=repr(e),
            error_type=type(e).__name__,
            bars=len(window),
            traceback="".join(traceback.format_exception(type(e), e, e.__traceback__)),
        )

    def evaluate(
        self, window: CandleWindow, snapshot: Optional[RosterSnapshot] = None
    ) -> List[StrategySignal]:
        """Run enabled strategies sequentially, in roster order."""
        snap = snapshot or self.snapshot()
        signals: List[StrategySignal] = []
        for cfg in snap.enabled_configs():
            try:
                signals.append(self._strategies[cfg.strategy_id].analyze(window, cfg.params))
            except Exception as e:
                self._log_failure(cfg, window, e)
        return signals

    async def evaluate_async(
        self,
        window: CandleWindow,
        snapshot: Optional[RosterSnapshot] = None,
        timeout: Optional[float] = None,
    ) -> List[StrategySignal]:
        """Fan out enabled strategies to worker threads and join before returning.

        Results keep roster order. A strategy that times out or raises is
        logged and left out of this cycle.
        """
        snap = snapshot or self.snapshot()
        limit = timeout if timeout is not None else self.timeout_seconds
        results = await asyncio.gather(*(
            self._run_one(cfg, window, limit) for cfg in snap.enabled_configs()
        ))
        return [r for r in results if r is not None]

    async def _run_one(
        self, cfg: StrategyConfig, window: CandleWindow, timeout: float
    ) -> Optional[StrategySignal]:
        strategy = self._strategies[cfg.strategy_id]
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(strategy.analyze, window, cfg.params),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Strategy timed out", strategy=cfg.name, timeout=timeout)
        except Exception as e:
            self._log_failure(cfg, window, e)
        return None
