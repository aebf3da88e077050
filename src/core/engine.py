"""
Decision Engine - Orchestrates one decision cycle per (symbol, timeframe).

Lifecycle of a cycle:
1. Snapshot the strategy roster and the win-rate table
2. Route the timeframe (AI path or strategy-only)
3. Ask the AI predictor under a timeout, concurrently with the strategy
   fan-out and regime detection
4. Aggregate the strategy signals in the ensemble
5. Fuse AI and strategy votes into a FinalDecision
6. Publish under last-cycle-wins, keyed by the candle window's end time

A newer window for the same (symbol, timeframe) cancels the cycle still in
flight for an older one. AI failures never leave this module: they are
recorded as FallbackEvents and the cycle continues strategy-only.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Deque, Dict, List, Mapping, Optional, Set, Tuple

from src.ai.ensemble import EnsembleDecider, EnsembleDecision
from src.ai.fusion import FinalDecision, SignalFusionEngine
from src.ai.performance import (
    StaticWinRateProvider,
    StrategyPerformanceProvider,
    TradeHistoryWinRateProvider,
)
from src.ai.prediction import AIPrediction, AIPredictor
from src.ai.regime import RegimeDetector
from src.core.config import CoreConfig
from src.core.exceptions import AITimeoutError, AIUnavailableError
from src.core.logger import CycleTimer, cycle_context, get_logger
from src.core.models import CandleWindow, Timeframe
from src.core.routing import FallbackEvent, Route, RoutingPolicy, classify_failure
from src.strategies.engine import StrategyEngine

logger = get_logger("engine")

DecisionKey = Tuple[str, str]


def decision_key(symbol: str, timeframe: Any) -> DecisionKey:
    return (symbol, Timeframe.parse(timeframe).value)


class DecisionStore:
    """Latest published decision per (symbol, timeframe); older windows never overwrite newer ones."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[DecisionKey, Tuple[float, FinalDecision]] = {}

    def publish(self, key: DecisionKey, window_end: float, decision: FinalDecision) -> bool:
        with self._lock:
            current = self._entries.get(key)
            if current is not None and window_end < current[0]:
                logger.debug(
                    "Stale cycle discarded",
                    symbol=key[0], timeframe=key[1],
                    window_end=window_end, published_end=current[0],
                )
                return False
            self._entries[key] = (window_end, decision)
            return True

    def latest(self, key: DecisionKey) -> Optional[FinalDecision]:
        entry = self._entries.get(key)
        return entry[1] if entry else None

    def window_end(self, key: DecisionKey) -> Optional[float]:
        entry = self._entries.get(key)
        return entry[0] if entry else None

    def snapshot(self) -> Dict[DecisionKey, FinalDecision]:
        with self._lock:
            return {k: v[1] for k, v in self._entries.items()}

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


@dataclass(frozen=True)
class CycleResult:
    symbol: str
    route: Route
    window_end: float
    decision: FinalDecision
    ensemble: EnsembleDecision
    ai_prediction: Optional[AIPrediction] = None
    fallback: Optional[FallbackEvent] = None
    roster_version: int = 0
    elapsed_ms: float = 0.0
    published: bool = False

    @property
    def timeframe(self) -> Timeframe:
        return self.route.timeframe

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe.value,
            "window_end": self.window_end,
            "decision": self.decision.to_dict(),
            "ensemble": self.ensemble.to_dict(),
            "ai_prediction": self.ai_prediction.to_dict() if self.ai_prediction else None,
            "fallback": self.fallback.to_dict() if self.fallback else None,
            "roster_version": self.roster_version,
            "elapsed_ms": round(self.elapsed_ms, 2),
            "published": self.published,
        }


async def _no_prediction() -> Tuple[Optional[AIPrediction], Optional[FallbackEvent]]:
    return None, None


class DecisionEngine:
    """
    Wires the decision core together from one CoreConfig.

    Every collaborator is constructor-injected; nothing here is a
    process-wide singleton. ``predictor`` may be None, in which case the AI
    timeframe records an ``unavailable`` fallback each cycle.
    """

    def __init__(
        self,
        config: Optional[CoreConfig] = None,
        predictor: Optional[AIPredictor] = None,
        strategy_engine: Optional[StrategyEngine] = None,
        performance_provider: Optional[StrategyPerformanceProvider] = None,
        store: Optional[DecisionStore] = None,
    ):
        self.config = config or CoreConfig()
        cfg = self.config
        self.predictor = predictor
        self.strategy_engine = strategy_engine or StrategyEngine(
            cfg.strategies, timeout_seconds=cfg.routing.strategy_timeout_seconds,
        )
        self.regime_detector = RegimeDetector(cfg.regime)
        self.ensemble = EnsembleDecider(self.regime_detector, cfg.ensemble)
        self.performance_provider = performance_provider or TradeHistoryWinRateProvider(
            prior=StaticWinRateProvider(cfg.win_rates, default=cfg.fusion.default_win_rate),
            min_trades=cfg.performance.min_trades,
            window_trades=cfg.performance.window_trades,
        )
        self.fusion = SignalFusionEngine(cfg.fusion, self.performance_provider)
        self.routing = RoutingPolicy(cfg.routing.timeframes)
        self.store = store or DecisionStore()

        self.fallback_events: Deque[FallbackEvent] = deque(maxlen=500)
        self._inflight: Dict[DecisionKey, Tuple[float, asyncio.Task]] = {}
        self._superseded: Set[asyncio.Task] = set()
        self._stats = {"cycles": 0, "published": 0, "discarded": 0, "fallbacks": 0}

    # -- AI path ---------------------------------------------------------

    def _record_fallback(
        self, symbol: str, route: Route, exc: BaseException, window: CandleWindow
    ) -> FallbackEvent:
        event = FallbackEvent(
            symbol=symbol,
            timeframe=route.timeframe,
            reason=classify_failure(exc),
            detail=str(exc) or type(exc).__name__,
            window_end=window.end_time,
        )
        self.fallback_events.append(event)
        self._stats["fallbacks"] += 1
        logger.warning(
            "AI path failed, falling back to strategy-only",
            symbol=symbol,
            timeframe=route.timeframe.value,
            reason=event.reason.value,
            detail=event.detail,
        )
        return event

    async def _predict(
        self, symbol: str, route: Route, window: CandleWindow, timeout: float
    ) -> Tuple[Optional[AIPrediction], Optional[FallbackEvent]]:
        try:
            if self.predictor is None:
                raise AIUnavailableError("no AI predictor configured")
            try:
                payload = await asyncio.wait_for(
                    self.predictor.predict(window, route.timeframe), timeout=timeout,
                )
            except asyncio.TimeoutError:
                raise AITimeoutError(f"inference exceeded {timeout:.1f}s")
            if payload is None:
                raise AIUnavailableError("predictor returned no prediction")
            prediction = AIPrediction.from_payload(payload, timeframe_label=route.timeframe.label)
            return prediction, None
        except Exception as e:
            return None, self._record_fallback(symbol, route, e, window)

    # -- Cycle -----------------------------------------------------------

    async def _cycle(self, symbol: str, route: Route, window: CandleWindow) -> CycleResult:
        cfg = self.config
        snapshot = self.strategy_engine.snapshot()
        win_rates = self.fusion.win_rate_snapshot()
        window_end = window.end_time if window.end_time is not None else float("-inf")

        with cycle_context(symbol=symbol, timeframe=route.timeframe.value, window_end=window_end), \
                CycleTimer(logger, "decision_cycle", roster_version=snapshot.version) as timer:
            ai_call = (
                self._predict(symbol, route, window, cfg.routing.ai_timeout_seconds)
                if route.attempt_ai else _no_prediction()
            )
            (prediction, fallback), ensemble = await asyncio.gather(
                ai_call,
                self.ensemble.evaluate_async(
                    window, self.strategy_engine, snapshot,
                    timeout=cfg.routing.strategy_timeout_seconds,
                ),
            )
            decision = self.fusion.fuse(
                prediction,
                ensemble.signals,
                window,
                route.timeframe,
                config=cfg.fusion,
                win_rates=win_rates,
            )

        return CycleResult(
            symbol=symbol,
            route=route,
            window_end=window_end,
            decision=decision,
            ensemble=ensemble,
            ai_prediction=prediction,
            fallback=fallback,
            roster_version=snapshot.version,
            elapsed_ms=timer.elapsed_ms,
        )

    async def run_cycle(
        self, symbol: str, timeframe: Any, window: CandleWindow
    ) -> Optional[CycleResult]:
        """
        Run one cycle and publish it.

        Returns None when the cycle was abandoned because a newer window for
        the same (symbol, timeframe) arrived first. A completed cycle whose
        window is older than the published one comes back with
        ``published=False``.
        """
        route = self.routing.route(timeframe)
        key = (symbol, route.timeframe.value)
        window_end = window.end_time if window.end_time is not None else float("-inf")
        self._stats["cycles"] += 1

        current = self._inflight.get(key)
        if current is not None and not current[1].done():
            inflight_end, inflight_task = current
            if inflight_end > window_end:
                self._stats["discarded"] += 1
                logger.debug(
                    "Stale cycle discarded",
                    symbol=symbol, timeframe=key[1],
                    window_end=window_end, inflight_end=inflight_end,
                )
                return None
            self._superseded.add(inflight_task)
            inflight_task.cancel()
            logger.debug(
                "Superseded cycle cancelled",
                symbol=symbol, timeframe=key[1],
                old_end=inflight_end, new_end=window_end,
            )

        task = asyncio.ensure_future(self._cycle(symbol, route, window))
        self._inflight[key] = (window_end, task)
        try:
            result = await task
        except asyncio.CancelledError:
            if task in self._superseded:
                self._superseded.discard(task)
                self._stats["discarded"] += 1
                return None
            raise
        finally:
            entry = self._inflight.get(key)
            if entry is not None and entry[1] is task:
                del self._inflight[key]

        published = self.store.publish(key, result.window_end, result.decision)
        self._stats["published" if published else "discarded"] += 1
        return replace(result, published=published)

    async def run_timeframes(
        self, symbol: str, windows: Mapping[Any, CandleWindow]
    ) -> List[Optional[CycleResult]]:
        """Run one cycle per timeframe for a symbol concurrently."""
        return list(await asyncio.gather(*(
            self.run_cycle(symbol, tf, window) for tf, window in windows.items()
        )))

    # -- Accessors -------------------------------------------------------

    def latest(self, symbol: str, timeframe: Any) -> Optional[FinalDecision]:
        return self.store.latest(decision_key(symbol, timeframe))

    def record_trade(self, strategy: str, pnl: float) -> bool:
        """Feed a closed trade back into the win-rate provider when it tracks history."""
        recorder = getattr(self.performance_provider, "record_trade", None)
        if recorder is None:
            return False
        return recorder(strategy, pnl)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "inflight": len(self._inflight),
            "roster_version": self.strategy_engine.snapshot().version,
            "recent_fallbacks": [e.to_dict() for e in list(self.fallback_events)[-10:]],
        }
