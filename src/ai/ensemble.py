"""
Ensemble Decider - Regime-weighted vote over strategy signals.

Combines the signals of one cycle into a single strategy-only decision.
Strategies recommended for the detected regime get their base weight
boosted; each signal then contributes confidence x normalised weight to
its direction's score.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from src.ai.regime import MarketRegime, RegimeDetector
from src.ai.scoring import empty_scores, resolve_direction
from src.core.config import EnsembleConfig
from src.core.logger import get_logger
from src.core.models import CandleWindow
from src.strategies.base import SignalDirection, StrategySignal
from src.strategies.engine import RosterSnapshot, StrategyEngine
from src.strategies.registry import StrategyID

logger = get_logger("ensemble")

INSUFFICIENT_DATA = "Insufficient data for ensemble decision"
NO_ACTIVE_STRATEGIES = "No active strategies"


@dataclass(frozen=True)
class EnsembleDecision:
    """Strategy-only decision with the full vote breakdown."""
    direction: SignalDirection
    confidence: float
    reason: str
    regime: MarketRegime = MarketRegime.RANGING
    scores: Dict[str, float] = field(default_factory=dict, compare=False)
    vote_counts: Dict[str, int] = field(default_factory=dict, compare=False)
    weights: Dict[str, float] = field(default_factory=dict, compare=False)
    recommended: Tuple[str, ...] = ()
    signals: Tuple[StrategySignal, ...] = ()

    @property
    def contributing(self) -> List[str]:
        return [s.strategy_name for s in self.signals if s.direction == self.direction]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "confidence": round(self.confidence, 6),
            "reason": self.reason,
            "regime": self.regime.value,
            "scores": {k: round(v, 6) for k, v in self.scores.items()},
            "vote_counts": dict(self.vote_counts),
            "weights": {k: round(v, 6) for k, v in self.weights.items()},
            "recommended": list(self.recommended),
            "signals": [s.to_dict() for s in self.signals],
        }


class EnsembleDecider:

    def __init__(
        self,
        regime_detector: Optional[RegimeDetector] = None,
        config: Optional[EnsembleConfig] = None,
    ):
        self.regime_detector = regime_detector or RegimeDetector()
        self.config = config or EnsembleConfig()

    def _insufficient(self) -> EnsembleDecision:
        return EnsembleDecision(SignalDirection.HOLD, 0.0, INSUFFICIENT_DATA)

    def has_enough_data(self, window: CandleWindow) -> bool:
        return len(window) >= self.config.min_candles

    def decide(
        self,
        window: CandleWindow,
        signals: Sequence[StrategySignal],
        base_weights: Optional[Mapping[str, float]] = None,
        regime: Optional[MarketRegime] = None,
    ) -> EnsembleDecision:
        """Aggregate already-computed signals for this window.

        ``base_weights`` maps strategy name to roster weight (1.0 when absent);
        ``regime`` may be passed in when it was detected concurrently.
        """
        if not self.has_enough_data(window):
            return self._insufficient()

        if regime is None:
            regime = self.regime_detector.detect(window)
        recommended = self.regime_detector.recommended_strategies(regime)
        recommended_names = tuple(sorted(sid.value for sid in recommended))

        adjusted: List[float] = []
        for signal in signals:
            base = (base_weights or {}).get(signal.strategy_name, 1.0)
            sid = StrategyID.lookup(signal.strategy_name)
            boost = self.config.regime_boost if sid in recommended else 1.0
            adjusted.append(max(0.0, base) * boost)

        total_weight = sum(adjusted)
        if not signals or total_weight <= 0:
            return EnsembleDecision(
                SignalDirection.HOLD, 0.0, NO_ACTIVE_STRATEGIES,
                regime=regime, recommended=recommended_names,
            )

        scores = empty_scores()
        votes = {d.value: 0 for d in SignalDirection}
        for signal, weight in zip(signals, adjusted):
            scores[signal.direction] += signal.confidence * (weight / total_weight)
            votes[signal.direction.value] += 1

        direction, confidence = resolve_direction(scores, self.config.decision_threshold)
        reason = self._build_reason(direction, signals, regime)

        decision = EnsembleDecision(
            direction=direction,
            confidence=confidence,
            reason=reason,
            regime=regime,
            scores={d.value: v for d, v in scores.items()},
            vote_counts=votes,
            weights={s.strategy_name: w for s, w in zip(signals, adjusted)},
            recommended=recommended_names,
            signals=tuple(signals),
        )
        logger.debug(
            "Ensemble decision",
            direction=direction.value,
            confidence=round(confidence, 4),
            regime=regime.value,
            buy=round(scores[SignalDirection.BUY], 4),
            sell=round(scores[SignalDirection.SELL], 4),
            hold=round(scores[SignalDirection.HOLD], 4),
        )
        return decision

    @staticmethod
    def _build_reason(
        direction: SignalDirection,
        signals: Sequence[StrategySignal],
        regime: MarketRegime,
    ) -> str:
        agreeing = [s.strategy_name for s in signals if s.direction == direction]
        if not agreeing:
            return f"Mixed signals in {regime.label}"
        return f"{', '.join(agreeing)} agree in {regime.label}"

    def evaluate(
        self,
        window: CandleWindow,
        engine: StrategyEngine,
        snapshot: Optional[RosterSnapshot] = None,
    ) -> EnsembleDecision:
        """Run the roster and aggregate. Below the data floor no strategy is invoked."""
        if not self.has_enough_data(window):
            return self._insufficient()
        snap = snapshot or engine.snapshot()
        signals = engine.evaluate(window, snap)
        return self.decide(window, signals, _weights(snap))

    async def evaluate_async(
        self,
        window: CandleWindow,
        engine: StrategyEngine,
        snapshot: Optional[RosterSnapshot] = None,
        timeout: Optional[float] = None,
    ) -> EnsembleDecision:
        """Concurrent variant: strategy fan-out and regime detection run together."""
        if not self.has_enough_data(window):
            return self._insufficient()
        snap = snapshot or engine.snapshot()
        signals, regime = await asyncio.gather(
            engine.evaluate_async(window, snap, timeout),
            asyncio.to_thread(self.regime_detector.detect, window),
        )
        return self.decide(window, signals, _weights(snap), regime=regime)


def _weights(snapshot: RosterSnapshot) -> Dict[str, float]:
    return {cfg.name: cfg.weight for cfg in snapshot.configs}
