"""
Signal Fusion Engine - Combines an optional AI prediction with strategy signals.

Source weights are a fixed binary policy: with an AI prediction the AI
component carries 0.6 and the strategies share 0.4; without one the
strategies share the whole budget. Inside the strategy budget each signal
is weighted by its strategy's win rate (equal weights when the win-rate
source is unavailable or degenerate). Every contributing vote is kept as a
Component so a decision can be audited after the fact.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from src.ai.performance import StaticWinRateProvider, StrategyPerformanceProvider
from src.ai.prediction import AIPrediction
from src.ai.scoring import empty_scores, resolve_direction
from src.core.config import FusionConfig
from src.core.exceptions import InvariantViolation
from src.core.logger import get_logger
from src.core.models import CandleWindow, Timeframe
from src.strategies.base import SignalDirection, StrategySignal
from src.strategies.registry import StrategyID

logger = get_logger("fusion")

MODE_AI = "AI Active"
MODE_STRATEGY_ONLY = "Strategy-Only"
NO_CLEAR_SIGNALS = "No clear signals - market analysis in progress"

# (ai, strategies) source weights per mode
AI_ACTIVE_WEIGHTS = (0.6, 0.4)
STRATEGY_ONLY_WEIGHTS = (0.0, 1.0)

_VERBS = {
    SignalDirection.BUY: "Buy",
    SignalDirection.SELL: "Sell",
    SignalDirection.HOLD: "Hold",
}


@dataclass(frozen=True)
class Component:
    """One vote inside a fusion cycle: its source, weight and confidence."""
    source: str
    vote: SignalDirection
    weight: float
    score: float

    @property
    def weighted_score(self) -> float:
        return self.score * self.weight

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "vote": self.vote.value,
            "weight": self.weight,
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Component":
        return cls(
            source=str(data["source"]),
            vote=SignalDirection(data["vote"]),
            weight=float(data["weight"]),
            score=float(data["score"]),
        )


@dataclass(frozen=True)
class FinalDecision:
    """The decision core's only external output. Immutable; JSON round-trips."""
    action: SignalDirection
    confidence: float
    rationale: str
    components: Tuple[Component, ...] = ()
    mode: str = MODE_STRATEGY_ONLY
    timeframe: str = ""
    scores: Dict[str, float] = field(default_factory=dict)

    @property
    def ai_component(self) -> Optional[Component]:
        for component in self.components:
            if component.source.startswith("AI-"):
                return component
        return None

    @property
    def strategy_components(self) -> List[Component]:
        return [c for c in self.components if c.source.startswith("Strategy:")]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "confidence": self.confidence,
            "rationale": self.rationale,
            "components": [c.to_dict() for c in self.components],
            "mode": self.mode,
            "timeframe": self.timeframe,
            "scores": dict(self.scores),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FinalDecision":
        return cls(
            action=SignalDirection(data["action"]),
            confidence=float(data["confidence"]),
            rationale=str(data["rationale"]),
            components=tuple(Component.from_dict(c) for c in data.get("components", ())),
            mode=str(data.get("mode", MODE_STRATEGY_ONLY)),
            timeframe=str(data.get("timeframe", "")),
            scores={str(k): float(v) for k, v in (data.get("scores") or {}).items()},
        )

    @classmethod
    def from_json(cls, text: str) -> "FinalDecision":
        return cls.from_dict(json.loads(text))


class SignalFusionEngine:
    """
    Top-level fusion of AI and strategy votes.

    Pure per call: the result depends only on the arguments and the win-rate
    snapshot read at the start of the call.
    """

    def __init__(
        self,
        config: Optional[FusionConfig] = None,
        performance_provider: Optional[StrategyPerformanceProvider] = None,
    ):
        self.config = config or FusionConfig()
        self.performance_provider = performance_provider or StaticWinRateProvider(
            default=self.config.default_win_rate
        )

    # -- Weights ---------------------------------------------------------

    @staticmethod
    def source_weights(has_ai: bool) -> Tuple[float, float]:
        return AI_ACTIVE_WEIGHTS if has_ai else STRATEGY_ONLY_WEIGHTS

    def win_rate_snapshot(self) -> Optional[Mapping[str, float]]:
        """Read the provider once. None when it fails; callers then weight equally."""
        try:
            return self.performance_provider.snapshot()
        except Exception as e:
            logger.warning("Win-rate provider unavailable, using equal weights", error=repr(e))
            return None

    def strategy_weights(
        self,
        signals: Sequence[StrategySignal],
        budget: float,
        win_rates: Optional[Mapping[str, float]],
        config: Optional[FusionConfig] = None,
    ) -> List[float]:
        """Split ``budget`` across signals in proportion to win rate."""
        cfg = config or self.config
        if not signals:
            return []
        equal = [budget / len(signals)] * len(signals)
        if win_rates is None:
            return equal

        rates = []
        for signal in signals:
            sid = StrategyID.lookup(signal.strategy_name)
            rate = win_rates.get(sid.value, cfg.default_win_rate) if sid else cfg.default_win_rate
            rate = float(rate)
            if not math.isfinite(rate) or rate < 0:
                logger.warning(
                    "Degenerate win rate ignored",
                    strategy=signal.strategy_name, win_rate=rate,
                )
                rate = 0.0
            rates.append(rate)

        total = sum(rates)
        if total <= 0:
            logger.warning("Win rates sum to zero, using equal weights", strategies=len(signals))
            return equal
        return [budget * rate / total for rate in rates]

    # -- Fusion ----------------------------------------------------------

    def build_components(
        self,
        ai_prediction: Optional[AIPrediction],
        strategy_signals: Sequence[StrategySignal],
        win_rates: Optional[Mapping[str, float]],
        config: Optional[FusionConfig] = None,
    ) -> List[Component]:
        cfg = config or self.config
        ai_weight, strategy_weight = self.source_weights(ai_prediction is not None)
        budget = strategy_weight if strategy_signals else 0.0

        components: List[Component] = []
        if ai_prediction is not None:
            components.append(Component(
                source=f"AI-{ai_prediction.model_label}",
                vote=ai_prediction.direction,
                weight=ai_weight,
                score=ai_prediction.confidence,
            ))

        weights = self.strategy_weights(strategy_signals, budget, win_rates, cfg)
        for signal, weight in zip(strategy_signals, weights):
            components.append(Component(
                source=f"Strategy:{signal.strategy_name}",
                vote=signal.direction,
                weight=weight,
                score=signal.confidence,
            ))
        return components

    def fuse(
        self,
        ai_prediction: Optional[AIPrediction],
        strategy_signals: Sequence[StrategySignal],
        window: Optional[CandleWindow] = None,
        timeframe: Optional[Timeframe] = None,
        config: Optional[FusionConfig] = None,
        win_rates: Optional[Mapping[str, float]] = None,
    ) -> FinalDecision:
        """
        Fuse one cycle's votes into a FinalDecision.

        ``strategy_signals`` must all come from ``window``. ``win_rates``
        pins the win-rate table for this call; when omitted the provider is
        read once.
        """
        cfg = config or self.config
        mode = MODE_AI if ai_prediction is not None else MODE_STRATEGY_ONLY
        tf_label = timeframe.label if timeframe is not None else ""
        rates = win_rates if win_rates is not None else self.win_rate_snapshot()

        components = self.build_components(ai_prediction, strategy_signals, rates, cfg)
        decision = self.decide(components, mode=mode, timeframe=tf_label, config=cfg)

        logger.info(
            "Signal fusion",
            mode=mode,
            timeframe=tf_label or None,
            action=decision.action.value,
            confidence=round(decision.confidence, 4),
            components=len(components),
            bars=len(window) if window is not None else None,
        )
        return decision

    def decide(
        self,
        components: Sequence[Component],
        mode: str = MODE_STRATEGY_ONLY,
        timeframe: str = "",
        config: Optional[FusionConfig] = None,
    ) -> FinalDecision:
        """Score assembled components. A broken invariant fails fast, or holds under -O."""
        cfg = config or self.config
        try:
            _check_components(components)
        except InvariantViolation as e:
            logger.error("Fusion invariant violated", error=str(e), mode=mode)
            if __debug__:
                raise
            return FinalDecision(
                action=SignalDirection.HOLD,
                confidence=cfg.min_confidence_threshold,
                rationale=NO_CLEAR_SIGNALS,
                components=tuple(components),
                mode=mode,
                timeframe=timeframe,
            )

        scores = empty_scores()
        for component in components:
            scores[component.vote] += component.weighted_score

        action, raw = resolve_direction(scores, cfg.decision_threshold)
        total = sum(scores.values())
        normalized = raw / total if total > 0 else 0.5
        confidence = max(
            cfg.min_confidence_threshold,
            min(cfg.max_confidence_threshold, normalized),
        )

        return FinalDecision(
            action=action,
            confidence=confidence,
            rationale=_build_rationale(action, scores, components),
            components=tuple(components),
            mode=mode,
            timeframe=timeframe,
            scores={d.value: v for d, v in scores.items()},
        )


def _check_components(components: Sequence[Component]) -> None:
    for c in components:
        if not (math.isfinite(c.weight) and c.weight >= 0):
            raise InvariantViolation(f"{c.source}: weight {c.weight!r} is negative or not finite")
        if not (math.isfinite(c.score) and 0.0 <= c.score <= 1.0):
            raise InvariantViolation(f"{c.source}: score {c.score!r} outside [0, 1]")


def _build_rationale(
    action: SignalDirection,
    scores: Mapping[SignalDirection, float],
    components: Sequence[Component],
) -> str:
    voters = [c for c in components if c.vote == action]
    if not voters:
        return NO_CLEAR_SIGNALS
    sources = ", ".join(f"{c.source} ({int(c.weighted_score * 100)}%)" for c in voters)
    return f"{_VERBS[action]} signal (score: {scores[action]:.2f}) from {sources}"
