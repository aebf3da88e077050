"""
AI prediction value object and payload decoding.

The predictor itself is an external collaborator; this module only defines
what the decision core accepts from it. Payloads are either an explicit
direction with confidence, or a buy/sell/hold probability triple from a
classifier head.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

from src.ai.scoring import TIE_EPSILON
from src.core.exceptions import MalformedPredictionError
from src.core.logger import get_logger
from src.core.models import CandleWindow, Timeframe
from src.strategies.base import SignalDirection

logger = get_logger("ai_prediction")


@dataclass(frozen=True)
class AIPrediction:
    direction: SignalDirection
    confidence: float
    model_label: str = "4h"
    timestamp: float = field(default_factory=time.time)
    # Name of the model behind the prediction, for the audit trail only
    model: Optional[str] = None

    def __post_init__(self):
        conf = float(self.confidence)
        if not math.isfinite(conf):
            raise MalformedPredictionError(f"non-finite confidence: {self.confidence!r}")
        object.__setattr__(self, "confidence", max(0.0, min(1.0, conf)))
        if not isinstance(self.direction, SignalDirection):
            object.__setattr__(
                self, "direction",
                SignalDirection.parse(self.direction, source=f"AI-{self.model_label}"),
            )

    @classmethod
    def from_payload(cls, payload: Any, timeframe_label: str = "4h") -> "AIPrediction":
        """
        Decode a predictor response; raises MalformedPredictionError on garbage.

        ``model_label`` is always the timeframe the caller asked about. A
        ``model`` key in the payload is kept as the model name.
        """
        if isinstance(payload, AIPrediction):
            return payload
        if not isinstance(payload, Mapping):
            raise MalformedPredictionError(f"expected a mapping, got {type(payload).__name__}")

        label = timeframe_label
        model = payload.get("model")
        model = str(model) if model is not None else None
        timestamp = _number(payload.get("timestamp", time.time()), "timestamp")

        raw_direction = payload.get("direction", payload.get("signal"))
        if raw_direction is not None:
            if "confidence" not in payload:
                raise MalformedPredictionError("missing confidence")
            confidence = _number(payload["confidence"], "confidence")
            direction = SignalDirection.parse(raw_direction, source=f"AI-{label}")
            return cls(direction, confidence, label, timestamp, model)

        if all(k in payload for k in ("buy", "sell", "hold")):
            probs = {d: _number(payload[d.value], d.value) for d in SignalDirection}
            if any(p < 0 for p in probs.values()):
                raise MalformedPredictionError("negative class probability")
            best = max(probs.values())
            leaders = [d for d, p in probs.items() if best - p <= TIE_EPSILON]
            direction = leaders[0] if len(leaders) == 1 else SignalDirection.HOLD
            return cls(direction, best, label, timestamp, model)

        raise MalformedPredictionError("payload has neither direction nor class probabilities")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "confidence": self.confidence,
            "model_label": self.model_label,
            "timestamp": self.timestamp,
            "model": self.model,
        }


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise MalformedPredictionError(f"{name}: expected a number, got bool")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedPredictionError(f"{name}: expected a number, got {value!r}")
    if not math.isfinite(number):
        raise MalformedPredictionError(f"{name}: not finite")
    return number


class AIPredictor(Protocol):
    """External model adapter. May raise any AIPredictionError subclass."""

    async def predict(self, window: CandleWindow, timeframe: Timeframe) -> Optional[AIPrediction]:
        ...


class StaticPredictor:
    """Replays one fixed payload; used by the CLI and tests."""

    def __init__(self, payload: Any):
        self.payload = payload

    async def predict(self, window: CandleWindow, timeframe: Timeframe) -> Optional[AIPrediction]:
        if self.payload is None:
            return None
        return AIPrediction.from_payload(self.payload, timeframe_label=timeframe.label)
