"""
Routing Policy - Decides per timeframe whether the AI path is attempted.

Only the longest configured timeframe asks the AI predictor; every shorter
timeframe goes straight to strategy-only fusion. When the AI path is
attempted and fails, the cycle falls back to strategy-only fusion and a
FallbackEvent records why.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from src.core.exceptions import (
    AITimeoutError,
    AIUnavailableError,
    MalformedPredictionError,
)
from src.core.logger import get_logger
from src.core.models import Timeframe

logger = get_logger("routing")


class FallbackReason(str, Enum):
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    ERROR = "error"


def classify_failure(exc: BaseException) -> FallbackReason:
    """Map an AI-path exception to the reason recorded for the fallback."""
    if isinstance(exc, (AITimeoutError, asyncio.TimeoutError)):
        return FallbackReason.TIMEOUT
    if isinstance(exc, AIUnavailableError):
        return FallbackReason.UNAVAILABLE
    if isinstance(exc, MalformedPredictionError):
        return FallbackReason.MALFORMED
    return FallbackReason.ERROR


@dataclass(frozen=True)
class Route:
    timeframe: Timeframe
    attempt_ai: bool

    @property
    def mode(self) -> str:
        return "ai" if self.attempt_ai else "strategy_only"


@dataclass(frozen=True)
class FallbackEvent:
    symbol: str
    timeframe: Timeframe
    reason: FallbackReason
    detail: str = ""
    window_end: Optional[float] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe.value,
            "reason": self.reason.value,
            "detail": self.detail,
            "window_end": self.window_end,
            "timestamp": self.timestamp,
        }


class RoutingPolicy:

    def __init__(self, timeframes: Sequence[Any] = ("5m", "1h", "4h")):
        parsed: List[Timeframe] = []
        for tf in timeframes:
            value = Timeframe.parse(tf)
            if value not in parsed:
                parsed.append(value)
        if not parsed:
            raise ValueError("RoutingPolicy needs at least one timeframe")
        self.timeframes = tuple(sorted(parsed, key=lambda t: t.seconds))

    @property
    def ai_timeframe(self) -> Timeframe:
        return self.timeframes[-1]

    def attempts_ai(self, timeframe: Any) -> bool:
        return Timeframe.parse(timeframe) == self.ai_timeframe

    def route(self, timeframe: Any) -> Route:
        tf = Timeframe.parse(timeframe)
        if tf not in self.timeframes:
            logger.debug("Unconfigured timeframe routed strategy-only", timeframe=tf.value)
        return Route(timeframe=tf, attempt_ai=tf == self.ai_timeframe)
