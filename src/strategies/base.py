"""
Base Strategy Interface - Abstract base for all indicator strategies.

Defines the contract every strategy implements: a pure evaluator that maps
a candle window plus a resolved parameter set to a directional vote with
confidence. Strategies hold no mutable state; enabled flags, weights and
parameter overrides live in the strategy roster.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np

from src.core.exceptions import ParameterValidationError
from src.core.logger import get_logger
from src.core.models import CandleWindow

logger = get_logger("strategy")


class SignalDirection(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"

    @classmethod
    def parse(cls, value: Any, source: str = "") -> "SignalDirection":
        """Case-insensitive decode; anything unrecognised fails closed to HOLD."""
        if isinstance(value, SignalDirection):
            return value
        text = str(value).strip().lower() if value is not None else ""
        for direction in cls:
            if direction.value == text:
                return direction
        logger.warning(
            "Unrecognised signal direction, defaulting to hold",
            value=repr(value),
            source=source or None,
        )
        return cls.HOLD


@dataclass(frozen=True)
class StrategySignal:
    """
    Output from a strategy's analysis of a candle window.

    Produced fresh per evaluation and never mutated. Confidence is clamped
    to [0, 1] on construction.
    """
    strategy_name: str
    direction: SignalDirection
    confidence: float
    reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        conf = float(self.confidence)
        if math.isnan(conf):
            conf = 0.0
        object.__setattr__(self, "confidence", max(0.0, min(1.0, conf)))
        if not isinstance(self.direction, SignalDirection):
            object.__setattr__(
                self, "direction",
                SignalDirection.parse(self.direction, source=self.strategy_name),
            )

    @property
    def is_actionable(self) -> bool:
        return self.direction != SignalDirection.HOLD and self.confidence > 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy_name,
            "direction": self.direction.value,
            "confidence": round(self.confidence, 4),
            "reason": self.reason,
            "metadata": _sanitize_for_json(self.metadata),
        }


def _sanitize_for_json(obj: Any) -> Any:
    """Convert numpy types to Python native types; NaN/Inf become None."""
    if isinstance(obj, dict):
        return {k: _sanitize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(v) for v in obj]
    elif isinstance(obj, (np.bool_,)):
        return bool(obj)
    elif isinstance(obj, (np.integer,)):
        return int(obj)
    elif isinstance(obj, (np.floating,)):
        v = float(obj)
        return None if (math.isnan(v) or math.isinf(v)) else v
    elif isinstance(obj, float):
        return None if (math.isnan(obj) or math.isinf(obj)) else obj
    elif isinstance(obj, np.ndarray):
        return [_sanitize_for_json(x) for x in obj.tolist()]
    return obj


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

class ParameterKind(str, Enum):
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    STR = "str"


@dataclass(frozen=True)
class ParameterSpec:
    """Declared, typed strategy setting with its own validation rule."""
    name: str
    kind: ParameterKind
    default: Any
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    choices: Tuple[str, ...] = ()
    description: str = ""

    def validate(self, value: Any, strategy: str = "") -> Any:
        """Return the value coerced to this kind or raise ParameterValidationError."""
        def fail(msg: str):
            raise ParameterValidationError(strategy, self.name, msg)

        if self.kind == ParameterKind.BOOL:
            if not isinstance(value, (bool, np.bool_)):
                fail(f"expected bool, got {type(value).__name__}")
            return bool(value)

        if self.kind == ParameterKind.STR:
            if not isinstance(value, str):
                fail(f"expected str, got {type(value).__name__}")
            if self.choices and value not in self.choices:
                fail(f"must be one of {list(self.choices)}")
            return value

        # bool is an int subclass; never accept it as a number
        if isinstance(value, (bool, np.bool_)):
            fail("expected a number, got bool")
        if self.kind == ParameterKind.INT:
            if not isinstance(value, (int, np.integer)):
                fail(f"expected int, got {type(value).__name__}")
            number: Any = int(value)
        else:
            if not isinstance(value, (int, float, np.integer, np.floating)):
                fail(f"expected float, got {type(value).__name__}")
            number = float(value)
            if not math.isfinite(number):
                fail("must be finite")
        if self.minimum is not None and number < self.minimum:
            fail(f"must be >= {self.minimum}")
        if self.maximum is not None and number > self.maximum:
            fail(f"must be <= {self.maximum}")
        return number


def int_param(name: str, default: int, minimum: int, maximum: int, description: str = "") -> ParameterSpec:
    return ParameterSpec(name, ParameterKind.INT, default, minimum, maximum, description=description)


def float_param(name: str, default: float, minimum: float, maximum: float, description: str = "") -> ParameterSpec:
    return ParameterSpec(name, ParameterKind.FLOAT, default, minimum, maximum, description=description)


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------

class BaseStrategy(ABC):
    """
    Abstract base class for indicator strategies.

    Subclasses declare ``name`` and ``parameters`` and implement
    ``_evaluate``. ``analyze`` enforces the minimum-data precondition and
    returns a Hold at confidence 0.0 instead of raising when the window is
    too short.
    """

    name: str = ""
    description: str = ""
    parameters: Tuple[ParameterSpec, ...] = ()

    def __init__(self):
        self._specs: Dict[str, ParameterSpec] = {p.name: p for p in self.parameters}

    def default_params(self) -> Dict[str, Any]:
        return {p.name: p.default for p in self.parameters}

    def parameter_spec(self, key: str) -> ParameterSpec:
        spec = self._specs.get(key)
        if spec is None:
            raise ParameterValidationError(self.name, key, "unknown parameter")
        return spec

    def resolve_params(self, overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Defaults merged with validated overrides."""
        params = self.default_params()
        for key, value in (overrides or {}).items():
            params[key] = self.parameter_spec(key).validate(value, self.name)
        self.validate_combination(params)
        return params

    def validate_combination(self, params: Mapping[str, Any]) -> None:
        """Cross-parameter checks (e.g. fast < slow). Override where needed."""

    def min_bars_required(self, params: Mapping[str, Any]) -> int:
        """Minimum number of bars needed for this strategy."""
        return 50

    def analyze(
        self,
        window: CandleWindow,
        params: Optional[Mapping[str, Any]] = None,
    ) -> StrategySignal:
        """Evaluate one candle window. Pure: same inputs give the same signal."""
        resolved = dict(params) if params is not None else self.default_params()
        required = self.min_bars_required(resolved)
        if len(window) < required:
            return self._hold_signal(
                f"Insufficient data: need {required} bars, have {len(window)}"
            )
        return self._evaluate(window, resolved)

    @abstractmethod
    def _evaluate(self, window: CandleWindow, params: Mapping[str, Any]) -> StrategySignal:
        ...

    def _signal(
        self, direction: SignalDirection, confidence: float, reason: str, **metadata
    ) -> StrategySignal:
        return StrategySignal(
            strategy_name=self.name,
            direction=direction,
            confidence=confidence,
            reason=reason,
            metadata=metadata,
        )

    def _hold_signal(self, reason: str, confidence: float = 0.0, **metadata) -> StrategySignal:
        """Create a Hold (no-trade) signal."""
        return self._signal(SignalDirection.HOLD, confidence, reason, **metadata)
