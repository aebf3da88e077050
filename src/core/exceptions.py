"""Typed exception hierarchy for the decision core.

Lets the routing layer tell a recoverable AI-path failure apart from a
rejected settings update or a genuine programming defect.
"""


class FusionCoreError(Exception):
    """Base class for all decision-core errors."""


class StrategyConfigError(FusionCoreError):
    """A strategy roster update was rejected."""


class UnknownStrategyError(StrategyConfigError):
    """The roster is closed; the named strategy is not part of it."""

    def __init__(self, name: str):
        super().__init__(f"Unknown strategy: {name!r}")
        self.name = name


class ParameterValidationError(StrategyConfigError):
    """Malformed or out-of-range value for a strategy setting."""

    def __init__(self, strategy: str, key: str, message: str):
        super().__init__(f"{strategy}.{key}: {message}")
        self.strategy = strategy
        self.key = key


class AIPredictionError(FusionCoreError):
    """The AI path could not produce a usable prediction for this cycle."""


class AIUnavailableError(AIPredictionError):
    """Model not loaded or predictor not configured."""


class AITimeoutError(AIPredictionError):
    """Inference did not complete within the configured budget."""


class MalformedPredictionError(AIPredictionError):
    """Predictor returned output that cannot be decoded."""


class InvariantViolation(FusionCoreError):
    """Internal invariant broken (negative weight, mixed candle windows...)."""
