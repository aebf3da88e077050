"""
Configuration Manager - Loads and validates the decision-core configuration.

Merges YAML config with environment variables. Environment variables take
precedence over YAML values, which take precedence over model defaults.
"""

from __future__ import annotations

import logging
import math
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator


DEFAULT_CONFIG_PATH = "config/config.yaml"


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

def _csv(v: str) -> List[str]:
    return [s.strip() for s in v.split(",") if s.strip()]


def _apply_env_overrides(config: Dict[str, Any]) -> None:
    """Override YAML values with environment variables where set."""
    env_mappings = {
        "LOG_LEVEL": ("app", "log_level"),
        "LOG_DIR": ("app", "log_dir"),
        "JSON_LOGS": (
            "app",
            "json_logs",
            lambda v: v.lower() in ("1", "true", "yes", "on"),
        ),
        "FUSION_MIN_CONFIDENCE": ("fusion", "min_confidence_threshold", float),
        "FUSION_MAX_CONFIDENCE": ("fusion", "max_confidence_threshold", float),
        "FUSION_DECISION_THRESHOLD": ("fusion", "decision_threshold", float),
        "ROUTING_TIMEFRAMES": ("routing", "timeframes", _csv),
        "AI_TIMEOUT_SECONDS": ("routing", "ai_timeout_seconds", float),
    }

    for env_key, mapping in env_mappings.items():
        value = os.getenv(env_key)
        if value is None:
            continue
        section = mapping[0]
        key = mapping[1]
        converter = mapping[2] if len(mapping) > 2 else str
        try:
            converted = converter(value)
        except (ValueError, TypeError) as e:
            logging.getLogger("config").warning(
                "Env %s=%r failed to convert: %s. Using YAML value.",
                env_key, value, e,
            )
            continue
        if not isinstance(config.get(section), dict):
            config[section] = {}
        config[section][key] = converted


# ---------------------------------------------------------------------------
# Pydantic Configuration Models (strict validation)
# ---------------------------------------------------------------------------

def _unit_interval(v: float) -> float:
    if not 0.0 <= v <= 1.0:
        raise ValueError("must be within [0, 1]")
    return v


class AppConfig(BaseModel):
    name: str = "Signal Fusion Core"
    version: str = "1.0.0"
    log_level: str = "INFO"
    log_dir: str = "logs"
    json_logs: bool = False


class FusionConfig(BaseModel):
    min_confidence_threshold: float = 0.5
    max_confidence_threshold: float = 0.95
    decision_threshold: float = 0.4
    # Prior used for strategies missing from the win-rate table
    default_win_rate: float = 0.65

    @field_validator(
        "min_confidence_threshold", "max_confidence_threshold",
        "decision_threshold", "default_win_rate",
    )
    @classmethod
    def validate_unit(cls, v):
        return _unit_interval(v)

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.min_confidence_threshold > self.max_confidence_threshold:
            raise ValueError(
                "min_confidence_threshold must be <= max_confidence_threshold"
            )
        return self


class EnsembleConfig(BaseModel):
    decision_threshold: float = 0.4
    regime_boost: float = 1.5
    min_candles: int = 50

    @field_validator("decision_threshold")
    @classmethod
    def validate_threshold(cls, v):
        return _unit_interval(v)

    @field_validator("regime_boost")
    @classmethod
    def validate_boost(cls, v):
        if v < 1.0:
            raise ValueError("regime_boost must be >= 1.0")
        return v


def _default_recommended() -> Dict[str, List[str]]:
    return {
        "trending_bullish": ["EMA", "MACD", "Breakout"],
        "trending_bearish": ["EMA", "MACD", "RSI"],
        "ranging": ["MeanReversion", "RSI"],
        "volatile": ["Breakout", "MeanReversion"],
    }


class RegimeConfig(BaseModel):
    min_candles: int = 50
    atr_period: int = 14
    trend_period: int = 20
    # ATR / last close above this is classified volatile
    volatility_threshold: float = 0.02
    # R^2 of the linear fit above this is classified trending
    trend_strength_threshold: float = 0.5
    recommended: Dict[str, List[str]] = Field(default_factory=_default_recommended)

    @field_validator("min_candles", "atr_period", "trend_period")
    @classmethod
    def validate_positive(cls, v):
        if v < 2:
            raise ValueError("must be >= 2")
        return v


class StrategySettings(BaseModel):
    enabled: bool = True
    weight: float = 1.0
    params: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("weight")
    @classmethod
    def validate_weight(cls, v):
        if math.isnan(v) or not 0.0 <= v <= 2.0:
            raise ValueError("weight must be within [0, 2]")
        return v


def _default_win_rates() -> Dict[str, float]:
    return {
        "RSI": 0.642,
        "EMA": 0.687,
        "MACD": 0.713,
        "MeanReversion": 0.621,
        "Breakout": 0.758,
        "BollingerBands": 0.664,
        "Ichimoku": 0.692,
        "ParabolicSAR": 0.605,
        "WilliamsR": 0.638,
        "Volume": 0.674,
        "ADX": 0.706,
        "Stochastic": 0.617,
    }


class RoutingConfig(BaseModel):
    timeframes: List[str] = Field(default_factory=lambda: ["5m", "1h", "4h"])
    ai_timeout_seconds: float = 5.0
    strategy_timeout_seconds: float = 5.0

    @field_validator("timeframes")
    @classmethod
    def validate_timeframes(cls, v):
        if not v:
            raise ValueError("at least one timeframe is required")
        return v

    @field_validator("ai_timeout_seconds", "strategy_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v


class PerformanceConfig(BaseModel):
    min_trades: int = 10
    window_trades: int = 50

    @model_validator(mode="after")
    def validate_window(self):
        if self.min_trades < 1 or self.window_trades < self.min_trades:
            raise ValueError("require 1 <= min_trades <= window_trades")
        return self


class CoreConfig(BaseModel):
    """Master configuration model with full validation."""
    app: AppConfig = Field(default_factory=AppConfig)
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    ensemble: EnsembleConfig = Field(default_factory=EnsembleConfig)
    regime: RegimeConfig = Field(default_factory=RegimeConfig)
    strategies: Dict[str, StrategySettings] = Field(default_factory=dict)
    win_rates: Dict[str, float] = Field(default_factory=_default_win_rates)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)

    @field_validator("win_rates")
    @classmethod
    def validate_win_rates(cls, v):
        for name, rate in v.items():
            if not 0.0 <= rate <= 1.0:
                raise ValueError(f"win rate for {name} must be within [0, 1]")
        return v


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _read_yaml(config_path: str) -> Dict[str, Any]:
    config_file = Path(config_path)
    if not config_file.exists():
        return {}
    with open(config_file, "r") as f:
        return yaml.safe_load(f) or {}


def _deep_update(dst: Dict[str, Any], src: Dict[str, Any]) -> None:
    for key, value in (src or {}).items():
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            _deep_update(dst[key], value)
        else:
            dst[key] = value


def load_config(
    config_path: str = DEFAULT_CONFIG_PATH,
    overrides: Optional[Dict[str, Any]] = None,
) -> CoreConfig:
    """Load a fresh config (YAML + env) with optional deep overrides."""
    load_dotenv()
    raw = _read_yaml(config_path)
    _apply_env_overrides(raw)
    if overrides:
        _deep_update(raw, overrides)
    return CoreConfig(**raw)


class ConfigManager:
    """
    Thread-safe configuration holder with reload support.

    One instance per orchestrator; there is no process-wide singleton, so
    tests and multiple engines in one process never share settings.
    """

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH,
                 overrides: Optional[Dict[str, Any]] = None):
        self._path = config_path
        self._overrides = overrides
        self._lock = threading.Lock()
        self._config: CoreConfig = load_config(config_path, overrides)

    @property
    def config(self) -> CoreConfig:
        """Get the current validated configuration."""
        return self._config

    def reload(self, config_path: Optional[str] = None) -> CoreConfig:
        """Re-read configuration from disk; the previous config stays on failure."""
        path = config_path or self._path
        fresh = load_config(path, self._overrides)
        with self._lock:
            self._path = path
            self._config = fresh
        return fresh

    def get(self, dotpath: str, default: Any = None) -> Any:
        """
        Access config values using dot notation.

        Example: manager.get("fusion.decision_threshold") -> 0.4
        """
        obj: Any = self._config
        for key in dotpath.split("."):
            if isinstance(obj, dict) and key in obj:
                obj = obj[key]
            elif hasattr(obj, key):
                obj = getattr(obj, key)
            else:
                return default
        return obj

    def to_dict(self) -> Dict[str, Any]:
        """Export full config as dictionary."""
        return self._config.model_dump()
