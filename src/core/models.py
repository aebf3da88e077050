"""
Market data value objects: Candle, CandleWindow and Timeframe.

A CandleWindow is the unit of analysis for one decision cycle. Strategies,
the regime detector and the ensemble all read the same window, and the
window's end timestamp keys the last-cycle-wins publication.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Sequence

import numpy as np


class Timeframe(str, Enum):
    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"

    @property
    def seconds(self) -> int:
        return _TIMEFRAME_SECONDS[self]

    @property
    def label(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> "Timeframe":
        """Parse "4h", "4H" or an existing Timeframe; raises ValueError otherwise."""
        if isinstance(value, Timeframe):
            return value
        text = str(value).strip().lower()
        for tf in cls:
            if tf.value == text:
                return tf
        raise ValueError(f"Unknown timeframe: {value!r}")


_TIMEFRAME_SECONDS = {
    Timeframe.M1: 60,
    Timeframe.M5: 300,
    Timeframe.M15: 900,
    Timeframe.H1: 3600,
    Timeframe.H4: 14400,
}


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar. ``open_time`` is epoch seconds (UTC)."""
    open_time: float
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def __post_init__(self):
        for name in ("open", "high", "low", "close", "volume"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise ValueError(f"Candle.{name} must be finite, got {value!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candle":
        ts = data.get("open_time", data.get("timestamp", data.get("time")))
        if ts is None:
            raise ValueError("Candle requires open_time")
        return cls(
            open_time=float(ts),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data.get("volume", 0.0)),
        )


def _frozen(values: Iterable[float]) -> np.ndarray:
    arr = np.asarray(list(values), dtype=float)
    arr.setflags(write=False)
    return arr


class CandleWindow:
    """
    Immutable, time-ordered window of candles exposed as numpy arrays.

    Arrays are read-only so a window can be shared across strategy threads
    without copying.
    """

    __slots__ = ("_candles", "times", "opens", "highs", "lows", "closes", "volumes")

    def __init__(self, candles: Sequence[Candle]):
        ordered = tuple(candles)
        for prev, curr in zip(ordered, ordered[1:]):
            if curr.open_time <= prev.open_time:
                raise ValueError("Candles must be strictly ascending by open_time")
        self._candles = ordered
        self.times = _frozen(c.open_time for c in ordered)
        self.opens = _frozen(c.open for c in ordered)
        self.highs = _frozen(c.high for c in ordered)
        self.lows = _frozen(c.low for c in ordered)
        self.closes = _frozen(c.close for c in ordered)
        self.volumes = _frozen(c.volume for c in ordered)

    @classmethod
    def from_arrays(
        cls,
        times: Sequence[float],
        opens: Sequence[float],
        highs: Sequence[float],
        lows: Sequence[float],
        closes: Sequence[float],
        volumes: Optional[Sequence[float]] = None,
    ) -> "CandleWindow":
        if volumes is None:
            volumes = [0.0] * len(closes)
        lengths = {len(times), len(opens), len(highs), len(lows), len(closes), len(volumes)}
        if len(lengths) != 1:
            raise ValueError("All OHLCV arrays must have the same length")
        return cls([
            Candle(float(t), float(o), float(h), float(lo), float(c), float(v))
            for t, o, h, lo, c, v in zip(times, opens, highs, lows, closes, volumes)
        ])

    def __len__(self) -> int:
        return len(self._candles)

    def __iter__(self):
        return iter(self._candles)

    def __getitem__(self, index):
        return self._candles[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, CandleWindow):
            return NotImplemented
        return self._candles == other._candles

    def __hash__(self) -> int:
        return hash(self._candles)

    def __repr__(self) -> str:
        return f"CandleWindow(bars={len(self)}, end_time={self.end_time})"

    @property
    def candles(self) -> tuple:
        return self._candles

    @property
    def end_time(self) -> Optional[float]:
        """Open time of the most recent bar; None for an empty window."""
        return self._candles[-1].open_time if self._candles else None

    @property
    def last_close(self) -> float:
        return self._candles[-1].close if self._candles else 0.0

    def tail(self, bars: int) -> "CandleWindow":
        """Trailing sub-window of at most ``bars`` candles."""
        if bars >= len(self._candles):
            return self
        return CandleWindow(self._candles[-bars:] if bars > 0 else ())
