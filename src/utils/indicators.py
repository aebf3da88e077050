"""
Technical indicators (NumPy).

Every function takes plain float arrays and returns arrays aligned with the
input, NaN-padded during the warm-up period, so strategies can index the
latest bar with [-1] and the previous bar with [-2].
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view


def _as_array(values) -> np.ndarray:
    return np.asarray(values, dtype=float)


def _first_valid(arr: np.ndarray) -> int:
    valid = np.flatnonzero(~np.isnan(arr))
    return int(valid[0]) if len(valid) else len(arr)


def _rolling(values: np.ndarray, period: int, func) -> np.ndarray:
    out = np.full(len(values), np.nan)
    if period <= 0 or len(values) < period:
        return out
    out[period - 1:] = func(sliding_window_view(values, period), axis=1)
    return out


def sma(values, period: int) -> np.ndarray:
    """Simple moving average. A window containing NaN yields NaN."""
    return _rolling(_as_array(values), period, np.mean)


def rolling_max(values, period: int) -> np.ndarray:
    return _rolling(_as_array(values), period, np.max)


def rolling_min(values, period: int) -> np.ndarray:
    return _rolling(_as_array(values), period, np.min)


def rolling_std(values, period: int) -> np.ndarray:
    """Population standard deviation over a trailing window."""
    return _rolling(_as_array(values), period, np.std)


def ema(values, period: int) -> np.ndarray:
    """Exponential moving average seeded with the SMA of the first full window.

    Leading NaNs (e.g. the warm-up of a MACD line) are skipped.
    """
    arr = _as_array(values)
    out = np.full(len(arr), np.nan)
    start = _first_valid(arr)
    if period <= 0 or len(arr) - start < period:
        return out
    alpha = 2.0 / (period + 1)
    seed_idx = start + period - 1
    out[seed_idx] = np.mean(arr[start:seed_idx + 1])
    for i in range(seed_idx + 1, len(arr)):
        out[i] = arr[i] * alpha + out[i - 1] * (1 - alpha)
    return out


def _wilder_rsi(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def rsi(closes, period: int = 14) -> np.ndarray:
    """Wilder-smoothed Relative Strength Index (0-100)."""
    arr = _as_array(closes)
    n = len(arr)
    out = np.full(n, np.nan)
    if period <= 0 or n <= period:
        return out
    deltas = np.diff(arr)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)
    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))
    out[period] = _wilder_rsi(avg_gain, avg_loss)
    for i in range(period, n - 1):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i + 1] = _wilder_rsi(avg_gain, avg_loss)
    return out


def macd(
    closes, fast: int = 12, slow: int = 26, signal: int = 9
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Returns (macd_line, signal_line, histogram)."""
    arr = _as_array(closes)
    macd_line = ema(arr, fast) - ema(arr, slow)
    signal_line = ema(macd_line, signal)
    return macd_line, signal_line, macd_line - signal_line


def bollinger_bands(
    closes, period: int = 20, num_std: float = 2.0
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Returns (upper, middle, lower)."""
    arr = _as_array(closes)
    mid = sma(arr, period)
    std = rolling_std(arr, period)
    return mid + num_std * std, mid, mid - num_std * std


def true_range(highs, lows, closes) -> np.ndarray:
    h, lo, c = _as_array(highs), _as_array(lows), _as_array(closes)
    if len(h) == 0:
        return np.array([])
    prev_close = np.concatenate(([c[0]], c[:-1]))
    tr = np.maximum(h - lo, np.maximum(np.abs(h - prev_close), np.abs(lo - prev_close)))
    tr[0] = h[0] - lo[0]
    return tr


def atr(highs, lows, closes, period: int = 14) -> np.ndarray:
    """Wilder-smoothed Average True Range."""
    tr = true_range(highs, lows, closes)
    out = np.full(len(tr), np.nan)
    if period <= 0 or len(tr) < period:
        return out
    out[period - 1] = np.mean(tr[:period])
    for i in range(period, len(tr)):
        out[i] = (out[i - 1] * (period - 1) + tr[i]) / period
    return out


def stochastic(
    highs, lows, closes, k_period: int = 14, d_period: int = 3, smooth: int = 1
) -> Tuple[np.ndarray, np.ndarray]:
    """Returns (%K, %D). A flat range maps to 50."""
    c = _as_array(closes)
    hh = rolling_max(highs, k_period)
    ll = rolling_min(lows, k_period)
    span = hh - ll
    with np.errstate(divide="ignore", invalid="ignore"):
        raw_k = np.where(span > 0, (c - ll) / span * 100.0, 50.0)
    raw_k[np.isnan(hh)] = np.nan
    pct_k = sma(raw_k, smooth) if smooth > 1 else raw_k
    pct_d = sma(pct_k, d_period)
    return pct_k, pct_d


def williams_r(highs, lows, closes, period: int = 14) -> np.ndarray:
    """Williams %R in [-100, 0]. A flat range maps to -50."""
    c = _as_array(closes)
    hh = rolling_max(highs, period)
    ll = rolling_min(lows, period)
    span = hh - ll
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(span > 0, (hh - c) / span * -100.0, -50.0)
    out[np.isnan(hh)] = np.nan
    return out


def adx(
    highs, lows, closes, period: int = 14
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Returns (ADX, +DI, -DI) using Wilder smoothing."""
    h, lo = _as_array(highs), _as_array(lows)
    n = len(h)
    adx_out = np.full(n, np.nan)
    plus_di = np.full(n, np.nan)
    minus_di = np.full(n, np.nan)
    if period <= 0 or n <= period:
        return adx_out, plus_di, minus_di

    up = h[1:] - h[:-1]
    down = lo[:-1] - lo[1:]
    plus_dm = np.where((up > down) & (up > 0), up, 0.0)
    minus_dm = np.where((down > up) & (down > 0), down, 0.0)
    tr = true_range(highs, lows, closes)[1:]

    sm_tr = float(np.sum(tr[:period]))
    sm_plus = float(np.sum(plus_dm[:period]))
    sm_minus = float(np.sum(minus_dm[:period]))
    dx = np.full(n, np.nan)
    for j in range(period - 1, len(tr)):
        if j >= period:
            sm_tr = sm_tr - sm_tr / period + tr[j]
            sm_plus = sm_plus - sm_plus / period + plus_dm[j]
            sm_minus = sm_minus - sm_minus / period + minus_dm[j]
        i = j + 1
        if sm_tr > 0:
            plus_di[i] = 100.0 * sm_plus / sm_tr
            minus_di[i] = 100.0 * sm_minus / sm_tr
        else:
            plus_di[i] = minus_di[i] = 0.0
        di_sum = plus_di[i] + minus_di[i]
        dx[i] = 100.0 * abs(plus_di[i] - minus_di[i]) / di_sum if di_sum > 0 else 0.0

    first = period
    seed = first + period - 1
    if seed < n:
        adx_out[seed] = np.mean(dx[first:seed + 1])
        for i in range(seed + 1, n):
            adx_out[i] = (adx_out[i - 1] * (period - 1) + dx[i]) / period
    return adx_out, plus_di, minus_di


def ichimoku(
    highs, lows, closes,
    tenkan_period: int = 9, kijun_period: int = 26, senkou_b_period: int = 52,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Returns (tenkan, kijun, senkou_a, senkou_b, chikou).

    Senkou spans are displaced forward by ``kijun_period`` so index i holds
    the cloud that applies to bar i. chikou[i] = closes[i + kijun_period].
    """
    c = _as_array(closes)
    n = len(c)
    tenkan = (rolling_max(highs, tenkan_period) + rolling_min(lows, tenkan_period)) / 2
    kijun = (rolling_max(highs, kijun_period) + rolling_min(lows, kijun_period)) / 2
    span_a_raw = (tenkan + kijun) / 2
    span_b_raw = (rolling_max(highs, senkou_b_period) + rolling_min(lows, senkou_b_period)) / 2

    senkou_a = np.full(n, np.nan)
    senkou_b = np.full(n, np.nan)
    chikou = np.full(n, np.nan)
    d = kijun_period
    if n > d:
        senkou_a[d:] = span_a_raw[:-d]
        senkou_b[d:] = span_b_raw[:-d]
        chikou[:-d] = c[d:]
    return tenkan, kijun, senkou_a, senkou_b, chikou


def parabolic_sar(
    highs, lows, closes, step: float = 0.02, max_step: float = 0.2
) -> np.ndarray:
    """Parabolic stop-and-reverse levels."""
    h, lo, c = _as_array(highs), _as_array(lows), _as_array(closes)
    n = len(c)
    out = np.full(n, np.nan)
    if n < 2:
        return out
    uptrend = c[1] > c[0]
    extreme = h[1] if uptrend else lo[1]
    accel = step
    sar = c[0]
    out[0] = sar
    for i in range(1, n):
        sar = sar + accel * (extreme - sar)
        reversal = lo[i] <= sar if uptrend else h[i] >= sar
        if reversal:
            uptrend = not uptrend
            sar = extreme
            extreme = h[i] if uptrend else lo[i]
            accel = step
        elif uptrend and h[i] > extreme:
            extreme = h[i]
            accel = min(accel + step, max_step)
        elif not uptrend and lo[i] < extreme:
            extreme = lo[i]
            accel = min(accel + step, max_step)
        out[i] = sar
    return out


def volume_ratio(volumes, period: int = 20) -> np.ndarray:
    """Volume relative to its trailing average (including the current bar)."""
    v = _as_array(volumes)
    avg = sma(v, period)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(avg > 0, v / avg, np.nan)
    return out


def linear_regression(values) -> Tuple[float, float, float]:
    """Least-squares fit over index positions: (slope, intercept, r_squared).

    A constant series has no explained variance and reports r_squared 0.
    """
    y = _as_array(values)
    n = len(y)
    if n < 2:
        return 0.0, float(y[0]) if n else 0.0, 0.0
    x = np.arange(n, dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    predicted = slope * x + intercept
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    ss_res = float(np.sum((y - predicted) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0
    return float(slope), float(intercept), r_squared


def find_swings(values, is_high: bool) -> list:
    """Indices of strict local extremes (excluding the endpoints)."""
    arr = _as_array(values)
    swings = []
    for i in range(1, len(arr) - 1):
        if is_high and arr[i] > arr[i - 1] and arr[i] > arr[i + 1]:
            swings.append(i)
        elif not is_high and arr[i] < arr[i - 1] and arr[i] < arr[i + 1]:
            swings.append(i)
    return swings
