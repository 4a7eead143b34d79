"""
Technical indicators over candle sequences.

Every function is pure: it reads the candles, returns fresh numpy arrays and
keeps no state between calls. A series is aligned to the tail of the input,
so ``series[-1]`` always belongs to the latest candle. When there are fewer
candles than the indicator's warm-up needs, the result is an empty array.
"""

from typing import NamedTuple, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from ..utils.candle import Candle

_EMPTY = np.empty(0, dtype=np.float64)


class MACDResult(NamedTuple):
    macd: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray


class Bands(NamedTuple):
    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray


class StochasticResult(NamedTuple):
    k: np.ndarray
    d: np.ndarray


def _empty() -> np.ndarray:
    return _EMPTY.copy()


def closes(candles: Sequence[Candle]) -> np.ndarray:
    return np.array([c.close for c in candles], dtype=np.float64)


def highs(candles: Sequence[Candle]) -> np.ndarray:
    return np.array([c.high for c in candles], dtype=np.float64)


def lows(candles: Sequence[Candle]) -> np.ndarray:
    return np.array([c.low for c in candles], dtype=np.float64)


def latest(series: np.ndarray, default=None):
    """Last value of a series, or ``default`` when it is empty."""
    return float(series[-1]) if len(series) else default


def sma_values(values: np.ndarray, period: int) -> np.ndarray:
    values = np.asarray(values, dtype=np.float64)
    if period < 1 or len(values) < period:
        return _empty()
    return sliding_window_view(values, period).mean(axis=1)


def ema_values(values: np.ndarray, period: int) -> np.ndarray:
    """EMA seeded with the SMA of the first ``period`` values."""
    values = np.asarray(values, dtype=np.float64)
    if period < 1 or len(values) < period:
        return _empty()
    k = 2.0 / (period + 1)
    out = np.empty(len(values) - period + 1, dtype=np.float64)
    out[0] = sma_values(values[:period], period)[0]
    for i, price in enumerate(values[period:], start=1):
        out[i] = price * k + out[i - 1] * (1 - k)
    return out


def sma(candles: Sequence[Candle], period: int) -> np.ndarray:
    return sma_values(closes(candles), period)


def ema(candles: Sequence[Candle], period: int) -> np.ndarray:
    return ema_values(closes(candles), period)


def rsi(candles: Sequence[Candle], period: int = 14) -> np.ndarray:
    if period < 1 or len(candles) < period + 1:
        return _empty()
    deltas = np.diff(closes(candles))
    avg_gain = sliding_window_view(np.maximum(deltas, 0.0), period).mean(axis=1)
    avg_loss = sliding_window_view(np.maximum(-deltas, 0.0), period).mean(axis=1)

    out = np.full(len(avg_gain), 100.0)
    has_loss = avg_loss > 0
    rs = avg_gain[has_loss] / avg_loss[has_loss]
    out[has_loss] = 100.0 - 100.0 / (1.0 + rs)
    return out


def macd(candles: Sequence[Candle], fast: int = 12, slow: int = 26,
         signal: int = 9) -> MACDResult:
    fast_ema = ema(candles, fast)
    slow_ema = ema(candles, slow)

    # Index-by-index combination only makes sense when both series line up.
    if len(fast_ema) != len(slow_ema) or len(fast_ema) == 0:
        return MACDResult(_empty(), _empty(), _empty())

    line = fast_ema - slow_ema
    signal_line = ema_values(line, signal)

    padded = np.zeros(len(line), dtype=np.float64)
    if len(signal_line):
        padded[len(line) - len(signal_line):] = signal_line
    return MACDResult(line, signal_line, line - padded)


def bollinger(candles: Sequence[Candle], period: int = 20, k: float = 2.0) -> Bands:
    if period < 1 or len(candles) < period:
        return Bands(_empty(), _empty(), _empty())
    windows = sliding_window_view(closes(candles), period)
    middle = windows.mean(axis=1)
    band = k * windows.std(axis=1)
    return Bands(middle + band, middle, middle - band)


def _range_position(candles: Sequence[Candle], period: int):
    """(close - lowest) / (highest - lowest) per trailing window; 0.5 when flat."""
    hh = sliding_window_view(highs(candles), period).max(axis=1)
    ll = sliding_window_view(lows(candles), period).min(axis=1)
    c = closes(candles)[period - 1:]
    span = hh - ll
    pos = np.full(len(span), 0.5)
    ok = span > 0
    pos[ok] = (c[ok] - ll[ok]) / span[ok]
    return pos, hh, ll, c, ok


def stochastic(candles: Sequence[Candle], k_period: int = 14,
               d_period: int = 3) -> StochasticResult:
    if k_period < 1 or len(candles) < k_period:
        return StochasticResult(_empty(), _empty())
    pos = _range_position(candles, k_period)[0]
    k = pos * 100.0
    return StochasticResult(k, sma_values(k, d_period))


def williams_r(candles: Sequence[Candle], period: int = 14) -> np.ndarray:
    if period < 1 or len(candles) < period:
        return _empty()
    _, hh, ll, c, ok = _range_position(candles, period)
    out = np.full(len(c), -50.0)
    out[ok] = (hh[ok] - c[ok]) / (hh[ok] - ll[ok]) * -100.0
    return out


def true_range(candles: Sequence[Candle]) -> np.ndarray:
    if len(candles) < 2:
        return _empty()
    h, l, c = highs(candles)[1:], lows(candles)[1:], closes(candles)[:-1]
    return np.maximum.reduce([h - l, np.abs(h - c), np.abs(l - c)])


def atr(candles: Sequence[Candle], period: int = 14) -> np.ndarray:
    if period < 1 or len(candles) < period + 1:
        return _empty()
    return sma_values(true_range(candles), period)


def volatility(prices: Sequence[float]) -> float:
    """Population standard deviation of simple returns."""
    prices = np.asarray(prices, dtype=np.float64)
    if len(prices) < 2:
        return 0.0
    rets = np.diff(prices) / prices[:-1]
    return float(np.std(rets))


def trend_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of value against index."""
    values = np.asarray(values, dtype=np.float64)
    n = len(values)
    if n < 2:
        return 0.0
    x = np.arange(n, dtype=np.float64)
    sum_x = n * (n - 1) / 2
    sum_xx = n * (n - 1) * (2 * n - 1) / 6
    return float((n * np.dot(x, values) - sum_x * values.sum()) / (n * sum_xx - sum_x * sum_x))
