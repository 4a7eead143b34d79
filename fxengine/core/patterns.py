from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from ..constants import (MarketStructure, PatternCategory, Polarity, Trend,
                         VolumeSignal)
from ..utils.candle import Candle
from .indicators import highs, lows, trend_slope


@dataclass(frozen=True)
class Pivot:
    index: int
    price: float


@dataclass(frozen=True)
class PatternMatch:
    name: str
    category: PatternCategory
    polarity: Polarity
    start: int                      # candle index where the pattern begins
    end: int                        # candle index where it ends (inclusive)
    level: Optional[float] = None   # reference price, e.g. triangle flat side

    @property
    def bullish(self) -> bool:
        return self.polarity == Polarity.BULLISH


@dataclass(frozen=True)
class Levels:
    support: tuple = ()
    resistance: tuple = ()

    def __bool__(self):
        return bool(self.support or self.resistance)


@dataclass(frozen=True)
class PatternReport:
    trend: Trend
    levels: Levels
    structure: MarketStructure
    volume: VolumeSignal
    chart_patterns: tuple = field(default_factory=tuple)
    candlestick_patterns: tuple = field(default_factory=tuple)


def find_pivots(values: Sequence[float], kind: str = "high") -> list[Pivot]:
    """Local extrema that beat both neighbours on each of two positions either side."""
    v = np.asarray(values, dtype=np.float64)
    pivots = []
    for i in range(2, len(v) - 2):
        neighbours = (v[i - 2], v[i - 1], v[i + 1], v[i + 2])
        if kind == "high":
            if all(v[i] > n for n in neighbours):
                pivots.append(Pivot(i, float(v[i])))
        elif all(v[i] < n for n in neighbours):
            pivots.append(Pivot(i, float(v[i])))
    return pivots


class PatternDetector:
    """Support/resistance, chart and candlestick patterns from raw candles."""

    def __init__(self, min_level_candles: int = 50, hs_window: int = 30,
                 double_window: int = 20, triangle_window: int = 20,
                 candle_window: int = 5, trend_window: int = 20,
                 trend_threshold_pct: float = 2.0):
        self.min_level_candles = min_level_candles
        self.hs_window = hs_window
        self.double_window = double_window
        self.triangle_window = triangle_window
        self.candle_window = candle_window
        self.trend_window = trend_window
        self.trend_threshold_pct = trend_threshold_pct

    # ------------------------------------------------------------------
    def analyze(self, candles: Sequence[Candle]) -> PatternReport:
        return PatternReport(
            trend=self.trend(candles),
            levels=self.support_resistance(candles),
            structure=self.market_structure(candles),
            volume=self.volume_profile(candles),
            chart_patterns=tuple(self.chart_patterns(candles)),
            candlestick_patterns=tuple(self.candlestick_patterns(candles)),
        )

    # ------------------------------------------------------------------
    def support_resistance(self, candles: Sequence[Candle]) -> Levels:
        if len(candles) < self.min_level_candles:
            return Levels()
        resistance = tuple(p.price for p in find_pivots(highs(candles), "high"))
        support = tuple(p.price for p in find_pivots(lows(candles), "low"))
        return Levels(support=support, resistance=resistance)

    def trend(self, candles: Sequence[Candle]) -> Trend:
        if len(candles) < self.trend_window:
            return Trend.SIDEWAYS
        recent = candles[-self.trend_window:]
        first, last = recent[0].close, recent[-1].close
        if first <= 0:
            return Trend.SIDEWAYS
        change_pct = (last - first) / first * 100
        if change_pct > self.trend_threshold_pct:
            return Trend.UPTREND
        if change_pct < -self.trend_threshold_pct:
            return Trend.DOWNTREND
        return Trend.SIDEWAYS

    # ------------------------------------------------------------------
    def chart_patterns(self, candles: Sequence[Candle]) -> list[PatternMatch]:
        found = []
        for detect in (self.head_and_shoulders, self.double_top,
                       self.double_bottom, self.triangle):
            match = detect(candles)
            if match is not None:
                found.append(match)
        return found

    def head_and_shoulders(self, candles: Sequence[Candle]) -> Optional[PatternMatch]:
        if len(candles) < self.hs_window:
            return None
        offset = len(candles) - self.hs_window
        peaks = find_pivots(highs(candles[offset:]), "high")
        if len(peaks) < 3:
            return None

        head = peaks[len(peaks) // 2]
        shoulders = [p for p in peaks if p is not head]
        if not all(s.price < head.price * 0.95 for s in shoulders):
            return None
        return PatternMatch("Head and Shoulders", PatternCategory.REVERSAL,
                            Polarity.BEARISH, offset + peaks[0].index,
                            offset + peaks[-1].index, head.price)

    def double_top(self, candles: Sequence[Candle]) -> Optional[PatternMatch]:
        if len(candles) < self.double_window:
            return None
        offset = len(candles) - self.double_window
        window = highs(candles[offset:])
        ceiling = window.max()
        peaks = [p for p in find_pivots(window, "high") if p.price >= ceiling * 0.95]
        if len(peaks) < 2:
            return None
        return PatternMatch("Double Top", PatternCategory.REVERSAL, Polarity.BEARISH,
                            offset + peaks[0].index, offset + peaks[-1].index,
                            float(ceiling))

    def double_bottom(self, candles: Sequence[Candle]) -> Optional[PatternMatch]:
        if len(candles) < self.double_window:
            return None
        offset = len(candles) - self.double_window
        window = lows(candles[offset:])
        floor = window.min()
        troughs = [p for p in find_pivots(window, "low") if p.price <= floor * 1.05]
        if len(troughs) < 2:
            return None
        return PatternMatch("Double Bottom", PatternCategory.REVERSAL, Polarity.BULLISH,
                            offset + troughs[0].index, offset + troughs[-1].index,
                            float(floor))

    def triangle(self, candles: Sequence[Candle]) -> Optional[PatternMatch]:
        if len(candles) < self.triangle_window:
            return None
        offset = len(candles) - self.triangle_window
        half = self.triangle_window // 2
        h = highs(candles[offset:])
        l = lows(candles[offset:])
        end = len(candles) - 1

        # flat resistance from the first half, rising support in the second
        support_slope = trend_slope(l[half:])
        if support_slope > 0 and abs(support_slope) < 1e-3:
            return PatternMatch("Ascending Triangle", PatternCategory.CONTINUATION,
                                Polarity.BULLISH, offset, end, float(h[:half].max()))

        resistance_slope = trend_slope(h[half:])
        if resistance_slope < 0 and abs(resistance_slope) < 1e-3:
            return PatternMatch("Descending Triangle", PatternCategory.CONTINUATION,
                                Polarity.BEARISH, offset, end, float(l[:half].min()))
        return None

    # ------------------------------------------------------------------
    def candlestick_patterns(self, candles: Sequence[Candle]) -> list[PatternMatch]:
        if len(candles) < 3:
            return []
        offset = max(0, len(candles) - self.candle_window)
        found = []
        for i, c in enumerate(candles[offset:], start=offset):
            if c.body <= c.range * 0.1:
                found.append(PatternMatch("Doji", PatternCategory.INDECISION,
                                          Polarity.NEUTRAL, i, i))

        for i, c in enumerate(candles[offset:], start=offset):
            body = c.body
            lower_wick = min(c.open, c.close) - c.low
            upper_wick = c.high - max(c.open, c.close)
            if lower_wick > body * 2 and upper_wick < body * 0.5:
                bullish = c.close > c.open
                found.append(PatternMatch(
                    "Hammer" if bullish else "Hanging Man",
                    PatternCategory.REVERSAL,
                    Polarity.BULLISH if bullish else Polarity.BEARISH, i, i,
                ))
        return found

    # ------------------------------------------------------------------
    def market_structure(self, candles: Sequence[Candle]) -> MarketStructure:
        """Higher highs + higher lows = uptrend; lower highs + lower lows = downtrend."""
        swing_highs, swing_lows = [], []
        for i in range(2, len(candles) - 2):
            cur = candles[i]
            if cur.high > candles[i - 2].high and cur.high > candles[i + 2].high:
                swing_highs.append(cur.high)
            if cur.low < candles[i - 2].low and cur.low < candles[i + 2].low:
                swing_lows.append(cur.low)

        if len(swing_highs) < 2 or len(swing_lows) < 2:
            return MarketStructure.RANGING
        if swing_highs[-1] > swing_highs[-2] and swing_lows[-1] > swing_lows[-2]:
            return MarketStructure.UPTREND
        if swing_highs[-1] < swing_highs[-2] and swing_lows[-1] < swing_lows[-2]:
            return MarketStructure.DOWNTREND
        return MarketStructure.RANGING

    @staticmethod
    def volume_profile(candles: Sequence[Candle], window: int = 10) -> VolumeSignal:
        if not candles:
            return VolumeSignal.NEUTRAL
        recent = [c.volume or 1.0 for c in candles[-window:]]
        average = sum(recent) / len(recent)
        current = candles[-1].volume or 1.0
        if current > average * 1.5:
            return VolumeSignal.HIGH
        if current < average * 0.5:
            return VolumeSignal.LOW
        return VolumeSignal.NEUTRAL
