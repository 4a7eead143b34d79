"""
Multi-factor signal scoring.

A signal is the sum of discrete, weighted votes rather than the output of a
fitted model, so every point in a score can be traced back to one reason.
The single-timeframe scorer drives the engine's signal; the multi-timeframe
consensus re-scores short, medium and long windows with a lighter vote
table and reports whether they agree.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..constants import Direction, TrendStrength
from ..utils.candle import Candle
from . import indicators as ta
from .patterns import Levels, PatternReport


@dataclass(frozen=True)
class WeightTable:
    # --- single-timeframe votes ---
    ema_cross: float = 3.0              # EMA(fast) vs EMA(slow)
    price_vs_ema: float = 1.0           # close vs EMA(fast)
    rsi_momentum: float = 1.0           # RSI 50-70 / 30-50
    rsi_extreme: float = 0.5            # RSI above 70 / below 30, counter-trend
    macd_alignment: float = 2.0
    trend_strength: float = 1.0
    trend_threshold_pct: float = 1.0    # EMA separation that counts as a trend

    # --- classification ---
    min_confirmation: float = 3.0
    base_confidence: float = 60.0
    per_point: float = 8.0
    per_diff: float = 5.0
    confidence_cap: float = 95.0
    hold_confidence: float = 30.0
    max_reasons: int = 5

    # --- indicator periods ---
    fast_period: int = 50
    slow_period: int = 200
    rsi_period: int = 14


@dataclass
class ScoreCard:
    bullish: float = 0.0
    bearish: float = 0.0
    reasons: list = field(default_factory=list)
    trend_strength: float = 0.0         # EMA separation, %
    snapshot: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TimeframeVote:
    name: str
    direction: Direction
    score: float


@dataclass(frozen=True)
class ConsensusResult:
    direction: Direction
    confidence: float
    strength: TrendStrength
    agreeing: int
    votes: tuple = ()
    reasons: tuple = ()


class SignalScorer:
    def __init__(self, weights: Optional[WeightTable] = None):
        self.w = weights or WeightTable()

    @property
    def warmup(self) -> int:
        """Candles needed before the slow EMA, and so the score, is defined."""
        return self.w.slow_period

    # ------------------------------------------------------------------
    def score(self, candles: Sequence[Candle], price: Optional[float] = None) -> ScoreCard:
        w = self.w
        card = ScoreCard()
        if not candles:
            return card
        if price is None:
            price = candles[-1].close

        fast = ta.latest(ta.ema(candles, w.fast_period))
        slow = ta.latest(ta.ema(candles, w.slow_period))
        rsi = ta.latest(ta.rsi(candles, w.rsi_period))
        macd = ta.macd(candles)
        card.snapshot = {"price": price, "ema_fast": fast, "ema_slow": slow, "rsi": rsi,
                         "macd": ta.latest(macd.macd), "macd_signal": ta.latest(macd.signal),
                         "macd_histogram": ta.latest(macd.histogram)}

        def vote(bullish: bool, points: float, reason: str):
            if bullish:
                card.bullish += points
            else:
                card.bearish += points
            card.reasons.append(reason)

        if fast is not None and slow is not None and fast != slow:
            vote(fast > slow, w.ema_cross,
                 f"EMA{w.fast_period} {'above' if fast > slow else 'below'} EMA{w.slow_period}")

        if fast is not None and price != fast:
            vote(price > fast, w.price_vs_ema,
                 f"Price {'above' if price > fast else 'below'} EMA{w.fast_period}")

        if rsi is not None:
            if 50 < rsi < 70:
                vote(True, w.rsi_momentum, f"RSI bullish momentum ({rsi:.1f})")
            elif 30 < rsi < 50:
                vote(False, w.rsi_momentum, f"RSI bearish momentum ({rsi:.1f})")
            elif rsi >= 70:
                vote(False, w.rsi_extreme, f"RSI overbought ({rsi:.1f})")
            elif rsi <= 30:
                vote(True, w.rsi_extreme, f"RSI oversold ({rsi:.1f})")

        if len(macd.macd) and len(macd.signal):
            m, s, h = macd.macd[-1], macd.signal[-1], macd.histogram[-1]
            if m > s and h > 0:
                vote(True, w.macd_alignment, "MACD above signal line")
            elif m < s and h < 0:
                vote(False, w.macd_alignment, "MACD below signal line")

        if fast is not None and slow:
            card.trend_strength = abs(fast - slow) / slow * 100
            if card.trend_strength > w.trend_threshold_pct and fast != slow:
                vote(fast > slow, w.trend_strength,
                     f"Strong {'up' if fast > slow else 'down'}trend "
                     f"({card.trend_strength:.2f}% EMA separation)")
        return card

    def classify(self, card: ScoreCard) -> tuple[Direction, float]:
        w = self.w
        diff = abs(card.bullish - card.bearish)
        if card.bullish >= w.min_confirmation and card.bullish > card.bearish:
            return Direction.BUY, min(w.confidence_cap,
                                      w.base_confidence + card.bullish * w.per_point + diff * w.per_diff)
        if card.bearish >= w.min_confirmation and card.bearish > card.bullish:
            return Direction.SELL, min(w.confidence_cap,
                                       w.base_confidence + card.bearish * w.per_point + diff * w.per_diff)
        return Direction.HOLD, w.hold_confidence

    # ------------------------------------------------------------------
    @staticmethod
    def timeframe_score(candles: Sequence[Candle]) -> float:
        """Symmetric trend vote over one window; factors without data are skipped."""
        if not candles:
            return 0.0
        price = candles[-1].close
        sma20 = ta.latest(ta.sma(candles, 20))
        sma50 = ta.latest(ta.sma(candles, 50))
        ema12 = ta.latest(ta.ema(candles, 12))
        ema26 = ta.latest(ta.ema(candles, 26))
        rsi = ta.latest(ta.rsi(candles))
        macd = ta.macd(candles)

        def side(a, b) -> float:
            if a is None or b is None or a == b:
                return 0.0
            return 1.0 if a > b else -1.0

        score = side(price, sma20) + side(price, sma50) + side(sma20, sma50) + side(ema12, ema26)
        if rsi is not None:
            if rsi > 50:
                score += 0.5
            if rsi > 60:
                score += 0.5
            if rsi < 40:
                score -= 0.5
            if rsi < 30:
                score -= 0.5
        score += side(ta.latest(macd.macd), 0.0)
        score += 0.5 * side(ta.latest(macd.histogram), 0.0)
        return score

    @staticmethod
    def trend_tier(candles: Sequence[Candle]) -> TrendStrength:
        if len(candles) < 50:
            return TrendStrength.WEAK
        ref = candles[-20].close
        sma20 = ta.latest(ta.sma(candles, 20))
        sma50 = ta.latest(ta.sma(candles, 50))
        if ref <= 0 or sma50 <= 0:
            return TrendStrength.WEAK
        change = abs(candles[-1].close - ref) / ref * 100
        separation = abs(sma20 - sma50) / sma50 * 100
        if change > 2 and separation > 1:
            return TrendStrength.STRONG
        if change > 1 and separation > 0.5:
            return TrendStrength.MODERATE
        return TrendStrength.WEAK

    def consensus(self, candles: Sequence[Candle],
                  report: Optional[PatternReport] = None) -> ConsensusResult:
        votes = []
        for name, window in (("short", candles[-20:]), ("medium", candles[-50:]),
                             ("long", candles)):
            s = self.timeframe_score(window)
            if s >= 3:
                d = Direction.BUY
            elif s <= -3:
                d = Direction.SELL
            else:
                d = Direction.HOLD
            votes.append(TimeframeVote(name, d, s))

        strength = self.trend_tier(candles)
        bulls = sum(1 for v in votes if v.direction == Direction.BUY)
        bears = sum(1 for v in votes if v.direction == Direction.SELL)

        direction, agreeing = Direction.HOLD, max(bulls, bears)
        if strength != TrendStrength.WEAK:
            if bulls >= 2:
                direction = Direction.BUY
            elif bears >= 2:
                direction = Direction.SELL

        if direction == Direction.HOLD:
            return ConsensusResult(direction, self.w.hold_confidence, strength, agreeing,
                                   tuple(votes), ("Mixed signals across timeframes",))

        confidence = min(95.0, 60 + agreeing * 10 + (15 if strength == TrendStrength.STRONG else 0))
        reasons = [f"Multi-timeframe {'bullish' if direction == Direction.BUY else 'bearish'} "
                   f"consensus ({agreeing}/3 timeframes)",
                   f"Trend strength: {strength.value}"]
        if report is not None:
            reasons.append(f"Market structure: {report.structure.value}")
            reasons.append(f"Volume: {report.volume.value}")
        return ConsensusResult(direction, confidence, strength, agreeing,
                               tuple(votes), tuple(reasons))


def derive_levels(direction: Direction, price: float, levels: Levels,
                  offset: float = 0.001, fallback: float = 0.02) -> tuple:
    """(stop_loss, take_profit, take_profit_2) from the nearest level on the stop side."""
    if direction == Direction.HOLD:
        return None, None, None

    if direction == Direction.BUY:
        below = [s for s in levels.support if s < price]
        stop = max(below) * (1 - offset) if below else price * (1 - fallback)
        distance = price - stop
        return stop, price + distance * 1.5, price + distance * 2

    above = [r for r in levels.resistance if r > price]
    stop = min(above) * (1 + offset) if above else price * (1 + fallback)
    distance = stop - price
    return stop, price - distance * 1.5, price - distance * 2
