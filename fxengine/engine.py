import asyncio
import dataclasses
import threading
from typing import Callable, Optional, Sequence

from .config import EngineConfig
from .constants import CloseReason, Direction, Session, VolatilityTier
from .core.patterns import PatternDetector
from .core.regime import MarketContext
from .core.scorer import SignalScorer, WeightTable, derive_levels
from .trading.money_manager import MoneyManager
from .trading.performance import PerformanceMetrics
from .trading.positions import LivePositionEngine
from .trading.strategy import AdaptiveLearning
from .trading.trade import LivePosition, Signal, TrackedSignal
from .trading.tracker import SignalTracker
from .utils.candle import Candle, Tick, parse_candle
from .utils.clock import SystemClock
from .utils.logger import log


class TradingEngine:
    """
    Owns every piece of mutable state: positions, tracked signals, learning
    and metrics. All mutation goes through one lock, so the scheduler's
    loops and ad hoc callers can share an engine.
    """

    def __init__(self, cfg: Optional[EngineConfig] = None, clock=None,
                 weights: Optional[WeightTable] = None):
        self.cfg = (cfg or EngineConfig()).validate()
        self.clock = clock or SystemClock()
        weights = dataclasses.replace(weights or WeightTable(),
                                      min_confirmation=self.cfg.min_confirmation_score)
        self.scorer = SignalScorer(weights)
        self.detector = PatternDetector()
        self.context = MarketContext()

        self.metrics = PerformanceMetrics()
        self.learning = AdaptiveLearning(self.cfg)
        self.money = MoneyManager(self.cfg)
        self.positions = LivePositionEngine(self.cfg, self.money, self.metrics, self.learning)
        self.tracker = SignalTracker(self.cfg, self.metrics, self.learning)

        self.last_prices: dict[str, float] = {}
        self._listeners: list[Callable] = []
        self._lock = threading.RLock()

    @property
    def active(self) -> bool:
        return self.positions.active

    def _now(self, timestamp: Optional[float] = None) -> float:
        return self.clock.now() if timestamp is None else timestamp

    # ------------------------------------------------------------------
    def evaluate(self, candles: Sequence[Candle], tick: Tick, pair: str,
                 session: Optional[Session] = None,
                 volatility_tier: Optional[VolatilityTier] = None) -> Signal:
        """Score the candles and return a signal. Never raises on short or flat data."""
        candles = [parse_candle(c) for c in candles]
        price = tick.price
        if session is None:
            session = self.context.session(tick.timestamp)
        if volatility_tier is None:
            volatility_tier = self.context.volatility_tier([c.close for c in candles[-20:]])
        w = self.scorer.w

        if len(candles) < self.scorer.warmup:
            return Signal(pair, Direction.HOLD, w.hold_confidence, price, tick.timestamp,
                          reasons=(f"Insufficient data ({len(candles)}/{self.scorer.warmup} candles)",),
                          session=session, volatility_tier=volatility_tier)

        card = self.scorer.score(candles, price)
        direction, confidence = self.scorer.classify(card)
        reasons = list(card.reasons[:w.max_reasons])

        if direction != Direction.HOLD:
            with self._lock:
                confidence, notes = self.learning.adjust(confidence, direction, session,
                                                         volatility_tier)
                threshold = self.learning.threshold
            reasons.extend(notes)
            confidence = max(0.0, min(w.confidence_cap, confidence))
            if confidence < threshold:
                reasons.append(f"HOLD: confidence {confidence:.0f}% below "
                               f"{threshold:.0f}% threshold")
                direction = Direction.HOLD

        report = self.detector.analyze(candles)
        consensus = self.scorer.consensus(candles, report)
        if (self.cfg.require_consensus and direction != Direction.HOLD
                and consensus.direction != direction):
            reasons.append(f"HOLD: timeframes disagree ({consensus.direction.value})")
            direction = Direction.HOLD

        stop_loss, tp1, tp2 = derive_levels(direction, price, report.levels)
        signal = Signal(
            pair=pair, direction=direction, confidence=confidence, entry_price=price,
            timestamp=tick.timestamp, reasons=tuple(reasons), stop_loss=stop_loss,
            take_profit=tp1, take_profit_2=tp2, session=session,
            volatility_tier=volatility_tier, bullish_score=card.bullish,
            bearish_score=card.bearish, trend_strength=card.trend_strength,
            consensus=consensus,
        )
        log.debug("%s %s %.0f%%  bull=%.1f bear=%.1f  %s", pair, direction.value,
                  confidence, card.bullish, card.bearish, "; ".join(reasons))
        return signal

    # ------------------------------------------------------------------
    def on_tick(self, pair: str, price: float, timestamp: Optional[float] = None) -> list:
        """Advance positions and tracked signals for ``pair``; returns close events."""
        with self._lock:
            now = self._now(timestamp)
            self.last_prices[pair] = price
            events = self.positions.on_tick(pair, price, now)
            events.extend(self.tracker.on_tick(pair, price, now))
        self._emit(events)
        return events

    def open_if_signalled(self, signal: Signal, pair: str) -> Optional[LivePosition]:
        with self._lock:
            price = self.last_prices.get(pair, signal.entry_price)
            return self.positions.open_if_signalled(signal, pair, price,
                                                    self._now(signal.timestamp))

    def track_signal(self, signal: Signal, pair: str) -> Optional[TrackedSignal]:
        with self._lock:
            return self.tracker.track(signal, pair, self._now(signal.timestamp))

    def process(self, candles: Sequence[Candle], tick: Tick, pair: str):
        """Evaluate, then track and open on an actionable signal. Returns (signal, position)."""
        signal = self.evaluate(candles, tick, pair)
        position = None
        with self._lock:
            self.last_prices[pair] = tick.price
            if signal.actionable:
                self.track_signal(signal, pair)
                position = self.open_if_signalled(signal, pair)
        return signal, position

    # ------------------------------------------------------------------
    def start_trading(self):
        with self._lock:
            self.positions.active = True
        log.info("▶  Trading started")

    def stop_trading(self) -> list:
        """Deactivate and force-close every open position at the last known price."""
        with self._lock:
            self.positions.active = False
            events = self.positions.close_all(self.last_prices, self._now(),
                                              CloseReason.MANUAL_CLOSE)
        log.info("⏹  Trading stopped (%d positions closed)", len(events))
        self._emit(events)
        return events

    def subscribe(self, listener: Callable):
        self._listeners.append(listener)

    def _emit(self, events: list):
        for event in events:
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception as e:
                    log.error("Event listener failed on %s: %s", type(event).__name__, e)

    def status(self) -> dict:
        with self._lock:
            return {
                "active": self.active,
                "balance": self.money.balance,
                "open_positions": len(self.positions.open_positions),
                "tracked_signals": len(self.tracker.active),
                "threshold": self.learning.threshold,
                "learning": self.learning.status_line(),
                "metrics": self.metrics.as_dict(),
            }


class Scheduler:
    """Drives an engine from a market feed: a slow refresh loop and a fast monitor loop."""

    def __init__(self, engine: TradingEngine, feed, pairs: Optional[Sequence[str]] = None):
        self.engine = engine
        self.feed = feed
        self.cfg = engine.cfg
        self.pairs = tuple(pairs or self.cfg.pairs)
        self._running = False

    async def _call(self, coro, what: str, pair: str):
        """Await a feed call with a timeout; None on any failure."""
        try:
            return await asyncio.wait_for(coro, timeout=self.cfg.feed_timeout)
        except asyncio.TimeoutError:
            log.warning("⚠️  %s %s timed out after %.0fs, skipping", pair, what,
                        self.cfg.feed_timeout)
        except Exception as e:
            log.warning("⚠️  %s %s failed: %s, skipping", pair, what, e)
        return None

    async def refresh_once(self):
        for pair in self.pairs:
            candles = await self._call(self.feed.candles(pair, self.cfg.lookback), "candles", pair)
            if candles is None:
                continue
            tick = await self._call(self.feed.tick(pair), "tick", pair)
            if tick is None:
                continue
            try:
                signal, _ = self.engine.process(candles, tick, pair)
            except Exception as e:
                log.error("❌ %s refresh failed: %s", pair, e)
                continue
            log.info("🎯 %s %s (%.0f%%)", pair, signal.direction.value, signal.confidence)

    async def monitor_once(self):
        for pair in self.pairs:
            tick = await self._call(self.feed.tick(pair), "tick", pair)
            if tick is None:
                continue
            try:
                self.engine.on_tick(pair, tick.price, tick.timestamp)
            except Exception as e:
                log.error("❌ %s monitor failed: %s", pair, e)

    async def _loop(self, step, interval: float):
        while self._running:
            try:
                await step()
            except Exception as e:
                log.error("❌ Scheduler %s error: %s", step.__name__, e)
            await asyncio.sleep(interval)

    async def run(self):
        self._running = True
        self.engine.start_trading()
        log.info("Scheduler running: %s  refresh=%.0fs monitor=%.0fs",
                 ", ".join(self.pairs), self.cfg.refresh_interval, self.cfg.monitor_interval)
        await asyncio.gather(
            self._loop(self.refresh_once, self.cfg.refresh_interval),
            self._loop(self.monitor_once, self.cfg.monitor_interval),
        )

    def stop(self):
        self._running = False
        self.engine.stop_trading()
        log.info("📊 %s", self.engine.metrics.summary())
