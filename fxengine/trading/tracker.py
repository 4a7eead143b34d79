import uuid
from typing import Optional

from ..config import EngineConfig
from ..constants import Direction, Session, Status, VolatilityTier
from ..utils.logger import log
from .performance import PerformanceMetrics
from .strategy import AdaptiveLearning
from .trade import Signal, SignalClosed, TrackedSignal


class SignalTracker:
    """Ledger of accepted signals, closed after a time limit or a large enough move."""

    def __init__(self, cfg: EngineConfig, metrics: PerformanceMetrics,
                 learning: AdaptiveLearning):
        self.cfg = cfg
        self.metrics = metrics
        self.learning = learning
        self.active: dict[str, TrackedSignal] = {}
        self.history: list[TrackedSignal] = []

    def track(self, signal: Signal, pair: str, now: float) -> Optional[TrackedSignal]:
        if not signal.actionable or signal.entry_price <= 0:
            return None
        tracked = TrackedSignal(
            id=uuid.uuid4().hex[:12],
            pair=pair,
            direction=signal.direction,
            entry_price=signal.entry_price,
            confidence=signal.confidence,
            opened_at=now,
            session=signal.session or Session.LONDON,
            volatility_tier=signal.volatility_tier or VolatilityTier.MEDIUM,
        )
        self.active[tracked.id] = tracked
        log.info("📡 Tracking %s %s @ %.5f (conf %.0f%%)", tracked.direction.value,
                 pair, tracked.entry_price, tracked.confidence)
        return tracked

    def on_tick(self, pair: str, price: float, now: float) -> list[SignalClosed]:
        events = []
        for sig in list(self.active.values()):
            if sig.pair != pair:
                continue
            hours = (now - sig.opened_at) / 3600
            move = abs(price - sig.entry_price) / sig.entry_price
            if hours >= self.cfg.signal_max_hours or move >= self.cfg.signal_max_move:
                events.append(self._close(sig, price, hours))
        return events

    def _close(self, sig: TrackedSignal, price: float, hours: float) -> SignalClosed:
        profit = price - sig.entry_price
        sig.status = Status.CLOSED
        sig.exit_price = price
        sig.profit = profit
        sig.profit_percent = profit / sig.entry_price * 100
        sig.duration_hours = hours
        sig.success = ((sig.direction == Direction.BUY and profit > 0)
                       or (sig.direction == Direction.SELL and profit < 0))

        # metrics see the direction-adjusted result
        signed_pct = sig.profit_percent if sig.direction == Direction.BUY else -sig.profit_percent
        signed = profit if sig.direction == Direction.BUY else -profit
        self.metrics.record(sig.success, signed, signed_pct, sig.opened_at + hours * 3600)
        self.learning.record(sig.success, sig.session, sig.volatility_tier, sig.direction)

        del self.active[sig.id]
        self.history.append(sig)
        log.info("%s Signal %s %s closed @ %.5f  %+.3f%% after %.2fh",
                 "✅" if sig.success else "❌", sig.direction.value, sig.pair,
                 price, sig.profit_percent, hours)
        return SignalClosed(sig.id, sig.pair, sig.success, sig.profit_percent)
