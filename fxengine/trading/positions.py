import uuid
from typing import Optional

from ..config import EngineConfig
from ..constants import CloseReason, Direction, Session, Status, VolatilityTier
from ..utils.logger import log
from .money_manager import MoneyManager
from .performance import PerformanceMetrics
from .strategy import AdaptiveLearning
from .trade import LivePosition, PositionClosed, ProgressSample, Signal


class LivePositionEngine:
    """
    Simulated positions driven by price ticks. Each position is OPEN until
    the first tick that hits one of, in priority order: take-profit,
    stop-loss, planned close time, or the intelligent early exit.
    """

    def __init__(self, cfg: EngineConfig, money: MoneyManager,
                 metrics: PerformanceMetrics, learning: AdaptiveLearning):
        self.cfg = cfg
        self.money = money
        self.metrics = metrics
        self.learning = learning
        self.active = True
        self.positions: dict[str, LivePosition] = {}
        self.history: list[LivePosition] = []

    @property
    def open_positions(self) -> list[LivePosition]:
        return [p for p in self.positions.values() if p.is_open]

    # ------------------------------------------------------------------
    def open_if_signalled(self, signal: Signal, pair: str, price: float,
                          now: float) -> Optional[LivePosition]:
        if not self.active or not signal.actionable:
            return None
        if len(self.open_positions) >= self.cfg.max_open_positions:
            log.info("⏸  %s %s skipped: max positions open (%d/%d)", pair,
                     signal.direction.value, len(self.open_positions),
                     self.cfg.max_open_positions)
            return None

        size = self.money.position_size(price)
        if size <= 0:
            return None
        sign = 1 if signal.direction == Direction.BUY else -1
        stop_loss, take_profit = self.money.levels(sign, price)

        pos = LivePosition(
            id=uuid.uuid4().hex[:12],
            pair=pair,
            direction=signal.direction,
            entry_price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            position_size=size,
            risk_amount=self.money.risk_amount,
            opened_at=now,
            planned_close_at=now + self.cfg.hold_minutes * 60,
            confidence=signal.confidence,
            session=signal.session or Session.LONDON,
            volatility_tier=signal.volatility_tier or VolatilityTier.MEDIUM,
            current_price=price,
        )
        self.positions[pos.id] = pos
        log.info("📈 OPEN %s %s @ %.5f  size=%.2f  SL=%.5f  TP=%.5f  conf=%.0f%%",
                 pos.direction.value, pair, price, size, stop_loss, take_profit,
                 signal.confidence)
        return pos

    # ------------------------------------------------------------------
    def on_tick(self, pair: str, price: float, now: float) -> list[PositionClosed]:
        events = []
        for pos in self.open_positions:
            if pos.pair != pair:
                continue
            reason = self._step(pos, price, now)
            if reason is not None:
                events.append(self._close(pos, price, now, reason))
        return events

    def _step(self, pos: LivePosition, price: float, now: float) -> Optional[CloseReason]:
        """Record a progress sample and return the close reason, if any."""
        profit, profit_pct = pos.unrealized(price)
        elapsed = (now - pos.opened_at) / 60
        pos.current_price = price
        pos.progress.append(ProgressSample(now, price, profit, profit_pct, elapsed))
        pos.running_max_profit = max(pos.running_max_profit, profit)
        pos.running_max_loss = min(pos.running_max_loss, profit)
        log.debug("%s %s %.5f  P&L %+.2f (%+.3f%%)  %.1fmin", pos.id, pos.pair,
                  price, profit, profit_pct, elapsed)

        if pos.direction == Direction.BUY:
            hit_tp, hit_sl = price >= pos.take_profit, price <= pos.stop_loss
        else:
            hit_tp, hit_sl = price <= pos.take_profit, price >= pos.stop_loss

        if hit_tp:
            return CloseReason.TAKE_PROFIT
        if hit_sl:
            return CloseReason.STOP_LOSS
        if now >= pos.planned_close_at:
            return CloseReason.TIME_EXPIRED
        if profit > 0 and self._should_exit_early(pos, profit_pct, elapsed):
            return CloseReason.AI_INTELLIGENT_EXIT
        return None

    def _should_exit_early(self, pos: LivePosition, profit_pct: float, elapsed: float) -> bool:
        if profit_pct > self.cfg.exit_excellent_pct:
            return True
        n = self.cfg.exit_reversal_samples
        if profit_pct > self.cfg.exit_reversal_pct and elapsed > self.cfg.exit_reversal_minutes:
            recent = [s.profit for s in pos.progress[-n:]]
            if len(recent) == n and all(a > b for a, b in zip(recent, recent[1:])):
                return True
        return False

    # ------------------------------------------------------------------
    def _close(self, pos: LivePosition, price: float, now: float,
               reason: CloseReason) -> PositionClosed:
        profit, profit_pct = pos.unrealized(price)
        pos.status = Status.CLOSED
        pos.close_reason = reason
        pos.exit_price = price
        pos.closed_at = now
        pos.current_price = price
        pos.realized_profit = profit
        pos.profit_percent = profit_pct

        won = profit > 0
        self.money.record(profit)
        self.history.append(pos)
        self.metrics.record(won, profit, profit_pct, now)
        self.learning.record(won, pos.session, pos.volatility_tier, pos.direction)
        del self.positions[pos.id]

        log.info("%s CLOSE %s %s @ %.5f  %s  P&L %+.2f (%+.3f%%)  balance=%.2f",
                 "✅" if won else "❌", pos.direction.value, pos.pair, price,
                 reason.value, profit, profit_pct, self.money.balance)
        return PositionClosed(pos.id, pos.pair, reason, profit)

    def close_all(self, last_prices: dict, now: float,
                  reason: CloseReason = CloseReason.MANUAL_CLOSE) -> list[PositionClosed]:
        """Force-close every OPEN position at its pair's last known price."""
        events = []
        for pos in self.open_positions:
            price = last_prices.get(pos.pair, pos.current_price)
            if price is None:
                price = pos.entry_price
            events.append(self._close(pos, price, now, reason))
        return events
