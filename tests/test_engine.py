"""
Integration tests for the trading engine
========================================
Signal evaluation end to end, adaptive confidence and the scheduler loops.
"""

import asyncio

import pytest

from fxengine.config import EngineConfig
from fxengine.constants import CloseReason, Direction, Session, Status, VolatilityTier
from fxengine.core.scorer import ConsensusResult, WeightTable
from fxengine.engine import Scheduler, TradingEngine
from fxengine.feeds import FeedError, ReplayFeed
from fxengine.trading.trade import Signal
from fxengine.utils.candle import Candle, Tick
from fxengine.utils.clock import ManualClock

PAIR = "EUR/USD"
T0 = 1_700_000_000.0        # 2023-11-14 22:13 UTC


def generate_zigzag(n_bars: int = 250, start: float = 1.1, up: float = 0.001,
                    down: float = 0.0005) -> list:
    candles = []
    price = start
    for i in range(n_bars):
        close = price + (up if i % 2 == 0 else -down)
        candles.append(Candle(T0 + i * 60, price, max(price, close) + 0.0002,
                              min(price, close) - 0.0002, close, 1000.0))
        price = close
    return candles


def last_tick(candles: list) -> Tick:
    return Tick(candles[-1].close, candles[-1].timestamp)


def win_london_trades(engine: TradingEngine, count: int):
    """Open and take-profit ``count`` London BUY positions."""
    for i in range(count):
        ts = T0 + i * 600
        signal = Signal(PAIR, Direction.BUY, 80.0, 1.1, ts,
                        session=Session.LONDON, volatility_tier=VolatilityTier.LOW)
        engine.last_prices[PAIR] = 1.1
        assert engine.open_if_signalled(signal, PAIR) is not None
        engine.on_tick(PAIR, 1.1120, ts + 60)


@pytest.fixture
def engine():
    return TradingEngine(EngineConfig(), clock=ManualClock(T0))


class TestEvaluate:
    def test_rising_series_buys(self, engine):
        candles = generate_zigzag()
        signal = engine.evaluate(candles, last_tick(candles), PAIR)
        assert signal.direction == Direction.BUY
        assert signal.confidence >= 60
        assert signal.stop_loss < signal.entry_price < signal.take_profit < signal.take_profit_2
        assert signal.bullish_score > signal.bearish_score
        assert isinstance(signal.consensus, ConsensusResult)
        assert 1 <= len(signal.reasons) <= 5

    def test_falling_series_sells(self, engine):
        candles = generate_zigzag(up=-0.001, down=-0.0005)
        signal = engine.evaluate(candles, last_tick(candles), PAIR)
        assert signal.direction == Direction.SELL
        assert signal.stop_loss > signal.entry_price > signal.take_profit

    def test_insufficient_data_holds(self, engine):
        candles = generate_zigzag(120)
        signal = engine.evaluate(candles, last_tick(candles), PAIR)
        assert signal.direction == Direction.HOLD
        assert signal.confidence == 30.0
        assert signal.reasons[0].startswith("Insufficient data")
        assert signal.stop_loss is None

    def test_session_and_tier_inferred(self, engine):
        candles = generate_zigzag()
        signal = engine.evaluate(candles, Tick(1.13, 0.0), PAIR)
        assert signal.session == Session.SYDNEY
        assert signal.volatility_tier == VolatilityTier.LOW

    def test_threshold_forces_hold_keeps_confidence(self, engine):
        engine.learning.threshold = 99.0
        candles = generate_zigzag()
        signal = engine.evaluate(candles, last_tick(candles), PAIR)
        assert signal.direction == Direction.HOLD
        assert signal.confidence == 95.0
        assert "threshold" in signal.reasons[-1]

    def test_require_consensus(self):
        engine = TradingEngine(EngineConfig(require_consensus=True), clock=ManualClock(T0))
        candles = generate_zigzag()
        signal = engine.evaluate(candles, last_tick(candles), PAIR)
        # single timeframe says BUY, the windows are too weak to agree
        assert signal.consensus.direction == Direction.HOLD
        assert signal.direction == Direction.HOLD

    def test_evaluate_does_not_mutate(self, engine):
        candles = generate_zigzag()
        engine.evaluate(candles, last_tick(candles), PAIR)
        assert engine.positions.positions == {}
        assert engine.tracker.active == {}


class TestAdaptiveConfidence:
    def test_winning_session_raises_confidence(self):
        weights = WeightTable(per_point=0.0, per_diff=0.0)
        fresh = TradingEngine(EngineConfig(), clock=ManualClock(T0), weights=weights)
        learned = TradingEngine(EngineConfig(), clock=ManualClock(T0), weights=weights)
        win_london_trades(learned, 5)
        assert learned.metrics.wins == 5

        candles = generate_zigzag()
        tick = last_tick(candles)
        base = fresh.evaluate(candles, tick, PAIR, Session.LONDON, VolatilityTier.MEDIUM)
        boosted = learned.evaluate(candles, tick, PAIR, Session.LONDON, VolatilityTier.MEDIUM)
        assert base.direction == boosted.direction == Direction.BUY
        assert boosted.confidence > base.confidence

    def test_confidence_clamped(self):
        engine = TradingEngine(EngineConfig(), clock=ManualClock(T0))
        win_london_trades(engine, 5)
        candles = generate_zigzag()
        signal = engine.evaluate(candles, last_tick(candles), PAIR, Session.LONDON,
                                 VolatilityTier.LOW)
        assert signal.confidence == 95.0
        assert any("London" in r for r in signal.reasons)


class TestProcess:
    def test_opens_and_tracks(self, engine):
        candles = generate_zigzag()
        signal, position = engine.process(candles, last_tick(candles), PAIR)
        assert signal.direction == Direction.BUY
        assert position is not None
        assert position.entry_price == candles[-1].close
        assert len(engine.tracker.active) == 1

    def test_status(self, engine):
        candles = generate_zigzag()
        engine.process(candles, last_tick(candles), PAIR)
        status = engine.status()
        assert status["active"]
        assert status["open_positions"] == 1
        assert status["tracked_signals"] == 1
        assert status["metrics"]["total_trades"] == 0


class TestConfigValidation:
    def test_engine_rejects_bad_config(self):
        from fxengine.config import ConfigError
        with pytest.raises(ConfigError):
            TradingEngine(EngineConfig(risk_fraction=0.0))

    def test_min_confirmation_from_config_forces_hold(self):
        engine = TradingEngine(EngineConfig(min_confirmation_score=50.0), clock=ManualClock(T0))
        candles = generate_zigzag()
        signal = engine.evaluate(candles, last_tick(candles), PAIR)
        assert signal.direction == Direction.HOLD
        assert signal.bullish_score < 50.0

    def test_min_confirmation_overrides_custom_weights(self):
        weights = WeightTable(per_point=0.0)
        engine = TradingEngine(EngineConfig(min_confirmation_score=7.5), weights=weights)
        assert engine.scorer.w.min_confirmation == 7.5
        assert engine.scorer.w.per_point == 0.0


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class BrokenFeed:
    def __init__(self, candles):
        self._candles = candles
        self.tick_calls = 0

    async def candles(self, pair, limit):
        return self._candles[-limit:]

    async def tick(self, pair):
        self.tick_calls += 1
        raise FeedError("upstream unavailable")


class SlowFeed(BrokenFeed):
    async def tick(self, pair):
        await asyncio.sleep(1.0)
        return Tick(1.1, T0)


class TestScheduler:
    def test_refresh_opens_from_replay(self):
        engine = TradingEngine(EngineConfig(pairs=(PAIR,)), clock=ManualClock(T0))
        feed = ReplayFeed({PAIR: generate_zigzag(260)}, warmup=250)
        asyncio.run(Scheduler(engine, feed).refresh_once())
        assert len(engine.positions.open_positions) == 1

    def test_feed_failure_skips_cycle(self):
        engine = TradingEngine(EngineConfig(pairs=(PAIR,)), clock=ManualClock(T0))
        pos = engine.open_if_signalled(
            Signal(PAIR, Direction.BUY, 80.0, 1.1, T0, session=Session.LONDON,
                   volatility_tier=VolatilityTier.LOW), PAIR)
        feed = BrokenFeed(generate_zigzag())
        scheduler = Scheduler(engine, feed)
        asyncio.run(scheduler.monitor_once())
        asyncio.run(scheduler.refresh_once())
        assert feed.tick_calls == 2
        assert pos.status == Status.OPEN
        assert pos.progress == []
        assert len(engine.tracker.active) == 0

    def test_feed_timeout_skips_cycle(self):
        cfg = EngineConfig(pairs=(PAIR,), feed_timeout=0.01)
        engine = TradingEngine(cfg, clock=ManualClock(T0))
        asyncio.run(Scheduler(engine, SlowFeed(generate_zigzag())).refresh_once())
        assert engine.positions.open_positions == []

    def test_stop_closes_everything(self):
        engine = TradingEngine(EngineConfig(pairs=(PAIR,)), clock=ManualClock(T0))
        feed = ReplayFeed({PAIR: generate_zigzag(260)}, warmup=250)
        scheduler = Scheduler(engine, feed)
        asyncio.run(scheduler.refresh_once())
        scheduler.stop()
        assert not engine.active
        assert engine.positions.history[-1].close_reason == CloseReason.MANUAL_CLOSE

    def test_run_loops_until_stopped(self):
        cfg = EngineConfig(pairs=(PAIR,), refresh_interval=0.01, monitor_interval=0.01)
        engine = TradingEngine(cfg, clock=ManualClock(T0))
        feed = ReplayFeed({PAIR: generate_zigzag(300)}, warmup=250)
        scheduler = Scheduler(engine, feed)

        async def run_briefly():
            task = asyncio.ensure_future(scheduler.run())
            await asyncio.sleep(0.1)
            scheduler.stop()
            await asyncio.wait_for(task, timeout=1.0)

        asyncio.run(run_briefly())
        assert not engine.active
        assert engine.positions.open_positions == []

    def test_zero_close_candle_does_not_stop_refresh(self):
        engine = TradingEngine(EngineConfig(pairs=(PAIR,)), clock=ManualClock(T0))
        candles = generate_zigzag(300)
        bad = candles[239]
        candles[239] = Candle(bad.timestamp, bad.open, bad.high, bad.low, 0.0, bad.volume)
        feed = ReplayFeed({PAIR: candles}, warmup=259)
        asyncio.run(Scheduler(engine, feed).refresh_once())
        assert engine.last_prices[PAIR] == candles[259].close

    def test_engine_error_skips_pair(self, monkeypatch):
        engine = TradingEngine(EngineConfig(pairs=(PAIR, "GBP/USD")), clock=ManualClock(T0))
        feed = ReplayFeed({PAIR: generate_zigzag(260), "GBP/USD": generate_zigzag(260)},
                          warmup=250)
        seen = []

        def failing_process(candles, tick, pair):
            seen.append(pair)
            raise RuntimeError("bad window")

        monkeypatch.setattr(engine, "process", failing_process)
        asyncio.run(Scheduler(engine, feed).refresh_once())
        assert seen == [PAIR, "GBP/USD"]

    def test_loop_survives_failing_step(self):
        cfg = EngineConfig(pairs=(PAIR,), refresh_interval=0.01, monitor_interval=0.01)
        engine = TradingEngine(cfg, clock=ManualClock(T0))
        scheduler = Scheduler(engine, ReplayFeed({PAIR: generate_zigzag(260)}, warmup=250))
        calls = []

        async def failing_step():
            calls.append(1)
            raise RuntimeError("boom")

        async def run_briefly():
            scheduler._running = True
            task = asyncio.ensure_future(scheduler._loop(failing_step, 0.01))
            await asyncio.sleep(0.1)
            scheduler._running = False
            await asyncio.wait_for(task, timeout=1.0)

        asyncio.run(run_briefly())
        assert len(calls) > 1
