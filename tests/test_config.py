import pytest

from fxengine.config import ConfigError, EngineConfig
from fxengine.constants import Session, VolatilityTier
from fxengine.core.regime import MarketContext
from fxengine.utils.candle import Candle, parse_candle
from fxengine.utils.clock import ManualClock


class TestValidate:
    def test_defaults_are_valid(self):
        cfg = EngineConfig()
        assert cfg.validate() is cfg

    @pytest.mark.parametrize("overrides", [
        {"risk_fraction": 0.0},
        {"risk_fraction": -0.01},
        {"risk_fraction": 1.5},
        {"stop_loss_pct": 0.0},
        {"take_profit_pct": -1.0},
        {"hold_minutes": 0.0},
        {"max_open_positions": 0},
        {"max_open_positions": 2.5},
        {"min_confirmation_score": 0.0},
        {"threshold_floor": 85.0},
        {"threshold_ceiling": 120.0},
        {"confidence_threshold": 90.0},
        {"threshold_min_outcomes": 30},
        {"pairs": ()},
    ])
    def test_rejects(self, overrides):
        with pytest.raises(ConfigError):
            EngineConfig(**overrides).validate()


class TestFromEnv:
    def test_reads_prefixed_values(self, monkeypatch):
        monkeypatch.setenv("FX_RISK_FRACTION", "0.01")
        monkeypatch.setenv("FX_MAX_OPEN_POSITIONS", "5")
        monkeypatch.setenv("FX_REQUIRE_CONSENSUS", "true")
        monkeypatch.setenv("FX_PAIRS", "EUR/USD, USD/JPY")
        cfg = EngineConfig.from_env()
        assert cfg.risk_fraction == 0.01
        assert cfg.max_open_positions == 5
        assert cfg.require_consensus is True
        assert cfg.pairs == ("EUR/USD", "USD/JPY")

    def test_bad_number(self, monkeypatch):
        monkeypatch.setenv("FX_LOOKBACK", "lots")
        with pytest.raises(ConfigError):
            EngineConfig.from_env()

    def test_unset_keeps_defaults(self, monkeypatch):
        monkeypatch.delenv("FX_STOP_LOSS_PCT", raising=False)
        assert EngineConfig.from_env().stop_loss_pct == 0.5


class TestMarketContext:
    @pytest.mark.parametrize("hour,session", [
        (0, Session.SYDNEY), (5, Session.SYDNEY), (6, Session.TOKYO),
        (8, Session.TOKYO), (9, Session.LONDON), (16, Session.LONDON),
        (17, Session.NEW_YORK), (20, Session.NEW_YORK), (21, Session.SYDNEY),
    ])
    def test_session_by_utc_hour(self, hour, session):
        assert MarketContext.session(hour * 3600.0 + 120) == session

    def test_volatility_tier(self):
        assert MarketContext.volatility_tier([1.0, 1.001, 1.0]) == VolatilityTier.LOW
        assert MarketContext.volatility_tier([1.0, 1.007, 1.0]) == VolatilityTier.MEDIUM
        assert MarketContext.volatility_tier([1.0, 1.02, 1.0]) == VolatilityTier.HIGH
        assert MarketContext.volatility_tier([1.0]) == VolatilityTier.LOW
        assert MarketContext.volatility_tier([1.0, None, float("nan"), 1.02]) == VolatilityTier.HIGH


class TestUtils:
    def test_parse_candle_shapes(self):
        expected = Candle(60.0, 1.0, 1.2, 0.9, 1.1, 5.0)
        assert parse_candle(expected) is expected
        assert parse_candle({"time": 60, "open": 1.0, "high": 1.2, "low": 0.9,
                             "close": 1.1, "volume": 5}) == expected
        assert parse_candle([60, 1.0, 1.2, 0.9, 1.1, 5]) == expected

    def test_manual_clock(self):
        clock = ManualClock(100.0)
        clock.advance(30)
        assert clock.now() == 130.0
        clock.set(5)
        assert clock.now() == 5.0

    def test_logger_level_from_env(self, monkeypatch):
        import logging
        from fxengine.utils.logger import setup_logger
        monkeypatch.setenv("FX_LOG_LEVEL", "debug")
        assert setup_logger("FXEngine.test-env").level == logging.DEBUG
        assert setup_logger("FXEngine.test-arg", logging.WARNING).level == logging.WARNING

    def test_candle_body_and_range(self):
        candle = parse_candle((0, 1.0, 1.5, 0.8, 1.2))
        assert candle.volume == 0.0
        assert candle.body == pytest.approx(0.2)
        assert candle.range == pytest.approx(0.7)
