import os
from dataclasses import dataclass


class ConfigError(ValueError):
    """Raised at startup when a configuration value cannot be used."""


@dataclass
class EngineConfig:
    """All tuneable knobs in one place."""

    # --- market data ---
    pairs: tuple = ("EUR/USD", "GBP/USD", "USD/JPY", "AUD/USD")
    lookback: int = 250                     # candles kept per pair
    refresh_interval: float = 30.0          # candle pull cadence (s)
    monitor_interval: float = 5.0           # position/signal tick cadence (s)
    feed_timeout: float = 10.0              # max wait on the feed per call (s)

    # --- money management ---
    initial_balance: float = 10000.0
    risk_fraction: float = 0.02             # 2% of balance at risk per trade
    stop_loss_pct: float = 0.5              # % of entry
    take_profit_pct: float = 1.0            # % of entry
    max_open_positions: int = 3
    hold_minutes: float = 60.0              # planned holding duration

    # --- intelligent exit ---
    exit_excellent_pct: float = 0.8         # lock in gains above this
    exit_reversal_pct: float = 0.3          # min profit for reversal exit
    exit_reversal_minutes: float = 30.0
    exit_reversal_samples: int = 3          # declining samples = reversal

    # --- scoring ---
    min_confirmation_score: float = 3.0
    require_consensus: bool = False         # force HOLD when timeframes disagree

    # --- adaptive learning ---
    confidence_threshold: float = 60.0      # starting dynamic threshold
    threshold_floor: float = 50.0
    threshold_ceiling: float = 80.0
    learning_min_samples: int = 5           # bucket needs this many closes
    threshold_window: int = 20              # recent outcomes inspected
    threshold_min_outcomes: int = 10

    # --- signal tracking ---
    signal_max_hours: float = 4.0
    signal_max_move: float = 0.005          # 0.5% move closes a tracked signal

    def validate(self):
        """Reject values the engine cannot run with."""
        if not 0 < self.risk_fraction <= 1:
            raise ConfigError(f"risk_fraction must be in (0, 1], got {self.risk_fraction}")
        for name in ("initial_balance", "stop_loss_pct", "take_profit_pct",
                     "hold_minutes", "min_confirmation_score",
                     "refresh_interval", "monitor_interval", "feed_timeout",
                     "signal_max_hours", "signal_max_move"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")
        for name in ("max_open_positions", "lookback", "learning_min_samples",
                     "threshold_window", "exit_reversal_samples"):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value}")
        if self.threshold_min_outcomes < 1 or self.threshold_min_outcomes > self.threshold_window:
            raise ConfigError("threshold_min_outcomes must be between 1 and threshold_window")
        if not 0 <= self.threshold_floor <= self.threshold_ceiling <= 100:
            raise ConfigError(
                f"threshold bounds invalid: floor={self.threshold_floor} "
                f"ceiling={self.threshold_ceiling}"
            )
        if not self.threshold_floor <= self.confidence_threshold <= self.threshold_ceiling:
            raise ConfigError(
                f"confidence_threshold {self.confidence_threshold} outside "
                f"[{self.threshold_floor}, {self.threshold_ceiling}]"
            )
        if not self.pairs:
            raise ConfigError("at least one pair is required")
        return self

    @classmethod
    def from_env(cls, prefix: str = "FX_") -> "EngineConfig":
        """Build a config from environment variables, e.g. FX_RISK_FRACTION=0.01."""
        cfg = cls()
        pairs = os.environ.get(prefix + "PAIRS", "")
        if pairs.strip():
            cfg.pairs = tuple(p.strip() for p in pairs.split(",") if p.strip())

        for name, value in list(vars(cfg).items()):
            raw = os.environ.get(prefix + name.upper())
            if raw is None or name == "pairs":
                continue
            try:
                if isinstance(value, bool):
                    setattr(cfg, name, raw.strip().lower() in ("1", "true", "yes", "on"))
                elif isinstance(value, int):
                    setattr(cfg, name, int(raw))
                else:
                    setattr(cfg, name, float(raw))
            except ValueError:
                raise ConfigError(f"{prefix}{name.upper()}={raw!r} is not a valid number") from None
        return cfg
