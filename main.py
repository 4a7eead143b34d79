import asyncio
import os
import sys

from fxengine.config import ConfigError, EngineConfig
from fxengine.engine import Scheduler, TradingEngine
from fxengine.feeds import ReplayFeed
from fxengine.utils.logger import log


def main():
    # --- Load config from env or defaults ---
    try:
        cfg = EngineConfig.from_env().validate()
    except ConfigError as e:
        print(f"Invalid configuration: {e}")
        sys.exit(1)

    # Replay sources: "EUR/USD=eurusd.csv,GBP/USD=gbpusd.csv"
    data_str = os.environ.get("FX_DATA", "")
    paths = {}
    for item in data_str.split(","):
        if "=" in item:
            pair, path = item.split("=", 1)
            paths[pair.strip()] = path.strip()

    if not paths:
        print("=" * 60)
        print("  ERROR: No market data provided!")
        print()
        print("  Point FX_DATA at one CSV per pair:")
        print("    export FX_DATA='EUR/USD=data/eurusd.csv'")
        print()
        print("  Supported: headered CSV (time,open,high,low,close,volume)")
        print("  or HistData semicolon format.")
        print("=" * 60)
        sys.exit(1)

    engine = TradingEngine(cfg)
    feed = ReplayFeed.from_csv(paths)
    scheduler = Scheduler(engine, feed, pairs=tuple(paths))
    engine.subscribe(lambda event: log.info("📣 %s", event))

    log.info("═" * 60)
    log.info("  FX signal engine  |  pairs: %s", ", ".join(paths))
    log.info("  Risk %.1f%%  SL %.2f%%  TP %.2f%%  max positions %d",
             cfg.risk_fraction * 100, cfg.stop_loss_pct, cfg.take_profit_pct,
             cfg.max_open_positions)
    log.info("═" * 60)

    try:
        asyncio.run(scheduler.run())
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()


if __name__ == "__main__":
    main()
