from dataclasses import dataclass

FIELDS = ("open", "high", "low", "close", "volume")


@dataclass(frozen=True)
class Candle:
    timestamp: float
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low


@dataclass(frozen=True)
class Tick:
    price: float
    timestamp: float


def _num(value) -> float:
    return float(value or 0)


def parse_candle(raw) -> Candle:
    """Build a Candle from a Candle, a mapping, an OHLC sequence or any object
    exposing ``time``/``timestamp`` and OHLC attributes."""
    if isinstance(raw, Candle):
        return raw
    if isinstance(raw, (list, tuple)):
        values = [float(v) for v in raw[:6]]
        return Candle(*values)
    if isinstance(raw, dict):
        get = raw.get
    else:
        def get(key, default=None):
            return getattr(raw, key, default)
    ts = get("time")
    if ts is None:
        ts = get("timestamp", 0)
    return Candle(_num(ts), *(_num(get(f, 0)) for f in FIELDS))
