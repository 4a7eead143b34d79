import csv
from datetime import datetime, timezone
from typing import Protocol, Sequence

from .utils.candle import Candle, Tick, parse_candle
from .utils.logger import log


class FeedError(RuntimeError):
    """A market data source could not deliver."""


class MarketFeed(Protocol):
    async def candles(self, pair: str, limit: int) -> list[Candle]: ...

    async def tick(self, pair: str) -> Tick: ...


HISTDATA_TIME = "%Y%m%d %H%M%S"


def _parse_time(time_str: str) -> float:
    if "-" in time_str and ":" in time_str:
        parsed = datetime.strptime(time_str, "%Y-%m-%d %H:%M:%S")
        return parsed.replace(tzinfo=timezone.utc).timestamp()
    return float(time_str)


def _pick(row: dict, *keys):
    for key in keys:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


def _histdata_row(line: str) -> Candle:
    stamp, *ohlcv = line.split(";")
    ts = datetime.strptime(stamp.strip(), HISTDATA_TIME).replace(tzinfo=timezone.utc)
    return parse_candle([ts.timestamp(), *ohlcv[:5]])


def _headered_row(row: dict) -> Candle:
    stamp = _pick(row, "time", "timestamp", "date", "Date")
    close = _pick(row, "close", "Close")
    if stamp is None or close is None:
        raise ValueError("missing time or close")
    return Candle(
        timestamp=_parse_time(str(stamp).strip()),
        open=float(_pick(row, "open", "Open") or 0),
        high=float(_pick(row, "high", "High") or 0),
        low=float(_pick(row, "low", "Low") or 0),
        close=float(close),
        volume=float(_pick(row, "tick_volume", "volume", "Volume") or 0),
    )


def load_candles(path: str) -> list[Candle]:
    """Read candles from a headered CSV (time,open,high,low,close[,volume], comma
    or semicolon separated) or a headerless HistData M1 export
    (``YYYYMMDD HHMMSS;O;H;L;C;V``). Timestamps are UTC.

    Rows that fail to parse or carry a non-positive close are skipped.
    """
    with open(path, "r", encoding="utf-8-sig") as f:
        first_line = f.readline().strip()
        f.seek(0)
        headerless = ";" in first_line and not any(
            h in first_line.lower() for h in ("time", "open", "high", "date"))
        if headerless:
            log.debug("Detected HistData semicolon format (no headers)")
            rows, parse = (line.strip() for line in f), _histdata_row
        else:
            delimiter = ";" if ";" in first_line else ","
            rows, parse = csv.DictReader(f, delimiter=delimiter), _headered_row

        candles, skipped = [], 0
        for row in rows:
            if not row:
                continue
            try:
                candle = parse(row)
            except (ValueError, TypeError, IndexError):
                skipped += 1
                continue
            if candle.close <= 0:
                skipped += 1
                continue
            candles.append(candle)

    candles.sort(key=lambda c: c.timestamp)
    log.info("Loaded %d candles from %s (%d rows skipped)", len(candles), path, skipped)
    return candles


class ReplayFeed:
    """
    Plays recorded candles back one at a time. Each ``tick`` call advances
    the pair's cursor by one candle and reports its close; ``candles`` only
    ever returns history up to the cursor.
    """

    def __init__(self, series: dict, warmup: int = 200):
        self._series = {pair: [parse_candle(c) for c in candles]
                        for pair, candles in series.items()}
        self._cursor = {pair: min(warmup, len(c)) for pair, c in self._series.items()}

    @classmethod
    def from_csv(cls, paths: dict, warmup: int = 200) -> "ReplayFeed":
        return cls({pair: load_candles(path) for pair, path in paths.items()}, warmup)

    def _get(self, pair: str) -> Sequence[Candle]:
        try:
            return self._series[pair]
        except KeyError:
            raise FeedError(f"no data for {pair}") from None

    def exhausted(self, pair: str) -> bool:
        return self._cursor[pair] >= len(self._get(pair))

    async def candles(self, pair: str, limit: int) -> list[Candle]:
        data = self._get(pair)
        end = self._cursor[pair]
        return list(data[max(0, end - limit):end])

    async def tick(self, pair: str) -> Tick:
        data = self._get(pair)
        if not data:
            raise FeedError(f"no data for {pair}")
        idx = min(self._cursor[pair], len(data) - 1)
        self._cursor[pair] = min(self._cursor[pair] + 1, len(data))
        c = data[idx]
        return Tick(c.close, c.timestamp)
