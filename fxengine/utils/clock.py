import time


class SystemClock:
    """Wall-clock time in epoch seconds."""

    def now(self) -> float:
        return time.time()


class ManualClock:
    """Clock that only moves when told to. Used for replays and tests."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def set(self, timestamp: float):
        self._now = float(timestamp)

    def advance(self, seconds: float):
        self._now += seconds
