from datetime import datetime, timezone
from typing import Optional, Sequence

import numpy as np

from ..constants import Session, VolatilityTier


class MarketContext:
    @staticmethod
    def session(timestamp: Optional[float] = None) -> Session:
        """Trading session for a UTC timestamp; first matching window wins."""
        if timestamp is None:
            hour = datetime.now(timezone.utc).hour
        else:
            hour = datetime.fromtimestamp(timestamp, tz=timezone.utc).hour

        if hour >= 21 or hour < 6:
            return Session.SYDNEY
        if hour < 9:
            return Session.TOKYO
        if hour < 17:
            return Session.LONDON
        return Session.NEW_YORK

    @staticmethod
    def volatility_tier(prices: Sequence[float]) -> VolatilityTier:
        prices = np.asarray([p for p in prices if p is not None], dtype=np.float64)
        prices = prices[np.isfinite(prices) & (prices > 0)]
        if len(prices) < 2:
            return VolatilityTier.LOW

        avg_change = float(np.mean(np.abs(np.diff(prices) / prices[:-1])))
        if avg_change > 0.01:
            return VolatilityTier.HIGH
        if avg_change > 0.005:
            return VolatilityTier.MEDIUM
        return VolatilityTier.LOW
