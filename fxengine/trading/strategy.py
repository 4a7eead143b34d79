from collections import deque
from typing import Optional

from ..config import EngineConfig
from ..constants import Direction, Session, VolatilityTier
from ..utils.logger import log

# (bonus, penalty) applied when a bucket's win rate is above 60% / below 40%
SESSION_ADJ = (15.0, -10.0)
VOLATILITY_ADJ = (10.0, -5.0)
DIRECTION_ADJ = (12.0, -15.0)


class AdaptiveLearning:
    """
    Tracks win/total counts per market session, volatility tier and signal
    direction, and nudges signal confidence toward what has been working.
    Also owns the dynamic confidence threshold below which signals are held.
    """

    def __init__(self, cfg: EngineConfig):
        self.cfg = cfg
        self.min_samples = cfg.learning_min_samples
        self.threshold = cfg.confidence_threshold

        # Each stores {key: {"wins": int, "total": int}}
        self.by_session: dict[Session, dict] = {}
        self.by_volatility: dict[VolatilityTier, dict] = {}
        self.by_direction: dict[Direction, dict] = {}

        # rolling recent outcomes for the threshold review
        self._recent: deque[bool] = deque(maxlen=cfg.threshold_window)

    def _bucket(self) -> dict:
        return {"wins": 0, "total": 0}

    def _wr(self, store: dict, key) -> Optional[float]:
        """Win rate in percent, or None until the bucket has enough samples."""
        bucket = store.get(key)
        if not bucket or bucket["total"] < self.min_samples:
            return None
        return bucket["wins"] / bucket["total"] * 100

    # ------------------------------------------------------------------
    def record(self, won: bool, session: Session, volatility_tier: VolatilityTier,
               direction: Direction):
        """Feed one closed signal or position outcome."""
        for store, key in [
            (self.by_session, session),
            (self.by_volatility, volatility_tier),
            (self.by_direction, direction),
        ]:
            if key not in store:
                store[key] = self._bucket()
            store[key]["total"] += 1
            if won:
                store[key]["wins"] += 1

        self._recent.append(won)
        self._review_threshold()

    def _review_threshold(self):
        if len(self._recent) < self.cfg.threshold_min_outcomes:
            return
        wr = sum(self._recent) / len(self._recent) * 100
        before = self.threshold
        if wr < 40:
            self.threshold = min(self.threshold + 5, self.cfg.threshold_ceiling)
        elif wr > 70:
            self.threshold = max(self.threshold - 2, self.cfg.threshold_floor)
        if self.threshold != before:
            log.info("🧠 Confidence threshold %.0f → %.0f (recent WR %.1f%%)",
                     before, self.threshold, wr)

    # ------------------------------------------------------------------
    def adjust(self, confidence: float, direction: Direction, session: Session,
               volatility_tier: VolatilityTier) -> tuple[float, list[str]]:
        """Apply bucket bonuses/penalties. Returns (confidence, notes)."""
        notes = []
        for store, key, (bonus, penalty), label in [
            (self.by_session, session, SESSION_ADJ, f"{session.value} session"),
            (self.by_volatility, volatility_tier, VOLATILITY_ADJ,
             f"{volatility_tier.value} volatility"),
            (self.by_direction, direction, DIRECTION_ADJ, f"{direction.value} history"),
        ]:
            wr = self._wr(store, key)
            if wr is None:
                continue
            if wr > 60:
                confidence += bonus
                notes.append(f"Strong {label} ({wr:.1f}% win rate)")
            elif wr < 40:
                confidence += penalty
                notes.append(f"Weak {label} ({wr:.1f}% win rate)")
        return confidence, notes

    def passes(self, confidence: float) -> bool:
        return confidence >= self.threshold

    # ------------------------------------------------------------------
    def status_line(self) -> str:
        """Short status for logging."""
        parts = [f"thr:{self.threshold:.0f}"]
        for store in (self.by_session, self.by_volatility, self.by_direction):
            for key in store:
                wr = self._wr(store, key)
                if wr is not None:
                    parts.append(f"{key.value}:{wr:.0f}%")
        return " | ".join(parts)

    def save_state(self) -> dict:
        return {
            "threshold": self.threshold,
            "sessions": {k.value: dict(v) for k, v in self.by_session.items()},
            "volatility": {k.value: dict(v) for k, v in self.by_volatility.items()},
            "directions": {k.value: dict(v) for k, v in self.by_direction.items()},
            "recent": list(self._recent),
        }

    def load_state(self, state: dict):
        if "threshold" in state:
            self.threshold = float(state["threshold"])
        for name, store, enum in [
            ("sessions", self.by_session, Session),
            ("volatility", self.by_volatility, VolatilityTier),
            ("directions", self.by_direction, Direction),
        ]:
            for k, v in state.get(name, {}).items():
                store[enum(k)] = {"wins": int(v["wins"]), "total": int(v["total"])}
        self._recent.extend(bool(r) for r in state.get("recent", []))
