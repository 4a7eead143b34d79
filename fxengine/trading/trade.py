from dataclasses import dataclass, field
from typing import Optional

from ..constants import CloseReason, Direction, Session, Status, VolatilityTier
from ..core.scorer import ConsensusResult


@dataclass(frozen=True)
class Signal:
    pair: str
    direction: Direction
    confidence: float                       # 0-95
    entry_price: float
    timestamp: float
    reasons: tuple = ()
    stop_loss: Optional[float] = None       # None for HOLD
    take_profit: Optional[float] = None
    take_profit_2: Optional[float] = None
    session: Optional[Session] = None
    volatility_tier: Optional[VolatilityTier] = None
    bullish_score: float = 0.0
    bearish_score: float = 0.0
    trend_strength: float = 0.0             # EMA50/EMA200 separation, %
    consensus: Optional[ConsensusResult] = None

    @property
    def actionable(self) -> bool:
        return self.direction != Direction.HOLD


@dataclass
class TrackedSignal:
    id: str
    pair: str
    direction: Direction
    entry_price: float
    confidence: float
    opened_at: float
    session: Session
    volatility_tier: VolatilityTier
    status: Status = Status.OPEN
    exit_price: Optional[float] = None
    profit: Optional[float] = None          # raw price - entry
    profit_percent: Optional[float] = None
    duration_hours: Optional[float] = None
    success: Optional[bool] = None


@dataclass(frozen=True)
class ProgressSample:
    timestamp: float
    price: float
    profit: float
    profit_percent: float
    elapsed_minutes: float


@dataclass
class LivePosition:
    id: str
    pair: str
    direction: Direction
    entry_price: float
    stop_loss: float
    take_profit: float
    position_size: float
    risk_amount: float
    opened_at: float
    planned_close_at: float
    confidence: float
    session: Session
    volatility_tier: VolatilityTier
    status: Status = Status.OPEN
    current_price: Optional[float] = None
    close_reason: Optional[CloseReason] = None
    exit_price: Optional[float] = None
    closed_at: Optional[float] = None
    realized_profit: Optional[float] = None
    profit_percent: Optional[float] = None
    running_max_profit: float = 0.0
    running_max_loss: float = 0.0
    progress: list = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status == Status.OPEN

    def unrealized(self, price: float) -> tuple[float, float]:
        """(profit, profit_percent) at ``price``, sign-flipped for SELL."""
        move = price - self.entry_price
        if self.direction == Direction.SELL:
            move = -move
        return move * self.position_size, move / self.entry_price * 100


@dataclass(frozen=True)
class PositionClosed:
    id: str
    pair: str
    reason: CloseReason
    profit: float


@dataclass(frozen=True)
class SignalClosed:
    id: str
    pair: str
    success: bool
    profit_percent: float
