from ..config import EngineConfig
from ..utils.logger import log


class MoneyManager:
    def __init__(self, cfg: EngineConfig):
        self.cfg = cfg
        self.balance = cfg.initial_balance

    @property
    def risk_amount(self) -> float:
        return self.balance * self.cfg.risk_fraction

    def stop_distance(self, price: float) -> float:
        return price * self.cfg.stop_loss_pct / 100

    def position_size(self, price: float) -> float:
        """Units such that a stop-out loses exactly the risk amount."""
        distance = self.stop_distance(price)
        if distance <= 0:
            return 0.0
        return self.risk_amount / distance

    def levels(self, direction_sign: int, price: float) -> tuple[float, float]:
        """(stop_loss, take_profit) for +1 (long) or -1 (short)."""
        sl = price * (1 - direction_sign * self.cfg.stop_loss_pct / 100)
        tp = price * (1 + direction_sign * self.cfg.take_profit_pct / 100)
        return sl, tp

    def record(self, pnl: float):
        self.balance += pnl
        log.debug("Balance %.2f (%+.2f)", self.balance, pnl)
