import math
from collections import deque
from dataclasses import dataclass


@dataclass(frozen=True)
class MetricsSnapshot:
    timestamp: float
    total_trades: int
    win_rate: float
    total_profit: float
    sharpe_ratio: float
    max_drawdown: float


class PerformanceMetrics:
    """Running trade statistics, updated once per close."""

    def __init__(self, history_size: int = 100):
        self.wins = 0
        self.losses = 0
        self.total_profit = 0.0
        self.gross_win = 0.0
        self.gross_loss = 0.0               # stored positive
        self.consec_losses = 0
        self.max_drawdown = 0.0
        self._peak = 0.0
        self._pct_mean = 0.0
        self._pct_m2 = 0.0             # running sum of squared deviations
        self._pct_count = 0
        self.history: deque[MetricsSnapshot] = deque(maxlen=history_size)

    @property
    def total(self) -> int:
        return self.wins + self.losses

    @property
    def win_rate(self) -> float:
        """Percent of winning trades; 0 before the first close."""
        return self.wins / self.total * 100 if self.total else 0.0

    @property
    def average_win(self) -> float:
        return self.gross_win / self.wins if self.wins else 0.0

    @property
    def average_loss(self) -> float:
        return self.gross_loss / self.losses if self.losses else 0.0

    @property
    def profit_factor(self) -> float:
        if self.gross_loss > 0:
            return self.gross_win / self.gross_loss
        return self.gross_win

    @property
    def sharpe_ratio(self) -> float:
        """Mean over population stdev of per-trade profit percent."""
        n = self._pct_count
        if n < 2:
            return 0.0
        std = math.sqrt(self._pct_m2 / n)
        if std == 0:
            return 0.0
        return self._pct_mean / std

    def record(self, won: bool, profit: float, profit_percent: float,
               timestamp: float = 0.0):
        self.total_profit += profit
        if won:
            self.wins += 1
            self.gross_win += abs(profit)
            self.consec_losses = 0
        else:
            self.losses += 1
            self.gross_loss += abs(profit)
            self.consec_losses += 1

        # Welford update; identical samples keep m2 at exactly zero
        self._pct_count += 1
        delta = profit_percent - self._pct_mean
        self._pct_mean += delta / self._pct_count
        self._pct_m2 += delta * (profit_percent - self._pct_mean)

        # Drawdown
        if self.total_profit > self._peak:
            self._peak = self.total_profit
        dd = self._peak - self.total_profit
        if dd > self.max_drawdown:
            self.max_drawdown = dd

        self.history.append(MetricsSnapshot(
            timestamp, self.total, self.win_rate, self.total_profit,
            self.sharpe_ratio, self.max_drawdown,
        ))

    def as_dict(self) -> dict:
        return {
            "total_trades": self.total,
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": self.win_rate,
            "total_profit": self.total_profit,
            "average_win": self.average_win,
            "average_loss": self.average_loss,
            "profit_factor": self.profit_factor,
            "sharpe_ratio": self.sharpe_ratio,
            "max_drawdown": self.max_drawdown,
            "consecutive_losses": self.consec_losses,
        }

    def summary(self) -> str:
        return (
            f"W:{self.wins} L:{self.losses} "
            f"WR:{self.win_rate:.1f}% "
            f"P&L:{self.total_profit:+.2f} "
            f"PF:{self.profit_factor:.2f} "
            f"Sharpe:{self.sharpe_ratio:.2f} "
            f"MaxDD:{self.max_drawdown:.2f} "
            f"Streak:{'L' if self.consec_losses else 'OK'}{self.consec_losses}"
        )
