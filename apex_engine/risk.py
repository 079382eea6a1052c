"""
Risk & Compliance Guard

Prop-firm tripwires evaluated once per primary bar before any setup logic:
flatten-before-close, daily loss cap / profit lock, consecutive losses and
trailing drawdown. A trip is sticky for the rest of the calendar day.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from .config import GuardConfig, parse_clock
from .models import AccountSnapshot

logger = logging.getLogger(__name__)

FLAT_BEFORE_CLOSE = "FlatBeforeClose"
DAILY_LOSS_CAP = "DailyLossCap"
DAILY_PROFIT_LOCK = "DailyProfitLock"
CONSECUTIVE_LOSSES = "ConsecutiveLosses"
TRAILING_DRAWDOWN = "TrailingDrawdown"


@dataclass
class RiskGuardState:
    """Daily-scoped counters plus the run-wide equity peak."""
    current_date: Optional[date] = None
    daily_pnl: float = 0.0
    consecutive_losses: int = 0
    trades_seen: int = 0
    peak_equity: float = 0.0
    tripped: bool = False
    trip_reason: Optional[str] = None

    def reset_daily(self, day: date):
        self.current_date = day
        self.daily_pnl = 0.0
        self.consecutive_losses = 0
        self.tripped = False
        self.trip_reason = None


@dataclass(frozen=True)
class GuardResult:
    """
    Outcome of a guard evaluation.

    skip: no further processing on this bar
    flatten_reason: set when open positions must be flattened and the pending
        setup cancelled on this bar
    """
    skip: bool = False
    flatten_reason: Optional[str] = None


PROCEED = GuardResult()


class RiskGuard:
    """
    Evaluates the guards in a fixed order:
    flatten window, sticky trip, daily P&L, consecutive losses, trailing
    drawdown. Thresholds of 0 disable the corresponding guard.
    """

    def __init__(self, config: GuardConfig, start_balance: float,
                 state: Optional[RiskGuardState] = None):
        self.config = config
        self.start_balance = start_balance
        self.cutoff = parse_clock(config.session_close)
        self.state = state or RiskGuardState(peak_equity=start_balance)

    def in_flatten_window(self, bar_time: datetime) -> bool:
        minutes = self.config.flatten_minutes
        if minutes <= 0:
            return False
        cutoff = datetime.combine(bar_time.date(), self.cutoff)
        return cutoff - timedelta(minutes=minutes) <= bar_time < cutoff

    def roll_day(self, bar_time: datetime, account: Optional[AccountSnapshot] = None) -> bool:
        """
        Reset daily fields on the first bar of a new calendar date.

        With an account, trades that closed before the new date are marked
        seen so they never count toward the new day's losing streak.
        """
        day = bar_time.date()
        if self.state.current_date == day:
            return False
        self.state.reset_daily(day)
        if account is not None:
            earlier = sum(1 for t in account.closed_trades if t.exit_time.date() < day)
            self.state.trades_seen = max(self.state.trades_seen, earlier)
        logger.info(f"[Guard] New trading day {day}; daily counters reset")
        return True

    def _record_trades(self, account: AccountSnapshot):
        """Advance the losing streak over closed trades not seen before."""
        state = self.state
        trades = list(account.closed_trades)
        for trade in trades[state.trades_seen:]:
            if trade.profit < 0:
                state.consecutive_losses += 1
            else:
                state.consecutive_losses = 0
        state.trades_seen = len(trades)

    def _trip(self, reason: str, detail: str) -> GuardResult:
        self.state.tripped = True
        self.state.trip_reason = reason
        logger.warning(f"[Guard] {reason} tripped: {detail}. No new entries until next day")
        return GuardResult(skip=True, flatten_reason=reason)

    def evaluate(self, bar_time: datetime, account: AccountSnapshot) -> GuardResult:
        state = self.state
        cfg = self.config
        self.roll_day(bar_time, account)
        self._record_trades(account)

        equity = self.start_balance + account.cumulative_profit
        state.peak_equity = max(state.peak_equity, equity)

        if self.in_flatten_window(bar_time):
            return GuardResult(skip=True, flatten_reason=FLAT_BEFORE_CLOSE)

        if state.tripped:
            return GuardResult(skip=True)

        day = bar_time.date()
        state.daily_pnl = sum(t.profit for t in account.closed_trades
                              if t.exit_time.date() == day)
        if cfg.daily_loss_cap > 0 and state.daily_pnl <= -abs(cfg.daily_loss_cap):
            return self._trip(DAILY_LOSS_CAP, f"daily P&L {state.daily_pnl:.2f}")
        if cfg.daily_profit_lock > 0 and state.daily_pnl >= abs(cfg.daily_profit_lock):
            return self._trip(DAILY_PROFIT_LOCK, f"daily P&L {state.daily_pnl:.2f}")

        if cfg.max_consecutive_losses > 0 and state.consecutive_losses >= cfg.max_consecutive_losses:
            return self._trip(CONSECUTIVE_LOSSES, f"{state.consecutive_losses} losses in a row")

        drawdown = state.peak_equity - equity
        if cfg.max_trailing_drawdown > 0 and drawdown >= cfg.max_trailing_drawdown:
            return self._trip(TRAILING_DRAWDOWN, f"drawdown {drawdown:.2f} from peak {state.peak_equity:.2f}")

        return PROCEED
