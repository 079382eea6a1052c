"""
Core Data Structures

Bars, bar events, trade intents and the read-only account snapshot exchanged
between the decision engine and its host platform.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, List, Sequence, Union

import pytz

EXCHANGE_TZ = pytz.timezone('US/Eastern')


# ═══════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════

class Timeframe(Enum):
    PRIMARY = "PRIMARY"
    TREND = "TREND"
    DAILY = "DAILY"


class Direction(Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1


class PositionSide(Enum):
    FLAT = "FLAT"
    LONG = "LONG"
    SHORT = "SHORT"


class IntentAction(Enum):
    ENTER = "ENTER"
    FLATTEN = "FLATTEN"


# ═══════════════════════════════════════════════════════════════════════════
# BARS
# ═══════════════════════════════════════════════════════════════════════════

def to_exchange_time(value: Union[int, float, str, datetime], tz=EXCHANGE_TZ) -> datetime:
    """
    Normalize a timestamp to a naive exchange-local datetime.

    Args:
        value: Unix seconds, ISO string, or datetime (aware or naive)
        tz: Exchange timezone used for aware/unix inputs

    Returns:
        Naive datetime in exchange-local time
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value, tz=pytz.UTC)
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value)
    else:
        raise ValueError(f"Unsupported timestamp type: {type(value)}")

    if dt.tzinfo is not None:
        dt = dt.astimezone(tz).replace(tzinfo=None)
    return dt


@dataclass(frozen=True)
class Bar:
    """One OHLCV sample. `time` is the bar's open time in exchange-local time."""
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def __post_init__(self):
        if any(math.isnan(v) for v in (self.open, self.high, self.low, self.close)):
            raise ValueError(f"Bar at {self.time} has NaN prices")
        if self.high < self.low:
            raise ValueError(f"Bar at {self.time} has high {self.high} < low {self.low}")
        if self.volume < 0:
            raise ValueError(f"Bar at {self.time} has negative volume {self.volume}")

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0

    @property
    def range(self) -> float:
        return self.high - self.low

    @classmethod
    def from_dict(cls, data: dict, tz=EXCHANGE_TZ) -> 'Bar':
        """Build a bar from a host dictionary (time may be unix seconds)."""
        return cls(
            time=to_exchange_time(data['time'], tz),
            open=float(data['open']),
            high=float(data['high']),
            low=float(data['low']),
            close=float(data['close']),
            volume=float(data.get('volume', 0) or 0),
        )


@dataclass(frozen=True)
class BarEvent:
    """A closed bar tagged with the timeframe that produced it."""
    timeframe: Timeframe
    bar: Bar


# ═══════════════════════════════════════════════════════════════════════════
# ACCOUNT (read-only query answered by the host)
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ClosedTrade:
    exit_time: datetime
    profit: float


@dataclass(frozen=True)
class AccountSnapshot:
    """
    Host account state at the time a primary bar closes.

    closed_trades is the append-only realized trade history of the run.
    """
    position: PositionSide = PositionSide.FLAT
    quantity: int = 0
    closed_trades: Sequence[ClosedTrade] = ()

    @property
    def is_flat(self) -> bool:
        return self.position == PositionSide.FLAT

    @property
    def cumulative_profit(self) -> float:
        return sum(t.profit for t in self.closed_trades)


FLAT_ACCOUNT = AccountSnapshot()


# ═══════════════════════════════════════════════════════════════════════════
# INTENTS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TradeIntent:
    """
    Instruction for the execution collaborator.

    ENTER intents carry the absolute stop-loss and profit-target prices
    attached to that entry. FLATTEN intents close the given side.
    """
    action: IntentAction
    side: Direction
    quantity: int
    tag: str
    reason: str
    bar_time: Optional[datetime] = None
    entry_price: Optional[float] = None
    stop_price: Optional[float] = None
    target_price: Optional[float] = None

    @classmethod
    def enter(cls, side: Direction, quantity: int, entry: float, stop: float,
              target: float, tag: str, reason: str,
              bar_time: Optional[datetime] = None) -> 'TradeIntent':
        return cls(IntentAction.ENTER, side, quantity, tag, reason, bar_time,
                   entry, stop, target)

    @classmethod
    def flatten(cls, position: PositionSide, quantity: int, reason: str,
                bar_time: Optional[datetime] = None) -> 'TradeIntent':
        side = Direction.LONG if position == PositionSide.LONG else Direction.SHORT
        return cls(IntentAction.FLATTEN, side, quantity, reason, reason, bar_time)

    def to_dict(self) -> dict:
        return {
            'action': self.action.value,
            'side': self.side.value,
            'quantity': self.quantity,
            'tag': self.tag,
            'reason': self.reason,
            'bar_time': self.bar_time,
            'entry_price': self.entry_price,
            'stop_price': self.stop_price,
            'target_price': self.target_price,
        }


# Outbound execution collaborator
IntentSink = Callable[[TradeIntent], None]


@dataclass
class IntentBatch:
    """Intents produced while processing one bar event."""
    intents: List[TradeIntent] = field(default_factory=list)

    def add(self, intent: TradeIntent):
        self.intents.append(intent)

    @property
    def has_entry(self) -> bool:
        return any(i.action == IntentAction.ENTER for i in self.intents)
