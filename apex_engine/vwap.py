"""
Session-anchored VWAP and Opening Range

Both trackers are reset at every session start and updated with each
in-session primary bar.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .models import Bar

logger = logging.getLogger(__name__)

DAILY_ATR_FALLBACK_MULT = 2.0


class SessionVWAP:
    """
    Cumulative volume-weighted typical price since session start.

    value is NaN until the first in-session bar. Bars with no volume are
    weighted as one contract. The last `lookback + 1` values are retained for
    the slope.
    """

    def __init__(self, lookback: int = 5):
        self.lookback = lookback
        self.cum_pv = 0.0
        self.cum_volume = 0.0
        self.value = float('nan')
        self.history: deque = deque(maxlen=lookback + 1)

    def reset(self):
        self.cum_pv = 0.0
        self.cum_volume = 0.0
        self.value = float('nan')
        self.history.clear()

    def update(self, bar: Bar) -> float:
        volume = bar.volume if bar.volume > 0 else 1.0
        self.cum_pv += bar.typical_price * volume
        self.cum_volume += volume
        self.value = self.cum_pv / self.cum_volume
        self.history.append(self.value)
        return self.value

    @property
    def is_ready(self) -> bool:
        return not math.isnan(self.value)

    def slope(self, atr: float) -> float:
        """(vwap_now - vwap_lookback_bars_ago) / atr; 0 without enough history."""
        if len(self.history) <= self.lookback or atr <= 0:
            return 0.0
        return (self.history[-1] - self.history[0]) / atr


@dataclass
class OpeningRange:
    """High/low captured during the first `minutes` of a session."""
    minutes: int = 15
    start: Optional[datetime] = None
    high: float = float('nan')
    low: float = float('nan')
    range: float = float('nan')
    ratio: float = float('nan')
    is_complete: bool = False

    def reset(self, start: datetime):
        self.start = start
        self.high = float('nan')
        self.low = float('nan')
        self.range = float('nan')
        self.ratio = float('nan')
        self.is_complete = False

    def update(self, bar: Bar, daily_atr: Optional[float], intraday_atr: Optional[float]) -> bool:
        """
        Accumulate or freeze the range.

        Returns:
            True on the bar the range freezes
        """
        if self.is_complete or self.start is None:
            return False

        elapsed = (bar.time - self.start).total_seconds() / 60.0
        if elapsed < self.minutes:
            self.high = bar.high if math.isnan(self.high) else max(self.high, bar.high)
            self.low = bar.low if math.isnan(self.low) else min(self.low, bar.low)
            return False

        if math.isnan(self.high):
            # Session began after the window; use the freezing bar itself
            self.high, self.low = bar.high, bar.low

        self.range = self.high - self.low
        divisor = daily_atr if daily_atr else (intraday_atr or 0.0) * DAILY_ATR_FALLBACK_MULT
        self.ratio = self.range / divisor if divisor > 0 else 0.0
        self.is_complete = True
        logger.info(
            f"[OR] Complete: high={self.high:.2f} low={self.low:.2f} "
            f"range={self.range:.2f} ratio={self.ratio:.3f}"
        )
        return True
