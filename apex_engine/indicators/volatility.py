"""
Volatility Indicators

Wilder Average True Range and Modified Bollinger Bands with squeeze and
expansion detection.
"""

from collections import deque
from typing import Dict, Optional

from ..models import Bar
from .base import Indicator, validate_period, safe_div
from .moving_averages import SMA, StdDev


class ATR(Indicator):
    """
    Average True Range (Wilder)

    TR of the first bar is high - low. The average is seeded with the simple
    mean of the first `period` true ranges, then smoothed:
        atr = atr_prev - atr_prev / period + tr / period
    """

    def __init__(self, period: int = 14):
        super().__init__({'period': validate_period(period)})
        self._prev_close: Optional[float] = None
        self._seed_sum = 0.0
        self._atr: Optional[float] = None
        self.last_true_range: Optional[float] = None

    def update(self, bar: Bar) -> Optional[float]:
        period = self.params['period']

        if self._prev_close is None:
            tr = bar.high - bar.low
        else:
            tr = max(
                bar.high - bar.low,
                abs(bar.high - self._prev_close),
                abs(bar.low - self._prev_close),
            )
        self._prev_close = bar.close
        self.last_true_range = tr
        self._count += 1

        if self._count <= period:
            self._seed_sum += tr
            if self._count == period:
                self._atr = self._seed_sum / period
        else:
            self._atr = self._atr - self._atr / period + tr / period

        self._value = self._atr
        return self._value

    def reset(self):
        self._prev_close = None
        self._seed_sum = 0.0
        self._atr = None
        self._value = None
        self._count = 0
        self.last_true_range = None


class BollingerBandsModified(Indicator):
    """
    Modified Bollinger Bands

    Standard bands (middle ± std_dev_multiplier·σ) plus wider expansion bands
    (middle ± expansion_multiplier·σ). Bandwidth = (upper - lower) / middle.
    The last three bandwidth samples drive squeeze/expansion detection.
    """

    def __init__(
        self,
        period: int = 20,
        std_dev_multiplier: float = 2.0,
        expansion_multiplier: float = 2.5,
        squeeze_threshold: float = 0.02,
        source: str = 'close'
    ):
        """
        Initialize Modified Bollinger Bands.

        Args:
            period: SMA / standard deviation window (default: 20)
            std_dev_multiplier: Standard band width in σ (default: 2.0)
            expansion_multiplier: Expansion band width in σ (default: 2.5)
            squeeze_threshold: Bandwidth fraction below which bands are in squeeze (default: 0.02)
            source: Column replayed by calculate() (default: 'close')
        """
        if std_dev_multiplier < 0.1 or expansion_multiplier < 0.1:
            raise ValueError("Band multipliers must be >= 0.1")
        if not 0.0 <= squeeze_threshold <= 1.0:
            raise ValueError(f"Squeeze threshold must be within [0, 1], got {squeeze_threshold}")

        super().__init__({
            'period': validate_period(period),
            'std_dev_multiplier': std_dev_multiplier,
            'expansion_multiplier': expansion_multiplier,
            'squeeze_threshold': squeeze_threshold,
            'source': source,
        })
        self.source = source
        self._sma = SMA(period)
        self._std = StdDev(period)
        self._bandwidth: deque = deque(maxlen=3)
        self.middle: Optional[float] = None
        self.upper: Optional[float] = None
        self.lower: Optional[float] = None
        self.expansion_upper: Optional[float] = None
        self.expansion_lower: Optional[float] = None

    def update(self, sample: float) -> Optional[float]:
        self._count += 1
        middle = self._sma.update(sample)
        sigma = self._std.update(sample)
        if middle is None or sigma is None:
            return None

        p = self.params
        self.middle = middle
        self.upper = middle + p['std_dev_multiplier'] * sigma
        self.lower = middle - p['std_dev_multiplier'] * sigma
        self.expansion_upper = middle + p['expansion_multiplier'] * sigma
        self.expansion_lower = middle - p['expansion_multiplier'] * sigma
        self._bandwidth.appendleft(safe_div(self.upper - self.lower, middle))

        self._value = middle
        return self._value

    def reset(self):
        self._sma.reset()
        self._std.reset()
        self._bandwidth.clear()
        self.middle = self.upper = self.lower = None
        self.expansion_upper = self.expansion_lower = None
        self._value = None
        self._count = 0

    @property
    def bandwidth(self) -> Optional[float]:
        return self._bandwidth[0] if self._bandwidth else None

    def is_in_squeeze(self) -> bool:
        if not self.is_ready:
            return False
        return self._bandwidth[0] < self.params['squeeze_threshold']

    def is_expanding(self) -> bool:
        """Bandwidth rising off a local minimum (three-sample pattern)."""
        if len(self._bandwidth) < 3:
            return False
        bw = self._bandwidth
        return bw[0] > bw[1] and bw[1] < bw[2]

    def is_breakout_above(self, price: float) -> bool:
        return self.is_ready and price > self.upper

    def is_breakout_below(self, price: float) -> bool:
        return self.is_ready and price < self.lower

    def outputs(self) -> Dict[str, Optional[float]]:
        return {
            'middle': self.middle if self.is_ready else None,
            'upper': self.upper if self.is_ready else None,
            'lower': self.lower if self.is_ready else None,
            'expansion_upper': self.expansion_upper if self.is_ready else None,
            'expansion_lower': self.expansion_lower if self.is_ready else None,
            'bandwidth': self.bandwidth,
        }
