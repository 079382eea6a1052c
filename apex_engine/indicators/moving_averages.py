"""
Moving Average Indicators

Implements streaming SMA, EMA, and rolling standard deviation.
"""

from collections import deque
from typing import Optional

import numpy as np

from .base import Indicator, validate_period


class SMA(Indicator):
    """
    Simple Moving Average

    Arithmetic mean of the last `period` samples. Not ready until the window
    is full.
    """

    def __init__(self, period: int = 20, source: str = 'close'):
        """
        Initialize SMA indicator.

        Args:
            period: Number of samples to average (default: 20)
            source: Column replayed by calculate() (default: 'close')
        """
        super().__init__({
            'period': validate_period(period),
            'source': source,
        })
        self.source = source
        self._window: deque = deque(maxlen=period)

    def update(self, sample: float) -> Optional[float]:
        self._count += 1
        self._window.append(sample)
        if len(self._window) < self.params['period']:
            self._value = None
        else:
            self._value = sum(self._window) / self.params['period']
        return self._value

    def reset(self):
        self._window.clear()
        self._value = None
        self._count = 0


class EMA(Indicator):
    """
    Exponential Moving Average

    alpha = 2 / (period + 1), seeded with the first sample. The running
    average starts on the first sample but is reported only after `period`
    samples.
    """

    def __init__(self, period: int = 20, source: str = 'close'):
        """
        Initialize EMA indicator.

        Args:
            period: EMA length (default: 20)
            source: Column replayed by calculate() (default: 'close')
        """
        super().__init__({
            'period': validate_period(period),
            'source': source,
        })
        self.source = source
        self._alpha = 2.0 / (period + 1.0)
        self._ema: Optional[float] = None

    def update(self, sample: float) -> Optional[float]:
        self._count += 1
        if self._ema is None:
            self._ema = sample
        else:
            self._ema = self._alpha * sample + (1.0 - self._alpha) * self._ema

        self._value = self._ema if self._count >= self.params['period'] else None
        return self._value

    def reset(self):
        self._ema = None
        self._value = None
        self._count = 0


class StdDev(Indicator):
    """
    Rolling population standard deviation over `period` samples.
    """

    def __init__(self, period: int = 20, source: str = 'close'):
        super().__init__({
            'period': validate_period(period),
            'source': source,
        })
        self.source = source
        self._window: deque = deque(maxlen=period)

    def update(self, sample: float) -> Optional[float]:
        self._count += 1
        self._window.append(sample)
        if len(self._window) < self.params['period']:
            self._value = None
        else:
            self._value = float(np.std(np.fromiter(self._window, dtype=float)))
        return self._value

    def reset(self):
        self._window.clear()
        self._value = None
        self._count = 0
