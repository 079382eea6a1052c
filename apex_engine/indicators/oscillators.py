"""
Oscillator Indicators

Implements Wilder RSI, Wilder ADX (+DI/-DI) and the WaveTrend oscillator.
"""

from collections import deque
from typing import Dict, Optional

from ..models import Bar
from .base import Indicator, validate_period, safe_div


class RSI(Indicator):
    """
    Relative Strength Index (Wilder smoothing, smoothing factor 1)

    Momentum oscillator measuring speed and change of price movements.
    Range: 0-100. Average up/down moves are seeded with the simple mean of
    the first `period` moves, then smoothed:
        avg = (avg_prev * (period - 1) + move) / period
    """

    def __init__(self, period: int = 14, source: str = 'close'):
        """
        Initialize RSI indicator.

        Args:
            period: Number of price changes (default: 14)
            source: Column replayed by calculate() (default: 'close')
        """
        super().__init__({
            'period': validate_period(period),
            'source': source,
        })
        self.source = source
        self._prev: Optional[float] = None
        self._moves = 0
        self._seed_up = 0.0
        self._seed_down = 0.0
        self._avg_up: Optional[float] = None
        self._avg_down: Optional[float] = None

    def update(self, sample: float) -> Optional[float]:
        self._count += 1
        if self._prev is None:
            self._prev = sample
            return None

        period = self.params['period']
        delta = sample - self._prev
        self._prev = sample
        up = max(delta, 0.0)
        down = max(-delta, 0.0)
        self._moves += 1

        if self._moves <= period:
            self._seed_up += up
            self._seed_down += down
            if self._moves < period:
                return None
            self._avg_up = self._seed_up / period
            self._avg_down = self._seed_down / period
        else:
            self._avg_up = (self._avg_up * (period - 1) + up) / period
            self._avg_down = (self._avg_down * (period - 1) + down) / period

        if self._avg_down == 0:
            self._value = 50.0 if self._avg_up == 0 else 100.0
        else:
            self._value = 100.0 - 100.0 / (1.0 + self._avg_up / self._avg_down)
        return self._value

    def reset(self):
        self._prev = None
        self._moves = 0
        self._seed_up = 0.0
        self._seed_down = 0.0
        self._avg_up = None
        self._avg_down = None
        self._value = None
        self._count = 0


class ADX(Indicator):
    """
    Average Directional Index (Wilder)

    +DM, -DM and TR are smoothed with the running-sum form
        sm = sm_prev - sm_prev / period + new
    seeded by the sum of the first `period` values. DX is then smoothed one
    of two ways:

    - 'average': Wilder average of DX seeded with the mean of the first
      `period` DX values; the first value appears after 2 * period bars.
    - 'running_sum': the same running-sum form as DM/TR,
          adx = adx_prev - adx_prev / period + dx
      seeded with the first DX; the first value appears after period + 1
      bars. The line settles near period * DX rather than DX.
    """

    SMOOTHING = ('average', 'running_sum')

    def __init__(self, period: int = 14, dx_smoothing: str = 'average'):
        if dx_smoothing not in self.SMOOTHING:
            raise ValueError(f"dx_smoothing must be one of {self.SMOOTHING}, got {dx_smoothing!r}")
        super().__init__({
            'period': validate_period(period),
            'dx_smoothing': dx_smoothing,
        })
        self._prev_bar: Optional[Bar] = None
        self._moves = 0
        self._sm_plus = 0.0
        self._sm_minus = 0.0
        self._sm_tr = 0.0
        self._dx_count = 0
        self._dx_sum = 0.0
        self.plus_di: Optional[float] = None
        self.minus_di: Optional[float] = None
        self.dx: Optional[float] = None

    def update(self, bar: Bar) -> Optional[float]:
        self._count += 1
        prev = self._prev_bar
        self._prev_bar = bar
        if prev is None:
            return None

        period = self.params['period']
        up_move = bar.high - prev.high
        down_move = prev.low - bar.low
        dm_plus = up_move if (up_move > down_move and up_move > 0) else 0.0
        dm_minus = down_move if (down_move > up_move and down_move > 0) else 0.0
        tr = max(bar.high - bar.low,
                 abs(bar.high - prev.close),
                 abs(bar.low - prev.close))
        self._moves += 1

        if self._moves <= period:
            self._sm_plus += dm_plus
            self._sm_minus += dm_minus
            self._sm_tr += tr
            if self._moves < period:
                return None
        else:
            self._sm_plus = self._sm_plus - self._sm_plus / period + dm_plus
            self._sm_minus = self._sm_minus - self._sm_minus / period + dm_minus
            self._sm_tr = self._sm_tr - self._sm_tr / period + tr

        self.plus_di = 100.0 * safe_div(self._sm_plus, self._sm_tr)
        self.minus_di = 100.0 * safe_div(self._sm_minus, self._sm_tr)
        self.dx = 100.0 * safe_div(abs(self.plus_di - self.minus_di),
                                   self.plus_di + self.minus_di)

        self._dx_count += 1
        if self.params['dx_smoothing'] == 'running_sum':
            if self._dx_count == 1:
                self._value = self.dx
            else:
                self._value = self._value - self._value / period + self.dx
        elif self._dx_count <= period:
            self._dx_sum += self.dx
            if self._dx_count == period:
                self._value = self._dx_sum / period
        else:
            self._value = (self._value * (period - 1) + self.dx) / period
        return self._value

    def reset(self):
        self._prev_bar = None
        self._moves = 0
        self._sm_plus = self._sm_minus = self._sm_tr = 0.0
        self._dx_count = 0
        self._dx_sum = 0.0
        self.plus_di = self.minus_di = self.dx = None
        self._value = None
        self._count = 0

    def outputs(self) -> Dict[str, Optional[float]]:
        return {'adx': self._value, 'plus_di': self.plus_di, 'minus_di': self.minus_di}


class WaveTrend(Indicator):
    """
    WaveTrend Oscillator

    Dual-EMA momentum channel on typical price:
        esa = EMA(hlc3, channel);  d = EMA(|hlc3 - esa|, channel)
        ci  = (hlc3 - esa) / (0.015 * d)      (0 when d == 0)
        wt1 = EMA(ci, average);    wt2 = SMA(wt1, signal)
    wt2 falls back to wt1 until `signal_length` samples of wt1 exist. Values
    are reported once `average_length` bars were processed.
    """

    def __init__(
        self,
        channel_length: int = 10,
        average_length: int = 21,
        signal_length: int = 4,
        overbought: float = 60.0,
        oversold: float = -60.0
    ):
        """
        Initialize WaveTrend.

        Args:
            channel_length: EMA length for esa and d (default: 10)
            average_length: EMA length for wt1 (default: 21)
            signal_length: SMA length for wt2 (default: 4)
            overbought: Overbought level, >= 30 (default: 60)
            oversold: Oversold level, within [-100, 0] (default: -60)
        """
        if overbought < 30:
            raise ValueError(f"Overbought level must be >= 30, got {overbought}")
        if not -100 <= oversold <= 0:
            raise ValueError(f"Oversold level must be within [-100, 0], got {oversold}")

        super().__init__({
            'channel_length': validate_period(channel_length),
            'average_length': validate_period(average_length),
            'signal_length': validate_period(signal_length),
            'overbought': overbought,
            'oversold': oversold,
        })
        self._channel_alpha = 2.0 / (channel_length + 1.0)
        self._average_alpha = 2.0 / (average_length + 1.0)
        self._esa: Optional[float] = None
        self._d: Optional[float] = None
        self._wt1: Optional[float] = None
        self._wt1_window: deque = deque(maxlen=signal_length)
        self.wt1: Optional[float] = None
        self.wt2: Optional[float] = None
        self.prev_wt1: Optional[float] = None
        self.prev_wt2: Optional[float] = None

    def update(self, bar: Bar) -> Optional[float]:
        self._count += 1
        hlc3 = bar.typical_price

        if self._esa is None:
            self._esa = hlc3
        else:
            self._esa = self._channel_alpha * hlc3 + (1.0 - self._channel_alpha) * self._esa

        abs_diff = abs(hlc3 - self._esa)
        if self._d is None:
            self._d = abs_diff
        else:
            self._d = self._channel_alpha * abs_diff + (1.0 - self._channel_alpha) * self._d

        ci = safe_div(hlc3 - self._esa, 0.015 * self._d)

        if self._wt1 is None:
            self._wt1 = ci
        else:
            self._wt1 = self._average_alpha * ci + (1.0 - self._average_alpha) * self._wt1

        self._wt1_window.append(self._wt1)
        if len(self._wt1_window) < self.params['signal_length']:
            wt2 = self._wt1
        else:
            wt2 = sum(self._wt1_window) / self.params['signal_length']

        if self._count < self.params['average_length']:
            return None

        self.prev_wt1, self.prev_wt2 = self.wt1, self.wt2
        self.wt1, self.wt2 = self._wt1, wt2
        self._value = self.wt1
        return self._value

    def reset(self):
        self._esa = self._d = self._wt1 = None
        self._wt1_window.clear()
        self.wt1 = self.wt2 = self.prev_wt1 = self.prev_wt2 = None
        self._value = None
        self._count = 0

    def _has_history(self) -> bool:
        return self.prev_wt1 is not None

    def is_bullish(self) -> bool:
        """wt1 crossed above wt2, or wt1 is oversold and rising."""
        if not self._has_history():
            return False
        crossed_up = self.wt1 > self.wt2 and self.prev_wt1 <= self.prev_wt2
        oversold_rising = self.wt1 < self.params['oversold'] and self.wt1 > self.prev_wt1
        return crossed_up or oversold_rising

    def is_bearish(self) -> bool:
        """wt1 crossed below wt2, or wt1 is overbought and falling."""
        if not self._has_history():
            return False
        crossed_down = self.wt1 < self.wt2 and self.prev_wt1 >= self.prev_wt2
        overbought_falling = self.wt1 > self.params['overbought'] and self.wt1 < self.prev_wt1
        return crossed_down or overbought_falling

    def is_overbought(self) -> bool:
        return self.is_ready and self.wt1 > self.params['overbought']

    def is_oversold(self) -> bool:
        return self.is_ready and self.wt1 < self.params['oversold']

    def outputs(self) -> Dict[str, Optional[float]]:
        return {'wt1': self.wt1, 'wt2': self.wt2}
